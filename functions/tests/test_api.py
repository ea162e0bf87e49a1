"""Tests for the callable operation boundary."""

from collections.abc import Callable

import pytest

from kidtime_shared.store import MemoryStore, StoreTransaction, TransactionAbortedError
from kidtime_functions.api import KidTimeFunctions, call
from kidtime_functions.session import Caller

TODAY = "2024-01-15"


def _submit(functions: KidTimeFunctions, child: Caller, minutes: int = 30) -> dict:
    return functions.call("submitRequest", {"childId": "kid-1", "minutes": minutes}, child)


class TestSubmitRequest:
    def test_success_shape(self, functions: KidTimeFunctions, child: Caller) -> None:
        result = _submit(functions, child)

        assert result["ok"] is True
        assert result["id"]
        assert result["message"] == "Time request submitted! This is request #1 of 3 today."

    def test_fourth_request_fails_with_limit_error(
        self, functions: KidTimeFunctions, child: Caller
    ) -> None:
        for _ in range(3):
            assert _submit(functions, child)["ok"]

        result = _submit(functions, child)

        assert result["ok"] is False
        assert result["code"] == "resource-exhausted"
        assert result["error"] == "Daily limit exceeded"
        assert "3 time requests" in result["message"]

    def test_unauthenticated(self, functions: KidTimeFunctions) -> None:
        result = functions.call("submitRequest", {"childId": "kid-1", "minutes": 30}, None)
        assert result["code"] == "unauthenticated"

    @pytest.mark.parametrize(
        "payload",
        [
            {"childId": "kid-1"},
            {"childId": "kid-1", "minutes": "30"},
            {"childId": "", "minutes": 30},
            {"minutes": 30},
        ],
    )
    def test_invalid_payload(
        self, functions: KidTimeFunctions, store: MemoryStore, child: Caller, payload: dict
    ) -> None:
        result = functions.call("submitRequest", payload, child)

        assert result["ok"] is False
        assert result["code"] == "invalid-argument"
        assert store.query("timeRequests") == []

    def test_out_of_range_minutes(self, functions: KidTimeFunctions, child: Caller) -> None:
        result = _submit(functions, child, minutes=121)
        assert result["code"] == "invalid-argument"


class TestDecisions:
    def test_approve_result(
        self, functions: KidTimeFunctions, store: MemoryStore, parent: Caller, child: Caller
    ) -> None:
        store.set("screenTime", f"kid-1_{TODAY}", {"childId": "kid-1", "date": TODAY, "budgetMinutes": 60})
        request_id = _submit(functions, child)["id"]

        result = functions.call("approveRequest", {"requestId": request_id}, parent)

        assert result == {
            "ok": True,
            "message": "Approved 30 minutes! Child's screen time budget updated.",
            "childId": "kid-1",
            "minutesApproved": 30,
            "newBudgetMinutes": 90,
            "capped": False,
        }

    def test_approve_with_approved_false_denies(
        self, functions: KidTimeFunctions, parent: Caller, child: Caller
    ) -> None:
        request_id = _submit(functions, child)["id"]

        result = functions.call("approveRequest", {"requestId": request_id, "approved": False}, parent)

        assert result["message"] == "Request denied."
        assert result["minutesDenied"] == 30

    def test_deny_result(self, functions: KidTimeFunctions, parent: Caller, child: Caller) -> None:
        request_id = _submit(functions, child)["id"]

        result = functions.call("denyRequest", {"requestId": request_id, "reason": "bedtime"}, parent)

        assert result == {
            "ok": True,
            "message": "Request denied.",
            "childId": "kid-1",
            "minutesDenied": 30,
        }

    def test_second_approval_fails(
        self, functions: KidTimeFunctions, parent: Caller, child: Caller
    ) -> None:
        request_id = _submit(functions, child)["id"]
        functions.call("approveRequest", {"requestId": request_id}, parent)

        result = functions.call("approveRequest", {"requestId": request_id}, parent)

        assert result["code"] == "failed-precondition"
        assert result["error"] == "Request already processed"

    def test_missing_request(self, functions: KidTimeFunctions, parent: Caller) -> None:
        result = functions.call("denyRequest", {"requestId": "nope"}, parent)
        assert result["code"] == "not-found"


class TestGrantBonusTime:
    def test_result(self, functions: KidTimeFunctions, parent: Caller) -> None:
        result = functions.call("grantBonusTime", {"childId": "kid-1", "minutes": 20}, parent)

        assert result == {
            "ok": True,
            "message": "Granted 20 bonus minutes to child.",
            "awardDate": TODAY,
            "newBudgetMinutes": 20,
            "capped": False,
        }

    def test_other_parent(self, functions: KidTimeFunctions, other_parent: Caller) -> None:
        result = functions.call("grantBonusTime", {"childId": "kid-1", "minutes": 20}, other_parent)
        assert result["code"] == "permission-denied"


class TestInviteChild:
    def test_result(self, functions: KidTimeFunctions, parent: Caller) -> None:
        result = functions.call("inviteChild", {"childName": "Dee", "phone": "5550109999"}, parent)

        assert result["ok"] is True
        assert result["message"] == "Invited Dee to join the family."
        assert len(result["token"]) == 16
        assert result["inviteId"]

    def test_bad_phone(self, functions: KidTimeFunctions, parent: Caller) -> None:
        result = functions.call("inviteChild", {"childName": "Dee", "phone": "123"}, parent)
        assert result["code"] == "invalid-argument"


class TestDispatch:
    def test_reply(self, functions: KidTimeFunctions, parent: Caller) -> None:
        result = functions.call("dispatch", {"intent": "assign_chore", "entities": {"task": "dishes"}}, parent)
        assert result == {"ok": True, "say": "Assigned dishes to all children."}

    def test_reply_with_error(self, functions: KidTimeFunctions, child: Caller) -> None:
        result = functions.call("dispatch", {"intent": "grant_bonus", "entities": {"child": "Ada"}}, child)
        assert result == {
            "ok": False,
            "say": "Only parents can grant bonuses.",
            "error": "permission-denied",
        }

    def test_null_entities_treated_as_empty(self, functions: KidTimeFunctions, parent: Caller) -> None:
        result = functions.call("dispatch", {"intent": "show_usage", "entities": None}, parent)

        assert result["ok"] is True
        assert result["say"].startswith("Total usage:")

    def test_unreadable_entities_still_answer(self, functions: KidTimeFunctions, parent: Caller) -> None:
        result = functions.call("dispatch", {"intent": "show_usage", "entities": "Ada"}, parent)

        assert result == {
            "ok": False,
            "say": "I did not understand that command.",
            "error": "invalid-argument",
        }

    def test_unauthenticated(self, functions: KidTimeFunctions) -> None:
        result = functions.call("dispatch", {"intent": "show_usage"}, None)
        assert result["code"] == "unauthenticated"


def test_unknown_operation(functions: KidTimeFunctions, parent: Caller) -> None:
    result = functions.call("deleteEverything", {}, parent)

    assert result["ok"] is False
    assert result["code"] == "invalid-argument"
    assert result["message"] == "Unknown operation deleteEverything."


def test_aborted_transaction(
    functions: KidTimeFunctions, store: MemoryStore, parent: Caller, monkeypatch: pytest.MonkeyPatch
) -> None:
    def always_abort(fn: Callable[[StoreTransaction], object]) -> object:
        raise TransactionAbortedError("contention")

    monkeypatch.setattr(store, "run_transaction", always_abort)

    result = functions.call("grantBonusTime", {"childId": "kid-1", "minutes": 20}, parent)

    assert result["code"] == "aborted"


def test_module_level_call(functions: KidTimeFunctions, child: Caller) -> None:
    result = call("submitRequest", {"childId": "kid-1", "minutes": 10}, child, functions=functions)
    assert result["ok"] is True


def test_lists_operations(functions: KidTimeFunctions) -> None:
    assert functions.operations == [
        "approveRequest",
        "denyRequest",
        "dispatch",
        "grantBonusTime",
        "inviteChild",
        "submitRequest",
    ]
