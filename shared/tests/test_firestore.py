"""Tests for Firestore serialization helpers."""

from datetime import UTC, datetime

from kidtime_shared import AuditEvent, EventType, Policy, QuietHours, TimeRequest
from kidtime_shared.firestore import document_to_model, model_to_firestore, to_camel, to_snake


def test_key_case_conversion() -> None:
    assert to_camel("minutes_requested") == "minutesRequested"
    assert to_camel("id") == "id"
    assert to_snake("budgetMinutes") == "budget_minutes"


def test_nested_payload_and_enum_values_are_converted() -> None:
    event = AuditEvent(
        type=EventType.TIME_REQUEST_APPROVED,
        actor_id="parent1",
        payload={"child_id": "kid1", "new_budget_minutes": 90},
        created_at=datetime(2024, 1, 15, tzinfo=UTC),
    )

    doc = model_to_firestore(event)

    assert doc["type"] == "time_request_approved"
    assert doc["actorId"] == "parent1"
    assert doc["payload"] == {"childId": "kid1", "newBudgetMinutes": 90}


def test_lists_of_models_are_converted() -> None:
    policy = Policy(quiet_hours=[QuietHours(start="22:00", end="07:00")])

    doc = model_to_firestore(policy)

    assert doc == {"quietHours": [{"start": "22:00", "end": "07:00"}], "allowedApps": []}
    assert document_to_model(Policy, doc) == policy


def test_document_id_is_injected_not_stored() -> None:
    created = datetime(2024, 1, 15, 9, 30, tzinfo=UTC)
    request = TimeRequest(child_id="kid1", minutes_requested=30, created_at=created)

    doc = model_to_firestore(request, exclude={"id"})
    parsed = document_to_model(TimeRequest, doc, doc_id="req1")

    assert "id" not in doc
    assert doc["minutesRequested"] == 30
    assert doc["status"] == "pending"
    assert parsed.id == "req1"
    assert parsed.child_id == "kid1"
