"""Voice intent dispatch.

Intents arrive already parsed (intent name plus entities). Every outcome is
spoken back, so dispatch always returns a reply instead of raising, except
when nobody is signed in.
"""

import logging
from collections.abc import Mapping
from dataclasses import dataclass
from enum import StrEnum
from typing import Any

from .awards import RewardLedger
from .config import LedgerLimits
from .errors import ErrorCode, KidTimeError
from .household import Household, clean_phone
from .session import Caller, require_caller, require_parent

logger = logging.getLogger(__name__)


class Intent(StrEnum):
    ADD_CHILD = "add_child"
    ASSIGN_CHORE = "assign_chore"
    SHOW_USAGE = "show_usage"
    GRANT_BONUS = "grant_bonus"


@dataclass(frozen=True)
class VoiceReply:
    ok: bool
    say: str
    error: str | None = None


def _minutes(value: float) -> str:
    return f"{value:g}"


class VoiceDispatcher:
    """Routes parsed voice intents to household and ledger operations."""

    def __init__(
        self,
        household: Household,
        rewards: RewardLedger,
        limits: LedgerLimits | None = None,
    ):
        self._household = household
        self._rewards = rewards
        self._limits = limits or LedgerLimits()

    def dispatch(
        self,
        caller: Caller | None,
        intent: str | None,
        entities: Mapping[str, Any] | None = None,
    ) -> VoiceReply:
        caller = require_caller(caller)
        entities = entities or {}
        if not intent:
            return VoiceReply(False, "I did not understand the command.")

        handlers = {
            Intent.ADD_CHILD: self._add_child,
            Intent.ASSIGN_CHORE: self._assign_chore,
            Intent.SHOW_USAGE: self._show_usage,
            Intent.GRANT_BONUS: self._grant_bonus,
        }
        try:
            handler = handlers[Intent(intent)]
        except ValueError:
            logger.info("Unknown voice intent %r from %s", intent, caller.uid)
            return VoiceReply(False, "I did not understand that command.")

        try:
            return handler(caller, entities)
        except KidTimeError as e:
            logger.info("Voice intent %s from %s failed: %s", intent, caller.uid, e.message)
            return VoiceReply(False, e.message, error=e.code.value)

    def _add_child(self, caller: Caller, entities: Mapping[str, Any]) -> VoiceReply:
        require_parent(caller, "add children")
        child_name = entities.get("child") or "New Child"
        phone = entities.get("phone")
        if not phone:
            return VoiceReply(False, "Please provide a phone number for the child.")
        if clean_phone(str(phone)) is None:
            return VoiceReply(False, "Please provide a valid phone number.")
        self._household.invite_child(caller, child_name, str(phone))
        return VoiceReply(True, f"Invited {child_name} to join the family.")

    def _assign_chore(self, caller: Caller, entities: Mapping[str, Any]) -> VoiceReply:
        require_parent(caller, "assign chores")
        task = entities.get("task") or "custom task"
        child_name = entities.get("child")
        if child_name:
            child = self._household.find_child(caller.uid, child_name)
            self._household.assign_chore(caller, task, child)
            return VoiceReply(True, f"Assigned {task} to {child_name}.")
        self._household.assign_chore(caller, task)
        return VoiceReply(True, f"Assigned {task} to all children.")

    def _show_usage(self, caller: Caller, entities: Mapping[str, Any]) -> VoiceReply:
        if not caller.is_parent:
            record = self._household.usage_today(caller.uid)
            self._household.record_usage_view(
                caller,
                {
                    "child_id": caller.uid,
                    "used_minutes": record.used_minutes,
                    "budget_minutes": record.budget_minutes,
                },
                bulk=False,
            )
            return VoiceReply(
                True,
                f"You have used {_minutes(record.used_minutes)} minutes "
                f"out of {record.budget_minutes} today.",
            )

        child_name = entities.get("child")
        if child_name:
            child = self._household.find_child(caller.uid, child_name)
            record = self._household.usage_today(child.id)
            self._household.record_usage_view(
                caller,
                {
                    "child_id": child.id,
                    "child_name": child_name,
                    "used_minutes": record.used_minutes,
                    "budget_minutes": record.budget_minutes,
                },
                bulk=False,
            )
            return VoiceReply(
                True,
                f"{child_name} has used {_minutes(record.used_minutes)} minutes "
                f"out of {record.budget_minutes} today.",
            )

        children = self._household.list_children(caller.uid)
        if not children:
            return VoiceReply(False, "No children found.")
        records = [self._household.usage_today(child.id) for child in children]
        total_used = sum(record.used_minutes for record in records)
        total_budget = sum(record.budget_minutes for record in records)
        self._household.record_usage_view(
            caller,
            {
                "total_used": total_used,
                "total_budget": total_budget,
                "child_count": len(children),
            },
            bulk=True,
        )
        return VoiceReply(
            True,
            f"Total usage: {_minutes(total_used)} minutes out of {total_budget} "
            "across all children.",
        )

    def _grant_bonus(self, caller: Caller, entities: Mapping[str, Any]) -> VoiceReply:
        require_parent(caller, "grant bonuses")
        child_name = entities.get("child")
        if not child_name:
            return VoiceReply(False, "Please specify which child to grant bonus time to.")
        minutes = entities.get("minutes") or self._limits.default_bonus_minutes
        max_minutes = self._limits.max_bonus_minutes
        if isinstance(minutes, bool) or not isinstance(minutes, int) or not 0 < minutes <= max_minutes:
            return VoiceReply(
                False,
                f"Bonus time must be between 1 and {max_minutes} minutes.",
                error=ErrorCode.INVALID_ARGUMENT.value,
            )
        child = self._household.find_child(caller.uid, child_name)
        grant = self._rewards.grant_bonus_time(caller, child.id, minutes, reason="voice")
        say = f"Granted {minutes} bonus minutes to {child_name}."
        if grant.capped:
            say += f" Today's budget is capped at {grant.new_budget_minutes} minutes."
        return VoiceReply(True, say)
