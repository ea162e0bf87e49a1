"""Household operations: child invites, chore assignment and lookups."""

import logging
import re
import secrets
import string
from collections.abc import Callable
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Any

from kidtime_shared import (
    Child,
    Chore,
    Collection,
    EventType,
    Invite,
    NotificationType,
    ScreenTimeRecord,
    daily_doc_id,
)
from kidtime_shared.firestore import document_to_model, model_to_firestore
from kidtime_shared.store import DocumentStore, StoreTransaction

from .config import LedgerLimits
from .errors import InvalidArgumentError, NotFoundError
from .notifications import NotificationSink, notify
from .records import append_event, ledger_day, utc_now
from .session import Caller, require_parent

logger = logging.getLogger(__name__)

TOKEN_ALPHABET = string.ascii_letters + string.digits
TOKEN_LENGTH = 16
MIN_PHONE_DIGITS = 10


@dataclass(frozen=True)
class CreatedInvite:
    invite_id: str
    token: str
    child_name: str
    phone: str
    expires_at: datetime


@dataclass(frozen=True)
class AssignedChores:
    task: str
    chore_ids: list[str]


def clean_phone(phone: str | None) -> str | None:
    """Strip everything but digits; None if fewer than ten remain."""
    digits = re.sub(r"\D", "", phone or "")
    return digits if len(digits) >= MIN_PHONE_DIGITS else None


def generate_invite_token() -> str:
    return "".join(secrets.choice(TOKEN_ALPHABET) for _ in range(TOKEN_LENGTH))


class Household:
    """Parent-side household management."""

    def __init__(
        self,
        store: DocumentStore,
        notifications: NotificationSink,
        limits: LedgerLimits | None = None,
        clock: Callable[[], datetime] = utc_now,
    ):
        self._store = store
        self._notifications = notifications
        self._limits = limits or LedgerLimits()
        self._clock = clock

    def list_children(self, parent_id: str) -> list[Child]:
        snaps = self._store.query(Collection.CHILDREN, {"parentId": parent_id})
        return [document_to_model(Child, snap.data, doc_id=snap.id) for snap in snaps]

    def find_child(self, parent_id: str, name: str) -> Child:
        """Find one of the parent's children by name.

        Raises NotFoundError if there is no such child.
        """
        snaps = self._store.query(Collection.CHILDREN, {"parentId": parent_id, "name": name})
        if not snaps:
            raise NotFoundError(f"Could not find child named {name}.", error="Child not found")
        return document_to_model(Child, snaps[0].data, doc_id=snaps[0].id)

    def usage_today(self, child_id: str) -> ScreenTimeRecord:
        """Today's screen time record for a child; empty if none exists yet."""
        day = ledger_day(self._clock())
        data = self._store.get(Collection.SCREEN_TIME, daily_doc_id(child_id, day))
        defaults = {"childId": child_id, "date": day.isoformat()}
        return document_to_model(ScreenTimeRecord, {**defaults, **(data or {})})

    def invite_child(self, caller: Caller | None, child_name: str, phone: str) -> CreatedInvite:
        """Create a pending invite the child can accept from their phone."""
        parent = require_parent(caller, "add children")
        if not child_name:
            raise InvalidArgumentError("childName and phone required.")
        cleaned = clean_phone(phone)
        if cleaned is None:
            raise InvalidArgumentError("Invalid phone number format.")

        now = self._clock()
        invite = Invite(
            parent_id=parent.uid,
            child_name=child_name,
            phone=cleaned,
            token=generate_invite_token(),
            expires_at=now + timedelta(days=self._limits.invite_expiry_days),
            created_at=now,
        )

        def create(tx: StoreTransaction) -> str:
            invite_id = tx.add(Collection.INVITES, model_to_firestore(invite))
            append_event(
                tx,
                EventType.CHILD_INVITE_CREATED,
                parent.uid,
                {"child_name": child_name, "phone": cleaned, "invite_id": invite_id},
                now,
            )
            return invite_id

        invite_id = self._store.run_transaction(create)
        logger.info("Parent %s invited %s (%s)", parent.uid, child_name, invite_id)
        notify(
            self._notifications,
            self._clock,
            NotificationType.INVITE_SENT,
            parent.uid,
            {
                "child_name": child_name,
                "phone": cleaned,
                "invite_id": invite_id,
                "token": invite.token,
            },
        )
        return CreatedInvite(
            invite_id=invite_id,
            token=invite.token,
            child_name=child_name,
            phone=cleaned,
            expires_at=invite.expires_at,
        )

    def assign_chore(
        self, caller: Caller | None, task: str, child: Child | None = None
    ) -> AssignedChores:
        """Assign ``task`` to one child, or to all of the parent's children."""
        parent = require_parent(caller, "assign chores")
        if not task:
            raise InvalidArgumentError("A chore task is required.")
        if child is not None:
            targets = [child]
        else:
            targets = self.list_children(parent.uid)
            if not targets:
                raise NotFoundError("No children found to assign chores to.", error="Child not found")

        now = self._clock()

        def assign(tx: StoreTransaction) -> list[str]:
            chore_ids = [
                tx.add(
                    Collection.CHORES,
                    model_to_firestore(
                        Chore(
                            child_id=target.id,
                            title=task,
                            type=task,
                            assigned_by=parent.uid,
                            created_at=now,
                        )
                    ),
                )
                for target in targets
            ]
            if child is not None:
                append_event(
                    tx,
                    EventType.CHORE_ASSIGNED,
                    parent.uid,
                    {"child_id": child.id, "child_name": child.name, "task": task},
                    now,
                )
            else:
                append_event(
                    tx,
                    EventType.CHORE_ASSIGNED_BULK,
                    parent.uid,
                    {"task": task, "child_count": len(targets)},
                    now,
                )
            return chore_ids

        chore_ids = self._store.run_transaction(assign)
        logger.info("Parent %s assigned %s to %d children", parent.uid, task, len(chore_ids))
        return AssignedChores(task=task, chore_ids=chore_ids)

    def record_usage_view(self, caller: Caller, payload: dict[str, Any], bulk: bool) -> None:
        """Audit that someone looked at usage figures."""
        event_type = EventType.USAGE_VIEWED_BULK if bulk else EventType.USAGE_VIEWED
        now = self._clock()
        self._store.run_transaction(
            lambda tx: append_event(tx, event_type, caller.uid, payload, now)
        )
