"""Caller identity and session lifecycle.

The auth layer resolves who is calling; ledger operations receive the
resulting ``Caller`` explicitly. A ``Session`` owns a caller for as long as
the user stays signed in.
"""

import logging
from dataclasses import dataclass

from kidtime_shared import Role

from .errors import PermissionDeniedError, UnauthenticatedError

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class Caller:
    """An authenticated user."""

    uid: str
    role: Role

    @property
    def is_parent(self) -> bool:
        return self.role == Role.PARENT


def require_caller(caller: Caller | None) -> Caller:
    """Return the caller, or raise if nobody is signed in."""
    if caller is None:
        raise UnauthenticatedError("Sign in required.")
    return caller


def require_parent(caller: Caller | None, action: str) -> Caller:
    """Return the caller if it is a parent account."""
    caller = require_caller(caller)
    if not caller.is_parent:
        raise PermissionDeniedError(f"Only parents can {action}.")
    return caller


class Session:
    """Holds the signed-in caller between sign-in and sign-out."""

    def __init__(self) -> None:
        self._caller: Caller | None = None

    @classmethod
    def sign_in(cls, uid: str, role: Role | str) -> "Session":
        session = cls()
        session._caller = Caller(uid=uid, role=Role(role))
        logger.info("Signed in %s as %s", uid, session._caller.role)
        return session

    def sign_out(self) -> None:
        """Invalidate the session. Signing out twice is a no-op."""
        if self._caller is not None:
            logger.info("Signed out %s", self._caller.uid)
        self._caller = None

    @property
    def active(self) -> bool:
        return self._caller is not None

    @property
    def caller(self) -> Caller | None:
        return self._caller

    def require(self) -> Caller:
        return require_caller(self._caller)
