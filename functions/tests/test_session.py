"""Tests for caller identity and session lifecycle."""

import pytest

from kidtime_shared import Role
from kidtime_functions.errors import PermissionDeniedError, UnauthenticatedError
from kidtime_functions.session import Caller, Session, require_parent


def test_sign_in_creates_active_session() -> None:
    session = Session.sign_in("parent-1", "parent")

    assert session.active
    assert session.caller == Caller("parent-1", Role.PARENT)
    assert session.require().is_parent


def test_sign_out_invalidates_session() -> None:
    session = Session.sign_in("kid-1", Role.CHILD)
    session.sign_out()

    assert not session.active
    with pytest.raises(UnauthenticatedError):
        session.require()


def test_sign_out_twice_is_a_no_op() -> None:
    session = Session.sign_in("kid-1", Role.CHILD)
    session.sign_out()
    session.sign_out()

    assert session.caller is None


def test_unknown_role_is_rejected() -> None:
    with pytest.raises(ValueError):
        Session.sign_in("someone", "admin")


def test_require_parent_message() -> None:
    with pytest.raises(PermissionDeniedError) as exc_info:
        require_parent(Caller("kid-1", Role.CHILD), "grant bonuses")

    assert exc_info.value.message == "Only parents can grant bonuses."
    assert exc_info.value.code == "permission-denied"


def test_require_parent_without_caller() -> None:
    with pytest.raises(UnauthenticatedError):
        require_parent(None, "grant bonuses")
