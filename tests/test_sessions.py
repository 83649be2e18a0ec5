"""Unit tests for auth/sessions.py -- the Anonymous/Authenticated state machine."""

import pytest

from auth.models import User
from auth.sessions import SessionManager, SessionState, state_of


@pytest.fixture
def manager() -> SessionManager:
    return SessionManager()


def _saved_user(user_id: int = 7, user_type: str = "standard") -> User:
    return User(email="ana@example.com", hashed_password="x", id=user_id, user_type=user_type)


def test_new_session_is_anonymous(manager):
    session = manager.new()
    assert state_of(session) is SessionState.ANONYMOUS
    assert manager.current_user(session) is None


def test_bind_authenticates_with_snapshot(manager):
    bound = manager.bind(manager.new(), _saved_user(user_type="admin"))
    assert state_of(bound) is SessionState.AUTHENTICATED
    user = manager.current_user(bound)
    assert (user.id, user.email, user.user_type) == (7, "ana@example.com", "admin")


def test_bind_issues_new_session_id(manager):
    anonymous = manager.new()
    bound = manager.bind(anonymous, _saved_user())
    assert bound.session_id != anonymous.session_id


def test_bind_replaces_previous_binding(manager):
    first = manager.bind(manager.new(), _saved_user(1))
    second = manager.bind(first, _saved_user(2))
    assert manager.current_user(second).id == 2


def test_bind_unsaved_user_rejected(manager):
    with pytest.raises(ValueError):
        manager.bind(manager.new(), User(email="ana@example.com", hashed_password="x"))


def test_clear_returns_anonymous_with_new_id(manager):
    bound = manager.bind(manager.new(), _saved_user())
    cleared = manager.clear(bound)
    assert state_of(cleared) is SessionState.ANONYMOUS
    assert cleared.session_id != bound.session_id


def test_clear_anonymous_is_noop(manager):
    anonymous = manager.new()
    assert manager.clear(anonymous) == anonymous


def test_current_user_of_none_is_none(manager):
    assert manager.current_user(None) is None


def test_dump_and_load_preserve_binding(manager):
    bound = manager.bind(manager.new(), _saved_user())
    transport: dict = {"stale": "value"}
    manager.dump(bound, transport)
    assert "stale" not in transport
    assert manager.load(transport) == bound


def test_dump_anonymous_has_no_user_key(manager):
    transport: dict = {}
    manager.dump(manager.new(), transport)
    assert "user" not in transport


@pytest.mark.parametrize(
    "data",
    [
        None,
        {},
        {"sid": 123},
        {"sid": "abc", "user": {"id": "not-a-number", "email": "a@x.com", "user_type": "standard"}},
        {"sid": "abc", "user": {"email": "a@x.com"}},
    ],
)
def test_load_bad_transport_data_is_anonymous(manager, data):
    assert state_of(manager.load(data)) is SessionState.ANONYMOUS
