"""Unit tests for main.py -- operator CLI commands.

The AuthService is replaced with a MagicMock; these tests cover argument
handling, password prompting and exit codes, not the service itself.
"""

from unittest.mock import MagicMock, patch

import pytest

import main
from auth.errors import ConflictError
from auth.models import User


@pytest.fixture
def fake_service():
    svc = MagicMock()
    with patch("main.create_auth_service", return_value=svc):
        yield svc


def test_create_admin_success(fake_service, capsys):
    fake_service.create_admin.return_value = User(email="root@x.com", hashed_password="h", id=1)
    with patch("main.getpass.getpass", side_effect=["p1", "p1"]):
        assert main.main(["create-admin", "root@x.com", "--name", "Root"]) == 0

    registration = fake_service.create_admin.call_args.args[0]
    assert (registration.email, registration.password, registration.name) == ("root@x.com", "p1", "Root")
    fake_service.close.assert_called_once()
    assert "root@x.com" in capsys.readouterr().out


def test_create_admin_password_mismatch(fake_service, capsys):
    with patch("main.getpass.getpass", side_effect=["p1", "p2"]):
        assert main.main(["create-admin", "root@x.com"]) == 1
    fake_service.create_admin.assert_not_called()
    assert "do not match" in capsys.readouterr().out


def test_create_admin_reports_service_error(fake_service, capsys):
    fake_service.create_admin.side_effect = ConflictError("An account with that email already exists.")
    with patch("main.getpass.getpass", side_effect=["p1", "p1"]):
        assert main.main(["create-admin", "root@x.com"]) == 1
    fake_service.close.assert_called_once()
    assert "already exists" in capsys.readouterr().out


def test_purge_codes(fake_service, capsys):
    fake_service.purge_expired_codes.return_value = 3
    assert main.main(["purge-codes"]) == 0
    assert "3 expired" in capsys.readouterr().out


def test_command_is_required():
    with pytest.raises(SystemExit):
        main.main([])
