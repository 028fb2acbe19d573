"""
Unit tests for the operations CLI
"""

import pytest
from argparse import Namespace

import database_commands
from auth import decode_token
from services.caller import CallerRole
from conftest import TEST_SECRET


def token_args(**overrides):
    args = {'user_id': 'driver-1', 'role': 'driver', 'hours': 1}
    args.update(overrides)
    return Namespace(**args)


@pytest.mark.unit
class TestIssueToken:

    def test_refuses_without_shared_secret(self, monkeypatch, capsys):
        monkeypatch.delenv('JWT_SECRET_KEY', raising=False)
        monkeypatch.delenv('SESSION_SECRET', raising=False)
        monkeypatch.setattr(database_commands, 'setup_app', lambda: pytest.fail('app should not be built'))

        with pytest.raises(SystemExit) as exc_info:
            database_commands.cmd_issue_token(token_args())

        assert exc_info.value.code == 1
        assert 'must be set to issue tokens' in capsys.readouterr().out

    def test_signs_with_configured_secret(self, app, monkeypatch, capsys):
        monkeypatch.setattr(database_commands, 'setup_app', lambda: app)

        database_commands.cmd_issue_token(token_args(role='FleetManager'))

        caller = decode_token(capsys.readouterr().out.strip(), TEST_SECRET)
        assert caller.user_id == 'driver-1'
        assert caller.role == CallerRole.COMPANY

    def test_unknown_role(self, capsys):
        with pytest.raises(SystemExit):
            database_commands.cmd_issue_token(token_args(role='dispatcher'))
        assert 'Unknown role' in capsys.readouterr().out
