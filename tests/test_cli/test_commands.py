"""Tests for CLI commands — CommandProcessor is mocked, CliRunner used throughout."""

import json
from pathlib import Path
from unittest.mock import AsyncMock, MagicMock, patch

import pytest
from click.testing import CliRunner, Result

from src.agent.results import CommandResult, ErrorKind
from src.mail.types import CommandContext, Draft, EmailRecord
from src.storage.db import EmailDatabase

_ENV = {
    "MAIL_WORKSPACE_ID": "ws_1",
    "MAIL_USER_ID": "user_1",
    "USER_GOOGLE_EMAIL": "me@example.com",
}


# ── Helpers ─────────────────────────────────────────────────────────────────────


@pytest.fixture
def processor() -> MagicMock:
    p = MagicMock()
    p.process_command = AsyncMock()
    return p


@pytest.fixture
def env(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> dict[str, str]:
    monkeypatch.setenv("MAIL_COMMAND_DB_PATH", str(tmp_path / "cli.db"))
    return dict(_ENV)


def _invoke(processor: MagicMock, env: dict[str, str], *args: str) -> Result:
    from src.cli.main import cli

    runner = CliRunner()
    with patch("src.cli.main.build_processor", return_value=processor):
        return runner.invoke(cli, list(args), env=env, catch_exceptions=False)


# ── mail-command run ──────────────────────────────────────────────────────────────


class TestRunCommand:
    def test_passes_text_and_context(
        self, processor: MagicMock, env: dict[str, str]
    ) -> None:
        processor.process_command.return_value = CommandResult(type="info", message="Done.")
        result = _invoke(processor, env, "run", "archive emails from yesterday")

        assert result.exit_code == 0
        assert "Done." in result.output
        text, context = processor.process_command.call_args.args
        assert text == "archive emails from yesterday"
        assert context == CommandContext("ws_1", "user_1", "me@example.com")

    def test_options_override_env(self, processor: MagicMock, env: dict[str, str]) -> None:
        processor.process_command.return_value = CommandResult(type="info", message="ok")
        _invoke(processor, env, "run", "hi", "--workspace", "ws_9")
        assert processor.process_command.call_args.args[1].workspace_id == "ws_9"

    def test_missing_context_is_usage_error(
        self, processor: MagicMock, tmp_path: Path, monkeypatch: pytest.MonkeyPatch
    ) -> None:
        monkeypatch.setenv("MAIL_COMMAND_DB_PATH", str(tmp_path / "cli.db"))
        for key in _ENV:
            monkeypatch.delenv(key, raising=False)
        result = _invoke(processor, {}, "run", "hi")
        assert result.exit_code == 2
        processor.process_command.assert_not_called()

    def test_renders_email_table(self, processor: MagicMock, env: dict[str, str]) -> None:
        email = EmailRecord(id="e1", workspace_id="ws_1", sender="alice@example.com",
                            subject="Budget review")
        processor.process_command.return_value = CommandResult(
            type="search_results", message="Found 1 email.", emails=[email], email_count=1
        )
        result = _invoke(processor, env, "run", "show budget emails")
        assert "Budget review" in result.output
        assert "alice@example.com" in result.output

    def test_renders_draft_panel(self, processor: MagicMock, env: dict[str, str]) -> None:
        draft = Draft(to=["john@example.com"], subject="Q3 budget", body="Hi John")
        processor.process_command.return_value = CommandResult.draft_result(
            "draft_email", "I've drafted an email.", draft
        )
        result = _invoke(processor, env, "run", "email john")
        assert "Q3 budget" in result.output
        assert "Hi John" in result.output

    def test_json_output(self, processor: MagicMock, env: dict[str, str]) -> None:
        processor.process_command.return_value = CommandResult(
            type="summary", message="Summary:", summary="All quiet.", email_count=2
        )
        result = _invoke(processor, env, "run", "summarize", "--json")
        data = json.loads(result.output)
        assert data == {
            "type": "summary", "message": "Summary:", "summary": "All quiet.", "emailCount": 2,
        }

    def test_error_exits_nonzero(self, processor: MagicMock, env: dict[str, str]) -> None:
        processor.process_command.return_value = CommandResult.failure(
            ErrorKind.PROVIDER, "Gmail account not connected."
        )
        result = _invoke(processor, env, "run", "archive all")
        assert result.exit_code == 1
        assert "Gmail account not connected." in result.output


# ── mail-command send ─────────────────────────────────────────────────────────────


class TestSendCommand:
    def test_sends_confirmation(self, processor: MagicMock, env: dict[str, str]) -> None:
        processor.process_command.return_value = CommandResult(
            type="success", message="Email sent successfully to john@example.com."
        )
        draft = {"to": ["john@example.com"], "subject": "Q3", "body": "Hi"}
        result = _invoke(processor, env, "send", json.dumps(draft))

        assert result.exit_code == 0
        confirmation = processor.process_command.call_args.args[2]
        assert confirmation == {"action": "send", "draft": draft}

    def test_accepts_full_run_response(
        self, processor: MagicMock, env: dict[str, str]
    ) -> None:
        processor.process_command.return_value = CommandResult(type="success", message="sent")
        response = {"type": "draft_email", "draft": {"to": ["a@example.com"]}}
        _invoke(processor, env, "send", json.dumps(response))
        assert processor.process_command.call_args.args[2]["draft"] == {"to": ["a@example.com"]}

    def test_bad_json(self, processor: MagicMock, env: dict[str, str]) -> None:
        result = _invoke(processor, env, "send", "{not json")
        assert result.exit_code == 2
        processor.process_command.assert_not_called()


# ── mail-command connect ──────────────────────────────────────────────────────────


class TestConnectCommand:
    def test_stores_tokens(
        self, processor: MagicMock, env: dict[str, str], tmp_path: Path
    ) -> None:
        token_file = tmp_path / "token.json"
        token_file.write_text(json.dumps({"token": "ya29.abc", "refresh_token": "1//r"}))

        result = _invoke(processor, env, "connect", str(token_file))

        assert result.exit_code == 0
        db = EmailDatabase(db_path=tmp_path / "cli.db")
        try:
            assert db.get_credentials("ws_1", "user_1") == {
                "token": "ya29.abc", "refresh_token": "1//r",
            }
        finally:
            db.close()

    def test_rejects_file_without_tokens(
        self, processor: MagicMock, env: dict[str, str], tmp_path: Path
    ) -> None:
        token_file = tmp_path / "token.json"
        token_file.write_text(json.dumps({"scopes": []}))
        result = _invoke(processor, env, "connect", str(token_file))
        assert result.exit_code == 2
