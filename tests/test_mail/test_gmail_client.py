"""Tests for GmailAdapter — the googleapiclient service is a MagicMock."""

import asyncio
import base64
from email import message_from_bytes, policy
from typing import Any
from unittest.mock import MagicMock

import pytest
from google.auth.exceptions import RefreshError
from googleapiclient.errors import HttpError

from src.agent.results import PROVIDER_SEND_MESSAGE, ProviderError
from src.mail.gmail_client import (
    GOOGLE_TOKEN_URI,
    NOT_CONNECTED_MESSAGE,
    SCOPES,
    GmailAdapter,
    credentials_from_tokens,
)
from src.mail.types import COMMAND_SOURCE, CommandContext
from src.storage.db import EmailDatabase


# ── Helpers ────────────────────────────────────────────────────────────────────


def _request(result: Any = None, error: Exception | None = None) -> MagicMock:
    request = MagicMock()
    if error is not None:
        request.execute.side_effect = error
    else:
        request.execute.return_value = result
    return request


def _http_error(status: int = 403) -> HttpError:
    resp = MagicMock(status=status, reason="Forbidden")
    return HttpError(resp, b'{"error": {"message": "insufficient scopes"}}')


def _sent_message(service: MagicMock):
    body = service.users.return_value.messages.return_value.send.call_args.kwargs["body"]
    raw = base64.urlsafe_b64decode(body["raw"])
    return body, message_from_bytes(raw, policy=policy.default)


# ── Fixtures ───────────────────────────────────────────────────────────────────


@pytest.fixture
def service() -> MagicMock:
    svc = MagicMock()
    messages = svc.users.return_value.messages.return_value
    messages.send.return_value = _request(
        {"id": "sent_1", "threadId": "thread_9", "labelIds": ["SENT"]}
    )
    messages.modify.return_value = _request({})
    messages.trash.return_value = _request({})
    return svc


@pytest.fixture
def gmail(db: EmailDatabase, context: CommandContext, service: MagicMock) -> GmailAdapter:
    return GmailAdapter(db, db, context, MagicMock(), service_factory=lambda _: service)


# ── Sending ────────────────────────────────────────────────────────────────────


class TestSendEmail:
    async def test_sends_raw_mime(self, gmail: GmailAdapter, service: MagicMock) -> None:
        sent = await gmail.send_email(["bob@example.com"], "Hello", "Hi Bob", cc=["c@example.com"])

        assert sent.id == "sent_1"
        assert sent.thread_id == "thread_9"
        body, message = _sent_message(service)
        assert "threadId" not in body
        assert message["To"] == "bob@example.com"
        assert message["Cc"] == "c@example.com"
        assert message["Subject"] == "Hello"

    async def test_mirrors_into_index(
        self, gmail: GmailAdapter, db: EmailDatabase, context: CommandContext
    ) -> None:
        await gmail.send_email(["bob@example.com"], "Hello", "Hi Bob")

        records = db.scan_emails(context)
        assert len(records) == 1
        record = records[0]
        assert record.source == COMMAND_SOURCE
        assert record.sender == context.user_email
        assert record.is_read is True
        assert record.labels == ["SENT"]
        assert record.message_id == "sent_1"
        assert record.body.text == "Hi Bob"

    async def test_default_sent_label(
        self, gmail: GmailAdapter, service: MagicMock, db: EmailDatabase,
        context: CommandContext,
    ) -> None:
        service.users.return_value.messages.return_value.send.return_value = _request(
            {"id": "sent_2"}
        )
        await gmail.send_email(["bob@example.com"], "s", "b")
        assert db.scan_emails(context)[0].labels == ["SENT"]

    async def test_http_error_becomes_provider_error(
        self, gmail: GmailAdapter, service: MagicMock, db: EmailDatabase,
        context: CommandContext,
    ) -> None:
        service.users.return_value.messages.return_value.send.return_value = _request(
            error=_http_error()
        )
        with pytest.raises(ProviderError) as excinfo:
            await gmail.send_email(["bob@example.com"], "s", "b")
        assert excinfo.value.message == PROVIDER_SEND_MESSAGE
        assert "insufficient" not in excinfo.value.message
        assert db.scan_emails(context) == []

    async def test_refresh_error_asks_to_reconnect(
        self, gmail: GmailAdapter, service: MagicMock
    ) -> None:
        service.users.return_value.messages.return_value.send.return_value = _request(
            error=RefreshError("invalid_grant")
        )
        with pytest.raises(ProviderError) as excinfo:
            await gmail.send_email(["bob@example.com"], "s", "b")
        assert excinfo.value.message == NOT_CONNECTED_MESSAGE

    async def test_timeout_becomes_provider_error(
        self, db: EmailDatabase, context: CommandContext, service: MagicMock,
        monkeypatch: pytest.MonkeyPatch,
    ) -> None:
        async def _never(*_: Any, **__: Any) -> None:
            await asyncio.sleep(10)

        monkeypatch.setattr("src.mail.gmail_client.asyncio.to_thread", _never)
        gmail = GmailAdapter(
            db, db, context, MagicMock(), timeout=0.01, service_factory=lambda _: service
        )
        with pytest.raises(ProviderError):
            await gmail.send_email(["bob@example.com"], "s", "b")


class TestReplyAndForward:
    async def test_reply_threads_the_message(
        self, gmail: GmailAdapter, service: MagicMock
    ) -> None:
        await gmail.reply_to_email("thread_1", "<orig@mail>", ["alice@example.com"], "Re: Hi", "ok")

        body, message = _sent_message(service)
        assert body["threadId"] == "thread_1"
        assert message["In-Reply-To"] == "<orig@mail>"
        assert message["References"] == "<orig@mail>"

    async def test_forward_includes_original(
        self, gmail: GmailAdapter, service: MagicMock
    ) -> None:
        original_body = base64.urlsafe_b64encode(b"Numbers attached.").decode()
        service.users.return_value.messages.return_value.get.return_value = _request({
            "payload": {
                "headers": [
                    {"name": "From", "value": "alice@example.com"},
                    {"name": "Subject", "value": "Budget"},
                ],
                "body": {"data": original_body},
            }
        })

        await gmail.forward_email("orig_1", ["bob@example.com"], "Budget", "FYI")

        _, message = _sent_message(service)
        assert message["Subject"] == "Fwd: Budget"
        text = message.get_body(preferencelist=("plain",)).get_content()
        assert text.startswith("FYI")
        assert "Forwarded message" in text
        assert "From: alice@example.com" in text
        assert "Numbers attached." in text


class TestDrafts:
    async def test_create_draft_returns_id(
        self, gmail: GmailAdapter, service: MagicMock
    ) -> None:
        service.users.return_value.drafts.return_value.create.return_value = _request(
            {"id": "draft_1"}
        )
        assert await gmail.create_draft(["bob@example.com"], "s", "b") == "draft_1"
        service.users.return_value.messages.return_value.send.assert_not_called()


# ── Mailbox changes ────────────────────────────────────────────────────────────


class TestLabels:
    @pytest.mark.parametrize(
        ("call", "expected"),
        [
            (lambda g: g.archive_email("m1"), {"removeLabelIds": ["INBOX"]}),
            (lambda g: g.mark_as_read("m1"), {"removeLabelIds": ["UNREAD"]}),
            (lambda g: g.mark_as_read("m1", read=False), {"addLabelIds": ["UNREAD"]}),
            (lambda g: g.star_email("m1"), {"addLabelIds": ["STARRED"]}),
            (lambda g: g.star_email("m1", starred=False), {"removeLabelIds": ["STARRED"]}),
        ],
    )
    async def test_modify_bodies(
        self, gmail: GmailAdapter, service: MagicMock, call: Any, expected: dict
    ) -> None:
        await call(gmail)
        service.users.return_value.messages.return_value.modify.assert_called_once_with(
            userId="me", id="m1", body=expected
        )

    async def test_delete_uses_trash(self, gmail: GmailAdapter, service: MagicMock) -> None:
        await gmail.delete_email("m1")
        service.users.return_value.messages.return_value.trash.assert_called_once_with(
            userId="me", id="m1"
        )


# ── Credentials ────────────────────────────────────────────────────────────────


class TestCredentialResolution:
    async def test_missing_account_raises_not_connected(
        self, db: EmailDatabase, context: CommandContext, service: MagicMock
    ) -> None:
        gmail = GmailAdapter(db, db, context, service_factory=lambda _: service)
        with pytest.raises(ProviderError) as excinfo:
            await gmail.archive_email("m1")
        assert excinfo.value.message == NOT_CONNECTED_MESSAGE

    async def test_loads_stored_tokens_once(
        self, db: EmailDatabase, context: CommandContext, service: MagicMock
    ) -> None:
        db.save_credentials(context.workspace_id, context.user_id, {
            "token": "ya29.abc", "refresh_token": "1//r",
            "client_id": "cid", "client_secret": "secret",
        })
        factory = MagicMock(return_value=service)
        gmail = GmailAdapter(db, db, context, service_factory=factory)

        await gmail.archive_email("m1")
        await gmail.mark_as_read("m1")

        factory.assert_called_once()
        credentials = factory.call_args.args[0]
        assert credentials.token == "ya29.abc"
        assert credentials.refresh_token == "1//r"

    def test_credentials_from_tokens_defaults(self) -> None:
        credentials = credentials_from_tokens(
            {"token": "t", "expiry": "2026-03-04T16:00:00Z"}, client_id="env_id"
        )
        assert credentials.token_uri == GOOGLE_TOKEN_URI
        assert credentials.client_id == "env_id"
        assert list(credentials.scopes) == SCOPES
        assert credentials.expiry.tzinfo is None
        assert credentials.expiry.hour == 16
