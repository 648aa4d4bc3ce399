"""Tests for command types: actions, aliases, parameter coercion, drafts, records."""

from datetime import datetime, timezone

import pytest

from src.mail.types import Draft, EmailRecord, address_list, parse_timestamp
from src.processing.types import ACTION_ALIASES, ActionKind, CommandParameters


class TestActionKind:
    def test_is_str_enum(self) -> None:
        assert isinstance(ActionKind.SEND_EMAIL, str)

    @pytest.mark.parametrize(
        ("raw", "expected"),
        [
            ("SEND_EMAIL", ActionKind.SEND_EMAIL),
            (" bulk_action ", ActionKind.BULK_ACTION),
            ("DELETE_EVERYTHING", ActionKind.UNKNOWN),
            (None, ActionKind.UNKNOWN),
            (42, ActionKind.UNKNOWN),
        ],
    )
    def test_coerce(self, raw: object, expected: ActionKind) -> None:
        assert ActionKind.coerce(raw) is expected

    def test_aliases_are_canonical(self) -> None:
        assert ActionKind.COMPOSE.canonical() is ActionKind.SEND_EMAIL
        assert ActionKind.SHOW_EMAILS.canonical() is ActionKind.SEARCH_EMAILS
        assert ActionKind.QUICK_ACTION.canonical() is ActionKind.BULK_ACTION
        assert ActionKind.FORWARD.canonical() is ActionKind.FORWARD

    def test_alias_targets_are_not_aliases(self) -> None:
        assert not set(ACTION_ALIASES.values()) & set(ACTION_ALIASES)


class TestCommandParameters:
    def test_camel_case_keys(self) -> None:
        params = CommandParameters.from_dict({
            "from": "john",
            "searchQuery": "budget",
            "dateRange": "last week",
            "isRead": False,
            "bulkAction": "archive",
            "emailId": "e1",
            "replyIntent": "say yes",
        })
        assert params.sender == "john"
        assert params.search_query == "budget"
        assert params.date_range == "last week"
        assert params.is_read is False
        assert params.bulk_action == "archive"
        assert params.email_id == "e1"
        assert params.reply_intent == "say yes"

    def test_single_recipient_becomes_list(self) -> None:
        assert CommandParameters.from_dict({"to": "john@example.com"}).to == ["john@example.com"]

    def test_tolerates_bad_types(self) -> None:
        params = CommandParameters.from_dict({"to": 5, "isRead": "maybe", "subject": "  "})
        assert params.to == []
        assert params.is_read is None
        assert params.subject is None

    def test_string_booleans(self) -> None:
        assert CommandParameters.from_dict({"hasAttachments": "true"}).has_attachments is True


class TestAddressList:
    def test_comma_separated(self) -> None:
        assert address_list("a@x.com, b@x.com,") == ["a@x.com", "b@x.com"]

    def test_empty(self) -> None:
        assert address_list(None) == []
        assert address_list("") == []


class TestDraft:
    def test_reply_needs_both_ids(self) -> None:
        assert Draft(in_reply_to="<m>", thread_id="t").is_reply
        assert not Draft(in_reply_to="<m>").is_reply

    def test_dict_round_trip_keeps_reply_fields(self) -> None:
        draft = Draft(to=["a@x.com"], subject="Re: s", body="b", in_reply_to="<m>", thread_id="t")
        data = draft.to_dict()
        assert data["isDraft"] is True
        assert data["inReplyTo"] == "<m>"
        assert Draft.from_dict(data) == draft


class TestEmailRecord:
    def test_wire_shape(self) -> None:
        record = EmailRecord(
            id="e1", workspace_id="ws", sender="a@x.com", subject="Hi",
            created_at=datetime(2026, 3, 4, tzinfo=timezone.utc),
        )
        data = record.to_dict()
        assert data["type"] == "email"
        assert data["data"]["from"] == "a@x.com"
        assert data["metadata"] == {"source": "sync", "createdBy": ""}
        assert data["createdAt"] == "2026-03-04T00:00:00+00:00"
        assert EmailRecord.from_dict(data) == record

    def test_labels_are_a_set(self) -> None:
        record = EmailRecord(id="e1", workspace_id="ws", sender="a@x.com", labels=["INBOX"])
        record.add_label("INBOX")
        record.add_label("ARCHIVED")
        record.remove_label("INBOX")
        assert record.labels == ["ARCHIVED"]

    def test_parse_timestamp_assumes_utc(self) -> None:
        assert parse_timestamp("2026-03-04T09:00:00").tzinfo == timezone.utc
        assert parse_timestamp("garbage") is None

    @pytest.mark.parametrize(
        ("sender", "expected"),
        [
            ("Me <Me@Example.com>", "me@example.com"),
            ("me@example.com", "me@example.com"),
            ('"Doe, Jane" <jane@example.com>', "jane@example.com"),
        ],
    )
    def test_sender_address_drops_display_name(self, sender: str, expected: str) -> None:
        record = EmailRecord(id="e1", workspace_id="ws", sender=sender)
        assert record.sender_address == expected
