"""Types for the command pipeline: actions, parameters, parsed commands."""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Any

from src.mail.types import address_list


class ActionKind(str, Enum):
    """Every action the intent parser may return.

    String values are exactly the enum sent in the parse tool schema so they
    can be round-tripped through JSON without a separate mapping step.
    """

    SEND_EMAIL = "SEND_EMAIL"
    COMPOSE = "COMPOSE"
    SEARCH_EMAILS = "SEARCH_EMAILS"
    SHOW_EMAILS = "SHOW_EMAILS"
    SUMMARIZE = "SUMMARIZE"
    DRAFT_REPLY = "DRAFT_REPLY"
    FORWARD = "FORWARD"
    BULK_ACTION = "BULK_ACTION"
    QUICK_ACTION = "QUICK_ACTION"
    EXTRACT_INFO = "EXTRACT_INFO"
    ANALYZE = "ANALYZE"
    UNKNOWN = "UNKNOWN"

    @classmethod
    def coerce(cls, value: object) -> ActionKind:
        """Return the matching member, or UNKNOWN for anything else."""
        try:
            return cls(str(value).strip().upper())
        except ValueError:
            return cls.UNKNOWN

    def canonical(self) -> ActionKind:
        return ACTION_ALIASES.get(self, self)


#: Alias → canonical action. Both spellings must reach the same handler.
ACTION_ALIASES: dict[ActionKind, ActionKind] = {
    ActionKind.COMPOSE: ActionKind.SEND_EMAIL,
    ActionKind.SHOW_EMAILS: ActionKind.SEARCH_EMAILS,
    ActionKind.QUICK_ACTION: ActionKind.BULK_ACTION,
}


class ExtractionType(str, Enum):
    ACTION_ITEMS = "action_items"
    EMAIL_ADDRESSES = "email_addresses"
    PHONE_NUMBERS = "phone_numbers"
    MEETING_REQUESTS = "meeting_requests"


class AnalysisType(str, Enum):
    NEEDS_RESPONSE = "needs_response"
    URGENT = "urgent"
    SENTIMENT = "sentiment"
    COMMITMENTS = "commitments"


def _optional_bool(value: object) -> bool | None:
    if value is None:
        return None
    if isinstance(value, str):
        lowered = value.strip().lower()
        if lowered in ("true", "yes", "1"):
            return True
        if lowered in ("false", "no", "0"):
            return False
        return None
    return bool(value)


def _optional_str(value: object) -> str | None:
    if value is None:
        return None
    text = str(value).strip()
    return text or None


@dataclass
class CommandParameters:
    """The loosely-typed parameter bag produced by the intent parser.

    Every field is optional; handlers read only the ones they need.
    """

    to: list[str] = field(default_factory=list)
    cc: list[str] = field(default_factory=list)
    bcc: list[str] = field(default_factory=list)
    subject: str | None = None
    body: str | None = None
    sender: str | None = None  # "from" in the tool schema
    search_query: str | None = None
    date_range: str | None = None
    is_read: bool | None = None
    has_attachments: bool | None = None
    is_important: bool | None = None
    is_starred: bool | None = None
    needs_response: bool | None = None
    bulk_action: str | None = None
    email_id: str | None = None
    extraction_type: str | None = None
    analysis_type: str | None = None
    reply_intent: str | None = None

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> CommandParameters:
        """Convert the raw tool-call ``parameters`` dict, tolerating bad types."""
        return cls(
            to=address_list(data.get("to")),
            cc=address_list(data.get("cc")),
            bcc=address_list(data.get("bcc")),
            subject=_optional_str(data.get("subject")),
            body=_optional_str(data.get("body")),
            sender=_optional_str(data.get("from")),
            search_query=_optional_str(data.get("searchQuery")),
            date_range=_optional_str(data.get("dateRange")),
            is_read=_optional_bool(data.get("isRead")),
            has_attachments=_optional_bool(data.get("hasAttachments")),
            is_important=_optional_bool(data.get("isImportant")),
            is_starred=_optional_bool(data.get("isStarred")),
            needs_response=_optional_bool(data.get("needsResponse")),
            bulk_action=_optional_str(data.get("bulkAction")),
            email_id=_optional_str(data.get("emailId")),
            extraction_type=_optional_str(data.get("extractionType")),
            analysis_type=_optional_str(data.get("analysisType")),
            reply_intent=_optional_str(data.get("replyIntent")),
        )


@dataclass(frozen=True)
class ParsedCommand:
    """The canonical intent for one request. Never persisted."""

    action: ActionKind
    parameters: CommandParameters
    original_command: str
