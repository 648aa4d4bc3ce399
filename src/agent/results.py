"""Structured command responses and the error taxonomy behind them."""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Any

from src.mail.types import Draft, EmailRecord


class ErrorKind(str, Enum):
    PARSE = "parse"
    NOT_FOUND = "not_found"
    PROVIDER = "provider"
    VALIDATION = "validation"
    INTERNAL = "internal"


HELP_MESSAGE = (
    "I couldn't understand that command. Try something like "
    "'Email john@example.com about the meeting', "
    "'Show me unread emails from this week' or "
    "'Archive emails from yesterday'."
)

PROVIDER_SEND_MESSAGE = (
    "Failed to send email. Please make sure your Gmail account is connected in settings."
)


class CommandError(Exception):
    """Base for failures that map onto a user-facing error result."""

    kind = ErrorKind.INTERNAL

    def __init__(self, message: str) -> None:
        super().__init__(message)
        self.message = message


class ParseError(CommandError):
    """The completion service failed or returned nothing usable.

    Always shown to the user as the generic help text unless a caller
    supplies something more specific.
    """

    kind = ErrorKind.PARSE

    def __init__(self, message: str = HELP_MESSAGE) -> None:
        super().__init__(message)


class NotFoundError(CommandError):
    """A referenced email is missing or outside the caller's workspace."""

    kind = ErrorKind.NOT_FOUND


class ProviderError(CommandError):
    """Credentials are missing/expired or the Gmail call failed.

    ``message`` is always safe to show; provider detail only goes to the log.
    """

    kind = ErrorKind.PROVIDER


class ValidationError(CommandError):
    """Input that cannot be acted on, e.g. an unrecognised bulk verb."""

    kind = ErrorKind.VALIDATION


def plural(count: int, noun: str = "email", plural_form: str | None = None) -> str:
    """``1 email`` / ``3 emails``."""
    return f"{count} {noun}" if count == 1 else f"{count} {plural_form or noun + 's'}"


#: Buttons offered alongside a draft.
DRAFT_ACTIONS: list[dict[str, Any]] = [
    {"type": "send", "label": "Send Email", "primary": True},
    {"type": "edit", "label": "Edit Draft"},
    {"type": "cancel", "label": "Cancel"},
]


@dataclass
class CommandResult:
    """What process_command hands back for every request, success or failure."""

    type: str
    message: str
    emails: list[EmailRecord] | None = None
    draft: Draft | None = None
    requires_confirmation: bool = False
    data: Any = None
    summary: str | None = None
    analysis: str | None = None
    email_count: int | None = None
    error_kind: ErrorKind | None = None

    @classmethod
    def failure(cls, kind: ErrorKind, message: str) -> CommandResult:
        return cls(type="error", message=message, error_kind=kind)

    @classmethod
    def from_error(cls, exc: CommandError) -> CommandResult:
        return cls.failure(exc.kind, exc.message)

    @classmethod
    def draft_result(cls, type: str, message: str, draft: Draft) -> CommandResult:
        return cls(type=type, message=message, draft=draft, requires_confirmation=True)

    @property
    def ok(self) -> bool:
        return self.error_kind is None

    def to_dict(self) -> dict[str, Any]:
        """JSON-ready camelCase response."""
        out: dict[str, Any] = {"type": self.type, "message": self.message}
        if self.emails is not None:
            out["emails"] = [{"id": e.id, **e.data_dict()} for e in self.emails]
        if self.draft is not None:
            out["draft"] = self.draft.to_dict()
            out["actions"] = [dict(a) for a in DRAFT_ACTIONS]
        if self.requires_confirmation:
            out["requiresConfirmation"] = True
        if self.data is not None:
            out["data"] = self.data
        if self.summary is not None:
            out["summary"] = self.summary
        if self.analysis is not None:
            out["analysis"] = self.analysis
        if self.email_count is not None:
            out["emailCount"] = self.email_count
        if self.error_kind is not None:
            out["errorKind"] = self.error_kind.value
        return out
