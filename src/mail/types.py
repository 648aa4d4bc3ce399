"""Data types shared by the index, the Gmail adapter, and the command handlers."""

from __future__ import annotations

import uuid
from dataclasses import dataclass, field
from datetime import datetime, timezone
from email.utils import parseaddr
from typing import Any

#: metadata.source stamped on records written after a send from a command.
COMMAND_SOURCE = "command_processor"


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def parse_timestamp(value: object) -> datetime | None:
    """Parse an ISO-8601 string into an aware datetime (naive values are UTC)."""
    if isinstance(value, datetime):
        parsed = value
    elif isinstance(value, str) and value:
        try:
            parsed = datetime.fromisoformat(value.replace("Z", "+00:00"))
        except ValueError:
            return None
    else:
        return None
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


def bare_address(value: str) -> str:
    """``"Alice <Alice@Example.com>"`` → ``"alice@example.com"``."""
    return (parseaddr(value)[1] or value).strip().lower()


def _iso(value: datetime | None) -> str | None:
    return value.isoformat() if value else None


@dataclass(frozen=True)
class CommandContext:
    """Who is issuing a command; scopes every index read and provider call."""

    workspace_id: str
    user_id: str
    user_email: str


@dataclass
class EmailBody:
    text: str = ""
    html: str = ""
    snippet: str = ""


@dataclass
class EmailRecord:
    """A stored email, owned by one workspace and one user within it.

    ``to_dict()`` / ``from_dict()`` use the camelCase wire shape::

        {id, workspaceId, type: "email",
         data: {messageId, threadId, from, to, cc, bcc, subject,
                body: {text, html, snippet}, sentAt, isRead, isStarred,
                isImportant, isTrash, attachments, labels},
         metadata: {source, createdBy}, createdAt}
    """

    id: str
    workspace_id: str
    sender: str
    subject: str = ""
    to: list[str] = field(default_factory=list)
    cc: list[str] = field(default_factory=list)
    bcc: list[str] = field(default_factory=list)
    body: EmailBody = field(default_factory=EmailBody)
    message_id: str | None = None
    thread_id: str | None = None
    sent_at: datetime | None = None
    is_read: bool = False
    is_starred: bool = False
    is_important: bool = False
    is_trash: bool = False
    attachments: list[dict[str, Any]] = field(default_factory=list)
    labels: list[str] = field(default_factory=list)
    source: str = "sync"
    created_by: str = ""
    created_at: datetime = field(default_factory=utcnow)

    @classmethod
    def new(cls, workspace_id: str, sender: str, **kwargs: Any) -> EmailRecord:
        """Create a record with a fresh id."""
        return cls(id=uuid.uuid4().hex, workspace_id=workspace_id, sender=sender, **kwargs)

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "workspaceId": self.workspace_id,
            "type": "email",
            "data": self.data_dict(),
            "metadata": {"source": self.source, "createdBy": self.created_by},
            "createdAt": _iso(self.created_at.astimezone(timezone.utc)),
        }

    def data_dict(self) -> dict[str, Any]:
        return {
            "messageId": self.message_id,
            "threadId": self.thread_id,
            "from": self.sender,
            "to": list(self.to),
            "cc": list(self.cc),
            "bcc": list(self.bcc),
            "subject": self.subject,
            "body": {
                "text": self.body.text,
                "html": self.body.html,
                "snippet": self.body.snippet,
            },
            "sentAt": _iso(self.sent_at),
            "isRead": self.is_read,
            "isStarred": self.is_starred,
            "isImportant": self.is_important,
            "isTrash": self.is_trash,
            "attachments": list(self.attachments),
            "labels": list(self.labels),
        }

    @classmethod
    def from_dict(cls, raw: dict[str, Any]) -> EmailRecord:
        data = raw.get("data") or {}
        body = data.get("body") or {}
        metadata = raw.get("metadata") or {}
        return cls(
            id=str(raw["id"]),
            workspace_id=str(raw.get("workspaceId", "")),
            sender=str(data.get("from") or ""),
            subject=str(data.get("subject") or ""),
            to=[str(a) for a in data.get("to") or []],
            cc=[str(a) for a in data.get("cc") or []],
            bcc=[str(a) for a in data.get("bcc") or []],
            body=EmailBody(
                text=str(body.get("text") or ""),
                html=str(body.get("html") or ""),
                snippet=str(body.get("snippet") or ""),
            ),
            message_id=data.get("messageId"),
            thread_id=data.get("threadId"),
            sent_at=parse_timestamp(data.get("sentAt")),
            is_read=bool(data.get("isRead", False)),
            is_starred=bool(data.get("isStarred", False)),
            is_important=bool(data.get("isImportant", False)),
            is_trash=bool(data.get("isTrash", False)),
            attachments=list(data.get("attachments") or []),
            labels=[str(lbl) for lbl in data.get("labels") or []],
            source=str(metadata.get("source") or "sync"),
            created_by=str(metadata.get("createdBy") or ""),
            created_at=parse_timestamp(raw.get("createdAt")) or utcnow(),
        )

    def add_label(self, label: str) -> None:
        if label not in self.labels:
            self.labels.append(label)

    def remove_label(self, label: str) -> None:
        self.labels = [lbl for lbl in self.labels if lbl != label]

    @property
    def text(self) -> str:
        """Best available plain-text body."""
        return self.body.text or self.body.snippet

    @property
    def sender_address(self) -> str:
        return bare_address(self.sender)


@dataclass
class Draft:
    """An unsent message awaiting explicit confirmation.

    Never persisted: the caller echoes it back in ``{"action": "send",
    "draft": {...}}`` to have it sent.
    """

    to: list[str] = field(default_factory=list)
    subject: str = ""
    body: str = ""
    cc: list[str] = field(default_factory=list)
    bcc: list[str] = field(default_factory=list)
    in_reply_to: str | None = None
    thread_id: str | None = None
    original_email_id: str | None = None
    is_draft: bool = True

    @property
    def is_reply(self) -> bool:
        return bool(self.in_reply_to and self.thread_id)

    def to_dict(self) -> dict[str, Any]:
        out: dict[str, Any] = {
            "to": list(self.to),
            "cc": list(self.cc),
            "bcc": list(self.bcc),
            "subject": self.subject,
            "body": self.body,
            "isDraft": self.is_draft,
        }
        if self.in_reply_to:
            out["inReplyTo"] = self.in_reply_to
        if self.thread_id:
            out["threadId"] = self.thread_id
        if self.original_email_id:
            out["originalEmailId"] = self.original_email_id
        return out

    @classmethod
    def from_dict(cls, raw: dict[str, Any]) -> Draft:
        return cls(
            to=address_list(raw.get("to")),
            cc=address_list(raw.get("cc")),
            bcc=address_list(raw.get("bcc")),
            subject=str(raw.get("subject") or ""),
            body=str(raw.get("body") or ""),
            in_reply_to=raw.get("inReplyTo") or None,
            thread_id=raw.get("threadId") or None,
            original_email_id=raw.get("originalEmailId") or None,
        )


def address_list(value: object) -> list[str]:
    """Accept a single address, a comma-separated string, or a list."""
    if not value:
        return []
    if isinstance(value, str):
        return [a.strip() for a in value.split(",") if a.strip()]
    if isinstance(value, (list, tuple)):
        return [str(a).strip() for a in value if str(a).strip()]
    return []
