"""Gmail adapter — OAuth credential resolution, MIME sends, and label changes."""

from __future__ import annotations

import asyncio
import logging
import os
from collections.abc import Callable, Sequence
from dataclasses import dataclass, field
from datetime import timezone
from typing import Any, Protocol

from google.auth.exceptions import GoogleAuthError
from google.oauth2.credentials import Credentials
from googleapiclient.discovery import build
from googleapiclient.errors import HttpError

from src.agent.results import PROVIDER_SEND_MESSAGE, ProviderError
from src.mail.mime import FORWARD_BANNER, build_raw_message, format_original_content, text_to_html
from src.mail.types import (
    COMMAND_SOURCE,
    CommandContext,
    EmailBody,
    EmailRecord,
    parse_timestamp,
    utcnow,
)
from src.storage.query import EmailIndex

logger = logging.getLogger(__name__)

SCOPES = [
    "https://www.googleapis.com/auth/gmail.readonly",
    "https://www.googleapis.com/auth/gmail.send",
    "https://www.googleapis.com/auth/gmail.modify",
]
GOOGLE_TOKEN_URI = "https://oauth2.googleapis.com/token"

# Gmail system label IDs
_INBOX = "INBOX"
_UNREAD = "UNREAD"
_STARRED = "STARRED"

_DEFAULT_TIMEOUT_SECONDS = 30.0

NOT_CONNECTED_MESSAGE = (
    "Gmail account not connected. Please go to Mail > Settings and connect your Gmail account."
)
UPDATE_FAILED_MESSAGE = (
    "Couldn't update the email in Gmail. Please reconnect your Gmail account in settings."
)


class CredentialStore(Protocol):
    def get_credentials(self, workspace_id: str, user_id: str) -> dict[str, Any] | None: ...


class MailProvider(Protocol):
    """The mailbox operations command handlers need from a provider."""

    async def send_email(
        self,
        to: Sequence[str],
        subject: str,
        body: str,
        *,
        cc: Sequence[str] = ...,
        bcc: Sequence[str] = ...,
    ) -> SentMessage: ...

    async def reply_to_email(
        self,
        thread_id: str,
        message_id: str,
        to: Sequence[str],
        subject: str,
        body: str,
        *,
        cc: Sequence[str] = ...,
        bcc: Sequence[str] = ...,
    ) -> SentMessage: ...

    async def delete_email(self, message_id: str) -> None: ...

    async def mark_as_read(self, message_id: str, read: bool = ...) -> None: ...

    async def star_email(self, message_id: str, starred: bool = ...) -> None: ...

    async def archive_email(self, message_id: str) -> None: ...


@dataclass(frozen=True)
class SentMessage:
    """Gmail's answer to a send: the new message and thread ids."""

    id: str
    thread_id: str | None = None
    label_ids: list[str] = field(default_factory=list)


def _build_service(credentials: Credentials) -> Any:
    return build("gmail", "v1", credentials=credentials, cache_discovery=False)


class GmailAdapter:
    """Async wrapper around the Gmail v1 API for one user in one workspace.

    Credentials are resolved lazily from the credential store, and only when
    none were passed in. The built service is kept for the lifetime of the
    adapter, so create one adapter per request.

    Every successful send is mirrored into the email index tagged
    ``source="command_processor"`` so that searches see it straight away.

    Usage::

        gmail = GmailAdapter(db, db, context)
        sent = await gmail.send_email(["bob@example.com"], "Hello", "Hi Bob")
    """

    def __init__(
        self,
        index: EmailIndex,
        credential_store: CredentialStore,
        context: CommandContext,
        credentials: Credentials | None = None,
        *,
        client_id: str | None = None,
        client_secret: str | None = None,
        timeout: float = _DEFAULT_TIMEOUT_SECONDS,
        service_factory: Callable[[Credentials], Any] = _build_service,
    ) -> None:
        self._index = index
        self._credential_store = credential_store
        self._context = context
        self._credentials = credentials
        self._client_id = client_id or os.environ.get("GOOGLE_OAUTH_CLIENT_ID", "")
        self._client_secret = client_secret or os.environ.get("GOOGLE_OAUTH_CLIENT_SECRET", "")
        self._timeout = timeout
        self._service_factory = service_factory
        self._service: Any = None

    # ── Sending ────────────────────────────────────────────────────────────────

    async def send_email(
        self,
        to: Sequence[str],
        subject: str,
        body: str,
        *,
        cc: Sequence[str] = (),
        bcc: Sequence[str] = (),
        body_html: str | None = None,
        reply_to: str | None = None,
    ) -> SentMessage:
        """Send a new message and mirror it into the index."""
        raw = build_raw_message(
            to=to, cc=cc, bcc=bcc, subject=subject, body=body,
            body_html=body_html, reply_to=reply_to,
        )
        sent = await self._send({"raw": raw})
        logger.info("Sent email to %s: %r", ", ".join(to), subject)
        self._mirror_sent(sent, to=to, cc=cc, bcc=bcc, subject=subject, body=body)
        return sent

    async def reply_to_email(
        self,
        thread_id: str,
        message_id: str,
        to: Sequence[str],
        subject: str,
        body: str,
        *,
        cc: Sequence[str] = (),
        bcc: Sequence[str] = (),
    ) -> SentMessage:
        """Send a reply threaded under ``thread_id`` (In-Reply-To/References set)."""
        raw = build_raw_message(
            to=to, cc=cc, bcc=bcc, subject=subject, body=body,
            in_reply_to=message_id, references=message_id,
        )
        sent = await self._send({"raw": raw, "threadId": thread_id})
        logger.info("Sent reply in thread %s to %s", thread_id, ", ".join(to))
        self._mirror_sent(sent, to=to, cc=cc, bcc=bcc, subject=subject, body=body)
        return sent

    async def forward_email(
        self,
        original_message_id: str,
        to: Sequence[str],
        subject: str,
        body: str = "",
        *,
        cc: Sequence[str] = (),
    ) -> SentMessage:
        """Fetch the original from Gmail and send it on under a forwarded banner."""
        original = await self._execute(
            self._get_service().users().messages().get(
                userId="me", id=original_message_id, format="full"
            ),
            "fetch original message",
            UPDATE_FAILED_MESSAGE,
        )
        forwarded_body = f"{body}\n\n{FORWARD_BANNER}\n{format_original_content(original)}"
        fwd_subject = subject if subject.lower().startswith("fwd:") else f"Fwd: {subject}"
        raw = build_raw_message(to=to, cc=cc, subject=fwd_subject, body=forwarded_body)
        sent = await self._send({"raw": raw})
        logger.info("Forwarded message %s to %s", original_message_id, ", ".join(to))
        self._mirror_sent(sent, to=to, cc=cc, bcc=(), subject=fwd_subject, body=forwarded_body)
        return sent

    async def create_draft(
        self,
        to: Sequence[str],
        subject: str,
        body: str,
        *,
        cc: Sequence[str] = (),
        bcc: Sequence[str] = (),
    ) -> str:
        """Create a Gmail draft and return its id. Nothing is sent."""
        raw = build_raw_message(to=to, cc=cc, bcc=bcc, subject=subject, body=body)
        response = await self._execute(
            self._get_service().users().drafts().create(
                userId="me", body={"message": {"raw": raw}}
            ),
            "create draft",
            UPDATE_FAILED_MESSAGE,
        )
        return str(response.get("id", ""))

    # ── Mailbox changes ────────────────────────────────────────────────────────

    async def delete_email(self, message_id: str) -> None:
        """Move a message to Gmail's trash (recoverable)."""
        await self._execute(
            self._get_service().users().messages().trash(userId="me", id=message_id),
            "trash message",
            UPDATE_FAILED_MESSAGE,
        )
        logger.debug("Trashed message %s", message_id)

    async def mark_as_read(self, message_id: str, read: bool = True) -> None:
        if read:
            await self._modify(message_id, remove=[_UNREAD])
        else:
            await self._modify(message_id, add=[_UNREAD])

    async def star_email(self, message_id: str, starred: bool = True) -> None:
        if starred:
            await self._modify(message_id, add=[_STARRED])
        else:
            await self._modify(message_id, remove=[_STARRED])

    async def archive_email(self, message_id: str) -> None:
        """Archive = drop the INBOX label."""
        await self._modify(message_id, remove=[_INBOX])

    # ── Internal helpers ───────────────────────────────────────────────────────

    async def _modify(
        self, message_id: str, add: list[str] | None = None, remove: list[str] | None = None
    ) -> None:
        body: dict[str, list[str]] = {}
        if add:
            body["addLabelIds"] = add
        if remove:
            body["removeLabelIds"] = remove
        await self._execute(
            self._get_service().users().messages().modify(userId="me", id=message_id, body=body),
            "modify labels",
            UPDATE_FAILED_MESSAGE,
        )
        logger.debug("Modified labels on %s: %s", message_id, body)

    async def _send(self, message: dict[str, str]) -> SentMessage:
        response = await self._execute(
            self._get_service().users().messages().send(userId="me", body=message),
            "send message",
            PROVIDER_SEND_MESSAGE,
        )
        return SentMessage(
            id=str(response.get("id", "")),
            thread_id=response.get("threadId"),
            label_ids=list(response.get("labelIds") or []),
        )

    async def _execute(self, request: Any, what: str, user_message: str) -> dict[str, Any]:
        """Run a blocking googleapiclient request off the event loop, with a timeout.

        Raises ProviderError carrying ``user_message``; the provider's own
        error text is only logged.
        """
        try:
            result = await asyncio.wait_for(asyncio.to_thread(request.execute), self._timeout)
        except asyncio.TimeoutError as exc:
            logger.error("Gmail %s timed out after %.0fs", what, self._timeout)
            raise ProviderError(user_message) from exc
        except HttpError as exc:
            logger.error("Gmail %s failed: %s", what, exc)
            raise ProviderError(user_message) from exc
        except GoogleAuthError as exc:
            logger.error("Gmail credentials rejected during %s: %s", what, exc)
            raise ProviderError(NOT_CONNECTED_MESSAGE) from exc
        return result if isinstance(result, dict) else {}

    def _get_service(self) -> Any:
        if self._service is None:
            self._service = self._service_factory(self._resolve_credentials())
        return self._service

    def _resolve_credentials(self) -> Credentials:
        if self._credentials is not None:
            return self._credentials

        tokens = self._credential_store.get_credentials(
            self._context.workspace_id, self._context.user_id
        )
        if not tokens:
            logger.warning(
                "No Gmail account for user %s in workspace %s",
                self._context.user_id,
                self._context.workspace_id,
            )
            raise ProviderError(NOT_CONNECTED_MESSAGE)

        self._credentials = credentials_from_tokens(
            tokens, client_id=self._client_id, client_secret=self._client_secret
        )
        return self._credentials

    def _mirror_sent(
        self,
        sent: SentMessage,
        *,
        to: Sequence[str],
        cc: Sequence[str],
        bcc: Sequence[str],
        subject: str,
        body: str,
    ) -> None:
        """Write the sent message into the index; log failures rather than raising."""
        record = EmailRecord.new(
            self._context.workspace_id,
            self._context.user_email,
            subject=subject,
            to=list(to),
            cc=list(cc),
            bcc=list(bcc),
            body=EmailBody(text=body, html=text_to_html(body), snippet=body[:200]),
            message_id=sent.id,
            thread_id=sent.thread_id,
            sent_at=utcnow(),
            is_read=True,
            labels=sent.label_ids or ["SENT"],
            source=COMMAND_SOURCE,
            created_by=self._context.user_id,
        )
        try:
            self._index.save_email(record)
        except Exception as exc:  # noqa: BLE001
            logger.error(
                "Sent message %s but failed to mirror it into the index: %s",
                sent.id,
                exc,
                exc_info=True,
            )


def credentials_from_tokens(
    tokens: dict[str, Any], *, client_id: str = "", client_secret: str = ""
) -> Credentials:
    """Build google-auth Credentials from a stored token bundle."""
    credentials = Credentials(
        token=tokens.get("token") or tokens.get("access_token"),
        refresh_token=tokens.get("refresh_token"),
        token_uri=tokens.get("token_uri") or GOOGLE_TOKEN_URI,
        client_id=tokens.get("client_id") or client_id or None,
        client_secret=tokens.get("client_secret") or client_secret or None,
        scopes=tokens.get("scopes") or SCOPES,
    )
    expiry = parse_timestamp(tokens.get("expiry"))
    if expiry is not None:
        # google-auth compares against naive UTC
        credentials.expiry = expiry.astimezone(timezone.utc).replace(tzinfo=None)
    return credentials
