"""Action handlers — one coroutine per canonical action, plus the draft sender.

Handlers return a CommandResult. Anything that cannot go on raises a
CommandError subclass, which the dispatcher turns into an error result.
Compose, reply and forward only ever build a Draft; ``send_draft`` is the one
place that sends mail.
"""

from __future__ import annotations

import logging
import re
from collections.abc import Callable
from email.utils import parseaddr
from enum import Enum
from typing import Any

from src.agent.results import (
    HELP_MESSAGE,
    CommandResult,
    ErrorKind,
    NotFoundError,
    ParseError,
    ProviderError,
    ValidationError,
    plural,
)
from src.mail.gmail_client import MailProvider
from src.mail.mime import FORWARD_BANNER
from src.mail.types import CommandContext, Draft, EmailRecord
from src.processing.completion import CompletionClient, CompletionError
from src.processing.extraction import InsightEngine
from src.processing.prompts import (
    COMPOSE_SYSTEM_PROMPT,
    REPLY_SYSTEM_PROMPT,
    build_compose_prompt,
    build_reply_prompt,
)
from src.processing.types import CommandParameters, ParsedCommand
from src.storage.query import QueryBuilder

logger = logging.getLogger(__name__)

ProviderFactory = Callable[[CommandContext], MailProvider]

_DEFAULT_SUBJECT = "Draft Email"
_ADDRESS_RE = re.compile(r"^[^@\s]+@[^@\s]+\.[^@\s]+$")


# ── Bulk verbs ─────────────────────────────────────────────────────────────────


class BulkVerb(str, Enum):
    ARCHIVE = "archive"
    TRASH = "delete"
    READ = "mark as read"
    UNREAD = "mark as unread"
    STAR = "star"
    UNSTAR = "unstar"


_VERB_ALIASES: dict[str, BulkVerb] = {
    "archive": BulkVerb.ARCHIVE,
    "delete": BulkVerb.TRASH,
    "trash": BulkVerb.TRASH,
    "mark as read": BulkVerb.READ,
    "read": BulkVerb.READ,
    "mark as unread": BulkVerb.UNREAD,
    "unread": BulkVerb.UNREAD,
    "star": BulkVerb.STAR,
    "unstar": BulkVerb.UNSTAR,
}

_VALID_VERBS = "'archive', 'delete', 'mark as read', 'mark as unread', 'star', or 'unstar'"


def normalize_bulk_verb(raw: str | None) -> BulkVerb:
    """Map a free-form verb onto a BulkVerb.

    Raises:
        ValidationError: if the verb is missing or not recognised.
    """
    if not raw or not raw.strip():
        raise ValidationError(f"Which action should I apply? Try {_VALID_VERBS}.")
    key = " ".join(raw.replace("_", " ").lower().split())
    verb = _VERB_ALIASES.get(key)
    if verb is None:
        raise ValidationError(f"Unknown action: {raw}. Try {_VALID_VERBS}.")
    return verb


def apply_locally(verb: BulkVerb, record: EmailRecord) -> None:
    """Mutate the stored copy of ``record`` to reflect ``verb``."""
    if verb is BulkVerb.ARCHIVE:
        record.add_label("ARCHIVED")
        record.remove_label("INBOX")
    elif verb is BulkVerb.TRASH:
        record.is_trash = True
        record.add_label("TRASH")
    elif verb is BulkVerb.READ:
        record.is_read = True
        record.remove_label("UNREAD")
    elif verb is BulkVerb.UNREAD:
        record.is_read = False
        record.add_label("UNREAD")
    elif verb is BulkVerb.STAR:
        record.is_starred = True
        record.add_label("STARRED")
    elif verb is BulkVerb.UNSTAR:
        record.is_starred = False
        record.remove_label("STARRED")


async def apply_remotely(verb: BulkVerb, provider: MailProvider, message_id: str) -> None:
    if verb is BulkVerb.ARCHIVE:
        await provider.archive_email(message_id)
    elif verb is BulkVerb.TRASH:
        await provider.delete_email(message_id)
    elif verb in (BulkVerb.READ, BulkVerb.UNREAD):
        await provider.mark_as_read(message_id, read=verb is BulkVerb.READ)
    else:
        await provider.star_email(message_id, starred=verb is BulkVerb.STAR)


def _bulk_message(verb: BulkVerb, count: int) -> str:
    emails = plural(count)
    if verb is BulkVerb.ARCHIVE:
        return f"Archived {emails}."
    if verb is BulkVerb.TRASH:
        return f"Moved {emails} to trash."
    if verb is BulkVerb.READ:
        return f"Marked {emails} as read."
    if verb is BulkVerb.UNREAD:
        return f"Marked {emails} as unread."
    if verb is BulkVerb.STAR:
        return f"Starred {emails}."
    return f"Unstarred {emails}."


# ── Draft helpers ──────────────────────────────────────────────────────────────


def _address(value: str) -> str:
    return parseaddr(value)[1] or value.strip()


def _prefixed(subject: str, prefix: str) -> str:
    if subject.lower().startswith(prefix.lower()):
        return subject
    return f"{prefix} {subject}".strip()


def forwarded_body(original: EmailRecord, note: str | None = None) -> str:
    sent = original.sent_at or original.created_at
    return (
        f"{note or ''}\n\n{FORWARD_BANNER}\n"
        f"From: {original.sender}\n"
        f"Date: {sent.strftime('%a, %d %b %Y %H:%M')}\n"
        f"Subject: {original.subject}\n\n"
        f"{original.text}"
    )


def validate_draft(draft: Draft) -> None:
    """Raise ValidationError unless every recipient looks like an address."""
    recipients = [*draft.to, *draft.cc, *draft.bcc]
    if not draft.to:
        raise ValidationError("The draft has no recipient. Add at least one address in 'to'.")
    for recipient in recipients:
        if not _ADDRESS_RE.match(_address(recipient)):
            raise ValidationError(f"'{recipient}' doesn't look like an email address.")


# ── Handlers ───────────────────────────────────────────────────────────────────


class CommandHandlers:
    """Executes parsed commands against the index, the model, and the provider.

    A provider is only built (via ``provider_factory``) when a handler
    actually needs to talk to Gmail.
    """

    def __init__(
        self,
        query: QueryBuilder,
        insights: InsightEngine,
        completion: CompletionClient,
        provider_factory: ProviderFactory,
    ) -> None:
        self._query = query
        self._insights = insights
        self._completion = completion
        self._provider_factory = provider_factory

    # ── Drafting ───────────────────────────────────────────────────────────────

    async def compose(self, parsed: ParsedCommand, context: CommandContext) -> CommandResult:
        params = parsed.parameters
        body = params.body
        if not body:
            topic = params.subject or parsed.original_command
            body = await self._write(COMPOSE_SYSTEM_PROMPT, build_compose_prompt(topic, params.to))

        draft = Draft(
            to=list(params.to),
            cc=list(params.cc),
            bcc=list(params.bcc),
            subject=params.subject or _DEFAULT_SUBJECT,
            body=body,
        )
        recipients = f" to {', '.join(draft.to)}" if draft.to else ""
        return CommandResult.draft_result(
            "draft_email",
            f"I've drafted an email{recipients}. Review it and confirm to send.",
            draft,
        )

    async def reply(self, parsed: ParsedCommand, context: CommandContext) -> CommandResult:
        params = parsed.parameters
        original = self._resolve_target(params, context, "reply to")
        body = params.body or await self._write(
            REPLY_SYSTEM_PROMPT, build_reply_prompt(original, params.reply_intent)
        )
        draft = Draft(
            to=[_address(original.sender)],
            cc=list(params.cc),
            subject=_prefixed(original.subject, "Re:"),
            body=body,
            in_reply_to=original.message_id,
            thread_id=original.thread_id,
            original_email_id=original.id,
        )
        return CommandResult.draft_result(
            "draft_reply",
            f"I've drafted a reply to {original.sender}. Review it and confirm to send.",
            draft,
        )

    async def forward(self, parsed: ParsedCommand, context: CommandContext) -> CommandResult:
        params = parsed.parameters
        original = self._resolve_target(params, context, "forward")
        draft = Draft(
            to=list(params.to),
            cc=list(params.cc),
            bcc=list(params.bcc),
            subject=_prefixed(original.subject, "Fwd:"),
            body=forwarded_body(original, params.body),
            original_email_id=original.id,
        )
        recipients = f" to {', '.join(draft.to)}" if draft.to else ""
        return CommandResult.draft_result(
            "draft_forward",
            f"I've prepared the forward{recipients}. Review it and confirm to send.",
            draft,
        )

    async def send_draft(self, raw_draft: Any, context: CommandContext) -> CommandResult:
        """Send a confirmed draft: exactly one provider call, one mirrored record."""
        if isinstance(raw_draft, Draft):
            draft = raw_draft
        elif isinstance(raw_draft, dict):
            draft = Draft.from_dict(raw_draft)
        else:
            raise ValidationError("There is no draft to send.")
        validate_draft(draft)

        provider = self._provider_factory(context)
        if draft.is_reply:
            sent = await provider.reply_to_email(
                draft.thread_id or "",
                draft.in_reply_to or "",
                draft.to,
                draft.subject,
                draft.body,
                cc=draft.cc,
                bcc=draft.bcc,
            )
        else:
            sent = await provider.send_email(
                draft.to, draft.subject, draft.body, cc=draft.cc, bcc=draft.bcc
            )

        return CommandResult(
            type="success",
            message=f"Email sent successfully to {', '.join(draft.to)}.",
            data={"messageId": sent.id, "threadId": sent.thread_id},
        )

    # ── Immediate actions ──────────────────────────────────────────────────────

    async def search(self, parsed: ParsedCommand, context: CommandContext) -> CommandResult:
        emails = self._query.search(parsed.parameters, context)
        message = (
            f"Found {plural(len(emails))}." if emails
            else "No emails found matching your criteria."
        )
        return CommandResult(
            type="search_results", message=message, emails=emails, email_count=len(emails)
        )

    async def summarize(self, parsed: ParsedCommand, context: CommandContext) -> CommandResult:
        return await self._insights.summarize(parsed.parameters, context)

    async def extract(self, parsed: ParsedCommand, context: CommandContext) -> CommandResult:
        params = parsed.parameters
        return await self._insights.extract(params.extraction_type, params, context)

    async def analyze(self, parsed: ParsedCommand, context: CommandContext) -> CommandResult:
        return await self._insights.analyze(parsed.parameters.analysis_type, context)

    async def bulk_action(self, parsed: ParsedCommand, context: CommandContext) -> CommandResult:
        """Apply one verb to every matching email, best effort per item.

        The local record is updated first; the provider is then updated for
        records that came from Gmail. Provider failures are counted and
        reported, never rolled back.
        """
        params = parsed.parameters
        verb = normalize_bulk_verb(params.bulk_action)

        emails = self._query.search(params, context)
        if not emails:
            return CommandResult(
                type="info",
                message="No emails matched, so nothing was changed.",
                email_count=0,
            )

        provider: MailProvider | None = None
        remote_failures = 0
        for record in emails:
            apply_locally(verb, record)
            self._query.index.update_email(context, record)
            if not record.message_id:
                continue
            if provider is None:
                provider = self._provider_factory(context)
            try:
                await apply_remotely(verb, provider, record.message_id)
            except ProviderError as exc:
                remote_failures += 1
                logger.warning(
                    "Bulk %s: Gmail update failed for %s: %s", verb.value, record.id, exc.message
                )

        message = _bulk_message(verb, len(emails))
        if remote_failures:
            message += f" {plural(remote_failures)} couldn't be updated in Gmail."
        logger.info("Bulk %s applied to %d email(s)", verb.value, len(emails))
        return CommandResult(
            type="success",
            message=message,
            email_count=len(emails),
            data={
                "action": verb.value,
                "emailIds": [e.id for e in emails],
                "providerFailures": remote_failures,
            },
        )

    async def unknown(self, parsed: ParsedCommand, context: CommandContext) -> CommandResult:
        return CommandResult.failure(ErrorKind.PARSE, HELP_MESSAGE)

    # ── Internal helpers ───────────────────────────────────────────────────────

    def _resolve_target(
        self, params: CommandParameters, context: CommandContext, verb: str
    ) -> EmailRecord:
        if params.email_id:
            record = self._query.get(context, params.email_id)
        elif params.sender:
            record = self._query.latest_from(context, params.sender)
        else:
            raise ValidationError(
                f"Which email should I {verb}? Mention the sender or pick an email first."
            )
        if record is None:
            raise NotFoundError("Email not found.")
        return record

    async def _write(self, system: str, prompt: str) -> str:
        try:
            text = await self._completion.complete(system, prompt)
        except CompletionError as exc:
            logger.warning("Draft writing failed: %s", exc)
            raise ParseError() from exc
        if not text:
            logger.warning("Draft writing returned no text")
            raise ParseError()
        return text
