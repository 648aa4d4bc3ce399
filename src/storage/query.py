"""Composable search predicates over the email index.

Each filter is an independent predicate object (field path + comparison +
value). A search is the AND of a list of predicates, so adding a filter never
touches the existing ones, and any backend that can hand back records (or
translate field/op/value pairs into its own query language) can serve the
same searches.
"""

from __future__ import annotations

import logging
from collections.abc import Callable, Iterable, Mapping
from dataclasses import dataclass
from datetime import datetime, timedelta
from enum import Enum
from typing import Any, Protocol

from src.mail.types import CommandContext, EmailRecord, bare_address, utcnow
from src.processing.dates import resolve_date_range
from src.processing.types import CommandParameters

logger = logging.getLogger(__name__)

DEFAULT_SEARCH_LIMIT = 20

URGENT_KEYWORDS: tuple[str, ...] = (
    "urgent", "asap", "immediately", "critical", "important", "deadline", "today", "now",
)


class EmailIndex(Protocol):
    """Scoped read/write access to stored email records."""

    def get_email(self, context: CommandContext, email_id: str) -> EmailRecord | None: ...

    def scan_emails(self, context: CommandContext) -> list[EmailRecord]: ...

    def update_email(self, context: CommandContext, record: EmailRecord) -> bool: ...

    def save_email(self, record: EmailRecord) -> None: ...


# ── Predicates ─────────────────────────────────────────────────────────────────


class Op(str, Enum):
    CONTAINS = "contains"          # case-insensitive substring
    CONTAINS_ANY = "contains_any"  # any of several substrings
    EQ = "eq"
    NE = "ne"                      # case-insensitive for strings
    NOT_EMPTY = "not_empty"
    WITHIN = "within"              # value is a DateRange
    AFTER = "after"


class RecordPredicate(Protocol):
    def matches(self, record: EmailRecord) -> bool: ...


def _resolve(record: EmailRecord, path: str) -> Any:
    value: Any = record
    for part in path.split("."):
        value = getattr(value, part, None)
        if value is None:
            return None
    return value


@dataclass(frozen=True)
class Predicate:
    """One comparison against a field of EmailRecord, e.g. ``body.text``."""

    field: str
    op: Op
    value: Any = None

    def matches(self, record: EmailRecord) -> bool:
        actual = _resolve(record, self.field)
        if self.op is Op.CONTAINS:
            return actual is not None and str(self.value).lower() in str(actual).lower()
        if self.op is Op.CONTAINS_ANY:
            text = str(actual or "").lower()
            return any(str(v).lower() in text for v in self.value)
        if self.op is Op.EQ:
            return actual == self.value
        if self.op is Op.NE:
            if isinstance(actual, str) and isinstance(self.value, str):
                return actual.lower() != self.value.lower()
            return actual != self.value
        if self.op is Op.NOT_EMPTY:
            return bool(actual)
        if self.op is Op.WITHIN:
            return isinstance(actual, datetime) and self.value.contains(actual)
        if self.op is Op.AFTER:
            return isinstance(actual, datetime) and actual > self.value
        raise ValueError(f"Unsupported predicate op: {self.op!r}")


@dataclass(frozen=True)
class AnyOf:
    """OR group, so an OR'd filter still counts as a single AND term."""

    predicates: tuple[RecordPredicate, ...]

    def matches(self, record: EmailRecord) -> bool:
        return any(p.matches(record) for p in self.predicates)


@dataclass(frozen=True)
class NotRepliedTo:
    """True unless the user sent a later email in the same thread.

    ``replies`` maps thread id → creation time of the user's newest email in
    that thread.
    """

    replies: Mapping[str, datetime]

    def matches(self, record: EmailRecord) -> bool:
        if not record.thread_id:
            return True
        latest = self.replies.get(record.thread_id)
        return latest is None or latest <= record.created_at


def all_of(predicates: Iterable[RecordPredicate]) -> Callable[[EmailRecord], bool]:
    """The single AND reducer every search goes through."""
    terms = list(predicates)
    return lambda record: all(p.matches(record) for p in terms)


# ── Query builder ──────────────────────────────────────────────────────────────


class QueryBuilder:
    """Turns search parameters into predicates and runs them against the index.

    Usage::

        query = QueryBuilder(db)
        emails = query.search(params, context)
    """

    def __init__(
        self,
        index: EmailIndex,
        now: Callable[[], datetime] = utcnow,
        limit: int = DEFAULT_SEARCH_LIMIT,
    ) -> None:
        self.index = index
        self._now = now
        self._limit = limit

    def now(self) -> datetime:
        return self._now()

    def get(self, context: CommandContext, email_id: str) -> EmailRecord | None:
        return self.index.get_email(context, email_id)

    def search(
        self,
        params: CommandParameters,
        context: CommandContext,
        limit: int | None = None,
    ) -> list[EmailRecord]:
        """Return records matching every filter in ``params``, newest first."""
        return self.find(context, self.build_predicates(params, context), limit)

    def find(
        self,
        context: CommandContext,
        predicates: Iterable[RecordPredicate],
        limit: int | None = None,
    ) -> list[EmailRecord]:
        """Run an arbitrary predicate list, capped at ``limit`` results."""
        cap = self._limit if limit is None else limit
        match = all_of(predicates)
        results: list[EmailRecord] = []
        for record in self.index.scan_emails(context):
            if match(record):
                results.append(record)
                if len(results) >= cap:
                    break
        logger.debug("Query matched %d record(s) (cap=%d)", len(results), cap)
        return results

    def latest_from(self, context: CommandContext, sender: str) -> EmailRecord | None:
        """Newest email whose sender contains ``sender``."""
        found = self.find(context, [Predicate("sender", Op.CONTAINS, sender)], limit=1)
        return found[0] if found else None

    def build_predicates(
        self, params: CommandParameters, context: CommandContext
    ) -> list[RecordPredicate]:
        predicates: list[RecordPredicate] = []
        if params.sender:
            predicates.append(Predicate("sender", Op.CONTAINS, params.sender))
        if params.search_query:
            predicates.append(AnyOf((
                Predicate("subject", Op.CONTAINS, params.search_query),
                Predicate("body.text", Op.CONTAINS, params.search_query),
            )))
        if params.is_read is not None:
            predicates.append(Predicate("is_read", Op.EQ, params.is_read))
        if params.has_attachments:
            predicates.append(Predicate("attachments", Op.NOT_EMPTY))
        if params.is_important or params.is_starred:
            predicates.append(AnyOf((
                Predicate("is_starred", Op.EQ, True),
                Predicate("is_important", Op.EQ, True),
            )))
        if params.needs_response:
            predicates.extend(self.needs_response_predicates(context))
        interval = resolve_date_range(params.date_range, self.now())
        if interval is not None:
            predicates.append(Predicate("sent_at", Op.WITHIN, interval))
        elif params.date_range:
            logger.debug("Ignoring unrecognised date range %r", params.date_range)
        return predicates

    def needs_response_predicates(self, context: CommandContext) -> list[RecordPredicate]:
        """Received, read, and not answered later by the user in the same thread."""
        return [
            Predicate("sender_address", Op.NE, bare_address(context.user_email)),
            Predicate("is_read", Op.EQ, True),
            NotRepliedTo(self._user_replies(context)),
        ]

    def urgent_predicates(self) -> list[RecordPredicate]:
        """Urgency keyword in subject/body, and either unread or recent."""
        recent = self.now() - timedelta(days=2)
        return [
            AnyOf((
                Predicate("is_read", Op.EQ, False),
                Predicate("sent_at", Op.AFTER, recent),
            )),
            AnyOf((
                Predicate("subject", Op.CONTAINS_ANY, URGENT_KEYWORDS),
                Predicate("body.text", Op.CONTAINS_ANY, URGENT_KEYWORDS),
            )),
        ]

    def recent_predicates(self, days: int) -> list[RecordPredicate]:
        return [Predicate("sent_at", Op.AFTER, self.now() - timedelta(days=days))]

    def sent_by_user_predicates(self, context: CommandContext, days: int) -> list[RecordPredicate]:
        return [
            Predicate("sender_address", Op.EQ, bare_address(context.user_email)),
            *self.recent_predicates(days),
        ]

    def _user_replies(self, context: CommandContext) -> dict[str, datetime]:
        replies: dict[str, datetime] = {}
        own = Predicate("sender_address", Op.EQ, bare_address(context.user_email))
        for record in self.index.scan_emails(context):
            if record.thread_id and own.matches(record):
                current = replies.get(record.thread_id)
                if current is None or record.created_at > current:
                    replies[record.thread_id] = record.created_at
        return replies
