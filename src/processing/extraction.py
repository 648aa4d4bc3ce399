"""Extraction and analysis over sets of indexed emails.

Regex/keyword kinds (addresses, phone numbers, meeting requests) run locally;
action items, summaries and the analysis kinds hand a formatted batch of
emails to the completion service. An empty batch never reaches the model.
"""

from __future__ import annotations

import logging
import re
from collections.abc import Iterable, Sequence
from email.utils import getaddresses

from src.agent.results import CommandResult, ParseError, plural
from src.mail.types import CommandContext, EmailRecord
from src.processing.completion import CompletionClient, CompletionError
from src.processing.prompts import (
    ACTION_ITEMS_SYSTEM_PROMPT,
    COMMITMENTS_SYSTEM_PROMPT,
    NEEDS_RESPONSE_SYSTEM_PROMPT,
    SENTIMENT_SYSTEM_PROMPT,
    SUMMARY_SYSTEM_PROMPT,
    URGENT_SYSTEM_PROMPT,
    format_emails,
)
from src.processing.types import AnalysisType, CommandParameters, ExtractionType
from src.storage.query import QueryBuilder

logger = logging.getLogger(__name__)

SUMMARY_LIMIT = 10
ACTION_ITEMS_LIMIT = 20
NEEDS_RESPONSE_LIMIT = 10
URGENT_LIMIT = 20
SENTIMENT_LIMIT = 30
SENTIMENT_DAYS = 7
COMMITMENTS_LIMIT = 50
COMMITMENTS_DAYS = 30

MEETING_KEYWORDS: tuple[str, ...] = ("meeting", "call", "schedule", "appointment", "discuss")

_PHONE_RE = re.compile(r"(\+?\d{1,3}[-.\s]?)?\(?\d{1,4}\)?[-.\s]?\d{1,4}[-.\s]?\d{1,9}")
_MIN_PHONE_DIGITS = 10

_EXTRACTION_HELP = (
    "I can extract action items, email addresses, phone numbers, or meeting requests. "
    "Which would you like?"
)
_ANALYSIS_HELP = (
    "I can analyze which emails need a response, which are urgent, the sentiment of "
    "recent emails, or commitments you've made. Which would you like?"
)


# ── Local extractors ───────────────────────────────────────────────────────────


def _unique(values: Iterable[str]) -> list[str]:
    return list(dict.fromkeys(values))


def extract_addresses(records: Iterable[EmailRecord]) -> list[str]:
    """Lower-cased from/to/cc addresses, first-seen order, no duplicates."""
    found: list[str] = []
    for record in records:
        fields = [record.sender, *record.to, *record.cc]
        for _, address in getaddresses([f for f in fields if f]):
            if "@" in address:
                found.append(address.strip().lower())
    return _unique(found)


def extract_phone_numbers(records: Iterable[EmailRecord]) -> list[str]:
    """Phone-number-like runs in body text with at least 10 digits."""
    found: list[str] = []
    for record in records:
        for match in _PHONE_RE.finditer(record.text):
            candidate = match.group(0).strip()
            if sum(ch.isdigit() for ch in candidate) >= _MIN_PHONE_DIGITS:
                found.append(candidate)
    return _unique(found)


def find_meeting_requests(records: Iterable[EmailRecord]) -> list[EmailRecord]:
    matches = []
    for record in records:
        haystack = f"{record.subject} {record.text}".lower()
        if any(keyword in haystack for keyword in MEETING_KEYWORDS):
            matches.append(record)
    return matches


# ── Engine ─────────────────────────────────────────────────────────────────────


class InsightEngine:
    """Runs EXTRACT_INFO, ANALYZE and SUMMARIZE requests.

    Usage::

        engine = InsightEngine(completion, query)
        result = await engine.analyze("urgent", context)
    """

    def __init__(self, completion: CompletionClient, query: QueryBuilder) -> None:
        self._completion = completion
        self._query = query

    async def summarize(
        self, params: CommandParameters, context: CommandContext
    ) -> CommandResult:
        records = self._query.search(params, context, limit=SUMMARY_LIMIT)
        if not records:
            return CommandResult(type="summary", message="No emails found to summarize.")
        summary = await self._ask(SUMMARY_SYSTEM_PROMPT, format_emails(records))
        return CommandResult(
            type="summary",
            message=f"Summary of {plural(len(records))}:",
            summary=summary,
            email_count=len(records),
        )

    async def extract(
        self, kind: str | None, params: CommandParameters, context: CommandContext
    ) -> CommandResult:
        try:
            extraction = ExtractionType((kind or "").strip().lower())
        except ValueError:
            logger.info("Unsupported extraction type %r", kind)
            return CommandResult(type="extraction", message=_EXTRACTION_HELP)

        limit = ACTION_ITEMS_LIMIT if extraction is ExtractionType.ACTION_ITEMS else None
        records = self._query.search(params, context, limit=limit)
        if not records:
            return CommandResult(
                type="extraction", message="No emails found to extract from.", data=[]
            )

        if extraction is ExtractionType.ACTION_ITEMS:
            items = await self._ask(ACTION_ITEMS_SYSTEM_PROMPT, format_emails(records))
            return CommandResult(
                type="extraction",
                message=f"Action items from {plural(len(records))}:",
                data=items,
                email_count=len(records),
            )

        if extraction is ExtractionType.EMAIL_ADDRESSES:
            addresses = extract_addresses(records)
            found = plural(len(addresses), "unique email address", "unique email addresses")
            return CommandResult(
                type="extraction",
                message=f"Found {found}.",
                data=addresses,
            )

        if extraction is ExtractionType.PHONE_NUMBERS:
            numbers = extract_phone_numbers(records)
            return CommandResult(
                type="extraction",
                message=f"Found {plural(len(numbers), 'phone number')}.",
                data=numbers,
            )

        meetings = find_meeting_requests(records)
        return CommandResult(
            type="extraction",
            message=f"Found {plural(len(meetings))} that mention meetings.",
            emails=meetings,
            email_count=len(meetings),
        )

    async def analyze(self, kind: str | None, context: CommandContext) -> CommandResult:
        try:
            analysis = AnalysisType((kind or "").strip().lower())
        except ValueError:
            logger.info("Unsupported analysis type %r", kind)
            return CommandResult(type="analysis", message=_ANALYSIS_HELP)

        if analysis is AnalysisType.NEEDS_RESPONSE:
            records = self._query.find(
                context, self._query.needs_response_predicates(context), NEEDS_RESPONSE_LIMIT
            )
            return await self._analysis(
                records, NEEDS_RESPONSE_SYSTEM_PROMPT,
                empty="No emails need a response right now.",
                heading="Emails that may need your response:",
            )

        if analysis is AnalysisType.URGENT:
            records = self._query.find(context, self._query.urgent_predicates(), URGENT_LIMIT)
            return await self._analysis(
                records, URGENT_SYSTEM_PROMPT,
                empty="No urgent emails found.",
                heading="Urgent emails:",
            )

        if analysis is AnalysisType.SENTIMENT:
            records = self._query.find(
                context, self._query.recent_predicates(SENTIMENT_DAYS), SENTIMENT_LIMIT
            )
            return await self._analysis(
                records, SENTIMENT_SYSTEM_PROMPT,
                empty=f"No emails from the last {SENTIMENT_DAYS} days to analyze.",
                heading=f"Sentiment of the last {SENTIMENT_DAYS} days:",
                snippet_only=True,
            )

        records = self._query.find(
            context,
            self._query.sent_by_user_predicates(context, COMMITMENTS_DAYS),
            COMMITMENTS_LIMIT,
        )
        return await self._analysis(
            records, COMMITMENTS_SYSTEM_PROMPT,
            empty=f"No emails sent by you in the last {COMMITMENTS_DAYS} days.",
            heading="Commitments you've made:",
            addressed_to=True,
        )

    # ── Internal helpers ───────────────────────────────────────────────────────

    async def _analysis(
        self,
        records: Sequence[EmailRecord],
        system: str,
        *,
        empty: str,
        heading: str,
        addressed_to: bool = False,
        snippet_only: bool = False,
    ) -> CommandResult:
        if not records:
            return CommandResult(type="analysis", message=empty, emails=[], email_count=0)
        text = await self._ask(
            system,
            format_emails(records, addressed_to=addressed_to, snippet_only=snippet_only),
        )
        return CommandResult(
            type="analysis",
            message=heading,
            analysis=text,
            emails=list(records),
            email_count=len(records),
        )

    async def _ask(self, system: str, prompt: str) -> str:
        try:
            return await self._completion.complete(system, prompt)
        except CompletionError as exc:
            logger.warning("Completion failed while processing emails: %s", exc)
            raise ParseError() from exc
