"""Anthropic tool definition and prompt builders for command handling."""

from collections.abc import Sequence
from html.parser import HTMLParser
from typing import Any

from src.mail.types import EmailRecord
from src.processing.types import ActionKind, AnalysisType, ExtractionType

# Maximum characters of a single email body placed in a prompt, applied after
# HTML stripping.
BODY_CHAR_LIMIT = 4_000


# ── HTML stripper ───────────────────────────────────────────────────────────────


class _HTMLStripper(HTMLParser):
    """Minimal HTMLParser subclass that collects visible text nodes."""

    def __init__(self) -> None:
        super().__init__()
        self._parts: list[str] = []

    def handle_data(self, data: str) -> None:
        text = data.strip()
        if text:
            self._parts.append(text)

    def get_text(self) -> str:
        return " ".join(self._parts)


def strip_html(text: str) -> str:
    """Return plain text from an HTML string (input returned as-is if not HTML)."""
    if "<" not in text:
        return text
    stripper = _HTMLStripper()
    stripper.feed(text)
    stripper.close()
    return stripper.get_text() or text


# ── Parse tool ─────────────────────────────────────────────────────────────────

PARSER_SYSTEM_PROMPT = """\
You are an email command parser. Parse the user's command and call \
parse_email_command with the action and parameters.

Actions:
- SHOW_EMAILS: show/display emails (inbox, unread, today's, important, with attachments)
- SEARCH_EMAILS: search/find specific emails by criteria
- SEND_EMAIL / COMPOSE: send or compose a new email
- DRAFT_REPLY: reply to an existing email
- FORWARD: forward an email to someone
- SUMMARIZE: summarize emails or conversations
- ANALYZE: analyze emails (urgent, needs response, commitments, sentiment)
- BULK_ACTION / QUICK_ACTION: act on many emails (archive, delete, mark read/unread, star)
- EXTRACT_INFO: extract information (action items, email addresses, phone numbers, meeting requests)
- UNKNOWN: anything else

Extract recipients (to, cc, bcc), subject and body, search criteria (from, \
keywords, read/unread, important, attachments), time references exactly as \
phrased (today, yesterday, this week, last month, last 3 days), the bulk \
action verb, and extraction or analysis targets."""

#: Anthropic tool schema for command parsing.
PARSE_COMMAND_TOOL: dict[str, Any] = {
    "name": "parse_email_command",
    "description": "Record the parsed action and parameters of an email command.",
    "input_schema": {
        "type": "object",
        "properties": {
            "action": {
                "type": "string",
                "enum": [a.value for a in ActionKind],
            },
            "parameters": {
                "type": "object",
                "properties": {
                    "to": {"type": "array", "items": {"type": "string"}},
                    "cc": {"type": "array", "items": {"type": "string"}},
                    "bcc": {"type": "array", "items": {"type": "string"}},
                    "subject": {"type": "string"},
                    "body": {"type": "string"},
                    "searchQuery": {"type": "string"},
                    "from": {"type": "string"},
                    "dateRange": {
                        "type": "string",
                        "description": "Time phrase, e.g. 'today', 'last week', 'last 3 days'.",
                    },
                    "isRead": {"type": "boolean"},
                    "hasAttachments": {"type": "boolean"},
                    "isImportant": {"type": "boolean"},
                    "isStarred": {"type": "boolean"},
                    "needsResponse": {"type": "boolean"},
                    "bulkAction": {
                        "type": "string",
                        "description": "archive, delete, mark as read, mark as unread, star or unstar.",
                    },
                    "emailId": {"type": "string"},
                    "extractionType": {
                        "type": "string",
                        "enum": [e.value for e in ExtractionType],
                    },
                    "analysisType": {
                        "type": "string",
                        "enum": [a.value for a in AnalysisType],
                    },
                    "replyIntent": {"type": "string"},
                },
            },
        },
        "required": ["action", "parameters"],
    },
}


# ── Writing prompts ────────────────────────────────────────────────────────────

COMPOSE_SYSTEM_PROMPT = (
    "You are a professional email writer. Write clear, concise, and friendly emails. "
    "Return only the email body, without a subject line."
)

REPLY_SYSTEM_PROMPT = (
    "You are helping draft a reply to an email. Be professional and helpful. "
    "Return only the reply body."
)

SUMMARY_SYSTEM_PROMPT = (
    "Summarize these emails concisely. Identify key topics, action items, and "
    "important information."
)

ACTION_ITEMS_SYSTEM_PROMPT = (
    "Extract all action items, tasks, and commitments from these emails. List them "
    "clearly with who is responsible if mentioned."
)

NEEDS_RESPONSE_SYSTEM_PROMPT = (
    "Analyze these emails and identify which ones genuinely need a response. Consider "
    "questions asked, requests made, and action items. Ignore newsletters, "
    "notifications, and FYI emails."
)

URGENT_SYSTEM_PROMPT = (
    "These emails matched urgency keywords. Rank the ones that are truly urgent and "
    "say in one line each why, ignoring marketing or automated urgency."
)

SENTIMENT_SYSTEM_PROMPT = (
    "Analyze the sentiment and tone of these emails. Identify any angry, frustrated, "
    "or concerning messages that need attention. Also note particularly positive or "
    "appreciative messages."
)

COMMITMENTS_SYSTEM_PROMPT = (
    "Extract any commitments, promises, or deadlines mentioned in these emails that "
    "were sent by the user. List what was promised, to whom, and by when if mentioned."
)


def build_compose_prompt(topic: str, to: Sequence[str]) -> str:
    recipients = ", ".join(to) if to else "(recipient not specified)"
    return f"Write an email about: {topic}\nTo: {recipients}\nKeep it professional but friendly."


def build_reply_prompt(original: EmailRecord, intent: str | None) -> str:
    return (
        "Draft a reply to this email:\n"
        f"From: {original.sender}\n"
        f"Subject: {original.subject}\n"
        f"Body: {_body_text(original)}\n\n"
        f"User's intent: {intent or 'Professional acknowledgment'}"
    )


def _body_text(record: EmailRecord, use_snippet: bool = False) -> str:
    raw = record.body.snippet if use_snippet else record.text
    if not raw and record.body.html:
        raw = strip_html(record.body.html)
    return raw[:BODY_CHAR_LIMIT]


def format_emails(
    records: Sequence[EmailRecord],
    *,
    addressed_to: bool = False,
    snippet_only: bool = False,
) -> str:
    """Render records as one prompt block, separated by ``---`` lines.

    ``addressed_to`` shows recipients instead of the sender (for the user's
    own sent mail); ``snippet_only`` keeps prompts short for large batches.
    """
    blocks = []
    for record in records:
        header = f"To: {', '.join(record.to)}" if addressed_to else f"From: {record.sender}"
        label = "Snippet" if snippet_only else "Body"
        blocks.append(
            f"{header}\nSubject: {record.subject}\n{label}: {_body_text(record, snippet_only)}"
        )
    return "\n\n---\n\n".join(blocks)
