"""RFC 2822 message construction and parsing for the Gmail REST API."""

import base64
from collections.abc import Sequence
from email import policy
from email.mime.multipart import MIMEMultipart
from email.mime.text import MIMEText
from typing import Any

FORWARD_BANNER = "---------- Forwarded message ---------"

_HTML_ESCAPES = (
    ("&", "&amp;"),  # must run first
    ("<", "&lt;"),
    (">", "&gt;"),
    ('"', "&quot;"),
    ("'", "&#039;"),
    ("\n", "<br>"),
    ("\t", "&nbsp;&nbsp;&nbsp;&nbsp;"),
)


def text_to_html(text: str) -> str:
    """Escape plain text for an HTML body, keeping line breaks and tabs visible."""
    for raw, escaped in _HTML_ESCAPES:
        text = text.replace(raw, escaped)
    return text


def _base64_part(content: str, subtype: str) -> MIMEText:
    # utf-8 parts are base64 transfer-encoded by the email package
    return MIMEText(content, subtype, "utf-8", policy=policy.SMTP)


def build_mime_message(
    *,
    to: Sequence[str],
    subject: str,
    body: str,
    cc: Sequence[str] = (),
    bcc: Sequence[str] = (),
    body_html: str | None = None,
    reply_to: str | None = None,
    in_reply_to: str | None = None,
    references: str | None = None,
) -> MIMEMultipart:
    """Build a multipart/alternative message: a text/plain and a text/html part."""
    message = MIMEMultipart("alternative", policy=policy.SMTP)
    message["To"] = ", ".join(to)
    message["Subject"] = subject
    if cc:
        message["Cc"] = ", ".join(cc)
    if bcc:
        message["Bcc"] = ", ".join(bcc)
    if reply_to:
        message["Reply-To"] = reply_to
    if in_reply_to:
        message["In-Reply-To"] = in_reply_to
    if references:
        message["References"] = references
    message.attach(_base64_part(body, "plain"))
    message.attach(_base64_part(body_html or text_to_html(body), "html"))
    return message


def build_raw_message(**kwargs: Any) -> str:
    """Return the message url-safe base64 encoded, as Gmail's ``raw`` field expects."""
    message = build_mime_message(**kwargs)
    return base64.urlsafe_b64encode(message.as_bytes()).decode("ascii")


# ── Parsing Gmail API payloads ─────────────────────────────────────────────────


def _decode_data(data: str) -> str:
    padded = data + "=" * (-len(data) % 4)
    return base64.urlsafe_b64decode(padded).decode("utf-8", errors="replace")


def extract_headers(payload: dict[str, Any]) -> dict[str, str]:
    """Header name (lower-cased) → value."""
    return {
        str(h.get("name", "")).lower(): str(h.get("value", ""))
        for h in payload.get("headers", []) or []
    }


def extract_plain_body(payload: dict[str, Any]) -> str:
    """Return the first text/plain body found, searching nested parts depth-first."""
    parts = payload.get("parts")
    if parts:
        for part in parts:
            data = (part.get("body") or {}).get("data")
            if part.get("mimeType") == "text/plain" and data:
                return _decode_data(data)
            if part.get("parts"):
                found = extract_plain_body(part)
                if found:
                    return found
        return ""
    data = (payload.get("body") or {}).get("data")
    return _decode_data(data) if data else ""


def format_original_content(message: dict[str, Any]) -> str:
    """Header block plus body of a fetched message, as quoted in a forward."""
    payload = message.get("payload") or {}
    headers = extract_headers(payload)
    body = extract_plain_body(payload)
    return (
        f"From: {headers.get('from', '')}\n"
        f"Date: {headers.get('date', '')}\n"
        f"Subject: {headers.get('subject', '')}\n"
        f"To: {headers.get('to', '')}\n"
        f"\n{body}"
    )
