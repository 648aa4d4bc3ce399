"""SQLite table schemas for the email index and the credential store."""

from dataclasses import dataclass


# ── DDL ────────────────────────────────────────────────────────────────────────

# One row per email record; `data` and `metadata` hold the JSON documents
# described by EmailRecord.to_dict().
_CREATE_EMAILS = """
CREATE TABLE IF NOT EXISTS emails (
    id            TEXT PRIMARY KEY,
    workspace_id  TEXT NOT NULL,
    user_id       TEXT NOT NULL,
    type          TEXT NOT NULL DEFAULT 'email',
    data          TEXT NOT NULL,
    metadata      TEXT NOT NULL DEFAULT '{}',
    created_at    TEXT NOT NULL,
    updated_at    TEXT NOT NULL
)
"""

_CREATE_EMAILS_SCOPE_INDEX = """
CREATE INDEX IF NOT EXISTS idx_emails_scope
    ON emails (workspace_id, user_id, type, created_at DESC)
"""

_CREATE_EMAIL_ACCOUNTS = """
CREATE TABLE IF NOT EXISTS email_accounts (
    workspace_id  TEXT NOT NULL,
    user_id       TEXT NOT NULL,
    provider      TEXT NOT NULL DEFAULT 'gmail',
    tokens        TEXT NOT NULL,
    created_at    TEXT NOT NULL DEFAULT (datetime('now')),
    PRIMARY KEY (workspace_id, user_id, provider)
)
"""

#: All DDL statements in creation order.
ALL_TABLES: list[str] = [
    _CREATE_EMAILS,
    _CREATE_EMAILS_SCOPE_INDEX,
    _CREATE_EMAIL_ACCOUNTS,
]


@dataclass(frozen=True)
class AccountRecord:
    """A row from the email_accounts table, tokens still encoded."""

    workspace_id: str
    user_id: str
    provider: str
    tokens: str
    created_at: str
