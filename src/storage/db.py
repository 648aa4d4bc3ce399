"""SQLite storage — the workspace email index and stored OAuth credentials."""

import base64
import json
import logging
import sqlite3
from pathlib import Path
from typing import Any

from src.mail.types import CommandContext, EmailRecord, utcnow
from src.storage.models import ALL_TABLES, AccountRecord

logger = logging.getLogger(__name__)

_DEFAULT_DB_PATH = Path("data/mail_command.db")


class EmailDatabase:
    """Wraps SQLite for the email index and per-user credential records.

    Every read and write of an email is scoped by ``(workspace_id, user_id)``;
    a record outside the caller's scope behaves exactly like a missing one.
    There is no locking: concurrent writers to the same record get
    last-write-wins.

    Usage::

        db = EmailDatabase()
        db.save_email(record)
        records = db.scan_emails(context)
    """

    def __init__(self, db_path: str | Path = _DEFAULT_DB_PATH) -> None:
        self._path = Path(db_path)
        self._path.parent.mkdir(parents=True, exist_ok=True)
        self._conn = sqlite3.connect(str(self._path))
        self._conn.row_factory = sqlite3.Row
        self._conn.execute("PRAGMA journal_mode=WAL")
        self._create_tables()

    def close(self) -> None:
        """Close the underlying database connection."""
        self._conn.close()

    # ── Email index ─────────────────────────────────────────────────────────────

    def save_email(self, record: EmailRecord) -> None:
        """Insert or replace an email record, owned by ``record.created_by``."""
        now = utcnow().isoformat()
        payload = record.to_dict()
        with self._conn:
            self._conn.execute(
                """
                INSERT INTO emails
                    (id, workspace_id, user_id, type, data, metadata, created_at, updated_at)
                VALUES (?, ?, ?, 'email', ?, ?, ?, ?)
                ON CONFLICT(id) DO UPDATE SET
                    data       = excluded.data,
                    metadata   = excluded.metadata,
                    updated_at = excluded.updated_at
                """,
                (
                    record.id,
                    record.workspace_id,
                    record.created_by,
                    json.dumps(payload["data"]),
                    json.dumps(payload["metadata"]),
                    payload["createdAt"],
                    now,
                ),
            )
        logger.debug("Saved email %s (workspace=%s)", record.id, record.workspace_id)

    def get_email(self, context: CommandContext, email_id: str) -> EmailRecord | None:
        """Point lookup by id within the caller's scope."""
        row = self._conn.execute(
            "SELECT id, workspace_id, data, metadata, created_at FROM emails "
            "WHERE id = ? AND workspace_id = ? AND user_id = ? AND type = 'email'",
            (email_id, context.workspace_id, context.user_id),
        ).fetchone()
        return _row_to_record(row) if row else None

    def scan_emails(self, context: CommandContext) -> list[EmailRecord]:
        """Return every email in scope, newest first by creation time."""
        rows = self._conn.execute(
            "SELECT id, workspace_id, data, metadata, created_at FROM emails "
            "WHERE workspace_id = ? AND user_id = ? AND type = 'email' "
            "ORDER BY created_at DESC",
            (context.workspace_id, context.user_id),
        ).fetchall()
        return [_row_to_record(r) for r in rows]

    def update_email(self, context: CommandContext, record: EmailRecord) -> bool:
        """Write back a mutated record. Returns False if it is not in scope."""
        payload = record.to_dict()
        with self._conn:
            cur = self._conn.execute(
                "UPDATE emails SET data = ?, updated_at = ? "
                "WHERE id = ? AND workspace_id = ? AND user_id = ? AND type = 'email'",
                (
                    json.dumps(payload["data"]),
                    utcnow().isoformat(),
                    record.id,
                    context.workspace_id,
                    context.user_id,
                ),
            )
        return cur.rowcount == 1

    # ── Credentials ─────────────────────────────────────────────────────────────

    def save_credentials(self, workspace_id: str, user_id: str, tokens: dict[str, Any]) -> None:
        """Store an OAuth token bundle, base64-encoded JSON, replacing any previous one."""
        encoded = base64.b64encode(json.dumps(tokens).encode("utf-8")).decode("ascii")
        with self._conn:
            self._conn.execute(
                """
                INSERT INTO email_accounts (workspace_id, user_id, provider, tokens)
                VALUES (?, ?, 'gmail', ?)
                ON CONFLICT(workspace_id, user_id, provider) DO UPDATE SET
                    tokens = excluded.tokens
                """,
                (workspace_id, user_id, encoded),
            )
        logger.info("Stored Gmail credentials for user %s in workspace %s", user_id, workspace_id)

    def get_account(self, workspace_id: str, user_id: str) -> AccountRecord | None:
        row = self._conn.execute(
            "SELECT workspace_id, user_id, provider, tokens, created_at FROM email_accounts "
            "WHERE workspace_id = ? AND user_id = ? AND provider = 'gmail'",
            (workspace_id, user_id),
        ).fetchone()
        return AccountRecord(**dict(row)) if row else None

    def get_credentials(self, workspace_id: str, user_id: str) -> dict[str, Any] | None:
        """Return the decoded token bundle, or None if the user never connected."""
        account = self.get_account(workspace_id, user_id)
        if account is None:
            return None
        try:
            decoded = json.loads(base64.b64decode(account.tokens).decode("utf-8"))
        except (ValueError, UnicodeDecodeError) as exc:
            logger.error(
                "Stored credentials for user %s in workspace %s are unreadable: %s",
                user_id,
                workspace_id,
                exc,
            )
            return None
        return decoded if isinstance(decoded, dict) else None

    # ── Private ─────────────────────────────────────────────────────────────────

    def _create_tables(self) -> None:
        with self._conn:
            for ddl in ALL_TABLES:
                self._conn.execute(ddl)


def _row_to_record(row: sqlite3.Row) -> EmailRecord:
    return EmailRecord.from_dict(
        {
            "id": row["id"],
            "workspaceId": row["workspace_id"],
            "data": json.loads(row["data"]),
            "metadata": json.loads(row["metadata"]),
            "createdAt": row["created_at"],
        }
    )
