"""Shared pytest fixtures."""

from collections.abc import Callable, Iterator
from datetime import datetime, timedelta, timezone
from pathlib import Path
from typing import Any

import pytest

from src.mail.types import CommandContext, EmailBody, EmailRecord
from src.storage.db import EmailDatabase

# A Wednesday; the week containing it runs Sun 1 Mar – Sat 7 Mar 2026.
NOW = datetime(2026, 3, 4, 15, 30, tzinfo=timezone.utc)


@pytest.fixture
def now() -> datetime:
    return NOW


@pytest.fixture
def context() -> CommandContext:
    return CommandContext(workspace_id="ws_1", user_id="user_1", user_email="me@example.com")


@pytest.fixture
def db(tmp_path: Path) -> Iterator[EmailDatabase]:
    database = EmailDatabase(db_path=tmp_path / "test.db")
    yield database
    database.close()


@pytest.fixture
def make_email(context: CommandContext) -> Callable[..., EmailRecord]:
    """Factory for records owned by ``context``; ``age`` counts back from NOW."""
    counter = iter(range(1, 10_000))

    def _make(
        sender: str = "alice@example.com",
        subject: str = "Budget review",
        text: str = "Please review the attached budget figures by Friday.",
        age: timedelta = timedelta(hours=1),
        **kwargs: Any,
    ) -> EmailRecord:
        n = next(counter)
        sent_at = NOW - age
        defaults: dict[str, Any] = {
            "id": f"email_{n}",
            "workspace_id": context.workspace_id,
            "sender": sender,
            "subject": subject,
            "to": [context.user_email],
            "body": EmailBody(text=text, snippet=text[:80]),
            "message_id": f"msg_{n}",
            "thread_id": f"thread_{n}",
            "sent_at": sent_at,
            "labels": ["INBOX"],
            "created_by": context.user_id,
            "created_at": sent_at,
        }
        defaults.update(kwargs)
        return EmailRecord(**defaults)

    return _make
