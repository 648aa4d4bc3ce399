"""Runtime configuration and the wiring that turns it into a CommandProcessor."""

from __future__ import annotations

import logging
import os
from dataclasses import dataclass, field
from pathlib import Path

from src.agent.processor import CommandProcessor
from src.mail.gmail_client import GmailAdapter
from src.mail.types import CommandContext
from src.processing.completion import (
    DEFAULT_PARSER_MODEL,
    DEFAULT_WRITER_MODEL,
    CompletionClient,
)
from src.processing.parser import IntentParser
from src.storage.db import EmailDatabase
from src.storage.query import DEFAULT_SEARCH_LIMIT

logger = logging.getLogger(__name__)


def _env_float(name: str, default: float) -> float:
    raw = os.environ.get(name, "")
    try:
        return float(raw) if raw else default
    except ValueError:
        logger.warning("Ignoring non-numeric %s=%r; using %s", name, raw, default)
        return default


def _env_int(name: str, default: int) -> int:
    raw = os.environ.get(name, "")
    try:
        return int(raw) if raw else default
    except ValueError:
        logger.warning("Ignoring non-integer %s=%r; using %s", name, raw, default)
        return default


@dataclass
class ProcessorConfig:
    """Everything needed to build a CommandProcessor."""

    anthropic_api_key: str = ""
    parser_model: str = DEFAULT_PARSER_MODEL
    writer_model: str = DEFAULT_WRITER_MODEL
    llm_timeout: float = 30.0
    provider_timeout: float = 30.0
    db_path: Path = field(default_factory=lambda: Path("data/mail_command.db"))
    search_limit: int = DEFAULT_SEARCH_LIMIT
    google_client_id: str = ""
    google_client_secret: str = ""

    @classmethod
    def from_env(cls) -> ProcessorConfig:
        """Build ProcessorConfig from environment variables."""
        return cls(
            anthropic_api_key=os.environ.get("ANTHROPIC_API_KEY", ""),
            parser_model=os.environ.get("MAIL_COMMAND_PARSER_MODEL", DEFAULT_PARSER_MODEL),
            writer_model=os.environ.get("MAIL_COMMAND_WRITER_MODEL", DEFAULT_WRITER_MODEL),
            llm_timeout=_env_float("MAIL_COMMAND_LLM_TIMEOUT_SECONDS", 30.0),
            provider_timeout=_env_float("MAIL_COMMAND_PROVIDER_TIMEOUT_SECONDS", 30.0),
            db_path=Path(os.environ.get("MAIL_COMMAND_DB_PATH", "data/mail_command.db")),
            search_limit=_env_int("MAIL_COMMAND_SEARCH_LIMIT", DEFAULT_SEARCH_LIMIT),
            google_client_id=os.environ.get("GOOGLE_OAUTH_CLIENT_ID", ""),
            google_client_secret=os.environ.get("GOOGLE_OAUTH_CLIENT_SECRET", ""),
        )


def build_processor(config: ProcessorConfig, db: EmailDatabase) -> CommandProcessor:
    """Wire a CommandProcessor whose Gmail adapters read credentials from ``db``."""
    completion = CompletionClient(
        config.anthropic_api_key or None,
        parser_model=config.parser_model,
        writer_model=config.writer_model,
        timeout=config.llm_timeout,
    )

    def provider_factory(context: CommandContext) -> GmailAdapter:
        return GmailAdapter(
            db,
            db,
            context,
            client_id=config.google_client_id,
            client_secret=config.google_client_secret,
            timeout=config.provider_timeout,
        )

    return CommandProcessor(
        IntentParser(completion),
        db,
        completion,
        provider_factory,
        search_limit=config.search_limit,
    )
