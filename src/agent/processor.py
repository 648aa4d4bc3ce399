"""Command processor — parse, normalise, dispatch, and never raise."""

from __future__ import annotations

import logging
from collections.abc import Awaitable, Callable
from datetime import datetime
from typing import Any

from src.agent.handlers import CommandHandlers, ProviderFactory
from src.agent.results import CommandError, CommandResult, ErrorKind, ValidationError
from src.mail.types import CommandContext, utcnow
from src.processing.completion import CompletionClient
from src.processing.extraction import InsightEngine
from src.processing.parser import IntentParser
from src.processing.types import ActionKind, ParsedCommand
from src.storage.query import DEFAULT_SEARCH_LIMIT, EmailIndex, QueryBuilder

logger = logging.getLogger(__name__)

Handler = Callable[[ParsedCommand, CommandContext], Awaitable[CommandResult]]

_INTERNAL_ERROR_MESSAGE = "Something went wrong while processing your command. Please try again."


class CommandProcessor:
    """Entry point: free-form command text in, CommandResult out.

    A confirmation payload ``{"action": "send", "draft": {...}}`` skips the
    parser and sends the echoed draft; it is the only path that sends mail.
    Everything else is parsed, its action normalised to a canonical kind,
    and dispatched through a registry built once here.

    Usage::

        processor = CommandProcessor(parser, db, completion, provider_factory)
        result = await processor.process_command("archive emails from yesterday", context)
    """

    def __init__(
        self,
        parser: IntentParser,
        index: EmailIndex,
        completion: CompletionClient,
        provider_factory: ProviderFactory,
        *,
        now: Callable[[], datetime] = utcnow,
        search_limit: int = DEFAULT_SEARCH_LIMIT,
    ) -> None:
        self._parser = parser
        query = QueryBuilder(index, now=now, limit=search_limit)
        self._handlers = CommandHandlers(
            query, InsightEngine(completion, query), completion, provider_factory
        )
        self._registry: dict[ActionKind, Handler] = {
            ActionKind.SEND_EMAIL: self._handlers.compose,
            ActionKind.SEARCH_EMAILS: self._handlers.search,
            ActionKind.SUMMARIZE: self._handlers.summarize,
            ActionKind.DRAFT_REPLY: self._handlers.reply,
            ActionKind.FORWARD: self._handlers.forward,
            ActionKind.BULK_ACTION: self._handlers.bulk_action,
            ActionKind.EXTRACT_INFO: self._handlers.extract,
            ActionKind.ANALYZE: self._handlers.analyze,
            ActionKind.UNKNOWN: self._handlers.unknown,
        }

    def handler_for(self, action: ActionKind) -> Handler:
        """Return the handler an action (or its alias) is routed to."""
        return self._registry.get(action.canonical(), self._handlers.unknown)

    async def process_command(
        self,
        command: str,
        context: CommandContext,
        confirmation: dict[str, Any] | None = None,
    ) -> CommandResult:
        """Run one command to completion. Failures come back as error results."""
        label = "CONFIRMATION" if confirmation is not None else "UNPARSED"
        try:
            if confirmation is not None:
                result = await self._confirm(confirmation, context)
            else:
                parsed = await self._parser.parse(command)
                action = parsed.action.canonical()
                label = action.value
                result = await self.handler_for(action)(parsed, context)
        except CommandError as exc:
            logger.warning("Command %s failed (%s): %s", label, exc.kind.value, exc.message)
            result = CommandResult.from_error(exc)
        except Exception:  # noqa: BLE001
            logger.exception("Unexpected error while processing %s command", label)
            result = CommandResult.failure(ErrorKind.INTERNAL, _INTERNAL_ERROR_MESSAGE)

        logger.info(
            "Command %s in workspace %s → %s", label, context.workspace_id, result.type
        )
        return result

    async def _confirm(self, confirmation: dict[str, Any], context: CommandContext) -> CommandResult:
        action = str(confirmation.get("action") or "").strip().lower()
        if action == "send":
            return await self._handlers.send_draft(confirmation.get("draft"), context)
        if action == "cancel":
            return CommandResult(type="info", message="Draft discarded. Nothing was sent.")
        raise ValidationError(
            f"Unsupported confirmation action: {action or '(none)'}. Use 'send' or 'cancel'."
        )
