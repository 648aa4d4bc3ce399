"""Intent parser: free-form command text → ParsedCommand."""

from __future__ import annotations

import logging
from typing import Any

from src.agent.results import ParseError
from src.processing.completion import CompletionClient, CompletionError
from src.processing.prompts import PARSE_COMMAND_TOOL, PARSER_SYSTEM_PROMPT
from src.processing.types import ActionKind, CommandParameters, ParsedCommand

logger = logging.getLogger(__name__)


class IntentParser:
    """Asks the completion service to classify a command via a forced tool call.

    No side effects and no retries. A missing or malformed tool call yields
    ``ActionKind.UNKNOWN``; a failed API call raises ParseError.

    Usage::

        parser = IntentParser(CompletionClient())
        parsed = await parser.parse("archive emails from yesterday")
    """

    def __init__(self, completion: CompletionClient) -> None:
        self._completion = completion

    async def parse(self, command: str) -> ParsedCommand:
        """Return the canonical intent for ``command``.

        Raises:
            ParseError: if the completion service cannot be reached.
        """
        try:
            data = await self._completion.call_tool(
                PARSER_SYSTEM_PROMPT, command, PARSE_COMMAND_TOOL
            )
        except CompletionError as exc:
            logger.warning("Parser call failed for %r: %s", command, exc)
            raise ParseError() from exc

        parsed = _parse_command(command, data)
        logger.info("Parsed %r → %s", command, parsed.action.value)
        return parsed


def _parse_command(command: str, data: dict[str, Any] | None) -> ParsedCommand:
    """Convert raw tool-call input into a ParsedCommand, defaulting to UNKNOWN."""
    if not isinstance(data, dict):
        return ParsedCommand(ActionKind.UNKNOWN, CommandParameters(), command)
    raw_params = data.get("parameters")
    params = (
        CommandParameters.from_dict(raw_params)
        if isinstance(raw_params, dict)
        else CommandParameters()
    )
    return ParsedCommand(ActionKind.coerce(data.get("action")), params, command)
