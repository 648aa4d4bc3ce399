"""Thin async wrapper around the Anthropic Messages API."""

from __future__ import annotations

import logging
import os
from typing import Any

import anthropic
from anthropic import AsyncAnthropic
from anthropic.types import TextBlock, ToolUseBlock

logger = logging.getLogger(__name__)

# Haiku is fast and cheap enough to run on every command; writing drafts and
# summaries uses Sonnet.
DEFAULT_PARSER_MODEL = "claude-haiku-4-5-20251001"
DEFAULT_WRITER_MODEL = "claude-sonnet-4-6"
_MAX_TOKENS = 1024
_DEFAULT_TIMEOUT_SECONDS = 30.0


class CompletionError(Exception):
    """Raised when the Anthropic API call itself fails (transport, timeout, 4xx/5xx)."""


class CompletionClient:
    """Two kinds of call: forced tool use (structured) and plain text.

    Usage::

        client = CompletionClient()
        args = await client.call_tool(system, command, PARSE_COMMAND_TOOL)
        text = await client.complete(system, prompt)
    """

    def __init__(
        self,
        api_key: str | None = None,
        *,
        parser_model: str = DEFAULT_PARSER_MODEL,
        writer_model: str = DEFAULT_WRITER_MODEL,
        timeout: float = _DEFAULT_TIMEOUT_SECONDS,
        max_tokens: int = _MAX_TOKENS,
    ) -> None:
        self._client = AsyncAnthropic(
            api_key=api_key or os.environ.get("ANTHROPIC_API_KEY", ""),
            timeout=timeout,
            max_retries=0,
        )
        self._parser_model = parser_model
        self._writer_model = writer_model
        self._max_tokens = max_tokens

    async def call_tool(
        self, system: str, user: str, tool: dict[str, Any]
    ) -> dict[str, Any] | None:
        """Force a call to ``tool`` and return its input, or None if absent.

        Raises:
            CompletionError: if the API call fails.
        """
        response = await self._create(
            model=self._parser_model,
            system=system,
            tools=[tool],
            tool_choice={"type": "tool", "name": tool["name"]},
            messages=[{"role": "user", "content": user}],
        )
        for block in response.content:
            if isinstance(block, ToolUseBlock) and block.name == tool["name"]:
                return block.input if isinstance(block.input, dict) else None  # type: ignore[return-value]
        logger.warning(
            "No %s tool call in response (stop_reason=%r)", tool["name"], response.stop_reason
        )
        return None

    async def complete(self, system: str, user: str) -> str:
        """Return the text of a single-turn completion ("" if there is none).

        Raises:
            CompletionError: if the API call fails.
        """
        response = await self._create(
            model=self._writer_model,
            system=system,
            messages=[{"role": "user", "content": user}],
        )
        return "".join(
            block.text for block in response.content if isinstance(block, TextBlock)
        ).strip()

    async def _create(self, **kwargs: Any) -> Any:
        try:
            return await self._client.messages.create(max_tokens=self._max_tokens, **kwargs)
        except anthropic.APIError as exc:
            logger.error("Anthropic call failed (model=%s): %s", kwargs.get("model"), exc)
            raise CompletionError(str(exc)) from exc
