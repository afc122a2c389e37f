"""Anthropic API engine — one forced tool call per turn."""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from typing import TYPE_CHECKING, Any

import anthropic

from bitranger.agent.tools import parse_tool_request
from bitranger.engines.prompts import (
    CURATE_SYSTEM_PROMPT,
    CURATE_TOOLS,
    QUERY_SYSTEM_PROMPT,
    QUERY_TOOLS,
    build_curate_prompt,
    build_query_prompt,
)
from bitranger.errors import EngineError

if TYPE_CHECKING:
    from bitranger.agent.tools import AgentMessage, ToolRequest

logger = logging.getLogger(__name__)


@dataclass
class AnthropicAPIEngine:
    """Direct Anthropic API via the `anthropic` SDK."""

    model: str = "claude-sonnet-4-5-20250929"
    max_tokens: int = 4096
    timeout: int = 120

    def __post_init__(self) -> None:
        self._client = anthropic.Anthropic(timeout=self.timeout)

    @property
    def name(self) -> str:
        return "anthropic_api"

    async def curate_step(
        self,
        content: str,
        *,
        domain_hint: str | None,
        topic_hint: str | None,
        tree_structure: str,
        history: list[AgentMessage],
    ) -> ToolRequest:
        prompt = build_curate_prompt(content, domain_hint, topic_hint, tree_structure, history)
        return await self._next_tool(CURATE_SYSTEM_PROMPT, prompt, CURATE_TOOLS)

    async def query_step(
        self,
        query: str,
        *,
        domain_filter: str | None,
        tree_structure: str,
        history: list[AgentMessage],
    ) -> ToolRequest:
        prompt = build_query_prompt(query, domain_filter, tree_structure, history)
        return await self._next_tool(QUERY_SYSTEM_PROMPT, prompt, QUERY_TOOLS)

    async def _next_tool(
        self, system_prompt: str, prompt: str, tools: list[dict[str, Any]]
    ) -> ToolRequest:
        kwargs: dict = {
            "model": self.model,
            "max_tokens": self.max_tokens,
            "system": system_prompt,
            "messages": [{"role": "user", "content": prompt}],
            "tools": tools,
            "tool_choice": {"type": "any"},
        }

        try:
            response = await asyncio.to_thread(self._client.messages.create, **kwargs)
        except anthropic.AnthropicError as e:
            logger.error("Anthropic API error: %s", e)
            raise EngineError(f"Anthropic API error: {e}") from e

        if response.usage:
            logger.debug(
                "[Tokens] Input: %d, Output: %d",
                response.usage.input_tokens,
                response.usage.output_tokens,
            )

        for block in response.content:
            if block.type == "tool_use":
                return parse_tool_request(block.name, dict(block.input or {}))
        raise EngineError("Engine response contained no tool call")
