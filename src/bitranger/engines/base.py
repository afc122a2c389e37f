"""Engine protocol — the reasoning engine behind the agent loop."""

from __future__ import annotations

from typing import TYPE_CHECKING, Protocol, runtime_checkable

if TYPE_CHECKING:
    from bitranger.agent.tools import AgentMessage, ToolRequest
    from bitranger.config import EngineConfig


@runtime_checkable
class Engine(Protocol):
    """Protocol that all engine backends must implement.

    Each call returns exactly one tool request. Failures are raised, not
    encoded in the return value.
    """

    @property
    def name(self) -> str: ...

    async def curate_step(
        self,
        content: str,
        *,
        domain_hint: str | None,
        topic_hint: str | None,
        tree_structure: str,
        history: list[AgentMessage],
    ) -> ToolRequest:
        """Decide the next tool call while storing ``content``."""
        ...

    async def query_step(
        self,
        query: str,
        *,
        domain_filter: str | None,
        tree_structure: str,
        history: list[AgentMessage],
    ) -> ToolRequest:
        """Decide the next tool call while answering ``query``."""
        ...


def create_engine(config: EngineConfig) -> Engine:
    """Build the engine named in the config."""
    if config.name == "anthropic_api":
        from bitranger.engines.anthropic_api import AnthropicAPIEngine

        return AnthropicAPIEngine(
            model=config.model,
            max_tokens=config.max_tokens,
            timeout=config.timeout,
        )
    raise ValueError(f"Unknown engine '{config.name}'. Available: ['anthropic_api']")
