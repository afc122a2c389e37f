"""Agent runner — the bounded request/execute/feedback loop.

Each run:
1. Render the context tree once (the engine sees this snapshot for the whole run)
2. Ask the engine for one tool request
3. Stop on Done, otherwise execute it and append the result to the history
4. Give up after ``max_iterations`` tool calls

Both variants (curate, query) share the loop and differ only in the engine
entry point and in what the Done payload carries. Partial progress is always
returned, including on failure.
"""

from __future__ import annotations

import logging
from collections.abc import Awaitable, Callable
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any

from bitranger.agent.executor import ToolExecutor
from bitranger.agent.tools import (
    FEEDBACK_ROLE,
    AgentMessage,
    Done,
    RetrievedContext,
    ToolRequest,
    ToolResult,
    WriteMemory,
    format_tool_result,
    tool_name,
)
from bitranger.config import DEFAULT_MAX_ITERATIONS
from bitranger.errors import BitrangerError, MaxIterationsExceededError

if TYPE_CHECKING:
    from bitranger.context_tree.store import ContextTreeStore
    from bitranger.engines.base import Engine

logger = logging.getLogger(__name__)

# (tree_structure, history) -> next request
NextStep = Callable[[str, list[AgentMessage]], Awaitable[ToolRequest]]


@dataclass
class WrittenFile:
    domain: str
    topic: str
    filename: str
    action: str
    subtopic: str | None = None


@dataclass
class CurateResult:
    success: bool
    iterations: int
    error: str | None = None
    tool_calls: list[ToolResult] = field(default_factory=list)
    written_files: list[WrittenFile] = field(default_factory=list)
    summary: str = ""


@dataclass
class QueryResult:
    success: bool
    iterations: int
    results: list[RetrievedContext] = field(default_factory=list)
    summary: str = ""
    error: str | None = None
    tool_calls: list[ToolResult] = field(default_factory=list)


@dataclass
class _Run:
    """Mutable state of one loop run."""

    history: list[AgentMessage] = field(default_factory=list)
    tool_calls: list[ToolResult] = field(default_factory=list)
    written_files: list[WrittenFile] = field(default_factory=list)
    done: Done | None = None
    iterations: int = 0
    error: str | None = None

    @property
    def success(self) -> bool:
        return self.done is not None


class AgentRunner:
    """Drives the engine against a context tree."""

    def __init__(
        self,
        store: ContextTreeStore,
        engine: Engine,
        max_iterations: int = DEFAULT_MAX_ITERATIONS,
    ) -> None:
        self.store = store
        self.engine = engine
        self.max_iterations = max_iterations
        self.executor = ToolExecutor(store)

    # ── Public entry points ──────────────────────────────────

    async def curate(
        self,
        content: str,
        domain_hint: str | None = None,
        topic_hint: str | None = None,
    ) -> CurateResult:
        """Store ``content`` in the tree, letting the engine pick the location."""

        async def step(tree: str, history: list[AgentMessage]) -> ToolRequest:
            return await self.engine.curate_step(
                content,
                domain_hint=domain_hint,
                topic_hint=topic_hint,
                tree_structure=tree,
                history=history,
            )

        run = await self._run("curate", step)
        return CurateResult(
            success=run.success,
            iterations=run.iterations,
            error=run.error,
            tool_calls=run.tool_calls,
            written_files=run.written_files,
            summary=run.done.summary if run.done else "",
        )

    async def query(self, query: str, domain_filter: str | None = None) -> QueryResult:
        """Retrieve context relevant to ``query``."""

        async def step(tree: str, history: list[AgentMessage]) -> ToolRequest:
            return await self.engine.query_step(
                query,
                domain_filter=domain_filter,
                tree_structure=tree,
                history=history,
            )

        run = await self._run("query", step)
        return QueryResult(
            success=run.success,
            iterations=run.iterations,
            results=list(run.done.results) if run.done else [],
            summary=run.done.summary if run.done else "",
            error=run.error,
            tool_calls=run.tool_calls,
        )

    # ── The loop ─────────────────────────────────────────────

    async def _run(self, label: str, step: NextStep) -> _Run:
        run = _Run()
        logger.info("Starting %s run (max %d iterations)", label, self.max_iterations)

        try:
            tree = self.store.get_tree_structure()
            for i in range(self.max_iterations):
                logger.debug("Iteration %d: calling %s engine", i + 1, self.engine.name)
                request = await step(tree, run.history)
                logger.debug("Engine requested tool: %s", tool_name(request))

                if isinstance(request, Done):
                    run.done = request
                    run.iterations = i + 1
                    logger.info("%s run completed in %d iteration(s)", label, run.iterations)
                    return run

                result = await self.executor.execute(request)
                logger.debug("Tool result: %s", result.output[:100])
                run.history.append(
                    AgentMessage(role=FEEDBACK_ROLE, content=format_tool_result(result))
                )
                run.tool_calls.append(result)
                self._track_write(run, request, result)

            raise MaxIterationsExceededError(self.max_iterations)

        except MaxIterationsExceededError as e:
            logger.warning("%s run stopped: %s", label, e)
            run.iterations = e.max_iterations
            run.error = str(e)
        except (BitrangerError, OSError) as e:
            # Engine and store faults end the run; everything done so far is kept
            logger.error("%s run failed: %s", label, e)
            run.iterations = len(run.tool_calls)
            run.error = str(e)
        return run

    @staticmethod
    def _track_write(run: _Run, request: ToolRequest, result: ToolResult) -> None:
        if not isinstance(request, WriteMemory) or result.is_error:
            return
        run.written_files.append(
            WrittenFile(
                domain=request.domain,
                topic=request.topic,
                filename=request.filename,
                action=request.action,
                subtopic=request.subtopic,
            )
        )


def result_to_dict(result: CurateResult | QueryResult) -> dict[str, Any]:
    """JSON-friendly view of a run result (camelCase, as printed by the CLI)."""
    data: dict[str, Any] = {
        "success": result.success,
        "iterations": result.iterations,
        "toolCalls": [call.to_dict() for call in result.tool_calls],
    }
    if result.error:
        data["error"] = result.error
    if isinstance(result, CurateResult):
        data["writtenFiles"] = [
            {k: v for k, v in vars(f).items() if v is not None} for f in result.written_files
        ]
        if result.summary:
            data["summary"] = result.summary
    else:
        data["results"] = [
            {
                "domain": r.domain,
                "topic": r.topic,
                **({"subtopic": r.subtopic} if r.subtopic else {}),
                "filename": r.filename,
                "relevantContent": r.relevant_content,
            }
            for r in result.results
        ]
        data["summary"] = result.summary
    return data
