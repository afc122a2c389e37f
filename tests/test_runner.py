"""Tests for the agent loop (scripted engines, no network)."""

from __future__ import annotations

from pathlib import Path

import pytest

from bitranger.agent.runner import AgentRunner, CurateResult, QueryResult, result_to_dict
from bitranger.agent.tools import (
    AgentMessage,
    Done,
    ListDomains,
    ListTopics,
    ReadMemory,
    RetrievedContext,
    ToolRequest,
    WriteMemory,
)
from bitranger.config import ContextTreeSettings, ProjectConfig
from bitranger.context_tree.store import ContextTreeStore
from bitranger.errors import EngineError


class ScriptedEngine:
    """Replays a fixed list of requests; may compute them from the history."""

    def __init__(self, script: list) -> None:
        self._script = list(script)
        self.calls: list[dict] = []

    @property
    def name(self) -> str:
        return "scripted"

    def _next(self, history: list[AgentMessage]) -> ToolRequest:
        item = self._script.pop(0)
        if isinstance(item, Exception):
            raise item
        return item(history) if callable(item) else item

    async def curate_step(self, content, *, domain_hint, topic_hint, tree_structure, history):
        self.calls.append(
            {
                "content": content,
                "domain_hint": domain_hint,
                "topic_hint": topic_hint,
                "tree": tree_structure,
                "history": list(history),
            }
        )
        return self._next(history)

    async def query_step(self, query, *, domain_filter, tree_structure, history):
        self.calls.append(
            {
                "query": query,
                "domain_filter": domain_filter,
                "tree": tree_structure,
                "history": list(history),
            }
        )
        return self._next(history)


class LoopingEngine(ScriptedEngine):
    """Never signals Done."""

    def __init__(self) -> None:
        super().__init__([])

    def _next(self, history):
        return ListDomains()


@pytest.fixture
def store(tmp_path: Path) -> ContextTreeStore:
    s = ContextTreeStore(tmp_path)
    s.initialize(ProjectConfig(context_tree=ContextTreeSettings(default_domains=["testing"])))
    return s


def _done_from_last_read(history: list[AgentMessage]) -> Done:
    body = history[-1].content.split("Output:\n", 1)[1]
    return Done(
        summary="Tests must be deterministic.",
        results=(RetrievedContext("testing", "unit", "context.md", body),),
    )


class TestQuery:
    @pytest.mark.asyncio
    async def test_end_to_end(self, store: ContextTreeStore):
        store.write_memory("testing", "unit", "context.md", "no flaky tests")
        engine = ScriptedEngine(
            [ListDomains(), ReadMemory(domain="testing", topic="unit"), _done_from_last_read]
        )
        result = await AgentRunner(store, engine).query("how do we test?")

        assert isinstance(result, QueryResult)
        assert result.success is True
        assert result.iterations == 3
        assert result.error is None
        assert len(result.results) == 1
        assert "no flaky tests" in result.results[0].relevant_content
        assert [c.tool_name for c in result.tool_calls] == ["ListDomains", "ReadMemory"]

    @pytest.mark.asyncio
    async def test_history_feedback(self, store: ContextTreeStore):
        engine = ScriptedEngine([ListDomains(), Done()])
        await AgentRunner(store, engine).query("q", domain_filter="testing")

        assert engine.calls[0]["history"] == []
        assert engine.calls[0]["domain_filter"] == "testing"
        feedback = engine.calls[1]["history"]
        assert len(feedback) == 1
        assert feedback[0].role == "feedback"
        assert feedback[0].content == (
            "Tool: ListDomains\nInput: {}\nOutput:\nAvailable domains:\n- testing"
        )

    @pytest.mark.asyncio
    async def test_tree_snapshot_fixed_for_run(self, store: ContextTreeStore):
        engine = ScriptedEngine(
            [WriteMemory(domain="testing", topic="unit", content="x"), Done()]
        )
        await AgentRunner(store, engine).curate("x")
        assert engine.calls[0]["tree"] == engine.calls[1]["tree"]
        assert "unit" not in engine.calls[1]["tree"]

    @pytest.mark.asyncio
    async def test_exhaustion(self, store: ContextTreeStore):
        result = await AgentRunner(store, LoopingEngine()).query("never ends")
        assert result.success is False
        assert result.iterations == 20
        assert len(result.tool_calls) == 20
        assert result.error == "Maximum iterations reached without completion"
        assert result.results == []

    @pytest.mark.asyncio
    async def test_custom_cap(self, store: ContextTreeStore):
        result = await AgentRunner(store, LoopingEngine(), max_iterations=3).query("q")
        assert result.iterations == 3
        assert len(result.tool_calls) == 3


class TestCurate:
    @pytest.mark.asyncio
    async def test_written_files_tracked(self, store: ContextTreeStore):
        engine = ScriptedEngine(
            [
                ListTopics(domain="testing"),
                WriteMemory(domain="testing", topic="unit", content="no flaky tests"),
                WriteMemory(
                    domain="testing",
                    topic="unit",
                    subtopic="mocks",
                    content="prefer fakes",
                    action="update",
                ),
                Done(summary="stored"),
            ]
        )
        result = await AgentRunner(store, engine).curate("content", "testing", "unit")

        assert isinstance(result, CurateResult)
        assert result.success is True
        assert result.iterations == 4
        assert result.summary == "stored"
        assert [(f.topic, f.subtopic, f.action) for f in result.written_files] == [
            ("unit", None, "create"),
            ("unit", "mocks", "update"),
        ]
        assert store.read_memory("testing", "unit", "context.md") == "no flaky tests"
        assert engine.calls[0]["domain_hint"] == "testing"
        assert engine.calls[0]["topic_hint"] == "unit"

    @pytest.mark.asyncio
    async def test_failed_write_not_tracked(self, store: ContextTreeStore):
        engine = ScriptedEngine(
            [WriteMemory(domain="..", topic="unit", content="x"), Done()]
        )
        result = await AgentRunner(store, engine).curate("x")
        assert result.success is True
        assert result.written_files == []
        assert result.tool_calls[0].is_error

    @pytest.mark.asyncio
    async def test_engine_fault_keeps_partial_progress(self, store: ContextTreeStore):
        engine = ScriptedEngine(
            [
                WriteMemory(domain="testing", topic="unit", content="kept"),
                EngineError("Anthropic API error: overloaded"),
            ]
        )
        result = await AgentRunner(store, engine).curate("x")

        assert result.success is False
        assert result.error == "Anthropic API error: overloaded"
        assert result.iterations == 1
        assert len(result.tool_calls) == 1
        assert len(result.written_files) == 1
        assert store.read_memory("testing", "unit", "context.md") == "kept"

    @pytest.mark.asyncio
    async def test_undecodable_memory_is_feedback(self, store: ContextTreeStore):
        path = store.write_memory("testing", "unit", "context.md", "x")
        path.write_bytes(b"caf\xe9")
        engine = ScriptedEngine([ReadMemory(domain="testing", topic="unit"), Done()])
        result = await AgentRunner(store, engine).query("q")

        assert result.success is True
        assert result.iterations == 2
        assert result.tool_calls[0].is_error
        assert "not UTF-8" in result.tool_calls[0].output

    @pytest.mark.asyncio
    async def test_programming_error_propagates(self, store: ContextTreeStore):
        engine = ScriptedEngine([TypeError("bad stub")])
        with pytest.raises(TypeError, match="bad stub"):
            await AgentRunner(store, engine).curate("x")

    @pytest.mark.asyncio
    async def test_exhaustion_preserves_writes(self, store: ContextTreeStore):
        script = [WriteMemory(domain="testing", topic=f"t{i}", content="x") for i in range(5)]
        result = await AgentRunner(store, ScriptedEngine(script), max_iterations=5).curate("x")
        assert result.success is False
        assert result.iterations == 5
        assert len(result.written_files) == 5


class TestResultToDict:
    def test_curate(self):
        result = CurateResult(success=True, iterations=1)
        assert result_to_dict(result) == {
            "success": True,
            "iterations": 1,
            "toolCalls": [],
            "writtenFiles": [],
        }

    def test_query(self):
        result = QueryResult(
            success=True,
            iterations=2,
            results=[RetrievedContext("testing", "unit", "context.md", "body")],
            summary="s",
        )
        data = result_to_dict(result)
        assert data["results"] == [
            {
                "domain": "testing",
                "topic": "unit",
                "filename": "context.md",
                "relevantContent": "body",
            }
        ]
        assert data["summary"] == "s"
