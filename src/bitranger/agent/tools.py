"""Tool protocol — request/result types + parsing (no I/O).

The reasoning engine answers every turn with exactly one tool request:
- Parse: engine tool name + input dict -> typed request dataclass
- Echo: typed request -> canonical JSON of its resolved fields
"""

from __future__ import annotations

import json
from dataclasses import asdict, dataclass
from typing import Any, Literal

from bitranger.context_tree.store import CONTEXT_FILENAME
from bitranger.errors import EngineError

FEEDBACK_ROLE = "feedback"


# ── Request types (engine -> dispatcher) ───────────────────────


@dataclass(frozen=True)
class ListDomains:
    pass


@dataclass(frozen=True)
class ListTopics:
    domain: str


@dataclass(frozen=True)
class ListSubtopics:
    domain: str
    topic: str


@dataclass(frozen=True)
class ListMemories:
    domain: str
    topic: str
    subtopic: str | None = None


@dataclass(frozen=True)
class ReadMemory:
    domain: str
    topic: str
    filename: str = CONTEXT_FILENAME
    subtopic: str | None = None


@dataclass(frozen=True)
class ReadFile:
    """Read a source file of the project, relative to the repo root."""

    path: str


@dataclass(frozen=True)
class WriteMemory:
    domain: str
    topic: str
    content: str
    action: Literal["create", "update"] = "create"
    filename: str = CONTEXT_FILENAME
    subtopic: str | None = None
    relations: tuple[str, ...] = ()


@dataclass(frozen=True)
class RetrievedContext:
    """One excerpt returned by a query run."""

    domain: str
    topic: str
    filename: str
    relevant_content: str
    subtopic: str | None = None


@dataclass(frozen=True)
class Done:
    """Completion signal. Query runs attach results and a summary."""

    summary: str = ""
    results: tuple[RetrievedContext, ...] = ()


ToolRequest = (
    ListDomains
    | ListTopics
    | ListSubtopics
    | ListMemories
    | ReadMemory
    | ReadFile
    | WriteMemory
    | Done
)


def tool_name(request: ToolRequest) -> str:
    return type(request).__name__


def tool_input(request: ToolRequest) -> str:
    """Canonical JSON echo of a request. Document bodies are left out."""
    data = asdict(request)
    data.pop("content", None)
    data = {k: v for k, v in data.items() if v not in (None, (), [])}
    return json.dumps(data, sort_keys=True, ensure_ascii=False)


# ── Result types (dispatcher -> loop) ──────────────────────────


@dataclass
class ToolResult:
    tool_name: str
    input: str
    output: str

    @property
    def is_error(self) -> bool:
        return self.output.startswith("Error:")

    def to_dict(self) -> dict[str, str]:
        return {"toolName": self.tool_name, "input": self.input, "output": self.output}


@dataclass
class AgentMessage:
    role: str
    content: str


def format_tool_result(result: ToolResult) -> str:
    """Render a result the way it is fed back to the engine."""
    return f"Tool: {result.tool_name}\nInput: {result.input}\nOutput:\n{result.output}"


# ── Parsing (engine payload -> typed request) ─────────────────


def _require(data: dict[str, Any], name: str, key: str) -> str:
    value = data.get(key)
    if not isinstance(value, str) or not value:
        raise EngineError(f"{name} requires a non-empty '{key}'")
    return value


def _optional(data: dict[str, Any], key: str) -> str | None:
    value = data.get(key)
    return value if isinstance(value, str) and value else None


def _relations(value: Any) -> tuple[str, ...]:
    if value is None:
        return ()
    if isinstance(value, str):
        return (value,) if value else ()
    if isinstance(value, list) and all(isinstance(v, str) for v in value):
        return tuple(value)
    raise EngineError(f"WriteMemory relations must be a list of strings, got {value!r}")


def _parse_result(item: dict[str, Any]) -> RetrievedContext:
    return RetrievedContext(
        domain=item.get("domain", ""),
        topic=item.get("topic", ""),
        filename=item.get("filename", CONTEXT_FILENAME),
        relevant_content=item.get("relevant_content", item.get("relevantContent", "")),
        subtopic=_optional(item, "subtopic"),
    )


def parse_tool_request(name: str, data: dict[str, Any] | None = None) -> ToolRequest:
    """Build a typed request from an engine tool call.

    Raises EngineError for unknown tools or missing required fields.
    """
    data = data or {}

    if name == "ListDomains":
        return ListDomains()
    if name == "ListTopics":
        return ListTopics(domain=_require(data, name, "domain"))
    if name == "ListSubtopics":
        return ListSubtopics(
            domain=_require(data, name, "domain"),
            topic=_require(data, name, "topic"),
        )
    if name == "ListMemories":
        return ListMemories(
            domain=_require(data, name, "domain"),
            topic=_require(data, name, "topic"),
            subtopic=_optional(data, "subtopic"),
        )
    if name == "ReadMemory":
        return ReadMemory(
            domain=_require(data, name, "domain"),
            topic=_require(data, name, "topic"),
            filename=_optional(data, "filename") or CONTEXT_FILENAME,
            subtopic=_optional(data, "subtopic"),
        )
    if name == "ReadFile":
        return ReadFile(path=_require(data, name, "path"))
    if name == "WriteMemory":
        action = data.get("action", "create")
        if action not in ("create", "update"):
            raise EngineError(f"WriteMemory action must be 'create' or 'update', got {action!r}")
        content = data.get("content")
        if not isinstance(content, str):
            raise EngineError("WriteMemory requires 'content'")
        return WriteMemory(
            domain=_require(data, name, "domain"),
            topic=_require(data, name, "topic"),
            content=content,
            action=action,
            filename=_optional(data, "filename") or CONTEXT_FILENAME,
            subtopic=_optional(data, "subtopic"),
            relations=_relations(data.get("relations")),
        )
    if name == "Done":
        return Done(
            summary=data.get("summary") or "",
            results=tuple(_parse_result(item) for item in data.get("results") or ()),
        )

    raise EngineError(f"Unknown tool: {name}")
