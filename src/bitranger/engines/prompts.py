"""Prompt templates and tool schemas for the curate/query agents."""

from __future__ import annotations

from typing import TYPE_CHECKING, Any

if TYPE_CHECKING:
    from bitranger.agent.tools import AgentMessage

CURATE_SYSTEM_PROMPT = """\
You are the curator of a project's context tree: a hierarchy of markdown
memories organised as domain/topic[/subtopic]/context.md.

Your job is to store the given content in the right place.

## Rules
- Call exactly one tool per turn. Tool results arrive in the next turn.
- Explore before writing: list domains and topics, read existing context.md
  files that may already cover the content.
- Prefer updating an existing context.md over creating a near-duplicate.
  When updating, write the full merged document, not just the new part.
- Use lowercase snake_case for domains; topics and subtopics may use hyphens.
- Link related nodes by passing relation tokens such as
  @code_style/error-handling or @testing/integration/api-tests.
- Call Done once the content is stored.
"""

QUERY_SYSTEM_PROMPT = """\
You answer questions from a project's context tree: a hierarchy of markdown
memories organised as domain/topic[/subtopic]/context.md.

## Rules
- Call exactly one tool per turn. Tool results arrive in the next turn.
- Navigate the tree, read the context.md files that look relevant, and follow
  the @domain/topic links in their Relations sections when useful.
- Never invent content. Only quote what you have read.
- Call Done with the relevant excerpts (most relevant first) and a short
  summary that answers the question.
"""

CURATE_TEMPLATE = """\
## Content to curate
{content}

## Hints
Domain: {domain_hint}
Topic: {topic_hint}

## Current context tree
{tree_structure}

## Previous tool results
{history}
"""

QUERY_TEMPLATE = """\
## Question
{query}

## Domain filter
{domain_filter}

## Current context tree
{tree_structure}

## Previous tool results
{history}
"""

# ── Tool schemas ─────────────────────────────────────────────


def _tool(name: str, description: str, properties: dict[str, Any], required: list[str]) -> dict:
    return {
        "name": name,
        "description": description,
        "input_schema": {"type": "object", "properties": properties, "required": required},
    }


_STR = {"type": "string"}
_NODE = {"domain": _STR, "topic": _STR}

_READ_TOOLS = [
    _tool("ListDomains", "List all domains in the context tree.", {}, []),
    _tool("ListTopics", "List topics within a domain.", {"domain": _STR}, ["domain"]),
    _tool("ListSubtopics", "List subtopics within a topic.", dict(_NODE), ["domain", "topic"]),
    _tool(
        "ListMemories",
        "List memory files in a topic or subtopic.",
        {**_NODE, "subtopic": _STR},
        ["domain", "topic"],
    ),
    _tool(
        "ReadMemory",
        "Read a memory file. filename defaults to context.md.",
        {**_NODE, "subtopic": _STR, "filename": _STR},
        ["domain", "topic"],
    ),
    _tool(
        "ReadFile",
        "Read a source file of the project, relative to the repository root.",
        {"path": _STR},
        ["path"],
    ),
]

CURATE_TOOLS = [
    *_READ_TOOLS,
    _tool(
        "WriteMemory",
        "Create or overwrite a memory file. filename defaults to context.md.",
        {
            **_NODE,
            "subtopic": _STR,
            "filename": _STR,
            "action": {"type": "string", "enum": ["create", "update"]},
            "content": _STR,
            "relations": {"type": "array", "items": _STR},
        },
        ["domain", "topic", "action", "content"],
    ),
    _tool("Done", "Signal that curation is complete.", {"summary": _STR}, []),
]

QUERY_TOOLS = [
    *_READ_TOOLS,
    _tool(
        "Done",
        "Return the retrieved context and finish.",
        {
            "results": {
                "type": "array",
                "items": {
                    "type": "object",
                    "properties": {
                        **_NODE,
                        "subtopic": _STR,
                        "filename": _STR,
                        "relevant_content": _STR,
                    },
                    "required": ["domain", "topic", "filename", "relevant_content"],
                },
            },
            "summary": _STR,
        },
        ["results", "summary"],
    ),
]


# ── Prompt building ──────────────────────────────────────────


def render_history(history: list[AgentMessage]) -> str:
    if not history:
        return "(none yet)"
    return "\n\n---\n\n".join(message.content for message in history)


def build_curate_prompt(
    content: str,
    domain_hint: str | None,
    topic_hint: str | None,
    tree_structure: str,
    history: list[AgentMessage],
) -> str:
    return CURATE_TEMPLATE.format(
        content=content,
        domain_hint=domain_hint or "(none)",
        topic_hint=topic_hint or "(none)",
        tree_structure=tree_structure,
        history=render_history(history),
    )


def build_query_prompt(
    query: str,
    domain_filter: str | None,
    tree_structure: str,
    history: list[AgentMessage],
) -> str:
    return QUERY_TEMPLATE.format(
        query=query,
        domain_filter=domain_filter or "(all domains)",
        tree_structure=tree_structure,
        history=render_history(history),
    )
