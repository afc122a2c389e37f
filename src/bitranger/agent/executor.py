"""Tool executor — runs one tool request against the context tree.

Store failures are returned as ``Error: ...`` text inside the result so the
agent loop can hand them back to the engine as ordinary feedback.
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING

from bitranger.agent.tools import (
    Done,
    ListDomains,
    ListMemories,
    ListSubtopics,
    ListTopics,
    ReadFile,
    ReadMemory,
    ToolRequest,
    ToolResult,
    WriteMemory,
    tool_input,
    tool_name,
)
from bitranger.context_tree.relations import add_relations
from bitranger.context_tree.store import NamespacePath
from bitranger.errors import BitrangerError

if TYPE_CHECKING:
    from bitranger.context_tree.store import ContextTreeStore

logger = logging.getLogger(__name__)


def _bullets(heading: str, names: list[str]) -> str:
    if not names:
        return f"{heading}\n(none)"
    return heading + "\n" + "\n".join(f"- {name}" for name in names)


class ToolExecutor:
    """Bridges engine tool requests to ContextTreeStore operations."""

    def __init__(self, store: ContextTreeStore) -> None:
        self.store = store

    async def execute(self, request: ToolRequest) -> ToolResult:
        name = tool_name(request)
        try:
            output = self._run(request)
        except (BitrangerError, OSError) as e:
            logger.debug("Tool %s failed: %s", name, e)
            output = f"Error: {e}"
        return ToolResult(tool_name=name, input=tool_input(request), output=output)

    def _run(self, request: ToolRequest) -> str:
        store = self.store
        match request:
            case ListDomains():
                return _bullets("Available domains:", store.list_domains())

            case ListTopics(domain=domain):
                return _bullets(f"Topics in {domain} domain:", store.list_topics(domain))

            case ListSubtopics(domain=domain, topic=topic):
                return _bullets(
                    f"Subtopics in {domain}/{topic}:", store.list_subtopics(domain, topic)
                )

            case ListMemories(domain=domain, topic=topic, subtopic=subtopic):
                node = NamespacePath(domain, topic, subtopic)
                return _bullets(
                    f"Memories in {node}:", store.list_memories(domain, topic, subtopic)
                )

            case ReadMemory(domain=domain, topic=topic, filename=filename, subtopic=subtopic):
                return store.read_memory(domain, topic, filename, subtopic)

            case ReadFile(path=path):
                return store.read_file(path)

            case WriteMemory() as write:
                content = write.content
                if write.relations:
                    content = add_relations(content, list(write.relations))
                path = store.write_memory(
                    write.domain, write.topic, write.filename, content, write.subtopic
                )
                verb = "created" if write.action == "create" else "updated"
                node = NamespacePath(write.domain, write.topic, write.subtopic)
                return f"Successfully {verb} memory: {node}/{path.name}"

            case Done():
                return "Done"

        raise BitrangerError(f"Unknown tool request: {request!r}")
