"""Agent rules files rendered from the context tree.

Each domain becomes a ``##`` heading, each topic a ``###`` heading and each
subtopic a ``####`` heading, followed by the bodies of their documents.
Empty domains and topics are skipped.
"""

from __future__ import annotations

from pathlib import Path
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from bitranger.config import AgentIntegration, ProjectConfig
    from bitranger.context_tree.store import ContextTreeStore

AGENTS = ("cursor", "claude-code")

MERGE_SEPARATOR = "\n\n---\n\n"


def _documents(store: ContextTreeStore, domain: str, topic: str, subtopic: str | None) -> str:
    out = ""
    for filename in store.list_memories(domain, topic, subtopic):
        out += store.read_memory(domain, topic, filename, subtopic) + "\n\n"
    return out


def render_rules(store: ContextTreeStore) -> str:
    config = store.read_config()
    content = "# Project Rules for AI Assistants\n\n"
    content += f"Generated from bitranger context tree for {config.project_name}\n\n"

    for domain in store.list_domains():
        sections = ""
        for topic in store.list_topics(domain):
            body = _documents(store, domain, topic, None)
            for subtopic in store.list_subtopics(domain, topic):
                sub_body = _documents(store, domain, topic, subtopic)
                if sub_body:
                    body += f"#### {subtopic}\n\n{sub_body}"
            if body:
                sections += f"### {topic}\n\n{body}"
        if sections:
            content += f"## {domain}\n\n{sections}"

    return content


def integration_for(config: ProjectConfig, agent: str) -> AgentIntegration:
    if agent == "cursor":
        return config.agents.cursor
    if agent == "claude-code":
        return config.agents.claude_code
    raise ValueError(f"Unknown agent type: {agent}")


def write_rules(path: Path, content: str, merge: bool = False) -> None:
    """Write a rules file. With ``merge`` an existing file is kept above a separator."""
    if merge and path.is_file():
        content = path.read_text(encoding="utf-8") + MERGE_SEPARATOR + content
    path.write_text(content, encoding="utf-8")
