"""Relations between context documents.

A document links to other nodes through a ``## Relations`` section holding
``@domain/topic`` or ``@domain/topic/subtopic`` tokens, one per line. Links
are a best-effort overlay: the store never enforces them, and dangling ones
are dropped at validation time rather than treated as errors.
"""

from __future__ import annotations

import logging
import re
from dataclasses import dataclass
from typing import TYPE_CHECKING

from bitranger.context_tree.store import CONTEXT_FILENAME, NamespacePath
from bitranger.errors import BitrangerError, MalformedRelationError

if TYPE_CHECKING:
    from bitranger.context_tree.store import ContextTreeStore

logger = logging.getLogger(__name__)

# Section body runs until the next level-2 heading or end of document
_SECTION_RE = re.compile(
    r"^##[ \t]+Relations[ \t]*$(.*?)(?=^##(?!#)|\Z)",
    re.IGNORECASE | re.MULTILINE | re.DOTALL,
)

# Domains allow [a-z_]; topics and subtopics also allow hyphens
_TOKEN = r"@([a-z_]+)/([a-z_-]+)(?:/([a-z_-]+))?"
_TOKEN_RE = re.compile(_TOKEN, re.IGNORECASE)
_TOKEN_FULL_RE = re.compile(rf"^{_TOKEN}$", re.IGNORECASE)


@dataclass(frozen=True)
class Relation:
    """A relation token that resolved to an existing context document."""

    token: str
    path: NamespacePath


def extract_relations(content: str) -> list[str]:
    """All relation tokens in the Relations section, in document order, duplicates kept."""
    match = _SECTION_RE.search(content)
    if not match:
        return []
    return [m.group(0) for m in _TOKEN_RE.finditer(match.group(1))]


def resolve_relation_path(token: str) -> NamespacePath:
    match = _TOKEN_FULL_RE.match(token)
    if not match:
        raise MalformedRelationError(f"Malformed relation: {token!r}")
    domain, topic, subtopic = match.groups()
    return NamespacePath(domain=domain, topic=topic, subtopic=subtopic)


def validate_relation(token: str, store: ContextTreeStore) -> bool:
    """True iff the token resolves to a node holding a context.md."""
    try:
        path = resolve_relation_path(token)
        store.read_memory(path.domain, path.topic, CONTEXT_FILENAME, path.subtopic)
    except (BitrangerError, OSError):
        return False
    return True


def get_valid_relations(content: str, store: ContextTreeStore) -> list[Relation]:
    valid: list[Relation] = []
    for token in extract_relations(content):
        if not validate_relation(token, store):
            logger.debug("Dropping dangling relation %s", token)
            continue
        valid.append(Relation(token=token, path=resolve_relation_path(token)))
    return valid


def format_relations_section(tokens: list[str]) -> str:
    if not tokens:
        return ""
    return "\n## Relations\n" + "\n".join(tokens) + "\n"


def add_relations(content: str, new_tokens: list[str]) -> str:
    """Merge tokens into the Relations section and move it to the end.

    Existing tokens keep their order, new ones follow in the order given.
    Targets are not checked against the store.
    """
    merged = list(dict.fromkeys([*extract_relations(content), *new_tokens]))
    body = _SECTION_RE.sub("", content, count=1).strip()
    return body + format_relations_section(merged)
