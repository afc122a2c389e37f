"""Context tree store — domain/topic/subtopic directories of markdown memories.

Markdown files are the source of truth. Nothing is cached: every listing,
stat and tree rendering reflects the disk at call time. There is no locking;
one writer per tree is assumed.
"""

from __future__ import annotations

import json
import logging
from dataclasses import dataclass, field, replace
from datetime import datetime
from pathlib import Path

from bitranger.config import ProjectConfig
from bitranger.errors import (
    AlreadyInitializedError,
    BitrangerError,
    MemoryNotFoundError,
    NotInitializedError,
    UnreadableFileError,
)

logger = logging.getLogger(__name__)

BITRANGER_DIR = ".bitranger"
CONFIG_FILENAME = "config.json"
CONTEXT_FILENAME = "context.md"
MEMORY_SUFFIX = ".md"

_IGNORED_DIRS = {"node_modules"}

_BRANCH = "├── "
_LAST_BRANCH = "└── "
_PIPE = "│   "
_SPACE = "    "


@dataclass(frozen=True)
class NamespacePath:
    """Location of a node in the tree. Identity is the tuple of segments."""

    domain: str
    topic: str
    subtopic: str | None = None

    @property
    def parts(self) -> tuple[str, ...]:
        if self.subtopic:
            return (self.domain, self.topic, self.subtopic)
        return (self.domain, self.topic)

    @property
    def relation(self) -> str:
        """The @domain/topic[/subtopic] token pointing at this node."""
        return "@" + "/".join(self.parts)

    def __str__(self) -> str:
        return "/".join(self.parts)


@dataclass
class DomainStats:
    name: str
    topics: int
    files: int


@dataclass
class TreeStats:
    domains: int = 0
    topics: int = 0
    context_files: int = 0
    total_size: int = 0
    last_updated: datetime | None = None
    domain_info: list[DomainStats] = field(default_factory=list)


def _normalize_filename(filename: str) -> str:
    return filename if filename.endswith(MEMORY_SUFFIX) else f"{filename}{MEMORY_SUFFIX}"


def _check_segment(segment: str) -> str:
    if not segment or segment in (".", "..") or "/" in segment or "\\" in segment:
        raise BitrangerError(f"Invalid path segment: {segment!r}")
    return segment


def _atomic_write(path: Path, content: str) -> None:
    # Write to tmp then rename so readers never see a partial file
    tmp = path.with_name(f".{path.name}.tmp")
    tmp.write_text(content, encoding="utf-8")
    tmp.replace(path)


def _branch(is_last: bool) -> str:
    return _LAST_BRANCH if is_last else _BRANCH


def _continuation(is_last: bool) -> str:
    return _SPACE if is_last else _PIPE


class ContextTreeStore:
    """Read/write access to a repository's context tree."""

    def __init__(self, repo_root: Path) -> None:
        self.repo_root = Path(repo_root)

    @property
    def root(self) -> Path:
        """Namespace root; domains live directly below it."""
        return self.repo_root / BITRANGER_DIR

    @property
    def config_path(self) -> Path:
        return self.root / CONFIG_FILENAME

    # ── Initialization & config ──────────────────────────────

    def is_initialized(self) -> bool:
        return self.config_path.is_file()

    def initialize(self, config: ProjectConfig | None = None) -> ProjectConfig:
        """Create the tree and write config.json. Never merges into an existing tree."""
        if self.is_initialized():
            raise AlreadyInitializedError(self.repo_root)

        config = config or ProjectConfig()
        if not config.project_name:
            config = replace(config, project_name=self.repo_root.resolve().name)

        self.root.mkdir(parents=True, exist_ok=True)
        for domain in config.context_tree.default_domains:
            (self.root / _check_segment(domain)).mkdir(exist_ok=True)

        self._write_config(config)
        logger.info(
            "Initialized context tree at %s (%d domains)",
            self.root,
            len(config.context_tree.default_domains),
        )
        return config

    def read_config(self) -> ProjectConfig:
        if not self.is_initialized():
            raise NotInitializedError(self.repo_root)
        data = json.loads(self.config_path.read_text(encoding="utf-8"))
        return ProjectConfig.from_dict(data)

    def update_config(self, **changes) -> ProjectConfig:
        """Shallow-merge top-level ProjectConfig fields and rewrite config.json."""
        config = replace(self.read_config(), **changes)
        self._write_config(config)
        return config

    def _write_config(self, config: ProjectConfig) -> None:
        _atomic_write(self.config_path, json.dumps(config.to_dict(), indent=2))

    # ── Paths ────────────────────────────────────────────────

    def _node_dir(self, domain: str, topic: str | None = None, subtopic: str | None = None) -> Path:
        path = self.root / _check_segment(domain)
        if topic is not None:
            path = path / _check_segment(topic)
        if subtopic:
            path = path / _check_segment(subtopic)
        return path

    def _memory_path(
        self, domain: str, topic: str, filename: str, subtopic: str | None = None
    ) -> Path:
        return self._node_dir(domain, topic, subtopic) / _check_segment(
            _normalize_filename(filename)
        )

    # ── Listing ──────────────────────────────────────────────

    def _list_dirs(self, path: Path) -> list[str]:
        try:
            return sorted(
                entry.name
                for entry in path.iterdir()
                if entry.is_dir()
                and not entry.name.startswith(".")
                and entry.name not in _IGNORED_DIRS
            )
        except (FileNotFoundError, NotADirectoryError):
            return []

    def list_domains(self) -> list[str]:
        return self._list_dirs(self.root)

    def list_topics(self, domain: str) -> list[str]:
        return self._list_dirs(self._node_dir(domain))

    def list_subtopics(self, domain: str, topic: str) -> list[str]:
        return self._list_dirs(self._node_dir(domain, topic))

    def list_memories(self, domain: str, topic: str, subtopic: str | None = None) -> list[str]:
        """Markdown documents directly inside a topic (or subtopic)."""
        path = self._node_dir(domain, topic, subtopic)
        try:
            return sorted(
                entry.name
                for entry in path.iterdir()
                if entry.is_file()
                and entry.name.endswith(MEMORY_SUFFIX)
                and not entry.name.startswith(".")
            )
        except (FileNotFoundError, NotADirectoryError):
            return []

    def _iter_documents(self, domain: str, topic: str) -> list[tuple[str | None, str]]:
        """(subtopic, filename) for every document under a topic, subtopics included."""
        documents: list[tuple[str | None, str]] = [
            (None, name) for name in self.list_memories(domain, topic)
        ]
        for subtopic in self.list_subtopics(domain, topic):
            documents.extend((subtopic, name) for name in self.list_memories(domain, topic, subtopic))
        return documents

    # ── Documents ────────────────────────────────────────────

    def memory_exists(
        self, domain: str, topic: str, filename: str, subtopic: str | None = None
    ) -> bool:
        return self._memory_path(domain, topic, filename, subtopic).is_file()

    def read_memory(
        self, domain: str, topic: str, filename: str, subtopic: str | None = None
    ) -> str:
        path = self._memory_path(domain, topic, filename, subtopic)
        try:
            return path.read_text(encoding="utf-8")
        except (FileNotFoundError, IsADirectoryError, NotADirectoryError):
            rel = path.relative_to(self.root)
            raise MemoryNotFoundError(f"Memory not found: {rel}") from None
        except UnicodeDecodeError as e:
            rel = path.relative_to(self.root)
            raise UnreadableFileError(f"Memory is not UTF-8 text: {rel} ({e.reason})") from e

    def write_memory(
        self,
        domain: str,
        topic: str,
        filename: str,
        content: str,
        subtopic: str | None = None,
    ) -> Path:
        """Create or overwrite a document, creating missing directories."""
        path = self._memory_path(domain, topic, filename, subtopic)
        path.parent.mkdir(parents=True, exist_ok=True)
        _atomic_write(path, content)
        logger.info("Wrote memory %s (%d chars)", path.relative_to(self.root), len(content))
        return path

    def delete_memory(
        self, domain: str, topic: str, filename: str, subtopic: str | None = None
    ) -> int:
        path = self._memory_path(domain, topic, filename, subtopic)
        try:
            path.unlink()
        except FileNotFoundError:
            raise MemoryNotFoundError(
                f"Memory not found: {path.relative_to(self.root)}"
            ) from None
        logger.debug("Deleted memory %s", path.relative_to(self.root))
        return 1

    def read_file(self, relative_path: str) -> str:
        """Read a project file (relative to the repo root, not the tree)."""
        root = self.repo_root.resolve()
        path = (root / relative_path).resolve()
        if not path.is_relative_to(root):
            raise MemoryNotFoundError(f"File not found: {relative_path} (outside project root)")
        try:
            return path.read_text(encoding="utf-8")
        except (FileNotFoundError, IsADirectoryError, NotADirectoryError):
            raise MemoryNotFoundError(f"File not found: {relative_path}") from None
        except UnicodeDecodeError as e:
            raise UnreadableFileError(f"File is not UTF-8 text: {relative_path} ({e.reason})") from e

    # ── Clearing ─────────────────────────────────────────────

    def clear_topic(self, domain: str, topic: str) -> int:
        """Delete every document in a topic and its subtopics. Returns count removed."""
        count = 0
        for subtopic, filename in self._iter_documents(domain, topic):
            count += self.delete_memory(domain, topic, filename, subtopic)
        self._prune_empty_dirs(domain, topic)
        return count

    def clear_domain(self, domain: str) -> int:
        """Delete every document in a domain. The domain directory itself is kept."""
        count = sum(self.clear_topic(domain, topic) for topic in self.list_topics(domain))
        logger.info("Cleared %d memories from domain %s", count, domain)
        return count

    def clear_all(self) -> int:
        count = sum(self.clear_domain(domain) for domain in self.list_domains())
        logger.info("Cleared %d memories from context tree", count)
        return count

    def _prune_empty_dirs(self, domain: str, topic: str) -> None:
        for subtopic in self.list_subtopics(domain, topic):
            path = self._node_dir(domain, topic, subtopic)
            if not any(path.iterdir()):
                path.rmdir()
        path = self._node_dir(domain, topic)
        if path.is_dir() and not any(path.iterdir()):
            path.rmdir()

    # ── Stats & rendering ────────────────────────────────────

    def get_stats(self) -> TreeStats:
        """Full traversal. Raises on any filesystem error rather than undercounting."""
        stats = TreeStats()
        latest: float | None = None

        for domain in self.list_domains():
            topics = self.list_topics(domain)
            files = 0
            for topic in topics:
                for subtopic, filename in self._iter_documents(domain, topic):
                    st = self._memory_path(domain, topic, filename, subtopic).stat()
                    stats.total_size += st.st_size
                    latest = st.st_mtime if latest is None else max(latest, st.st_mtime)
                    files += 1
            stats.topics += len(topics)
            stats.context_files += files
            stats.domain_info.append(DomainStats(name=domain, topics=len(topics), files=files))

        stats.domains = len(stats.domain_info)
        if latest is not None:
            stats.last_updated = datetime.fromtimestamp(latest)
        return stats

    def get_tree_structure(self) -> str:
        """Render the tree with box-drawing connectors, sorted at every level."""
        lines = ["context_tree/"]

        domains = self.list_domains()
        for i, domain in enumerate(domains):
            last_domain = i == len(domains) - 1
            lines.append(f"{_branch(last_domain)}{domain}/")
            domain_indent = _continuation(last_domain)

            topics = self.list_topics(domain)
            for j, topic in enumerate(topics):
                last_topic = j == len(topics) - 1
                lines.append(f"{domain_indent}{_branch(last_topic)}{topic}/")
                topic_indent = domain_indent + _continuation(last_topic)

                # Documents and subtopic directories share one sorted level
                children = [(name, False) for name in self.list_memories(domain, topic)]
                children += [(name, True) for name in self.list_subtopics(domain, topic)]
                children.sort()
                for k, (name, is_subtopic) in enumerate(children):
                    last_child = k == len(children) - 1
                    if not is_subtopic:
                        lines.append(f"{topic_indent}{_branch(last_child)}{name}")
                        continue
                    lines.append(f"{topic_indent}{_branch(last_child)}{name}/")
                    subtopic_indent = topic_indent + _continuation(last_child)

                    memories = self.list_memories(domain, topic, name)
                    for m, memory in enumerate(memories):
                        lines.append(f"{subtopic_indent}{_branch(m == len(memories) - 1)}{memory}")

        return "\n".join(lines)
