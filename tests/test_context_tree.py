"""Tests for the context tree store."""

from __future__ import annotations

import json
from pathlib import Path

import pytest

from bitranger.config import ContextTreeSettings, ProjectConfig
from bitranger.context_tree.store import ContextTreeStore, NamespacePath
from bitranger.errors import (
    AlreadyInitializedError,
    BitrangerError,
    MemoryNotFoundError,
    NotInitializedError,
    UnreadableFileError,
)


def _config(*domains: str) -> ProjectConfig:
    return ProjectConfig(context_tree=ContextTreeSettings(default_domains=list(domains)))


@pytest.fixture
def store(tmp_path: Path) -> ContextTreeStore:
    s = ContextTreeStore(tmp_path / "repo")
    s.repo_root.mkdir()
    s.initialize(_config("testing", "code_style"))
    return s


class TestInitialize:
    def test_not_initialized(self, tmp_path: Path):
        assert ContextTreeStore(tmp_path).is_initialized() is False

    def test_creates_domains_and_config(self, store: ContextTreeStore):
        assert store.is_initialized()
        assert (store.root / "testing").is_dir()
        assert (store.root / "code_style").is_dir()
        data = json.loads(store.config_path.read_text(encoding="utf-8"))
        assert data["contextTree"]["defaultDomains"] == ["testing", "code_style"]
        assert data["agents"]["claudeCode"]["rulesFile"] == ".claude-code-rules.md"
        assert data["projectName"] == "repo"

    def test_reinitialize_rejected(self, store: ContextTreeStore):
        with pytest.raises(AlreadyInitializedError):
            store.initialize(_config("other"))
        assert not (store.root / "other").exists()

    def test_default_domains(self, tmp_path: Path):
        s = ContextTreeStore(tmp_path)
        config = s.initialize()
        assert "bug_fixes" in config.context_tree.default_domains
        assert "bug_fixes" in s.list_domains()

    def test_read_config_requires_init(self, tmp_path: Path):
        with pytest.raises(NotInitializedError):
            ContextTreeStore(tmp_path).read_config()

    def test_update_config(self, store: ContextTreeStore):
        store.update_config(git_tracking=True, project_name="renamed")
        config = store.read_config()
        assert config.git_tracking is True
        assert config.project_name == "renamed"
        assert config.context_tree.default_domains == ["testing", "code_style"]


class TestListing:
    def test_domains_sorted(self, store: ContextTreeStore):
        assert store.list_domains() == ["code_style", "testing"]

    def test_missing_root_is_empty(self, tmp_path: Path):
        s = ContextTreeStore(tmp_path / "nowhere")
        assert s.list_domains() == []
        assert s.list_topics("x") == []
        assert s.list_subtopics("x", "y") == []
        assert s.list_memories("x", "y") == []

    def test_hidden_and_node_modules_skipped(self, store: ContextTreeStore):
        (store.root / "node_modules").mkdir()
        (store.root / ".git").mkdir()
        assert store.list_domains() == ["code_style", "testing"]

    def test_topics_and_subtopics(self, store: ContextTreeStore):
        store.write_memory("testing", "unit", "context.md", "a")
        store.write_memory("testing", "integration", "context.md", "b")
        store.write_memory("testing", "integration", "context.md", "c", subtopic="api-tests")
        assert store.list_topics("testing") == ["integration", "unit"]
        assert store.list_subtopics("testing", "integration") == ["api-tests"]

    def test_memories_only_markdown(self, store: ContextTreeStore):
        store.write_memory("testing", "unit", "b", "x")
        store.write_memory("testing", "unit", "a.md", "x")
        (store.root / "testing" / "unit" / "notes.txt").write_text("x")
        assert store.list_memories("testing", "unit") == ["a.md", "b.md"]


class TestReadWrite:
    def test_round_trip(self, store: ContextTreeStore):
        store.write_memory("testing", "unit", "context.md", "no flaky tests")
        assert store.read_memory("testing", "unit", "context.md") == "no flaky tests"

    def test_extension_normalized(self, store: ContextTreeStore):
        store.write_memory("testing", "unit", "context", "body")
        assert store.read_memory("testing", "unit", "context") == "body"
        assert store.list_memories("testing", "unit") == ["context.md"]

    def test_overwrite(self, store: ContextTreeStore):
        store.write_memory("testing", "unit", "context.md", "old")
        store.write_memory("testing", "unit", "context.md", "new")
        assert store.read_memory("testing", "unit", "context.md") == "new"

    def test_no_temp_file_left(self, store: ContextTreeStore):
        store.write_memory("testing", "unit", "context.md", "body")
        names = [p.name for p in (store.root / "testing" / "unit").iterdir()]
        assert names == ["context.md"]

    def test_creates_new_domain(self, store: ContextTreeStore):
        store.write_memory("design", "colors", "context.md", "blue", subtopic="palette")
        assert store.read_memory("design", "colors", "context.md", subtopic="palette") == "blue"
        assert "design" in store.list_domains()

    def test_read_missing(self, store: ContextTreeStore):
        with pytest.raises(MemoryNotFoundError, match="testing/unit/context.md"):
            store.read_memory("testing", "unit", "context.md")

    def test_memory_exists(self, store: ContextTreeStore):
        assert not store.memory_exists("testing", "unit", "context.md")
        store.write_memory("testing", "unit", "context.md", "x")
        assert store.memory_exists("testing", "unit", "context")

    def test_rejects_traversal_segment(self, store: ContextTreeStore):
        with pytest.raises(BitrangerError):
            store.write_memory("..", "unit", "context.md", "x")

    def test_delete_missing(self, store: ContextTreeStore):
        with pytest.raises(MemoryNotFoundError):
            store.delete_memory("testing", "unit", "context.md")


class TestReadFile:
    def test_reads_project_file(self, store: ContextTreeStore):
        (store.repo_root / "src").mkdir()
        (store.repo_root / "src" / "app.py").write_text("print('hi')\n", encoding="utf-8")
        assert store.read_file("src/app.py") == "print('hi')\n"

    def test_missing(self, store: ContextTreeStore):
        with pytest.raises(MemoryNotFoundError, match="nope.py"):
            store.read_file("nope.py")

    def test_outside_root(self, store: ContextTreeStore, tmp_path: Path):
        (tmp_path / "secret.txt").write_text("s")
        with pytest.raises(MemoryNotFoundError):
            store.read_file("../secret.txt")

    def test_binary_file(self, store: ContextTreeStore):
        (store.repo_root / "logo.png").write_bytes(b"\x89PNG\r\n\x1a\n")
        with pytest.raises(UnreadableFileError, match="logo.png"):
            store.read_file("logo.png")

    def test_non_utf8_memory(self, store: ContextTreeStore):
        path = store.write_memory("testing", "unit", "context.md", "x")
        path.write_bytes(b"caf\xe9")
        with pytest.raises(UnreadableFileError, match="testing/unit/context.md"):
            store.read_memory("testing", "unit", "context.md")


class TestClear:
    def _populate(self, store: ContextTreeStore) -> None:
        store.write_memory("testing", "unit", "context.md", "a")
        store.write_memory("testing", "unit", "extra.md", "b")
        store.write_memory("testing", "integration", "context.md", "c")
        store.write_memory("testing", "integration", "context.md", "d", subtopic="api-tests")
        store.write_memory("code_style", "naming", "context.md", "e")

    def test_clear_topic(self, store: ContextTreeStore):
        self._populate(store)
        assert store.clear_topic("testing", "integration") == 2
        assert store.list_topics("testing") == ["unit"]

    def test_clear_domain_counts_and_preserves_dir(self, store: ContextTreeStore):
        self._populate(store)
        expected = sum(
            len(store.list_memories("testing", t))
            + sum(
                len(store.list_memories("testing", t, s))
                for s in store.list_subtopics("testing", t)
            )
            for t in store.list_topics("testing")
        )
        assert store.clear_domain("testing") == expected == 4
        assert store.list_topics("testing") == []
        assert (store.root / "testing").is_dir()
        assert store.list_topics("code_style") == ["naming"]

    def test_clear_all(self, store: ContextTreeStore):
        self._populate(store)
        assert store.clear_all() == 5
        assert store.get_stats().context_files == 0
        assert store.list_domains() == ["code_style", "testing"]
        assert store.is_initialized()

    def test_clear_keeps_non_markdown(self, store: ContextTreeStore):
        store.write_memory("testing", "unit", "context.md", "a")
        (store.root / "testing" / "unit" / "fixture.json").write_text("{}")
        assert store.clear_topic("testing", "unit") == 1
        assert store.list_topics("testing") == ["unit"]


class TestStats:
    def test_empty_domain_agrees_with_listing(self, store: ContextTreeStore):
        stats = store.get_stats()
        info = {d.name: d for d in stats.domain_info}
        assert store.list_topics("testing") == []
        assert info["testing"].topics == 0
        assert info["testing"].files == 0
        assert stats.last_updated is None

    def test_counts_and_size(self, store: ContextTreeStore):
        store.write_memory("testing", "unit", "context.md", "12345")
        store.write_memory("testing", "unit", "context.md", "abc", subtopic="mocks")
        store.write_memory("code_style", "naming", "context.md", "xy")
        stats = store.get_stats()
        assert stats.domains == 2
        assert stats.topics == 2
        assert stats.context_files == 3
        assert stats.total_size == 10
        assert stats.last_updated is not None
        info = {d.name: d for d in stats.domain_info}
        assert info["testing"].files == 2


class TestTreeStructure:
    def test_domains_only(self, tmp_path: Path):
        s = ContextTreeStore(tmp_path)
        s.initialize(_config("b", "a"))
        assert s.get_tree_structure() == "context_tree/\n├── a/\n└── b/"

    def test_nested_connectors(self, tmp_path: Path):
        s = ContextTreeStore(tmp_path)
        s.initialize(_config("code_style", "testing"))
        s.write_memory("code_style", "naming", "context.md", "x")
        s.write_memory("code_style", "naming", "context.md", "x", subtopic="python")
        s.write_memory("testing", "unit", "context.md", "x")
        expected = "\n".join(
            [
                "context_tree/",
                "├── code_style/",
                "│   └── naming/",
                "│       ├── context.md",
                "│       └── python/",
                "│           └── context.md",
                "└── testing/",
                "    └── unit/",
                "        └── context.md",
            ]
        )
        assert s.get_tree_structure() == expected

    def test_deterministic(self, store: ContextTreeStore):
        store.write_memory("testing", "b", "context.md", "x")
        store.write_memory("testing", "a", "context.md", "x")
        assert store.get_tree_structure() == store.get_tree_structure()
        lines = store.get_tree_structure().splitlines()
        assert lines.index("    ├── a/") < lines.index("    └── b/")


class TestNamespacePath:
    def test_relation_token(self):
        assert NamespacePath("testing", "unit").relation == "@testing/unit"
        assert NamespacePath("testing", "unit", "mocks").relation == "@testing/unit/mocks"

    def test_structural_equality(self):
        assert NamespacePath("a", "b") == NamespacePath("a", "b", None)
        assert str(NamespacePath("a", "b", "c")) == "a/b/c"
