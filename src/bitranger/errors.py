"""Exception types shared across the context tree, agent loop and CLI."""

from __future__ import annotations


class BitrangerError(Exception):
    """Base class for all bitranger errors."""


class NotInitializedError(BitrangerError):
    """No .bitranger/config.json under the repository root."""

    def __init__(self, repo_root: object) -> None:
        super().__init__(
            f"bitranger not initialized in {repo_root}. Run 'bitranger init' first"
        )


class AlreadyInitializedError(BitrangerError):
    """initialize() called on a tree that already has a config artifact."""

    def __init__(self, repo_root: object) -> None:
        super().__init__(f"bitranger is already initialized in {repo_root}")


class MemoryNotFoundError(BitrangerError):
    """A memory document or project file does not exist."""


class UnreadableFileError(BitrangerError):
    """A file exists but is not UTF-8 text."""


class MalformedRelationError(BitrangerError, ValueError):
    """A relation token does not match @domain/topic[/subtopic]."""


class MaxIterationsExceededError(BitrangerError):
    """The agent loop hit its iteration cap without a Done signal."""

    def __init__(self, max_iterations: int) -> None:
        self.max_iterations = max_iterations
        super().__init__("Maximum iterations reached without completion")


class EngineError(BitrangerError):
    """The reasoning engine failed or returned an unusable tool request."""
