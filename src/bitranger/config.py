"""Configuration: the per-repo config.json artifact and runtime settings.

Two layers:

- ``ProjectConfig`` mirrors ``.bitranger/config.json`` (camelCase on disk).
  It is written by ``ContextTreeStore.initialize`` and ``update_config`` only.
- ``Settings`` controls the agent runtime (engine, model, iteration cap,
  log level), loaded from environment variables and ``bitranger.toml``.
"""

from __future__ import annotations

import os
import sys
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

if sys.version_info >= (3, 11):
    import tomllib
else:
    import tomli as tomllib

CONFIG_VERSION = "1.0.0"
DEFAULT_DOMAINS = ["code_style", "testing", "structure", "design", "compliance", "bug_fixes"]
DEFAULT_MAX_ITERATIONS = 20

_SETTINGS_FILENAME = "bitranger.toml"


# ── Project config artifact ──────────────────────────────────


@dataclass
class AgentIntegration:
    """One coding-agent integration (rules file + enabled flag)."""

    enabled: bool = True
    rules_file: str = ""

    def to_dict(self) -> dict[str, Any]:
        return {"enabled": self.enabled, "rulesFile": self.rules_file}

    @classmethod
    def from_dict(cls, data: dict[str, Any], default_rules_file: str) -> AgentIntegration:
        return cls(
            enabled=bool(data.get("enabled", True)),
            rules_file=data.get("rulesFile", default_rules_file),
        )


@dataclass
class AgentsConfig:
    claude_code: AgentIntegration = field(
        default_factory=lambda: AgentIntegration(rules_file=".claude-code-rules.md")
    )
    cursor: AgentIntegration = field(
        default_factory=lambda: AgentIntegration(rules_file=".cursorrules")
    )

    def to_dict(self) -> dict[str, Any]:
        return {"claudeCode": self.claude_code.to_dict(), "cursor": self.cursor.to_dict()}

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> AgentsConfig:
        return cls(
            claude_code=AgentIntegration.from_dict(
                data.get("claudeCode", {}), ".claude-code-rules.md"
            ),
            cursor=AgentIntegration.from_dict(data.get("cursor", {}), ".cursorrules"),
        )


@dataclass
class ContextTreeSettings:
    auto_organize: bool = True
    default_domains: list[str] = field(default_factory=lambda: list(DEFAULT_DOMAINS))

    def to_dict(self) -> dict[str, Any]:
        return {"autoOrganize": self.auto_organize, "defaultDomains": list(self.default_domains)}

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> ContextTreeSettings:
        return cls(
            auto_organize=bool(data.get("autoOrganize", True)),
            default_domains=list(data.get("defaultDomains", DEFAULT_DOMAINS)),
        )


@dataclass
class ProjectConfig:
    """Contents of .bitranger/config.json."""

    project_name: str = ""
    version: str = CONFIG_VERSION
    git_tracking: bool = False
    agents: AgentsConfig = field(default_factory=AgentsConfig)
    context_tree: ContextTreeSettings = field(default_factory=ContextTreeSettings)

    def to_dict(self) -> dict[str, Any]:
        return {
            "version": self.version,
            "projectName": self.project_name,
            "gitTracking": self.git_tracking,
            "agents": self.agents.to_dict(),
            "contextTree": self.context_tree.to_dict(),
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> ProjectConfig:
        """Build from the on-disk JSON. Unknown keys are ignored."""
        return cls(
            project_name=data.get("projectName", ""),
            version=data.get("version", CONFIG_VERSION),
            git_tracking=bool(data.get("gitTracking", False)),
            agents=AgentsConfig.from_dict(data.get("agents", {})),
            context_tree=ContextTreeSettings.from_dict(data.get("contextTree", {})),
        )


# ── Runtime settings ─────────────────────────────────────────


@dataclass
class EngineConfig:
    """Configuration for the reasoning engine."""

    name: str = "anthropic_api"
    model: str = "claude-sonnet-4-5-20250929"
    max_tokens: int = 4096
    timeout: int = 120


@dataclass
class Settings:
    """Top-level runtime settings."""

    engine: EngineConfig = field(default_factory=EngineConfig)
    max_iterations: int = DEFAULT_MAX_ITERATIONS
    log_level: str = "INFO"


def load_settings(config_path: Path | None = None, repo_root: Path | None = None) -> Settings:
    """Load runtime settings from environment variables and optional bitranger.toml.

    Priority: environment variables > bitranger.toml > defaults.
    """
    file_data: dict = {}
    if config_path and config_path.exists():
        file_data = tomllib.loads(config_path.read_text())
    else:
        # Search the repo root and ~/.bitranger/
        candidates = [Path.home() / ".bitranger" / _SETTINGS_FILENAME]
        if repo_root is not None:
            candidates.insert(0, repo_root / _SETTINGS_FILENAME)
        for candidate in candidates:
            if candidate.exists():
                file_data = tomllib.loads(candidate.read_text())
                break

    engine_data = file_data.get("engine", {})
    defaults = EngineConfig()

    return Settings(
        engine=EngineConfig(
            name=os.getenv("BITRANGER_ENGINE", engine_data.get("name", defaults.name)),
            model=os.getenv("BITRANGER_MODEL", engine_data.get("model", defaults.model)),
            max_tokens=int(
                os.getenv("BITRANGER_MAX_TOKENS", engine_data.get("max_tokens", defaults.max_tokens))
            ),
            timeout=int(os.getenv("BITRANGER_TIMEOUT", engine_data.get("timeout", defaults.timeout))),
        ),
        max_iterations=int(
            os.getenv(
                "BITRANGER_MAX_ITERATIONS",
                file_data.get("max_iterations", DEFAULT_MAX_ITERATIONS),
            )
        ),
        log_level=os.getenv("BITRANGER_LOG_LEVEL", file_data.get("log_level", "INFO")),
    )
