"""Entry point: bitranger <command> (or python -m bitranger <command>)

- init    — create .bitranger/ with config.json and default domains
- status  — show config, tree statistics and optionally the tree
- curate  — let the agent file content into the tree
- query   — let the agent retrieve context for a question
- clear   — delete curated documents, keeping the structure
- gen-rules — write agent rules files (.cursorrules, ...) from the tree
"""

from __future__ import annotations

import asyncio
import json
import logging
import os
from pathlib import Path

import click

from bitranger import __version__
from bitranger.agent.runner import AgentRunner, result_to_dict
from bitranger.config import DEFAULT_DOMAINS, ContextTreeSettings, ProjectConfig, load_settings
from bitranger.context_tree.rules import AGENTS, integration_for, render_rules, write_rules
from bitranger.context_tree.store import ContextTreeStore
from bitranger.engines.base import create_engine
from bitranger.errors import BitrangerError, NotInitializedError

_RULE = "━" * 44


def _setup_logging(level: str) -> None:
    logging.basicConfig(
        level=getattr(logging, level.upper(), logging.INFO),
        format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
        datefmt="%H:%M:%S",
    )


def _open_store(path: str) -> ContextTreeStore:
    store = ContextTreeStore(Path(path))
    if not store.is_initialized():
        raise click.ClickException(str(NotInitializedError(path)))
    return store


def _build_runner(store: ContextTreeStore, verbose: bool) -> AgentRunner:
    settings = load_settings(repo_root=store.repo_root)
    _setup_logging("DEBUG" if verbose else settings.log_level)
    if settings.engine.name == "anthropic_api" and not os.getenv("ANTHROPIC_API_KEY"):
        raise click.ClickException(
            "ANTHROPIC_API_KEY not found. Export it or add it to your shell profile."
        )
    engine = create_engine(settings.engine)
    return AgentRunner(store, engine, max_iterations=settings.max_iterations)


_path_option = click.option(
    "--path", default=".", show_default=True, help="Repository root path"
)


@click.group()
@click.version_option(__version__)
def cli() -> None:
    """Local context management CLI for coding agents."""


# ── bitranger init ───────────────────────────────────────────


@cli.command()
@_path_option
@click.option("--project-name", default=None, help="Project name")
@click.option("--domains", default=None, help="Comma-separated list of default domains")
def init(path: str, project_name: str | None, domains: str | None) -> None:
    """Initialize bitranger in the repository."""
    store = ContextTreeStore(Path(path))
    default_domains = (
        [d.strip() for d in domains.split(",") if d.strip()] if domains else list(DEFAULT_DOMAINS)
    )
    try:
        config = store.initialize(
            ProjectConfig(
                project_name=project_name or "",
                context_tree=ContextTreeSettings(default_domains=default_domains),
            )
        )
    except BitrangerError as exc:
        raise click.ClickException(str(exc)) from exc

    click.echo(f"✓ Initialized bitranger for {config.project_name} in {store.repo_root}")
    click.echo(f"✓ Configuration saved to {store.config_path}")
    click.echo("")
    click.echo("Default domains created:")
    for domain in config.context_tree.default_domains:
        click.echo(f"  • {domain}")
    click.echo("")
    click.echo('Start curating with: bitranger curate "your context here"')


# ── bitranger status ─────────────────────────────────────────


@cli.command()
@_path_option
@click.option("--verbose", is_flag=True, help="Show the full tree structure")
@click.option("--json", "as_json", is_flag=True, help="Output in JSON format")
def status(path: str, verbose: bool, as_json: bool) -> None:
    """Display the current state of the context tree."""
    store = _open_store(path)
    try:
        config = store.read_config()
        stats = store.get_stats()
    except (BitrangerError, OSError) as exc:
        raise click.ClickException(str(exc)) from exc

    if as_json:
        payload = {
            "location": str(store.root),
            "config": config.to_dict(),
            "stats": {
                "domains": stats.domains,
                "topics": stats.topics,
                "contextFiles": stats.context_files,
                "totalSize": stats.total_size,
                "lastUpdated": stats.last_updated.isoformat() if stats.last_updated else None,
                "domainInfo": [vars(d) for d in stats.domain_info],
            },
        }
        click.echo(json.dumps(payload, indent=2))
        return

    click.echo("BitRanger Status")
    click.echo(_RULE)
    click.echo("")
    click.echo("Configuration:")
    click.echo(f"  Location: {store.root}")
    click.echo(f"  Version: {config.version}")
    click.echo(f"  Git tracking: {'Enabled' if config.git_tracking else 'Disabled'}")
    click.echo("")
    click.echo("Context Tree:")
    click.echo(f"  Domains: {stats.domains}")
    click.echo(f"  Topics: {stats.topics}")
    click.echo(f"  Context files: {stats.context_files}")
    click.echo("")

    if stats.domain_info:
        click.echo("Domains:")
        for i, domain in enumerate(stats.domain_info):
            prefix = "└──" if i == len(stats.domain_info) - 1 else "├──"
            click.echo(
                f"  {prefix} {domain.name} ({domain.topics} topics, {domain.files} context files)"
            )
        click.echo("")

    click.echo("Active Integrations:")
    click.echo(f"  • Claude Code: {'Ready' if config.agents.claude_code.enabled else 'Disabled'}")
    click.echo(f"  • Cursor: {'Ready' if config.agents.cursor.enabled else 'Disabled'}")
    click.echo("")
    click.echo("Storage:")
    click.echo(f"  Total size: {round(stats.total_size / 1024)} KB")

    if verbose and stats.context_files > 0:
        click.echo("")
        click.echo("Tree Structure:")
        click.echo(store.get_tree_structure())


# ── bitranger curate ─────────────────────────────────────────


@cli.command()
@click.argument("content", required=False)
@_path_option
@click.option("--domain", default=None, help="Domain hint for categorization")
@click.option("--topic", default=None, help="Topic hint for categorization")
@click.option(
    "--from-file",
    type=click.Path(exists=True, dir_okay=False, path_type=Path),
    default=None,
    help="Import content from file",
)
@click.option("--format", "fmt", type=click.Choice(["plain", "json"]), default="plain")
@click.option("--verbose", is_flag=True, help="Log each agent step")
def curate(
    content: str | None,
    path: str,
    domain: str | None,
    topic: str | None,
    from_file: Path | None,
    fmt: str,
    verbose: bool,
) -> None:
    """Capture and organize context into the context tree."""
    store = _open_store(path)
    if from_file is not None:
        content = from_file.read_text(encoding="utf-8")
    if not content:
        raise click.UsageError('No content provided. Use: bitranger curate "content" or --from-file')

    runner = _build_runner(store, verbose)
    if fmt != "json":
        click.echo("Analyzing context...")
    result = asyncio.run(runner.curate(content, domain, topic))

    if fmt == "json":
        click.echo(json.dumps(result_to_dict(result), indent=2))
        if not result.success:
            raise SystemExit(1)
        return

    if not result.success:
        click.echo("✗ Failed to curate context", err=True)
        if result.error:
            click.echo(f"  Error: {result.error}", err=True)
        if result.tool_calls:
            click.echo("", err=True)
            click.echo("Tool calls made:", err=True)
            for call in result.tool_calls:
                click.echo(f"  - {call.tool_name}", err=True)
        raise SystemExit(1)

    click.echo("✓ Context successfully added to your tree!")
    click.echo(f"  Completed in {result.iterations} step(s)")
    if result.written_files:
        click.echo("")
        click.echo("Changes made:")
        for written in result.written_files:
            action = "Created" if written.action == "create" else "Updated"
            node = "/".join(p for p in (written.domain, written.topic, written.subtopic) if p)
            click.echo(f"  {action}: {node}/{written.filename}")
    else:
        click.echo("")
        click.echo("⚠️  Warning: No files were written to the context tree.", err=True)
        if not verbose:
            click.echo("   Try running with --verbose to see what happened.", err=True)


# ── bitranger query ──────────────────────────────────────────


def _render_query(result, fmt: str) -> str:
    if fmt == "json":
        return json.dumps(result_to_dict(result), indent=2)
    if not (result.success and result.results):
        return "No relevant context found.\n"

    if fmt == "plain":
        out = f"Found {len(result.results)} result(s):\n\n"
        for ctx in result.results:
            node = "/".join(p for p in (ctx.domain, ctx.topic, ctx.subtopic) if p)
            out += f"[{node}/{ctx.filename}]\n{ctx.relevant_content}\n\n"
        if result.summary:
            out += f"Summary: {result.summary}\n"
        return out

    out = f"Found relevant context in {len(result.results)} location(s):\n\n"
    for ctx in result.results:
        node = " > ".join(p for p in (ctx.domain, ctx.topic, ctx.subtopic) if p)
        out += f"{_RULE}\n{node} > {ctx.filename}\n{_RULE}\n\n{ctx.relevant_content}\n\n"
    if result.summary:
        out += f"{_RULE}\nSummary\n{_RULE}\n\n{result.summary}\n"
    return out


@cli.command()
@click.argument("query_text", metavar="QUERY")
@_path_option
@click.option("--domain", default=None, help="Filter by specific domain")
@click.option(
    "--format", "fmt", type=click.Choice(["markdown", "plain", "json"]), default="markdown"
)
@click.option("--out", type=click.Path(dir_okay=False, path_type=Path), default=None)
@click.option("--verbose", is_flag=True, help="Log each agent step")
def query(
    query_text: str, path: str, domain: str | None, fmt: str, out: Path | None, verbose: bool
) -> None:
    """Retrieve relevant context from the context tree."""
    store = _open_store(path)
    runner = _build_runner(store, verbose)
    if fmt != "json":
        click.echo("Searching context tree...")
    result = asyncio.run(runner.query(query_text, domain))

    output = _render_query(result, fmt)
    if out is not None:
        out.write_text(output, encoding="utf-8")
        click.echo(f"Results saved to {out}")
    else:
        click.echo(output)

    if not result.success and result.error:
        click.echo(f"Warning: {result.error}", err=True)


# ── bitranger clear ──────────────────────────────────────────


@cli.command()
@_path_option
@click.option("--domain", default=None, help="Clear specific domain only")
@click.option("--topic", default=None, help="Clear specific topic only (requires --domain)")
@click.option("--force", is_flag=True, help="Skip confirmation prompt")
def clear(path: str, domain: str | None, topic: str | None, force: bool) -> None:
    """Remove curated content, keeping configuration and domains."""
    if topic and not domain:
        raise click.UsageError("--topic requires --domain")
    store = _open_store(path)

    stats = store.get_stats()
    if stats.context_files == 0:
        click.echo("Context tree is already empty.")
        return

    if not force:
        target = f"{domain}/{topic}" if topic else (f"{domain} domain" if domain else "entire tree")
        click.echo("⚠️  Warning: This will delete curated context in your tree.")
        click.echo("   Configuration files will be preserved.")
        click.echo(f"Target: {target}")
        if not click.confirm("Are you sure you want to clear?", default=False):
            click.echo("Cancelled.")
            return

    try:
        if domain and topic:
            deleted = store.clear_topic(domain, topic)
        elif domain:
            deleted = store.clear_domain(domain)
        else:
            deleted = store.clear_all()
    except (BitrangerError, OSError) as exc:
        raise click.ClickException(str(exc)) from exc

    click.echo(f"✓ Removed {deleted} context file(s)")
    click.echo("✓ Structure preserved")


# ── bitranger gen-rules ──────────────────────────────────────


@cli.command("gen-rules")
@_path_option
@click.option(
    "--agent",
    type=click.Choice([*AGENTS, "both"]),
    default="both",
    show_default=True,
    help="Target agent",
)
@click.option(
    "--output",
    type=click.Path(dir_okay=False, path_type=Path),
    default=None,
    help="Custom output file path",
)
@click.option("--merge", is_flag=True, help="Keep existing rules above the generated ones")
def gen_rules(path: str, agent: str, output: Path | None, merge: bool) -> None:
    """Generate agent rule files from curated context."""
    store = _open_store(path)
    click.echo("Generating agent rules...")
    try:
        config = store.read_config()
        content = render_rules(store)
        sources = store.get_stats().context_files

        if output is not None:
            write_rules(output, content, merge)
            click.echo(f"✓ Generated {output} ({sources} context sources)")
            return

        for name in AGENTS if agent == "both" else (agent,):
            integration = integration_for(config, name)
            if agent == "both" and not integration.enabled:
                click.echo(f"  Skipped {name} (integration disabled)")
                continue
            target = store.repo_root / integration.rules_file
            write_rules(target, content, merge)
            click.echo(f"✓ Generated {integration.rules_file} ({sources} context sources)")
    except (BitrangerError, OSError) as exc:
        raise click.ClickException(str(exc)) from exc


def main() -> None:
    cli()


if __name__ == "__main__":
    main()
