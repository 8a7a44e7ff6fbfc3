"""
Command-line interface for skillsync.
"""

from __future__ import annotations

import argparse
import asyncio
import json
import sys
from pathlib import Path
from typing import Any

import yaml
from rich.console import Console
from rich.table import Table

from skillsync.agents.registry import detect_installed_agents, get_agent_by_id, list_agents
from skillsync.coerce import Alias, coerce_alias, coerce_github_ref
from skillsync.config import CONFIG_ENV_VAR, CONFIG_FILENAME, SyncConfig
from skillsync.errors import SkillSyncError, SyncError, ValidationError
from skillsync.logging import setup_logging
from skillsync.manifest.discover import find_project_root
from skillsync.manifest.models import DiscoveredAt, Manifest, ManifestOrigin
from skillsync.manifest.parse import load_manifest, parse_declaration
from skillsync.manifest.transform import (
    add_dependency,
    has_dependency,
    remove_dependency,
    set_agent,
)
from skillsync.manifest.write import save_manifest
from skillsync.packages.scan import scan_repo
from skillsync.sync import SyncOptions, SyncSummary, sync

console = Console()


def main(argv: list[str] | None = None) -> None:
    """Main CLI entry point."""
    parser = build_parser()
    args = parser.parse_args(argv)

    # --verbose wins over SKILLSYNC_LOG_LEVEL
    setup_logging("DEBUG" if getattr(args, "verbose", False) else None)

    config = SyncConfig.load(Path(args.config) if args.config else None)

    try:
        if args.command == "sync":
            cmd_sync(args, config)
        elif args.command == "add":
            cmd_add(args, config)
        elif args.command == "remove":
            cmd_remove(args, config)
        elif args.command == "agents":
            cmd_agents(args, config)
        elif args.command == "scan":
            cmd_scan(args)
        elif args.command == "config":
            cmd_config(args, config)
        else:
            parser.print_help()
    except SyncError as e:
        console.print(f"[red]Sync failed at {e.stage}:[/red] {e.error.message}")
        sys.exit(1)
    except SkillSyncError as e:
        console.print(f"[red]Error:[/red] {e.message}")
        sys.exit(1)


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        description="Install agent skills declared in agents.toml",
        prog="sk",
    )

    # Global options
    parser.add_argument(
        "-v",
        "--verbose",
        action="store_true",
        help="Enable verbose output (debug logging)",
    )
    parser.add_argument(
        "-c",
        "--config",
        default=None,
        help=f"Config file (default: ${CONFIG_ENV_VAR} or ~/.sk/{CONFIG_FILENAME})",
    )

    subparsers = parser.add_subparsers(dest="command", help="Commands")

    # Sync command
    sync_parser = subparsers.add_parser("sync", help="Install skills for every enabled agent")
    sync_parser.add_argument(
        "--dry-run",
        action="store_true",
        help="Report what would change without touching the filesystem",
    )
    sync_parser.add_argument(
        "-g",
        "--global",
        dest="global_scope",
        action="store_true",
        help="Sync the global manifest into each agent's home directory",
    )
    sync_parser.add_argument(
        "-d",
        "--dir",
        default=None,
        help="Directory to start manifest discovery from (default: cwd)",
    )

    # Add command
    add_parser = subparsers.add_parser("add", help="Add a dependency to agents.toml")
    add_parser.add_argument("alias", help="Dependency alias (used as the skill prefix)")
    add_parser.add_argument(
        "spec",
        help="owner/repo, gh:owner/repo, a git URL, a local path or name@version",
    )
    ref_group = add_parser.add_mutually_exclusive_group()
    ref_group.add_argument("--tag", help="Git tag")
    ref_group.add_argument("--branch", help="Git branch")
    ref_group.add_argument("--rev", help="Git commit")
    add_parser.add_argument("--path", help="Sub-directory inside the repository")
    add_parser.add_argument(
        "--plugin",
        help="Treat SPEC as a marketplace and add this Claude plugin from it",
    )
    add_parser.add_argument(
        "-g", "--global", dest="global_scope", action="store_true", help="Edit ~/.sk/agents.toml"
    )

    # Remove command
    remove_parser = subparsers.add_parser("remove", help="Remove a dependency from agents.toml")
    remove_parser.add_argument("alias", help="Dependency alias")
    remove_parser.add_argument(
        "-g", "--global", dest="global_scope", action="store_true", help="Edit ~/.sk/agents.toml"
    )

    # Agents command with subcommands
    agents_parser = subparsers.add_parser("agents", help="List and toggle agents")
    agents_subparsers = agents_parser.add_subparsers(dest="agents_command", help="Agent commands")
    agents_subparsers.add_parser("list", help="List supported agents and detection state")
    for action in ("enable", "disable"):
        toggle_parser = agents_subparsers.add_parser(action, help=f"{action.title()} an agent")
        toggle_parser.add_argument("agent_id", help="Agent id")
        toggle_parser.add_argument(
            "-g",
            "--global",
            dest="global_scope",
            action="store_true",
            help="Edit ~/.sk/agents.toml",
        )

    # Scan command
    scan_parser = subparsers.add_parser("scan", help="List the installable units in a repository")
    scan_parser.add_argument("repo_path", help="Checked-out repository")
    scan_parser.add_argument("github_repo", help="owner/repo the checkout came from")
    scan_parser.add_argument("--json", action="store_true", help="Output as JSON")

    # Config command with subcommands
    config_parser = subparsers.add_parser("config", help="Configuration management")
    config_subparsers = config_parser.add_subparsers(dest="config_command", help="Config commands")
    config_subparsers.add_parser("show", help="Show current configuration")
    config_subparsers.add_parser("path", help="Show config file paths")

    return parser


# ---------------------------------------------------------------------------
# sync
# ---------------------------------------------------------------------------


def cmd_sync(args: argparse.Namespace, config: SyncConfig) -> None:
    """Sync skills for every enabled agent."""
    options = SyncOptions(
        dry_run=args.dry_run,
        scope="global" if args.global_scope else "local",
        start_dir=Path(args.dir) if args.dir else None,
    )
    summary = asyncio.run(sync(config, options))
    print_summary(summary)
    if not summary.success:
        sys.exit(1)


def print_summary(summary: SyncSummary) -> None:
    if summary.no_op_reason == "no-dependencies" and summary.success:
        console.print("[dim]No dependencies declared and nothing previously installed.[/dim]")
        return

    title = "Sync Plan (dry run)" if summary.dry_run else "Sync Summary"
    table = Table(title=title)
    table.add_column("Agent", style="cyan")
    table.add_column("Skills path", style="dim")
    table.add_column("Installed", justify="right", style="green")
    table.add_column("Removed", justify="right", style="yellow")
    table.add_column("Status")

    for result in summary.results:
        if result.success:
            status = "[green]✓[/green]"
        else:
            assert result.error is not None
            status = f"[red]✗ {result.error.stage}: {result.error.error.message}[/red]"
        table.add_row(
            result.agent.display_name,
            str(result.agent.skills_path),
            str(result.installed),
            str(result.removed),
            status,
        )

    console.print(table)
    for warning in summary.warnings:
        console.print(f"[yellow]⚠[/yellow] {warning}")
    console.print(
        f"\n[dim]{summary.manifests} manifest(s), {summary.dependencies} dependenc"
        f"{'y' if summary.dependencies == 1 else 'ies'}[/dim]"
    )


# ---------------------------------------------------------------------------
# add / remove
# ---------------------------------------------------------------------------


def cmd_add(args: argparse.Namespace, config: SyncConfig) -> None:
    """Add or replace a dependency."""
    alias = _require_alias(args.alias)
    manifest = load_target_manifest(config, global_scope=args.global_scope)
    declaration = build_declaration(
        args.spec,
        tag=args.tag,
        branch=args.branch,
        rev=args.rev,
        path=args.path,
        plugin=args.plugin,
    )
    dependency = parse_declaration(declaration, alias, manifest.origin.source_path)

    verb = "Updated" if has_dependency(manifest, alias) else "Added"
    path = save_manifest(add_dependency(manifest, alias, dependency))
    console.print(f"[green]{verb} {alias}[/green] ({dependency.describe()}) in {path}")


def cmd_remove(args: argparse.Namespace, config: SyncConfig) -> None:
    """Remove a dependency."""
    alias = _require_alias(args.alias)
    manifest = load_target_manifest(config, global_scope=args.global_scope)
    if not has_dependency(manifest, alias):
        console.print(f"[red]Dependency not found: {alias}[/red]")
        sys.exit(1)
    path = save_manifest(remove_dependency(manifest, alias))
    console.print(f"[green]Removed {alias}[/green] from {path}")


def load_target_manifest(config: SyncConfig, *, global_scope: bool) -> Manifest:
    """The manifest an edit applies to; a new empty one if the file does not exist yet."""
    discovered_at: DiscoveredAt
    if global_scope:
        path = config.global_manifest_path
        discovered_at = "global"
    else:
        root = find_project_root(Path.cwd(), config)
        path = (root or Path.cwd()) / config.manifest_filename
        discovered_at = "cwd"

    if path.is_file():
        return load_manifest(path, discovered_at)
    return Manifest(origin=ManifestOrigin(source_path=path, discovered_at=discovered_at))


def build_declaration(
    spec: str,
    *,
    tag: str | None = None,
    branch: str | None = None,
    rev: str | None = None,
    path: str | None = None,
    plugin: str | None = None,
) -> str | dict[str, str]:
    """Turn a command-line dependency spec into a manifest declaration."""
    text = spec.strip()
    if plugin:
        return {"type": "claude-plugin", "plugin": plugin, "marketplace": text}

    refs = {key: value for key, value in (("tag", tag), ("branch", branch), ("rev", rev)) if value}
    table: dict[str, str]
    lowered = text.lower()
    if lowered.startswith(("github:", "gh:")):
        table = {"gh": text.split(":", 1)[1]}
    elif text.startswith("git@") or "://" in text:
        table = {"git": text}
    elif text.startswith((".", "/", "~")) or Path(text).expanduser().is_dir():
        if refs or path:
            raise ValidationError(
                "Local dependencies do not take --tag, --branch, --rev or --path.", field="spec"
            )
        return {"path": str(Path(text).expanduser().resolve())}
    elif coerce_github_ref(text) is not None:
        table = {"gh": text}
    elif "@" in text:
        if refs or path:
            raise ValidationError(
                "Registry dependencies do not take --tag, --branch, --rev or --path.",
                field="spec",
            )
        return text
    else:
        raise ValidationError(f"Unrecognized dependency spec: {spec}", field="spec")

    table.update(refs)
    if path:
        table["path"] = path
    return table


def _require_alias(value: str) -> Alias:
    alias = coerce_alias(value)
    if alias is None:
        raise ValidationError(f"Invalid alias: {value}", field="alias")
    return alias


# ---------------------------------------------------------------------------
# agents
# ---------------------------------------------------------------------------


def cmd_agents(args: argparse.Namespace, config: SyncConfig) -> None:
    """Agent listing and toggling."""
    if args.agents_command in ("enable", "disable"):
        agent = get_agent_by_id(args.agent_id)
        manifest = load_target_manifest(config, global_scope=args.global_scope)
        enabled = args.agents_command == "enable"
        path = save_manifest(set_agent(manifest, agent.id, enabled))
        state = "[green]enabled[/green]" if enabled else "[yellow]disabled[/yellow]"
        console.print(f"{agent.display_name} {state} in {path}")
        return

    installed = {agent.id for agent in asyncio.run(detect_installed_agents(config.detect_timeout))}

    table = Table(title="Supported Agents")
    table.add_column("ID", style="cyan")
    table.add_column("Name")
    table.add_column("Installed")
    table.add_column("Local skills", style="dim")
    table.add_column("Global skills", style="dim")

    for agent in list_agents():
        table.add_row(
            agent.id,
            agent.display_name,
            "[green]✓[/green]" if agent.id in installed else "[dim]·[/dim]",
            f"{agent.local_base}/{agent.skills_dir}",
            f"~/{agent.global_base}/{agent.skills_dir}",
        )

    console.print(table)


# ---------------------------------------------------------------------------
# scan
# ---------------------------------------------------------------------------


def cmd_scan(args: argparse.Namespace) -> None:
    """List installable units in a checked-out repository."""
    result = scan_repo(Path(args.repo_path).expanduser().resolve(), args.github_repo)

    if args.json:
        data: dict[str, Any] = {
            "units": [unit.to_dict() for unit in result.units],
            "warnings": [{"message": w.message, "path": w.path} for w in result.warnings],
        }
        console.print_json(json.dumps(data, indent=2))
        return

    table = Table(title=f"Units in {args.github_repo}")
    table.add_column("Kind", style="cyan")
    table.add_column("Path")
    table.add_column("Name")
    table.add_column("Declaration", style="dim")

    for unit in result.units:
        name = (unit.metadata or {}).get("name", "")
        table.add_row(unit.kind, unit.path or ".", str(name), unit.declaration.describe())

    console.print(table)
    for warning in result.warnings:
        console.print(f"[yellow]⚠[/yellow] {warning.message} ({warning.path})")
    console.print(f"\n[dim]Total: {len(result.units)} unit(s)[/dim]")


# ---------------------------------------------------------------------------
# config
# ---------------------------------------------------------------------------


def cmd_config(args: argparse.Namespace, config: SyncConfig) -> None:
    """Configuration management commands."""
    if args.config_command == "show":
        console.print("[bold]Current Configuration:[/bold]\n")
        console.print(yaml.dump(config.to_dict(), default_flow_style=False, sort_keys=False))
    elif args.config_command == "path":
        _config_path(args, config)
    else:
        console.print("[yellow]Usage: sk config <show|path>[/yellow]")


def _config_path(args: argparse.Namespace, config: SyncConfig) -> None:
    """Show config and manifest file locations."""
    console.print("[bold]Config and manifest paths:[/bold]\n")

    assert config.global_dir is not None
    paths = [
        ("Config file", Path(args.config) if args.config else config.global_dir / CONFIG_FILENAME),
        ("Global manifest", config.global_manifest_path),
        ("Project manifest", Path.cwd() / config.manifest_filename),
    ]

    for name, path in paths:
        exists = "[green]✓[/green]" if path.exists() else "[dim]·[/dim]"
        console.print(f"  {exists} {name}: {path}")


if __name__ == "__main__":
    main()
