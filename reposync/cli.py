"""CLI entry point: reposync.

Subcommands:
    reposync create-config -o repos.json                  # Generate a config template
    reposync check-config -c repos.json                   # Validate and list the sync group
    reposync sync -c repos.json --event push.json         # Replay a push webhook payload
    reposync sync -c repos.json --source o/r --commits commits.json
"""

from __future__ import annotations

import asyncio
import json
import sys
from pathlib import Path
from typing import Any

import click

from reposync.core.config import load_config, max_concurrency_from_env
from reposync.core.logging import setup_logging
from reposync.engines.sync.models import CommitInfo, SyncServiceConfig
from reposync.engines.sync.service import RepoSyncService
from reposync.events import parse_commits, parse_push_event
from reposync.exceptions import SyncError

_CONFIG_TEMPLATE = {
    "repositories": [
        {"owner": "acme", "repo": "models-a", "path": "models/", "branch": "main"},
        {"owner": "acme", "repo": "models-b", "path": "src/models/", "branch": "main"},
    ],
    "sync_branch_prefix": "sync",
}


def _read_json(path: str) -> Any:
    try:
        return json.loads(Path(path).read_text(encoding="utf-8"))
    except json.JSONDecodeError as e:
        click.echo(f"Error: Invalid JSON in {path}: {e}", err=True)
        sys.exit(1)


@click.group()
@click.option("-v", "--verbose", is_flag=True, help="Verbose logging")
def main(verbose: bool) -> None:
    """reposync: keep a subdirectory in sync across GitHub repositories."""
    setup_logging("DEBUG" if verbose else None)


@main.command("create-config")
@click.option("-o", "--output", default="repos.json", help="Output file path")
def create_config(output: str) -> None:
    """Generate a sync group template JSON file."""
    Path(output).write_text(json.dumps(_CONFIG_TEMPLATE, indent=2) + "\n")
    click.echo(f"Config template written to {output}")
    click.echo("Set GITHUB_TOKEN (or access_token in the file), then run:")
    click.echo(f"  reposync check-config -c {output}")


@main.command("check-config")
@click.option("-c", "--config", "config_path", required=True, type=click.Path(exists=True))
def check_config(config_path: str) -> None:
    """Validate a config file and print the sync group."""
    try:
        config = load_config(config_path)
    except SyncError as e:
        click.echo(f"Error: {e}", err=True)
        sys.exit(1)

    click.echo(f"Branch prefix: {config.sync_branch_prefix}")
    click.echo(f"Repositories ({len(config.repositories)}):")
    for repo_cfg in config.repositories:
        click.echo(f"  {repo_cfg.full_name}  path={repo_cfg.path or '/'}  base={repo_cfg.branch}")


@main.command("sync")
@click.option("-c", "--config", "config_path", required=True, type=click.Path(exists=True))
@click.option("--event", "event_path", type=click.Path(exists=True), help="push webhook payload")
@click.option("--source", default=None, help="Source repository (owner/repo)")
@click.option(
    "--commits", "commits_path", type=click.Path(exists=True), help="JSON list of push commits"
)
@click.option("--concurrency", type=int, default=None, help="Targets processed in parallel")
def sync(
    config_path: str,
    event_path: str | None,
    source: str | None,
    commits_path: str | None,
    concurrency: int | None,
) -> None:
    """Replay a push onto every other repository of the sync group."""
    if event_path and (source or commits_path):
        click.echo("Error: use either --event or --source/--commits, not both", err=True)
        sys.exit(1)

    try:
        config = load_config(config_path)
        if event_path:
            event = parse_push_event(_read_json(event_path))
            source_repository, commits = event.source_repository, list(event.commits)
        elif source and commits_path:
            raw = _read_json(commits_path)
            if not isinstance(raw, list):
                click.echo(f"Error: {commits_path} must contain a JSON list", err=True)
                sys.exit(1)
            source_repository, commits = source, parse_commits(raw)
        else:
            click.echo("Error: pass --event, or both --source and --commits", err=True)
            sys.exit(1)

        max_concurrency = concurrency if concurrency is not None else max_concurrency_from_env()
        asyncio.run(_run_sync(config, source_repository, commits, max_concurrency))
    except SyncError as e:
        click.echo(f"Error: {e}", err=True)
        sys.exit(1)

    distinct = sum(1 for c in commits if c.distinct)
    click.echo(f"Synced {distinct} distinct commit(s) from {source_repository}")


async def _run_sync(
    config: SyncServiceConfig,
    source_repository: str,
    commits: list[CommitInfo],
    max_concurrency: int,
) -> None:
    async with RepoSyncService(config, max_concurrency=max_concurrency) as service:
        await service.execute(source_repository, commits)


if __name__ == "__main__":
    main()
