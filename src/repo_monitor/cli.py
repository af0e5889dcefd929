"""
CLI interface for repo-monitor.

Uses Click for command-line parsing with subcommands. Every command prints
its result as JSON on stdout; logs go to stderr.

Usage:
    repo-monitor status --filter api
    repo-monitor prs --repo octo/api --state open
    repo-monitor drift --repo octo/api
    repo-monitor sync-pr --repo octo/api --dry-run
    repo-monitor merge-pr --repo octo/api --number 42 --method squash --delete-branch
    repo-monitor rollback --repo octo/api --strategy rerun
    repo-monitor config
"""

from __future__ import annotations

import asyncio
import dataclasses
import json
import logging
import sys
from typing import Any, Awaitable, Callable

import click
from dotenv import load_dotenv

from repo_monitor import __version__, usecases
from repo_monitor.app import Clients, open_clients
from repo_monitor.config import ReposConfig, get_config, load_repos_config
from repo_monitor.domain.models import RollbackStrategy
from repo_monitor.errors import (
    ConfigError,
    DomainRuleError,
    GitHubError,
    OperationCancelledError,
    UseCaseError,
)

# ---------------------------------------------------------------------------
# Load .env early so all config reads pick up the values
# ---------------------------------------------------------------------------
load_dotenv()

LOG_FORMAT = "%(asctime)s %(levelname)-8s %(name)s: %(message)s"


# ---------------------------------------------------------------------------
# Shared helpers
# ---------------------------------------------------------------------------

def _jsonable(value: Any) -> Any:
    if dataclasses.is_dataclass(value) and not isinstance(value, type):
        return dataclasses.asdict(value)
    if isinstance(value, list):
        return [_jsonable(item) for item in value]
    return value


def _echo_json(value: Any) -> None:
    click.echo(json.dumps(_jsonable(value), indent=2, ensure_ascii=False, default=str))


def _run(action: Callable[[Clients], Awaitable[Any]]) -> None:
    """Open the clients, run ``action`` and print its result.

    Exit codes: 1 for GitHub failures, 2 for rejected input, 130 on Ctrl+C.
    """
    config = get_config()

    async def runner() -> Any:
        async with open_clients(config) as clients:
            return await action(clients)

    try:
        result = asyncio.run(runner())
    except (DomainRuleError, ConfigError) as exc:
        click.echo(f"Error: {exc}", err=True)
        raise SystemExit(2)
    except (GitHubError, UseCaseError, OperationCancelledError) as exc:
        click.echo(f"Error: {exc}", err=True)
        raise SystemExit(1)
    except KeyboardInterrupt:
        click.echo("\nInterrupted by user.", err=True)
        raise SystemExit(130)

    _echo_json(result)


# ---------------------------------------------------------------------------
# Click group
# ---------------------------------------------------------------------------

@click.group(
    context_settings={"help_option_names": ["-h", "--help"]},
)
@click.version_option(__version__, "-V", "--version", prog_name="repo-monitor")
@click.option(
    "--log-level",
    type=click.Choice(["debug", "info", "warning", "error"], case_sensitive=False),
    default=None,
    help="Log level for stderr output. [default from $LOG_LEVEL or info]",
)
def cli(log_level: str | None) -> None:
    """repo-monitor -- GitHub repository status, drift and rollback tooling."""
    level = (log_level or get_config().log_level).upper()
    logging.basicConfig(level=level, format=LOG_FORMAT, stream=sys.stderr)


# ---------------------------------------------------------------------------
# Read-only commands
# ---------------------------------------------------------------------------

@cli.command()
@click.option("--filter", "name_filter", default="", help="Substring of owner/name to match.")
@click.option("--archived", is_flag=True, default=False, help="Include archived repositories.")
def status(name_filter: str, archived: bool) -> None:
    """Open PRs, latest CI result and last push per repository."""
    _run(lambda c: usecases.list_status(c.cached, name_filter, archived))


@cli.command()
@click.option("--repo", default="", help="Repository as owner/name (default: all).")
@click.option(
    "--state",
    type=click.Choice(["open", "closed", "all"]),
    default="open",
    show_default=True,
)
@click.option("--limit", type=int, default=30, show_default=True)
def prs(repo: str, state: str, limit: int) -> None:
    """List pull requests."""
    _run(lambda c: usecases.list_pull_requests(c.cached, repo, state, limit))


@cli.command()
@click.option("--repo", required=True, help="Repository as owner/name.")
@click.option("--branch", default="", help="Only runs for this branch.")
@click.option("--workflow", default="", help="Workflow file name or ID.")
@click.option("--limit", type=int, default=10, show_default=True)
def ci(repo: str, branch: str, workflow: str, limit: int) -> None:
    """Recent workflow runs."""
    _run(lambda c: usecases.check_ci(c.direct, repo, branch, workflow, limit))


@cli.command()
@click.option("--repo", default="", help="Repository as owner/name (default: all).")
@click.option("--branch", default="", help="Branch name (default: repository default).")
@click.option("--since", default=None, help="RFC 3339 timestamp or duration such as 24h, 7d, 1h30m.")
@click.option("--limit", type=int, default=30, show_default=True)
def commits(repo: str, branch: str, since: str | None, limit: int) -> None:
    """Recent commits."""
    _run(lambda c: usecases.recent_commits(c.direct, repo, branch, since, limit))


@cli.command()
@click.option("--repo", default="", help="Repository as owner/name (default: scan all).")
def drift(repo: str) -> None:
    """Compare the production and development branches."""
    repos_config = _load_repos_config()
    _run(lambda c: usecases.check_drift(c.direct, repos_config, repo))


# ---------------------------------------------------------------------------
# Mutating commands
# ---------------------------------------------------------------------------

@cli.command("sync-pr")
@click.option("--repo", required=True, help="Repository as owner/name.")
@click.option("--title", default="", help="PR title (default: sync: merge <prod> into <dev>).")
@click.option("--body", default="", help="PR body (default: generated summary).")
@click.option("--dry-run", is_flag=True, default=False)
def sync_pr(repo: str, title: str, body: str, dry_run: bool) -> None:
    """Open a PR merging the production branch into the development branch."""
    repos_config = _load_repos_config()
    _run(lambda c: usecases.create_sync_pr(c.direct, repos_config, repo, title, body, dry_run))


@cli.command("create-pr")
@click.option("--repo", required=True, help="Repository as owner/name.")
@click.option("--title", required=True)
@click.option("--head", required=True, help="Source branch.")
@click.option("--base", required=True, help="Target branch.")
@click.option("--body", default="")
@click.option("--draft", is_flag=True, default=False)
@click.option("--dry-run", is_flag=True, default=False)
def create_pr(
    repo: str,
    title: str,
    head: str,
    base: str,
    body: str,
    draft: bool,
    dry_run: bool,
) -> None:
    """Open a pull request."""
    _run(
        lambda c: usecases.create_pull_request(
            c.direct, repo, title, head, base, body, draft, dry_run
        )
    )


@cli.command("merge-pr")
@click.option("--repo", required=True, help="Repository as owner/name.")
@click.option("--number", type=int, required=True, help="Pull request number.")
@click.option(
    "--method",
    type=click.Choice(["merge", "squash", "rebase"]),
    default="merge",
    show_default=True,
)
@click.option("--commit-title", default="")
@click.option("--delete-branch", is_flag=True, default=False, help="Delete the head branch after merging.")
@click.option("--dry-run", is_flag=True, default=False)
def merge_pr(
    repo: str,
    number: int,
    method: str,
    commit_title: str,
    delete_branch: bool,
    dry_run: bool,
) -> None:
    """Merge a pull request."""
    _run(
        lambda c: usecases.merge_pull_request(
            c.direct, repo, number, method, commit_title, delete_branch, dry_run
        )
    )


@cli.command("delete-branch")
@click.option("--repo", required=True, help="Repository as owner/name.")
@click.option("--branch", required=True)
@click.option("--dry-run", is_flag=True, default=False)
def delete_branch(repo: str, branch: str, dry_run: bool) -> None:
    """Delete a branch (main, master, develop and production are refused)."""
    _run(lambda c: usecases.delete_branch(c.direct, repo, branch, dry_run))


@cli.command()
@click.option("--repo", required=True, help="Repository as owner/name.")
@click.option(
    "--strategy",
    type=click.Choice([s.value for s in RollbackStrategy]),
    default=None,
    help="Rollback strategy (default: chosen from the latest run).",
)
@click.option("--workflow-id", default="", help="Workflow file name or ID for the workflow strategy.")
@click.option("--run-id", type=int, default=0, help="Run to re-run (default: latest).")
@click.option("--dry-run", is_flag=True, default=False)
def rollback(repo: str, strategy: str | None, workflow_id: str, run_id: int, dry_run: bool) -> None:
    """Re-run CI, dispatch a rollback workflow, or get revert instructions."""
    _run(
        lambda c: usecases.trigger_rollback(
            c.direct, repo, strategy or "", workflow_id, run_id, dry_run
        )
    )


# ---------------------------------------------------------------------------
# repo-monitor config
# ---------------------------------------------------------------------------

@cli.command("config")
@click.option(
    "--show-secrets",
    is_flag=True,
    default=False,
    help="Unmask secret values.",
)
def config_cmd(show_secrets: bool) -> None:
    """Dump current configuration and branch pairs."""
    cfg = get_config()
    data = json.loads(cfg.dump_json(mask_secrets=not show_secrets))
    data["version"] = __version__
    data["repos"] = _load_repos_config().model_dump()
    click.echo(json.dumps(data, indent=2, ensure_ascii=False))


def _load_repos_config() -> ReposConfig:
    try:
        return load_repos_config(get_config().repos_config_path)
    except ConfigError as exc:
        click.echo(f"Error: {exc}", err=True)
        raise SystemExit(2)


# ---------------------------------------------------------------------------
# Entry point
# ---------------------------------------------------------------------------

def main() -> None:
    """Package entry point (called by ``repo-monitor`` console script and ``__main__``)."""
    cli()
