"""Read-only overviews: repository status, pull requests and CI runs."""

from __future__ import annotations

import logging

from repo_monitor.domain.models import (
    CIFilter,
    PRFilter,
    PullRequest,
    RepositoryStatus,
    RunConclusion,
    WorkflowRun,
    split_full_name,
)
from repo_monitor.errors import GitHubError
from repo_monitor.github.protocol import RepoHostClient

logger = logging.getLogger("repo_monitor.usecases.status")

# open PRs counted per repository in the status overview
STATUS_PR_LIMIT = 100


async def list_status(
    client: RepoHostClient,
    name_filter: str = "",
    include_archived: bool = False,
) -> list[RepositoryStatus]:
    """Summarize every matching repository.

    Open PR count and the latest CI conclusion are looked up per repository;
    a lookup that fails counts as zero PRs / no failure.
    """
    repos = await client.list_repositories(name_filter, include_archived)

    statuses: list[RepositoryStatus] = []
    for repo in repos:
        status = RepositoryStatus(repository=repo, last_commit_at=repo.pushed_at)

        try:
            prs = await client.list_pull_requests(
                PRFilter(repository=repo.full_name, state="open", limit=STATUS_PR_LIMIT)
            )
            status.open_prs = len(prs)
        except GitHubError as exc:
            logger.warning("Could not count open PRs for %s: %s", repo.full_name, exc)

        try:
            runs = await client.list_workflow_runs(CIFilter(repository=repo.full_name, limit=1))
            status.failed_ci = bool(runs) and runs[0].conclusion == RunConclusion.FAILURE
        except GitHubError as exc:
            logger.warning("Could not read CI runs for %s: %s", repo.full_name, exc)

        statuses.append(status)

    return statuses


async def list_pull_requests(
    client: RepoHostClient,
    repository: str = "",
    state: str = "open",
    limit: int = 30,
) -> list[PullRequest]:
    """List pull requests in one repository, or across all when ``repository`` is empty."""
    if repository:
        split_full_name(repository)
    return await client.list_pull_requests(
        PRFilter(repository=repository, state=state or "open", limit=limit if limit > 0 else 30)
    )


async def check_ci(
    client: RepoHostClient,
    repository: str,
    branch: str = "",
    workflow: str = "",
    limit: int = 10,
) -> list[WorkflowRun]:
    """Recent workflow runs, newest first."""
    split_full_name(repository)
    return await client.list_workflow_runs(
        CIFilter(
            repository=repository,
            branch=branch,
            workflow=workflow,
            limit=limit if limit > 0 else 10,
        )
    )
