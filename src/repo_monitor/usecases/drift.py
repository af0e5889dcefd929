"""Drift checks between production and development branches, and sync PRs."""

from __future__ import annotations

import logging

from repo_monitor.config import BranchConfig, ReposConfig
from repo_monitor.domain.drift import analyze_drift, get_drift_severity, has_significant_drift
from repo_monitor.domain.models import DriftReport, SyncPRResult, split_full_name
from repo_monitor.domain.rollback import get_recommended_actions
from repo_monitor.errors import DomainRuleError, GitHubError, UseCaseError
from repo_monitor.github.protocol import RepoHostClient

logger = logging.getLogger("repo_monitor.usecases.drift")


async def _check_repository(
    client: RepoHostClient, repos_config: ReposConfig, full_name: str
) -> DriftReport:
    owner, name = split_full_name(full_name)
    branches = repos_config.branch_config_for(full_name)

    comparison = await client.compare_refs(owner, name, branches.prod_branch, branches.dev_branch)
    comparison.drift_status = analyze_drift(comparison)

    return DriftReport(
        comparison=comparison,
        severity=get_drift_severity(comparison),
        actions=get_recommended_actions(comparison.drift_status),
    )


async def check_drift(
    client: RepoHostClient,
    repos_config: ReposConfig,
    repository: str = "",
) -> list[DriftReport]:
    """Compare the configured prod (base) and dev (head) branches.

    With a repository, its report is returned whatever the drift. Without
    one, every non-archived repository is scanned; repositories whose
    comparison fails are skipped and only comparisons with commits are kept.
    """
    if repository:
        return [await _check_repository(client, repos_config, repository)]

    reports: list[DriftReport] = []
    for repo in await client.list_repositories("", False):
        try:
            report = await _check_repository(client, repos_config, repo.full_name)
        except (DomainRuleError, GitHubError) as exc:
            logger.warning("Skipping drift check for %s: %s", repo.full_name, exc)
            continue
        if report.comparison.total_commits > 0:
            reports.append(report)
    return reports


def _sync_body(branches: BranchConfig, commits: int, files: int) -> str:
    return (
        "## Sync PR\n\n"
        f"This PR syncs `{branches.prod_branch}` into `{branches.dev_branch}`.\n\n"
        "### Changes\n"
        f"- **Commits**: {commits}\n"
        f"- **Files changed**: {files}\n\n"
        "---\n"
        "_Created by repo-monitor_"
    )


async def create_sync_pr(
    client: RepoHostClient,
    repos_config: ReposConfig,
    repository: str,
    title: str = "",
    body: str = "",
    dry_run: bool = False,
) -> SyncPRResult:
    """Open a PR merging the prod branch into the dev branch when they drifted.

    Raises:
        DomainRuleError: If ``repository`` is not ``owner/name``
        UseCaseError: If the comparison or PR creation fails
    """
    owner, name = split_full_name(repository)
    branches = repos_config.branch_config_for(repository)

    try:
        comparison = await client.compare_refs(owner, name, branches.prod_branch, branches.dev_branch)
    except GitHubError as exc:
        raise UseCaseError(f"failed to compare branches for {repository}: {exc}") from exc

    if not has_significant_drift(comparison):
        return SyncPRResult(
            success=True,
            message="Branches are already in sync, no PR needed",
            commits=comparison.total_commits,
        )

    files = len(comparison.changed_files)
    if dry_run:
        return SyncPRResult(
            success=True,
            message=f"[DRY RUN] Would create PR: {branches.prod_branch} -> {branches.dev_branch}",
            files_changed=files,
            commits=comparison.total_commits,
        )

    title = title or f"sync: merge {branches.prod_branch} into {branches.dev_branch}"
    body = body or _sync_body(branches, comparison.total_commits, files)

    try:
        pr = await client.create_pull_request(
            owner, name, title, body, branches.prod_branch, branches.dev_branch, False
        )
    except GitHubError as exc:
        raise UseCaseError(f"failed to create sync PR for {repository}: {exc}") from exc

    return SyncPRResult(
        success=True,
        message=f"Created sync PR #{pr.number}",
        pr_number=pr.number,
        pr_url=pr.html_url,
        files_changed=files,
        commits=comparison.total_commits,
    )
