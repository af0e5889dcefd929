"""Creating and merging pull requests."""

from __future__ import annotations

import logging

from repo_monitor.domain.models import (
    CreatePRResult,
    MergeMethod,
    MergeResult,
    split_full_name,
)
from repo_monitor.errors import DomainRuleError, GitHubError, UseCaseError
from repo_monitor.github.protocol import RepoHostClient

logger = logging.getLogger("repo_monitor.usecases.pull_requests")


async def create_pull_request(
    client: RepoHostClient,
    repository: str,
    title: str,
    head: str,
    base: str,
    body: str = "",
    draft: bool = False,
    dry_run: bool = False,
) -> CreatePRResult:
    """
    Open a pull request from ``head`` into ``base``.

    A dry run compares ``base...head`` and reports what the PR would contain.

    Raises:
        DomainRuleError: If the repository is malformed or title/head/base is empty
        UseCaseError: If GitHub rejects the comparison or the creation
    """
    owner, name = split_full_name(repository)
    if not title:
        raise DomainRuleError("title is required")
    if not head:
        raise DomainRuleError("head branch is required")
    if not base:
        raise DomainRuleError("base branch is required")

    if dry_run:
        try:
            comparison = await client.compare_refs(owner, name, base, head)
        except GitHubError as exc:
            raise UseCaseError(f"failed to compare {base}...{head} in {repository}: {exc}") from exc
        draft_label = " (draft)" if draft else ""
        return CreatePRResult(
            success=True,
            message=f"[DRY RUN] Would create PR{draft_label}: {head} -> {base}",
            files_changed=len(comparison.changed_files),
            commits=comparison.total_commits,
        )

    try:
        pr = await client.create_pull_request(owner, name, title, body, head, base, draft)
    except GitHubError as exc:
        raise UseCaseError(f"failed to create PR in {repository}: {exc}") from exc

    return CreatePRResult(
        success=True,
        message=f"Created PR #{pr.number}",
        pull_request=pr,
    )


async def merge_pull_request(
    client: RepoHostClient,
    repository: str,
    number: int,
    method: str = "",
    commit_title: str = "",
    delete_branch: bool = False,
    dry_run: bool = False,
) -> MergeResult:
    """
    Merge a pull request after checking it can be merged.

    Rules checked before any mutation: positive ``number``, a known merge
    method, the PR is open, and GitHub has not flagged it unmergeable.
    When ``delete_branch`` is set, a failed branch deletion after a
    successful merge is reported in ``warnings``; the merge still succeeds.

    Raises:
        DomainRuleError: If any rule above is violated
        UseCaseError: If fetching or merging the PR fails
    """
    owner, name = split_full_name(repository)
    if number <= 0:
        raise DomainRuleError("pr_number is required and must be positive")
    merge_method = MergeMethod.parse(method)

    try:
        pr = await client.get_pull_request(owner, name, number)
    except GitHubError as exc:
        raise UseCaseError(f"failed to get PR #{number} in {repository}: {exc}") from exc

    if not pr.is_open:
        raise DomainRuleError(f"PR #{number} is not open (state: {pr.state})")
    if pr.mergeable is False:
        raise DomainRuleError(f"PR #{number} has merge conflicts, resolve them before merging")

    if dry_run:
        message = f"[DRY RUN] Would merge PR #{number} using {merge_method.value} method"
        if delete_branch:
            message += f" and delete branch '{pr.head_branch}'"
        return MergeResult(
            success=True,
            pr_number=number,
            merge_method=merge_method,
            message=message,
            pr_url=pr.html_url,
            branch_name=pr.head_branch,
        )

    try:
        result = await client.merge_pull_request(owner, name, number, merge_method, commit_title)
    except GitHubError as exc:
        raise UseCaseError(f"failed to merge PR #{number} in {repository}: {exc}") from exc

    result.branch_name = pr.head_branch

    if delete_branch and pr.head_branch:
        try:
            await client.delete_branch(owner, name, pr.head_branch)
        except GitHubError as exc:
            warning = f"failed to delete branch '{pr.head_branch}': {exc}"
            logger.warning("PR #%d in %s merged, but %s", number, repository, warning)
            result.warnings.append(warning)
        else:
            result.branch_deleted = True

    return result
