"""Branch deletion with protection for long-lived branches."""

from __future__ import annotations

from typing import Final

from repo_monitor.domain.models import DeleteBranchResult, split_full_name
from repo_monitor.errors import DomainRuleError, GitHubError, UseCaseError
from repo_monitor.github.protocol import RepoHostClient

PROTECTED_BRANCHES: Final[frozenset[str]] = frozenset({"main", "master", "develop", "production"})


async def delete_branch(
    client: RepoHostClient,
    repository: str,
    branch: str,
    dry_run: bool = False,
) -> DeleteBranchResult:
    """
    Delete ``branch`` from ``repository``.

    Raises:
        DomainRuleError: If the branch is empty or protected
        UseCaseError: If GitHub refuses the deletion
    """
    owner, name = split_full_name(repository)
    if not branch:
        raise DomainRuleError("branch name is required")
    if branch in PROTECTED_BRANCHES:
        raise DomainRuleError(f"refusing to delete protected branch '{branch}'")

    if dry_run:
        return DeleteBranchResult(
            success=True,
            message=f"[DRY RUN] Would delete branch '{branch}' from {repository}",
        )

    try:
        await client.delete_branch(owner, name, branch)
    except GitHubError as exc:
        raise UseCaseError(f"failed to delete branch '{branch}' from {repository}: {exc}") from exc

    return DeleteBranchResult(
        success=True,
        message=f"Deleted branch '{branch}' from {repository}",
    )
