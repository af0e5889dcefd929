"""Rollback execution: re-run a failed run, dispatch a workflow, or hand off a revert."""

from __future__ import annotations

import logging

from repo_monitor.domain.models import (
    CIFilter,
    RollbackResult,
    RollbackStrategy,
    split_full_name,
)
from repo_monitor.domain.rollback import determine_strategy, manual_revert_result
from repo_monitor.errors import DomainRuleError, GitHubError, UseCaseError
from repo_monitor.github.client import GITHUB_WEB_BASE
from repo_monitor.github.protocol import RepoHostClient

logger = logging.getLogger("repo_monitor.usecases.rollback")


def _parse_strategy(raw: RollbackStrategy | str) -> RollbackStrategy:
    if isinstance(raw, RollbackStrategy):
        return raw
    try:
        return RollbackStrategy(raw.lower())
    except ValueError:
        raise DomainRuleError(
            f"unknown rollback strategy '{raw}', must be rerun, revert, or workflow"
        ) from None


async def trigger_rollback(
    client: RepoHostClient,
    repository: str,
    strategy: RollbackStrategy | str = "",
    workflow_id: str = "",
    run_id: int = 0,
    dry_run: bool = False,
) -> RollbackResult:
    """
    Execute a rollback strategy for ``repository``.

    - ``rerun``: re-run ``run_id``, or the latest run when it is 0
    - ``workflow``: dispatch ``workflow_id`` on the default branch
    - ``revert``: never automated; returns an unsuccessful result
    - empty: chosen from the latest run by ``determine_strategy``

    Raises:
        DomainRuleError: For a malformed repository, unknown strategy or
            a workflow rollback without ``workflow_id``
        UseCaseError: If GitHub calls fail or there is no run to re-run
    """
    owner, name = split_full_name(repository)

    try:
        if strategy:
            chosen = _parse_strategy(strategy)
        else:
            latest = await client.list_workflow_runs(CIFilter(repository=repository, limit=1))
            chosen = determine_strategy(latest)
            if chosen == RollbackStrategy.RERUN and not run_id:
                run_id = latest[0].id
            logger.info("Selected %s rollback for %s", chosen.value, repository)

        if chosen == RollbackStrategy.TRIGGER_WORKFLOW and not workflow_id:
            raise DomainRuleError("workflow_id required for workflow strategy")

        if dry_run:
            return RollbackResult(
                success=True,
                strategy=chosen,
                message=f"[DRY RUN] Would execute {chosen.value} rollback on {repository}",
            )

        if chosen == RollbackStrategy.REVERT:
            return manual_revert_result()

        if chosen == RollbackStrategy.RERUN:
            if not run_id:
                runs = await client.list_workflow_runs(CIFilter(repository=repository, limit=1))
                if not runs:
                    raise UseCaseError(f"no workflow runs found for {repository}")
                run_id = runs[0].id
            await client.rerun_workflow(owner, name, run_id)
            return RollbackResult(
                success=True,
                strategy=chosen,
                message=f"Rerun triggered for run ID {run_id}",
                run_url=f"{GITHUB_WEB_BASE}/{repository}/actions/runs/{run_id}",
            )

        repo = await client.get_repository(owner, name)
        await client.trigger_workflow(owner, name, workflow_id, repo.default_branch)
        return RollbackResult(
            success=True,
            strategy=chosen,
            message=f"Workflow {workflow_id} triggered on {repo.default_branch}",
        )
    except GitHubError as exc:
        raise UseCaseError(f"rollback for {repository} failed: {exc}") from exc
