"""Rollback strategy selection and drift remediation advice."""

from __future__ import annotations

from typing import Final, Sequence

from repo_monitor.domain.models import (
    DriftStatus,
    RollbackResult,
    RollbackStrategy,
    RunConclusion,
    WorkflowRun,
)

RECOMMENDED_ACTIONS: Final[dict[DriftStatus, tuple[str, ...]]] = {
    DriftStatus.NONE: (
        "No action needed - branches are synced",
    ),
    DriftStatus.BASE_AHEAD: (
        "Create sync PR to merge base into head",
        "Cherry-pick specific commits to head",
    ),
    DriftStatus.HEAD_AHEAD: (
        "Create PR to merge head into base",
        "Review and merge pending PRs",
    ),
    DriftStatus.DIVERGED: (
        "Review diverged commits carefully",
        "Consider rebasing head on base",
        "Create sync PR with manual conflict resolution",
    ),
}

UNKNOWN_STATUS_ACTIONS: Final[tuple[str, ...]] = ("Unknown drift status",)

MANUAL_REVERT_MESSAGE: Final[str] = (
    "Revert strategy requires manual intervention - "
    "create a revert commit through the GitHub UI or CLI"
)


def determine_strategy(recent_runs: Sequence[WorkflowRun]) -> RollbackStrategy:
    """Pick a strategy from runs ordered newest first.

    Only the most recent run matters: a failed run can simply be re-run,
    anything else needs a revert.
    """
    if not recent_runs:
        return RollbackStrategy.REVERT
    if recent_runs[0].conclusion == RunConclusion.FAILURE:
        return RollbackStrategy.RERUN
    return RollbackStrategy.REVERT


def get_recommended_actions(status: DriftStatus | str) -> list[str]:
    """Ordered next steps for a drift status."""
    try:
        key = DriftStatus(status)
    except ValueError:
        return list(UNKNOWN_STATUS_ACTIONS)
    return list(RECOMMENDED_ACTIONS.get(key, UNKNOWN_STATUS_ACTIONS))


def manual_revert_result() -> RollbackResult:
    """Result for the revert strategy, which is always left to an operator."""
    return RollbackResult(
        success=False,
        strategy=RollbackStrategy.REVERT,
        message=MANUAL_REVERT_MESSAGE,
    )
