"""
Drift detection
===============

Classifies a base/head comparison. Drift only counts when files actually
differ: a branch that is "behind" by merge commits alone carries no content
change and is reported as synced.
"""

from __future__ import annotations

from typing import Final

from repo_monitor.domain.models import DriftSeverity, DriftStatus, RefComparison, UpstreamStatus

LOW_SEVERITY_MAX_COMMITS: Final[int] = 5
MEDIUM_SEVERITY_MAX_COMMITS: Final[int] = 20


def analyze_drift(comparison: RefComparison) -> DriftStatus:
    """Return the drift status for ``comparison``."""
    if comparison.upstream_status == UpstreamStatus.IDENTICAL or not comparison.changed_files:
        return DriftStatus.NONE

    if comparison.ahead_by > 0 and comparison.behind_by > 0:
        return DriftStatus.DIVERGED
    if comparison.ahead_by > 0:
        return DriftStatus.BASE_AHEAD
    if comparison.behind_by > 0:
        return DriftStatus.HEAD_AHEAD
    return DriftStatus.NONE


def get_drift_severity(comparison: RefComparison) -> DriftSeverity:
    """Bucket the ahead/behind commit total; NONE whenever no file changed."""
    if not comparison.changed_files:
        return DriftSeverity.NONE

    total = comparison.ahead_by + comparison.behind_by
    if total == 0:
        return DriftSeverity.NONE
    if total <= LOW_SEVERITY_MAX_COMMITS:
        return DriftSeverity.LOW
    if total <= MEDIUM_SEVERITY_MAX_COMMITS:
        return DriftSeverity.MEDIUM
    return DriftSeverity.HIGH


def has_significant_drift(comparison: RefComparison) -> bool:
    """True iff the comparison changes at least one file."""
    return bool(comparison.changed_files)
