"""
Tests for drift classification
==============================

Verifies:
1. analyze_drift: identical or file-less comparisons are synced
2. ahead/behind combinations map to base_ahead, head_ahead, diverged
3. severity buckets at 0, 5, 20 commits
4. has_significant_drift depends on changed files only
"""

import pytest

from repo_monitor.domain.drift import analyze_drift, get_drift_severity, has_significant_drift
from repo_monitor.domain.models import (
    DriftSeverity,
    DriftStatus,
    FileDelta,
    RefComparison,
    UpstreamStatus,
)


def _comparison(
    ahead: int,
    behind: int,
    files: int = 1,
    status: UpstreamStatus | None = None,
) -> RefComparison:
    if status is None:
        if ahead and behind:
            status = UpstreamStatus.DIVERGED
        elif ahead:
            status = UpstreamStatus.AHEAD
        elif behind:
            status = UpstreamStatus.BEHIND
        else:
            status = UpstreamStatus.IDENTICAL
    return RefComparison(
        source_repo="octo/api",
        base_ref="main",
        head_ref="develop",
        ahead_by=ahead,
        behind_by=behind,
        total_commits=ahead,
        upstream_status=status,
        changed_files=[FileDelta(path=f"file{i}.py", change_kind="modified") for i in range(files)],
    )


class TestAnalyzeDrift:
    """Status classification."""

    @pytest.mark.parametrize(
        "ahead,behind,expected",
        [
            (5, 0, DriftStatus.BASE_AHEAD),
            (0, 3, DriftStatus.HEAD_AHEAD),
            (2, 4, DriftStatus.DIVERGED),
        ],
    )
    def test_directions(self, ahead: int, behind: int, expected: DriftStatus) -> None:
        assert analyze_drift(_comparison(ahead, behind)) == expected

    def test_identical_is_synced(self) -> None:
        assert analyze_drift(_comparison(0, 0, files=0)) == DriftStatus.NONE

    def test_identical_status_wins_over_files(self) -> None:
        comparison = _comparison(0, 0, files=2, status=UpstreamStatus.IDENTICAL)
        assert analyze_drift(comparison) == DriftStatus.NONE

    def test_merge_commits_only_is_synced(self) -> None:
        """Behind by commits that change nothing."""
        assert analyze_drift(_comparison(0, 7, files=0)) == DriftStatus.NONE

    def test_zero_counts_with_files_is_synced(self) -> None:
        comparison = _comparison(0, 0, files=1, status=UpstreamStatus.AHEAD)
        assert analyze_drift(comparison) == DriftStatus.NONE

    def test_synced_value(self) -> None:
        assert DriftStatus.NONE.value == "synced"


class TestSeverity:
    """Bucket boundaries on ahead + behind."""

    @pytest.mark.parametrize(
        "ahead,behind,expected",
        [
            (0, 0, DriftSeverity.NONE),
            (1, 0, DriftSeverity.LOW),
            (3, 2, DriftSeverity.LOW),
            (6, 0, DriftSeverity.MEDIUM),
            (10, 10, DriftSeverity.MEDIUM),
            (21, 0, DriftSeverity.HIGH),
            (15, 15, DriftSeverity.HIGH),
        ],
    )
    def test_buckets(self, ahead: int, behind: int, expected: DriftSeverity) -> None:
        assert get_drift_severity(_comparison(ahead, behind)) == expected

    def test_no_files_means_none(self) -> None:
        assert get_drift_severity(_comparison(40, 0, files=0)) == DriftSeverity.NONE


class TestSignificance:
    """Only changed files make drift significant."""

    def test_files_changed(self) -> None:
        assert has_significant_drift(_comparison(1, 0, files=1)) is True

    def test_no_files(self) -> None:
        assert has_significant_drift(_comparison(12, 3, files=0)) is False


class TestRefComparison:
    """Counts are validated at construction."""

    @pytest.mark.parametrize("ahead,behind", [(-1, 0), (0, -1)])
    def test_negative_counts_rejected(self, ahead: int, behind: int) -> None:
        with pytest.raises(ValueError):
            _comparison(ahead, behind, status=UpstreamStatus.AHEAD)
