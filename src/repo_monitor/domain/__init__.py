"""Domain types and the drift/rollback decision rules."""

from repo_monitor.domain.drift import analyze_drift, get_drift_severity, has_significant_drift
from repo_monitor.domain.rollback import determine_strategy, get_recommended_actions

__all__ = [
    "analyze_drift",
    "get_drift_severity",
    "has_significant_drift",
    "determine_strategy",
    "get_recommended_actions",
]
