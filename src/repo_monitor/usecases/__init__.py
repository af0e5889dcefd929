"""Operations exposed to the CLI, each taking a ``RepoHostClient`` first."""

from repo_monitor.usecases.branches import delete_branch
from repo_monitor.usecases.commits import recent_commits
from repo_monitor.usecases.drift import check_drift, create_sync_pr
from repo_monitor.usecases.pull_requests import create_pull_request, merge_pull_request
from repo_monitor.usecases.rollback import trigger_rollback
from repo_monitor.usecases.status import check_ci, list_pull_requests, list_status

__all__ = [
    "check_ci",
    "check_drift",
    "create_pull_request",
    "create_sync_pr",
    "delete_branch",
    "list_pull_requests",
    "list_status",
    "merge_pull_request",
    "recent_commits",
    "trigger_rollback",
]
