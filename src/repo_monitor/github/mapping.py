"""Conversion of GitHub REST payloads into domain types."""

from __future__ import annotations

from datetime import datetime
from typing import Any

from repo_monitor.domain.models import (
    Commit,
    FileDelta,
    PullRequest,
    RefComparison,
    Repository,
    RunConclusion,
    UpstreamStatus,
    WorkflowRun,
)
from repo_monitor.errors import GitHubError


def parse_timestamp(raw: Any) -> datetime | None:
    """Parse GitHub's ISO 8601 timestamps (``2024-05-01T10:00:00Z``)."""
    if not raw or not isinstance(raw, str):
        return None
    try:
        return datetime.fromisoformat(raw.replace("Z", "+00:00"))
    except ValueError:
        return None


def _login(user: Any) -> str:
    if isinstance(user, dict):
        return str(user.get("login") or "")
    return ""


def to_repository(data: dict[str, Any]) -> Repository:
    return Repository(
        id=int(data.get("id") or 0),
        name=str(data.get("name") or ""),
        full_name=str(data.get("full_name") or ""),
        description=str(data.get("description") or ""),
        private=bool(data.get("private")),
        archived=bool(data.get("archived")),
        fork=bool(data.get("fork")),
        default_branch=str(data.get("default_branch") or "main"),
        language=str(data.get("language") or ""),
        stars=int(data.get("stargazers_count") or 0),
        forks=int(data.get("forks_count") or 0),
        open_issues=int(data.get("open_issues_count") or 0),
        html_url=str(data.get("html_url") or ""),
        clone_url=str(data.get("clone_url") or ""),
        updated_at=parse_timestamp(data.get("updated_at")),
        pushed_at=parse_timestamp(data.get("pushed_at")),
    )


def to_pull_request(data: dict[str, Any], repository: str) -> PullRequest:
    head = data.get("head") or {}
    base = data.get("base") or {}
    mergeable = data.get("mergeable")
    return PullRequest(
        id=int(data.get("id") or 0),
        number=int(data.get("number") or 0),
        title=str(data.get("title") or ""),
        state=str(data.get("state") or ""),
        repository=repository,
        body=str(data.get("body") or ""),
        draft=bool(data.get("draft")),
        html_url=str(data.get("html_url") or ""),
        user=_login(data.get("user")),
        head_branch=str(head.get("ref") or ""),
        base_branch=str(base.get("ref") or ""),
        mergeable=mergeable if isinstance(mergeable, bool) else None,
        additions=int(data.get("additions") or 0),
        deletions=int(data.get("deletions") or 0),
        changed_files=int(data.get("changed_files") or 0),
        created_at=parse_timestamp(data.get("created_at")),
        updated_at=parse_timestamp(data.get("updated_at")),
        merged_at=parse_timestamp(data.get("merged_at")),
        closed_at=parse_timestamp(data.get("closed_at")),
        labels=[str(label.get("name") or "") for label in data.get("labels") or []],
        reviewers=[_login(user) for user in data.get("requested_reviewers") or []],
    )


def to_commit(data: dict[str, Any], repository: str, branch: str) -> Commit:
    commit = data.get("commit") or {}
    author = commit.get("author") or {}
    stats = data.get("stats") or {}
    return Commit(
        sha=str(data.get("sha") or ""),
        message=str(commit.get("message") or ""),
        author=str(author.get("name") or ""),
        author_email=str(author.get("email") or ""),
        date=parse_timestamp(author.get("date")),
        html_url=str(data.get("html_url") or ""),
        additions=int(stats.get("additions") or 0),
        deletions=int(stats.get("deletions") or 0),
        repository=repository,
        branch=branch,
    )


def to_workflow_run(data: dict[str, Any], repository: str) -> WorkflowRun:
    return WorkflowRun(
        id=int(data.get("id") or 0),
        conclusion=RunConclusion.parse(data.get("conclusion")),
        created_at=parse_timestamp(data.get("created_at")),
        name=str(data.get("name") or ""),
        workflow_id=int(data.get("workflow_id") or 0),
        head_branch=str(data.get("head_branch") or ""),
        head_sha=str(data.get("head_sha") or ""),
        status=str(data.get("status") or ""),
        html_url=str(data.get("html_url") or ""),
        run_number=int(data.get("run_number") or 0),
        run_attempt=int(data.get("run_attempt") or 0),
        updated_at=parse_timestamp(data.get("updated_at")),
        repository=repository,
        actor=_login(data.get("actor")),
        event=str(data.get("event") or ""),
    )


def to_file_delta(data: dict[str, Any]) -> FileDelta:
    return FileDelta(
        path=str(data.get("filename") or ""),
        change_kind=str(data.get("status") or ""),
        additions=int(data.get("additions") or 0),
        deletions=int(data.get("deletions") or 0),
        changes=int(data.get("changes") or 0),
        patch=str(data.get("patch") or ""),
    )


def to_ref_comparison(
    data: dict[str, Any],
    repository: str,
    base: str,
    head: str,
) -> RefComparison:
    raw_status = str(data.get("status") or "")
    try:
        status = UpstreamStatus(raw_status)
    except ValueError:
        raise GitHubError(
            f"compare_refs {repository} {base}...{head}: unexpected comparison status {raw_status!r}",
            operation="compare_refs",
            target=repository,
            payload={"status": raw_status},
        ) from None

    return RefComparison(
        source_repo=repository,
        base_ref=base,
        head_ref=head,
        ahead_by=int(data.get("ahead_by") or 0),
        behind_by=int(data.get("behind_by") or 0),
        total_commits=int(data.get("total_commits") or 0),
        upstream_status=status,
        changed_files=[to_file_delta(f) for f in data.get("files") or []],
        commits=[to_commit(c, repository, head) for c in data.get("commits") or []],
    )
