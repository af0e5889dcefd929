"""Capability interface shared by the GitHub adapter and its caching decorator."""

from __future__ import annotations

from typing import Protocol

from repo_monitor.domain.models import (
    CIFilter,
    Commit,
    CommitFilter,
    MergeMethod,
    MergeResult,
    PRFilter,
    PullRequest,
    RefComparison,
    Repository,
    WorkflowRun,
)


class RepoHostClient(Protocol):
    async def list_repositories(
        self, name_filter: str = "", include_archived: bool = False
    ) -> list[Repository]:
        ...

    async def get_repository(self, owner: str, name: str) -> Repository:
        ...

    async def list_pull_requests(self, pr_filter: PRFilter) -> list[PullRequest]:
        ...

    async def get_pull_request(self, owner: str, name: str, number: int) -> PullRequest:
        ...

    async def create_pull_request(
        self,
        owner: str,
        name: str,
        title: str,
        body: str,
        head: str,
        base: str,
        draft: bool = False,
    ) -> PullRequest:
        ...

    async def merge_pull_request(
        self,
        owner: str,
        name: str,
        number: int,
        method: MergeMethod | str = MergeMethod.MERGE,
        commit_title: str = "",
    ) -> MergeResult:
        ...

    async def list_commits(self, commit_filter: CommitFilter) -> list[Commit]:
        ...

    async def list_workflow_runs(self, ci_filter: CIFilter) -> list[WorkflowRun]:
        ...

    async def rerun_workflow(self, owner: str, name: str, run_id: int) -> None:
        ...

    async def trigger_workflow(self, owner: str, name: str, workflow_id: str, ref: str) -> None:
        ...

    async def compare_refs(self, owner: str, name: str, base: str, head: str) -> RefComparison:
        ...

    async def delete_ref(self, owner: str, name: str, ref: str) -> None:
        ...

    async def delete_branch(self, owner: str, name: str, branch: str) -> None:
        ...

    async def create_branch(self, owner: str, name: str, branch: str, sha: str) -> None:
        ...

    async def get_current_user(self) -> str:
        ...

    async def close(self) -> None:
        ...
