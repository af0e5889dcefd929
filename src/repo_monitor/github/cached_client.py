"""
Caching decorator for the GitHub adapter
========================================

Serves repository and pull-request listings from short-lived TTL caches and
forwards every other call to the wrapped client unchanged. Comparisons and
all mutations always hit GitHub.

Cache keys are ``"<operation>:<json of filter parameters>"`` with sorted
keys, so distinct filter combinations never share an entry.

Two callers missing the same key at the same time both fetch from GitHub;
there is no in-flight deduplication.
"""

from __future__ import annotations

import json
import logging
from dataclasses import asdict
from typing import Any

from repo_monitor.core.cache import TTLCache
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
from repo_monitor.github.protocol import RepoHostClient

logger = logging.getLogger("repo_monitor.github.cached_client")


def cache_key(operation: str, params: dict[str, Any]) -> str:
    """Deterministic key for ``operation`` called with ``params``."""
    return f"{operation}:{json.dumps(params, sort_keys=True, default=str)}"


class CachedGitHubAdapter:
    """``RepoHostClient`` that caches repository and pull-request listings.

    Args:
        inner: Client every call is forwarded to
        repo_cache: Cache for repository listings; created when omitted
        pr_cache: Cache for pull-request listings; created when omitted
        ttl: Default TTL for caches this instance creates
        cleanup_interval: Sweep interval for caches this instance creates
    """

    def __init__(
        self,
        inner: RepoHostClient,
        *,
        repo_cache: TTLCache[list[Repository]] | None = None,
        pr_cache: TTLCache[list[PullRequest]] | None = None,
        ttl: float = 300.0,
        cleanup_interval: float = 60.0,
    ) -> None:
        self._inner = inner
        self._owned_caches: list[TTLCache[Any]] = []

        if repo_cache is None:
            repo_cache = TTLCache(ttl, cleanup_interval)
            self._owned_caches.append(repo_cache)
        if pr_cache is None:
            pr_cache = TTLCache(ttl, cleanup_interval)
            self._owned_caches.append(pr_cache)

        self.repo_cache = repo_cache
        self.pr_cache = pr_cache

    @property
    def inner(self) -> RepoHostClient:
        return self._inner

    # ------------------------------------------------------------------
    # Cached reads
    # ------------------------------------------------------------------

    async def list_repositories(
        self, name_filter: str = "", include_archived: bool = False
    ) -> list[Repository]:
        key = cache_key(
            "list_repositories",
            {"name_filter": name_filter, "include_archived": include_archived},
        )
        cached, found = self.repo_cache.get(key)
        if found and cached is not None:
            logger.debug("Cache hit: %s", key)
            return list(cached)

        logger.debug("Cache miss: %s", key)
        repos = await self._inner.list_repositories(name_filter, include_archived)
        self.repo_cache.set(key, list(repos))
        return repos

    async def list_pull_requests(self, pr_filter: PRFilter) -> list[PullRequest]:
        key = cache_key("list_pull_requests", asdict(pr_filter))
        cached, found = self.pr_cache.get(key)
        if found and cached is not None:
            logger.debug("Cache hit: %s", key)
            return list(cached)

        logger.debug("Cache miss: %s", key)
        prs = await self._inner.list_pull_requests(pr_filter)
        self.pr_cache.set(key, list(prs))
        return prs

    def invalidate(self) -> None:
        """Drop every cached listing."""
        self.repo_cache.clear()
        self.pr_cache.clear()

    # ------------------------------------------------------------------
    # Forwarded
    # ------------------------------------------------------------------

    async def get_repository(self, owner: str, name: str) -> Repository:
        return await self._inner.get_repository(owner, name)

    async def get_pull_request(self, owner: str, name: str, number: int) -> PullRequest:
        return await self._inner.get_pull_request(owner, name, number)

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
        return await self._inner.create_pull_request(owner, name, title, body, head, base, draft)

    async def merge_pull_request(
        self,
        owner: str,
        name: str,
        number: int,
        method: MergeMethod | str = MergeMethod.MERGE,
        commit_title: str = "",
    ) -> MergeResult:
        return await self._inner.merge_pull_request(owner, name, number, method, commit_title)

    async def list_commits(self, commit_filter: CommitFilter) -> list[Commit]:
        return await self._inner.list_commits(commit_filter)

    async def list_workflow_runs(self, ci_filter: CIFilter) -> list[WorkflowRun]:
        return await self._inner.list_workflow_runs(ci_filter)

    async def rerun_workflow(self, owner: str, name: str, run_id: int) -> None:
        await self._inner.rerun_workflow(owner, name, run_id)

    async def trigger_workflow(self, owner: str, name: str, workflow_id: str, ref: str) -> None:
        await self._inner.trigger_workflow(owner, name, workflow_id, ref)

    async def compare_refs(self, owner: str, name: str, base: str, head: str) -> RefComparison:
        return await self._inner.compare_refs(owner, name, base, head)

    async def delete_ref(self, owner: str, name: str, ref: str) -> None:
        await self._inner.delete_ref(owner, name, ref)

    async def delete_branch(self, owner: str, name: str, branch: str) -> None:
        await self._inner.delete_branch(owner, name, branch)

    async def create_branch(self, owner: str, name: str, branch: str, sha: str) -> None:
        await self._inner.create_branch(owner, name, branch, sha)

    async def get_current_user(self) -> str:
        return await self._inner.get_current_user()

    async def close(self) -> None:
        """Stop the sweepers of caches created here, then close the inner client."""
        for cache in self._owned_caches:
            cache.stop()
        await self._inner.close()
