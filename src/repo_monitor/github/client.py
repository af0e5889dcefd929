"""
GitHub REST Adapter
===================

Async httpx client for the parts of the GitHub REST API the monitor needs:
repositories, pull requests, commits, Actions runs, ref comparisons and
branch refs.

Every call goes through the same path:

1. wait on the shared ``RateBudget`` (held back only when the remaining
   quota is at or below its threshold);
2. send the request inside ``RetryExecutor.run`` so 429/5xx and rate-limit
   responses are retried with backoff;
3. feed the response's rate-limit headers back into the budget;
4. map non-2xx responses to the typed errors in ``repo_monitor.errors``
   and 2xx payloads to domain types.

List endpoints follow ``Link: <...>; rel="next"`` pagination, apply
client-side filters page by page, and stop as soon as the limit is met.

Security:
- The token is only ever sent in the Authorization header, never logged
- Pagination URLs outside the configured base URL are ignored
- Owner, repository, ref and workflow names are percent-escaped in paths
"""

from __future__ import annotations

import asyncio
import json
import logging
import re
from typing import Any, Callable, Final, TypeVar
from urllib.parse import quote

import httpx

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
    split_full_name,
)
from repo_monitor.errors import (
    DomainRuleError,
    GitHubAuthError,
    GitHubConflictError,
    GitHubError,
    GitHubNotConfiguredError,
    GitHubNotFoundError,
    GitHubRateLimitError,
    GitHubSecondaryRateLimitError,
    GitHubServerError,
    GitHubTransportError,
    GitHubValidationError,
)
from repo_monitor.github import mapping
from repo_monitor.github.rate_limit import REMAINING_HEADER, RateBudget
from repo_monitor.github.retry import RetryExecutor

logger = logging.getLogger("repo_monitor.github.client")

T = TypeVar("T")

GITHUB_API_BASE: Final[str] = "https://api.github.com"
GITHUB_WEB_BASE: Final[str] = "https://github.com"
API_VERSION: Final[str] = "2022-11-28"

MAX_PER_PAGE: Final[int] = 100
DEFAULT_PR_LIMIT: Final[int] = 30
DEFAULT_COMMIT_LIMIT: Final[int] = 30
DEFAULT_RUN_LIMIT: Final[int] = 10

_NEXT_LINK_RE = re.compile(r'\s*<([^>]+)>;\s*rel="next"')


def _per_page(limit: int) -> int:
    if limit <= 0:
        return MAX_PER_PAGE
    return min(limit, MAX_PER_PAGE)


def _seg(value: str | int) -> str:
    """Escape one URL path segment; ``/``, ``#``, ``?`` and ``%`` included."""
    return quote(str(value), safe="")


def _ref(ref: str) -> str:
    """Escape a git ref, keeping the ``/`` between its parts."""
    return "/".join(_seg(part) for part in ref.split("/"))


class GitHubAdapter:
    """Rate-limited, retrying GitHub REST client returning domain types.

    Args:
        token: GitHub personal access token
        base_url: API root, overridable for GitHub Enterprise
        rate_budget: Shared budget; a fresh one is created when omitted
        retry: Retry executor; defaults to 1 call + 3 retries
        http_client: Injected ``httpx.AsyncClient`` (tests use a MockTransport)
        timeout: Request timeout in seconds for the owned client
        cancel_event: When set, pending rate-limit waits and backoffs abort

    Raises:
        GitHubNotConfiguredError: If ``token`` is empty
    """

    def __init__(
        self,
        token: str,
        *,
        base_url: str = GITHUB_API_BASE,
        rate_budget: RateBudget | None = None,
        retry: RetryExecutor | None = None,
        http_client: httpx.AsyncClient | None = None,
        timeout: float = 30.0,
        cancel_event: asyncio.Event | None = None,
    ) -> None:
        token = (token or "").strip()
        if not token:
            raise GitHubNotConfiguredError(
                "GITHUB_TOKEN is not set. Create a token at "
                "https://github.com/settings/tokens with the repo and workflow scopes",
                operation="configure",
                target="github",
            )

        self.base_url = base_url.rstrip("/")
        self.rate_budget = rate_budget or RateBudget()
        self.retry = retry or RetryExecutor()
        self._cancel_event = cancel_event
        self._headers = {
            "Accept": "application/vnd.github+json",
            "Authorization": f"Bearer {token}",
            "X-GitHub-Api-Version": API_VERSION,
        }
        self._owns_client = http_client is None
        self._client = http_client or httpx.AsyncClient(timeout=timeout)

    async def close(self) -> None:
        """Close the HTTP client if this adapter created it."""
        if self._owns_client:
            await self._client.aclose()

    async def __aenter__(self) -> "GitHubAdapter":
        return self

    async def __aexit__(self, *args: Any) -> None:
        await self.close()

    # ------------------------------------------------------------------
    # Transport
    # ------------------------------------------------------------------

    def _url(self, path: str) -> str:
        return f"{self.base_url}{path}"

    @staticmethod
    def _extract_detail(response: httpx.Response) -> tuple[str, dict[str, Any] | None]:
        try:
            payload = response.json()
        except ValueError:
            text = (response.text or "").strip()
            return text or response.reason_phrase, None
        if isinstance(payload, dict):
            message = payload.get("message")
            if isinstance(message, str) and message.strip():
                return message.strip(), payload
            return json.dumps(payload, ensure_ascii=False), payload
        return response.reason_phrase, None

    def _error_for(self, response: httpx.Response, operation: str, target: str) -> GitHubError:
        status = response.status_code
        detail, payload = self._extract_detail(response)
        message = f"{operation} {target} failed: {detail} (HTTP {status})"
        kwargs: dict[str, Any] = {
            "status_code": status,
            "detail": detail,
            "operation": operation,
            "target": target,
            "payload": payload,
        }

        lowered = detail.lower()
        if status in (403, 429):
            if "secondary rate limit" in lowered or "abuse" in lowered:
                retry_after: float | None = None
                raw_retry_after = response.headers.get("Retry-After")
                if raw_retry_after is not None:
                    try:
                        retry_after = float(raw_retry_after)
                    except ValueError:
                        retry_after = None
                return GitHubSecondaryRateLimitError(message, retry_after=retry_after, **kwargs)
            if status == 429 or response.headers.get(REMAINING_HEADER) == "0" or "rate limit" in lowered:
                return GitHubRateLimitError(
                    message,
                    reset_at=self.rate_budget.snapshot().reset_at_datetime,
                    **kwargs,
                )

        if status in (401, 403):
            return GitHubAuthError(message, **kwargs)
        if status == 404:
            return GitHubNotFoundError(message, **kwargs)
        # 405 is how the merge endpoint reports "not mergeable"
        if status in (405, 409):
            return GitHubConflictError(message, **kwargs)
        if status == 422:
            return GitHubValidationError(message, **kwargs)
        if 500 <= status <= 599:
            return GitHubServerError(message, **kwargs)
        return GitHubError(message, **kwargs)

    async def _send(
        self,
        method: str,
        url: str,
        operation: str,
        target: str,
        *,
        params: dict[str, Any] | None = None,
        body: dict[str, Any] | None = None,
    ) -> httpx.Response:
        """Issue one request; no waiting, no retries."""
        await self.rate_budget.wait(self._cancel_event)
        try:
            response = await self._client.request(
                method, url, params=params, json=body, headers=self._headers
            )
        except httpx.RequestError as exc:
            raise GitHubTransportError(
                f"{operation} {target} failed: {exc}",
                operation=operation,
                target=target,
            ) from exc

        self.rate_budget.update_from_response(response)
        if response.is_success:
            return response
        raise self._error_for(response, operation, target)

    async def _call(
        self,
        method: str,
        path_or_url: str,
        operation: str,
        target: str,
        *,
        params: dict[str, Any] | None = None,
        body: dict[str, Any] | None = None,
    ) -> httpx.Response:
        url = path_or_url if path_or_url.startswith("http") else self._url(path_or_url)
        return await self.retry.run(
            operation,
            lambda: self._send(method, url, operation, target, params=params, body=body),
            self._cancel_event,
        )

    def _parse_next_link(self, link_header: str) -> str | None:
        """Return the rel="next" URL from a Link header, if it points at our API."""
        if not link_header:
            return None
        for part in link_header.split(","):
            match = _NEXT_LINK_RE.match(part.strip())
            if match:
                url = match.group(1)
                if not url.startswith(self.base_url + "/"):
                    logger.warning("Ignoring pagination URL outside %s", self.base_url)
                    return None
                return url
        return None

    async def _paginate(
        self,
        operation: str,
        target: str,
        path: str,
        params: dict[str, Any],
        transform: Callable[[dict[str, Any]], T | None],
        *,
        limit: int = 0,
        item_key: str | None = None,
    ) -> list[T]:
        """Collect items across pages.

        ``transform`` returns None for items a client-side filter rejects.
        A ``limit`` of 0 or less fetches every page.
        """
        results: list[T] = []
        url: str | None = self._url(path)
        page_params: dict[str, Any] | None = {**params, "per_page": _per_page(limit)}
        page = 0

        while url:
            page += 1
            response = await self._call("GET", url, operation, target, params=page_params)
            data = response.json()
            items = data.get(item_key) if item_key and isinstance(data, dict) else data

            for raw in items or []:
                item = transform(raw)
                if item is None:
                    continue
                results.append(item)
                if 0 < limit <= len(results):
                    return results

            url = self._parse_next_link(response.headers.get("Link", ""))
            # the next link already carries every query parameter
            page_params = None
            if url:
                logger.debug("%s %s: page %d, %d items so far", operation, target, page + 1, len(results))

        return results

    # ------------------------------------------------------------------
    # Repositories
    # ------------------------------------------------------------------

    async def list_repositories(
        self, name_filter: str = "", include_archived: bool = False
    ) -> list[Repository]:
        """List repositories owned by the user or their organizations.

        Args:
            name_filter: Case-insensitive substring matched against ``owner/name``
            include_archived: Keep archived repositories
        """
        needle = name_filter.lower()

        def keep(raw: dict[str, Any]) -> Repository | None:
            if not include_archived and raw.get("archived"):
                return None
            if needle and needle not in str(raw.get("full_name") or "").lower():
                return None
            return mapping.to_repository(raw)

        repos = await self._paginate(
            "list_repositories",
            "user",
            "/user/repos",
            {"affiliation": "owner,organization_member", "sort": "updated"},
            keep,
        )
        logger.debug("Listed %d repositories", len(repos))
        return repos

    async def get_repository(self, owner: str, name: str) -> Repository:
        response = await self._call(
            "GET", f"/repos/{_seg(owner)}/{_seg(name)}", "get_repository", f"{owner}/{name}"
        )
        return mapping.to_repository(response.json())

    # ------------------------------------------------------------------
    # Pull requests
    # ------------------------------------------------------------------

    async def _list_repo_pull_requests(
        self, owner: str, name: str, state: str, limit: int
    ) -> list[PullRequest]:
        full_name = f"{owner}/{name}"
        return await self._paginate(
            "list_pull_requests",
            full_name,
            f"/repos/{_seg(owner)}/{_seg(name)}/pulls",
            {"state": state, "sort": "updated", "direction": "desc"},
            lambda raw: mapping.to_pull_request(raw, full_name),
            limit=limit,
        )

    async def list_pull_requests(self, pr_filter: PRFilter) -> list[PullRequest]:
        """List pull requests for one repository, or across all of them.

        Without a repository every non-archived repository is scanned until
        the limit is reached; repositories that fail are skipped.
        """
        state = pr_filter.state or "open"
        limit = pr_filter.limit if pr_filter.limit > 0 else DEFAULT_PR_LIMIT

        if pr_filter.repository:
            try:
                owner, name = split_full_name(pr_filter.repository)
            except DomainRuleError:
                return []
            return await self._list_repo_pull_requests(owner, name, state, limit)

        results: list[PullRequest] = []
        for repo in await self.list_repositories():
            try:
                owner, name = split_full_name(repo.full_name)
                results.extend(await self._list_repo_pull_requests(owner, name, state, limit))
            except (DomainRuleError, GitHubError) as exc:
                logger.warning("Skipping %s while listing pull requests: %s", repo.full_name, exc)
                continue
            if len(results) >= limit:
                break
        return results[:limit]

    async def get_pull_request(self, owner: str, name: str, number: int) -> PullRequest:
        full_name = f"{owner}/{name}"
        response = await self._call(
            "GET", f"/repos/{_seg(owner)}/{_seg(name)}/pulls/{number}", "get_pull_request", f"{full_name}#{number}"
        )
        return mapping.to_pull_request(response.json(), full_name)

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
        full_name = f"{owner}/{name}"
        response = await self._call(
            "POST",
            f"/repos/{_seg(owner)}/{_seg(name)}/pulls",
            "create_pull_request",
            full_name,
            body={"title": title, "body": body, "head": head, "base": base, "draft": draft},
        )
        pr = mapping.to_pull_request(response.json(), full_name)
        logger.info("Created PR #%d in %s (%s -> %s)", pr.number, full_name, head, base)
        return pr

    async def merge_pull_request(
        self,
        owner: str,
        name: str,
        number: int,
        method: MergeMethod | str = MergeMethod.MERGE,
        commit_title: str = "",
    ) -> MergeResult:
        """Merge a pull request.

        Raises:
            DomainRuleError: If ``method`` is not merge, squash or rebase
            GitHubConflictError: If the head moved or the PR cannot be merged
        """
        merge_method = method if isinstance(method, MergeMethod) else MergeMethod.parse(method)
        full_name = f"{owner}/{name}"
        body: dict[str, Any] = {"merge_method": merge_method.value}
        if commit_title:
            body["commit_title"] = commit_title

        response = await self._call(
            "PUT",
            f"/repos/{_seg(owner)}/{_seg(name)}/pulls/{number}/merge",
            "merge_pull_request",
            f"{full_name}#{number}",
            body=body,
        )
        data = response.json()
        logger.info("Merged PR #%d in %s using %s", number, full_name, merge_method.value)
        return MergeResult(
            success=bool(data.get("merged")),
            pr_number=number,
            merge_method=merge_method,
            sha=str(data.get("sha") or ""),
            message=str(data.get("message") or ""),
            pr_url=f"{GITHUB_WEB_BASE}/{full_name}/pull/{number}",
        )

    # ------------------------------------------------------------------
    # Commits
    # ------------------------------------------------------------------

    async def _list_repo_commits(
        self, owner: str, name: str, commit_filter: CommitFilter, limit: int
    ) -> list[Commit]:
        full_name = f"{owner}/{name}"
        params: dict[str, Any] = {}
        if commit_filter.branch:
            params["sha"] = commit_filter.branch
        if commit_filter.since is not None:
            params["since"] = commit_filter.since.isoformat()
        return await self._paginate(
            "list_commits",
            full_name,
            f"/repos/{_seg(owner)}/{_seg(name)}/commits",
            params,
            lambda raw: mapping.to_commit(raw, full_name, commit_filter.branch),
            limit=limit,
        )

    async def list_commits(self, commit_filter: CommitFilter) -> list[Commit]:
        """List commits for one repository, or across all non-archived ones."""
        limit = commit_filter.limit if commit_filter.limit > 0 else DEFAULT_COMMIT_LIMIT

        if commit_filter.repository:
            try:
                owner, name = split_full_name(commit_filter.repository)
            except DomainRuleError:
                return []
            return await self._list_repo_commits(owner, name, commit_filter, limit)

        results: list[Commit] = []
        for repo in await self.list_repositories():
            try:
                owner, name = split_full_name(repo.full_name)
                results.extend(await self._list_repo_commits(owner, name, commit_filter, limit))
            except (DomainRuleError, GitHubError) as exc:
                logger.warning("Skipping %s while listing commits: %s", repo.full_name, exc)
                continue
            if len(results) >= limit:
                break
        return results[:limit]

    # ------------------------------------------------------------------
    # Actions
    # ------------------------------------------------------------------

    async def list_workflow_runs(self, ci_filter: CIFilter) -> list[WorkflowRun]:
        """List workflow runs, newest first, optionally for one workflow file."""
        try:
            owner, name = split_full_name(ci_filter.repository)
        except DomainRuleError:
            return []

        limit = ci_filter.limit if ci_filter.limit > 0 else DEFAULT_RUN_LIMIT
        full_name = f"{owner}/{name}"
        base = f"/repos/{_seg(owner)}/{_seg(name)}/actions"
        if ci_filter.workflow:
            path = f"{base}/workflows/{_seg(ci_filter.workflow)}/runs"
        else:
            path = f"{base}/runs"
        params: dict[str, Any] = {}
        if ci_filter.branch:
            params["branch"] = ci_filter.branch

        return await self._paginate(
            "list_workflow_runs",
            full_name,
            path,
            params,
            lambda raw: mapping.to_workflow_run(raw, full_name),
            limit=limit,
            item_key="workflow_runs",
        )

    async def rerun_workflow(self, owner: str, name: str, run_id: int) -> None:
        await self._call(
            "POST",
            f"/repos/{_seg(owner)}/{_seg(name)}/actions/runs/{run_id}/rerun",
            "rerun_workflow",
            f"{owner}/{name} run {run_id}",
        )
        logger.info("Re-ran workflow run %d in %s/%s", run_id, owner, name)

    async def trigger_workflow(self, owner: str, name: str, workflow_id: str, ref: str) -> None:
        await self._call(
            "POST",
            f"/repos/{_seg(owner)}/{_seg(name)}/actions/workflows/{_seg(workflow_id)}/dispatches",
            "trigger_workflow",
            f"{owner}/{name} workflow {workflow_id}",
            body={"ref": ref},
        )
        logger.info("Triggered workflow %s on %s in %s/%s", workflow_id, ref, owner, name)

    # ------------------------------------------------------------------
    # Refs
    # ------------------------------------------------------------------

    async def compare_refs(self, owner: str, name: str, base: str, head: str) -> RefComparison:
        """Compare ``base...head``. Always live, never cached."""
        full_name = f"{owner}/{name}"
        response = await self._call(
            "GET",
            f"/repos/{_seg(owner)}/{_seg(name)}/compare/{_ref(base)}...{_ref(head)}",
            "compare_refs",
            f"{full_name} {base}...{head}",
        )
        return mapping.to_ref_comparison(response.json(), full_name, base, head)

    async def delete_ref(self, owner: str, name: str, ref: str) -> None:
        """Delete a git ref given without its ``refs/`` prefix (``heads/x``, ``tags/v1``)."""
        ref = ref.removeprefix("refs/")
        await self._call(
            "DELETE",
            f"/repos/{_seg(owner)}/{_seg(name)}/git/refs/{_ref(ref)}",
            "delete_ref",
            f"{owner}/{name} {ref}",
        )
        logger.info("Deleted ref %s in %s/%s", ref, owner, name)

    async def delete_branch(self, owner: str, name: str, branch: str) -> None:
        await self.delete_ref(owner, name, f"heads/{branch}")

    async def create_branch(self, owner: str, name: str, branch: str, sha: str) -> None:
        await self._call(
            "POST",
            f"/repos/{_seg(owner)}/{_seg(name)}/git/refs",
            "create_branch",
            f"{owner}/{name} {branch}",
            body={"ref": f"refs/heads/{branch}", "sha": sha},
        )
        logger.info("Created branch %s at %s in %s/%s", branch, sha[:7], owner, name)

    # ------------------------------------------------------------------
    # Users
    # ------------------------------------------------------------------

    async def get_current_user(self) -> str:
        """Return the login the token authenticates as."""
        response = await self._call("GET", "/user", "get_current_user", "user")
        return str(response.json().get("login") or "")
