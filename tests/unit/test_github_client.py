"""
Tests for GitHubAdapter
=======================

HTTP is served by httpx.MockTransport. Verifies:
1. auth headers and endpoint paths for every operation
2. Link-header pagination, per-page filtering and early stop at the limit
3. status-code to error-type mapping with operation/target in the message
4. retries on 5xx and rate-limit responses, no retries on fatal ones
5. rate-limit headers flow into the shared budget
"""

import asyncio
import json
from datetime import datetime, timezone

import httpx
import pytest

from fakes import (
    API,
    FakeSleep,
    compare_payload,
    json_response,
    pr_payload,
    repo_payload,
    run_payload,
)
from repo_monitor.domain.models import (
    CIFilter,
    CommitFilter,
    MergeMethod,
    PRFilter,
    RunConclusion,
    UpstreamStatus,
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
    OperationCancelledError,
)
from repo_monitor.github.client import GitHubAdapter


class Recorder:
    """MockTransport handler that records requests and replays queued responses."""

    def __init__(self, *responses: httpx.Response) -> None:
        self.requests: list[httpx.Request] = []
        self._responses = list(responses)

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        if len(self._responses) > 1:
            return self._responses.pop(0)
        return self._responses[0]


# ---------------------------------------------------------------------------
# Construction
# ---------------------------------------------------------------------------


class TestConstruction:
    """Token handling."""

    @pytest.mark.parametrize("token", ["", "   "])
    def test_missing_token(self, token: str) -> None:
        with pytest.raises(GitHubNotConfiguredError):
            GitHubAdapter(token)

    async def test_auth_headers_sent(self, make_adapter) -> None:
        recorder = Recorder(json_response({"login": "octocat"}))
        adapter = make_adapter(recorder)

        assert await adapter.get_current_user() == "octocat"

        request = recorder.requests[0]
        assert str(request.url) == f"{API}/user"
        assert request.headers["Authorization"] == "Bearer ghp_testtoken1234"
        assert request.headers["Accept"] == "application/vnd.github+json"
        assert request.headers["X-GitHub-Api-Version"] == "2022-11-28"


# ---------------------------------------------------------------------------
# Pagination
# ---------------------------------------------------------------------------


class TestListRepositories:
    """Pagination and client-side filters."""

    async def test_follows_link_header_and_filters_per_page(self, make_adapter) -> None:
        page_two = f"{API}/user/repos?page=2&per_page=100"
        recorder = Recorder(
            json_response(
                [
                    repo_payload("octo/api"),
                    repo_payload("octo/old-api", archived=True),
                    repo_payload("octo/web"),
                ],
                headers={"Link": f'<{page_two}>; rel="next", <{page_two}>; rel="last"'},
            ),
            json_response([repo_payload("acme/api-gateway")]),
        )
        adapter = make_adapter(recorder)

        repos = await adapter.list_repositories("API")

        assert [r.full_name for r in repos] == ["octo/api", "acme/api-gateway"]
        assert len(recorder.requests) == 2
        first = recorder.requests[0].url
        assert first.path == "/user/repos"
        assert first.params["affiliation"] == "owner,organization_member"
        assert first.params["sort"] == "updated"
        assert first.params["per_page"] == "100"
        assert str(recorder.requests[1].url) == page_two

    async def test_include_archived(self, make_adapter) -> None:
        recorder = Recorder(json_response([repo_payload("octo/old", archived=True)]))
        adapter = make_adapter(recorder)

        repos = await adapter.list_repositories(include_archived=True)

        assert [r.full_name for r in repos] == ["octo/old"]
        assert repos[0].archived is True

    async def test_foreign_next_link_ignored(self, make_adapter) -> None:
        recorder = Recorder(
            json_response(
                [repo_payload("octo/api")],
                headers={"Link": '<https://evil.example/user/repos?page=2>; rel="next"'},
            )
        )
        adapter = make_adapter(recorder)

        repos = await adapter.list_repositories()

        assert len(repos) == 1
        assert len(recorder.requests) == 1

    async def test_maps_repository_fields(self, make_adapter) -> None:
        adapter = make_adapter(Recorder(json_response(repo_payload("octo/api", language="Go"))))

        repo = await adapter.get_repository("octo", "api")

        assert repo.full_name == "octo/api"
        assert repo.owner == "octo"
        assert repo.language == "Go"
        assert repo.stars == 3
        assert repo.pushed_at is not None and repo.pushed_at.tzinfo is not None


class TestListPullRequests:
    """Single-repository and aggregate listing."""

    async def test_stops_at_limit_without_fetching_more_pages(self, make_adapter) -> None:
        next_page = f"{API}/repos/octo/api/pulls?page=2"
        recorder = Recorder(
            json_response(
                [pr_payload(1), pr_payload(2), pr_payload(3)],
                headers={"Link": f'<{next_page}>; rel="next"'},
            )
        )
        adapter = make_adapter(recorder)

        prs = await adapter.list_pull_requests(PRFilter(repository="octo/api", limit=2))

        assert [pr.number for pr in prs] == [1, 2]
        assert len(recorder.requests) == 1
        params = recorder.requests[0].url.params
        assert params["state"] == "open"
        assert params["per_page"] == "2"

    async def test_maps_pull_request_fields(self, make_adapter) -> None:
        adapter = make_adapter(Recorder(json_response(pr_payload(7, mergeable=None))))

        pr = await adapter.get_pull_request("octo", "api", 7)

        assert pr.repository == "octo/api"
        assert pr.head_branch == "feature/7"
        assert pr.base_branch == "main"
        assert pr.mergeable is None
        assert pr.labels == ["bug"]
        assert pr.reviewers == ["reviewer"]
        assert pr.is_open is True

    async def test_malformed_repository_returns_empty(self, make_adapter) -> None:
        recorder = Recorder(json_response([]))
        adapter = make_adapter(recorder)

        assert await adapter.list_pull_requests(PRFilter(repository="not-a-repo")) == []
        assert recorder.requests == []

    async def test_aggregate_skips_failing_repository(self, make_adapter) -> None:
        def handler(request: httpx.Request) -> httpx.Response:
            if request.url.path == "/user/repos":
                return json_response([repo_payload("octo/broken"), repo_payload("octo/api")])
            if request.url.path == "/repos/octo/broken/pulls":
                return json_response({"message": "Not Found"}, 404)
            return json_response([pr_payload(5)])

        adapter = make_adapter(handler)

        prs = await adapter.list_pull_requests(PRFilter(limit=10))

        assert [(pr.repository, pr.number) for pr in prs] == [("octo/api", 5)]


class TestListCommitsAndRuns:
    """Commit and workflow-run listing."""

    async def test_commit_filter_params(self, make_adapter) -> None:
        recorder = Recorder(
            json_response(
                [
                    {
                        "sha": "abc",
                        "html_url": "https://github.com/octo/api/commit/abc",
                        "commit": {
                            "message": "fix: things",
                            "author": {"name": "Dev", "email": "d@x", "date": "2024-05-01T10:00:00Z"},
                        },
                    }
                ]
            )
        )
        adapter = make_adapter(recorder)
        since = datetime(2024, 5, 1, tzinfo=timezone.utc)

        commits = await adapter.list_commits(
            CommitFilter(repository="octo/api", branch="develop", since=since, limit=5)
        )

        assert commits[0].sha == "abc"
        assert commits[0].branch == "develop"
        assert commits[0].author == "Dev"
        params = recorder.requests[0].url.params
        assert params["sha"] == "develop"
        assert params["since"] == "2024-05-01T00:00:00+00:00"

    async def test_workflow_runs_for_named_workflow(self, make_adapter) -> None:
        recorder = Recorder(
            json_response({"total_count": 2, "workflow_runs": [run_payload(2, "failure"), run_payload(1, "weird")]})
        )
        adapter = make_adapter(recorder)

        runs = await adapter.list_workflow_runs(
            CIFilter(repository="octo/api", branch="main", workflow="ci.yml", limit=5)
        )

        assert [r.conclusion for r in runs] == [RunConclusion.FAILURE, RunConclusion.UNKNOWN]
        assert recorder.requests[0].url.path == "/repos/octo/api/actions/workflows/ci.yml/runs"
        assert recorder.requests[0].url.params["branch"] == "main"

    async def test_workflow_runs_for_repository(self, make_adapter) -> None:
        recorder = Recorder(json_response({"workflow_runs": [run_payload(3, None)]}))
        adapter = make_adapter(recorder)

        runs = await adapter.list_workflow_runs(CIFilter(repository="octo/api"))

        assert runs[0].conclusion == RunConclusion.UNKNOWN
        assert recorder.requests[0].url.path == "/repos/octo/api/actions/runs"


# ---------------------------------------------------------------------------
# Mutations and comparisons
# ---------------------------------------------------------------------------


class TestMutations:
    """Write endpoints and their request bodies."""

    async def test_create_pull_request(self, make_adapter) -> None:
        recorder = Recorder(json_response(pr_payload(12), 201))
        adapter = make_adapter(recorder)

        pr = await adapter.create_pull_request("octo", "api", "Title", "Body", "develop", "main", True)

        assert pr.number == 12
        request = recorder.requests[0]
        assert request.method == "POST"
        assert request.url.path == "/repos/octo/api/pulls"
        assert json.loads(request.content) == {
            "title": "Title",
            "body": "Body",
            "head": "develop",
            "base": "main",
            "draft": True,
        }

    async def test_merge_pull_request(self, make_adapter) -> None:
        recorder = Recorder(json_response({"merged": True, "sha": "deadbeef", "message": "Pull Request successfully merged"}))
        adapter = make_adapter(recorder)

        result = await adapter.merge_pull_request("octo", "api", 4, "squash", "Ship it")

        assert result.success is True
        assert result.sha == "deadbeef"
        assert result.merge_method == MergeMethod.SQUASH
        assert result.pr_url == "https://github.com/octo/api/pull/4"
        request = recorder.requests[0]
        assert request.method == "PUT"
        assert request.url.path == "/repos/octo/api/pulls/4/merge"
        assert json.loads(request.content) == {"merge_method": "squash", "commit_title": "Ship it"}

    async def test_merge_rejects_unknown_method_before_request(self, make_adapter) -> None:
        recorder = Recorder(json_response({}))
        adapter = make_adapter(recorder)

        with pytest.raises(DomainRuleError, match="invalid merge method"):
            await adapter.merge_pull_request("octo", "api", 4, "fast-forward")
        assert recorder.requests == []

    async def test_delete_branch(self, make_adapter) -> None:
        recorder = Recorder(httpx.Response(204))
        adapter = make_adapter(recorder)

        await adapter.delete_branch("octo", "api", "feature/x")

        request = recorder.requests[0]
        assert request.method == "DELETE"
        assert request.url.path == "/repos/octo/api/git/refs/heads/feature/x"

    async def test_delete_ref_strips_refs_prefix(self, make_adapter) -> None:
        recorder = Recorder(httpx.Response(204))
        adapter = make_adapter(recorder)

        await adapter.delete_ref("octo", "api", "refs/tags/v1.0")

        assert recorder.requests[0].url.path == "/repos/octo/api/git/refs/tags/v1.0"

    async def test_create_branch(self, make_adapter) -> None:
        recorder = Recorder(json_response({"ref": "refs/heads/hotfix"}, 201))
        adapter = make_adapter(recorder)

        await adapter.create_branch("octo", "api", "hotfix", "abc1234567")

        assert json.loads(recorder.requests[0].content) == {"ref": "refs/heads/hotfix", "sha": "abc1234567"}

    async def test_rerun_and_dispatch(self, make_adapter) -> None:
        recorder = Recorder(httpx.Response(201), httpx.Response(204))
        adapter = make_adapter(recorder)

        await adapter.rerun_workflow("octo", "api", 99)
        await adapter.trigger_workflow("octo", "api", "rollback.yml", "main")

        assert recorder.requests[0].url.path == "/repos/octo/api/actions/runs/99/rerun"
        assert recorder.requests[1].url.path == "/repos/octo/api/actions/workflows/rollback.yml/dispatches"
        assert json.loads(recorder.requests[1].content) == {"ref": "main"}


class TestPathEscaping:
    """Names with URL metacharacters stay inside their own path segment."""

    @pytest.mark.parametrize(
        "branch,raw_path",
        [
            ("fix#12", b"/repos/octo/api/git/refs/heads/fix%2312"),
            ("main#x", b"/repos/octo/api/git/refs/heads/main%23x"),
            ("feat?x=1", b"/repos/octo/api/git/refs/heads/feat%3Fx%3D1"),
            ("50%off", b"/repos/octo/api/git/refs/heads/50%25off"),
            ("feature/login", b"/repos/octo/api/git/refs/heads/feature/login"),
        ],
    )
    async def test_delete_branch_escapes_name(self, make_adapter, branch: str, raw_path: bytes) -> None:
        recorder = Recorder(httpx.Response(204))
        adapter = make_adapter(recorder)

        await adapter.delete_branch("octo", "api", branch)

        request = recorder.requests[0]
        assert request.url.raw_path == raw_path
        assert request.url.path == f"/repos/octo/api/git/refs/heads/{branch}"

    async def test_compare_refs_escapes_both_refs(self, make_adapter) -> None:
        recorder = Recorder(json_response(compare_payload(1, 0, ["a.py"])))
        adapter = make_adapter(recorder)

        comparison = await adapter.compare_refs("octo", "api", "release/1#2", "feat?x")

        request = recorder.requests[0]
        assert request.url.raw_path == b"/repos/octo/api/compare/release/1%232...feat%3Fx"
        assert request.url.query == b""
        assert comparison.head_ref == "feat?x"

    async def test_workflow_names_escaped(self, make_adapter) -> None:
        recorder = Recorder(
            httpx.Response(204),
            json_response({"workflow_runs": []}),
        )
        adapter = make_adapter(recorder)

        await adapter.trigger_workflow("octo", "api", "deploy/prod.yml", "main")
        await adapter.list_workflow_runs(CIFilter(repository="octo/api", workflow="ci#1.yml"))

        assert recorder.requests[0].url.raw_path == (
            b"/repos/octo/api/actions/workflows/deploy%2Fprod.yml/dispatches"
        )
        assert recorder.requests[1].url.raw_path.split(b"?")[0] == (
            b"/repos/octo/api/actions/workflows/ci%231.yml/runs"
        )


class TestCompareRefs:
    """Comparison mapping."""

    async def test_maps_comparison(self, make_adapter) -> None:
        recorder = Recorder(json_response(compare_payload(5, 0, ["main.go"])))
        adapter = make_adapter(recorder)

        comparison = await adapter.compare_refs("octo", "api", "main", "develop")

        assert recorder.requests[0].url.path == "/repos/octo/api/compare/main...develop"
        assert comparison.source_repo == "octo/api"
        assert comparison.base_ref == "main"
        assert comparison.head_ref == "develop"
        assert comparison.ahead_by == 5
        assert comparison.total_commits == 5
        assert comparison.upstream_status == UpstreamStatus.AHEAD
        assert [f.path for f in comparison.changed_files] == ["main.go"]
        assert len(comparison.commits) == 5
        assert comparison.drift_status is None

    async def test_unknown_status_is_an_error(self, make_adapter) -> None:
        adapter = make_adapter(Recorder(json_response(compare_payload(1, 0, ["a"], status="sideways"))))

        with pytest.raises(GitHubError, match="sideways"):
            await adapter.compare_refs("octo", "api", "main", "develop")


# ---------------------------------------------------------------------------
# Errors and retries
# ---------------------------------------------------------------------------


class TestErrorMapping:
    """Non-2xx responses become typed errors naming the operation and target."""

    @pytest.mark.parametrize(
        "status,error_type",
        [
            (401, GitHubAuthError),
            (403, GitHubAuthError),
            (404, GitHubNotFoundError),
            (405, GitHubConflictError),
            (409, GitHubConflictError),
            (422, GitHubValidationError),
            (501, GitHubServerError),
            (418, GitHubError),
        ],
    )
    async def test_status_mapping(self, make_adapter, status: int, error_type: type) -> None:
        recorder = Recorder(json_response({"message": "Nope"}, status))
        adapter = make_adapter(recorder)

        with pytest.raises(error_type) as exc_info:
            await adapter.get_repository("octo", "api")

        error = exc_info.value
        assert type(error) is error_type
        assert error.status_code == status
        assert error.detail == "Nope"
        assert error.operation == "get_repository"
        assert error.target == "octo/api"
        assert "get_repository octo/api failed: Nope" in str(error)
        assert len(recorder.requests) == 1

    async def test_non_json_error_body(self, make_adapter) -> None:
        adapter = make_adapter(Recorder(httpx.Response(404, text="gone")))

        with pytest.raises(GitHubNotFoundError, match="gone"):
            await adapter.get_repository("octo", "api")

    async def test_primary_rate_limit(self, make_adapter) -> None:
        adapter = make_adapter(
            Recorder(
                json_response(
                    {"message": "API rate limit exceeded for user"},
                    403,
                    headers={"X-RateLimit-Remaining": "0", "X-RateLimit-Reset": "1700000030"},
                )
            ),
            max_attempts=1,
        )

        with pytest.raises(GitHubRateLimitError) as exc_info:
            await adapter.get_repository("octo", "api")

        assert not isinstance(exc_info.value, GitHubSecondaryRateLimitError)
        assert exc_info.value.reset_at is not None

    async def test_secondary_rate_limit(self, make_adapter) -> None:
        adapter = make_adapter(
            Recorder(
                json_response(
                    {"message": "You have exceeded a secondary rate limit"},
                    403,
                    headers={"Retry-After": "60"},
                )
            ),
            max_attempts=1,
        )

        with pytest.raises(GitHubSecondaryRateLimitError) as exc_info:
            await adapter.get_repository("octo", "api")

        assert exc_info.value.retry_after == 60.0

    async def test_transport_error_is_fatal(self, make_adapter) -> None:
        calls = 0

        def handler(request: httpx.Request) -> httpx.Response:
            nonlocal calls
            calls += 1
            raise httpx.ConnectError("connection refused", request=request)

        adapter = make_adapter(handler)

        with pytest.raises(GitHubTransportError) as exc_info:
            await adapter.get_current_user()

        assert calls == 1
        assert isinstance(exc_info.value.__cause__, httpx.ConnectError)


class TestRetries:
    """Transient failures are retried through the executor."""

    async def test_server_error_then_success(self, make_adapter, fake_sleep: FakeSleep) -> None:
        recorder = Recorder(
            json_response({"message": "Bad Gateway"}, 502),
            json_response({"message": "Bad Gateway"}, 502),
            json_response({"login": "octocat"}),
        )
        adapter = make_adapter(recorder)

        assert await adapter.get_current_user() == "octocat"
        assert len(recorder.requests) == 3
        assert fake_sleep.delays == [1.0, 2.0]

    async def test_server_error_exhausts_attempts(self, make_adapter) -> None:
        recorder = Recorder(json_response({"message": "Service Unavailable"}, 503))
        adapter = make_adapter(recorder, max_attempts=3)

        with pytest.raises(GitHubServerError):
            await adapter.get_current_user()
        assert len(recorder.requests) == 3

    async def test_not_found_is_not_retried(self, make_adapter) -> None:
        recorder = Recorder(json_response({"message": "Not Found"}, 404))
        adapter = make_adapter(recorder)

        with pytest.raises(GitHubNotFoundError):
            await adapter.get_current_user()
        assert len(recorder.requests) == 1

    async def test_each_page_is_retried_independently(self, make_adapter) -> None:
        page_two = f"{API}/user/repos?page=2"
        recorder = Recorder(
            json_response([repo_payload("octo/a")], headers={"Link": f'<{page_two}>; rel="next"'}),
            json_response({"message": "Bad Gateway"}, 502),
            json_response([repo_payload("octo/b")]),
        )
        adapter = make_adapter(recorder)

        repos = await adapter.list_repositories()

        assert [r.full_name for r in repos] == ["octo/a", "octo/b"]
        assert [str(r.url) for r in recorder.requests[1:]] == [page_two, page_two]


class TestRateBudgetIntegration:
    """Responses feed the budget; a low budget holds the next call back."""

    async def test_headers_update_budget(self, make_adapter) -> None:
        adapter = make_adapter(
            Recorder(
                json_response(
                    {"login": "octocat"},
                    headers={"X-RateLimit-Remaining": "4321", "X-RateLimit-Reset": "1700003600"},
                )
            )
        )

        await adapter.get_current_user()

        assert adapter.rate_budget.remaining == 4321
        assert adapter.rate_budget.reset_at == 1_700_003_600.0

    async def test_low_budget_waits_before_next_call(self, make_adapter, fake_sleep: FakeSleep) -> None:
        adapter = make_adapter(
            Recorder(
                json_response(
                    {"login": "octocat"},
                    headers={"X-RateLimit-Remaining": "3", "X-RateLimit-Reset": "1700000020"},
                )
            )
        )

        await adapter.get_current_user()
        assert fake_sleep.delays == []

        await adapter.get_current_user()
        assert fake_sleep.delays == [20.0]

    async def test_cancelled_rate_wait(self, make_adapter) -> None:
        cancel = asyncio.Event()
        cancel.set()
        recorder = Recorder(json_response({"login": "octocat"}))
        adapter = make_adapter(recorder, cancel_event=cancel)
        adapter.rate_budget.update_from_headers(
            {"X-RateLimit-Remaining": "0", "X-RateLimit-Reset": "1700000020"}
        )

        with pytest.raises(OperationCancelledError):
            await adapter.get_current_user()
        assert recorder.requests == []
