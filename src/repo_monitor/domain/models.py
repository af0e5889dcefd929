"""Domain types for repositories, pull requests, CI runs and branch comparisons."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum

from repo_monitor.errors import DomainRuleError


# ---------------------------------------------------------------------------
# Enumerations
# ---------------------------------------------------------------------------

class UpstreamStatus(str, Enum):
    """Comparison status exactly as GitHub reports it."""

    IDENTICAL = "identical"
    AHEAD = "ahead"
    BEHIND = "behind"
    DIVERGED = "diverged"


class DriftStatus(str, Enum):
    """Classified drift between a base and a head branch."""

    NONE = "synced"
    BASE_AHEAD = "base_ahead"
    HEAD_AHEAD = "head_ahead"
    DIVERGED = "diverged"


class DriftSeverity(str, Enum):
    NONE = "none"
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"


class RunConclusion(str, Enum):
    """Workflow run outcome; anything GitHub adds beyond these maps to UNKNOWN."""

    SUCCESS = "success"
    FAILURE = "failure"
    CANCELLED = "cancelled"
    SKIPPED = "skipped"
    UNKNOWN = "unknown"

    @classmethod
    def parse(cls, raw: str | None) -> "RunConclusion":
        try:
            return cls((raw or "").lower())
        except ValueError:
            return cls.UNKNOWN


class RollbackStrategy(str, Enum):
    RERUN = "rerun"
    REVERT = "revert"
    TRIGGER_WORKFLOW = "workflow"


class MergeMethod(str, Enum):
    MERGE = "merge"
    SQUASH = "squash"
    REBASE = "rebase"

    @classmethod
    def parse(cls, raw: str | None) -> "MergeMethod":
        """Parse a merge method, defaulting to ``merge`` when empty."""
        if not raw:
            return cls.MERGE
        try:
            return cls(raw.lower())
        except ValueError:
            raise DomainRuleError(
                f"invalid merge method '{raw}', must be merge, squash, or rebase"
            ) from None


# ---------------------------------------------------------------------------
# Entities
# ---------------------------------------------------------------------------

@dataclass
class Repository:
    id: int
    name: str
    full_name: str
    description: str = ""
    private: bool = False
    archived: bool = False
    fork: bool = False
    default_branch: str = "main"
    language: str = ""
    stars: int = 0
    forks: int = 0
    open_issues: int = 0
    html_url: str = ""
    clone_url: str = ""
    updated_at: datetime | None = None
    pushed_at: datetime | None = None

    @property
    def owner(self) -> str:
        return self.full_name.split("/", 1)[0]


@dataclass
class PullRequest:
    id: int
    number: int
    title: str
    state: str
    repository: str
    body: str = ""
    draft: bool = False
    html_url: str = ""
    user: str = ""
    head_branch: str = ""
    base_branch: str = ""
    # None until GitHub has computed mergeability
    mergeable: bool | None = None
    additions: int = 0
    deletions: int = 0
    changed_files: int = 0
    created_at: datetime | None = None
    updated_at: datetime | None = None
    merged_at: datetime | None = None
    closed_at: datetime | None = None
    labels: list[str] = field(default_factory=list)
    reviewers: list[str] = field(default_factory=list)

    @property
    def is_open(self) -> bool:
        return self.state == "open"


@dataclass
class Commit:
    sha: str
    message: str
    author: str = ""
    author_email: str = ""
    date: datetime | None = None
    html_url: str = ""
    additions: int = 0
    deletions: int = 0
    repository: str = ""
    branch: str = ""


@dataclass
class WorkflowRun:
    id: int
    conclusion: RunConclusion
    created_at: datetime | None = None
    name: str = ""
    workflow_id: int = 0
    head_branch: str = ""
    head_sha: str = ""
    status: str = ""
    html_url: str = ""
    run_number: int = 0
    run_attempt: int = 0
    updated_at: datetime | None = None
    repository: str = ""
    actor: str = ""
    event: str = ""


@dataclass(frozen=True)
class FileDelta:
    path: str
    change_kind: str
    additions: int = 0
    deletions: int = 0
    changes: int = 0
    patch: str = ""


@dataclass
class RefComparison:
    """Result of comparing ``base_ref...head_ref``.

    Built fresh for every call and never cached. ``drift_status`` is the only
    field set after construction.
    """

    source_repo: str
    base_ref: str
    head_ref: str
    ahead_by: int
    behind_by: int
    total_commits: int
    upstream_status: UpstreamStatus
    changed_files: list[FileDelta] = field(default_factory=list)
    commits: list[Commit] = field(default_factory=list)
    drift_status: DriftStatus | None = None

    def __post_init__(self) -> None:
        if self.ahead_by < 0 or self.behind_by < 0 or self.total_commits < 0:
            raise ValueError("comparison counts must be >= 0")


@dataclass
class RepositoryStatus:
    repository: Repository
    open_prs: int = 0
    failed_ci: bool = False
    last_commit_at: datetime | None = None


# ---------------------------------------------------------------------------
# Filters
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class PRFilter:
    repository: str = ""
    state: str = "open"
    limit: int = 30


@dataclass(frozen=True)
class CommitFilter:
    repository: str = ""
    branch: str = ""
    since: datetime | None = None
    limit: int = 30


@dataclass(frozen=True)
class CIFilter:
    repository: str = ""
    branch: str = ""
    workflow: str = ""
    limit: int = 10


# ---------------------------------------------------------------------------
# Results
# ---------------------------------------------------------------------------

@dataclass
class MergeResult:
    success: bool
    pr_number: int
    merge_method: MergeMethod
    sha: str = ""
    message: str = ""
    pr_url: str = ""
    branch_name: str = ""
    branch_deleted: bool = False
    warnings: list[str] = field(default_factory=list)


@dataclass
class RollbackResult:
    success: bool
    strategy: RollbackStrategy
    message: str
    run_url: str = ""
    pr_url: str = ""


@dataclass
class SyncPRResult:
    success: bool
    message: str
    pr_number: int = 0
    pr_url: str = ""
    files_changed: int = 0
    commits: int = 0


@dataclass
class CreatePRResult:
    success: bool
    message: str
    pull_request: PullRequest | None = None
    files_changed: int = 0
    commits: int = 0


@dataclass
class DeleteBranchResult:
    success: bool
    message: str


@dataclass
class DriftReport:
    """A classified comparison with its severity and suggested next steps."""

    comparison: RefComparison
    severity: DriftSeverity
    actions: list[str] = field(default_factory=list)


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------

def split_full_name(full_name: str) -> tuple[str, str]:
    """Split ``owner/name`` into its parts.

    Raises:
        DomainRuleError: If the identifier is not exactly ``owner/name``
    """
    parts = (full_name or "").split("/")
    if len(parts) != 2 or not parts[0] or not parts[1]:
        raise DomainRuleError(
            f"invalid repository format {full_name!r}, expected owner/repo"
        )
    return parts[0], parts[1]
