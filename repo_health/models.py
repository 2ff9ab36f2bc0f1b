"""Domain models for the repository health aggregator."""

from __future__ import annotations

from dataclasses import asdict, dataclass, field
from datetime import datetime
from typing import Any


# ── Collected entities ──────────────────────────────────────────────────────

@dataclass
class Comment:
    """A comment on an issue or pull request. ``author_login`` is None for deleted accounts."""

    author_login: str | None
    created_at: datetime


@dataclass
class Review:
    """A review left on a pull request."""

    author_login: str | None
    state: str  # APPROVED, CHANGES_REQUESTED, COMMENTED, DISMISSED
    submitted_at: datetime


@dataclass
class Issue:
    """An issue with its comments and reopen history."""

    node_id: str
    number: int
    title: str
    state: str
    created_at: datetime
    updated_at: datetime
    closed_at: datetime | None
    author_login: str | None
    labels: list[str] = field(default_factory=list)
    comments: list[Comment] = field(default_factory=list)
    comments_total: int = 0
    reopened_at: list[datetime] = field(default_factory=list)


@dataclass
class PullRequest:
    """An open, closed or merged pull request with its reviews and comments."""

    node_id: str
    number: int
    title: str
    state: str
    is_draft: bool
    created_at: datetime
    updated_at: datetime
    merged_at: datetime | None
    closed_at: datetime | None
    author_login: str | None
    additions: int = 0
    deletions: int = 0
    changed_files: int = 0
    labels: list[str] = field(default_factory=list)
    reviews: list[Review] = field(default_factory=list)
    reviews_total: int = 0
    comments: list[Comment] = field(default_factory=list)
    comments_total: int = 0
    reopened_at: list[datetime] = field(default_factory=list)

    @property
    def total_lines(self) -> int:
        """Lines changed (additions + deletions)."""
        return self.additions + self.deletions

    @property
    def is_merged(self) -> bool:
        return self.merged_at is not None


@dataclass
class Commit:
    """A default-branch commit. ``author_login`` is None when unlinked to a GitHub user."""

    author_login: str | None
    committed_at: datetime


@dataclass
class FileChange:
    """A single file touched in a pull request."""

    path: str
    additions: int = 0
    deletions: int = 0
    changes: int = 0

    @property
    def directory(self) -> str:
        """Parent directory with a trailing slash, or ``'/'`` for root-level files."""
        parts = self.path.split("/")
        if len(parts) <= 1:
            return "/"
        return "/".join(parts[:-1]) + "/"


@dataclass
class PullRequestFiles:
    """The changed-file list of one merged pull request (empty if the fetch failed)."""

    pr_number: int
    files: list[FileChange] = field(default_factory=list)


@dataclass
class Maintainer:
    """A GitHub identity with the maintainer role tags it holds."""

    github: str
    roles: list[str] = field(default_factory=list)


@dataclass
class RepoConfig:
    """One configured repository."""

    owner: str
    repo: str
    name: str = ""
    description: str = ""

    @property
    def slug(self) -> str:
        return f"{self.owner}/{self.repo}"

    @property
    def display_name(self) -> str:
        return self.name or self.slug


@dataclass
class RepoStats:
    """Basic repository counters."""

    stars: int = 0
    forks: int = 0


# ── Computed metrics ────────────────────────────────────────────────────────

@dataclass
class ResponseTime:
    avg_hours: float = 0.0
    median_hours: float = 0.0
    p90_hours: float = 0.0
    p95_hours: float = 0.0


@dataclass
class CloseTime:
    avg_days: float = 0.0
    median_days: float = 0.0
    p90_days: float = 0.0
    p95_days: float = 0.0


@dataclass
class MergeTime:
    avg_hours: float = 0.0
    median_hours: float = 0.0


@dataclass
class IssueAwaitingResponse:
    """An open issue with no maintainer response yet."""

    number: int
    title: str
    url: str
    created_at: str
    days_waiting: int
    labels: list[str]
    comment_count: int


@dataclass
class PullRequestAwaitingReview:
    """An open pull request with no maintainer review yet."""

    number: int
    title: str
    url: str
    created_at: str
    days_waiting: int
    labels: list[str]
    is_draft: bool
    additions: int
    deletions: int
    review_count: int
    author: str | None


@dataclass
class IssueMetrics:
    open_count: int = 0
    opened_7d: int = 0
    opened_30d: int = 0
    opened_90d: int = 0
    closed_7d: int = 0
    closed_30d: int = 0
    closed_90d: int = 0
    without_response_24h: int = 0
    without_response_7d: int = 0
    without_response_30d: int = 0
    issues_without_maintainer_response: list[IssueAwaitingResponse] = field(default_factory=list)
    response_time: ResponseTime = field(default_factory=ResponseTime)
    by_label: dict[str, int] = field(default_factory=dict)
    label_coverage_pct: float = 0.0
    unlabeled_count: int = 0
    close_time: CloseTime = field(default_factory=CloseTime)
    stale_30d: int = 0
    stale_60d: int = 0
    stale_90d: int = 0
    reopen_rate: float = 0.0


@dataclass
class PullRequestMetrics:
    open_count: int = 0
    draft_count: int = 0
    opened_7d: int = 0
    opened_30d: int = 0
    opened_90d: int = 0
    merged_7d: int = 0
    merged_30d: int = 0
    merged_90d: int = 0
    closed_not_merged_90d: int = 0
    without_review_24h: int = 0
    without_review_7d: int = 0
    prs_without_maintainer_review: list[PullRequestAwaitingReview] = field(default_factory=list)
    review_time: ResponseTime = field(default_factory=ResponseTime)
    merge_time: MergeTime = field(default_factory=MergeTime)
    by_size: dict[str, int] = field(
        default_factory=lambda: {"small": 0, "medium": 0, "large": 0}
    )
    code_review_rate_pct: float = 0.0
    rejection_rate_pct: float = 0.0
    avg_reviews_per_pr: float = 0.0


@dataclass
class ContributorMetrics:
    total_known: int = 0
    active_30d: int = 0
    first_time_30d: int = 0
    returning_30d: int = 0
    maintainers_active_30d: int = 0
    community_active_30d: int = 0
    prior_period_size: int = 0
    retained_30d: int = 0
    churned_30d: int = 0
    retention_rate: float = 0.0
    retention_basis: str = "proxy"  # "persisted" or "proxy"
    weekly_commits: list[int] = field(default_factory=list)
    avg_weekly_commits: float = 0.0


@dataclass
class ContributorResult:
    """Contributor metrics plus the identity sets to persist for the next run."""

    metrics: ContributorMetrics
    registry: list[str]
    active_logins: list[str]


@dataclass
class FileHotspot:
    path: str
    pr_count: int
    total_changes: int


@dataclass
class DirectoryHotspot:
    path: str
    pr_count: int
    file_count: int


@dataclass
class HotspotMetrics:
    by_file: list[FileHotspot] = field(default_factory=list)
    by_directory: list[DirectoryHotspot] = field(default_factory=list)
    top_n: int = 0


@dataclass
class Metrics:
    """The full current-metrics record for one repository (``metrics.json``)."""

    timestamp: str
    repository: RepoStats
    issues: IssueMetrics
    pulls: PullRequestMetrics
    contributors: ContributorMetrics
    hotspots: HotspotMetrics

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)
