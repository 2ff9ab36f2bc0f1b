"""Tests for the issue, pull-request, contributor and hotspot calculators."""

from __future__ import annotations

from datetime import datetime, timedelta, timezone

import pytest

from repo_health.contributor_metrics import (
    calculate_contributor_metrics,
    weekly_commit_counts,
)
from repo_health.hotspots import calculate_hotspots
from repo_health.issue_metrics import calculate_issue_metrics, count_in_window
from repo_health.models import (
    Comment,
    Commit,
    FileChange,
    Issue,
    PullRequest,
    PullRequestFiles,
    Review,
)
from repo_health.pull_metrics import calculate_pr_metrics, size_bucket

# ── Helpers ─────────────────────────────────────────────────────────────────

NOW = datetime(2025, 6, 15, 12, 0, tzinfo=timezone.utc)
MAINTAINERS = {"alice"}


def _make_issue(
    number: int = 1,
    author: str | None = "bob",
    created_at: datetime | None = None,
    updated_at: datetime | None = None,
    closed_at: datetime | None = None,
    comments: list[Comment] | None = None,
    labels: list[str] | None = None,
    reopened: bool = False,
) -> Issue:
    """Build an Issue for tests."""
    created_at = created_at or NOW - timedelta(days=1)
    return Issue(
        node_id=f"I_{number}",
        number=number,
        title=f"Issue #{number}",
        state="CLOSED" if closed_at else "OPEN",
        created_at=created_at,
        updated_at=updated_at or created_at,
        closed_at=closed_at,
        author_login=author,
        labels=labels or [],
        comments=comments or [],
        comments_total=len(comments or []),
        reopened_at=[created_at + timedelta(hours=1)] if reopened else [],
    )


def _make_pr(
    number: int = 1,
    author: str | None = "bob",
    created_at: datetime | None = None,
    merged_at: datetime | None = None,
    closed_at: datetime | None = None,
    reviews: list[Review] | None = None,
    is_draft: bool = False,
    additions: int = 10,
    deletions: int = 5,
) -> PullRequest:
    """Build a PullRequest for tests."""
    created_at = created_at or NOW - timedelta(days=1)
    if merged_at and closed_at is None:
        closed_at = merged_at
    return PullRequest(
        node_id=f"PR_{number}",
        number=number,
        title=f"PR #{number}",
        state="MERGED" if merged_at else ("CLOSED" if closed_at else "OPEN"),
        is_draft=is_draft,
        created_at=created_at,
        updated_at=closed_at or created_at,
        merged_at=merged_at,
        closed_at=closed_at,
        author_login=author,
        additions=additions,
        deletions=deletions,
        reviews=reviews or [],
        reviews_total=len(reviews or []),
    )


# ── Issue metrics ──────────────────────────────────────────────────────────


def test_issue_without_maintainer_response_scenario() -> None:
    """An open issue 10 days old with no maintainer comment is waiting 10 days."""
    issue = _make_issue(created_at=NOW - timedelta(days=10))
    m = calculate_issue_metrics([issue], [], MAINTAINERS, NOW)

    assert m.without_response_24h == 1
    assert m.without_response_7d == 1
    assert m.without_response_30d == 0
    assert len(m.issues_without_maintainer_response) == 1
    assert m.issues_without_maintainer_response[0].days_waiting == 10
    assert m.issues_without_maintainer_response[0].url == "#1"


def test_issue_response_time_ignores_non_maintainers() -> None:
    created = NOW - timedelta(days=5)
    issue = _make_issue(
        created_at=created,
        comments=[
            Comment("bob", created + timedelta(hours=1)),  # author
            Comment("dependabot[bot]", created + timedelta(hours=2)),
            Comment("carol", created + timedelta(hours=3)),  # not a maintainer
            Comment(None, created + timedelta(hours=4)),  # deleted account
            Comment("alice", created + timedelta(hours=10)),
            Comment("alice", created + timedelta(hours=6)),
        ],
    )
    m = calculate_issue_metrics([issue], [], MAINTAINERS, NOW)

    assert m.response_time.median_hours == pytest.approx(6.0)
    assert m.without_response_24h == 0
    assert m.issues_without_maintainer_response == []


def test_issue_response_time_percentiles() -> None:
    issues = []
    for i, hours in enumerate([1, 2, 3, 4], start=1):
        created = NOW - timedelta(days=20)
        issues.append(_make_issue(
            number=i,
            created_at=created,
            closed_at=created + timedelta(days=2),
            comments=[Comment("alice", created + timedelta(hours=hours))],
        ))
    m = calculate_issue_metrics([], issues, MAINTAINERS, NOW)

    assert m.response_time.avg_hours == pytest.approx(2.5)
    assert m.response_time.median_hours == pytest.approx(2.5)
    assert m.response_time.p90_hours == pytest.approx(3.7)
    assert m.close_time.avg_days == pytest.approx(2.0)


def test_issues_without_response_sorted_oldest_first() -> None:
    issues = [
        _make_issue(number=1, created_at=NOW - timedelta(days=3)),
        _make_issue(number=2, created_at=NOW - timedelta(days=40)),
        _make_issue(number=3, created_at=NOW - timedelta(days=12)),
    ]
    m = calculate_issue_metrics(issues, [], MAINTAINERS, NOW, owner="acme", repo="widgets")

    assert [a.number for a in m.issues_without_maintainer_response] == [2, 3, 1]
    assert m.issues_without_maintainer_response[0].url == (
        "https://github.com/acme/widgets/issues/2"
    )
    assert m.without_response_30d == 1


def test_issue_volume_windows_inclusive() -> None:
    """A timestamp exactly at the window edge counts as inside it."""
    issues = [
        _make_issue(number=1, created_at=NOW - timedelta(days=7)),
        _make_issue(number=2, created_at=NOW - timedelta(days=7, seconds=1)),
    ]
    m = calculate_issue_metrics(issues, [], MAINTAINERS, NOW)

    assert m.opened_7d == 1
    assert m.opened_30d == 2
    assert count_in_window([None, NOW], NOW, 1) == 1


def test_issue_label_coverage() -> None:
    issues = [
        _make_issue(number=1, labels=["bug"]),
        _make_issue(number=2, labels=["bug", "docs"]),
        _make_issue(number=3),
        _make_issue(number=4),
    ]
    m = calculate_issue_metrics(issues, [], MAINTAINERS, NOW)

    assert m.label_coverage_pct == 50.0
    assert m.unlabeled_count == 2
    assert m.by_label == {"bug": 2, "docs": 1}


def test_stale_buckets_overlap() -> None:
    issues = [
        _make_issue(number=1, created_at=NOW - timedelta(days=200), updated_at=NOW - timedelta(days=95)),
        _make_issue(number=2, created_at=NOW - timedelta(days=200), updated_at=NOW - timedelta(days=45)),
        _make_issue(number=3, created_at=NOW - timedelta(days=200), updated_at=NOW - timedelta(days=2)),
    ]
    m = calculate_issue_metrics(issues, [], MAINTAINERS, NOW)

    assert (m.stale_30d, m.stale_60d, m.stale_90d) == (2, 1, 1)


def test_reopen_rate() -> None:
    closed = [
        _make_issue(number=i, closed_at=NOW - timedelta(hours=1), reopened=(i == 1))
        for i in range(1, 5)
    ]
    m = calculate_issue_metrics([], closed, MAINTAINERS, NOW)
    assert m.reopen_rate == pytest.approx(0.25)
    assert 0 <= m.reopen_rate <= 1

    never_reopened = [_make_issue(number=i, closed_at=NOW) for i in range(1, 4)]
    assert calculate_issue_metrics([], never_reopened, MAINTAINERS, NOW).reopen_rate == 0


def test_issue_metrics_empty_input() -> None:
    m = calculate_issue_metrics([], [], set(), NOW)

    assert m.open_count == 0
    assert m.response_time.p95_hours == 0
    assert m.close_time.median_days == 0
    assert m.label_coverage_pct == 0
    assert m.reopen_rate == 0


def test_empty_maintainer_set_degrades_to_no_responses() -> None:
    created = NOW - timedelta(days=3)
    issue = _make_issue(created_at=created, comments=[Comment("alice", created + timedelta(hours=1))])
    m = calculate_issue_metrics([issue], [], set(), NOW)

    assert m.without_response_24h == 1
    assert m.response_time.avg_hours == 0


# ── Pull-request metrics ───────────────────────────────────────────────────


def test_merged_pr_merge_and_review_time_scenario() -> None:
    """Merged 2h after creation with a maintainer review after 1h."""
    created = NOW - timedelta(days=3)
    pr = _make_pr(
        created_at=created,
        merged_at=created + timedelta(hours=2),
        reviews=[Review("alice", "APPROVED", created + timedelta(hours=1))],
    )
    m = calculate_pr_metrics([], [pr], MAINTAINERS, NOW)

    assert m.merge_time.avg_hours == pytest.approx(2.0)
    assert m.merge_time.median_hours == pytest.approx(2.0)
    assert m.review_time.avg_hours == pytest.approx(1.0)
    assert m.review_time.median_hours == pytest.approx(1.0)
    assert m.merged_7d == 1
    assert m.code_review_rate_pct == 100.0
    assert m.avg_reviews_per_pr == 1.0


def test_self_review_does_not_count() -> None:
    created = NOW - timedelta(days=3)
    pr = _make_pr(
        author="alice",
        created_at=created,
        merged_at=created + timedelta(hours=5),
        reviews=[Review("alice", "COMMENTED", created + timedelta(hours=1))],
    )
    m = calculate_pr_metrics([], [pr], MAINTAINERS, NOW)
    assert m.review_time.avg_hours == 0


def test_drafts_excluded_from_review_timing() -> None:
    created = NOW - timedelta(days=10)
    reviewed_draft = _make_pr(
        number=1,
        is_draft=True,
        created_at=created,
        reviews=[Review("alice", "COMMENTED", created + timedelta(hours=3))],
    )
    unreviewed_draft = _make_pr(number=2, is_draft=True, created_at=created)
    unreviewed = _make_pr(number=3, created_at=created, additions=400, deletions=200)
    m = calculate_pr_metrics(
        [reviewed_draft, unreviewed_draft, unreviewed], [], MAINTAINERS, NOW
    )

    assert m.review_time.avg_hours == 0
    assert m.without_review_24h == 1
    assert m.without_review_7d == 1
    assert {p.number for p in m.prs_without_maintainer_review} == {2, 3}
    assert m.draft_count == 2
    assert m.open_count == 3
    assert m.by_size == {"small": 2, "medium": 0, "large": 1}


def test_pr_size_buckets() -> None:
    assert size_bucket(_make_pr(additions=99, deletions=0)) == "small"
    assert size_bucket(_make_pr(additions=50, deletions=50)) == "medium"
    assert size_bucket(_make_pr(additions=499, deletions=0)) == "medium"
    assert size_bucket(_make_pr(additions=250, deletions=250)) == "large"


def test_rejection_rate() -> None:
    merged = [
        _make_pr(number=i, merged_at=NOW - timedelta(days=5)) for i in range(1, 4)
    ]
    rejected = _make_pr(number=4, closed_at=NOW - timedelta(days=5))
    old_rejected = _make_pr(
        number=5,
        created_at=NOW - timedelta(days=200),
        closed_at=NOW - timedelta(days=120),
    )
    m = calculate_pr_metrics([], merged + [rejected, old_rejected], MAINTAINERS, NOW)

    assert m.merged_90d == 3
    assert m.closed_not_merged_90d == 1
    assert m.rejection_rate_pct == 25.0
    assert m.code_review_rate_pct == 0


def test_pr_metrics_empty_input() -> None:
    m = calculate_pr_metrics([], [], set(), NOW)

    assert m.open_count == 0
    assert m.merge_time.avg_hours == 0
    assert m.rejection_rate_pct == 0
    assert m.avg_reviews_per_pr == 0


# ── Contributor metrics ────────────────────────────────────────────────────


def test_first_time_detection() -> None:
    issues = [
        _make_issue(number=1, author="newbie", created_at=NOW - timedelta(days=5)),
        _make_issue(number=2, author="veteran", created_at=NOW - timedelta(days=5)),
        _make_issue(number=3, author="veteran", created_at=NOW - timedelta(days=100)),
    ]
    result = calculate_contributor_metrics(issues, [], [], MAINTAINERS, NOW)

    assert result.metrics.active_30d == 2
    assert result.metrics.first_time_30d == 1
    assert result.metrics.returning_30d == 1


def test_first_time_ignores_activity_older_than_lookback() -> None:
    """Activity more than 120 days ago does not disqualify a first-timer."""
    commits = [
        Commit("returner", NOW - timedelta(days=2)),
        Commit("returner", NOW - timedelta(days=130)),
    ]
    result = calculate_contributor_metrics([], [], commits, MAINTAINERS, NOW)
    assert result.metrics.first_time_30d == 1


def test_retention_against_persisted_prior_period() -> None:
    pulls = [
        _make_pr(number=1, author="a", created_at=NOW - timedelta(days=3)),
        _make_pr(number=2, author="c", created_at=NOW - timedelta(days=3)),
    ]
    result = calculate_contributor_metrics(
        [], pulls, [], MAINTAINERS, NOW, prior_active=["a", "b"]
    )
    m = result.metrics

    assert m.retention_basis == "persisted"
    assert m.prior_period_size == 2
    assert m.retained_30d == 1
    assert m.churned_30d == 1
    assert m.retention_rate == pytest.approx(0.5)
    assert result.active_logins == ["a", "c"]


def test_retention_proxy_when_no_prior_record() -> None:
    commits = [
        Commit("a", NOW - timedelta(days=2)),
        Commit("a", NOW - timedelta(days=45)),
        Commit("b", NOW - timedelta(days=50)),
    ]
    m = calculate_contributor_metrics([], [], commits, MAINTAINERS, NOW).metrics

    assert m.retention_basis == "proxy"
    assert m.prior_period_size == 2
    assert m.retained_30d == 1
    assert m.churned_30d == 1


def test_retention_empty_prior_is_zero() -> None:
    m = calculate_contributor_metrics([], [], [], MAINTAINERS, NOW, prior_active=[]).metrics
    assert m.retention_rate == 0
    assert m.retention_basis == "persisted"


def test_registry_is_monotonic_and_excludes_bots() -> None:
    commits = [Commit("new-person", NOW - timedelta(days=1)), Commit("renovate[bot]", NOW)]
    result = calculate_contributor_metrics(
        [], [], commits, MAINTAINERS, NOW,
        known_contributors=["old-timer", "dependabot[bot]"],
    )

    assert result.registry == ["new-person", "old-timer"]
    assert result.metrics.total_known == 2


def test_maintainer_community_split() -> None:
    commits = [
        Commit("alice", NOW - timedelta(days=1)),
        Commit("bob", NOW - timedelta(days=1)),
        Commit("carol", NOW - timedelta(days=2)),
        Commit(None, NOW - timedelta(days=2)),
    ]
    m = calculate_contributor_metrics([], [], commits, MAINTAINERS, NOW).metrics

    assert m.active_30d == 3
    assert m.maintainers_active_30d == 1
    assert m.community_active_30d == 2


def test_weekly_commit_counts() -> None:
    commits = [
        Commit("a", NOW - timedelta(days=1)),
        Commit("a", NOW - timedelta(days=2)),
        Commit("a", NOW - timedelta(days=8)),
        Commit("a", NOW - timedelta(weeks=11, days=1)),
        Commit("a", NOW - timedelta(weeks=13)),
    ]
    counts = weekly_commit_counts(commits, NOW)

    assert len(counts) == 12
    assert counts[-1] == 2
    assert counts[-2] == 1
    assert counts[0] == 1
    assert sum(counts) == 4


# ── Hotspots ───────────────────────────────────────────────────────────────


def test_hotspot_pr_counts() -> None:
    data = [
        PullRequestFiles(1, [FileChange("src/x.py", 5, 5, 10), FileChange("README.md", 1, 0, 1)]),
        PullRequestFiles(2, [FileChange("src/x.py", 2, 0, 2), FileChange("src/x.py", 2, 0, 2)]),
        PullRequestFiles(3, [FileChange("docs/y.md", 3, 0, 3)]),
    ]
    h = calculate_hotspots(data)

    by_path = {f.path: f for f in h.by_file}
    assert by_path["src/x.py"].pr_count == 2
    assert by_path["src/x.py"].total_changes == 12
    assert by_path["docs/y.md"].pr_count == 1
    assert h.by_file[0].path == "src/x.py"

    dirs = {d.path: d for d in h.by_directory}
    assert dirs["src/"].pr_count == 2
    assert dirs["src/"].file_count == 1
    assert dirs["/"].pr_count == 1


def test_hotspot_ties_keep_insertion_order_and_truncate() -> None:
    data = [
        PullRequestFiles(i, [FileChange(f"pkg{i}/file{i}.py", 1, 0, 1)])
        for i in range(25)
    ]
    h = calculate_hotspots(data)

    assert len(h.by_file) == 20
    assert len(h.by_directory) == 10
    assert h.top_n == 20
    assert [f.path for f in h.by_file[:3]] == ["pkg0/file0.py", "pkg1/file1.py", "pkg2/file2.py"]


def test_hotspots_tolerate_empty_file_lists() -> None:
    h = calculate_hotspots([PullRequestFiles(1), PullRequestFiles(2)])
    assert h.by_file == []
    assert h.by_directory == []
