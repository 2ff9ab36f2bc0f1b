"""Pull-request metric calculator.

Merged and closed-without-merge PRs are disjoint.  Drafts are left out of
review-timing figures but still count towards volume and size breakdowns.
"""

from __future__ import annotations

import logging
from collections.abc import Collection
from datetime import datetime, timedelta

from repo_health.config import KNOWN_BOTS, PR_SIZE_MEDIUM, PR_SIZE_SMALL
from repo_health.identity import is_qualifying_responder
from repo_health.issue_metrics import DAY, count_in_window, response_time_summary
from repo_health.models import (
    MergeTime,
    PullRequest,
    PullRequestAwaitingReview,
    PullRequestMetrics,
)
from repo_health.stats import average, hours_between, percentile, round_to

logger = logging.getLogger(__name__)


def first_maintainer_review(
    pr: PullRequest,
    maintainers: Collection[str],
    bot_logins: Collection[str] = KNOWN_BOTS,
) -> datetime | None:
    """Timestamp of the earliest qualifying maintainer review, if any."""
    times = [
        r.submitted_at
        for r in pr.reviews
        if is_qualifying_responder(r.author_login, pr.author_login, maintainers, bot_logins)
    ]
    return min(times) if times else None


def size_bucket(pr: PullRequest) -> str:
    """``small`` / ``medium`` / ``large`` by total lines changed."""
    if pr.total_lines < PR_SIZE_SMALL:
        return "small"
    if pr.total_lines < PR_SIZE_MEDIUM:
        return "medium"
    return "large"


def _pr_url(number: int, owner: str | None, repo: str | None) -> str:
    if owner and repo:
        return f"https://github.com/{owner}/{repo}/pull/{number}"
    return f"#{number}"


def calculate_pr_metrics(
    open_prs: list[PullRequest],
    closed_prs: list[PullRequest],
    maintainers: Collection[str],
    now: datetime,
    *,
    owner: str | None = None,
    repo: str | None = None,
    bot_logins: Collection[str] = KNOWN_BOTS,
) -> PullRequestMetrics:
    """Compute volume, review latency, merge time, size and review-rate metrics."""
    merged = [pr for pr in closed_prs if pr.is_merged]
    closed_not_merged = [pr for pr in closed_prs if not pr.is_merged]
    window_start = now - timedelta(days=90)

    review_hours: list[float] = []
    awaiting: list[PullRequestAwaitingReview] = []
    without_24h = without_7d = 0

    for pr in open_prs:
        first = first_maintainer_review(pr, maintainers, bot_logins)
        if first is not None:
            if not pr.is_draft:
                review_hours.append(hours_between(pr.created_at, first))
            continue

        age = now - pr.created_at
        if not pr.is_draft:
            if age > DAY:
                without_24h += 1
            if age > 7 * DAY:
                without_7d += 1
        awaiting.append(PullRequestAwaitingReview(
            number=pr.number,
            title=pr.title,
            url=_pr_url(pr.number, owner, repo),
            created_at=pr.created_at.isoformat(),
            days_waiting=age // DAY,
            labels=list(pr.labels),
            is_draft=pr.is_draft,
            additions=pr.additions,
            deletions=pr.deletions,
            review_count=pr.reviews_total,
            author=pr.author_login,
        ))

    awaiting.sort(key=lambda a: a.days_waiting, reverse=True)

    for pr in merged:
        if pr.is_draft:
            continue
        first = first_maintainer_review(pr, maintainers, bot_logins)
        if first is not None:
            review_hours.append(hours_between(pr.created_at, first))

    merge_hours = sorted(hours_between(pr.created_at, pr.merged_at) for pr in merged)

    by_size = {"small": 0, "medium": 0, "large": 0}
    for pr in open_prs:
        by_size[size_bucket(pr)] += 1

    # 90-day review and rejection ratios
    recent_merged = [pr for pr in merged if window_start <= pr.merged_at]
    recent_rejected = [
        pr for pr in closed_not_merged
        if pr.closed_at is not None and window_start <= pr.closed_at
    ]
    reviewed = sum(1 for pr in recent_merged if pr.reviews_total > 0)
    code_review_rate_pct = (
        round_to(reviewed / len(recent_merged) * 100) if recent_merged else 0.0
    )
    total_closed = len(recent_merged) + len(recent_rejected)
    rejection_rate_pct = (
        round_to(len(recent_rejected) / total_closed * 100) if total_closed else 0.0
    )
    avg_reviews_per_pr = (
        round_to(sum(pr.reviews_total for pr in recent_merged) / len(recent_merged))
        if recent_merged
        else 0.0
    )

    created_at = [pr.created_at for pr in open_prs + closed_prs]
    merged_at = [pr.merged_at for pr in merged]

    logger.debug(
        "PRs: %d open, %d merged, %d closed unmerged, %d awaiting review",
        len(open_prs),
        len(merged),
        len(closed_not_merged),
        len(awaiting),
    )

    return PullRequestMetrics(
        open_count=len(open_prs),
        draft_count=sum(1 for pr in open_prs if pr.is_draft),
        opened_7d=count_in_window(created_at, now, 7),
        opened_30d=count_in_window(created_at, now, 30),
        opened_90d=count_in_window(created_at, now, 90),
        merged_7d=count_in_window(merged_at, now, 7),
        merged_30d=count_in_window(merged_at, now, 30),
        merged_90d=len(recent_merged),
        closed_not_merged_90d=len(recent_rejected),
        without_review_24h=without_24h,
        without_review_7d=without_7d,
        prs_without_maintainer_review=awaiting,
        review_time=response_time_summary(review_hours),
        merge_time=MergeTime(
            avg_hours=round_to(average(merge_hours)),
            median_hours=round_to(percentile(merge_hours, 50)),
        ),
        by_size=by_size,
        code_review_rate_pct=code_review_rate_pct,
        rejection_rate_pct=rejection_rate_pct,
        avg_reviews_per_pr=avg_reviews_per_pr,
    )
