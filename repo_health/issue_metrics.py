"""Issue metric calculator.

Every window is relative to an explicit ``now`` and inclusive at its far
edge: a timestamp counts for an N-day window when ``now - N days <= ts``.
Response times only count comments from maintainers who are neither the
issue author nor a bot.
"""

from __future__ import annotations

import logging
from collections import Counter
from collections.abc import Collection, Iterable
from datetime import datetime, timedelta

from repo_health.config import KNOWN_BOTS
from repo_health.identity import is_qualifying_responder
from repo_health.models import CloseTime, Issue, IssueAwaitingResponse, IssueMetrics, ResponseTime
from repo_health.stats import average, days_between, hours_between, percentile, round_to

logger = logging.getLogger(__name__)

DAY = timedelta(days=1)


def count_in_window(
    timestamps: Iterable[datetime | None],
    now: datetime,
    days: int,
) -> int:
    """Count timestamps falling within the trailing *days*-day window."""
    start = now - timedelta(days=days)
    return sum(1 for ts in timestamps if ts is not None and start <= ts)


def first_maintainer_response(
    issue: Issue,
    maintainers: Collection[str],
    bot_logins: Collection[str] = KNOWN_BOTS,
) -> datetime | None:
    """Timestamp of the earliest qualifying maintainer comment, if any."""
    times = [
        c.created_at
        for c in issue.comments
        if is_qualifying_responder(c.author_login, issue.author_login, maintainers, bot_logins)
    ]
    return min(times) if times else None


def response_time_summary(hours: list[float]) -> ResponseTime:
    values = sorted(hours)
    return ResponseTime(
        avg_hours=round_to(average(values)),
        median_hours=round_to(percentile(values, 50)),
        p90_hours=round_to(percentile(values, 90)),
        p95_hours=round_to(percentile(values, 95)),
    )


def _issue_url(number: int, owner: str | None, repo: str | None) -> str:
    if owner and repo:
        return f"https://github.com/{owner}/{repo}/issues/{number}"
    return f"#{number}"


def calculate_issue_metrics(
    open_issues: list[Issue],
    closed_issues: list[Issue],
    maintainers: Collection[str],
    now: datetime,
    *,
    owner: str | None = None,
    repo: str | None = None,
    bot_logins: Collection[str] = KNOWN_BOTS,
) -> IssueMetrics:
    """Compute volume, responsiveness, labelling, staleness and reopen metrics."""
    all_issues = open_issues + closed_issues

    # Response times: open issues feed the "awaiting response" list too
    response_hours: list[float] = []
    awaiting: list[IssueAwaitingResponse] = []
    without_24h = without_7d = without_30d = 0

    for issue in open_issues:
        first = first_maintainer_response(issue, maintainers, bot_logins)
        if first is not None:
            response_hours.append(hours_between(issue.created_at, first))
            continue

        age = now - issue.created_at
        if age > DAY:
            without_24h += 1
        if age > 7 * DAY:
            without_7d += 1
        if age > 30 * DAY:
            without_30d += 1
        awaiting.append(IssueAwaitingResponse(
            number=issue.number,
            title=issue.title,
            url=_issue_url(issue.number, owner, repo),
            created_at=issue.created_at.isoformat(),
            days_waiting=age // DAY,
            labels=list(issue.labels),
            comment_count=issue.comments_total,
        ))

    awaiting.sort(key=lambda a: a.days_waiting, reverse=True)

    for issue in closed_issues:
        first = first_maintainer_response(issue, maintainers, bot_logins)
        if first is not None:
            response_hours.append(hours_between(issue.created_at, first))

    # Labels
    by_label: Counter[str] = Counter()
    labelled = 0
    for issue in open_issues:
        if issue.labels:
            labelled += 1
            by_label.update(issue.labels)
    label_coverage_pct = (
        round_to(labelled / len(open_issues) * 100) if open_issues else 0.0
    )

    # Time to close
    close_days = sorted(
        days_between(i.created_at, i.closed_at)
        for i in closed_issues
        if i.closed_at is not None
    )

    # Staleness (overlapping buckets)
    stale = {30: 0, 60: 0, 90: 0}
    for issue in open_issues:
        idle = now - issue.updated_at
        for days in stale:
            if idle > days * DAY:
                stale[days] += 1

    reopened = sum(1 for i in closed_issues if i.reopened_at)
    reopen_rate = round_to(reopened / len(closed_issues), 2) if closed_issues else 0.0

    closed_at = [i.closed_at for i in closed_issues]
    created_at = [i.created_at for i in all_issues]

    logger.debug(
        "Issues: %d open, %d closed, %d with maintainer response, %d awaiting",
        len(open_issues),
        len(closed_issues),
        len(response_hours),
        len(awaiting),
    )

    return IssueMetrics(
        open_count=len(open_issues),
        opened_7d=count_in_window(created_at, now, 7),
        opened_30d=count_in_window(created_at, now, 30),
        opened_90d=count_in_window(created_at, now, 90),
        closed_7d=count_in_window(closed_at, now, 7),
        closed_30d=count_in_window(closed_at, now, 30),
        closed_90d=count_in_window(closed_at, now, 90),
        without_response_24h=without_24h,
        without_response_7d=without_7d,
        without_response_30d=without_30d,
        issues_without_maintainer_response=awaiting,
        response_time=response_time_summary(response_hours),
        by_label=dict(sorted(by_label.items())),
        label_coverage_pct=label_coverage_pct,
        unlabeled_count=len(open_issues) - labelled,
        close_time=CloseTime(
            avg_days=round_to(average(close_days)),
            median_days=round_to(percentile(close_days, 50)),
            p90_days=round_to(percentile(close_days, 90)),
            p95_days=round_to(percentile(close_days, 95)),
        ),
        stale_30d=stale[30],
        stale_60d=stale[60],
        stale_90d=stale[90],
        reopen_rate=reopen_rate,
    )
