"""Contributor metric calculator: activity, first-timers, retention and churn.

A contributor is any non-bot author of an issue, pull request or commit.
Activity windows (relative to ``now``):

    active       now - 30d  <= ts
    lookback     now - 120d <= ts < now - 30d   (first-time detection)
    prior proxy  now - 60d  <= ts < now - 30d   (retention fallback)

Retention compares this window's active set against the active set persisted
by a previous run.  When no such record exists the prior-30-day proxy is
used and ``retention_basis`` says so.
"""

from __future__ import annotations

import logging
from collections import defaultdict
from collections.abc import Collection, Iterable
from datetime import datetime, timedelta

from repo_health.config import (
    ACTIVE_WINDOW_DAYS,
    COMMIT_WEEKS,
    FIRST_TIME_LOOKBACK_DAYS,
    KNOWN_BOTS,
)
from repo_health.identity import is_bot
from repo_health.models import (
    Commit,
    ContributorMetrics,
    ContributorResult,
    Issue,
    PullRequest,
)
from repo_health.stats import average, round_to

logger = logging.getLogger(__name__)

BASIS_PERSISTED = "persisted"
BASIS_PROXY = "proxy"


def activity_by_login(
    issues: Iterable[Issue],
    pulls: Iterable[PullRequest],
    commits: Iterable[Commit],
    bot_logins: Collection[str] = KNOWN_BOTS,
) -> dict[str, list[datetime]]:
    """Map each non-bot login to the timestamps of its authored activity."""
    activity: dict[str, list[datetime]] = defaultdict(list)
    for issue in issues:
        if not is_bot(issue.author_login, bot_logins):
            activity[issue.author_login].append(issue.created_at)
    for pr in pulls:
        if not is_bot(pr.author_login, bot_logins):
            activity[pr.author_login].append(pr.created_at)
    for commit in commits:
        if not is_bot(commit.author_login, bot_logins):
            activity[commit.author_login].append(commit.committed_at)
    return dict(activity)


def _active_between(
    activity: dict[str, list[datetime]],
    start: datetime,
    end: datetime | None = None,
) -> set[str]:
    """Logins with at least one timestamp in ``[start, end)`` (open-ended if no end)."""
    return {
        login
        for login, stamps in activity.items()
        if any(start <= ts and (end is None or ts < end) for ts in stamps)
    }


def weekly_commit_counts(
    commits: Iterable[Commit],
    now: datetime,
    weeks: int = COMMIT_WEEKS,
) -> list[int]:
    """Commits per week over the trailing *weeks* weeks, oldest week first."""
    counts = [0] * weeks
    week = timedelta(weeks=1)
    for commit in commits:
        weeks_ago = (now - commit.committed_at) // week
        if 0 <= weeks_ago < weeks:
            counts[weeks - 1 - weeks_ago] += 1
    return counts


def calculate_contributor_metrics(
    issues: list[Issue],
    pulls: list[PullRequest],
    commits: list[Commit],
    maintainers: Collection[str],
    now: datetime,
    *,
    known_contributors: Iterable[str] = (),
    prior_active: Iterable[str] | None = None,
    bot_logins: Collection[str] = KNOWN_BOTS,
) -> ContributorResult:
    """Compute contributor metrics and the identity sets to persist.

    *known_contributors* is the registry from earlier runs; *prior_active* is
    the active set persisted by the previous run, or ``None`` if there is
    none.
    """
    activity = activity_by_login(issues, pulls, commits, bot_logins)

    active_start = now - timedelta(days=ACTIVE_WINDOW_DAYS)
    lookback_start = active_start - timedelta(days=FIRST_TIME_LOOKBACK_DAYS)
    proxy_start = active_start - timedelta(days=ACTIVE_WINDOW_DAYS)

    active = _active_between(activity, active_start)
    seen_before = _active_between(activity, lookback_start, active_start)
    first_time = active - seen_before

    if prior_active is not None:
        prior = {login for login in prior_active if not is_bot(login, bot_logins)}
        basis = BASIS_PERSISTED
    else:
        prior = _active_between(activity, proxy_start, active_start)
        basis = BASIS_PROXY
        logger.debug("No persisted prior-period set; using 30-60 day activity as proxy")

    retained = active & prior
    retention_rate = round_to(len(retained) / len(prior), 2) if prior else 0.0

    maintainers_active = {login for login in active if login in maintainers}

    registry = {
        login for login in known_contributors if not is_bot(login, bot_logins)
    } | set(activity)

    weekly = weekly_commit_counts(commits, now)

    metrics = ContributorMetrics(
        total_known=len(registry),
        active_30d=len(active),
        first_time_30d=len(first_time),
        returning_30d=len(active) - len(first_time),
        maintainers_active_30d=len(maintainers_active),
        community_active_30d=len(active) - len(maintainers_active),
        prior_period_size=len(prior),
        retained_30d=len(retained),
        churned_30d=len(prior) - len(retained),
        retention_rate=retention_rate,
        retention_basis=basis,
        weekly_commits=weekly,
        avg_weekly_commits=round_to(average(weekly)),
    )
    return ContributorResult(
        metrics=metrics,
        registry=sorted(registry),
        active_logins=sorted(active),
    )
