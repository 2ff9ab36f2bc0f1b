"""Aggregation pipeline: fetch → compute → write, one repository at a time.

For each repository:
    1. Issues, pull requests and commits (paginated GraphQL)
    2. File lists for merged PRs (batched REST)
    3. Repository counters (REST)
    4. Metric calculators
    5. metrics.json, contributor registries, dated snapshot

The maintainer registry is fetched once per run and shared by all
repositories.
"""

from __future__ import annotations

import json
import logging
from dataclasses import dataclass, field
from datetime import datetime, timezone
from pathlib import Path

from repo_health.config import DATA_DIR, PAGE_DELAY
from repo_health.contributor_metrics import calculate_contributor_metrics
from repo_health.fetcher import (
    fetch_commits,
    fetch_issues,
    fetch_pull_request_files,
    fetch_pull_requests,
    fetch_repo_stats,
)
from repo_health.github_client import GitHubClient
from repo_health.hotspots import calculate_hotspots
from repo_health.issue_metrics import calculate_issue_metrics
from repo_health.maintainers import fetch_maintainers
from repo_health.models import Maintainer, Metrics, RepoConfig
from repo_health.pull_metrics import calculate_pr_metrics
from repo_health.retention import consolidate_snapshots
from repo_health.storage import (
    load_contributors,
    load_prior_active,
    repo_data_dir,
    snapshots_dir,
    update_contributors,
    write_maintainers,
    write_metrics,
    write_prior_active,
    write_repo_index,
    write_snapshot,
)

logger = logging.getLogger(__name__)


class AggregationError(RuntimeError):
    """A fatal failure while aggregating one repository."""

    def __init__(self, repo: RepoConfig, cause: BaseException) -> None:
        super().__init__(f"{repo.slug}: {cause}")
        self.repo = repo


@dataclass
class RunResult:
    """Outcome of a multi-repository run."""

    succeeded: list[str] = field(default_factory=list)
    failed: dict[str, str] = field(default_factory=dict)

    @property
    def ok(self) -> bool:
        return not self.failed


async def aggregate_repository(
    client: GitHubClient,
    repo: RepoConfig,
    maintainer_logins: set[str],
    now: datetime,
    *,
    dry_run: bool = False,
    data_dir: Path = DATA_DIR,
    page_delay: float = PAGE_DELAY,
) -> Metrics:
    """Run the full pipeline for one repository and return its metrics.

    Nothing is written for the repository unless every fetch succeeded.
    """
    owner, name = repo.owner, repo.repo

    logger.info("[%s] Fetching issues...", repo.slug)
    open_issues, closed_issues = await fetch_issues(
        client, owner, name, now, page_delay=page_delay
    )
    logger.info("  Found %d open, %d recently closed", len(open_issues), len(closed_issues))

    logger.info("[%s] Fetching pull requests...", repo.slug)
    open_prs, closed_prs = await fetch_pull_requests(
        client, owner, name, now, page_delay=page_delay
    )
    logger.info("  Found %d open, %d recently closed/merged", len(open_prs), len(closed_prs))

    logger.info("[%s] Fetching commits...", repo.slug)
    commits = await fetch_commits(client, owner, name, now, page_delay=page_delay)
    logger.info("  Found %d commits", len(commits))

    logger.info("[%s] Fetching hotspot data...", repo.slug)
    merged_numbers = [pr.number for pr in closed_prs if pr.is_merged]
    pr_files = await fetch_pull_request_files(client, owner, name, merged_numbers)
    logger.info("  Analyzed %d merged PRs", len(merged_numbers))

    logger.info("[%s] Fetching repository stats...", repo.slug)
    repo_stats = await fetch_repo_stats(client, owner, name)
    logger.info("  Stars: %d, Forks: %d", repo_stats.stars, repo_stats.forks)

    logger.info("[%s] Computing metrics...", repo.slug)
    contributors = calculate_contributor_metrics(
        open_issues + closed_issues,
        open_prs + closed_prs,
        commits,
        maintainer_logins,
        now,
        known_contributors=load_contributors(repo, data_dir),
        prior_active=load_prior_active(repo, data_dir),
    )
    metrics = Metrics(
        timestamp=now.isoformat(),
        repository=repo_stats,
        issues=calculate_issue_metrics(
            open_issues, closed_issues, maintainer_logins, now, owner=owner, repo=name
        ),
        pulls=calculate_pr_metrics(
            open_prs, closed_prs, maintainer_logins, now, owner=owner, repo=name
        ),
        contributors=contributors.metrics,
        hotspots=calculate_hotspots(pr_files),
    )

    if dry_run:
        repo_dir = repo_data_dir(repo, data_dir)
        logger.info("Dry run - would write:")
        for filename in ("metrics.json", "contributors.json", "active_contributors.json"):
            logger.info("  - %s", repo_dir / filename)
        logger.info("  - %s", snapshots_dir(repo, data_dir) / f"{now.date().isoformat()}.json")
        print(json.dumps(metrics.to_dict(), indent=2))
        return metrics

    logger.info("[%s] Writing data files...", repo.slug)
    write_metrics(metrics, repo, data_dir)
    update_contributors(contributors.registry, repo, now, data_dir)
    write_prior_active(contributors.active_logins, repo, now, data_dir)
    write_snapshot(metrics, repo, now, data_dir)
    return metrics


async def run(
    repos: list[RepoConfig],
    *,
    now: datetime | None = None,
    dry_run: bool = False,
    keep_going: bool = False,
    write_index: bool = True,
    consolidate: bool = False,
    data_dir: Path = DATA_DIR,
    page_delay: float = PAGE_DELAY,
    client: GitHubClient | None = None,
) -> RunResult:
    """Aggregate *repos* one after another.

    A fatal error on one repository raises :class:`AggregationError` unless
    *keep_going* is set, in which case it is logged and the run continues.
    Repositories finished earlier keep their written output either way.
    """
    now = now or datetime.now(timezone.utc)
    result = RunResult()
    owns_client = client is None
    client = client or GitHubClient()

    try:
        logger.info("Fetching maintainers...")
        maintainers: list[Maintainer] = await fetch_maintainers(client)
        logger.info("  Found %d maintainers", len(maintainers))
        maintainer_logins = {m.github for m in maintainers}

        if not dry_run:
            write_maintainers(maintainers, now, data_dir)
            if write_index:
                write_repo_index(repos, now, data_dir)

        for repo in repos:
            try:
                await aggregate_repository(
                    client,
                    repo,
                    maintainer_logins,
                    now,
                    dry_run=dry_run,
                    data_dir=data_dir,
                    page_delay=page_delay,
                )
            except Exception as exc:
                error = AggregationError(repo, exc)
                if not keep_going:
                    raise error from exc
                logger.error("Aggregation failed for %s: %s", repo.slug, exc)
                result.failed[repo.slug] = str(exc)
                continue

            result.succeeded.append(repo.slug)
            if consolidate:
                consolidate_snapshots(snapshots_dir(repo, data_dir), now, dry_run=dry_run)
    finally:
        if owns_client:
            await client.close()

    return result
