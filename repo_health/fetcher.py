"""Data collection: paginated GraphQL walks, nested follow-ups and file lists."""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Awaitable, Callable
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from functools import partial
from typing import Any

import httpx

from repo_health.config import (
    COMMIT_FETCH_LIMIT,
    COMMIT_PAGE_SIZE,
    COMMIT_WEEKS,
    FILE_FETCH_BATCH_DELAY,
    FILE_FETCH_BATCH_SIZE,
    FILE_MAX_PAGES,
    FILE_PAGE_SIZE,
    ISSUE_PAGE_SIZE,
    NESTED_PAGE_SIZE,
    PAGE_DELAY,
    PR_PAGE_SIZE,
    RETENTION_WINDOW_DAYS,
)
from repo_health.github_client import GitHubAPIError, GitHubClient, run_batched, with_retry
from repo_health.models import (
    Commit,
    FileChange,
    Issue,
    PullRequest,
    PullRequestFiles,
    RepoStats,
)
from repo_health.parsing import (
    parse_commit,
    parse_datetime,
    parse_file_change,
    parse_issue,
    parse_pull_request,
)

logger = logging.getLogger(__name__)

# ── GraphQL Queries ─────────────────────────────────────────────────────────

QUERY_ISSUES = """
query($owner: String!, $repo: String!, $after: String, $states: [IssueState!]) {
  repository(owner: $owner, name: $repo) {
    issues(first: %d, after: $after, states: $states,
           orderBy: {field: UPDATED_AT, direction: DESC}) {
      pageInfo { hasNextPage endCursor }
      nodes {
        id
        number
        title
        state
        createdAt
        updatedAt
        closedAt
        author { login }
        labels(first: 20) { nodes { name } }
        comments(first: %d) {
          pageInfo { hasNextPage endCursor }
          nodes { createdAt author { login } }
          totalCount
        }
        timelineItems(first: 50, itemTypes: [REOPENED_EVENT]) {
          nodes { __typename ... on ReopenedEvent { createdAt } }
        }
      }
    }
  }
}
""" % (ISSUE_PAGE_SIZE, NESTED_PAGE_SIZE)

QUERY_PULL_REQUESTS = """
query($owner: String!, $repo: String!, $after: String, $states: [PullRequestState!]) {
  repository(owner: $owner, name: $repo) {
    pullRequests(first: %d, after: $after, states: $states,
                 orderBy: {field: UPDATED_AT, direction: DESC}) {
      pageInfo { hasNextPage endCursor }
      nodes {
        id
        number
        title
        state
        isDraft
        createdAt
        updatedAt
        mergedAt
        closedAt
        author { login }
        additions
        deletions
        changedFiles
        labels(first: 20) { nodes { name } }
        reviews(first: %d) {
          pageInfo { hasNextPage endCursor }
          nodes { createdAt submittedAt state author { login } }
          totalCount
        }
        comments(first: %d) {
          pageInfo { hasNextPage endCursor }
          nodes { createdAt author { login } }
          totalCount
        }
        timelineItems(first: 20, itemTypes: [REOPENED_EVENT]) {
          nodes { __typename ... on ReopenedEvent { createdAt } }
        }
      }
    }
  }
}
""" % (PR_PAGE_SIZE, NESTED_PAGE_SIZE, NESTED_PAGE_SIZE)

QUERY_NESTED = """
query($nodeId: ID!, $after: String) {
  node(id: $nodeId) {
    ... on %s {
      %s(first: %d, after: $after) {
        pageInfo { hasNextPage endCursor }
        nodes { %s }
      }
    }
  }
}
"""

_COMMENT_FIELDS = "createdAt author { login }"
_REVIEW_FIELDS = "createdAt submittedAt state author { login }"

QUERY_ISSUE_COMMENTS = QUERY_NESTED % ("Issue", "comments", NESTED_PAGE_SIZE, _COMMENT_FIELDS)
QUERY_PR_COMMENTS = QUERY_NESTED % ("PullRequest", "comments", NESTED_PAGE_SIZE, _COMMENT_FIELDS)
QUERY_PR_REVIEWS = QUERY_NESTED % ("PullRequest", "reviews", NESTED_PAGE_SIZE, _REVIEW_FIELDS)

QUERY_COMMITS = """
query($owner: String!, $repo: String!, $since: GitTimestamp!, $after: String) {
  repository(owner: $owner, name: $repo) {
    defaultBranchRef {
      target {
        ... on Commit {
          history(first: %d, since: $since, after: $after) {
            pageInfo { hasNextPage endCursor }
            totalCount
            nodes {
              committedDate
              author { user { login } }
            }
          }
        }
      }
    }
  }
}
""" % COMMIT_PAGE_SIZE


# ── Page model & collector ──────────────────────────────────────────────────

@dataclass
class Page:
    """One page of a cursor-paginated connection."""

    nodes: list[dict[str, Any]] = field(default_factory=list)
    has_next_page: bool = False
    end_cursor: str | None = None

    @classmethod
    def from_connection(cls, conn: dict[str, Any] | None) -> Page:
        if not conn:
            return cls()
        page_info = conn.get("pageInfo") or {}
        return cls(
            nodes=list(conn.get("nodes") or []),
            has_next_page=bool(page_info.get("hasNextPage")),
            end_cursor=page_info.get("endCursor"),
        )


PageFetcher = Callable[[str | None], Awaitable[Page]]


async def collect_pages(
    fetch_page: PageFetcher,
    *,
    start_cursor: str | None = None,
    cutoff: datetime | None = None,
    limit: int | None = None,
    page_delay: float = PAGE_DELAY,
    label: str = "items",
) -> list[dict[str, Any]]:
    """Walk a connection page by page and return all collected nodes.

    With a *cutoff*, pages must be ordered by ``updatedAt`` descending: the
    first node updated before the cutoff ends the walk, and neither it nor
    anything after it is kept.  *limit* caps the number of nodes returned.
    The pacing delay is skipped after the final page.
    """
    nodes: list[dict[str, Any]] = []
    cursor = start_cursor

    while True:
        page = await with_retry(partial(fetch_page, cursor))

        reached_cutoff = False
        for node in page.nodes:
            if cutoff is not None and parse_datetime(node["updatedAt"]) < cutoff:
                reached_cutoff = True
                break
            nodes.append(node)

        logger.debug("  Fetched %d %s...", len(nodes), label)

        if limit is not None and len(nodes) >= limit:
            return nodes[:limit]
        if reached_cutoff or not page.has_next_page:
            return nodes

        cursor = page.end_cursor
        await asyncio.sleep(page_delay)


async def complete_connection(
    client: GitHubClient,
    node: dict[str, Any],
    connection: str,
    query: str,
    *,
    page_delay: float = PAGE_DELAY,
) -> None:
    """Fetch the rest of a nested connection that overflowed one page.

    Remaining nodes are appended in place to ``node[connection]["nodes"]``.
    """
    conn = node.get(connection) or {}
    page_info = conn.get("pageInfo") or {}
    if conn.get("totalCount", 0) <= NESTED_PAGE_SIZE or not page_info.get("hasNextPage"):
        return

    async def fetch_page(cursor: str | None) -> Page:
        data = await client.graphql(query, {"nodeId": node["id"], "after": cursor})
        return Page.from_connection(((data.get("node") or {}).get(connection)))

    extra = await collect_pages(
        fetch_page,
        start_cursor=page_info.get("endCursor"),
        page_delay=page_delay,
        label=f"additional {connection} for #{node.get('number')}",
    )
    conn.setdefault("nodes", []).extend(extra)
    conn["pageInfo"] = {"hasNextPage": False, "endCursor": None}


# ── Issues ──────────────────────────────────────────────────────────────────

async def fetch_issues_by_state(
    client: GitHubClient,
    owner: str,
    repo: str,
    states: list[str],
    *,
    cutoff: datetime | None = None,
    page_delay: float = PAGE_DELAY,
) -> list[Issue]:
    """Collect issues in *states*, completing comment lists over 100 entries."""

    async def fetch_page(cursor: str | None) -> Page:
        data = await client.graphql(
            QUERY_ISSUES,
            {"owner": owner, "repo": repo, "after": cursor, "states": states},
        )
        repository = data.get("repository")
        if not repository:
            raise GitHubAPIError(f"Repository {owner}/{repo} not found", status=404)
        return Page.from_connection(repository.get("issues"))

    raw_issues = await collect_pages(
        fetch_page,
        cutoff=cutoff,
        page_delay=page_delay,
        label="/".join(states) + " issues",
    )
    for raw in raw_issues:
        await complete_connection(
            client, raw, "comments", QUERY_ISSUE_COMMENTS, page_delay=page_delay
        )
    return [parse_issue(raw) for raw in raw_issues]


async def fetch_issues(
    client: GitHubClient,
    owner: str,
    repo: str,
    now: datetime,
    *,
    page_delay: float = PAGE_DELAY,
) -> tuple[list[Issue], list[Issue]]:
    """Return ``(open_issues, recently_closed_issues)``."""
    cutoff = now - timedelta(days=RETENTION_WINDOW_DAYS)
    open_issues = await fetch_issues_by_state(
        client, owner, repo, ["OPEN"], page_delay=page_delay
    )
    closed_issues = await fetch_issues_by_state(
        client, owner, repo, ["CLOSED"], cutoff=cutoff, page_delay=page_delay
    )
    return open_issues, closed_issues


# ── Pull requests ───────────────────────────────────────────────────────────

async def fetch_pull_requests_by_state(
    client: GitHubClient,
    owner: str,
    repo: str,
    states: list[str],
    *,
    cutoff: datetime | None = None,
    page_delay: float = PAGE_DELAY,
) -> list[PullRequest]:
    """Collect pull requests in *states*, completing overflowing reviews and comments."""

    async def fetch_page(cursor: str | None) -> Page:
        data = await client.graphql(
            QUERY_PULL_REQUESTS,
            {"owner": owner, "repo": repo, "after": cursor, "states": states},
        )
        repository = data.get("repository")
        if not repository:
            raise GitHubAPIError(f"Repository {owner}/{repo} not found", status=404)
        return Page.from_connection(repository.get("pullRequests"))

    raw_prs = await collect_pages(
        fetch_page,
        cutoff=cutoff,
        page_delay=page_delay,
        label="/".join(states) + " PRs",
    )
    for raw in raw_prs:
        await complete_connection(
            client, raw, "reviews", QUERY_PR_REVIEWS, page_delay=page_delay
        )
        await complete_connection(
            client, raw, "comments", QUERY_PR_COMMENTS, page_delay=page_delay
        )
    return [parse_pull_request(raw) for raw in raw_prs]


async def fetch_pull_requests(
    client: GitHubClient,
    owner: str,
    repo: str,
    now: datetime,
    *,
    page_delay: float = PAGE_DELAY,
) -> tuple[list[PullRequest], list[PullRequest]]:
    """Return ``(open_prs, recently_closed_or_merged_prs)``."""
    cutoff = now - timedelta(days=RETENTION_WINDOW_DAYS)
    open_prs = await fetch_pull_requests_by_state(
        client, owner, repo, ["OPEN"], page_delay=page_delay
    )
    closed_prs = await fetch_pull_requests_by_state(
        client, owner, repo, ["CLOSED", "MERGED"], cutoff=cutoff, page_delay=page_delay
    )
    return open_prs, closed_prs


# ── Commits ─────────────────────────────────────────────────────────────────

async def fetch_commits(
    client: GitHubClient,
    owner: str,
    repo: str,
    now: datetime,
    *,
    weeks: int = COMMIT_WEEKS,
    limit: int = COMMIT_FETCH_LIMIT,
    page_delay: float = PAGE_DELAY,
) -> list[Commit]:
    """Default-branch commits from the last *weeks* weeks, capped at *limit*."""
    since = (now - timedelta(weeks=weeks)).isoformat()

    async def fetch_page(cursor: str | None) -> Page:
        data = await client.graphql(
            QUERY_COMMITS,
            {"owner": owner, "repo": repo, "since": since, "after": cursor},
        )
        branch = (data.get("repository") or {}).get("defaultBranchRef")
        if not branch:
            return Page()
        return Page.from_connection((branch.get("target") or {}).get("history"))

    raw_commits = await collect_pages(
        fetch_page, limit=limit, page_delay=page_delay, label="commits"
    )
    return [parse_commit(raw) for raw in raw_commits]


# ── File changes (REST, batched) ────────────────────────────────────────────

async def fetch_pull_request_files(
    client: GitHubClient,
    owner: str,
    repo: str,
    pr_numbers: list[int],
    *,
    batch_size: int = FILE_FETCH_BATCH_SIZE,
    batch_delay: float = FILE_FETCH_BATCH_DELAY,
) -> list[PullRequestFiles]:
    """Fetch changed-file lists for merged PRs in bounded concurrent batches.

    Each file list is paged until a short page comes back. A PR whose file
    list cannot be fetched gets an empty list; the failure is logged and the
    batch carries on.
    """
    async def fetch_one(number: int) -> PullRequestFiles:
        endpoint = f"/repos/{owner}/{repo}/pulls/{number}/files"
        files: list[FileChange] = []
        try:
            for page in range(1, FILE_MAX_PAGES + 1):
                raw_files = await with_retry(partial(
                    client.rest_get,
                    endpoint,
                    params={"per_page": FILE_PAGE_SIZE, "page": page},
                ))
                files.extend(parse_file_change(f) for f in raw_files)
                if len(raw_files) < FILE_PAGE_SIZE:
                    break
        except (GitHubAPIError, httpx.HTTPError, KeyError, TypeError, ValueError) as exc:
            logger.warning("Could not fetch files for PR #%d: %s", number, exc)
            return PullRequestFiles(pr_number=number)
        return PullRequestFiles(pr_number=number, files=files)

    results = await run_batched(pr_numbers, batch_size, batch_delay, fetch_one)
    failed = sum(1 for r in results if not r.files)
    logger.debug("  Fetched files for %d PRs (%d empty)", len(results), failed)
    return results


# ── Repository counters ─────────────────────────────────────────────────────

async def fetch_repo_stats(client: GitHubClient, owner: str, repo: str) -> RepoStats:
    data = await with_retry(lambda: client.rest_get(f"/repos/{owner}/{repo}"))
    return RepoStats(
        stars=data.get("stargazers_count", 0),
        forks=data.get("forks_count", 0),
    )
