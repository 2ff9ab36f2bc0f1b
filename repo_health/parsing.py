"""Convert raw GraphQL / REST payloads into model objects.

Missing optional fields default to empty values so that a sparse API
response never raises during parsing.  Only the timestamps that anchor an
entity (``createdAt`` / ``updatedAt``) are required.
"""

from __future__ import annotations

from datetime import datetime
from typing import Any

from repo_health.models import (
    Comment,
    Commit,
    FileChange,
    Issue,
    PullRequest,
    Review,
)


def parse_datetime(value: str) -> datetime:
    """Parse a GitHub ISO-8601 timestamp (``...Z``) into an aware datetime."""
    return datetime.fromisoformat(value.replace("Z", "+00:00"))


def _optional_datetime(value: str | None) -> datetime | None:
    return parse_datetime(value) if value else None


def _login(raw: dict[str, Any] | None) -> str | None:
    return ((raw or {}).get("author") or {}).get("login")


def _labels(raw: dict[str, Any]) -> list[str]:
    return [
        label["name"]
        for label in (raw.get("labels") or {}).get("nodes") or []
        if label and label.get("name")
    ]


def _comments(raw: dict[str, Any]) -> tuple[list[Comment], int]:
    conn = raw.get("comments") or {}
    comments = [
        Comment(author_login=_login(c), created_at=parse_datetime(c["createdAt"]))
        for c in conn.get("nodes") or []
        if c and c.get("createdAt")
    ]
    return comments, conn.get("totalCount", len(comments))


def _reopen_events(raw: dict[str, Any]) -> list[datetime]:
    """Timestamps of ``ReopenedEvent`` timeline items; other event types are ignored."""
    return [
        parse_datetime(event["createdAt"])
        for event in (raw.get("timelineItems") or {}).get("nodes") or []
        if event and event.get("__typename") == "ReopenedEvent" and event.get("createdAt")
    ]


# ── Issues ──────────────────────────────────────────────────────────────────

def parse_issue(raw: dict[str, Any]) -> Issue:
    comments, comments_total = _comments(raw)
    return Issue(
        node_id=raw.get("id", ""),
        number=raw.get("number", 0),
        title=raw.get("title", ""),
        state=raw.get("state", ""),
        created_at=parse_datetime(raw["createdAt"]),
        updated_at=parse_datetime(raw["updatedAt"]),
        closed_at=_optional_datetime(raw.get("closedAt")),
        author_login=_login(raw),
        labels=_labels(raw),
        comments=comments,
        comments_total=comments_total,
        reopened_at=_reopen_events(raw),
    )


# ── Pull requests ───────────────────────────────────────────────────────────

def parse_pull_request(raw: dict[str, Any]) -> PullRequest:
    comments, comments_total = _comments(raw)

    review_conn = raw.get("reviews") or {}
    reviews: list[Review] = []
    for r in review_conn.get("nodes") or []:
        # Pending reviews have no submittedAt; fall back to createdAt.
        submitted = (r or {}).get("submittedAt") or (r or {}).get("createdAt")
        if not submitted:
            continue
        reviews.append(Review(
            author_login=_login(r),
            state=r.get("state", ""),
            submitted_at=parse_datetime(submitted),
        ))

    return PullRequest(
        node_id=raw.get("id", ""),
        number=raw.get("number", 0),
        title=raw.get("title", ""),
        state=raw.get("state", ""),
        is_draft=bool(raw.get("isDraft", False)),
        created_at=parse_datetime(raw["createdAt"]),
        updated_at=parse_datetime(raw["updatedAt"]),
        merged_at=_optional_datetime(raw.get("mergedAt")),
        closed_at=_optional_datetime(raw.get("closedAt")),
        author_login=_login(raw),
        additions=raw.get("additions") or 0,
        deletions=raw.get("deletions") or 0,
        changed_files=raw.get("changedFiles") or 0,
        labels=_labels(raw),
        reviews=reviews,
        reviews_total=review_conn.get("totalCount", len(reviews)),
        comments=comments,
        comments_total=comments_total,
        reopened_at=_reopen_events(raw),
    )


# ── Commits & files ─────────────────────────────────────────────────────────

def parse_commit(raw: dict[str, Any]) -> Commit:
    """``author.user`` is null when the commit email is not linked to an account."""
    user = ((raw.get("author") or {}).get("user")) or {}
    return Commit(
        author_login=user.get("login"),
        committed_at=parse_datetime(raw["committedDate"]),
    )


def parse_file_change(raw: dict[str, Any]) -> FileChange:
    additions = raw.get("additions") or 0
    deletions = raw.get("deletions") or 0
    return FileChange(
        path=raw["filename"],
        additions=additions,
        deletions=deletions,
        changes=raw.get("changes", additions + deletions),
    )
