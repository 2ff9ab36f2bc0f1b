"""JSON artifact writers: current metrics, registries, daily snapshots, repo index.

Layout under the data directory::

    maintainers.json
    repos.json
    repos/<owner>/<repo>/metrics.json
    repos/<owner>/<repo>/contributors.json
    repos/<owner>/<repo>/active_contributors.json
    repos/<owner>/<repo>/snapshots/YYYY-MM-DD.json
"""

from __future__ import annotations

import json
import logging
import os
import tempfile
from collections.abc import Iterable
from dataclasses import asdict
from datetime import datetime
from pathlib import Path
from typing import Any

from repo_health.config import DATA_DIR, KNOWN_BOTS
from repo_health.identity import is_bot
from repo_health.models import Maintainer, Metrics, RepoConfig

logger = logging.getLogger(__name__)


# ── Paths ───────────────────────────────────────────────────────────────────

def repo_data_dir(repo: RepoConfig, data_dir: Path = DATA_DIR) -> Path:
    return data_dir / "repos" / repo.owner / repo.repo


def snapshots_dir(repo: RepoConfig, data_dir: Path = DATA_DIR) -> Path:
    return repo_data_dir(repo, data_dir) / "snapshots"


# ── Low-level JSON I/O ──────────────────────────────────────────────────────

def write_json(path: Path, data: Any, *, sort_keys: bool = False) -> None:
    """Write *data* as indented JSON, durably, replacing *path* atomically."""
    path.parent.mkdir(parents=True, exist_ok=True)
    text = json.dumps(data, indent=2, sort_keys=sort_keys) + "\n"

    fd, tmp_name = tempfile.mkstemp(dir=path.parent, prefix=f".{path.name}.", suffix=".tmp")
    try:
        with os.fdopen(fd, "w", encoding="utf-8") as fh:
            fh.write(text)
            fh.flush()
            os.fsync(fh.fileno())
        os.replace(tmp_name, path)
    except BaseException:
        Path(tmp_name).unlink(missing_ok=True)
        raise


def read_json(path: Path) -> Any | None:
    """Return parsed JSON, or ``None`` if the file is missing or unreadable."""
    if not path.exists():
        return None
    try:
        return json.loads(path.read_text(encoding="utf-8"))
    except (OSError, json.JSONDecodeError) as exc:
        logger.warning("Ignoring unreadable %s: %s", path, exc)
        return None


# ── Current metrics & maintainers ───────────────────────────────────────────

def write_metrics(metrics: Metrics, repo: RepoConfig, data_dir: Path = DATA_DIR) -> Path:
    """Replace the current-metrics record for *repo*."""
    path = repo_data_dir(repo, data_dir) / "metrics.json"
    write_json(path, metrics.to_dict())
    return path


def write_maintainers(
    maintainers: list[Maintainer],
    now: datetime,
    data_dir: Path = DATA_DIR,
) -> Path:
    """Write the global maintainer registry."""
    path = data_dir / "maintainers.json"
    write_json(path, {
        "lastUpdated": now.isoformat(),
        "maintainers": [asdict(m) for m in maintainers],
    })
    return path


# ── Contributor registry (append-only) ──────────────────────────────────────

def load_contributors(repo: RepoConfig, data_dir: Path = DATA_DIR) -> list[str]:
    data = read_json(repo_data_dir(repo, data_dir) / "contributors.json")
    contributors = data.get("contributors") if isinstance(data, dict) else None
    if not isinstance(contributors, list):
        return []
    return [login for login in contributors if isinstance(login, str) and login]


def update_contributors(
    logins: Iterable[str],
    repo: RepoConfig,
    now: datetime,
    data_dir: Path = DATA_DIR,
) -> list[str]:
    """Merge *logins* into the on-disk registry and return the merged list.

    Entries are only ever added, except that bot identities are pruned.
    """
    path = repo_data_dir(repo, data_dir) / "contributors.json"
    existing = load_contributors(repo, data_dir)
    merged = sorted({
        login for login in [*existing, *logins] if not is_bot(login, KNOWN_BOTS)
    })
    write_json(path, {"lastUpdated": now.isoformat(), "contributors": merged})
    logger.debug("Contributor registry for %s: %d -> %d", repo.slug, len(existing), len(merged))
    return merged


def load_prior_active(repo: RepoConfig, data_dir: Path = DATA_DIR) -> list[str] | None:
    """The 30-day-active set persisted by the previous run, or None if absent."""
    data = read_json(repo_data_dir(repo, data_dir) / "active_contributors.json")
    if not isinstance(data, dict) or not isinstance(data.get("contributors"), list):
        return None
    return list(data["contributors"])


def write_prior_active(
    logins: Iterable[str],
    repo: RepoConfig,
    now: datetime,
    data_dir: Path = DATA_DIR,
) -> Path:
    path = repo_data_dir(repo, data_dir) / "active_contributors.json"
    write_json(path, {"lastUpdated": now.isoformat(), "contributors": sorted(set(logins))})
    return path


# ── Daily snapshots ─────────────────────────────────────────────────────────

def build_snapshot(metrics: Metrics, date: str) -> dict[str, Any]:
    """The trend-relevant subset of *metrics* for one calendar day.

    Carries no run timestamp, so equal metrics give an identical record.
    """
    issues = metrics.issues
    pulls = metrics.pulls
    contributors = metrics.contributors
    return {
        "date": date,
        "issues": {
            "open": issues.open_count,
            "opened_7d": issues.opened_7d,
            "opened_30d": issues.opened_30d,
            "opened_90d": issues.opened_90d,
            "closed_7d": issues.closed_7d,
            "closed_30d": issues.closed_30d,
            "closed_90d": issues.closed_90d,
            "without_response_24h": issues.without_response_24h,
            "without_response_7d": issues.without_response_7d,
            "without_response_30d": issues.without_response_30d,
            "stale_30d": issues.stale_30d,
            "stale_60d": issues.stale_60d,
            "stale_90d": issues.stale_90d,
            "reopen_rate": issues.reopen_rate,
            "label_coverage_pct": issues.label_coverage_pct,
            "response_time": asdict(issues.response_time),
        },
        "pulls": {
            "open": pulls.open_count,
            "opened_7d": pulls.opened_7d,
            "opened_30d": pulls.opened_30d,
            "opened_90d": pulls.opened_90d,
            "merged_7d": pulls.merged_7d,
            "merged_30d": pulls.merged_30d,
            "merged_90d": pulls.merged_90d,
            "closed_not_merged_90d": pulls.closed_not_merged_90d,
            "draft_count": pulls.draft_count,
            "without_review_24h": pulls.without_review_24h,
            "without_review_7d": pulls.without_review_7d,
            "review_time": asdict(pulls.review_time),
            "merge_time": asdict(pulls.merge_time),
            "by_size": dict(pulls.by_size),
        },
        "repository": asdict(metrics.repository),
        "contributors": {
            "total": contributors.total_known,
            "active_30d": contributors.active_30d,
            "first_time_30d": contributors.first_time_30d,
            "retention_rate": contributors.retention_rate,
        },
    }


def write_snapshot(
    metrics: Metrics,
    repo: RepoConfig,
    now: datetime,
    data_dir: Path = DATA_DIR,
) -> Path:
    """Write the dated snapshot for ``now``'s calendar day; same-day reruns overwrite."""
    date = now.date().isoformat()
    path = snapshots_dir(repo, data_dir) / f"{date}.json"
    write_json(path, build_snapshot(metrics, date), sort_keys=True)
    return path


# ── Repository index ────────────────────────────────────────────────────────

def write_repo_index(
    repos: list[RepoConfig],
    now: datetime,
    data_dir: Path = DATA_DIR,
) -> Path:
    path = data_dir / "repos.json"
    write_json(path, {
        "lastUpdated": now.isoformat(),
        "repositories": [
            {
                "owner": r.owner,
                "repo": r.repo,
                "name": r.display_name,
                "description": r.description,
            }
            for r in repos
        ],
    })
    return path
