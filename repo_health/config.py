"""Centralised configuration and constants."""

from __future__ import annotations

import json
import os
from pathlib import Path

from repo_health.models import RepoConfig

# ── Paths ───────────────────────────────────────────────────────────────────
PROJECT_ROOT: Path = Path(__file__).resolve().parent.parent
DATA_DIR: Path = Path(os.getenv("REPO_HEALTH_DATA_DIR", str(PROJECT_ROOT / "data")))
DEFAULT_CONFIG_PATH: Path = PROJECT_ROOT / "repos.json"

# ── GitHub API ──────────────────────────────────────────────────────────────
GITHUB_TOKEN: str | None = os.getenv("GITHUB_TOKEN") or os.getenv("GH_PAT")
GITHUB_API_BASE: str = "https://api.github.com"
GRAPHQL_URL: str = "https://api.github.com/graphql"
REQUEST_TIMEOUT: int = 30  # seconds

# ── Repository target ──────────────────────────────────────────────────────
DEFAULT_ORG: str = "modelcontextprotocol"
DEFAULT_REPO: str = "modelcontextprotocol"

# ── Maintainer registry source ─────────────────────────────────────────────
MAINTAINERS_OWNER: str = os.getenv("MAINTAINERS_OWNER", "modelcontextprotocol")
MAINTAINERS_REPO: str = os.getenv("MAINTAINERS_REPO", "access")
MAINTAINERS_PATH: str = os.getenv("MAINTAINERS_PATH", "src/config/users.ts")
MAINTAINER_ROLE_SUFFIXES: tuple[str, ...] = ("_MAINTAINERS", "_SDK")

# ── Bot accounts (case-insensitive; any login ending in "[bot]" also matches)
KNOWN_BOTS: frozenset[str] = frozenset({
    "dependabot",
    "dependabot[bot]",
    "github-actions",
    "github-actions[bot]",
    "renovate",
    "renovate[bot]",
    "codecov",
    "codecov[bot]",
    "semantic-release-bot",
    "greenkeeper[bot]",
    "snyk-bot",
    "imgbot",
    "imgbot[bot]",
    "allcontributors",
    "allcontributors[bot]",
    "stale",
    "stale[bot]",
})

# ── Fetch settings ─────────────────────────────────────────────────────────
ISSUE_PAGE_SIZE: int = 50
PR_PAGE_SIZE: int = 50
NESTED_PAGE_SIZE: int = 100
COMMIT_PAGE_SIZE: int = 100
COMMIT_FETCH_LIMIT: int = 500
FILE_PAGE_SIZE: int = 100
FILE_MAX_PAGES: int = 30  # the files endpoint lists at most 3000 files per PR
PAGE_DELAY: float = 0.3  # seconds between paginated requests
FILE_FETCH_BATCH_SIZE: int = 5
FILE_FETCH_BATCH_DELAY: float = 1.0  # seconds between file-list batches
RETRY_MAX: int = 5
RETRY_BASE_DELAY: float = 3.0  # seconds, doubles per attempt

# ── Metric windows ─────────────────────────────────────────────────────────
RETENTION_WINDOW_DAYS: int = 90
ACTIVE_WINDOW_DAYS: int = 30
FIRST_TIME_LOOKBACK_DAYS: int = 90
COMMIT_WEEKS: int = 12
PR_SIZE_SMALL: int = 100
PR_SIZE_MEDIUM: int = 500
TOP_FILES: int = 20
TOP_DIRECTORIES: int = 10

# ── Snapshot retention ─────────────────────────────────────────────────────
SNAPSHOT_RETENTION_DAYS: int = 90


def load_repos_config(path: Path | str | None = None) -> list[RepoConfig]:
    """Load the multi-repository configuration file.

    Expected shape::

        {"repositories": [{"owner": "...", "repo": "...", "name": "..."}]}

    Raises ``ValueError`` when the file is missing or malformed.
    """
    config_path = Path(path) if path is not None else DEFAULT_CONFIG_PATH
    if not config_path.exists():
        raise ValueError(f"Configuration file not found: {config_path}")

    try:
        data = json.loads(config_path.read_text())
    except json.JSONDecodeError as exc:
        raise ValueError(f"Configuration file {config_path} is not valid JSON: {exc}") from exc

    repositories = data.get("repositories") if isinstance(data, dict) else None
    if not isinstance(repositories, list):
        raise ValueError('Configuration must have a "repositories" array')
    if not repositories:
        raise ValueError("Configuration must have at least one repository")

    result: list[RepoConfig] = []
    for entry in repositories:
        if not isinstance(entry, dict) or not entry.get("owner") or not entry.get("repo"):
            raise ValueError('Each repository must have "owner" and "repo" fields')
        result.append(RepoConfig(
            owner=entry["owner"],
            repo=entry["repo"],
            name=entry.get("name") or "",
            description=entry.get("description") or "",
        ))
    return result
