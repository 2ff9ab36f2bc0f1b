"""Fetch and parse the maintainer role registry.

The registry is a TypeScript source file with entries shaped like::

    { github: "username", memberOf: ["CORE_MAINTAINERS", "TYPESCRIPT_SDK"] }

Only roles ending in one of ``MAINTAINER_ROLE_SUFFIXES`` make someone a
maintainer.
"""

from __future__ import annotations

import base64
import logging
import re

import httpx

from repo_health.config import MAINTAINERS_OWNER, MAINTAINERS_PATH, MAINTAINERS_REPO
from repo_health.github_client import GitHubAPIError, GitHubClient, with_retry
from repo_health.identity import maintainer_roles
from repo_health.models import Maintainer

logger = logging.getLogger(__name__)

_USER_BLOCK_RE = re.compile(
    r"\{[^{}]*github:\s*[\"']([^\"']+)[\"'][^{}]*memberOf:\s*\[([^\]]*)\][^{}]*\}"
)


def parse_maintainers(content: str) -> list[Maintainer]:
    """Extract ``(login, maintainer roles)`` pairs from registry source text."""
    maintainers: list[Maintainer] = []
    for match in _USER_BLOCK_RE.finditer(content):
        login = match.group(1)
        roles = [
            r.strip().strip("\"'")
            for r in match.group(2).split(",")
        ]
        kept = maintainer_roles(r for r in roles if r)
        if kept:
            maintainers.append(Maintainer(github=login, roles=kept))
            logger.debug("    Found maintainer: %s (%s)", login, ", ".join(kept))

    if not maintainers:
        logger.warning(
            "No maintainers found in the registry; parsing may have failed. "
            "Response-time metrics will report no maintainer responses."
        )
    return maintainers


async def fetch_maintainers(
    client: GitHubClient,
    owner: str = MAINTAINERS_OWNER,
    repo: str = MAINTAINERS_REPO,
    path: str = MAINTAINERS_PATH,
) -> list[Maintainer]:
    """Fetch the registry file and parse it.

    A failed fetch degrades to an empty maintainer list with a warning rather
    than aborting the run.
    """
    logger.debug("  Fetching %s/%s/%s", owner, repo, path)
    try:
        data = await with_retry(
            lambda: client.rest_get(f"/repos/{owner}/{repo}/contents/{path}")
        )
        if not isinstance(data, dict) or data.get("type") != "file":
            raise ValueError("Expected file content, got directory listing")
        content = base64.b64decode(data.get("content", "")).decode("utf-8")
    except (GitHubAPIError, httpx.HTTPError, ValueError) as exc:
        logger.warning("Failed to fetch maintainer data: %s", exc)
        logger.warning("Continuing with empty maintainer list")
        return []

    return parse_maintainers(content)
