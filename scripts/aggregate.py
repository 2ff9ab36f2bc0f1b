"""CLI: Fetch repository activity and write health metrics."""

from __future__ import annotations

import argparse
import asyncio
import logging
import sys

from repo_health.aggregator import AggregationError, run
from repo_health.config import (
    DEFAULT_CONFIG_PATH,
    DEFAULT_ORG,
    DEFAULT_REPO,
    load_repos_config,
)
from repo_health.models import RepoConfig

logger = logging.getLogger(__name__)


def parse_args(argv: list[str] | None = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(
        description="Aggregate GitHub health metrics for the configured repositories.",
    )
    parser.add_argument(
        "-n", "--dry-run", action="store_true",
        help="compute metrics but don't write files",
    )
    parser.add_argument(
        "-v", "--verbose", action="store_true",
        help="enable progress logging",
    )
    parser.add_argument(
        "--owner",
        help=f"repository owner, single-repository mode (default: {DEFAULT_ORG})",
    )
    parser.add_argument(
        "--repo",
        help=f"repository name, single-repository mode (default: {DEFAULT_REPO})",
    )
    parser.add_argument(
        "--config", default=str(DEFAULT_CONFIG_PATH),
        help="path to repos.json (default: %(default)s)",
    )
    parser.add_argument(
        "--keep-going", action="store_true",
        help="continue with remaining repositories after a failure",
    )
    parser.add_argument(
        "--consolidate", action="store_true",
        help="fold old daily snapshots into monthly rollups after aggregating",
    )
    return parser.parse_args(argv)


def single_repo(args: argparse.Namespace) -> RepoConfig | None:
    """The ``--owner``/``--repo`` override, or None to use the config file.

    Giving either flag selects single-repository mode; the other one falls
    back to its default.
    """
    if not args.owner and not args.repo:
        return None
    return RepoConfig(owner=args.owner or DEFAULT_ORG, repo=args.repo or DEFAULT_REPO)


def main(argv: list[str] | None = None) -> int:
    """Run aggregation; returns the process exit code."""
    args = parse_args(argv)
    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.INFO,
        format="%(asctime)s %(levelname)s %(message)s",
    )
    if not args.verbose:
        logging.getLogger("httpx").setLevel(logging.WARNING)

    override = single_repo(args)
    try:
        repos = [override] if override else load_repos_config(args.config)
    except ValueError as exc:
        logger.error("%s", exc)
        return 1

    try:
        result = asyncio.run(run(
            repos,
            dry_run=args.dry_run,
            keep_going=args.keep_going,
            write_index=override is None,
            consolidate=args.consolidate,
        ))
    except AggregationError as exc:
        logger.error("Aggregation failed: %s", exc)
        return 1
    except ValueError as exc:
        # Missing token
        logger.error("%s", exc)
        return 1

    for slug, error in result.failed.items():
        logger.error("  %s failed: %s", slug, error)
    logger.info(
        "Done: %d succeeded, %d failed", len(result.succeeded), len(result.failed)
    )
    return 0 if result.ok else 1


if __name__ == "__main__":
    sys.exit(main())
