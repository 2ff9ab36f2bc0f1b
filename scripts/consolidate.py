"""CLI: Fold daily snapshots older than the retention window into monthly rollups."""

from __future__ import annotations

import argparse
import logging
import sys
from datetime import datetime, timezone

from repo_health.config import (
    DATA_DIR,
    DEFAULT_CONFIG_PATH,
    SNAPSHOT_RETENTION_DAYS,
    load_repos_config,
)
from repo_health.retention import consolidate_snapshots
from repo_health.storage import snapshots_dir

logging.basicConfig(
    level=logging.INFO, format="%(asctime)s %(levelname)s %(message)s"
)
logger = logging.getLogger(__name__)


def main(argv: list[str] | None = None) -> int:
    parser = argparse.ArgumentParser(description=__doc__)
    parser.add_argument(
        "--config", default=str(DEFAULT_CONFIG_PATH),
        help="path to repos.json (default: %(default)s)",
    )
    parser.add_argument(
        "--retention-days", type=int, default=SNAPSHOT_RETENTION_DAYS,
        help="keep daily snapshots this many days (default: %(default)s)",
    )
    parser.add_argument("-n", "--dry-run", action="store_true")
    args = parser.parse_args(argv)

    try:
        repos = load_repos_config(args.config)
    except ValueError as exc:
        logger.error("%s", exc)
        return 1

    now = datetime.now(timezone.utc)
    for repo in repos:
        logger.info("Consolidating snapshots for %s", repo.slug)
        written = consolidate_snapshots(
            snapshots_dir(repo, DATA_DIR),
            now,
            retention_days=args.retention_days,
            dry_run=args.dry_run,
        )
        logger.info("  %d monthly rollups", len(written))
    return 0


if __name__ == "__main__":
    sys.exit(main())
