"""Entry-point for ``python -m repo_health``."""

from __future__ import annotations

import sys

from repo_health import __version__


def main() -> None:
    """Print a short help message and exit."""
    print(
        f"repo_health v{__version__}\n"
        "\n"
        "Repository health metrics for GitHub repositories\n"
        "\n"
        "Usage:\n"
        "  python -m repo_health                    Show this help message\n"
        "  python scripts/aggregate.py              Fetch activity and write metrics\n"
        "  python scripts/aggregate.py --dry-run    Compute and preview without writing\n"
        "  python scripts/consolidate.py            Fold old daily snapshots into months\n"
        "\n"
        "Environment:\n"
        "  GITHUB_TOKEN (or GH_PAT)                 GitHub access token (required)\n"
        "  REPO_HEALTH_DATA_DIR                     Output directory (default: ./data)\n"
    )
    sys.exit(0)


if __name__ == "__main__":
    main()
