"""Hotspot aggregation over merged pull requests' file lists."""

from __future__ import annotations

from collections.abc import Iterable

from repo_health.config import TOP_DIRECTORIES, TOP_FILES
from repo_health.models import (
    DirectoryHotspot,
    FileHotspot,
    HotspotMetrics,
    PullRequestFiles,
)


def calculate_hotspots(
    pr_files: Iterable[PullRequestFiles],
    top_files: int = TOP_FILES,
    top_directories: int = TOP_DIRECTORIES,
) -> HotspotMetrics:
    """Rank files and directories by how many merged PRs touched them.

    A file listed twice in one PR counts once for that PR.  Ties keep first-seen
    order.  Empty file lists (failed fetches) simply contribute nothing.
    """
    file_prs: dict[str, int] = {}
    file_changes: dict[str, int] = {}
    dir_prs: dict[str, set[int]] = {}
    dir_files: dict[str, set[str]] = {}

    for entry in pr_files:
        seen: set[str] = set()
        for change in entry.files:
            if change.path in seen:
                continue
            seen.add(change.path)

            file_prs[change.path] = file_prs.get(change.path, 0) + 1
            file_changes[change.path] = file_changes.get(change.path, 0) + change.changes

            directory = change.directory
            dir_prs.setdefault(directory, set()).add(entry.pr_number)
            dir_files.setdefault(directory, set()).add(change.path)

    by_file = sorted(
        (
            FileHotspot(path=path, pr_count=count, total_changes=file_changes[path])
            for path, count in file_prs.items()
        ),
        key=lambda h: h.pr_count,
        reverse=True,
    )
    by_directory = sorted(
        (
            DirectoryHotspot(path=path, pr_count=len(prs), file_count=len(dir_files[path]))
            for path, prs in dir_prs.items()
        ),
        key=lambda h: h.pr_count,
        reverse=True,
    )

    return HotspotMetrics(
        by_file=by_file[:top_files],
        by_directory=by_directory[:top_directories],
        top_n=top_files,
    )
