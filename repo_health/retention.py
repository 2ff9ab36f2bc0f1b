"""Snapshot retention: fold old daily snapshots into monthly rollups.

Policy:
    - daily snapshots are kept for ``SNAPSHOT_RETENTION_DAYS`` (90) days
    - older ones are grouped by calendar month into ``YYYY-MM-monthly.json``
    - integer fields are averaged and rounded, float fields averaged to two
      decimals, cumulative counters (stars, forks, total contributors) take
      the maximum
    - a month folded earlier is re-folded together with late arrivals,
      weighted by the number of days it already represents

The monthly file is durably written before any of its daily files are
removed, so a crash in between leaves duplicates rather than a gap.  Each
rollup lists the dates it covers, so those leftover dailies are only
deleted on the next pass, never folded in twice.
"""

from __future__ import annotations

import logging
import re
from datetime import date, datetime, timedelta
from pathlib import Path
from typing import Any

from repo_health.config import SNAPSHOT_RETENTION_DAYS
from repo_health.storage import read_json, write_json

logger = logging.getLogger(__name__)

_DAILY_RE = re.compile(r"^(\d{4}-\d{2}-\d{2})\.json$")

MAX_FIELDS: frozenset[tuple[str, ...]] = frozenset({
    ("repository", "stars"),
    ("repository", "forks"),
    ("contributors", "total"),
})

_META_FIELDS = frozenset({"date", "consolidated_days", "consolidated_dates"})


def daily_snapshot_date(filename: str) -> date | None:
    """Parse ``YYYY-MM-DD.json``; anything else (including monthly files) is None."""
    match = _DAILY_RE.match(filename)
    if not match:
        return None
    try:
        return date.fromisoformat(match.group(1))
    except ValueError:
        return None


def monthly_filename(month_key: str) -> str:
    return f"{month_key}-monthly.json"


def _is_number(value: Any) -> bool:
    return isinstance(value, (int, float)) and not isinstance(value, bool)


def _fold(
    records: list[tuple[dict[str, Any], int]],
    path: tuple[str, ...] = (),
) -> dict[str, Any]:
    """Fold the same-shaped dicts in *records* (each with a weight) into one."""
    keys: list[str] = []
    for record, _weight in records:
        for key in record:
            if key not in keys and not (not path and key in _META_FIELDS):
                keys.append(key)

    folded: dict[str, Any] = {}
    for key in keys:
        present = [(r[key], w) for r, w in records if key in r]
        field_path = path + (key,)

        if all(isinstance(v, dict) for v, _ in present):
            folded[key] = _fold(present, field_path)
            continue

        numeric = [(v, w) for v, w in present if _is_number(v)]
        if not numeric:
            folded[key] = present[-1][0]
        elif field_path in MAX_FIELDS:
            folded[key] = max(v for v, _ in numeric)
        else:
            total_weight = sum(w for _, w in numeric)
            mean = sum(v * w for v, w in numeric) / total_weight
            if all(isinstance(v, int) for v, _ in numeric):
                folded[key] = int(mean + 0.5)
            else:
                folded[key] = round(mean, 2)
    return folded


def consolidate_month(
    month_key: str,
    snapshots: list[dict[str, Any]],
    existing: dict[str, Any] | None = None,
) -> dict[str, Any]:
    """Build one monthly record from daily *snapshots* (and a prior rollup).

    Dailies whose date the prior rollup already lists are not folded twice.
    """
    records: list[tuple[dict[str, Any], int]] = []
    dates: list[str] = []
    if existing:
        dates = list(existing.get("consolidated_dates") or [])
        weight = len(dates) or int(existing.get("consolidated_days") or 1)
        records.append((existing, weight))

    for snapshot in snapshots:
        day = snapshot.get("date")
        if day in dates:
            continue
        records.append((snapshot, 1))
        if day:
            dates.append(day)

    monthly = {"date": f"{month_key}-01"}
    monthly.update(_fold(records))
    monthly["consolidated_days"] = sum(w for _, w in records)
    monthly["consolidated_dates"] = sorted(dates)
    return monthly


def consolidate_snapshots(
    directory: Path,
    now: datetime,
    *,
    retention_days: int = SNAPSHOT_RETENTION_DAYS,
    dry_run: bool = False,
) -> list[Path]:
    """Fold daily snapshots older than *retention_days* into monthly files.

    Returns the monthly files written (or that would be written on a dry run).
    """
    if not directory.is_dir():
        logger.debug("No snapshot directory at %s", directory)
        return []

    cutoff = (now - timedelta(days=retention_days)).date()
    groups: dict[str, list[tuple[Path, dict[str, Any]]]] = {}

    for path in sorted(directory.iterdir()):
        day = daily_snapshot_date(path.name)
        if day is None or day >= cutoff:
            continue
        snapshot = read_json(path)
        if not isinstance(snapshot, dict):
            logger.warning("Skipping unreadable snapshot %s", path.name)
            continue
        groups.setdefault(day.strftime("%Y-%m"), []).append((path, snapshot))

    written: list[Path] = []
    for month_key, entries in sorted(groups.items()):
        monthly_path = directory / monthly_filename(month_key)
        existing = read_json(monthly_path)
        monthly = consolidate_month(
            month_key,
            [snapshot for _, snapshot in entries],
            existing if isinstance(existing, dict) else None,
        )

        if dry_run:
            logger.info(
                "Would create %s from %d daily files", monthly_path.name, len(entries)
            )
            written.append(monthly_path)
            continue

        if monthly != existing:
            write_json(monthly_path, monthly, sort_keys=True)
        written.append(monthly_path)
        logger.info(
            "Created monthly snapshot %s (from %d daily files)", monthly_path.name, len(entries)
        )

        for path, _snapshot in entries:
            try:
                path.unlink()
            except OSError as exc:
                logger.warning("Failed to delete %s: %s", path.name, exc)

    return written
