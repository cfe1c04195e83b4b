"""Read a CSV input directory into a HouseholdSnapshot."""

from __future__ import annotations

import csv
import json
import logging
from collections import defaultdict
from collections.abc import Callable
from pathlib import Path
from typing import Any, TypeVar

from ..models import (
    DailyWorkload,
    HistoricalData,
    HouseholdSnapshot,
    TaskAssignment,
)
from ..validation import (
    daily_workload_from_dict,
    data_point_from_dict,
    history_from_dict,
    member_from_dict,
    parse_date,
    task_from_dict,
    validate_members,
    validate_tasks,
)
from .schemas import counts_split, pipe_split, to_bool

logger = logging.getLogger(__name__)

T = TypeVar("T")


def load_input(directory: Path) -> HouseholdSnapshot:
    """Read CSV input dir -> HouseholdSnapshot.

    ``members.csv``, ``tasks.csv`` and ``workload.csv`` are required;
    ``history.csv``, ``daily.csv`` and ``meta.json`` are optional. Rows that
    fail to parse are logged and skipped; duplicate ids are fatal.

    Raises FileNotFoundError if required files are missing.
    """
    d = Path(directory)
    members_raw = _read_csv(d / "members.csv")
    tasks_raw = _read_csv(d / "tasks.csv")
    workload_raw = _read_csv(d / "workload.csv")
    meta = _read_json(d / "meta.json") if (d / "meta.json").exists() else {}

    # -- members.csv ------------------------------------------------------------
    members = validate_members(
        _parse_rows(
            "members.csv",
            members_raw,
            lambda row: member_from_dict(
                {
                    "id": row.get("member_id"),
                    "name": row.get("name"),
                    "household_id": meta.get("household_id", ""),
                    "max_weekly_load": row.get("max_weekly_load"),
                    "current_load": row.get("current_load") or 0,
                    "skills": pipe_split(row.get("skills")),
                    "preferences": {
                        "preferred": pipe_split(row.get("preferred")),
                        "disliked": pipe_split(row.get("disliked")),
                        "blocked": pipe_split(row.get("blocked")),
                    },
                }
            ),
        )
    )
    member_ids = {m.id for m in members}

    # -- tasks.csv (assigned_to marks existing assignments) ---------------------
    parsed_tasks = _parse_rows(
        "tasks.csv",
        tasks_raw,
        lambda row: (
            task_from_dict(
                {
                    "id": row.get("task_id"),
                    "name": row.get("name"),
                    "category": row.get("category"),
                    "estimated_minutes": row.get("estimated_minutes") or 30,
                    "difficulty": row.get("difficulty") or 5,
                    "priority": row.get("priority") or 5,
                    "required_skills": pipe_split(row.get("required_skills")),
                    "deadline": row.get("deadline") or None,
                }
            ),
            (row.get("assigned_to") or "").strip(),
        ),
    )
    tasks = validate_tasks(t for t, _ in parsed_tasks)
    assignments = []
    for task, owner in parsed_tasks:
        if not owner:
            continue
        if owner not in member_ids:
            logger.warning("tasks.csv: %s assigned to unknown member %r, ignoring", task.id, owner)
            continue
        assignments.append(TaskAssignment(task=task, assigned_to=owner))

    # -- workload.csv -----------------------------------------------------------
    series = _parse_rows(
        "workload.csv",
        workload_raw,
        lambda row: data_point_from_dict(
            {
                "timestamp": row.get("date"),
                "task_count": row.get("task_count") or 0,
                "total_minutes": row.get("total_minutes") or 0,
                "categories": counts_split(row.get("categories")),
                "is_holiday": to_bool(row.get("is_holiday")),
            }
        ),
    )
    series.sort(key=lambda p: p.timestamp)

    # -- history.csv (optional, one row per member-week) ------------------------
    histories: dict[str, HistoricalData] = {}
    if (d / "history.csv").exists():
        weeks: dict[str, list[dict[str, Any]]] = defaultdict(list)
        rates: dict[str, str] = {}
        for row in _read_csv(d / "history.csv"):
            mid = (row.get("member_id") or "").strip()
            if not mid:
                logger.warning("history.csv: row without member_id skipped")
                continue
            weeks[mid].append(
                {
                    "week_start": row.get("week_start"),
                    "task_count": row.get("task_count") or 0,
                    "minutes_worked": row.get("minutes_worked") or 0,
                    "categories": counts_split(row.get("categories")),
                }
            )
            if row.get("completion_rate"):
                rates[mid] = row["completion_rate"]
        for mid, rows in weeks.items():
            hist = _parse_one("history.csv", mid, lambda: _history(mid, rows, rates.get(mid)))
            if hist is not None:
                histories[mid] = hist

    # -- daily.csv (optional) ---------------------------------------------------
    daily: dict[str, tuple[DailyWorkload, ...]] = {}
    if (d / "daily.csv").exists():
        by_member: dict[str, list[DailyWorkload]] = defaultdict(list)
        for row in _read_csv(d / "daily.csv"):
            mid = (row.get("member_id") or "").strip()
            if not mid:
                logger.warning("daily.csv: row without member_id skipped")
                continue
            dw = _parse_one(
                "daily.csv",
                mid,
                lambda row=row: daily_workload_from_dict(
                    {
                        "day": row.get("date"),
                        "task_count": row.get("task_count") or 0,
                        "minutes_worked": row.get("minutes_worked") or 0,
                        "load_percentage": row.get("load_percentage") or 0,
                        **({"was_overloaded": to_bool(row["was_overloaded"])} if row.get("was_overloaded") else {}),
                    }
                ),
            )
            if dw is not None:
                by_member[mid].append(dw)
        daily = {mid: tuple(sorted(rows, key=lambda x: x.day)) for mid, rows in by_member.items()}

    rest = {
        str(k): parse_date(v, f"meta.json last_rest_dates.{k}")
        for k, v in (meta.get("last_rest_dates") or {}).items()
    }

    logger.info(
        "loaded %s: %d members, %d tasks, %d workload points",
        d, len(members), len(tasks), len(series),
    )
    return HouseholdSnapshot(
        household_id=str(meta.get("household_id") or d.name),
        members=tuple(members),
        tasks=tuple(tasks),
        histories=histories,
        workload_series=tuple(series),
        daily_workloads=daily,
        last_rest_dates=rest,
        assignments=tuple(assignments),
    )


# ---------------------------------------------------------------------------
# Internal helpers
# ---------------------------------------------------------------------------


def _history(member_id: str, rows: list[dict[str, Any]], rate: str | None) -> HistoricalData:
    totals: dict[str, int] = defaultdict(int)
    for r in rows:
        for cat, n in r["categories"].items():
            totals[cat] += n
    return history_from_dict(
        {
            "member_id": member_id,
            "total_tasks": sum(int(float(r["task_count"])) for r in rows),
            "total_minutes": sum(int(float(r["minutes_worked"])) for r in rows),
            "weekly_history": rows,
            "task_counts": dict(totals),
            "completion_rate": rate if rate is not None else 1.0,
        }
    )


def _parse_one(source: str, key: str, build: Callable[[], T]) -> T | None:
    try:
        return build()
    except ValueError as exc:
        logger.warning("%s: skipping %s (%s)", source, key or "row", exc)
        return None


def _parse_rows(source: str, rows: list[dict[str, str]], build: Callable[[dict[str, str]], T]) -> list[T]:
    out: list[T] = []
    for i, row in enumerate(rows, start=2):
        item = _parse_one(source, f"line {i}", lambda row=row: build(row))
        if item is not None:
            out.append(item)
    return out


def _read_json(path: Path) -> dict:
    """Read and parse a JSON file."""
    if not path.exists():
        raise FileNotFoundError(f"Required file not found: {path}")
    with open(path, encoding="utf-8") as f:
        return json.load(f)


def _read_csv(path: Path) -> list[dict[str, str]]:
    """Read a CSV file into a list of dicts via csv.DictReader."""
    if not path.exists():
        raise FileNotFoundError(f"Required file not found: {path}")
    with open(path, newline="", encoding="utf-8") as f:
        return list(csv.DictReader(f))
