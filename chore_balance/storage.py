from __future__ import annotations

import json
import logging
from pathlib import Path
from typing import Any

from .utils import new_id, now_utc_iso

logger = logging.getLogger(__name__)


def _json_dump(path: Path, payload: Any) -> None:
    path.parent.mkdir(parents=True, exist_ok=True)
    with path.open("w", encoding="utf-8") as fh:
        json.dump(payload, fh, indent=2, ensure_ascii=False, default=str)


def _json_load(path: Path) -> Any:
    with path.open("r", encoding="utf-8") as fh:
        return json.load(fh)


def household_root(artifact_root: Path) -> Path:
    path = artifact_root / "households"
    path.mkdir(parents=True, exist_ok=True)
    return path


def result_root(artifact_root: Path) -> Path:
    path = artifact_root / "results"
    path.mkdir(parents=True, exist_ok=True)
    return path


def report_root(artifact_root: Path) -> Path:
    path = artifact_root / "reports"
    path.mkdir(parents=True, exist_ok=True)
    return path


def _manifests(root: Path, limit: int, sort_key: str) -> list[dict[str, Any]]:
    manifests: list[dict[str, Any]] = []
    for child in root.iterdir():
        if not child.is_dir():
            continue
        manifest_file = child / "manifest.json"
        if not manifest_file.exists():
            continue
        try:
            manifests.append(_json_load(manifest_file))
        except (OSError, json.JSONDecodeError) as exc:
            logger.warning("skipping unreadable manifest %s: %s", manifest_file, exc)
    manifests.sort(key=lambda row: row.get(sort_key) or "", reverse=True)
    return manifests[:limit]


def _manifest(root: Path, item_id: str | None, what: str) -> dict[str, Any]:
    manifest_path = root / item_id / "manifest.json" if item_id else root / "latest.json"
    if not manifest_path.exists():
        raise FileNotFoundError(f"{what} manifest not found: {item_id or 'latest'}")
    return _json_load(manifest_path)


# -- Household snapshots --


def save_household(artifact_root: Path, payload: dict[str, Any]) -> Path:
    """Store a raw household payload (the snapshot_from_dict input shape)."""
    sid = payload.get("snapshot_id") or new_id("hh")
    payload = {**payload, "snapshot_id": sid}
    target = household_root(artifact_root) / sid
    _json_dump(target / "household.json", payload)

    manifest = {
        "snapshot_id": sid,
        "household_id": payload.get("household_id"),
        "saved_at": now_utc_iso(),
        "counts": {
            "members": len(payload.get("members") or []),
            "tasks": len(payload.get("tasks") or []),
            "assignments": len(payload.get("assignments") or []),
            "workload_points": len(payload.get("workload_series") or []),
        },
        "path": str(target.resolve()),
    }
    _json_dump(target / "manifest.json", manifest)
    _json_dump(household_root(artifact_root) / "latest.json", manifest)
    return target


def list_households(artifact_root: Path, limit: int = 20) -> list[dict[str, Any]]:
    return _manifests(household_root(artifact_root), limit, "saved_at")


def get_household_manifest(artifact_root: Path, snapshot_id: str | None = None) -> dict[str, Any]:
    return _manifest(household_root(artifact_root), snapshot_id, "household")


def load_household(artifact_root: Path, snapshot_id: str | None = None) -> dict[str, Any]:
    manifest = get_household_manifest(artifact_root, snapshot_id)
    sid = manifest["snapshot_id"]
    path = household_root(artifact_root) / sid / "household.json"
    if not path.exists():
        raise FileNotFoundError(f"household payload not found: {sid}")
    return _json_load(path)


# -- Pass results --


def save_result(artifact_root: Path, result: dict[str, Any]) -> Path:
    rid = result.get("result_id") or new_id("run")
    result = {**result, "result_id": rid}
    target = result_root(artifact_root) / rid
    _json_dump(target / "result.json", result)

    manifest = {
        "result_id": rid,
        "snapshot_id": result.get("snapshot_id"),
        "household_id": result.get("household_id"),
        "pass": result.get("pass"),
        "profile": result.get("profile"),
        "generated_at": result.get("generated_at"),
        "path": str(target.resolve()),
    }
    _json_dump(target / "manifest.json", manifest)
    _json_dump(result_root(artifact_root) / "latest.json", manifest)
    return target


def list_results(artifact_root: Path, limit: int = 20) -> list[dict[str, Any]]:
    return _manifests(result_root(artifact_root), limit, "generated_at")


def load_result(artifact_root: Path, result_id: str | None = None) -> dict[str, Any]:
    manifest = _manifest(result_root(artifact_root), result_id, "result")
    rid = manifest["result_id"]
    path = result_root(artifact_root) / rid / "result.json"
    if not path.exists():
        raise FileNotFoundError(f"result payload not found: {rid}")
    return _json_load(path)
