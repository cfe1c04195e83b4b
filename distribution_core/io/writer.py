"""Write pass results to an output directory.

results.json holds the complete pass output. summary.json carries the
headline KPIs (assignment counts, gini, health mix, alerts, forecast)
so dashboards can render without walking the full result.
"""

from __future__ import annotations

import json
from collections import Counter
from pathlib import Path
from typing import Any

from ..stats import gini


def _assess(summary: dict[str, Any]) -> list[dict[str, str]]:
    """Traffic-light bullets for the summary."""
    bullets: list[dict[str, str]] = []

    g = summary.get("gini")
    if g is not None:
        if g <= 0.2:
            bullets.append({"level": "green", "text": f"Load spread even (gini {g:.2f})"})
        elif g <= 0.4:
            bullets.append({"level": "yellow", "text": f"Load spread uneven (gini {g:.2f})"})
        else:
            bullets.append({"level": "red", "text": f"Load concentrated on few members (gini {g:.2f})"})

    alerts = summary.get("alerts", {})
    if alerts.get("emergency"):
        bullets.append({"level": "red", "text": f"{alerts['emergency']} member(s) at burnout risk"})
    elif alerts.get("critical"):
        bullets.append({"level": "red", "text": f"{alerts['critical']} member(s) critically overloaded"})
    elif alerts.get("warning"):
        bullets.append({"level": "yellow", "text": f"{alerts['warning']} member(s) with elevated load"})
    elif "alerts" in summary:
        bullets.append({"level": "green", "text": "No overload alerts"})

    anomalies = summary.get("anomalies")
    if anomalies:
        bullets.append({"level": "yellow", "text": f"{anomalies} unusual day(s) in workload history"})

    return bullets


def build_summary(result: dict[str, Any]) -> dict[str, Any]:
    """Aggregate KPIs from a JSON-ready pass result."""
    summary: dict[str, Any] = {
        "pass": result.get("pass"),
        "household_id": result.get("household_id"),
        "generated_at": result.get("generated_at"),
        "member_count": result.get("member_count", 0),
        "task_count": result.get("task_count", 0),
    }

    assignments = result.get("assignments")
    if assignments is not None:
        per_member = Counter(a["assigned_to"] for a in assignments)
        recs = Counter(a["score"]["recommendation"] for a in assignments)
        summary["assigned"] = len(assignments)
        summary["assigned_per_member"] = dict(sorted(per_member.items()))
        summary["recommendations"] = dict(sorted(recs.items()))

    fairness = result.get("fairness")
    if fairness is not None:
        summary["gini"] = fairness["gini_coefficient"]
        summary["fairness_index"] = fairness["overall_fairness_index"]
    elif "member_states" in result:
        summary["gini"] = gini(s["current_load"] for s in result["member_states"])

    states = result.get("member_states") or (result.get("health") or {}).get("member_states")
    if states is not None:
        summary["health"] = dict(sorted(Counter(s["health_status"] for s in states).items()))

    alerts = result.get("alerts")
    if alerts is None and result.get("health") is not None:
        alerts = result["health"]["alerts"]
    if alerts is not None:
        summary["alerts"] = dict(Counter(a["alert_type"] for a in alerts))

    forecast = result.get("forecast")
    if forecast is not None:
        summary["weekly_demand"] = forecast["weekly_demand"]
        summary["trend"] = forecast["trend"]["direction"]
        summary["anomalies"] = len(forecast["anomalies"])

    balance = result.get("balance")
    if balance is not None:
        summary["redistributed"] = len(balance["redistributed"])
        summary["overload_resolved"] = balance["resolved"]

    summary["assessment"] = _assess(summary)
    return summary


def write_output(result: dict[str, Any], directory: Path) -> dict[str, Path]:
    """Write results.json and summary.json. Returns {filename: Path}."""
    directory = Path(directory)
    directory.mkdir(parents=True, exist_ok=True)

    written: dict[str, Path] = {}
    for name, payload in (("results.json", result), ("summary.json", build_summary(result))):
        path = directory / name
        path.write_text(
            json.dumps(payload, indent=2, ensure_ascii=False, default=str) + "\n",
            encoding="utf-8",
        )
        written[name] = path
    return written
