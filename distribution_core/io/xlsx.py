"""Render a pass result to a multi-sheet XLSX workbook."""

from __future__ import annotations

from pathlib import Path
from typing import Any

from .schemas import (
    ALERTS_COLS,
    ANOMALY_COLS,
    ASSIGNMENTS_COLS,
    FAIRNESS_COLS,
    FORECAST_COLS,
    HEALTH_COLS,
    SCORE_COMPONENTS,
    pipe_join,
)
from .writer import build_summary

_STATUS_FILLS = {
    "healthy": "C6EFCE",
    "elevated": "FFEB9C",
    "high": "FFD8A8",
    "critical": "FFC7CE",
    "burnout_risk": "FF9999",
}


def _get_openpyxl():
    try:
        from openpyxl import Workbook
        from openpyxl.styles import Font, PatternFill
        return Workbook, Font, PatternFill
    except ImportError as exc:
        raise ImportError("openpyxl is required for XLSX export: pip install openpyxl") from exc


def _style_headers(worksheets):
    """Apply bold + blue fill to header row of each worksheet."""
    _, Font, PatternFill = _get_openpyxl()
    header_font = Font(bold=True)
    header_fill = PatternFill(start_color="D9E1F2", end_color="D9E1F2", fill_type="solid")
    for ws in worksheets:
        for cell in ws[1]:
            cell.font = header_font
            cell.fill = header_fill


# ---------------------------------------------------------------------------
# Row builders
# ---------------------------------------------------------------------------


def _assignment_row(a: dict[str, Any]) -> dict[str, Any]:
    score = a["score"]
    row = {
        "task_id": a["task_id"],
        "assigned_to": a["assigned_to"],
        "overall": score["overall"],
        "recommendation": score["recommendation"],
        "alternatives": pipe_join([f"{alt['member_id']}:{alt['score']}" for alt in a.get("alternatives", [])]),
        "reasons": pipe_join(score.get("reasons", [])),
    }
    for c in SCORE_COMPONENTS:
        row[f"score_{c}"] = score["components"].get(c, "")
    return row


def _health_row(s: dict[str, Any], scores: dict[str, Any]) -> dict[str, Any]:
    return {
        **{c: s.get(c, "") for c in HEALTH_COLS},
        "stress_indicators": pipe_join(
            [f"{i['type']}({i['severity']})" for i in s.get("stress_indicators", [])]
        ),
        "last_rest_date": s.get("last_rest_date") or "",
        "workload_score": scores.get(s.get("member_id"), ""),
    }


def _alert_row(a: dict[str, Any]) -> dict[str, Any]:
    return {
        **{c: a.get(c, "") for c in ALERTS_COLS},
        "suggested_actions": pipe_join([act["type"] for act in a.get("suggested_actions", [])]),
    }


def _forecast_row(p: dict[str, Any]) -> dict[str, Any]:
    return {
        **{c: p.get(c, "") for c in FORECAST_COLS},
        "factors": pipe_join([f["name"] for f in p.get("factors", [])]),
    }


def _sheet(wb, title: str, cols: list[str], rows: list[dict[str, Any]]):
    ws = wb.create_sheet(title)
    ws.append(cols)
    for row in rows:
        ws.append([row.get(c, "") for c in cols])
    return ws


def render_xlsx(result: dict[str, Any], path: Path) -> Path:
    """Render a JSON-ready pass result to an XLSX workbook.

    The Summary sheet is always present; Assignments, Fairness, Health,
    Alerts, Forecast and Anomalies appear when the pass produced them.

    Returns the path to the written file.
    """
    Workbook, Font, PatternFill = _get_openpyxl()

    wb = Workbook()
    all_sheets = []

    # --- Summary sheet ---
    ws_summary = wb.active
    ws_summary.title = "Summary"
    ws_summary.append(["Field", "Value"])
    summary = build_summary(result)
    for key, value in summary.items():
        if key == "assessment":
            continue
        if isinstance(value, dict):
            value = pipe_join([f"{k}:{v}" for k, v in value.items()])
        ws_summary.append([key, value])
    for bullet in summary["assessment"]:
        ws_summary.append([bullet["level"], bullet["text"]])
    all_sheets.append(ws_summary)

    if result.get("assignments") is not None:
        rows = [_assignment_row(a) for a in result["assignments"]]
        all_sheets.append(_sheet(wb, "Assignments", ASSIGNMENTS_COLS, rows))

    fairness = result.get("fairness")
    if fairness is not None:
        all_sheets.append(_sheet(wb, "Fairness", FAIRNESS_COLS, fairness["member_stats"]))

    health = result.get("health") or {}
    states = result.get("member_states") or health.get("member_states")
    scores = result.get("workload_scores") or health.get("workload_scores") or {}
    if states is not None:
        ws_health = _sheet(wb, "Health", HEALTH_COLS, [_health_row(s, scores) for s in states])
        status_col = HEALTH_COLS.index("health_status") + 1
        for row_idx, s in enumerate(states, start=2):
            color = _STATUS_FILLS.get(s["health_status"])
            if color:
                ws_health.cell(row=row_idx, column=status_col).fill = PatternFill(
                    start_color=color, end_color=color, fill_type="solid"
                )
        all_sheets.append(ws_health)

    alerts = result.get("alerts")
    if alerts is None:
        alerts = health.get("alerts")
    if alerts is not None:
        all_sheets.append(_sheet(wb, "Alerts", ALERTS_COLS, [_alert_row(a) for a in alerts]))

    forecast = result.get("forecast")
    if forecast is not None:
        all_sheets.append(
            _sheet(wb, "Forecast", FORECAST_COLS, [_forecast_row(p) for p in forecast["predictions"]])
        )
        all_sheets.append(_sheet(wb, "Anomalies", ANOMALY_COLS, forecast["anomalies"]))

    _style_headers(all_sheets)
    for ws in all_sheets:
        ws.freeze_panes = "A2"

    path = Path(path)
    path.parent.mkdir(parents=True, exist_ok=True)
    wb.save(path)
    return path
