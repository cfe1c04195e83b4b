"""Workbook rendering from pass results."""

from __future__ import annotations

from datetime import date
from pathlib import Path

import pytest
from openpyxl import load_workbook

from distribution_core.io import render_xlsx
from distribution_core.io.reader import load_input
from distribution_core.io.schemas import ASSIGNMENTS_COLS, HEALTH_COLS
from distribution_core.passes import run_pass

FIXTURES_DIR = Path(__file__).parent / "fixtures" / "minimal"


@pytest.fixture(scope="module")
def snapshot():
    return load_input(FIXTURES_DIR)


class TestRenderXlsx:
    def test_full_pass_sheets(self, snapshot, tmp_path):
        result = run_pass("full", snapshot, today=date(2026, 2, 2))
        path = render_xlsx(result, tmp_path / "reports" / "full.xlsx")
        assert path.exists()

        wb = load_workbook(path)
        assert wb.sheetnames == ["Summary", "Assignments", "Health", "Alerts", "Forecast", "Anomalies"]

        ws = wb["Assignments"]
        assert [c.value for c in ws[1]] == ASSIGNMENTS_COLS
        assert ws.max_row == 3
        assert ws[1][0].font.bold

        health = wb["Health"]
        assert [c.value for c in health[1]] == HEALTH_COLS
        assert health.max_row == 4
        score_col = HEALTH_COLS.index("workload_score")
        scores = {row[0].value: row[score_col].value for row in health.iter_rows(min_row=2)}
        assert scores == result["workload_scores"]

        forecast = wb["Forecast"]
        assert forecast.max_row == 8

    def test_rebalance_pass_has_fairness_sheet(self, snapshot, tmp_path):
        result = run_pass("rebalance", snapshot, today=date(2026, 2, 2))
        wb = load_workbook(render_xlsx(result, tmp_path / "rebalance.xlsx"))
        assert wb.sheetnames == ["Summary", "Fairness"]
        fairness = wb["Fairness"]
        ids = {row[0].value for row in fairness.iter_rows(min_row=2)}
        assert ids == {"alice", "bob", "carol"}

    def test_summary_sheet_lists_pass(self, snapshot, tmp_path):
        result = run_pass("health", snapshot, today=date(2026, 2, 2))
        wb = load_workbook(render_xlsx(result, tmp_path / "health.xlsx"))
        rows = {r[0].value: r[1].value for r in wb["Summary"].iter_rows(min_row=2)}
        assert rows["pass"] == "health"
        assert rows["household_id"] == "hh-test"
        assert "Health" in wb.sheetnames
        assert "Alerts" in wb.sheetnames
