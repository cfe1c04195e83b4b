"""Input/output layer for household passes.

Public API:
    load_input(directory)       -- read CSV input dir -> HouseholdSnapshot
    write_output(result, dir)   -- write results.json + summary.json
    build_summary(result)       -- headline KPIs of a pass result
    render_xlsx(result, path)   -- generate multi-sheet XLSX workbook
"""

from .reader import load_input
from .writer import build_summary, write_output

__all__ = [
    "build_summary",
    "load_input",
    "render_xlsx",
    "write_output",
]


# Lazy import for the optional openpyxl dependency.
def render_xlsx(*args, **kwargs):
    from .xlsx import render_xlsx as _fn
    return _fn(*args, **kwargs)
