"""chore-balance MCP server.

Exposes tools for household snapshot persistence, tuning profiles, the
distribution passes (via distribution_core), single-task assignment,
forecasting, health checks and delegation suggestions.
"""
from __future__ import annotations

import argparse
import json
import logging
import os
from datetime import timedelta
from typing import Any

from mcp.server.fastmcp import FastMCP

from distribution_core.delegation import (
    generate_delegation_suggestions,
    get_expired_delegations,
    suggestion_summary,
)
from distribution_core.fairness import calculate_fair_share, find_best_assignment
from distribution_core.io.writer import build_summary
from distribution_core.passes import PASSES, run_pass as _run_pass
from distribution_core.predictor import detect_anomalies, predict_workload_range
from distribution_core.time_utils import now_utc
from distribution_core.validation import (
    candidate_from_dict,
    delegation_history_from_dict,
    delegation_request_from_dict,
    parse_datetime,
    snapshot_from_dict,
    task_from_dict,
    to_jsonable,
)

from .config import Tuning, get_tuning, load_env, load_tuning_profiles, runtime_config
from .storage import (
    list_households as _list_households,
    list_results as _list_results,
    load_household as _load_household,
    load_result as _load_result,
    report_root,
    save_household as _save_household,
    save_result as _save_result,
)
from .utils import optional_date

logger = logging.getLogger(__name__)

mcp = FastMCP(
    "chore-balance",
    host=os.getenv("HOST", "127.0.0.1"),
    port=int(os.getenv("PORT", "8000")),
    instructions=(
        "Fair chore distribution for households. "
        "Stores household snapshots, assigns tasks by fairness score, forecasts "
        "workload, flags overloaded members and suggests delegations. "
        "The engine is deterministic; nothing is sent to external services."
    ),
)

_ENV_FILE: str | None = None


def _artifact_root():
    load_env(_ENV_FILE or os.getenv("CHORE_BALANCE_ENV_FILE"))
    return runtime_config().artifact_root


def _tuning(profile_name: str | None) -> Tuning:
    load_env(_ENV_FILE or os.getenv("CHORE_BALANCE_ENV_FILE"))
    return get_tuning(profile_name or runtime_config().default_profile)


def _snapshot(snapshot_id: str | None):
    raw = _load_household(_artifact_root(), snapshot_id=snapshot_id)
    return raw["snapshot_id"], snapshot_from_dict(raw)


# -- Household snapshots --

@mcp.tool()
def save_household(household_json: str) -> dict[str, Any]:
    """Validate and persist a household snapshot.

    Accepts the snapshot as a JSON string with members, tasks, histories,
    workload_series, daily_workloads, last_rest_dates and assignments.
    Returns the manifest with snapshot_id and counts.
    """
    payload = json.loads(household_json)
    snapshot = snapshot_from_dict(payload)
    target = _save_household(_artifact_root(), payload)
    logger.info("saved household %s (%d members)", snapshot.household_id, len(snapshot.members))
    return json.loads((target / "manifest.json").read_text(encoding="utf-8"))


@mcp.tool()
def list_households(limit: int = 20) -> list[dict[str, Any]]:
    """List stored household snapshot manifests, newest first."""
    return _list_households(_artifact_root(), limit=limit)


@mcp.tool()
def load_household(snapshot_id: str | None = None) -> dict[str, Any]:
    """Load a stored household snapshot by ID (or latest if omitted)."""
    return _load_household(_artifact_root(), snapshot_id=snapshot_id)


# -- Profile management --

@mcp.tool()
def list_profiles() -> dict[str, Any]:
    """List tuning profiles with their descriptions and overridden sections."""
    profiles = load_tuning_profiles()
    return {
        name: {
            "description": profile.get("description", ""),
            "sections": sorted(k for k in profile if k != "description"),
        }
        for name, profile in profiles.items()
    }


@mcp.tool()
def load_profile(profile_name: str) -> dict[str, Any]:
    """Resolve a tuning profile into the effective engine settings."""
    return to_jsonable(_tuning(profile_name))


# -- Distribution engine --

@mcp.tool()
def run_pass(
    pass_name: str = "full",
    snapshot_id: str | None = None,
    profile_name: str | None = None,
    today: str | None = None,
    export_xlsx: bool = False,
) -> dict[str, Any]:
    """Run a distribution pass (assign, forecast, health, rebalance, full) on a snapshot.

    The full result is persisted; the response carries the result_id and a
    KPI summary. Use load_result() to retrieve everything.
    """
    if pass_name not in PASSES:
        raise ValueError(f"Unknown pass: {pass_name!r}. Choose from {PASSES}")
    sid, snapshot = _snapshot(snapshot_id)
    tuning = _tuning(profile_name)
    result = _run_pass(
        pass_name,
        snapshot,
        weights=tuning.weights,
        burnout_config=tuning.burnout,
        predictor_config=tuning.predictor,
        today=optional_date(today),
    )
    result.update(snapshot_id=sid, profile=tuning.name)
    target = _save_result(_artifact_root(), result)
    response: dict[str, Any] = {
        "result_id": target.name,
        "path": str(target),
        "summary": build_summary(result),
    }
    if export_xlsx:
        from distribution_core.io import render_xlsx

        response["xlsx"] = str(render_xlsx(result, report_root(_artifact_root()) / f"{target.name}.xlsx"))
    return response


@mcp.tool()
def assign_task(task_json: str, snapshot_id: str | None = None, profile_name: str | None = None) -> dict[str, Any]:
    """Score every member of a stored household for one new task and pick the fairest."""
    _, snapshot = _snapshot(snapshot_id)
    task = task_from_dict(json.loads(task_json))
    tuning = _tuning(profile_name)
    result = find_best_assignment(task, list(snapshot.members), snapshot.histories, weights=tuning.weights)
    return {
        "fair_shares": calculate_fair_share(list(snapshot.members)),
        "assignment": to_jsonable(result),
    }


@mcp.tool()
def forecast_workload(
    snapshot_id: str | None = None,
    start: str | None = None,
    days: int = 7,
    profile_name: str | None = None,
) -> dict[str, Any]:
    """Predict daily household workload from the stored series, plus recent anomalies."""
    _, snapshot = _snapshot(snapshot_id)
    config = _tuning(profile_name).predictor
    first = optional_date(start) or now_utc().date()
    predictions = predict_workload_range(
        snapshot.workload_series, first, first + timedelta(days=max(1, days) - 1), True, config
    )
    return to_jsonable(
        {
            "household_id": snapshot.household_id,
            "predictions": predictions,
            "anomalies": detect_anomalies(snapshot.workload_series, config=config),
        }
    )


@mcp.tool()
def check_health(
    snapshot_id: str | None = None,
    profile_name: str | None = None,
    today: str | None = None,
) -> dict[str, Any]:
    """Workload health report for every member: tiers, stress indicators, alerts."""
    _, snapshot = _snapshot(snapshot_id)
    tuning = _tuning(profile_name)
    result = _run_pass("health", snapshot, burnout_config=tuning.burnout, today=optional_date(today))
    return result["health"]


@mcp.tool()
def suggest_delegation(
    task_json: str,
    from_member: str,
    candidates_json: str,
    history_json: str | None = None,
    profile_name: str | None = None,
) -> list[dict[str, Any]]:
    """Rank household members who could take over a task from ``from_member``.

    candidates_json is a list of members with max_load, current_load, an
    optional skill profile and availability windows. history_json is an
    optional list of per-member delegation histories.
    """
    task = task_from_dict(json.loads(task_json))
    candidates = [candidate_from_dict(c) for c in json.loads(candidates_json)]
    histories = {}
    for raw in json.loads(history_json) if history_json else []:
        hist = delegation_history_from_dict(raw)
        histories[hist.member_id] = hist
    policy = _tuning(profile_name).delegation
    suggestions = generate_delegation_suggestions(task, from_member, candidates, histories, policy)
    return [
        {**to_jsonable(s), "summary": suggestion_summary(s)}
        for s in suggestions
    ]


@mcp.tool()
def expired_delegations(requests_json: str, now: str | None = None) -> list[dict[str, Any]]:
    """Pending delegation requests whose deadline has passed (as of ``now``, default current time)."""
    requests = [delegation_request_from_dict(r) for r in json.loads(requests_json)]
    at = parse_datetime(now, "now") if now else None
    return [to_jsonable(r) for r in get_expired_delegations(requests, now=at)]


# -- Result CRUD --

@mcp.tool()
def list_results(limit: int = 20) -> list[dict[str, Any]]:
    """List stored pass results, newest first."""
    return _list_results(_artifact_root(), limit=limit)


@mcp.tool()
def load_result(result_id: str | None = None) -> dict[str, Any]:
    """Load a full pass result by ID (or latest if omitted)."""
    return _load_result(_artifact_root(), result_id=result_id)


# -- Server entrypoints --

async def _run_http() -> None:
    import uvicorn
    from starlette.middleware.base import BaseHTTPMiddleware
    from starlette.responses import JSONResponse, PlainTextResponse
    from starlette.routing import Route

    api_key = os.getenv("MCP_API_KEY")

    class BearerAuth(BaseHTTPMiddleware):
        async def dispatch(self, request, call_next):
            if request.url.path == "/health":
                return await call_next(request)
            auth = request.headers.get("authorization", "")
            if not auth.startswith("Bearer ") or auth[7:] != api_key:
                return JSONResponse({"error": "unauthorized"}, status_code=401)
            return await call_next(request)

    starlette_app = mcp.streamable_http_app()

    if api_key:
        starlette_app.add_middleware(BearerAuth)

    starlette_app.routes.append(
        Route("/health", lambda r: PlainTextResponse("ok"))
    )

    config = uvicorn.Config(
        starlette_app,
        host=os.getenv("HOST", "0.0.0.0"),
        port=int(os.getenv("PORT", "8080")),
        log_level="info",
    )
    await uvicorn.Server(config).serve()


def main() -> None:
    global _ENV_FILE

    parser = argparse.ArgumentParser(description="Run chore-balance MCP server")
    parser.add_argument("--env-file", default=None, help="Path to .env file")
    parser.add_argument(
        "--transport",
        default=None,
        choices=["stdio", "sse", "streamable-http"],
        help="MCP transport (default: streamable-http when PORT is set, else stdio)",
    )
    args = parser.parse_args()
    _ENV_FILE = args.env_file

    load_env(_ENV_FILE or os.getenv("CHORE_BALANCE_ENV_FILE"))
    logging.basicConfig(
        level=runtime_config().log_level,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )

    transport = args.transport
    if transport is None:
        transport = "streamable-http" if os.getenv("PORT") else "stdio"

    if transport == "streamable-http":
        import anyio
        anyio.run(_run_http)
    else:
        mcp.run(transport=transport)


if __name__ == "__main__":
    main()
