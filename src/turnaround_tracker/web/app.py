"""Web dashboard API for the turnaround tracker."""

import json
from datetime import datetime

import uvicorn
from starlette.applications import Starlette
from starlette.requests import Request
from starlette.responses import HTMLResponse, JSONResponse
from starlette.routing import Route

from turnaround_tracker import serialize
from turnaround_tracker.config import get_config
from turnaround_tracker.core import activities as activities_mod
from turnaround_tracker.core import holds as holds_mod
from turnaround_tracker.core import metrics as metrics_mod
from turnaround_tracker.core import transitions as transitions_mod
from turnaround_tracker.core.clock import SimulationClock, parse_timestamp
from turnaround_tracker.db.engine import open_store
from turnaround_tracker.errors import (
    InvalidTransition,
    NotFoundError,
    PrerequisiteNotMet,
    ValidationError,
)
from turnaround_tracker.web.dashboard import get_dashboard_html


def _open_store():
    config = get_config()
    return open_store(config.db_path)


def _now() -> datetime:
    return SimulationClock(pinned=get_config().simulation_date).now()


def _as_of(request: Request) -> datetime:
    """Query ``as_of`` if given, else the configured simulation date, else now."""
    if raw := request.query_params.get("as_of"):
        return parse_timestamp(raw)
    return _now()


def _error(message: str, status_code: int, errors: list[str] | None = None) -> JSONResponse:
    body = {"error": message}
    if errors:
        body["errors"] = errors
    return JSONResponse(body, status_code=status_code)


# ── Handlers ──────────────────────────────────────────────────────────────────


async def index(request: Request):
    return HTMLResponse(get_dashboard_html())


async def api_list_packages(request: Request):
    with _open_store() as store:
        result = []
        for p in store.list_packages():
            m = metrics_mod.compute_package_metrics(p, store.list_activities(package_id=p.id))
            result.append({**serialize.package_dict(p), "metrics": serialize.metrics_dict(m)})
        return JSONResponse(result)


async def api_get_package(request: Request):
    package_id = request.path_params["package_id"]
    with _open_store() as store:
        package = store.get_package(package_id)
        if not package:
            return _error("Package not found", 404)
        activities = store.list_activities(package_id=package_id)
        activities.sort(key=lambda a: (a.tag, a.deadline))
        m = metrics_mod.compute_package_metrics(package, activities)
        return JSONResponse({
            **serialize.package_dict(package),
            "metrics": serialize.metrics_dict(m),
            "activities": [serialize.activity_dict(a) for a in activities],
        })


async def api_list_activities(request: Request):
    params = request.query_params
    with _open_store() as store:
        activities = store.list_activities(
            package_id=params.get("package"),
            tag=params.get("tag"),
            status=params.get("status"),
        )
        activities.sort(key=lambda a: (a.package_name, a.tag, a.deadline))
        return JSONResponse([serialize.activity_dict(a) for a in activities])


async def api_get_activity(request: Request):
    activity_id = request.path_params["activity_id"]
    with _open_store() as store:
        activity = store.get_activity(activity_id)
        if not activity:
            return _error("Activity not found", 404)
        result = serialize.activity_dict(activity)
        result["events"] = [
            serialize.event_dict(e) for e in activities_mod.get_activity_events(store, activity_id)
        ]
        return JSONResponse(result)


async def api_set_activity_status(request: Request):
    activity_id = request.path_params["activity_id"]
    try:
        body = await request.json()
    except json.JSONDecodeError:
        return _error("Request body must be JSON", 400)
    if not isinstance(body, dict) or "status" not in body:
        return _error("Missing 'status'", 400)

    try:
        with _open_store() as store:
            activity = transitions_mod.set_activity_status(
                store,
                activity_id,
                body["status"],
                reason=body.get("reason"),
                remarks=body.get("remarks"),
                now=_now(),
            )
            if not activity:
                return _error("Activity not found", 404)
            return JSONResponse(serialize.activity_dict(activity))
    except ValidationError as e:
        return _error(str(e), 400, e.errors)
    except (InvalidTransition, PrerequisiteNotMet) as e:
        return _error(str(e), 409)
    except NotFoundError as e:
        return _error(str(e), 404)


async def api_stats(request: Request):
    try:
        as_of = _as_of(request)
    except ValueError:
        return _error("Invalid as_of, expected an ISO datetime", 400)
    with _open_store() as store:
        stats = metrics_mod.compute_project_stats(
            store.list_activities(), store.list_packages(), as_of
        )
        result = serialize.stats_dict(stats)
        result["as_of"] = as_of.isoformat()
        result["in_progress"] = [
            {**serialize.activity_dict(a), "label": label}
            for a, label in metrics_mod.in_progress_feed(store.list_activities(), as_of)
        ]
        return JSONResponse(result)


async def api_hold_log(request: Request):
    try:
        now = _as_of(request)
    except ValueError:
        return _error("Invalid as_of, expected an ISO datetime", 400)
    with _open_store() as store:
        log = holds_mod.build_hold_log(store.list_activities())
        return JSONResponse([serialize.hold_log_dict(entry, now) for entry in log])


async def api_hold_summary(request: Request):
    try:
        now = _as_of(request)
    except ValueError:
        return _error("Invalid as_of, expected an ISO datetime", 400)
    with _open_store() as store:
        summary = holds_mod.summarize_hold_reasons(store.list_activities(), now)
        return JSONResponse([serialize.hold_summary_dict(row) for row in summary])


async def api_scurve(request: Request):
    package_id = request.query_params.get("package")
    with _open_store() as store:
        points = metrics_mod.s_curve(store.list_activities(), store.list_packages(), package_id)
        return JSONResponse([serialize.scurve_dict(p) for p in points])


# ── App ───────────────────────────────────────────────────────────────────────


def create_app() -> Starlette:
    routes = [
        Route("/", index),
        Route("/api/packages", api_list_packages),
        Route("/api/packages/{package_id}", api_get_package),
        Route("/api/activities", api_list_activities),
        Route("/api/activities/{activity_id}", api_get_activity),
        Route("/api/activities/{activity_id}/status", api_set_activity_status, methods=["POST"]),
        Route("/api/stats", api_stats),
        Route("/api/holds/log", api_hold_log),
        Route("/api/holds/summary", api_hold_summary),
        Route("/api/scurve", api_scurve),
    ]
    return Starlette(routes=routes)


def run_server(host: str = "127.0.0.1", port: int = 8788):
    app = create_app()
    uvicorn.run(app, host=host, port=port)
