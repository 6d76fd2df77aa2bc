"""
FastAPI server exposing a live navigation session.
"""

import asyncio
import dataclasses
import time
import uuid
from contextlib import asynccontextmanager

from fastapi import FastAPI, HTTPException, Request
from starlette.responses import JSONResponse

from beaconnav.analysis.config import NavigationConfig
from beaconnav.analysis.coordinator import ScanCoordinator
from beaconnav.analysis.types import StateChange
from beaconnav.storage.dao import DAO
from beaconnav.utils.log import get_logger
from beaconnav.utils.validate import RouteConfig, ScanRecord, SessionSummary, SignalView, WaypointView

logger = get_logger(__name__)


def _event_json(events: list[StateChange]) -> list[dict]:
    return [{"type": type(e).__name__, **dataclasses.asdict(e)} for e in events]


def _log_events(app: FastAPI, events: list[StateChange]) -> None:
    # one DAO per call; sqlite connections are bound to their thread
    db_path = app.state.db_path
    if db_path is not None and events:
        DAO(db_path).add_events_bulk(app.state.session_id, time.time(), events)


async def _eviction_ticker(app: FastAPI, interval: float) -> None:
    """
    Run the staleness tick every `interval` seconds on the app's event loop.
    """
    while True:
        await asyncio.sleep(interval)
        try:
            _log_events(app, app.state.coordinator.evict_stale())
        except Exception:
            logger.exception("Eviction tick failed; retrying next interval")


def create_app(
    name: str,
    route: RouteConfig | None = None,
    cfg: NavigationConfig | None = None,
    db_path: str | None = None,
) -> FastAPI:
    """
    Build a FastAPI instance bound to one navigation session.

    Handlers are plain `async def` functions that never await while touching
    the coordinator, so requests are serialized on the event loop. While the
    app is running (lifespan started), the eviction tick fires on its own every
    `cfg.timeout_tick_s`; `POST /api/tick` runs it on demand.

    Parameters
    ----------
    name
        Session name.
    route
        Waypoints to navigate; the built-in three-beacon route by default.
    cfg
        Calibration; `NavigationConfig.reference()` by default.
    db_path
        SQLite navigation log to append state changes to, if any.
    """
    route = route or RouteConfig.default()
    cfg = cfg or NavigationConfig.reference()

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        ticker = asyncio.create_task(_eviction_ticker(app, cfg.timeout_tick_s))
        try:
            yield
        finally:
            ticker.cancel()
            await asyncio.gather(ticker, return_exceptions=True)

    app = FastAPI(lifespan=lifespan)
    app.state.name = name
    app.state.session_id = str(uuid.uuid4())
    app.state.coordinator = ScanCoordinator(route.build(), cfg)
    app.state.db_path = db_path
    if db_path is not None:
        DAO(db_path).add_session(app.state.session_id, name, "api", time.time())

    def _coordinator(request: Request) -> ScanCoordinator:
        return request.app.state.coordinator

    def _log(request: Request, events: list[StateChange]) -> None:
        _log_events(request.app, events)

    def _known(coordinator: ScanCoordinator, waypoint_id: str) -> None:
        if waypoint_id not in coordinator.waypoints:
            raise HTTPException(status_code=404, detail=f"unknown waypoint {waypoint_id}")

    @app.get("/api/status", response_class=JSONResponse)
    async def status() -> JSONResponse:
        return JSONResponse(status_code=200, content={"status": "ok"})

    @app.get("/api/session", response_class=JSONResponse)
    async def get_session(request: Request) -> JSONResponse:
        return JSONResponse(
            status_code=200,
            content={"name": request.app.state.name, "session_id": request.app.state.session_id},
        )

    @app.get("/api/waypoints", response_model=list[WaypointView])
    async def get_waypoints(request: Request):
        coordinator = _coordinator(request)
        return [WaypointView.model_validate(w, from_attributes=True) for w in coordinator.ordered_waypoints()]

    @app.get("/api/signals", response_model=list[SignalView])
    async def get_signals(request: Request):
        """
        Display data for every waypoint, in route order.
        """
        coordinator = _coordinator(request)
        return [
            SignalView.model_validate(coordinator.signal_snapshot(w.id), from_attributes=True)
            for w in coordinator.ordered_waypoints()
        ]

    @app.get("/api/active-signals", response_model=list[SignalView])
    async def get_active_signals(request: Request):
        """
        Ranked active signals: reached first, then strongest composite score.
        """
        coordinator = _coordinator(request)
        return [
            SignalView.model_validate(coordinator.signal_snapshot(w.id), from_attributes=True)
            for w in coordinator.active_signals()
        ]

    @app.get("/api/summary", response_model=SessionSummary)
    async def get_summary(request: Request):
        return SessionSummary(**_coordinator(request).summary())

    @app.post("/api/scan-batch", response_class=JSONResponse)
    async def post_scan_batch(request: Request, results: list[ScanRecord], now: float | None = None) -> JSONResponse:
        """
        Feed one scan batch; returns the state changes it caused.
        """
        events = _coordinator(request).process_batch([r.to_scan_result() for r in results], now=now)
        _log(request, events)
        return JSONResponse(status_code=200, content={"events": _event_json(events)})

    @app.post("/api/tick", response_class=JSONResponse)
    async def post_tick(request: Request, now: float | None = None) -> JSONResponse:
        """
        Run the staleness eviction tick.
        """
        events = _coordinator(request).evict_stale(now=now)
        _log(request, events)
        return JSONResponse(status_code=200, content={"events": _event_json(events)})

    @app.post("/api/waypoints/{waypoint_id}/reset", response_model=WaypointView)
    async def reset_waypoint(request: Request, waypoint_id: str):
        coordinator = _coordinator(request)
        _known(coordinator, waypoint_id)
        coordinator.reset_waypoint(waypoint_id)
        return WaypointView.model_validate(coordinator.waypoints[waypoint_id], from_attributes=True)

    @app.post("/api/waypoints/{waypoint_id}/reset-counter", response_model=WaypointView)
    async def reset_counter(request: Request, waypoint_id: str):
        coordinator = _coordinator(request)
        _known(coordinator, waypoint_id)
        coordinator.reset_counter(waypoint_id)
        return WaypointView.model_validate(coordinator.waypoints[waypoint_id], from_attributes=True)

    @app.post("/api/reset", response_model=SessionSummary)
    async def reset_all(request: Request):
        coordinator = _coordinator(request)
        coordinator.reset_all()
        return SessionSummary(**coordinator.summary())

    logger.info("API ready for session %s with %d waypoints", name, len(route.waypoints))
    return app
