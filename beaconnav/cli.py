#!/usr/bin/env python3
"""
CLI entry point for the beaconnav toolkit.

Defines the following commands:
  beaconnav replay NAME <trace.jsonl> [--route FILE]
  beaconnav scan NAME [--route FILE] [--duration S] [--record FILE]
  beaconnav export NAME [--outdir DIR]
  beaconnav serve NAME [--route FILE] [--port 8000]
  beaconnav advert N [--route FILE] [--format ibeacon|altbeacon]
  beaconnav version
"""

import asyncio
import csv
import json
import os
import sys
import time
import uuid
from argparse import ArgumentParser, Namespace
from importlib.metadata import PackageNotFoundError, version as _get_version

import uvicorn
from pydantic import ValidationError

from beaconnav.utils.log import get_logger
from beaconnav.utils.validate import RouteConfig, ScanRecord, TraceBatch
from beaconnav.storage.dao import DAO, db_path_for
from beaconnav.server import create_app
from beaconnav.parsers import trace
from beaconnav.parsers.beacon import build_altbeacon_payload, build_ibeacon_payload
from beaconnav.analysis.config import NavigationConfig
from beaconnav.analysis.coordinator import ScanCoordinator
from beaconnav.analysis.types import ScanResult, WaypointReached
from beaconnav.session import NavigationSession, replay as replay_trace

logger = get_logger(__name__)


def load_route(route_path: str | None) -> RouteConfig:
    """
    Load a route file, or the built-in three-beacon route when none is given.
    """
    if route_path is None:
        return RouteConfig.default()
    with open(route_path, "r", encoding="utf-8") as f:
        return RouteConfig.model_validate(json.load(f))


def _report(coordinator: ScanCoordinator) -> None:
    for waypoint in coordinator.ordered_waypoints():
        snap = coordinator.signal_snapshot(waypoint.id)
        logger.info(
            "%d. %-14s %-8s %4d%%  %-9s %s",
            snap.order,
            snap.label,
            "reached" if snap.reached else "pending",
            snap.signal_percent,
            snap.quality_label,
            snap.distance_text,
        )
    logger.info(
        "Completed %d/%d waypoints, %d detections, %d scan cycles",
        coordinator.completed_waypoints,
        len(coordinator.waypoints),
        coordinator.total_detections,
        coordinator.scan_cycles,
    )


def replay(name: str, trace_path: str, route_path: str | None) -> None:
    """
    Replay a recorded scan trace through a fresh session.

    Parameters
    ----------
    name
        Session name, which dictates the SQLite log file name.
    trace_path
        JSON-lines trace, one `{"ts", "results"}` batch per line.
    route_path
        Optional route JSON file.
    """
    logger.info("Replay: name=%s, trace=%s", name, trace_path)
    cfg = NavigationConfig.reference()
    coordinator = ScanCoordinator(load_route(route_path).build(), cfg)

    dao = DAO(db_path_for(name))
    session_id = str(uuid.uuid4())
    dao.add_session(session_id, name, trace_path, time.time())

    last_ts = None
    for ts, events in replay_trace(coordinator, trace.parse_trace(trace_path), cfg):
        dao.add_events_bulk(session_id, ts, events)
        last_ts = ts
    dao.end_session(session_id, last_ts if last_ts is not None else time.time())
    _report(coordinator)


def scan(name: str, route_path: str | None, duration: float, record: str | None) -> None:
    """
    Scan live with the local Bluetooth adapter.

    Parameters
    ----------
    name
        Session name, which dictates the SQLite log file name.
    route_path
        Optional route JSON file.
    duration
        Seconds to scan before stopping.
    record
        Optional path to save the raw scan batches as a replayable trace.
    """
    # imported here so the other commands work on hosts without a BLE stack
    from beaconnav.scanner import BleakBackend

    logger.info("Scan: name=%s, duration=%.0fs", name, duration)
    cfg = NavigationConfig.reference()
    coordinator = ScanCoordinator(load_route(route_path).build(), cfg)
    session = NavigationSession(coordinator, BleakBackend(), cfg, name=name, dao=DAO(db_path_for(name)))

    recorded: list[TraceBatch] = []

    def _record(results: list[ScanResult]) -> None:
        recorded.append(TraceBatch(
            ts=time.monotonic(),
            results=[
                ScanRecord(
                    device_id=r.device_id,
                    rssi=r.rssi,
                    name=r.name,
                    manufacturer_data={k: list(v) for k, v in r.manufacturer_data.items()},
                    service_uuids=r.service_uuids,
                )
                for r in results
            ],
        ))

    def _on_events(events: list) -> None:
        for event in events:
            if isinstance(event, WaypointReached):
                logger.info("Reached %s", event.label)

    if record:
        session.recorder = _record

    async def _run() -> None:
        session.subscribe(_on_events)
        await session.start()
        try:
            await asyncio.sleep(duration)
        finally:
            _report(coordinator)
            await session.stop()

    asyncio.run(_run())
    if record:
        trace.write_trace(record, recorded)
        logger.info("Recorded %d batches to %s", len(recorded), record)


def export(name: str, outdir: str | None) -> None:
    """
    Export the navigation log to CSV.

    Parameters
    ----------
    name
        Session name, which dictates the SQLite log file name.
    outdir
        Directory to write `{name}_sessions.csv` and `{name}_events.csv`
        into (defaults to cwd).
    """
    logger.info("Export: name=%s, outdir=%s", name, outdir)
    dao = DAO(db_path_for(name))
    outdir = outdir or os.getcwd()
    os.makedirs(outdir, exist_ok=True)

    sessions = dao.get_sessions()
    sessions_path = os.path.join(outdir, f"{name}_sessions.csv")
    with open(sessions_path, "w", newline="", encoding="utf-8") as f:
        writer = csv.writer(f)
        writer.writerow(["id", "name", "source", "started_ts", "ended_ts"])
        for row in sessions:
            writer.writerow([row["id"], row["name"], row["source"], row["started_ts"], row["ended_ts"]])

    rows = dao.get_events()
    out_path = os.path.join(outdir, f"{name}_events.csv")
    with open(out_path, "w", newline="", encoding="utf-8") as f:
        writer = csv.writer(f)
        writer.writerow(["session_id", "ts", "event_type", "waypoint_id", "data"])
        for row in rows:
            writer.writerow([row["session_id"], row["ts"], row["event_type"], row["waypoint_id"], row["data"]])
    logger.info("Wrote %d sessions and %d events to %s", len(sessions), len(rows), outdir)


def serve(name: str, route_path: str | None, port: int) -> None:
    """
    Spin up FastAPI+Uvicorn exposing a live session.

    Parameters
    ----------
    name
        Session name, which dictates the SQLite log file name.
    route_path
        Optional route JSON file.
    port
        Port on which to serve HTTP.
    """
    logger.info("Serve: name=%s, port=%d", name, port)
    app = create_app(name, load_route(route_path), NavigationConfig.reference(), db_path_for(name))
    uvicorn.run(app, host="127.0.0.1", port=port)


def advert(number: int, route_path: str | None, fmt: str) -> None:
    """
    Print the manufacturer data a phone should broadcast for waypoint `number`.
    """
    route = load_route(route_path)
    spec = next((w for w in route.waypoints if w.order == number), None)
    if spec is None or spec.uuid is None:
        logger.error("Waypoint %d has no beacon UUID in this route", number)
        sys.exit(1)
    build = build_ibeacon_payload if fmt == "ibeacon" else build_altbeacon_payload
    for company, payload in build(spec.uuid, number, number).items():
        logger.info("%s (%s) company=0x%04X data=%s", spec.label, fmt, company, payload.hex(" ").upper())


def version() -> None:
    """
    Print the installed beaconnav package version.
    """
    try:
        ver = _get_version("beaconnav")
    except PackageNotFoundError:
        ver = "unknown"
    logger.info("beaconnav version %s", ver)


def parse_args() -> Namespace:
    """
    Parse command-line arguments and return the populated namespace.
    """
    parser = ArgumentParser(prog="beaconnav")
    subparsers = parser.add_subparsers(dest="command", required=True)

    # beaconnav replay
    p = subparsers.add_parser("replay", help="Replay a recorded scan trace.")
    p.add_argument("name", type=str, help="Session name.")
    p.add_argument("trace", type=str, help="JSON-lines scan trace.")
    p.add_argument("--route", type=str, help="Route JSON file.")

    # beaconnav scan
    p = subparsers.add_parser("scan", help="Navigate with live BLE scanning.")
    p.add_argument("name", type=str, help="Session name.")
    p.add_argument("--route", type=str, help="Route JSON file.")
    p.add_argument(
        "--duration", type=float, default=300.0, help="Seconds to scan."
    )
    p.add_argument("--record", type=str, help="Save raw batches as a trace.")

    # beaconnav export
    p = subparsers.add_parser("export", help="Export the navigation log.")
    p.add_argument("name", type=str, help="Session name.")
    p.add_argument("--outdir", type=str, help="Output directory.")

    # beaconnav serve
    p = subparsers.add_parser("serve", help="Serve via FastAPI + Uvicorn.")
    p.add_argument("name", type=str, help="Session name.")
    p.add_argument("--route", type=str, help="Route JSON file.")
    p.add_argument(
        "--port", type=int, default=8000, help="Port number to serve on."
    )

    # beaconnav advert
    p = subparsers.add_parser("advert", help="Show beacon-mode advertisement data.")
    p.add_argument("number", type=int, help="Waypoint order number.")
    p.add_argument("--route", type=str, help="Route JSON file.")
    p.add_argument(
        "--format", dest="fmt", choices=("ibeacon", "altbeacon"), default="ibeacon",
        help="Advertisement framing.",
    )

    # beaconnav version
    subparsers.add_parser("version", help="Show beaconnav version and exit.")

    return parser.parse_args()


def main() -> None:
    """
    Entry point: dispatch to the selected subcommand.
    """
    args = parse_args()
    try:
        match args.command:
            case "replay":
                replay(args.name, args.trace, args.route)
            case "scan":
                scan(args.name, args.route, args.duration, args.record)
            case "export":
                export(args.name, args.outdir)
            case "serve":
                serve(args.name, args.route, args.port)
            case "advert":
                advert(args.number, args.route, args.fmt)
            case "version":
                version()
            case _:
                sys.exit(1)
    except (OSError, ValidationError) as e:
        logger.error("%s failed: %s", args.command, e)
        sys.exit(1)


if __name__ == "__main__":
    main()
