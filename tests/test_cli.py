"""Tests for the command-line workflows."""

from __future__ import annotations

import csv
import json
from pathlib import Path

import pytest

from beaconnav import cli
from beaconnav.parsers.trace import write_trace
from beaconnav.storage.dao import DAO, db_path_for
from beaconnav.utils.validate import ScanRecord, TraceBatch


def test_load_route_from_file(tmp_path: Path) -> None:
    path = tmp_path / "route.json"
    path.write_text(json.dumps({"waypoints": [
        {"id": "DOOR", "label": "Front Door", "order": 1, "device_ids": ["AA:BB"]},
    ]}), encoding="utf-8")

    route = cli.load_route(str(path))

    assert route.waypoints[0].id == "DOOR"
    assert cli.load_route(None).waypoints[2].label == "Destination"


def test_replay_then_export(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.chdir(tmp_path)
    record = ScanRecord(device_id="a", rssi=-50, name="BEACON_1")
    write_trace("trace.jsonl", [TraceBatch(ts=0.5 * i, results=[record]) for i in range(15)])

    cli.replay("walk", "trace.jsonl", None)

    dao = DAO(db_path_for("walk"))
    assert dao.count_events("WaypointReached") == 1
    (session,) = dao.get_sessions()
    assert session["source"] == "trace.jsonl"
    assert session["ended_ts"] == 7.0

    cli.export("walk", str(tmp_path / "out"))
    with open(tmp_path / "out" / "walk_events.csv", newline="", encoding="utf-8") as f:
        rows = list(csv.DictReader(f))
    assert "WaypointReached" in {r["event_type"] for r in rows}
    with open(tmp_path / "out" / "walk_sessions.csv", newline="", encoding="utf-8") as f:
        (exported,) = list(csv.DictReader(f))
    assert exported["name"] == "walk"
    assert exported["source"] == "trace.jsonl"
    assert float(exported["ended_ts"]) == 7.0


def test_advert_unknown_waypoint_exits() -> None:
    with pytest.raises(SystemExit):
        cli.advert(9, None, "ibeacon")
