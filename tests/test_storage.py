"""Tests for the SQLite navigation log."""

from __future__ import annotations

import json
from pathlib import Path

from beaconnav.analysis.types import ActiveSignalsChanged, WaypointReached
from beaconnav.storage.dao import DAO, db_path_for


class TestDAO:
    """Navigation event log."""

    def test_events_are_logged(self, tmp_path: Path) -> None:
        dao = DAO(str(tmp_path / db_path_for("demo")))
        dao.add_session("s1", "demo", "live", 100.0)
        dao.add_events_bulk(
            "s1",
            101.5,
            [WaypointReached("BEACON_1", "Entry Point", 1, 1), ActiveSignalsChanged(("BEACON_1",))],
        )
        dao.end_session("s1", 110.0)

        rows = dao.get_events("s1")
        assert [r["event_type"] for r in rows] == ["WaypointReached", "ActiveSignalsChanged"]
        assert rows[0]["waypoint_id"] == "BEACON_1"
        assert rows[1]["waypoint_id"] is None
        assert json.loads(rows[1]["data"]) == {"waypoint_ids": ["BEACON_1"]}
        assert dao.count_events("WaypointReached") == 1
        (session,) = dao.get_sessions()
        assert session["ended_ts"] == 110.0

    def test_empty_event_list(self, tmp_path: Path) -> None:
        dao = DAO(str(tmp_path / "empty.sqlite"))
        dao.add_session("s1", "demo", "live", 1.0)
        dao.add_events_bulk("s1", 2.0, [])
        assert dao.get_events() == []

    def test_db_path_for(self) -> None:
        assert db_path_for("hall") == "beaconnav_hall.sqlite"
