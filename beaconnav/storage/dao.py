import dataclasses
import json
from sqlite3 import Connection, Row
from typing import Iterable
from beaconnav.analysis.types import StateChange
from beaconnav.storage.db import init_db
from beaconnav.utils.log import get_logger

logger = get_logger(__name__)


def db_path_for(name: str) -> str:
    """
    SQLite file holding the navigation log of session name `name`.
    """
    return f"beaconnav_{name}.sqlite"


class DAO:
    """
    Encapsulates all inserts/queries against the navigation-log DB.

    The log is append-only; nothing here is read back into a live session.
    """

    def __init__(self, db_path: str):
        """
        Create/connect and apply schema if needed.
        """
        self.conn: Connection = init_db(db_path)

    def add_session(self, session_id: str, name: str, source: str, started_ts: float) -> None:
        """
        Register a new navigation session.
        """
        with self.conn:
            self.conn.execute(
                """
                INSERT INTO sessions (id, name, source, started_ts)
                VALUES (?, ?, ?, ?)
                """,
                (session_id, name, source, started_ts),
            )

    def end_session(self, session_id: str, ended_ts: float) -> None:
        with self.conn:
            self.conn.execute(
                "UPDATE sessions SET ended_ts = ? WHERE id = ?",
                (ended_ts, session_id),
            )

    def add_events_bulk(self, session_id: str, ts: float, events: Iterable[StateChange]) -> None:
        """
        Bulk insert state-change events sharing one timestamp.
        """
        params = (
            (
                session_id,
                ts,
                type(e).__name__,
                getattr(e, "waypoint_id", None),
                json.dumps(dataclasses.asdict(e)),
            )
            for e in events
        )
        with self.conn:
            self.conn.executemany(
                """
                INSERT INTO events (session_id, ts, event_type, waypoint_id, data)
                VALUES (?, ?, ?, ?, ?)
                """,
                params,
            )

    def get_sessions(self) -> list[Row]:
        return self.conn.execute(
            "SELECT id, name, source, started_ts, ended_ts FROM sessions ORDER BY started_ts"
        ).fetchall()

    def get_events(self, session_id: str | None = None) -> list[Row]:
        """
        Events in time order, optionally for a single session.
        """
        if session_id is None:
            return self.conn.execute(
                "SELECT session_id, ts, event_type, waypoint_id, data FROM events ORDER BY ts, id"
            ).fetchall()
        return self.conn.execute(
            """
            SELECT session_id, ts, event_type, waypoint_id, data
              FROM events
             WHERE session_id = ?
             ORDER BY ts, id
            """,
            (session_id,),
        ).fetchall()

    def count_events(self, event_type: str) -> int:
        row = self.conn.execute(
            "SELECT COUNT(*) FROM events WHERE event_type = ?",
            (event_type,),
        ).fetchone()
        return row[0]
