import os
import sqlite3
from beaconnav.utils.log import get_logger

logger = get_logger(__name__)

SCHEMA_PATH = os.path.join(os.path.dirname(__file__), "schema.sql")


def get_connection(db_path: str) -> sqlite3.Connection:
    """
    Open the navigation log: rows come back as sqlite3.Row, session
    foreign keys are enforced.
    """
    conn = sqlite3.connect(db_path)
    conn.row_factory = sqlite3.Row
    conn.execute("PRAGMA foreign_keys = ON;")
    return conn


def init_db(db_path: str) -> sqlite3.Connection:
    """
    Apply schema.sql (idempotent) to `db_path` and return a live connection.
    """
    conn = get_connection(db_path)
    logger.debug("Applying navigation-log schema to %s", db_path)
    with open(SCHEMA_PATH, "r", encoding="utf-8") as f:
        conn.executescript(f.read())
    conn.commit()
    return conn
