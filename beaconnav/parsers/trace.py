"""
Trace parser: read recorded scan sessions (JSON lines, one batch per line)
for offline replay.
"""

import json
from typing import Iterator

from pydantic import ValidationError

from beaconnav.utils.log import get_logger
from beaconnav.utils.validate import TraceBatch

logger = get_logger(__name__)


def parse_trace(file_path: str) -> Iterator[TraceBatch]:
    """
    Yield the batches of a trace file in file order.

    Blank lines are ignored; lines that are not valid JSON or do not match
    the `TraceBatch` schema are logged and skipped.
    """
    with open(file_path, "r", encoding="utf-8") as f:
        for lineno, line in enumerate(f, start=1):
            line = line.strip()
            if not line:
                continue
            try:
                yield TraceBatch.model_validate(json.loads(line))
            except (ValueError, ValidationError) as e:
                logger.warning("Skipping line %d of %s: %s", lineno, file_path, e)


def write_trace(file_path: str, batches: list[TraceBatch]) -> None:
    """
    Write batches as JSON lines (used to record live scans).
    """
    with open(file_path, "w", encoding="utf-8") as f:
        for batch in batches:
            f.write(batch.model_dump_json() + "\n")
