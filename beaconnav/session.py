# beaconnav/session.py
"""
Navigation session runtime.

All work touching the coordinator (scan batches, the staleness tick and the
scan-restart tick) is funnelled through one asyncio queue drained by a
single worker task, so no two updates ever interleave. Scanner callbacks
only enqueue.
"""

from __future__ import annotations

import asyncio
import time
import uuid
from typing import Callable, Iterable, Iterator, Protocol

from beaconnav.analysis.config import NavigationConfig
from beaconnav.analysis.coordinator import ScanCoordinator
from beaconnav.analysis.types import ScanResult, StateChange
from beaconnav.storage.dao import DAO
from beaconnav.utils.log import get_logger
from beaconnav.utils.validate import TraceBatch

logger = get_logger(__name__)

Listener = Callable[[list[StateChange]], None]

BATCH   = "batch"
TIMEOUT = "timeout"
RESTART = "restart"


class ScanBackend(Protocol):
    """
    External BLE scanning capability.
    """
    async def start(self, on_results: Callable[[list[ScanResult]], None]) -> None: ...
    async def restart(self) -> None: ...
    async def stop(self) -> None: ...


class NavigationSession:
    """
    One navigation run: a coordinator, its timers and its subscribers.

    Parameters
    ----------
    coordinator
        Fresh coordinator owning this session's per-beacon state.
    backend
        Scanner delivering result batches.
    cfg
        Timer intervals are read from here.
    name
        Session name, used for the navigation log.
    dao
        Optional navigation-log writer.
    """
    def __init__(
        self,
        coordinator: ScanCoordinator,
        backend: ScanBackend,
        cfg: NavigationConfig,
        name: str = "session",
        dao: DAO | None = None,
    ) -> None:
        self.coordinator: ScanCoordinator | None = coordinator
        self.backend = backend
        self.cfg = cfg
        self.name = name
        self.dao = dao
        self.session_id = str(uuid.uuid4())
        self._listeners: list[Listener] = []
        # sees every submitted batch, e.g. to record a trace
        self.recorder: Callable[[list[ScanResult]], None] | None = None
        self._queue: asyncio.Queue | None = None
        self._tasks: list[asyncio.Task] = []

    @property
    def running(self) -> bool:
        return self._queue is not None

    def subscribe(self, listener: Listener) -> Callable[[], None]:
        """
        Register a listener for state-change events; returns an unsubscribe
        callable.
        """
        self._listeners.append(listener)
        return lambda: self._listeners.remove(listener)

    def submit(self, results: list[ScanResult]) -> None:
        """
        Enqueue a scan batch. Safe to call from scanner callbacks running on
        the session's event loop; ignored once the session is stopped.
        """
        if self._queue is None or not results:
            return
        if self.recorder is not None:
            self.recorder(results)
        self._queue.put_nowait((BATCH, list(results)))

    async def start(self) -> None:
        if self._queue is not None:
            return
        self._queue = asyncio.Queue()
        if self.dao is not None:
            self.dao.add_session(self.session_id, self.name, "live", time.time())
        self._tasks = [
            asyncio.create_task(self._worker(), name="beaconnav-worker"),
            asyncio.create_task(self._tick(self.cfg.timeout_tick_s, TIMEOUT), name="beaconnav-timeout"),
            asyncio.create_task(self._tick(self.cfg.restart_interval_s, RESTART), name="beaconnav-restart"),
        ]
        await self.backend.start(self.submit)
        logger.info("Session %s started (%s)", self.name, self.session_id)

    async def drain(self) -> None:
        """
        Wait until everything enqueued so far has been processed.
        """
        if self._queue is not None:
            await self._queue.join()

    async def stop(self) -> None:
        """
        Tear down: cancel timers and worker, stop scanning and discard all
        per-beacon and per-waypoint state.
        """
        if self._queue is None:
            return
        for task in self._tasks:
            task.cancel()
        await asyncio.gather(*self._tasks, return_exceptions=True)
        self._tasks = []
        self._queue = None
        await self.backend.stop()
        if self.dao is not None:
            self.dao.end_session(self.session_id, time.time())
        self.coordinator = None
        self._listeners.clear()
        logger.info("Session %s stopped", self.name)

    async def _tick(self, interval: float, kind: str) -> None:
        while True:
            await asyncio.sleep(interval)
            if self._queue is not None:
                self._queue.put_nowait((kind, None))

    async def _worker(self) -> None:
        assert self._queue is not None
        queue = self._queue
        while True:
            kind, payload = await queue.get()
            try:
                events = await self._handle(kind, payload)
                self._publish(events)
            except Exception:
                logger.exception("Failed to process %s item; session continues", kind)
            finally:
                queue.task_done()

    async def _handle(self, kind: str, payload: list[ScanResult] | None) -> list[StateChange]:
        coordinator = self.coordinator
        if coordinator is None:
            return []
        if kind == BATCH:
            return coordinator.process_batch(payload or [])
        if kind == TIMEOUT:
            return coordinator.evict_stale()
        try:
            await self.backend.restart()
        except Exception:
            logger.exception("Scan restart failed; keeping the current scan")
            return []
        return [coordinator.note_scan_restart()]

    def _publish(self, events: list[StateChange]) -> None:
        if not events:
            return
        if self.dao is not None:
            self.dao.add_events_bulk(self.session_id, time.time(), events)
        for listener in list(self._listeners):
            listener(events)


def replay(
    coordinator: ScanCoordinator,
    batches: Iterable[TraceBatch],
    cfg: NavigationConfig,
) -> Iterator[tuple[float, list[StateChange]]]:
    """
    Drive a coordinator from a recorded trace, firing the timeout and
    restart ticks at the times they would have fired live.

    Yields
    ------
    (ts, events)
        Trace time of each processed item and the events it produced.
    """
    next_timeout = next_restart = None
    for batch in batches:
        if next_timeout is None:
            next_timeout = batch.ts + cfg.timeout_tick_s
            next_restart = batch.ts + cfg.restart_interval_s
        while min(next_timeout, next_restart) <= batch.ts:
            if next_timeout <= next_restart:
                yield next_timeout, coordinator.evict_stale(now=next_timeout)
                next_timeout += cfg.timeout_tick_s
            else:
                yield next_restart, [coordinator.note_scan_restart()]
                next_restart += cfg.restart_interval_s
        results = [r.to_scan_result() for r in batch.results]
        yield batch.ts, coordinator.process_batch(results, now=batch.ts)
