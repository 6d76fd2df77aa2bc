"""Tests for the single-context navigation session and trace replay."""

from __future__ import annotations

import asyncio
from typing import Callable

from beaconnav.analysis.config import NavigationConfig
from beaconnav.analysis.coordinator import ScanCoordinator
from beaconnav.analysis.types import ActiveSignalsChanged, ScanRestarted, ScanResult
from beaconnav.session import NavigationSession, replay
from beaconnav.utils.validate import RouteConfig, ScanRecord, TraceBatch


class FakeBackend:
    """Scanner stand-in that lets tests push batches."""

    def __init__(self, fail_restart: bool = False) -> None:
        self.on_results: Callable[[list[ScanResult]], None] | None = None
        self.started = 0
        self.restarts = 0
        self.stopped = 0
        self.fail_restart = fail_restart

    async def start(self, on_results: Callable[[list[ScanResult]], None]) -> None:
        self.on_results = on_results
        self.started += 1

    async def restart(self) -> None:
        self.restarts += 1
        if self.fail_restart:
            raise RuntimeError("adapter went away")

    async def stop(self) -> None:
        self.stopped += 1

    def emit(self, results: list[ScanResult]) -> None:
        assert self.on_results is not None
        self.on_results(results)


def _session(cfg: NavigationConfig, backend: FakeBackend) -> NavigationSession:
    coordinator = ScanCoordinator(RouteConfig.default().build(), cfg)
    return NavigationSession(coordinator, backend, cfg, name="test")


QUIET = NavigationConfig(timeout_tick_s=60.0, restart_interval_s=60.0)


def test_batches_are_processed_and_published() -> None:
    backend = FakeBackend()
    session = _session(QUIET, backend)
    received: list = []

    async def run() -> None:
        session.subscribe(received.extend)
        await session.start()
        backend.emit([ScanResult(device_id="a", rssi=-60, name="BEACON_2")])
        await session.drain()
        assert session.coordinator is not None
        assert session.coordinator.detection_count["BEACON_2"] == 1
        await session.stop()

    asyncio.run(run())
    assert backend.started == 1
    assert any(isinstance(e, ActiveSignalsChanged) for e in received)


def test_restart_tick_restarts_scanner() -> None:
    cfg = NavigationConfig(timeout_tick_s=60.0, restart_interval_s=0.01)
    backend = FakeBackend()
    session = _session(cfg, backend)
    received: list = []

    async def run() -> None:
        session.subscribe(received.extend)
        await session.start()
        await asyncio.sleep(0.05)
        await session.drain()
        await session.stop()

    asyncio.run(run())
    assert backend.restarts >= 1
    assert ScanRestarted(1) in received


def test_failed_restart_keeps_session_alive() -> None:
    cfg = NavigationConfig(timeout_tick_s=60.0, restart_interval_s=0.01)
    backend = FakeBackend(fail_restart=True)
    session = _session(cfg, backend)

    async def run() -> None:
        await session.start()
        await asyncio.sleep(0.03)
        backend.emit([ScanResult(device_id="a", rssi=-60, name="BEACON_1")])
        await session.drain()
        assert session.coordinator is not None
        assert session.coordinator.detection_count["BEACON_1"] == 1
        assert session.coordinator.scan_cycles == 0
        await session.stop()

    asyncio.run(run())
    assert backend.restarts >= 1


def test_timeout_tick_runs_eviction() -> None:
    cfg = NavigationConfig(timeout_tick_s=0.01, restart_interval_s=60.0)
    backend = FakeBackend()
    session = _session(cfg, backend)
    received: list = []

    async def run() -> None:
        session.subscribe(received.extend)
        await session.start()
        await asyncio.sleep(0.05)
        await session.drain()
        await session.stop()

    asyncio.run(run())
    assert ActiveSignalsChanged(()) in received


def test_stop_discards_state() -> None:
    backend = FakeBackend()
    session = _session(QUIET, backend)
    recorded: list = []
    session.recorder = recorded.append

    async def run() -> None:
        await session.start()
        backend.emit([ScanResult(device_id="a", rssi=-60, name="BEACON_1")])
        await session.drain()
        await session.stop()
        # late callbacks from the platform are ignored
        backend.emit([ScanResult(device_id="a", rssi=-60, name="BEACON_1")])

    asyncio.run(run())
    assert backend.stopped == 1
    assert session.coordinator is None
    assert not session.running
    assert len(recorded) == 1


def test_failing_listener_does_not_stop_worker() -> None:
    backend = FakeBackend()
    session = _session(QUIET, backend)
    received: list = []

    def broken(events: list) -> None:
        raise RuntimeError("listener bug")

    async def run() -> None:
        session.subscribe(broken)
        session.subscribe(received.extend)
        await session.start()
        backend.emit([ScanResult(device_id="a", rssi=-60, name="BEACON_2")])
        backend.emit([ScanResult(device_id="a", rssi=-60, name="BEACON_2")])
        await asyncio.wait_for(session.drain(), timeout=2.0)
        assert session.coordinator is not None
        assert session.coordinator.detection_count["BEACON_2"] == 2
        await session.stop()

    asyncio.run(run())


def test_unsubscribe() -> None:
    backend = FakeBackend()
    session = _session(QUIET, backend)
    received: list = []

    async def run() -> None:
        unsubscribe = session.subscribe(received.extend)
        unsubscribe()
        await session.start()
        backend.emit([ScanResult(device_id="a", rssi=-60, name="BEACON_2")])
        await session.drain()
        await session.stop()

    asyncio.run(run())
    assert received == []


class TestReplay:
    """Offline replay with simulated timers."""

    def _trace(self) -> list[TraceBatch]:
        record = ScanRecord(device_id="a", rssi=-50, name="BEACON_1")
        batches = [TraceBatch(ts=0.5 * i, results=[record]) for i in range(15)]
        # beacon goes quiet for 30 s
        batches.append(TraceBatch(ts=37.0, results=[]))
        return batches

    def test_reached_waypoint_survives_replayed_silence(self) -> None:
        cfg = NavigationConfig.reference()
        coordinator = ScanCoordinator(RouteConfig.default().build(), cfg)

        steps = list(replay(coordinator, self._trace(), cfg))

        assert coordinator.waypoints["BEACON_1"].reached
        assert coordinator.completed_waypoints == 1
        assert coordinator.active_signals()[0].id == "BEACON_1"
        assert coordinator.scan_cycles == 1
        timestamps = [ts for ts, _ in steps]
        assert timestamps == sorted(timestamps)
        assert 36.0 in timestamps

    def test_unreached_waypoint_evicted_in_replay(self) -> None:
        cfg = NavigationConfig.reference()
        coordinator = ScanCoordinator(RouteConfig.default().build(), cfg)
        record = ScanRecord(device_id="a", rssi=-80, name="BEACON_3")
        batches = [TraceBatch(ts=float(i), results=[record]) for i in range(3)]
        batches.append(TraceBatch(ts=20.0, results=[]))

        list(replay(coordinator, batches, cfg))

        assert coordinator.rssi_filter.smoothed("BEACON_3") == -100.0
        assert coordinator.estimator.quality("BEACON_3") == 0.0
