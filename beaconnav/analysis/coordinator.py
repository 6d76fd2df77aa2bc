"""
Turn scan-result batches into waypoint progress.

Per batch, each advertisement goes through:
- identity resolution (device id, beacon frame UUID, name, service UUIDs)
- RSSI filtering and quality scoring
- the proximity gate and the waypoint state machine
after which the ranked list of active signals is refreshed if anything
changed noticeably. A periodic tick evicts beacons that went silent.
"""

from __future__ import annotations
import time
from typing import Callable, Iterable
from beaconnav.analysis.config import NavigationConfig
from beaconnav.analysis.filter import RssiSampleFilter
from beaconnav.analysis.proximity import ProximityClassifier, distance_text, round_half_away
from beaconnav.analysis.quality import SignalQualityEstimator, quality_label
from beaconnav.analysis.types import (
    ActiveSignalsChanged,
    ScanRestarted,
    ScanResult,
    SignalLost,
    SignalSnapshot,
    StateChange,
    Unrecognized,
    WaypointReached,
)
from beaconnav.analysis.waypoint import Waypoint
from beaconnav.parsers.beacon import decode_frame, normalize_uuid
from beaconnav.utils.log import get_logger

logger = get_logger(__name__)

# -----------------------------------------------------------------------------
# Advertised-name keywords that mark a device as one of ours when no
# waypoint-specific match exists.
GENERIC_NAME_KEYWORDS = ("BEACON", "WAYPOINT")
# -----------------------------------------------------------------------------

class ScanCoordinator:
    """
    Owns all per-beacon state of one navigation session.

    One instance per session; every method must be called from a single
    execution context (see `beaconnav.session.NavigationSession`).
    """
    def __init__(
        self,
        waypoints: Iterable[Waypoint],
        cfg: NavigationConfig,
        device_map: dict[str, str] | None = None,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self.cfg = cfg
        self.clock = clock
        self.waypoints: dict[str, Waypoint] = {
            w.id: w for w in sorted(waypoints, key=lambda w: w.order)
        }

        self.device_map: dict[str, str] = {
            dev: w.id for w in self.waypoints.values() for dev in w.device_ids
        }
        if device_map:
            self.device_map.update(device_map)
        self.uuid_map: dict[str, str] = {
            normalize_uuid(w.uuid): w.id for w in self.waypoints.values() if w.uuid
        }

        self.rssi_filter = RssiSampleFilter(cfg)
        self.estimator = SignalQualityEstimator(cfg, self.rssi_filter)
        self.classifier = ProximityClassifier(cfg)

        self.detection_count: dict[str, int] = {wid: 0 for wid in self.waypoints}
        self.last_seen: dict[str, float] = {}
        self.total_detections = 0
        self.scan_cycles = 0
        self._active: list[str] = []

    # ------------------------------------------------------------------ identity

    def resolve(self, result: ScanResult) -> str | None:
        """
        Map an advertisement to a beacon identity, or None for foreign traffic.

        Tried in order: device id map, beacon-frame UUID, advertised name,
        advertised service UUIDs. The first match wins.
        """
        matched = self.device_map.get(result.device_id)
        if matched is not None:
            return matched

        frame = decode_frame(result.manufacturer_data)
        if not isinstance(frame, Unrecognized):
            matched = self.uuid_map.get(normalize_uuid(frame.uuid))
            if matched is not None:
                return matched

        if result.name:
            matched = self._match_name(result.name)
            if matched is not None:
                return matched

        for service_uuid in result.service_uuids:
            key = normalize_uuid(service_uuid)
            for uuid, wid in self.uuid_map.items():
                if uuid in key:
                    return wid

        return None

    def _match_name(self, name: str) -> str | None:
        name_upper = name.upper()
        for waypoint in self.waypoints.values():
            label_key = waypoint.label.upper().replace(" ", "")
            if waypoint.id.upper() in name_upper or (label_key and label_key in name_upper):
                return waypoint.id
        if self.waypoints and any(k in name_upper for k in GENERIC_NAME_KEYWORDS):
            return next(iter(self.waypoints))
        return None

    # ------------------------------------------------------------------ updates

    def process_batch(self, results: list[ScanResult], now: float | None = None) -> list[StateChange]:
        """
        Run one scan-result batch through the pipeline.

        Parameters
        ----------
        results
            Advertisements delivered together by the scanner.
        now
            Clock reading for the batch; defaults to `self.clock()`.

        Returns
        -------
        list[StateChange]
            `WaypointReached` for each waypoint confirmed in this batch, then
            `ActiveSignalsChanged` if the active list was recomputed.
        """
        if not results:
            return []
        now = self.clock() if now is None else now

        events: list[StateChange] = []
        significant = False
        for result in results:
            wid = self.resolve(result)
            if wid is None:
                continue
            waypoint = self.waypoints.get(wid)
            if waypoint is None:
                logger.debug("Dropping %s: resolved to unknown beacon %s", result.device_id, wid)
                continue

            self.last_seen[wid] = now
            self.detection_count[wid] = self.detection_count.get(wid, 0) + 1

            previous = self.rssi_filter.smoothed(wid)
            smoothed = self.rssi_filter.process(wid, result.rssi)
            quality = self.estimator.update(wid, result.rssi, smoothed, self.detection_count[wid])

            just_reached = False
            if waypoint.reached or self.classifier.passes_gate(smoothed, quality):
                just_reached = waypoint.update_rssi(
                    round_half_away(smoothed),
                    self.classifier.dynamic_threshold(smoothed, quality),
                    self.classifier.adaptive_stable_samples(quality),
                )

            if abs(smoothed - previous) >= self.cfg.significant_delta_dbm or just_reached:
                significant = True

            if just_reached:
                completed = self.completed_waypoints
                logger.info(
                    "Reached waypoint %d (%s) at %.1f dBm, quality %.2f [%d/%d]",
                    waypoint.order, waypoint.label, smoothed, quality,
                    completed, len(self.waypoints),
                )
                events.append(WaypointReached(waypoint.id, waypoint.label, waypoint.order, completed))

        self.total_detections += len(results)

        if significant:
            events.append(self._recompute_active())
        return events

    def evict_stale(self, now: float | None = None) -> list[StateChange]:
        """
        Timeout tick: forget unreached beacons silent for longer than the
        staleness window. Reached waypoints are left untouched.
        """
        now = self.clock() if now is None else now
        events: list[StateChange] = []
        for wid, seen in list(self.last_seen.items()):
            silent = now - seen
            if silent <= self.cfg.stale_after_s:
                continue
            waypoint = self.waypoints[wid]
            if waypoint.reached:
                continue
            self._clear_signal(wid)
            waypoint.reset()
            del self.last_seen[wid]
            logger.info("Lost signal of %s after %.1fs", wid, silent)
            events.append(SignalLost(wid, silent))

        events.append(self._recompute_active())
        return events

    def note_scan_restart(self) -> ScanRestarted:
        """
        Count a scan restart; the restart itself belongs to the scanner.
        """
        self.scan_cycles += 1
        logger.info("Scan restarted (cycle %d)", self.scan_cycles)
        return ScanRestarted(self.scan_cycles)

    def _clear_signal(self, wid: str) -> None:
        self.rssi_filter.clear(wid)
        self.estimator.clear(wid)
        self.detection_count[wid] = 0

    # ------------------------------------------------------------------ ranking

    def rank(self) -> list[str]:
        """
        Ids of active waypoints: reached ones first, then the others by
        composite score `rssi * (0.7 + 0.3 * quality)`, strongest first.
        """
        cfg = self.cfg
        ranked: list[tuple[bool, float, int, str]] = []
        for waypoint in self.waypoints.values():
            rssi = self.rssi_filter.smoothed(waypoint.id)
            quality = self.estimator.quality(waypoint.id)
            if not waypoint.reached and not (
                rssi > cfg.active_rssi_floor_dbm and quality > cfg.active_quality_floor
            ):
                continue
            score = rssi * (cfg.rank_rssi_weight + cfg.rank_quality_weight * quality)
            ranked.append((not waypoint.reached, -score, waypoint.order, waypoint.id))
        ranked.sort()
        return [wid for *_, wid in ranked]

    def _recompute_active(self) -> ActiveSignalsChanged:
        self._active = self.rank()
        return ActiveSignalsChanged(tuple(self._active))

    def active_signals(self) -> list[Waypoint]:
        """Active waypoints as of the last recomputation."""
        return [self.waypoints[wid] for wid in self._active]

    # ------------------------------------------------------------------ operator

    def reset_waypoint(self, waypoint_id: str) -> None:
        """
        Explicit operator reset: the only way a reached waypoint is cleared.
        """
        self.waypoints[waypoint_id].reset()
        logger.info("Waypoint %s reset", waypoint_id)
        self._recompute_active()

    def reset_counter(self, waypoint_id: str) -> None:
        self.waypoints[waypoint_id].reset_counter()

    def reset_all(self) -> None:
        """
        Restart navigation: every waypoint and all derived signal state.
        """
        for wid, waypoint in self.waypoints.items():
            waypoint.reset()
            self._clear_signal(wid)
        self.last_seen.clear()
        self._active = []
        logger.info("Navigation reset")

    # ------------------------------------------------------------------ views

    @property
    def completed_waypoints(self) -> int:
        return sum(1 for w in self.waypoints.values() if w.reached)

    def ordered_waypoints(self) -> list[Waypoint]:
        return list(self.waypoints.values())

    def signal_percent_for(self, waypoint_id: str) -> int:
        return self.classifier.signal_percent(self.rssi_filter.smoothed(waypoint_id))

    def signal_distance_for(self, waypoint_id: str) -> str:
        return distance_text(self.classifier.distance_m(self.rssi_filter.smoothed(waypoint_id)))

    def signal_quality_label_for(self, waypoint_id: str) -> str:
        return quality_label(self.estimator.quality(waypoint_id))

    def signal_snapshot(self, waypoint_id: str) -> SignalSnapshot:
        """
        Everything the UI shows for one waypoint.
        """
        waypoint = self.waypoints[waypoint_id]
        rssi = self.rssi_filter.smoothed(waypoint_id)
        quality = self.estimator.quality(waypoint_id)
        distance = self.classifier.distance_m(rssi)
        return SignalSnapshot(
            id=waypoint.id,
            label=waypoint.label,
            order=waypoint.order,
            reached=waypoint.reached,
            stable_count=waypoint.stable_count,
            smoothed_rssi=rssi,
            quality=quality,
            quality_label=quality_label(quality),
            signal_percent=self.classifier.signal_percent(rssi),
            distance_m=distance,
            distance_text=distance_text(distance),
            detections=self.detection_count.get(waypoint_id, 0),
        )

    def summary(self) -> dict:
        return {
            "waypoints": len(self.waypoints),
            "completed_waypoints": self.completed_waypoints,
            "total_detections": self.total_detections,
            "scan_cycles": self.scan_cycles,
            "active_signals": list(self._active),
        }
