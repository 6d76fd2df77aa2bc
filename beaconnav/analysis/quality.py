"""
Signal quality scoring: consistency, strength and detection frequency blended
into a single [0, 1] confidence per beacon.
"""

from __future__ import annotations
from beaconnav.analysis.config import NavigationConfig
from beaconnav.analysis.filter import RssiSampleFilter

# (lower bound, label), highest first
QUALITY_BANDS = (
    (0.9,  "Excellent"),
    (0.75, "Very Good"),
    (0.6,  "Good"),
    (0.4,  "Fair"),
    (0.2,  "Weak"),
)


def quality_label(quality: float) -> str:
    """
    Human-readable band for a quality score.
    """
    for floor, label in QUALITY_BANDS:
        if quality >= floor:
            return label
    return "Poor"


def _clamp(value: float, lo: float, hi: float) -> float:
    return max(lo, min(hi, value))


class SignalQualityEstimator:
    """
    Recomputes a beacon's quality score on every accepted sample.

    Reads the history statistics from the shared `RssiSampleFilter`, so it
    must be updated after the filter has processed the same sample.
    """
    def __init__(self, cfg: NavigationConfig, rssi_filter: RssiSampleFilter) -> None:
        self.cfg = cfg
        self.rssi_filter = rssi_filter
        self._quality: dict[str, float] = {}

    def update(self, beacon_id: str, raw_rssi: int, smoothed_rssi: float, detections: int) -> float:
        """
        Score the beacon's current signal.

        Parameters
        ----------
        beacon_id
            Beacon whose filter history is scored.
        raw_rssi
            The reading just accepted (kept for parity with the filter call).
        smoothed_rssi
            Filter output for that reading.
        detections
            Accepted detections of this beacon since its last eviction.

        Returns
        -------
        float
            Quality in [0, 1].
        """
        cfg = self.cfg
        if self.rssi_filter.sample_count(beacon_id) < cfg.quality_min_samples:
            quality = cfg.quality_default
        else:
            variance = self.rssi_filter.variance(beacon_id)
            consistency = max(0.0, 1.0 - variance / cfg.variance_scale) ** cfg.consistency_power
            span = cfg.strength_ceiling_dbm - cfg.strength_floor_dbm
            strength = _clamp((smoothed_rssi - cfg.strength_floor_dbm) / span, 0.0, 1.0)
            frequency = min(1.0, detections / cfg.frequency_saturation)
            quality = _clamp(
                cfg.consistency_weight * consistency
                + cfg.strength_weight * strength
                + cfg.frequency_weight * frequency,
                0.0,
                1.0,
            )
        self._quality[beacon_id] = quality
        return quality

    def quality(self, beacon_id: str) -> float:
        return self._quality.get(beacon_id, 0.0)

    def clear(self, beacon_id: str) -> None:
        self._quality[beacon_id] = 0.0
