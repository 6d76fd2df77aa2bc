"""
Per-beacon RSSI smoothing: bounded history, median outlier rejection,
recency-weighted averaging and a final exponential smoother.
"""

from __future__ import annotations
from collections import defaultdict, deque
from beaconnav.analysis.config import NavigationConfig


class RssiSampleFilter:
    """
    Stateful filter turning raw RSSI readings into one smoothed value per beacon.

    The raw history never leaves this object; callers only see derived
    scalars (smoothed value, sample count, variance).
    """
    def __init__(self, cfg: NavigationConfig) -> None:
        self.cfg = cfg
        self._history: dict[str, deque[int]] = defaultdict(
            lambda: deque(maxlen=cfg.history_size)
        )
        self._smoothed: dict[str, float] = {}

    def process(self, beacon_id: str, raw_rssi: int) -> float:
        """
        Feed one raw reading and return the beacon's new smoothed RSSI.

        Parameters
        ----------
        beacon_id
            Identity of the beacon the reading belongs to.
        raw_rssi
            Raw signal strength in dBm. Implausible values are accepted;
            the outlier filter is the only defence against them.

        Returns
        -------
        float
            Updated smoothed RSSI in dBm.
        """
        history = self._history[beacon_id]
        history.append(raw_rssi)

        working = list(history)
        if len(working) >= self.cfg.outlier_min_samples:
            working = self._reject_outliers(working)

        weighted = self._weighted_average(working, fallback=float(raw_rssi))
        previous = self._smoothed.get(beacon_id, self.cfg.initial_rssi)
        alpha = self.cfg.smoothing_alpha
        smoothed = alpha * weighted + (1 - alpha) * previous
        self._smoothed[beacon_id] = smoothed
        return smoothed

    def _reject_outliers(self, readings: list[int]) -> list[int]:
        """
        Drop readings further than the outlier threshold from the median.
        """
        ordered = sorted(readings)
        median = ordered[len(ordered) // 2]
        limit = self.cfg.outlier_threshold_dbm
        return [r for r in readings if abs(r - median) <= limit]

    def _weighted_average(self, readings: list[int], fallback: float) -> float:
        """
        Recency-weighted mean, the i-th oldest reading weighted `base ** i`.
        """
        weighted_sum = weight_sum = 0.0
        for i, rssi in enumerate(readings):
            weight = self.cfg.recency_weight_base ** i
            weighted_sum += rssi * weight
            weight_sum += weight
        return weighted_sum / weight_sum if weight_sum > 0 else fallback

    def smoothed(self, beacon_id: str) -> float:
        return self._smoothed.get(beacon_id, self.cfg.initial_rssi)

    def sample_count(self, beacon_id: str) -> int:
        history = self._history.get(beacon_id)
        return len(history) if history is not None else 0

    def variance(self, beacon_id: str) -> float:
        """
        Population variance of the raw history (0.0 below two samples).
        """
        history = self._history.get(beacon_id)
        if history is None or len(history) < 2:
            return 0.0
        mean = sum(history) / len(history)
        return sum((r - mean) ** 2 for r in history) / len(history)

    def clear(self, beacon_id: str) -> None:
        """
        Forget a beacon's history and fall back to the far-away default.
        """
        self._history.pop(beacon_id, None)
        self._smoothed[beacon_id] = self.cfg.initial_rssi
