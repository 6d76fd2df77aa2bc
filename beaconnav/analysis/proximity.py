# beaconnav/analysis/proximity.py

"""
RSSI to proximity conversions and the adaptive threshold policy.
"""

import math
from beaconnav.analysis.config import NavigationConfig

# (start m, end m, percent at start, percent at end); beyond the last
# segment the percentage is 0. 1.5 m lands on 62.5 %.
PERCENT_SEGMENTS = (
    (0.0,  0.5,  100.0, 95.0),
    (0.5,  1.0,  95.0,  70.0),
    (1.0,  3.0,  70.0,  40.0),
    (3.0,  10.0, 40.0,  10.0),
    (10.0, 30.0, 10.0,  0.0),
)


def round_half_away(value: float) -> int:
    """
    Round to the nearest integer, ties away from zero (-52.5 -> -53).
    """
    return int(math.copysign(math.floor(abs(value) + 0.5), value))


def distance_text(distance_m: float) -> str:
    """
    Human-readable distance for display.

    Parameters
    ----------
    distance_m
        Distance estimate in metres.

    Returns
    -------
    str
        e.g. "< 30cm", "≈ 45 cm", "≈ 1.5 m", "≈ 7 m", "> 20 m".
    """
    if distance_m < 0.3:
        return "< 30cm"
    if distance_m < 1.0:
        return f"≈ {round_half_away(distance_m * 100)} cm"
    if distance_m < 5.0:
        return f"≈ {distance_m:.1f} m"
    if distance_m < 20.0:
        return f"≈ {round_half_away(distance_m)} m"
    return "> 20 m"


class ProximityClassifier:
    """
    Stateless conversions from a smoothed RSSI to distance, percentage,
    reach threshold and required confirmations.
    """
    def __init__(self, cfg: NavigationConfig) -> None:
        self.cfg = cfg

    def distance_m(self, rssi: float) -> float:
        """
        Log-distance path-loss estimate: 10 ** ((tx_power - rssi) / (10 n)).

        Floored at the near-field distance so the estimate stays monotonic
        across the near-field boundary, capped at the maximum distance.
        """
        cfg = self.cfg
        if rssi >= cfg.near_field_dbm:
            return cfg.min_distance_m
        distance = 10 ** ((cfg.tx_power_dbm - rssi) / (10 * cfg.path_loss_exponent))
        return max(cfg.min_distance_m, min(cfg.max_distance_m, distance))

    def signal_percent(self, rssi: float) -> int:
        """
        0-100 proximity percentage, piecewise-linear in the distance estimate.
        """
        distance = self.distance_m(rssi)
        percent = 0.0
        for start, end, p_start, p_end in PERCENT_SEGMENTS:
            if distance < end:
                frac = (distance - start) / (end - start)
                percent = p_start + (p_end - p_start) * frac
                break
        return max(0, min(100, round_half_away(percent)))

    def dynamic_threshold(self, rssi: float, quality: float) -> int:
        """
        Reach threshold (dBm) for the current signal: strong, high-quality
        signals are held to a tighter threshold.
        """
        for quality_cut, level in self.cfg.threshold_tiers:
            if quality > quality_cut and rssi >= level:
                return level
        return self.cfg.fallback_threshold_dbm

    def adaptive_stable_samples(self, quality: float) -> int:
        """
        Consecutive qualifying samples required before a waypoint is reached.
        """
        for quality_cut, samples in self.cfg.stable_sample_tiers:
            if quality > quality_cut:
                return samples
        return self.cfg.fallback_stable_samples

    def passes_gate(self, rssi: float, quality: float) -> bool:
        """
        Corroborating check an unreached waypoint must pass before its
        state machine is fed: quality, percentage and distance must all agree.
        """
        cfg = self.cfg
        return (
            quality > cfg.gate_quality
            and self.signal_percent(rssi) >= cfg.gate_percent
            and self.distance_m(rssi) < cfg.gate_distance_m
        )
