# beaconnav/analysis/config.py

from dataclasses import dataclass

@dataclass
class NavigationConfig:
    """
    Calibration constants for the BLE waypoint-tracking pipeline.

    The defaults were tuned empirically for one physical deployment
    (phones broadcasting as beacons at -59 dBm along an indoor path); treat
    them as calibration data rather than derived values.

    Attributes
    ----------
    history_size
        Raw RSSI samples kept per beacon.
    outlier_min_samples
        History length from which median outlier rejection kicks in.
    outlier_threshold_dbm
        Maximum deviation (dBm) from the median before a sample is dropped.
    recency_weight_base
        Base of the exponential recency weight (`base ** i`, i = 0 oldest).
    smoothing_alpha
        Weight of the new weighted average in the exponential smoother.
    initial_rssi
        Smoothed RSSI (dBm) assumed for a beacon never seen, "far away".
    quality_min_samples
        History length below which quality is the fixed default.
    quality_default
        Low-confidence quality used for short histories.
    variance_scale
        Variance (dBm²) at which consistency reaches zero.
    consistency_power
        Exponent penalising inconsistent signals super-linearly.
    strength_floor_dbm, strength_ceiling_dbm
        dBm range mapped linearly onto the [0, 1] strength score.
    frequency_saturation
        Detections needed for a full frequency score.
    consistency_weight, strength_weight, frequency_weight
        Blend of the three quality components.
    tx_power_dbm
        Measured RSSI at 1 m for the path-loss model.
    path_loss_exponent
        Environmental attenuation exponent.
    near_field_dbm
        RSSI at or above which the beacon is considered touching.
    min_distance_m, max_distance_m
        Bounds of the distance estimate.
    threshold_tiers
        (quality cut, RSSI level) pairs, tried in order; a tier applies when
        quality exceeds the cut and RSSI reaches the level.
    fallback_threshold_dbm
        Threshold used when no tier applies.
    stable_sample_tiers
        (quality cut, required samples) pairs, tried in order.
    fallback_stable_samples
        Confirmations required for low-quality signals.
    gate_quality, gate_percent, gate_distance_m
        Corroborating conditions an unreached waypoint must meet before its
        state machine is fed.
    significant_delta_dbm
        Smoothed RSSI change that triggers a re-ranking of active signals.
    timeout_tick_s
        Interval (s) of the staleness eviction tick.
    stale_after_s
        Silence (s) after which an unreached beacon is evicted.
    restart_interval_s
        Interval (s) between forced scan restarts.
    active_rssi_floor_dbm, active_quality_floor
        Minimum smoothed RSSI / quality for an unreached waypoint to be
        listed as active.
    rank_rssi_weight, rank_quality_weight
        Composite ranking score is `rssi * (rssi_weight + quality_weight * q)`.
    """
    history_size:          int     = 15
    outlier_min_samples:   int     = 5
    outlier_threshold_dbm: int     = 20
    recency_weight_base:   float   = 1.2
    smoothing_alpha:       float   = 0.15
    initial_rssi:          float   = -100.0

    quality_min_samples:   int     = 3
    quality_default:       float   = 0.3
    variance_scale:        float   = 200.0
    consistency_power:     float   = 1.5
    strength_floor_dbm:    float   = -100.0
    strength_ceiling_dbm:  float   = -30.0
    frequency_saturation:  int     = 50
    consistency_weight:    float   = 0.5
    strength_weight:       float   = 0.3
    frequency_weight:      float   = 0.2

    tx_power_dbm:          float   = -59.0
    path_loss_exponent:    float   = 2.4
    near_field_dbm:        float   = -30.0
    min_distance_m:        float   = 0.1
    max_distance_m:        float   = 100.0

    threshold_tiers:         tuple[tuple[float, int], ...] = ((0.60, -55), (0.50, -60), (0.40, -65))
    fallback_threshold_dbm:  int                           = -65
    stable_sample_tiers:     tuple[tuple[float, int], ...] = ((0.70, 3), (0.60, 4), (0.50, 5))
    fallback_stable_samples: int                           = 6

    gate_quality:          float   = 0.60
    gate_percent:          int     = 60
    gate_distance_m:       float   = 1.5

    significant_delta_dbm: float   = 2.0
    timeout_tick_s:        float   = 2.0
    stale_after_s:         float   = 8.0
    restart_interval_s:    float   = 20.0

    active_rssi_floor_dbm: float   = -95.0
    active_quality_floor:  float   = 0.1
    rank_rssi_weight:      float   = 0.7
    rank_quality_weight:   float   = 0.3

    @classmethod
    def reference(cls):
        """Preset matching the reference indoor deployment (default thresholds)."""
        return cls()
