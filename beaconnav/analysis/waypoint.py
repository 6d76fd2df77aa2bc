# beaconnav/analysis/waypoint.py

from __future__ import annotations

import math
from dataclasses import dataclass, field

# -----------------------------------------------------------------------------
DECAY_FACTOR      = 0.8  # stable counter multiplier on a weak sample
MAX_DECAYED_COUNT = 10   # ceiling of the counter after decay
# -----------------------------------------------------------------------------

@dataclass
class Waypoint:
    """
    Navigation checkpoint tied to one beacon.

    A waypoint is reached after enough consecutive samples at or above the
    reach threshold. Once reached it stays reached until `reset()`; weak or
    missing signal never clears it.

    Parameters
    ----------
    id : str
        Beacon identity this waypoint is keyed by.
    label : str
        Human-readable name.
    order : int
        1-based position in the route.
    uuid : str | None
        Beacon proximity UUID, if the beacon broadcasts iBeacon/AltBeacon frames.
    device_ids : list[str]
        Platform device identifiers known to belong to this beacon.
    reached : bool
        Whether arrival has been confirmed.
    stable_count : int
        Consecutive-qualifying-sample counter (never negative).
    """
    id: str
    label: str
    order: int
    uuid: str | None = None
    device_ids: list[str] = field(default_factory=list)
    reached: bool = False
    stable_count: int = 0

    def update_rssi(self, rssi: int, threshold: int, required_samples: int) -> bool:
        """
        Feed one (smoothed, rounded) RSSI reading.

        Returns True only on the call that flips the waypoint to reached.
        """
        if self.reached:
            return False

        if rssi >= threshold:
            self.stable_count += 1
            if self.stable_count >= required_samples:
                self.reached = True
                return True
        else:
            # weak sample: decay the counter, do not zero it
            decayed = math.floor(self.stable_count * DECAY_FACTOR)
            self.stable_count = max(0, min(MAX_DECAYED_COUNT, decayed))
        return False

    def reset(self) -> None:
        """Back to unreached with a cleared counter."""
        self.reached = False
        self.stable_count = 0

    def reset_counter(self) -> None:
        """Clear the counter only; reached state is kept."""
        self.stable_count = 0
