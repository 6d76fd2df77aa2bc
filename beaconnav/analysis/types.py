# beaconnav/analysis/types.py

from __future__ import annotations

from dataclasses import dataclass, field
from typing import List, Union

@dataclass
class ScanResult:
    """
    Single advertisement seen by the BLE scanner.

    Parameters
    ----------
    device_id : str
        Platform device identifier (MAC address or OS-assigned UUID).
    rssi : int
        Received signal strength in dBm.
    name : str | None
        Advertised local name, if any.
    manufacturer_data : dict[int, bytes]
        Raw manufacturer payloads keyed by 16-bit company ID.
    service_uuids : List[str]
        Advertised service UUID strings.
    """
    device_id: str
    rssi: int
    name: str | None = None
    manufacturer_data: dict[int, bytes] = field(default_factory=dict)
    service_uuids: List[str] = field(default_factory=list)

@dataclass(frozen=True)
class Unrecognized:
    """Manufacturer data matching no known beacon framing."""

@dataclass(frozen=True)
class IBeacon:
    """
    Apple iBeacon frame (company 0x004C, header 0x02 0x15).

    Parameters
    ----------
    uuid : str
        Proximity UUID, dashed upper-case hex.
    major, minor : int | None
        Big-endian identifiers, None when the payload was truncated.
    power : int | None
        Calibrated RSSI at 1 m (signed dBm), None when truncated.
    """
    uuid: str
    major: int | None = None
    minor: int | None = None
    power: int | None = None

@dataclass(frozen=True)
class AltBeacon:
    """
    AltBeacon frame (header 0xBE 0xAC under any company ID).

    Same layout as `IBeacon` for the first 23 bytes.
    """
    uuid: str
    major: int | None = None
    minor: int | None = None
    power: int | None = None

BeaconFrame = Union[Unrecognized, IBeacon, AltBeacon]

@dataclass(frozen=True)
class WaypointReached:
    """Emitted once when a waypoint's state machine confirms arrival."""
    waypoint_id: str
    label: str
    order: int
    completed: int

@dataclass(frozen=True)
class SignalLost:
    """Emitted when an unreached waypoint's beacon is evicted as stale."""
    waypoint_id: str
    silent_for_s: float

@dataclass(frozen=True)
class ActiveSignalsChanged:
    """Emitted whenever the ranked active-signal list is recomputed."""
    waypoint_ids: tuple[str, ...]

@dataclass(frozen=True)
class ScanRestarted:
    """Emitted when the underlying scan is stopped and restarted."""
    cycle: int

StateChange = Union[WaypointReached, SignalLost, ActiveSignalsChanged, ScanRestarted]

@dataclass
class SignalSnapshot:
    """
    Display view of one waypoint's live signal.

    Parameters
    ----------
    id, label, order, reached, stable_count
        Waypoint state.
    smoothed_rssi : float
        Filtered RSSI in dBm (-100 when unknown).
    quality : float
        Signal quality score in [0, 1].
    quality_label : str
        Human-readable quality band.
    signal_percent : int
        0-100 proximity percentage.
    distance_m : float
        Path-loss distance estimate in metres.
    distance_text : str
        Human-readable distance.
    detections : int
        Accepted detections since the last eviction.
    """
    id: str
    label: str
    order: int
    reached: bool
    stable_count: int
    smoothed_rssi: float
    quality: float
    quality_label: str
    signal_percent: int
    distance_m: float
    distance_text: str
    detections: int
