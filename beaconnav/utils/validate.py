"""
Pydantic schemas validating everything that enters or leaves the core:
route files, recorded traces, HTTP bodies and responses.
"""

from typing import Optional
from pydantic import BaseModel, Field, field_validator, model_validator

from beaconnav.analysis.types import ScanResult
from beaconnav.analysis.waypoint import Waypoint


class WaypointSpec(BaseModel):
    """
    One configured waypoint of a route.
    """
    id: str
    label: str
    order: int = Field(ge=1)
    uuid: Optional[str] = None
    device_ids: list[str] = []

    def to_waypoint(self) -> Waypoint:
        return Waypoint(
            id=self.id,
            label=self.label,
            order=self.order,
            uuid=self.uuid,
            device_ids=list(self.device_ids),
        )


class RouteConfig(BaseModel):
    """
    Ordered list of waypoints for one navigation session.
    """
    waypoints: list[WaypointSpec]

    @model_validator(mode="after")
    def _unique_ids_and_orders(self) -> "RouteConfig":
        ids = [w.id for w in self.waypoints]
        orders = [w.order for w in self.waypoints]
        if len(set(ids)) != len(ids):
            raise ValueError("waypoint ids must be unique")
        if len(set(orders)) != len(orders):
            raise ValueError("waypoint orders must be unique")
        return self

    @classmethod
    def default(cls) -> "RouteConfig":
        """Three phones in beacon mode, as shipped with the app."""
        return cls(waypoints=[
            WaypointSpec(id="BEACON_1", label="Entry Point", order=1,
                         uuid="00000001-0000-0000-0000-000000000001"),
            WaypointSpec(id="BEACON_2", label="Midpoint", order=2,
                         uuid="00000002-0000-0000-0000-000000000002"),
            WaypointSpec(id="BEACON_3", label="Destination", order=3,
                         uuid="00000003-0000-0000-0000-000000000003"),
        ])

    def build(self) -> list[Waypoint]:
        return [w.to_waypoint() for w in sorted(self.waypoints, key=lambda w: w.order)]


class ScanRecord(BaseModel):
    """
    Normalized record for a single advertisement, as found in traces and
    POSTed to the live API. Manufacturer data bytes are lists of ints.
    """
    device_id: str
    rssi: int
    name: Optional[str] = None
    manufacturer_data: dict[int, list[int]] = {}
    service_uuids: list[str] = []

    @field_validator("manufacturer_data")
    @classmethod
    def _bytes_in_range(cls, v: dict[int, list[int]]) -> dict[int, list[int]]:
        for company, payload in v.items():
            if not 0 <= company <= 0xFFFF:
                raise ValueError(f"company id out of range: {company}")
            if any(not 0 <= b <= 0xFF for b in payload):
                raise ValueError(f"payload for company {company} holds non-byte values")
        return v

    def to_scan_result(self) -> ScanResult:
        return ScanResult(
            device_id=self.device_id,
            rssi=self.rssi,
            name=self.name,
            manufacturer_data={k: bytes(v) for k, v in self.manufacturer_data.items()},
            service_uuids=list(self.service_uuids),
        )


class TraceBatch(BaseModel):
    """
    One line of a recorded scan trace: a batch delivered at `ts` seconds.
    """
    ts: float
    results: list[ScanRecord] = []


class WaypointView(BaseModel):
    """
    Live waypoint state exposed upward.
    """
    id: str
    label: str
    order: int
    reached: bool
    stable_count: int


class SignalView(BaseModel):
    """
    Waypoint state plus display helpers for its signal.
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


class SessionSummary(BaseModel):
    """
    Counters for one navigation session.
    """
    waypoints: int
    completed_waypoints: int
    total_detections: int
    scan_cycles: int
    active_signals: list[str]
