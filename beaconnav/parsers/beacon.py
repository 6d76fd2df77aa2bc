"""
Beacon frame codec: decode iBeacon / AltBeacon manufacturer payloads into
`BeaconFrame` values, and build the same payloads for beacon mode.
"""

import uuid as uuidlib
from typing import Mapping

from beaconnav.analysis.types import AltBeacon, BeaconFrame, IBeacon, Unrecognized

APPLE_COMPANY_ID   = 0x004C
IBEACON_HEADER     = b"\x02\x15"
ALTBEACON_HEADER   = b"\xbe\xac"
RADIUS_COMPANY_ID  = 0x0118  # AltBeacon reference manufacturer
UUID_START, UUID_END = 2, 18
FULL_FRAME_LEN     = 23      # header + uuid + major + minor + power
DEFAULT_TX_POWER   = -59


def format_uuid(raw: bytes) -> str:
    """
    Render 16 bytes as a canonical dashed, upper-case UUID string.

    Parameters
    ----------
    raw : bytes
        Exactly 16 bytes.

    Returns
    -------
    str
        e.g. "00000001-0000-0000-0000-000000000001".
    """
    h = raw.hex().upper()
    return f"{h[0:8]}-{h[8:12]}-{h[12:16]}-{h[16:20]}-{h[20:32]}"


def normalize_uuid(value: str) -> str:
    """
    Comparison key for UUID-ish strings: upper case, no dashes or braces.
    """
    return value.upper().replace("-", "").strip("{}")


def _decode_body(data: bytes, frame_type: type) -> BeaconFrame:
    uuid = format_uuid(data[UUID_START:UUID_END])
    if len(data) < FULL_FRAME_LEN:
        return frame_type(uuid=uuid)
    return frame_type(
        uuid=uuid,
        major=int.from_bytes(data[18:20], "big"),
        minor=int.from_bytes(data[20:22], "big"),
        power=int.from_bytes(data[22:23], "big", signed=True),
    )


def decode_frame(manufacturer_data: Mapping[int, bytes]) -> BeaconFrame:
    """
    Decode the first recognizable beacon frame in an advertisement.

    The Apple company entry is tried for iBeacon framing first, then every
    entry for AltBeacon framing. Short or malformed payloads simply do not
    match.
    """
    apple = manufacturer_data.get(APPLE_COMPANY_ID)
    if apple is not None and len(apple) >= UUID_END and bytes(apple[:2]) == IBEACON_HEADER:
        return _decode_body(bytes(apple), IBeacon)

    for data in manufacturer_data.values():
        if len(data) >= UUID_END and bytes(data[:2]) == ALTBEACON_HEADER:
            return _decode_body(bytes(data), AltBeacon)

    return Unrecognized()


def _identifiers(uuid: str, major: int, minor: int, tx_power: int) -> bytes:
    return (
        uuidlib.UUID(uuid).bytes
        + major.to_bytes(2, "big")
        + minor.to_bytes(2, "big")
        + tx_power.to_bytes(1, "big", signed=True)
    )


def build_ibeacon_payload(uuid: str, major: int, minor: int, tx_power: int = DEFAULT_TX_POWER) -> dict[int, bytes]:
    """
    Manufacturer data a phone in beacon mode advertises as an iBeacon.
    """
    return {APPLE_COMPANY_ID: IBEACON_HEADER + _identifiers(uuid, major, minor, tx_power)}


def build_altbeacon_payload(
    uuid: str,
    major: int,
    minor: int,
    tx_power: int = DEFAULT_TX_POWER,
    company_id: int = RADIUS_COMPANY_ID,
) -> dict[int, bytes]:
    """
    Manufacturer data for an AltBeacon advertisement (with the trailing
    reserved byte).
    """
    return {company_id: ALTBEACON_HEADER + _identifiers(uuid, major, minor, tx_power) + b"\x00"}
