# beaconnav/scanner.py
"""
BLE scanning backend built on bleak.
"""

from __future__ import annotations

import asyncio
from typing import Callable

from bleak import BleakScanner
from bleak.backends.device import BLEDevice
from bleak.backends.scanner import AdvertisementData

from beaconnav.analysis.types import ScanResult
from beaconnav.utils.log import get_logger

logger = get_logger(__name__)

RESTART_SETTLE_S = 0.2  # pause between stopping and restarting the scan


def to_scan_result(device: BLEDevice, adv: AdvertisementData) -> ScanResult:
    """
    Convert a bleak advertisement into the core's `ScanResult`.
    """
    return ScanResult(
        device_id=device.address.upper(),
        rssi=adv.rssi,
        name=adv.local_name or device.name,
        manufacturer_data=dict(adv.manufacturer_data),
        service_uuids=list(adv.service_uuids),
    )


class BleakBackend:
    """
    Continuous active scan, each advertisement delivered as a one-result batch.
    """
    def __init__(self) -> None:
        self._scanner: BleakScanner | None = None
        self._on_results: Callable[[list[ScanResult]], None] | None = None

    def _detection_callback(self, device: BLEDevice, adv: AdvertisementData) -> None:
        if self._on_results is not None:
            self._on_results([to_scan_result(device, adv)])

    async def start(self, on_results: Callable[[list[ScanResult]], None]) -> None:
        self._on_results = on_results
        self._scanner = BleakScanner(detection_callback=self._detection_callback)
        await self._scanner.start()
        logger.info("BLE scan started")

    async def restart(self) -> None:
        """
        Stop and start the scan again; some platforms stop reporting
        duplicates from long-running scans.
        """
        if self._scanner is None:
            return
        await self._scanner.stop()
        await asyncio.sleep(RESTART_SETTLE_S)
        await self._scanner.start()

    async def stop(self) -> None:
        if self._scanner is not None:
            await self._scanner.stop()
            self._scanner = None
        self._on_results = None
        logger.info("BLE scan stopped")
