"""Background BLE scanner that feeds device snapshots to the viewer."""

import asyncio
import logging
import queue
import sys
import threading
import time
from typing import Dict, List, Optional

try:
    from bleak import BleakScanner
    from bleak.backends.device import BLEDevice
    from bleak.backends.scanner import AdvertisementData
except ImportError:
    print("Error: 'bleak' is not installed.")
    print("Install dependencies with:  pip install bleview")
    sys.exit(1)

from bleview.devices import DeviceInfo, build_device
from bleview.state import PauseFlag

logger = logging.getLogger(__name__)

_PUBLISH_INTERVAL = 1.0           # seconds between snapshots
_PAUSE_CHECK_INTERVAL = 0.1       # seconds between pause-flag checks
_STOP_JOIN_TIMEOUT = 2


class DeviceScanner:
    """Runs BleakScanner on its own thread and publishes full snapshots.

    Every publish interval the complete list of known devices (in the
    order they were first seen) is put on *updates* if anything changed.
    The scanner is stopped while *pause* is set and restarted when it
    clears.
    """

    def __init__(self, updates: "queue.Queue", pause: PauseFlag,
                 publish_interval: float = _PUBLISH_INTERVAL,
                 active: bool = False,
                 adapter: Optional[str] = None,
                 min_rssi: Optional[int] = None,
                 name_filter: Optional[str] = None,
                 expire_after: Optional[float] = None):
        self.updates = updates
        self.pause = pause
        self.publish_interval = publish_interval
        self.active = active
        self.adapter = adapter
        self.min_rssi = min_rssi
        self.name_filter = name_filter
        self.expire_after = expire_after
        self.running = False
        self.error: Optional[BaseException] = None
        self._devices: Dict[str, DeviceInfo] = {}
        self._last_seen: Dict[str, float] = {}
        self._changed = False
        self._lock = threading.Lock()
        self._thread: Optional[threading.Thread] = None

    # ------------------------------------------------------------------
    # Detection
    # ------------------------------------------------------------------

    def detection_callback(self, device: BLEDevice, adv: AdvertisementData):
        if self.min_rssi is not None and adv.rssi < self.min_rssi:
            return
        name = device.name or adv.local_name or ""
        if self.name_filter is not None:
            if self.name_filter.lower() not in name.lower():
                return
        record = build_device(
            device.address, name, adv.rssi, adv.tx_power,
            adv.service_uuids, adv.manufacturer_data,
        )
        with self._lock:
            if record.id not in self._devices:
                logger.debug("New device %s (%s)", record.id, record.name)
            self._devices[record.id] = record
            self._last_seen[record.id] = time.monotonic()
            self._changed = True

    def _expire(self, now: float):
        if self.expire_after is None:
            return
        stale = [key for key, seen in self._last_seen.items()
                 if now - seen > self.expire_after]
        for key in stale:
            del self._devices[key]
            del self._last_seen[key]
            self._changed = True
        if stale:
            logger.debug("Expired %d device(s)", len(stale))

    def snapshot(self) -> List[DeviceInfo]:
        with self._lock:
            return list(self._devices.values())

    def publish(self, now: Optional[float] = None) -> bool:
        """Queue a snapshot if the device set changed since the last one."""
        if now is None:
            now = time.monotonic()
        with self._lock:
            self._expire(now)
            if not self._changed:
                return False
            self._changed = False
            devices = list(self._devices.values())
        self.updates.put(devices)
        return True

    # ------------------------------------------------------------------
    # Scan loop
    # ------------------------------------------------------------------

    def _make_scanner(self) -> BleakScanner:
        kwargs: dict = {"detection_callback": self.detection_callback}
        if self.active:
            kwargs["scanning_mode"] = "active"
        if self.adapter:
            kwargs["adapter"] = self.adapter
        return BleakScanner(**kwargs)

    async def run(self):
        scanner = self._make_scanner()
        scanning = False
        last_publish = 0.0
        try:
            while self.running:
                paused = self.pause.is_paused()
                if paused and scanning:
                    await scanner.stop()
                    scanning = False
                    logger.info("Scanner stopped")
                elif not paused and not scanning:
                    await scanner.start()
                    scanning = True
                    logger.info("Scanner started")

                now = time.monotonic()
                if not paused and now - last_publish >= self.publish_interval:
                    self.publish(now)
                    last_publish = now
                await asyncio.sleep(_PAUSE_CHECK_INTERVAL)
        finally:
            if scanning:
                await scanner.stop()

    def _run(self):
        try:
            asyncio.run(self.run())
        except Exception as e:
            # backend errors vary by platform; report them after the UI exits
            self.error = e
            logger.exception("Scanner failed")
        finally:
            self.running = False

    def start(self):
        self.running = True
        self._thread = threading.Thread(target=self._run, daemon=True)
        self._thread.start()

    def stop(self):
        self.running = False
        if self._thread is not None:
            self._thread.join(timeout=_STOP_JOIN_TIMEOUT)
