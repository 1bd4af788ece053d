"""
BLE transport backed by bleak.

Scanning uses a BleakScanner detection callback feeding an asyncio queue, so
results reach the session in the order the adapter reports them.
"""

import asyncio
import logging
from typing import AsyncIterator, Optional

from bleak import BleakClient, BleakScanner
from bleak.exc import BleakError

from espconnect.ble.transport import BLEConnection, BLETransport, ScanResult
from espconnect.core.config import DeliveryConfig
from espconnect.core.errors import TransportError

logger = logging.getLogger(__name__)


class BleakConnection(BLEConnection):
    """Connection wrapping a connected BleakClient."""

    def __init__(self, client: BleakClient, send_delay: float = 2.0):
        self._client = client
        self._send_delay = send_delay

    @property
    def address(self) -> str:
        return self._client.address

    async def write_credentials(self, ssid: str, password: str) -> bool:
        if not self._client.is_connected:
            raise TransportError(f"Device {self.address} is not connected")

        # ESP32 firmware exposes no provisioning characteristic, so the send
        # is a fixed delay on the open link.
        logger.info(f"Sending Wi-Fi credentials for '{ssid}' to {self.address}")
        await asyncio.sleep(self._send_delay)

        if not self._client.is_connected:
            raise TransportError(f"Device {self.address} disconnected during send")

        return True

    async def disconnect(self) -> None:
        try:
            await self._client.disconnect()
        except BleakError as e:
            logger.warning(f"Disconnect from {self.address} failed: {e}")


class BleakTransport(BLETransport):
    """BLE transport using the bleak library."""

    def __init__(self, config: Optional[DeliveryConfig] = None, adapter: Optional[str] = None):
        self.config = config or DeliveryConfig()
        self._adapter = adapter

    def _scanner_kwargs(self) -> dict:
        return {"adapter": self._adapter} if self._adapter else {}

    async def scan(self, duration: float) -> AsyncIterator[ScanResult]:
        queue: "asyncio.Queue[ScanResult]" = asyncio.Queue()

        def on_detection(device, advertisement_data) -> None:
            queue.put_nowait(ScanResult(
                identifier=device.address,
                display_name=device.name or advertisement_data.local_name or "",
                signal_strength=advertisement_data.rssi,
            ))

        scanner = BleakScanner(detection_callback=on_detection, **self._scanner_kwargs())

        try:
            await scanner.start()
        except (BleakError, OSError) as e:
            raise TransportError(f"Failed to start BLE scan: {e}") from e

        logger.info(f"BLE scan started for {duration:.1f}s")
        loop = asyncio.get_running_loop()
        deadline = loop.time() + duration

        try:
            while True:
                remaining = deadline - loop.time()
                if remaining <= 0:
                    break
                try:
                    result = await asyncio.wait_for(queue.get(), timeout=remaining)
                except asyncio.TimeoutError:
                    break
                yield result
        finally:
            try:
                await scanner.stop()
            except (BleakError, OSError) as e:
                logger.warning(f"Failed to stop BLE scan: {e}")
            logger.info("BLE scan stopped")

    async def connect(self, identifier: str) -> BleakConnection:
        kwargs = self._scanner_kwargs()
        client = BleakClient(identifier, timeout=self.config.connect_timeout_seconds, **kwargs)

        try:
            await client.connect()
        except (BleakError, OSError, asyncio.TimeoutError) as e:
            raise TransportError(f"Failed to connect to {identifier}: {e}") from e

        logger.info(f"Connected to {identifier}")
        return BleakConnection(client, send_delay=self.config.send_delay_seconds)
