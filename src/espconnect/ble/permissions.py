"""
Bluetooth and location permission checks.

The answer is requested once at startup and handed to provisioning
sessions; it is never re-requested automatically.
"""

import logging
from abc import ABC, abstractmethod
from enum import Enum
from typing import Optional

from bleak import BleakScanner
from bleak.exc import BleakError

logger = logging.getLogger(__name__)


class PermissionStatus(Enum):
    """Outcome of a permission request."""
    GRANTED = "granted"
    DENIED = "denied"


class PermissionProvider(ABC):
    """Source of the Bluetooth/location access decision."""

    @abstractmethod
    async def request_bluetooth_and_location_access(self) -> PermissionStatus:
        """Ask for access and report the decision."""


class StaticPermissionProvider(PermissionProvider):
    """Always returns the same decision."""

    def __init__(self, status: PermissionStatus = PermissionStatus.GRANTED):
        self.status = status

    async def request_bluetooth_and_location_access(self) -> PermissionStatus:
        return self.status


class BleakPermissionProvider(PermissionProvider):
    """
    Probe the adapter by briefly starting a scanner.

    On desktop platforms the OS prompts (or refuses) when a process first
    scans, so a failed start is reported as denied access.
    """

    def __init__(self, adapter: Optional[str] = None):
        self._adapter = adapter

    async def request_bluetooth_and_location_access(self) -> PermissionStatus:
        kwargs = {"adapter": self._adapter} if self._adapter else {}
        scanner = BleakScanner(**kwargs)

        try:
            await scanner.start()
            await scanner.stop()
        except (BleakError, OSError) as e:
            logger.warning(f"Bluetooth access denied or unavailable: {e}")
            return PermissionStatus.DENIED

        logger.info("Bluetooth access granted")
        return PermissionStatus.GRANTED
