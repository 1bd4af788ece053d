"""
Bluetooth Low Energy collaborators.

Provides:
- The transport contract used by provisioning sessions
- A bleak-backed transport
- Bluetooth/location permission checks
"""

from espconnect.ble.transport import BLEConnection, BLETransport, ScanResult
from espconnect.ble.bleak_transport import BleakConnection, BleakTransport
from espconnect.ble.permissions import (
    BleakPermissionProvider,
    PermissionProvider,
    PermissionStatus,
    StaticPermissionProvider,
)

__all__ = [
    "BLEConnection",
    "BLETransport",
    "ScanResult",
    "BleakConnection",
    "BleakTransport",
    "PermissionProvider",
    "PermissionStatus",
    "BleakPermissionProvider",
    "StaticPermissionProvider",
]
