"""
Core espconnect components.

This module contains the device manager, configuration, and error types.
"""

from espconnect.core.config import Config, load_config
from espconnect.core.errors import (
    BluetoothPermissionError,
    InvalidStateError,
    ProvisioningError,
    ProvisioningTimeoutError,
    StorageError,
    TransportError,
    ValidationError,
)
from espconnect.core.manager import DeviceManager

__all__ = [
    "Config",
    "load_config",
    "DeviceManager",
    "ProvisioningError",
    "BluetoothPermissionError",
    "StorageError",
    "ValidationError",
    "TransportError",
    "ProvisioningTimeoutError",
    "InvalidStateError",
]
