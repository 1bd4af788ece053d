"""
espconnect - BLE provisioning core for ESP32 devices

Discovers ESP32 peripherals over Bluetooth Low Energy, sends them Wi-Fi
credentials, and keeps a persistent registry of provisioned devices.

A UI layer drives the DeviceManager and renders the state of its
provisioning session.
"""

__version__ = "1.0.0"
__author__ = "espconnect Team"

from espconnect.core.config import Config, load_config
from espconnect.core.manager import DeviceManager
from espconnect.provisioning.session import ProvisioningSession, SessionStatus
from espconnect.registry.registry import DeviceRecord, DeviceRegistry

__all__ = [
    "Config",
    "load_config",
    "DeviceManager",
    "ProvisioningSession",
    "SessionStatus",
    "DeviceRecord",
    "DeviceRegistry",
    "__version__",
]
