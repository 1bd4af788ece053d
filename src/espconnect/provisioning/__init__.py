"""
Device provisioning module for espconnect.

Provides the BLE provisioning workflow:
- Bounded discovery of nearby peripherals
- Target device filtering
- Wi-Fi credential delivery
- Registration of provisioned devices
"""

from espconnect.provisioning.filters import (
    TargetFilter,
    any_device,
    name_contains,
    target_filter_from_config,
)
from espconnect.provisioning.session import (
    DeliveryOutcome,
    ProvisioningSession,
    SessionEvent,
    SessionEventType,
    SessionStatus,
)

__all__ = [
    "ProvisioningSession",
    "SessionStatus",
    "SessionEvent",
    "SessionEventType",
    "DeliveryOutcome",
    "TargetFilter",
    "any_device",
    "name_contains",
    "target_filter_from_config",
]
