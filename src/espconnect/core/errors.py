"""
Error taxonomy for espconnect.

Every failure surfaced by the registry, the BLE collaborators or a
provisioning session is a ProvisioningError. The concrete classes also
derive from the matching builtin where one exists, so callers can catch
either.
"""


class ProvisioningError(Exception):
    """Base class for all espconnect errors."""


class BluetoothPermissionError(ProvisioningError, PermissionError):
    """Bluetooth or location access was denied by the user or the OS."""


class StorageError(ProvisioningError):
    """Durable storage is unavailable or unreadable."""


class ValidationError(ProvisioningError, ValueError):
    """Malformed input supplied by the caller."""


class TransportError(ProvisioningError):
    """Connection to the device or credential delivery failed."""


class ProvisioningTimeoutError(ProvisioningError, TimeoutError):
    """A bounded wait elapsed before the device answered."""


class InvalidStateError(ProvisioningError):
    """Operation is not allowed in the session's current state."""
