"""
Device manager - main coordinator for espconnect.

Owns the device registry, the permission decision and at most one
provisioning session at a time. A UI drives the manager and renders its
state.
"""

import logging
from typing import Any, Dict, List, Optional

from espconnect.ble.bleak_transport import BleakTransport
from espconnect.ble.permissions import (
    BleakPermissionProvider,
    PermissionProvider,
    PermissionStatus,
)
from espconnect.ble.transport import BLETransport
from espconnect.core.config import Config, load_config
from espconnect.core.errors import StorageError
from espconnect.provisioning.filters import target_filter_from_config
from espconnect.provisioning.session import ProvisioningSession
from espconnect.registry.registry import DeviceRecord, DeviceRegistry
from espconnect.registry.storage import KeyValueStorage, YamlFileStorage

logger = logging.getLogger(__name__)


class DeviceManager:
    """
    Coordinates the registry and provisioning sessions.

    The manager is responsible for:
    - Requesting Bluetooth access once at startup
    - Loading and refreshing the device registry
    - Creating and tearing down the provisioning session
    """

    def __init__(
        self,
        config: Optional[Config] = None,
        transport: Optional[BLETransport] = None,
        storage: Optional[KeyValueStorage] = None,
        permission_provider: Optional[PermissionProvider] = None,
    ):
        """
        Initialize the device manager.

        Args:
            config: Configuration; loaded from the default locations if None.
            transport: BLE transport; a BleakTransport if None.
            storage: Registry storage; a YAML file at the configured path if None.
            permission_provider: Permission source; probes the adapter if None.
        """
        self.config = config or load_config()

        if transport is None:
            transport = BleakTransport(self.config.delivery)

        if permission_provider is None:
            permission_provider = BleakPermissionProvider()

        if storage is None:
            storage = YamlFileStorage(self.config.storage.resolved_path)

        self._transport = transport
        self._permission_provider = permission_provider
        self.registry = DeviceRegistry(storage, key=self.config.storage.key)

        self._permission: Optional[PermissionStatus] = None
        self._session: Optional[ProvisioningSession] = None
        self.storage_error: Optional[StorageError] = None

    @property
    def permission(self) -> Optional[PermissionStatus]:
        """Permission decision, None before initialize()."""
        return self._permission

    @property
    def session(self) -> Optional[ProvisioningSession]:
        return self._session

    async def initialize(self) -> None:
        """Request Bluetooth access and load the registry."""
        if self._permission is None:
            self._permission = await self._permission_provider.request_bluetooth_and_location_access()
            logger.info(f"Bluetooth permission: {self._permission.value}")

        self.refresh()

    def refresh(self) -> List[DeviceRecord]:
        """
        Reload devices from storage.

        A storage failure is kept in storage_error and leaves an empty list.
        """
        try:
            devices = self.registry.load()
            self.storage_error = None
        except StorageError as e:
            logger.error(f"Failed to load devices: {e}")
            self.storage_error = e
            devices = []

        return devices

    def devices(self) -> List[DeviceRecord]:
        return self.registry.list()

    def remove_device(self, identifier: str) -> bool:
        """Forget a device. Returns False if it was not known."""
        return self.registry.remove(identifier)

    def open_session(self) -> ProvisioningSession:
        """
        Start a new provisioning flow.

        Any previous session is cancelled and closed first.
        """
        self.close_session()

        permission = self._permission
        if permission is None:
            logger.warning("Opening a session before initialize(), treating Bluetooth access as denied")
            permission = PermissionStatus.DENIED

        self._session = ProvisioningSession(
            transport=self._transport,
            registry=self.registry,
            is_target_device=target_filter_from_config(self.config.target),
            permission=permission,
            scan_config=self.config.scan,
            delivery_config=self.config.delivery,
        )
        logger.info("Provisioning session opened")
        return self._session

    def close_session(self) -> None:
        """Tear down the current provisioning flow, if any."""
        if self._session is None:
            return

        self._session.close()
        self._session = None
        logger.info("Provisioning session closed")

    def get_status(self) -> Dict[str, Any]:
        """
        Get current manager status.

        Returns:
            Dictionary containing permission, registry and session status.
        """
        return {
            "permission": self._permission.value if self._permission else None,
            "devices": len(self.registry),
            "storage_error": str(self.storage_error) if self.storage_error else None,
            "session": self._session.to_dict() if self._session else None,
        }
