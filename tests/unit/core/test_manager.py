"""
Tests for espconnect.core.manager module.
"""

from unittest.mock import MagicMock

import pytest

from espconnect.ble.permissions import PermissionStatus, StaticPermissionProvider
from espconnect.core.config import Config, ScanConfig
from espconnect.core.errors import BluetoothPermissionError, StorageError
from espconnect.core.manager import DeviceManager
from espconnect.provisioning.session import SessionStatus
from espconnect.registry.registry import DeviceRecord, encode_record
from espconnect.registry.storage import MemoryStorage, YamlFileStorage


@pytest.fixture
def fast_config():
    config = Config()
    config.scan = ScanConfig(duration_seconds=0.2, grace_seconds=0.2)
    config.delivery.send_delay_seconds = 0
    return config


def make_manager(config, transport, storage=None, status=PermissionStatus.GRANTED):
    return DeviceManager(
        config=config,
        transport=transport,
        storage=storage if storage is not None else MemoryStorage(),
        permission_provider=StaticPermissionProvider(status),
    )


class TestDeviceManager:
    """Tests for DeviceManager class."""

    def test_defaults_use_yaml_storage(self, temp_dir, make_transport):
        """Test the configured storage path is used when none is given."""
        config = Config()
        config.storage.path = str(temp_dir / "devices.yaml")

        manager = DeviceManager(config=config, transport=make_transport(),
                                permission_provider=StaticPermissionProvider())

        assert isinstance(manager.registry._storage, YamlFileStorage)
        assert manager.registry._storage.path == temp_dir / "devices.yaml"

    @pytest.mark.asyncio
    async def test_initialize_loads_devices(self, fast_config, make_transport):
        """Test startup asks for permission and loads saved devices."""
        storage = MemoryStorage({"devices": [encode_record(DeviceRecord("AA:BB", "ESP32-1"))]})
        provider = StaticPermissionProvider()
        provider.request_bluetooth_and_location_access = MagicMock(
            wraps=provider.request_bluetooth_and_location_access
        )
        manager = DeviceManager(fast_config, make_transport(), storage, provider)

        await manager.initialize()
        await manager.initialize()

        assert manager.permission == PermissionStatus.GRANTED
        assert [d.identifier for d in manager.devices()] == ["AA:BB"]
        assert provider.request_bluetooth_and_location_access.call_count == 1

    @pytest.mark.asyncio
    async def test_initialize_with_storage_error(self, fast_config, make_transport):
        """Test unavailable storage leaves an empty list and a recorded error."""
        storage = MagicMock()
        storage.read_list.side_effect = StorageError("unavailable")
        manager = make_manager(fast_config, make_transport(), storage)

        await manager.initialize()

        assert manager.devices() == []
        assert isinstance(manager.storage_error, StorageError)
        assert manager.get_status()["storage_error"] == "unavailable"

    @pytest.mark.asyncio
    async def test_refresh_picks_up_external_changes(self, fast_config, make_transport):
        """Test refresh reloads from storage."""
        storage = MemoryStorage()
        manager = make_manager(fast_config, make_transport(), storage)
        await manager.initialize()

        storage.write_list("devices", ["SERIAL-1"])

        assert [d.identifier for d in manager.refresh()] == ["SERIAL-1"]

    @pytest.mark.asyncio
    async def test_remove_device(self, fast_config, make_transport):
        """Test forgetting a device."""
        storage = MemoryStorage({"devices": ["SERIAL-1", "SERIAL-2"]})
        manager = make_manager(fast_config, make_transport(), storage)
        await manager.initialize()

        assert manager.remove_device("SERIAL-1") is True
        assert manager.remove_device("SERIAL-9") is False
        assert [d.identifier for d in manager.devices()] == ["SERIAL-2"]

    @pytest.mark.asyncio
    async def test_provisioning_flow(self, fast_config, make_transport, esp32_result, other_result):
        """Test a full scan, select and send adds the device."""
        manager = make_manager(fast_config, make_transport(results=[other_result, esp32_result]))
        await manager.initialize()
        session = manager.open_session()

        await session.start_scan()
        assert session.select_device(other_result.identifier) is False
        assert session.select_device(esp32_result.identifier) is True
        outcome = await session.submit_credentials("HomeWiFi", "secret")

        assert outcome.succeeded is True
        assert [d.identifier for d in manager.devices()] == [esp32_result.identifier]
        assert manager.get_status()["devices"] == 1

    @pytest.mark.asyncio
    async def test_open_session_replaces_previous(self, fast_config, make_transport, esp32_result):
        """Test only one session is active at a time."""
        manager = make_manager(fast_config, make_transport(results=[esp32_result]))
        await manager.initialize()

        first = manager.open_session()
        await first.start_scan()
        events = []
        first.subscribe(events.append)

        second = manager.open_session()

        assert manager.session is second
        assert first.status == SessionStatus.IDLE
        assert second.status == SessionStatus.IDLE

        count = len(events)
        await first.start_scan()
        assert len(events) == count

    @pytest.mark.asyncio
    async def test_denied_permission_blocks_scanning(self, fast_config, make_transport):
        """Test a denied startup request makes scans fail."""
        manager = make_manager(fast_config, make_transport(), status=PermissionStatus.DENIED)
        await manager.initialize()
        session = manager.open_session()

        with pytest.raises(BluetoothPermissionError):
            session.start_scan()

    def test_session_before_initialize(self, fast_config, make_transport):
        """Test a session opened before startup has no Bluetooth access."""
        manager = make_manager(fast_config, make_transport())
        session = manager.open_session()

        with pytest.raises(BluetoothPermissionError):
            session.start_scan()

    def test_close_session(self, fast_config, make_transport):
        """Test closing the session."""
        manager = make_manager(fast_config, make_transport())
        manager.open_session()

        manager.close_session()
        manager.close_session()

        assert manager.session is None
        assert manager.get_status()["session"] is None

    @pytest.mark.asyncio
    async def test_get_status(self, fast_config, make_transport):
        """Test the status snapshot."""
        manager = make_manager(fast_config, make_transport())
        assert manager.get_status()["permission"] is None

        await manager.initialize()
        manager.open_session()
        status = manager.get_status()

        assert status["permission"] == "granted"
        assert status["devices"] == 0
        assert status["storage_error"] is None
        assert status["session"]["status"] == "idle"
