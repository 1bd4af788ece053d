"""
Pytest configuration and shared fixtures for espconnect tests.
"""

import asyncio
import os
import sys
import tempfile
from pathlib import Path
from typing import Generator, List, Optional

import pytest

# Add src to path for imports
sys.path.insert(0, str(Path(__file__).parent.parent / "src"))

from espconnect.ble.transport import BLEConnection, BLETransport, ScanResult  # noqa: E402
from espconnect.registry.registry import DeviceRegistry  # noqa: E402
from espconnect.registry.storage import MemoryStorage  # noqa: E402


# ============================================================================
# Temporary Directory Fixtures
# ============================================================================

@pytest.fixture
def temp_dir() -> Generator[Path, None, None]:
    """Create a temporary directory for test files."""
    with tempfile.TemporaryDirectory() as tmpdir:
        yield Path(tmpdir)


@pytest.fixture
def temp_config_file(temp_dir: Path) -> Path:
    """Create a temporary config file."""
    config_path = temp_dir / "config.yaml"
    config_path.write_text("""
version: 1
scan:
  duration_seconds: 8.0
target:
  name_tags: [ESP32, ESP-C3]
  case_sensitive: false
storage:
  path: /tmp/espconnect-test/devices.yaml
""")
    return config_path


# ============================================================================
# Fake BLE Transport
# ============================================================================

class FakeConnection(BLEConnection):
    """Scripted connection: acknowledges, fails, or waits to be released."""

    def __init__(
        self,
        acknowledge: bool = True,
        error: Optional[Exception] = None,
        hold: bool = False,
        ignore_cancel: bool = False,
    ):
        self.acknowledge = acknowledge
        self.error = error
        self.hold = hold
        self.ignore_cancel = ignore_cancel
        self.release = asyncio.Event()
        self.writes: List[tuple] = []
        self.disconnect_count = 0

    async def write_credentials(self, ssid: str, password: str) -> bool:
        self.writes.append((ssid, password))

        if self.hold:
            try:
                await self.release.wait()
            except asyncio.CancelledError:
                if not self.ignore_cancel:
                    raise

        if self.error is not None:
            raise self.error
        return self.acknowledge

    async def disconnect(self) -> None:
        self.disconnect_count += 1


class FakeTransport(BLETransport):
    """Transport replaying fixed scan results."""

    def __init__(
        self,
        results: Optional[List[ScanResult]] = None,
        connection: Optional[FakeConnection] = None,
        scan_error: Optional[Exception] = None,
        connect_error: Optional[Exception] = None,
        hold_scan: bool = False,
    ):
        self.results = list(results or [])
        self.connection = connection
        self.scan_error = scan_error
        self.connect_error = connect_error
        self.hold_scan = hold_scan
        self.scan_durations: List[float] = []
        self.connect_calls: List[str] = []
        self.scan_closed = False

    async def scan(self, duration: float):
        self.scan_durations.append(duration)
        try:
            if self.scan_error is not None:
                raise self.scan_error
            for result in self.results:
                yield result
                await asyncio.sleep(0)
            if self.hold_scan:
                await asyncio.Event().wait()
        finally:
            self.scan_closed = True

    async def connect(self, identifier: str) -> FakeConnection:
        self.connect_calls.append(identifier)
        if self.connect_error is not None:
            raise self.connect_error
        if self.connection is None:
            self.connection = FakeConnection()
        return self.connection


@pytest.fixture
def make_transport():
    """Factory for FakeTransport objects."""
    return FakeTransport


@pytest.fixture
def make_connection():
    """Factory for FakeConnection objects."""
    return FakeConnection


# ============================================================================
# Registry Fixtures
# ============================================================================

@pytest.fixture
def memory_storage() -> MemoryStorage:
    return MemoryStorage()


@pytest.fixture
def registry(memory_storage: MemoryStorage) -> DeviceRegistry:
    """Empty registry on in-memory storage."""
    return DeviceRegistry(memory_storage)


# ============================================================================
# Scan Result Fixtures
# ============================================================================

@pytest.fixture
def esp32_result() -> ScanResult:
    return ScanResult(identifier="AA:BB:CC:DD:EE:01", display_name="ESP32-Kitchen", signal_strength=-52)


@pytest.fixture
def other_result() -> ScanResult:
    return ScanResult(identifier="11:22:33:44:55:66", display_name="Fitness Band", signal_strength=-70)


# ============================================================================
# Configuration Fixtures
# ============================================================================

@pytest.fixture
def sample_config():
    """Return a sample configuration dictionary."""
    return {
        "version": 1,
        "scan": {
            "duration_seconds": 3.0,
            "grace_seconds": 0.5,
        },
        "target": {
            "name_tags": ["ESP32"],
            "case_sensitive": True,
        },
        "delivery": {
            "connect_timeout_seconds": 4.0,
            "delivery_timeout_seconds": 6.0,
            "send_delay_seconds": 0.5,
        },
        "storage": {
            "path": "~/espconnect/devices.yaml",
            "key": "known_devices",
        },
    }


# ============================================================================
# Clean Environment Fixture
# ============================================================================

@pytest.fixture(autouse=True)
def clean_environment(monkeypatch):
    """Ensure clean environment for each test."""
    # Remove any espconnect env vars that might interfere
    for key in list(os.environ.keys()):
        if key.startswith("ESPCONNECT_"):
            monkeypatch.delenv(key, raising=False)
