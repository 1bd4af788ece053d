"""
BLE transport contract.

The provisioning session only depends on these few calls, so any BLE stack
(or a test double) can sit behind it.
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Any, AsyncIterator, Dict, Optional


@dataclass
class ScanResult:
    """A peripheral seen during one scan."""
    identifier: str
    display_name: str = ""
    signal_strength: Optional[int] = None  # RSSI in dBm

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary."""
        return {
            "identifier": self.identifier,
            "display_name": self.display_name,
            "signal_strength": self.signal_strength,
        }


class BLEConnection(ABC):
    """An established connection to one peripheral."""

    @abstractmethod
    async def write_credentials(self, ssid: str, password: str) -> bool:
        """
        Transmit Wi-Fi credentials.

        Returns:
            True if the device acknowledged them.

        Raises:
            TransportError: if the connection broke during the write.
        """

    @abstractmethod
    async def disconnect(self) -> None:
        """Close the connection. Safe to call more than once."""


class BLETransport(ABC):
    """Scanning and connecting."""

    @abstractmethod
    def scan(self, duration: float) -> AsyncIterator[ScanResult]:
        """
        Discover peripherals for ``duration`` seconds.

        Results are yielded in the order the stack reports them, duplicates
        included. The iterator ends when the window elapses.
        """

    @abstractmethod
    async def connect(self, identifier: str) -> BLEConnection:
        """
        Connect to a peripheral.

        Raises:
            TransportError: if the connection could not be established.
        """
