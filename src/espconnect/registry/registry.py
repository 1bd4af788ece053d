"""
Device registry.

Keeps the ordered list of devices the user has provisioned or saved and
writes it through to storage after every change.
"""

import json
import logging
import threading
from dataclasses import dataclass
from datetime import datetime
from typing import Dict, List, Optional

from espconnect.core.errors import StorageError
from espconnect.registry.storage import KeyValueStorage

logger = logging.getLogger(__name__)

DEFAULT_KEY = "devices"


@dataclass
class DeviceRecord:
    """A known device."""
    identifier: str
    display_name: str = ""
    last_seen: Optional[datetime] = None

    def to_dict(self) -> Dict[str, Optional[str]]:
        """Convert to dictionary."""
        return {
            "id": self.identifier,
            "name": self.display_name,
            "last_seen": self.last_seen.isoformat() if self.last_seen else None,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Optional[str]]) -> "DeviceRecord":
        last_seen = data.get("last_seen")
        return cls(
            identifier=str(data["id"]),
            display_name=str(data.get("name") or ""),
            last_seen=datetime.fromisoformat(last_seen) if last_seen else None,
        )


def encode_record(record: DeviceRecord) -> str:
    """Encode a record as one storage entry."""
    return json.dumps(record.to_dict(), separators=(",", ":"))


def decode_record(entry: str) -> DeviceRecord:
    """
    Decode one storage entry.

    Entries that are not JSON objects are bare identifiers written by older
    versions of the app, which stored only the device serial.

    Raises:
        ValueError: if the entry is a JSON object without a usable id or
            with a malformed timestamp.
    """
    try:
        data = json.loads(entry)
    except ValueError:
        data = None

    if not isinstance(data, dict):
        return DeviceRecord(identifier=entry, display_name=entry)

    if not data.get("id"):
        raise ValueError(f"Record has no id: {entry!r}")

    last_seen = data.get("last_seen")
    if last_seen is not None and not isinstance(last_seen, str):
        raise ValueError(f"Record has a malformed timestamp: {entry!r}")

    return DeviceRecord.from_dict(data)


class DeviceRegistry:
    """
    Ordered, persisted set of device records keyed by identifier.

    Every mutation holds the registry lock until the storage write has
    finished, so concurrent add/remove calls cannot lose updates.
    """

    def __init__(self, storage: KeyValueStorage, key: str = DEFAULT_KEY):
        self._storage = storage
        self._key = key
        self._records: Dict[str, DeviceRecord] = {}
        self._lock = threading.RLock()

    def load(self) -> List[DeviceRecord]:
        """
        Load records from storage, replacing the in-memory view.

        Returns:
            The loaded records; empty on first run.

        Raises:
            StorageError: if storage is unavailable. The registry is left
                empty in that case.
        """
        with self._lock:
            try:
                entries = self._storage.read_list(self._key)
            except StorageError:
                self._records = {}
                logger.error("Device registry unavailable, continuing with an empty list")
                raise

            records: Dict[str, DeviceRecord] = {}
            for entry in entries or []:
                try:
                    record = decode_record(entry)
                except ValueError as e:
                    logger.warning(f"Skipping unreadable registry entry: {e}")
                    continue
                records[record.identifier] = record

            self._records = records
            logger.info(f"Loaded {len(records)} devices")
            return list(records.values())

    def add(self, record: DeviceRecord) -> None:
        """
        Add a record, or update name and last_seen of an existing one.

        Raises:
            StorageError: if the write fails; the in-memory view is unchanged.
        """
        with self._lock:
            previous = dict(self._records)
            # Reassigning an existing key keeps its position
            self._records[record.identifier] = DeviceRecord(
                identifier=record.identifier,
                display_name=record.display_name,
                last_seen=record.last_seen,
            )
            self._persist(previous)

        logger.info(f"Saved device {record.identifier} ({record.display_name})")

    def remove(self, identifier: str) -> bool:
        """
        Remove the record with the given identifier.

        Returns:
            True if a record was removed, False if none matched.
        """
        with self._lock:
            if identifier not in self._records:
                return False
            previous = dict(self._records)
            del self._records[identifier]
            self._persist(previous)

        logger.info(f"Removed device {identifier}")
        return True

    def list(self) -> List[DeviceRecord]:
        """Current records in insertion order."""
        with self._lock:
            return list(self._records.values())

    def get(self, identifier: str) -> Optional[DeviceRecord]:
        with self._lock:
            return self._records.get(identifier)

    def __contains__(self, identifier: object) -> bool:
        with self._lock:
            return identifier in self._records

    def __len__(self) -> int:
        with self._lock:
            return len(self._records)

    def _persist(self, previous: Dict[str, DeviceRecord]) -> None:
        """Write records through to storage, restoring previous on failure."""
        try:
            self._storage.write_list(
                self._key, [encode_record(r) for r in self._records.values()]
            )
        except StorageError as e:
            self._records = previous
            logger.error(f"Failed to persist device registry: {e}")
            raise
