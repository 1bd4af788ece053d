"""
Device registry for espconnect.

Persists the devices the user has provisioned as a flat list of strings in
key-value storage.
"""

from espconnect.registry.registry import (
    DeviceRecord,
    DeviceRegistry,
    decode_record,
    encode_record,
)
from espconnect.registry.storage import KeyValueStorage, MemoryStorage, YamlFileStorage

__all__ = [
    "DeviceRecord",
    "DeviceRegistry",
    "encode_record",
    "decode_record",
    "KeyValueStorage",
    "MemoryStorage",
    "YamlFileStorage",
]
