"""
Key-value storage for the device registry.

The registry only needs named lists of strings, the same shape mobile
preference stores offer. Two backends are provided: a YAML file on disk and
an in-memory dictionary.
"""

import logging
import os
import tempfile
import threading
from abc import ABC, abstractmethod
from pathlib import Path
from typing import Dict, List, Optional, Sequence, Union

import yaml

from espconnect.core.errors import StorageError

logger = logging.getLogger(__name__)


class KeyValueStorage(ABC):
    """Durable storage of string lists under string keys."""

    @abstractmethod
    def read_list(self, key: str) -> Optional[List[str]]:
        """Return the list stored under key, or None if nothing was stored."""

    @abstractmethod
    def write_list(self, key: str, values: Sequence[str]) -> None:
        """Replace the list stored under key."""


class MemoryStorage(KeyValueStorage):
    """Process-local storage, lost on exit."""

    def __init__(self, initial: Optional[Dict[str, List[str]]] = None):
        self._data: Dict[str, List[str]] = {
            key: list(values) for key, values in (initial or {}).items()
        }

    def read_list(self, key: str) -> Optional[List[str]]:
        values = self._data.get(key)
        return list(values) if values is not None else None

    def write_list(self, key: str, values: Sequence[str]) -> None:
        self._data[key] = list(values)


class YamlFileStorage(KeyValueStorage):
    """
    Storage backed by a single YAML mapping file.

    The file holds ``key: [str, ...]`` entries. Writes go to a temporary file
    in the same directory which then replaces the original, so a crash never
    leaves a half-written file behind.
    """

    def __init__(self, path: Union[str, Path]):
        self.path = Path(path)
        self._lock = threading.Lock()

    def _read_all(self) -> Dict[str, List[str]]:
        if not self.path.exists():
            return {}

        try:
            with open(self.path) as f:
                data = yaml.safe_load(f)
        except (OSError, yaml.YAMLError) as e:
            raise StorageError(f"Cannot read {self.path}: {e}") from e

        if data is None:
            return {}
        if not isinstance(data, dict):
            raise StorageError(f"Unexpected content in {self.path}: expected a mapping")

        return data

    def read_list(self, key: str) -> Optional[List[str]]:
        with self._lock:
            data = self._read_all()

        values = data.get(key)
        if values is None:
            return None
        if not isinstance(values, list):
            raise StorageError(f"Entry '{key}' in {self.path} is not a list")

        return [str(v) for v in values]

    def write_list(self, key: str, values: Sequence[str]) -> None:
        with self._lock:
            data = self._read_all()
            data[key] = list(values)

            try:
                self.path.parent.mkdir(parents=True, exist_ok=True)
                fd, tmp_path = tempfile.mkstemp(
                    prefix=f".{self.path.name}.", dir=str(self.path.parent)
                )
                try:
                    with os.fdopen(fd, "w") as f:
                        yaml.safe_dump(data, f, default_flow_style=False)
                    os.replace(tmp_path, self.path)
                except BaseException:
                    if os.path.exists(tmp_path):
                        os.unlink(tmp_path)
                    raise
            except OSError as e:
                raise StorageError(f"Cannot write {self.path}: {e}") from e

        logger.debug(f"Wrote {len(values)} entries for '{key}' to {self.path}")
