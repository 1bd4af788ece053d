"""
Configuration management for espconnect.

Handles loading, validation, and access to configuration settings.
"""

import logging
import os
import yaml
from dataclasses import dataclass, field
from typing import Optional, Dict, Any, List
from pathlib import Path

logger = logging.getLogger(__name__)

# Environment variable pointing at an explicit config file
CONFIG_ENV_VAR = "ESPCONNECT_CONFIG"

# Default configuration paths
CONFIG_PATHS = [
    "/etc/espconnect/config.yaml",
    os.path.expanduser("~/.config/espconnect/config.yaml"),
    "config.yaml",
]


@dataclass
class ScanConfig:
    """BLE discovery window configuration."""
    duration_seconds: float = 5.0
    # Extra time allowed for the transport to close its stream
    grace_seconds: float = 1.0


@dataclass
class TargetConfig:
    """Which advertised names count as provisionable devices."""
    name_tags: List[str] = field(default_factory=lambda: ["ESP32"])
    case_sensitive: bool = True


@dataclass
class DeliveryConfig:
    """Credential delivery configuration."""
    connect_timeout_seconds: float = 10.0
    delivery_timeout_seconds: float = 15.0
    send_delay_seconds: float = 2.0


@dataclass
class StorageConfig:
    """Device registry storage configuration."""
    path: str = "~/.local/share/espconnect/devices.yaml"
    key: str = "devices"

    @property
    def resolved_path(self) -> Path:
        return Path(os.path.expanduser(self.path))


@dataclass
class Config:
    """Main configuration class."""
    version: int = 1
    scan: ScanConfig = field(default_factory=ScanConfig)
    target: TargetConfig = field(default_factory=TargetConfig)
    delivery: DeliveryConfig = field(default_factory=DeliveryConfig)
    storage: StorageConfig = field(default_factory=StorageConfig)

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Config":
        """Create Config from dictionary."""
        config = cls()

        if "version" in data:
            config.version = data["version"]

        if "scan" in data:
            config.scan = ScanConfig(**data["scan"])

        if "target" in data:
            config.target = TargetConfig(**data["target"])

        if "delivery" in data:
            config.delivery = DeliveryConfig(**data["delivery"])

        if "storage" in data:
            config.storage = StorageConfig(**data["storage"])

        return config

    def to_dict(self) -> Dict[str, Any]:
        """Convert Config to dictionary."""
        return {
            "version": self.version,
            "scan": {
                "duration_seconds": self.scan.duration_seconds,
                "grace_seconds": self.scan.grace_seconds,
            },
            "target": {
                "name_tags": list(self.target.name_tags),
                "case_sensitive": self.target.case_sensitive,
            },
            "delivery": {
                "connect_timeout_seconds": self.delivery.connect_timeout_seconds,
                "delivery_timeout_seconds": self.delivery.delivery_timeout_seconds,
                "send_delay_seconds": self.delivery.send_delay_seconds,
            },
            "storage": {
                "path": self.storage.path,
                "key": self.storage.key,
            },
        }

    def save(self, path: Optional[str] = None):
        """Save configuration to file."""
        if path is None:
            path = CONFIG_PATHS[0]

        # Ensure directory exists
        Path(path).parent.mkdir(parents=True, exist_ok=True)

        with open(path, "w") as f:
            yaml.dump(self.to_dict(), f, default_flow_style=False)


def _search_paths(path: Optional[str]) -> List[str]:
    if path is not None:
        return [path]

    env_path = os.environ.get(CONFIG_ENV_VAR)
    if env_path:
        return [env_path] + CONFIG_PATHS

    return CONFIG_PATHS


def load_config(path: Optional[str] = None) -> Config:
    """
    Load configuration from file.

    Args:
        path: Path to config file. If None, checks $ESPCONNECT_CONFIG and
            then the default locations.

    Returns:
        Config object with loaded or default settings.
    """
    for config_path in _search_paths(path):
        if os.path.exists(config_path):
            try:
                with open(config_path) as f:
                    data = yaml.safe_load(f)
                    if data:
                        return Config.from_dict(data)
            except (OSError, TypeError, yaml.YAMLError) as e:
                logger.warning(f"Failed to load config from {config_path}: {e}")

    # Return default config
    return Config()


def get_config_path() -> Optional[str]:
    """Get the path to the active config file."""
    for path in _search_paths(None):
        if os.path.exists(path):
            return path
    return None
