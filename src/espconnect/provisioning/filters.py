"""Target device predicates for provisioning sessions."""

from typing import Callable

from espconnect.ble.transport import ScanResult
from espconnect.core.config import TargetConfig

TargetFilter = Callable[[ScanResult], bool]


def name_contains(*tags: str, case_sensitive: bool = True) -> TargetFilter:
    """Match results whose advertised name contains any of the tags."""
    wanted = tags if case_sensitive else tuple(t.lower() for t in tags)

    def _matches(result: ScanResult) -> bool:
        name = result.display_name or ""
        if not case_sensitive:
            name = name.lower()
        return any(tag in name for tag in wanted)

    return _matches


def any_device(result: ScanResult) -> bool:
    return True


def target_filter_from_config(config: TargetConfig) -> TargetFilter:
    """Build the device-class filter described by configuration."""
    if not config.name_tags:
        return any_device
    return name_contains(*config.name_tags, case_sensitive=config.case_sensitive)
