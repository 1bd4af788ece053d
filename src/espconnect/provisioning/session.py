"""
Provisioning session for espconnect.

Drives one scan, select, connect and credential-send workflow against a BLE
transport and records provisioned devices in the registry.
"""

import asyncio
import logging
from dataclasses import dataclass
from datetime import datetime, timezone
from enum import Enum
from typing import Any, AsyncIterator, Callable, Dict, List, Optional, Tuple

from espconnect.ble.permissions import PermissionStatus
from espconnect.ble.transport import BLEConnection, BLETransport, ScanResult
from espconnect.core.config import DeliveryConfig, ScanConfig
from espconnect.core.errors import (
    BluetoothPermissionError,
    InvalidStateError,
    ProvisioningError,
    ProvisioningTimeoutError,
    StorageError,
    TransportError,
    ValidationError,
)
from espconnect.provisioning.filters import TargetFilter, any_device
from espconnect.registry.registry import DeviceRecord, DeviceRegistry

logger = logging.getLogger(__name__)


class SessionStatus(Enum):
    """Provisioning session state."""
    IDLE = "idle"
    SCANNING = "scanning"
    AWAITING_SELECTION = "awaiting_selection"
    AWAITING_CREDENTIALS = "awaiting_credentials"
    SENDING = "sending"
    SUCCEEDED = "succeeded"
    FAILED = "failed"


class SessionEventType(Enum):
    """Kinds of events published to session subscribers."""
    STATE_CHANGED = "state_changed"
    DEVICE_DISCOVERED = "device_discovered"
    SCAN_FINISHED = "scan_finished"
    DEVICE_SELECTED = "device_selected"
    DELIVERY_SUCCEEDED = "delivery_succeeded"
    DELIVERY_FAILED = "delivery_failed"
    ERROR = "error"


@dataclass
class SessionEvent:
    """Notification sent to subscribers."""
    type: SessionEventType
    status: SessionStatus
    result: Optional[ScanResult] = None
    device: Optional[DeviceRecord] = None
    error: Optional[ProvisioningError] = None


@dataclass
class DeliveryOutcome:
    """Result of one credential delivery attempt."""
    device: DeviceRecord
    succeeded: bool
    error: Optional[ProvisioningError] = None
    # False when the session was cancelled before the outcome arrived
    applied: bool = True


SessionCallback = Callable[[SessionEvent], None]

_SCAN_START_STATES = (
    SessionStatus.IDLE,
    SessionStatus.AWAITING_SELECTION,
    SessionStatus.AWAITING_CREDENTIALS,
    SessionStatus.FAILED,
)

_SELECT_STATES = (
    SessionStatus.AWAITING_SELECTION,
    SessionStatus.AWAITING_CREDENTIALS,
)


class ProvisioningSession:
    """
    Single-flow provisioning state machine.

    Handles the workflow:
    1. Scan for peripherals for a bounded window
    2. Let the caller select a discovered device
    3. Accept Wi-Fi credentials for a target device
    4. Deliver them over a BLE connection
    5. Save the device in the registry on success

    start_scan(), submit_credentials() and deliver() return asyncio tasks
    immediately; progress is reported to subscribers and through the
    status properties. cancel() is accepted in every state, and results of
    abandoned work are never applied.
    """

    def __init__(
        self,
        transport: BLETransport,
        registry: DeviceRegistry,
        is_target_device: Optional[TargetFilter] = None,
        permission: PermissionStatus = PermissionStatus.GRANTED,
        scan_config: Optional[ScanConfig] = None,
        delivery_config: Optional[DeliveryConfig] = None,
    ):
        self._transport = transport
        self._registry = registry
        self._is_target_device = is_target_device or any_device
        self._permission = permission
        self.scan_config = scan_config or ScanConfig()
        self.delivery_config = delivery_config or DeliveryConfig()

        self._status = SessionStatus.IDLE
        self._discovered: Dict[str, ScanResult] = {}
        self._selected: Optional[DeviceRecord] = None
        self._viewed: Optional[ScanResult] = None
        self._credentials: Optional[Tuple[str, str]] = None
        self._last_error: Optional[ProvisioningError] = None
        self._last_outcome: Optional[DeliveryOutcome] = None

        # Bumped on every cancel/restart; work started under an older
        # generation must not touch session state.
        self._generation = 0
        self._scan_task: Optional[asyncio.Task] = None
        self._delivery_task: Optional[asyncio.Task] = None

        self._subscribers: List[SessionCallback] = []

    @property
    def status(self) -> SessionStatus:
        return self._status

    @property
    def discovered(self) -> List[ScanResult]:
        """Scan results in first-seen order."""
        return list(self._discovered.values())

    @property
    def selected_device(self) -> Optional[DeviceRecord]:
        return self._selected

    @property
    def viewed_device(self) -> Optional[ScanResult]:
        """Last selected result, whether or not it unlocked credentials."""
        return self._viewed

    @property
    def last_error(self) -> Optional[ProvisioningError]:
        return self._last_error

    @property
    def last_outcome(self) -> Optional[DeliveryOutcome]:
        return self._last_outcome

    @property
    def is_busy(self) -> bool:
        return self._status in (SessionStatus.SCANNING, SessionStatus.SENDING)

    def subscribe(self, callback: SessionCallback) -> Callable[[], None]:
        """
        Register a callback for session events.

        Returns:
            A function that removes the callback again.
        """
        self._subscribers.append(callback)

        def unsubscribe() -> None:
            if callback in self._subscribers:
                self._subscribers.remove(callback)

        return unsubscribe

    # Scanning

    def start_scan(self) -> asyncio.Task:
        """
        Begin a discovery window.

        Must be called from a running event loop. Previous results are
        discarded.

        Returns:
            Task resolving to the discovered results.

        Raises:
            BluetoothPermissionError: if Bluetooth access was denied.
            InvalidStateError: if a scan or delivery is in progress.
        """
        if self._permission != PermissionStatus.GRANTED:
            raise BluetoothPermissionError("Bluetooth and location access was denied")

        if self._status not in _SCAN_START_STATES:
            raise InvalidStateError(f"Cannot scan while {self._status.value}")

        self._generation += 1
        self._reset()
        self._last_error = None
        self._set_state(SessionStatus.SCANNING)

        self._scan_task = asyncio.create_task(self._run_scan(self._generation))
        return self._scan_task

    async def _run_scan(self, generation: int) -> List[ScanResult]:
        duration = self.scan_config.duration_seconds
        stream = self._transport.scan(duration)

        try:
            await asyncio.wait_for(
                self._consume(stream, generation),
                timeout=duration + self.scan_config.grace_seconds,
            )
        except ProvisioningError as e:
            self._fail_scan(generation, e)
            return []
        except asyncio.TimeoutError:
            # Only wait_for itself can get here, _consume wraps stream errors
            logger.info("Discovery window elapsed before the scan stream closed")
        finally:
            aclose = getattr(stream, "aclose", None)
            if aclose is not None:
                await aclose()

        if generation != self._generation:
            return []

        self._scan_task = None
        results = self.discovered
        logger.info(f"Scan finished with {len(results)} devices")

        self._emit(SessionEvent(SessionEventType.SCAN_FINISHED, self._status))
        if results:
            self._set_state(SessionStatus.AWAITING_SELECTION)
        else:
            self._set_state(SessionStatus.IDLE)

        return results

    async def _consume(self, stream: AsyncIterator[ScanResult], generation: int) -> None:
        try:
            await self._consume_results(stream, generation)
        except ProvisioningError:
            raise
        except Exception as e:
            raise TransportError(f"Scan failed: {e}") from e

    async def _consume_results(self, stream: AsyncIterator[ScanResult], generation: int) -> None:
        async for result in stream:
            if generation != self._generation:
                return

            # Reassigning keeps the first-seen position
            self._discovered[result.identifier] = result
            logger.debug(
                f"Discovered {result.identifier} '{result.display_name}' "
                f"rssi={result.signal_strength}"
            )
            self._emit(SessionEvent(
                SessionEventType.DEVICE_DISCOVERED, self._status, result=result
            ))

    def _fail_scan(self, generation: int, error: ProvisioningError) -> None:
        if generation != self._generation:
            return

        logger.error(f"Scan error: {error}")
        self._scan_task = None
        self._discovered.clear()
        self._last_error = error
        self._emit(SessionEvent(SessionEventType.ERROR, self._status, error=error))
        self._set_state(SessionStatus.IDLE)

    # Selection

    def select_device(self, identifier: str) -> bool:
        """
        Select a discovered device.

        Returns:
            True if the device is a provisioning target and credentials can
            now be submitted, False if it was only viewed.

        Raises:
            InvalidStateError: if there is nothing to select from.
            ValidationError: if the identifier was not discovered.
        """
        if self._status not in _SELECT_STATES:
            raise InvalidStateError(f"Cannot select a device while {self._status.value}")

        result = self._discovered.get(identifier)
        if result is None:
            raise ValidationError(f"Unknown device: {identifier}")

        self._viewed = result

        if self._is_target_device(result):
            self._selected = DeviceRecord(
                identifier=result.identifier,
                display_name=result.display_name,
                last_seen=datetime.now(timezone.utc),
            )
            unlocked = True
        else:
            logger.info(f"{identifier} is not a provisioning target")
            self._selected = None
            unlocked = False

        self._emit(SessionEvent(
            SessionEventType.DEVICE_SELECTED, self._status,
            result=result, device=self._selected,
        ))
        self._set_state(
            SessionStatus.AWAITING_CREDENTIALS if unlocked
            else SessionStatus.AWAITING_SELECTION
        )
        return unlocked

    # Delivery

    def submit_credentials(self, ssid: str, password: str = "") -> asyncio.Task:
        """
        Submit Wi-Fi credentials for the selected device.

        An empty password is allowed for open networks. Exactly one delivery
        attempt is started.

        Returns:
            Task resolving to the DeliveryOutcome.

        Raises:
            InvalidStateError: if no target device is selected.
            ValidationError: if the SSID is empty.
        """
        if self._status != SessionStatus.AWAITING_CREDENTIALS or self._selected is None:
            raise InvalidStateError(f"Cannot submit credentials while {self._status.value}")

        if not ssid or not ssid.strip():
            raise ValidationError("SSID must not be empty")

        self._credentials = (ssid, password or "")
        self._delivery_task = None
        self._last_error = None
        self._set_state(SessionStatus.SENDING)

        return self.deliver()

    def deliver(self) -> asyncio.Task:
        """
        Start delivering the submitted credentials.

        Calling this again for the same submission returns the attempt that
        is already running.

        Raises:
            InvalidStateError: if nothing is being sent.
        """
        if (
            self._status != SessionStatus.SENDING
            or self._credentials is None
            or self._selected is None
        ):
            raise InvalidStateError(f"Nothing to deliver while {self._status.value}")

        if self._delivery_task is None:
            ssid, password = self._credentials
            self._delivery_task = asyncio.create_task(
                self._run_delivery(self._generation, self._selected, ssid, password)
            )

        return self._delivery_task

    async def _run_delivery(
        self,
        generation: int,
        device: DeviceRecord,
        ssid: str,
        password: str,
    ) -> DeliveryOutcome:
        error: Optional[ProvisioningError] = None
        connection: Optional[BLEConnection] = None

        try:
            connection = await asyncio.wait_for(
                self._transport.connect(device.identifier),
                timeout=self.delivery_config.connect_timeout_seconds,
            )
            acknowledged = await asyncio.wait_for(
                connection.write_credentials(ssid, password),
                timeout=self.delivery_config.delivery_timeout_seconds,
            )
            if not acknowledged:
                error = TransportError(f"{device.identifier} rejected the credentials")
        except ProvisioningError as e:
            error = e
        except asyncio.TimeoutError:
            error = ProvisioningTimeoutError(f"No answer from {device.identifier} in time")
        except Exception as e:
            error = TransportError(f"Delivery to {device.identifier} failed: {e}")
        finally:
            if connection is not None:
                await self._close_connection(connection)

        outcome = DeliveryOutcome(device=device, succeeded=error is None, error=error)

        if generation != self._generation:
            logger.info(f"Discarding delivery outcome for {device.identifier}, session was cancelled")
            outcome.applied = False
            return outcome

        self._delivery_task = None
        self._credentials = None
        self._last_outcome = outcome

        if error is None:
            self._finish_success(device)
        else:
            self._finish_failure(device, error)

        return outcome

    async def _close_connection(self, connection: BLEConnection) -> None:
        try:
            await connection.disconnect()
        except Exception as e:
            logger.warning(f"Error closing BLE connection: {e}")

    def _finish_success(self, device: DeviceRecord) -> None:
        record = DeviceRecord(
            identifier=device.identifier,
            display_name=device.display_name,
            last_seen=datetime.now(timezone.utc),
        )
        logger.info(f"Provisioned {record.identifier}")

        storage_error: Optional[StorageError] = None
        try:
            self._registry.add(record)
        except StorageError as e:
            storage_error = e
            self._last_error = e

        self._set_state(SessionStatus.SUCCEEDED)
        self._emit(SessionEvent(
            SessionEventType.DELIVERY_SUCCEEDED, self._status, device=record
        ))
        if storage_error is not None:
            self._emit(SessionEvent(
                SessionEventType.ERROR, self._status, device=record, error=storage_error
            ))

        self._reset()
        self._set_state(SessionStatus.IDLE)

    def _finish_failure(self, device: DeviceRecord, error: ProvisioningError) -> None:
        logger.warning(f"Provisioning {device.identifier} failed: {error}")
        self._last_error = error

        self._set_state(SessionStatus.FAILED)
        self._emit(SessionEvent(
            SessionEventType.DELIVERY_FAILED, self._status, device=device, error=error
        ))
        self._set_state(SessionStatus.AWAITING_CREDENTIALS)

    # Lifecycle

    def cancel(self) -> None:
        """
        Abandon any scan or delivery and return to IDLE.

        Accepted from every state; a no-op when already idle.
        """
        pending = [
            task for task in (self._scan_task, self._delivery_task)
            if task is not None and not task.done()
        ]
        if self._status == SessionStatus.IDLE and not pending:
            return

        self._generation += 1
        for task in pending:
            task.cancel()

        self._reset()
        logger.info("Provisioning session cancelled")
        self._set_state(SessionStatus.IDLE)

    def close(self) -> None:
        """Cancel the session and drop all subscribers."""
        self.cancel()
        self._subscribers.clear()

    def to_dict(self) -> Dict[str, Any]:
        """Snapshot of the session for display."""
        return {
            "status": self._status.value,
            "discovered": [r.to_dict() for r in self._discovered.values()],
            "selected_device": self._selected.to_dict() if self._selected else None,
            "viewed_device": self._viewed.to_dict() if self._viewed else None,
            "last_error": str(self._last_error) if self._last_error else None,
        }

    def _reset(self) -> None:
        self._scan_task = None
        self._delivery_task = None
        self._discovered.clear()
        self._selected = None
        self._viewed = None
        self._credentials = None

    def _set_state(self, status: SessionStatus) -> None:
        """Update session state and notify subscribers."""
        if status == self._status:
            return

        self._status = status
        logger.info(f"Provisioning state: {status.value}")
        self._emit(SessionEvent(SessionEventType.STATE_CHANGED, status))

    def _emit(self, event: SessionEvent) -> None:
        for callback in list(self._subscribers):
            try:
                callback(event)
            except Exception as e:
                logger.error(f"Session callback error: {e}")
