"""Session coordinator: one deterministic scan or read per call.

Adapter callbacks are turned into typed events and pushed onto a queue that
the coordinator drains serially on the event loop. Grace and absolute timers
feed the same queue, so the data path and both timers race for a single
one-shot result slot without any shared-state mutation from callbacks.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Callable
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Generic, TypeVar

from aranetctl.core.catalog import CharacteristicCatalog, normalize_uuid, select_reading_characteristic
from aranetctl.core.decoder import decode_reading
from aranetctl.core.errors import (
    AdapterUnauthorized,
    AdapterUnavailable,
    AdapterUnsupported,
    AranetError,
    ConnectionFailed,
    OperationTimeout,
    PairingRequired,
    ReadFailed,
)
from aranetctl.core.loader import default_catalog
from aranetctl.core.model import (
    AdapterState,
    CharacteristicRole,
    DeviceIdentity,
    Reading,
    SessionState,
    Settings,
)
from aranetctl.transports.base import (
    AdapterStateChanged,
    BLEAdapter,
    CharacteristicDiscoveryFailed,
    CharacteristicsDiscovered,
    ConnectFailed,
    Connected,
    DeviceDiscovered,
    Disconnected,
    ReadError,
    ServiceDiscoveryFailed,
    ServicesDiscovered,
    ValueRead,
)

LOGGER = logging.getLogger(__name__)
T = TypeVar("T")

_WAITING_STATES = (AdapterState.UNKNOWN, AdapterState.RESETTING)


class TimerKind(Enum):
    GRACE = "grace"
    ABSOLUTE = "absolute"


@dataclass(frozen=True)
class TimerExpired:
    kind: TimerKind


def error_for_state(state: AdapterState) -> AranetError | None:
    if state is AdapterState.POWERED_ON or state in _WAITING_STATES:
        return None
    if state is AdapterState.UNAUTHORIZED:
        return AdapterUnauthorized()
    if state is AdapterState.UNSUPPORTED:
        return AdapterUnsupported()
    return AdapterUnavailable()


class ResultSlot(Generic[T]):
    """Set-once holder for the outcome of one operation.

    Only the first ``resolve`` or ``fail`` takes effect; later calls return
    False and change nothing.
    """

    def __init__(self) -> None:
        self._done = False
        self._value: T | None = None
        self._error: BaseException | None = None

    @property
    def done(self) -> bool:
        return self._done

    def resolve(self, value: T) -> bool:
        if self._done:
            return False
        self._done = True
        self._value = value
        return True

    def fail(self, error: BaseException) -> bool:
        if self._done:
            return False
        self._done = True
        self._error = error
        return True

    def result(self) -> T:
        if not self._done:
            raise RuntimeError("Result slot has not been resolved")
        if self._error is not None:
            raise self._error
        return self._value  # type: ignore[return-value]


@dataclass
class ReadOperation:
    """Mutable state scoped to a single ``read`` call."""

    device: DeviceIdentity
    slot: ResultSlot[Reading] = field(default_factory=ResultSlot)
    state: SessionState = SessionState.IDLE
    expected_services: tuple[str, ...] = ()
    reported_services: set[str] = field(default_factory=set)
    characteristics: list[str] = field(default_factory=list)
    pending: set[str] = field(default_factory=set)
    encryption_errors: int = 0
    reading_uuid: str | None = None
    payload: bytes | None = None
    name: str = ""
    version: str = ""
    grace_elapsed: bool = False
    disconnected: bool = False


class SessionCoordinator:
    """Drive scans and reads against one BLE adapter, one operation at a time."""

    def __init__(
        self,
        adapter: BLEAdapter,
        *,
        settings: Settings | None = None,
        catalog: CharacteristicCatalog | None = None,
    ) -> None:
        self._adapter = adapter
        self._settings = settings or Settings()
        self._catalog = catalog or default_catalog()
        self._lock = asyncio.Lock()
        self._state = SessionState.IDLE
        self._handlers: dict[type, Callable[[ReadOperation, Any], None]] = {
            AdapterStateChanged: self._on_adapter_state,
            Connected: self._on_connected,
            ConnectFailed: self._on_connect_failed,
            Disconnected: self._on_disconnected,
            ServicesDiscovered: self._on_services,
            ServiceDiscoveryFailed: self._on_service_discovery_failed,
            CharacteristicsDiscovered: self._on_characteristics,
            CharacteristicDiscoveryFailed: self._on_characteristic_discovery_failed,
            ValueRead: self._on_value,
            ReadError: self._on_read_error,
            TimerExpired: self._on_timer,
        }

    @property
    def state(self) -> SessionState:
        return self._state

    @property
    def settings(self) -> Settings:
        return self._settings

    # Event channel

    def _open_channel(self) -> asyncio.Queue[Any]:
        queue: asyncio.Queue[Any] = asyncio.Queue()
        self._adapter.set_event_sink(queue.put_nowait)
        return queue

    def _close_channel(self) -> None:
        self._adapter.set_event_sink(None)

    async def _ensure_ready(self, queue: asyncio.Queue[Any]) -> None:
        state = self._adapter.state
        if state in _WAITING_STATES:
            LOGGER.debug("Waiting for Bluetooth adapter (state: %s)", state.value)
            loop = asyncio.get_running_loop()
            deadline = loop.time() + self._settings.ready_timeout_s
            while state in _WAITING_STATES:
                remaining = deadline - loop.time()
                if remaining <= 0:
                    raise AdapterUnavailable()
                try:
                    event = await asyncio.wait_for(queue.get(), remaining)
                except asyncio.TimeoutError:
                    LOGGER.debug("Bluetooth adapter did not become ready in time")
                    raise AdapterUnavailable() from None
                if isinstance(event, AdapterStateChanged):
                    state = event.state

        error = error_for_state(state)
        if error is not None:
            LOGGER.debug("Bluetooth adapter not usable: %s", state.value)
            raise error

    # Scan

    async def scan(self, timeout: float | None = None) -> list[DeviceIdentity]:
        """Collect unique peripherals advertising a known service for ``timeout`` seconds."""
        timeout = self._settings.scan_timeout_s if timeout is None else timeout
        async with self._lock:
            queue = self._open_channel()
            try:
                await self._ensure_ready(queue)
                return await self._collect(queue, timeout)
            finally:
                self._close_channel()

    async def _collect(self, queue: asyncio.Queue[Any], timeout: float) -> list[DeviceIdentity]:
        found: dict[str, DeviceIdentity] = {}
        loop = asyncio.get_running_loop()
        deadline = loop.time() + timeout

        LOGGER.debug("Scanning for %.1fs", timeout)
        self._adapter.start_scan(self._catalog.scan_services)
        try:
            while True:
                remaining = deadline - loop.time()
                if remaining <= 0:
                    break
                try:
                    event = await asyncio.wait_for(queue.get(), remaining)
                except asyncio.TimeoutError:
                    break

                if isinstance(event, DeviceDiscovered):
                    device = event.device
                    known = found.get(device.id)
                    if known is None:
                        LOGGER.debug("Discovered %s (%s)", device.id, device.name or "unnamed")
                        found[device.id] = device
                    elif known.name is None and device.name:
                        found[device.id] = device
                elif isinstance(event, AdapterStateChanged):
                    error = error_for_state(event.state)
                    if error is not None:
                        raise error
        finally:
            self._adapter.stop_scan()

        LOGGER.debug("Scan finished with %d device(s)", len(found))
        return list(found.values())

    # Read

    async def read(self, device: DeviceIdentity) -> Reading:
        """Connect, discover, read and decode the current sensor values of ``device``."""
        async with self._lock:
            self._state = SessionState.IDLE
            queue = self._open_channel()
            try:
                await self._ensure_ready(queue)
                op = ReadOperation(device=device)
                timers = self._start_timers(queue)
                try:
                    self._guarded(op, self._begin)
                    while not op.slot.done:
                        self._dispatch(op, await queue.get())
                    while not queue.empty():
                        self._dispatch(op, queue.get_nowait())
                except asyncio.CancelledError:
                    LOGGER.debug("Read of %s cancelled in state %s", device.id, op.state.value)
                    self._fail(op, ReadFailed("Read cancelled"))
                    raise
                finally:
                    for timer in timers:
                        timer.cancel()
                return op.slot.result()
            finally:
                self._close_channel()

    def disconnect(self, device: DeviceIdentity) -> None:
        """Release any connection left open to ``device``."""
        if self._adapter.is_connected(device):
            LOGGER.debug("Releasing connection to %s", device.id)
            self._adapter.disconnect(device)

    def _start_timers(self, queue: asyncio.Queue[Any]) -> list[asyncio.TimerHandle]:
        loop = asyncio.get_running_loop()
        return [
            loop.call_later(self._settings.grace_s, queue.put_nowait, TimerExpired(TimerKind.GRACE)),
            loop.call_later(
                self._settings.absolute_timeout_s, queue.put_nowait, TimerExpired(TimerKind.ABSOLUTE)
            ),
        ]

    def _dispatch(self, op: ReadOperation, event: Any) -> None:
        if op.slot.done:
            LOGGER.debug("Ignoring %s after operation resolved", type(event).__name__)
            return
        handler = self._handlers.get(type(event))
        if handler is None:
            LOGGER.debug("Ignoring unexpected event %r", event)
            return
        self._guarded(op, handler, event)

    def _guarded(self, op: ReadOperation, handler: Callable[..., None], *args: Any) -> None:
        try:
            handler(op, *args)
        except AranetError as exc:
            self._fail(op, exc)

    def _transition(self, op: ReadOperation, new_state: SessionState) -> None:
        if op.state.terminal:
            return
        LOGGER.debug("Session %s -> %s", op.state.value, new_state.value)
        op.state = new_state
        self._state = new_state

    def _complete(self, op: ReadOperation, reading: Reading) -> None:
        if op.slot.resolve(reading):
            self._transition(op, SessionState.COMPLETED)
            self._release(op)

    def _fail(self, op: ReadOperation, error: AranetError) -> None:
        if op.slot.fail(error):
            LOGGER.debug("Read failed: %s", type(error).__name__)
            self._transition(op, SessionState.FAILED)
            self._release(op)

    def _release(self, op: ReadOperation) -> None:
        if op.disconnected:
            return
        op.disconnected = True
        LOGGER.debug("Disconnecting from %s", op.device.id)
        try:
            self._adapter.disconnect(op.device)
        except AranetError as exc:
            LOGGER.warning("Disconnect from %s failed: %s", op.device.id, exc)

    # Handlers

    def _begin(self, op: ReadOperation) -> None:
        LOGGER.debug("Starting read from %s (%s)", op.device.name or "Unknown", op.device.id)
        self._transition(op, SessionState.CONNECTING)
        if self._adapter.is_connected(op.device):
            LOGGER.debug("Already connected, discovering services")
            self._transition(op, SessionState.DISCOVERING_SERVICES)
            self._adapter.discover_services(op.device)
        else:
            self._adapter.connect(op.device)

    def _on_adapter_state(self, op: ReadOperation, event: AdapterStateChanged) -> None:
        error = error_for_state(event.state)
        if error is not None:
            raise error

    def _on_connected(self, op: ReadOperation, event: Connected) -> None:
        if event.device.id != op.device.id or op.state is not SessionState.CONNECTING:
            return
        LOGGER.debug("Connected, discovering services")
        self._transition(op, SessionState.DISCOVERING_SERVICES)
        self._adapter.discover_services(op.device)

    def _on_connect_failed(self, op: ReadOperation, event: ConnectFailed) -> None:
        if event.device.id != op.device.id:
            return
        detail = f": {event.error}" if event.error else ""
        raise ConnectionFailed(f"Failed to connect to {op.device.name or op.device.id}{detail}")

    def _on_disconnected(self, op: ReadOperation, event: Disconnected) -> None:
        if event.device.id != op.device.id:
            return
        if op.encryption_errors and op.payload is None:
            raise PairingRequired()
        raise ConnectionFailed(f"{op.device.name or op.device.id} disconnected during read")

    def _on_services(self, op: ReadOperation, event: ServicesDiscovered) -> None:
        if op.state is not SessionState.DISCOVERING_SERVICES:
            return
        services = tuple(dict.fromkeys(normalize_uuid(u) or u for u in event.services))
        LOGGER.debug("Discovered %d service(s)", len(services))
        if not services:
            raise ReadFailed("Device exposes no services")
        op.expected_services = services
        self._transition(op, SessionState.DISCOVERING_CHARACTERISTICS)
        for service in services:
            LOGGER.debug("Discovering characteristics for service %s", service)
            self._adapter.discover_characteristics(op.device, service)

    def _on_service_discovery_failed(self, op: ReadOperation, event: ServiceDiscoveryFailed) -> None:
        raise ReadFailed(f"Service discovery failed: {event.error or 'unknown error'}")

    def _on_characteristics(self, op: ReadOperation, event: CharacteristicsDiscovered) -> None:
        service = normalize_uuid(event.service) or event.service
        if (
            op.state is not SessionState.DISCOVERING_CHARACTERISTICS
            or service not in op.expected_services
            or service in op.reported_services
        ):
            return
        op.reported_services.add(service)
        for uuid in event.characteristics:
            normalized = normalize_uuid(uuid) or uuid
            LOGGER.debug("Found characteristic %s", normalized)
            op.characteristics.append(normalized)
        LOGGER.debug("Services reported: %d/%d", len(op.reported_services), len(op.expected_services))

        if len(op.reported_services) == len(op.expected_services):
            self._issue_reads(op)

    def _on_characteristic_discovery_failed(
        self, op: ReadOperation, event: CharacteristicDiscoveryFailed
    ) -> None:
        raise ReadFailed(
            f"Characteristic discovery failed for {event.service}: {event.error or 'unknown error'}"
        )

    def _issue_reads(self, op: ReadOperation) -> None:
        entry = select_reading_characteristic(op.characteristics, self._catalog)
        if entry is None:
            raise ReadFailed("Device exposes no supported reading characteristic")

        op.reading_uuid = entry.uuid
        self._transition(op, SessionState.AWAITING_PAYLOAD)
        targets = self._catalog.informational(op.characteristics) + [entry.uuid]
        op.pending.update(targets)
        for uuid in targets:
            LOGGER.debug("Reading %s", uuid)
            self._adapter.read_characteristic(op.device, uuid)
        LOGGER.debug("Pending reads: %d", len(op.pending))

    def _on_value(self, op: ReadOperation, event: ValueRead) -> None:
        uuid = normalize_uuid(event.characteristic) or event.characteristic
        if uuid not in op.pending:
            return
        op.pending.discard(uuid)
        LOGGER.debug("Read %s: %d bytes", uuid, len(event.value))

        role = self._catalog.role_of(uuid)
        if role is CharacteristicRole.DEVICE_NAME:
            op.name = _decode_text(event.value)
        elif role is CharacteristicRole.FIRMWARE_REVISION:
            op.version = _decode_text(event.value)
        elif uuid == op.reading_uuid:
            if event.value:
                op.payload = bytes(event.value)
            else:
                op.encryption_errors += 1
                LOGGER.debug("Reading characteristic returned no data (auth failures: %d)", op.encryption_errors)
        self._check_completion(op)

    def _on_read_error(self, op: ReadOperation, event: ReadError) -> None:
        uuid = normalize_uuid(event.characteristic) or event.characteristic
        if uuid not in op.pending:
            return
        op.pending.discard(uuid)
        if event.auth_failure:
            op.encryption_errors += 1
            LOGGER.debug("Authentication denied on %s (auth failures: %d)", uuid, op.encryption_errors)
        else:
            LOGGER.debug("Error reading %s: %s", uuid, event.error)
        self._check_completion(op)

    def _on_timer(self, op: ReadOperation, event: TimerExpired) -> None:
        if event.kind is TimerKind.ABSOLUTE:
            raise OperationTimeout(
                f"Operation timed out after {self._settings.absolute_timeout_s:g} seconds"
            )
        op.grace_elapsed = True
        if op.encryption_errors and op.payload is None:
            LOGGER.debug("Authentication failures with no reading data: pairing required")
            raise PairingRequired()

    def _check_completion(self, op: ReadOperation) -> None:
        if op.state is not SessionState.AWAITING_PAYLOAD or op.pending:
            return
        if op.payload is not None:
            name = op.name or op.device.name or "Unknown"
            reading = decode_reading(
                op.payload,
                op.reading_uuid or "",
                name=name,
                version=op.version,
                catalog=self._catalog,
            )
            self._complete(op, reading)
        elif op.encryption_errors and not op.grace_elapsed:
            LOGGER.debug("No reading data yet; waiting for grace period to decide on pairing")
        elif op.encryption_errors:
            raise PairingRequired()
        else:
            raise ReadFailed("Reading characteristic returned no data")


def _decode_text(value: bytes) -> str:
    return bytes(value).decode("utf-8", errors="replace").strip("\x00 ").strip()
