"""BLE adapter implementation backed by bleak."""

from __future__ import annotations

import asyncio
import logging
import re
from collections.abc import Coroutine, Sequence
from typing import Any

from aranetctl.core.errors import AdapterUnsupported
from aranetctl.core.model import AdapterState, DeviceIdentity
from aranetctl.transports.base import (
    AdapterEvent,
    AdapterStateChanged,
    CharacteristicDiscoveryFailed,
    CharacteristicsDiscovered,
    ConnectFailed,
    Connected,
    DeviceDiscovered,
    Disconnected,
    EventSink,
    ReadError,
    ServiceDiscoveryFailed,
    ServicesDiscovered,
    ValueRead,
)

LOGGER = logging.getLogger(__name__)

_AUTH_ERROR_RE = re.compile(
    r"insufficient (authentication|encryption|authorization)"
    r"|encryption is insufficient"
    r"|not ?authorized"
    r"|not ?permitted"
    r"|att error:? ?0x0[5f]\b",
    re.IGNORECASE,
)
_UNAUTHORIZED_RE = re.compile(r"unauthori[sz]ed|not authori[sz]ed|access denied|permission", re.IGNORECASE)
_UNSUPPORTED_RE = re.compile(r"not supported|unsupported", re.IGNORECASE)


def is_auth_failure(error: BaseException | str) -> bool:
    return bool(_AUTH_ERROR_RE.search(str(error)))


def state_for_error(error: BaseException | str) -> AdapterState:
    text = str(error)
    if _UNAUTHORIZED_RE.search(text):
        return AdapterState.UNAUTHORIZED
    if _UNSUPPORTED_RE.search(text):
        return AdapterState.UNSUPPORTED
    return AdapterState.POWERED_OFF


def _bleak() -> Any:
    try:
        import bleak  # type: ignore
        import bleak.exc  # type: ignore
    except ImportError as exc:  # pragma: no cover - import failure path
        raise AdapterUnsupported(
            "BLE access requires 'bleak'. Install dependency and retry."
        ) from exc
    return bleak


class BleakAdapter:
    """Translate bleak's coroutine API into fire-and-forget calls plus events.

    Must be driven from inside a running event loop; bleak callbacks and the
    spawned tasks all run on that loop.
    """

    def __init__(self, *, connect_timeout_s: float = 20.0) -> None:
        self._connect_timeout_s = connect_timeout_s
        self._sink: EventSink | None = None
        self._state = AdapterState.POWERED_ON
        self._scanner: Any = None
        self._clients: dict[str, Any] = {}
        self._seen: dict[str, Any] = {}
        self._tasks: set[asyncio.Task[None]] = set()

    @property
    def state(self) -> AdapterState:
        return self._state

    def set_event_sink(self, sink: EventSink | None) -> None:
        self._sink = sink

    def _emit(self, event: AdapterEvent) -> None:
        if self._sink is None:
            LOGGER.debug("Dropping %s: no listener", type(event).__name__)
            return
        self._sink(event)

    def _spawn(self, coro: Coroutine[Any, Any, None]) -> None:
        task = asyncio.get_running_loop().create_task(coro)
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)

    def _set_state(self, state: AdapterState) -> None:
        self._state = state
        self._emit(AdapterStateChanged(state))

    # Scanning

    def start_scan(self, service_uuids: Sequence[str]) -> None:
        bleak = _bleak()

        def _on_detect(device: Any, advertisement: Any) -> None:
            self._seen[device.address] = device
            name = getattr(advertisement, "local_name", None) or device.name
            self._emit(DeviceDiscovered(DeviceIdentity(id=device.address, name=name)))

        self._scanner = bleak.BleakScanner(
            detection_callback=_on_detect,
            service_uuids=list(service_uuids),
        )
        scanner = self._scanner

        async def _run() -> None:
            try:
                await scanner.start()
            except (bleak.exc.BleakError, OSError) as exc:
                LOGGER.debug("Scanner failed to start: %s", exc)
                self._set_state(state_for_error(exc))

        self._spawn(_run())

    def stop_scan(self) -> None:
        scanner, self._scanner = self._scanner, None
        if scanner is None:
            return
        bleak = _bleak()

        async def _run() -> None:
            try:
                await scanner.stop()
            except (bleak.exc.BleakError, OSError) as exc:
                LOGGER.debug("Scanner failed to stop cleanly: %s", exc)

        self._spawn(_run())

    # Connection

    def is_connected(self, device: DeviceIdentity) -> bool:
        client = self._clients.get(device.id)
        return bool(client is not None and client.is_connected)

    def connect(self, device: DeviceIdentity) -> None:
        bleak = _bleak()

        def _on_disconnect(disconnected: Any) -> None:
            if self._clients.get(device.id) is not disconnected:
                return
            self._clients.pop(device.id, None)
            self._emit(Disconnected(device))

        client = bleak.BleakClient(
            self._seen.get(device.id, device.id),
            disconnected_callback=_on_disconnect,
            timeout=self._connect_timeout_s,
        )
        self._clients[device.id] = client

        async def _run() -> None:
            try:
                await client.connect()
            except (bleak.exc.BleakError, asyncio.TimeoutError, OSError) as exc:
                self._clients.pop(device.id, None)
                self._emit(ConnectFailed(device, str(exc) or type(exc).__name__))
                return
            self._emit(Connected(device))

        self._spawn(_run())

    def disconnect(self, device: DeviceIdentity) -> None:
        client = self._clients.pop(device.id, None)
        if client is None:
            return
        bleak = _bleak()

        async def _run() -> None:
            try:
                await client.disconnect()
            except (bleak.exc.BleakError, OSError) as exc:
                LOGGER.debug("Disconnect from %s failed: %s", device.id, exc)

        self._spawn(_run())

    # GATT

    def _client(self, device: DeviceIdentity) -> Any:
        client = self._clients.get(device.id)
        if client is None or not client.is_connected:
            return None
        return client

    def discover_services(self, device: DeviceIdentity) -> None:
        # bleak resolves the GATT table while connecting; report it on the next loop turn.
        client = self._client(device)
        loop = asyncio.get_running_loop()
        if client is None:
            loop.call_soon(self._emit, ServiceDiscoveryFailed(f"{device.id} is not connected"))
            return
        services = tuple(service.uuid for service in client.services)
        loop.call_soon(self._emit, ServicesDiscovered(services))

    def discover_characteristics(self, device: DeviceIdentity, service: str) -> None:
        client = self._client(device)
        loop = asyncio.get_running_loop()
        gatt_service = client.services.get_service(service) if client is not None else None
        if gatt_service is None:
            loop.call_soon(self._emit, CharacteristicDiscoveryFailed(service, "service not available"))
            return
        characteristics = tuple(char.uuid for char in gatt_service.characteristics)
        loop.call_soon(self._emit, CharacteristicsDiscovered(service, characteristics))

    def read_characteristic(self, device: DeviceIdentity, characteristic: str) -> None:
        bleak = _bleak()
        client = self._client(device)
        if client is None:
            asyncio.get_running_loop().call_soon(
                self._emit, ReadError(characteristic, f"{device.id} is not connected")
            )
            return

        async def _run() -> None:
            try:
                data = await client.read_gatt_char(characteristic)
            except (bleak.exc.BleakError, OSError) as exc:
                self._emit(ReadError(characteristic, str(exc), auth_failure=is_auth_failure(exc)))
                return
            self._emit(ValueRead(characteristic, bytes(data)))

        self._spawn(_run())
