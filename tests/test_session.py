from __future__ import annotations

import asyncio

import pytest
from tests.fakes import (
    AR2_BASIC,
    ARANET4_PAYLOAD,
    BASIC,
    DETAILED,
    DEVICE,
    FIRMWARE,
    NAME,
    FakeAdapter,
)

from aranetctl.core.catalog import normalize_uuid
from aranetctl.core.errors import (
    AdapterUnauthorized,
    AdapterUnavailable,
    ConnectionFailed,
    InvalidData,
    OperationTimeout,
    PairingRequired,
    ReadFailed,
)
from aranetctl.core.model import (
    AdapterState,
    Aranet4Reading,
    DeviceIdentity,
    SessionState,
    Settings,
    StatusColor,
)
from aranetctl.core.session import ResultSlot, SessionCoordinator, TimerExpired, TimerKind

FAST = Settings(grace_s=0.05, absolute_timeout_s=1.0, ready_timeout_s=0.2)


def _read(adapter: FakeAdapter, settings: Settings = FAST, device: DeviceIdentity = DEVICE):
    coordinator = SessionCoordinator(adapter, settings=settings)

    async def _run():
        return await coordinator.read(device)

    return coordinator, asyncio.run(_run())


def _read_error(adapter: FakeAdapter, settings: Settings = FAST) -> tuple[SessionCoordinator, Exception]:
    coordinator = SessionCoordinator(adapter, settings=settings)
    with pytest.raises(Exception) as exc:
        asyncio.run(coordinator.read(DEVICE))
    return coordinator, exc.value


def test_read_happy_path(aranet4_values) -> None:
    adapter = FakeAdapter(values=aranet4_values)
    coordinator, reading = _read(adapter)

    assert isinstance(reading, Aranet4Reading)
    assert reading.co2 == 1481
    assert reading.temperature == pytest.approx(21.8)
    assert reading.status is StatusColor.YELLOW
    assert reading.name == "Aranet4 1A2B3"
    assert reading.version == "v1.4.19"
    assert coordinator.state is SessionState.COMPLETED

    assert adapter.count("connect") == 1
    assert adapter.count("disconnect") == 1
    assert sorted(adapter.reads()) == sorted(normalize_uuid(u) for u in (NAME, FIRMWARE, DETAILED))


def test_reads_wait_for_every_service(aranet4_values) -> None:
    adapter = FakeAdapter(values=aranet4_values)
    _read(adapter)
    assert adapter.count("discover_characteristics") == 3
    assert adapter.reads_before_discovery_done == 0


def test_connect_skipped_when_already_connected(aranet4_values) -> None:
    adapter = FakeAdapter(values=aranet4_values, connected=True)
    _, reading = _read(adapter)
    assert reading.co2 == 1481
    assert adapter.count("connect") == 0
    assert adapter.count("disconnect") == 1


def test_name_falls_back_to_advertised_name() -> None:
    adapter = FakeAdapter(
        services={"fce0": [DETAILED]},
        values={DETAILED: ARANET4_PAYLOAD},
    )
    _, reading = _read(adapter)
    assert reading.name == "Aranet4 1A2B3"
    assert reading.version == ""


def test_no_reading_characteristic_fails_read() -> None:
    adapter = FakeAdapter(services={"1800": [NAME]}, values={NAME: b"x"})
    coordinator, error = _read_error(adapter)
    assert isinstance(error, ReadFailed)
    assert coordinator.state is SessionState.FAILED
    assert adapter.reads() == []
    assert adapter.count("disconnect") == 1


def test_empty_reading_without_auth_failure_is_read_failed() -> None:
    adapter = FakeAdapter(services={"fce0": [DETAILED]}, read_errors={DETAILED: False})
    _, error = _read_error(adapter)
    assert isinstance(error, ReadFailed)
    assert adapter.count("disconnect") == 1


def test_auth_failure_escalates_to_pairing_required_after_grace() -> None:
    adapter = FakeAdapter(
        services={"1800": [NAME], "fce0": [BASIC]},
        values={NAME: b"Aranet4 1A2B3"},
        read_errors={BASIC: True},
    )
    loop_times: list[float] = []

    async def _run() -> None:
        coordinator = SessionCoordinator(adapter, settings=Settings(grace_s=0.1, absolute_timeout_s=2.0))
        loop = asyncio.get_running_loop()
        start = loop.time()
        with pytest.raises(PairingRequired) as exc:
            await coordinator.read(DEVICE)
        loop_times.append(loop.time() - start)
        assert "PIN" in str(exc.value)

    asyncio.run(_run())
    assert loop_times[0] >= 0.09
    assert loop_times[0] < 2.0
    assert adapter.count("disconnect") == 1


def test_auth_failure_on_informational_read_is_tolerated(aranet4_values) -> None:
    adapter = FakeAdapter(values=aranet4_values, read_errors={FIRMWARE: True})
    coordinator, reading = _read(adapter)
    assert reading.co2 == 1481
    assert reading.version == ""
    assert coordinator.state is SessionState.COMPLETED


def test_unanswered_read_times_out() -> None:
    adapter = FakeAdapter(services={"fce0": [DETAILED]}, silent=[DETAILED])
    coordinator, error = _read_error(adapter, Settings(grace_s=0.02, absolute_timeout_s=0.1))
    assert isinstance(error, OperationTimeout)
    assert coordinator.state is SessionState.FAILED
    assert adapter.count("disconnect") == 1


def test_connect_failure() -> None:
    adapter = FakeAdapter(connect_error="le-connection-abort-by-local")
    _, error = _read_error(adapter)
    assert isinstance(error, ConnectionFailed)
    assert "le-connection-abort-by-local" in str(error)
    assert adapter.count("discover_services") == 0
    assert adapter.count("disconnect") == 1


def test_service_discovery_failure() -> None:
    adapter = FakeAdapter(service_error="GATT error")
    _, error = _read_error(adapter)
    assert isinstance(error, ReadFailed)
    assert adapter.count("disconnect") == 1


def test_short_payload_fails_with_invalid_data() -> None:
    adapter = FakeAdapter(services={"fce0": [DETAILED]}, values={DETAILED: ARANET4_PAYLOAD[:8]})
    coordinator, error = _read_error(adapter)
    assert isinstance(error, InvalidData)
    assert coordinator.state is SessionState.FAILED
    assert adapter.count("disconnect") == 1


def test_late_timer_after_completion_is_ignored(aranet4_values) -> None:
    adapter = FakeAdapter(
        values=aranet4_values,
        after_reading=[TimerExpired(TimerKind.ABSOLUTE), TimerExpired(TimerKind.GRACE)],
    )
    coordinator, reading = _read(adapter, Settings(grace_s=5.0, absolute_timeout_s=10.0))
    assert reading.co2 == 1481
    assert coordinator.state is SessionState.COMPLETED
    assert adapter.count("disconnect") == 1


def test_only_one_reading_source_is_read() -> None:
    adapter = FakeAdapter(
        services={"fce0": [BASIC, DETAILED, AR2_BASIC]},
        values={DETAILED: ARANET4_PAYLOAD, BASIC: ARANET4_PAYLOAD},
    )
    _read(adapter)
    assert adapter.reads() == [normalize_uuid(DETAILED)]


def test_unauthorized_adapter_fails_before_connecting() -> None:
    adapter = FakeAdapter(state=AdapterState.UNAUTHORIZED)
    _, error = _read_error(adapter)
    assert isinstance(error, AdapterUnauthorized)
    assert adapter.calls == []


def test_waits_for_adapter_to_power_on(aranet4_values) -> None:
    adapter = FakeAdapter(
        values=aranet4_values,
        state=AdapterState.UNKNOWN,
        state_on_listen=AdapterState.POWERED_ON,
    )
    _, reading = _read(adapter)
    assert reading.co2 == 1481


def test_adapter_never_ready_is_unavailable() -> None:
    adapter = FakeAdapter(state=AdapterState.RESETTING)
    _, error = _read_error(adapter, Settings(ready_timeout_s=0.05))
    assert isinstance(error, AdapterUnavailable)


def test_sequential_reads_start_from_fresh_state(aranet4_values) -> None:
    adapter = FakeAdapter(values=aranet4_values)
    coordinator = SessionCoordinator(adapter, settings=FAST)

    async def _run():
        first = await coordinator.read(DEVICE)
        second = await coordinator.read(DEVICE)
        return first, second

    first, second = asyncio.run(_run())
    assert first == second
    assert adapter.count("disconnect") == 2
    assert adapter.count("connect") == 2


def test_scan_deduplicates_devices() -> None:
    other = DeviceIdentity(id="AA:BB:CC:DD:EE:02", name="Aranet2 0F00A")
    adapter = FakeAdapter(
        advertisements=[DeviceIdentity(id=DEVICE.id), DEVICE, other, DEVICE],
    )
    coordinator = SessionCoordinator(adapter, settings=FAST)
    elapsed: list[float] = []

    async def _run():
        loop = asyncio.get_running_loop()
        start = loop.time()
        devices = await coordinator.scan(timeout=0.1)
        elapsed.append(loop.time() - start)
        return devices

    devices = asyncio.run(_run())
    assert [d.id for d in devices] == [DEVICE.id, other.id]
    assert devices[0].name == "Aranet4 1A2B3"
    assert elapsed[0] < 0.5
    assert adapter.count("stop_scan") == 1
    assert adapter.calls[0][1:] == (
        normalize_uuid("fce0"),
        "f0cd1400-95da-4f4b-9ac8-aa55d312af0c",
    )


def test_scan_with_no_devices_is_empty() -> None:
    coordinator = SessionCoordinator(FakeAdapter(), settings=FAST)
    assert asyncio.run(coordinator.scan(timeout=0.02)) == []


def test_result_slot_resolves_once() -> None:
    slot: ResultSlot[int] = ResultSlot()
    assert slot.resolve(1) is True
    assert slot.fail(OperationTimeout()) is False
    assert slot.resolve(2) is False
    assert slot.result() == 1


def test_result_slot_failure_raises_on_result() -> None:
    slot: ResultSlot[int] = ResultSlot()
    assert slot.fail(OperationTimeout()) is True
    with pytest.raises(OperationTimeout):
        slot.result()


def test_disconnect_mid_read_is_connection_failure() -> None:
    adapter = FakeAdapter(services={"fce0": [DETAILED]}, disconnect_on_read=[DETAILED])
    coordinator, error = _read_error(adapter)
    assert isinstance(error, ConnectionFailed)
    assert coordinator.state is SessionState.FAILED
    assert adapter.count("disconnect") == 1


def test_disconnect_after_auth_failure_requires_pairing(aranet4_values) -> None:
    adapter = FakeAdapter(
        values=aranet4_values,
        read_errors={FIRMWARE: True},
        disconnect_on_read=[DETAILED],
    )
    _, error = _read_error(adapter, Settings(grace_s=5.0, absolute_timeout_s=10.0))
    assert isinstance(error, PairingRequired)
    assert adapter.count("disconnect") == 1


def test_characteristic_discovery_failure() -> None:
    adapter = FakeAdapter(characteristic_errors={"180a": "GATT error"})
    coordinator, error = _read_error(adapter)
    assert isinstance(error, ReadFailed)
    assert "GATT error" in str(error)
    assert coordinator.state is SessionState.FAILED
    assert adapter.reads() == []
    assert adapter.count("disconnect") == 1


@pytest.mark.parametrize(
    ("state", "expected"),
    [(AdapterState.POWERED_OFF, AdapterUnavailable), (AdapterState.UNAUTHORIZED, AdapterUnauthorized)],
)
def test_adapter_state_change_fails_read_in_flight(aranet4_values, state, expected) -> None:
    adapter = FakeAdapter(values=aranet4_values, state_after_connect=state)
    coordinator, error = _read_error(adapter)
    assert isinstance(error, expected)
    assert coordinator.state is SessionState.FAILED
    assert adapter.reads() == []
    assert adapter.count("disconnect") == 1


def test_cancelled_read_fails_and_disconnects_once() -> None:
    adapter = FakeAdapter(services={"fce0": [DETAILED]}, silent=[DETAILED])
    coordinator = SessionCoordinator(adapter, settings=FAST)

    async def _run() -> None:
        task = asyncio.create_task(coordinator.read(DEVICE))
        await asyncio.sleep(0.05)
        task.cancel()
        with pytest.raises(asyncio.CancelledError):
            await task

    asyncio.run(_run())
    assert coordinator.state is SessionState.FAILED
    assert adapter.count("disconnect") == 1
