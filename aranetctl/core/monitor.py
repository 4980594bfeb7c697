"""Adaptive polling of one device, aligned to its own measurement cycle."""

from __future__ import annotations

import asyncio
import logging
from collections.abc import AsyncIterator, Awaitable, Callable

from aranetctl.core.errors import InvalidData
from aranetctl.core.model import DeviceIdentity, Reading
from aranetctl.core.session import SessionCoordinator

LOGGER = logging.getLogger(__name__)


def next_delay(interval: float, ago: float, margin: float) -> float:
    """Seconds to wait so the next read lands ``margin`` after the sensor's next update."""
    return max(interval - ago, 0.0) + margin


class Monitor:
    """Repeatedly read one device, scheduling each read from the last reading's age.

    Only one read is ever in flight. Stopping is cooperative: ``stop()`` is
    honoured before each wait and before each read, and the connection is
    released on every way out of ``readings()``.
    """

    def __init__(
        self,
        coordinator: SessionCoordinator,
        device: DeviceIdentity,
        *,
        margin: float | None = None,
        sleep: Callable[[float], Awaitable[object]] = asyncio.sleep,
    ) -> None:
        self._coordinator = coordinator
        self._device = device
        self._margin = coordinator.settings.monitor_margin_s if margin is None else margin
        self._sleep = sleep
        self._stopped = False

    @property
    def stopped(self) -> bool:
        return self._stopped

    def stop(self) -> None:
        self._stopped = True

    async def readings(self) -> AsyncIterator[Reading]:
        try:
            LOGGER.debug("Performing initial reading for monitoring setup")
            reading = await self._coordinator.read(self._device)
            yield reading

            if reading.interval is None or reading.ago is None:
                raise InvalidData("Device does not report its measurement interval and age")

            interval = reading.interval
            delay = next_delay(interval, reading.ago, self._margin)
            LOGGER.debug("Device interval: %ss, age: %ss", interval, reading.ago)

            while not self._stopped:
                LOGGER.debug("Next reading in %.0f seconds", delay)
                await self._sleep(delay)
                if self._stopped:
                    break

                reading = await self._coordinator.read(self._device)
                yield reading

                if reading.interval is not None:
                    interval = reading.interval
                if reading.ago is None:
                    LOGGER.debug("Age not available, waiting one full interval")
                    delay = interval + self._margin
                else:
                    delay = next_delay(interval, reading.ago, self._margin)
        finally:
            self._coordinator.disconnect(self._device)
            LOGGER.debug("Monitoring of %s stopped", self._device.id)
