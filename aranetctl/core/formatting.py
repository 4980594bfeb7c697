"""Plain-text rendering of readings for terminal output."""

from __future__ import annotations

from aranetctl.core.model import Aranet2Reading, Aranet4Reading, RadiationReading, Reading
from aranetctl.core.units import DoseUnit, convert_dose, format_duration

RULE = "-" * 39


def _header(reading: Reading) -> list[str]:
    title = f"Connected: {reading.name}"
    if reading.version:
        version = reading.version if reading.version.startswith("v") else f"v{reading.version}"
        title += f" | {version}"
    lines = [RULE, title]
    if reading.ago is not None and reading.interval is not None:
        lines.append(f"Updated {reading.ago} s ago. Intervals: {reading.interval} s")
    lines.append(RULE)
    return lines


def _age(reading: Reading) -> list[str]:
    if reading.ago is not None and reading.interval is not None:
        return [f"Age:          {reading.ago}/{reading.interval} s"]
    return []


def format_reading(reading: Reading) -> str:
    lines = _header(reading)

    if isinstance(reading, Aranet4Reading):
        lines.append(f"CO2:          {reading.co2} ppm")
        lines.append(f"Temperature:  {reading.temperature:.1f} °C")
        lines.append(f"Humidity:     {reading.humidity} %")
        lines.append(f"Pressure:     {reading.pressure:.1f} hPa")
        lines.append(f"Battery:      {reading.battery} %")
        if reading.status is not None:
            lines.append(f"Status Display: {reading.status.name}")
    elif isinstance(reading, Aranet2Reading):
        lines.append(f"Temperature:  {reading.temperature:.1f} °C")
        lines.append(f"Humidity:     {reading.humidity} %")
        lines.append(f"Battery:      {reading.battery} %")
    elif isinstance(reading, RadiationReading):
        rate = convert_dose(reading.dose_rate, DoseUnit.NANOSIEVERT, DoseUnit.MICROSIEVERT)
        total = convert_dose(reading.dose_total, DoseUnit.NANOSIEVERT, DoseUnit.MILLISIEVERT)
        lines.append(f"Dose rate:    {rate:.2f} {DoseUnit.MICROSIEVERT.symbol}/h")
        lines.append(
            f"Dose total:   {total:.4f} {DoseUnit.MILLISIEVERT.symbol}/{format_duration(reading.duration)}"
        )
        lines.append(f"Battery:      {reading.battery} %")
    else:
        lines.append("Unknown device type")

    lines.extend(_age(reading))
    lines.append(RULE)
    return "\n".join(lines)
