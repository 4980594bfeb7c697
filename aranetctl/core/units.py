"""Radiation dose units. Aranet devices report doses in nanosieverts."""

from __future__ import annotations

from enum import Enum


class DoseUnit(Enum):
    NANOSIEVERT = ("nSv", 1.0)
    MICROSIEVERT = ("µSv", 1_000.0)
    MILLISIEVERT = ("mSv", 1_000_000.0)
    SIEVERT = ("Sv", 1_000_000_000.0)

    @property
    def symbol(self) -> str:
        return self.value[0]

    @property
    def nanosieverts(self) -> float:
        return self.value[1]


def convert_dose(value: float, source: DoseUnit, target: DoseUnit) -> float:
    return value * source.nanosieverts / target.nanosieverts


def format_duration(seconds: int) -> str:
    """Render a dose-accumulation duration as ``[Nd ][Nh ]Nm``."""
    minutes = (seconds // 60) % 60
    hours = (seconds // 3600) % 24
    days = seconds // 86400

    text = f"{minutes}m"
    if hours > 0:
        text = f"{hours}h {text}"
    if days > 0:
        text = f"{days}d {text}"
    return text
