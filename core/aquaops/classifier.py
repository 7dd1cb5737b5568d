"""
Unit Health Classification

Maps one unit's readings to a health status. Checks run in priority order
and the first match wins:

1. Sensor offline            -> Critical("Offline")
2. Ammonia above limit       -> Critical("Ammonia")
3. Dissolved oxygen too low  -> Warning("Low Oxygen")
4. Temperature or pH outside band -> Warning("Out of range")
5. Otherwise                 -> Optimal
"""

from dataclasses import dataclass

from .models import (
    AiStatus,
    AnalyzingStatus,
    ConnectionStatus,
    CriticalStatus,
    OptimalStatus,
    WarningStatus,
)

REASON_OFFLINE = "Offline"
REASON_AMMONIA = "Ammonia"
REASON_LOW_OXYGEN = "Low Oxygen"
REASON_OUT_OF_RANGE = "Out of range"


@dataclass(frozen=True)
class ClassifierThresholds:
    """Health thresholds. Range bounds are inclusive."""

    max_ammonia: float = 1.0  # mg/L
    min_dissolved_oxygen: float = 5.0  # mg/L
    temperature_range: tuple[float, float] = (26.0, 30.0)  # °C, Tilapia/Catfish growth band
    ph_range: tuple[float, float] = (6.5, 7.5)


DEFAULT_THRESHOLDS = ClassifierThresholds()


def classify(reading, thresholds: ClassifierThresholds = DEFAULT_THRESHOLDS) -> AiStatus:
    """Classify a unit's health from its current readings.

    Args:
        reading: Anything exposing connection_status, ammonia,
            dissolved_oxygen, temperature and ph (Unit or UnitSnapshot)
        thresholds: Limits to classify against

    Returns:
        OptimalStatus, WarningStatus or CriticalStatus. Never AnalyzingStatus.
    """
    if reading.connection_status == ConnectionStatus.OFFLINE:
        return CriticalStatus(REASON_OFFLINE)

    if reading.ammonia > thresholds.max_ammonia:
        return CriticalStatus(REASON_AMMONIA)

    if reading.dissolved_oxygen < thresholds.min_dissolved_oxygen:
        return WarningStatus(REASON_LOW_OXYGEN)

    temp_low, temp_high = thresholds.temperature_range
    ph_low, ph_high = thresholds.ph_range
    if not temp_low <= reading.temperature <= temp_high or not ph_low <= reading.ph <= ph_high:
        return WarningStatus(REASON_OUT_OF_RANGE)

    return OptimalStatus()


def status_label(status: AiStatus) -> str:
    """Category name of a status: optimal, warning, critical or analyzing."""
    if isinstance(status, OptimalStatus):
        return "optimal"
    if isinstance(status, WarningStatus):
        return "warning"
    if isinstance(status, CriticalStatus):
        return "critical"
    if isinstance(status, AnalyzingStatus):
        return "analyzing"
    raise TypeError(f"Unknown health status: {status!r}")


def status_reason(status: AiStatus) -> str | None:
    """Reason text for Warning/Critical, None for the rest."""
    if isinstance(status, (WarningStatus, CriticalStatus)):
        return status.reason
    if isinstance(status, (OptimalStatus, AnalyzingStatus)):
        return None
    raise TypeError(f"Unknown health status: {status!r}")


def needs_attention(status: AiStatus) -> bool:
    """True for Warning and Critical statuses."""
    return status_label(status) in ("warning", "critical")
