"""
Fleet Aggregation

Fleet-wide averages and the dashboard summary, computed on read from a
fleet snapshot.
"""

import logging
import math
from collections.abc import Callable, Iterable
from operator import attrgetter

from .classifier import status_label
from .exceptions import EmptyFleetError, InvalidReading
from .models import ConnectionStatus, FleetSnapshot, FleetSummary

logger = logging.getLogger(__name__)

HEALTH_SCORE_MIN = 0
HEALTH_SCORE_MAX = 100

STATUS_LABELS = ("optimal", "warning", "critical", "analyzing")


def average(units: Iterable, selector: Callable | str) -> float:
    """Arithmetic mean of one reading across units.

    Args:
        units: Units or unit snapshots
        selector: Callable taking a unit, or the attribute name to read

    Returns:
        The mean value

    Raises:
        EmptyFleetError: If there are no units
    """
    if isinstance(selector, str):
        selector = attrgetter(selector)

    values = [float(selector(unit)) for unit in units]
    if not values:
        raise EmptyFleetError("Cannot average over an empty fleet")

    return math.fsum(values) / len(values)


def clamp_health_score(value: float) -> int:
    """Round and clamp a health score to [0, 100].

    Raises:
        InvalidReading: If value is not a finite number
    """
    try:
        number = float(value)
    except (TypeError, ValueError) as e:
        raise InvalidReading(f"Health score must be numeric, got {value!r}", metric="health_score", value=value) from e
    if not math.isfinite(number):
        raise InvalidReading(f"Health score must be finite, got {value!r}", metric="health_score", value=value)

    clamped = min(HEALTH_SCORE_MAX, max(HEALTH_SCORE_MIN, round(number)))
    if clamped != number:
        logger.debug(f"Health score {number} stored as {clamped}")
    return int(clamped)


def status_counts(units: Iterable) -> dict[str, int]:
    """Number of units per health category (all categories present)."""
    counts = dict.fromkeys(STATUS_LABELS, 0)
    for unit in units:
        counts[status_label(unit.ai_status)] += 1
    return counts


def summarize(snapshot: FleetSnapshot) -> FleetSummary:
    """Build the dashboard summary for a fleet snapshot.

    Raises:
        EmptyFleetError: If the snapshot holds no units
    """
    units = snapshot.units
    return FleetSummary(
        avg_temperature=average(units, "temperature"),
        avg_ph=average(units, "ph"),
        avg_dissolved_oxygen=average(units, "dissolved_oxygen"),
        health_score=snapshot.health_score,
        solar_power=snapshot.solar_power,
        battery_level=snapshot.battery_level,
        borehole_flow=snapshot.borehole_flow,
        monthly_revenue=snapshot.monthly_revenue,
        monthly_cost=snapshot.monthly_cost,
        net_margin=snapshot.monthly_revenue - snapshot.monthly_cost,
        status_counts=status_counts(units),
        online_units=sum(1 for u in units if u.connection_status == ConnectionStatus.ONLINE),
        total_units=len(units),
        auto_manage_all=snapshot.auto_manage_all,
        demo_active=snapshot.demo_active,
        advisory_thinking=snapshot.advisory_thinking,
    )
