"""
Fleet Fixture

Starting state of the farm: four units plus farm-wide utility readings.
History windows are drawn from a seeded generator so a given seed always
produces the same fleet.
"""

import math
from dataclasses import dataclass, field

import numpy as np

from .exceptions import ConfigurationError
from .models import ConnectionStatus, Unit
from .ring_buffer import HISTORY_CAPACITY, RingBuffer


def seeded_history(
    rng: np.random.Generator,
    low: float,
    high: float,
    capacity: int = HISTORY_CAPACITY
) -> RingBuffer:
    """Full history window of uniform samples in [low, high)."""
    return RingBuffer(capacity, rng.uniform(low, high, capacity).round(2).tolist())


def solar_curve(capacity: int = HISTORY_CAPACITY, peak_kw: float = 15.0) -> RingBuffer:
    """Daylight generation curve: zero at night, peak at midday."""
    samples = [max(0.0, peak_kw * math.sin((i - 6) * math.pi / 12)) for i in range(capacity)]
    return RingBuffer(capacity, samples)


@dataclass
class FleetFixture:
    """Everything the store needs to start."""

    units: list[Unit]
    health_score: int = 92
    solar_power: float = 12.5
    battery_level: float = 85.0
    borehole_flow: float = 450.0
    monthly_revenue: float = 15400.0
    monthly_cost: float = 4200.0
    auto_manage_all: bool = True
    solar_history: RingBuffer | None = None
    battery_history: RingBuffer | None = None
    borehole_history: RingBuffer | None = None
    capacity: int = field(default=HISTORY_CAPACITY)

    def __post_init__(self):
        for unit in self.units:
            for buffer in unit.histories().values():
                if buffer.capacity != self.capacity:
                    raise ConfigurationError(
                        f"Unit {unit.id} history holds {buffer.capacity} samples, fleet uses {self.capacity}"
                    )

        # Unseeded utility windows start flat at the current value
        if self.solar_history is None:
            self.solar_history = RingBuffer(self.capacity, [self.solar_power] * self.capacity)
        if self.battery_history is None:
            self.battery_history = RingBuffer(self.capacity, [self.battery_level] * self.capacity)
        if self.borehole_history is None:
            self.borehole_history = RingBuffer(self.capacity, [self.borehole_flow] * self.capacity)


def _unit(rng: np.random.Generator, capacity: int, **fields) -> Unit:
    return Unit(
        history_capacity=capacity,
        temperature_history=seeded_history(rng, 27.0, 29.0, capacity),
        ph_history=seeded_history(rng, 6.8, 7.4, capacity),
        oxygen_history=seeded_history(rng, 5.5, 7.0, capacity),
        **fields,
    )


def default_fleet(seed: int = 42, capacity: int = HISTORY_CAPACITY) -> FleetFixture:
    """Demo farm: two tilapia ponds, a shrimp raceway and a catfish nursery.

    Args:
        seed: Seed for history generation
        capacity: Samples per history window

    Returns:
        Fixture with unclassified units (the store classifies on load)
    """
    rng = np.random.default_rng(seed)

    units = [
        _unit(rng, capacity, id="pond-01", name="Pond 01", species="Tilapia",
              temperature=28.5, ph=7.2, dissolved_oxygen=6.5, ammonia=0.02, salinity=0.5),
        _unit(rng, capacity, id="pond-02", name="Pond 02", species="Tilapia",
              temperature=29.8, ph=6.8, dissolved_oxygen=4.2, ammonia=0.5, salinity=0.5),
        _unit(rng, capacity, id="raceway-b", name="Raceway B", species="Vannamei",
              temperature=26.0, ph=8.1, dissolved_oxygen=7.0, ammonia=0.0, salinity=15.0),
        _unit(rng, capacity, id="nursery", name="Nursery", species="Catfish",
              temperature=31.5, ph=6.5, dissolved_oxygen=5.8, ammonia=1.2, salinity=0.2,
              connection_status=ConnectionStatus.OFFLINE),
    ]

    return FleetFixture(
        units=units,
        solar_history=solar_curve(capacity),
        borehole_history=seeded_history(rng, 400.0, 480.0, capacity),
        capacity=capacity,
    )
