"""
Telemetry Collection Service

Background service that feeds readings into the fleet store at a fixed
interval. The reading source is pluggable; ``SimulatedTelemetrySource``
produces a seeded random walk around each unit's current values so the
dashboard moves without real hardware attached.
"""

import asyncio
import logging
from dataclasses import dataclass, replace

import numpy as np

from .exceptions import AquaOpsError, InvalidReading
from .models import ConnectionStatus, FleetMetric, FleetSnapshot, UnitMetric
from .store import FleetStore

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class TelemetryReading:
    """One reading; unit_id is None for farm-wide metrics."""

    metric: UnitMetric | FleetMetric
    value: float
    unit_id: str | None = None


class SimulatedTelemetrySource:
    """Seeded random-walk readings for every online unit."""

    # Step standard deviation per poll
    UNIT_STEPS = {
        UnitMetric.TEMPERATURE: 0.15,
        UnitMetric.PH: 0.03,
        UnitMetric.DISSOLVED_OXYGEN: 0.1,
        UnitMetric.AMMONIA: 0.01,
    }
    FLEET_STEPS = {
        FleetMetric.SOLAR_POWER: 0.4,
        FleetMetric.BATTERY_LEVEL: 0.5,
        FleetMetric.BOREHOLE_FLOW: 6.0,
    }

    def __init__(self, seed: int = 42):
        self.rng = np.random.default_rng(seed)

    def poll(self, snapshot: FleetSnapshot) -> list[TelemetryReading]:
        """Next batch of readings given the current fleet state."""
        readings = []
        for unit in snapshot.units:
            if unit.connection_status == ConnectionStatus.OFFLINE:
                continue
            for metric, step in self.UNIT_STEPS.items():
                current = getattr(unit, metric.value)
                value = max(0.0, current + self.rng.normal(0.0, step))
                readings.append(TelemetryReading(metric, round(float(value), 3), unit.id))

        for metric, step in self.FLEET_STEPS.items():
            current = getattr(snapshot, metric.value)
            value = max(0.0, current + self.rng.normal(0.0, step))
            if metric == FleetMetric.BATTERY_LEVEL:
                value = min(100.0, value)
            readings.append(TelemetryReading(metric, round(float(value), 2)))

        return readings


class TelemetryService:
    """Background service that applies telemetry to the store."""

    def __init__(
        self,
        store: FleetStore,
        source: SimulatedTelemetrySource,
        collection_interval_seconds: float = 5.0
    ):
        self.store = store
        self.source = source
        self.collection_interval_seconds = collection_interval_seconds

        self._task: asyncio.Task | None = None
        self._running = False

    async def start(self):
        """Start the telemetry collection service."""
        if self._running:
            logger.warning("Telemetry service already running")
            return

        self._running = True
        self._task = asyncio.create_task(self._run_loop())
        logger.info(f"📡 Telemetry service started (interval {self.collection_interval_seconds}s)")

    async def stop(self):
        """Stop the telemetry collection service."""
        if not self._running:
            return

        self._running = False
        if self._task:
            self._task.cancel()
            try:
                await self._task
            except asyncio.CancelledError:
                pass

        logger.info("📡 Telemetry service stopped")

    async def _run_loop(self):
        """Main collection loop - applies one batch every interval."""
        while self._running:
            try:
                await self.collect_once()
            except Exception as e:
                logger.error(f"Error in telemetry collection loop: {e}", exc_info=True)

            await asyncio.sleep(self.collection_interval_seconds)

    async def collect_once(self) -> int:
        """Poll the source once and apply the readings in order.

        Returns:
            Number of readings accepted
        """
        snapshot = self.store.snapshot()
        live = self.store.saved_live_snapshot
        if snapshot.demo_active and live is not None:
            # Walk from the live values, not the demo overlay
            live_links = {u.id: u.connection_status for u in live.units}
            units = tuple(
                replace(u, connection_status=live_links.get(u.id, u.connection_status))
                for u in snapshot.units
            )
            snapshot = replace(snapshot, units=units, solar_power=live.solar_power)
        readings = self.source.poll(snapshot)

        accepted = 0
        for reading in readings:
            try:
                if reading.unit_id is None:
                    self.store.apply_fleet_reading(reading.metric, reading.value)
                else:
                    self.store.apply_reading(reading.unit_id, reading.metric, reading.value)
                accepted += 1
            except InvalidReading as e:
                logger.warning(f"Rejected reading {reading}: {e}")
            except AquaOpsError as e:
                logger.warning(f"Could not apply reading {reading}: {e}")

        logger.debug(f"Applied {accepted}/{len(readings)} telemetry readings")
        return accepted
