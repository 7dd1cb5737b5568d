"""Tests for the telemetry collection service."""

from __future__ import annotations

import asyncio
import math

import pytest

from core.aquaops.mode import ModeController
from core.aquaops.models import ConnectionStatus, FleetMetric, UnitMetric
from core.aquaops.telemetry_service import SimulatedTelemetrySource, TelemetryReading, TelemetryService


class StubSource:
    def __init__(self, readings):
        self.readings = readings
        self.snapshots = []

    def poll(self, snapshot):
        self.snapshots.append(snapshot)
        return list(self.readings)


class TestSimulatedSource:
    def test_same_seed_same_readings(self, store) -> None:
        snapshot = store.snapshot()
        first = SimulatedTelemetrySource(seed=1).poll(snapshot)
        second = SimulatedTelemetrySource(seed=1).poll(snapshot)
        assert first == second

    def test_offline_units_skipped(self, store) -> None:
        readings = SimulatedTelemetrySource().poll(store.snapshot())
        unit_ids = {r.unit_id for r in readings if r.unit_id is not None}
        assert unit_ids == {"pond-01", "pond-02", "raceway-b"}

    def test_reading_count(self, store) -> None:
        readings = SimulatedTelemetrySource().poll(store.snapshot())
        # 3 online units x 4 metrics + 3 fleet metrics
        assert len(readings) == 15
        assert sum(1 for r in readings if r.unit_id is None) == 3

    def test_values_stay_plausible(self, store) -> None:
        source = SimulatedTelemetrySource(seed=3)
        for _ in range(20):
            for reading in source.poll(store.snapshot()):
                assert math.isfinite(reading.value)
                assert reading.value >= 0
                if reading.metric == FleetMetric.BATTERY_LEVEL:
                    assert reading.value <= 100


class TestCollection:
    @pytest.mark.asyncio
    async def test_collect_once_applies_readings(self, store) -> None:
        before = store.get_unit("pond-01")
        service = TelemetryService(store, SimulatedTelemetrySource(seed=1))

        accepted = await service.collect_once()

        after = store.get_unit("pond-01")
        assert accepted == 15
        assert after.temperature_history[:-1] == before.temperature_history[1:]
        assert after.temperature_history[-1] == after.temperature

    @pytest.mark.asyncio
    async def test_invalid_readings_skipped(self, store) -> None:
        source = StubSource([
            TelemetryReading(UnitMetric.TEMPERATURE, math.nan, "pond-01"),
            TelemetryReading(UnitMetric.TEMPERATURE, 28.8, "pond-99"),
            TelemetryReading(UnitMetric.TEMPERATURE, 28.8, "pond-01"),
            TelemetryReading(FleetMetric.BATTERY_LEVEL, 140.0),
        ])
        service = TelemetryService(store, source)

        assert await service.collect_once() == 1
        assert store.get_unit("pond-01").temperature == 28.8
        assert store.snapshot().battery_level == 85.0

    @pytest.mark.asyncio
    async def test_demo_polls_from_live_solar(self, store) -> None:
        ModeController(store).enter_demo()
        source = StubSource([])
        service = TelemetryService(store, source)

        await service.collect_once()

        assert source.snapshots[0].solar_power == 12.5

    @pytest.mark.asyncio
    async def test_demo_keeps_offline_units_quiet(self, store) -> None:
        controller = ModeController(store)
        before = store.get_unit("nursery")
        controller.enter_demo()
        service = TelemetryService(store, SimulatedTelemetrySource(seed=1))

        assert await service.collect_once() == 15
        controller.exit_demo()

        nursery = store.get_unit("nursery")
        assert nursery.connection_status == ConnectionStatus.OFFLINE
        assert nursery.temperature == before.temperature
        assert nursery.temperature_history == before.temperature_history

    @pytest.mark.asyncio
    async def test_start_and_stop(self, store) -> None:
        source = StubSource([TelemetryReading(FleetMetric.BOREHOLE_FLOW, 455.0)])
        service = TelemetryService(store, source, collection_interval_seconds=0.01)

        await service.start()
        await asyncio.sleep(0.05)
        await service.stop()

        assert len(source.snapshots) >= 1
        assert store.snapshot().borehole_flow == 455.0

    @pytest.mark.asyncio
    async def test_stop_when_not_running(self, store) -> None:
        service = TelemetryService(store, StubSource([]))
        await service.stop()
