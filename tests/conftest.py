"""Shared fixtures for the AquaOps test suite."""

from __future__ import annotations

import pytest

from core.aquaops.dashboard import Dashboard
from core.aquaops.fixtures import FleetFixture, default_fleet
from core.aquaops.models import ConnectionStatus, Unit
from core.aquaops.settings import EngineSettings
from core.aquaops.store import FleetStore


@pytest.fixture
def settings() -> EngineSettings:
    """Settings with no advisory latency and no background telemetry."""
    return EngineSettings(advisory_delay_seconds=0.0, telemetry_enabled=False)


@pytest.fixture
def fleet() -> FleetFixture:
    """The four-unit demo farm, seeded."""
    return default_fleet(seed=7)


@pytest.fixture
def store(fleet: FleetFixture, settings: EngineSettings) -> FleetStore:
    return FleetStore(fleet, settings)


@pytest.fixture
def dashboard(settings: EngineSettings) -> Dashboard:
    return Dashboard(settings)


@pytest.fixture
def make_unit():
    """Factory for a healthy unit with selected fields overridden."""

    def _make(**overrides) -> Unit:
        fields = {
            "id": "tank-1",
            "name": "Tank 1",
            "species": "Tilapia",
            "temperature": 28.0,
            "ph": 7.0,
            "dissolved_oxygen": 6.5,
            "ammonia": 0.1,
            "salinity": 0.5,
            "connection_status": ConnectionStatus.ONLINE,
        }
        fields.update(overrides)
        return Unit(**fields)

    return _make
