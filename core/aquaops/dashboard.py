"""
Dashboard Engine

Wires the fleet store, mode controller, advisory pipeline and telemetry
service together and exposes the operations the presentation layer uses.
"""

import logging
from collections.abc import Callable

from .advisory import AdvisoryPipeline, AdvisoryRequest
from .aggregation import summarize
from .fixtures import FleetFixture, default_fleet
from .mode import Mode, ModeController
from .models import AdvisoryMessage, FleetSummary, StateChange, UnitMetric, UnitSnapshot
from .settings import EngineSettings
from .store import FleetStore
from .telemetry_service import SimulatedTelemetrySource, TelemetryService

logger = logging.getLogger(__name__)


class Dashboard:
    """Entry point for the presentation layer."""

    def __init__(
        self,
        settings: EngineSettings | None = None,
        fixture: FleetFixture | None = None,
        advisor=None
    ):
        """Build the engine.

        Args:
            settings: Engine settings (defaults if None)
            fixture: Starting fleet (seeded default fleet if None)
            advisor: Advisory composer (TelemetryAdvisor if None)
        """
        self.settings = settings or EngineSettings()
        if fixture is None:
            fixture = default_fleet(self.settings.seed, self.settings.history_capacity)

        self.store = FleetStore(fixture, self.settings)
        self.mode_controller = ModeController(self.store, self.settings.demo)
        self.advisory = AdvisoryPipeline(self.store, advisor, self.settings.advisory_delay_seconds)
        self.telemetry = TelemetryService(
            self.store,
            SimulatedTelemetrySource(self.settings.seed),
            collection_interval_seconds=self.settings.telemetry_interval_seconds,
        )

    async def start(self):
        await self.advisory.start()
        if self.settings.telemetry_enabled:
            await self.telemetry.start()
        else:
            logger.info("Telemetry simulation disabled")

    async def stop(self):
        await self.telemetry.stop()
        await self.advisory.stop()

    # -- queries ------------------------------------------------------------

    @property
    def mode(self) -> Mode:
        return self.mode_controller.mode

    @property
    def thinking(self) -> bool:
        return self.store.thinking

    def list_units(self) -> list[UnitSnapshot]:
        return self.store.list_units()

    def get_unit(self, unit_id: str) -> UnitSnapshot:
        return self.store.get_unit(unit_id)

    def get_fleet_summary(self) -> FleetSummary:
        return summarize(self.store.snapshot())

    def messages(self) -> list[AdvisoryMessage]:
        return self.store.messages()

    def get_request(self, request_id: str) -> AdvisoryRequest | None:
        return self.advisory.get_request(request_id)

    def share_status(self) -> str:
        """One-line status for sharing outside the dashboard."""
        return f"Sharing status: {self.store.snapshot().health_score}% Health"

    # -- commands -----------------------------------------------------------

    def apply_reading(self, unit_id: str, metric: UnitMetric | str, value: float) -> UnitSnapshot:
        return self.store.apply_reading(unit_id, metric, value)

    def toggle_demo_mode(self) -> Mode:
        return self.mode_controller.toggle()

    def submit_advisory(self, text: str) -> str:
        return self.advisory.submit(text)

    def request_reassessment(self, unit_id: str) -> str:
        return self.advisory.request_reassessment(unit_id)

    def subscribe(self, callback: Callable[[StateChange], None]) -> int:
        return self.store.subscribe(callback)

    def unsubscribe(self, handle: int) -> bool:
        return self.store.unsubscribe(handle)

    def on_advisory_message(self, callback: Callable[[AdvisoryMessage], None]) -> int:
        """Subscribe to advisory log entries only. Unsubscribe with ``unsubscribe``."""
        return self.advisory.on_message(callback)
