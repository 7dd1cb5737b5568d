"""
Fleet State Store

Single source of truth for live readings, rolling histories, fleet scalars
and the advisory log. Every mutation goes through a write method on
``FleetStore``; readers receive frozen snapshots and can subscribe to
change notifications.

Writes are serialized by one re-entrant lock. In the asyncio deployment all
writes come from the event loop thread, so the lock is uncontended; it
guards against telemetry or test code writing from other threads.
"""

import itertools
import logging
import math
import numbers
import threading
from collections.abc import Callable
from contextlib import contextmanager
from dataclasses import replace

from .aggregation import clamp_health_score
from .classifier import DEFAULT_THRESHOLDS, ClassifierThresholds, classify
from .exceptions import ConfigurationError, InvalidReading, UnitNotFoundError
from .fixtures import FleetFixture
from .models import (
    AdvisoryMessage,
    AnalyzingStatus,
    ChangeKind,
    ConnectionStatus,
    FleetMetric,
    FleetSnapshot,
    StateChange,
    Unit,
    UnitMetric,
    UnitSnapshot,
    now_utc,
)
from .settings import EngineSettings

logger = logging.getLogger(__name__)

Subscriber = Callable[[StateChange], None]

WELCOME_MESSAGE = "Edge AI Module connected."


class FleetStore:
    """State container for the monitored fleet."""

    def __init__(
        self,
        fixture: FleetFixture,
        settings: EngineSettings | None = None,
        thresholds: ClassifierThresholds = DEFAULT_THRESHOLDS
    ):
        """Load the fleet from a fixture.

        Args:
            fixture: Starting units and fleet scalars
            settings: Engine settings (instrument ranges); defaults if None
            thresholds: Classifier thresholds

        Raises:
            ConfigurationError: If unit ids are not unique
        """
        self.settings = settings or EngineSettings()
        self.thresholds = thresholds

        self._units: dict[str, Unit] = {}
        for unit in fixture.units:
            if unit.id in self._units:
                raise ConfigurationError(f"Duplicate unit id: {unit.id}")
            self._units[unit.id] = unit
            unit.ai_status = classify(unit, thresholds)

        self._health_score = clamp_health_score(fixture.health_score)
        self._solar_power = float(fixture.solar_power)
        self._battery_level = float(fixture.battery_level)
        self._borehole_flow = float(fixture.borehole_flow)
        self._monthly_revenue = float(fixture.monthly_revenue)
        self._monthly_cost = float(fixture.monthly_cost)
        self._auto_manage_all = bool(fixture.auto_manage_all)
        self._fleet_histories = {
            FleetMetric.SOLAR_POWER: fixture.solar_history.copy(),
            FleetMetric.BATTERY_LEVEL: fixture.battery_history.copy(),
            FleetMetric.BOREHOLE_FLOW: fixture.borehole_history.copy(),
        }

        # Demo overlay bookkeeping (driven by ModeController)
        self._demo_active = False
        self._saved_live: FleetSnapshot | None = None
        self._demo_touched: set[str] = set()

        self._thinking = False
        self._messages: list[AdvisoryMessage] = []
        self._sequence = itertools.count(1)

        self._lock = threading.RLock()
        self._subscribers: dict[int, Subscriber] = {}
        self._handles = itertools.count(1)

        self.append_message(WELCOME_MESSAGE, is_user=False, is_system_event=True)
        logger.info(f"Fleet store loaded with {len(self._units)} unit(s)")

    # -- subscription -------------------------------------------------------

    def subscribe(self, callback: Subscriber) -> int:
        """Register a callback for every state change. Returns a handle."""
        with self._lock:
            handle = next(self._handles)
            self._subscribers[handle] = callback
        return handle

    def unsubscribe(self, handle: int) -> bool:
        """Remove a subscription. Returns True if it existed."""
        with self._lock:
            return self._subscribers.pop(handle, None) is not None

    def publish(self, change: StateChange) -> None:
        """Deliver a change to subscribers in registration order."""
        with self._lock:
            subscribers = list(self._subscribers.values())

        for callback in subscribers:
            try:
                callback(change)
            except Exception:
                logger.exception(f"Error in state subscriber {callback!r} for {change.kind.value}")

    @contextmanager
    def write_lock(self):
        """Hold the writer lock across several operations."""
        with self._lock:
            yield

    # -- reads --------------------------------------------------------------

    @property
    def demo_active(self) -> bool:
        return self._demo_active

    @property
    def thinking(self) -> bool:
        return self._thinking

    @property
    def saved_live_snapshot(self) -> FleetSnapshot | None:
        """Live state captured when demo mode was entered."""
        return self._saved_live

    def list_units(self) -> list[UnitSnapshot]:
        with self._lock:
            return [unit.snapshot() for unit in self._units.values()]

    def get_unit(self, unit_id: str) -> UnitSnapshot:
        with self._lock:
            return self._require(unit_id).snapshot()

    def snapshot(self) -> FleetSnapshot:
        """Deep immutable copy of the current (presented) fleet state."""
        with self._lock:
            return FleetSnapshot(
                units=tuple(unit.snapshot() for unit in self._units.values()),
                health_score=self._health_score,
                solar_power=self._solar_power,
                battery_level=self._battery_level,
                borehole_flow=self._borehole_flow,
                monthly_revenue=self._monthly_revenue,
                monthly_cost=self._monthly_cost,
                auto_manage_all=self._auto_manage_all,
                solar_history=self._fleet_histories[FleetMetric.SOLAR_POWER].to_sequence(),
                battery_history=self._fleet_histories[FleetMetric.BATTERY_LEVEL].to_sequence(),
                borehole_history=self._fleet_histories[FleetMetric.BOREHOLE_FLOW].to_sequence(),
                demo_active=self._demo_active,
                advisory_thinking=self._thinking,
            )

    def messages(self) -> list[AdvisoryMessage]:
        with self._lock:
            return list(self._messages)

    # -- telemetry writes ---------------------------------------------------

    def apply_reading(self, unit_id: str, metric: UnitMetric | str, value: float) -> UnitSnapshot:
        """Record one water-quality reading for a unit.

        Args:
            unit_id: Unit identifier
            metric: Which reading (UnitMetric or its string value)
            value: New reading

        Returns:
            Snapshot of the unit after the update

        Raises:
            UnitNotFoundError: If the unit does not exist
            InvalidReading: If metric is unknown or value is non-finite or
                outside the instrument range (unit left untouched)
        """
        with self._lock:
            unit = self._require(unit_id)
            metric = self._unit_metric(metric, unit_id)
            number = self._validate(metric.value, value, unit_id)

            history = unit.histories().get(metric)
            if history is not None:
                history.push(number)
            setattr(unit, metric.value, number)
            unit.last_update = now_utc()

            if self._demo_active:
                # Classification waits until the overlay is lifted
                self._demo_touched.add(unit_id)
            else:
                self._classify(unit)
            snapshot = unit.snapshot()

        logger.debug(f"Unit {unit_id}: {metric.value}={number}")
        self.publish(StateChange(ChangeKind.READING, unit_id=unit_id))
        return snapshot

    def set_connection_status(self, unit_id: str, status: ConnectionStatus | str) -> UnitSnapshot:
        """Update a unit's sensor link state and re-classify it."""
        try:
            status = ConnectionStatus(status)
        except ValueError as e:
            raise InvalidReading(
                f"Unknown connection status: {status!r}", unit_id=unit_id, metric="connection_status", value=status
            ) from e

        with self._lock:
            unit = self._require(unit_id)
            if self._demo_active:
                self._update_saved_unit(unit_id, connection_status=status)
                self._demo_touched.add(unit_id)
            else:
                unit.connection_status = status
                self._classify(unit)
            unit.last_update = now_utc()
            snapshot = unit.snapshot()

        logger.info(f"Unit {unit_id} connection is {status.value}")
        self.publish(StateChange(ChangeKind.UNIT, unit_id=unit_id))
        return snapshot

    def apply_fleet_reading(self, metric: FleetMetric | str, value: float) -> float:
        """Record a farm-wide utility reading (solar, battery, borehole).

        Returns:
            The stored value

        Raises:
            InvalidReading: If metric is unknown or value is out of range
        """
        try:
            metric = FleetMetric(metric)
        except ValueError as e:
            raise InvalidReading(f"Unknown fleet metric: {metric!r}", metric=str(metric), value=value) from e

        with self._lock:
            number = self._validate(metric.value, value)
            self._fleet_histories[metric].push(number)
            if self._demo_active and metric == FleetMetric.SOLAR_POWER:
                self._update_saved(solar_power=number)
            else:
                setattr(self, f"_{metric.value}", number)

        self.publish(StateChange(ChangeKind.FLEET))
        return number

    def set_health_score(self, value: float) -> int:
        """Store a new health score, clamped to [0, 100]."""
        score = clamp_health_score(value)
        with self._lock:
            if self._demo_active:
                self._update_saved(health_score=score)
            else:
                self._health_score = score

        self.publish(StateChange(ChangeKind.FLEET))
        return score

    def set_financials(self, monthly_revenue: float | None = None, monthly_cost: float | None = None) -> None:
        """Update monthly revenue and/or cost."""
        changes = {}
        for name, value in (("monthly_revenue", monthly_revenue), ("monthly_cost", monthly_cost)):
            if value is None:
                continue
            try:
                number = float(value)
            except (TypeError, ValueError) as e:
                raise InvalidReading(f"{name} must be numeric, got {value!r}", metric=name, value=value) from e
            if not math.isfinite(number) or number < 0:
                raise InvalidReading(f"{name} must be a finite, non-negative amount", metric=name, value=value)
            changes[name] = number

        if not changes:
            return

        with self._lock:
            if self._demo_active:
                self._update_saved(**changes)
            else:
                for name, number in changes.items():
                    setattr(self, f"_{name}", number)

        self.publish(StateChange(ChangeKind.FLEET))

    def set_auto_manage_all(self, enabled: bool) -> None:
        with self._lock:
            self._auto_manage_all = bool(enabled)
        logger.info(f"Automatic management {'enabled' if enabled else 'disabled'} for all units")
        self.publish(StateChange(ChangeKind.FLEET))

    def update_inventory(
        self,
        unit_id: str,
        sensor_count: int | None = None,
        pump_count: int | None = None,
        feeder_status: str | None = None
    ) -> UnitSnapshot:
        """Update a unit's descriptive equipment attributes."""
        for name, count in (("sensor_count", sensor_count), ("pump_count", pump_count)):
            if count is not None and (not isinstance(count, int) or count < 0):
                raise InvalidReading(f"{name} must be a non-negative integer", unit_id=unit_id, metric=name, value=count)

        with self._lock:
            unit = self._require(unit_id)
            if sensor_count is not None:
                unit.sensor_count = sensor_count
            if pump_count is not None:
                unit.pump_count = pump_count
            if feeder_status is not None:
                unit.feeder_status = feeder_status
            snapshot = unit.snapshot()

        self.publish(StateChange(ChangeKind.UNIT, unit_id=unit_id))
        return snapshot

    # -- advisory pipeline writes -------------------------------------------

    def mark_analyzing(self, unit_id: str) -> None:
        """Flag a unit as pending re-evaluation."""
        with self._lock:
            unit = self._require(unit_id)
            if self._demo_active:
                self._update_saved_unit(unit_id, ai_status=AnalyzingStatus())
                self._demo_touched.add(unit_id)
            else:
                unit.ai_status = AnalyzingStatus()

        self.publish(StateChange(ChangeKind.UNIT, unit_id=unit_id))

    def reclassify(self, unit_id: str) -> UnitSnapshot:
        """Re-run classification for a unit, clearing any Analyzing state."""
        with self._lock:
            unit = self._require(unit_id)
            if self._demo_active:
                # Settle the live status now; the overlay keeps presenting Optimal
                live_unit = self._saved_live.unit(unit_id)
                live_view = replace(unit.snapshot(), connection_status=live_unit.connection_status)
                self._update_saved_unit(unit_id, ai_status=classify(live_view, self.thresholds))
                self._demo_touched.add(unit_id)
            else:
                self._classify(unit, force=True)
            snapshot = unit.snapshot()

        self.publish(StateChange(ChangeKind.UNIT, unit_id=unit_id))
        return snapshot

    def append_message(
        self,
        text: str,
        is_user: bool,
        is_system_event: bool = False,
        reasoning: str | None = None
    ) -> AdvisoryMessage:
        """Append to the advisory log. Messages are never changed afterwards."""
        with self._lock:
            timestamp = now_utc()
            if self._messages and timestamp < self._messages[-1].timestamp:
                # Wall clock stepped back; keep the log ordered
                timestamp = self._messages[-1].timestamp
            message = AdvisoryMessage(
                text=text,
                is_user=is_user,
                is_system_event=is_system_event,
                reasoning=reasoning,
                timestamp=timestamp,
                sequence=next(self._sequence),
            )
            self._messages.append(message)

        self.publish(StateChange(ChangeKind.ADVISORY_MESSAGE, message=message))
        return message

    def set_thinking(self, thinking: bool) -> None:
        with self._lock:
            changed = self._thinking != thinking
            self._thinking = thinking

        if changed:
            self.publish(StateChange(ChangeKind.THINKING))

    # -- mode controller hooks ----------------------------------------------

    def apply_presentation(self, presentation, demo_active: bool, saved_live: FleetSnapshot | None) -> None:
        """Swap in the overlay-governed fields in one step.

        Only the mode controller calls this, while holding ``write_lock``.

        Args:
            presentation: PresentationState to show
            demo_active: New demo flag
            saved_live: Live snapshot to keep while demo is active
        """
        with self._lock:
            for unit_id, _, _ in presentation.unit_states:
                self._require(unit_id)

            self._health_score = presentation.health_score
            self._monthly_revenue = presentation.monthly_revenue
            self._monthly_cost = presentation.monthly_cost
            self._solar_power = presentation.solar_power
            for unit_id, ai_status, connection_status in presentation.unit_states:
                unit = self._units[unit_id]
                unit.ai_status = ai_status
                unit.connection_status = connection_status

            self._demo_active = demo_active
            self._saved_live = saved_live

    def drain_demo_updates(self) -> set[str]:
        """Ids of units that changed while the overlay was up; clears the set."""
        with self._lock:
            touched, self._demo_touched = self._demo_touched, set()
            return touched

    def restore_demo_updates(self, unit_ids: set[str]) -> None:
        with self._lock:
            self._demo_touched |= unit_ids

    def classify_units(self, unit_ids: set[str]) -> None:
        """Re-classify several units without publishing (caller publishes)."""
        with self._lock:
            for unit_id in unit_ids:
                self._classify(self._require(unit_id))

    # -- internals ----------------------------------------------------------

    def _require(self, unit_id: str) -> Unit:
        try:
            return self._units[unit_id]
        except KeyError:
            raise UnitNotFoundError(unit_id) from None

    def _unit_metric(self, metric, unit_id: str) -> UnitMetric:
        try:
            return UnitMetric(metric)
        except ValueError as e:
            raise InvalidReading(f"Unknown metric: {metric!r}", unit_id=unit_id, metric=str(metric)) from e

    def _validate(self, metric: str, value, unit_id: str | None = None) -> float:
        """Check a value is finite and inside the instrument range."""
        if isinstance(value, bool) or not isinstance(value, numbers.Real):
            raise InvalidReading(f"{metric} must be numeric, got {value!r}", unit_id=unit_id, metric=metric, value=value)

        number = float(value)
        if not math.isfinite(number):
            raise InvalidReading(f"{metric} must be finite, got {value!r}", unit_id=unit_id, metric=metric, value=value)

        instrument_range = self.settings.instrument_ranges.get(metric)
        if instrument_range is not None and number not in instrument_range:
            raise InvalidReading(
                f"{metric}={number} outside instrument range [{instrument_range.low}, {instrument_range.high}]",
                unit_id=unit_id,
                metric=metric,
                value=value,
            )
        return number

    def _classify(self, unit: Unit, force: bool = False) -> None:
        # A pending re-evaluation owns the status until its job completes
        if isinstance(unit.ai_status, AnalyzingStatus) and not force:
            return
        status = classify(unit, self.thresholds)
        if status != unit.ai_status:
            logger.info(f"Unit {unit.id} status {unit.ai_status.label} -> {status.label}")
        unit.ai_status = status

    def _update_saved(self, **changes) -> None:
        self._saved_live = replace(self._saved_live, **changes)

    def _update_saved_unit(self, unit_id: str, **changes) -> None:
        units = tuple(
            replace(u, **changes) if u.id == unit_id else u
            for u in self._saved_live.units
        )
        self._saved_live = replace(self._saved_live, units=units)
