"""Tests for live/demo mode switching."""

from __future__ import annotations

import threading

import pytest

from core.aquaops.mode import Mode, ModeController, PresentationState
from core.aquaops.models import (
    ChangeKind,
    ConnectionStatus,
    CriticalStatus,
    OptimalStatus,
    WarningStatus,
)
from core.aquaops.settings import DemoOverlay


@pytest.fixture
def controller(store) -> ModeController:
    return ModeController(store)


class TestDemoOverlay:
    def test_enter_shows_overlay(self, store, controller) -> None:
        assert controller.toggle() == Mode.DEMO

        snapshot = store.snapshot()
        assert snapshot.demo_active
        assert snapshot.health_score == 99
        assert snapshot.monthly_revenue == 25000.0
        assert snapshot.monthly_cost == 3000.0
        assert snapshot.solar_power == 18.2
        for unit in snapshot.units:
            assert unit.ai_status == OptimalStatus()
            assert unit.connection_status == ConnectionStatus.ONLINE

    def test_overlay_leaves_raw_readings(self, store, controller) -> None:
        before = store.get_unit("nursery")
        controller.enter_demo()
        during = store.get_unit("nursery")

        assert during.temperature == before.temperature
        assert during.ammonia == before.ammonia
        assert during.temperature_history == before.temperature_history

    def test_custom_overlay(self, store) -> None:
        controller = ModeController(store, DemoOverlay(health_score=95, solar_power=10.0))
        controller.enter_demo()
        assert store.snapshot().health_score == 95
        assert store.snapshot().solar_power == 10.0

    def test_enter_is_idempotent(self, store, controller) -> None:
        assert controller.enter_demo()
        assert not controller.enter_demo()
        assert controller.mode == Mode.DEMO

    def test_exit_when_live_is_noop(self, controller) -> None:
        assert not controller.exit_demo()
        assert controller.mode == Mode.LIVE

    def test_mode_change_published(self, store, controller) -> None:
        changes = []
        store.subscribe(changes.append)

        controller.toggle()
        controller.toggle()

        assert [c.kind for c in changes] == [ChangeKind.MODE, ChangeKind.MODE]


class TestRestore:
    def test_round_trip_restores_live_state(self, store, controller) -> None:
        store.set_health_score(80)
        before = store.snapshot()

        controller.toggle()
        controller.toggle()

        after = store.snapshot()
        assert after.health_score == 80
        assert after.units == before.units
        assert after.monthly_revenue == before.monthly_revenue
        assert after.solar_power == before.solar_power
        assert store.get_unit("pond-02").ai_status == WarningStatus("Low Oxygen")
        assert store.get_unit("nursery").connection_status == ConnectionStatus.OFFLINE

    def test_saved_snapshot_cleared_on_exit(self, store, controller) -> None:
        controller.enter_demo()
        assert store.saved_live_snapshot is not None
        controller.exit_demo()
        assert store.saved_live_snapshot is None

    def test_reading_during_demo_recorded(self, store, controller) -> None:
        controller.enter_demo()
        unit = store.apply_reading("pond-01", "ammonia", 1.8)

        assert unit.ammonia == 1.8
        assert unit.ai_status == OptimalStatus()

        controller.exit_demo()
        assert store.get_unit("pond-01").ammonia == 1.8
        assert store.get_unit("pond-01").ai_status == CriticalStatus("Ammonia")

    def test_health_set_during_demo_applied_on_exit(self, store, controller) -> None:
        controller.enter_demo()
        store.set_health_score(70)
        assert store.snapshot().health_score == 99

        controller.exit_demo()
        assert store.snapshot().health_score == 70

    def test_solar_reading_during_demo(self, store, controller) -> None:
        controller.enter_demo()
        store.apply_fleet_reading("solar_power", 9.5)
        assert store.snapshot().solar_power == 18.2

        controller.exit_demo()
        assert store.snapshot().solar_power == 9.5

    def test_connection_change_during_demo(self, store, controller) -> None:
        controller.enter_demo()
        store.set_connection_status("nursery", ConnectionStatus.ONLINE)
        assert store.get_unit("nursery").ai_status == OptimalStatus()

        controller.exit_demo()
        nursery = store.get_unit("nursery")
        assert nursery.connection_status == ConnectionStatus.ONLINE
        assert nursery.ai_status == CriticalStatus("Ammonia")

    def test_reclassify_during_demo_settles_live_status(self, store, controller) -> None:
        store.mark_analyzing("pond-02")
        controller.enter_demo()
        store.reclassify("pond-02")
        controller.exit_demo()
        assert store.get_unit("pond-02").ai_status == WarningStatus("Low Oxygen")


class TestRollback:
    def test_failed_enter_keeps_live(self, store, controller, monkeypatch) -> None:
        before = store.snapshot()

        def broken(snapshot, overlay):
            return PresentationState(
                health_score=99,
                monthly_revenue=0.0,
                monthly_cost=0.0,
                solar_power=0.0,
                unit_states=(("no-such-unit", OptimalStatus(), ConnectionStatus.ONLINE),),
            )

        monkeypatch.setattr(PresentationState, "demo", staticmethod(broken))

        with pytest.raises(Exception):
            controller.enter_demo()

        after = store.snapshot()
        assert controller.mode == Mode.LIVE
        assert after.health_score == before.health_score
        assert after.units == before.units

    def test_failed_exit_keeps_demo(self, store, controller, monkeypatch) -> None:
        controller.enter_demo()
        store.apply_reading("pond-01", "ammonia", 1.8)

        def broken(unit_ids):
            raise RuntimeError("classifier unavailable")

        monkeypatch.setattr(store, "classify_units", broken)

        with pytest.raises(RuntimeError):
            controller.exit_demo()

        snapshot = store.snapshot()
        assert controller.mode == Mode.DEMO
        assert snapshot.health_score == 99
        assert all(u.ai_status == OptimalStatus() for u in snapshot.units)

        monkeypatch.undo()
        controller.exit_demo()
        assert store.get_unit("pond-01").ai_status == CriticalStatus("Ammonia")


class TestNotifications:
    @pytest.mark.parametrize("transition", ["toggle", "enter_demo"])
    def test_mode_subscribers_run_outside_writer_lock(self, store, controller, transition) -> None:
        blocked = []

        def read_from_other_thread(change):
            if change.kind != ChangeKind.MODE:
                return
            reader = threading.Thread(target=store.list_units)
            reader.start()
            reader.join(timeout=0.5)
            blocked.append(reader.is_alive())

        store.subscribe(read_from_other_thread)
        getattr(controller, transition)()
        controller.exit_demo()

        assert blocked == [False, False]

    def test_no_notification_without_change(self, store, controller) -> None:
        changes = []
        store.subscribe(changes.append)

        controller.exit_demo()

        assert changes == []
