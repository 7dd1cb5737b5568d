"""
Live / Demo Mode

Demo mode presents an idealized farm (perfect health, every unit online
and optimal) for showcases. Entering it captures the live state; leaving it
restores exactly that state, including any live updates that arrived while
the overlay was shown. Raw readings are never touched by the overlay.
"""

import logging
from dataclasses import dataclass
from enum import Enum

from .models import AiStatus, ChangeKind, ConnectionStatus, FleetSnapshot, OptimalStatus, StateChange
from .settings import DemoOverlay
from .store import FleetStore

logger = logging.getLogger(__name__)


class Mode(str, Enum):
    LIVE = "live"
    DEMO = "demo"


@dataclass(frozen=True)
class PresentationState:
    """The fields the demo overlay replaces."""

    health_score: int
    monthly_revenue: float
    monthly_cost: float
    solar_power: float
    unit_states: tuple[tuple[str, AiStatus, ConnectionStatus], ...]

    @classmethod
    def from_snapshot(cls, snapshot: FleetSnapshot) -> "PresentationState":
        return cls(
            health_score=snapshot.health_score,
            monthly_revenue=snapshot.monthly_revenue,
            monthly_cost=snapshot.monthly_cost,
            solar_power=snapshot.solar_power,
            unit_states=tuple((u.id, u.ai_status, u.connection_status) for u in snapshot.units),
        )

    @classmethod
    def demo(cls, snapshot: FleetSnapshot, overlay: DemoOverlay) -> "PresentationState":
        return cls(
            health_score=overlay.health_score,
            monthly_revenue=overlay.monthly_revenue,
            monthly_cost=overlay.monthly_cost,
            solar_power=overlay.solar_power,
            unit_states=tuple((u.id, OptimalStatus(), ConnectionStatus.ONLINE) for u in snapshot.units),
        )


class ModeController:
    """Switches the store between live and demo presentation.

    Each transition happens under the store's writer lock, so readers see
    either the old or the new presentation, never a mix. A failed transition
    is rolled back and the error re-raised.
    """

    def __init__(self, store: FleetStore, overlay: DemoOverlay | None = None):
        self.store = store
        self.overlay = overlay or store.settings.demo

    @property
    def mode(self) -> Mode:
        return Mode.DEMO if self.store.demo_active else Mode.LIVE

    def toggle(self) -> Mode:
        """Flip between live and demo. Returns the new mode."""
        with self.store.write_lock():
            changed = self._exit() if self.store.demo_active else self._enter()
            mode = self.mode

        if changed:
            self.store.publish(StateChange(ChangeKind.MODE))
        return mode

    def enter_demo(self) -> bool:
        """Capture live state and show the overlay. No-op if already in demo.

        Returns:
            True if the mode changed
        """
        with self.store.write_lock():
            changed = self._enter()

        if changed:
            self.store.publish(StateChange(ChangeKind.MODE))
        return changed

    def exit_demo(self) -> bool:
        """Restore the captured live state. No-op if already live.

        Returns:
            True if the mode changed
        """
        with self.store.write_lock():
            changed = self._exit()

        if changed:
            self.store.publish(StateChange(ChangeKind.MODE))
        return changed

    # Transitions below run with the writer lock held and never publish

    def _enter(self) -> bool:
        if self.store.demo_active:
            return False

        saved = self.store.snapshot()
        previous = PresentationState.from_snapshot(saved)
        target = PresentationState.demo(saved, self.overlay)
        try:
            self.store.apply_presentation(target, demo_active=True, saved_live=saved)
        except Exception:
            logger.exception("Entering demo mode failed, restoring live state")
            self.store.apply_presentation(previous, demo_active=False, saved_live=None)
            raise

        logger.info("🎬 Demo mode active")
        return True

    def _exit(self) -> bool:
        if not self.store.demo_active:
            return False

        saved = self.store.saved_live_snapshot
        current = PresentationState.from_snapshot(self.store.snapshot())
        target = PresentationState.from_snapshot(saved)
        touched = self.store.drain_demo_updates()
        try:
            self.store.apply_presentation(target, demo_active=False, saved_live=None)
            # Readings that arrived under the overlay get classified now
            self.store.classify_units(touched)
        except Exception:
            logger.exception("Leaving demo mode failed, keeping demo overlay")
            self.store.apply_presentation(current, demo_active=True, saved_live=saved)
            self.store.restore_demo_updates(touched)
            raise

        logger.info(f"Live mode restored ({len(touched)} unit(s) updated during demo)")
        return True
