"""
Advisory Pipeline

Operators type free-text questions; the pipeline answers asynchronously with
operational guidance and a reasoning trace. Requests are processed one at a
time in submission order by a single asyncio worker. Each answer is composed
from the fleet snapshot taken when the request completes, not when it was
submitted.

The pipeline only holds a weak reference to the store. If the store is torn
down while a request is pending, the request completes silently and its
result is dropped.
"""

import asyncio
import inspect
import logging
import uuid
import weakref
from collections.abc import Callable
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum

from .aggregation import average
from .classifier import needs_attention, status_reason
from .exceptions import AdvisoryUnavailableError, AquaOpsError
from .models import AdvisoryMessage, ChangeKind, FleetSnapshot, StateChange, now_utc
from .store import FleetStore

logger = logging.getLogger(__name__)

UNAVAILABLE_MESSAGE = "Advisory service unavailable: {error}. Live telemetry is unaffected."


class RequestState(str, Enum):
    SUBMITTED = "submitted"
    THINKING = "thinking"
    COMPLETED = "completed"


class RequestKind(str, Enum):
    ADVICE = "advice"
    REASSESSMENT = "reassessment"


@dataclass
class AdvisoryRequest:
    """Tracks one request through SUBMITTED -> THINKING -> COMPLETED."""

    text: str
    kind: RequestKind = RequestKind.ADVICE
    unit_id: str | None = None
    state: RequestState = RequestState.SUBMITTED
    submitted_at: datetime = field(default_factory=now_utc)
    completed_at: datetime | None = None
    response_id: str | None = None
    discarded: bool = False  # store was gone at completion
    id: str = field(default_factory=lambda: uuid.uuid4().hex)

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "text": self.text,
            "kind": self.kind.value,
            "unit_id": self.unit_id,
            "state": self.state.value,
            "submitted_at": self.submitted_at.isoformat(),
            "completed_at": self.completed_at.isoformat() if self.completed_at else None,
            "response_id": self.response_id,
            "discarded": self.discarded,
        }


@dataclass(frozen=True)
class Advice:
    text: str
    reasoning: str


# Guidance per status reason; formatted with the unit snapshot
RECOMMENDATIONS = {
    "Offline": "{unit.name} sensors are offline. Inspect the gateway link and the backup solar battery circuit.",
    "Ammonia": (
        "{unit.name} ammonia is at {unit.ammonia:.2f} mg/L. "
        "Schedule a partial water exchange and reduce feeding until levels drop."
    ),
    "Low Oxygen": (
        "{unit.name} oxygen is down to {unit.dissolved_oxygen:.1f} mg/L. "
        "Check aeration and confirm the borehole pump is cycling."
    ),
    "Out of range": (
        "{unit.name} is outside the growth band ({unit.temperature:.1f}°C, pH {unit.ph:.1f}). "
        "Review heating/shading and buffering."
    ),
}


class TelemetryAdvisor:
    """Composes guidance from the current fleet snapshot."""

    def compose(self, request_text: str, snapshot: FleetSnapshot) -> Advice:
        """Answer an operator request.

        Args:
            request_text: What the operator asked
            snapshot: Fleet state at completion time

        Returns:
            Advice with response text and reasoning trace

        Raises:
            AdvisoryUnavailableError: If the snapshot holds no units
        """
        units = snapshot.units
        if not units:
            raise AdvisoryUnavailableError("no units reporting")

        avg_temp = average(units, "temperature")
        avg_ph = average(units, "ph")
        attention = [u for u in units if needs_attention(u.ai_status)]

        reasoning = (
            f"Analyzing semantic intent: '{request_text}'. "
            f"Checked {len(units)} units at {snapshot.taken_at:%H:%M:%S} UTC "
            f"(avg temperature {avg_temp:.1f}°C, avg pH {avg_ph:.2f}, health {snapshot.health_score}%). "
        )
        if attention:
            flagged = ", ".join(f"{u.name} ({status_reason(u.ai_status)})" for u in attention)
            reasoning += f"Correlating with real-time sensor stream from {flagged}."
        else:
            reasoning += "No unit outside its optimal ranges."

        if not attention:
            return Advice(
                text=(
                    f"All {len(units)} units are within optimal ranges. "
                    "Maintain current feeding and aeration schedules."
                ),
                reasoning=reasoning,
            )

        lines = [RECOMMENDATIONS[status_reason(u.ai_status)].format(unit=u) for u in attention]
        return Advice(text="Based on the telemetry: " + " ".join(lines), reasoning=reasoning)


class AdvisoryPipeline:
    """Serialized FIFO queue of advisory requests."""

    def __init__(
        self,
        store: FleetStore,
        advisor=None,
        delay_seconds: float = 2.0
    ):
        """Initialize the pipeline.

        Args:
            store: Fleet store to read snapshots from and append answers to
                (held weakly)
            advisor: Object with ``compose(text, snapshot) -> Advice``; may
                return an awaitable. Defaults to TelemetryAdvisor.
            delay_seconds: Simulated processing latency per request
        """
        self._store_ref = weakref.ref(store)
        self.advisor = advisor or TelemetryAdvisor()
        self.delay_seconds = delay_seconds

        self._queue: asyncio.Queue[AdvisoryRequest] = asyncio.Queue()
        self._requests: dict[str, AdvisoryRequest] = {}
        self._pending = 0
        self._task: asyncio.Task | None = None

    # -- lifecycle ----------------------------------------------------------

    async def start(self):
        """Start the worker task."""
        if self._task is not None and not self._task.done():
            logger.warning("Advisory pipeline already running")
            return

        self._task = asyncio.create_task(self._run_loop())
        logger.info(f"💬 Advisory pipeline started (delay {self.delay_seconds}s)")

    async def stop(self):
        """Stop the worker. Queued requests are completed as discarded."""
        if self._task is None:
            return

        self._task.cancel()
        try:
            await self._task
        except asyncio.CancelledError:
            pass
        self._task = None

        while not self._queue.empty():
            request = self._queue.get_nowait()
            self._complete(request, discarded=True)
            self._pending -= 1
            self._queue.task_done()
        self._settle()

        logger.info("💬 Advisory pipeline stopped")

    async def join(self):
        """Wait until every submitted request has completed."""
        await self._queue.join()

    # -- requests -----------------------------------------------------------

    @property
    def thinking(self) -> bool:
        return self._pending > 0

    @property
    def pending_count(self) -> int:
        return self._pending

    def get_request(self, request_id: str) -> AdvisoryRequest | None:
        return self._requests.get(request_id)

    def submit(self, text: str) -> str:
        """Queue an operator request. Must be called from the event loop.

        Args:
            text: Free-text question

        Returns:
            Request id

        Raises:
            ValueError: If text is blank
            RuntimeError: If no event loop is running and the worker is not started
        """
        if not text or not text.strip():
            raise ValueError("Advisory request text must not be empty")

        self._ensure_worker()
        store = self._require_store()
        request = AdvisoryRequest(text=text.strip())
        store.append_message(request.text, is_user=True)
        self._enqueue(request, store)
        logger.debug(f"Advisory request {request.id} queued ({self._pending} pending)")
        return request.id

    def request_reassessment(self, unit_id: str) -> str:
        """Put a unit into Analyzing and re-classify it when the job runs.

        Raises:
            UnitNotFoundError: If the unit does not exist
        """
        self._ensure_worker()
        store = self._require_store()
        unit = store.get_unit(unit_id)
        request = AdvisoryRequest(
            text=f"Reassess {unit.name}",
            kind=RequestKind.REASSESSMENT,
            unit_id=unit_id,
        )
        store.mark_analyzing(unit_id)
        self._enqueue(request, store)
        return request.id

    def on_message(self, callback: Callable[[AdvisoryMessage], None]) -> int:
        """Deliver every new advisory log entry to callback, in order.

        Returns:
            Store subscription handle (pass to ``FleetStore.unsubscribe``)
        """
        def deliver(change: StateChange):
            if change.kind == ChangeKind.ADVISORY_MESSAGE:
                callback(change.message)

        return self._require_store().subscribe(deliver)

    # -- worker -------------------------------------------------------------

    def _require_store(self) -> FleetStore:
        store = self._store_ref()
        if store is None:
            raise AquaOpsError("Fleet store has been torn down")
        return store

    def _ensure_worker(self):
        if self._task is None or self._task.done():
            # Raises RuntimeError outside a running loop
            loop = asyncio.get_running_loop()
            self._task = loop.create_task(self._run_loop())

    def _enqueue(self, request: AdvisoryRequest, store: FleetStore):
        self._requests[request.id] = request
        self._pending += 1
        store.set_thinking(True)
        self._queue.put_nowait(request)

    async def _run_loop(self):
        """Process requests one at a time, forever."""
        while True:
            request = await self._queue.get()
            try:
                await self._process(request)
            except asyncio.CancelledError:
                self._complete(request, discarded=True)
                raise
            except Exception as e:
                # Keep the state machine moving even on unexpected failures
                logger.error(f"Advisory request {request.id} failed: {e}", exc_info=True)
                self._complete(request)
            finally:
                self._pending -= 1
                self._queue.task_done()
                self._settle()

    async def _process(self, request: AdvisoryRequest):
        request.state = RequestState.THINKING
        await asyncio.sleep(self.delay_seconds)

        store = self._store_ref()
        if store is None:
            logger.debug(f"Store gone, discarding advisory request {request.id}")
            self._complete(request, discarded=True)
            return

        if request.kind == RequestKind.REASSESSMENT:
            unit = store.reclassify(request.unit_id)
            message = store.append_message(
                f"Reassessment of {unit.name} complete.", is_user=False, is_system_event=True
            )
        else:
            message = await self._answer(store, request)

        request.response_id = message.id
        self._complete(request)

    async def _answer(self, store: FleetStore, request: AdvisoryRequest) -> AdvisoryMessage:
        snapshot = store.snapshot()
        try:
            advice = self.advisor.compose(request.text, snapshot)
            if inspect.isawaitable(advice):
                advice = await advice
        except AdvisoryUnavailableError as e:
            logger.warning(f"Advisor unavailable for request {request.id}: {e}")
            return store.append_message(UNAVAILABLE_MESSAGE.format(error=e), is_user=False, is_system_event=True)
        except Exception as e:
            logger.error(f"Advisor failed for request {request.id}: {e}", exc_info=True)
            return store.append_message(UNAVAILABLE_MESSAGE.format(error=e), is_user=False, is_system_event=True)

        return store.append_message(advice.text, is_user=False, reasoning=advice.reasoning)

    def _complete(self, request: AdvisoryRequest, discarded: bool = False):
        request.state = RequestState.COMPLETED
        request.completed_at = now_utc()
        request.discarded = discarded

    def _settle(self):
        """Clear the thinking flag once nothing is queued or in flight."""
        if self._pending == 0 and self._queue.empty():
            store = self._store_ref()
            if store is not None:
                store.set_thinking(False)
