"""Tests for the advisory pipeline."""

from __future__ import annotations

import asyncio
import gc

import pytest

from core.aquaops.advisory import (
    Advice,
    AdvisoryPipeline,
    RequestKind,
    RequestState,
    TelemetryAdvisor,
)
from core.aquaops.exceptions import AdvisoryUnavailableError, UnitNotFoundError
from core.aquaops.fixtures import FleetFixture, default_fleet
from core.aquaops.models import AnalyzingStatus, ChangeKind, WarningStatus
from core.aquaops.store import FleetStore


class RecordingAdvisor:
    """Answers with the pond-01 temperature it saw."""

    def __init__(self):
        self.seen = []

    def compose(self, text, snapshot):
        temperature = snapshot.unit("pond-01").temperature
        self.seen.append((text, temperature))
        return Advice(text=f"{text}: {temperature}", reasoning="recorded")


class FailingAdvisor:
    def compose(self, text, snapshot):
        raise RuntimeError("model offline")


class AsyncAdvisor:
    async def compose(self, text, snapshot):
        await asyncio.sleep(0)
        return Advice(text=f"async answer to {text}", reasoning="awaited")


class TestOrdering:
    @pytest.mark.asyncio
    async def test_responses_in_submission_order(self, store) -> None:
        pipeline = AdvisoryPipeline(store, RecordingAdvisor(), delay_seconds=0)
        thinking_changes = []
        store.subscribe(
            lambda change: thinking_changes.append(store.thinking) if change.kind == ChangeKind.THINKING else None
        )

        first = pipeline.submit("A")
        second = pipeline.submit("B")
        assert pipeline.thinking
        assert store.thinking
        assert pipeline.pending_count == 2

        await pipeline.join()

        texts = [m.text for m in store.messages()]
        assert texts[1:] == ["A", "B", "A: 28.5", "B: 28.5"]
        assert thinking_changes == [True, False]
        assert not store.thinking
        assert pipeline.get_request(first).state == RequestState.COMPLETED
        assert pipeline.get_request(second).state == RequestState.COMPLETED
        await pipeline.stop()

    @pytest.mark.asyncio
    async def test_response_links_to_message(self, store) -> None:
        pipeline = AdvisoryPipeline(store, delay_seconds=0)
        request_id = pipeline.submit("Status?")
        await pipeline.join()

        request = pipeline.get_request(request_id)
        response = store.messages()[-1]
        assert request.response_id == response.id
        assert not response.is_user
        assert not response.is_system_event
        assert response.reasoning
        await pipeline.stop()

    @pytest.mark.asyncio
    async def test_snapshot_taken_at_completion(self, store) -> None:
        advisor = RecordingAdvisor()
        pipeline = AdvisoryPipeline(store, advisor, delay_seconds=0)

        pipeline.submit("temp?")
        store.apply_reading("pond-01", "temperature", 29.4)
        await pipeline.join()

        assert advisor.seen == [("temp?", 29.4)]
        await pipeline.stop()

    @pytest.mark.asyncio
    async def test_on_message_delivers_in_order(self, store) -> None:
        pipeline = AdvisoryPipeline(store, RecordingAdvisor(), delay_seconds=0)
        received = []
        handle = pipeline.on_message(lambda message: received.append(message.text))

        pipeline.submit("A")
        await pipeline.join()
        store.unsubscribe(handle)
        pipeline.submit("B")
        await pipeline.join()

        assert received == ["A", "A: 28.5"]
        await pipeline.stop()


class TestFailures:
    @pytest.mark.asyncio
    async def test_advisor_failure_posts_system_event(self, store) -> None:
        pipeline = AdvisoryPipeline(store, FailingAdvisor(), delay_seconds=0)
        request_id = pipeline.submit("Help")
        await pipeline.join()

        message = store.messages()[-1]
        assert message.is_system_event
        assert message.text.startswith("Advisory service unavailable: model offline")
        assert pipeline.get_request(request_id).state == RequestState.COMPLETED
        assert not store.thinking
        await pipeline.stop()

    @pytest.mark.asyncio
    async def test_empty_fleet_reported_as_unavailable(self) -> None:
        store = FleetStore(FleetFixture(units=[]))
        pipeline = AdvisoryPipeline(store, delay_seconds=0)
        pipeline.submit("Anything?")
        await pipeline.join()

        message = store.messages()[-1]
        assert message.text.startswith("Advisory service unavailable: no units reporting")
        assert message.is_system_event
        await pipeline.stop()

    @pytest.mark.asyncio
    async def test_store_torn_down_mid_request(self) -> None:
        store = FleetStore(default_fleet())
        pipeline = AdvisoryPipeline(store, delay_seconds=0.01)
        request_id = pipeline.submit("Still there?")

        del store
        gc.collect()
        await pipeline.join()

        request = pipeline.get_request(request_id)
        assert request.state == RequestState.COMPLETED
        assert request.discarded
        assert request.response_id is None
        await pipeline.stop()

    @pytest.mark.asyncio
    async def test_stop_discards_queued_requests(self, store) -> None:
        pipeline = AdvisoryPipeline(store, delay_seconds=10)
        first = pipeline.submit("A")
        second = pipeline.submit("B")
        await asyncio.sleep(0)

        await pipeline.stop()

        for request_id in (first, second):
            request = pipeline.get_request(request_id)
            assert request.state == RequestState.COMPLETED
            assert request.discarded
        assert pipeline.pending_count == 0
        assert not store.thinking

    def test_blank_text_rejected(self, store) -> None:
        pipeline = AdvisoryPipeline(store)
        with pytest.raises(ValueError):
            pipeline.submit("   ")
        assert len(store.messages()) == 1

    def test_submit_needs_running_loop(self, store) -> None:
        pipeline = AdvisoryPipeline(store)
        with pytest.raises(RuntimeError):
            pipeline.submit("Hello")
        assert len(store.messages()) == 1
        assert not store.thinking


class TestReassessment:
    @pytest.mark.asyncio
    async def test_unit_analyzing_until_job_runs(self, store) -> None:
        pipeline = AdvisoryPipeline(store, delay_seconds=0)
        request_id = pipeline.request_reassessment("pond-02")

        assert store.get_unit("pond-02").ai_status == AnalyzingStatus()
        assert pipeline.get_request(request_id).kind == RequestKind.REASSESSMENT

        await pipeline.join()

        assert store.get_unit("pond-02").ai_status == WarningStatus("Low Oxygen")
        message = store.messages()[-1]
        assert message.text == "Reassessment of Pond 02 complete."
        assert message.is_system_event
        await pipeline.stop()

    @pytest.mark.asyncio
    async def test_unknown_unit(self, store) -> None:
        pipeline = AdvisoryPipeline(store, delay_seconds=0)
        with pytest.raises(UnitNotFoundError):
            pipeline.request_reassessment("pond-99")
        assert pipeline.pending_count == 0
        await pipeline.stop()


class TestAdvisors:
    @pytest.mark.asyncio
    async def test_awaitable_advisor(self, store) -> None:
        pipeline = AdvisoryPipeline(store, AsyncAdvisor(), delay_seconds=0)
        pipeline.submit("ping")
        await pipeline.join()

        assert store.messages()[-1].text == "async answer to ping"
        await pipeline.stop()

    def test_telemetry_advisor_flags_units(self, store) -> None:
        advice = TelemetryAdvisor().compose("How is Pond 02?", store.snapshot())

        assert advice.reasoning.startswith("Analyzing semantic intent: 'How is Pond 02?'")
        assert "Pond 02 (Low Oxygen)" in advice.reasoning
        assert "Nursery (Offline)" in advice.reasoning
        assert advice.text.startswith("Based on the telemetry:")
        assert "Pond 02 oxygen is down to 4.2 mg/L" in advice.text

    def test_telemetry_advisor_all_clear(self, make_unit) -> None:
        store = FleetStore(FleetFixture(units=[make_unit()]))
        advice = TelemetryAdvisor().compose("Anything to do?", store.snapshot())
        assert advice.text.startswith("All 1 units are within optimal ranges")
        assert "No unit outside its optimal ranges" in advice.reasoning

    def test_telemetry_advisor_unavailable_without_units(self) -> None:
        store = FleetStore(FleetFixture(units=[]))
        with pytest.raises(AdvisoryUnavailableError):
            TelemetryAdvisor().compose("Anything?", store.snapshot())
