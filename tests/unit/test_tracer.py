"""
Unit tests for the tracer implementations and their use by the pipeline.

Tests for:
- Tracer Protocol conformance
- NullTracer, MockTracer and create_tracer()
- Spans emitted by the writer, store and processor
"""

from __future__ import annotations

import pytest

from gamification_outbox.bus.memory import InMemoryBrokerPublisher
from gamification_outbox.observability import (
    ATTR_EVENT_TYPE,
    ATTR_MESSAGING_DESTINATION,
    ATTR_OUTBOX_ID,
    OTEL_AVAILABLE,
    MockTracer,
    NullTracer,
    OpenTelemetryTracer,
    RecordedSpan,
    SpanKindEnum,
    Tracer,
    create_tracer,
)
from gamification_outbox.processor import OutboxProcessor
from gamification_outbox.repositories import InMemoryOutboxRepository
from gamification_outbox.writer import OutboxWriter


class TestTracerProtocol:
    """Tests for Tracer protocol."""

    def test_null_tracer_implements_protocol(self):
        assert isinstance(NullTracer(), Tracer)

    def test_mock_tracer_implements_protocol(self):
        assert isinstance(MockTracer(), Tracer)

    @pytest.mark.skipif(not OTEL_AVAILABLE, reason="OTEL not installed")
    def test_otel_tracer_implements_protocol(self):
        assert isinstance(OpenTelemetryTracer(__name__), Tracer)


class TestNullTracer:
    """Tests for NullTracer."""

    def test_span_yields_none(self):
        tracer = NullTracer()

        with tracer.span("operation", {"key": "value"}) as span:
            assert span is None
        with tracer.span_with_kind("publish", SpanKindEnum.PRODUCER) as span:
            assert span is None


class TestMockTracer:
    """Tests for MockTracer."""

    def test_records_spans(self):
        tracer = MockTracer()

        with tracer.span("first", {"a": 1}):
            pass
        with tracer.span_with_kind("second", SpanKindEnum.PRODUCER):
            pass

        assert tracer.span_names == ["first", "second"]
        assert tracer.spans[0] == RecordedSpan("first", {"a": 1}, SpanKindEnum.INTERNAL)
        assert tracer.spans[1].kind == SpanKindEnum.PRODUCER
        assert tracer.spans[1].attributes == {}


class TestOpenTelemetryTracer:
    """Tests for OpenTelemetryTracer."""

    @pytest.mark.skipif(not OTEL_AVAILABLE, reason="OTEL not installed")
    @pytest.mark.parametrize("kind", list(SpanKindEnum))
    def test_every_kind_maps_to_otel(self, kind):
        tracer = OpenTelemetryTracer(__name__)

        with tracer.span_with_kind("operation", kind, {"key": "value"}) as span:
            assert span is not None


class TestCreateTracer:
    """Tests for create_tracer factory."""

    def test_disabled_returns_null_tracer(self):
        assert isinstance(create_tracer(__name__, enable_tracing=False), NullTracer)

    @pytest.mark.skipif(OTEL_AVAILABLE, reason="OTEL is installed")
    def test_without_otel_returns_null_tracer(self):
        assert isinstance(create_tracer(__name__, enable_tracing=True), NullTracer)

    @pytest.mark.skipif(not OTEL_AVAILABLE, reason="OTEL not installed")
    def test_with_otel_returns_otel_tracer(self):
        assert isinstance(create_tracer(__name__, enable_tracing=True), OpenTelemetryTracer)


class TestPipelineSpans:
    """Tests for spans emitted by pipeline components."""

    @pytest.mark.asyncio
    async def test_writer_span(self, repository, badge_event, frozen_clock):
        tracer = MockTracer()
        writer = OutboxWriter(repository, tracer=tracer, clock=frozen_clock)

        await writer.store_for_publishing(badge_event())

        span = tracer.spans[0]
        assert span.name == "gamification_outbox.writer.store"
        assert span.attributes[ATTR_EVENT_TYPE] == "BADGE_EARNED"

    @pytest.mark.asyncio
    async def test_processor_and_store_spans(self, publisher, make_record, frozen_clock):
        tracer = MockTracer()
        repository = InMemoryOutboxRepository(tracer=tracer)
        processor = OutboxProcessor(repository, publisher, tracer=tracer, clock=frozen_clock)
        record = make_record()
        await repository.add_record(record)
        tracer.spans.clear()

        await processor.process_pending()

        assert tracer.span_names == [
            "gamification_outbox.processor.process_pending",
            "gamification_outbox.outbox.try_claim",
            "gamification_outbox.processor.publish",
        ]
        assert tracer.spans[2].attributes[ATTR_OUTBOX_ID] == str(record.id)

    @pytest.mark.asyncio
    async def test_broker_publish_is_producer_span(self, repository, make_record, frozen_clock):
        tracer = MockTracer()
        processor = OutboxProcessor(
            repository, InMemoryBrokerPublisher(tracer=tracer), clock=frozen_clock
        )
        await repository.add_record(make_record())

        await processor.process_pending()

        assert tracer.span_names == ["gamification_outbox.broker.publish"]
        assert tracer.spans[0].kind == SpanKindEnum.PRODUCER
        assert tracer.spans[0].attributes[ATTR_MESSAGING_DESTINATION] == "badge-events"
