"""
Tracer protocol and implementations.

Components take a tracer in their constructor rather than calling
OpenTelemetry directly. Tests pass a ``MockTracer``; without OpenTelemetry
installed ``create_tracer`` hands out a ``NullTracer``.

Example:
    >>> class RetentionSweeper:
    ...     def __init__(self, repository, tracer: Tracer | None = None):
    ...         self._tracer = tracer or create_tracer(__name__)
    ...
    ...     async def purge_old_published(self) -> int:
    ...         with self._tracer.span("gamification_outbox.retention.purge"):
    ...             ...
"""

from __future__ import annotations

import contextlib
from collections.abc import Generator
from contextlib import AbstractContextManager
from enum import Enum
from typing import TYPE_CHECKING, Any, NamedTuple, Protocol, runtime_checkable

if TYPE_CHECKING:
    from opentelemetry.trace import Span

from gamification_outbox.observability.tracing import OTEL_AVAILABLE


class SpanKindEnum(Enum):
    """Span kinds emitted by the pipeline; names match OpenTelemetry's SpanKind."""

    INTERNAL = "internal"
    PRODUCER = "producer"


@runtime_checkable
class Tracer(Protocol):
    """
    Protocol for tracers that can create tracing spans.

    Implementations:
    - NullTracer: tracing disabled or OpenTelemetry missing
    - OpenTelemetryTracer: wraps an OpenTelemetry tracer
    - MockTracer: records spans for assertions in tests
    """

    def span(
        self,
        name: str,
        attributes: dict[str, Any] | None = None,
    ) -> AbstractContextManager[Span | None]:
        """
        Open an INTERNAL span.

        Args:
            name: Span name (e.g., "gamification_outbox.outbox.try_claim")
            attributes: Span attributes (optional)

        Returns:
            Context manager that yields Span or None
        """
        ...

    def span_with_kind(
        self,
        name: str,
        kind: SpanKindEnum = SpanKindEnum.INTERNAL,
        attributes: dict[str, Any] | None = None,
    ) -> AbstractContextManager[Span | None]:
        """Open a span of ``kind``; brokers use PRODUCER around a publish."""
        ...


class NullTracer:
    """No-op tracer; every span yields None."""

    def span(
        self,
        name: str,
        attributes: dict[str, Any] | None = None,
    ) -> AbstractContextManager[None]:
        return self.span_with_kind(name, SpanKindEnum.INTERNAL, attributes)

    @contextlib.contextmanager
    def span_with_kind(
        self,
        name: str,
        kind: SpanKindEnum = SpanKindEnum.INTERNAL,
        attributes: dict[str, Any] | None = None,
    ) -> Generator[None, None, None]:
        yield None


class OpenTelemetryTracer:
    """
    Tracer backed by ``opentelemetry.trace``.

    Raises:
        ImportError: If OpenTelemetry is not installed
    """

    def __init__(self, tracer_name: str) -> None:
        from opentelemetry import trace

        self._tracer = trace.get_tracer(tracer_name)

    def span(
        self,
        name: str,
        attributes: dict[str, Any] | None = None,
    ) -> AbstractContextManager[Span | None]:
        return self.span_with_kind(name, SpanKindEnum.INTERNAL, attributes)

    def span_with_kind(
        self,
        name: str,
        kind: SpanKindEnum = SpanKindEnum.INTERNAL,
        attributes: dict[str, Any] | None = None,
    ) -> AbstractContextManager[Span | None]:
        from opentelemetry.trace import SpanKind

        return self._tracer.start_as_current_span(
            name,
            kind=SpanKind[kind.name],
            attributes=attributes or {},
        )


class RecordedSpan(NamedTuple):
    """A span captured by ``MockTracer``."""

    name: str
    attributes: dict[str, Any]
    kind: SpanKindEnum


class MockTracer:
    """
    Tracer for tests that records every span opened through it.

    Example:
        >>> tracer = MockTracer()
        >>> processor = OutboxProcessor(repository, publisher, tracer=tracer)
        >>> await processor.process_pending()
        >>> tracer.span_names[0]
        'gamification_outbox.processor.process_pending'
    """

    def __init__(self) -> None:
        self.spans: list[RecordedSpan] = []

    def span(
        self,
        name: str,
        attributes: dict[str, Any] | None = None,
    ) -> AbstractContextManager[None]:
        return self.span_with_kind(name, SpanKindEnum.INTERNAL, attributes)

    @contextlib.contextmanager
    def span_with_kind(
        self,
        name: str,
        kind: SpanKindEnum = SpanKindEnum.INTERNAL,
        attributes: dict[str, Any] | None = None,
    ) -> Generator[None, None, None]:
        self.spans.append(RecordedSpan(name, dict(attributes or {}), kind))
        yield None

    @property
    def span_names(self) -> list[str]:
        return [s.name for s in self.spans]


def create_tracer(
    name: str,
    enable_tracing: bool = True,
) -> Tracer:
    """
    Create the tracer for a component.

    Args:
        name: Tracer name (typically __name__)
        enable_tracing: Whether tracing should be enabled (default True)

    Returns:
        OpenTelemetryTracer if enabled and available, NullTracer otherwise
    """
    if enable_tracing and OTEL_AVAILABLE:
        return OpenTelemetryTracer(name)
    return NullTracer()


__all__ = [
    "Tracer",
    "NullTracer",
    "OpenTelemetryTracer",
    "MockTracer",
    "RecordedSpan",
    "SpanKindEnum",
    "create_tracer",
]
