"""
In-memory broker publisher.

Records every message it is given instead of sending it anywhere. Failures
and latency can be scripted, which is what the processor tests use to
drive records through the FAILED and DEAD_LETTER paths.
"""

from __future__ import annotations

import asyncio
import logging
from collections import deque
from dataclasses import dataclass, field
from datetime import UTC, datetime

from gamification_outbox.bus.interface import BrokerPublisher
from gamification_outbox.events import AnyGamificationEvent, parse_event
from gamification_outbox.observability import (
    ATTR_MESSAGING_DESTINATION,
    ATTR_MESSAGING_SYSTEM,
    SpanKindEnum,
    Tracer,
    create_tracer,
)

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class PublishedMessage:
    """A message accepted by the in-memory publisher."""

    topic: str
    key: str
    payload: str
    published_at: datetime = field(default_factory=lambda: datetime.now(UTC))

    def event(self) -> AnyGamificationEvent:
        """Decode the payload back into its event class."""
        return parse_event(self.payload)


class InMemoryBrokerPublisher(BrokerPublisher):
    """
    Broker publisher that keeps messages in a list.

    Example:
        >>> publisher = InMemoryBrokerPublisher()
        >>> publisher.fail_next(TransientPublishError("badge-events", "down"), times=2)
        >>> await processor.process_pending()
        >>> publisher.messages
        []
    """

    def __init__(
        self,
        tracer: Tracer | None = None,
        enable_tracing: bool = False,
    ) -> None:
        self._tracer = tracer or create_tracer(__name__, enable_tracing)
        self.messages: list[PublishedMessage] = []
        self._failures: deque[BaseException] = deque()
        self._delay = 0.0
        self._lock = asyncio.Lock()

    def fail_next(self, error: BaseException, times: int = 1) -> None:
        """Raise ``error`` on the next ``times`` publish calls."""
        for _ in range(times):
            self._failures.append(error)

    def set_delay(self, seconds: float) -> None:
        """Sleep this long before accepting each message."""
        self._delay = seconds

    def messages_for(self, topic: str) -> list[PublishedMessage]:
        return [m for m in self.messages if m.topic == topic]

    def clear(self) -> None:
        self.messages.clear()
        self._failures.clear()
        self._delay = 0.0

    async def publish(self, topic: str, key: str, payload: str) -> None:
        with self._tracer.span_with_kind(
            "gamification_outbox.broker.publish",
            kind=SpanKindEnum.PRODUCER,
            attributes={
                ATTR_MESSAGING_SYSTEM: "memory",
                ATTR_MESSAGING_DESTINATION: topic,
            },
        ):
            if self._delay:
                await asyncio.sleep(self._delay)
            async with self._lock:
                if self._failures:
                    raise self._failures.popleft()
                self.messages.append(PublishedMessage(topic=topic, key=key, payload=payload))
            logger.debug("Message accepted", extra={"topic": topic, "key": key})
