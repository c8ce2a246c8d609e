"""Broker publisher interface.

The processor hands every claimed record to a ``BrokerPublisher``. A
publisher only needs to deliver ``(topic, key, payload)`` and either
return once the broker has acknowledged the message or raise.
"""

from abc import ABC, abstractmethod


class BrokerPublisher(ABC):
    """
    Abstract adapter between the outbox processor and a message broker.

    Implementations should raise:
    - ``TransientPublishError`` (or any connection/timeout error) when the
      broker may accept the message later
    - ``EventValidationError`` when the broker rejected the message itself,
      which dead-letters the record immediately

    Tracing Support:
        Implementations SHOULD accept ``tracer`` / ``enable_tracing`` and wrap
        each publish in a ``gamification_outbox.broker.publish`` span of kind
        ``SpanKindEnum.PRODUCER``.
    """

    @abstractmethod
    async def publish(self, topic: str, key: str, payload: str) -> None:
        """
        Deliver one message and wait for the broker's acknowledgement.

        Args:
            topic: Destination topic
            key: Partition key
            payload: Serialized event body (JSON text)
        """
        ...

    async def connect(self) -> None:
        """Open broker connections. Default: nothing to do."""
        return None

    async def disconnect(self) -> None:
        """Close broker connections. Default: nothing to do."""
        return None
