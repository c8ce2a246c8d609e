"""
Broker publisher adapters.

``KafkaBrokerPublisher`` requires the optional ``kafka`` extra and is
imported lazily from ``gamification_outbox.bus.kafka``.
"""

from gamification_outbox.bus.interface import BrokerPublisher
from gamification_outbox.bus.memory import InMemoryBrokerPublisher, PublishedMessage

__all__ = [
    "BrokerPublisher",
    "InMemoryBrokerPublisher",
    "PublishedMessage",
]
