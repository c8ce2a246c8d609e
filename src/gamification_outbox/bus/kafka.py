"""
Kafka broker publisher.

Publishes outbox records with ``aiokafka``. aiokafka is an optional
dependency; install it with ``pip install gamification-outbox[kafka]``.

Broker errors are translated into the outbox error taxonomy so the
processor can classify them:

- message too large / invalid topic -> ``EventValidationError`` (dead-letter)
- any other ``KafkaError`` -> ``TransientPublishError`` (retry with backoff)

Example:
    >>> config = KafkaPublisherConfig(bootstrap_servers="kafka:9092")
    >>> async with KafkaBrokerPublisher(config) as publisher:
    ...     async with OutboxProcessor(repository, publisher):
    ...         await stop_requested.wait()
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import UTC, datetime
from types import TracebackType
from typing import Any

from gamification_outbox.bus.interface import BrokerPublisher
from gamification_outbox.exceptions import EventValidationError, TransientPublishError
from gamification_outbox.observability import (
    ATTR_ERROR_TYPE,
    ATTR_MESSAGING_DESTINATION,
    ATTR_MESSAGING_KAFKA_KEY,
    ATTR_MESSAGING_KAFKA_OFFSET,
    ATTR_MESSAGING_KAFKA_PARTITION,
    ATTR_MESSAGING_SYSTEM,
    SpanKindEnum,
    Tracer,
    create_tracer,
)

# Optional aiokafka import - fail gracefully if not installed
try:
    from aiokafka import AIOKafkaProducer
    from aiokafka.errors import InvalidTopicError, KafkaError, MessageSizeTooLargeError

    KAFKA_AVAILABLE = True
    _REJECTED_MESSAGE_ERRORS: tuple[type[BaseException], ...] = (
        MessageSizeTooLargeError,
        InvalidTopicError,
    )
except ImportError:
    KAFKA_AVAILABLE = False
    AIOKafkaProducer = None
    KafkaError = Exception
    _REJECTED_MESSAGE_ERRORS = ()

logger = logging.getLogger(__name__)


class KafkaNotAvailableError(ImportError):
    """Raised when the aiokafka package is not installed."""

    def __init__(self) -> None:
        super().__init__(
            "aiokafka package is not installed. "
            "Install it with: pip install gamification-outbox[kafka]"
        )


@dataclass
class KafkaPublisherConfig:
    """Configuration for the Kafka broker publisher.

    Attributes:
        bootstrap_servers: Kafka broker addresses (comma-separated)
        client_id: Client id reported to the brokers
        acks: Producer acknowledgment level ("0", "1" or "all")
        compression_type: None, "gzip", "snappy", "lz4" or "zstd"
        batch_size: Maximum size in bytes for batching messages
        linger_ms: Time to wait for additional messages before sending a batch
        request_timeout_ms: Producer request timeout
        enable_idempotence: Let the producer deduplicate its own retries
        security_protocol: "PLAINTEXT", "SSL", "SASL_PLAINTEXT" or "SASL_SSL"
        sasl_mechanism: "PLAIN", "SCRAM-SHA-256" or "SCRAM-SHA-512"
        sasl_username: Username for SASL authentication
        sasl_password: Password for SASL authentication
        ssl_cafile: Path to CA certificate file
        ssl_certfile: Path to client certificate for mTLS
        ssl_keyfile: Path to client private key for mTLS
        ssl_check_hostname: Whether to verify the server hostname
        enable_tracing: Enable OpenTelemetry tracing if available

    Raises:
        ValueError: If the security configuration is inconsistent.
    """

    bootstrap_servers: str = "localhost:9092"
    client_id: str = "gamification-outbox"

    acks: str = "all"
    compression_type: str | None = "gzip"
    batch_size: int = 16384
    linger_ms: int = 5
    request_timeout_ms: int = 30000
    enable_idempotence: bool = True

    security_protocol: str = "PLAINTEXT"
    sasl_mechanism: str | None = None
    sasl_username: str | None = None
    sasl_password: str | None = None
    ssl_cafile: str | None = None
    ssl_certfile: str | None = None
    ssl_keyfile: str | None = None
    ssl_check_hostname: bool = True

    enable_tracing: bool = True

    def __post_init__(self) -> None:
        """Validate configuration values."""
        if self.acks not in ("0", "1", "all"):
            raise ValueError(f"Invalid acks: {self.acks}. Must be one of '0', '1', 'all'")
        if self.enable_idempotence and self.acks != "all":
            raise ValueError("enable_idempotence requires acks='all'")
        self._validate_security_config()

    def _validate_security_config(self) -> None:
        valid_protocols = {"PLAINTEXT", "SSL", "SASL_PLAINTEXT", "SASL_SSL"}
        if self.security_protocol not in valid_protocols:
            raise ValueError(
                f"Invalid security_protocol: {self.security_protocol}. "
                f"Must be one of: {valid_protocols}"
            )

        if self.security_protocol.startswith("SASL_"):
            valid_mechanisms = {"PLAIN", "SCRAM-SHA-256", "SCRAM-SHA-512"}
            if not self.sasl_mechanism:
                raise ValueError(f"sasl_mechanism required for {self.security_protocol}")
            if self.sasl_mechanism not in valid_mechanisms:
                raise ValueError(
                    f"Invalid sasl_mechanism: {self.sasl_mechanism}. "
                    f"Must be one of: {valid_mechanisms}"
                )
            if not self.sasl_username or not self.sasl_password:
                raise ValueError("sasl_username and sasl_password required for SASL authentication")

        if self.security_protocol in ("SSL", "SASL_SSL"):
            if self.ssl_certfile and not self.ssl_keyfile:
                raise ValueError("ssl_keyfile required when ssl_certfile is provided (mTLS)")
            if self.ssl_keyfile and not self.ssl_certfile:
                raise ValueError("ssl_certfile required when ssl_keyfile is provided (mTLS)")

        if self.security_protocol == "SASL_PLAINTEXT":
            logger.warning("Using SASL without SSL - credentials sent in plain text")

    def get_producer_config(self) -> dict[str, Any]:
        """Keyword arguments for ``AIOKafkaProducer``."""
        config: dict[str, Any] = {
            "bootstrap_servers": self.bootstrap_servers,
            "client_id": self.client_id,
            "acks": self.acks,
            "compression_type": self.compression_type,
            "max_batch_size": self.batch_size,
            "linger_ms": self.linger_ms,
            "request_timeout_ms": self.request_timeout_ms,
            "enable_idempotence": self.enable_idempotence,
            "security_protocol": self.security_protocol,
        }
        if self.sasl_mechanism:
            config["sasl_mechanism"] = self.sasl_mechanism
        if self.sasl_username:
            config["sasl_plain_username"] = self.sasl_username
        if self.sasl_password:
            config["sasl_plain_password"] = self.sasl_password
        if "SSL" in self.security_protocol:
            config["ssl_context"] = self._create_ssl_context()
        return config

    def _create_ssl_context(self) -> Any:
        from aiokafka.helpers import create_ssl_context

        context = create_ssl_context(
            cafile=self.ssl_cafile,
            certfile=self.ssl_certfile,
            keyfile=self.ssl_keyfile,
        )
        context.check_hostname = self.ssl_check_hostname
        return context

    def get_sanitized_config(self) -> dict[str, Any]:
        """Configuration safe for logging, with secrets replaced by "***"."""
        return {
            "bootstrap_servers": self.bootstrap_servers,
            "client_id": self.client_id,
            "acks": self.acks,
            "compression_type": self.compression_type,
            "security_protocol": self.security_protocol,
            "sasl_mechanism": self.sasl_mechanism,
            "sasl_username": self.sasl_username,
            "sasl_password": "***" if self.sasl_password else None,
            "ssl_cafile": self.ssl_cafile,
            "ssl_certfile": self.ssl_certfile,
            "ssl_keyfile": "***" if self.ssl_keyfile else None,
        }


@dataclass
class KafkaPublisherStats:
    """Counters for the Kafka publisher."""

    messages_published: int = 0
    publish_errors: int = 0
    connected_at: datetime | None = None
    last_error_at: datetime | None = None
    last_error: str | None = field(default=None, repr=False)

    def to_dict(self) -> dict[str, Any]:
        return {
            "messages_published": self.messages_published,
            "publish_errors": self.publish_errors,
            "connected_at": self.connected_at.isoformat() if self.connected_at else None,
            "last_error_at": self.last_error_at.isoformat() if self.last_error_at else None,
            "last_error": self.last_error,
        }


class KafkaBrokerPublisher(BrokerPublisher):
    """Publishes outbox records to Kafka and waits for the acknowledgement.

    Messages are keyed by the record's ``message_key`` so events for the same
    user share a partition. The payload is sent as UTF-8 JSON.
    """

    def __init__(
        self,
        config: KafkaPublisherConfig | None = None,
        *,
        tracer: Tracer | None = None,
    ) -> None:
        """Initialize the publisher.

        Args:
            config: Kafka connection settings. Uses defaults if None.
            tracer: Optional tracer. If not provided, one is created based on
                ``config.enable_tracing``.

        Raises:
            KafkaNotAvailableError: If aiokafka is not installed.
        """
        if not KAFKA_AVAILABLE:
            raise KafkaNotAvailableError()

        self._config = config or KafkaPublisherConfig()
        self._tracer = tracer or create_tracer(__name__, self._config.enable_tracing)
        self._producer: AIOKafkaProducer | None = None
        self._stats = KafkaPublisherStats()

    @property
    def is_connected(self) -> bool:
        return self._producer is not None

    @property
    def config(self) -> KafkaPublisherConfig:
        return self._config

    @property
    def stats(self) -> KafkaPublisherStats:
        return self._stats

    async def connect(self) -> None:
        """Create and start the producer.

        Raises:
            KafkaError: If the producer cannot reach the cluster.
        """
        if self._producer is not None:
            logger.warning("KafkaBrokerPublisher already connected")
            return

        logger.info("Connecting to Kafka", extra=self._config.get_sanitized_config())
        producer = AIOKafkaProducer(**self._config.get_producer_config())
        try:
            await producer.start()
        except Exception:
            logger.error("Failed to connect to Kafka", exc_info=True)
            await producer.stop()
            raise
        self._producer = producer
        self._stats.connected_at = datetime.now(UTC)
        logger.info(
            "Connected to Kafka",
            extra={"bootstrap_servers": self._config.bootstrap_servers},
        )

    async def disconnect(self) -> None:
        """Flush and stop the producer. Safe to call multiple times."""
        if self._producer is None:
            return
        producer, self._producer = self._producer, None
        try:
            await producer.stop()
        except KafkaError as e:
            logger.warning("Error stopping producer: %s", e)
        logger.info("Disconnected from Kafka")

    async def __aenter__(self) -> KafkaBrokerPublisher:
        await self.connect()
        return self

    async def __aexit__(
        self,
        exc_type: type[BaseException] | None,
        exc_val: BaseException | None,
        exc_tb: TracebackType | None,
    ) -> None:
        await self.disconnect()

    async def publish(self, topic: str, key: str, payload: str) -> None:
        """Send one message and wait for the broker acknowledgement.

        Raises:
            TransientPublishError: The producer is not connected or the
                broker failed in a way that may succeed later.
            EventValidationError: The broker rejected the message itself.
        """
        if self._producer is None:
            raise TransientPublishError(topic, "producer not connected")

        with self._tracer.span_with_kind(
            "gamification_outbox.broker.publish",
            kind=SpanKindEnum.PRODUCER,
            attributes={
                ATTR_MESSAGING_SYSTEM: "kafka",
                ATTR_MESSAGING_DESTINATION: topic,
                ATTR_MESSAGING_KAFKA_KEY: key,
            },
        ) as span:
            try:
                future = await self._producer.send(
                    topic=topic,
                    key=key.encode("utf-8"),
                    value=payload.encode("utf-8"),
                    headers=[("content-type", b"application/json")],
                )
                record_metadata = await future
            except _REJECTED_MESSAGE_ERRORS as e:
                self._record_error(e, span)
                raise EventValidationError(None, f"rejected by {topic}: {e}") from e
            except KafkaError as e:
                self._record_error(e, span)
                raise TransientPublishError(topic, str(e)) from e

            if span:
                span.set_attribute(ATTR_MESSAGING_KAFKA_PARTITION, record_metadata.partition)
                span.set_attribute(ATTR_MESSAGING_KAFKA_OFFSET, record_metadata.offset)

            self._stats.messages_published += 1
            logger.debug(
                "Message published",
                extra={
                    "topic": record_metadata.topic,
                    "partition": record_metadata.partition,
                    "offset": record_metadata.offset,
                },
            )

    def _record_error(self, error: BaseException, span: Any) -> None:
        self._stats.publish_errors += 1
        self._stats.last_error_at = datetime.now(UTC)
        self._stats.last_error = str(error)
        if span:
            span.set_attribute(ATTR_ERROR_TYPE, type(error).__name__)
            span.record_exception(error)


__all__ = [
    "KAFKA_AVAILABLE",
    "KafkaNotAvailableError",
    "KafkaPublisherConfig",
    "KafkaPublisherStats",
    "KafkaBrokerPublisher",
]
