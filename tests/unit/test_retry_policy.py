"""Unit tests for retry classification and backoff."""

import asyncio
from datetime import UTC, datetime, timedelta

import pytest

from gamification_outbox.exceptions import (
    EventValidationError,
    SerializationError,
    TransientPublishError,
)
from gamification_outbox.models import OutboxStatus
from gamification_outbox.retry import (
    ErrorClass,
    ExponentialBackoffPolicy,
    RetryPolicy,
    classify_error,
)

NOW = datetime(2024, 3, 1, 12, 0, tzinfo=UTC)


class TestClassifyError:
    """Tests for classify_error."""

    @pytest.mark.parametrize(
        "error",
        [
            TransientPublishError("badge-events", "broker unavailable"),
            ConnectionError("reset"),
            TimeoutError(),
            asyncio.TimeoutError(),
            OSError("network down"),
        ],
    )
    def test_transient_errors_are_retryable(self, error):
        assert classify_error(error) == ErrorClass.RETRYABLE

    @pytest.mark.parametrize(
        "error",
        [
            SerializationError("BADGE_EARNED", "bad payload"),
            EventValidationError("evt-1", "too large"),
            TypeError("wrong type"),
            ValueError("bad value"),
        ],
    )
    def test_permanent_errors_are_not_retryable(self, error):
        assert classify_error(error) == ErrorClass.NON_RETRYABLE

    def test_unknown_errors_are_retryable(self):
        """Test unclassified exceptions get bounded retries."""
        assert classify_error(RuntimeError("surprise")) == ErrorClass.RETRYABLE


class TestExponentialBackoffPolicy:
    """Tests for ExponentialBackoffPolicy."""

    def test_implements_protocol(self):
        assert isinstance(ExponentialBackoffPolicy(), RetryPolicy)

    def test_default_delays(self):
        """Test delays of 1, 5 and 25 minutes after successive failures."""
        policy = ExponentialBackoffPolicy()

        assert policy.delay(1) == timedelta(minutes=1)
        assert policy.delay(2) == timedelta(minutes=5)
        assert policy.delay(3) == timedelta(minutes=25)

    def test_max_delay_caps(self):
        policy = ExponentialBackoffPolicy(max_delay=timedelta(minutes=10))
        assert policy.delay(3) == timedelta(minutes=10)

    def test_delay_requires_an_attempt(self):
        with pytest.raises(ValueError):
            ExponentialBackoffPolicy().delay(0)

    @pytest.mark.parametrize(
        "kwargs",
        [
            {"base": 0},
            {"unit": timedelta(0)},
            {"max_delay": timedelta(seconds=1)},
        ],
    )
    def test_invalid_construction(self, kwargs):
        with pytest.raises(ValueError):
            ExponentialBackoffPolicy(**kwargs)

    def test_next_retry_is_in_the_future(self):
        policy = ExponentialBackoffPolicy()
        assert policy.next_retry_at(1, NOW) > NOW

    def test_is_exhausted_at_max_attempts(self):
        assert not ExponentialBackoffPolicy.is_exhausted(2, 3)
        assert ExponentialBackoffPolicy.is_exhausted(3, 3)
        assert ExponentialBackoffPolicy.is_exhausted(4, 3)

    def test_decide_schedules_retry(self):
        decision = ExponentialBackoffPolicy().decide(
            attempt_count=2,
            max_attempts=3,
            error=TransientPublishError("badge-events", "timeout"),
            now=NOW,
        )

        assert decision.status == OutboxStatus.FAILED
        assert decision.next_retry_at == NOW + timedelta(minutes=5)
        assert not decision.dead_lettered

    def test_decide_dead_letters_when_exhausted(self):
        decision = ExponentialBackoffPolicy().decide(
            attempt_count=3,
            max_attempts=3,
            error=ConnectionError(),
            now=NOW,
        )

        assert decision.status == OutboxStatus.DEAD_LETTER
        assert decision.next_retry_at is None
        assert decision.dead_lettered

    def test_decide_dead_letters_non_retryable_immediately(self):
        decision = ExponentialBackoffPolicy().decide(
            attempt_count=1,
            max_attempts=3,
            error=SerializationError("BADGE_EARNED", "bad"),
            now=NOW,
        )

        assert decision.dead_lettered
        assert decision.error_class == ErrorClass.NON_RETRYABLE

    def test_repr(self):
        assert "base=5" in repr(ExponentialBackoffPolicy())
