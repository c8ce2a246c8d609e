"""Unit tests for DeadLetterManager."""

from datetime import timedelta
from uuid import uuid4

import pytest

from gamification_outbox.dlq_manager import DeadLetterManager
from gamification_outbox.exceptions import InvalidRecordStateError, RecordNotFoundError
from gamification_outbox.models import OutboxStatus
from gamification_outbox.processor import OutboxProcessor


@pytest.fixture
def manager(repository, frozen_clock) -> DeadLetterManager:
    return DeadLetterManager(repository, clock=frozen_clock)


class TestDeadLetterManager:
    """Tests for listing and requeueing dead letters."""

    @pytest.mark.asyncio
    async def test_list_dead_letters(self, manager, repository, make_record, frozen_clock):
        older = make_record(
            status=OutboxStatus.DEAD_LETTER,
            attempt_count=3,
            created_at=frozen_clock() - timedelta(hours=1),
        )
        newer = make_record(status=OutboxStatus.DEAD_LETTER, attempt_count=3)
        await repository.add_record(newer)
        await repository.add_record(older)
        await repository.add_record(make_record(status=OutboxStatus.FAILED, attempt_count=1))

        records = await manager.list_dead_letters()

        assert [r.id for r in records] == [older.id, newer.id]
        assert await manager.count() == 2

    @pytest.mark.asyncio
    async def test_list_respects_limit(self, manager, repository, make_record):
        for _ in range(3):
            await repository.add_record(make_record(status=OutboxStatus.DEAD_LETTER))

        assert len(await manager.list_dead_letters(limit=2)) == 2

    @pytest.mark.asyncio
    async def test_retry(self, manager, repository, make_record, frozen_clock):
        """Test a requeued record gets a fresh set of attempts."""
        record = make_record(
            status=OutboxStatus.DEAD_LETTER,
            attempt_count=3,
            error_message="TransientPublishError: broker down",
        )
        await repository.add_record(record)
        frozen_clock.advance(timedelta(hours=2))

        requeued = await manager.retry(record.id)

        assert requeued.status == OutboxStatus.PENDING
        assert requeued.attempt_count == 0
        assert requeued.error_message is None
        assert requeued.next_retry_at is None
        assert requeued.updated_at == frozen_clock()
        assert await manager.count() == 0

    @pytest.mark.asyncio
    async def test_retry_missing_record(self, manager):
        outbox_id = uuid4()

        with pytest.raises(RecordNotFoundError) as exc_info:
            await manager.retry(outbox_id)

        assert exc_info.value.outbox_id == outbox_id

    @pytest.mark.asyncio
    async def test_retry_wrong_status(self, manager, repository, make_record):
        """Test records that are not dead-lettered are left untouched."""
        record = make_record(status=OutboxStatus.FAILED, attempt_count=1, error_message="boom")
        await repository.add_record(record)

        with pytest.raises(InvalidRecordStateError) as exc_info:
            await manager.retry(record.id)

        assert exc_info.value.status == "FAILED"
        assert exc_info.value.expected == "DEAD_LETTER"
        stored = await repository.get_record(record.id)
        assert stored.status == OutboxStatus.FAILED
        assert stored.attempt_count == 1
        assert stored.error_message == "boom"

    @pytest.mark.asyncio
    async def test_retry_all(self, manager, repository, make_record):
        for _ in range(3):
            await repository.add_record(make_record(status=OutboxStatus.DEAD_LETTER))
        await repository.add_record(make_record(status=OutboxStatus.PUBLISHED))

        assert await manager.retry_all() == 3
        assert (await repository.get_statistics()).pending == 3

    @pytest.mark.asyncio
    async def test_requeued_record_is_delivered(
        self, manager, repository, publisher, make_record, outbox_config, frozen_clock
    ):
        """Test the next fast cycle publishes a requeued record."""
        record = make_record(status=OutboxStatus.DEAD_LETTER, attempt_count=3)
        await repository.add_record(record)
        processor = OutboxProcessor(repository, publisher, config=outbox_config, clock=frozen_clock)

        await manager.retry(record.id)
        result = await processor.process_pending()

        assert result.published == 1
        assert (await repository.get_record(record.id)).status == OutboxStatus.PUBLISHED
