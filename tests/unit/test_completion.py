"""
Unit Tests for the Selective Batch Completion Engine

Tests for delete-selected (bounded attempts, abandon on mismatch) and
delete-all (drain until empty batch).

Author: Ayodele Oladeji
Date: 2026-10-16
"""

import pytest

from sbexplorer.servicebus.completion import SelectiveBatchCompletionEngine
from sbexplorer.servicebus.config import EngineSettings
from sbexplorer.servicebus.exceptions import EntityNotFoundError, InvalidRequestError
from sbexplorer.servicebus.models import EntityRef, OperationOutcome, SubQueue


@pytest.fixture
def engine(settings, metrics):
    return SelectiveBatchCompletionEngine(settings, metrics)


async def remaining(broker, entity, sub_queue=SubQueue.ACTIVE):
    async with broker.open_receiver(entity, sub_queue) as receiver:
        return [r.sequence_number for r in await receiver.peek(500)]


class TestDeleteSelected:
    """Tests for deleting specific sequence numbers."""

    @pytest.mark.asyncio
    async def test_deletes_targets_only(self, engine, broker, orders, seed):
        await seed(orders, 5)

        result = await engine.delete_selected(broker, orders, [2, 4])

        assert result.succeeded_ids == {2, 4}
        assert result.failed_ids == {}
        assert result.not_found_ids == set()
        assert result.requested_count == 2
        assert result.outcome == OperationOutcome.SUCCEEDED
        assert await remaining(broker, orders) == [1, 3, 5]
        assert sorted(broker.abandoned) == [1, 3, 5]

    @pytest.mark.asyncio
    async def test_stops_once_all_targets_deleted(self, engine, broker, orders, seed):
        await seed(orders, 3)
        await engine.delete_selected(broker, orders, [1])
        assert broker.receive_calls == 1

    @pytest.mark.asyncio
    async def test_no_message_left_locked(self, engine, broker, namespace, orders, seed):
        await seed(orders, 10)
        await engine.delete_selected(broker, orders, [5])

        async with broker.open_receiver(orders) as receiver:
            available = await receiver.receive(50, 0)
            for message in available:
                await receiver.abandon(message)
        assert len(available) == 9

    @pytest.mark.asyncio
    async def test_never_delivered_target_is_not_found(self, engine, broker, orders, seed, settings):
        await seed(orders, 2)
        broker.never_deliver.add(2)

        result = await engine.delete_selected(broker, orders, [1, 2])

        assert result.succeeded_ids == {1}
        assert 2 not in result.failed_ids
        assert result.not_found_ids == {2}
        assert result.outcome == OperationOutcome.PARTIAL
        assert broker.receive_calls == settings.selective_max_attempts
        assert await remaining(broker, orders) == [2]

    @pytest.mark.asyncio
    async def test_unknown_sequence_number(self, engine, broker, orders, seed):
        await seed(orders, 1)

        result = await engine.delete_selected(broker, orders, [99])

        assert result.not_found_ids == {99}
        assert result.succeeded_ids == set()
        assert result.outcome == OperationOutcome.FAILED

    @pytest.mark.asyncio
    async def test_complete_failure_is_recorded_and_abandoned(self, engine, broker, orders, seed):
        await seed(orders, 3)
        broker.fail_complete.add(2)

        result = await engine.delete_selected(broker, orders, [1, 2])

        assert result.succeeded_ids == {1}
        assert "injected complete failure" in result.failed_ids[2]
        assert result.not_found_ids == set()
        assert result.outcome == OperationOutcome.PARTIAL
        assert await remaining(broker, orders) == [2, 3]

    @pytest.mark.asyncio
    async def test_failed_target_is_retried_in_later_attempts(self, engine, broker, orders, seed, settings):
        await seed(orders, 1)
        broker.fail_complete.add(1)

        await engine.delete_selected(broker, orders, [1])

        assert broker.received == [1] * settings.selective_max_attempts

    @pytest.mark.asyncio
    async def test_abandon_failure_does_not_abort(self, engine, broker, orders, seed):
        await seed(orders, 3)
        broker.fail_abandon.add(1)

        result = await engine.delete_selected(broker, orders, [2])

        assert result.succeeded_ids == {2}

    @pytest.mark.asyncio
    async def test_receive_failure_then_recovery(self, engine, broker, orders, seed):
        await seed(orders, 2)
        broker.fail_receive_calls.add(1)

        result = await engine.delete_selected(broker, orders, [1, 2])

        assert result.succeeded_ids == {1, 2}
        assert result.interrupted_reason is None
        assert result.outcome == OperationOutcome.SUCCEEDED

    @pytest.mark.asyncio
    async def test_receive_failing_throughout(self, engine, broker, orders, seed):
        await seed(orders, 2)
        broker.fail_receive_calls.update({1, 2, 3})

        result = await engine.delete_selected(broker, orders, [1])

        assert result.interrupted_reason == "Broker unreachable during receive"
        assert result.not_found_ids == {1}
        assert result.outcome == OperationOutcome.FAILED

    @pytest.mark.asyncio
    async def test_dead_letter_sub_queue(self, engine, broker, orders, seed, dead_letter):
        seqs = await seed(orders, 4)
        await dead_letter(orders, seqs[:2])

        result = await engine.delete_selected(broker, orders, [1], SubQueue.DEAD_LETTER)

        assert result.succeeded_ids == {1}
        assert result.sub_queue == SubQueue.DEAD_LETTER
        assert await remaining(broker, orders, SubQueue.DEAD_LETTER) == [2]
        assert await remaining(broker, orders) == [3, 4]

    @pytest.mark.asyncio
    async def test_duplicate_targets_collapse(self, engine, broker, orders, seed):
        await seed(orders, 2)
        result = await engine.delete_selected(broker, orders, [1, 1, 1])
        assert result.requested_count == 1

    @pytest.mark.asyncio
    async def test_records_metrics(self, engine, broker, orders, seed, metrics):
        await seed(orders, 3)
        await engine.delete_selected(broker, orders, [1, 2])

        assert metrics.registry.get_sample_value(
            "sbexplorer_messages_completed_total",
            {"entity": "orders", "sub_queue": "active", "operation": "delete"},
        ) == 2
        assert metrics.registry.get_sample_value(
            "sbexplorer_batch_operations_total", {"operation": "delete", "outcome": "succeeded"}
        ) == 1

    @pytest.mark.asyncio
    async def test_empty_targets_rejected(self, engine, broker, orders):
        with pytest.raises(InvalidRequestError):
            await engine.delete_selected(broker, orders, [])

    @pytest.mark.asyncio
    async def test_topic_rejected(self, engine, broker, audit_sub):
        with pytest.raises(InvalidRequestError):
            await engine.delete_selected(broker, EntityRef.topic("events"), [1])


class TestDeleteAll:
    """Tests for draining a sub-queue."""

    @pytest.mark.asyncio
    async def test_drains_dead_letter_sub_queue(self, engine, broker, namespace, seed, dead_letter):
        await namespace.create_topic("orders")
        await namespace.create_subscription("orders", "orders-dlq-sub")
        entity = EntityRef.subscription("orders", "orders-dlq-sub")
        seqs = await seed(EntityRef.topic("orders"), 250)
        await dead_letter(entity, seqs)

        result = await engine.delete_all(broker, entity, SubQueue.DEAD_LETTER)

        assert result.succeeded_count == 250
        assert result.failed_count == 0
        assert result.requested_count == 250
        assert result.outcome == OperationOutcome.SUCCEEDED
        counters = await broker.get_runtime_counters(entity)
        assert counters.dead_letter_count == 0
        assert await remaining(broker, entity, SubQueue.DEAD_LETTER) == []

    @pytest.mark.asyncio
    async def test_receives_in_drain_batches(self, engine, broker, orders, seed):
        await seed(orders, 45)
        await engine.delete_all(broker, orders)
        # 20 + 20 + 5, then the empty batch
        assert broker.receive_calls == 4

    @pytest.mark.asyncio
    async def test_empty_entity(self, engine, broker, orders):
        result = await engine.delete_all(broker, orders)
        assert result.requested_count == 0
        assert result.outcome == OperationOutcome.SUCCEEDED

    @pytest.mark.asyncio
    async def test_failed_message_stays_and_drain_continues(self, engine, broker, orders, seed):
        await seed(orders, 5)
        broker.fail_complete.add(3)

        result = await engine.delete_all(broker, orders)

        assert result.succeeded_ids == {1, 2, 4, 5}
        assert list(result.failed_ids) == [3]
        assert result.requested_count == 5
        assert result.interrupted_reason is None
        assert result.outcome == OperationOutcome.PARTIAL
        assert await remaining(broker, orders) == [3]
        assert broker.abandoned == [3]

    @pytest.mark.asyncio
    async def test_failing_head_with_single_message_batches(self, broker, metrics, orders, seed, dead_letter):
        engine = SelectiveBatchCompletionEngine(
            EngineSettings(
                receive_wait_seconds=0,
                retry_backoff_seconds=0,
                drain_batch_size=1,
                drain_batch_delay_seconds=0,
            ),
            metrics,
        )
        seqs = await seed(orders, 50)
        await dead_letter(orders, seqs)
        broker.fail_complete.add(seqs[0])

        result = await engine.delete_all(broker, orders, SubQueue.DEAD_LETTER)

        assert result.succeeded_count == 49
        assert list(result.failed_ids) == [seqs[0]]
        assert result.interrupted_reason is None
        assert await remaining(broker, orders, SubQueue.DEAD_LETTER) == [seqs[0]]

    @pytest.mark.asyncio
    async def test_full_batch_of_failures_does_not_end_drain(self, engine, broker, orders, seed, dead_letter):
        seqs = await seed(orders, 250)
        await dead_letter(orders, seqs)
        broker.fail_complete.update(seqs[:20])

        result = await engine.delete_all(broker, orders, SubQueue.DEAD_LETTER)

        assert result.succeeded_ids == set(seqs[20:])
        assert set(result.failed_ids) == set(seqs[:20])
        assert result.outcome == OperationOutcome.PARTIAL
        assert await remaining(broker, orders, SubQueue.DEAD_LETTER) == seqs[:20]

    @pytest.mark.asyncio
    async def test_receive_failure_interrupts(self, engine, broker, orders, seed):
        await seed(orders, 30)
        broker.fail_receive_calls.add(2)

        result = await engine.delete_all(broker, orders)

        assert result.succeeded_count == 20
        assert result.interrupted_reason == "Broker unreachable during receive; 10 messages remain"
        assert result.outcome == OperationOutcome.PARTIAL
        assert len(await remaining(broker, orders)) == 10

    @pytest.mark.asyncio
    async def test_missing_entity(self, engine, broker):
        with pytest.raises(EntityNotFoundError):
            await engine.delete_all(broker, EntityRef.queue("missing"))
