"""
Integration Scenarios for the Explorer Console

End-to-end operator workflows through ExplorerConsole: inventory, peek,
delete and resubmit, with broker faults injected where the workflow calls
for them.

Author: Ayodele Oladeji
Date: 2026-10-17
"""

import pytest

from sbexplorer.servicebus.config import ExplorerConfig
from sbexplorer.servicebus.console import ExplorerConsole
from sbexplorer.servicebus.models import BrokerCredential, EntityRef, OperationOutcome, SubQueue


CONNECTION_STRING = "Endpoint=sb://demo.servicebus.windows.net/;SharedAccessKeyName=root;SharedAccessKey=abc"


@pytest.fixture
def console(settings, broker_config, broker, metrics):
    return ExplorerConsole(
        ExplorerConfig(broker=broker_config, engine=settings),
        broker_factory=lambda credential: broker,
        metrics=metrics,
    )


@pytest.fixture
def credential():
    return BrokerCredential.from_connection_string(CONNECTION_STRING)


class TestDeadLetterCleanup:
    """Operator drains a subscription's dead-letter sub-queue."""

    @pytest.mark.asyncio
    async def test_drain_250_dead_letters(self, console, credential, namespace, seed, dead_letter):
        await namespace.create_topic("orders")
        await namespace.create_subscription("orders", "orders-dlq-sub")
        entity = EntityRef.subscription("orders", "orders-dlq-sub")
        seqs = await seed(EntityRef.topic("orders"), 250)
        await dead_letter(entity, seqs)

        before = await console.get_entity_details(credential, entity)
        assert before.dead_letter_count == 250

        result = await console.delete_messages(credential, entity, SubQueue.DEAD_LETTER, all_messages=True)

        assert result.succeeded_count == 250
        assert result.failed_count == 0
        after = await console.get_entity_details(credential, entity)
        assert after.dead_letter_count == 0
        page = await console.peek_messages(credential, entity, SubQueue.DEAD_LETTER)
        assert page.records == []
        assert page.total_messages == 0

    @pytest.mark.asyncio
    async def test_drain_leaves_active_untouched(self, console, credential, orders, seed, dead_letter):
        seqs = await seed(orders, 10)
        await dead_letter(orders, seqs[:4])

        await console.delete_messages(credential, orders, SubQueue.DEAD_LETTER, all_messages=True)

        page = await console.peek_messages(credential, orders)
        assert [r.sequence_number for r in page.records] == seqs[4:]


class TestSelectiveDelete:
    """Operator deletes messages picked from a peek page."""

    @pytest.mark.asyncio
    async def test_picked_from_peek_page(self, console, credential, orders, seed):
        await seed(orders, 40)
        page = await console.peek_messages(credential, orders)
        picked = [r.sequence_number for r in page.records[5:8]]

        result = await console.delete_messages(credential, orders, sequence_numbers=picked)

        assert result.succeeded_ids == set(picked)
        assert result.failed_ids == {}
        counters = await console.get_entity_details(credential, orders)
        assert counters.active_message_count == 37

    @pytest.mark.asyncio
    async def test_target_never_redelivered(self, console, credential, broker, orders, seed):
        m1, m2 = await seed(orders, 2)
        broker.never_deliver.add(m2)

        result = await console.delete_messages(credential, orders, sequence_numbers=[m1, m2])

        assert result.succeeded_ids == {m1}
        assert m2 not in result.failed_ids
        assert result.not_found_ids == {m2}
        assert result.outcome == OperationOutcome.PARTIAL
        page = await console.peek_messages(credential, orders)
        assert [r.sequence_number for r in page.records] == [m2]

    @pytest.mark.asyncio
    async def test_target_locked_by_another_consumer(self, console, credential, broker, orders, seed):
        seqs = await seed(orders, 3)

        async with broker.open_receiver(orders) as consumer:
            held = await consumer.receive(1, 0)
            result = await console.delete_messages(credential, orders, sequence_numbers=[seqs[0], seqs[1]])
            for message in held:
                await consumer.abandon(message)

        assert result.succeeded_ids == {seqs[1]}
        assert result.not_found_ids == {seqs[0]}
        page = await console.peek_messages(credential, orders)
        assert [r.sequence_number for r in page.records] == [seqs[0], seqs[2]]


class TestResubmitWorkflow:
    """Operator resubmits dead-lettered messages after a fix is deployed."""

    @pytest.mark.asyncio
    async def test_each_resubmit_moves_one_message(self, console, credential, orders, seed, dead_letter):
        seqs = await seed(orders, 6)
        await dead_letter(orders, seqs[:3])
        before = await console.get_entity_details(credential, orders)

        result = await console.resubmit_messages(credential, orders, sequence_numbers=seqs[:2])

        after = await console.get_entity_details(credential, orders)
        assert result.succeeded_count == 2
        assert after.dead_letter_count == before.dead_letter_count - 2
        assert after.active_message_count == before.active_message_count + 2

    @pytest.mark.asyncio
    async def test_complete_fails_after_send(self, console, credential, broker, orders, seed, dead_letter):
        seqs = await seed(orders, 8)
        m7 = seqs[7]
        await dead_letter(orders, [m7])
        broker.fail_complete.add(m7)

        result = await console.resubmit_messages(credential, orders, sequence_numbers=[m7])

        assert m7 in result.failed_ids
        assert "complete" in result.failed_ids[m7]
        assert result.outcome == OperationOutcome.FAILED
        dlq = await console.peek_messages(credential, orders, SubQueue.DEAD_LETTER)
        assert [r.sequence_number for r in dlq.records] == [m7]
        assert [m.message_id for m in broker.sent] == ["resubmit-msg-7"]

    @pytest.mark.asyncio
    async def test_subscription_resubmit_reaches_every_subscription(
        self, console, credential, audit_sub, seed, dead_letter
    ):
        await seed(EntityRef.topic("events"), 1)
        await dead_letter(audit_sub, [1])
        billing = EntityRef.subscription("events", "billing")

        await console.resubmit_messages(credential, audit_sub, all_messages=True)

        inventory = await console.list_entities(credential)
        [topic] = inventory.topics
        counts = {s.name: (s.active_message_count, s.dead_letter_count) for s in topic.subscriptions}
        assert counts == {"audit": (1, 0), "billing": (2, 0)}
        page = await console.peek_messages(credential, billing)
        assert [r.message_id for r in page.records] == ["msg-0", "resubmit-msg-0"]


class TestInventoryResilience:
    @pytest.mark.asyncio
    async def test_one_bad_entity_does_not_hide_others(self, console, credential, broker, orders, audit_sub, seed):
        await seed(orders, 2)
        await seed(EntityRef.topic("events"), 1)
        broker.counter_failures.add("orders")

        inventory = await console.list_entities(credential)

        [queue] = inventory.queues
        assert queue.counters_available is False
        assert queue.total_message_count == 0
        [topic] = inventory.topics
        assert topic.total_message_count == 2
