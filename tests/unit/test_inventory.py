"""
Unit Tests for the Entity Inventory Collector

Author: Ayodele Oladeji
Date: 2026-10-16
"""

import pytest

from sbexplorer.servicebus.exceptions import BrokerOperationError
from sbexplorer.servicebus.inventory import EntityInventoryCollector
from sbexplorer.servicebus.models import EntityRef


@pytest.fixture
def collector(metrics):
    return EntityInventoryCollector(metrics)


@pytest.fixture
async def populated(namespace, orders, audit_sub, seed, dead_letter):
    """orders: 4 active + 1 dead-lettered; events/audit and events/billing: 3 each."""
    seqs = await seed(orders, 5)
    await dead_letter(orders, seqs[:1])
    await seed(EntityRef.topic("events"), 3, prefix="evt")
    await dead_letter(audit_sub, [1, 2])
    return namespace


class TestCollect:
    """Tests for full inventory collection."""

    @pytest.mark.asyncio
    async def test_collects_queues_and_topics(self, collector, broker, populated):
        inventory = await collector.collect(broker)

        [queue] = inventory.queues
        assert queue.name == "orders"
        assert queue.total_message_count == 5
        assert queue.dead_letter_count == 1
        assert queue.active_message_count == 4
        assert queue.counters_available is True

        [topic] = inventory.topics
        assert [s.name for s in topic.subscriptions] == ["audit", "billing"]
        audit = topic.subscriptions[0]
        assert audit.topic_name == "events"
        assert audit.dead_letter_count == 2
        assert audit.active_message_count == 1

    @pytest.mark.asyncio
    async def test_topic_counters_are_sum_of_subscriptions(self, collector, broker, populated):
        inventory = await collector.collect(broker)
        [topic] = inventory.topics
        assert topic.total_message_count == 6
        assert topic.dead_letter_count == 2
        assert topic.active_message_count == 4

    @pytest.mark.asyncio
    async def test_counter_failure_zeroes_one_entity(self, collector, broker, populated, metrics):
        broker.counter_failures.add("events/Subscriptions/audit")

        inventory = await collector.collect(broker)

        [topic] = inventory.topics
        audit, billing = topic.subscriptions
        assert audit.counters_available is False
        assert audit.total_message_count == 0
        assert audit.dead_letter_count == 0
        assert billing.counters_available is True
        assert billing.total_message_count == 3
        assert topic.counters_available is False
        assert topic.total_message_count == 3
        assert inventory.queues[0].total_message_count == 5

        assert metrics.registry.get_sample_value(
            "sbexplorer_counter_failures_total", {"entity_type": "subscription"}
        ) == 1

    @pytest.mark.asyncio
    async def test_empty_namespace(self, collector, broker):
        inventory = await collector.collect(broker)
        assert inventory.to_dict() == {"queues": [], "topics": []}

    @pytest.mark.asyncio
    async def test_topic_without_subscriptions(self, collector, broker, namespace):
        await namespace.create_topic("lonely")
        [topic] = (await collector.collect(broker)).topics
        assert topic.subscriptions == []
        assert topic.total_message_count == 0
        assert topic.counters_available is True


class TestGetCounters:
    """Tests for single-entity counters."""

    @pytest.mark.asyncio
    async def test_queue(self, collector, broker, populated, orders):
        counters = await collector.get_counters(broker, orders)
        assert counters.to_dict() == {"totalMessageCount": 5, "activeMessageCount": 4, "deadLetterCount": 1}

    @pytest.mark.asyncio
    async def test_topic_is_aggregated(self, collector, broker, populated):
        counters = await collector.get_counters(broker, EntityRef.topic("events"))
        assert counters.total_message_count == 6
        assert counters.dead_letter_count == 2

    @pytest.mark.asyncio
    async def test_failure_propagates(self, collector, broker, populated, orders):
        broker.counter_failures.add("orders")
        with pytest.raises(BrokerOperationError):
            await collector.get_counters(broker, orders)
