"""
Entity Inventory Collector

Enumerates queues, topics and topic subscriptions and attaches live runtime
counters to each. A counter fetch that fails for one entity never aborts the
enumeration: the entity is reported with zeroed counters.

Author: Ayodele Oladeji
Date: 2026-10-14
"""

from typing import List, Optional, Tuple

from .broker import BrokerAdapter
from .logging_utils import StructuredLogger, track_operation_time
from .metrics import ExplorerMetrics, get_metrics
from .models import (
    EntityInventory,
    EntityKind,
    EntityRef,
    QueueEntity,
    RuntimeCounters,
    SubscriptionEntity,
    TopicEntity,
)


logger = StructuredLogger('sbexplorer.servicebus.inventory')


class EntityInventoryCollector:
    """Best-effort inventory snapshot; no retries, nothing cached."""

    def __init__(self, metrics: Optional[ExplorerMetrics] = None):
        self.metrics = metrics or get_metrics()

    @track_operation_time(logger, "collect_inventory")
    async def collect(self, broker: BrokerAdapter) -> EntityInventory:
        """
        Build the entity tree of a namespace.

        Listing failures (connectivity, credential) propagate; counter
        failures are recovered per entity.

        Args:
            broker: Open broker adapter

        Returns:
            EntityInventory with queues and topics (each with subscriptions)
        """
        queues = []
        for props in await broker.list_queues():
            entity = EntityRef(kind=EntityKind.QUEUE, name=props.name)
            counters, available = await self._fetch_counters(broker, entity)
            queues.append(QueueEntity(
                name=props.name,
                status=props.status,
                created_at=props.created_at,
                counters=counters,
                counters_available=available,
            ))

        topics = []
        for props in await broker.list_topics():
            subscriptions = await self._collect_subscriptions(broker, props.name)
            topics.append(TopicEntity(
                name=props.name,
                status=props.status,
                created_at=props.created_at,
                counters=self._aggregate(subscriptions),
                counters_available=all(s.counters_available for s in subscriptions),
                subscriptions=subscriptions,
            ))

        logger.info(
            "Inventory collected",
            operation="collect_inventory",
            queue_count=len(queues),
            topic_count=len(topics),
        )
        return EntityInventory(queues=queues, topics=topics)

    async def get_counters(self, broker: BrokerAdapter, entity: EntityRef) -> RuntimeCounters:
        """
        Live counters of one entity.

        Unlike ``collect`` this raises on failure: the caller asked about
        exactly this entity. Topic counters are summed over subscriptions.
        """
        if entity.kind != EntityKind.TOPIC:
            return await broker.get_runtime_counters(entity)

        total = RuntimeCounters()
        for props in await broker.list_subscriptions(entity.name):
            sub = EntityRef(kind=EntityKind.SUBSCRIPTION, name=props.name, topic_name=entity.name)
            total = total + await broker.get_runtime_counters(sub)
        return total

    async def _collect_subscriptions(self, broker: BrokerAdapter, topic_name: str) -> List[SubscriptionEntity]:
        subscriptions = []
        for props in await broker.list_subscriptions(topic_name):
            entity = EntityRef(kind=EntityKind.SUBSCRIPTION, name=props.name, topic_name=topic_name)
            counters, available = await self._fetch_counters(broker, entity)
            subscriptions.append(SubscriptionEntity(
                name=props.name,
                topic_name=topic_name,
                status=props.status,
                created_at=props.created_at,
                counters=counters,
                counters_available=available,
            ))
        return subscriptions

    async def _fetch_counters(self, broker: BrokerAdapter, entity: EntityRef) -> Tuple[RuntimeCounters, bool]:
        try:
            return await broker.get_runtime_counters(entity), True
        except Exception as e:
            logger.warning(
                f"Counter fetch failed for {entity.path}; reporting zero counters",
                operation="get_runtime_counters",
                entity_type=entity.kind.value,
                entity_name=entity.path,
                error_type=type(e).__name__,
                error_message=str(e),
            )
            self.metrics.track_counter_failure(entity.kind.value)
            return RuntimeCounters(), False

    @staticmethod
    def _aggregate(subscriptions: List[SubscriptionEntity]) -> RuntimeCounters:
        total = RuntimeCounters()
        for subscription in subscriptions:
            total = total + subscription.counters
        return total
