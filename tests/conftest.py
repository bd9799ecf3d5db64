"""
Shared fixtures for SB Explorer tests.

Author: Ayodele Oladeji
Date: 2026-10-16
"""

from contextlib import asynccontextmanager
from typing import List, Optional, Set

import pytest
from prometheus_client import CollectorRegistry

from sbexplorer.servicebus.broker import (
    BrokerConfig,
    BrokerReceiver,
    BrokerSender,
    BrokerType,
    InMemoryBroker,
    InMemoryNamespace,
    ReceivedMessage,
)
from sbexplorer.servicebus.config import EngineSettings
from sbexplorer.servicebus.exceptions import (
    BrokerConnectionError,
    BrokerOperationError,
    MessageOperationError,
)
from sbexplorer.servicebus.metrics import ExplorerMetrics
from sbexplorer.servicebus.models import (
    EntityRef,
    MessageRecord,
    OutgoingMessage,
    RuntimeCounters,
    SubQueue,
)


class FaultyReceiver(BrokerReceiver):
    """Receiver that injects the failures configured on its FaultyBroker."""

    def __init__(self, inner: BrokerReceiver, broker: "FaultyBroker"):
        self._inner = inner
        self._broker = broker

    async def peek(self, max_count: int, from_sequence_number: Optional[int] = None) -> List[MessageRecord]:
        return await self._inner.peek(max_count, from_sequence_number)

    async def receive(self, max_count: int, max_wait_time: float) -> List[ReceivedMessage]:
        self._broker.receive_calls += 1
        if self._broker.receive_calls in self._broker.fail_receive_calls:
            raise BrokerConnectionError("Broker unreachable during receive", reason="injected")

        messages = await self._inner.receive(max_count, max_wait_time)
        delivered = []
        for message in messages:
            if message.sequence_number in self._broker.never_deliver:
                # Held back by the broker: released without reaching the engine
                await self._inner.abandon(message)
                continue
            delivered.append(message)
        self._broker.received.extend(m.sequence_number for m in delivered)
        return delivered

    async def complete(self, message: ReceivedMessage) -> None:
        if message.sequence_number in self._broker.fail_complete:
            raise MessageOperationError("complete", message.sequence_number, "injected complete failure")
        await self._inner.complete(message)

    async def abandon(self, message: ReceivedMessage) -> None:
        self._broker.abandoned.append(message.sequence_number)
        if message.sequence_number in self._broker.fail_abandon:
            raise MessageOperationError("abandon", message.sequence_number, "injected abandon failure")
        await self._inner.abandon(message)


class FaultySender(BrokerSender):
    def __init__(self, inner: BrokerSender, broker: "FaultyBroker"):
        self._inner = inner
        self._broker = broker

    async def send(self, message: OutgoingMessage) -> None:
        if message.message_id in self._broker.fail_send_ids:
            raise MessageOperationError("send", None, "injected send failure")
        self._broker.sent.append(message)
        await self._inner.send(message)


class FaultyBroker(InMemoryBroker):
    """In-memory broker with switchable failures for engine tests."""

    def __init__(self, config: BrokerConfig, namespace: InMemoryNamespace):
        super().__init__(config, namespace)
        self.fail_complete: Set[int] = set()
        self.fail_abandon: Set[int] = set()
        self.fail_send_ids: Set[str] = set()
        self.fail_receive_calls: Set[int] = set()
        self.never_deliver: Set[int] = set()
        self.counter_failures: Set[str] = set()
        self.receive_calls = 0
        self.received: List[int] = []
        self.abandoned: List[int] = []
        self.sent: List[OutgoingMessage] = []
        self.closed = 0

    async def close(self) -> None:
        self.closed += 1

    async def get_runtime_counters(self, entity: EntityRef) -> RuntimeCounters:
        if entity.path in self.counter_failures:
            raise BrokerOperationError(f"get_runtime_counters failed for {entity.path}")
        return await super().get_runtime_counters(entity)

    @asynccontextmanager
    async def open_receiver(self, entity: EntityRef, sub_queue: SubQueue = SubQueue.ACTIVE):
        async with super().open_receiver(entity, sub_queue) as receiver:
            yield FaultyReceiver(receiver, self)

    @asynccontextmanager
    async def open_sender(self, entity: EntityRef):
        async with super().open_sender(entity) as sender:
            yield FaultySender(sender, self)


@pytest.fixture
def settings():
    """Engine settings without waits."""
    return EngineSettings(
        receive_wait_seconds=0,
        retry_backoff_seconds=0,
        drain_batch_delay_seconds=0,
    )


@pytest.fixture
def metrics():
    """Metrics on a private registry."""
    return ExplorerMetrics(CollectorRegistry())


@pytest.fixture
def broker_config():
    return BrokerConfig(broker_type=BrokerType.IN_MEMORY)


@pytest.fixture
def namespace():
    return InMemoryNamespace()


@pytest.fixture
def broker(broker_config, namespace):
    return FaultyBroker(broker_config, namespace)


@pytest.fixture
async def orders(namespace):
    """Queue 'orders'."""
    await namespace.create_queue("orders")
    return EntityRef.queue("orders")


@pytest.fixture
async def audit_sub(namespace):
    """Subscription 'audit' (plus 'billing') on topic 'events'."""
    await namespace.create_topic("events")
    await namespace.create_subscription("events", "audit")
    await namespace.create_subscription("events", "billing")
    return EntityRef.subscription("events", "audit")


@pytest.fixture
def seed(namespace):
    """Send ``count`` messages to an entity and return their sequence numbers."""
    async def _seed(entity: EntityRef, count: int, prefix: str = "msg", **kwargs) -> List[int]:
        sequence_numbers = []
        for i in range(count):
            sequence_numbers.extend(await namespace.send(
                entity,
                OutgoingMessage(body=f"{prefix}-{i}".encode(), message_id=f"{prefix}-{i}", **kwargs),
            ))
        return sequence_numbers
    return _seed


@pytest.fixture
def dead_letter(namespace):
    """Move messages to the dead-letter sub-queue."""
    async def _dead_letter(entity: EntityRef, sequence_numbers: List[int], reason: str = "ProcessingFailed"):
        for sequence_number in sequence_numbers:
            await namespace.dead_letter(entity, sequence_number, reason, "handler raised")
    return _dead_letter
