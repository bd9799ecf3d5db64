"""
In-Memory Broker

Local broker with peek-lock semantics for UI development and tests.
State lives in an InMemoryNamespace that outlives individual adapters, the
same way a real namespace outlives client connections.

Author: Ayodele Oladeji
Date: 2026-10-13
"""

import asyncio
import uuid
from bisect import insort
from contextlib import asynccontextmanager
from dataclasses import dataclass, field
from datetime import datetime, timezone, timedelta
from typing import AsyncIterator, Dict, List, Optional

from ..constants import ENTITY_STATUS_ACTIVE
from ..exceptions import EntityNotFoundError, InvalidRequestError, MessageLockLostError
from ..logging_utils import StructuredLogger
from ..models import (
    EntityKind,
    EntityRef,
    MessageRecord,
    OutgoingMessage,
    RuntimeCounters,
    SubQueue,
)
from .interface import (
    BrokerAdapter,
    BrokerConfig,
    BrokerReceiver,
    BrokerSender,
    EntityProperties,
    ReceivedMessage,
)


logger = StructuredLogger('sbexplorer.servicebus.broker.inmemory')

MAX_DELIVERY_COUNT_REASON = "MaxDeliveryCountExceeded"


def _by_sequence(record: MessageRecord) -> int:
    return record.sequence_number


@dataclass
class _Lock:
    record: MessageRecord
    sub_queue: SubQueue
    locked_until: datetime


@dataclass
class _EntityState:
    """Messages of one queue or subscription."""

    created_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))
    status: str = ENTITY_STATUS_ACTIVE
    active: List[MessageRecord] = field(default_factory=list)
    dead_letter: List[MessageRecord] = field(default_factory=list)
    locked: Dict[str, _Lock] = field(default_factory=dict)
    next_sequence: int = 1

    def sub_queue(self, sub_queue: SubQueue) -> List[MessageRecord]:
        return self.dead_letter if sub_queue == SubQueue.DEAD_LETTER else self.active

    def locked_in(self, sub_queue: SubQueue) -> List[MessageRecord]:
        return [lock.record for lock in self.locked.values() if lock.sub_queue == sub_queue]


@dataclass
class _TopicState:
    created_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))
    status: str = ENTITY_STATUS_ACTIVE
    subscriptions: Dict[str, _EntityState] = field(default_factory=dict)


class InMemoryNamespace:
    """
    Entities and messages of an in-memory namespace.

    Attributes:
        lock_duration: Seconds a received message stays locked
        max_delivery_count: Deliveries after which an abandoned active message
            is moved to the dead-letter sub-queue
    """

    def __init__(self, lock_duration: int = 60, max_delivery_count: int = 10):
        self.lock_duration = lock_duration
        self.max_delivery_count = max_delivery_count
        self._queues: Dict[str, _EntityState] = {}
        self._topics: Dict[str, _TopicState] = {}
        self._lock = asyncio.Lock()

    # ========== Administration ==========

    async def create_queue(self, name: str) -> None:
        async with self._lock:
            self._queues.setdefault(name, _EntityState())

    async def create_topic(self, name: str) -> None:
        async with self._lock:
            self._topics.setdefault(name, _TopicState())

    async def create_subscription(self, topic_name: str, subscription_name: str) -> None:
        async with self._lock:
            topic = self._get_topic(topic_name)
            topic.subscriptions.setdefault(subscription_name, _EntityState())

    async def reset(self) -> None:
        """Remove all entities and messages."""
        async with self._lock:
            self._queues.clear()
            self._topics.clear()

    async def send(self, entity: EntityRef, message: OutgoingMessage) -> List[int]:
        """
        Enqueue a message on a queue, or on every subscription of a topic.

        Returns:
            Sequence numbers assigned, one per receiving entity
        """
        async with self._lock:
            if entity.kind == EntityKind.QUEUE:
                targets = [self._get_entity(entity)]
            elif entity.kind == EntityKind.TOPIC:
                targets = list(self._get_topic(entity.name).subscriptions.values())
            else:
                raise InvalidRequestError("messages cannot be sent to a subscription", operation="send")

            now = datetime.now(timezone.utc)
            assigned = []
            for state in targets:
                record = MessageRecord(
                    sequence_number=state.next_sequence,
                    message_id=message.message_id or str(uuid.uuid4()),
                    body=message.body,
                    properties=dict(message.application_properties),
                    enqueued_time=now,
                    correlation_id=message.correlation_id,
                    content_type=message.content_type,
                    subject=message.subject,
                    delivery_count=0,
                )
                state.next_sequence += 1
                state.active.append(record)
                assigned.append(record.sequence_number)
            return assigned

    async def dead_letter(
        self,
        entity: EntityRef,
        sequence_number: int,
        reason: Optional[str] = None,
        description: Optional[str] = None
    ) -> None:
        """Move an available active message to the dead-letter sub-queue."""
        async with self._lock:
            state = self._get_entity(entity)
            for index, record in enumerate(state.active):
                if record.sequence_number == sequence_number:
                    state.active.pop(index)
                    self._move_to_dead_letter(state, record, reason, description)
                    return
            raise InvalidRequestError(
                f"sequence number {sequence_number} is not available on {entity.path}",
                operation="dead_letter",
            )

    # ========== Broker primitives ==========

    async def list_queues(self) -> List[EntityProperties]:
        async with self._lock:
            return [
                EntityProperties(name=name, status=state.status, created_at=state.created_at)
                for name, state in sorted(self._queues.items())
            ]

    async def list_topics(self) -> List[EntityProperties]:
        async with self._lock:
            return [
                EntityProperties(name=name, status=topic.status, created_at=topic.created_at)
                for name, topic in sorted(self._topics.items())
            ]

    async def list_subscriptions(self, topic_name: str) -> List[EntityProperties]:
        async with self._lock:
            topic = self._get_topic(topic_name)
            return [
                EntityProperties(name=name, status=state.status, created_at=state.created_at)
                for name, state in sorted(topic.subscriptions.items())
            ]

    async def counters(self, entity: EntityRef) -> RuntimeCounters:
        async with self._lock:
            state = self._get_entity(entity)
            self._expire_locks(state)
            dead_letter = len(state.dead_letter) + len(state.locked_in(SubQueue.DEAD_LETTER))
            active = len(state.active) + len(state.locked_in(SubQueue.ACTIVE))
            return RuntimeCounters(total_message_count=active + dead_letter, dead_letter_count=dead_letter)

    async def peek(
        self,
        entity: EntityRef,
        sub_queue: SubQueue,
        max_count: int,
        from_sequence_number: Optional[int]
    ) -> List[MessageRecord]:
        async with self._lock:
            state = self._get_entity(entity)
            self._expire_locks(state)
            visible = sorted(state.sub_queue(sub_queue) + state.locked_in(sub_queue), key=_by_sequence)
            start = from_sequence_number or 0
            return [r.model_copy(deep=True) for r in visible if r.sequence_number >= start][:max_count]

    async def receive(self, entity: EntityRef, sub_queue: SubQueue, max_count: int) -> List[ReceivedMessage]:
        async with self._lock:
            state = self._get_entity(entity)
            self._expire_locks(state)
            available = state.sub_queue(sub_queue)
            taken, available[:] = available[:max_count], available[max_count:]

            locked_until = datetime.now(timezone.utc) + timedelta(seconds=self.lock_duration)
            received = []
            for record in taken:
                record.delivery_count = (record.delivery_count or 0) + 1
                token = str(uuid.uuid4())
                state.locked[token] = _Lock(record=record, sub_queue=sub_queue, locked_until=locked_until)
                received.append(ReceivedMessage(record=record.model_copy(deep=True), lock_token=token))
            return received

    async def complete(self, entity: EntityRef, message: ReceivedMessage) -> None:
        async with self._lock:
            state = self._get_entity(entity)
            self._expire_locks(state)
            if state.locked.pop(message.lock_token, None) is None:
                raise MessageLockLostError("complete", message.sequence_number)

    async def abandon(self, entity: EntityRef, message: ReceivedMessage) -> None:
        async with self._lock:
            state = self._get_entity(entity)
            self._expire_locks(state)
            lock = state.locked.pop(message.lock_token, None)
            if lock is None:
                raise MessageLockLostError("abandon", message.sequence_number)
            self._release(state, lock)

    # ========== Internals ==========

    def _get_topic(self, topic_name: str) -> _TopicState:
        if topic_name not in self._topics:
            raise EntityNotFoundError("topic", topic_name)
        return self._topics[topic_name]

    def _get_entity(self, entity: EntityRef) -> _EntityState:
        if entity.kind == EntityKind.QUEUE:
            if entity.name not in self._queues:
                raise EntityNotFoundError("queue", entity.name)
            return self._queues[entity.name]
        if entity.kind == EntityKind.SUBSCRIPTION:
            topic = self._get_topic(entity.topic_name)
            if entity.name not in topic.subscriptions:
                raise EntityNotFoundError(
                    "subscription",
                    entity.name,
                    f"Subscription '{entity.name}' not found on topic '{entity.topic_name}'",
                )
            return topic.subscriptions[entity.name]
        raise InvalidRequestError("topics hold no messages; use one of their subscriptions")

    def _expire_locks(self, state: _EntityState) -> None:
        now = datetime.now(timezone.utc)
        expired = [token for token, lock in state.locked.items() if now >= lock.locked_until]
        for token in expired:
            lock = state.locked.pop(token)
            logger.debug(
                "Lock expired",
                operation="lock_expired",
                sequence_number=lock.record.sequence_number,
            )
            self._release(state, lock)

    def _release(self, state: _EntityState, lock: _Lock) -> None:
        record = lock.record
        if lock.sub_queue == SubQueue.ACTIVE and (record.delivery_count or 0) >= self.max_delivery_count:
            self._move_to_dead_letter(
                state,
                record,
                MAX_DELIVERY_COUNT_REASON,
                "The message has exceeded the maximum delivery count",
            )
            return
        insort(state.sub_queue(lock.sub_queue), record, key=_by_sequence)

    def _move_to_dead_letter(
        self,
        state: _EntityState,
        record: MessageRecord,
        reason: Optional[str],
        description: Optional[str]
    ) -> None:
        record.dead_letter_reason = reason
        record.dead_letter_error_description = description
        insort(state.dead_letter, record, key=_by_sequence)


class _InMemoryReceiver(BrokerReceiver):
    def __init__(self, namespace: InMemoryNamespace, entity: EntityRef, sub_queue: SubQueue):
        self._namespace = namespace
        self._entity = entity
        self._sub_queue = sub_queue

    async def peek(self, max_count: int, from_sequence_number: Optional[int] = None) -> List[MessageRecord]:
        return await self._namespace.peek(self._entity, self._sub_queue, max_count, from_sequence_number)

    async def receive(self, max_count: int, max_wait_time: float) -> List[ReceivedMessage]:
        # Returns immediately; an empty namespace has nothing to wait for
        return await self._namespace.receive(self._entity, self._sub_queue, max_count)

    async def complete(self, message: ReceivedMessage) -> None:
        await self._namespace.complete(self._entity, message)

    async def abandon(self, message: ReceivedMessage) -> None:
        await self._namespace.abandon(self._entity, message)


class _InMemorySender(BrokerSender):
    def __init__(self, namespace: InMemoryNamespace, entity: EntityRef):
        self._namespace = namespace
        self._entity = entity

    async def send(self, message: OutgoingMessage) -> None:
        await self._namespace.send(self._entity, message)


class InMemoryBroker(BrokerAdapter):
    """Broker adapter over an InMemoryNamespace."""

    def __init__(self, config: BrokerConfig, namespace: Optional[InMemoryNamespace] = None):
        super().__init__(config)
        self.namespace = namespace or InMemoryNamespace(
            lock_duration=config.lock_duration_seconds,
            max_delivery_count=config.max_delivery_count,
        )

    async def close(self) -> None:
        # Namespace state outlives the adapter
        pass

    async def list_queues(self) -> List[EntityProperties]:
        return await self.namespace.list_queues()

    async def list_topics(self) -> List[EntityProperties]:
        return await self.namespace.list_topics()

    async def list_subscriptions(self, topic_name: str) -> List[EntityProperties]:
        return await self.namespace.list_subscriptions(topic_name)

    async def get_runtime_counters(self, entity: EntityRef) -> RuntimeCounters:
        return await self.namespace.counters(entity)

    @asynccontextmanager
    async def open_receiver(
        self,
        entity: EntityRef,
        sub_queue: SubQueue = SubQueue.ACTIVE
    ) -> AsyncIterator[BrokerReceiver]:
        # Fail on open like a real receiver link does
        await self.namespace.counters(entity)
        yield _InMemoryReceiver(self.namespace, entity, sub_queue)

    @asynccontextmanager
    async def open_sender(self, entity: EntityRef) -> AsyncIterator[BrokerSender]:
        if entity.kind == EntityKind.TOPIC:
            await self.namespace.list_subscriptions(entity.name)
        else:
            await self.namespace.counters(entity)
        yield _InMemorySender(self.namespace, entity)
