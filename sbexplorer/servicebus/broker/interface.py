"""
Broker Adapter Interface

Defines the abstract capability the lifecycle engines are written against:
entity enumeration, runtime counters, and per-entity receivers offering
peek, receive-with-lock, complete and abandon, plus senders.

Author: Ayodele Oladeji
Date: 2026-10-12
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass
from datetime import datetime
from enum import Enum
from typing import Any, AsyncContextManager, List, Optional

from ..constants import DEFAULT_LOCK_DURATION, DEFAULT_MAX_DELIVERY_COUNT
from ..models import EntityRef, MessageRecord, OutgoingMessage, RuntimeCounters, SubQueue


class BrokerType(str, Enum):
    """Supported broker adapter types."""

    AZURE = "azure"
    IN_MEMORY = "in-memory"


@dataclass
class BrokerConfig:
    """
    Configuration for broker adapters.

    Attributes:
        broker_type: Which adapter to create
        lock_duration_seconds: Lock duration used by the in-memory broker
        max_delivery_count: Deliveries before the in-memory broker dead-letters
            an abandoned message
        prefetch_count: Receiver prefetch for the Azure adapter (0 = off)
    """

    broker_type: BrokerType = BrokerType.AZURE
    lock_duration_seconds: int = DEFAULT_LOCK_DURATION
    max_delivery_count: int = DEFAULT_MAX_DELIVERY_COUNT
    prefetch_count: int = 0


@dataclass
class EntityProperties:
    """Static properties of a listed entity."""

    name: str
    status: str
    created_at: Optional[datetime] = None


@dataclass
class ReceivedMessage:
    """
    A message received under an exclusive lock.

    Attributes:
        record: Message contents
        lock_token: Lock held on the message
        handle: Adapter-native message object needed to settle the lock
    """

    record: MessageRecord
    lock_token: str
    handle: Any = None

    @property
    def sequence_number(self) -> int:
        return self.record.sequence_number


class BrokerReceiver(ABC):
    """Receiver bound to one sub-queue of one queue or subscription."""

    @abstractmethod
    async def peek(
        self,
        max_count: int,
        from_sequence_number: Optional[int] = None
    ) -> List[MessageRecord]:
        """
        Read messages without locking or removing them.

        Args:
            max_count: Upper bound of records returned
            from_sequence_number: Lowest sequence number to return (None = start)

        Returns:
            Records in broker order; may be fewer than ``max_count``
        """

    @abstractmethod
    async def receive(self, max_count: int, max_wait_time: float) -> List[ReceivedMessage]:
        """Receive up to ``max_count`` messages under lock; empty list when none arrive."""

    @abstractmethod
    async def complete(self, message: ReceivedMessage) -> None:
        """Permanently remove a locked message."""

    @abstractmethod
    async def abandon(self, message: ReceivedMessage) -> None:
        """Release the lock and return the message to its sub-queue."""


class BrokerSender(ABC):
    """Sender bound to one queue or topic."""

    @abstractmethod
    async def send(self, message: OutgoingMessage) -> None:
        """Send one message."""


class BrokerAdapter(ABC):
    """
    Abstract base class for broker adapters.

    **Lifecycle**:
    1. Created per console operation by ``create_broker(config, credential)``
    2. Used as ``async with broker:``; ``close()`` runs on every exit path
    3. Receivers and senders are scoped with ``async with`` as well

    **Error Handling**:
    - Raise BrokerConnectionError / BrokerAuthenticationError for connectivity
    - Raise EntityNotFoundError for unknown entities
    - Raise MessageOperationError for per-message settlement failures
    """

    def __init__(self, config: BrokerConfig):
        self.config = config

    async def __aenter__(self) -> "BrokerAdapter":
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        await self.close()

    @abstractmethod
    async def close(self) -> None:
        """Release all broker connections."""

    # ========== Inventory ==========

    @abstractmethod
    async def list_queues(self) -> List[EntityProperties]:
        """List all queues."""

    @abstractmethod
    async def list_topics(self) -> List[EntityProperties]:
        """List all topics."""

    @abstractmethod
    async def list_subscriptions(self, topic_name: str) -> List[EntityProperties]:
        """List subscriptions of a topic."""

    @abstractmethod
    async def get_runtime_counters(self, entity: EntityRef) -> RuntimeCounters:
        """Fetch live counters of a queue or subscription."""

    # ========== Messaging ==========

    @abstractmethod
    def open_receiver(
        self,
        entity: EntityRef,
        sub_queue: SubQueue = SubQueue.ACTIVE
    ) -> AsyncContextManager[BrokerReceiver]:
        """Open a peek-lock receiver on a queue or subscription sub-queue."""

    @abstractmethod
    def open_sender(self, entity: EntityRef) -> AsyncContextManager[BrokerSender]:
        """Open a sender on a queue or topic."""
