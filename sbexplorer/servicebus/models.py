"""
Explorer Models

Pydantic models for broker entities, message records, paging and batch
operation results.

Author: Ayodele Oladeji
Date: 2026-10-12
"""

import base64
import math
import re
from datetime import datetime
from enum import Enum
from typing import Any, Dict, List, Optional, Set

from pydantic import BaseModel, ConfigDict, Field, SecretStr

from .constants import (
    DEFAULT_PAGE_SIZE,
    MAX_QUEUE_NAME_LENGTH,
    MAX_SUBSCRIPTION_NAME_LENGTH,
    MAX_TOPIC_NAME_LENGTH,
    RESUBMIT_MESSAGE_ID_PREFIX,
)
from .exceptions import InvalidEntityNameError


class EntityKind(str, Enum):
    """Kinds of broker entities."""
    QUEUE = "queue"
    TOPIC = "topic"
    SUBSCRIPTION = "subscription"


class SubQueue(str, Enum):
    """Sub-queue of a queue or subscription."""
    ACTIVE = "active"
    DEAD_LETTER = "deadLetter"

    @classmethod
    def from_flag(cls, is_dead_letter: bool) -> "SubQueue":
        return cls.DEAD_LETTER if is_dead_letter else cls.ACTIVE


class OperationOutcome(str, Enum):
    """Overall outcome of a batch operation as shown by the console."""
    SUCCEEDED = "succeeded"
    PARTIAL = "partial"
    FAILED = "failed"


class EntityNameValidator:
    """
    Validates Service Bus entity names:
    - Queues and topics: 1-260 characters, subscriptions: 1-50 characters
    - Alphanumeric characters, hyphens (-), underscores (_), periods (.);
      queues and topics may also contain forward slashes (/)
    - Must start and end with alphanumeric character
    """

    MAX_LENGTHS = {
        EntityKind.QUEUE: MAX_QUEUE_NAME_LENGTH,
        EntityKind.TOPIC: MAX_TOPIC_NAME_LENGTH,
        EntityKind.SUBSCRIPTION: MAX_SUBSCRIPTION_NAME_LENGTH,
    }

    @classmethod
    def validate(cls, name: str, kind: EntityKind) -> tuple[bool, Optional[str]]:
        """
        Validate an entity name.

        Args:
            name: Entity name to validate
            kind: Kind of entity the name belongs to

        Returns:
            Tuple of (is_valid, error_message)
        """
        label = kind.value.capitalize()
        if not name:
            return False, f"{label} name cannot be empty"

        max_length = cls.MAX_LENGTHS[kind]
        if len(name) > max_length:
            return False, f"{label} name must be 1-{max_length} characters, got {len(name)}"

        if not name[0].isalnum():
            return False, f"{label} name must start with alphanumeric character"

        if not name[-1].isalnum():
            return False, f"{label} name must end with alphanumeric character"

        allowed = r'^[a-zA-Z0-9\-_./]+$' if kind != EntityKind.SUBSCRIPTION else r'^[a-zA-Z0-9\-_.]+$'
        if not re.match(allowed, name):
            return False, f"{label} name contains invalid characters"

        return True, None

    @classmethod
    def require_valid(cls, name: str, kind: EntityKind) -> str:
        """Return ``name`` or raise InvalidEntityNameError."""
        is_valid, error = cls.validate(name, kind)
        if not is_valid:
            raise InvalidEntityNameError(kind.value, name, error)
        return name


class EntityRef(BaseModel):
    """
    Reference to a queue, topic or topic subscription.

    Subscriptions are keyed by ``(topic_name, name)``.
    """
    model_config = ConfigDict(extra='forbid', frozen=True)

    kind: EntityKind
    name: str
    topic_name: Optional[str] = None

    @classmethod
    def queue(cls, queue_name: str) -> "EntityRef":
        EntityNameValidator.require_valid(queue_name, EntityKind.QUEUE)
        return cls(kind=EntityKind.QUEUE, name=queue_name)

    @classmethod
    def topic(cls, topic_name: str) -> "EntityRef":
        EntityNameValidator.require_valid(topic_name, EntityKind.TOPIC)
        return cls(kind=EntityKind.TOPIC, name=topic_name)

    @classmethod
    def subscription(cls, topic_name: str, subscription_name: str) -> "EntityRef":
        EntityNameValidator.require_valid(topic_name, EntityKind.TOPIC)
        EntityNameValidator.require_valid(subscription_name, EntityKind.SUBSCRIPTION)
        return cls(kind=EntityKind.SUBSCRIPTION, name=subscription_name, topic_name=topic_name)

    @classmethod
    def parse(cls, reference: str) -> "EntityRef":
        """
        Parse ``queue``, ``topic/subscription`` or ``topic/Subscriptions/subscription``.

        Queue names may not contain a slash in this notation.
        """
        parts = [p for p in reference.strip().split("/") if p]
        if len(parts) == 3 and parts[1].lower() == "subscriptions":
            parts = [parts[0], parts[2]]
        if len(parts) == 1:
            return cls.queue(parts[0])
        if len(parts) == 2:
            return cls.subscription(parts[0], parts[1])
        raise InvalidEntityNameError("entity", reference, "expected 'queue' or 'topic/subscription'")

    @property
    def path(self) -> str:
        """Broker entity path."""
        if self.kind == EntityKind.SUBSCRIPTION:
            return f"{self.topic_name}/Subscriptions/{self.name}"
        return self.name

    @property
    def is_receivable(self) -> bool:
        """Topics hold no messages of their own."""
        return self.kind != EntityKind.TOPIC

    def send_target(self) -> "EntityRef":
        """
        Entity a resubmitted message is sent to.

        Subscriptions cannot be sent to directly; their parent topic is used.
        """
        if self.kind == EntityKind.SUBSCRIPTION:
            return EntityRef(kind=EntityKind.TOPIC, name=self.topic_name)
        return self

    def __str__(self) -> str:
        return self.path


class RuntimeCounters(BaseModel):
    """Live message counters of one entity."""
    model_config = ConfigDict(extra='forbid')

    total_message_count: int = 0
    dead_letter_count: int = 0

    @property
    def active_message_count(self) -> int:
        # Broker snapshots can be momentarily inconsistent
        return max(0, self.total_message_count - self.dead_letter_count)

    def count_for(self, sub_queue: SubQueue) -> int:
        """Message count of one sub-queue."""
        if sub_queue == SubQueue.DEAD_LETTER:
            return max(0, self.dead_letter_count)
        return self.active_message_count

    def __add__(self, other: "RuntimeCounters") -> "RuntimeCounters":
        return RuntimeCounters(
            total_message_count=self.total_message_count + other.total_message_count,
            dead_letter_count=self.dead_letter_count + other.dead_letter_count,
        )

    def to_dict(self) -> Dict[str, int]:
        """Convert counters to the console detail format."""
        return {
            "totalMessageCount": self.total_message_count,
            "activeMessageCount": self.active_message_count,
            "deadLetterCount": self.dead_letter_count,
        }


class EntitySnapshot(BaseModel):
    """
    Read-only snapshot of an entity with its counters.

    ``counters_available`` is False when the counter fetch failed and the
    counters were zeroed.
    """
    model_config = ConfigDict(extra='forbid')

    name: str
    status: str
    created_at: Optional[datetime] = None
    counters: RuntimeCounters = Field(default_factory=RuntimeCounters)
    counters_available: bool = True

    @property
    def total_message_count(self) -> int:
        return self.counters.total_message_count

    @property
    def dead_letter_count(self) -> int:
        return self.counters.dead_letter_count

    @property
    def active_message_count(self) -> int:
        return self.counters.active_message_count

    def to_dict(self) -> Dict[str, Any]:
        """Convert snapshot to dictionary for JSON serialization."""
        return {
            "name": self.name,
            "status": self.status,
            "createdAt": self.created_at.isoformat() if self.created_at else None,
            **self.counters.to_dict(),
            "countersAvailable": self.counters_available,
        }


class QueueEntity(EntitySnapshot):
    """Queue snapshot."""


class SubscriptionEntity(EntitySnapshot):
    """Subscription snapshot, owned by exactly one topic."""

    topic_name: str

    def to_dict(self) -> Dict[str, Any]:
        data = super().to_dict()
        data["topicName"] = self.topic_name
        data["subscriptionName"] = self.name
        return data


class TopicEntity(EntitySnapshot):
    """Topic snapshot; counters are the sum over its subscriptions."""

    subscriptions: List[SubscriptionEntity] = Field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        data = super().to_dict()
        data["subscriptions"] = [s.to_dict() for s in self.subscriptions]
        return data


class EntityInventory(BaseModel):
    """Queues and topics (with subscriptions) of one namespace."""
    model_config = ConfigDict(extra='forbid')

    queues: List[QueueEntity] = Field(default_factory=list)
    topics: List[TopicEntity] = Field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "queues": [q.to_dict() for q in self.queues],
            "topics": [t.to_dict() for t in self.topics],
        }


def _render_body(body: Any) -> tuple[Any, str]:
    """Render an opaque body for JSON display, returning (value, encoding)."""
    if isinstance(body, (bytes, bytearray)):
        try:
            return bytes(body).decode("utf-8"), "utf-8"
        except UnicodeDecodeError:
            return base64.b64encode(bytes(body)).decode("ascii"), "base64"
    if isinstance(body, str):
        return body, "utf-8"
    return body, "value"


def _render_property(value: Any) -> Any:
    if isinstance(value, (bytes, bytearray)):
        return bytes(value).decode("utf-8", errors="replace")
    if isinstance(value, datetime):
        return value.isoformat()
    return value


class MessageRecord(BaseModel):
    """
    Message metadata and payload as read from the broker.

    ``sequence_number`` is the selection key; ``message_id`` is caller supplied,
    not unique and used for display only. The body is kept opaque.
    """
    model_config = ConfigDict(extra='forbid')

    sequence_number: int
    message_id: Optional[str] = None
    body: Any = None
    properties: Dict[str, Any] = Field(default_factory=dict)
    enqueued_time: Optional[datetime] = None
    correlation_id: Optional[str] = None
    content_type: Optional[str] = None
    subject: Optional[str] = None
    delivery_count: Optional[int] = None
    dead_letter_reason: Optional[str] = None
    dead_letter_error_description: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        """Convert record to dictionary for JSON serialization."""
        body, encoding = _render_body(self.body)
        return {
            "sequenceNumber": self.sequence_number,
            "messageId": self.message_id,
            "body": body,
            "bodyEncoding": encoding,
            "properties": {str(k): _render_property(v) for k, v in self.properties.items()},
            "enqueuedTime": self.enqueued_time.isoformat() if self.enqueued_time else None,
            "correlationId": self.correlation_id,
            "contentType": self.content_type,
            "subject": self.subject,
            "deliveryCount": self.delivery_count,
            "deadLetterReason": self.dead_letter_reason,
            "deadLetterErrorDescription": self.dead_letter_error_description,
        }


class OutgoingMessage(BaseModel):
    """Message to be sent to an entity."""
    model_config = ConfigDict(extra='forbid')

    body: Any = None
    message_id: Optional[str] = None
    correlation_id: Optional[str] = None
    subject: Optional[str] = None
    content_type: Optional[str] = None
    application_properties: Dict[str, Any] = Field(default_factory=dict)

    @classmethod
    def resubmission_of(cls, record: MessageRecord) -> "OutgoingMessage":
        """
        Copy of a dead-lettered message for resubmission.

        The message id is derived from the original so the copy is traceable.
        """
        origin = record.message_id or str(record.sequence_number)
        return cls(
            body=record.body,
            message_id=f"{RESUBMIT_MESSAGE_ID_PREFIX}{origin}",
            correlation_id=record.correlation_id,
            subject=record.subject,
            content_type=record.content_type,
            application_properties=dict(record.properties),
        )


class PageCursor(BaseModel):
    """Position of a peek page within a sub-queue."""
    model_config = ConfigDict(extra='forbid', frozen=True)

    page_index: int = Field(default=0, ge=0)
    page_size: int = Field(default=DEFAULT_PAGE_SIZE, ge=1)
    sub_queue: SubQueue = SubQueue.ACTIVE

    @property
    def skip(self) -> int:
        return self.page_index * self.page_size

    def total_pages(self, total_messages: int) -> int:
        return max(1, math.ceil(max(0, total_messages) / self.page_size))


class MessagePage(BaseModel):
    """One page of peeked records."""
    model_config = ConfigDict(extra='forbid')

    records: List[MessageRecord] = Field(default_factory=list)
    total_messages: int = 0
    current_page: int = 0
    total_pages: int = 1
    has_more: bool = False
    sub_queue: SubQueue = SubQueue.ACTIVE

    def to_dict(self) -> Dict[str, Any]:
        return {
            "records": [r.to_dict() for r in self.records],
            "totalMessages": self.total_messages,
            "currentPage": self.current_page,
            "totalPages": self.total_pages,
            "hasMore": self.has_more,
            "subQueue": self.sub_queue.value,
        }


class BatchOperationResult(BaseModel):
    """
    Aggregated outcome of a delete or resubmit operation.

    Identifiers are sequence numbers. ``succeeded_ids`` and ``failed_ids`` never
    overlap; ``not_found_ids`` holds targets that were never received within
    the attempt bound.
    """
    model_config = ConfigDict(extra='forbid')

    operation: str
    entity: str
    sub_queue: SubQueue = SubQueue.ACTIVE
    requested_count: int = 0
    succeeded_ids: Set[int] = Field(default_factory=set)
    failed_ids: Dict[int, str] = Field(default_factory=dict)
    not_found_ids: Set[int] = Field(default_factory=set)
    interrupted_reason: Optional[str] = None

    def record_success(self, sequence_number: int) -> None:
        self.failed_ids.pop(sequence_number, None)
        self.succeeded_ids.add(sequence_number)

    def record_failure(self, sequence_number: int, reason: str) -> None:
        if sequence_number not in self.succeeded_ids:
            self.failed_ids[sequence_number] = reason

    def resolve_not_found(self, targets: Set[int]) -> None:
        """Mark targets that neither succeeded nor failed as not found."""
        self.not_found_ids = set(targets) - self.succeeded_ids - set(self.failed_ids)

    @property
    def succeeded_count(self) -> int:
        return len(self.succeeded_ids)

    @property
    def failed_count(self) -> int:
        return len(self.failed_ids)

    @property
    def outcome(self) -> OperationOutcome:
        incomplete = bool(self.failed_ids or self.not_found_ids or self.interrupted_reason)
        if not incomplete:
            return OperationOutcome.SUCCEEDED
        if not self.succeeded_ids:
            return OperationOutcome.FAILED
        return OperationOutcome.PARTIAL

    def to_dict(self) -> Dict[str, Any]:
        """Convert result to dictionary for JSON serialization."""
        return {
            "operation": self.operation,
            "entity": self.entity,
            "subQueue": self.sub_queue.value,
            "outcome": self.outcome.value,
            "requestedCount": self.requested_count,
            "succeeded": sorted(self.succeeded_ids),
            "failed": [
                {"id": seq, "reason": reason}
                for seq, reason in sorted(self.failed_ids.items())
            ],
            "notFound": sorted(self.not_found_ids),
            "interruptedReason": self.interrupted_reason,
        }


class BrokerCredential(BaseModel):
    """Broker credential; passed explicitly into every engine call."""
    model_config = ConfigDict(extra='forbid', frozen=True)

    connection_string: SecretStr

    @classmethod
    def from_connection_string(cls, connection_string: str) -> "BrokerCredential":
        return cls(connection_string=SecretStr(connection_string))

    def reveal(self) -> str:
        return self.connection_string.get_secret_value()


# ========== API Request Models ==========

class ConnectRequest(BaseModel):
    """Request model for establishing a console session."""
    model_config = ConfigDict(extra='forbid', populate_by_name=True)

    connection_string: str = Field(alias="connectionString", min_length=1)


class DeleteMessagesRequest(BaseModel):
    """Request model for deleting messages from an entity."""
    model_config = ConfigDict(extra='forbid', populate_by_name=True)

    sequence_numbers: Optional[List[int]] = Field(default=None, alias="sequenceNumbers")
    all: bool = False
    is_dlq: bool = Field(default=False, alias="isDlq")


class ResubmitMessagesRequest(BaseModel):
    """Request model for resubmitting dead-lettered messages."""
    model_config = ConfigDict(extra='forbid', populate_by_name=True)

    sequence_numbers: Optional[List[int]] = Field(default=None, alias="sequenceNumbers")
    all: bool = False
