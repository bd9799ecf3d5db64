"""
Azure Service Bus Broker

Broker adapter backed by the azure-servicebus async SDK. SDK exceptions are
translated into the explorer exception hierarchy at this boundary.

Author: Ayodele Oladeji
Date: 2026-10-13
"""

from contextlib import asynccontextmanager, contextmanager
from typing import Any, AsyncIterator, Iterator, List, Optional

from azure.core.exceptions import (
    AzureError,
    ClientAuthenticationError,
    ResourceNotFoundError,
    ServiceRequestError,
)
from azure.servicebus import ServiceBusMessage, ServiceBusReceiveMode, ServiceBusSubQueue
from azure.servicebus.aio import ServiceBusClient
from azure.servicebus.aio.management import ServiceBusAdministrationClient
from azure.servicebus.amqp import AmqpAnnotatedMessage, AmqpMessageBodyType, AmqpMessageProperties
from azure.servicebus.exceptions import (
    MessageLockLostError as SdkMessageLockLostError,
    MessagingEntityNotFoundError,
    ServiceBusAuthenticationError,
    ServiceBusAuthorizationError,
    ServiceBusConnectionError,
)

from ..constants import ENTITY_STATUS_ACTIVE
from ..exceptions import (
    BrokerAuthenticationError,
    BrokerConnectionError,
    BrokerOperationError,
    EntityNotFoundError,
    ExplorerError,
    InvalidCredentialError,
    InvalidRequestError,
    MessageLockLostError,
    MessageOperationError,
)
from ..logging_utils import StructuredLogger
from ..models import (
    BrokerCredential,
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


logger = StructuredLogger('sbexplorer.servicebus.broker.azure')


@contextmanager
def _translate_errors(
    operation: str,
    entity: Optional[EntityRef] = None,
    sequence_number: Optional[int] = None
) -> Iterator[None]:
    """Map azure-servicebus / azure-core exceptions to explorer exceptions."""
    try:
        yield
    except ExplorerError:
        raise
    except (ClientAuthenticationError, ServiceBusAuthenticationError, ServiceBusAuthorizationError) as e:
        raise BrokerAuthenticationError(
            f"Broker rejected the credential during {operation}", reason=str(e)
        ) from e
    except (ResourceNotFoundError, MessagingEntityNotFoundError) as e:
        if entity is None:
            raise BrokerOperationError(f"{operation} failed: {e}") from e
        kind = entity.kind.value
        raise EntityNotFoundError(kind, entity.path) from e
    except SdkMessageLockLostError as e:
        raise MessageLockLostError(operation, sequence_number) from e
    except (ServiceBusConnectionError, ServiceRequestError) as e:
        raise BrokerConnectionError(
            f"Broker unreachable during {operation}", reason=str(e)
        ) from e
    except AzureError as e:
        if sequence_number is not None:
            raise MessageOperationError(operation, sequence_number, str(e)) from e
        raise BrokerOperationError(f"{operation} failed: {e}") from e


def _status(value: Any) -> str:
    if value is None:
        return ENTITY_STATUS_ACTIVE
    return str(getattr(value, "value", value))


def _decode(value: Any) -> Any:
    if isinstance(value, bytes):
        return value.decode("utf-8", errors="replace")
    return value


def _extract_body(message: Any) -> Any:
    """Raw payload: bytes for data bodies, the AMQP value otherwise."""
    body_type = getattr(message, "body_type", AmqpMessageBodyType.DATA)
    if body_type == AmqpMessageBodyType.DATA:
        return b"".join(message.body)
    if body_type == AmqpMessageBodyType.SEQUENCE:
        return [list(section) for section in message.body]
    return message.body


def to_record(message: Any) -> MessageRecord:
    """Build a MessageRecord from a ServiceBusReceivedMessage."""
    properties = {
        _decode(key): _decode(value)
        for key, value in (message.application_properties or {}).items()
    }
    message_id = message.message_id
    return MessageRecord(
        sequence_number=message.sequence_number,
        message_id=str(message_id) if message_id is not None else None,
        body=_extract_body(message),
        properties=properties,
        enqueued_time=message.enqueued_time_utc,
        correlation_id=message.correlation_id,
        content_type=message.content_type,
        subject=message.subject,
        delivery_count=message.delivery_count,
        dead_letter_reason=message.dead_letter_reason,
        dead_letter_error_description=message.dead_letter_error_description,
    )


def to_sdk_message(message: OutgoingMessage) -> Any:
    """Build the SDK message for an OutgoingMessage, keeping non-data bodies intact."""
    if message.body is None or isinstance(message.body, (bytes, bytearray, str)):
        return ServiceBusMessage(
            body=message.body,
            application_properties=message.application_properties or None,
            message_id=message.message_id,
            correlation_id=message.correlation_id,
            subject=message.subject,
            content_type=message.content_type,
        )
    return AmqpAnnotatedMessage(
        value_body=message.body,
        properties=AmqpMessageProperties(
            message_id=message.message_id,
            correlation_id=message.correlation_id,
            subject=message.subject,
            content_type=message.content_type,
        ),
        application_properties=message.application_properties or None,
    )


class _AzureReceiver(BrokerReceiver):
    def __init__(self, receiver: Any, entity: EntityRef):
        self._receiver = receiver
        self._entity = entity

    async def peek(self, max_count: int, from_sequence_number: Optional[int] = None) -> List[MessageRecord]:
        with _translate_errors("peek", self._entity):
            messages = await self._receiver.peek_messages(
                max_message_count=max_count,
                sequence_number=from_sequence_number or 0,
            )
        return [to_record(m) for m in messages]

    async def receive(self, max_count: int, max_wait_time: float) -> List[ReceivedMessage]:
        with _translate_errors("receive", self._entity):
            messages = await self._receiver.receive_messages(
                max_message_count=max_count,
                max_wait_time=max_wait_time,
            )
        return [
            ReceivedMessage(record=to_record(m), lock_token=str(m.lock_token), handle=m)
            for m in messages
        ]

    async def complete(self, message: ReceivedMessage) -> None:
        with _translate_errors("complete", self._entity, message.sequence_number):
            await self._receiver.complete_message(message.handle)

    async def abandon(self, message: ReceivedMessage) -> None:
        with _translate_errors("abandon", self._entity, message.sequence_number):
            await self._receiver.abandon_message(message.handle)


class _AzureSender(BrokerSender):
    def __init__(self, sender: Any, entity: EntityRef):
        self._sender = sender
        self._entity = entity

    async def send(self, message: OutgoingMessage) -> None:
        with _translate_errors("send", self._entity):
            await self._sender.send_messages(to_sdk_message(message))


class AzureServiceBusBroker(BrokerAdapter):
    """
    Broker adapter for Azure Service Bus.

    Clients are created per adapter and closed by ``close()``; no AMQP link is
    opened until the first operation.
    """

    def __init__(self, config: BrokerConfig, credential: BrokerCredential):
        super().__init__(config)
        connection_string = credential.reveal()
        try:
            self._client = ServiceBusClient.from_connection_string(connection_string)
            self._admin = ServiceBusAdministrationClient.from_connection_string(connection_string)
        except ValueError as e:
            raise InvalidCredentialError(str(e)) from e

    async def close(self) -> None:
        try:
            await self._client.close()
        finally:
            await self._admin.close()

    async def list_queues(self) -> List[EntityProperties]:
        with _translate_errors("list_queues"):
            return [
                EntityProperties(name=q.name, status=_status(q.status), created_at=q.created_at_utc)
                async for q in self._admin.list_queues()
            ]

    async def list_topics(self) -> List[EntityProperties]:
        with _translate_errors("list_topics"):
            return [
                EntityProperties(name=t.name, status=_status(t.status), created_at=t.created_at_utc)
                async for t in self._admin.list_topics()
            ]

    async def list_subscriptions(self, topic_name: str) -> List[EntityProperties]:
        with _translate_errors("list_subscriptions", EntityRef(kind=EntityKind.TOPIC, name=topic_name)):
            return [
                EntityProperties(name=s.name, status=_status(s.status), created_at=s.created_at_utc)
                async for s in self._admin.list_subscriptions(topic_name)
            ]

    async def get_runtime_counters(self, entity: EntityRef) -> RuntimeCounters:
        with _translate_errors("get_runtime_counters", entity):
            if entity.kind == EntityKind.QUEUE:
                props = await self._admin.get_queue_runtime_properties(entity.name)
            elif entity.kind == EntityKind.SUBSCRIPTION:
                props = await self._admin.get_subscription_runtime_properties(
                    entity.topic_name, entity.name
                )
            else:
                raise InvalidRequestError("topic counters are aggregated from subscriptions")
        return RuntimeCounters(
            total_message_count=props.total_message_count or 0,
            dead_letter_count=props.dead_letter_message_count or 0,
        )

    @asynccontextmanager
    async def open_receiver(
        self,
        entity: EntityRef,
        sub_queue: SubQueue = SubQueue.ACTIVE
    ) -> AsyncIterator[BrokerReceiver]:
        options = {
            "receive_mode": ServiceBusReceiveMode.PEEK_LOCK,
            "prefetch_count": self.config.prefetch_count,
        }
        if sub_queue == SubQueue.DEAD_LETTER:
            options["sub_queue"] = ServiceBusSubQueue.DEAD_LETTER

        if entity.kind == EntityKind.QUEUE:
            receiver = self._client.get_queue_receiver(queue_name=entity.name, **options)
        elif entity.kind == EntityKind.SUBSCRIPTION:
            receiver = self._client.get_subscription_receiver(
                topic_name=entity.topic_name,
                subscription_name=entity.name,
                **options,
            )
        else:
            raise InvalidRequestError("topics hold no messages; use one of their subscriptions")

        logger.debug("Receiver opened", operation="receiver_opened", entity_name=entity.path, sub_queue=sub_queue.value)
        try:
            yield _AzureReceiver(receiver, entity)
        finally:
            await receiver.close()

    @asynccontextmanager
    async def open_sender(self, entity: EntityRef) -> AsyncIterator[BrokerSender]:
        if entity.kind == EntityKind.QUEUE:
            sender = self._client.get_queue_sender(queue_name=entity.name)
        elif entity.kind == EntityKind.TOPIC:
            sender = self._client.get_topic_sender(topic_name=entity.name)
        else:
            raise InvalidRequestError("messages cannot be sent to a subscription", operation="send")

        try:
            yield _AzureSender(sender, entity)
        finally:
            await sender.close()
