"""
Explorer API Endpoints.

FastAPI endpoints for the operator console: session connect, entity
inventory, message peek, entity details, delete and resubmit.

Every endpoint except connect needs the ``X-Explorer-Session`` header
returned by ``POST /api/connect``.

Author: Ayodele Oladeji
Date: 2026-10-15
"""

from typing import NamedTuple, Optional

from fastapi import APIRouter, Depends, Header, Query

from .console import ExplorerConsole
from .constants import SESSION_HEADER
from .logging_utils import LogContext
from .models import (
    BatchOperationResult,
    BrokerCredential,
    ConnectRequest,
    DeleteMessagesRequest,
    EntityRef,
    ResubmitMessagesRequest,
    SubQueue,
)


class SessionContext(NamedTuple):
    session_id: str
    credential: BrokerCredential


def _delete_response(result: BatchOperationResult) -> dict:
    response = result.to_dict()
    response["deletedCount"] = result.succeeded_count
    response["failedCount"] = result.failed_count
    return response


def _resubmit_response(result: BatchOperationResult) -> dict:
    response = result.to_dict()
    response["resubmittedCount"] = result.succeeded_count
    response["failedCount"] = result.failed_count
    return response


def create_router(console: ExplorerConsole) -> APIRouter:
    """
    Create the API router bound to a console.

    Exception handlers must be registered at the app level; call
    ``register_exception_handlers(app)`` when including this router.

    Args:
        console: Console that serves all requests

    Returns:
        APIRouter mounted under ``/api``
    """
    router = APIRouter(prefix="/api", tags=["explorer"])

    async def current_session(
        session_id: Optional[str] = Header(default=None, alias=SESSION_HEADER)
    ) -> SessionContext:
        credential = console.sessions.get(session_id)
        LogContext.bind_session(session_id)
        return SessionContext(session_id, credential)

    # ========== Session ==========

    @router.post("/connect")
    async def connect(request: ConnectRequest) -> dict:
        """
        Validate a connection string and open a session.

        Returns:
            ``{"success": true, "sessionId": ...}``

        Raises:
            400 Bad Request: Connection string cannot be parsed
            401 Unauthorized: Broker rejected the credential
            503 Service Unavailable: Broker unreachable
        """
        session_id = await console.connect(request.connection_string)
        return {"success": True, "sessionId": session_id}

    @router.delete("/connect")
    async def disconnect(session: SessionContext = Depends(current_session)) -> dict:
        return {"success": console.disconnect(session.session_id)}

    # ========== Inventory ==========

    @router.get("/entities")
    async def list_entities(session: SessionContext = Depends(current_session)) -> dict:
        inventory = await console.list_entities(session.credential)
        return inventory.to_dict()

    @router.get("/topics/{topic_name}/details")
    async def get_topic_details(topic_name: str, session: SessionContext = Depends(current_session)) -> dict:
        """Counters of a topic, summed over its subscriptions."""
        entity = EntityRef.topic(topic_name)
        counters = await console.get_entity_details(session.credential, entity)
        return {"entity": entity.path, **counters.to_dict()}

    # ========== Queues ==========

    @router.get("/queues/{queue_name}/messages")
    async def peek_queue_messages(
        queue_name: str,
        page: int = Query(default=0, ge=0, description="Zero-based page index"),
        is_dlq: bool = Query(default=False, alias="isDlq", description="Peek the dead-letter sub-queue"),
        session: SessionContext = Depends(current_session),
    ) -> dict:
        """
        Peek one page of a queue without locking or removing messages.

        Raises:
            404 Not Found: Queue not found
        """
        page_data = await console.peek_messages(
            session.credential, EntityRef.queue(queue_name), SubQueue.from_flag(is_dlq), page
        )
        return page_data.to_dict()

    @router.get("/queues/{queue_name}/details")
    async def get_queue_details(queue_name: str, session: SessionContext = Depends(current_session)) -> dict:
        entity = EntityRef.queue(queue_name)
        counters = await console.get_entity_details(session.credential, entity)
        return {"entity": entity.path, **counters.to_dict()}

    @router.delete("/queues/{queue_name}/messages")
    async def delete_queue_messages(
        queue_name: str,
        request: DeleteMessagesRequest,
        session: SessionContext = Depends(current_session),
    ) -> dict:
        """
        Delete selected messages, or all with ``all: true``.

        Per-message failures are reported in the body, not as an error status.
        """
        result = await console.delete_messages(
            session.credential,
            EntityRef.queue(queue_name),
            SubQueue.from_flag(request.is_dlq),
            request.sequence_numbers,
            request.all,
            session.session_id,
        )
        return _delete_response(result)

    @router.post("/queues/{queue_name}/resubmit")
    async def resubmit_queue_messages(
        queue_name: str,
        request: ResubmitMessagesRequest,
        session: SessionContext = Depends(current_session),
    ) -> dict:
        """Resubmit dead-lettered messages of a queue back to the queue."""
        result = await console.resubmit_messages(
            session.credential,
            EntityRef.queue(queue_name),
            request.sequence_numbers,
            request.all,
            session.session_id,
        )
        return _resubmit_response(result)

    # ========== Subscriptions ==========

    @router.get("/topics/{topic_name}/subscriptions/{subscription_name}/messages")
    async def peek_subscription_messages(
        topic_name: str,
        subscription_name: str,
        page: int = Query(default=0, ge=0, description="Zero-based page index"),
        is_dlq: bool = Query(default=False, alias="isDlq", description="Peek the dead-letter sub-queue"),
        session: SessionContext = Depends(current_session),
    ) -> dict:
        page_data = await console.peek_messages(
            session.credential,
            EntityRef.subscription(topic_name, subscription_name),
            SubQueue.from_flag(is_dlq),
            page,
        )
        return page_data.to_dict()

    @router.get("/topics/{topic_name}/subscriptions/{subscription_name}/details")
    async def get_subscription_details(
        topic_name: str,
        subscription_name: str,
        session: SessionContext = Depends(current_session),
    ) -> dict:
        entity = EntityRef.subscription(topic_name, subscription_name)
        counters = await console.get_entity_details(session.credential, entity)
        return {"entity": entity.path, **counters.to_dict()}

    @router.delete("/topics/{topic_name}/subscriptions/{subscription_name}/messages")
    async def delete_subscription_messages(
        topic_name: str,
        subscription_name: str,
        request: DeleteMessagesRequest,
        session: SessionContext = Depends(current_session),
    ) -> dict:
        result = await console.delete_messages(
            session.credential,
            EntityRef.subscription(topic_name, subscription_name),
            SubQueue.from_flag(request.is_dlq),
            request.sequence_numbers,
            request.all,
            session.session_id,
        )
        return _delete_response(result)

    @router.post("/topics/{topic_name}/subscriptions/{subscription_name}/resubmit")
    async def resubmit_subscription_messages(
        topic_name: str,
        subscription_name: str,
        request: ResubmitMessagesRequest,
        session: SessionContext = Depends(current_session),
    ) -> dict:
        """
        Resubmit dead-lettered messages of a subscription.

        Copies are sent to the parent topic, so every subscription of the
        topic receives them.
        """
        result = await console.resubmit_messages(
            session.credential,
            EntityRef.subscription(topic_name, subscription_name),
            request.sequence_numbers,
            request.all,
            session.session_id,
        )
        return _resubmit_response(result)

    return router
