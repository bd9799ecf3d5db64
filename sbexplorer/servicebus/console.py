"""
Explorer Console

Entry point for console operations. Resolves the session credential, opens a
broker adapter scoped to one operation and delegates to the lifecycle
engines.

The broker credential is never held process-wide: each console session owns
one, and every operation receives it explicitly.

Author: Ayodele Oladeji
Date: 2026-10-15
"""

import re
import uuid
from typing import Callable, Dict, Iterable, Optional

from .audit_logger import AuditLogger
from .broker import BrokerAdapter, BrokerType, InMemoryNamespace, create_broker
from .completion import SelectiveBatchCompletionEngine
from .config import ExplorerConfig
from .constants import ERROR_CONFLICTING_TARGETS, ERROR_EMPTY_TARGET_SET
from .exceptions import InvalidCredentialError, InvalidRequestError, NotConnectedError
from .inventory import EntityInventoryCollector
from .logging_utils import StructuredLogger
from .metrics import ExplorerMetrics, get_metrics
from .models import (
    BatchOperationResult,
    BrokerCredential,
    EntityInventory,
    EntityRef,
    MessagePage,
    RuntimeCounters,
    SubQueue,
)
from .peek import PaginatedPeekReader
from .resubmission import ResubmissionEngine


logger = StructuredLogger('sbexplorer.servicebus.console')

BrokerFactory = Callable[[BrokerCredential], BrokerAdapter]

_ENDPOINT_PATTERN = re.compile(r'Endpoint=sb://([^/;]+)', re.IGNORECASE)


def endpoint_host(connection_string: str) -> Optional[str]:
    """Namespace host of a connection string, if it names one."""
    match = _ENDPOINT_PATTERN.search(connection_string)
    return match.group(1) if match else None


class SessionRegistry:
    """Credentials of connected console sessions, keyed by session id."""

    def __init__(self):
        self._sessions: Dict[str, BrokerCredential] = {}

    def open(self, credential: BrokerCredential) -> str:
        session_id = str(uuid.uuid4())
        self._sessions[session_id] = credential
        return session_id

    def get(self, session_id: Optional[str]) -> BrokerCredential:
        """
        Credential of a session.

        Raises:
            NotConnectedError: If the session is unknown or missing
        """
        if not session_id or session_id not in self._sessions:
            raise NotConnectedError(session_id)
        return self._sessions[session_id]

    def close(self, session_id: str) -> bool:
        return self._sessions.pop(session_id, None) is not None

    def __len__(self) -> int:
        return len(self._sessions)


class ExplorerConsole:
    """
    Console operations: connect, list entities, peek, details, delete and
    resubmit.

    Example:
        ```python
        console = ExplorerConsole(load_explorer_config())
        credential = BrokerCredential.from_connection_string(conn_str)
        inventory = await console.list_entities(credential)
        ```
    """

    def __init__(
        self,
        config: Optional[ExplorerConfig] = None,
        namespace: Optional[InMemoryNamespace] = None,
        broker_factory: Optional[BrokerFactory] = None,
        metrics: Optional[ExplorerMetrics] = None
    ):
        """
        Initialize the console.

        Args:
            config: Explorer configuration (defaults if None)
            namespace: Namespace shared by in-memory brokers (created if None)
            broker_factory: Overrides broker creation, mainly for tests
            metrics: Metrics collector (global instance if None)
        """
        self.config = config or ExplorerConfig()
        self.metrics = metrics or get_metrics()
        if namespace is None and self.config.broker.broker_type == BrokerType.IN_MEMORY:
            namespace = InMemoryNamespace(
                lock_duration=self.config.broker.lock_duration_seconds,
                max_delivery_count=self.config.broker.max_delivery_count,
            )
        self.namespace = namespace
        self._broker_factory = broker_factory

        self.sessions = SessionRegistry()
        self.audit = AuditLogger(self.config.audit_log_file)
        self.inventory = EntityInventoryCollector(self.metrics)
        self.peek_reader = PaginatedPeekReader(self.config.engine, self.inventory)
        self.completion = SelectiveBatchCompletionEngine(self.config.engine, self.metrics)
        self.resubmission = ResubmissionEngine(self.config.engine, self.metrics)

    def open_broker(self, credential: BrokerCredential) -> BrokerAdapter:
        """Broker adapter for one operation; use with ``async with``."""
        if credential is None:
            raise NotConnectedError()
        if self._broker_factory is not None:
            return self._broker_factory(credential)
        return create_broker(self.config.broker, credential, self.namespace)

    # ========== Session ==========

    async def connect(self, connection_string: str) -> str:
        """
        Validate a connection string with one inventory listing and open a
        session for it.

        Returns:
            Session id

        Raises:
            InvalidCredentialError: If the connection string is blank or unparsable
            BrokerConnectionError: If the broker cannot be reached or rejects it
        """
        if not connection_string or not connection_string.strip():
            raise InvalidCredentialError("connection string is empty")

        credential = BrokerCredential.from_connection_string(connection_string.strip())
        async with self.open_broker(credential) as broker:
            await broker.list_queues()

        session_id = self.sessions.open(credential)
        host = endpoint_host(connection_string)
        self.audit.log_session_connected(session_id, host)
        logger.info("Session connected", operation="connect", session_id=session_id, namespace=host)
        return session_id

    def disconnect(self, session_id: str) -> bool:
        closed = self.sessions.close(session_id)
        if closed:
            logger.info("Session closed", operation="disconnect", session_id=session_id)
        return closed

    # ========== Read operations ==========

    async def list_entities(self, credential: BrokerCredential) -> EntityInventory:
        async with self.open_broker(credential) as broker:
            return await self.inventory.collect(broker)

    async def peek_messages(
        self,
        credential: BrokerCredential,
        entity: EntityRef,
        sub_queue: SubQueue = SubQueue.ACTIVE,
        page_index: int = 0
    ) -> MessagePage:
        async with self.open_broker(credential) as broker:
            return await self.peek_reader.peek_page(broker, entity, sub_queue, page_index)

    async def get_entity_details(self, credential: BrokerCredential, entity: EntityRef) -> RuntimeCounters:
        """Live counters of one entity; failures propagate."""
        async with self.open_broker(credential) as broker:
            return await self.inventory.get_counters(broker, entity)

    # ========== Mutating operations ==========

    async def delete_messages(
        self,
        credential: BrokerCredential,
        entity: EntityRef,
        sub_queue: SubQueue = SubQueue.ACTIVE,
        sequence_numbers: Optional[Iterable[int]] = None,
        all_messages: bool = False,
        session_id: Optional[str] = None
    ) -> BatchOperationResult:
        """
        Delete the given messages, or every message with ``all_messages``.

        Raises:
            InvalidRequestError: If neither or both target forms are given
        """
        targets = self._validate_targets(sequence_numbers, all_messages, "delete")
        async with self.open_broker(credential) as broker:
            if all_messages:
                result = await self.completion.delete_all(broker, entity, sub_queue)
            else:
                result = await self.completion.delete_selected(broker, entity, targets, sub_queue)
        self.audit.log_batch_operation(entity, result, all_messages, session_id)
        return result

    async def resubmit_messages(
        self,
        credential: BrokerCredential,
        entity: EntityRef,
        sequence_numbers: Optional[Iterable[int]] = None,
        all_messages: bool = False,
        session_id: Optional[str] = None
    ) -> BatchOperationResult:
        """
        Resubmit dead-lettered messages, or all of them with ``all_messages``.

        Raises:
            InvalidRequestError: If neither or both target forms are given
        """
        targets = self._validate_targets(sequence_numbers, all_messages, "resubmit")
        async with self.open_broker(credential) as broker:
            if all_messages:
                result = await self.resubmission.resubmit_all(broker, entity)
            else:
                result = await self.resubmission.resubmit_selected(broker, entity, targets)
        self.audit.log_batch_operation(entity, result, all_messages, session_id)
        return result

    @staticmethod
    def _validate_targets(
        sequence_numbers: Optional[Iterable[int]],
        all_messages: bool,
        operation: str
    ) -> set:
        targets = set(sequence_numbers or [])
        if all_messages and targets:
            raise InvalidRequestError(ERROR_CONFLICTING_TARGETS, operation=operation)
        if not all_messages and not targets:
            raise InvalidRequestError(ERROR_EMPTY_TARGET_SET, operation=operation)
        return targets
