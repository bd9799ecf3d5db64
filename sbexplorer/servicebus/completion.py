"""
Selective Batch Completion Engine

Deletes a set of messages (or every message) from the active or dead-letter
sub-queue of a queue or subscription by receiving under lock and completing
matches.

Author: Ayodele Oladeji
Date: 2026-10-14
"""

import time
from typing import Iterable, Optional

from .broker import BrokerAdapter, ReceivedMessage
from .config import EngineSettings
from .exceptions import InvalidRequestError
from .lifecycle import LockedBatchProcessor, note_remaining
from .logging_utils import StructuredLogger
from .metrics import ExplorerMetrics, get_metrics
from .models import BatchOperationResult, EntityRef, SubQueue


logger = StructuredLogger('sbexplorer.servicebus.completion')

OPERATION = "delete"


class SelectiveBatchCompletionEngine:
    """Delete-selected and delete-all over the lock-then-match protocol."""

    def __init__(self, settings: Optional[EngineSettings] = None, metrics: Optional[ExplorerMetrics] = None):
        self.settings = settings or EngineSettings()
        self.metrics = metrics or get_metrics()

    async def delete_selected(
        self,
        broker: BrokerAdapter,
        entity: EntityRef,
        sequence_numbers: Iterable[int],
        sub_queue: SubQueue = SubQueue.ACTIVE
    ) -> BatchOperationResult:
        """
        Delete specific messages.

        Targets not received within ``selective_max_attempts`` receive passes
        are reported in ``not_found_ids``, separate from failures.

        Args:
            broker: Open broker adapter
            entity: Queue or subscription
            sequence_numbers: Sequence numbers to delete
            sub_queue: Sub-queue holding the targets

        Returns:
            BatchOperationResult
        """
        targets = set(sequence_numbers)
        if not targets:
            raise InvalidRequestError("no sequence numbers given", operation=OPERATION)
        self._check_entity(entity)

        start = time.time()
        result = BatchOperationResult(operation=OPERATION, entity=entity.path, sub_queue=sub_queue)
        processor = LockedBatchProcessor(OPERATION, entity, sub_queue, self.settings, self.metrics)

        async with broker.open_receiver(entity, sub_queue) as receiver:
            async def complete(message: ReceivedMessage) -> None:
                await receiver.complete(message)

            await processor.process_targets(receiver, targets, complete, result)

        self._finish(entity, result, start, mode="selected")
        return result

    async def delete_all(
        self,
        broker: BrokerAdapter,
        entity: EntityRef,
        sub_queue: SubQueue = SubQueue.ACTIVE
    ) -> BatchOperationResult:
        """
        Drain a sub-queue, completing every received message until an empty
        batch comes back.
        """
        self._check_entity(entity)

        start = time.time()
        result = BatchOperationResult(operation=OPERATION, entity=entity.path, sub_queue=sub_queue)
        processor = LockedBatchProcessor(OPERATION, entity, sub_queue, self.settings, self.metrics)

        async with broker.open_receiver(entity, sub_queue) as receiver:
            async def complete(message: ReceivedMessage) -> None:
                await receiver.complete(message)

            await processor.process_drain(receiver, complete, result)
        await note_remaining(broker, result, entity)

        self._finish(entity, result, start, mode="all")
        return result

    @staticmethod
    def _check_entity(entity: EntityRef) -> None:
        if not entity.is_receivable:
            raise InvalidRequestError(
                "topics hold no messages; delete from one of their subscriptions",
                operation=OPERATION,
            )

    def _finish(self, entity: EntityRef, result: BatchOperationResult, start: float, mode: str) -> None:
        duration = time.time() - start
        self.metrics.track_batch_operation(OPERATION, result.outcome.value, duration)
        logger.log_operation(
            OPERATION,
            entity.kind.value,
            entity.path,
            mode=mode,
            sub_queue=result.sub_queue.value,
            outcome=result.outcome.value,
            requested=result.requested_count,
            succeeded=result.succeeded_count,
            failed=result.failed_count,
            not_found=len(result.not_found_ids),
            duration_ms=round(duration * 1000, 2),
        )
