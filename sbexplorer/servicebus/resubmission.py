"""
Resubmission Engine

Sends copies of dead-lettered messages back to their entity and removes the
originals from the dead-letter sub-queue.

Per message the order is always send, then complete. If either step fails
the original is abandoned and stays in the dead-letter sub-queue. A send that
succeeded followed by a failed complete therefore leaves a duplicate
downstream; a message is never completed without a successful send.

Queues resubmit to themselves. Subscriptions resubmit to their parent topic,
so every subscription of that topic receives the copy.

Author: Ayodele Oladeji
Date: 2026-10-14
"""

import time
from typing import Iterable, Optional

from .broker import BrokerAdapter, BrokerReceiver, BrokerSender, ReceivedMessage
from .config import EngineSettings
from .exceptions import InvalidRequestError
from .lifecycle import LockedBatchProcessor, MessageAction, note_remaining
from .logging_utils import StructuredLogger
from .metrics import ExplorerMetrics, get_metrics
from .models import BatchOperationResult, EntityRef, OutgoingMessage, SubQueue


logger = StructuredLogger('sbexplorer.servicebus.resubmission')

OPERATION = "resubmit"


class ResubmissionEngine:
    """Resubmit-selected and resubmit-all for dead-lettered messages."""

    def __init__(self, settings: Optional[EngineSettings] = None, metrics: Optional[ExplorerMetrics] = None):
        self.settings = settings or EngineSettings()
        self.metrics = metrics or get_metrics()

    async def resubmit_selected(
        self,
        broker: BrokerAdapter,
        entity: EntityRef,
        sequence_numbers: Iterable[int]
    ) -> BatchOperationResult:
        """
        Resubmit specific dead-lettered messages.

        A failed target is not retried within the same call, so a failing
        complete does not multiply duplicates.

        Args:
            broker: Open broker adapter
            entity: Queue or subscription whose dead-letter sub-queue is read
            sequence_numbers: Sequence numbers of dead-lettered messages

        Returns:
            BatchOperationResult
        """
        targets = set(sequence_numbers)
        if not targets:
            raise InvalidRequestError("no sequence numbers given", operation=OPERATION)
        self._check_entity(entity)

        start = time.time()
        result = BatchOperationResult(operation=OPERATION, entity=entity.path, sub_queue=SubQueue.DEAD_LETTER)
        processor = LockedBatchProcessor(OPERATION, entity, SubQueue.DEAD_LETTER, self.settings, self.metrics)

        async with broker.open_receiver(entity, SubQueue.DEAD_LETTER) as receiver:
            async with broker.open_sender(entity.send_target()) as sender:
                action = self._resubmit_action(entity, receiver, sender)
                await processor.process_targets(receiver, targets, action, result, retry_failed=False)

        self._finish(entity, result, start, mode="selected")
        return result

    async def resubmit_all(self, broker: BrokerAdapter, entity: EntityRef) -> BatchOperationResult:
        """Resubmit every dead-lettered message of the entity."""
        self._check_entity(entity)

        start = time.time()
        result = BatchOperationResult(operation=OPERATION, entity=entity.path, sub_queue=SubQueue.DEAD_LETTER)
        processor = LockedBatchProcessor(OPERATION, entity, SubQueue.DEAD_LETTER, self.settings, self.metrics)

        async with broker.open_receiver(entity, SubQueue.DEAD_LETTER) as receiver:
            async with broker.open_sender(entity.send_target()) as sender:
                action = self._resubmit_action(entity, receiver, sender)
                await processor.process_drain(receiver, action, result)
        await note_remaining(broker, result, entity)

        self._finish(entity, result, start, mode="all")
        return result

    def _resubmit_action(
        self,
        entity: EntityRef,
        receiver: BrokerReceiver,
        sender: BrokerSender
    ) -> MessageAction:
        async def resubmit(message: ReceivedMessage) -> None:
            copy = OutgoingMessage.resubmission_of(message.record)
            await sender.send(copy)
            self.metrics.track_message_resubmitted(entity.path)
            logger.log_message_operation(
                "send",
                entity.send_target().path,
                message.sequence_number,
                resubmitted_message_id=copy.message_id,
            )
            await receiver.complete(message)

        return resubmit

    @staticmethod
    def _check_entity(entity: EntityRef) -> None:
        if not entity.is_receivable:
            raise InvalidRequestError(
                "topics have no dead-letter sub-queue; resubmit from one of their subscriptions",
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
            target=entity.send_target().path,
            outcome=result.outcome.value,
            requested=result.requested_count,
            succeeded=result.succeeded_count,
            failed=result.failed_count,
            not_found=len(result.not_found_ids),
            duration_ms=round(duration * 1000, 2),
        )
