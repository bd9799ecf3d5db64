"""
Locked Batch Processor

Shared receive/match/settle loop behind the completion and resubmission
engines. The broker offers no delete-by-id: every message is received under
lock and then either settled by the operation's action or abandoned.

Per received message:

    RECEIVED -> MATCHED        action succeeded (the action completes the message)
    RECEIVED -> UNMATCHED      not a target, abandoned
    RECEIVED -> ACTION_FAILED  action raised, recorded as failed and abandoned

In selective mode every message of a batch is resolved before the next
receive. In drain mode failed messages stay locked until the drain ends.

Author: Ayodele Oladeji
Date: 2026-10-14
"""

import asyncio
import logging
from enum import Enum
from typing import Awaitable, Callable, Dict, Optional, Set

from .broker import BrokerAdapter, BrokerReceiver, ReceivedMessage
from .config import EngineSettings
from .exceptions import ExplorerError
from .logging_utils import StructuredLogger
from .metrics import ExplorerMetrics
from .models import BatchOperationResult, EntityRef, SubQueue


logger = StructuredLogger('sbexplorer.servicebus.lifecycle')

MessageAction = Callable[[ReceivedMessage], Awaitable[None]]


class MessageState(str, Enum):
    """Lifecycle state of one received message."""
    RECEIVED = "received"
    MATCHED = "matched"
    UNMATCHED = "unmatched"
    ACTION_FAILED = "action_failed"


class LockedBatchProcessor:
    """
    Runs an action over locked messages of one sub-queue.

    ``action`` must finish by completing the message; if it raises, the
    message is abandoned so it stays available.
    """

    def __init__(
        self,
        operation: str,
        entity: EntityRef,
        sub_queue: SubQueue,
        settings: EngineSettings,
        metrics: ExplorerMetrics
    ):
        self.operation = operation
        self.entity = entity
        self.sub_queue = sub_queue
        self.settings = settings
        self.metrics = metrics
        self.log = logger.bind(operation=operation, entity_name=entity.path)

    async def process_targets(
        self,
        receiver: BrokerReceiver,
        targets: Set[int],
        action: MessageAction,
        result: BatchOperationResult,
        retry_failed: bool = True
    ) -> BatchOperationResult:
        """
        Apply ``action`` to the target sequence numbers (selective mode).

        Receives up to ``selective_max_attempts`` batches. Targets never
        received are reported as not found.

        Args:
            receiver: Receiver on the target sub-queue
            targets: Sequence numbers to act on
            action: Settles one matched message
            result: Result to record outcomes in
            retry_failed: Whether a target that failed in one attempt is
                tried again when received in a later one
        """
        result.requested_count = len(targets)
        attempt = 0
        receive_error: Optional[str] = None

        while self._pending(targets, result, retry_failed) and attempt < self.settings.selective_max_attempts:
            attempt += 1
            try:
                batch = await receiver.receive(
                    self.settings.selective_batch_size,
                    self.settings.receive_wait_seconds,
                )
                receive_error = None
            except ExplorerError as e:
                self.log.warning(
                    f"Receive failed on attempt {attempt}",
                    attempt=attempt,
                    error_type=type(e).__name__,
                    error_message=str(e),
                )
                receive_error = e.message
                batch = []

            for message in batch:
                if message.sequence_number in self._pending(targets, result, retry_failed):
                    state = await self._apply(message, action, result)
                    if state == MessageState.ACTION_FAILED:
                        await self._release(receiver, message, state)
                else:
                    await self._release(receiver, message, MessageState.UNMATCHED)

            self.log.debug(
                f"Attempt {attempt} finished",
                attempt=attempt,
                received=len(batch),
                pending=len(self._pending(targets, result, retry_failed)),
            )

            if self._pending(targets, result, retry_failed) and attempt < self.settings.selective_max_attempts:
                await asyncio.sleep(self.settings.retry_backoff_seconds)

        result.resolve_not_found(targets)
        if receive_error and self._pending(targets, result, retry_failed):
            result.interrupted_reason = receive_error
        return result

    async def process_drain(
        self,
        receiver: BrokerReceiver,
        action: MessageAction,
        result: BatchOperationResult
    ) -> BatchOperationResult:
        """
        Apply ``action`` to every message until the sub-queue is drained.

        Stops on an empty batch. A message whose action failed keeps its lock
        until the drain ends, so the broker hands out the messages behind it
        and the failure is not retried. If such a message is delivered again
        (its lock expired) and nothing fresh comes with it, the drain stops
        with ``interrupted_reason`` set.
        """
        held: Dict[int, ReceivedMessage] = {}
        batches = 0

        try:
            while True:
                try:
                    batch = await receiver.receive(
                        self.settings.drain_batch_size,
                        self.settings.receive_wait_seconds,
                    )
                except ExplorerError as e:
                    self.log.warning(
                        "Receive failed; stopping drain",
                        batches=batches,
                        error_type=type(e).__name__,
                        error_message=str(e),
                    )
                    result.interrupted_reason = e.message
                    break

                if not batch:
                    break
                batches += 1

                fresh = 0
                for message in batch:
                    if message.sequence_number in held:
                        held[message.sequence_number] = message
                        continue
                    fresh += 1
                    state = await self._apply(message, action, result)
                    if state == MessageState.ACTION_FAILED:
                        held[message.sequence_number] = message

                if fresh == 0:
                    self.log.warning(
                        "Locks of failed messages expired; stopping drain",
                        batches=batches,
                        failed=len(held),
                    )
                    result.interrupted_reason = (
                        f"locks of {len(held)} failed messages expired before the drain finished"
                    )
                    break

                await asyncio.sleep(self.settings.drain_batch_delay_seconds)
        finally:
            for message in held.values():
                await self._release(receiver, message, MessageState.ACTION_FAILED)

        result.requested_count = result.succeeded_count + result.failed_count
        self.log.debug(
            "Drain finished",
            batches=batches,
            succeeded=result.succeeded_count,
            failed=result.failed_count,
        )
        return result

    async def _apply(
        self,
        message: ReceivedMessage,
        action: MessageAction,
        result: BatchOperationResult
    ) -> MessageState:
        sequence_number = message.sequence_number
        try:
            await action(message)
        except ExplorerError as e:
            result.record_failure(sequence_number, e.message)
            self.metrics.track_message_failure(self.operation, type(e).__name__)
            logger.log_message_operation(
                self.operation,
                self.entity.path,
                sequence_number,
                state=MessageState.ACTION_FAILED.value,
                error_message=e.message,
            )
            return MessageState.ACTION_FAILED

        result.record_success(sequence_number)
        self.metrics.track_message_completed(self.entity.path, self.sub_queue.value, self.operation)
        logger.log_message_operation(
            self.operation,
            self.entity.path,
            sequence_number,
            state=MessageState.MATCHED.value,
        )
        return MessageState.MATCHED

    async def _release(self, receiver: BrokerReceiver, message: ReceivedMessage, state: MessageState) -> None:
        """Abandon a message; a failed abandon leaves it to lock expiry."""
        reason = "failed" if state == MessageState.ACTION_FAILED else "unmatched"
        try:
            await receiver.abandon(message)
        except ExplorerError as e:
            logger.warning(
                f"Abandon failed for sequence {message.sequence_number}; lock will expire",
                operation="abandon",
                entity_name=self.entity.path,
                sequence_number=message.sequence_number,
                error_message=e.message,
            )
            return
        self.metrics.track_message_abandoned(self.entity.path, self.sub_queue.value, reason)
        if state == MessageState.UNMATCHED:
            logger.log_message_operation(
                "abandon",
                self.entity.path,
                message.sequence_number,
                state=state.value,
            )

    @staticmethod
    def _pending(targets: Set[int], result: BatchOperationResult, retry_failed: bool) -> Set[int]:
        pending = targets - result.succeeded_ids
        if not retry_failed:
            pending -= set(result.failed_ids)
        return pending


async def note_remaining(broker: BrokerAdapter, result: BatchOperationResult, entity: EntityRef) -> None:
    """Append the sub-queue's remaining count to an interrupted drain's reason."""
    if not result.interrupted_reason:
        return
    try:
        counters = await broker.get_runtime_counters(entity)
    except ExplorerError as e:
        logger.log_failure(
            "get_runtime_counters",
            e,
            level=logging.WARNING,
            entity_name=entity.path,
        )
        return
    remaining = counters.count_for(result.sub_queue)
    result.interrupted_reason = f"{result.interrupted_reason}; {remaining} messages remain"
