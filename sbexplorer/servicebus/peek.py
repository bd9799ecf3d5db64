"""
Paginated Peek Reader

Non-destructive, page-oriented reads of a queue or subscription sub-queue.

Pages are snapshot reads against a live entity and are not consistent with
each other: concurrent producers and consumers may cause records to repeat or
be skipped between page fetches.

Author: Ayodele Oladeji
Date: 2026-10-14
"""

from typing import Optional

from .broker import BrokerAdapter
from .config import EngineSettings
from .exceptions import InvalidRequestError
from .inventory import EntityInventoryCollector
from .logging_utils import StructuredLogger
from .models import EntityRef, MessagePage, PageCursor, SubQueue


logger = StructuredLogger('sbexplorer.servicebus.peek')


class PaginatedPeekReader:
    """Builds MessagePages from broker peeks and fresh runtime counters."""

    def __init__(
        self,
        settings: Optional[EngineSettings] = None,
        inventory: Optional[EntityInventoryCollector] = None
    ):
        self.settings = settings or EngineSettings()
        self.inventory = inventory or EntityInventoryCollector()

    async def peek_page(
        self,
        broker: BrokerAdapter,
        entity: EntityRef,
        sub_queue: SubQueue = SubQueue.ACTIVE,
        page_index: int = 0
    ) -> MessagePage:
        """
        Peek one page of messages.

        ``total_messages`` comes from the entity's runtime counters on every
        call, never from the records returned.

        Args:
            broker: Open broker adapter
            entity: Queue or subscription
            sub_queue: Active or dead-letter sub-queue
            page_index: Zero-based page index

        Returns:
            MessagePage with records in broker order

        Raises:
            InvalidRequestError: If the entity is a topic or the page index is negative
        """
        if not entity.is_receivable:
            raise InvalidRequestError("topics hold no messages; peek one of their subscriptions", operation="peek")
        if page_index < 0:
            raise InvalidRequestError(f"page index must be >= 0, got {page_index}", operation="peek")

        cursor = PageCursor(page_index=page_index, page_size=self.settings.page_size, sub_queue=sub_queue)

        counters = await self.inventory.get_counters(broker, entity)
        total_messages = counters.count_for(sub_queue)
        total_pages = cursor.total_pages(total_messages)

        async with broker.open_receiver(entity, sub_queue) as receiver:
            from_sequence = await self._skip(receiver, cursor)
            if from_sequence is None:
                records = []
            else:
                records = await receiver.peek(cursor.page_size, from_sequence)

        logger.debug(
            "Peeked page",
            operation="peek",
            entity_name=entity.path,
            sub_queue=sub_queue.value,
            page_index=page_index,
            record_count=len(records),
            total_messages=total_messages,
        )

        return MessagePage(
            records=records,
            total_messages=total_messages,
            current_page=page_index,
            total_pages=total_pages,
            has_more=page_index < total_pages - 1,
            sub_queue=sub_queue,
        )

    async def _skip(self, receiver, cursor: PageCursor) -> Optional[int]:
        """
        Walk past the records of earlier pages.

        Returns:
            Sequence number to peek the page from (0 = start of sub-queue),
            or None when the sub-queue ends before the page starts
        """
        from_sequence = 0
        remaining = cursor.skip
        while remaining > 0:
            batch = await receiver.peek(min(remaining, cursor.page_size), from_sequence)
            if not batch:
                return None
            remaining -= len(batch)
            from_sequence = batch[-1].sequence_number + 1
        return from_sequence
