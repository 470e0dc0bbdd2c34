"""Two-stage processing pipeline: process batches, then store the output."""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Iterable
from typing import Any

from bento.stage import BatchMessage, BlockBatch, ProcessedMessage, Processor, ProcessorStage, StorageStage

logger = logging.getLogger(__name__)

CHANNEL_CAPACITY = 100
_DONE = object()


class Pipeline:
    """Feeds batches through a processor stage and a storage stage."""

    def __init__(self, client: Any, db_pool: Any, processor: Processor) -> None:
        self.client = client
        self.processor_stage = ProcessorStage(processor)
        self.storage_stage = StorageStage(db_pool, processor)

    async def run(self, batches: Iterable[BlockBatch]) -> None:
        """Process and store every batch; the first failure is raised."""
        process_queue: asyncio.Queue[Any] = asyncio.Queue(CHANNEL_CAPACITY)
        storage_queue: asyncio.Queue[Any] = asyncio.Queue(CHANNEL_CAPACITY)

        async def feed() -> None:
            for batch in batches:
                await process_queue.put(BatchMessage(batch))
            await process_queue.put(_DONE)

        async def process() -> None:
            name = self.processor_stage.processor.name.upper()
            while (message := await process_queue.get()) is not _DONE:
                batch = message.batch
                logger.debug(
                    "%s processor processing batch with %d blocks (range: %d to %d)",
                    name,
                    len(batch.blocks),
                    batch.range.from_ts,
                    batch.range.to_ts,
                )
                result = await self.processor_stage.handle(message)
                if isinstance(result, ProcessedMessage):
                    await storage_queue.put(result)
            await storage_queue.put(_DONE)

        async def store() -> None:
            while (message := await storage_queue.get()) is not _DONE:
                await self.storage_stage.handle(message)

        try:
            async with asyncio.TaskGroup() as group:
                group.create_task(feed())
                group.create_task(process())
                group.create_task(store())
        except ExceptionGroup as failures:
            raise failures.exceptions[0] from None

        logger.debug("Pipeline execution completed successfully")