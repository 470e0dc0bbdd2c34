"""Fetching blocks with their events from a node, split over parallel workers."""

from __future__ import annotations

import asyncio
import logging
import time
from collections.abc import Mapping
from itertools import chain
from typing import Any

from bento.stage import BlockBatch, BlockProvider, BlockRange

logger = logging.getLogger(__name__)

MAX_TIMESTAMP_RANGE = 1_800_000  # milliseconds


class FetchError(Exception):
    """Raised when blocks for a timestamp range cannot be fetched."""


def _blocks_of(response: Any) -> list[Any]:
    if isinstance(response, Mapping):
        groups = response.get("blocks_and_events", response.get("blocksAndEvents"))
    else:
        groups = getattr(response, "blocks_and_events", None)
    if groups is None:
        raise FetchError("response holds no blocks and events")
    return list(chain.from_iterable(groups))


async def fetch_chunk(
    client: BlockProvider,
    block_range: BlockRange,
    max_range: int = MAX_TIMESTAMP_RANGE,
) -> BlockBatch:
    """Fetch all blocks with events in one timestamp range."""
    span = block_range.to_ts - block_range.from_ts
    if span < 0:
        raise ValueError(f"invalid range: {block_range.from_ts} > {block_range.to_ts}")
    if span > max_range:
        raise FetchError(f"Timestamp range exceeds maximum limit, maximum {max_range}, got {span}")

    start = time.perf_counter()
    response = await client.get_blocks_and_events(block_range.from_ts, block_range.to_ts)
    blocks = _blocks_of(response)
    elapsed = time.perf_counter() - start

    logger.info(
        "Fetched %d blocks from timestamp %d to timestamp %d (%d seconds) in %.2fs",
        len(blocks),
        block_range.from_ts,
        block_range.to_ts,
        span // 1_000,
        elapsed,
    )
    return BlockBatch(blocks=blocks, range=block_range)


async def fetch_parallel(
    client: BlockProvider,
    block_range: BlockRange,
    num_workers: int,
    max_range: int = MAX_TIMESTAMP_RANGE,
) -> list[BlockBatch]:
    """Split a range into ``num_workers`` chunks, fetch them concurrently, return batches in order."""
    if num_workers <= 0:
        raise ValueError("num_workers must be positive")
    total_time = block_range.to_ts - block_range.from_ts
    if total_time < 0:
        raise ValueError(f"invalid range: {block_range.from_ts} > {block_range.to_ts}")
    chunk_size = total_time // num_workers

    logger.debug(
        "Starting parallel fetch with %d workers for range %d-%d",
        num_workers,
        block_range.from_ts,
        block_range.to_ts,
    )

    tasks: list[asyncio.Task[BlockBatch]] = []
    for worker_id in range(num_workers):
        start = block_range.from_ts + worker_id * chunk_size
        stop = block_range.to_ts if worker_id == num_workers - 1 else start + chunk_size
        logger.debug("Dispatching worker %d for %d-%d", worker_id, start, stop)
        tasks.append(asyncio.create_task(fetch_chunk(client, BlockRange(start, stop), max_range)))

    results: list[BlockBatch] = []
    try:
        for worker_id, task in enumerate(tasks):
            try:
                batch = await task
            except Exception as exc:
                logger.error("Worker %d failed: %s", worker_id, exc)
                raise FetchError(
                    f"Failed to fetch chunk (worker {worker_id}/{num_workers}): {exc}"
                ) from exc
            logger.debug("Worker %d completed successfully with %d blocks", worker_id, len(batch.blocks))
            results.append(batch)
    finally:
        pending = [task for task in tasks if not task.done()]
        for task in pending:
            task.cancel()
        if pending:
            await asyncio.gather(*pending, return_exceptions=True)

    logger.debug("Parallel fetch completed successfully, retrieved %d batches", len(results))
    return results