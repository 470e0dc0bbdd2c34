"""Indexer worker: keeps processors in sync with the node, live or over a backfill range."""

from __future__ import annotations

import asyncio
import copy
import logging
import time
from collections.abc import Awaitable, Callable, Iterable, Mapping, Sequence
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any

from bento.fetch import fetch_parallel
from bento.pipeline import Pipeline
from bento.processor_config import ProcessorConfig
from bento.stage import BlockBatch, BlockRange

logger = logging.getLogger(__name__)

DEFAULT_GROUP_NUM = 4

BlocksAtHeight = Callable[[int], Awaitable[Sequence[Any]]]
MaxBlockTimestamp = Callable[[], Awaitable[int | datetime | None]]


@dataclass(frozen=True)
class SyncOptions:
    step: int = 0
    backstep: int = 0
    request_interval: int = 0  # milliseconds


@dataclass(frozen=True)
class BackfillOptions:
    start_ts: int | None = None
    stop_ts: int | None = None
    request_interval: int = 0  # milliseconds
    step: int = 0
    backstep: int = 0


def _get(item: Any, *names: str) -> Any:
    for name in names:
        if isinstance(item, Mapping):
            if name in item:
                return item[name]
        elif hasattr(item, name):
            return getattr(item, name)
    raise ValueError(f"missing field {names[0]!r}")


def _to_millis(value: int | datetime) -> int:
    if isinstance(value, datetime):
        if value.tzinfo is None:
            value = value.replace(tzinfo=timezone.utc)
        return int(value.timestamp() * 1000)
    return int(value)


def _block_timestamp(block_and_events: Any) -> int:
    block = _get(block_and_events, "block")
    return _to_millis(_get(block, "timestamp"))


class Worker:
    """Fetches blocks from a node and runs every configured processor over them."""

    def __init__(
        self,
        processor_configs: Iterable[ProcessorConfig],
        client: Any,
        db_pool: Any = None,
        *,
        sync_opts: SyncOptions | None = None,
        backfill_opts: BackfillOptions | None = None,
        workers: int = 1,
        group_num: int = DEFAULT_GROUP_NUM,
        blocks_at_height: BlocksAtHeight | None = None,
        max_block_timestamp: MaxBlockTimestamp | None = None,
    ) -> None:
        if workers <= 0:
            raise ValueError("workers must be positive")
        self.processor_configs = list(processor_configs)
        self.client = client
        self.db_pool = db_pool
        self.sync_opts = sync_opts
        self.backfill_opts = backfill_opts
        self.workers = workers
        self.group_num = group_num
        self.blocks_at_height = blocks_at_height
        self.max_block_timestamp = max_block_timestamp

    async def run(self) -> None:
        """Run a backfill when backfill options are set, otherwise sync forever."""
        if self.backfill_opts is not None:
            logger.info("Starting backfill with options: %s", self.backfill_opts)
            await self.run_backfill(self.backfill_opts)
        else:
            logger.info("Starting sync with options: %s", self.sync_opts)
            await self.run_sync()

    def groups(self) -> list[tuple[int, int]]:
        """All (from_group, to_group) chain pairs."""
        return [(src, dst) for src in range(self.group_num) for dst in range(self.group_num)]

    async def latest_remote_timestamp(self, chain_from: int, chain_to: int) -> int:
        """Timestamp in milliseconds of the node's latest block on one chain."""
        chain_info = await self.client.get_chain_info(chain_from, chain_to)
        height = int(_get(chain_info, "currentHeight", "current_height"))
        hashes = await self.client.get_block_hash_by_height(height, chain_from, chain_to)
        if not hashes:
            raise LookupError(f"no block hash at height {height} on chain {chain_from}->{chain_to}")
        block = await self.client.get_block_and_events_by_hash(hashes[0])
        return _block_timestamp(block)

    async def run_backfill(self, options: BackfillOptions) -> None:
        """Sync every block between the start and stop timestamps, one step at a time."""
        stop_ts = options.stop_ts
        if stop_ts is None:
            stop_ts = await self.latest_remote_timestamp(0, 0)

        start_ts = options.start_ts
        if start_ts is None:
            if self.blocks_at_height is None:
                raise ValueError("a start timestamp or a block lookup by height is required")
            # Make sure the genesis and the next block are synced first.
            await self.sync_at_height(0)
            await self.sync_at_height(1)
            blocks = await self.blocks_at_height(1)
            if not blocks:
                raise LookupError("no blocks stored at height 1")
            start_ts = min(_to_millis(_get(block, "timestamp")) for block in blocks)

        if options.step <= 0 and start_ts < stop_ts:
            raise ValueError("backfill step must be positive")

        logger.info(
            "Backfilling from %d to %d with step %d and request interval %d",
            start_ts,
            stop_ts,
            options.step,
            options.request_interval,
        )

        current_ts = start_ts
        while current_ts < stop_ts:
            chunk_end = min(current_ts + options.step, stop_ts)
            await self.sync_range(current_ts, chunk_end)
            current_ts = chunk_end
            percentage = (chunk_end - start_ts) / (stop_ts - start_ts) * 100.0
            logger.info("Progress: %.2f%% of backfill range completed", percentage)
            await asyncio.sleep(options.request_interval / 1000)

    async def run_sync(self) -> None:
        """Follow the node forever, re-syncing a window behind the latest block."""
        options = self.sync_opts if self.sync_opts is not None else SyncOptions()
        while True:
            logger.info("Syncing...")
            latest_remote_ts = await self.latest_remote_timestamp(0, 0)
            local = await self.max_block_timestamp() if self.max_block_timestamp is not None else None
            latest_local_ts = _to_millis(local) if local is not None else int(time.time() * 1000)
            # Too far behind: start from `backstep` before the tip; a backfill is needed.
            if latest_remote_ts - (latest_local_ts - options.backstep) > options.backstep:
                start_ts = latest_remote_ts - options.backstep
            else:
                start_ts = latest_local_ts - options.backstep

            await self.sync_range(start_ts, latest_remote_ts)

            logger.info(
                "Synced blocks from %d to %d, waiting %s seconds before next sync",
                start_ts,
                latest_remote_ts,
                options.request_interval / 1000,
            )
            await asyncio.sleep(options.request_interval / 1000)

    async def sync_range(self, start_ts: int, stop_ts: int) -> None:
        """Fetch and process blocks in [start_ts, stop_ts]; fetch failures skip the range."""
        block_range = BlockRange(start_ts, stop_ts)
        logger.info("Syncing blocks in range: %s", block_range)
        try:
            batches = await fetch_parallel(self.client, block_range, self.workers)
        except Exception as exc:
            logger.error("Failed to fetch blocks for %s, skipping range: %s", block_range, exc)
            return
        if not batches:
            logger.warning("No blocks found in the specified range")
            return
        await self.run_pipeline(batches)

    async def sync_at_height(self, height: int) -> None:
        """Fetch and process the first block at ``height`` on every chain."""
        block_hashes = await asyncio.gather(
            *(
                self.client.get_block_hash_by_height(height, src, dst)
                for src, dst in self.groups()
            )
        )
        if not block_hashes:
            logger.warning("No blocks found at height %d", height)
            return
        for hashes in block_hashes:
            if not hashes:
                raise LookupError(f"no block hash at height {height}")
        blocks = await asyncio.gather(
            *(self.client.get_block_and_events_by_hash(hashes[0]) for hashes in block_hashes)
        )
        await self.run_pipeline([BlockBatch(blocks=list(blocks), range=BlockRange(0, 0))])

    async def run_pipeline(self, batches: Sequence[BlockBatch]) -> None:
        """Run every configured processor over the batches concurrently."""

        async def run_one(config: ProcessorConfig) -> None:
            processor = config.build_processor(self.db_pool)
            name = processor.name
            pipeline = Pipeline(self.client, self.db_pool, processor)
            try:
                await pipeline.run(copy.deepcopy(list(batches)))
            except Exception as exc:
                logger.error("Processor %s execution failed: %s", name, exc)
                raise RuntimeError(f"Processor {name} failed: {exc}") from exc

        results = await asyncio.gather(
            *(run_one(config) for config in self.processor_configs), return_exceptions=True
        )
        for result in results:
            if isinstance(result, BaseException):
                raise result