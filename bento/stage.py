"""Pipeline building blocks: batches, stage messages, processors and stages."""

from __future__ import annotations

from abc import ABC, abstractmethod
from collections.abc import Sequence
from dataclasses import dataclass, field
from typing import Any, ClassVar, Protocol, runtime_checkable


@dataclass(frozen=True)
class BlockRange:
    """A timestamp range in milliseconds."""

    from_ts: int
    to_ts: int


@dataclass
class BlockBatch:
    """Blocks fetched for one timestamp range."""

    blocks: list[Any] = field(default_factory=list)
    range: BlockRange = field(default_factory=lambda: BlockRange(0, 0))


@dataclass
class BatchMessage:
    batch: BlockBatch


@dataclass
class ProcessedMessage:
    output: Any


@dataclass(frozen=True)
class CompleteMessage:
    pass


StageMessage = BatchMessage | ProcessedMessage | CompleteMessage


class Processor(ABC):
    """Turns blocks into output and stores that output."""

    name: ClassVar[str] = "processor"

    def __init__(self, connection_pool: Any) -> None:
        self.connection_pool = connection_pool

    @abstractmethod
    async def process_blocks(self, blocks: Sequence[Any]) -> Any:
        """Process a batch of blocks and return the output to store."""

    @abstractmethod
    async def store_output(self, output: Any) -> None:
        """Persist output produced by ``process_blocks``."""


@runtime_checkable
class BlockProvider(Protocol):
    """Source of blocks, as offered by a node client."""

    async def get_blocks(self, from_ts: int, to_ts: int) -> Any:
        """List blocks in a timestamp range."""

    async def get_blocks_and_events(self, from_ts: int, to_ts: int) -> Any:
        """List blocks with their events in a timestamp range."""

    async def get_block(self, block_hash: str) -> Any:
        """Return the block with the given hash."""

    async def get_block_and_events_by_hash(self, block_hash: str) -> Any:
        """Return a block with its events."""

    async def get_block_header(self, block_hash: str) -> Any:
        """Return a block header."""

    async def get_block_hash_by_height(self, height: int, from_group: int, to_group: int) -> list[str]:
        """Return block hashes at a height on a chain."""

    async def get_chain_info(self, from_group: int, to_group: int) -> Any:
        """Return chain information for a group pair."""


class ProcessorStage:
    """Runs a processor over incoming batches."""

    def __init__(self, processor: Processor) -> None:
        self.processor = processor

    async def handle(self, message: StageMessage) -> StageMessage:
        if isinstance(message, BatchMessage):
            output = await self.processor.process_blocks(message.batch.blocks)
            return ProcessedMessage(output)
        return message


class StorageStage:
    """Stores processed output through the processor."""

    def __init__(self, db_pool: Any, processor: Processor) -> None:
        self.db_pool = db_pool
        self.processor = processor

    async def handle(self, message: StageMessage) -> StageMessage:
        if isinstance(message, ProcessedMessage):
            await self.processor.store_output(message.output)
            return CompleteMessage()
        return message