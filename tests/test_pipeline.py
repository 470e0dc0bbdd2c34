import pytest

from bento.pipeline import Pipeline
from bento.stage import BlockBatch, BlockRange, Processor


class SumProcessor(Processor):
    name = "sum"

    def __init__(self, pool=None, fail_process=False, fail_store=False):
        super().__init__(pool)
        self.stored = []
        self.fail_process = fail_process
        self.fail_store = fail_store

    async def process_blocks(self, blocks):
        if self.fail_process:
            raise RuntimeError("process failed")
        return sum(blocks)

    async def store_output(self, output):
        if self.fail_store:
            raise RuntimeError("store failed")
        self.stored.append(output)


def make_batches(count):
    return [BlockBatch(blocks=[i, i], range=BlockRange(i, i + 1)) for i in range(count)]


@pytest.mark.asyncio
async def test_run_stores_outputs_in_order():
    processor = SumProcessor()
    pipeline = Pipeline(None, None, processor)
    await pipeline.run(make_batches(5))
    assert processor.stored == [2 * i for i in range(5)]


@pytest.mark.asyncio
async def test_run_with_no_batches_stores_nothing():
    processor = SumProcessor()
    await Pipeline(None, None, processor).run([])
    assert processor.stored == []


@pytest.mark.asyncio
async def test_run_handles_more_batches_than_capacity():
    processor = SumProcessor()
    await Pipeline(None, None, processor).run(make_batches(250))
    assert len(processor.stored) == 250
    assert processor.stored[-1] == 2 * 249


@pytest.mark.asyncio
async def test_processing_error_is_raised():
    processor = SumProcessor(fail_process=True)
    with pytest.raises(RuntimeError, match="process failed"):
        await Pipeline(None, None, processor).run(make_batches(3))
    assert processor.stored == []


@pytest.mark.asyncio
async def test_storage_error_is_raised():
    processor = SumProcessor(fail_store=True)
    with pytest.raises(RuntimeError, match="store failed"):
        await Pipeline(None, None, processor).run(make_batches(3))


def test_stages_share_processor():
    processor = SumProcessor()
    pool = object()
    pipeline = Pipeline(None, pool, processor)
    assert pipeline.processor_stage.processor is processor
    assert pipeline.storage_stage.processor is processor
    assert pipeline.storage_stage.db_pool is pool