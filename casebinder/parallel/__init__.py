"""
Bounded-concurrency execution for CaseBinder ingestion.

Components:
    ParallelTaskRunner - Self-replenishing asyncio pool with a fixed
                         in-flight bound and per-task failure isolation
    TaskResult - Outcome of one pooled task
    ProgressAggregator - Thread-safe, throttled progress reporting
    ProgressState - Counters behind ProgressAggregator

Usage Example:
    from casebinder.parallel import ParallelTaskRunner, ProgressAggregator

    aggregator = ProgressAggregator(progress_queue)
    aggregator.set_total(len(items))

    async def process(item):
        aggregator.update(item.doc_id, f"Processing {item.filename}...")
        outcome = await process_item(item)
        aggregator.complete(item.doc_id)
        return outcome

    runner = ParallelTaskRunner(max_workers=3)
    results = await runner.run(process, [(i.doc_id, i) for i in items])

Performance Notes:
    - The pool is cooperative (asyncio); blocking PDF and HTTP work is
      pushed to worker threads with asyncio.to_thread
    - ProgressAggregator throttles to max 10 updates/second
"""

from .progress_aggregator import ProgressAggregator, ProgressState
from .task_runner import ParallelTaskRunner, TaskResult

__all__ = [
    'ParallelTaskRunner',
    'TaskResult',
    'ProgressAggregator',
    'ProgressState',
]
