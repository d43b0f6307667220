"""
Task runner for bounded-concurrency document processing.

Runs one coroutine per item with at most max_workers in flight. The pool
is self-replenishing: whenever a task finishes (successfully or not) it
leaves the in-flight set and the next queued item starts immediately, so
the bound stays saturated until the queue drains regardless of how long
individual items take.

Design Principles:
- Single Responsibility: TaskResult holds result data, ParallelTaskRunner
  handles scheduling.
- Failure isolation: an exception in one task is captured in its
  TaskResult and never reaches the other tasks.

Usage:
    runner = ParallelTaskRunner(
        max_workers=3,
        on_task_start=lambda task_id: print(f"{task_id} started")
    )

    items = [("doc1", item1), ("doc2", item2)]
    results = await runner.run(process_item, items)

    for result in results:
        if result.success:
            print(f"{result.task_id}: {result.result}")
        else:
            print(f"{result.task_id} failed: {result.error}")
"""

import asyncio
from collections import deque
from dataclasses import dataclass
from typing import Any, Awaitable, Callable

from casebinder.config import UPLOAD_CONCURRENCY


@dataclass
class TaskResult:
    """
    Result of one pooled task.

    Attributes:
        task_id: Unique identifier for the task (e.g., document id).
        success: True if the task completed without exception.
        result: Return value of the task function (if success=True).
        error: Exception raised by the task (if success=False).
    """
    task_id: str
    success: bool
    result: Any = None
    error: Exception = None


class ParallelTaskRunner:
    """
    Runs coroutines over a FIFO queue with a fixed in-flight bound.

    Provides:
    - Start callbacks (on_task_start) fired as each item takes a slot
    - Results returned in completion order
    - Every queued item is started; run() returns once all have finished

    Args:
        max_workers: Maximum number of tasks in flight at once.
        on_task_start: Optional callback(task_id) when an item starts.

    Attributes:
        max_workers: The concurrency bound.
        peak_in_flight: Highest number of simultaneously running tasks seen
                        during the last run().
    """

    def __init__(
        self,
        max_workers: int = UPLOAD_CONCURRENCY,
        on_task_start: Callable[[str], None] = None
    ):
        if max_workers < 1:
            raise ValueError(f"max_workers must be at least 1, got {max_workers}")
        self.max_workers = max_workers
        self.on_task_start = on_task_start
        self.peak_in_flight = 0

    async def run(
        self,
        fn: Callable[[Any], Awaitable[Any]],
        items: list[tuple[str, Any]]
    ) -> list[TaskResult]:
        """
        Run fn over items with at most max_workers concurrently.

        Args:
            fn: Coroutine function called with each payload.
            items: List of (task_id, payload) tuples.

        Returns:
            List of TaskResult objects in completion order.
        """
        if not items:
            return []

        self.peak_in_flight = 0
        pending = deque(items)
        in_flight: set[asyncio.Task] = set()
        results: list[TaskResult] = []
        drained = asyncio.Event()

        async def run_one(task_id: str, payload: Any) -> None:
            try:
                value = await fn(payload)
            except Exception as e:
                results.append(TaskResult(task_id=task_id, success=False, error=e))
            else:
                results.append(TaskResult(task_id=task_id, success=True, result=value))

        def launch_next() -> None:
            if not pending:
                if not in_flight:
                    drained.set()
                return
            task_id, payload = pending.popleft()
            if self.on_task_start:
                self.on_task_start(task_id)
            task = asyncio.create_task(run_one(task_id, payload), name=f"casebinder:{task_id}")
            in_flight.add(task)
            self.peak_in_flight = max(self.peak_in_flight, len(in_flight))
            task.add_done_callback(on_done)

        def on_done(task: asyncio.Task) -> None:
            in_flight.discard(task)
            launch_next()

        for _ in range(min(self.max_workers, len(pending))):
            launch_next()

        await drained.wait()
        return results
