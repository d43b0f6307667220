"""
Progress aggregation for pooled ingestion tasks.

Collects per-document stage messages ("Sanitizing grievance.pdf...",
"Transcribing call.m4a...") from concurrently running items and forwards
throttled, combined updates to a progress queue.

When three documents are in flight, each reporting several stages, the
consumer would otherwise receive a burst of messages per second. Updates
are therefore throttled (default 10/second); completions and failures are
always forwarded immediately so the counts stay accurate.

Queue messages are tuples:
    ('progress', (percentage, message))

Usage:
    aggregator = ProgressAggregator(progress_queue)
    aggregator.set_total(5)
    aggregator.update(doc_id, "Extracting text from notes.docx...")
    aggregator.complete(doc_id)
    aggregator.complete(other_id, failed=True)
"""

import threading
import time
from dataclasses import dataclass, field
from queue import Queue

from casebinder.config import PROGRESS_THROTTLE_MS


@dataclass
class ProgressState:
    """
    Progress across the items of one ingestion run.

    Not thread-safe on its own; ProgressAggregator provides the locking.

    Attributes:
        total_tasks: Number of items in the run.
        completed_tasks: Items that reached a terminal state.
        failed_tasks: Subset of completed_tasks that ended in ERROR.
        task_messages: Map of task_id -> current stage message.
    """
    total_tasks: int
    completed_tasks: int = 0
    failed_tasks: int = 0
    task_messages: dict = field(default_factory=dict)

    @property
    def percentage(self) -> int:
        """Integer percentage (0-100) of items that reached a terminal state."""
        if self.total_tasks == 0:
            return 0
        return int((self.completed_tasks / self.total_tasks) * 100)


class ProgressAggregator:
    """
    Combines stage messages from in-flight items into throttled updates.

    Safe to call from the event loop and from worker threads running
    blocking extraction code.

    Args:
        progress_queue: Queue receiving ('progress', (percent, message)).
                        May be None to disable reporting.
        throttle_ms: Minimum milliseconds between stage updates.
    """

    def __init__(self, progress_queue: Queue | None, throttle_ms: int = PROGRESS_THROTTLE_MS):
        self.progress_queue = progress_queue
        self.throttle_ms = throttle_ms
        self._state = ProgressState(total_tasks=0)
        self._last_update = 0.0
        self._lock = threading.Lock()

    def set_total(self, count: int) -> None:
        """Reset state for a run of `count` items."""
        with self._lock:
            self._state = ProgressState(total_tasks=count)

    def update(self, task_id: str, message: str) -> None:
        """Record the current stage of an item (throttled)."""
        with self._lock:
            self._state.task_messages[task_id] = message
            now = time.monotonic() * 1000
            if now - self._last_update >= self.throttle_ms:
                self._send_update()

    def complete(self, task_id: str, failed: bool = False) -> None:
        """Mark an item terminal (always sends an update)."""
        with self._lock:
            self._state.completed_tasks += 1
            if failed:
                self._state.failed_tasks += 1
            self._state.task_messages.pop(task_id, None)
            self._send_update()

    def _send_update(self) -> None:
        """Send the combined message. Must be called while holding _lock."""
        if self.progress_queue is None:
            return

        messages = list(self._state.task_messages.values())
        if messages:
            combined = " | ".join(messages[:3])
            if len(messages) > 3:
                combined += f" (+{len(messages) - 3} more)"
        else:
            combined = f"Processed {self._state.completed_tasks}/{self._state.total_tasks} documents"
            if self._state.failed_tasks:
                combined += f" ({self._state.failed_tasks} failed)"

        self.progress_queue.put(('progress', (self._state.percentage, combined)))
        self._last_update = time.monotonic() * 1000

    @property
    def completed(self) -> int:
        with self._lock:
            return self._state.completed_tasks

    @property
    def failed(self) -> int:
        with self._lock:
            return self._state.failed_tasks

    @property
    def total(self) -> int:
        with self._lock:
            return self._state.total_tasks
