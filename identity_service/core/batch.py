"""
Bounded fan-out for per-user tasks.

Each batch gets its own thread pool and an overall deadline. Tasks that have
not finished when the deadline passes are reported as timed out and their
results discarded; tasks are never retried. A task that is already running
cannot be interrupted, so callers pass a cancel_event that is set at the
deadline and check it with ensure_active() before each write. Exceptions
raised by a task are captured into the BatchResult rather than lost.
"""

import threading
import time
from concurrent.futures import ThreadPoolExecutor, TimeoutError as FuturesTimeout, as_completed
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, Generic, Iterable, List, Optional, TypeVar

from util.logging import logger

T = TypeVar("T")
R = TypeVar("R")


class BatchCancelled(Exception):
    """Raised inside a task whose batch has already passed its deadline."""


def ensure_active(cancel_event: Optional[threading.Event]) -> None:
    """Raise BatchCancelled once the batch owning cancel_event has timed out."""
    if cancel_event is not None and cancel_event.is_set():
        raise BatchCancelled("batch deadline exceeded")


@dataclass
class BatchResult(Generic[R]):
    """Aggregated outcome of a batch."""
    total: int = 0
    results: Dict[str, R] = field(default_factory=dict)
    errors: Dict[str, str] = field(default_factory=dict)
    timed_out: List[str] = field(default_factory=list)
    duration_ms: float = 0.0

    @property
    def completed(self) -> int:
        return len(self.results)

    def summary(self) -> Dict[str, Any]:
        return {
            "total": self.total,
            "completed": self.completed,
            "errors": len(self.errors),
            "timed_out": len(self.timed_out),
        }


def run_batch(name: str, items: Iterable[T], task: Callable[[T], R], key: Callable[[T], str],
              max_workers: int = 16, deadline_sec: float = 120.0,
              cancel_event: Optional[threading.Event] = None) -> BatchResult[R]:
    """
    Run task(item) for every item on at most max_workers threads.

    Args:
        name: Batch name used in log lines
        items: Work items
        task: Function applied to each item
        key: Returns the identifier an item is reported under
        max_workers: Pool size
        deadline_sec: Seconds allowed for the whole batch
        cancel_event: Set when the deadline passes so running tasks stop writing
    """
    result: BatchResult[R] = BatchResult()
    start = time.time()

    executor = ThreadPoolExecutor(max_workers=max_workers, thread_name_prefix=f"batch-{name}")
    try:
        future_to_key = {}
        for item in items:
            future_to_key[executor.submit(task, item)] = key(item)
        result.total = len(future_to_key)

        pending = set(future_to_key)
        try:
            for future in as_completed(future_to_key, timeout=deadline_sec):
                pending.discard(future)
                item_key = future_to_key[future]
                try:
                    result.results[item_key] = future.result()
                except Exception as e:
                    logger.log_operation(f"batch.{name}.task", "error", {"key": item_key, "error": str(e)})
                    result.errors[item_key] = str(e)
        except FuturesTimeout:
            if cancel_event is not None:
                cancel_event.set()
            for future in pending:
                future.cancel()
                result.timed_out.append(future_to_key[future])
            logger.log_operation(f"batch.{name}", "failed", {
                "reason": "deadline exceeded",
                "deadline_sec": deadline_sec,
                "timed_out": len(result.timed_out)
            })
    finally:
        # Do not wait on tasks abandoned at the deadline
        executor.shutdown(wait=False, cancel_futures=True)

    end = time.time()
    result.duration_ms = round((end - start) * 1000, 2)
    logger.log_batch_summary(name, start, end, result.summary())
    return result
