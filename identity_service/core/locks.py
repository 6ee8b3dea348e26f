"""
Per-user locks so that two reconciliations of the same user never interleave.

The registry is process-local; concurrent invocations in separate processes
are not serialized.
"""

import threading
from contextlib import contextmanager
from typing import Dict, Iterator


class UserLockRegistry:
    """
    Hands out one lock per user id.

    Locks are kept for the lifetime of the registry, one per user id ever
    seen. The set of accounts is bounded, so the registry is never pruned.
    """

    def __init__(self):
        self._locks: Dict[str, threading.Lock] = {}
        self._guard = threading.Lock()

    def lock_for(self, user_id: str) -> threading.Lock:
        with self._guard:
            lock = self._locks.get(user_id)
            if lock is None:
                lock = threading.Lock()
                self._locks[user_id] = lock
            return lock

    @contextmanager
    def hold(self, user_id: str) -> Iterator[None]:
        lock = self.lock_for(user_id)
        with lock:
            yield
