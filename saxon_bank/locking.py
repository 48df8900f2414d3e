"""
Keyed re-entrant locks for single-writer-per-record semantics.
"""

from contextlib import contextmanager
from typing import Dict, Optional
import threading


class KeyedLocks:
    """
    One re-entrant lock per key (account id, transaction id, request id).

    ``hold`` acquires the locks of several keys in sorted order so two
    operations touching the same pair of accounts cannot deadlock.
    """

    def __init__(self):
        self._locks: Dict[str, threading.RLock] = {}
        self._guard = threading.Lock()

    def _lock_for(self, key: str) -> threading.RLock:
        with self._guard:
            lock = self._locks.get(key)
            if lock is None:
                lock = threading.RLock()
                self._locks[key] = lock
            return lock

    @contextmanager
    def hold(self, *keys: Optional[str]):
        locks = [self._lock_for(k) for k in sorted({k for k in keys if k})]
        for lock in locks:
            lock.acquire()
        try:
            yield
        finally:
            for lock in reversed(locks):
                lock.release()
