"""
Per-key re-entrant locks.

Used to serialize every ledger mutation and redemption state transition for a
single member inside one worker process. Storage-level conditional updates
cover the multi-process case; this lock keeps same-member threads from
interleaving inside one database transaction.
"""
import threading
from contextlib import contextmanager
from typing import Dict, Hashable


class KeyedLock:
    """
    Hands out one re-entrant lock per key.

    Locks are reference counted and dropped once no thread holds or waits on
    them, so the registry does not grow with the number of members ever seen.
    """

    def __init__(self):
        self._guard = threading.Lock()
        self._locks: Dict[Hashable, threading.RLock] = {}
        self._waiters: Dict[Hashable, int] = {}

    @contextmanager
    def hold(self, key: Hashable):
        with self._guard:
            lock = self._locks.get(key)
            if lock is None:
                lock = threading.RLock()
                self._locks[key] = lock
            self._waiters[key] = self._waiters.get(key, 0) + 1

        lock.acquire()
        try:
            yield
        finally:
            lock.release()
            with self._guard:
                self._waiters[key] -= 1
                if self._waiters[key] == 0:
                    del self._waiters[key]
                    del self._locks[key]
