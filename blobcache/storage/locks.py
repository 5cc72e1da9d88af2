import threading
from contextlib import contextmanager
from typing import Dict, Iterator, List


class KeyLocks:
    """Per-key mutual exclusion.

    Locks are created on first use and dropped once no thread holds or waits
    for them, so the table only grows with the number of keys in flight.
    """

    def __init__(self):
        self._guard = threading.Lock()
        # key -> [lock, number of holders and waiters]
        self._locks: Dict[str, List] = {}

    @contextmanager
    def hold(self, key: str) -> Iterator[None]:
        with self._guard:
            entry = self._locks.setdefault(key, [threading.Lock(), 0])
            entry[1] += 1
        lock = entry[0]
        lock.acquire()
        try:
            yield
        finally:
            lock.release()
            with self._guard:
                entry[1] -= 1
                if entry[1] == 0:
                    del self._locks[key]

    def __len__(self) -> int:
        with self._guard:
            return len(self._locks)
