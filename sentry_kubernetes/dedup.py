"""Process-local memory of terminations that were already reported."""

from __future__ import annotations

import threading
from collections import OrderedDict
from typing import Hashable

ContainerKey = tuple[str, str, str]


class TerminationCache:
    """Bounded LRU mapping of (namespace, pod, container) to the last fingerprint.

    The fingerprint is whatever identifies one termination; the classifier
    uses (restart count, reason, exit code), so a container that restarts
    again gets a new fingerprint and is reported again.
    """

    def __init__(self, max_entries: int = 10_000):
        if max_entries < 1:
            raise ValueError("max_entries must be positive")
        self._max_entries = max_entries
        self._entries: OrderedDict[ContainerKey, Hashable] = OrderedDict()
        self._lock = threading.Lock()

    def __len__(self) -> int:
        with self._lock:
            return len(self._entries)

    def seen(self, key: ContainerKey, fingerprint: Hashable) -> bool:
        """Return True if ``fingerprint`` is already recorded for ``key``, else record it."""
        with self._lock:
            if self._entries.get(key) == fingerprint:
                self._entries.move_to_end(key)
                return True
            self._store(key, fingerprint)
            return False

    def record(self, key: ContainerKey, fingerprint: Hashable) -> None:
        with self._lock:
            self._store(key, fingerprint)

    def release(self, key: ContainerKey, fingerprint: Hashable) -> None:
        """Drop ``key`` if it still holds ``fingerprint``."""
        with self._lock:
            if self._entries.get(key) == fingerprint:
                del self._entries[key]

    def forget_pod(self, namespace: str, pod: str) -> int:
        with self._lock:
            stale = [k for k in self._entries if k[0] == namespace and k[1] == pod]
            for key in stale:
                del self._entries[key]
            return len(stale)

    def clear(self) -> None:
        with self._lock:
            self._entries.clear()

    def _store(self, key: ContainerKey, fingerprint: Hashable) -> None:
        self._entries[key] = fingerprint
        self._entries.move_to_end(key)
        while len(self._entries) > self._max_entries:
            self._entries.popitem(last=False)
