"""Keyed mutual exclusion for per-class critical sections."""
from __future__ import annotations

import logging
from contextlib import contextmanager
from dataclasses import dataclass, field
from threading import Lock
from typing import Iterator

logger = logging.getLogger(__name__)


class LockTimeout(Exception):
    def __init__(self, key: str, timeout: float) -> None:
        super().__init__(f"Timed out after {timeout:.2f}s waiting for lock {key!r}")
        self.key = key
        self.timeout = timeout


@dataclass(slots=True)
class _Entry:
    lock: Lock = field(default_factory=Lock)
    holders: int = 0


class KeyedLock:
    """One lock per key, created on demand and dropped once nobody uses it.

    Callers holding different keys never wait on each other; the registry
    guard is only held while looking up or releasing an entry.
    """

    def __init__(self) -> None:
        self._guard = Lock()
        self._entries: dict[str, _Entry] = {}

    def __len__(self) -> int:
        with self._guard:
            return len(self._entries)

    @contextmanager
    def hold(self, key: str, timeout: float | None = None) -> Iterator[None]:
        with self._guard:
            entry = self._entries.get(key)
            if entry is None:
                entry = self._entries[key] = _Entry()
            entry.holders += 1
        acquired = False
        try:
            acquired = entry.lock.acquire(timeout=-1 if timeout is None else timeout)
            if not acquired:
                logger.warning("Lock wait timed out", extra={"lock_key": key, "timeout": timeout})
                raise LockTimeout(key, timeout or 0.0)
            yield
        finally:
            if acquired:
                entry.lock.release()
            with self._guard:
                entry.holders -= 1
                if entry.holders == 0:
                    self._entries.pop(key, None)


__all__ = ["KeyedLock", "LockTimeout"]
