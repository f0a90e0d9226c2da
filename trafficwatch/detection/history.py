"""
TrafficWatch - Per-Source Traffic History.

Keeps, for every source address, the classified records seen within
the retention window (60 s by default), ordered by arrival.
"""

from __future__ import annotations

import logging
import threading
from collections import deque
from contextlib import contextmanager
from typing import Deque, Dict, Iterator, List

from trafficwatch.detection.models import TrafficRecord

logger = logging.getLogger("trafficwatch.detection.history")

DEFAULT_RETENTION_SEC = 60.0
# Maximum number of sources to track concurrently
MAX_TRACKED = 50_000


class _SourceLock:
    """Per-source mutex plus the number of threads holding or awaiting it."""

    __slots__ = ("mutex", "users")

    def __init__(self) -> None:
        self.mutex = threading.Lock()
        self.users = 0


class HistoryStore:
    """
    Time-bounded, per-source record history.

    Expired records are purged from a source's sequence every time that
    source is written to. Reads filter on the retention window as well,
    so a reader never observes a record older than ``retention_sec``.

    The set of tracked sources is guarded by one store-level lock. A
    source that some thread holds or waits on through ``lock()`` is never
    swept or evicted, so its lock cannot be replaced underneath it.
    """

    def __init__(
        self,
        retention_sec: float = DEFAULT_RETENTION_SEC,
        max_sources: int = MAX_TRACKED,
    ) -> None:
        self.retention_sec = retention_sec
        self.max_sources = max_sources
        self._history: Dict[str, Deque[TrafficRecord]] = {}
        self._last_seen: Dict[str, float] = {}
        self._locks: Dict[str, _SourceLock] = {}
        self._guard = threading.Lock()

    def __len__(self) -> int:
        return len(self._history)

    def sources(self) -> List[str]:
        with self._guard:
            return list(self._history)

    @contextmanager
    def lock(self, source_ip: str) -> Iterator[None]:
        """Hold the lock serialising updates for one source."""
        with self._guard:
            entry = self._locks.get(source_ip)
            if entry is None:
                entry = self._locks[source_ip] = _SourceLock()
            entry.users += 1
        try:
            with entry.mutex:
                yield
        finally:
            with self._guard:
                entry.users -= 1
                if (
                    not entry.users
                    and source_ip not in self._history
                    and self._locks.get(source_ip) is entry
                ):
                    del self._locks[source_ip]

    def append(self, source_ip: str, record: TrafficRecord, now: float) -> None:
        """Append a classified record and purge that source's expired ones."""
        with self._guard:
            records = self._history.get(source_ip)
            if records is None:
                if len(self._history) >= self.max_sources:
                    self._evict_oldest()
                records = self._history[source_ip] = deque()
            self._last_seen[source_ip] = now

        records.append(record)
        self._purge(records, now)

    def window(self, source_ip: str, now: float) -> List[TrafficRecord]:
        """Return the source's retained records, oldest first."""
        records = self._history.get(source_ip)
        if not records:
            return []
        return [r for r in records if not self._expired(r, now)]

    def clear(self) -> None:
        with self._guard:
            self._history.clear()
            self._last_seen.clear()
            for ip in [ip for ip, entry in self._locks.items() if not entry.users]:
                del self._locks[ip]

    # ── Maintenance ──────────────────────────────────────

    def _expired(self, record: TrafficRecord, now: float) -> bool:
        return now - record.timestamp > self.retention_sec

    def _purge(self, records: Deque[TrafficRecord], now: float) -> None:
        while records and self._expired(records[0], now):
            records.popleft()
        # Arrival order may disagree with timestamp order; drop stragglers too
        if any(self._expired(r, now) for r in records):
            kept = [r for r in records if not self._expired(r, now)]
            records.clear()
            records.extend(kept)

    def sweep(self, now: float) -> int:
        """Drop every idle source whose whole history has expired."""
        with self._guard:
            stale = [
                ip for ip, seen in self._last_seen.items()
                if now - seen > self.retention_sec
                and not self._in_use(ip)
                and all(self._expired(r, now) for r in self._history.get(ip, ()))
            ]
            for ip in stale:
                self._drop(ip)
        if stale:
            logger.debug("Swept %d idle sources", len(stale))
        return len(stale)

    # The helpers below expect self._guard to be held

    def _in_use(self, source_ip: str) -> bool:
        entry = self._locks.get(source_ip)
        return entry is not None and entry.users > 0

    def _evict_oldest(self) -> None:
        idle = [ip for ip in self._last_seen if not self._in_use(ip)]
        if not idle:
            return
        oldest_ip = min(idle, key=self._last_seen.__getitem__)
        self._drop(oldest_ip)
        logger.debug("History at capacity, evicted %s", oldest_ip)

    def _drop(self, source_ip: str) -> None:
        self._history.pop(source_ip, None)
        self._last_seen.pop(source_ip, None)
        self._locks.pop(source_ip, None)
