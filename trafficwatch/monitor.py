"""
TrafficWatch - Traffic Monitor.

Drives the detection engine and forwards what it produces to the
durability sink, the notification dispatchers and the blocklist.
Keeps the bounded in-memory views the API and WebSocket feed read.
"""

from __future__ import annotations

import asyncio
import logging
from collections import deque
from typing import Awaitable, Callable, Deque, Dict, Optional, Set

from trafficwatch.alerts.dispatcher import AlertManager, alert_manager
from trafficwatch.config import settings
from trafficwatch.detection.engine import DetectionEngine, detection_engine
from trafficwatch.detection.models import (
    Alert,
    DetectionResult,
    ReputationEntry,
    TrafficRecord,
    TrafficSample,
)
from trafficwatch.mitigation.blocklist import Blocklist, blocklist
from trafficwatch.storage.database import Database, database

logger = logging.getLogger("trafficwatch.monitor")

TrafficSource = Callable[[], TrafficSample]

# Most recent traffic logs restored from the database at startup
HYDRATED_LOGS = 50


class InvalidSampleError(ValueError):
    """A sample whose timestamp cannot be accepted."""


class OutOfOrderSampleError(InvalidSampleError):
    """A sample is older than the last one accepted for its source."""


class FutureSampleError(InvalidSampleError):
    """A sample is timestamped too far ahead of the local clock."""


class TrafficMonitor:
    """Host loop around the detection engine."""

    def __init__(
        self,
        engine: DetectionEngine,
        db: Optional[Database] = None,
        alerts: Optional[AlertManager] = None,
        blocks: Optional[Blocklist] = None,
        logs_limit: int = 100,
        alerts_limit: int = 50,
        max_clock_skew_sec: float = 5.0,
    ) -> None:
        self.engine = engine
        self.db = db
        self.alerts = alerts
        self.blocks = blocks
        self.max_clock_skew_sec = max_clock_skew_sec

        self.recent_logs: Deque[TrafficRecord] = deque(maxlen=logs_limit)
        self.recent_alerts: Deque[Alert] = deque(maxlen=alerts_limit)
        self.reputations: Dict[str, ReputationEntry] = {}
        self._last_timestamp: Dict[str, float] = {}
        self._feed: Deque[TrafficRecord] = deque(maxlen=1000)
        self.records_processed = 0
        self._last_sweep: float = 0.0

        self._task: Optional[asyncio.Task] = None
        # Side effects (writes, notifications, block records) run off the ingest path
        self._pending: Set[asyncio.Task] = set()
        self._write_lock = asyncio.Lock()
        self._running = False

    @property
    def is_monitoring(self) -> bool:
        return self._running

    # ── Ingest ───────────────────────────────────────────

    async def process(self, sample: TrafficSample) -> DetectionResult:
        """
        Classify one sample and hand the results to collaborators.

        Returns as soon as the in-memory state is updated. Database
        writes, notifications and block records run as background tasks.
        """
        self._check_timestamp(sample)
        self._last_timestamp[sample.source_ip] = sample.timestamp

        result = self.engine.classify(sample)
        self._maybe_sweep()

        self.recent_logs.appendleft(result.record)
        self._feed.append(result.record)
        self.records_processed += 1
        self._write("save_traffic_log", result.record)

        if result.alert is not None:
            self.recent_alerts.appendleft(result.alert)
            self._write("save_alert", result.alert)
            if self.alerts is not None:
                self._spawn(self.alerts.notify(result.alert))

        if result.reputation is not None:
            entry = result.reputation
            self.reputations[entry.ip_address] = entry
            self._write("upsert_reputation", entry, sample.timestamp)
            if entry.is_blocked and self.blocks is not None:
                self._spawn(self.blocks.record(entry))

        return result

    def _check_timestamp(self, sample: TrafficSample) -> None:
        now = self.engine.clock()
        if sample.timestamp - now > self.max_clock_skew_sec:
            raise FutureSampleError(
                f"Sample from {sample.source_ip} at {sample.timestamp} is "
                f"{sample.timestamp - now:.1f}s ahead of the local clock"
            )
        last = self._last_timestamp.get(sample.source_ip)
        if last is not None and sample.timestamp < last:
            raise OutOfOrderSampleError(
                f"Sample from {sample.source_ip} at {sample.timestamp} "
                f"is older than the last accepted ({last})"
            )

    def _maybe_sweep(self) -> None:
        """Let the engine forget idle sources, at most once per retention window."""
        now = self.engine.clock()
        if now - self._last_sweep < self.engine.history.retention_sec:
            return
        self._last_sweep = now
        self.engine.sweep(now)
        retention = self.engine.history.retention_sec
        self._last_timestamp = {
            ip: ts for ip, ts in self._last_timestamp.items() if now - ts <= retention
        }

    # ── Background side effects ──────────────────────────

    def _spawn(self, coro: Awaitable) -> asyncio.Task:
        task = asyncio.create_task(coro)
        self._pending.add(task)
        task.add_done_callback(self._task_done)
        return task

    def _task_done(self, task: asyncio.Task) -> None:
        self._pending.discard(task)
        if not task.cancelled() and task.exception() is not None:
            logger.error("Background task failed", exc_info=task.exception())

    def _write(self, operation: str, *args) -> None:
        if self.db is not None:
            self._spawn(self._persist(operation, *args))

    async def _persist(self, operation: str, *args) -> None:
        """Best-effort durability write; the in-memory result always stands."""
        if self.db is None:
            return
        # Writes acquire the lock in the order they were issued
        async with self._write_lock:
            try:
                await getattr(self.db, operation)(*args)
            except Exception:
                logger.exception("Persistence write failed (%s)", operation)

    async def drain(self) -> None:
        """Wait for outstanding background writes and notifications."""
        while self._pending:
            await asyncio.gather(*self._pending, return_exceptions=True)

    # ── Alert resolution ─────────────────────────────────

    def get_alert(self, alert_id: str) -> Alert:
        for alert in self.recent_alerts:
            if alert.id == alert_id:
                return alert
        raise KeyError(alert_id)

    async def mitigate_alert(
        self, alert_id: str, action: str, notes: Optional[str] = None,
    ) -> Alert:
        alert = self.get_alert(alert_id)
        alert.mitigate(action, notes)
        logger.info("Alert %s mitigated: %s", alert_id, action)
        # Queued behind writes already issued, e.g. the alert insert
        await self._spawn(self._persist("update_alert_status", alert))
        return alert

    async def mark_false_positive(
        self, alert_id: str, notes: Optional[str] = None,
    ) -> Alert:
        alert = self.get_alert(alert_id)
        alert.mark_false_positive(notes)
        logger.info("Alert %s marked as false positive", alert_id)
        await self._spawn(self._persist("update_alert_status", alert))
        return alert

    # ── Views ────────────────────────────────────────────

    def stats(self) -> dict:
        logs = list(self.recent_logs)
        return {
            "total_requests": len(logs),
            "suspicious_requests": sum(1 for r in logs if r.is_suspicious),
            "active_alerts": sum(1 for a in self.recent_alerts if a.is_active),
            "blocked_ips": sum(1 for e in self.reputations.values() if e.is_blocked),
            "tracked_sources": len(self.engine.history),
            "is_monitoring": self.is_monitoring,
        }

    def records_since(self, cursor: int) -> tuple[list[TrafficRecord], int]:
        """
        Return records classified after ``cursor`` and the new cursor.

        Readers falling more than the feed length behind lose the gap.
        """
        missed = self.records_processed - cursor
        if missed <= 0:
            return [], self.records_processed
        records = list(self._feed)[-missed:]
        return records, self.records_processed

    async def load_recent(self) -> None:
        """Hydrate dashboard views from the database (logs, alerts, reputations)."""
        if self.db is None:
            return
        try:
            log_rows = await self.db.recent_traffic_logs(limit=HYDRATED_LOGS)
            alert_rows = await self.db.recent_alerts(limit=self.recent_alerts.maxlen)
            rows = await self.db.reputations()
        except Exception:
            logger.exception("Could not load recent data from the database")
            return
        # Rows arrive newest first; keep that order in the deques
        if not self.recent_logs:
            for row in reversed(log_rows):
                self.recent_logs.appendleft(row.to_record())
        known = {a.id for a in self.recent_alerts}
        for row in reversed(alert_rows):
            if row.id not in known:
                self.recent_alerts.appendleft(row.to_alert())
        for row in rows:
            self.reputations.setdefault(row.ip_address, ReputationEntry(
                ip_address=row.ip_address,
                reputation_score=row.reputation_score,
                total_requests=row.total_requests,
                suspicious_requests=row.suspicious_requests,
                is_blocked=row.is_blocked,
                block_reason=row.block_reason,
            ))
        logger.info(
            "Loaded %d traffic logs, %d alerts and %d reputation entries",
            len(log_rows), len(alert_rows), len(rows),
        )

    def reset(self) -> None:
        self.engine.reset()
        self.recent_logs.clear()
        self.recent_alerts.clear()
        self.reputations.clear()
        self._last_timestamp.clear()
        self._feed.clear()
        self.records_processed = 0

    # ── Background monitoring ────────────────────────────

    async def start(self, source: TrafficSource, interval_sec: float) -> bool:
        """Start feeding samples from ``source``. False if already running."""
        if self._running:
            return False
        self._running = True
        self._task = asyncio.create_task(self._run(source, interval_sec))
        logger.info("Monitoring started (interval %.2fs)", interval_sec)
        return True

    async def stop(self) -> None:
        self._running = False
        if self._task:
            self._task.cancel()
            try:
                await self._task
            except asyncio.CancelledError:
                pass
            self._task = None
            logger.info("Monitoring stopped")
        await self.drain()

    async def _run(self, source: TrafficSource, interval_sec: float) -> None:
        while self._running:
            try:
                await self.process(source())
            except InvalidSampleError as exc:
                logger.warning("Dropped sample: %s", exc)
            except asyncio.CancelledError:
                break
            except Exception:
                logger.exception("Error while processing synthetic traffic")
            await asyncio.sleep(interval_sec)


monitor = TrafficMonitor(
    engine=detection_engine,
    db=database if settings.persistence_enabled else None,
    alerts=alert_manager,
    blocks=blocklist,
    logs_limit=settings.recent_logs_limit,
    alerts_limit=settings.recent_alerts_limit,
    max_clock_skew_sec=settings.max_clock_skew_sec,
)
