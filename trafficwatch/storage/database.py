"""
TrafficWatch - SQLite Database (async via aiosqlite).

Durability sink for classified traffic logs, detection alerts and IP
reputation entries. The in-memory engine stays authoritative; nothing
here is read back on the hot path.
"""

from __future__ import annotations

import logging
from datetime import datetime, timezone
from typing import Optional

from sqlalchemy import Boolean, Column, DateTime, Float, Integer, String, Text, desc, func, select
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.orm import DeclarativeBase

from trafficwatch.config import settings
from trafficwatch.detection.models import (
    Alert,
    AlertStatus,
    Protocol,
    ReputationEntry,
    Severity,
    TrafficRecord,
)

logger = logging.getLogger("trafficwatch.storage.database")


def _dt(ts: Optional[float]) -> Optional[datetime]:
    if ts is None:
        return None
    return datetime.fromtimestamp(ts, tz=timezone.utc)


def _ts(value: Optional[datetime]) -> Optional[float]:
    if value is None:
        return None
    # SQLite hands datetimes back naive; they were written as UTC
    if value.tzinfo is None:
        value = value.replace(tzinfo=timezone.utc)
    return value.timestamp()


def _iso(value: Optional[datetime]) -> Optional[str]:
    return value.isoformat() if value is not None else None


# ── ORM Base ─────────────────────────────────────────────


class Base(DeclarativeBase):
    pass


# ── Models ───────────────────────────────────────────────


class TrafficLog(Base):
    """Every classified traffic record."""
    __tablename__ = "traffic_logs"

    id = Column(Integer, primary_key=True, autoincrement=True)
    timestamp = Column(DateTime(timezone=True), nullable=False, index=True)
    source_ip = Column(String(45), nullable=False, index=True)
    destination_ip = Column(String(45), nullable=False)
    port = Column(Integer, nullable=False)
    protocol = Column(String(10), nullable=False)
    packet_size = Column(Integer, nullable=False)
    request_rate = Column(Float, nullable=False)
    is_suspicious = Column(Boolean, nullable=False, default=False)
    threat_score = Column(Float, nullable=False, default=0.0)

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "timestamp": _iso(self.timestamp),
            "source_ip": self.source_ip,
            "destination_ip": self.destination_ip,
            "port": self.port,
            "protocol": self.protocol,
            "packet_size": self.packet_size,
            "request_rate": self.request_rate,
            "is_suspicious": self.is_suspicious,
            "threat_score": self.threat_score,
        }

    def to_record(self) -> TrafficRecord:
        return TrafficRecord(
            timestamp=_ts(self.timestamp),
            source_ip=self.source_ip,
            destination_ip=self.destination_ip,
            port=self.port,
            protocol=Protocol.parse(self.protocol),
            packet_size=self.packet_size,
            request_rate=self.request_rate,
            is_suspicious=self.is_suspicious,
            threat_score=self.threat_score,
        )


class DetectionAlert(Base):
    """Attack-pattern alerts and their resolution state."""
    __tablename__ = "detection_alerts"

    id = Column(String(32), primary_key=True)
    alert_type = Column(String(50), nullable=False)
    severity = Column(String(10), nullable=False)
    source_ip = Column(String(45), nullable=False, index=True)
    target = Column(String(45), nullable=False)
    detection_time = Column(DateTime(timezone=True), nullable=False, index=True)
    packet_count = Column(Integer, nullable=False)
    avg_request_rate = Column(Float, nullable=False)
    status = Column(String(20), nullable=False, default="active")
    mitigation_action = Column(Text, nullable=True)
    notes = Column(Text, nullable=True)
    resolved_at = Column(DateTime(timezone=True), nullable=True)

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "alert_type": self.alert_type,
            "severity": self.severity,
            "source_ip": self.source_ip,
            "target": self.target,
            "detection_time": _iso(self.detection_time),
            "packet_count": self.packet_count,
            "avg_request_rate": self.avg_request_rate,
            "status": self.status,
            "mitigation_action": self.mitigation_action,
            "notes": self.notes,
            "resolved_at": _iso(self.resolved_at),
        }

    def to_alert(self) -> Alert:
        return Alert(
            id=self.id,
            alert_type=self.alert_type,
            severity=Severity(self.severity),
            source_ip=self.source_ip,
            target=self.target,
            detection_time=_ts(self.detection_time),
            packet_count=self.packet_count,
            avg_request_rate=self.avg_request_rate,
            status=AlertStatus(self.status),
            mitigation_action=self.mitigation_action,
            notes=self.notes,
            resolved_at=_ts(self.resolved_at),
        )


class IPReputation(Base):
    """Latest reputation per source address (upserted)."""
    __tablename__ = "ip_reputation"

    ip_address = Column(String(45), primary_key=True)
    reputation_score = Column(Float, nullable=False)
    total_requests = Column(Integer, nullable=False)
    suspicious_requests = Column(Integer, nullable=False)
    is_blocked = Column(Boolean, nullable=False, default=False)
    block_reason = Column(Text, nullable=True)
    last_seen = Column(DateTime(timezone=True), default=func.now())
    updated_at = Column(DateTime(timezone=True), default=func.now())

    def to_dict(self) -> dict:
        return {
            "ip_address": self.ip_address,
            "reputation_score": self.reputation_score,
            "total_requests": self.total_requests,
            "suspicious_requests": self.suspicious_requests,
            "is_blocked": self.is_blocked,
            "block_reason": self.block_reason,
            "last_seen": _iso(self.last_seen),
            "updated_at": _iso(self.updated_at),
        }


# ── Engine & Session ─────────────────────────────────────


class Database:
    """Async engine + session factory with the sink operations."""

    def __init__(self, url: str) -> None:
        self.url = url
        self.engine = create_async_engine(url, echo=False)
        self.session = async_sessionmaker(
            self.engine, class_=AsyncSession, expire_on_commit=False,
        )

    async def init(self) -> None:
        """Create all tables."""
        async with self.engine.begin() as conn:
            await conn.run_sync(Base.metadata.create_all)
        logger.info("Database tables created / verified")

    async def dispose(self) -> None:
        await self.engine.dispose()

    # ── Writes ───────────────────────────────────────────

    async def save_traffic_log(self, record: TrafficRecord) -> None:
        async with self.session() as session:
            session.add(TrafficLog(
                timestamp=_dt(record.timestamp),
                source_ip=record.source_ip,
                destination_ip=record.destination_ip,
                port=record.port,
                protocol=record.protocol.value,
                packet_size=record.packet_size,
                request_rate=record.request_rate,
                is_suspicious=record.is_suspicious,
                threat_score=record.threat_score,
            ))
            await session.commit()

    async def save_alert(self, alert: Alert) -> None:
        async with self.session() as session:
            session.add(DetectionAlert(
                id=alert.id,
                alert_type=alert.alert_type,
                severity=alert.severity.value,
                source_ip=alert.source_ip,
                target=alert.target,
                detection_time=_dt(alert.detection_time),
                packet_count=alert.packet_count,
                avg_request_rate=alert.avg_request_rate,
                status=alert.status.value,
                mitigation_action=alert.mitigation_action,
                notes=alert.notes,
                resolved_at=_dt(alert.resolved_at),
            ))
            await session.commit()

    async def upsert_reputation(self, entry: ReputationEntry, seen_at: float) -> None:
        """Insert or replace the reputation row for ``entry.ip_address``."""
        now = datetime.now(timezone.utc)
        async with self.session() as session:
            await session.merge(IPReputation(
                ip_address=entry.ip_address,
                reputation_score=entry.reputation_score,
                total_requests=entry.total_requests,
                suspicious_requests=entry.suspicious_requests,
                is_blocked=entry.is_blocked,
                block_reason=entry.block_reason,
                last_seen=_dt(seen_at),
                updated_at=now,
            ))
            await session.commit()

    async def update_alert_status(self, alert: Alert) -> bool:
        """Write an alert's resolution fields. Returns False if unknown."""
        async with self.session() as session:
            row = await session.get(DetectionAlert, alert.id)
            if row is None:
                return False
            row.status = alert.status.value
            row.mitigation_action = alert.mitigation_action
            row.notes = alert.notes
            row.resolved_at = _dt(alert.resolved_at)
            await session.commit()
            return True

    # ── Reads ────────────────────────────────────────────

    async def recent_traffic_logs(
        self, limit: int = 50, source_ip: Optional[str] = None,
    ) -> list[TrafficLog]:
        async with self.session() as session:
            stmt = select(TrafficLog)
            if source_ip:
                stmt = stmt.where(TrafficLog.source_ip == source_ip)
            stmt = stmt.order_by(desc(TrafficLog.timestamp)).limit(limit)
            result = await session.execute(stmt)
            return list(result.scalars().all())

    async def recent_alerts(
        self, limit: int = 20, status: Optional[str] = None,
    ) -> list[DetectionAlert]:
        async with self.session() as session:
            stmt = select(DetectionAlert)
            if status:
                stmt = stmt.where(DetectionAlert.status == status)
            stmt = stmt.order_by(desc(DetectionAlert.detection_time)).limit(limit)
            result = await session.execute(stmt)
            return list(result.scalars().all())

    async def reputations(self) -> list[IPReputation]:
        async with self.session() as session:
            stmt = select(IPReputation).order_by(desc(IPReputation.updated_at))
            result = await session.execute(stmt)
            return list(result.scalars().all())


database = Database(settings.database_url)
