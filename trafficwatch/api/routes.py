"""
TrafficWatch - REST API Routes.

Traffic ingest, detection results, alert resolution, reputation and
monitor control.
"""

from __future__ import annotations

import time
from datetime import datetime
from typing import Optional

from fastapi import APIRouter, HTTPException, Query
from pydantic import BaseModel, Field

from simulator.traffic_generator import MockTrafficSource
from trafficwatch.config import settings
from trafficwatch.detection.models import AlertStateError, Protocol, TrafficSample
from trafficwatch.monitor import FutureSampleError, OutOfOrderSampleError, monitor
from trafficwatch.storage.redis_client import redis_manager

router = APIRouter(tags=["Detection API"])


# ── Schemas ──────────────────────────────────────────────


class TrafficIn(BaseModel):
    """One pre-parsed connection summary. Malformed values are rejected here."""
    timestamp: Optional[datetime] = Field(
        default=None, description="Defaults to the time of receipt",
    )
    source_ip: str = Field(min_length=1, max_length=45)
    destination_ip: str = Field(min_length=1, max_length=45)
    port: int = Field(ge=0, le=65535)
    protocol: str = "TCP"
    packet_size: int = Field(ge=0)
    request_rate: float = Field(ge=0)

    def to_sample(self) -> TrafficSample:
        return TrafficSample(
            timestamp=self.timestamp.timestamp() if self.timestamp else time.time(),
            source_ip=self.source_ip,
            destination_ip=self.destination_ip,
            port=self.port,
            protocol=Protocol.parse(self.protocol),
            packet_size=self.packet_size,
            request_rate=self.request_rate,
        )


class MitigateRequest(BaseModel):
    action: str = Field(min_length=1)
    notes: Optional[str] = None


class FalsePositiveRequest(BaseModel):
    notes: Optional[str] = None


class StatsResponse(BaseModel):
    uptime: float
    total_requests: int
    suspicious_requests: int
    active_alerts: int
    blocked_ips: int
    tracked_sources: int
    is_monitoring: bool


# ── State ────────────────────────────────────────────────

_start_time = time.time()


# ── Endpoints ────────────────────────────────────────────


@router.get("/health")
async def health_check():
    """Health check; Redis is optional and reported separately."""
    return {
        "status": "healthy",
        "version": "0.1.0",
        "redis": await redis_manager.health_check(),
    }


@router.get("/stats", response_model=StatsResponse)
async def get_stats():
    """Return current counters for the dashboard."""
    return StatsResponse(uptime=time.time() - _start_time, **monitor.stats())


@router.post("/traffic")
async def ingest_traffic(sample: TrafficIn):
    """Classify one traffic sample."""
    try:
        result = await monitor.process(sample.to_sample())
    except FutureSampleError as exc:
        raise HTTPException(status_code=422, detail=str(exc))
    except OutOfOrderSampleError as exc:
        raise HTTPException(status_code=409, detail=str(exc))
    return {
        "record": result.record.to_dict(),
        "alert": result.alert.to_dict() if result.alert else None,
        "reputation": result.reputation.to_dict() if result.reputation else None,
    }


@router.get("/traffic")
async def get_recent_traffic(
    limit: int = Query(50, ge=1, le=1000),
    suspicious_only: bool = Query(False),
):
    """Most recent classified records, newest first."""
    records = [
        r for r in monitor.recent_logs
        if r.is_suspicious or not suspicious_only
    ][:limit]
    return {"traffic": [r.to_dict() for r in records], "count": len(records)}


@router.get("/alerts")
async def get_alerts(status: Optional[str] = Query(None)):
    """Recent alerts, newest first, optionally filtered by status."""
    alerts = [
        a for a in monitor.recent_alerts
        if status is None or a.status.value == status
    ]
    return {"alerts": [a.to_dict() for a in alerts], "count": len(alerts)}


@router.post("/alerts/{alert_id}/mitigate")
async def mitigate_alert(alert_id: str, req: MitigateRequest):
    """Record that an alert was mitigated with the given action."""
    try:
        alert = await monitor.mitigate_alert(alert_id, req.action, req.notes)
    except KeyError:
        raise HTTPException(status_code=404, detail=f"Unknown alert {alert_id}")
    except AlertStateError as exc:
        raise HTTPException(status_code=409, detail=str(exc))
    return alert.to_dict()


@router.post("/alerts/{alert_id}/false-positive")
async def mark_false_positive(alert_id: str, req: Optional[FalsePositiveRequest] = None):
    """Record that an alert was a false positive."""
    notes = req.notes if req else None
    try:
        alert = await monitor.mark_false_positive(alert_id, notes)
    except KeyError:
        raise HTTPException(status_code=404, detail=f"Unknown alert {alert_id}")
    except AlertStateError as exc:
        raise HTTPException(status_code=409, detail=str(exc))
    return alert.to_dict()


@router.get("/reputation")
async def get_reputations(blocked_only: bool = Query(False)):
    """Last computed reputation for every source seen acting suspiciously."""
    entries = sorted(
        (e for e in monitor.reputations.values() if e.is_blocked or not blocked_only),
        key=lambda e: e.reputation_score,
    )
    return {"reputations": [e.to_dict() for e in entries], "count": len(entries)}


@router.get("/reputation/{ip}")
async def get_reputation(ip: str):
    """Reputation computed live from the source's current window."""
    return monitor.engine.calculate_reputation(ip).to_dict()


@router.get("/engine")
async def engine_info():
    return monitor.engine.info()


@router.post("/monitor/start")
async def start_monitoring(seed: Optional[int] = Query(None)):
    """Start feeding synthetic traffic through the engine."""
    started = await monitor.start(
        MockTrafficSource(seed=seed), settings.monitor_interval_sec,
    )
    return {"status": "started" if started else "already_running"}


@router.post("/monitor/stop")
async def stop_monitoring():
    await monitor.stop()
    return {"status": "stopped"}
