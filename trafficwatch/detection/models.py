"""
TrafficWatch - Detection Data Model.

Shared vocabulary of the detection engine: traffic samples, classified
records, attack alerts and per-source reputation entries.
"""

from __future__ import annotations

import time
import uuid
from dataclasses import asdict, dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Optional


class Protocol(str, Enum):
    TCP = "TCP"
    UDP = "UDP"
    ICMP = "ICMP"
    OTHER = "OTHER"

    @classmethod
    def parse(cls, value: str) -> "Protocol":
        try:
            return cls(value.upper())
        except ValueError:
            return cls.OTHER


class Severity(str, Enum):
    """Alert severity, ordered low < medium < high < critical."""
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"
    CRITICAL = "critical"

    @property
    def rank(self) -> int:
        return _SEVERITY_ORDER.index(self)

    def at_least(self, other: "Severity") -> "Severity":
        return self if self.rank >= other.rank else other


_SEVERITY_ORDER = [Severity.LOW, Severity.MEDIUM, Severity.HIGH, Severity.CRITICAL]


class AlertStatus(str, Enum):
    ACTIVE = "active"
    MITIGATED = "mitigated"
    FALSE_POSITIVE = "false_positive"


class AlertStateError(Exception):
    """Raised when a resolved alert is asked to change status again."""


def isoformat(ts: Optional[float]) -> Optional[str]:
    if ts is None:
        return None
    return datetime.fromtimestamp(ts, tz=timezone.utc).isoformat(timespec="milliseconds")


@dataclass(frozen=True)
class TrafficSample:
    """A single pre-parsed connection summary, not yet classified."""
    timestamp: float
    source_ip: str
    destination_ip: str
    port: int
    protocol: Protocol
    packet_size: int
    request_rate: float

    def to_dict(self) -> dict:
        data = asdict(self)
        data["protocol"] = self.protocol.value
        data["timestamp"] = isoformat(self.timestamp)
        return data


@dataclass(frozen=True)
class TrafficRecord(TrafficSample):
    """A sample with its threat score and verdict attached."""
    is_suspicious: bool
    threat_score: float

    @classmethod
    def classified(
        cls, sample: TrafficSample, threat_score: float, is_suspicious: bool,
    ) -> "TrafficRecord":
        return cls(
            timestamp=sample.timestamp,
            source_ip=sample.source_ip,
            destination_ip=sample.destination_ip,
            port=sample.port,
            protocol=sample.protocol,
            packet_size=sample.packet_size,
            request_rate=sample.request_rate,
            is_suspicious=is_suspicious,
            threat_score=threat_score,
        )


@dataclass
class Alert:
    """
    An attack-pattern alert for one source address.

    Created by the pattern detector with status ``active``. Only the
    external resolution workflow moves it to ``mitigated`` or
    ``false_positive``; both are terminal.
    """
    alert_type: str
    severity: Severity
    source_ip: str
    target: str
    detection_time: float
    packet_count: int
    avg_request_rate: float
    status: AlertStatus = AlertStatus.ACTIVE
    mitigation_action: Optional[str] = None
    notes: Optional[str] = None
    resolved_at: Optional[float] = None
    id: str = field(default_factory=lambda: uuid.uuid4().hex)

    @property
    def is_active(self) -> bool:
        return self.status is AlertStatus.ACTIVE

    def mitigate(self, action: str, notes: Optional[str] = None) -> None:
        self._resolve(AlertStatus.MITIGATED, notes)
        self.mitigation_action = action

    def mark_false_positive(self, notes: Optional[str] = None) -> None:
        self._resolve(AlertStatus.FALSE_POSITIVE, notes)

    def _resolve(self, status: AlertStatus, notes: Optional[str]) -> None:
        if not self.is_active:
            raise AlertStateError(
                f"Alert {self.id} is already {self.status.value}"
            )
        self.status = status
        self.resolved_at = time.time()
        if notes is not None:
            self.notes = notes

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "alert_type": self.alert_type,
            "severity": self.severity.value,
            "source_ip": self.source_ip,
            "target": self.target,
            "detection_time": isoformat(self.detection_time),
            "packet_count": self.packet_count,
            "avg_request_rate": self.avg_request_rate,
            "status": self.status.value,
            "mitigation_action": self.mitigation_action,
            "notes": self.notes,
            "resolved_at": isoformat(self.resolved_at),
        }


@dataclass(frozen=True)
class ReputationEntry:
    """Trust score for one source, derived from its retained history."""
    ip_address: str
    reputation_score: float
    total_requests: int
    suspicious_requests: int
    is_blocked: bool
    block_reason: Optional[str] = None

    def to_dict(self) -> dict:
        return asdict(self)


@dataclass(frozen=True)
class DetectionResult:
    """Everything one classification call produced."""
    record: TrafficRecord
    alert: Optional[Alert] = None
    reputation: Optional[ReputationEntry] = None
