"""
TrafficWatch - Attack Pattern Detector.

Looks at a source's retained history and decides whether it amounts to
an ongoing attack, classifying it into a known category.
"""

from __future__ import annotations

import logging
from enum import Enum
from typing import Optional, Sequence

from trafficwatch.detection.features import SUSPICIOUS_PORTS
from trafficwatch.detection.models import Alert, Severity, TrafficRecord

logger = logging.getLogger("trafficwatch.detection.patterns")

MIN_RECORDS = 10
SUSPICIOUS_RATE_THRESHOLD = 0.7
ESCALATION_THREAT_SCORE = 0.8


class AttackType(str, Enum):
    HIGH_RATE_FLOOD = "High-Rate Flooding Attack"
    VOLUMETRIC_DOS = "Volumetric DoS Attack"
    LOW_RATE_DOS = "Low-Rate DoS Attack"
    TARGETED_PORT = "Targeted Port Attack"
    UNKNOWN = "Unknown DoS Attack"


class AttackPatternDetector:
    """
    Heuristic detector over a source's full retention window.

    Repeated calls for a source that keeps attacking return a fresh alert
    each time; deduplication is left to the caller.
    """

    def detect(
        self,
        source_ip: str,
        history: Sequence[TrafficRecord],
        now: float,
    ) -> Optional[Alert]:
        """Return an alert, or None if the evidence is insufficient or benign."""
        total = len(history)
        if total < MIN_RECORDS:
            return None

        suspicious = [r for r in history if r.is_suspicious]
        suspicious_rate = len(suspicious) / total
        if suspicious_rate <= SUSPICIOUS_RATE_THRESHOLD:
            return None

        avg_rate = sum(r.request_rate for r in history) / total
        avg_threat = sum(r.threat_score for r in suspicious) / len(suspicious)

        attack_type, severity = self._classify(avg_rate, suspicious)
        if avg_threat > ESCALATION_THREAT_SCORE:
            severity = severity.at_least(Severity.HIGH)

        alert = Alert(
            alert_type=attack_type.value,
            severity=severity,
            source_ip=source_ip,
            target=history[0].destination_ip if history else "unknown",
            detection_time=now,
            packet_count=total,
            avg_request_rate=avg_rate,
        )
        logger.warning(
            "%s from %s -> %s (severity=%s, suspicious=%.0f%%, avg_rate=%.1f)",
            alert.alert_type, source_ip, alert.target, severity.value,
            suspicious_rate * 100, avg_rate,
        )
        return alert

    @staticmethod
    def _classify(
        avg_rate: float, suspicious: Sequence[TrafficRecord],
    ) -> tuple[AttackType, Severity]:
        # First matching rule wins
        if avg_rate > 500:
            return AttackType.HIGH_RATE_FLOOD, Severity.CRITICAL
        if avg_rate > 200:
            return AttackType.VOLUMETRIC_DOS, Severity.HIGH
        if any(r.packet_size < 100 for r in suspicious):
            return AttackType.LOW_RATE_DOS, Severity.MEDIUM
        if any(r.port in SUSPICIOUS_PORTS for r in suspicious):
            return AttackType.TARGETED_PORT, Severity.HIGH
        return AttackType.UNKNOWN, Severity.MEDIUM
