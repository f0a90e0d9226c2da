"""
TrafficWatch - Threat Scorer.

Rule-based, explainable classifier mapping a feature vector to a threat
score between 0.0 and 1.0 and a suspicious / benign verdict.
"""

from __future__ import annotations

import logging

from trafficwatch.detection.features import FeatureVector

logger = logging.getLogger("trafficwatch.detection.scorer")

RATE_THRESHOLD = 100
PACKET_SIZE_THRESHOLD = 1500
SMALL_PACKET_THRESHOLD = 100
BURST_THRESHOLD = 50
VARIANCE_THRESHOLD = 1000
SUSPICIOUS_THRESHOLD = 0.6


class ThreatScorer:
    """
    Additive point scheme.

    Every rule that fires adds its points independently, so co-occurring
    signals compound; the total is capped at 1.0. Points are kept in
    hundredths so the sum is exact and the verdict boundary is stable.
    """

    POINTS = {
        "high_rate": 30,
        "oversized_packet": 15,
        "undersized_packet": 20,
        "suspicious_port": 15,
        "burst": 25,
        "rate_variance": 10,
        "small_packet_flood": 15,
    }

    def score(self, features: FeatureVector) -> float:
        """Return the composite threat score for the given features."""
        total = sum(self.POINTS[rule] for rule in self._matching_rules(features))
        return min(total, 100) / 100

    def explain(self, features: FeatureVector) -> dict[str, float]:
        """Return each fired rule with its contribution."""
        return {
            rule: self.POINTS[rule] / 100
            for rule in self._matching_rules(features)
        }

    @staticmethod
    def is_suspicious(score: float) -> bool:
        return score > SUSPICIOUS_THRESHOLD

    # ── Rules ────────────────────────────────────────────

    @staticmethod
    def _matching_rules(f: FeatureVector) -> list[str]:
        rules: list[str] = []

        if f.request_rate > RATE_THRESHOLD:
            rules.append("high_rate")

        # Oversized and undersized packets are mutually exclusive
        if f.packet_size > PACKET_SIZE_THRESHOLD:
            rules.append("oversized_packet")
        elif f.packet_size < SMALL_PACKET_THRESHOLD:
            rules.append("undersized_packet")

        if f.is_suspicious_port:
            rules.append("suspicious_port")

        if f.burst_count > BURST_THRESHOLD:
            rules.append("burst")

        if f.request_variance > VARIANCE_THRESHOLD:
            rules.append("rate_variance")

        # Many small packets at an elevated rate
        if f.avg_packet_size < 200 and f.request_rate > 50:
            rules.append("small_packet_flood")

        return rules
