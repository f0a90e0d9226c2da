"""
TrafficWatch - IP Reputation.

Derives a 0-100 trust score for a source from its retained history.
The entry is recomputed from scratch each time, so it recovers on its
own as old records age out of the window.
"""

from __future__ import annotations

import logging
from typing import Sequence

from trafficwatch.detection.models import ReputationEntry, TrafficRecord

logger = logging.getLogger("trafficwatch.detection.reputation")

BASELINE_SCORE = 50.0
BLOCK_THRESHOLD = 30.0
MAJORITY_SUSPICIOUS_PENALTY = 20.0
FLOOD_RATE = 500
FLOOD_PENALTY = 15.0


class ReputationCalculator:

    def calculate(
        self, source_ip: str, history: Sequence[TrafficRecord],
    ) -> ReputationEntry:
        total = len(history)
        suspicious = sum(1 for r in history if r.is_suspicious)

        if total == 0:
            return ReputationEntry(
                ip_address=source_ip,
                reputation_score=BASELINE_SCORE,
                total_requests=0,
                suspicious_requests=0,
                is_blocked=False,
            )

        ratio = suspicious / total
        score = 100 - ratio * 100
        if ratio > 0.5:
            score -= MAJORITY_SUSPICIOUS_PENALTY
        if any(r.request_rate > FLOOD_RATE for r in history):
            score -= FLOOD_PENALTY
        score = min(100.0, max(0.0, score))

        is_blocked = score < BLOCK_THRESHOLD
        block_reason = (
            f"High suspicious activity rate: {ratio * 100:.1f}%"
            if is_blocked else None
        )
        if is_blocked:
            logger.debug("%s below block threshold (score=%.1f)", source_ip, score)

        return ReputationEntry(
            ip_address=source_ip,
            reputation_score=score,
            total_requests=total,
            suspicious_requests=suspicious,
            is_blocked=is_blocked,
            block_reason=block_reason,
        )
