"""
TrafficWatch - Detection Engine.

Orchestrates feature extraction, threat scoring, history tracking,
attack pattern detection and reputation for every incoming sample.
"""

from __future__ import annotations

import logging
import time
from typing import Callable, Optional

from trafficwatch.config import settings
from trafficwatch.detection.features import FeatureExtractor
from trafficwatch.detection.history import HistoryStore
from trafficwatch.detection.models import (
    Alert,
    DetectionResult,
    ReputationEntry,
    TrafficRecord,
    TrafficSample,
)
from trafficwatch.detection.patterns import AttackPatternDetector
from trafficwatch.detection.reputation import ReputationCalculator
from trafficwatch.detection.scorer import ThreatScorer

logger = logging.getLogger("trafficwatch.detection")


class DetectionEngine:
    """
    Central detection engine.

    Each call runs classify -> append to history -> (suspicious only)
    detect pattern -> recompute reputation, synchronously. Benign
    samples stop after the history update.
    """

    def __init__(
        self,
        history: Optional[HistoryStore] = None,
        extractor: Optional[FeatureExtractor] = None,
        scorer: Optional[ThreatScorer] = None,
        detector: Optional[AttackPatternDetector] = None,
        reputation: Optional[ReputationCalculator] = None,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self.history = history if history is not None else HistoryStore()
        self.extractor = extractor or FeatureExtractor()
        self.scorer = scorer or ThreatScorer()
        self.detector = detector or AttackPatternDetector()
        self.reputation = reputation or ReputationCalculator()
        self.clock = clock

    def classify(
        self, sample: TrafficSample, now: Optional[float] = None,
    ) -> DetectionResult:
        """Classify one sample and update the source's derived state."""
        now = self.clock() if now is None else now
        source_ip = sample.source_ip

        with self.history.lock(source_ip):
            prior = self.history.window(source_ip, now)
            features = self.extractor.extract(sample, prior, now)
            score = self.scorer.score(features)
            record = TrafficRecord.classified(
                sample, score, self.scorer.is_suspicious(score),
            )
            self.history.append(source_ip, record, now)

            if not record.is_suspicious:
                return DetectionResult(record=record)

            window = self.history.window(source_ip, now)
            alert = self.detector.detect(source_ip, window, now)
            reputation = self.reputation.calculate(source_ip, window)

        logger.debug(
            "Suspicious sample from %s (score=%.2f, window=%d)",
            source_ip, score, len(window),
        )
        return DetectionResult(record=record, alert=alert, reputation=reputation)

    def detect_attack_pattern(
        self, source_ip: str, now: Optional[float] = None,
    ) -> Optional[Alert]:
        now = self.clock() if now is None else now
        with self.history.lock(source_ip):
            window = self.history.window(source_ip, now)
        return self.detector.detect(source_ip, window, now)

    def calculate_reputation(
        self, source_ip: str, now: Optional[float] = None,
    ) -> ReputationEntry:
        now = self.clock() if now is None else now
        with self.history.lock(source_ip):
            window = self.history.window(source_ip, now)
        return self.reputation.calculate(source_ip, window)

    def sweep(self, now: Optional[float] = None) -> int:
        """Forget sources that have been idle for a whole retention window."""
        return self.history.sweep(self.clock() if now is None else now)

    def reset(self) -> None:
        """Forget all per-source history."""
        self.history.clear()
        logger.info("Detection engine state cleared")

    def info(self) -> dict:
        """Return engine status for API endpoints."""
        return {
            "tracked_sources": len(self.history),
            "retention_sec": self.history.retention_sec,
            "burst_window_sec": self.extractor.burst_window_sec,
        }


# Module-level singleton
detection_engine = DetectionEngine(
    history=HistoryStore(
        retention_sec=settings.history_retention_sec,
        max_sources=settings.max_tracked_sources,
    ),
    extractor=FeatureExtractor(burst_window_sec=settings.burst_window_sec),
)
