"""
TrafficWatch - Feature Extraction.

Derives the fixed feature vector the threat scorer works on from a
single sample and the source's recent history.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Sequence

import numpy as np

from trafficwatch.detection.models import TrafficRecord, TrafficSample

# Administrative services commonly targeted by brute force / exploitation
SUSPICIOUS_PORTS = frozenset({22, 23, 3389, 445, 135})

DEFAULT_BURST_WINDOW_SEC = 5.0


@dataclass(frozen=True)
class FeatureVector:
    request_rate: float
    packet_size: int
    is_suspicious_port: bool
    burst_count: int
    avg_packet_size: float
    request_variance: float


class FeatureExtractor:
    """Reads history, never writes it."""

    def __init__(self, burst_window_sec: float = DEFAULT_BURST_WINDOW_SEC) -> None:
        self.burst_window_sec = burst_window_sec

    def extract(
        self,
        sample: TrafficSample,
        history: Sequence[TrafficRecord],
        now: float,
    ) -> FeatureVector:
        """
        Build the feature vector for ``sample``.

        ``history`` is the source's retained window *before* the sample
        is added; only its records inside the burst window ending at
        ``now`` contribute.
        """
        burst = [r for r in history if now - r.timestamp < self.burst_window_sec]

        if burst:
            sizes = np.array([r.packet_size for r in burst], dtype=float)
            rates = np.array([r.request_rate for r in burst], dtype=float)
            avg_packet_size = float(np.mean(sizes))
            request_variance = float(np.var(rates))  # population variance
        else:
            avg_packet_size = float(sample.packet_size)
            request_variance = 0.0

        return FeatureVector(
            request_rate=sample.request_rate,
            packet_size=sample.packet_size,
            is_suspicious_port=sample.port in SUSPICIOUS_PORTS,
            burst_count=len(burst),
            avg_packet_size=avg_packet_size,
            request_variance=request_variance,
        )
