"""
Shared fixtures for the detection tests.
"""

import pytest

from trafficwatch.detection.models import Protocol, TrafficRecord, TrafficSample

NOW = 1_700_000_000.0


def make_sample(
    timestamp: float = NOW,
    source_ip: str = "192.168.1.100",
    destination_ip: str = "172.16.0.1",
    port: int = 80,
    protocol: Protocol = Protocol.TCP,
    packet_size: int = 500,
    request_rate: float = 10.0,
) -> TrafficSample:
    return TrafficSample(
        timestamp=timestamp,
        source_ip=source_ip,
        destination_ip=destination_ip,
        port=port,
        protocol=protocol,
        packet_size=packet_size,
        request_rate=request_rate,
    )


def make_record(
    is_suspicious: bool = False,
    threat_score: float = 0.0,
    **kwargs,
) -> TrafficRecord:
    return TrafficRecord.classified(make_sample(**kwargs), threat_score, is_suspicious)


class FakeClock:
    """Manually advanced clock for deterministic windows."""

    def __init__(self, now: float = NOW) -> None:
        self.now = now

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


@pytest.fixture
def clock():
    return FakeClock()
