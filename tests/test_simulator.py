"""
Tests for the synthetic traffic generator and simulator report.
"""

import pytest

from simulator.traffic_generator import (
    MockTrafficSource,
    SimulatorConfig,
    SimulatorReport,
    TrafficSimulator,
)
from trafficwatch.detection.models import Protocol


def test_same_seed_same_traffic():
    a = MockTrafficSource(seed=42, clock=lambda: 0.0)
    b = MockTrafficSource(seed=42, clock=lambda: 0.0)
    assert [a() for _ in range(20)] == [b() for _ in range(20)]


def test_attack_samples_come_from_attacker_pool():
    source = MockTrafficSource(seed=1)
    for _ in range(100):
        sample = source.generate(attack=True)
        assert sample.source_ip.startswith("192.168.1.")
        assert 100 <= int(sample.source_ip.rsplit(".", 1)[1]) <= 109
        assert 100 <= sample.request_rate < 500
        assert sample.packet_size < 100 or sample.packet_size >= 1500


def test_benign_samples_look_like_web_traffic():
    source = MockTrafficSource(seed=2)
    for _ in range(100):
        sample = source.generate(attack=False)
        assert sample.source_ip.startswith("10.0.")
        assert sample.port in (80, 443, 8080, 3000)
        assert 300 <= sample.packet_size < 1500
        assert 5 <= sample.request_rate < 85
        assert sample.protocol in (Protocol.TCP, Protocol.UDP, Protocol.ICMP)


def test_attack_ratio_zero_yields_benign_only():
    source = MockTrafficSource(seed=3, attack_ratio=0.0)
    assert all(source().source_ip.startswith("10.0.") for _ in range(50))


def test_report_suspicious_rate_zero_total():
    r = SimulatorReport(duration_sec=0)
    assert r.suspicious_rate == 0.0


def test_report_summary():
    r = SimulatorReport(duration_sec=10, total_sent=200, suspicious=50, alerts=3)
    summary = r.summary()
    assert "200" in summary
    assert "25.0%" in summary


def test_config_defaults():
    c = SimulatorConfig()
    assert c.target_url == "http://localhost:8000"
    assert c.duration_sec == 30
    assert c.rps == 20
    assert c.attack_ratio == 0.3


def test_record_response():
    sim = TrafficSimulator(SimulatorConfig(seed=1))

    sim._record_response(200, {"record": {"is_suspicious": True}, "alert": {"id": "x"}})
    sim._record_response(200, {"record": {"is_suspicious": False}, "alert": None})
    sim._record_response(409, {})
    sim._record_response(500, {})

    assert sim.report.total_sent == 4
    assert sim.report.suspicious == 1
    assert sim.report.alerts == 1
    assert sim.report.rejected == 1
    assert sim.report.errors == 1
