"""
Tests for the dashboard feed snapshots.
"""

from collections import deque

import pytest

from trafficwatch.api.websocket import _snapshot
from trafficwatch.detection.models import Alert, Severity
from trafficwatch.monitor import monitor


def make_alert(source_ip):
    return Alert(
        alert_type="Low-Rate DoS Attack",
        severity=Severity.MEDIUM,
        source_ip=source_ip,
        target="172.16.0.8",
        detection_time=1_700_000_000.0,
        packet_count=10,
        avg_request_rate=140.0,
    )


@pytest.fixture
def alerts(monkeypatch):
    shown = deque(maxlen=2)
    monkeypatch.setattr(monitor, "recent_alerts", shown)
    return shown


def test_new_alerts_reported_once(alerts):
    seen = set()
    alerts.appendleft(make_alert("192.168.1.100"))

    message, cursor = _snapshot(monitor.records_processed, seen)
    assert len(message["new_alerts"]) == 1

    message, _ = _snapshot(cursor, seen)
    assert message["new_alerts"] == []


def test_seen_ids_limited_to_displayed_alerts(alerts):
    seen = set()
    cursor = monitor.records_processed
    for i in range(10):
        alerts.appendleft(make_alert(f"192.168.1.{100 + i}"))
        message, cursor = _snapshot(cursor, seen)
        assert len(message["new_alerts"]) == 1

    assert seen == {a.id for a in alerts}
    assert len(seen) == 2
