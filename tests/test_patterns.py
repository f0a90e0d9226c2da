"""
Tests for the attack pattern detector.
"""

import pytest

from conftest import NOW, make_record
from trafficwatch.detection.models import AlertStatus, Severity
from trafficwatch.detection.patterns import AttackPatternDetector, AttackType


@pytest.fixture
def detector():
    return AttackPatternDetector()


def history(n_suspicious, n_benign=0, score=0.7, **suspicious_fields):
    records = [
        make_record(
            timestamp=NOW - 30 + i,
            is_suspicious=True,
            threat_score=score,
            destination_ip="172.16.0.7",
            **suspicious_fields,
        )
        for i in range(n_suspicious)
    ]
    records += [
        make_record(timestamp=NOW - 5 + i * 0.1, destination_ip="172.16.0.9")
        for i in range(n_benign)
    ]
    return records


def test_fewer_than_ten_records_never_alerts(detector):
    records = history(9, score=1.0, request_rate=900, packet_size=40)
    assert detector.detect("10.0.0.1", records, NOW) is None


def test_suspicious_rate_at_threshold_does_not_alert(detector):
    # 7 of 10 suspicious = 0.7 exactly
    assert detector.detect("10.0.0.1", history(7, 3, request_rate=300), NOW) is None


def test_suspicious_rate_above_threshold_alerts(detector):
    alert = detector.detect("10.0.0.1", history(8, 2, request_rate=300), NOW)
    assert alert is not None
    assert alert.status is AlertStatus.ACTIVE
    assert alert.packet_count == 10
    assert alert.source_ip == "10.0.0.1"
    assert alert.detection_time == NOW


def test_high_rate_flood_is_critical(detector):
    alert = detector.detect("s", history(10, request_rate=800), NOW)
    assert alert.alert_type == AttackType.HIGH_RATE_FLOOD.value
    assert alert.severity is Severity.CRITICAL


def test_volumetric_dos_is_high(detector):
    alert = detector.detect("s", history(10, request_rate=300, packet_size=50, port=22), NOW)
    assert alert.alert_type == "Volumetric DoS Attack"
    assert alert.severity is Severity.HIGH


def test_low_rate_dos_is_medium(detector):
    alert = detector.detect("s", history(10, request_rate=150, packet_size=60, port=22), NOW)
    assert alert.alert_type == "Low-Rate DoS Attack"
    assert alert.severity is Severity.MEDIUM


def test_targeted_port_attack_is_high(detector):
    alert = detector.detect("s", history(10, request_rate=150, packet_size=2000, port=3389), NOW)
    assert alert.alert_type == "Targeted Port Attack"
    assert alert.severity is Severity.HIGH


def test_unknown_attack_is_medium(detector):
    alert = detector.detect("s", history(10, request_rate=150, packet_size=2000), NOW)
    assert alert.alert_type == "Unknown DoS Attack"
    assert alert.severity is Severity.MEDIUM


def test_high_mean_threat_escalates_to_high(detector):
    alert = detector.detect(
        "s", history(10, score=0.85, request_rate=150, packet_size=2000), NOW,
    )
    assert alert.alert_type == "Unknown DoS Attack"
    assert alert.severity is Severity.HIGH


def test_escalation_keeps_critical(detector):
    alert = detector.detect("s", history(10, score=1.0, request_rate=900), NOW)
    assert alert.severity is Severity.CRITICAL


def test_average_rate_covers_whole_history(detector):
    # 9 suspicious at 250 + 1 benign at 10 -> average 226 (> 200)
    alert = detector.detect("s", history(9, 1, request_rate=250), NOW)
    assert alert.avg_request_rate == pytest.approx(226)
    assert alert.alert_type == "Volumetric DoS Attack"


def test_target_is_oldest_record_destination(detector):
    records = history(10, request_rate=300)
    records[0] = make_record(
        timestamp=NOW - 40, is_suspicious=True, threat_score=0.7,
        destination_ip="172.16.0.42", request_rate=300,
    )
    alert = detector.detect("s", records, NOW)
    assert alert.target == "172.16.0.42"


def test_repeated_detection_is_not_suppressed(detector):
    records = history(12, request_rate=300)
    first = detector.detect("s", records, NOW)
    second = detector.detect("s", records, NOW + 1)
    assert first is not None and second is not None
    assert first.id != second.id
