"""
Tests for feature extraction.
"""

import pytest

from conftest import NOW, make_record, make_sample
from trafficwatch.detection.features import FeatureExtractor


@pytest.fixture
def extractor():
    return FeatureExtractor(burst_window_sec=5.0)


def test_empty_history_falls_back_to_own_packet_size(extractor):
    features = extractor.extract(make_sample(packet_size=700), [], NOW)
    assert features.burst_count == 0
    assert features.avg_packet_size == 700
    assert features.request_variance == 0.0


@pytest.mark.parametrize("port,expected", [
    (22, True), (23, True), (3389, True), (445, True), (135, True),
    (80, False), (443, False), (0, False),
])
def test_suspicious_port_set(extractor, port, expected):
    features = extractor.extract(make_sample(port=port), [], NOW)
    assert features.is_suspicious_port is expected


def test_burst_statistics_use_only_recent_records(extractor):
    history = [
        make_record(timestamp=NOW - 10, packet_size=5000, request_rate=9000),
        make_record(timestamp=NOW - 2, packet_size=100, request_rate=100),
        make_record(timestamp=NOW - 1, packet_size=300, request_rate=300),
    ]
    features = extractor.extract(make_sample(packet_size=50, request_rate=1), history, NOW)

    assert features.burst_count == 2
    assert features.avg_packet_size == pytest.approx(200)
    # Population variance of [100, 300]
    assert features.request_variance == pytest.approx(10_000)
    # Raw values come from the sample itself
    assert features.packet_size == 50
    assert features.request_rate == 1


def test_burst_window_excludes_its_lower_edge(extractor):
    history = [make_record(timestamp=NOW - 5.0)]
    features = extractor.extract(make_sample(), history, NOW)
    assert features.burst_count == 0


def test_extraction_is_deterministic(extractor):
    history = [make_record(timestamp=NOW - i * 0.5, request_rate=i * 10) for i in range(8)]
    sample = make_sample(request_rate=55)
    assert extractor.extract(sample, history, NOW) == extractor.extract(sample, history, NOW)
