"""
Tests for the reputation calculator.
"""

import pytest

from conftest import NOW, make_record
from trafficwatch.detection.reputation import ReputationCalculator


@pytest.fixture
def calculator():
    return ReputationCalculator()


def records(suspicious, benign, rate=10.0):
    return (
        [make_record(is_suspicious=True, threat_score=0.7, request_rate=rate) for _ in range(suspicious)]
        + [make_record(timestamp=NOW + 1, request_rate=rate) for _ in range(benign)]
    )


def test_no_history_gives_baseline(calculator):
    entry = calculator.calculate("10.0.0.1", [])
    assert entry.reputation_score == 50
    assert entry.total_requests == 0
    assert entry.suspicious_requests == 0
    assert entry.is_blocked is False
    assert entry.block_reason is None


def test_clean_history_is_fully_trusted(calculator):
    entry = calculator.calculate("10.0.0.1", records(0, 10))
    assert entry.reputation_score == 100
    assert not entry.is_blocked


def test_minority_suspicious_scales_linearly(calculator):
    entry = calculator.calculate("10.0.0.1", records(2, 8))
    assert entry.reputation_score == pytest.approx(80)
    assert entry.suspicious_requests == 2
    assert entry.total_requests == 10


def test_majority_suspicious_penalty(calculator):
    # 60% suspicious: 100 - 60 - 20 = 20
    entry = calculator.calculate("10.0.0.1", records(6, 4))
    assert entry.reputation_score == pytest.approx(20)
    assert entry.is_blocked
    assert entry.block_reason == "High suspicious activity rate: 60.0%"


def test_flood_rate_penalty(calculator):
    # 0% suspicious, but one record above 500 req/s: 100 - 15
    history = records(0, 9) + [make_record(request_rate=501)]
    entry = calculator.calculate("10.0.0.1", history)
    assert entry.reputation_score == pytest.approx(85)


def test_score_is_clamped_and_reason_cites_percentage(calculator):
    entry = calculator.calculate("10.0.0.1", records(18, 2, rate=600))
    assert entry.reputation_score == 0
    assert entry.is_blocked is True
    assert "90.0%" in entry.block_reason


def test_block_threshold_is_strict(calculator):
    # 50% suspicious, no majority penalty: exactly 50 -> not blocked
    assert not calculator.calculate("s", records(5, 5)).is_blocked
    # 70% suspicious: 100 - 70 - 20 = 10 -> blocked
    assert calculator.calculate("s", records(7, 3)).is_blocked


def test_recomputation_is_pure(calculator):
    history = records(4, 6, rate=700)
    assert calculator.calculate("s", history) == calculator.calculate("s", history)
