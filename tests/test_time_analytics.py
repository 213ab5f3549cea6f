from __future__ import annotations

import pytest

from journey_analyzer.analytics.time_analytics import (
    JourneyTimeAnalyzer,
    RiskLevel,
    assess_drop_off_risk,
    calculate_optimal_thresholds,
    detect_time_anomalies,
    format_duration,
)
from journey_analyzer.models.journey import ExitTrigger, PageType, SessionOutcome


def _visit(build_session, **fields):
    fields.setdefault("page", "agreement")
    return build_session("risk", [fields]).page_visits[0]


@pytest.mark.parametrize("fields, level", [
    ({"seconds": 30}, RiskLevel.HIGH),
    ({"seconds": 1500}, RiskLevel.CRITICAL),
    ({"seconds": 200, "engagement": 0.2}, RiskLevel.HIGH),
    ({"seconds": 200, "scroll": 10, "engagement": 0.6}, RiskLevel.MEDIUM),
    ({"seconds": 200, "scroll": 80, "engagement": 0.7}, RiskLevel.LOW),
])
def test_drop_off_risk_levels(build_session, fields, level):
    assert assess_drop_off_risk(_visit(build_session, **fields)).risk == level


def test_thresholds_fall_back_to_page_defaults(build_session):
    visits = build_session("s", [{"page": "agreement", "seconds": 200, "engagement": 0.9}]).page_visits

    thresholds = calculate_optimal_thresholds(visits, PageType.AGREEMENT)

    assert (thresholds.min_effective_time, thresholds.optimal_time, thresholds.max_reasonable_time) == (90, 240, 1200)
    assert thresholds.sample_size == 1
    assert thresholds.confidence_interval == (0.0, 0.0)


def test_thresholds_from_successful_visits(build_session):
    visits = []
    for i, seconds in enumerate(range(100, 201, 10)):
        visits += build_session(f"s{i}", [{"page": "agreement", "seconds": seconds, "engagement": 0.8}]).page_visits
    visits += build_session("slow", [{"page": "agreement", "seconds": 900, "exit": "close",
                                      "engagement": 0.8}]).page_visits

    thresholds = calculate_optimal_thresholds(visits, "agreement")

    assert thresholds.sample_size == 11
    assert thresholds.min_effective_time == 110
    assert thresholds.optimal_time == 150
    assert thresholds.max_reasonable_time == 190
    assert thresholds.confidence_interval == (125, 175)


@pytest.fixture
def sessions(build_session, full_funnel):
    return [
        build_session("done-1", full_funnel, outcome=SessionOutcome.COMPLETED),
        build_session("done-2", full_funnel, outcome=SessionOutcome.COMPLETED),
        build_session("quick-1", [{"page": "activation", "seconds": 120},
                                  {"page": "agreement", "seconds": 30, "exit": "close"}],
                      exit_trigger=ExitTrigger.CONTENT_BASED),
        build_session("quick-2", [{"page": "activation", "seconds": 120},
                                  {"page": "agreement", "seconds": 30, "exit": "close"}],
                      exit_trigger=ExitTrigger.CONTENT_BASED),
        build_session("stall", [{"page": "activation", "seconds": 700, "exit": "timeout"}],
                      exit_trigger=ExitTrigger.TIME_BASED),
    ]


def test_journey_time_patterns(sessions):
    patterns = JourneyTimeAnalyzer().analyze_journey_time_patterns(sessions)

    assert patterns.avg_total_time == 450
    assert patterns.completion_time_range == (450, 450)
    assert patterns.drop_off_time_patterns == {PageType.AGREEMENT: 30.0, PageType.ACTIVATION: 700.0}

    agreement = next(p for p in patterns.page_analysis if p.page_type == PageType.AGREEMENT)
    assert agreement.avg_time == 135
    assert agreement.drop_off_time == 30
    assert agreement.conversion_rate == 50.0
    assert any("Users dropping off quickly (30s average)" in r for r in patterns.recommendations)


def test_empty_population_has_zero_totals():
    patterns = JourneyTimeAnalyzer().analyze_journey_time_patterns([])
    assert patterns.avg_total_time == 0.0
    assert patterns.drop_off_time_patterns == {}
    assert all(p.avg_time == 0.0 for p in patterns.page_analysis)


def test_abandonment_patterns(sessions):
    patterns = JourneyTimeAnalyzer().identify_abandonment_patterns(sessions)

    assert [(p.page_type, p.frequency, p.avg_time) for p in patterns.quick_exits] == [(PageType.AGREEMENT, 2, 30)]
    assert [(p.page_type, p.frequency) for p in patterns.prolonged_stalls] == [(PageType.ACTIVATION, 1)]
    assert [(p.page_type, p.frequency) for p in patterns.timeout_patterns] == [(PageType.ACTIVATION, 1)]


def test_time_anomalies():
    anomalies = detect_time_anomalies([20] + [100] * 8 + [5000], PageType.AGREEMENT)

    assert anomalies.outliers == [20, 5000]
    assert anomalies.suspiciously_short == [20]
    assert anomalies.suspiciously_long == [5000]
    assert detect_time_anomalies([], PageType.AGREEMENT).outliers == []


def test_format_duration():
    assert format_duration(45) == "45s"
    assert format_duration(59.6) == "1m 0s"
    assert format_duration(125) == "2m 5s"
