from __future__ import annotations

from datetime import timedelta

import pytest

from journey_analyzer.analytics.drop_off import DropOffConfig, DropOffDetectionEngine
from journey_analyzer.models.analysis import RecommendationPriority, RecommendationType
from journey_analyzer.models.journey import ExitTrigger, PageType, SessionOutcome

AGREEMENT_EXIT_TIMES = [290, 310, 305, 295, 300, 320]


@pytest.fixture
def engine():
    return DropOffDetectionEngine(DropOffConfig())


@pytest.fixture
def population(build_session, full_funnel):
    sessions = []
    for i, seconds in enumerate(AGREEMENT_EXIT_TIMES):
        sessions.append(build_session(
            f"drop-{i}",
            [{"page": "activation", "seconds": 60},
             {"page": "agreement", "seconds": seconds, "exit": "timeout"}],
            exit_trigger=ExitTrigger.TIME_BASED,
        ))
    for i in range(4):
        sessions.append(build_session(f"done-{i}", full_funnel, outcome=SessionOutcome.COMPLETED))
    return sessions


def test_consistent_agreement_timeouts_form_one_pattern(engine, population):
    analysis = engine.analyze_drop_off_patterns(population)

    assert len(analysis.patterns) == 1
    pattern = analysis.patterns[0]
    assert pattern.page_type == PageType.AGREEMENT
    assert pattern.exit_trigger == ExitTrigger.TIME_BASED
    assert pattern.frequency == 6
    assert pattern.confidence_score >= 0.7
    assert pattern.confidence_score == pytest.approx(0.99)
    assert pattern.avg_time_before_exit == pytest.approx(sum(AGREEMENT_EXIT_TIMES) / 6)
    assert pattern.pattern_id == "dropoff_agreement_time_based"
    assert analysis.total_sessions == 10
    assert analysis.dropped_sessions == 6


def test_analysis_is_idempotent(engine, population):
    first = engine.analyze_drop_off_patterns(population)
    second = engine.analyze_drop_off_patterns(population)

    assert first.patterns == second.patterns
    assert [p.confidence_score for p in first.patterns] == [p.confidence_score for p in second.patterns]
    assert first.conversion_rates == second.conversion_rates


def test_conversion_rates_per_page(engine, population):
    rates = {r.page_type: r for r in engine.analyze_drop_off_patterns(population).conversion_rates}

    assert rates[PageType.ACTIVATION].conversion_rate == pytest.approx(1.0)
    assert rates[PageType.AGREEMENT].conversion_rate == pytest.approx(0.4)
    assert rates[PageType.AGREEMENT].bounce_rate == pytest.approx(0.6)
    assert rates[PageType.PROCESSING].total_visits == 4


def test_pattern_recommendation_is_generated(engine, population):
    recommendations = engine.analyze_drop_off_patterns(population).recommendations

    assert [r.recommendation_id for r in recommendations] == ["rec_dropoff_agreement_time_based"]
    rec = recommendations[0]
    assert rec.priority == RecommendationPriority.MEDIUM
    assert rec.recommendation_type == RecommendationType.TIMING
    assert 1 <= rec.expected_improvement <= 50


def test_too_few_drop_offs_returns_empty_analysis(engine, build_session):
    sessions = [
        build_session(f"s{i}", [{"page": "agreement", "seconds": 300, "exit": "timeout"}],
                      exit_trigger=ExitTrigger.TIME_BASED)
        for i in range(4)
    ]

    analysis = engine.analyze_drop_off_patterns(sessions)

    assert analysis.is_empty
    assert analysis.dropped_sessions == 4
    assert analysis.overall_significance is None


def test_small_clusters_are_never_patterns(engine, build_session):
    sessions = [
        build_session(f"t{i}", [{"page": "agreement", "seconds": 300, "exit": "timeout"}],
                      exit_trigger=ExitTrigger.TIME_BASED)
        for i in range(5)
    ]
    sessions += [
        build_session(f"c{i}", [{"page": "confirmation", "seconds": 3, "exit": "close"}],
                      exit_trigger=ExitTrigger.CONTENT_BASED)
        for i in range(4)
    ]

    patterns = engine.analyze_drop_off_patterns(sessions).patterns

    assert [p.key for p in patterns] == [(PageType.AGREEMENT, ExitTrigger.TIME_BASED)]
    assert all(p.frequency >= 5 for p in patterns)


def test_in_progress_sessions_are_ignored(engine, population, build_session):
    open_session = build_session("open", [{"page": "activation", "seconds": 10}],
                                 outcome=SessionOutcome.IN_PROGRESS)
    analysis = engine.analyze_drop_off_patterns(population + [open_session])
    assert analysis.total_sessions == 10


def test_pattern_confidence_uses_share_of_drop_offs(engine, build_session):
    members = [
        build_session(f"t{i}", [{"page": "agreement", "seconds": 300, "exit": "timeout"}],
                      exit_trigger=ExitTrigger.TIME_BASED)
        for i in range(6)
    ]

    assert engine.calculate_pattern_confidence(members, dropped_total=6) == 1.0
    assert engine.calculate_pattern_confidence(members, dropped_total=60) == 0.58
    assert engine.calculate_pattern_confidence(members[:4], dropped_total=4) == 0.0


def test_overall_significance(engine):
    summary = engine.calculate_overall_significance(completed=2, total=20)
    assert summary.completion_rate == pytest.approx(0.1)
    assert summary.is_significant
    lower, upper = summary.confidence_interval
    assert 0.0 <= lower <= 0.1 <= upper <= 1.0

    sparse = engine.calculate_overall_significance(completed=1, total=3)
    assert sparse.p_value == 1.0
    assert sparse.confidence_interval == (0.0, 0.0)


def test_exit_trigger_breakdown_and_timing(engine, population):
    analysis = engine.analyze_drop_off_patterns(population)

    assert analysis.trigger_breakdown[0].exit_trigger == ExitTrigger.TIME_BASED
    assert analysis.trigger_breakdown[0].page_types == [PageType.AGREEMENT]
    pages = [d.page_type for d in analysis.timing_distributions]
    assert pages == [PageType.ACTIVATION, PageType.AGREEMENT]


def test_compare_cohorts(engine, population, build_session, full_funnel):
    later = [
        build_session(s.session_id + "-b", [
            {"page": v.page_type.value, "seconds": v.time_on_page,
             "exit": v.exit_action.value} for v in s.page_visits
        ], outcome=s.final_outcome, start=s.session_start + timedelta(days=1), exit_trigger=s.exit_trigger)
        for s in population
    ]
    later += [build_session(f"extra-{i}", full_funnel, outcome=SessionOutcome.COMPLETED) for i in range(5)]

    comparison = engine.compare_cohorts(population, later)

    assert comparison.completion_rate_a == pytest.approx(0.4)
    assert comparison.completion_rate_b == pytest.approx(9 / 15)
    assert comparison.pattern_overlap == 1.0
    assert comparison.shared_patterns == [(PageType.AGREEMENT, ExitTrigger.TIME_BASED)]
