from __future__ import annotations

import asyncio

import pytest

from journey_analyzer.analytics.timing_comparison import (
    TimingComparisonConfig,
    TimingComparisonEngine,
    calculate_drop_off_risk,
)
from journey_analyzer.models.comparison import SignificanceTest
from journey_analyzer.models.journey import PageType, SessionOutcome


@pytest.fixture
def engine():
    return TimingComparisonEngine(TimingComparisonConfig(batch_yield_seconds=0))


@pytest.fixture
def journeys(build_session):
    successful = build_session("win", [
        {"page": "activation", "seconds": 100},
        {"page": "agreement", "seconds": 600, "engagement": 0.92},
    ], outcome=SessionOutcome.COMPLETED)
    failed = build_session("lose", [
        {"page": "activation", "seconds": 100},
        {"page": "agreement", "seconds": 120, "engagement": 0.38, "exit": "close"},
    ])
    return successful, failed


def test_single_observation_agreement_comparison(engine, journeys):
    successful, failed = journeys

    diffs = engine.compare_journey_timing(successful, failed)

    assert [d.page_type for d in diffs] == [PageType.AGREEMENT]
    diff = diffs[0]
    assert diff.time_differential == 480
    assert diff.engagement_differential == pytest.approx(0.54)
    assert diff.effect_size > 0.3
    assert diff.effect_size == pytest.approx(3.70, abs=0.01)
    significance = diff.statistical_significance
    assert significance.test_type == SignificanceTest.MANN_WHITNEY_U
    assert 0.0 <= significance.p_value <= 1.0
    assert significance.p_value == pytest.approx(0.317, abs=1e-3)
    low, high = diff.confidence_interval
    assert low < 480 < high


def test_timing_analysis_details(engine, journeys):
    successful, _ = journeys
    visit = successful.page_visits[1]

    analysis = engine.build_timing_analysis(visit, successful)

    assert analysis.page_sequence == 2
    assert analysis.percentiles["p50"] == 600
    assert analysis.percentiles["p95"] == pytest.approx(1080)
    assert analysis.transition_time is None
    assert engine.build_timing_analysis(successful.page_visits[0], successful).transition_time == 0


def test_only_pages_in_both_journeys_are_compared(engine, build_session):
    successful = build_session("w", [
        {"page": "activation", "seconds": 200},
        {"page": "confirmation", "seconds": 90},
    ], outcome=SessionOutcome.COMPLETED)
    failed = build_session("l", [{"page": "activation", "seconds": 40, "exit": "close"}])

    diffs = engine.compare_journey_timing(successful, failed)

    assert [d.page_type for d in diffs] == [PageType.ACTIVATION]


def test_identical_timing_is_filtered_out(engine, build_session):
    successful = build_session("w", [{"page": "activation", "seconds": 100}], outcome=SessionOutcome.COMPLETED)
    failed = build_session("l", [{"page": "activation", "seconds": 100, "exit": "close"}])

    assert engine.compare_journey_timing(successful, failed) == []


def test_historical_samples_switch_to_welch(engine, journeys):
    successful, failed = journeys
    samples = {
        PageType.AGREEMENT: (
            [580, 610, 595, 620, 600, 605, 590, 615, 598, 602, 607, 593],
            [130, 115, 125, 118, 122, 119, 128, 121, 117, 124, 126, 120],
        )
    }

    diffs = engine.compare_journey_timing(successful, failed, historical_samples=samples)

    diff = next(d for d in diffs if d.page_type == PageType.AGREEMENT)
    assert diff.statistical_significance.test_type == SignificanceTest.WELCH_T_TEST
    assert diff.statistical_significance.degrees_of_freedom is not None
    assert diff.statistical_significance.p_value < 0.05
    assert diff.time_differential == 480


def test_select_test_requires_minimum_sample(engine):
    assert engine.select_test([1.0] * 9, [2.0] * 12) == SignificanceTest.MANN_WHITNEY_U


def test_batch_compare_keeps_pair_order(engine, journeys):
    pairs = [journeys] * 7

    results = asyncio.run(engine.batch_compare_timing(pairs))

    assert len(results) == 7
    assert all(r[0].page_type == PageType.AGREEMENT for r in results)


def test_timing_statistics(engine, journeys):
    diffs = engine.compare_journey_timing(*journeys)

    stats = engine.get_timing_statistics(diffs)

    assert stats["total_comparisons"] == 1
    assert stats["most_impactful_page"] == PageType.AGREEMENT
    assert stats["largest_time_difference"] == 480
    assert stats["effect_size_breakdown"]["large"] == 1
    assert stats["test_type_breakdown"] == {"mann_whitney_u": 1}
    assert engine.get_timing_statistics([])["total_comparisons"] == 0


def test_drop_off_risk_bounds(journeys):
    successful, failed = journeys
    for visit in successful.page_visits + failed.page_visits:
        assert 0.0 <= calculate_drop_off_risk(visit) <= 1.0
