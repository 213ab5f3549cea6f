from __future__ import annotations

import asyncio
from datetime import timedelta

import pytest

from journey_analyzer.analytics.content_diff import ContentDiffAnalyzer
from journey_analyzer.analytics.journey_comparison import ComparisonEngineConfig, JourneyComparisonEngine
from journey_analyzer.analytics.timing_comparison import TimingComparisonConfig, TimingComparisonEngine
from journey_analyzer.exceptions import ComparisonNotViableError
from journey_analyzer.infrastructure.journey_store import InMemoryJourneyStore
from journey_analyzer.models.comparison import ComparisonType, ContentChangeType, MatchingFactorType
from journey_analyzer.models.journey import ExitTrigger, PageType, SessionOutcome


def _engine(store=None, **kwargs):
    return JourneyComparisonEngine(
        config=ComparisonEngineConfig(batch_yield_seconds=0, bootstrap_samples=200),
        timing_engine=TimingComparisonEngine(TimingComparisonConfig()),
        store=store,
        **kwargs,
    )


@pytest.fixture
def pair(build_session):
    successful = build_session("win", [
        {"page": "activation", "seconds": 100},
        {"page": "agreement", "seconds": 600, "engagement": 0.92, "variant": "terms-v1"},
    ], outcome=SessionOutcome.COMPLETED, client_id="acme")
    failed = build_session("lose", [
        {"page": "activation", "seconds": 100},
        {"page": "agreement", "seconds": 120, "engagement": 0.38, "variant": "terms-v2", "exit": "close"},
    ], client_id="acme", exit_trigger=ExitTrigger.CONTENT_BASED)
    return successful, failed


def test_pair_scoring_uses_weighted_factors(pair):
    engine = _engine()

    journey_pair = engine.evaluate_journey_pair(*pair)

    assert sum(f.weight for f in journey_pair.matching_factors) == pytest.approx(1.0)
    assert journey_pair.factor_score(MatchingFactorType.TEMPORAL_PROXIMITY) == 1.0
    assert journey_pair.factor_score(MatchingFactorType.CLIENT_SIMILARITY) == 1.0
    assert journey_pair.factor_score(MatchingFactorType.CONTENT_SIMILARITY) == 0.5
    assert journey_pair.factor_score(MatchingFactorType.HYPOTHESIS_ALIGNMENT) == 0.5
    assert journey_pair.comparison_viability >= 0.6
    assert 0.0 <= journey_pair.comparison_viability <= 1.0


def test_identical_content_recommends_content_focus(build_session):
    engine = _engine()
    visits = [{"page": "activation", "seconds": 90, "variant": "hero-a"}]
    successful = build_session("a", visits, outcome=SessionOutcome.COMPLETED, client_id="c")
    failed = build_session("b", visits, client_id="c")

    journey_pair = engine.evaluate_journey_pair(successful, failed)

    assert journey_pair.recommended_analysis_type == ComparisonType.CONTENT_FOCUSED


def test_comprehensive_comparison(pair):
    engine = _engine()

    result = asyncio.run(engine.compare_journeys(*pair, ComparisonType.COMPREHENSIVE))

    comparison = result.comparison
    assert result.components_analyzed == ["content", "timing", "engagement"]
    assert result.failed_components == []
    assert [d.page_type for d in comparison.timing_differences] == [PageType.AGREEMENT]
    assert comparison.timing_differences[0].time_differential == 480

    content = comparison.content_differences
    assert len(content) == 1
    assert content[0].change_type == ContentChangeType.MODIFIED
    assert content[0].similarity == 0.5

    significant = [d.page_type for d in comparison.engagement_differences if d.is_significant]
    assert significant == [PageType.AGREEMENT]

    stats = comparison.statistical_significance
    assert set(stats.component_p_values) == {"timing", "engagement", "content"}
    assert 0.0 <= stats.p_value <= 1.0
    assert stats.confidence_interval == comparison.timing_differences[0].confidence_interval
    assert 0.0 <= comparison.confidence_score <= 1.0
    assert "More time invested on agreement page" in result.insights.key_success_factors
    assert result.recommendations


def test_focused_comparison_runs_single_component(pair):
    result = asyncio.run(_engine().compare_journeys(*pair, "timing_focused"))

    assert result.components_analyzed == ["timing"]
    assert result.comparison.content_differences == []
    assert set(result.component_confidence) == {"timing"}


def test_failing_component_is_omitted(pair):
    async def broken_hypotheses(successful, failed):
        raise RuntimeError("hypothesis service unavailable")

    engine = _engine(hypothesis_analyzer=broken_hypotheses)

    result = asyncio.run(engine.compare_journeys(*pair))

    assert result.failed_components == ["hypothesis"]
    assert "timing" in result.components_analyzed
    assert result.comparison.confidence_score > 0


def test_added_content_when_failed_journey_has_no_variant(build_session):
    successful = build_session("a", [{"page": "agreement", "seconds": 200, "variant": "terms-v3"}],
                               outcome=SessionOutcome.COMPLETED)
    failed = build_session("b", [{"page": "agreement", "seconds": 180}])

    differences = asyncio.run(ContentDiffAnalyzer().compare_journey_content(successful, failed))

    assert [d.change_type for d in differences] == [ContentChangeType.ADDED]
    assert differences[0].similarity == 0.0


def test_content_lookup_jaccard_similarity():
    texts = {"v1": "Accept the terms today", "v2": "Accept the terms now"}
    analyzer = ContentDiffAnalyzer(content_lookup=texts.get)

    assert analyzer.calculate_content_similarity("v1", "v2") == pytest.approx(3 / 5)
    assert analyzer.calculate_content_similarity("v1", "missing") == 0.5


def test_distant_journeys_are_not_viable(build_session):
    successful = build_session("old", [{"page": "activation", "seconds": 400}],
                               outcome=SessionOutcome.COMPLETED, client_id="x")
    failed = build_session("new", [{"page": "activation", "seconds": 20, "exit": "close"}],
                           start=successful.session_start + timedelta(days=29), client_id="y")

    with pytest.raises(ComparisonNotViableError, match="not suitable"):
        asyncio.run(_engine().compare_journeys(successful, failed))


def _stored_population(build_session, completed: int, dropped: int):
    sessions = []
    for i in range(completed):
        sessions.append(build_session(f"ok-{i}", [
            {"page": "activation", "seconds": 120},
            {"page": "agreement", "seconds": 300},
        ], outcome=SessionOutcome.COMPLETED, client_id="acme"))
    for i in range(dropped):
        sessions.append(build_session(f"drop-{i}", [
            {"page": "activation", "seconds": 120},
            {"page": "agreement", "seconds": 40, "exit": "close"},
        ], client_id="acme", exit_trigger=ExitTrigger.CONTENT_BASED))
    return InMemoryJourneyStore(sessions)


def test_find_optimal_pairs_ranks_and_limits(build_session):
    engine = _engine(store=_stored_population(build_session, completed=5, dropped=5))

    pairs = asyncio.run(engine.find_optimal_journey_pairs(limit=3))

    assert len(pairs) == 3
    viabilities = [p.comparison_viability for p in pairs]
    assert viabilities == sorted(viabilities, reverse=True)
    assert all(p.successful_journey.final_outcome == SessionOutcome.COMPLETED for p in pairs)


def test_find_pairs_with_sparse_data_or_no_store(build_session):
    sparse = _engine(store=_stored_population(build_session, completed=4, dropped=6))
    assert asyncio.run(sparse.find_optimal_journey_pairs()) == []
    assert asyncio.run(_engine().find_optimal_journey_pairs()) == []


def test_batch_compare_journeys(build_session):
    engine = _engine(store=_stored_population(build_session, completed=5, dropped=5))
    pairs = asyncio.run(engine.find_optimal_journey_pairs(limit=7))

    results = asyncio.run(engine.batch_compare_journeys(pairs, ComparisonType.COMPREHENSIVE))

    assert len(results) == 7
