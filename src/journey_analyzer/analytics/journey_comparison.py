"""
Journey Pairing & Comparison Orchestrator

Scores successful/failed journey pairs for comparability, fans out to the
content, timing, engagement and hypothesis analyses concurrently and combines
the results into one confidence-scored comparison.
"""

from __future__ import annotations
import asyncio
import logging
import math
import time
import uuid
from dataclasses import dataclass
from typing import Any, Callable, Dict, List, Optional, Tuple

import numpy as np
from scipy import stats
from prometheus_client import Counter, Histogram

from journey_analyzer.config import Settings, get_settings
from journey_analyzer.exceptions import ComparisonNotViableError
from journey_analyzer.infrastructure.journey_store import JourneyStore
from journey_analyzer.models.journey import FUNNEL_PAGES, JourneySession, SessionOutcome
from journey_analyzer.models.comparison import (
    ComparisonInsights, ComparisonRecommendation, ComparisonStatistics, ComparisonType,
    Differentiator, JourneyComparison, JourneyComparisonResult, JourneyPair,
    MatchingFactor, MatchingFactorType, PairingCriteria,
)
from journey_analyzer.analytics.content_diff import (
    NEUTRAL_SIMILARITY, ContentDiffAnalyzer, EngagementDiffAnalyzer, HypothesisAnalyzer,
)
from journey_analyzer.analytics.timing_comparison import TimingComparisonEngine
from journey_analyzer.utils.significance import (
    benjamini_hochberg, bonferroni_correction, bootstrap_confidence_interval,
    confidence_level_from_p, effect_size_magnitude, fisher_combined_p, one_sample_t_test,
)

comparisons_total = Counter('journey_comparisons_total', 'Journey comparisons performed', ['status'])
comparison_duration = Histogram('journey_comparison_seconds', 'Journey comparison duration')

logger = logging.getLogger(__name__)

FACTOR_WEIGHTS = {
    MatchingFactorType.TEMPORAL_PROXIMITY: 0.30,
    MatchingFactorType.CONTENT_SIMILARITY: 0.25,
    MatchingFactorType.CLIENT_SIMILARITY: 0.20,
    MatchingFactorType.ENGAGEMENT_LEVEL: 0.15,
    MatchingFactorType.HYPOTHESIS_ALIGNMENT: 0.10,
}

CONFIDENCE_WEIGHTS = {'statistical': 0.4, 'content': 0.3, 'timing': 0.2, 'engagement': 0.1}

# Viability modifiers
DURATION_MISMATCH_SECONDS = 3600
DURATION_MISMATCH_PENALTY = 0.8
VISIT_COUNT_MISMATCH_PENALTY = 0.9
SAME_EXIT_PAGE_BONUS = 1.1

# Engagement mean difference at which engagement similarity reaches zero
ENGAGEMENT_SIMILARITY_SPAN = 0.5

_COMPONENTS_BY_TYPE = {
    ComparisonType.COMPREHENSIVE: ('content', 'timing', 'engagement', 'hypothesis'),
    ComparisonType.CONTENT_FOCUSED: ('content',),
    ComparisonType.TIMING_FOCUSED: ('timing',),
    ComparisonType.ENGAGEMENT_FOCUSED: ('engagement',),
}


@dataclass
class ComparisonEngineConfig:
    min_sample_size: int = 5
    confidence_threshold: float = 0.6
    significance_level: float = 0.05
    confidence_level: float = 0.95
    max_comparison_distance_days: int = 30
    enable_content_analysis: bool = True
    enable_timing_analysis: bool = True
    enable_engagement_analysis: bool = True
    enable_hypothesis_analysis: bool = True
    batch_chunk_size: int = 5
    batch_yield_seconds: float = 0.01
    bootstrap_samples: int = 1000
    random_seed: Optional[int] = 42

    @classmethod
    def from_settings(cls, settings: Optional[Settings] = None) -> "ComparisonEngineConfig":
        s = settings or get_settings()
        return cls(
            min_sample_size=s.pairing_min_sample_size,
            confidence_threshold=s.pairing_confidence_threshold,
            significance_level=s.significance_threshold,
            confidence_level=s.confidence_level,
            max_comparison_distance_days=s.max_comparison_distance_days,
            batch_chunk_size=s.batch_chunk_size,
            batch_yield_seconds=s.batch_yield_seconds,
            bootstrap_samples=s.bootstrap_samples,
            random_seed=s.random_seed,
        )


class JourneyComparisonEngine:
    """Pairs and compares successful against failed journeys.

    Sub-analyses run concurrently and independently: a failing component is
    logged and left out, and the comparison is still returned with the
    confidence it can support. Pairs whose viability falls below the
    configured threshold are rejected with ``ComparisonNotViableError``.
    """

    def __init__(self, config: Optional[ComparisonEngineConfig] = None,
                 timing_engine: Optional[TimingComparisonEngine] = None,
                 content_analyzer: Optional[ContentDiffAnalyzer] = None,
                 engagement_analyzer: Optional[EngagementDiffAnalyzer] = None,
                 hypothesis_analyzer: Optional[HypothesisAnalyzer] = None,
                 hypothesis_alignment: Optional[Callable[[JourneySession, JourneySession], float]] = None,
                 store: Optional[JourneyStore] = None):
        self.config = config or ComparisonEngineConfig.from_settings()
        self.timing_engine = timing_engine or TimingComparisonEngine()
        self.content_analyzer = content_analyzer or ContentDiffAnalyzer()
        self.engagement_analyzer = engagement_analyzer or EngagementDiffAnalyzer()
        self.hypothesis_analyzer = hypothesis_analyzer
        self.hypothesis_alignment = hypothesis_alignment
        self.store = store
        self.logger = logging.getLogger(__name__)

    # ------------------------------------------------------------------
    # Pairing
    # ------------------------------------------------------------------

    def evaluate_journey_pair(self, successful: JourneySession, failed: JourneySession) -> JourneyPair:
        distance = abs((successful.session_start - failed.session_start).total_seconds())
        max_distance = self.config.max_comparison_distance_days * 86400
        temporal = max(0.0, 1 - distance / max_distance) if max_distance > 0 else 0.0
        content = self._content_similarity(successful, failed)
        client = 1.0 if successful.client_id == failed.client_id else 0.5
        engagement_gap = abs(successful.average_engagement() - failed.average_engagement())
        engagement = max(0.0, 1 - engagement_gap / ENGAGEMENT_SIMILARITY_SPAN)
        alignment = self._hypothesis_alignment(successful, failed)

        factors = [
            MatchingFactor(MatchingFactorType.TEMPORAL_PROXIMITY, temporal,
                           FACTOR_WEIGHTS[MatchingFactorType.TEMPORAL_PROXIMITY],
                           f"Journeys {round(distance / 86400)} days apart"),
            MatchingFactor(MatchingFactorType.CONTENT_SIMILARITY, content,
                           FACTOR_WEIGHTS[MatchingFactorType.CONTENT_SIMILARITY],
                           f"Content similarity: {round(content * 100)}%"),
            MatchingFactor(MatchingFactorType.CLIENT_SIMILARITY, client,
                           FACTOR_WEIGHTS[MatchingFactorType.CLIENT_SIMILARITY],
                           f"Client similarity: {round(client * 100)}%"),
            MatchingFactor(MatchingFactorType.ENGAGEMENT_LEVEL, engagement,
                           FACTOR_WEIGHTS[MatchingFactorType.ENGAGEMENT_LEVEL],
                           f"Engagement similarity: {round(engagement * 100)}%"),
            MatchingFactor(MatchingFactorType.HYPOTHESIS_ALIGNMENT, alignment,
                           FACTOR_WEIGHTS[MatchingFactorType.HYPOTHESIS_ALIGNMENT],
                           f"Hypothesis alignment: {round(alignment * 100)}%"),
        ]
        matching_score = sum(f.score * f.weight for f in factors)

        pair = JourneyPair(
            successful_journey=successful,
            failed_journey=failed,
            matching_score=matching_score,
            matching_factors=factors,
            comparison_viability=self.assess_comparison_viability(matching_score, successful, failed),
            recommended_analysis_type=ComparisonType.COMPREHENSIVE,
        )
        pair.recommended_analysis_type = self.recommend_analysis_type(pair)
        return pair

    def assess_comparison_viability(self, matching_score: float, successful: JourneySession,
                                    failed: JourneySession) -> float:
        modifier = 1.0
        if abs(successful.total_duration - failed.total_duration) > DURATION_MISMATCH_SECONDS:
            modifier *= DURATION_MISMATCH_PENALTY
        if abs(len(successful.page_visits) - len(failed.page_visits)) > 1:
            modifier *= VISIT_COUNT_MISMATCH_PENALTY
        if successful.exit_point and failed.exit_point and successful.exit_point == failed.exit_point:
            modifier *= SAME_EXIT_PAGE_BONUS
        return min(1.0, matching_score * modifier)

    def recommend_analysis_type(self, pair: JourneyPair) -> ComparisonType:
        content = pair.factor_score(MatchingFactorType.CONTENT_SIMILARITY)
        temporal = pair.factor_score(MatchingFactorType.TEMPORAL_PROXIMITY)
        engagement = pair.factor_score(MatchingFactorType.ENGAGEMENT_LEVEL)

        if content > 0.8:
            return ComparisonType.CONTENT_FOCUSED
        if temporal > 0.8 and engagement > 0.7:
            return ComparisonType.TIMING_FOCUSED
        if engagement > 0.8:
            return ComparisonType.ENGAGEMENT_FOCUSED
        return ComparisonType.COMPREHENSIVE

    async def find_optimal_journey_pairs(self, criteria: Optional[PairingCriteria] = None,
                                         limit: int = 50) -> List[JourneyPair]:
        """Best-scoring viable pairs among stored completed and dropped-off journeys."""
        if self.store is None:
            self.logger.warning("No journey store configured; cannot search for journey pairs")
            return []
        criteria = criteria or PairingCriteria()

        successful, failed = await asyncio.gather(
            self._fetch_candidates(SessionOutcome.COMPLETED, criteria),
            self._fetch_candidates(SessionOutcome.DROPPED_OFF, criteria),
        )
        if len(successful) < self.config.min_sample_size or len(failed) < self.config.min_sample_size:
            self.logger.warning(
                f"Insufficient journeys for pairing: {len(successful)} successful, {len(failed)} failed")
            return []

        pairs = []
        for successful_journey in successful:
            for failed_journey in failed:
                pair = self.evaluate_journey_pair(successful_journey, failed_journey)
                if pair.comparison_viability >= self.config.confidence_threshold:
                    pairs.append(pair)

        pairs.sort(key=lambda p: p.comparison_viability, reverse=True)
        self.logger.info(f"Found {len(pairs)} viable journey pairs; returning top {min(limit, len(pairs))}")
        return pairs[:limit]

    # ------------------------------------------------------------------
    # Comparison
    # ------------------------------------------------------------------

    async def compare_journeys(self, successful: JourneySession, failed: JourneySession,
                               comparison_type: ComparisonType = ComparisonType.COMPREHENSIVE
                               ) -> JourneyComparisonResult:
        start = time.perf_counter()
        comparison_type = ComparisonType(comparison_type)

        pair = self.evaluate_journey_pair(successful, failed)
        if pair.comparison_viability < self.config.confidence_threshold:
            comparisons_total.labels(status='not_viable').inc()
            raise ComparisonNotViableError(
                f"Journey pair not suitable for comparison: viability {pair.comparison_viability:.2f}")

        comparison = JourneyComparison(
            comparison_id=f"comp_{successful.session_id}_{failed.session_id}_{uuid.uuid4().hex[:8]}",
            successful_journey_id=successful.session_id,
            failed_journey_id=failed.session_id,
            comparison_type=comparison_type,
        )

        names, tasks = self._component_tasks(successful, failed, comparison_type)
        results = await asyncio.gather(*tasks, return_exceptions=True)

        analyzed, failed_components = [], []
        for name, result in zip(names, results):
            if isinstance(result, BaseException):
                self.logger.error(f"{name} analysis failed for {comparison.comparison_id}: {result}")
                failed_components.append(name)
                continue
            analyzed.append(name)
            if name == 'content':
                comparison.content_differences = result
            elif name == 'timing':
                comparison.timing_differences = result
            elif name == 'engagement':
                comparison.engagement_differences = result
            elif name == 'hypothesis':
                comparison.hypothesis_correlations = result

        comparison.statistical_significance = self.calculate_comparison_significance(comparison)
        comparison.confidence_score = self.calculate_overall_confidence(comparison)

        insights = self.generate_insights(comparison)
        elapsed = time.perf_counter() - start
        comparison_duration.observe(elapsed)
        comparisons_total.labels(status='partial' if failed_components else 'success').inc()

        return JourneyComparisonResult(
            comparison=comparison,
            insights=insights,
            recommendations=self.generate_recommendations(comparison, insights),
            component_confidence=self._component_confidence(comparison, analyzed),
            comparison_viability=pair.comparison_viability,
            processing_time_seconds=elapsed,
            components_analyzed=analyzed,
            failed_components=failed_components,
        )

    async def batch_compare_journeys(self, pairs: List[JourneyPair],
                                     comparison_type: Optional[ComparisonType] = None
                                     ) -> List[JourneyComparisonResult]:
        """Compare pairs in bounded chunks; failed pairs are dropped from the output."""
        results = []
        chunk_size = max(1, self.config.batch_chunk_size)

        for i in range(0, len(pairs), chunk_size):
            chunk = pairs[i:i + chunk_size]
            outcomes = await asyncio.gather(
                *[self.compare_journeys(p.successful_journey, p.failed_journey,
                                        comparison_type or p.recommended_analysis_type)
                  for p in chunk],
                return_exceptions=True,
            )
            for pair, outcome in zip(chunk, outcomes):
                if isinstance(outcome, ComparisonNotViableError):
                    self.logger.warning(
                        f"Skipping pair {pair.successful_journey.session_id}/"
                        f"{pair.failed_journey.session_id}: {outcome}")
                elif isinstance(outcome, BaseException):
                    self.logger.error(
                        f"Comparison failed for {pair.successful_journey.session_id}/"
                        f"{pair.failed_journey.session_id}: {outcome}")
                else:
                    results.append(outcome)
            if i + chunk_size < len(pairs):
                await asyncio.sleep(self.config.batch_yield_seconds)

        return results

    def calculate_comparison_significance(self, comparison: JourneyComparison) -> ComparisonStatistics:
        """Per-component p-values combined with Fisher's method and corrected for multiplicity."""
        component_p: Dict[str, float] = {}

        time_diffs = [d.time_differential for d in comparison.timing_differences]
        if len(time_diffs) >= 2:
            component_p['timing'] = one_sample_t_test(time_diffs, 0.0).p_value
        elif len(time_diffs) == 1:
            component_p['timing'] = comparison.timing_differences[0].statistical_significance.p_value

        engagement_diffs = [d.engagement_differential for d in comparison.engagement_differences]
        if engagement_diffs:
            component_p['engagement'] = self._engagement_z_test(engagement_diffs)

        if comparison.content_differences:
            mean_correlation = float(np.mean([d.correlation_strength for d in comparison.content_differences]))
            component_p['content'] = min(1.0, max(0.0, 1 - mean_correlation))

        names = list(component_p)
        values = [component_p[n] for n in names]
        combined = fisher_combined_p(values)
        corrected = {
            'bonferroni': {n: p for n, (p, _) in zip(names, bonferroni_correction(values, self.config.significance_level))},
            'benjamini_hochberg': {n: p for n, (p, _) in zip(names, benjamini_hochberg(values, self.config.significance_level))},
        }

        effect_sizes = [d.effect_size for d in comparison.timing_differences]
        effect_size = float(np.mean(effect_sizes)) if effect_sizes else 0.0

        return ComparisonStatistics(
            p_value=combined,
            component_p_values=component_p,
            corrected_p_values=corrected,
            effect_size=effect_size,
            effect_size_magnitude=effect_size_magnitude(effect_size),
            confidence_level=confidence_level_from_p(combined),
            sample_size=(len(comparison.timing_differences) + len(comparison.engagement_differences)
                         + len(comparison.content_differences)),
            confidence_interval=self._time_differential_interval(comparison),
        )

    def calculate_overall_confidence(self, comparison: JourneyComparison) -> float:
        """Weighted blend: statistical 0.4, content 0.3, timing 0.2, engagement 0.1."""
        confidence = 0.0
        if comparison.statistical_significance is not None:
            confidence += (1 - comparison.statistical_significance.p_value) * CONFIDENCE_WEIGHTS['statistical']
        if comparison.content_differences:
            confidence += float(np.mean([d.correlation_strength for d in comparison.content_differences])) \
                * CONFIDENCE_WEIGHTS['content']
        if comparison.timing_differences:
            confidence += float(np.mean([1 - d.statistical_significance.p_value
                                         for d in comparison.timing_differences])) * CONFIDENCE_WEIGHTS['timing']
        if comparison.engagement_differences:
            share = sum(1 for d in comparison.engagement_differences if d.is_significant) \
                / len(comparison.engagement_differences)
            confidence += share * CONFIDENCE_WEIGHTS['engagement']
        return min(1.0, max(0.0, confidence))

    def generate_insights(self, comparison: JourneyComparison) -> ComparisonInsights:
        differentiators = []
        for diff in comparison.timing_differences:
            differentiators.append(Differentiator(
                differentiator_type='timing',
                page_type=diff.page_type,
                description=f"Time on {diff.page_type.value} page differs by {diff.time_differential:+.0f}s",
                impact_score=diff.effect_size,
                confidence_score=1 - diff.statistical_significance.p_value,
            ))
        for diff in comparison.content_differences:
            if diff.correlation_strength >= 0.5:
                differentiators.append(Differentiator(
                    differentiator_type='content',
                    page_type=diff.page_type,
                    description=f"{diff.page_type.value.capitalize()} page content variant",
                    impact_score=diff.correlation_strength,
                    confidence_score=diff.correlation_strength,
                ))
        for diff in comparison.engagement_differences:
            if diff.is_significant:
                differentiators.append(Differentiator(
                    differentiator_type='engagement',
                    page_type=diff.page_type,
                    description=f"Engagement on {diff.page_type.value} page differs by "
                                f"{diff.engagement_differential:+.2f}",
                    impact_score=abs(diff.engagement_differential),
                    confidence_score=min(1.0, abs(diff.engagement_differential) * 2),
                ))
        differentiators.sort(key=lambda d: d.impact_score, reverse=True)

        success_factors, failure_indicators = [], []
        for diff in comparison.engagement_differences:
            page = diff.page_type.value
            if diff.is_significant and diff.engagement_differential > 0:
                success_factors.append(f"Higher engagement on {page} page ({diff.engagement_differential:+.2f})")
            if diff.scroll_depth_differential >= 25:
                success_factors.append(f"Deeper scrolling on {page} page ({diff.scroll_depth_differential:+.0f}%)")
        for diff in comparison.timing_differences:
            if diff.failed_timing.drop_off_risk >= 0.6:
                failure_indicators.append(
                    f"High drop-off risk on {diff.page_type.value} page "
                    f"({diff.failed_timing.drop_off_risk:.2f}) in the failed journey")
            if diff.time_differential > 0:
                success_factors.append(f"More time invested on {diff.page_type.value} page")
            elif diff.time_differential < 0:
                failure_indicators.append(f"Prolonged time on {diff.page_type.value} page before abandoning")

        return ComparisonInsights(
            primary_differentiators=differentiators,
            key_success_factors=success_factors,
            failure_indicators=failure_indicators,
        )

    def generate_recommendations(self, comparison: JourneyComparison,
                                 insights: ComparisonInsights) -> List[ComparisonRecommendation]:
        recommendations = []
        for differentiator in insights.primary_differentiators:
            page = differentiator.page_type.value if differentiator.page_type else 'journey'
            category = f"{differentiator.differentiator_type}_optimization"
            recommendations.append(ComparisonRecommendation(
                recommendation_id=f"{category}_{page}_{uuid.uuid4().hex[:8]}",
                priority='high' if differentiator.impact_score > 0.8 else 'medium',
                category=category,
                title=f"Optimize {differentiator.description.lower()}",
                description=(f"Based on comparison analysis, {differentiator.description.lower()} "
                             f"shows significant impact on conversion"),
                expected_impact=differentiator.impact_score,
                confidence_score=differentiator.confidence_score,
            ))
        return recommendations

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    def _component_tasks(self, successful: JourneySession, failed: JourneySession,
                         comparison_type: ComparisonType) -> Tuple[List[str], List[Any]]:
        enabled = {
            'content': self.config.enable_content_analysis,
            'timing': self.config.enable_timing_analysis,
            'engagement': self.config.enable_engagement_analysis,
            'hypothesis': self.config.enable_hypothesis_analysis and self.hypothesis_analyzer is not None,
        }
        names, tasks = [], []
        for name in _COMPONENTS_BY_TYPE[comparison_type]:
            if not enabled[name]:
                continue
            names.append(name)
            if name == 'content':
                tasks.append(self.content_analyzer.compare_journey_content(successful, failed))
            elif name == 'timing':
                tasks.append(self._run_timing(successful, failed))
            elif name == 'engagement':
                tasks.append(self.engagement_analyzer.analyze(successful, failed))
            else:
                tasks.append(self.hypothesis_analyzer(successful, failed))
        return names, tasks

    async def _run_timing(self, successful: JourneySession, failed: JourneySession):
        return self.timing_engine.compare_journey_timing(successful, failed)

    async def _fetch_candidates(self, outcome: SessionOutcome, criteria: PairingCriteria) -> List[JourneySession]:
        start, end = criteria.time_window if criteria.time_window else (None, None)
        sessions = await self.store.query_sessions(outcome=outcome, start=start, end=end,
                                                   client_ids=criteria.client_ids)
        if criteria.minimum_engagement is not None:
            sessions = [s for s in sessions if s.average_engagement() >= criteria.minimum_engagement]
        if criteria.page_types:
            wanted = set(criteria.page_types)
            sessions = [s for s in sessions if wanted & set(s.visited_page_types())]
        if len(sessions) > criteria.max_candidates:
            # Most recent journeys first
            sessions = sorted(sessions, key=lambda s: s.session_start, reverse=True)[:criteria.max_candidates]
        return sessions

    def _content_similarity(self, successful: JourneySession, failed: JourneySession) -> float:
        scores = []
        for page_type in FUNNEL_PAGES:
            a = successful.first_visit_for(page_type)
            b = failed.first_visit_for(page_type)
            if a and b and a.content_variant_id and b.content_variant_id:
                scores.append(self.content_analyzer.calculate_content_similarity(
                    a.content_variant_id, b.content_variant_id))
        return sum(scores) / len(scores) if scores else NEUTRAL_SIMILARITY

    def _hypothesis_alignment(self, successful: JourneySession, failed: JourneySession) -> float:
        if self.hypothesis_alignment is None or not self.config.enable_hypothesis_analysis:
            return NEUTRAL_SIMILARITY
        try:
            return min(1.0, max(0.0, float(self.hypothesis_alignment(successful, failed))))
        except Exception as e:
            self.logger.warning(f"Hypothesis alignment failed: {e}")
            return NEUTRAL_SIMILARITY

    def _engagement_z_test(self, differentials: List[float]) -> float:
        """Two-sided z-test of the mean engagement differential against zero."""
        if len(differentials) < 2:
            return 1.0
        sd = float(np.std(differentials, ddof=1))
        if sd == 0:
            return 1.0
        z = float(np.mean(differentials)) / (sd / math.sqrt(len(differentials)))
        return min(1.0, max(0.0, float(2 * stats.norm.sf(abs(z)))))

    def _time_differential_interval(self, comparison: JourneyComparison) -> Tuple[float, float]:
        diffs = comparison.timing_differences
        if len(diffs) >= 2:
            return bootstrap_confidence_interval(
                [d.time_differential for d in diffs],
                confidence_level=self.config.confidence_level,
                n_resamples=self.config.bootstrap_samples,
                seed=self.config.random_seed,
            )
        if len(diffs) == 1:
            return diffs[0].confidence_interval
        return (0.0, 0.0)

    def _component_confidence(self, comparison: JourneyComparison, analyzed: List[str]) -> Dict[str, float]:
        confidence = {}
        if 'content' in analyzed:
            confidence['content'] = float(np.mean([d.correlation_strength for d in comparison.content_differences])) \
                if comparison.content_differences else 0.0
        if 'timing' in analyzed:
            confidence['timing'] = float(np.mean([1 - d.statistical_significance.p_value
                                                  for d in comparison.timing_differences])) \
                if comparison.timing_differences else 0.0
        if 'engagement' in analyzed:
            confidence['engagement'] = (sum(1 for d in comparison.engagement_differences if d.is_significant)
                                        / len(comparison.engagement_differences)) \
                if comparison.engagement_differences else 0.0
        if 'hypothesis' in analyzed:
            confidence['hypothesis'] = float(np.mean([abs(c.correlation_strength)
                                                      for c in comparison.hypothesis_correlations])) \
                if comparison.hypothesis_correlations else 0.0
        return confidence
