"""
Timing & Engagement Comparison Engine

Compares per-page timing and engagement between a successful and a failed
journey, choosing Welch's t-test or Mann-Whitney U per page and reporting
Cohen's d alongside every significance result.
"""

from __future__ import annotations
import asyncio
import logging
import math
from dataclasses import dataclass
from typing import Any, Dict, List, Optional, Sequence, Tuple

import numpy as np
from scipy import stats
from prometheus_client import Counter

from journey_analyzer.config import Settings, get_settings
from journey_analyzer.models.journey import FUNNEL_PAGES, JourneySession, PageType, PageVisit
from journey_analyzer.models.comparison import (
    SignificanceResult, SignificanceTest, TimingAnalysis, TimingDiff,
)
from journey_analyzer.utils.significance import (
    approximate_cohens_d, cohens_d, is_approximately_normal, mann_whitney_u_test, welch_t_test,
)

timing_comparisons = Counter('journey_timing_comparisons_total', 'Journey timing comparisons', ['status'])

logger = logging.getLogger(__name__)

# Percentile multipliers applied when a page has a single observation
SINGLE_SAMPLE_PERCENTILES = {'p25': 0.7, 'p50': 1.0, 'p75': 1.3, 'p90': 1.6, 'p95': 1.8}

# Historical per-page samples: page -> (successful cohort times, failed cohort times)
HistoricalSamples = Dict[PageType, Tuple[Sequence[float], Sequence[float]]]


@dataclass
class TimingComparisonConfig:
    min_sample_size: int = 10
    significance_threshold: float = 0.05
    effect_size_threshold: float = 0.3
    confidence_level: float = 0.95
    coefficient_of_variation: float = 0.3
    batch_chunk_size: int = 5
    batch_yield_seconds: float = 0.01

    @classmethod
    def from_settings(cls, settings: Optional[Settings] = None) -> "TimingComparisonConfig":
        s = settings or get_settings()
        return cls(
            min_sample_size=s.timing_min_sample_size,
            significance_threshold=s.significance_threshold,
            effect_size_threshold=s.effect_size_threshold,
            confidence_level=s.confidence_level,
            batch_chunk_size=s.batch_chunk_size,
            batch_yield_seconds=s.batch_yield_seconds,
        )


def calculate_drop_off_risk(visit: PageVisit) -> float:
    """Heuristic 0-1 risk from engagement, minutes on page and scroll depth."""
    minutes = visit.time_on_page / 60
    risk = 1 - (visit.engagement_score * 0.4 + min(minutes / 5, 1) * 0.3 + (visit.scroll_depth / 100) * 0.3)
    return max(0.0, min(1.0, risk))


class TimingComparisonEngine:
    """Per-page timing differentials between a successful and a failed journey.

    Each page present in both journeys yields one candidate ``TimingDiff``. A
    candidate is kept when its p-value is below the significance threshold or
    its effect size reaches the effect size threshold; survivors are ordered by
    effect size, largest first.

    With a single observation per side the standard deviation of each side is
    approximated as 30% of its mean. Supplying ``historical_samples`` for a page
    replaces that approximation with the real cohort variance.
    """

    def __init__(self, config: Optional[TimingComparisonConfig] = None):
        self.config = config or TimingComparisonConfig.from_settings()
        self.logger = logging.getLogger(__name__)

    def compare_journey_timing(self, successful: JourneySession, failed: JourneySession,
                               historical_samples: Optional[HistoricalSamples] = None) -> List[TimingDiff]:
        diffs = []
        for page_type in FUNNEL_PAGES:
            successful_visit = successful.first_visit_for(page_type)
            failed_visit = failed.first_visit_for(page_type)
            if successful_visit is None or failed_visit is None:
                continue

            samples = (historical_samples or {}).get(page_type)
            try:
                diff = self.compare_page_timing(successful_visit, failed_visit,
                                                successful, failed, samples)
            except Exception as e:
                self.logger.error(f"Page timing comparison failed for {page_type.value}: {e}")
                timing_comparisons.labels(status='error').inc()
                continue

            if self.is_timing_diff_significant(diff):
                diffs.append(diff)

        timing_comparisons.labels(status='success').inc()
        diffs.sort(key=lambda d: d.effect_size, reverse=True)
        return diffs

    def compare_page_timing(self, successful_visit: PageVisit, failed_visit: PageVisit,
                            successful: JourneySession, failed: JourneySession,
                            samples: Optional[Tuple[Sequence[float], Sequence[float]]] = None) -> TimingDiff:
        successful_samples = list(samples[0]) if samples else [successful_visit.time_on_page]
        failed_samples = list(samples[1]) if samples else [failed_visit.time_on_page]

        successful_timing = self.build_timing_analysis(successful_visit, successful,
                                                       successful_samples if samples else None)
        failed_timing = self.build_timing_analysis(failed_visit, failed,
                                                   failed_samples if samples else None)

        significance, welch_interval = self.calculate_timing_significance(successful_samples, failed_samples)
        effect_size = self.calculate_effect_size(successful_samples, failed_samples)
        time_differential = successful_visit.time_on_page - failed_visit.time_on_page

        return TimingDiff(
            page_type=successful_visit.page_type,
            successful_timing=successful_timing,
            failed_timing=failed_timing,
            time_differential=time_differential,
            engagement_differential=successful_visit.engagement_score - failed_visit.engagement_score,
            interaction_differential=successful_visit.interactions - failed_visit.interactions,
            scroll_depth_differential=successful_visit.scroll_depth - failed_visit.scroll_depth,
            statistical_significance=significance,
            confidence_interval=welch_interval or self._difference_interval(
                time_differential, successful_samples, failed_samples),
            effect_size=effect_size,
        )

    def build_timing_analysis(self, visit: PageVisit, journey: JourneySession,
                              samples: Optional[Sequence[float]] = None) -> TimingAnalysis:
        if samples and len(samples) > 1:
            points = np.percentile(np.asarray(samples, dtype=float), [25, 50, 75, 90, 95])
            percentile_map = {f"p{p}": float(v) for p, v in zip((25, 50, 75, 90, 95), points)}
        else:
            percentile_map = {k: visit.time_on_page * m for k, m in SINGLE_SAMPLE_PERCENTILES.items()}

        index = journey.page_visits.index(visit)
        next_visit = journey.page_visits[index + 1] if index + 1 < len(journey.page_visits) else None
        transition_time = None
        if next_visit is not None and visit.exit_time is not None:
            transition_time = (next_visit.entry_time - visit.exit_time).total_seconds()

        return TimingAnalysis(
            page_type=visit.page_type,
            time_on_page=visit.time_on_page,
            percentiles=percentile_map,
            drop_off_time_threshold=max(5.0, visit.time_on_page * 0.3),
            engagement_time_threshold=visit.time_on_page * 0.7,
            page_sequence=index + 1,
            transition_time=transition_time,
            drop_off_risk=calculate_drop_off_risk(visit),
            engagement_score=visit.engagement_score,
            scroll_depth=visit.scroll_depth,
            interactions=visit.interactions,
        )

    def select_test(self, successful_samples: Sequence[float], failed_samples: Sequence[float]) -> SignificanceTest:
        if (len(successful_samples) < self.config.min_sample_size
                or len(failed_samples) < self.config.min_sample_size):
            return SignificanceTest.MANN_WHITNEY_U
        if not (is_approximately_normal(successful_samples) and is_approximately_normal(failed_samples)):
            return SignificanceTest.MANN_WHITNEY_U
        return SignificanceTest.WELCH_T_TEST

    def calculate_timing_significance(self, successful_samples: Sequence[float],
                                      failed_samples: Sequence[float]
                                      ) -> Tuple[SignificanceResult, Optional[Tuple[float, float]]]:
        test = self.select_test(successful_samples, failed_samples)
        if test == SignificanceTest.WELCH_T_TEST:
            result = welch_t_test(successful_samples, failed_samples, self.config.confidence_level)
            return SignificanceResult(
                p_value=result.p_value,
                test_statistic=result.t_statistic,
                test_type=test,
                degrees_of_freedom=result.degrees_of_freedom,
            ), result.confidence_interval

        result = mann_whitney_u_test(successful_samples, failed_samples)
        return SignificanceResult(
            p_value=result.p_value,
            test_statistic=result.u_statistic,
            test_type=test,
            z_score=result.z_score,
        ), None

    def calculate_effect_size(self, successful_samples: Sequence[float], failed_samples: Sequence[float]) -> float:
        if len(successful_samples) >= 2 and len(failed_samples) >= 2:
            return abs(cohens_d(successful_samples, failed_samples))
        return approximate_cohens_d(float(np.mean(successful_samples)), float(np.mean(failed_samples)),
                                    self.config.coefficient_of_variation)

    def is_timing_diff_significant(self, diff: TimingDiff) -> bool:
        return (diff.statistical_significance.p_value < self.config.significance_threshold
                or diff.effect_size >= self.config.effect_size_threshold)

    async def batch_compare_timing(self, pairs: List[Tuple[JourneySession, JourneySession]]) -> List[List[TimingDiff]]:
        """Compare many pairs in fixed-size chunks, yielding to the loop between chunks."""
        results: List[List[TimingDiff]] = []
        chunk_size = max(1, self.config.batch_chunk_size)

        for i in range(0, len(pairs), chunk_size):
            for successful, failed in pairs[i:i + chunk_size]:
                try:
                    results.append(self.compare_journey_timing(successful, failed))
                except Exception as e:
                    self.logger.warning(
                        f"Timing comparison failed for {successful.session_id}/{failed.session_id}: {e}")
                    timing_comparisons.labels(status='error').inc()
                    results.append([])
            if i + chunk_size < len(pairs):
                await asyncio.sleep(self.config.batch_yield_seconds)

        return results

    def get_timing_statistics(self, diffs: List[TimingDiff]) -> Dict[str, Any]:
        if not diffs:
            return {
                'total_comparisons': 0,
                'significant_differences': 0,
                'average_effect_size': 0.0,
                'average_p_value': 1.0,
                'largest_time_difference': 0.0,
                'most_impactful_page': None,
                'most_impactful_pages': [],
                'test_type_breakdown': {},
                'effect_size_breakdown': {'large': 0, 'medium': 0, 'small': 0},
            }

        ranked = sorted(diffs, key=lambda d: d.effect_size, reverse=True)
        breakdown: Dict[str, int] = {}
        for diff in diffs:
            key = diff.statistical_significance.test_type.value
            breakdown[key] = breakdown.get(key, 0) + 1

        return {
            'total_comparisons': len(diffs),
            'significant_differences': sum(
                1 for d in diffs if d.statistical_significance.p_value < self.config.significance_threshold),
            'average_effect_size': float(np.mean([d.effect_size for d in diffs])),
            'average_p_value': float(np.mean([d.statistical_significance.p_value for d in diffs])),
            'largest_time_difference': max(abs(d.time_differential) for d in diffs),
            'most_impactful_page': ranked[0].page_type,
            'most_impactful_pages': [(d.page_type, d.effect_size) for d in ranked[:4]],
            'test_type_breakdown': breakdown,
            'effect_size_breakdown': {
                'large': sum(1 for d in diffs if d.effect_size > 0.8),
                'medium': sum(1 for d in diffs if 0.5 < d.effect_size <= 0.8),
                'small': sum(1 for d in diffs if 0.2 < d.effect_size <= 0.5),
            },
        }

    def _difference_interval(self, difference: float, successful_samples: Sequence[float],
                             failed_samples: Sequence[float]) -> Tuple[float, float]:
        """Normal interval around the time differential using the available spread estimate."""
        z = float(stats.norm.ppf(1 - (1 - self.config.confidence_level) / 2))
        variance = 0.0
        for sample in (successful_samples, failed_samples):
            if len(sample) >= 2:
                variance += float(np.var(sample, ddof=1)) / len(sample)
            else:
                variance += (self.config.coefficient_of_variation * float(np.mean(sample))) ** 2
        margin = z * math.sqrt(variance)
        return (difference - margin, difference + margin)
