"""
Drop-off Detection Engine

Clusters abandoned journeys by exit page and exit trigger, scores each cluster's
confidence, computes per-page conversion, trigger and timing breakdowns, and
derives the first-pass recommendations for the most frequent clusters.
"""

import logging
import time
import numpy as np
from typing import Dict, List, Optional, Any, Tuple
from dataclasses import dataclass, field
from collections import OrderedDict

from scipy import stats
from prometheus_client import Counter, Histogram

from journey_analyzer.config import Settings, get_settings
from journey_analyzer.models.journey import (
    BOUNCE_ACTIONS, FUNNEL_PAGES, ExitAction, ExitTrigger, JourneySession,
    PageType, SessionOutcome,
)
from journey_analyzer.models.analysis import (
    DropOffAnalysis, DropOffPattern, ExitTriggerBreakdown, ImplementationEffort,
    JourneyRecommendation, PageConversionRate, RecommendationPriority,
    RecommendationType, StatisticalSummary, TimingDistribution,
)
from journey_analyzer.utils.significance import (
    confidence_level_from_p, percentiles, wilson_confidence_interval, z_test_proportions,
)

# Initialize metrics
dropoff_analyses = Counter('journey_dropoff_analyses_total', 'Drop-off analyses performed', ['status'])
dropoff_analysis_duration = Histogram('journey_dropoff_analysis_seconds', 'Drop-off analysis duration')

logger = logging.getLogger(__name__)

# Frequency at which the frequency sub-score saturates
FREQUENCY_SATURATION = 20
# Stdev of exit times (seconds) at which the consistency sub-score reaches zero
CONSISTENCY_SPREAD = 300.0

_PATTERN_ACTIONS = {
    ExitTrigger.CONTENT_BASED: [
        'Review and improve content clarity',
        'Add compelling value propositions',
        'Include social proof elements',
    ],
    ExitTrigger.TIME_BASED: [
        'Optimize page loading speed',
        'Reduce information overload',
        'Add engagement elements',
    ],
    ExitTrigger.TECHNICAL: [
        'Fix technical errors',
        'Improve mobile compatibility',
        'Optimize cross-browser support',
    ],
    ExitTrigger.UNKNOWN: [
        'Conduct user research',
        'Analyze user behavior patterns',
        'Test UI improvements',
    ],
}


@dataclass
class DropOffConfig:
    min_sample_size: int = 5
    confidence_threshold: float = 0.7
    significance_threshold: float = 0.05
    confidence_level: float = 0.95
    max_pattern_recommendations: int = 5
    low_conversion_threshold: float = 0.3

    @classmethod
    def from_settings(cls, settings: Optional[Settings] = None) -> "DropOffConfig":
        s = settings or get_settings()
        return cls(
            min_sample_size=s.dropoff_min_sample_size,
            confidence_threshold=s.dropoff_confidence_threshold,
            significance_threshold=s.significance_threshold,
            confidence_level=s.confidence_level,
        )


@dataclass
class CohortComparison:
    """Drop-off behaviour of two session populations side by side"""
    cohort_a: DropOffAnalysis
    cohort_b: DropOffAnalysis
    completion_rate_a: float
    completion_rate_b: float
    conversion_rate_difference: float
    z_statistic: Optional[float]
    pattern_overlap: float
    shared_patterns: List[Tuple[PageType, ExitTrigger]] = field(default_factory=list)


def _exit_time(session: JourneySession) -> float:
    last = session.last_visit
    return last.time_on_page if last else 0.0


class DropOffDetectionEngine:
    """Detects recurring abandonment patterns in closed journey sessions."""

    def __init__(self, config: Optional[DropOffConfig] = None):
        self.config = config or DropOffConfig.from_settings()
        self.logger = logging.getLogger(__name__)

    def analyze_drop_off_patterns(self, sessions: List[JourneySession]) -> DropOffAnalysis:
        """Run a full drop-off analysis over a session population.

        Sparse populations yield an empty analysis; unexpected failures are
        logged and also degrade to an empty analysis.
        """
        start = time.perf_counter()
        try:
            closed = [s for s in sessions if s.final_outcome != SessionOutcome.IN_PROGRESS]
            completed = [s for s in closed if s.final_outcome == SessionOutcome.COMPLETED]
            dropped = [s for s in closed if s.final_outcome == SessionOutcome.DROPPED_OFF]

            if len(dropped) < self.config.min_sample_size:
                self.logger.warning(
                    f"Insufficient dropped sessions for analysis: {len(dropped)} < {self.config.min_sample_size}")
                dropoff_analyses.labels(status='insufficient_data').inc()
                return DropOffAnalysis(total_sessions=len(closed), dropped_sessions=len(dropped))

            patterns = self.identify_patterns(dropped)
            conversion_rates = self.calculate_page_conversion_rates(closed)
            analysis = DropOffAnalysis(
                patterns=patterns,
                conversion_rates=conversion_rates,
                trigger_breakdown=self.analyze_exit_triggers(dropped),
                timing_distributions=self.analyze_timing_distributions(dropped),
                overall_significance=self.calculate_overall_significance(len(completed), len(closed)),
                recommendations=self.generate_recommendations(patterns, conversion_rates),
                total_sessions=len(closed),
                dropped_sessions=len(dropped),
            )

            dropoff_analyses.labels(status='success').inc()
            self.logger.info(
                f"Drop-off analysis found {len(patterns)} patterns across {len(dropped)} dropped sessions")
            return analysis

        except Exception as e:
            self.logger.error(f"Error analyzing drop-off patterns: {e}")
            dropoff_analyses.labels(status='error').inc()
            return DropOffAnalysis()
        finally:
            dropoff_analysis_duration.observe(time.perf_counter() - start)

    def identify_patterns(self, dropped_sessions: List[JourneySession]) -> List[DropOffPattern]:
        """Cluster by (exit page, exit trigger) and keep confident, large-enough clusters."""
        clusters: Dict[Tuple[PageType, ExitTrigger], List[JourneySession]] = OrderedDict()
        for session in dropped_sessions:
            if session.exit_point is None:
                continue
            key = (session.exit_point, session.exit_trigger or ExitTrigger.UNKNOWN)
            clusters.setdefault(key, []).append(session)

        patterns = []
        for (page_type, trigger), members in clusters.items():
            if len(members) < self.config.min_sample_size:
                continue

            confidence = self.calculate_pattern_confidence(members, len(dropped_sessions))
            if confidence < self.config.confidence_threshold:
                self.logger.debug(
                    f"Discarding {page_type.value}/{trigger.value} cluster: confidence {confidence}")
                continue

            exit_times = [_exit_time(s) for s in members]
            variants = []
            for session in members:
                for visit in session.page_visits:
                    if visit.content_variant_id and visit.content_variant_id not in variants:
                        variants.append(visit.content_variant_id)

            patterns.append(DropOffPattern(
                pattern_id=f"dropoff_{page_type.value}_{trigger.value}",
                page_type=page_type,
                exit_trigger=trigger,
                frequency=len(members),
                avg_time_before_exit=float(np.mean(exit_times)),
                confidence_score=confidence,
                content_variant_ids=variants,
                session_ids=[s.session_id for s in members],
                recommendations=list(_PATTERN_ACTIONS[trigger]),
            ))

        page_order = {page: i for i, page in enumerate(FUNNEL_PAGES)}
        patterns.sort(key=lambda p: (-p.frequency, -p.confidence_score, page_order[p.page_type],
                                     p.exit_trigger.value))
        return patterns

    def calculate_pattern_confidence(self, members: List[JourneySession], dropped_total: int) -> float:
        """0.6 * frequency score + 0.4 * timing consistency score.

        The frequency score is the larger of the absolute score
        ``min(1, frequency / 20)`` and the cluster's share of all drop-offs, so a
        cluster holding most of a small population's drop-offs still scores high.
        """
        frequency = len(members)
        if frequency < self.config.min_sample_size:
            return 0.0

        frequency_score = min(1.0, frequency / FREQUENCY_SATURATION)
        if dropped_total > 0:
            frequency_score = max(frequency_score, frequency / dropped_total)

        times = [t for t in (_exit_time(s) for s in members) if t > 0]
        spread = float(np.std(times)) if len(times) >= 2 else 0.0
        consistency_score = max(0.0, 1 - spread / CONSISTENCY_SPREAD)

        return round(frequency_score * 0.6 + consistency_score * 0.4, 2)

    def calculate_page_conversion_rates(self, sessions: List[JourneySession]) -> List[PageConversionRate]:
        """Per funnel page: sessions that moved past the page over sessions that reached it."""
        rates = []
        for page_type in FUNNEL_PAGES:
            visits = [v for s in sessions for v in s.page_visits if v.page_type == page_type]
            reached = [s for s in sessions if any(v.page_type == page_type for v in s.page_visits)]
            if not reached:
                rates.append(PageConversionRate(page_type, 0, 0, 0.0, 0.0, 0.0))
                continue

            conversions = sum(
                1 for s in reached
                if s.final_outcome == SessionOutcome.COMPLETED
                or any(v.page_type == page_type and v.exit_action == ExitAction.NEXT_PAGE
                       for v in s.page_visits)
            )
            bounces = sum(1 for v in visits if v.exit_action in BOUNCE_ACTIONS)

            rates.append(PageConversionRate(
                page_type=page_type,
                total_visits=len(reached),
                conversions=conversions,
                conversion_rate=conversions / len(reached),
                bounce_rate=bounces / len(visits) if visits else 0.0,
                avg_time_on_page=float(np.mean([v.time_on_page for v in visits])) if visits else 0.0,
            ))
        return rates

    def analyze_exit_triggers(self, dropped_sessions: List[JourneySession]) -> List[ExitTriggerBreakdown]:
        groups: Dict[ExitTrigger, List[JourneySession]] = OrderedDict()
        for session in dropped_sessions:
            groups.setdefault(session.exit_trigger or ExitTrigger.UNKNOWN, []).append(session)

        breakdown = []
        for trigger, members in groups.items():
            times = [t for t in (_exit_time(s) for s in members) if t > 0]
            pages = []
            for session in members:
                if session.exit_point and session.exit_point not in pages:
                    pages.append(session.exit_point)
            breakdown.append(ExitTriggerBreakdown(
                exit_trigger=trigger,
                frequency=len(members),
                avg_time_before_exit=float(np.mean(times)) if times else 0.0,
                page_types=pages,
            ))
        breakdown.sort(key=lambda b: -b.frequency)
        return breakdown

    def analyze_timing_distributions(self, dropped_sessions: List[JourneySession]) -> List[TimingDistribution]:
        distributions = []
        for page_type in FUNNEL_PAGES:
            times = [v.time_on_page for s in dropped_sessions for v in s.page_visits
                     if v.page_type == page_type and v.time_on_page > 0]
            if len(times) < self.config.min_sample_size:
                continue
            points = percentiles(times, (25, 50, 75, 90, 95))
            distributions.append(TimingDistribution(
                page_type=page_type,
                sample_size=len(times),
                percentiles=points,
                drop_off_time_threshold=points['p75'],
                engagement_time_threshold=points['p25'],
            ))
        return distributions

    def calculate_overall_significance(self, completed: int, total: int) -> StatisticalSummary:
        """Completion rate with a Wilson interval and a binomial test against 0.5."""
        if total < self.config.min_sample_size:
            return StatisticalSummary(
                sample_size=total,
                completed=completed,
                dropped_off=total - completed,
                completion_rate=completed / total if total else 0.0,
                confidence_interval=(0.0, 0.0),
                p_value=1.0,
                confidence_level='none',
                is_significant=False,
            )

        interval = wilson_confidence_interval(completed, total, self.config.confidence_level)
        p_value = float(stats.binomtest(completed, total, 0.5).pvalue)
        return StatisticalSummary(
            sample_size=total,
            completed=completed,
            dropped_off=total - completed,
            completion_rate=completed / total,
            confidence_interval=interval,
            p_value=p_value,
            confidence_level=confidence_level_from_p(p_value),
            is_significant=p_value < self.config.significance_threshold,
        )

    def generate_recommendations(self, patterns: List[DropOffPattern],
                                 conversion_rates: List[PageConversionRate]) -> List[JourneyRecommendation]:
        rates_by_page = {r.page_type: r for r in conversion_rates}
        recommendations = []

        for pattern in patterns[:self.config.max_pattern_recommendations]:
            page_rate = rates_by_page.get(pattern.page_type)
            if page_rate is None:
                continue
            recommendations.append(self._recommendation_from_pattern(pattern, page_rate))

        for rate in conversion_rates:
            if rate.total_visits > 0 and rate.conversion_rate < self.config.low_conversion_threshold:
                recommendations.append(self._recommendation_from_conversion(rate))

        recommendations.sort(key=lambda r: (-r.priority.rank, -r.confidence))
        return recommendations

    def compare_cohorts(self, cohort_a: List[JourneySession],
                        cohort_b: List[JourneySession]) -> CohortComparison:
        """Compare two populations' completion rates and drop-off pattern overlap."""
        analysis_a = self.analyze_drop_off_patterns(cohort_a)
        analysis_b = self.analyze_drop_off_patterns(cohort_b)

        rate_a, n_a = self._completion_rate(cohort_a)
        rate_b, n_b = self._completion_rate(cohort_b)

        keys_a = {p.key for p in analysis_a.patterns}
        keys_b = {p.key for p in analysis_b.patterns}
        union = keys_a | keys_b
        shared = keys_a & keys_b

        return CohortComparison(
            cohort_a=analysis_a,
            cohort_b=analysis_b,
            completion_rate_a=rate_a,
            completion_rate_b=rate_b,
            conversion_rate_difference=rate_b - rate_a,
            z_statistic=z_test_proportions(rate_a, rate_b, n_a, n_b),
            pattern_overlap=len(shared) / len(union) if union else 0.0,
            shared_patterns=sorted(shared, key=lambda k: (k[0].value, k[1].value)),
        )

    def _completion_rate(self, sessions: List[JourneySession]) -> Tuple[float, int]:
        closed = [s for s in sessions if s.final_outcome != SessionOutcome.IN_PROGRESS]
        if not closed:
            return 0.0, 0
        completed = sum(1 for s in closed if s.final_outcome == SessionOutcome.COMPLETED)
        return completed / len(closed), len(closed)

    def _recommendation_from_pattern(self, pattern: DropOffPattern,
                                     page_rate: PageConversionRate) -> JourneyRecommendation:
        page = pattern.page_type.value
        avg_time = round(pattern.avg_time_before_exit)
        # Assumes 80% conversion as the attainable ceiling
        improvement = round(pattern.frequency / 100 * (0.8 - page_rate.conversion_rate) * 100)
        improvement = float(min(50, max(1, improvement)))

        if pattern.exit_trigger == ExitTrigger.CONTENT_BASED:
            priority = RecommendationPriority.HIGH if pattern.frequency > 10 else RecommendationPriority.MEDIUM
            rec_type, effort = RecommendationType.CONTENT, ImplementationEffort.MEDIUM
            title = f"Improve {page} page content"
            description = (f"{pattern.frequency} users are dropping off from {page} page due to content issues. "
                           f"Average time before exit: {avg_time} seconds.")
            confidence = pattern.confidence_score
        elif pattern.exit_trigger == ExitTrigger.TIME_BASED:
            priority, rec_type, effort = (RecommendationPriority.MEDIUM, RecommendationType.TIMING,
                                          ImplementationEffort.MEDIUM)
            title = f"Optimize {page} page loading and engagement"
            description = (f"Users are spending too much time (avg: {avg_time} seconds) "
                           f"before dropping off from {page} page.")
            confidence = pattern.confidence_score
        elif pattern.exit_trigger == ExitTrigger.TECHNICAL:
            priority, rec_type, effort = (RecommendationPriority.HIGH, RecommendationType.TECHNICAL,
                                          ImplementationEffort.HIGH)
            title = f"Fix technical issues on {page} page"
            description = f"Technical issues are causing {pattern.frequency} users to drop off from {page} page."
            confidence = pattern.confidence_score
        else:
            priority, rec_type, effort = (RecommendationPriority.LOW, RecommendationType.UX,
                                          ImplementationEffort.MEDIUM)
            title = f"General UX improvements for {page} page"
            description = f"{pattern.frequency} users are dropping off from {page} page for unknown reasons."
            # Unknown triggers are weaker evidence
            confidence = round(pattern.confidence_score * 0.7, 2)

        return JourneyRecommendation(
            recommendation_id=f"rec_{pattern.pattern_id}",
            priority=priority,
            recommendation_type=rec_type,
            title=title,
            description=description,
            expected_improvement=improvement,
            implementation_effort=effort,
            target_page=pattern.page_type,
            based_on_pattern=pattern.pattern_id,
            confidence=confidence,
            rule_id='drop_off_pattern',
        )

    def _recommendation_from_conversion(self, rate: PageConversionRate) -> JourneyRecommendation:
        page = rate.page_type.value
        return JourneyRecommendation(
            recommendation_id=f"rec_conversion_{page}",
            priority=RecommendationPriority.HIGH if rate.conversion_rate < 0.1 else RecommendationPriority.MEDIUM,
            recommendation_type=RecommendationType.CONTENT,
            title=f"Improve conversion rate for {page} page",
            description=(f"{page} page has low conversion rate ({round(rate.conversion_rate * 100)}%) "
                         f"with high bounce rate ({round(rate.bounce_rate * 100)}%)."),
            expected_improvement=float(min(50, round((0.5 - rate.conversion_rate) * 100))),
            implementation_effort=ImplementationEffort.MEDIUM,
            target_page=rate.page_type,
            based_on_pattern='conversion-analysis',
            confidence=0.8 if rate.total_visits > 20 else 0.6,
            rule_id='low_page_conversion',
        )
