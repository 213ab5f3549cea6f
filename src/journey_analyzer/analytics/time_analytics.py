"""
Time-on-Page Analysis

Drop-off risk assessment for single visits, data-driven time thresholds per
page, journey-wide time patterns, abandonment patterns and time anomalies.
"""

import logging
import numpy as np
import pandas as pd
from typing import Dict, List, Optional, Any, Tuple
from dataclasses import dataclass, field
from enum import Enum

from journey_analyzer.models.journey import (
    FUNNEL_PAGES, PAGE_TIME_EXPECTATIONS, ExitAction, ExitTrigger,
    JourneySession, PageType, PageVisit, SessionOutcome,
)

logger = logging.getLogger(__name__)

# Successful visits needed before thresholds are derived from data
MIN_THRESHOLD_SAMPLES = 10

_VISIT_COLUMNS = ['session_id', 'page_type', 'time_on_page', 'exit_action', 'engagement_score']


class RiskLevel(Enum):
    """Drop-off risk for a single visit"""
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"
    CRITICAL = "critical"


@dataclass
class RiskAssessment:
    risk: RiskLevel
    reason: str
    recommended_action: str


@dataclass
class OptimalThresholds:
    """Time thresholds learned from successful visits"""
    page_type: PageType
    min_effective_time: float
    optimal_time: float
    max_reasonable_time: float
    confidence_interval: Tuple[float, float]
    sample_size: int = 0


@dataclass
class PageTimeAnalysis:
    page_type: PageType
    avg_time: float
    drop_off_time: float
    engagement_score: float
    conversion_rate: float


@dataclass
class JourneyTimePatterns:
    avg_total_time: float
    median_total_time: float
    completion_time_range: Tuple[float, float]
    drop_off_time_patterns: Dict[PageType, float]
    page_analysis: List[PageTimeAnalysis] = field(default_factory=list)
    recommendations: List[str] = field(default_factory=list)


@dataclass
class AbandonmentSummary:
    page_type: PageType
    frequency: int
    avg_time: Optional[float] = None


@dataclass
class AbandonmentPatterns:
    quick_exits: List[AbandonmentSummary] = field(default_factory=list)
    prolonged_stalls: List[AbandonmentSummary] = field(default_factory=list)
    timeout_patterns: List[AbandonmentSummary] = field(default_factory=list)


@dataclass
class TimeAnomalies:
    outliers: List[float] = field(default_factory=list)
    suspiciously_short: List[float] = field(default_factory=list)
    suspiciously_long: List[float] = field(default_factory=list)


def assess_drop_off_risk(visit: PageVisit) -> RiskAssessment:
    """Classify a closed visit's drop-off risk from time, engagement and scroll."""
    expectation = PAGE_TIME_EXPECTATIONS[visit.page_type]

    if visit.time_on_page < expectation.min_effective_time:
        return RiskAssessment(RiskLevel.HIGH,
                              'Very short time on page suggests quick abandonment',
                              'Improve initial engagement and reduce friction')
    if visit.time_on_page > expectation.max_reasonable_time:
        return RiskAssessment(RiskLevel.CRITICAL,
                              'Excessive time suggests confusion or technical issues',
                              'Simplify content and check for usability issues')
    if visit.engagement_score < 0.3:
        return RiskAssessment(RiskLevel.HIGH,
                              'Low engagement despite reasonable time',
                              'Improve content relevance and interactivity')
    if visit.scroll_depth < 25:
        return RiskAssessment(RiskLevel.MEDIUM,
                              'Limited scroll depth indicates shallow engagement',
                              'Improve above-the-fold content and calls-to-action')
    return RiskAssessment(RiskLevel.LOW,
                          'Healthy engagement patterns observed',
                          'Monitor and maintain current content strategy')


def calculate_optimal_thresholds(visits: List[PageVisit], page_type: PageType) -> OptimalThresholds:
    """Derive min/optimal/max times from visits that moved on with good engagement."""
    page_type = PageType(page_type)
    times = [v.time_on_page for v in visits
             if v.page_type == page_type
             and v.exit_action == ExitAction.NEXT_PAGE
             and v.engagement_score > 0.5]

    if len(times) < MIN_THRESHOLD_SAMPLES:
        defaults = PAGE_TIME_EXPECTATIONS[page_type]
        return OptimalThresholds(
            page_type=page_type,
            min_effective_time=defaults.min_effective_time,
            optimal_time=defaults.optimal_time,
            max_reasonable_time=defaults.max_reasonable_time,
            confidence_interval=(0.0, 0.0),
            sample_size=len(times),
        )

    p10, p25, p50, p75, p90 = np.percentile(np.asarray(times, dtype=float), [10, 25, 50, 75, 90])
    return OptimalThresholds(
        page_type=page_type,
        min_effective_time=float(round(p10)),
        optimal_time=float(round(p50)),
        max_reasonable_time=float(round(p90)),
        confidence_interval=(float(round(p25)), float(round(p75))),
        sample_size=len(times),
    )


def _visits_frame(sessions: List[JourneySession]) -> pd.DataFrame:
    rows = [
        {
            'session_id': s.session_id,
            'page_type': v.page_type.value,
            'time_on_page': v.time_on_page,
            'exit_action': v.exit_action.value if v.exit_action else None,
            'engagement_score': v.engagement_score,
        }
        for s in sessions for v in s.page_visits
    ]
    return pd.DataFrame(rows, columns=_VISIT_COLUMNS)


class JourneyTimeAnalyzer:
    """Time-pattern analysis across a population of closed sessions."""

    def __init__(self):
        self.logger = logging.getLogger(__name__)

    def analyze_journey_time_patterns(self, sessions: List[JourneySession]) -> JourneyTimePatterns:
        completed = [s for s in sessions if s.final_outcome == SessionOutcome.COMPLETED]
        completion_times = pd.Series([s.total_duration for s in completed], dtype=float)

        if completion_times.empty:
            avg_total, median_total, time_range = 0.0, 0.0, (0.0, 0.0)
        else:
            avg_total = float(completion_times.mean())
            median_total = float(completion_times.median())
            time_range = (float(completion_times.min()), float(completion_times.max()))

        drop_off_times = self._drop_off_time_patterns(sessions)
        page_analysis = self._analyze_pages(_visits_frame(sessions))
        recommendations = self._generate_recommendations(page_analysis, drop_off_times)

        return JourneyTimePatterns(
            avg_total_time=avg_total,
            median_total_time=median_total,
            completion_time_range=time_range,
            drop_off_time_patterns=drop_off_times,
            page_analysis=page_analysis,
            recommendations=recommendations,
        )

    def identify_abandonment_patterns(self, sessions: List[JourneySession]) -> AbandonmentPatterns:
        """Group dropped sessions into quick exits, prolonged stalls and timeouts per exit page."""
        rows = []
        for session in sessions:
            if session.final_outcome != SessionOutcome.DROPPED_OFF or session.exit_point is None:
                continue
            exit_visits = [v.time_on_page for v in session.page_visits if v.page_type == session.exit_point]
            if not exit_visits:
                continue
            expectation = PAGE_TIME_EXPECTATIONS[session.exit_point]
            avg_exit_time = sum(exit_visits) / len(exit_visits)
            rows.append({
                'page_type': session.exit_point.value,
                'avg_exit_time': avg_exit_time,
                'quick': avg_exit_time < expectation.min_effective_time,
                'stalled': avg_exit_time > expectation.max_reasonable_time,
                'timeout': session.exit_trigger == ExitTrigger.TIME_BASED,
            })

        patterns = AbandonmentPatterns()
        if not rows:
            return patterns
        df = pd.DataFrame(rows)

        for flag, target in (('quick', patterns.quick_exits), ('stalled', patterns.prolonged_stalls)):
            grouped = df[df[flag]].groupby('page_type', sort=False)['avg_exit_time'].agg(['mean', 'count'])
            for page, row in grouped.iterrows():
                target.append(AbandonmentSummary(PageType(page), int(row['count']), float(round(row['mean']))))

        timeouts = df[df['timeout']].groupby('page_type', sort=False).size()
        for page, count in timeouts.items():
            patterns.timeout_patterns.append(AbandonmentSummary(PageType(page), int(count)))

        return patterns

    def _drop_off_time_patterns(self, sessions: List[JourneySession]) -> Dict[PageType, float]:
        patterns: Dict[PageType, List[float]] = {}
        for session in sessions:
            if session.final_outcome != SessionOutcome.DROPPED_OFF or session.exit_point is None:
                continue
            times = [v.time_on_page for v in session.page_visits if v.page_type == session.exit_point]
            if times:
                patterns.setdefault(session.exit_point, []).append(sum(times) / len(times))
        return {page: float(np.mean(values)) for page, values in patterns.items()}

    def _analyze_pages(self, visits: pd.DataFrame) -> List[PageTimeAnalysis]:
        analysis = []
        for page_type in FUNNEL_PAGES:
            page_visits = visits[visits['page_type'] == page_type.value]
            if page_visits.empty:
                analysis.append(PageTimeAnalysis(page_type, 0.0, 0.0, 0.0, 0.0))
                continue

            moved_on = page_visits['exit_action'] == ExitAction.NEXT_PAGE.value
            dropped = page_visits.loc[~moved_on, 'time_on_page']
            analysis.append(PageTimeAnalysis(
                page_type=page_type,
                avg_time=float(round(page_visits['time_on_page'].mean())),
                drop_off_time=float(round(dropped.mean())) if not dropped.empty else 0.0,
                engagement_score=round(float(page_visits['engagement_score'].mean()), 2),
                conversion_rate=round(float(moved_on.mean()) * 100, 2),
            ))
        return analysis

    def _generate_recommendations(self, page_analysis: List[PageTimeAnalysis],
                                  drop_off_times: Dict[PageType, float]) -> List[str]:
        recommendations = []
        for analysis in page_analysis:
            page = analysis.page_type.value
            expectation = PAGE_TIME_EXPECTATIONS[analysis.page_type]

            if analysis.avg_time < expectation.min_effective_time:
                recommendations.append(
                    f"{page} page: Average time ({analysis.avg_time:.0f}s) is below minimum effective threshold. "
                    f"Consider adding engagement elements to extend user attention.")
            if analysis.avg_time > expectation.max_reasonable_time:
                recommendations.append(
                    f"{page} page: Average time ({analysis.avg_time:.0f}s) exceeds reasonable threshold. "
                    f"Simplify content and improve clarity to reduce cognitive load.")
            if analysis.avg_time >= expectation.min_effective_time and analysis.engagement_score < 0.4:
                recommendations.append(
                    f"{page} page: Good time investment but low engagement score ({analysis.engagement_score}). "
                    f"Improve interactive elements and content relevance.")
            drop_time = drop_off_times.get(analysis.page_type)
            if drop_time and drop_time < expectation.min_effective_time:
                recommendations.append(
                    f"{page} page: Users dropping off quickly ({round(drop_time)}s average). "
                    f"Focus on initial page impression and reduce early friction points.")
            if analysis.conversion_rate < 50:
                recommendations.append(
                    f"{page} page: Low conversion rate ({analysis.conversion_rate}%). "
                    f"Strengthen call-to-action and address potential objections.")
        return recommendations


def detect_time_anomalies(durations: List[float], page_type: PageType) -> TimeAnomalies:
    """IQR outliers plus durations implausibly short or long for the page."""
    expectation = PAGE_TIME_EXPECTATIONS[PageType(page_type)]
    if not durations:
        return TimeAnomalies()

    values = np.asarray(durations, dtype=float)
    q1, q3 = np.percentile(values, [25, 75])
    iqr = q3 - q1
    lower, upper = q1 - 1.5 * iqr, q3 + 1.5 * iqr

    return TimeAnomalies(
        outliers=[float(d) for d in values if d < lower or d > upper],
        suspiciously_short=[float(d) for d in values if d < expectation.min_effective_time / 2],
        suspiciously_long=[float(d) for d in values if d > expectation.timeout_threshold],
    )


def format_duration(seconds: float) -> str:
    minutes, remaining = divmod(int(round(seconds)), 60)
    if minutes == 0:
        return f"{remaining}s"
    return f"{minutes}m {remaining}s"
