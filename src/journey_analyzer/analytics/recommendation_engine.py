"""
Journey Recommendation Engine

Rule-table mapping from detected drop-off patterns and page conversion rates
to prioritized, effort-scored action items. Each rule is an identifier plus a
pure function of the recommendation context that may produce one
recommendation.
"""

import logging
import uuid
from dataclasses import dataclass
from enum import Enum
from typing import Callable, Dict, List, Optional

from prometheus_client import Counter

from journey_analyzer.models.journey import FUNNEL_PAGES, ExitTrigger, PageType
from journey_analyzer.models.analysis import (
    DropOffPattern, ImplementationEffort, JourneyRecommendation, RecommendationContext,
    RecommendationPriority, RecommendationType,
)

recommendations_generated = Counter('journey_recommendations_generated_total',
                                    'Recommendations generated', ['rule'])

logger = logging.getLogger(__name__)

MIN_EXPECTED_IMPROVEMENT = 1
MAX_EXPECTED_IMPROVEMENT = 50

PRIORITY_WEIGHTS = {
    RecommendationPriority.HIGH: 1.0,
    RecommendationPriority.MEDIUM: 0.7,
    RecommendationPriority.LOW: 0.4,
}
EFFORT_WEIGHTS = {
    ImplementationEffort.LOW: 1.0,
    ImplementationEffort.MEDIUM: 0.8,
    ImplementationEffort.HIGH: 0.6,
}

_TYPE_BY_TRIGGER = {
    ExitTrigger.TECHNICAL: RecommendationType.TECHNICAL,
    ExitTrigger.TIME_BASED: RecommendationType.TIMING,
    ExitTrigger.CONTENT_BASED: RecommendationType.CONTENT,
}


class RuleId(Enum):
    """Built-in recommendation rules"""
    HIGH_DROP_OFF_RATE = "high-dropoff-rate"
    LOW_CONVERSION_RATE = "low-conversion-rate"
    QUICK_EXIT_PATTERN = "quick-exit-pattern"
    TECHNICAL_ISSUES = "technical-issues"
    TIME_OPTIMIZATION = "time-optimization"
    CONTENT_OPTIMIZATION = "content-optimization"
    UX_OPTIMIZATION = "ux-optimization"


RuleFunction = Callable[[RecommendationContext], Optional[JourneyRecommendation]]


@dataclass
class RecommendationRule:
    rule_id: str
    name: str
    evaluate: RuleFunction


def recommendation_type_for_trigger(trigger: ExitTrigger) -> RecommendationType:
    return _TYPE_BY_TRIGGER.get(trigger, RecommendationType.UX)


def _most_frequent(patterns: List[DropOffPattern]) -> Optional[DropOffPattern]:
    if not patterns:
        return None
    return sorted(patterns, key=lambda p: -p.frequency)[0]


def _recommendation(rule_id: RuleId, **fields) -> JourneyRecommendation:
    return JourneyRecommendation(recommendation_id=str(uuid.uuid4()), rule_id=rule_id.value, **fields)


def high_drop_off_rule(context: RecommendationContext) -> Optional[JourneyRecommendation]:
    pattern = _most_frequent([p for p in context.drop_off_patterns if p.frequency > 50])
    if pattern is None:
        return None
    page = pattern.page_type.value
    return _recommendation(
        RuleId.HIGH_DROP_OFF_RATE,
        priority=RecommendationPriority.HIGH,
        recommendation_type=recommendation_type_for_trigger(pattern.exit_trigger),
        title=f"Critical: Fix {page} page drop-offs",
        description=(f"{pattern.frequency} users are dropping off from {page} page. "
                     f"This is causing significant revenue loss."),
        expected_improvement=min(40, round(pattern.frequency / 10)),
        implementation_effort=ImplementationEffort.HIGH,
        target_page=pattern.page_type,
        based_on_pattern=pattern.pattern_id,
        confidence=pattern.confidence_score,
    )


def low_conversion_rule(context: RecommendationContext) -> Optional[JourneyRecommendation]:
    low = [r for r in context.conversion_rates if r.conversion_rate < 0.5]
    if not low:
        return None
    lowest = min(low, key=lambda r: r.conversion_rate)
    page = lowest.page_type.value
    return _recommendation(
        RuleId.LOW_CONVERSION_RATE,
        priority=RecommendationPriority.HIGH,
        recommendation_type=RecommendationType.CONTENT,
        title=f"Optimize {page} conversion rate",
        description=(f"{page} page has only {round(lowest.conversion_rate * 100)}% conversion rate. "
                     f"Significant improvement opportunity."),
        expected_improvement=round((0.7 - lowest.conversion_rate) * 100),
        implementation_effort=ImplementationEffort.MEDIUM,
        target_page=lowest.page_type,
        based_on_pattern='conversion-analysis',
        confidence=0.8 if lowest.total_visits > 20 else 0.6,
    )


def quick_exit_rule(context: RecommendationContext) -> Optional[JourneyRecommendation]:
    pattern = _most_frequent([p for p in context.drop_off_patterns
                              if p.avg_time_before_exit < 30 and p.frequency > 20])
    if pattern is None:
        return None
    page = pattern.page_type.value
    return _recommendation(
        RuleId.QUICK_EXIT_PATTERN,
        priority=RecommendationPriority.MEDIUM,
        recommendation_type=RecommendationType.CONTENT,
        title=f"Address quick exits on {page} page",
        description=(f"Users are leaving {page} page within {round(pattern.avg_time_before_exit)} seconds. "
                     f"Content may not be engaging enough."),
        expected_improvement=15,
        implementation_effort=ImplementationEffort.MEDIUM,
        target_page=pattern.page_type,
        based_on_pattern=pattern.pattern_id,
        confidence=pattern.confidence_score,
    )


def technical_issues_rule(context: RecommendationContext) -> Optional[JourneyRecommendation]:
    pattern = _most_frequent([p for p in context.drop_off_patterns
                              if p.exit_trigger == ExitTrigger.TECHNICAL and p.frequency > 10])
    if pattern is None:
        return None
    page = pattern.page_type.value
    return _recommendation(
        RuleId.TECHNICAL_ISSUES,
        priority=RecommendationPriority.HIGH,
        recommendation_type=RecommendationType.TECHNICAL,
        title=f"Fix technical issues on {page} page",
        description=(f"{pattern.frequency} users are experiencing technical problems on {page} page, "
                     f"causing them to drop off."),
        expected_improvement=20,
        implementation_effort=ImplementationEffort.HIGH,
        target_page=pattern.page_type,
        based_on_pattern=pattern.pattern_id,
        confidence=pattern.confidence_score,
    )


def time_optimization_rule(context: RecommendationContext) -> Optional[JourneyRecommendation]:
    pattern = _most_frequent([p for p in context.drop_off_patterns
                              if p.exit_trigger == ExitTrigger.TIME_BASED and p.avg_time_before_exit > 300])
    if pattern is None:
        return None
    page = pattern.page_type.value
    return _recommendation(
        RuleId.TIME_OPTIMIZATION,
        priority=RecommendationPriority.MEDIUM,
        recommendation_type=RecommendationType.TIMING,
        title=f"Optimize loading and engagement on {page} page",
        description=(f"Users are spending {round(pattern.avg_time_before_exit / 60)} minutes on {page} page "
                     f"before dropping off. This suggests loading or engagement issues."),
        expected_improvement=12,
        implementation_effort=ImplementationEffort.MEDIUM,
        target_page=pattern.page_type,
        based_on_pattern=pattern.pattern_id,
        confidence=pattern.confidence_score,
    )


def content_optimization_rule(context: RecommendationContext) -> Optional[JourneyRecommendation]:
    pattern = _most_frequent([p for p in context.drop_off_patterns
                              if p.exit_trigger == ExitTrigger.CONTENT_BASED and p.frequency > 15])
    if pattern is None:
        return None
    page = pattern.page_type.value
    return _recommendation(
        RuleId.CONTENT_OPTIMIZATION,
        priority=RecommendationPriority.MEDIUM,
        recommendation_type=RecommendationType.CONTENT,
        title=f"Improve content clarity on {page} page",
        description=(f"Content on {page} page is causing {pattern.frequency} users to drop off. "
                     f"Review messaging and value proposition."),
        expected_improvement=18,
        implementation_effort=ImplementationEffort.MEDIUM,
        target_page=pattern.page_type,
        based_on_pattern=pattern.pattern_id,
        confidence=pattern.confidence_score,
    )


def ux_optimization_rule(context: RecommendationContext) -> Optional[JourneyRecommendation]:
    if not context.conversion_rates:
        return None
    average = sum(r.conversion_rate for r in context.conversion_rates) / len(context.conversion_rates)
    if average >= 0.6:
        return None
    return _recommendation(
        RuleId.UX_OPTIMIZATION,
        priority=RecommendationPriority.MEDIUM,
        recommendation_type=RecommendationType.UX,
        title='Comprehensive UX audit and optimization',
        description=(f"Overall conversion rate is {round(average * 100)}%. "
                     f"A comprehensive UX review could significantly improve performance."),
        expected_improvement=round((0.7 - average) * 100),
        implementation_effort=ImplementationEffort.HIGH,
        target_page=PageType.ACTIVATION,
        based_on_pattern='overall-analysis',
        confidence=0.6,
    )


def default_rules() -> List[RecommendationRule]:
    return [
        RecommendationRule(RuleId.HIGH_DROP_OFF_RATE.value, 'High Drop-off Rate Detection', high_drop_off_rule),
        RecommendationRule(RuleId.LOW_CONVERSION_RATE.value, 'Low Conversion Rate Detection', low_conversion_rule),
        RecommendationRule(RuleId.QUICK_EXIT_PATTERN.value, 'Quick Exit Detection', quick_exit_rule),
        RecommendationRule(RuleId.TECHNICAL_ISSUES.value, 'Technical Issues Detection', technical_issues_rule),
        RecommendationRule(RuleId.TIME_OPTIMIZATION.value, 'Time-based Optimization', time_optimization_rule),
        RecommendationRule(RuleId.CONTENT_OPTIMIZATION.value, 'Content-based Optimization',
                           content_optimization_rule),
        RecommendationRule(RuleId.UX_OPTIMIZATION.value, 'User Experience Optimization', ux_optimization_rule),
    ]


def is_recommendation_valid(recommendation: JourneyRecommendation) -> bool:
    if not recommendation.title or not recommendation.description:
        return False
    if not MIN_EXPECTED_IMPROVEMENT <= recommendation.expected_improvement <= MAX_EXPECTED_IMPROVEMENT:
        return False
    return recommendation.target_page in FUNNEL_PAGES


def calculate_impact_score(recommendation: JourneyRecommendation) -> int:
    """Priority weight x effort weight x expected improvement, rounded."""
    priority = PRIORITY_WEIGHTS[recommendation.priority]
    effort = EFFORT_WEIGHTS[recommendation.implementation_effort]
    return round(priority * effort * recommendation.expected_improvement)


class JourneyRecommendationEngine:
    """Evaluates the rule table against a context and ranks valid results."""

    def __init__(self, rules: Optional[List[RecommendationRule]] = None):
        self.rules: List[RecommendationRule] = list(rules) if rules is not None else default_rules()
        self.logger = logging.getLogger(__name__)

    def generate_recommendations(self, context: RecommendationContext) -> List[JourneyRecommendation]:
        recommendations = []
        for rule in self.rules:
            try:
                recommendation = rule.evaluate(context)
            except Exception as e:
                self.logger.error(f"Error generating recommendation for rule {rule.rule_id}: {e}")
                continue

            if not self._accept(recommendation, rule.rule_id, context.min_confidence):
                continue

            recommendations_generated.labels(rule=rule.rule_id).inc()
            recommendations.append(recommendation)

        recommendations.sort(key=lambda r: (-r.priority.rank, -r.expected_improvement))
        return recommendations

    def add_rule(self, rule: RecommendationRule):
        self.rules.append(rule)

    def remove_rule(self, rule_id: str) -> bool:
        before = len(self.rules)
        self.rules = [r for r in self.rules if r.rule_id != rule_id]
        return len(self.rules) < before

    def get_rules(self) -> List[RecommendationRule]:
        return list(self.rules)

    def generate_page_recommendation(self, page_type: PageType,
                                     context: RecommendationContext) -> Optional[JourneyRecommendation]:
        """Best single recommendation for one page, or None when the page looks healthy."""
        page_type = PageType(page_type)
        page_patterns = [p for p in context.drop_off_patterns if p.page_type == page_type]
        page_rate = next((r for r in context.conversion_rates if r.page_type == page_type), None)

        primary = _most_frequent(page_patterns)
        if primary is not None:
            narrowed = RecommendationContext(
                drop_off_patterns=[primary],
                conversion_rates=[page_rate] if page_rate is not None else [],
                session_data=context.session_data,
                timeframe_days=context.timeframe_days,
                min_confidence=context.min_confidence,
            )
            for rule in self.rules:
                try:
                    recommendation = rule.evaluate(narrowed)
                except Exception as e:
                    self.logger.error(f"Error generating recommendation for rule {rule.rule_id}: {e}")
                    continue
                if recommendation is None or recommendation.target_page != page_type:
                    continue
                if self._accept(recommendation, rule.rule_id, context.min_confidence):
                    return recommendation

        if page_rate is not None and page_rate.conversion_rate < 0.6:
            improvement = round((0.7 - page_rate.conversion_rate) * 100)
            fallback = JourneyRecommendation(
                recommendation_id=str(uuid.uuid4()),
                priority=RecommendationPriority.HIGH if page_rate.conversion_rate < 0.3
                else RecommendationPriority.MEDIUM,
                recommendation_type=RecommendationType.CONTENT,
                title=f"Improve {page_type.value} page performance",
                description=(f"{page_type.value} page has {round(page_rate.conversion_rate * 100)}% "
                             f"conversion rate. Focus on content clarity and user experience."),
                expected_improvement=min(max(improvement, MIN_EXPECTED_IMPROVEMENT), MAX_EXPECTED_IMPROVEMENT),
                implementation_effort=ImplementationEffort.MEDIUM,
                target_page=page_type,
                based_on_pattern='page-analysis',
                confidence=0.8 if page_rate.total_visits > 20 else 0.6,
                rule_id='page-analysis',
            )
            if self._accept(fallback, fallback.rule_id, context.min_confidence):
                return fallback
        return None

    def _accept(self, recommendation: Optional[JourneyRecommendation], rule_id: str,
                min_confidence: float) -> bool:
        """Validation and confidence gate shared by every returned recommendation."""
        if recommendation is None:
            return False
        if not is_recommendation_valid(recommendation):
            self.logger.debug(f"Dropping invalid recommendation from rule {rule_id}")
            return False
        return recommendation.confidence >= min_confidence

    def calculate_impact_score(self, recommendation: JourneyRecommendation) -> int:
        return calculate_impact_score(recommendation)
