from .journey import (
    PageType, ExitAction, SessionOutcome, ExitTrigger, PageVisit, JourneySession,
    EngagementSample, PageTimeExpectation, PAGE_TIME_EXPECTATIONS, FUNNEL_PAGES,
    calculate_engagement_score, calculate_time_score, utcnow,
)
from .analysis import (
    DropOffPattern, PageConversionRate, ExitTriggerBreakdown, TimingDistribution,
    StatisticalSummary, DropOffAnalysis, JourneyRecommendation, RecommendationContext,
    RecommendationType, RecommendationPriority, ImplementationEffort,
    MetricType, AlertType, AlertSeverity, AlertThreshold, RealtimeAlert, DropOffEvent, RealTimeMetrics,
)
from .events import RealtimeEventType, EventCategory, JourneyEvent
from .comparison import (
    ComparisonType, SignificanceTest, SignificanceResult, TimingAnalysis, TimingDiff,
    ContentDifference, ContentChangeType, EngagementDifference, HypothesisCorrelation,
    MatchingFactor, MatchingFactorType, JourneyPair, PairingCriteria,
    ComparisonStatistics, JourneyComparison, JourneyComparisonResult,
)

__all__ = [
    "PageType", "ExitAction", "SessionOutcome", "ExitTrigger", "PageVisit", "JourneySession",
    "EngagementSample", "PageTimeExpectation", "PAGE_TIME_EXPECTATIONS", "FUNNEL_PAGES",
    "calculate_engagement_score", "calculate_time_score", "utcnow",
    "DropOffPattern", "PageConversionRate", "ExitTriggerBreakdown", "TimingDistribution",
    "StatisticalSummary", "DropOffAnalysis", "JourneyRecommendation", "RecommendationContext",
    "RecommendationType", "RecommendationPriority", "ImplementationEffort",
    "MetricType", "AlertType", "AlertSeverity", "AlertThreshold", "RealtimeAlert", "DropOffEvent",
    "RealTimeMetrics",
    "ComparisonType", "SignificanceTest", "SignificanceResult", "TimingAnalysis", "TimingDiff",
    "ContentDifference", "ContentChangeType", "EngagementDifference", "HypothesisCorrelation",
    "MatchingFactor", "MatchingFactorType", "JourneyPair", "PairingCriteria",
    "ComparisonStatistics", "JourneyComparison", "JourneyComparisonResult",
    "RealtimeEventType", "EventCategory", "JourneyEvent",
]
