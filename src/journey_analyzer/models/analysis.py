"""
Drop-off Analysis and Recommendation Models

Result types produced by the drop-off detection engine and consumed by the
recommendation engine and dashboard facade.
"""

from typing import Dict, List, Optional, Tuple
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum

from .journey import PageType, ExitTrigger, JourneySession, utcnow


@dataclass
class DropOffPattern:
    """Cluster of dropped sessions sharing an exit page and exit trigger"""
    pattern_id: str
    page_type: PageType
    exit_trigger: ExitTrigger
    frequency: int
    avg_time_before_exit: float
    confidence_score: float
    content_variant_ids: List[str] = field(default_factory=list)
    session_ids: List[str] = field(default_factory=list)
    recommendations: List[str] = field(default_factory=list)
    is_active: bool = True

    @property
    def key(self) -> Tuple[PageType, ExitTrigger]:
        return (self.page_type, self.exit_trigger)


@dataclass
class PageConversionRate:
    """Conversion and bounce metrics for one funnel page"""
    page_type: PageType
    total_visits: int
    conversions: int
    conversion_rate: float
    bounce_rate: float
    avg_time_on_page: float


@dataclass
class ExitTriggerBreakdown:
    """Aggregate of drop-offs attributed to a single exit trigger"""
    exit_trigger: ExitTrigger
    frequency: int
    avg_time_before_exit: float
    page_types: List[PageType] = field(default_factory=list)


@dataclass
class TimingDistribution:
    """Time-on-page percentiles for one page"""
    page_type: PageType
    sample_size: int
    percentiles: Dict[str, float]
    drop_off_time_threshold: float
    engagement_time_threshold: float


@dataclass
class StatisticalSummary:
    """Completion-rate significance summary for a session population"""
    sample_size: int
    completed: int
    dropped_off: int
    completion_rate: float
    confidence_interval: Tuple[float, float]
    p_value: float
    confidence_level: str
    is_significant: bool


@dataclass
class DropOffAnalysis:
    """Full result of a drop-off detection run"""
    patterns: List[DropOffPattern] = field(default_factory=list)
    conversion_rates: List[PageConversionRate] = field(default_factory=list)
    trigger_breakdown: List[ExitTriggerBreakdown] = field(default_factory=list)
    timing_distributions: List[TimingDistribution] = field(default_factory=list)
    overall_significance: Optional[StatisticalSummary] = None
    recommendations: List["JourneyRecommendation"] = field(default_factory=list)
    total_sessions: int = 0
    dropped_sessions: int = 0
    analyzed_at: datetime = field(default_factory=utcnow)

    @property
    def is_empty(self) -> bool:
        return not self.patterns and not self.conversion_rates


class RecommendationType(Enum):
    """Types of recommendations"""
    CONTENT = "content"
    TIMING = "timing"
    TECHNICAL = "technical"
    UX = "ux"


class RecommendationPriority(Enum):
    """Recommendation priority levels"""
    HIGH = "high"
    MEDIUM = "medium"
    LOW = "low"

    @property
    def rank(self) -> int:
        return {"high": 3, "medium": 2, "low": 1}[self.value]


class ImplementationEffort(Enum):
    """Implementation effort levels"""
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"


@dataclass
class JourneyRecommendation:
    """Actionable recommendation for improving the funnel"""
    recommendation_id: str
    priority: RecommendationPriority
    recommendation_type: RecommendationType
    title: str
    description: str
    expected_improvement: float
    implementation_effort: ImplementationEffort
    target_page: Optional[PageType]
    based_on_pattern: str
    confidence: float = 0.0
    rule_id: Optional[str] = None
    created_at: datetime = field(default_factory=utcnow)


@dataclass
class RecommendationContext:
    """Inputs the recommendation rules are evaluated against"""
    drop_off_patterns: List[DropOffPattern] = field(default_factory=list)
    conversion_rates: List[PageConversionRate] = field(default_factory=list)
    session_data: List[JourneySession] = field(default_factory=list)
    timeframe_days: int = 30
    min_confidence: float = 0.0

    @classmethod
    def from_analysis(cls, analysis: DropOffAnalysis, sessions: Optional[List[JourneySession]] = None,
                      timeframe_days: int = 30, min_confidence: float = 0.0) -> "RecommendationContext":
        return cls(
            drop_off_patterns=list(analysis.patterns),
            conversion_rates=list(analysis.conversion_rates),
            session_data=list(sessions or []),
            timeframe_days=timeframe_days,
            min_confidence=min_confidence,
        )


class MetricType(Enum):
    """Rolling metrics an alert threshold can watch"""
    DROP_OFF_RATE = "drop_off_rate"
    CONVERSION_RATE = "conversion_rate"
    SESSION_DURATION = "session_duration"
    ERROR_RATE = "error_rate"


class AlertType(Enum):
    """Kinds of real-time alerts"""
    HIGH_DROP_OFF = "high_drop_off"
    LOW_ENGAGEMENT = "low_engagement"
    TECHNICAL_ISSUE = "technical_issue"


class AlertSeverity(Enum):
    """Alert severity levels"""
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"
    CRITICAL = "critical"


@dataclass
class AlertThreshold:
    """Configured rule checked once per processing cycle"""
    threshold_id: str
    metric_type: MetricType
    threshold: float
    time_window_minutes: int
    severity: AlertSeverity
    page_type: Optional[PageType] = None
    is_active: bool = True

    @property
    def alerts_below(self) -> bool:
        """Conversion alerts fire when the rate falls below the threshold."""
        return self.metric_type == MetricType.CONVERSION_RATE

    def is_violated(self, value: float) -> bool:
        return value < self.threshold if self.alerts_below else value > self.threshold


@dataclass
class RealtimeAlert:
    """A threshold violation or immediate technical alert"""
    alert_id: str
    alert_type: AlertType
    severity: AlertSeverity
    message: str
    affected_page: Optional[PageType]
    threshold: float
    current_value: float
    timestamp: datetime = field(default_factory=utcnow)
    threshold_id: Optional[str] = None
    acknowledged: bool = False
    acknowledged_at: Optional[datetime] = None
    acknowledged_by: Optional[str] = None


@dataclass
class DropOffEvent:
    """A page exit counted as a drop-off in the live feed"""
    session_id: str
    client_id: str
    page_type: Optional[PageType]
    exit_trigger: ExitTrigger
    time_on_page: float
    timestamp: datetime


@dataclass
class RealTimeMetrics:
    """Live dashboard snapshot"""
    active_sessions: int
    recent_drop_offs: List[DropOffEvent]
    live_conversion_rate: float
    current_hour_metrics: Dict[str, int]
    alerts: List[RealtimeAlert]
    generated_at: datetime = field(default_factory=utcnow)
