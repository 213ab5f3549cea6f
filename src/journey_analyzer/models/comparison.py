"""
Journey Comparison Models

Data structures for successful-vs-failed journey comparison: per-page timing
analyses, significance results, content/engagement differences, journey
pairs and the aggregated comparison result.
"""

from typing import Dict, List, Optional, Tuple
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum

from .journey import PageType, JourneySession, utcnow


class ComparisonType(Enum):
    """Which sub-analyses a comparison runs"""
    COMPREHENSIVE = "comprehensive"
    CONTENT_FOCUSED = "content_focused"
    TIMING_FOCUSED = "timing_focused"
    ENGAGEMENT_FOCUSED = "engagement_focused"


class SignificanceTest(Enum):
    """Statistical test used for a significance result"""
    WELCH_T_TEST = "welch_t_test"
    MANN_WHITNEY_U = "mann_whitney_u"
    ONE_SAMPLE_T_TEST = "one_sample_t_test"
    Z_TEST = "z_test"
    NONE = "none"


@dataclass
class SignificanceResult:
    """Outcome of a two-sample significance test"""
    p_value: float
    test_statistic: float
    test_type: SignificanceTest
    degrees_of_freedom: Optional[float] = None
    z_score: Optional[float] = None

    @property
    def is_significant(self) -> bool:
        return self.p_value < 0.05


@dataclass
class TimingAnalysis:
    """Timing profile of one page within one session"""
    page_type: PageType
    time_on_page: float
    percentiles: Dict[str, float]
    drop_off_time_threshold: float
    engagement_time_threshold: float
    page_sequence: int
    transition_time: Optional[float]
    drop_off_risk: float
    engagement_score: float = 0.0
    scroll_depth: float = 0.0
    interactions: int = 0


@dataclass
class TimingDiff:
    """Statistical timing/engagement comparison of one page across a journey pair"""
    page_type: PageType
    successful_timing: TimingAnalysis
    failed_timing: TimingAnalysis
    time_differential: float
    engagement_differential: float
    interaction_differential: float
    scroll_depth_differential: float
    statistical_significance: SignificanceResult
    confidence_interval: Tuple[float, float]
    effect_size: float

    def __post_init__(self):
        if self.statistical_significance is None or self.effect_size is None:
            raise ValueError("TimingDiff requires both a significance result and an effect size")


class ContentChangeType(Enum):
    """How content differs between the two journeys"""
    MODIFIED = "modified"
    ADDED = "added"
    REMOVED = "removed"


@dataclass
class ContentDifference:
    """Content variant difference on one page"""
    page_type: PageType
    successful_variant_id: Optional[str]
    failed_variant_id: Optional[str]
    change_type: ContentChangeType
    similarity: float
    correlation_strength: float
    description: str = ""


@dataclass
class EngagementDifference:
    """Engagement difference on one page"""
    page_type: PageType
    engagement_differential: float
    scroll_depth_differential: float
    interaction_differential: float
    time_differential: float
    is_significant: bool = False


@dataclass
class HypothesisCorrelation:
    """Correlation between a content hypothesis and journey outcome"""
    hypothesis_id: str
    description: str
    correlation_strength: float
    p_value: float = 1.0


class MatchingFactorType(Enum):
    """Factors scored when pairing journeys"""
    TEMPORAL_PROXIMITY = "temporal_proximity"
    CONTENT_SIMILARITY = "content_similarity"
    CLIENT_SIMILARITY = "client_similarity"
    ENGAGEMENT_LEVEL = "engagement_level"
    HYPOTHESIS_ALIGNMENT = "hypothesis_alignment"


@dataclass
class MatchingFactor:
    factor: MatchingFactorType
    score: float
    weight: float
    description: str


@dataclass
class JourneyPair:
    """Candidate successful/failed journey pair with matching scores"""
    successful_journey: JourneySession
    failed_journey: JourneySession
    matching_score: float
    matching_factors: List[MatchingFactor]
    comparison_viability: float
    recommended_analysis_type: ComparisonType

    def factor_score(self, factor: MatchingFactorType) -> float:
        for item in self.matching_factors:
            if item.factor == factor:
                return item.score
        return 0.0


@dataclass
class PairingCriteria:
    """Filters applied when fetching candidate journeys for pairing"""
    time_window: Optional[Tuple[datetime, datetime]] = None
    minimum_engagement: Optional[float] = None
    page_types: Optional[List[PageType]] = None
    client_ids: Optional[List[str]] = None
    max_candidates: int = 200


@dataclass
class ComparisonStatistics:
    """Combined significance across the comparison components"""
    p_value: float
    component_p_values: Dict[str, float]
    corrected_p_values: Dict[str, Dict[str, float]]
    effect_size: float
    effect_size_magnitude: str
    confidence_level: str
    sample_size: int
    confidence_interval: Tuple[float, float]


@dataclass
class JourneyComparison:
    """Aggregate comparison of one successful/failed journey pair"""
    comparison_id: str
    successful_journey_id: str
    failed_journey_id: str
    comparison_type: ComparisonType
    timing_differences: List[TimingDiff] = field(default_factory=list)
    content_differences: List[ContentDifference] = field(default_factory=list)
    engagement_differences: List[EngagementDifference] = field(default_factory=list)
    hypothesis_correlations: List[HypothesisCorrelation] = field(default_factory=list)
    statistical_significance: Optional[ComparisonStatistics] = None
    confidence_score: float = 0.0
    created_at: datetime = field(default_factory=utcnow)


@dataclass
class Differentiator:
    """Factor that separates the successful journey from the failed one"""
    differentiator_type: str
    page_type: Optional[PageType]
    description: str
    impact_score: float
    confidence_score: float


@dataclass
class ComparisonInsights:
    primary_differentiators: List[Differentiator] = field(default_factory=list)
    key_success_factors: List[str] = field(default_factory=list)
    failure_indicators: List[str] = field(default_factory=list)


@dataclass
class ComparisonRecommendation:
    recommendation_id: str
    priority: str
    category: str
    title: str
    description: str
    expected_impact: float
    confidence_score: float


@dataclass
class JourneyComparisonResult:
    """Comparison plus derived insights, recommendations and processing info"""
    comparison: JourneyComparison
    insights: ComparisonInsights
    recommendations: List[ComparisonRecommendation]
    component_confidence: Dict[str, float]
    comparison_viability: float
    processing_time_seconds: float
    components_analyzed: List[str] = field(default_factory=list)
    failed_components: List[str] = field(default_factory=list)
