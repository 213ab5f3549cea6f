"""
Journey Analytics Package

- Session tracking and engagement scoring
- Drop-off pattern detection with confidence scoring
- Timing and engagement comparison between journeys
- Journey pairing and comparison orchestration
- Rule-based recommendations
- Real-time event buffering and alerting
"""

from .session_tracking import JourneySessionManager, SessionTrackingConfig
from .drop_off import DropOffDetectionEngine, DropOffConfig
from .timing_comparison import TimingComparisonEngine, TimingComparisonConfig
from .content_diff import ContentDiffAnalyzer, EngagementDiffAnalyzer
from .journey_comparison import JourneyComparisonEngine, ComparisonEngineConfig
from .recommendation_engine import JourneyRecommendationEngine, RecommendationRule, RuleId
from .real_time_analytics import (
    AlertManager, AnalyticsCache, EventBuffer, EventBufferConfig, RealtimeJourneyProcessor,
)
from .time_analytics import JourneyTimeAnalyzer

__all__ = [
    "JourneySessionManager", "SessionTrackingConfig",
    "DropOffDetectionEngine", "DropOffConfig",
    "TimingComparisonEngine", "TimingComparisonConfig",
    "ContentDiffAnalyzer", "EngagementDiffAnalyzer",
    "JourneyComparisonEngine", "ComparisonEngineConfig",
    "JourneyRecommendationEngine", "RecommendationRule", "RuleId",
    "AlertManager", "AnalyticsCache", "EventBuffer", "EventBufferConfig", "RealtimeJourneyProcessor",
    "JourneyTimeAnalyzer",
]
