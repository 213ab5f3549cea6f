"""
Journey Analytics Service

Facade constructed once by the host application. It wires the session
manager, analysis engines and real-time processor together and exposes the
dashboard operations, each returning a ``ServiceResult`` instead of raising.
"""

from __future__ import annotations
import logging
from datetime import datetime, timedelta
from typing import Any, Callable, List, Optional, Union

from pydantic import BaseModel, ConfigDict

from journey_analyzer.config import Settings, configure_logging, get_settings
from journey_analyzer.exceptions import ComparisonNotViableError, JourneyAnalyticsError
from journey_analyzer.infrastructure.journey_store import InMemoryJourneyStore, JourneyStore
from journey_analyzer.models.journey import JourneySession, PageType, utcnow
from journey_analyzer.models.analysis import AlertThreshold, DropOffAnalysis, RecommendationContext
from journey_analyzer.models.comparison import ComparisonType, PairingCriteria
from journey_analyzer.analytics.session_tracking import JourneySessionManager, SessionTrackingConfig
from journey_analyzer.analytics.drop_off import DropOffConfig, DropOffDetectionEngine
from journey_analyzer.analytics.timing_comparison import TimingComparisonConfig, TimingComparisonEngine
from journey_analyzer.analytics.journey_comparison import ComparisonEngineConfig, JourneyComparisonEngine
from journey_analyzer.analytics.recommendation_engine import JourneyRecommendationEngine
from journey_analyzer.analytics.real_time_analytics import (
    AlertManager, AnalyticsCache, EventBufferConfig, RealtimeJourneyProcessor,
)

logger = logging.getLogger(__name__)

SessionRef = Union[JourneySession, str]


class ServiceResult(BaseModel):
    """Structured outcome returned to the dashboard boundary."""
    model_config = ConfigDict(arbitrary_types_allowed=True)

    success: bool
    data: Any = None
    error: Optional[str] = None

    @classmethod
    def ok(cls, data: Any = None) -> "ServiceResult":
        return cls(success=True, data=data)

    @classmethod
    def fail(cls, error: str) -> "ServiceResult":
        return cls(success=False, error=error)


class JourneyAnalyticsService:
    def __init__(self, store: JourneyStore,
                 session_manager: JourneySessionManager,
                 drop_off_engine: DropOffDetectionEngine,
                 comparison_engine: JourneyComparisonEngine,
                 recommendation_engine: JourneyRecommendationEngine,
                 processor: RealtimeJourneyProcessor,
                 analysis_window_days: int = 30,
                 clock: Optional[Callable[[], datetime]] = None):
        self.store = store
        self.session_manager = session_manager
        self.drop_off_engine = drop_off_engine
        self.comparison_engine = comparison_engine
        self.recommendation_engine = recommendation_engine
        self.processor = processor
        self.analysis_window_days = analysis_window_days
        self.clock = clock or utcnow
        self.logger = logging.getLogger(__name__)

    @classmethod
    def from_settings(cls, settings: Optional[Settings] = None, store: Optional[JourneyStore] = None,
                      clock: Optional[Callable[[], datetime]] = None) -> "JourneyAnalyticsService":
        s = settings or get_settings()
        configure_logging(s.log_level)
        clock = clock or utcnow
        store = store if store is not None else InMemoryJourneyStore()

        buffer_config = EventBufferConfig.from_settings(s)
        processor = RealtimeJourneyProcessor(
            config=buffer_config,
            alert_manager=AlertManager(dedup_window=timedelta(minutes=s.alert_dedup_minutes), clock=clock),
            cache=AnalyticsCache(s.analytics_cache_ttl_seconds, clock),
            clock=clock,
        )
        session_manager = JourneySessionManager(
            config=SessionTrackingConfig.from_settings(s),
            clock=clock,
            on_event=processor.track_event,
            store=store,
        )
        comparison_engine = JourneyComparisonEngine(
            config=ComparisonEngineConfig.from_settings(s),
            timing_engine=TimingComparisonEngine(TimingComparisonConfig.from_settings(s)),
            store=store,
        )
        return cls(
            store=store,
            session_manager=session_manager,
            drop_off_engine=DropOffDetectionEngine(DropOffConfig.from_settings(s)),
            comparison_engine=comparison_engine,
            recommendation_engine=JourneyRecommendationEngine(),
            processor=processor,
            analysis_window_days=s.analysis_window_days,
            clock=clock,
        )

    async def start(self):
        await self.session_manager.start()
        await self.processor.start()

    async def stop(self):
        await self.session_manager.stop()
        await self.processor.stop()
        await self.session_manager.persist_closed_sessions()

    # ------------------------------------------------------------------
    # Analysis
    # ------------------------------------------------------------------

    async def analyze_drop_off_patterns(self, sessions: Optional[List[JourneySession]] = None,
                                        start: Optional[datetime] = None,
                                        end: Optional[datetime] = None) -> ServiceResult:
        """Drop-off analysis over the given sessions, or the stored ones in a time window."""
        try:
            if sessions is None:
                end = end or self.clock()
                start = start or end - timedelta(days=self.analysis_window_days)
                sessions = await self.store.query_sessions(start=start, end=end)
            return ServiceResult.ok(self.drop_off_engine.analyze_drop_off_patterns(sessions))
        except Exception as e:
            self.logger.error(f"Drop-off analysis failed: {e}")
            return ServiceResult.fail(f"Drop-off analysis failed: {e}")

    async def compare_journeys(self, successful: SessionRef, failed: SessionRef,
                               comparison_type: Union[ComparisonType, str] = ComparisonType.COMPREHENSIVE
                               ) -> ServiceResult:
        try:
            successful_session = await self._resolve_session(successful)
            failed_session = await self._resolve_session(failed)
            result = await self.comparison_engine.compare_journeys(
                successful_session, failed_session, ComparisonType(comparison_type))
            return ServiceResult.ok(result)
        except (ComparisonNotViableError, JourneyAnalyticsError, ValueError) as e:
            self.logger.warning(f"Journey comparison rejected: {e}")
            return ServiceResult.fail(str(e))
        except Exception as e:
            self.logger.error(f"Journey comparison failed: {e}")
            return ServiceResult.fail(f"Journey comparison failed: {e}")

    async def find_optimal_journey_pairs(self, criteria: Optional[PairingCriteria] = None,
                                         limit: int = 50) -> ServiceResult:
        try:
            pairs = await self.comparison_engine.find_optimal_journey_pairs(criteria, limit)
            return ServiceResult.ok(pairs)
        except Exception as e:
            self.logger.error(f"Journey pairing failed: {e}")
            return ServiceResult.fail(f"Journey pairing failed: {e}")

    def generate_recommendations(self, analysis: DropOffAnalysis,
                                 page_type: Optional[Union[PageType, str]] = None,
                                 min_confidence: float = 0.0) -> ServiceResult:
        """Rule-engine recommendations for an analysis, or the best one for a single page."""
        try:
            context = RecommendationContext.from_analysis(analysis, min_confidence=min_confidence)
            if page_type is not None:
                return ServiceResult.ok(
                    self.recommendation_engine.generate_page_recommendation(PageType(page_type), context))
            return ServiceResult.ok(self.recommendation_engine.generate_recommendations(context))
        except Exception as e:
            self.logger.error(f"Recommendation generation failed: {e}")
            return ServiceResult.fail(f"Recommendation generation failed: {e}")

    # ------------------------------------------------------------------
    # Real-time metrics and alerts
    # ------------------------------------------------------------------

    def get_real_time_metrics(self, now: Optional[datetime] = None) -> ServiceResult:
        try:
            return ServiceResult.ok(self.processor.get_real_time_metrics(now))
        except Exception as e:
            self.logger.error(f"Real-time metrics failed: {e}")
            return ServiceResult.fail(f"Real-time metrics failed: {e}")

    def set_alert_threshold(self, threshold: AlertThreshold) -> ServiceResult:
        try:
            self.processor.alert_manager.set_alert_threshold(threshold)
            return ServiceResult.ok(threshold)
        except Exception as e:
            self.logger.error(f"Setting alert threshold failed: {e}")
            return ServiceResult.fail(f"Setting alert threshold failed: {e}")

    def remove_alert_threshold(self, threshold_id: str) -> ServiceResult:
        if not self.processor.alert_manager.remove_alert_threshold(threshold_id):
            return ServiceResult.fail(f"Alert threshold {threshold_id} not found")
        return ServiceResult.ok({'removed': threshold_id})

    def acknowledge_alert(self, alert_id: str, acknowledged_by: Optional[str] = None) -> ServiceResult:
        alert = self.processor.alert_manager.acknowledge_alert(alert_id, acknowledged_by)
        if alert is None:
            return ServiceResult.fail(f"Alert {alert_id} not found")
        return ServiceResult.ok(alert)

    def get_active_alerts(self) -> ServiceResult:
        return ServiceResult.ok(self.processor.alert_manager.get_active_alerts())

    async def _resolve_session(self, ref: SessionRef) -> JourneySession:
        if isinstance(ref, JourneySession):
            return ref
        try:
            return self.session_manager.get_session(ref)
        except KeyError:
            pass
        session = await self.store.get_session(ref)
        if session is None:
            raise ValueError(f"Session {ref} not found")
        return session
