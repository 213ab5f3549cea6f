"""
Journey Session Tracking

Maintains the registry of in-progress onboarding sessions: records page
entries and exits, scores engagement, infers outcomes and exit triggers, and
closes sessions on completion, abandonment or idle timeout.
"""

from __future__ import annotations
import asyncio
import logging
import uuid
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from typing import Any, Callable, Dict, List, Optional, Union

from prometheus_client import Counter, Gauge

from journey_analyzer.config import Settings, get_settings
from journey_analyzer.exceptions import (
    InvalidSessionStateError, SessionNotFoundError, VisitNotFoundError,
)
from journey_analyzer.infrastructure.journey_store import JourneyStore
from journey_analyzer.models.events import JourneyEvent, RealtimeEventType
from journey_analyzer.models.journey import (
    FUNNEL_PAGES, SESSION_ENDING_ACTIONS, EngagementSample, ExitAction, ExitTrigger,
    JourneySession, PageType, PageVisit, SessionOutcome, utcnow,
)

journey_sessions_total = Counter('journey_sessions_total', 'Journey sessions closed', ['outcome'])
journey_page_visits_total = Counter('journey_page_visits_total', 'Page visits recorded', ['page_type'])
journey_active_sessions = Gauge('journey_active_sessions', 'Sessions currently in progress')

logger = logging.getLogger(__name__)

# Trigger inference thresholds
QUICK_EXIT_SECONDS = 5
LONG_DWELL_SECONDS = 600
LOW_SCROLL_DEPTH = 20

# Exit actions that determine the trigger without inference
_TRIGGER_BY_EXIT_ACTION = {
    ExitAction.TIMEOUT: ExitTrigger.TIME_BASED,
    ExitAction.ERROR: ExitTrigger.TECHNICAL,
}


@dataclass
class SessionTrackingConfig:
    session_timeout: timedelta = field(default_factory=lambda: timedelta(minutes=30))
    sweep_interval: timedelta = field(default_factory=lambda: timedelta(minutes=5))

    @classmethod
    def from_settings(cls, settings: Optional[Settings] = None) -> "SessionTrackingConfig":
        s = settings or get_settings()
        return cls(
            session_timeout=timedelta(minutes=s.session_timeout_minutes),
            sweep_interval=timedelta(minutes=s.session_sweep_interval_minutes),
        )


def infer_outcome(session: JourneySession) -> SessionOutcome:
    """Completed when the whole funnel was visited, in progress while the last visit is open."""
    if set(FUNNEL_PAGES).issubset(session.visited_page_types()):
        return SessionOutcome.COMPLETED
    last = session.last_visit
    if last is not None and last.is_open:
        return SessionOutcome.IN_PROGRESS
    return SessionOutcome.DROPPED_OFF


def infer_exit_trigger(visit: Optional[PageVisit]) -> ExitTrigger:
    if visit is None:
        return ExitTrigger.UNKNOWN
    if visit.time_on_page < QUICK_EXIT_SECONDS or visit.scroll_depth < LOW_SCROLL_DEPTH:
        return ExitTrigger.CONTENT_BASED
    if visit.time_on_page > LONG_DWELL_SECONDS:
        return ExitTrigger.TIME_BASED
    return ExitTrigger.UNKNOWN


class JourneySessionManager:
    """Registry and state machine for in-progress journey sessions.

    The manager is constructed explicitly by the host and owns every
    ``in_progress`` session. Closed sessions are archived and become read-only
    analytic records. Idle sessions are closed by ``sweep_idle_sessions``, which
    compares each session's ``next_check_deadline`` against the clock.
    """

    def __init__(self, config: Optional[SessionTrackingConfig] = None,
                 clock: Optional[Callable[[], datetime]] = None,
                 on_event: Optional[Callable[[JourneyEvent], Any]] = None,
                 store: Optional[JourneyStore] = None):
        self.config = config or SessionTrackingConfig.from_settings()
        self.clock = clock or utcnow
        self.on_event = on_event
        self.store = store
        self.active_sessions: Dict[str, JourneySession] = {}
        self.closed_sessions: Dict[str, JourneySession] = {}
        self._unpersisted: List[str] = []
        self.is_running = False
        self._sweep_task: Optional[asyncio.Task] = None
        self.logger = logging.getLogger(__name__)

    # ------------------------------------------------------------------
    # Lifecycle operations
    # ------------------------------------------------------------------

    def create_session(self, client_id: str, session_id: Optional[str] = None,
                       metadata: Optional[Dict[str, Any]] = None) -> JourneySession:
        now = self.clock()
        session_id = session_id or str(uuid.uuid4())
        if session_id in self.active_sessions or session_id in self.closed_sessions:
            raise InvalidSessionStateError(f"Session {session_id} already exists")

        session = JourneySession(
            session_id=session_id,
            client_id=client_id,
            session_start=now,
            metadata=dict(metadata or {}),
        )
        self._touch(session, now)
        self.active_sessions[session_id] = session
        journey_active_sessions.set(len(self.active_sessions))

        self._emit(RealtimeEventType.SESSION_STARTED, session)
        self.logger.info(f"Created journey session {session_id} for client {client_id}")
        return session

    def record_page_entry(self, session_id: str, page_type: Union[PageType, str],
                          content_variant_id: Optional[str] = None) -> PageVisit:
        session = self._get_active(session_id)
        page_type = PageType(page_type)
        now = self.clock()

        # Keep a single open visit per session
        current = session.current_visit
        if current is not None:
            current.close(now, ExitAction.NEXT_PAGE)
            self._emit_page_exit(session, current)

        visit = PageVisit(
            visit_id=str(uuid.uuid4()),
            session_id=session_id,
            page_type=page_type,
            entry_time=now,
            content_variant_id=content_variant_id,
        )
        session.page_visits.append(visit)
        self._touch(session, now)
        journey_page_visits_total.labels(page_type=page_type.value).inc()

        self._emit(RealtimeEventType.PAGE_ENTERED, session, page_type=page_type,
                   visit_id=visit.visit_id, content_variant_id=content_variant_id)
        return visit

    def record_page_exit(self, session_id: str, visit_id: str,
                         exit_action: Union[ExitAction, str],
                         engagement: Optional[EngagementSample] = None) -> PageVisit:
        """Close a visit; ``close``/``timeout``/``error`` also close the session."""
        session = self._get_active(session_id)
        visit = session.get_visit(visit_id)
        if visit is None:
            raise VisitNotFoundError(f"Visit {visit_id} not found in session {session_id}")
        exit_action = ExitAction(exit_action)
        now = self.clock()

        if visit.is_open:
            visit.close(now, exit_action, engagement)
        else:
            # Already closed by a later page entry; only merge late samples
            visit.merge_engagement(engagement)
            visit.rescore()
        self._touch(session, now)
        self._emit_page_exit(session, visit, exit_action=exit_action)

        if exit_action in SESSION_ENDING_ACTIONS:
            self.close_session(session_id, trigger=_TRIGGER_BY_EXIT_ACTION.get(exit_action))
        return visit

    def update_engagement(self, session_id: str, visit_id: str,
                          scroll_depth: Optional[float] = None,
                          interactions: Optional[int] = None) -> PageVisit:
        """Merge late-arriving scroll/interaction counts into a visit."""
        session = self.get_session(session_id)
        visit = session.get_visit(visit_id)
        if visit is None:
            raise VisitNotFoundError(f"Visit {visit_id} not found in session {session_id}")

        visit.merge_engagement(EngagementSample(scroll_depth=scroll_depth, interactions=interactions))
        if not visit.is_open:
            visit.rescore()
        if session_id in self.active_sessions:
            self._touch(session, self.clock())

        self._emit(RealtimeEventType.ENGAGEMENT_UPDATED, session, page_type=visit.page_type,
                   visit_id=visit_id, engagement_score=visit.engagement_score,
                   scroll_depth=visit.scroll_depth, interactions=visit.interactions)
        return visit

    def close_session(self, session_id: str, trigger: Optional[Union[ExitTrigger, str]] = None,
                      outcome: Optional[Union[SessionOutcome, str]] = None) -> JourneySession:
        """Assign the final outcome and archive the session.

        Closing an already closed session returns the archived record. When the
        inferred outcome is still ``in_progress`` the session stays active.
        """
        if session_id in self.closed_sessions:
            return self.closed_sessions[session_id]
        session = self._get_active(session_id)

        trigger = ExitTrigger(trigger) if trigger is not None else None
        resolved = SessionOutcome(outcome) if outcome is not None else infer_outcome(session)
        if resolved == SessionOutcome.IN_PROGRESS:
            self.logger.info(f"Session {session_id} left open: last visit still in progress")
            return session

        return self._finalize(session, resolved, trigger, self.clock())

    def sweep_idle_sessions(self, now: Optional[datetime] = None) -> List[JourneySession]:
        """Close every active session whose idle deadline has passed."""
        now = now or self.clock()
        expired = [s for s in self.active_sessions.values()
                   if s.next_check_deadline is not None and s.next_check_deadline <= now]

        closed = []
        for session in expired:
            ended_at = min(now, session.next_check_deadline)
            closed.append(self._finalize(session, SessionOutcome.DROPPED_OFF,
                                         ExitTrigger.TIME_BASED, ended_at))
        if closed:
            self.logger.info(f"Idle sweep closed {len(closed)} sessions")
        return closed

    async def persist_closed_sessions(self) -> int:
        """Hand archived sessions to the record store."""
        if self.store is None or not self._unpersisted:
            return 0
        pending, self._unpersisted = self._unpersisted, []
        saved = 0
        for session_id in pending:
            try:
                await self.store.save_session(self.closed_sessions[session_id])
                saved += 1
            except Exception as e:
                self.logger.error(f"Error persisting session {session_id}: {e}")
                self._unpersisted.append(session_id)
        return saved

    async def start(self):
        """Start the periodic idle sweep."""
        if self.is_running:
            return
        self.is_running = True
        self._sweep_task = asyncio.create_task(self.run_idle_sweeper())
        self.logger.info("Session idle sweeper started")

    async def stop(self):
        self.is_running = False
        if self._sweep_task:
            self._sweep_task.cancel()
            try:
                await self._sweep_task
            except asyncio.CancelledError:
                pass
            self._sweep_task = None
        self.logger.info("Session idle sweeper stopped")

    async def run_idle_sweeper(self, interval_seconds: Optional[float] = None):
        """Sweep idle sessions and persist closures until stopped."""
        interval = interval_seconds or self.config.sweep_interval.total_seconds()
        while self.is_running:
            try:
                await asyncio.sleep(interval)
                self.sweep_idle_sessions()
                await self.persist_closed_sessions()
            except asyncio.CancelledError:
                break
            except Exception as e:
                self.logger.error(f"Idle sweep error: {e}")

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------

    def get_session(self, session_id: str) -> JourneySession:
        session = self.active_sessions.get(session_id) or self.closed_sessions.get(session_id)
        if session is None:
            raise SessionNotFoundError(f"Session {session_id} not found")
        return session

    def get_active_sessions(self) -> List[JourneySession]:
        return list(self.active_sessions.values())

    def get_closed_sessions(self) -> List[JourneySession]:
        return list(self.closed_sessions.values())

    def get_session_statistics(self) -> Dict[str, Any]:
        closed = list(self.closed_sessions.values())
        completed = [s for s in closed if s.final_outcome == SessionOutcome.COMPLETED]
        dropped = [s for s in closed if s.final_outcome == SessionOutcome.DROPPED_OFF]

        distribution = {'low': 0, 'medium': 0, 'high': 0}
        for session in closed + list(self.active_sessions.values()):
            if not session.page_visits:
                continue
            score = session.average_engagement()
            if score < 0.4:
                distribution['low'] += 1
            elif score < 0.7:
                distribution['medium'] += 1
            else:
                distribution['high'] += 1

        return {
            'active_sessions': len(self.active_sessions),
            'closed_sessions': len(closed),
            'completed_sessions': len(completed),
            'dropped_off_sessions': len(dropped),
            'completion_rate': len(completed) / len(closed) if closed else 0.0,
            'average_duration': sum(s.total_duration for s in closed) / len(closed) if closed else 0.0,
            'engagement_distribution': distribution,
        }

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    def _get_active(self, session_id: str) -> JourneySession:
        session = self.active_sessions.get(session_id)
        if session is not None:
            return session
        if session_id in self.closed_sessions:
            raise InvalidSessionStateError(f"Session {session_id} is already closed")
        raise SessionNotFoundError(f"Session {session_id} not found")

    def _touch(self, session: JourneySession, now: datetime):
        session.last_activity = now
        session.next_check_deadline = now + self.config.session_timeout

    def _finalize(self, session: JourneySession, outcome: SessionOutcome,
                  trigger: Optional[ExitTrigger], ended_at: datetime) -> JourneySession:
        current = session.current_visit
        if current is not None:
            if outcome == SessionOutcome.COMPLETED:
                action = ExitAction.NEXT_PAGE
            elif trigger == ExitTrigger.TIME_BASED:
                action = ExitAction.TIMEOUT
            else:
                action = ExitAction.CLOSE
            current.close(ended_at, action)
            self._emit_page_exit(session, current)

        session.session_end = max(ended_at, session.session_start)
        session.total_duration = (session.session_end - session.session_start).total_seconds()
        session.final_outcome = outcome
        session.next_check_deadline = None

        if outcome == SessionOutcome.DROPPED_OFF:
            last = session.last_visit
            session.exit_point = last.page_type if last else None
            session.exit_trigger = trigger or infer_exit_trigger(last)
        else:
            session.exit_point = None
            session.exit_trigger = None

        self.active_sessions.pop(session.session_id, None)
        self.closed_sessions[session.session_id] = session
        self._unpersisted.append(session.session_id)
        journey_active_sessions.set(len(self.active_sessions))
        journey_sessions_total.labels(outcome=outcome.value).inc()

        if outcome == SessionOutcome.COMPLETED:
            self._emit(RealtimeEventType.SESSION_COMPLETED, session,
                       duration=session.total_duration)
        else:
            self._emit(RealtimeEventType.SESSION_DROPPED_OFF, session,
                       page_type=session.exit_point, duration=session.total_duration,
                       exit_trigger=session.exit_trigger.value if session.exit_trigger else None)

        self.logger.info(
            f"Closed session {session.session_id}: {outcome.value}"
            + (f" at {session.exit_point.value} ({session.exit_trigger.value})"
               if session.exit_point and session.exit_trigger else "")
        )
        return session

    def _emit_page_exit(self, session: JourneySession, visit: PageVisit,
                        exit_action: Optional[ExitAction] = None):
        action = exit_action or visit.exit_action
        self._emit(RealtimeEventType.PAGE_EXITED, session, page_type=visit.page_type,
                   visit_id=visit.visit_id, exit_action=action.value if action else None,
                   time_on_page=visit.time_on_page, engagement_score=visit.engagement_score)

    def _emit(self, event_type: RealtimeEventType, session: JourneySession,
              page_type: Optional[PageType] = None, **data):
        if self.on_event is None:
            return
        event = JourneyEvent(
            event_type=event_type,
            session_id=session.session_id,
            client_id=session.client_id,
            page_type=page_type,
            timestamp=self.clock(),
            data=data,
        )
        try:
            self.on_event(event)
        except Exception as e:
            self.logger.error(f"Error delivering {event_type.value} event: {e}")
