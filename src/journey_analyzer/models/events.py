"""Real-time journey event types."""

import uuid
from typing import Dict, Optional, Any
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum

from .journey import PageType, utcnow


class RealtimeEventType(Enum):
    """Events emitted while sessions progress"""
    SESSION_STARTED = "session_started"
    PAGE_ENTERED = "page_entered"
    PAGE_EXITED = "page_exited"
    ENGAGEMENT_UPDATED = "engagement_updated"
    SESSION_COMPLETED = "session_completed"
    SESSION_DROPPED_OFF = "session_dropped_off"
    PATTERN_DETECTED = "pattern_detected"
    ANALYTICS_UPDATED = "analytics_updated"
    ERROR = "error"


class EventCategory(Enum):
    """Batch grouping used when the event buffer flushes"""
    SESSION = "session"
    PAGE = "page"
    ENGAGEMENT = "engagement"
    ANALYTICS = "analytics"
    OTHER = "other"


_CATEGORY_BY_TYPE = {
    RealtimeEventType.SESSION_STARTED: EventCategory.SESSION,
    RealtimeEventType.SESSION_COMPLETED: EventCategory.SESSION,
    RealtimeEventType.SESSION_DROPPED_OFF: EventCategory.SESSION,
    RealtimeEventType.PAGE_ENTERED: EventCategory.PAGE,
    RealtimeEventType.PAGE_EXITED: EventCategory.PAGE,
    RealtimeEventType.ENGAGEMENT_UPDATED: EventCategory.ENGAGEMENT,
    RealtimeEventType.ANALYTICS_UPDATED: EventCategory.ANALYTICS,
    RealtimeEventType.PATTERN_DETECTED: EventCategory.ANALYTICS,
}


@dataclass
class JourneyEvent:
    """Domain event fed into the real-time buffer"""
    event_type: RealtimeEventType
    session_id: str
    client_id: str
    page_type: Optional[PageType] = None
    timestamp: datetime = field(default_factory=utcnow)
    data: Dict[str, Any] = field(default_factory=dict)
    event_id: str = field(default_factory=lambda: f"evt_{uuid.uuid4().hex[:12]}")
    processed: bool = False

    @property
    def category(self) -> EventCategory:
        return _CATEGORY_BY_TYPE.get(self.event_type, EventCategory.OTHER)

    @property
    def exit_action(self) -> Optional[str]:
        return self.data.get('exit_action')

    @property
    def is_error(self) -> bool:
        return self.event_type == RealtimeEventType.ERROR or self.exit_action == 'error'
