"""
Journey Session Models

Core data structures for onboarding journey sessions, page visits and
the page-specific engagement scoring used across the analytics engines.
"""

from typing import Dict, List, Optional, Any
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum


def utcnow() -> datetime:
    """Naive UTC timestamp used as the default clock."""
    return datetime.now(timezone.utc).replace(tzinfo=None)


class PageType(Enum):
    """Fixed funnel steps"""
    ACTIVATION = "activation"
    AGREEMENT = "agreement"
    CONFIRMATION = "confirmation"
    PROCESSING = "processing"


FUNNEL_PAGES: List[PageType] = [
    PageType.ACTIVATION,
    PageType.AGREEMENT,
    PageType.CONFIRMATION,
    PageType.PROCESSING,
]


class ExitAction(Enum):
    """How a client left a page"""
    NEXT_PAGE = "next_page"
    BACK = "back"
    CLOSE = "close"
    TIMEOUT = "timeout"
    ERROR = "error"


# Exit actions counted as a bounce from the page
BOUNCE_ACTIONS = {ExitAction.CLOSE, ExitAction.BACK, ExitAction.TIMEOUT}

# Exit actions that end the whole session
SESSION_ENDING_ACTIONS = {ExitAction.CLOSE, ExitAction.TIMEOUT, ExitAction.ERROR}


class SessionOutcome(Enum):
    """Final outcome of a journey session"""
    IN_PROGRESS = "in_progress"
    COMPLETED = "completed"
    DROPPED_OFF = "dropped_off"


class ExitTrigger(Enum):
    """Root cause category of a drop-off"""
    CONTENT_BASED = "content_based"
    TIME_BASED = "time_based"
    TECHNICAL = "technical"
    UNKNOWN = "unknown"


@dataclass(frozen=True)
class PageTimeExpectation:
    """Expected dwell times (seconds) and engagement weights for one page"""
    min_effective_time: float
    optimal_time: float
    max_reasonable_time: float
    timeout_threshold: float
    time_weight: float
    scroll_weight: float
    interaction_weight: float


PAGE_TIME_EXPECTATIONS: Dict[PageType, PageTimeExpectation] = {
    PageType.ACTIVATION: PageTimeExpectation(45, 120, 600, 1800, 0.4, 0.3, 0.3),
    PageType.AGREEMENT: PageTimeExpectation(90, 240, 1200, 2400, 0.5, 0.3, 0.2),
    PageType.CONFIRMATION: PageTimeExpectation(20, 60, 300, 600, 0.3, 0.2, 0.5),
    PageType.PROCESSING: PageTimeExpectation(5, 30, 120, 300, 0.2, 0.1, 0.7),
}

# Interactions at or above this count saturate the interaction sub-score
INTERACTION_SATURATION = 10


def calculate_time_score(time_on_page: float, expectation: PageTimeExpectation) -> float:
    """Piecewise time sub-score.

    Below the minimum effective time the score grows linearly to 0.3, between
    minimum and optimal it grows 0.3 -> 1.0, past optimal it decays slowly but
    never below 0.7, and beyond the maximum reasonable time it is pinned at 0.5.
    """
    if time_on_page < expectation.min_effective_time:
        return max(0.0, time_on_page) / expectation.min_effective_time * 0.3

    if time_on_page <= expectation.optimal_time:
        progress = (time_on_page - expectation.min_effective_time) / (
            expectation.optimal_time - expectation.min_effective_time)
        return 0.3 + progress * 0.7

    if time_on_page <= expectation.max_reasonable_time:
        over_time = time_on_page - expectation.optimal_time
        max_over_time = expectation.max_reasonable_time - expectation.optimal_time
        diminish = max(0.0, 1 - (over_time / max_over_time * 0.3))
        return max(0.7, diminish)

    return 0.5


def calculate_engagement_score(page_type: PageType, time_on_page: float,
                               scroll_depth: float, interactions: int) -> float:
    """Weighted time/scroll/interaction engagement score in [0, 1]."""
    expectation = PAGE_TIME_EXPECTATIONS[page_type]

    time_score = calculate_time_score(time_on_page, expectation)
    scroll_score = min(max(scroll_depth, 0.0) / 100, 1.0)
    interaction_score = min(max(interactions, 0) / INTERACTION_SATURATION, 1.0)

    score = (time_score * expectation.time_weight +
             scroll_score * expectation.scroll_weight +
             interaction_score * expectation.interaction_weight)
    return round(min(max(score, 0.0), 1.0), 2)


@dataclass
class EngagementSample:
    """Late-arriving engagement measurements for a page visit"""
    scroll_depth: Optional[float] = None
    interactions: Optional[int] = None


@dataclass
class PageVisit:
    """One step within a journey session"""
    visit_id: str
    session_id: str
    page_type: PageType
    entry_time: datetime
    content_variant_id: Optional[str] = None
    exit_time: Optional[datetime] = None
    time_on_page: float = 0.0
    exit_action: Optional[ExitAction] = None
    scroll_depth: float = 0.0
    interactions: int = 0
    engagement_score: float = 0.0

    @property
    def is_open(self) -> bool:
        return self.exit_time is None

    def merge_engagement(self, sample: Optional[EngagementSample]):
        """Merge scroll/interaction samples; scroll keeps the deepest value seen."""
        if sample is None:
            return
        if sample.scroll_depth is not None:
            self.scroll_depth = max(self.scroll_depth, min(max(sample.scroll_depth, 0.0), 100.0))
        if sample.interactions is not None:
            self.interactions = max(self.interactions, sample.interactions)

    def rescore(self) -> float:
        self.engagement_score = calculate_engagement_score(
            self.page_type, self.time_on_page, self.scroll_depth, self.interactions)
        return self.engagement_score

    def close(self, exit_time: datetime, exit_action: ExitAction,
              sample: Optional[EngagementSample] = None):
        """Close the visit and derive time-on-page and engagement."""
        # Clock skew must not produce negative dwell times
        self.exit_time = max(exit_time, self.entry_time)
        self.exit_action = exit_action
        self.time_on_page = (self.exit_time - self.entry_time).total_seconds()
        self.merge_engagement(sample)
        self.rescore()


@dataclass
class JourneySession:
    """One client's traversal of the onboarding funnel"""
    session_id: str
    client_id: str
    session_start: datetime
    page_visits: List[PageVisit] = field(default_factory=list)
    session_end: Optional[datetime] = None
    total_duration: float = 0.0
    final_outcome: SessionOutcome = SessionOutcome.IN_PROGRESS
    exit_point: Optional[PageType] = None
    exit_trigger: Optional[ExitTrigger] = None
    last_activity: Optional[datetime] = None
    next_check_deadline: Optional[datetime] = None
    metadata: Dict[str, Any] = field(default_factory=dict)

    @property
    def is_closed(self) -> bool:
        return self.session_end is not None

    @property
    def current_visit(self) -> Optional[PageVisit]:
        for visit in reversed(self.page_visits):
            if visit.is_open:
                return visit
        return None

    @property
    def last_visit(self) -> Optional[PageVisit]:
        return self.page_visits[-1] if self.page_visits else None

    def visited_page_types(self) -> List[PageType]:
        seen: List[PageType] = []
        for visit in self.page_visits:
            if visit.page_type not in seen:
                seen.append(visit.page_type)
        return seen

    def get_visit(self, visit_id: str) -> Optional[PageVisit]:
        for visit in self.page_visits:
            if visit.visit_id == visit_id:
                return visit
        return None

    def first_visit_for(self, page_type: PageType) -> Optional[PageVisit]:
        for visit in self.page_visits:
            if visit.page_type == page_type:
                return visit
        return None

    def average_engagement(self) -> float:
        if not self.page_visits:
            return 0.0
        return sum(v.engagement_score for v in self.page_visits) / len(self.page_visits)
