from __future__ import annotations

from datetime import datetime, timedelta

import pytest

from journey_analyzer.config import reset_settings
from journey_analyzer.models.journey import (
    ExitAction, ExitTrigger, JourneySession, PageType, PageVisit, SessionOutcome,
)

BASE_TIME = datetime(2026, 3, 2, 9, 0, 0)


class FakeClock:
    def __init__(self, start: datetime = BASE_TIME):
        self.now = start

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs) -> datetime:
        self.now = self.now + timedelta(**kwargs)
        return self.now


def _build_session(session_id: str, visits: list[dict], outcome: SessionOutcome = SessionOutcome.DROPPED_OFF,
                   start: datetime = BASE_TIME, exit_trigger: ExitTrigger | None = None,
                   client_id: str | None = None) -> JourneySession:
    """Closed session from visit dicts: page, seconds and optional engagement fields."""
    session = JourneySession(session_id=session_id, client_id=client_id or f"client-{session_id}",
                             session_start=start)
    cursor = start
    for index, fields in enumerate(visits):
        entry = cursor
        exit_time = entry + timedelta(seconds=fields.get("seconds", 60))
        visit = PageVisit(
            visit_id=f"{session_id}-v{index}",
            session_id=session_id,
            page_type=PageType(fields["page"]),
            entry_time=entry,
            content_variant_id=fields.get("variant"),
        )
        visit.close(exit_time, ExitAction(fields.get("exit", "next_page")))
        visit.scroll_depth = fields.get("scroll", 50.0)
        visit.interactions = fields.get("interactions", 3)
        visit.rescore()
        if "engagement" in fields:
            visit.engagement_score = fields["engagement"]
        session.page_visits.append(visit)
        cursor = exit_time

    session.session_end = cursor
    session.total_duration = (cursor - start).total_seconds()
    session.final_outcome = outcome
    if outcome == SessionOutcome.DROPPED_OFF and session.page_visits:
        session.exit_point = session.page_visits[-1].page_type
        session.exit_trigger = exit_trigger or ExitTrigger.UNKNOWN
    return session


@pytest.fixture(autouse=True)
def _fresh_settings(monkeypatch):
    monkeypatch.delenv("SESSION_TIMEOUT_MINUTES", raising=False)
    reset_settings()
    yield
    reset_settings()


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def build_session():
    return _build_session


@pytest.fixture
def full_funnel():
    return [
        {"page": "activation", "seconds": 120},
        {"page": "agreement", "seconds": 240},
        {"page": "confirmation", "seconds": 60},
        {"page": "processing", "seconds": 30},
    ]
