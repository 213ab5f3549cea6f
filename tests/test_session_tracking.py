from __future__ import annotations

import asyncio
from datetime import timedelta

import pytest

from journey_analyzer.analytics.session_tracking import JourneySessionManager, SessionTrackingConfig
from journey_analyzer.exceptions import InvalidSessionStateError, SessionNotFoundError, VisitNotFoundError
from journey_analyzer.infrastructure.journey_store import InMemoryJourneyStore
from journey_analyzer.models.events import RealtimeEventType
from journey_analyzer.models.journey import EngagementSample, ExitTrigger, PageType, SessionOutcome


def _manager(clock, events=None, store=None):
    return JourneySessionManager(
        config=SessionTrackingConfig(),
        clock=clock,
        on_event=events.append if events is not None else None,
        store=store,
    )


def test_full_funnel_closes_as_completed(clock):
    manager = _manager(clock)
    session = manager.create_session("client-1", session_id="s-a")

    for page, seconds in [("activation", 120), ("agreement", 240), ("confirmation", 60), ("processing", 30)]:
        visit = manager.record_page_entry("s-a", page)
        clock.advance(seconds=seconds)
        manager.record_page_exit("s-a", visit.visit_id, "next_page",
                                 EngagementSample(scroll_depth=80, interactions=4))

    closed = manager.close_session("s-a")

    assert closed is session
    assert closed.final_outcome == SessionOutcome.COMPLETED
    assert closed.exit_point is None
    assert closed.total_duration == 450
    assert [v.time_on_page for v in closed.page_visits] == [120, 240, 60, 30]
    assert manager.get_active_sessions() == []


def test_quick_close_on_agreement_is_content_based_drop_off(clock):
    manager = _manager(clock)
    manager.create_session("client-2", session_id="s-b")
    visit = manager.record_page_entry("s-b", PageType.AGREEMENT)
    clock.advance(seconds=3)

    manager.record_page_exit("s-b", visit.visit_id, "close")

    session = manager.get_session("s-b")
    assert session.final_outcome == SessionOutcome.DROPPED_OFF
    assert session.exit_point == PageType.AGREEMENT
    assert session.exit_trigger == ExitTrigger.CONTENT_BASED
    assert session.page_visits[0].time_on_page == 3


def test_timeout_and_error_exits_set_trigger(clock):
    manager = _manager(clock)
    for session_id, action, trigger in [("s-t", "timeout", ExitTrigger.TIME_BASED),
                                        ("s-e", "error", ExitTrigger.TECHNICAL)]:
        manager.create_session("client", session_id=session_id)
        visit = manager.record_page_entry(session_id, "confirmation")
        clock.advance(seconds=90)
        manager.record_page_exit(session_id, visit.visit_id, action)
        assert manager.get_session(session_id).exit_trigger == trigger


def test_new_page_entry_closes_previous_visit(clock):
    manager = _manager(clock)
    manager.create_session("client-3", session_id="s-c")

    for page in ["activation", "agreement", "confirmation"]:
        manager.record_page_entry("s-c", page)
        clock.advance(seconds=45)
        session = manager.get_session("s-c")
        assert sum(1 for v in session.page_visits if v.is_open) == 1

    first = session.page_visits[0]
    assert first.exit_time - first.entry_time == timedelta(seconds=45)
    assert 0.0 <= first.engagement_score <= 1.0


def test_close_with_open_last_visit_stays_in_progress(clock):
    manager = _manager(clock)
    manager.create_session("client-4", session_id="s-d")
    manager.record_page_entry("s-d", "activation")

    session = manager.close_session("s-d")

    assert session.final_outcome == SessionOutcome.IN_PROGRESS
    assert "s-d" in manager.active_sessions


def test_closing_twice_returns_archived_record(clock):
    manager = _manager(clock)
    manager.create_session("client-5", session_id="s-e")
    visit = manager.record_page_entry("s-e", "activation")
    clock.advance(seconds=60)
    manager.record_page_exit("s-e", visit.visit_id, "back")

    first = manager.close_session("s-e", outcome="dropped_off")
    second = manager.close_session("s-e", outcome="completed")

    assert first is second
    assert second.final_outcome == SessionOutcome.DROPPED_OFF


def test_lookup_errors(clock):
    manager = _manager(clock)
    with pytest.raises(SessionNotFoundError):
        manager.record_page_entry("missing", "activation")

    manager.create_session("client-6", session_id="s-f")
    with pytest.raises(InvalidSessionStateError, match="already exists"):
        manager.create_session("client-6", session_id="s-f")
    with pytest.raises(VisitNotFoundError):
        manager.record_page_exit("s-f", "nope", "next_page")

    manager.close_session("s-f", outcome="dropped_off")
    with pytest.raises(InvalidSessionStateError, match="already closed"):
        manager.record_page_entry("s-f", "agreement")


def test_idle_sweep_closes_at_deadline(clock):
    manager = _manager(clock)
    start = clock()
    manager.create_session("client-7", session_id="s-g")
    manager.record_page_entry("s-g", "agreement")
    clock.advance(minutes=10)
    manager.create_session("client-8", session_id="s-h")

    clock.advance(minutes=25)
    closed = manager.sweep_idle_sessions()

    assert [s.session_id for s in closed] == ["s-g"]
    session = closed[0]
    assert session.final_outcome == SessionOutcome.DROPPED_OFF
    assert session.exit_trigger == ExitTrigger.TIME_BASED
    assert session.session_end == start + timedelta(minutes=30)
    assert session.page_visits[0].time_on_page == 1800
    assert "s-h" in manager.active_sessions


def test_activity_rearms_idle_deadline(clock):
    manager = _manager(clock)
    manager.create_session("client-9", session_id="s-i")
    visit = manager.record_page_entry("s-i", "activation")
    clock.advance(minutes=20)
    manager.update_engagement("s-i", visit.visit_id, scroll_depth=60)
    clock.advance(minutes=20)

    assert manager.sweep_idle_sessions() == []
    assert manager.get_session("s-i").next_check_deadline == clock() + timedelta(minutes=10)


def test_events_are_emitted_in_order(clock):
    events = []
    manager = _manager(clock, events)
    manager.create_session("client-10", session_id="s-j")
    visit = manager.record_page_entry("s-j", "agreement")
    clock.advance(seconds=2)
    manager.record_page_exit("s-j", visit.visit_id, "close")

    types = [e.event_type for e in events]
    assert types == [
        RealtimeEventType.SESSION_STARTED,
        RealtimeEventType.PAGE_ENTERED,
        RealtimeEventType.PAGE_EXITED,
        RealtimeEventType.SESSION_DROPPED_OFF,
    ]
    assert events[2].exit_action == "close"


def test_failing_event_callback_does_not_break_tracking(clock):
    def explode(event):
        raise RuntimeError("subscriber down")

    manager = JourneySessionManager(config=SessionTrackingConfig(), clock=clock, on_event=explode)
    manager.create_session("client-11", session_id="s-k")
    assert manager.record_page_entry("s-k", "activation").is_open


def test_closed_sessions_are_persisted(clock):
    store = InMemoryJourneyStore()
    manager = _manager(clock, store=store)
    manager.create_session("client-12", session_id="s-l")
    manager.close_session("s-l", outcome="dropped_off")

    saved = asyncio.run(manager.persist_closed_sessions())

    assert saved == 1
    stored = asyncio.run(store.get_session("s-l"))
    assert stored.final_outcome == SessionOutcome.DROPPED_OFF


def test_session_statistics(clock):
    manager = _manager(clock)
    manager.create_session("c", session_id="done")
    manager.close_session("done", outcome="completed")
    manager.create_session("c", session_id="gone")
    manager.close_session("gone", outcome="dropped_off")
    manager.create_session("c", session_id="open")

    stats = manager.get_session_statistics()

    assert stats["active_sessions"] == 1
    assert stats["closed_sessions"] == 2
    assert stats["completion_rate"] == pytest.approx(0.5)
