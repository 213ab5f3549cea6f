from __future__ import annotations

import asyncio
from datetime import timedelta

from journey_analyzer.infrastructure.journey_store import InMemoryJourneyStore
from journey_analyzer.models.journey import SessionOutcome


def _store(build_session, full_funnel, base):
    return InMemoryJourneyStore([
        build_session("late", full_funnel, outcome=SessionOutcome.COMPLETED,
                      start=base + timedelta(hours=2), client_id="acme"),
        build_session("early", [{"page": "activation", "seconds": 30, "exit": "close"}], client_id="acme"),
        build_session("other", full_funnel, outcome=SessionOutcome.COMPLETED,
                      start=base + timedelta(hours=1), client_id="globex"),
    ])


def test_query_filters_and_orders_by_start(clock, build_session, full_funnel):
    store = _store(build_session, full_funnel, clock())

    everything = asyncio.run(store.query_sessions())
    completed = asyncio.run(store.query_sessions(outcome=SessionOutcome.COMPLETED))
    acme = asyncio.run(store.query_sessions(client_ids=["acme"]))
    windowed = asyncio.run(store.query_sessions(start=clock() + timedelta(minutes=30),
                                                end=clock() + timedelta(hours=1)))

    assert [s.session_id for s in everything] == ["early", "other", "late"]
    assert [s.session_id for s in completed] == ["other", "late"]
    assert [s.session_id for s in acme] == ["early", "late"]
    assert [s.session_id for s in windowed] == ["other"]


def test_store_returns_snapshots(clock, build_session, full_funnel):
    store = _store(build_session, full_funnel, clock())

    fetched = asyncio.run(store.get_session("early"))
    fetched.client_id = "changed"

    assert asyncio.run(store.get_session("early")).client_id == "acme"
    assert asyncio.run(store.get_session("missing")) is None


def test_save_replaces_existing_record(clock, build_session, full_funnel):
    store = _store(build_session, full_funnel, clock())
    updated = build_session("early", full_funnel, outcome=SessionOutcome.COMPLETED, client_id="acme")

    asyncio.run(store.save_session(updated))

    assert len(store) == 3
    assert asyncio.run(store.get_session("early")).final_outcome == SessionOutcome.COMPLETED
