from __future__ import annotations

import asyncio
from datetime import timedelta

import pytest

from journey_analyzer import JourneyAnalyticsService, ServiceResult
from journey_analyzer.config import Settings
from journey_analyzer.infrastructure.journey_store import InMemoryJourneyStore
from journey_analyzer.models.analysis import AlertSeverity, AlertThreshold, MetricType
from journey_analyzer.models.journey import ExitTrigger, PageType, SessionOutcome


def _population(build_session, full_funnel):
    sessions = [
        build_session(f"drop-{i}", [{"page": "activation", "seconds": 60},
                                    {"page": "agreement", "seconds": seconds, "exit": "timeout"}],
                      exit_trigger=ExitTrigger.TIME_BASED, client_id="acme")
        for i, seconds in enumerate([290, 310, 305, 295, 300, 320])
    ]
    sessions += [
        build_session(f"done-{i}", full_funnel, outcome=SessionOutcome.COMPLETED, client_id="acme")
        for i in range(5)
    ]
    return sessions


@pytest.fixture
def service(clock, build_session, full_funnel):
    store = InMemoryJourneyStore(_population(build_session, full_funnel))
    clock.advance(hours=1)
    settings = Settings(EVENT_BUFFER_MAX_SIZE=100, BATCH_YIELD_SECONDS=0, BOOTSTRAP_SAMPLES=200)
    return JourneyAnalyticsService.from_settings(settings, store=store, clock=clock)


def test_service_result_helpers():
    assert ServiceResult.ok([1]).model_dump() == {"success": True, "data": [1], "error": None}
    failure = ServiceResult.fail("boom")
    assert not failure.success
    assert failure.error == "boom"


def test_analyze_stored_sessions_in_window(service, clock):
    result = asyncio.run(service.analyze_drop_off_patterns())

    assert result.success
    analysis = result.data
    assert analysis.total_sessions == 11
    assert [p.pattern_id for p in analysis.patterns] == ["dropoff_agreement_time_based"]

    later = asyncio.run(service.analyze_drop_off_patterns(start=clock() + timedelta(minutes=1)))
    assert later.success
    assert later.data.is_empty


def test_analysis_window_has_its_own_setting(clock, build_session, full_funnel):
    settings = Settings(ANALYSIS_WINDOW_DAYS=1, MAX_COMPARISON_DISTANCE_DAYS=30)
    store = InMemoryJourneyStore(_population(build_session, full_funnel))
    service = JourneyAnalyticsService.from_settings(settings, store=store, clock=clock)
    assert service.analysis_window_days == 1

    clock.advance(hours=12)
    assert asyncio.run(service.analyze_drop_off_patterns()).data.total_sessions == 11

    clock.advance(days=1)
    assert asyncio.run(service.analyze_drop_off_patterns()).data.is_empty


def test_compare_journeys_by_id(service):
    result = asyncio.run(service.compare_journeys("done-0", "drop-0", "timing_focused"))

    assert result.success
    assert result.data.components_analyzed == ["timing"]
    assert result.data.comparison.successful_journey_id == "done-0"


def test_compare_journeys_failures_are_structured(service, build_session):
    missing = asyncio.run(service.compare_journeys("done-0", "missing"))
    assert not missing.success
    assert missing.error == "Session missing not found"

    far_away = build_session("far", [{"page": "activation", "seconds": 10, "exit": "close"}],
                             start=service.clock() + timedelta(days=29), client_id="other")
    not_viable = asyncio.run(service.compare_journeys("done-0", far_away))
    assert not not_viable.success
    assert "not suitable for comparison" in not_viable.error


def test_find_pairs_through_service(service):
    result = asyncio.run(service.find_optimal_journey_pairs(limit=4))

    assert result.success
    assert len(result.data) == 4


def test_recommendations_for_analysis(service):
    analysis = asyncio.run(service.analyze_drop_off_patterns()).data

    overall = service.generate_recommendations(analysis)
    page = service.generate_recommendations(analysis, page_type="agreement")

    assert overall.success
    assert all(1 <= r.expected_improvement <= 50 for r in overall.data)
    assert page.success
    assert page.data.target_page == PageType.AGREEMENT


def test_tracked_sessions_reach_live_metrics(service, clock):
    manager = service.session_manager
    manager.create_session("acme", session_id="live-1")
    visit = manager.record_page_entry("live-1", "agreement")
    clock.advance(seconds=4)
    manager.record_page_exit("live-1", visit.visit_id, "close")
    manager.create_session("acme", session_id="live-2")
    manager.record_page_entry("live-2", "activation")

    asyncio.run(service.processor.process_events())
    metrics = service.get_real_time_metrics(clock()).data

    assert metrics.active_sessions == 1
    assert [d.session_id for d in metrics.recent_drop_offs] == ["live-1"]
    assert metrics.recent_drop_offs[0].exit_trigger == ExitTrigger.CONTENT_BASED


def test_alert_threshold_lifecycle(service):
    threshold = AlertThreshold("duration", MetricType.SESSION_DURATION, 600, 30, AlertSeverity.LOW)

    assert service.set_alert_threshold(threshold).success
    assert service.remove_alert_threshold("duration").data == {"removed": "duration"}

    missing = service.remove_alert_threshold("duration")
    assert not missing.success
    assert missing.error == "Alert threshold duration not found"


def test_acknowledge_alert(service, clock):
    manager = service.session_manager
    manager.create_session("acme", session_id="err")
    visit = manager.record_page_entry("err", "confirmation")
    manager.record_page_exit("err", visit.visit_id, "error")
    asyncio.run(service.processor.process_events())

    alerts = service.get_active_alerts().data
    technical = [a for a in alerts if a.message == "Technical error detected on confirmation page"]
    assert len(technical) == 1

    acknowledged = service.acknowledge_alert(technical[0].alert_id, "on-call")
    assert acknowledged.success
    assert acknowledged.data.acknowledged_by == "on-call"

    unknown = service.acknowledge_alert("nope")
    assert unknown.error == "Alert nope not found"


def test_start_and_stop_persist_closed_sessions(service):
    async def lifecycle():
        await service.start()
        service.session_manager.create_session("acme", session_id="short")
        service.session_manager.close_session("short", outcome="dropped_off")
        await service.stop()

    asyncio.run(lifecycle())

    stored = asyncio.run(service.store.get_session("short"))
    assert stored.final_outcome == SessionOutcome.DROPPED_OFF
    assert not service.processor.is_running
