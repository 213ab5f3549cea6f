"""
Real-time Journey Analytics

Bounded, time-flushed event buffer feeding a TTL analytics cache, rolling
threshold alerts and the live metrics shown on the journey dashboard.
"""

import asyncio
import logging
import time
import uuid
from collections import defaultdict
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Any, Awaitable, Callable, Dict, List, Optional, Set, Tuple, Union

from prometheus_client import Counter, Gauge, Histogram

from journey_analyzer.config import Settings, get_settings
from journey_analyzer.models.journey import ExitTrigger, PageType, utcnow
from journey_analyzer.models.events import EventCategory, JourneyEvent, RealtimeEventType
from journey_analyzer.models.analysis import (
    AlertSeverity, AlertThreshold, AlertType, DropOffEvent, MetricType, RealTimeMetrics, RealtimeAlert,
)

realtime_events = Counter('journey_realtime_events_total', 'Real-time journey events', ['category', 'status'])
event_buffer_size = Gauge('journey_event_buffer_size', 'Events waiting in the real-time buffer')
alert_triggers = Counter('journey_alerts_triggered_total', 'Journey alerts triggered', ['alert_type', 'severity'])
processing_latency = Histogram('journey_realtime_processing_seconds', 'Real-time processing cycle latency')

logger = logging.getLogger(__name__)

DROP_OFF_EXIT_ACTIONS = {'close', 'back', 'timeout'}
ACTIVE_SESSION_WINDOW = timedelta(minutes=30)
RECENT_DROP_OFF_WINDOW = timedelta(hours=1)
METRICS_CACHE_KEY = 'real_time_metrics'
METRICS_CACHE_TTL = 30

_ALERT_TYPE_BY_METRIC = {
    MetricType.DROP_OFF_RATE: AlertType.HIGH_DROP_OFF,
    MetricType.CONVERSION_RATE: AlertType.LOW_ENGAGEMENT,
    MetricType.SESSION_DURATION: AlertType.LOW_ENGAGEMENT,
    MetricType.ERROR_RATE: AlertType.TECHNICAL_ISSUE,
}

_TRIGGER_BY_EXIT_ACTION = {
    'close': ExitTrigger.CONTENT_BASED,
    'back': ExitTrigger.CONTENT_BASED,
    'timeout': ExitTrigger.TIME_BASED,
}

FlushHandler = Callable[[List[JourneyEvent]], Union[Awaitable[None], None]]


@dataclass
class EventBufferConfig:
    max_size: int = 50
    flush_interval_seconds: float = 5.0
    cache_ttl_seconds: int = 60
    cache_cleanup_minutes: int = 5
    processing_interval_seconds: float = 30.0
    event_retention_minutes: int = 60
    alert_dedup_minutes: int = 15
    alert_retention_minutes: int = 1440

    @classmethod
    def from_settings(cls, settings: Optional[Settings] = None) -> "EventBufferConfig":
        s = settings or get_settings()
        return cls(
            max_size=s.event_buffer_max_size,
            flush_interval_seconds=s.event_buffer_flush_seconds,
            cache_ttl_seconds=s.analytics_cache_ttl_seconds,
            cache_cleanup_minutes=s.analytics_cache_cleanup_minutes,
            event_retention_minutes=s.event_retention_minutes,
            alert_dedup_minutes=s.alert_dedup_minutes,
            alert_retention_minutes=s.alert_retention_minutes,
        )


def default_alert_thresholds() -> List[AlertThreshold]:
    return [
        AlertThreshold('high-drop-off-activation', MetricType.DROP_OFF_RATE, 20, 30,
                       AlertSeverity.HIGH, page_type=PageType.ACTIVATION),
        AlertThreshold('high-drop-off-agreement', MetricType.DROP_OFF_RATE, 15, 30,
                       AlertSeverity.HIGH, page_type=PageType.AGREEMENT),
        AlertThreshold('low-conversion-overall', MetricType.CONVERSION_RATE, 50, 60, AlertSeverity.MEDIUM),
        AlertThreshold('high-error-rate', MetricType.ERROR_RATE, 5, 15, AlertSeverity.CRITICAL),
    ]


def is_completion_event(event: JourneyEvent) -> bool:
    if event.event_type == RealtimeEventType.SESSION_COMPLETED:
        return True
    return (event.event_type == RealtimeEventType.PAGE_EXITED
            and event.page_type == PageType.PROCESSING
            and event.exit_action == 'next_page')


def is_drop_off_exit(event: JourneyEvent) -> bool:
    return event.event_type == RealtimeEventType.PAGE_EXITED and event.exit_action in DROP_OFF_EXIT_ACTIONS


def calculate_conversion_rate(events: List[JourneyEvent]) -> Optional[float]:
    """Percentage of sessions seen in ``events`` that completed; None without sessions."""
    sessions = {e.session_id for e in events}
    if not sessions:
        return None
    completed = {e.session_id for e in events if is_completion_event(e)}
    return len(completed) / len(sessions) * 100


class EventBuffer:
    """Append-only event queue flushed at max size or on a fixed interval.

    Only one flush runs at a time. A flush whose handler fails puts its batch
    back at the head of the queue so the next cycle retries it.
    """

    def __init__(self, on_flush: FlushHandler, config: Optional[EventBufferConfig] = None,
                 clock: Optional[Callable[[], datetime]] = None):
        self.on_flush = on_flush
        self.config = config or EventBufferConfig.from_settings()
        self.clock = clock or utcnow
        self._events: List[JourneyEvent] = []
        self._lock = asyncio.Lock()
        self._closed = False
        self.last_flush: Optional[datetime] = None
        self.total_flushed = 0
        self.failed_flushes = 0
        self.logger = logging.getLogger(__name__)

    def __len__(self) -> int:
        return len(self._events)

    @property
    def is_full(self) -> bool:
        return len(self._events) >= self.config.max_size

    def add_nowait(self, event: JourneyEvent) -> bool:
        """Queue an event without flushing. Returns True when the buffer is full."""
        self._events.append(event)
        event_buffer_size.set(len(self._events))
        return self.is_full

    async def add(self, event: JourneyEvent) -> bool:
        """Queue an event, flushing immediately once the max size is reached."""
        if self.add_nowait(event):
            await self.flush()
            return True
        return False

    async def flush(self) -> int:
        async with self._lock:
            if not self._events:
                return 0

            batch = self._events
            self._events = []
            try:
                result = self.on_flush(batch)
                if asyncio.iscoroutine(result):
                    await result
            except Exception as e:
                self.logger.error(f"Error flushing event buffer ({len(batch)} events): {e}")
                self._events = batch + self._events
                self.failed_flushes += 1
                event_buffer_size.set(len(self._events))
                return 0

            self.last_flush = self.clock()
            self.total_flushed += len(batch)
            event_buffer_size.set(len(self._events))
            return len(batch)

    async def run_periodic_flush(self):
        while not self._closed:
            try:
                await asyncio.sleep(self.config.flush_interval_seconds)
                await self.flush()
            except asyncio.CancelledError:
                break
            except Exception as e:
                self.logger.error(f"Periodic flush error: {e}")

    @property
    def is_closed(self) -> bool:
        return self._closed

    def open(self):
        """Re-arm the periodic flush after a close."""
        self._closed = False

    async def close(self):
        self._closed = True
        await self.flush()

    def get_status(self) -> Dict[str, Any]:
        return {
            'size': len(self._events),
            'max_size': self.config.max_size,
            'flush_interval_seconds': self.config.flush_interval_seconds,
            'is_flushing': self._lock.locked(),
            'last_flush': self.last_flush,
            'total_flushed': self.total_flushed,
            'failed_flushes': self.failed_flushes,
        }


class AnalyticsCache:
    """In-process TTL cache with hit/miss accounting."""

    def __init__(self, default_ttl: int = 60, clock: Optional[Callable[[], datetime]] = None):
        self.default_ttl = default_ttl
        self.clock = clock or utcnow
        self._entries: Dict[str, Tuple[Any, datetime]] = {}
        self.hits = 0
        self.misses = 0

    def set(self, key: str, value: Any, ttl: Optional[int] = None):
        expires_at = self.clock() + timedelta(seconds=self.default_ttl if ttl is None else ttl)
        self._entries[key] = (value, expires_at)

    def get(self, key: str) -> Optional[Any]:
        entry = self._entries.get(key)
        if entry is None:
            self.misses += 1
            return None
        value, expires_at = entry
        if self.clock() >= expires_at:
            del self._entries[key]
            self.misses += 1
            return None
        self.hits += 1
        return value

    def has(self, key: str) -> bool:
        entry = self._entries.get(key)
        return entry is not None and self.clock() < entry[1]

    def invalidate(self, key: str):
        self._entries.pop(key, None)

    def cleanup(self) -> int:
        """Drop expired entries; returns how many were removed."""
        now = self.clock()
        expired = [k for k, (_, expires_at) in self._entries.items() if now >= expires_at]
        for key in expired:
            del self._entries[key]
        return len(expired)

    def get_stats(self) -> Dict[str, Any]:
        lookups = self.hits + self.misses
        return {
            'size': len(self._entries),
            'hits': self.hits,
            'misses': self.misses,
            'hit_rate': self.hits / lookups if lookups else 0.0,
        }


class AlertManager:
    """Threshold alerts over rolling event windows, deduplicated per page and alert type."""

    def __init__(self, thresholds: Optional[List[AlertThreshold]] = None,
                 dedup_window: timedelta = timedelta(minutes=15),
                 clock: Optional[Callable[[], datetime]] = None,
                 retention: timedelta = timedelta(hours=24)):
        self.thresholds: Dict[str, AlertThreshold] = {}
        for threshold in (default_alert_thresholds() if thresholds is None else thresholds):
            self.thresholds[threshold.threshold_id] = threshold
        self.dedup_window = dedup_window
        self.retention = retention
        self.clock = clock or utcnow
        self.alerts: List[RealtimeAlert] = []
        self.alerts_generated = 0
        self.logger = logging.getLogger(__name__)

    def set_alert_threshold(self, threshold: AlertThreshold):
        """Add a threshold or replace the one with the same id."""
        self.thresholds[threshold.threshold_id] = threshold
        self.logger.info(
            f"Set alert threshold {threshold.threshold_id}: {threshold.metric_type.value} "
            f"{'<' if threshold.alerts_below else '>'} {threshold.threshold:g}")

    def remove_alert_threshold(self, threshold_id: str) -> bool:
        return self.thresholds.pop(threshold_id, None) is not None

    def get_thresholds(self) -> List[AlertThreshold]:
        return list(self.thresholds.values())

    def get_active_alerts(self) -> List[RealtimeAlert]:
        return [a for a in self.alerts if not a.acknowledged]

    def acknowledge_alert(self, alert_id: str, acknowledged_by: Optional[str] = None) -> Optional[RealtimeAlert]:
        for alert in self.alerts:
            if alert.alert_id == alert_id:
                alert.acknowledged = True
                alert.acknowledged_at = self.clock()
                if acknowledged_by:
                    alert.acknowledged_by = acknowledged_by
                self.logger.info(f"Alert {alert_id} acknowledged by {acknowledged_by or 'unknown'}")
                return alert
        return None

    def prune_alerts(self, now: Optional[datetime] = None) -> int:
        """Forget acknowledged alerts past the dedup window and any alert past retention."""
        now = now or self.clock()
        dedup_cutoff = now - self.dedup_window
        retention_cutoff = now - self.retention
        kept = [
            a for a in self.alerts
            if a.timestamp > retention_cutoff and not (a.acknowledged and a.timestamp <= dedup_cutoff)
        ]
        removed = len(self.alerts) - len(kept)
        self.alerts = kept
        return removed

    def check_thresholds(self, events: List[JourneyEvent], now: Optional[datetime] = None) -> List[RealtimeAlert]:
        now = now or self.clock()
        raised = []
        for threshold in list(self.thresholds.values()):
            if not threshold.is_active:
                continue
            try:
                value = self.calculate_metric(threshold, events, now)
                if value is None or not threshold.is_violated(value):
                    continue
                alert = self._trigger_alert(
                    alert_type=_ALERT_TYPE_BY_METRIC[threshold.metric_type],
                    severity=threshold.severity,
                    message=self.format_alert_message(threshold, value),
                    affected_page=threshold.page_type,
                    threshold=threshold.threshold,
                    current_value=value,
                    now=now,
                    threshold_id=threshold.threshold_id,
                )
                if alert is not None:
                    raised.append(alert)
            except Exception as e:
                self.logger.error(f"Alert evaluation failed for {threshold.threshold_id}: {e}")
        return raised

    def raise_immediate_alert(self, event: JourneyEvent, now: Optional[datetime] = None) -> Optional[RealtimeAlert]:
        """Technical alert for a single error event."""
        page = event.page_type.value if event.page_type else 'unknown'
        return self._trigger_alert(
            alert_type=AlertType.TECHNICAL_ISSUE,
            severity=AlertSeverity.HIGH,
            message=f"Technical error detected on {page} page",
            affected_page=event.page_type,
            threshold=0,
            current_value=1,
            now=now or self.clock(),
        )

    def calculate_metric(self, threshold: AlertThreshold, events: List[JourneyEvent],
                         now: datetime) -> Optional[float]:
        """Rolling value for a threshold's metric, or None when its window holds no data."""
        window_start = now - timedelta(minutes=threshold.time_window_minutes)
        recent = [e for e in events if window_start <= e.timestamp <= now]
        scoped = [e for e in recent if threshold.page_type is None or e.page_type == threshold.page_type]

        if threshold.metric_type == MetricType.DROP_OFF_RATE:
            exits = [e for e in scoped if e.event_type == RealtimeEventType.PAGE_EXITED]
            if not exits:
                return None
            return sum(1 for e in exits if is_drop_off_exit(e)) / len(exits) * 100

        if threshold.metric_type == MetricType.CONVERSION_RATE:
            return calculate_conversion_rate(recent)

        if threshold.metric_type == MetricType.ERROR_RATE:
            if not scoped:
                return None
            return sum(1 for e in scoped if e.is_error) / len(scoped) * 100

        if threshold.metric_type == MetricType.SESSION_DURATION:
            durations = [float(e.data['duration']) for e in recent
                         if e.event_type in (RealtimeEventType.SESSION_COMPLETED,
                                             RealtimeEventType.SESSION_DROPPED_OFF)
                         and e.data.get('duration') is not None]
            if not durations:
                return None
            return sum(durations) / len(durations)

        return None

    @staticmethod
    def format_alert_message(threshold: AlertThreshold, value: float) -> str:
        page_text = f" on {threshold.page_type.value} page" if threshold.page_type else ""
        if threshold.metric_type == MetricType.DROP_OFF_RATE:
            return f"High drop-off rate detected{page_text}: {value:.1f}% (threshold: {threshold.threshold:g}%)"
        if threshold.metric_type == MetricType.CONVERSION_RATE:
            return f"Low conversion rate detected{page_text}: {value:.1f}% (threshold: {threshold.threshold:g}%)"
        if threshold.metric_type == MetricType.SESSION_DURATION:
            return f"Long session duration detected{page_text}: {value:.0f}s (threshold: {threshold.threshold:g}s)"
        if threshold.metric_type == MetricType.ERROR_RATE:
            return f"High error rate detected{page_text}: {value:.1f}% (threshold: {threshold.threshold:g}%)"
        return f"Threshold violation detected{page_text}"

    def _has_recent_alert(self, alert_type: AlertType, page: Optional[PageType], now: datetime) -> bool:
        cutoff = now - self.dedup_window
        return any(
            not a.acknowledged and a.alert_type == alert_type and a.affected_page == page
            and a.timestamp > cutoff
            for a in self.alerts
        )

    def _trigger_alert(self, alert_type: AlertType, severity: AlertSeverity, message: str,
                       affected_page: Optional[PageType], threshold: float, current_value: float,
                       now: datetime, threshold_id: Optional[str] = None) -> Optional[RealtimeAlert]:
        if self._has_recent_alert(alert_type, affected_page, now):
            self.logger.debug(f"Suppressed duplicate {alert_type.value} alert: {message}")
            return None

        alert = RealtimeAlert(
            alert_id=str(uuid.uuid4()),
            alert_type=alert_type,
            severity=severity,
            message=message,
            affected_page=affected_page,
            threshold=threshold,
            current_value=current_value,
            timestamp=now,
            threshold_id=threshold_id,
        )
        self.alerts.append(alert)
        self.alerts_generated += 1
        alert_triggers.labels(alert_type=alert_type.value, severity=severity.value).inc()
        self.logger.warning(f"Alert triggered: {message}")
        return alert


class RealtimeJourneyProcessor:
    """Streams journey events through the buffer into the cache, alerts and live metrics.

    Events become visible to metrics and threshold checks once a flush has
    processed them. ``process_events`` runs one full cycle and is what the
    background loop calls every ``processing_interval_seconds``.
    """

    def __init__(self, config: Optional[EventBufferConfig] = None,
                 alert_manager: Optional[AlertManager] = None,
                 cache: Optional[AnalyticsCache] = None,
                 clock: Optional[Callable[[], datetime]] = None):
        self.config = config or EventBufferConfig.from_settings()
        self.clock = clock or utcnow
        self.buffer = EventBuffer(self._handle_batch, self.config, self.clock)
        self.cache = cache or AnalyticsCache(self.config.cache_ttl_seconds, self.clock)
        self.alert_manager = alert_manager or AlertManager(
            dedup_window=timedelta(minutes=self.config.alert_dedup_minutes), clock=self.clock,
            retention=timedelta(minutes=self.config.alert_retention_minutes))

        self.events: List[JourneyEvent] = []
        self.subscribers: List[Callable] = []
        self.category_counts: Dict[str, int] = defaultdict(int)
        self.events_processed = 0
        self.processing_time = 0.0
        self.last_processed_at: Optional[datetime] = None
        self.last_cache_cleanup: Optional[datetime] = None
        self.is_running = False
        self._is_processing = False
        self._tasks: List[asyncio.Task] = []
        self._pending_flushes: Set[asyncio.Task] = set()
        self.logger = logging.getLogger(__name__)

    def track_event(self, event: JourneyEvent):
        """Queue an event; when the buffer fills, schedule a flush on the running loop."""
        if not self.buffer.add_nowait(event):
            return
        try:
            loop = asyncio.get_running_loop()
        except RuntimeError:
            # No loop: the next processing cycle flushes
            return
        task = loop.create_task(self.buffer.flush())
        self._pending_flushes.add(task)
        task.add_done_callback(self._pending_flushes.discard)

    async def ingest(self, event: JourneyEvent):
        await self.buffer.add(event)

    async def process_events(self, now: Optional[datetime] = None) -> List[RealtimeAlert]:
        """One processing cycle: flush, threshold checks, pruning and cache upkeep."""
        if self._is_processing:
            return []

        self._is_processing = True
        start_time = time.time()
        now = now or self.clock()
        raised: List[RealtimeAlert] = []
        try:
            await self.buffer.flush()
            raised = self.alert_manager.check_thresholds(self.events, now)
            self._prune_events(now)
            self.alert_manager.prune_alerts(now)
            self._maybe_cleanup_cache(now)

            self.processing_time = time.time() - start_time
            self.last_processed_at = now
            processing_latency.observe(self.processing_time)

            if self.subscribers:
                await self._notify_subscribers(self.get_real_time_metrics(now))
        except Exception as e:
            self.logger.error(f"Error processing journey events: {e}")
        finally:
            self._is_processing = False
        return raised

    def get_real_time_metrics(self, now: Optional[datetime] = None) -> RealTimeMetrics:
        if now is None:
            cached = self.cache.get(METRICS_CACHE_KEY)
            if cached is not None:
                return cached

        use_cache = now is None
        now = now or self.clock()

        recent = [e for e in self.events if now - ACTIVE_SESSION_WINDOW <= e.timestamp <= now]
        ended = {e.session_id for e in recent if e.event_type in (
            RealtimeEventType.SESSION_COMPLETED, RealtimeEventType.SESSION_DROPPED_OFF)}
        active_sessions = len({e.session_id for e in recent} - ended)

        hour_ago = now - RECENT_DROP_OFF_WINDOW
        last_hour = [e for e in self.events if hour_ago <= e.timestamp <= now]
        recent_drop_offs = self.get_recent_drop_offs(hour_ago, now)
        live_conversion_rate = calculate_conversion_rate(last_hour) or 0.0

        hour_start = now.replace(minute=0, second=0, microsecond=0)
        hour_events = [e for e in self.events if hour_start <= e.timestamp <= now]
        metrics = RealTimeMetrics(
            active_sessions=active_sessions,
            recent_drop_offs=recent_drop_offs,
            live_conversion_rate=live_conversion_rate,
            current_hour_metrics={
                'sessions': len({e.session_id for e in hour_events}),
                'completions': len({e.session_id for e in hour_events if is_completion_event(e)}),
                'drop_offs': sum(1 for d in recent_drop_offs if d.timestamp >= hour_start),
            },
            alerts=self.alert_manager.get_active_alerts(),
            generated_at=now,
        )
        if use_cache:
            self.cache.set(METRICS_CACHE_KEY, metrics, METRICS_CACHE_TTL)
        return metrics

    def get_recent_drop_offs(self, since: datetime, now: Optional[datetime] = None) -> List[DropOffEvent]:
        now = now or self.clock()
        return [
            DropOffEvent(
                session_id=e.session_id,
                client_id=e.client_id,
                page_type=e.page_type,
                exit_trigger=_TRIGGER_BY_EXIT_ACTION.get(e.exit_action, ExitTrigger.UNKNOWN),
                time_on_page=float(e.data.get('time_on_page') or 0.0),
                timestamp=e.timestamp,
            )
            for e in self.events
            if is_drop_off_exit(e) and since <= e.timestamp <= now
        ]

    def subscribe(self, callback: Callable):
        """Register a callback receiving ``RealTimeMetrics`` after each processing cycle."""
        self.subscribers.append(callback)

    def unsubscribe(self, callback: Callable) -> bool:
        if callback in self.subscribers:
            self.subscribers.remove(callback)
            return True
        return False

    async def start(self):
        if self.is_running:
            return
        self.is_running = True
        self.buffer.open()
        self._tasks = [
            asyncio.create_task(self.buffer.run_periodic_flush()),
            asyncio.create_task(self._processing_loop()),
        ]
        self.logger.info("Real-time journey processor started")

    async def stop(self):
        self.is_running = False
        for task in self._tasks:
            task.cancel()
            try:
                await task
            except asyncio.CancelledError:
                pass
        self._tasks = []
        await self.buffer.close()
        self.logger.info("Real-time journey processor stopped")

    def get_processing_metrics(self) -> Dict[str, Any]:
        return {
            'events_processed': self.events_processed,
            'alerts_generated': self.alert_manager.alerts_generated,
            'processing_time': self.processing_time,
            'last_processed_at': self.last_processed_at,
            'retained_events': len(self.events),
            'category_counts': dict(self.category_counts),
            'buffer': self.buffer.get_status(),
            'cache': self.cache.get_stats(),
        }

    async def _processing_loop(self):
        while self.is_running:
            try:
                await asyncio.sleep(self.config.processing_interval_seconds)
                await self.process_events()
            except asyncio.CancelledError:
                break
            except Exception as e:
                self.logger.error(f"Processing loop error: {e}")

    async def _handle_batch(self, batch: List[JourneyEvent]):
        """Flush handler: categorise the batch, raise immediate alerts and refresh the cache."""
        grouped: Dict[EventCategory, List[JourneyEvent]] = defaultdict(list)
        for event in batch:
            grouped[event.category].append(event)

        for category, events in grouped.items():
            for event in events:
                if event.is_error:
                    self.alert_manager.raise_immediate_alert(event, event.timestamp)
                event.processed = True
                self.events.append(event)
            self.category_counts[category.value] += len(events)
            self.cache.set(f"category_count:{category.value}", self.category_counts[category.value])
            realtime_events.labels(category=category.value, status='processed').inc(len(events))

        self.events_processed += len(batch)
        self.cache.set('last_batch', {'size': len(batch), 'flushed_at': self.clock()})
        self.cache.invalidate(METRICS_CACHE_KEY)

    async def _notify_subscribers(self, metrics: RealTimeMetrics):
        for callback in list(self.subscribers):
            try:
                result = callback(metrics)
                if asyncio.iscoroutine(result):
                    await result
            except Exception as e:
                self.logger.error(f"Metrics subscriber notification failed: {e}")

    def _prune_events(self, now: datetime):
        cutoff = now - timedelta(minutes=self.config.event_retention_minutes)
        self.events = [e for e in self.events if not e.processed or e.timestamp >= cutoff]

    def _maybe_cleanup_cache(self, now: datetime):
        interval = timedelta(minutes=self.config.cache_cleanup_minutes)
        if self.last_cache_cleanup is None or now - self.last_cache_cleanup >= interval:
            removed = self.cache.cleanup()
            self.last_cache_cleanup = now
            if removed:
                self.logger.debug(f"Removed {removed} expired analytics cache entries")
