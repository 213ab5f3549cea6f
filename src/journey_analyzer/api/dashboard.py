from __future__ import annotations
from datetime import datetime
from functools import lru_cache
from typing import Optional

from fastapi import APIRouter, Body, Depends
from fastapi.encoders import jsonable_encoder
from fastapi.responses import JSONResponse
from pydantic import BaseModel, Field

from journey_analyzer.models.journey import PageType
from journey_analyzer.models.analysis import AlertSeverity, AlertThreshold, MetricType
from journey_analyzer.service import JourneyAnalyticsService, ServiceResult

router = APIRouter(prefix="/journey-analytics", tags=["journey-analytics"])


@lru_cache
def get_service() -> JourneyAnalyticsService:
    return JourneyAnalyticsService.from_settings()


class ThresholdIn(BaseModel):
    metric_type: MetricType
    threshold: float
    time_window_minutes: int = Field(30, gt=0)
    severity: AlertSeverity = AlertSeverity.MEDIUM
    page_type: PageType | None = None
    is_active: bool = True


class AcknowledgeIn(BaseModel):
    acknowledged_by: str | None = None


class DropOffWindowIn(BaseModel):
    start: datetime | None = None
    end: datetime | None = None


def _respond(result: ServiceResult, failure_status: int = 400) -> JSONResponse:
    payload = jsonable_encoder({"success": result.success, "data": result.data, "error": result.error})
    return JSONResponse(payload, status_code=200 if result.success else failure_status)


@router.get("/metrics/realtime")
def realtime_metrics(service: JourneyAnalyticsService = Depends(get_service)):
    return _respond(service.get_real_time_metrics(), failure_status=500)


@router.get("/alerts")
def active_alerts(service: JourneyAnalyticsService = Depends(get_service)):
    return _respond(service.get_active_alerts(), failure_status=500)


@router.put("/alerts/thresholds/{threshold_id}")
def set_threshold(threshold_id: str, body: ThresholdIn = Body(...),
                  service: JourneyAnalyticsService = Depends(get_service)):
    threshold = AlertThreshold(threshold_id=threshold_id, **body.model_dump())
    return _respond(service.set_alert_threshold(threshold))


@router.delete("/alerts/thresholds/{threshold_id}")
def remove_threshold(threshold_id: str, service: JourneyAnalyticsService = Depends(get_service)):
    return _respond(service.remove_alert_threshold(threshold_id), failure_status=404)


@router.post("/alerts/{alert_id}/acknowledge")
def acknowledge_alert(alert_id: str, body: Optional[AcknowledgeIn] = Body(None),
                      service: JourneyAnalyticsService = Depends(get_service)):
    acknowledged_by = body.acknowledged_by if body else None
    return _respond(service.acknowledge_alert(alert_id, acknowledged_by), failure_status=404)


@router.post("/drop-off/analyze")
async def analyze_drop_off(body: Optional[DropOffWindowIn] = Body(None),
                           service: JourneyAnalyticsService = Depends(get_service)):
    window = body or DropOffWindowIn()
    return _respond(await service.analyze_drop_off_patterns(start=window.start, end=window.end), failure_status=500)
