"""Journey analytics and statistical comparison engine.

Tracks onboarding sessions page by page, detects recurring drop-off patterns,
compares successful against failed journeys with significance tests and turns
the results into ranked recommendations and live alerts.
"""

from journey_analyzer.service import JourneyAnalyticsService, ServiceResult

__all__ = ["JourneyAnalyticsService", "ServiceResult", "config", "models", "analytics"]
