"""Exception taxonomy for the journey analytics engine."""


class JourneyAnalyticsError(Exception):
    """Base exception for journey analytics failures."""
    pass


class InsufficientSampleError(JourneyAnalyticsError, ValueError):
    """Sample is empty, too small or malformed for the requested statistic."""
    pass


class SessionNotFoundError(JourneyAnalyticsError, KeyError):
    """No session registered under the given id."""
    pass


class VisitNotFoundError(JourneyAnalyticsError, KeyError):
    """No page visit with the given id in the session."""
    pass


class InvalidSessionStateError(JourneyAnalyticsError):
    """Operation not allowed for the session's current state."""
    pass


class ComparisonNotViableError(JourneyAnalyticsError):
    """Journey pair scored below the viability threshold."""
    pass
