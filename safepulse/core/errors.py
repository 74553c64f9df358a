"""
Service-level exceptions.

The exception handlers registered in safepulse.main translate these into
HTTP responses (503 / 500); the original cause is always chained
(``raise ... from exc``) and logged, never sent to the client.
"""


class SafePulseError(Exception):
    """Base class for all errors raised by the metrics/analytics services."""


class StoreUnavailableError(SafePulseError):
    """No database handle — MongoDB was unreachable at startup."""

    def __init__(self, message: str = "Database unavailable"):
        super().__init__(message)


class MetricsUnavailableError(SafePulseError):
    """An aggregation call failed as a whole. Carries a generic message only."""
