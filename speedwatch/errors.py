"""
Exception types for telemetry ingestion and sync.
"""


class TelemetryError(Exception):
    """Base class for telemetry service errors."""
    pass


class ValidationError(TelemetryError):
    """Payload matched an event kind but a required field is missing or invalid."""
    pass


class ClassificationError(TelemetryError):
    """Payload matches no known event kind."""
    pass


class StoreUnavailableError(TelemetryError):
    """Durable store could not be reached (connection failure, lock timeout, I/O)."""
    pass
