"""
Request dependencies.
"""

from fastapi import Request

from .services.event_infra import TelemetryContext


def get_context(request: Request) -> TelemetryContext:
    """Telemetry wiring created by the application lifespan."""
    ctx = getattr(request.app.state, "telemetry", None)
    if ctx is None:
        raise RuntimeError("Telemetry context not initialized (lifespan did not run)")
    return ctx
