"""
Events Router - telemetry ingestion (POST) and incremental sync (GET)
"""
import logging
from typing import Optional

from fastapi import APIRouter, Depends, Query, Request
from fastapi.responses import Response

from ...db.schema import MAX_EVENT_ID, EventKind
from ...errors import ValidationError
from ...services.events.ports import as_list
from ..dependencies import get_context
from ..schemas import ErrorResponse, WriteResponse
from ..services.event_infra import TelemetryContext

logger = logging.getLogger(__name__)

router = APIRouter(
    prefix="/api",
    tags=["events"],
    responses={400: {"model": ErrorResponse}, 500: {"model": ErrorResponse}},
)


def _parse_since(raw: Optional[str]) -> int:
    """Watermark from the query string; blank means 0, negatives clamp to 0."""
    if raw is None or not raw.strip():
        return 0
    try:
        since = int(raw.strip())
    except ValueError:
        raise ValidationError(f"since must be an integer, got {raw!r}")
    if since > MAX_EVENT_ID:
        raise ValidationError(f"since must be at most {MAX_EVENT_ID}")
    return max(0, since)


def _parse_kind(raw: Optional[str]) -> Optional[EventKind]:
    if raw is None or not raw.strip():
        return None
    try:
        return EventKind(raw.strip())
    except ValueError:
        allowed = ", ".join(k.value for k in EventKind)
        raise ValidationError(f"kindFilter must be one of: {allowed}")


@router.options("/events", include_in_schema=False)
async def events_preflight():
    """CORS preflight; headers are added by the app middleware"""
    return Response(status_code=204)


@router.post("/events", response_model=WriteResponse)
async def write_event(request: Request, ctx: TelemetryContext = Depends(get_context)):
    """
    Ingest one telemetry event.

    Body: a SpeedViolation ({vehicleName, speed, excessAmount|excess, zone?})
    or TyreChange ({vehicleName, tyreType, box?, zone?}) JSON object.
    """
    try:
        payload = await request.json()
    except ValueError:
        raise ValidationError("request body is not valid JSON")

    stored = await ctx.ingest.ingest(payload)
    return WriteResponse(id=stored.id)


@router.get("/events")
async def read_events(
    since: Optional[str] = Query(None, description="Watermark: highest event id already seen"),
    kind_filter: Optional[str] = Query(None, alias="kindFilter"),
    ctx: TelemetryContext = Depends(get_context),
):
    """
    Incremental sync.

    Query params:
    - since: return events with id > since (0 or absent: latest page)
    - kindFilter: speed_violation | tyre_change (absent: both, merged by timestamp)
    """
    since_id = _parse_since(since)
    kind = _parse_kind(kind_filter)
    events = await ctx.reader.sync(kind, since_id)
    return as_list(events)
