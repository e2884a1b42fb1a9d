"""
Event classifier - decide which event kind an inbound payload represents.

Classification is an ordered, total table of shape predicates, so a payload
carrying fields of both kinds always resolves the same way:

1. `speed` and `excessAmount` (legacy alias `excess`) present and not null
   -> SpeedViolation
2. `tyreType` present and not null -> TyreChange
3. otherwise -> ClassificationError

Field validation happens after classification, against the chosen kind.
"""

from __future__ import annotations

from typing import Any, Callable, Mapping

import pydantic

from ...db.schema import EventKind
from ...errors import ClassificationError, ValidationError
from .models import MODEL_BY_KIND, TelemetryEvent


def _defined(payload: Mapping[str, Any], *keys: str) -> bool:
    return any(payload.get(key) is not None for key in keys)


def _is_speed_violation(payload: Mapping[str, Any]) -> bool:
    return _defined(payload, "speed") and _defined(payload, "excessAmount", "excess")


def _is_tyre_change(payload: Mapping[str, Any]) -> bool:
    return _defined(payload, "tyreType")


SHAPE_RULES: tuple[tuple[Callable[[Mapping[str, Any]], bool], EventKind], ...] = (
    (_is_speed_violation, EventKind.SPEED_VIOLATION),
    (_is_tyre_change, EventKind.TYRE_CHANGE),
)


def classify(payload: Any) -> EventKind:
    """Return the event kind for a payload, or raise ClassificationError."""
    if not isinstance(payload, Mapping):
        raise ClassificationError("unrecognized payload shape")
    for matches, kind in SHAPE_RULES:
        if matches(payload):
            return kind
    raise ClassificationError("unrecognized payload shape")


def decode(payload: Any) -> TelemetryEvent:
    """
    Classify and validate a payload into a typed event.

    Raises:
        ClassificationError: Payload matches no known kind
        ValidationError: Required field missing or invalid for the matched kind
    """
    kind = classify(payload)
    model = MODEL_BY_KIND[kind]
    try:
        return model.model_validate(payload)
    except pydantic.ValidationError as exc:
        raise ValidationError(_describe(kind, exc)) from exc


def _describe(kind: EventKind, exc: pydantic.ValidationError) -> str:
    missing: list[str] = []
    invalid: list[str] = []
    for error in exc.errors():
        field = ".".join(str(part) for part in error["loc"])
        # Empty strings count as missing for required text fields
        if error["type"] in ("missing", "string_too_short"):
            missing.append(field)
        else:
            invalid.append(f"{field} ({error['msg']})")

    if missing:
        return f"missing required fields for {kind.label}: {', '.join(missing)}"
    return f"invalid fields for {kind.label}: {'; '.join(invalid)}"
