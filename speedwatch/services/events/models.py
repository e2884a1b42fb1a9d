"""
Telemetry event payload models.

Each model is one branch of the tagged union produced by the classifier.
Field aliases match the producer's JSON (camelCase).
"""

from __future__ import annotations

from typing import Any, ClassVar, Optional, Union

from pydantic import AliasChoices, BaseModel, ConfigDict, Field, field_validator

from ...db.schema import EventKind

ZONE_UNSPECIFIED = "unspecified"


class _EventBody(BaseModel):
    model_config = ConfigDict(
        extra="ignore",
        populate_by_name=True,
        str_strip_whitespace=True,
        allow_inf_nan=False,
        frozen=True,
    )

    kind: ClassVar[EventKind]

    vehicle_name: str = Field(alias="vehicleName", min_length=1)

    @field_validator("zone", mode="before", check_fields=False)
    @classmethod
    def _default_zone(cls, value: Any) -> Any:
        if value is None or (isinstance(value, str) and not value.strip()):
            return ZONE_UNSPECIFIED
        return value

    def payload(self) -> dict[str, Any]:
        """Kind-specific fields keyed by wire name."""
        return self.model_dump(by_alias=True, exclude={"vehicle_name"})


class SpeedViolation(_EventBody):
    kind: ClassVar[EventKind] = EventKind.SPEED_VIOLATION

    speed: float = Field(gt=0)
    excess_amount: float = Field(
        gt=0,
        validation_alias=AliasChoices("excessAmount", "excess"),
        serialization_alias="excessAmount",
    )
    zone: str = ZONE_UNSPECIFIED


class TyreChange(_EventBody):
    kind: ClassVar[EventKind] = EventKind.TYRE_CHANGE

    tyre_type: str = Field(alias="tyreType", min_length=1)
    box: Optional[str] = None
    zone: str = ZONE_UNSPECIFIED


TelemetryEvent = Union[SpeedViolation, TyreChange]

MODEL_BY_KIND: dict[EventKind, type[_EventBody]] = {
    EventKind.SPEED_VIOLATION: SpeedViolation,
    EventKind.TYRE_CHANGE: TyreChange,
}
