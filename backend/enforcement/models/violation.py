"""
Traffic Violation Models

Models for detections handed over by the detection service and the
violation records kept for human review.
"""

from datetime import datetime
from enum import Enum
from typing import Annotated, Any, Dict, Literal, Optional, Union

from pydantic import BaseModel, Field
from pydantic import ValidationError as PydanticValidationError

from enforcement.errors import ValidationError


class ViolationType(str, Enum):
    """Closed set of detectable violations"""
    RED_LIGHT = "red_light"
    OVERSPEEDING = "overspeeding"
    NO_HELMET = "no_helmet"
    WRONG_WAY = "wrong_way"
    STOP_LINE = "stop_line"


class ViolationStatus(str, Enum):
    """Review status"""
    PENDING = "pending"
    VERIFIED = "verified"
    REJECTED = "rejected"


Scalar = Union[bool, int, float, str, None]


# ============================================
# Evidence details (one variant per violation type)
# ============================================

class _DetailsBase(BaseModel):
    # Evidence keys the variant does not model, kept verbatim
    extra: Dict[str, Scalar] = Field(default_factory=dict)

    def to_mapping(self) -> Dict[str, Any]:
        """Flat key->scalar view (known fields first, then extras)"""
        data = self.model_dump(exclude={"kind", "extra"}, exclude_none=True)
        data.update(self.extra)
        return data


class RedLightDetails(_DetailsBase):
    kind: Literal["red_light"] = "red_light"
    line_y: Optional[float] = None       # Stop line position in frame
    vehicle_y: Optional[float] = None    # Vehicle position when signal was red


class OverspeedingDetails(_DetailsBase):
    kind: Literal["overspeeding"] = "overspeeding"
    speed_kph: Optional[float] = None
    speed_limit: Optional[float] = None


class NoHelmetDetails(_DetailsBase):
    kind: Literal["no_helmet"] = "no_helmet"


class WrongWayDetails(_DetailsBase):
    kind: Literal["wrong_way"] = "wrong_way"


class StopLineDetails(_DetailsBase):
    kind: Literal["stop_line"] = "stop_line"
    line_y: Optional[float] = None
    vehicle_y: Optional[float] = None


ViolationDetails = Annotated[
    Union[
        RedLightDetails,
        OverspeedingDetails,
        NoHelmetDetails,
        WrongWayDetails,
        StopLineDetails,
    ],
    Field(discriminator="kind"),
]

DETAILS_VARIANTS = {
    ViolationType.RED_LIGHT: RedLightDetails,
    ViolationType.OVERSPEEDING: OverspeedingDetails,
    ViolationType.NO_HELMET: NoHelmetDetails,
    ViolationType.WRONG_WAY: WrongWayDetails,
    ViolationType.STOP_LINE: StopLineDetails,
}

# Spellings seen in detector output
_LEGACY_DETAIL_KEYS = {
    "lineY": "line_y",
    "vehicleY": "vehicle_y",
    "speed": "speed_kph",
    "speedKph": "speed_kph",
    "speedLimit": "speed_limit",
}


def normalize_details(violation_type: ViolationType, raw: Optional[Dict[str, Any]]) -> _DetailsBase:
    """
    Turn an untyped evidence bag into the variant for its violation type

    Args:
        violation_type: Type the evidence belongs to
        raw: key->scalar mapping from the detector (may be None)

    Raises:
        ValidationError: non-mapping input, a non-scalar value, two spellings
            of the same field, or a known field with the wrong type
    """
    if raw is None:
        raw = {}
    if not isinstance(raw, dict):
        raise ValidationError("details must be a mapping", {"field": "details"})

    variant = DETAILS_VARIANTS[ViolationType(violation_type)]
    known = set(variant.model_fields) - {"kind", "extra"}

    fields: Dict[str, Any] = {}
    extra: Dict[str, Any] = {}
    for key, value in raw.items():
        if value is not None and not isinstance(value, (bool, int, float, str)):
            raise ValidationError(
                f"details.{key} must be a scalar value",
                {"field": f"details.{key}"},
            )
        name = _LEGACY_DETAIL_KEYS.get(key, key)
        if name in fields:
            raise ValidationError(
                f"details.{key} duplicates details.{name}",
                {"field": f"details.{key}", "duplicates": name},
            )
        if name in known:
            fields[name] = value
        else:
            extra[str(key)] = value

    try:
        return variant(**fields, extra=extra)
    except PydanticValidationError as e:
        raise ValidationError(
            f"Invalid details for {variant.model_fields['kind'].default}",
            {"field": "details", "errors": [err["msg"] for err in e.errors()]},
        ) from e


# ============================================
# Ingestion & records
# ============================================

class DetectionInput(BaseModel):
    """
    Raw detection from the detection service

    One element of a processed video job's output.
    """
    track_id: Optional[int] = Field(None, alias="trackId", strict=True)
    violation_type: ViolationType = Field(alias="violationType")
    vehicle_type: str = Field(alias="vehicleType", min_length=1)
    plate_number: Optional[str] = Field(None, alias="plateNumber")
    timestamp: datetime
    frame_number: int = Field(alias="frameNumber", ge=0, strict=True)
    confidence: float = Field(ge=0.0, le=1.0, strict=True)
    camera: str = Field(min_length=1)
    details: Optional[Dict[str, Any]] = None

    class Config:
        populate_by_name = True
        json_schema_extra = {
            "example": {
                "trackId": 102,
                "violationType": "overspeeding",
                "vehicleType": "car",
                "plateNumber": "MH-14-CD-5678",
                "timestamp": "2026-02-12T14:20:12",
                "frameNumber": 1280,
                "confidence": 0.952,
                "camera": "Camera 3 - Highway Entry",
                "details": {"speed_kph": 82.4, "speed_limit": 50},
            }
        }


class Violation(BaseModel):
    """
    Violation record under review

    Identity is assigned at ingestion; status starts pending and only moves
    through the review workflow.
    """
    id: str
    track_id: Optional[int] = None
    violation_type: ViolationType
    vehicle_type: str
    plate_number: Optional[str] = None
    timestamp: datetime
    frame_number: int
    confidence: float
    camera: str
    status: ViolationStatus = ViolationStatus.PENDING
    details: ViolationDetails
    job_id: Optional[str] = None
    challan_id: Optional[str] = None
    created_at: Optional[datetime] = None
    reviewed_at: Optional[datetime] = None


class ViolationFilter(BaseModel):
    """List filter; unset fields match everything"""
    violation_type: Optional[ViolationType] = None
    status: Optional[ViolationStatus] = None
    limit: int = Field(50, ge=0)
    skip: int = Field(0, ge=0)
