"""
Pydantic Models Package

Domain and request models for the violation review & challan system.
Import from here for convenience.
"""

# Violation models
from .violation import (
    ViolationType,
    ViolationStatus,
    RedLightDetails,
    OverspeedingDetails,
    NoHelmetDetails,
    WrongWayDetails,
    StopLineDetails,
    ViolationDetails,
    DETAILS_VARIANTS,
    normalize_details,
    DetectionInput,
    Violation,
    ViolationFilter,
)

# Challan models
from .challan import (
    ChallanStatus,
    VIOLATION_DESCRIPTIONS,
    Challan,
    ChallanFilter,
    IssueChallanRequest,
)

# Statistics models
from .stats import (
    TelemetrySnapshot,
    DashboardStats,
    HourlyCount,
    ReportStats,
)


__all__ = [
    # Violation
    "ViolationType",
    "ViolationStatus",
    "RedLightDetails",
    "OverspeedingDetails",
    "NoHelmetDetails",
    "WrongWayDetails",
    "StopLineDetails",
    "ViolationDetails",
    "DETAILS_VARIANTS",
    "normalize_details",
    "DetectionInput",
    "Violation",
    "ViolationFilter",

    # Challan
    "ChallanStatus",
    "VIOLATION_DESCRIPTIONS",
    "Challan",
    "ChallanFilter",
    "IssueChallanRequest",

    # Statistics
    "TelemetrySnapshot",
    "DashboardStats",
    "HourlyCount",
    "ReportStats",
]
