"""
Dashboard Statistics Models
"""

from typing import Dict, List, Optional

from pydantic import BaseModel, Field


class TelemetrySnapshot(BaseModel):
    """
    Values reported by external monitoring

    Unset fields are unknown and are reported as null, never guessed.
    """
    active_cameras: Optional[int] = Field(None, alias="activeCameras", ge=0)
    system_uptime: Optional[str] = Field(None, alias="systemUptime")      # e.g. "99.7%"
    detection_accuracy: Optional[float] = Field(None, alias="detectionAccuracy", ge=0, le=100)

    class Config:
        populate_by_name = True


class DashboardStats(BaseModel):
    """Summary metrics for the dashboard header cards"""
    total_violations_today: int
    pending_challans: int           # verified, no active challan yet
    pending_review: int             # still awaiting a review decision
    processed_challans: int         # sent or paid
    active_cameras: Optional[int] = None
    system_uptime: Optional[str] = None
    detection_accuracy: Optional[float] = None


class HourlyCount(BaseModel):
    hour: int
    violations: int


class ReportStats(BaseModel):
    """Breakdowns for the reports page"""
    violations_by_type: Dict[str, int]
    violations_by_camera: Dict[str, int]
    hourly_violations_today: List[HourlyCount]
    challans_by_status: Dict[str, int]
    revenue_collected: int
    revenue_pending: int
