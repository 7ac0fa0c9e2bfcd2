"""
Stats Routes - Dashboard and report metrics

Endpoints:
- GET /api/stats - Dashboard header metrics
- GET /api/stats/reports - Breakdowns for the reports page
- GET /api/telemetry - Latest monitoring values
- PUT /api/telemetry - Report monitoring values (partial updates merge)
"""

from typing import Dict, List, Optional

from fastapi import APIRouter, Depends
from pydantic import BaseModel
from starlette.concurrency import run_in_threadpool

from enforcement.challan import ReviewWorkflow, TelemetryRegistry
from enforcement.errors import Unavailable
from enforcement.models import HourlyCount, TelemetrySnapshot

from .dependencies import get_workflow

router = APIRouter(prefix="/api", tags=["stats"])


# ============================================
# Response Models
# ============================================

class DashboardStatsResponse(BaseModel):
    """Dashboard summary; monitoring values are null when unknown"""
    totalViolationsToday: int
    pendingChallans: int
    pendingReview: int
    processedChallans: int
    activeCameras: Optional[int]
    systemUptime: Optional[str]
    detectionAccuracy: Optional[float]


class ReportStatsResponse(BaseModel):
    violationsByType: Dict[str, int]
    violationsByCamera: Dict[str, int]
    hourlyViolationsToday: List[HourlyCount]
    challansByStatus: Dict[str, int]
    revenueCollected: int
    revenuePending: int


class TelemetryResponse(BaseModel):
    activeCameras: Optional[int]
    systemUptime: Optional[str]
    detectionAccuracy: Optional[float]

    @classmethod
    def from_snapshot(cls, t: TelemetrySnapshot) -> "TelemetryResponse":
        return cls(
            activeCameras=t.active_cameras,
            systemUptime=t.system_uptime,
            detectionAccuracy=t.detection_accuracy,
        )


def _telemetry(workflow: ReviewWorkflow) -> TelemetryRegistry:
    if workflow.stats.telemetry is None:
        raise Unavailable("Telemetry is not configured")
    return workflow.stats.telemetry


# ============================================
# Stats Endpoints
# ============================================

@router.get("/stats", response_model=DashboardStatsResponse)
async def get_dashboard_stats(workflow: ReviewWorkflow = Depends(get_workflow)):
    """
    Get dashboard statistics

    Fails with UNAVAILABLE/TIMEOUT when the store cannot be read; an empty
    store yields zeros.
    """
    stats = await run_in_threadpool(workflow.dashboard_stats)
    return DashboardStatsResponse(
        totalViolationsToday=stats.total_violations_today,
        pendingChallans=stats.pending_challans,
        pendingReview=stats.pending_review,
        processedChallans=stats.processed_challans,
        activeCameras=stats.active_cameras,
        systemUptime=stats.system_uptime,
        detectionAccuracy=stats.detection_accuracy,
    )


@router.get("/stats/reports", response_model=ReportStatsResponse)
async def get_report_stats(workflow: ReviewWorkflow = Depends(get_workflow)):
    """Violation and challan breakdowns for the reports page"""
    report = await run_in_threadpool(workflow.report_stats)
    return ReportStatsResponse(
        violationsByType=report.violations_by_type,
        violationsByCamera=report.violations_by_camera,
        hourlyViolationsToday=report.hourly_violations_today,
        challansByStatus=report.challans_by_status,
        revenueCollected=report.revenue_collected,
        revenuePending=report.revenue_pending,
    )


@router.get("/telemetry", response_model=TelemetryResponse)
async def get_telemetry(workflow: ReviewWorkflow = Depends(get_workflow)):
    return TelemetryResponse.from_snapshot(_telemetry(workflow).snapshot())


@router.put("/telemetry", response_model=TelemetryResponse)
async def update_telemetry(
    request: TelemetrySnapshot,
    workflow: ReviewWorkflow = Depends(get_workflow),
):
    """Report values from external monitoring"""
    snapshot = _telemetry(workflow).update(request)
    return TelemetryResponse.from_snapshot(snapshot)
