"""
Violation Routes - Review endpoints

Endpoints:
- GET /api/violations - List violations (violationType, status, limit, skip)
- GET /api/violations/{id} - Get specific violation
- PUT /api/violations/{id}/verify - Verify or reject a pending violation
- POST /api/jobs/{jobId}/detections - Ingest a processed video job's detections
"""

from datetime import datetime
from typing import Any, Dict, List, Optional

from fastapi import APIRouter, Depends, Query
from pydantic import BaseModel
from starlette.concurrency import run_in_threadpool

from enforcement.challan import ReviewWorkflow
from enforcement.models import Violation
from enforcement.websocket import get_emitter

from .dependencies import get_workflow

router = APIRouter(prefix="/api", tags=["violations"])


# ============================================
# Request / Response Models
# ============================================

class ViolationResponse(BaseModel):
    """Traffic violation response"""
    id: str
    trackId: Optional[int]
    violationType: str
    vehicleType: str
    plateNumber: Optional[str]
    timestamp: datetime
    frameNumber: int
    confidence: float
    camera: str
    status: str
    details: Dict[str, Any]
    jobId: Optional[str]
    challanId: Optional[str]
    reviewedAt: Optional[datetime]

    @classmethod
    def from_record(cls, v: Violation) -> "ViolationResponse":
        return cls(
            id=v.id,
            trackId=v.track_id,
            violationType=v.violation_type.value,
            vehicleType=v.vehicle_type,
            plateNumber=v.plate_number,
            timestamp=v.timestamp,
            frameNumber=v.frame_number,
            confidence=v.confidence,
            camera=v.camera,
            status=v.status.value,
            details=v.details.to_mapping(),
            jobId=v.job_id,
            challanId=v.challan_id,
            reviewedAt=v.reviewed_at,
        )


class ViolationListResponse(BaseModel):
    violations: List[ViolationResponse]
    total: int


class VerifyRequest(BaseModel):
    """Review decision: verified or rejected"""
    status: str


class DetectionBatchRequest(BaseModel):
    """Output of one processed video job"""
    detections: List[Dict[str, Any]]


class DetectionBatchResponse(BaseModel):
    success: bool
    jobId: str
    violations: List[ViolationResponse]
    totalViolations: int


# ============================================
# Violation Endpoints
# ============================================

@router.get("/violations", response_model=ViolationListResponse)
async def list_violations(
    violationType: Optional[str] = Query(None, description="Filter by violation type"),
    status: Optional[str] = Query(None, description="Filter by review status"),
    limit: Optional[int] = Query(None, description="Page size"),
    skip: Optional[int] = Query(None, description="Records to skip"),
    workflow: ReviewWorkflow = Depends(get_workflow),
):
    """
    List violations, most recent first

    Unset filters match everything.
    """
    violations, total = await run_in_threadpool(
        workflow.list_violations, violationType, status, limit, skip
    )
    return ViolationListResponse(
        violations=[ViolationResponse.from_record(v) for v in violations],
        total=total,
    )


@router.get("/violations/{violation_id}", response_model=ViolationResponse)
async def get_violation(violation_id: str, workflow: ReviewWorkflow = Depends(get_workflow)):
    """Get specific violation by ID"""
    violation = await run_in_threadpool(workflow.get_violation, violation_id)
    return ViolationResponse.from_record(violation)


@router.put("/violations/{violation_id}/verify", response_model=ViolationResponse)
async def verify_violation(
    violation_id: str,
    request: VerifyRequest,
    workflow: ReviewWorkflow = Depends(get_workflow),
):
    """
    Record a review decision

    Only pending violations can be verified or rejected, exactly once.
    """
    violation = await run_in_threadpool(workflow.review_violation, violation_id, request.status)

    emitter = get_emitter()
    if emitter:
        await emitter.emit_violation_reviewed(violation)

    return ViolationResponse.from_record(violation)


# ============================================
# Detection Ingestion
# ============================================

@router.post("/jobs/{job_id}/detections", response_model=DetectionBatchResponse, status_code=201)
async def ingest_detections(
    job_id: str,
    request: DetectionBatchRequest,
    workflow: ReviewWorkflow = Depends(get_workflow),
):
    """
    Ingest the detections of one processed video job

    All or nothing: one invalid detection rejects the batch.
    """
    violations = await run_in_threadpool(workflow.ingest_detections, job_id, request.detections)

    emitter = get_emitter()
    if emitter:
        await emitter.emit_violations_ingested(job_id, violations)

    return DetectionBatchResponse(
        success=True,
        jobId=job_id,
        violations=[ViolationResponse.from_record(v) for v in violations],
        totalViolations=len(violations),
    )
