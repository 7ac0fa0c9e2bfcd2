"""
Challan Routes - Challan issuance and lifecycle endpoints

Endpoints:
- GET /api/challans - List challans (status, limit, skip)
- GET /api/challans/{id} - Get specific challan
- POST /api/challans/generate - Issue a challan for a verified violation
- PUT /api/challans/{id}/status - Mark a challan sent, paid or cancelled
- GET /api/penalties - Penalty table by violation type
"""

from datetime import date
from typing import Dict, List, Optional

from fastapi import APIRouter, Depends, Query
from pydantic import BaseModel
from starlette.concurrency import run_in_threadpool

from enforcement.challan import ReviewWorkflow
from enforcement.models import Challan, IssueChallanRequest
from enforcement.websocket import get_emitter

from .dependencies import get_workflow

router = APIRouter(prefix="/api", tags=["challans"])


# ============================================
# Request / Response Models
# ============================================

class ChallanResponse(BaseModel):
    """Challan response"""
    id: str
    challanNumber: str
    violationId: str
    vehicleNumber: str
    ownerName: str
    ownerAddress: Optional[str]
    violationType: str
    violationDescription: Optional[str]
    penaltyAmount: int
    issueDate: date
    dueDate: date
    status: str

    @classmethod
    def from_record(cls, c: Challan) -> "ChallanResponse":
        return cls(
            id=c.id,
            challanNumber=c.challan_number,
            violationId=c.violation_id,
            vehicleNumber=c.vehicle_number,
            ownerName=c.owner_name,
            ownerAddress=c.owner_address,
            violationType=c.violation_type,
            violationDescription=c.violation_description,
            penaltyAmount=c.penalty_amount,
            issueDate=c.issue_date,
            dueDate=c.due_date,
            status=c.status.value,
        )


class ChallanListResponse(BaseModel):
    challans: List[ChallanResponse]
    total: int


class IssueChallanResponse(BaseModel):
    success: bool
    challan: ChallanResponse


class ChallanStatusRequest(BaseModel):
    """Target status: sent, paid or cancelled"""
    status: str


# ============================================
# Challan Endpoints
# ============================================

@router.get("/challans", response_model=ChallanListResponse)
async def list_challans(
    status: Optional[str] = Query(None, description="Filter by challan status"),
    limit: Optional[int] = Query(None, description="Page size"),
    skip: Optional[int] = Query(None, description="Records to skip"),
    workflow: ReviewWorkflow = Depends(get_workflow),
):
    """List challans, newest issue first"""
    challans, total = await run_in_threadpool(workflow.list_challans, status, limit, skip)
    return ChallanListResponse(
        challans=[ChallanResponse.from_record(c) for c in challans],
        total=total,
    )


@router.get("/challans/{challan_id}", response_model=ChallanResponse)
async def get_challan(challan_id: str, workflow: ReviewWorkflow = Depends(get_workflow)):
    """Get specific challan by ID"""
    challan = await run_in_threadpool(workflow.get_challan, challan_id)
    return ChallanResponse.from_record(challan)


@router.post("/challans/generate", response_model=IssueChallanResponse, status_code=201)
async def generate_challan(
    request: IssueChallanRequest,
    workflow: ReviewWorkflow = Depends(get_workflow),
):
    """
    Issue a challan for a verified violation

    The penalty comes from the penalty table unless penaltyAmount is given.
    """
    challan = await run_in_threadpool(
        workflow.issue_challan,
        request.violation_id,
        request.owner_name,
        request.owner_address,
        request.penalty_amount,
    )

    emitter = get_emitter()
    if emitter:
        await emitter.emit_challan_issued(challan)

    return IssueChallanResponse(success=True, challan=ChallanResponse.from_record(challan))


@router.put("/challans/{challan_id}/status", response_model=ChallanResponse)
async def update_challan_status(
    challan_id: str,
    request: ChallanStatusRequest,
    workflow: ReviewWorkflow = Depends(get_workflow),
):
    """Move a challan to sent, paid or cancelled"""
    challan = await run_in_threadpool(workflow.update_challan_status, challan_id, request.status)

    emitter = get_emitter()
    if emitter:
        await emitter.emit_challan_status(challan)

    return ChallanResponse.from_record(challan)


@router.get("/penalties", response_model=Dict[str, int])
async def get_penalties(workflow: ReviewWorkflow = Depends(get_workflow)):
    """Penalty amount per violation type"""
    return workflow.penalty_table()
