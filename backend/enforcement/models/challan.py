"""
Challan (Traffic Fine) Models

Models for penalty notices issued against verified violations.
"""

from datetime import date, datetime
from enum import Enum
from typing import Optional

from pydantic import BaseModel, Field, StrictInt


class ChallanStatus(str, Enum):
    """Challan lifecycle status"""
    ISSUED = "issued"
    SENT = "sent"
    PAID = "paid"
    CANCELLED = "cancelled"


# Human-readable wording for challan descriptions
VIOLATION_DESCRIPTIONS = {
    "red_light": "Violated red light signal",
    "overspeeding": "Exceeded speed limit",
    "no_helmet": "Riding without helmet",
    "wrong_way": "Driving in wrong direction",
    "stop_line": "Crossed stop line",
}


class Challan(BaseModel):
    """
    Digital traffic challan

    Vehicle, owner and violation type are copies taken at issuance time.
    """
    id: str
    challan_number: str
    violation_id: str

    vehicle_number: str
    owner_name: str
    owner_address: Optional[str] = None

    violation_type: str
    violation_description: Optional[str] = None
    penalty_amount: int

    issue_date: date
    due_date: date
    status: ChallanStatus = ChallanStatus.ISSUED

    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    class Config:
        json_schema_extra = {
            "example": {
                "id": "chl-3f9a1c2b7d",
                "challan_number": "CH2026021201",
                "violation_id": "vio-8c41d0e2",
                "vehicle_number": "MH-14-CD-5678",
                "owner_name": "Rajesh Kumar",
                "violation_type": "overspeeding",
                "penalty_amount": 2000,
                "issue_date": "2026-02-12",
                "due_date": "2026-03-14",
                "status": "issued",
            }
        }


class ChallanFilter(BaseModel):
    """List filter; unset status matches everything"""
    status: Optional[ChallanStatus] = None
    limit: int = Field(50, ge=0)
    skip: int = Field(0, ge=0)


class IssueChallanRequest(BaseModel):
    """Request to issue a challan for a verified violation"""
    violation_id: str = Field(alias="violationId", min_length=1)
    owner_name: str = Field(alias="ownerName", min_length=1)
    owner_address: Optional[str] = Field(None, alias="ownerAddress")
    penalty_amount: Optional[StrictInt] = Field(None, alias="penaltyAmount")  # Override table amount

    class Config:
        populate_by_name = True
        json_schema_extra = {
            "example": {
                "violationId": "vio-8c41d0e2",
                "ownerName": "Rajesh Kumar",
                "ownerAddress": "12 MG Road, Pune",
            }
        }
