"""
WebSocket Event Type Definitions

Server -> client notifications sent after successful writes so connected
dashboards know to re-fetch. Payloads are camelCase like the REST API.
"""

from enum import Enum
from typing import List

from pydantic import BaseModel


class ServerEvent(str, Enum):
    """Events emitted from server to client"""

    # Connection
    CONNECTION_SUCCESS = "connection:success"

    # Violation events
    VIOLATIONS_INGESTED = "violation:ingested"
    VIOLATION_REVIEWED = "violation:reviewed"

    # Challan events
    CHALLAN_ISSUED = "challan:issued"
    CHALLAN_STATUS = "challan:status"

    # Dashboard
    STATS_STALE = "stats:stale"


class ConnectionSuccessData(BaseModel):
    """Data for connection:success event"""
    message: str
    timestamp: float
    serverVersion: str


class ViolationsIngestedData(BaseModel):
    """Data for violation:ingested event"""
    jobId: str
    count: int
    violationIds: List[str]
    timestamp: float


class ViolationReviewedData(BaseModel):
    """Data for violation:reviewed event"""
    id: str
    status: str
    violationType: str
    timestamp: float


class ChallanIssuedData(BaseModel):
    """Data for challan:issued event"""
    challanId: str
    challanNumber: str
    violationId: str
    vehicleNumber: str
    ownerName: str
    violationType: str
    penaltyAmount: int
    timestamp: float


class ChallanStatusData(BaseModel):
    """Data for challan:status event"""
    challanId: str
    challanNumber: str
    status: str
    timestamp: float


class StatsStaleData(BaseModel):
    """Data for stats:stale event"""
    reason: str
    timestamp: float
