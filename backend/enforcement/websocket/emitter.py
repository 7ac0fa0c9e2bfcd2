"""
WebSocket Event Emitter

Sends real-time notifications to connected dashboards. Emission never
fails the request that triggered it: errors are counted and logged.
"""

import logging
import time
from typing import Any, Dict, List, Optional

from enforcement.models import Challan, Violation

from .events import (
    ServerEvent,
    ChallanIssuedData,
    ChallanStatusData,
    ConnectionSuccessData,
    StatsStaleData,
    ViolationReviewedData,
    ViolationsIngestedData,
)

logger = logging.getLogger(__name__)


class WebSocketEmitter:
    """
    Centralized WebSocket event emitter

    Every write notification is followed by stats:stale so header cards
    refresh without polling.
    """

    def __init__(self, sio):
        """
        Initialize the WebSocket emitter

        Args:
            sio: Socket.IO AsyncServer instance
        """
        self.sio = sio

        # Statistics
        self._emit_count = 0
        self._error_count = 0
        self._last_emit_time = 0.0

    # ============================================
    # Connection Events
    # ============================================

    async def emit_connection_success(self, sid: str):
        """Emit connection success to specific client"""
        data = ConnectionSuccessData(
            message="Connected to violation review service",
            timestamp=time.time(),
            serverVersion="1.0.0",
        )
        await self._emit(ServerEvent.CONNECTION_SUCCESS.value, data.model_dump(), room=sid)

    # ============================================
    # Violation Events
    # ============================================

    async def emit_violations_ingested(self, job_id: str, violations: List[Violation]):
        """Emit arrival of a detection job's violations"""
        data = ViolationsIngestedData(
            jobId=job_id,
            count=len(violations),
            violationIds=[v.id for v in violations],
            timestamp=time.time(),
        )
        await self._emit(ServerEvent.VIOLATIONS_INGESTED.value, data.model_dump())
        await self.emit_stats_stale("violations_ingested")

    async def emit_violation_reviewed(self, violation: Violation):
        """Emit a review decision"""
        data = ViolationReviewedData(
            id=violation.id,
            status=violation.status.value,
            violationType=violation.violation_type.value,
            timestamp=time.time(),
        )
        await self._emit(ServerEvent.VIOLATION_REVIEWED.value, data.model_dump())
        await self.emit_stats_stale("violation_reviewed")

    # ============================================
    # Challan Events
    # ============================================

    async def emit_challan_issued(self, challan: Challan):
        """Emit challan issued"""
        data = ChallanIssuedData(
            challanId=challan.id,
            challanNumber=challan.challan_number,
            violationId=challan.violation_id,
            vehicleNumber=challan.vehicle_number,
            ownerName=challan.owner_name,
            violationType=challan.violation_type,
            penaltyAmount=challan.penalty_amount,
            timestamp=time.time(),
        )
        await self._emit(ServerEvent.CHALLAN_ISSUED.value, data.model_dump())
        await self.emit_stats_stale("challan_issued")

    async def emit_challan_status(self, challan: Challan):
        """Emit challan lifecycle change"""
        data = ChallanStatusData(
            challanId=challan.id,
            challanNumber=challan.challan_number,
            status=challan.status.value,
            timestamp=time.time(),
        )
        await self._emit(ServerEvent.CHALLAN_STATUS.value, data.model_dump())
        await self.emit_stats_stale("challan_status")

    async def emit_stats_stale(self, reason: str):
        data = StatsStaleData(reason=reason, timestamp=time.time())
        await self._emit(ServerEvent.STATS_STALE.value, data.model_dump())

    # ============================================
    # Internal
    # ============================================

    async def _emit(self, event: str, data: Any, room: Optional[str] = None):
        """
        Internal emit with error handling and statistics

        Args:
            event: Event name
            data: Event data
            room: Optional room to emit to
        """
        try:
            if room:
                await self.sio.emit(event, data, room=room)
            else:
                await self.sio.emit(event, data)

            self._emit_count += 1
            self._last_emit_time = time.time()

        except Exception as e:
            self._error_count += 1
            logger.error("Failed to emit %s: %s", event, e)

    def get_stats(self) -> Dict[str, Any]:
        """Get emitter statistics"""
        return {
            "totalEmits": self._emit_count,
            "errorCount": self._error_count,
            "lastEmitTime": self._last_emit_time,
        }


# Global emitter instance (initialized in main.py)
emitter: Optional[WebSocketEmitter] = None


def get_emitter() -> Optional[WebSocketEmitter]:
    """Get the global WebSocket emitter instance"""
    return emitter


def set_emitter(e: Optional[WebSocketEmitter]):
    """Set the global WebSocket emitter instance"""
    global emitter
    emitter = e
