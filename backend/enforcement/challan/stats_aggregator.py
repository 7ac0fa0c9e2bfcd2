"""
Dashboard Statistics Aggregator

Computes read-only summary metrics from the record store on demand. Values
only external monitoring knows (cameras online, uptime, model accuracy) come
from the TelemetryRegistry and stay null until something reports them.
"""

import threading
from typing import Any, Dict, Optional, Union

from sqlalchemy import exists, func
from sqlalchemy.orm import sessionmaker

from enforcement.database import session_scope
from enforcement.database.models import Challan as ChallanDB, Violation as ViolationDB
from enforcement.models import (
    ChallanStatus,
    DashboardStats,
    HourlyCount,
    ReportStats,
    TelemetrySnapshot,
    ViolationStatus,
    ViolationType,
)

from .clock import Clock


class TelemetryRegistry:
    """Latest telemetry pushed by monitoring; partial updates merge"""

    def __init__(self, initial: Optional[Dict[str, Any]] = None):
        self._lock = threading.Lock()
        self._snapshot = TelemetrySnapshot.model_validate(initial or {})

    def update(self, values: Union[TelemetrySnapshot, Dict[str, Any]]) -> TelemetrySnapshot:
        if not isinstance(values, TelemetrySnapshot):
            values = TelemetrySnapshot.model_validate(values)

        with self._lock:
            merged = self._snapshot.model_dump()
            merged.update(values.model_dump(exclude_none=True))
            self._snapshot = TelemetrySnapshot.model_validate(merged)
            return self._snapshot

    def snapshot(self) -> TelemetrySnapshot:
        with self._lock:
            return self._snapshot


class StatsAggregator:
    """
    Aggregate dashboard and report metrics

    Store failures propagate as Unavailable / StoreTimeout; a zero-filled
    result always means the store really is empty.
    """

    def __init__(
        self,
        session_factory: sessionmaker,
        telemetry: Optional[TelemetryRegistry] = None,
        clock: Optional[Clock] = None,
    ):
        self.session_factory = session_factory
        self.telemetry = telemetry
        self.clock = clock or Clock()

    def compute_dashboard_stats(self) -> DashboardStats:
        """Header card metrics for the dashboard"""
        start, end = self.clock.day_bounds(self.clock.today())

        has_active_challan = exists().where(
            ChallanDB.violation_id == ViolationDB.id,
            ChallanDB.status != ChallanStatus.CANCELLED.value,
        )

        with session_scope(self.session_factory) as db:
            violations_today = db.query(func.count(ViolationDB.id))\
                .filter(ViolationDB.timestamp >= start, ViolationDB.timestamp < end)\
                .scalar()

            pending_review = db.query(func.count(ViolationDB.id))\
                .filter(ViolationDB.status == ViolationStatus.PENDING.value)\
                .scalar()

            pending_challans = db.query(func.count(ViolationDB.id))\
                .filter(
                    ViolationDB.status == ViolationStatus.VERIFIED.value,
                    ~has_active_challan,
                )\
                .scalar()

            processed_challans = db.query(func.count(ChallanDB.id))\
                .filter(ChallanDB.status.in_([ChallanStatus.SENT.value, ChallanStatus.PAID.value]))\
                .scalar()

        telemetry = self.telemetry.snapshot() if self.telemetry else TelemetrySnapshot()

        return DashboardStats(
            total_violations_today=violations_today or 0,
            pending_challans=pending_challans or 0,
            pending_review=pending_review or 0,
            processed_challans=processed_challans or 0,
            active_cameras=telemetry.active_cameras,
            system_uptime=telemetry.system_uptime,
            detection_accuracy=telemetry.detection_accuracy,
        )

    def compute_report_stats(self) -> ReportStats:
        """Breakdowns by type, camera, hour of today and challan status"""
        start, end = self.clock.day_bounds(self.clock.today())

        with session_scope(self.session_factory) as db:
            type_counts = db.query(ViolationDB.violation_type, func.count(ViolationDB.id))\
                .group_by(ViolationDB.violation_type)\
                .all()

            camera_counts = db.query(ViolationDB.camera, func.count(ViolationDB.id))\
                .group_by(ViolationDB.camera)\
                .order_by(func.count(ViolationDB.id).desc())\
                .all()

            today_timestamps = db.query(ViolationDB.timestamp)\
                .filter(ViolationDB.timestamp >= start, ViolationDB.timestamp < end)\
                .all()

            status_counts = db.query(ChallanDB.status, func.count(ChallanDB.id))\
                .group_by(ChallanDB.status)\
                .all()

            collected = db.query(func.coalesce(func.sum(ChallanDB.penalty_amount), 0))\
                .filter(ChallanDB.status == ChallanStatus.PAID.value)\
                .scalar()

            pending = db.query(func.coalesce(func.sum(ChallanDB.penalty_amount), 0))\
                .filter(ChallanDB.status.in_([ChallanStatus.ISSUED.value, ChallanStatus.SENT.value]))\
                .scalar()

        by_type = {t.value: 0 for t in ViolationType}
        by_type.update({t: c for t, c in type_counts})

        by_status = {s.value: 0 for s in ChallanStatus}
        by_status.update({s: c for s, c in status_counts})

        hourly = [0] * 24
        for (timestamp,) in today_timestamps:
            local = Clock.from_storage(timestamp).astimezone(self.clock.tz)
            hourly[local.hour] += 1

        return ReportStats(
            violations_by_type=by_type,
            violations_by_camera={camera: count for camera, count in camera_counts},
            hourly_violations_today=[HourlyCount(hour=h, violations=n) for h, n in enumerate(hourly)],
            challans_by_status=by_status,
            revenue_collected=int(collected or 0),
            revenue_pending=int(pending or 0),
        )
