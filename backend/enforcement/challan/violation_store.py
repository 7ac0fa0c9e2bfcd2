"""
Violation Record Store

Holds detections handed over by the detection service and applies review
decisions to them.

Review transitions are compare-and-swap updates on the status column, so
two concurrent decisions on the same record cannot both succeed.
"""

import json
import logging
import math
from typing import Any, Dict, Iterable, List, Optional, Tuple, Union
from uuid import uuid4

from pydantic import ValidationError as PydanticValidationError
from sqlalchemy.orm import sessionmaker

from enforcement.database import session_scope
from enforcement.database.models import Violation as ViolationDB
from enforcement.errors import InvalidTransition, NotFound, ValidationError
from enforcement.models import (
    DETAILS_VARIANTS,
    DetectionInput,
    Violation,
    ViolationFilter,
    ViolationStatus,
    ViolationType,
    normalize_details,
)

from .clock import Clock

logger = logging.getLogger(__name__)


DetectionLike = Union[DetectionInput, Dict[str, Any]]


class ViolationStore:
    """
    Record store for violations under review

    Responsibilities:
    - Ingest detections (identity assignment, validation, pending status)
    - Filtered, paginated listing, most recent first
    - Review transitions pending -> verified / rejected
    """

    # Target status -> statuses it may be reached from
    TRANSITIONS = {
        ViolationStatus.VERIFIED: {ViolationStatus.PENDING},
        ViolationStatus.REJECTED: {ViolationStatus.PENDING},
    }

    def __init__(self, session_factory: sessionmaker, clock: Optional[Clock] = None):
        """
        Initialize violation store

        Args:
            session_factory: SQLAlchemy session factory bound to the store
            clock: Clock used for naive timestamps and review times
        """
        self.session_factory = session_factory
        self.clock = clock or Clock()

    # ============================================
    # Reads
    # ============================================

    def list(self, filter: Optional[ViolationFilter] = None) -> Tuple[List[Violation], int]:
        """
        List violations matching a filter

        Returns:
            (page of violations, total number of matches)
        """
        filter = filter or ViolationFilter()

        with session_scope(self.session_factory) as db:
            query = db.query(ViolationDB)
            if filter.violation_type is not None:
                query = query.filter(ViolationDB.violation_type == filter.violation_type.value)
            if filter.status is not None:
                query = query.filter(ViolationDB.status == filter.status.value)

            total = query.count()
            rows = query.order_by(ViolationDB.timestamp.desc(), ViolationDB.id.desc())\
                .offset(filter.skip)\
                .limit(filter.limit)\
                .all()

            return [self._to_record(row) for row in rows], total

    def get(self, violation_id: str) -> Violation:
        """Get violation by ID"""
        with session_scope(self.session_factory) as db:
            row = db.get(ViolationDB, violation_id)
            if row is None:
                raise NotFound(f"Violation {violation_id} not found", {"id": violation_id})
            return self._to_record(row)

    # ============================================
    # Ingestion
    # ============================================

    def ingest(self, detection: DetectionLike, job_id: Optional[str] = None) -> str:
        """
        Store one detection as a pending violation

        Returns:
            Assigned violation id
        """
        row = self._build_row(self._parse_detection(detection), job_id)

        with session_scope(self.session_factory) as db:
            db.add(row)

        logger.info("Ingested violation %s (%s, camera=%s)", row.id, row.violation_type, row.camera)
        return row.id

    def ingest_batch(self, job_id: str, detections: Iterable[DetectionLike]) -> List[Violation]:
        """
        Store all detections of one processed video job

        All or nothing: one invalid detection rejects the whole batch.
        """
        rows = []
        for index, detection in enumerate(detections):
            try:
                rows.append(self._build_row(self._parse_detection(detection), job_id))
            except ValidationError as e:
                e.details["index"] = index
                raise

        with session_scope(self.session_factory) as db:
            db.add_all(rows)
            db.flush()
            records = [self._to_record(row) for row in rows]

        logger.info("Ingested %d violations from job %s", len(records), job_id)
        return records

    def _parse_detection(self, detection: DetectionLike) -> DetectionInput:
        if isinstance(detection, DetectionInput):
            parsed = detection
        else:
            try:
                parsed = DetectionInput.model_validate(detection)
            except PydanticValidationError as e:
                fields = [".".join(str(p) for p in err["loc"]) for err in e.errors()]
                raise ValidationError(
                    f"Invalid detection: {', '.join(fields)}",
                    {"fields": fields, "errors": [err["msg"] for err in e.errors()]},
                ) from e

        if parsed.violation_type not in DETAILS_VARIANTS:
            raise ValidationError(
                f"Unknown violation type: {parsed.violation_type}",
                {"field": "violationType", "allowed": [t.value for t in ViolationType]},
            )
        if not (math.isfinite(parsed.confidence) and 0.0 <= parsed.confidence <= 1.0):
            raise ValidationError(
                f"Confidence {parsed.confidence} outside [0, 1]",
                {"field": "confidence", "value": parsed.confidence},
            )
        return parsed

    def _build_row(self, detection: DetectionInput, job_id: Optional[str]) -> ViolationDB:
        violation_type = ViolationType(detection.violation_type)
        details = normalize_details(violation_type, detection.details)

        return ViolationDB(
            id=f"vio-{uuid4().hex[:12]}",
            track_id=detection.track_id,
            violation_type=violation_type.value,
            vehicle_type=detection.vehicle_type,
            plate_number=detection.plate_number or None,
            timestamp=self.clock.to_storage(detection.timestamp),
            frame_number=detection.frame_number,
            confidence=detection.confidence,
            camera=detection.camera,
            status=ViolationStatus.PENDING.value,
            details_json=details.model_dump_json(),
            job_id=job_id,
            created_at=self.clock.to_storage(self.clock.now()),
        )

    # ============================================
    # Review
    # ============================================

    def set_status(self, violation_id: str, new_status: Union[ViolationStatus, str]) -> Violation:
        """
        Apply a review decision

        Only pending -> verified and pending -> rejected are legal.

        Raises:
            NotFound: unknown id
            InvalidTransition: any other transition, including a repeat
        """
        try:
            target = ViolationStatus(new_status)
        except ValueError:
            raise ValidationError(
                f"Unknown violation status: {new_status}",
                {"field": "status", "allowed": [s.value for s in ViolationStatus]},
            )

        allowed = self.TRANSITIONS.get(target, set())

        with session_scope(self.session_factory) as db:
            if allowed:
                updated = db.query(ViolationDB)\
                    .filter(
                        ViolationDB.id == violation_id,
                        ViolationDB.status.in_([s.value for s in allowed]),
                    )\
                    .update(
                        {
                            "status": target.value,
                            "reviewed_at": self.clock.to_storage(self.clock.now()),
                        },
                        synchronize_session=False,
                    )
                if updated == 1:
                    record = self._to_record(db.get(ViolationDB, violation_id))
                    logger.info("Violation %s marked %s", violation_id, target.value)
                    return record

            row = db.get(ViolationDB, violation_id)
            if row is None:
                raise NotFound(f"Violation {violation_id} not found", {"id": violation_id})

            logger.warning(
                "Rejected violation transition %s: %s -> %s", violation_id, row.status, target.value
            )
            raise InvalidTransition("violation", violation_id, row.status, target.value)

    # ============================================
    # Mapping
    # ============================================

    def _to_record(self, row: ViolationDB) -> Violation:
        details = json.loads(row.details_json or "{}")
        details.setdefault("kind", row.violation_type)

        return Violation(
            id=row.id,
            track_id=row.track_id,
            violation_type=row.violation_type,
            vehicle_type=row.vehicle_type,
            plate_number=row.plate_number,
            timestamp=Clock.from_storage(row.timestamp),
            frame_number=row.frame_number,
            confidence=row.confidence,
            camera=row.camera,
            status=row.status,
            details=details,
            job_id=row.job_id,
            challan_id=row.challan_id,
            created_at=Clock.from_storage(row.created_at),
            reviewed_at=Clock.from_storage(row.reviewed_at),
        )
