"""
Challan Issuance Engine

Digital challan generation that:
- Creates challans from verified violations
- Numbers them per issue date (CH<YYYYMMDD><NN>)
- Tracks the issued -> sent -> paid / cancelled lifecycle

Issuance is serialised by a lock and guarded by a partial unique index on
the active challan per violation; the per-date sequence is incremented in
the same transaction as the insert.
"""

import json
import logging
import threading
from datetime import date, timedelta
from typing import Dict, List, Optional, Tuple, Union
from uuid import uuid4

from sqlalchemy.dialects import postgresql, sqlite
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session, sessionmaker

from enforcement.config import DEFAULT_DUE_DAYS, DEFAULT_PENALTIES
from enforcement.database import session_scope
from enforcement.database.models import (
    Challan as ChallanDB,
    ChallanSequence,
    Violation as ViolationDB,
)
from enforcement.errors import (
    Conflict,
    EnforcementError,
    InvalidState,
    InvalidTransition,
    NotFound,
    Unavailable,
    ValidationError,
)
from enforcement.models import (
    VIOLATION_DESCRIPTIONS,
    Challan,
    ChallanFilter,
    ChallanStatus,
    ViolationStatus,
)

from .clock import Clock

logger = logging.getLogger(__name__)

# Dialects whose INSERT supports ON CONFLICT DO UPDATE
_UPSERT_INSERTS = {
    "sqlite": sqlite.insert,
    "postgresql": postgresql.insert,
}

# Constraint names as they appear in the driver's IntegrityError text
_ACTIVE_CHALLAN_MARKERS = ("uq_challan_active_violation", "challans.violation_id")


class ChallanEngine:
    """
    Issue and manage digital traffic challans

    Reads violations but only ever writes their challan_id back-reference.
    """

    # Target status -> statuses it may be reached from
    TRANSITIONS = {
        ChallanStatus.SENT: {ChallanStatus.ISSUED},
        ChallanStatus.PAID: {ChallanStatus.SENT},
        ChallanStatus.CANCELLED: {ChallanStatus.ISSUED, ChallanStatus.SENT},
    }

    def __init__(
        self,
        session_factory: sessionmaker,
        penalty_table: Optional[Dict[str, int]] = None,
        due_days: int = DEFAULT_DUE_DAYS,
        clock: Optional[Clock] = None,
    ):
        """
        Initialize challan engine

        Args:
            session_factory: SQLAlchemy session factory bound to the store
            penalty_table: Amount per violation type (default: built-in table)
            due_days: Days between issue date and due date
            clock: Clock that decides the issue date
        """
        self.session_factory = session_factory
        self.penalty_table = dict(DEFAULT_PENALTIES if penalty_table is None else penalty_table)
        self.due_days = due_days
        self.clock = clock or Clock()

        self._issue_lock = threading.Lock()

    def penalty_for(self, violation_type: str) -> Optional[int]:
        """Table amount for a violation type, None when not in the table"""
        return self.penalty_table.get(str(getattr(violation_type, "value", violation_type)))

    # ============================================
    # Issuance
    # ============================================

    def issue(
        self,
        violation_id: str,
        owner_name: str,
        owner_address: Optional[str] = None,
        penalty_override: Optional[int] = None,
    ) -> Challan:
        """
        Issue a challan for a verified violation

        Raises:
            NotFound: unknown violation
            InvalidState: violation is not verified
            Conflict: an active (non-cancelled) challan already exists
            Unavailable: numbering collided with another process (retryable)
            ValidationError: no penalty for the type and no override, or a
                non-positive override
        """
        if not owner_name or not owner_name.strip():
            raise ValidationError("Owner name is required", {"field": "ownerName"})

        with self._issue_lock:
            try:
                with session_scope(self.session_factory) as db:
                    violation = db.get(ViolationDB, violation_id)
                    if violation is None:
                        raise NotFound(f"Violation {violation_id} not found", {"id": violation_id})

                    if violation.status != ViolationStatus.VERIFIED.value:
                        raise InvalidState(
                            f"Violation {violation_id} is '{violation.status}', challans need 'verified'",
                            {"id": violation_id, "current": violation.status, "required": "verified"},
                        )

                    active = self._active_challan(db, violation_id)
                    if active is not None:
                        raise Conflict(
                            f"Violation {violation_id} already has challan {active.challan_number}",
                            {"violationId": violation_id, "challanId": active.id,
                             "challanNumber": active.challan_number},
                        )

                    amount = self._resolve_penalty(violation.violation_type, penalty_override)

                    issue_date = self.clock.today()
                    sequence = self._next_sequence(db, issue_date)

                    row = ChallanDB(
                        id=f"chl-{uuid4().hex[:12]}",
                        challan_number=self.format_challan_number(issue_date, sequence),
                        violation_id=violation.id,
                        vehicle_number=violation.plate_number or "UNKNOWN",
                        owner_name=owner_name.strip(),
                        owner_address=owner_address,
                        violation_type=violation.violation_type,
                        violation_description=self._generate_description(violation),
                        penalty_amount=amount,
                        issue_date=issue_date,
                        sequence=sequence,
                        due_date=issue_date + timedelta(days=self.due_days),
                        status=ChallanStatus.ISSUED.value,
                        created_at=self.clock.to_storage(self.clock.now()),
                    )
                    db.add(row)
                    violation.challan_id = row.id
                    db.flush()

                    challan = self._to_record(row)
            except IntegrityError as e:
                raise self._classify_integrity_error(violation_id, e) from e

        logger.info(
            "Challan issued: %s for %s to %s (%d)",
            challan.challan_number, violation_id, challan.owner_name, challan.penalty_amount,
        )
        return challan

    def _resolve_penalty(self, violation_type: str, override: Optional[int]) -> int:
        if override is not None:
            if isinstance(override, bool) or not isinstance(override, int) or override <= 0:
                raise ValidationError(
                    "Penalty override must be a positive integer",
                    {"field": "penaltyAmount", "value": override},
                )
            return override

        amount = self.penalty_for(violation_type)
        if amount is None:
            raise ValidationError(
                f"No penalty configured for '{violation_type}' and no override given",
                {"field": "penaltyAmount", "violationType": violation_type},
            )
        return amount

    def _next_sequence(self, db: Session, issue_date: date) -> int:
        """
        Increment and return the sequence for an issue date

        On SQLite and PostgreSQL the first challan of a day is an upsert, so
        two writers in separate processes never race on the counter's
        primary key.
        """
        upsert = _UPSERT_INSERTS.get(db.get_bind().dialect.name)

        if upsert is not None:
            stmt = upsert(ChallanSequence).values(issue_date=issue_date, last_value=1)
            db.execute(stmt.on_conflict_do_update(
                index_elements=["issue_date"],
                set_={"last_value": ChallanSequence.last_value + 1},
            ))
        else:
            updated = db.query(ChallanSequence)\
                .filter(ChallanSequence.issue_date == issue_date)\
                .update({"last_value": ChallanSequence.last_value + 1}, synchronize_session=False)

            if updated == 0:
                db.add(ChallanSequence(issue_date=issue_date, last_value=1))
                db.flush()
                return 1

        return db.query(ChallanSequence.last_value)\
            .filter(ChallanSequence.issue_date == issue_date)\
            .scalar()

    @staticmethod
    def _classify_integrity_error(violation_id: str, exc: IntegrityError) -> EnforcementError:
        """
        Only the one-active-challan index means a duplicate issuance. Any
        other constraint (sequence or challan number) lost a race with a
        concurrent writer and is worth retrying.
        """
        reason = str(getattr(exc, "orig", None) or exc)

        if any(marker in reason for marker in _ACTIVE_CHALLAN_MARKERS):
            logger.warning("Challan issuance for %s lost to a concurrent issuance", violation_id)
            return Conflict(
                f"Challan for violation {violation_id} conflicts with a concurrent issuance",
                {"violationId": violation_id},
            )

        logger.warning("Challan numbering for %s collided with a concurrent writer: %s", violation_id, reason)
        return Unavailable(
            "Challan numbering collided with a concurrent writer",
            {"violationId": violation_id, "reason": reason},
        )

    @staticmethod
    def format_challan_number(issue_date: date, sequence: int) -> str:
        """CH + YYYYMMDD + sequence (two digits, wider past 99)"""
        return f"CH{issue_date:%Y%m%d}{sequence:02d}"

    def _generate_description(self, violation: ViolationDB) -> str:
        """Generate human-readable violation description"""
        base_desc = VIOLATION_DESCRIPTIONS.get(
            violation.violation_type,
            f"{violation.violation_type} violation"
        )
        details = json.loads(violation.details_json or "{}")

        if violation.violation_type == "overspeeding":
            speed = details.get("speed_kph")
            limit = details.get("speed_limit")
            if speed is not None and limit is not None:
                return f"{base_desc}: {speed:.0f} km/h in {limit:.0f} km/h zone"

        return f"{base_desc} at {violation.camera}"

    @staticmethod
    def _active_challan(db: Session, violation_id: str) -> Optional[ChallanDB]:
        return db.query(ChallanDB)\
            .filter(
                ChallanDB.violation_id == violation_id,
                ChallanDB.status != ChallanStatus.CANCELLED.value,
            )\
            .first()

    # ============================================
    # Lifecycle
    # ============================================

    def set_status(self, challan_id: str, new_status: Union[ChallanStatus, str]) -> Challan:
        """
        Move a challan along its lifecycle

        issued -> sent, sent -> paid, issued|sent -> cancelled. Cancelling
        keeps the record and frees the violation for a new challan.
        """
        try:
            target = ChallanStatus(new_status)
        except ValueError:
            raise ValidationError(
                f"Unknown challan status: {new_status}",
                {"field": "status", "allowed": [s.value for s in ChallanStatus]},
            )

        allowed = self.TRANSITIONS.get(target, set())

        with session_scope(self.session_factory) as db:
            if allowed:
                updated = db.query(ChallanDB)\
                    .filter(
                        ChallanDB.id == challan_id,
                        ChallanDB.status.in_([s.value for s in allowed]),
                    )\
                    .update(
                        {
                            "status": target.value,
                            "updated_at": self.clock.to_storage(self.clock.now()),
                        },
                        synchronize_session=False,
                    )
                if updated == 1:
                    row = db.get(ChallanDB, challan_id)
                    if target == ChallanStatus.CANCELLED:
                        db.query(ViolationDB)\
                            .filter(
                                ViolationDB.id == row.violation_id,
                                ViolationDB.challan_id == challan_id,
                            )\
                            .update({"challan_id": None}, synchronize_session=False)

                    logger.info("Challan %s marked %s", row.challan_number, target.value)
                    return self._to_record(row)

            row = db.get(ChallanDB, challan_id)
            if row is None:
                raise NotFound(f"Challan {challan_id} not found", {"id": challan_id})

            logger.warning(
                "Rejected challan transition %s: %s -> %s", challan_id, row.status, target.value
            )
            raise InvalidTransition("challan", challan_id, row.status, target.value)

    # ============================================
    # Reads
    # ============================================

    def get(self, challan_id: str) -> Challan:
        """Get challan by ID"""
        with session_scope(self.session_factory) as db:
            row = db.get(ChallanDB, challan_id)
            if row is None:
                raise NotFound(f"Challan {challan_id} not found", {"id": challan_id})
            return self._to_record(row)

    def list(self, filter: Optional[ChallanFilter] = None) -> Tuple[List[Challan], int]:
        """
        List challans, newest issue first

        Returns:
            (page of challans, total number of matches)
        """
        filter = filter or ChallanFilter()

        with session_scope(self.session_factory) as db:
            query = db.query(ChallanDB)
            if filter.status is not None:
                query = query.filter(ChallanDB.status == filter.status.value)

            total = query.count()
            rows = query.order_by(ChallanDB.issue_date.desc(), ChallanDB.sequence.desc())\
                .offset(filter.skip)\
                .limit(filter.limit)\
                .all()

            return [self._to_record(row) for row in rows], total

    @staticmethod
    def _to_record(row: ChallanDB) -> Challan:
        return Challan(
            id=row.id,
            challan_number=row.challan_number,
            violation_id=row.violation_id,
            vehicle_number=row.vehicle_number,
            owner_name=row.owner_name,
            owner_address=row.owner_address,
            violation_type=row.violation_type,
            violation_description=row.violation_description,
            penalty_amount=row.penalty_amount,
            issue_date=row.issue_date,
            due_date=row.due_date,
            status=row.status,
            created_at=Clock.from_storage(row.created_at),
            updated_at=Clock.from_storage(row.updated_at),
        )
