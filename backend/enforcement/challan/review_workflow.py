"""
Review Workflow

Facade composing the violation store, challan engine and stats aggregator
for external callers. Validates inputs before delegating and makes sure
every failure leaves as an EnforcementError with a stable code.

Write paths exposed here are the only ones: ingestion, review decisions,
challan issuance and challan status updates.
"""

import logging
from contextlib import contextmanager
from enum import Enum
from typing import Any, Dict, Iterable, List, Optional, Set, Tuple, Type

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import sessionmaker

from enforcement.config import ConfigManager
from enforcement.database import translate_store_error
from enforcement.errors import EnforcementError, ValidationError
from enforcement.models import (
    Challan,
    ChallanFilter,
    ChallanStatus,
    DashboardStats,
    ReportStats,
    Violation,
    ViolationFilter,
    ViolationStatus,
    ViolationType,
)

from .challan_engine import ChallanEngine
from .clock import Clock
from .stats_aggregator import StatsAggregator, TelemetryRegistry
from .violation_store import ViolationStore

logger = logging.getLogger(__name__)


REVIEW_DECISIONS = {ViolationStatus.VERIFIED, ViolationStatus.REJECTED}
CHALLAN_UPDATES = {ChallanStatus.SENT, ChallanStatus.PAID, ChallanStatus.CANCELLED}


class ReviewWorkflow:
    """Operation surface consumed by the API layer"""

    def __init__(
        self,
        violation_store: ViolationStore,
        challan_engine: ChallanEngine,
        stats_aggregator: StatsAggregator,
        default_page_size: int = 50,
        max_page_size: int = 500,
    ):
        self.violations = violation_store
        self.challans = challan_engine
        self.stats = stats_aggregator
        self.default_page_size = default_page_size
        self.max_page_size = max_page_size

    # ============================================
    # Violations
    # ============================================

    def list_violations(
        self,
        violation_type: Optional[str] = None,
        status: Optional[str] = None,
        limit: Optional[int] = None,
        skip: Optional[int] = None,
    ) -> Tuple[List[Violation], int]:
        limit, skip = self._page(limit, skip)
        filter = ViolationFilter(
            violation_type=self._parse_enum(ViolationType, violation_type, "violationType"),
            status=self._parse_enum(ViolationStatus, status, "status"),
            limit=limit,
            skip=skip,
        )
        with self._surface_errors():
            return self.violations.list(filter)

    def get_violation(self, violation_id: str) -> Violation:
        with self._surface_errors():
            return self.violations.get(violation_id)

    def review_violation(self, violation_id: str, decision: str) -> Violation:
        """Verify or reject a pending violation"""
        target = self._parse_enum(ViolationStatus, decision, "status", REVIEW_DECISIONS)
        if target is None:
            raise ValidationError("Review decision is required", {"field": "status"})
        with self._surface_errors():
            return self.violations.set_status(violation_id, target)

    def ingest_detections(self, job_id: str, detections: Iterable[Any]) -> List[Violation]:
        """Store the detections of one processed video job"""
        if not job_id or not str(job_id).strip():
            raise ValidationError("Job id is required", {"field": "jobId"})
        with self._surface_errors():
            return self.violations.ingest_batch(job_id, list(detections))

    # ============================================
    # Challans
    # ============================================

    def list_challans(
        self,
        status: Optional[str] = None,
        limit: Optional[int] = None,
        skip: Optional[int] = None,
    ) -> Tuple[List[Challan], int]:
        limit, skip = self._page(limit, skip)
        filter = ChallanFilter(
            status=self._parse_enum(ChallanStatus, status, "status"),
            limit=limit,
            skip=skip,
        )
        with self._surface_errors():
            return self.challans.list(filter)

    def get_challan(self, challan_id: str) -> Challan:
        with self._surface_errors():
            return self.challans.get(challan_id)

    def issue_challan(
        self,
        violation_id: str,
        owner_name: str,
        owner_address: Optional[str] = None,
        penalty_override: Optional[int] = None,
    ) -> Challan:
        if not violation_id:
            raise ValidationError("Violation id is required", {"field": "violationId"})
        if not owner_name or not owner_name.strip():
            raise ValidationError("Owner name is required", {"field": "ownerName"})
        with self._surface_errors():
            return self.challans.issue(violation_id, owner_name, owner_address, penalty_override)

    def update_challan_status(self, challan_id: str, status: str) -> Challan:
        target = self._parse_enum(ChallanStatus, status, "status", CHALLAN_UPDATES)
        if target is None:
            raise ValidationError("Challan status is required", {"field": "status"})
        with self._surface_errors():
            return self.challans.set_status(challan_id, target)

    def penalty_table(self) -> Dict[str, int]:
        return dict(self.challans.penalty_table)

    # ============================================
    # Statistics
    # ============================================

    def dashboard_stats(self) -> DashboardStats:
        with self._surface_errors():
            return self.stats.compute_dashboard_stats()

    def report_stats(self) -> ReportStats:
        with self._surface_errors():
            return self.stats.compute_report_stats()

    # ============================================
    # Validation helpers
    # ============================================

    def _page(self, limit: Optional[int], skip: Optional[int]) -> Tuple[int, int]:
        limit = self.default_page_size if limit is None else limit
        skip = 0 if skip is None else skip

        if limit < 0 or skip < 0:
            raise ValidationError(
                "Pagination values must be non-negative",
                {"limit": limit, "skip": skip},
            )
        if limit > self.max_page_size:
            raise ValidationError(
                f"limit must not exceed {self.max_page_size}",
                {"limit": limit, "max": self.max_page_size},
            )
        return limit, skip

    @staticmethod
    def _parse_enum(
        enum_cls: Type[Enum],
        value: Optional[Any],
        field: str,
        allowed: Optional[Set[Enum]] = None,
    ) -> Optional[Enum]:
        if value is None or value == "":
            return None

        choices = allowed or set(enum_cls)
        try:
            parsed = enum_cls(value)
        except ValueError:
            parsed = None

        if parsed is None or parsed not in choices:
            raise ValidationError(
                f"Invalid {field}: {getattr(value, 'value', value)}",
                {"field": field, "allowed": sorted(c.value for c in choices)},
            )
        return parsed

    @contextmanager
    def _surface_errors(self):
        try:
            yield
        except EnforcementError:
            raise
        except SQLAlchemyError as e:
            error = translate_store_error(e)
            logger.error("Unexpected store error (%s): %s", error.code, e)
            raise error from e


# ============================================
# Construction
# ============================================

def build_review_workflow(
    session_factory: sessionmaker,
    cfg: ConfigManager,
    telemetry: Optional[TelemetryRegistry] = None,
    clock: Optional[Clock] = None,
) -> ReviewWorkflow:
    """Wire store, engine and aggregator from configuration"""
    clock = clock or Clock(cfg.get_timezone())
    telemetry = telemetry or TelemetryRegistry(cfg.get_telemetry_config())
    api_config = cfg.get_api_config()

    return ReviewWorkflow(
        violation_store=ViolationStore(session_factory, clock),
        challan_engine=ChallanEngine(
            session_factory,
            penalty_table=cfg.get_penalty_table(),
            due_days=cfg.get_due_days(),
            clock=clock,
        ),
        stats_aggregator=StatsAggregator(session_factory, telemetry, clock),
        default_page_size=int(api_config.get("defaultPageSize", 50)),
        max_page_size=int(api_config.get("maxPageSize", 500)),
    )


# Global instance
_review_workflow: Optional[ReviewWorkflow] = None


def init_review_workflow(
    session_factory: sessionmaker,
    cfg: ConfigManager,
    telemetry: Optional[TelemetryRegistry] = None,
    clock: Optional[Clock] = None,
) -> ReviewWorkflow:
    """Initialize global review workflow"""
    global _review_workflow
    _review_workflow = build_review_workflow(session_factory, cfg, telemetry, clock)
    return _review_workflow


def set_review_workflow(workflow: Optional[ReviewWorkflow]):
    global _review_workflow
    _review_workflow = workflow


def get_review_workflow() -> Optional[ReviewWorkflow]:
    """Get global review workflow instance"""
    return _review_workflow
