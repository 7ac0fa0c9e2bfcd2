"""
Challan Engine Tests

Tests issuance preconditions, numbering, penalties and the challan lifecycle.
"""

import re
import threading
from datetime import date, datetime, timedelta, timezone

import pytest
from sqlalchemy.exc import IntegrityError

from enforcement.challan import ChallanEngine, Clock
from enforcement.database import session_scope
from enforcement.database.models import Challan as ChallanDB, ChallanSequence
from enforcement.errors import (
    Conflict,
    EnforcementError,
    InvalidState,
    InvalidTransition,
    NotFound,
    Unavailable,
    ValidationError,
)
from enforcement.models import ChallanFilter, ChallanStatus, ViolationStatus


CHALLAN_NUMBER = re.compile(r"^CH\d{8}\d{2,}$")


# ============================================
# Issuance Tests
# ============================================

class TestIssue:
    """Challans are issued only for verified violations"""

    def test_issue_for_verified_overspeeding(self, challan_engine, violation_store, verified_violation):
        challan = challan_engine.issue(verified_violation, "Rajesh Kumar", "12 MG Road, Pune")

        assert challan.id.startswith("chl-")
        assert challan.penalty_amount == 2000
        assert challan.status == ChallanStatus.ISSUED
        assert CHALLAN_NUMBER.match(challan.challan_number)
        assert challan.challan_number == "CH2026021201"
        assert challan.vehicle_number == "MH-12-AB-1234"
        assert challan.owner_address == "12 MG Road, Pune"
        assert challan.violation_type == "overspeeding"
        assert challan.violation_description == "Exceeded speed limit: 82 km/h in 50 km/h zone"

        assert violation_store.get(verified_violation).challan_id == challan.id

    def test_due_date_is_thirty_days_after_issue(self, challan_engine, verified_violation):
        challan = challan_engine.issue(verified_violation, "Rajesh Kumar")

        assert challan.issue_date == date(2026, 2, 12)
        assert challan.due_date == challan.issue_date + timedelta(days=30)

    def test_stop_line_penalty(self, challan_engine, violation_store, make_detection):
        violation_id = violation_store.ingest(make_detection(
            violationType="stop_line", details={"line_y": 300, "vehicle_y": 330},
        ))
        violation_store.set_status(violation_id, "verified")

        challan = challan_engine.issue(violation_id, "Amit Patel")

        assert challan.penalty_amount == 500
        assert challan.violation_description == "Crossed stop line at Camera 1 - Main Square"

    def test_missing_plate_uses_placeholder(self, challan_engine, violation_store, make_detection):
        violation_id = violation_store.ingest(make_detection(plateNumber=None))
        violation_store.set_status(violation_id, "verified")

        assert challan_engine.issue(violation_id, "Sneha Reddy").vehicle_number == "UNKNOWN"

    def test_pending_violation_rejected(self, challan_engine, violation_store, make_detection):
        violation_id = violation_store.ingest(make_detection())

        with pytest.raises(InvalidState):
            challan_engine.issue(violation_id, "Rajesh Kumar")

        assert challan_engine.list()[1] == 0
        assert violation_store.get(violation_id).challan_id is None

    def test_rejected_violation_rejected(self, challan_engine, violation_store, make_detection):
        violation_id = violation_store.ingest(make_detection())
        violation_store.set_status(violation_id, "rejected")

        with pytest.raises(InvalidState):
            challan_engine.issue(violation_id, "Rajesh Kumar")

    def test_unknown_violation(self, challan_engine):
        with pytest.raises(NotFound):
            challan_engine.issue("vio-missing", "Rajesh Kumar")

    @pytest.mark.parametrize("owner", ["", "   "])
    def test_blank_owner_rejected(self, challan_engine, verified_violation, owner):
        with pytest.raises(ValidationError):
            challan_engine.issue(verified_violation, owner)

    def test_second_challan_conflicts(self, challan_engine, verified_violation):
        first = challan_engine.issue(verified_violation, "Rajesh Kumar")

        with pytest.raises(Conflict) as exc_info:
            challan_engine.issue(verified_violation, "Rajesh Kumar")

        assert exc_info.value.details["challanId"] == first.id
        assert challan_engine.list()[1] == 1

    def test_cancel_allows_reissue(self, challan_engine, violation_store, verified_violation):
        first = challan_engine.issue(verified_violation, "Rajesh Kumar")
        challan_engine.set_status(first.id, "cancelled")

        assert violation_store.get(verified_violation).challan_id is None

        second = challan_engine.issue(verified_violation, "Rajesh Kumar")

        assert second.id != first.id
        assert second.challan_number == "CH2026021202"
        assert violation_store.get(verified_violation).challan_id == second.id
        assert challan_engine.get(first.id).status == ChallanStatus.CANCELLED


# ============================================
# Penalty Tests
# ============================================

class TestPenalty:
    """Table amounts and overrides"""

    def test_default_table(self, challan_engine):
        assert challan_engine.penalty_for("red_light") == 1000
        assert challan_engine.penalty_for("overspeeding") == 2000
        assert challan_engine.penalty_for("no_helmet") == 1000
        assert challan_engine.penalty_for("wrong_way") == 1500
        assert challan_engine.penalty_for("stop_line") == 500

    def test_override_replaces_table_amount(self, challan_engine, verified_violation):
        challan = challan_engine.issue(verified_violation, "Rajesh Kumar", penalty_override=2500)
        assert challan.penalty_amount == 2500

    @pytest.mark.parametrize("override", [0, -100, True, 12.5])
    def test_invalid_override_rejected(self, challan_engine, verified_violation, override):
        with pytest.raises(ValidationError):
            challan_engine.issue(verified_violation, "Rajesh Kumar", penalty_override=override)

        assert challan_engine.list()[1] == 0

    def test_type_missing_from_table_needs_override(
        self, session_factory, clock, violation_store, verified_violation
    ):
        engine = ChallanEngine(session_factory, penalty_table={"red_light": 1000}, clock=clock)

        with pytest.raises(ValidationError):
            engine.issue(verified_violation, "Rajesh Kumar")

        assert engine.issue(verified_violation, "Rajesh Kumar", penalty_override=1800).penalty_amount == 1800


# ============================================
# Numbering Tests
# ============================================

class TestNumbering:
    """CH + issue date + per-date sequence"""

    def _verified(self, violation_store, make_detection, count):
        ids = []
        for _ in range(count):
            violation_id = violation_store.ingest(make_detection())
            violation_store.set_status(violation_id, "verified")
            ids.append(violation_id)
        return ids

    def test_sequence_increments_per_day(self, challan_engine, violation_store, make_detection):
        ids = self._verified(violation_store, make_detection, 3)

        numbers = [challan_engine.issue(v, "Owner").challan_number for v in ids]

        assert numbers == ["CH2026021201", "CH2026021202", "CH2026021203"]

    def test_sequence_restarts_on_new_day(self, session_factory, violation_store, make_detection):
        now = {"value": datetime(2026, 2, 12, 18, 0, tzinfo=timezone.utc)}
        engine = ChallanEngine(session_factory, clock=Clock("UTC", now_fn=lambda: now["value"]))
        ids = self._verified(violation_store, make_detection, 2)

        first = engine.issue(ids[0], "Owner")
        now["value"] = datetime(2026, 2, 13, 9, 0, tzinfo=timezone.utc)
        second = engine.issue(ids[1], "Owner")

        assert first.challan_number == "CH2026021201"
        assert second.challan_number == "CH2026021301"

    def test_issue_date_uses_configured_timezone(self, session_factory, violation_store, make_detection):
        # 20:00 UTC on the 12th is already the 13th in Kolkata
        clock = Clock("Asia/Kolkata", now_fn=lambda: datetime(2026, 2, 12, 20, 0, tzinfo=timezone.utc))
        engine = ChallanEngine(session_factory, clock=clock)
        violation_id = self._verified(violation_store, make_detection, 1)[0]

        challan = engine.issue(violation_id, "Owner")

        assert challan.issue_date == date(2026, 2, 13)
        assert challan.challan_number == "CH2026021301"

    def test_sequence_widens_past_99(self, challan_engine, session_factory, violation_store, make_detection):
        with session_scope(session_factory) as db:
            db.add(ChallanSequence(issue_date=date(2026, 2, 12), last_value=99))

        violation_id = self._verified(violation_store, make_detection, 1)[0]

        challan = challan_engine.issue(violation_id, "Owner")

        assert challan.challan_number == "CH20260212100"
        assert CHALLAN_NUMBER.match(challan.challan_number)

    def test_format_challan_number(self):
        assert ChallanEngine.format_challan_number(date(2026, 2, 12), 7) == "CH2026021207"

    def test_concurrent_issue_exactly_one_wins(self, challan_engine, verified_violation, session_factory):
        attempts = 8
        results = []
        errors = []
        barrier = threading.Barrier(attempts)

        def issue():
            barrier.wait()
            try:
                results.append(challan_engine.issue(verified_violation, "Rajesh Kumar"))
            except EnforcementError as e:
                errors.append(e)

        threads = [threading.Thread(target=issue) for _ in range(attempts)]
        for t in threads:
            t.start()
        for t in threads:
            t.join()

        assert len(results) == 1
        assert len(errors) == attempts - 1
        assert all(isinstance(e, Conflict) for e in errors)

        with session_scope(session_factory) as db:
            assert db.query(ChallanDB).filter(ChallanDB.violation_id == verified_violation).count() == 1


# ============================================
# Independent Writer Tests
# ============================================

class TestIndependentWriters:
    """Engines that share a store but not a lock, as separate processes do"""

    def _verified(self, violation_store, make_detection, count):
        ids = []
        for _ in range(count):
            violation_id = violation_store.ingest(make_detection())
            violation_store.set_status(violation_id, "verified")
            ids.append(violation_id)
        return ids

    def test_first_challans_of_the_day_all_numbered(
        self, session_factory, clock, violation_store, make_detection
    ):
        attempts = 4
        ids = self._verified(violation_store, make_detection, attempts)
        engines = [ChallanEngine(session_factory, clock=clock) for _ in range(attempts)]
        results = []
        errors = []
        barrier = threading.Barrier(attempts)

        def issue(engine, violation_id):
            barrier.wait()
            try:
                results.append(engine.issue(violation_id, "Owner"))
            except EnforcementError as e:
                errors.append(e)

        threads = [threading.Thread(target=issue, args=pair) for pair in zip(engines, ids)]
        for t in threads:
            t.start()
        for t in threads:
            t.join()

        assert errors == []
        assert sorted(c.challan_number for c in results) == [
            "CH2026021201", "CH2026021202", "CH2026021203", "CH2026021204",
        ]

        with session_scope(session_factory) as db:
            assert db.get(ChallanSequence, date(2026, 2, 12)).last_value == attempts

    def test_numbering_collision_is_retryable(
        self, challan_engine, violation_store, verified_violation, monkeypatch
    ):
        def collide(db, issue_date):
            raise IntegrityError(
                "INSERT INTO challan_sequences", {},
                Exception("UNIQUE constraint failed: challan_sequences.issue_date"),
            )

        monkeypatch.setattr(challan_engine, "_next_sequence", collide)

        with pytest.raises(Unavailable) as exc_info:
            challan_engine.issue(verified_violation, "Rajesh Kumar")

        assert exc_info.value.retryable is True
        assert exc_info.value.code == "UNAVAILABLE"
        assert challan_engine.list()[1] == 0
        assert violation_store.get(verified_violation).challan_id is None

    def test_retry_after_collision_succeeds(self, challan_engine, verified_violation, monkeypatch):
        real_next_sequence = challan_engine._next_sequence
        calls = {"count": 0}

        def collide_once(db, issue_date):
            calls["count"] += 1
            if calls["count"] == 1:
                raise IntegrityError(
                    "INSERT INTO challan_sequences", {},
                    Exception('duplicate key value violates unique constraint "challan_sequences_pkey"'),
                )
            return real_next_sequence(db, issue_date)

        monkeypatch.setattr(challan_engine, "_next_sequence", collide_once)

        with pytest.raises(Unavailable):
            challan_engine.issue(verified_violation, "Rajesh Kumar")

        assert challan_engine.issue(verified_violation, "Rajesh Kumar").challan_number == "CH2026021201"

    def test_active_challan_index_is_conflict(self, challan_engine, verified_violation, monkeypatch):
        challan_engine.issue(verified_violation, "Rajesh Kumar")

        # Another writer committed between the precondition check and the insert
        monkeypatch.setattr(challan_engine, "_active_challan", lambda db, violation_id: None)

        with pytest.raises(Conflict) as exc_info:
            challan_engine.issue(verified_violation, "Rajesh Kumar")

        assert exc_info.value.retryable is False
        assert challan_engine.list()[1] == 1


# ============================================
# Lifecycle Tests
# ============================================

class TestLifecycle:
    """issued -> sent -> paid, issued|sent -> cancelled"""

    @pytest.fixture
    def challan(self, challan_engine, verified_violation):
        return challan_engine.issue(verified_violation, "Rajesh Kumar")

    def test_issued_sent_paid(self, challan_engine, challan):
        assert challan_engine.set_status(challan.id, "sent").status == ChallanStatus.SENT

        paid = challan_engine.set_status(challan.id, ChallanStatus.PAID)

        assert paid.status == ChallanStatus.PAID
        assert paid.updated_at is not None

    def test_cancel_from_sent(self, challan_engine, challan):
        challan_engine.set_status(challan.id, "sent")
        assert challan_engine.set_status(challan.id, "cancelled").status == ChallanStatus.CANCELLED

    def test_paid_directly_from_issued_is_invalid(self, challan_engine, challan):
        with pytest.raises(InvalidTransition):
            challan_engine.set_status(challan.id, "paid")

    @pytest.mark.parametrize("target", ["issued", "sent", "cancelled"])
    def test_paid_is_terminal(self, challan_engine, challan, target):
        challan_engine.set_status(challan.id, "sent")
        challan_engine.set_status(challan.id, "paid")

        with pytest.raises(InvalidTransition):
            challan_engine.set_status(challan.id, target)

    def test_cancelled_is_terminal(self, challan_engine, challan):
        challan_engine.set_status(challan.id, "cancelled")

        with pytest.raises(InvalidTransition):
            challan_engine.set_status(challan.id, "sent")

    def test_cancel_keeps_record(self, challan_engine, challan, violation_store):
        challan_engine.set_status(challan.id, "cancelled")

        assert challan_engine.get(challan.id).status == ChallanStatus.CANCELLED
        assert violation_store.get(challan.violation_id).status == ViolationStatus.VERIFIED

    def test_unknown_challan(self, challan_engine):
        with pytest.raises(NotFound):
            challan_engine.set_status("chl-missing", "sent")
        with pytest.raises(NotFound):
            challan_engine.get("chl-missing")

    def test_unknown_status(self, challan_engine, challan):
        with pytest.raises(ValidationError):
            challan_engine.set_status(challan.id, "overdue")


# ============================================
# Listing Tests
# ============================================

class TestList:

    def test_newest_first_and_status_filter(self, challan_engine, violation_store, make_detection):
        ids = []
        for _ in range(3):
            violation_id = violation_store.ingest(make_detection())
            violation_store.set_status(violation_id, "verified")
            ids.append(violation_id)
        challans = [challan_engine.issue(v, "Owner") for v in ids]
        challan_engine.set_status(challans[0].id, "sent")

        records, total = challan_engine.list()
        assert total == 3
        assert [c.challan_number for c in records] == [
            "CH2026021203", "CH2026021202", "CH2026021201"
        ]

        sent, sent_total = challan_engine.list(ChallanFilter(status="sent"))
        assert sent_total == 1
        assert sent[0].id == challans[0].id

        page, page_total = challan_engine.list(ChallanFilter(limit=1, skip=2))
        assert page_total == 3
        assert [c.id for c in page] == [challans[0].id]
