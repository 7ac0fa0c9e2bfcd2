"""
Statistics Aggregator Tests

Tests dashboard and report metrics, telemetry merging and store failure
surfacing.
"""

import random
from datetime import datetime, timezone
from unittest.mock import MagicMock

import pytest
from sqlalchemy.exc import OperationalError

from enforcement.challan import Clock, StatsAggregator, TelemetryRegistry
from enforcement.errors import StoreTimeout, Unavailable


# ============================================
# Dashboard Tests
# ============================================

class TestDashboardStats:
    """Header card metrics"""

    def test_empty_store_is_all_zeros(self, stats_aggregator):
        stats = stats_aggregator.compute_dashboard_stats()

        assert stats.total_violations_today == 0
        assert stats.pending_challans == 0
        assert stats.pending_review == 0
        assert stats.processed_challans == 0

    def test_unknown_telemetry_is_null(self, stats_aggregator):
        stats = stats_aggregator.compute_dashboard_stats()

        assert stats.active_cameras is None
        assert stats.system_uptime is None
        assert stats.detection_accuracy is None

    def test_counts_only_todays_violations(self, stats_aggregator, violation_store, make_detection):
        violation_store.ingest(make_detection(timestamp="2026-02-12T00:00:00"))
        violation_store.ingest(make_detection(timestamp="2026-02-12T09:59:59"))
        violation_store.ingest(make_detection(timestamp="2026-02-11T23:59:59"))
        violation_store.ingest(make_detection(timestamp="2026-02-13T00:00:00"))

        assert stats_aggregator.compute_dashboard_stats().total_violations_today == 2

    def test_today_follows_configured_timezone(self, session_factory, violation_store, make_detection):
        # 20:00 UTC on the 12th is 01:30 on the 13th in Kolkata
        clock = Clock("Asia/Kolkata", now_fn=lambda: datetime(2026, 2, 12, 20, 0, tzinfo=timezone.utc))
        aggregator = StatsAggregator(session_factory, clock=clock)

        violation_store.ingest(make_detection(timestamp="2026-02-12T19:00:00+00:00"))  # 13th local
        violation_store.ingest(make_detection(timestamp="2026-02-12T18:00:00+00:00"))  # 12th local

        assert aggregator.compute_dashboard_stats().total_violations_today == 1

    def test_pending_review_and_pending_challans(
        self, stats_aggregator, violation_store, challan_engine, make_detection
    ):
        violation_store.ingest(make_detection())
        verified_a = violation_store.ingest(make_detection())
        verified_b = violation_store.ingest(make_detection())
        rejected = violation_store.ingest(make_detection())
        violation_store.set_status(verified_a, "verified")
        violation_store.set_status(verified_b, "verified")
        violation_store.set_status(rejected, "rejected")
        challan_engine.issue(verified_a, "Owner")

        stats = stats_aggregator.compute_dashboard_stats()

        assert stats.pending_review == 1
        assert stats.pending_challans == 1

    def test_cancelled_challan_puts_violation_back_in_pending(
        self, stats_aggregator, challan_engine, verified_violation
    ):
        challan = challan_engine.issue(verified_violation, "Owner")
        assert stats_aggregator.compute_dashboard_stats().pending_challans == 0

        challan_engine.set_status(challan.id, "cancelled")

        assert stats_aggregator.compute_dashboard_stats().pending_challans == 1

    def test_processed_matches_sent_and_paid(
        self, stats_aggregator, violation_store, challan_engine, make_detection
    ):
        rng = random.Random(20260212)
        expected = 0

        for _ in range(12):
            violation_id = violation_store.ingest(make_detection())
            violation_store.set_status(violation_id, "verified")
            challan = challan_engine.issue(violation_id, "Owner")

            steps = rng.choice([[], ["sent"], ["sent", "paid"], ["cancelled"], ["sent", "cancelled"]])
            for step in steps:
                challan_engine.set_status(challan.id, step)
            if steps and steps[-1] in ("sent", "paid"):
                expected += 1

        assert stats_aggregator.compute_dashboard_stats().processed_challans == expected

    def test_telemetry_values_reported(self, session_factory, clock):
        telemetry = TelemetryRegistry({"activeCameras": 12, "systemUptime": "99.7%"})
        aggregator = StatsAggregator(session_factory, telemetry, clock)

        stats = aggregator.compute_dashboard_stats()

        assert stats.active_cameras == 12
        assert stats.system_uptime == "99.7%"
        assert stats.detection_accuracy is None


# ============================================
# Telemetry Registry Tests
# ============================================

class TestTelemetryRegistry:

    def test_partial_update_merges(self):
        registry = TelemetryRegistry({"activeCameras": 10})

        snapshot = registry.update({"detectionAccuracy": 94.5})

        assert snapshot.active_cameras == 10
        assert snapshot.detection_accuracy == 94.5

    def test_update_overwrites_known_field(self):
        registry = TelemetryRegistry({"activeCameras": 10})
        registry.update({"activeCameras": 11})

        assert registry.snapshot().active_cameras == 11


# ============================================
# Report Tests
# ============================================

class TestReportStats:
    """Breakdowns for the reports page"""

    def test_empty_store_zero_filled(self, stats_aggregator):
        report = stats_aggregator.compute_report_stats()

        assert report.violations_by_type == {
            "red_light": 0, "overspeeding": 0, "no_helmet": 0, "wrong_way": 0, "stop_line": 0
        }
        assert report.challans_by_status == {"issued": 0, "sent": 0, "paid": 0, "cancelled": 0}
        assert len(report.hourly_violations_today) == 24
        assert all(h.violations == 0 for h in report.hourly_violations_today)
        assert report.violations_by_camera == {}
        assert report.revenue_collected == 0
        assert report.revenue_pending == 0

    def test_breakdowns(self, stats_aggregator, violation_store, challan_engine, make_detection):
        violation_store.ingest(make_detection(timestamp="2026-02-12T08:15:00"))
        violation_store.ingest(make_detection(timestamp="2026-02-12T08:45:00", camera="Camera 2"))
        violation_store.ingest(make_detection(
            violationType="no_helmet", timestamp="2026-02-11T08:45:00", details=None,
        ))

        paid = violation_store.ingest(make_detection(
            violationType="overspeeding",
            timestamp="2026-02-12T09:10:00",
            details={"speed_kph": 75, "speed_limit": 50},
        ))
        issued = violation_store.ingest(make_detection(timestamp="2026-02-12T09:20:00"))
        for violation_id in (paid, issued):
            violation_store.set_status(violation_id, "verified")

        paid_challan = challan_engine.issue(paid, "Owner")
        challan_engine.set_status(paid_challan.id, "sent")
        challan_engine.set_status(paid_challan.id, "paid")
        challan_engine.issue(issued, "Owner")

        report = stats_aggregator.compute_report_stats()

        assert report.violations_by_type["red_light"] == 3
        assert report.violations_by_type["no_helmet"] == 1
        assert report.violations_by_type["overspeeding"] == 1
        assert report.violations_by_camera == {"Camera 1 - Main Square": 4, "Camera 2": 1}
        assert report.hourly_violations_today[8].violations == 2
        assert report.hourly_violations_today[9].violations == 2
        assert sum(h.violations for h in report.hourly_violations_today) == 4
        assert report.challans_by_status["paid"] == 1
        assert report.challans_by_status["issued"] == 1
        assert report.revenue_collected == 2000
        assert report.revenue_pending == 1000


# ============================================
# Store Failure Tests
# ============================================

class TestStoreFailures:
    """Store failures surface as retryable errors, never as zeros"""

    def _failing_factory(self, message):
        session = MagicMock()
        session.query.side_effect = OperationalError("SELECT count(*)", {}, Exception(message))
        return MagicMock(return_value=session)

    def test_unreachable_store(self, clock):
        aggregator = StatsAggregator(self._failing_factory("unable to open database file"), clock=clock)

        with pytest.raises(Unavailable) as exc_info:
            aggregator.compute_dashboard_stats()

        assert exc_info.value.retryable is True
        assert exc_info.value.code == "UNAVAILABLE"

    def test_locked_store_times_out(self, clock):
        aggregator = StatsAggregator(self._failing_factory("database is locked"), clock=clock)

        with pytest.raises(StoreTimeout) as exc_info:
            aggregator.compute_report_stats()

        assert exc_info.value.retryable is True
        assert exc_info.value.code == "TIMEOUT"

    def test_session_rolled_back_and_closed(self, clock):
        factory = self._failing_factory("connection refused")
        aggregator = StatsAggregator(factory, clock=clock)

        with pytest.raises(Unavailable):
            aggregator.compute_dashboard_stats()

        session = factory.return_value
        session.rollback.assert_called_once()
        session.close.assert_called_once()
        session.commit.assert_not_called()
