"""
Shared fixtures: a fresh SQLite record store per test and a fixed clock.
"""

from datetime import datetime, timezone

import pytest

from enforcement.challan import (
    ChallanEngine,
    Clock,
    ReviewWorkflow,
    StatsAggregator,
    TelemetryRegistry,
    ViolationStore,
)
from enforcement.database import create_session_factory, create_store_engine, init_db


# 2026-02-12 10:30 UTC
FIXED_NOW = datetime(2026, 2, 12, 10, 30, tzinfo=timezone.utc)


@pytest.fixture
def engine(tmp_path):
    """SQLite file database with all tables created"""
    engine = create_store_engine(f"sqlite:///{tmp_path / 'enforcement_test.db'}", timeout=5.0)
    init_db(engine)
    yield engine
    engine.dispose()


@pytest.fixture
def session_factory(engine):
    return create_session_factory(engine)


@pytest.fixture
def clock():
    return Clock("UTC", now_fn=lambda: FIXED_NOW)


@pytest.fixture
def violation_store(session_factory, clock):
    return ViolationStore(session_factory, clock)


@pytest.fixture
def challan_engine(session_factory, clock):
    return ChallanEngine(session_factory, clock=clock)


@pytest.fixture
def telemetry():
    return TelemetryRegistry()


@pytest.fixture
def stats_aggregator(session_factory, telemetry, clock):
    return StatsAggregator(session_factory, telemetry, clock)


@pytest.fixture
def workflow(violation_store, challan_engine, stats_aggregator):
    return ReviewWorkflow(violation_store, challan_engine, stats_aggregator)


@pytest.fixture
def make_detection():
    """Build a raw detection dict (camelCase, as sent by the detection service)"""
    def _make(**overrides):
        detection = {
            "trackId": 101,
            "violationType": "red_light",
            "vehicleType": "car",
            "plateNumber": "MH-12-AB-1234",
            "timestamp": "2026-02-12T08:23:45",
            "frameNumber": 1420,
            "confidence": 0.985,
            "camera": "Camera 1 - Main Square",
            "details": {"line_y": 350, "vehicle_y": 380},
        }
        detection.update(overrides)
        return detection
    return _make


@pytest.fixture
def verified_violation(violation_store, make_detection):
    """Id of an overspeeding violation that has been verified"""
    violation_id = violation_store.ingest(make_detection(
        violationType="overspeeding",
        confidence=0.982,
        details={"speed_kph": 82.4, "speed_limit": 50},
    ))
    violation_store.set_status(violation_id, "verified")
    return violation_id
