"""
Violation Review and Challan Issuance (core)

Components:
- ViolationStore: detections and their review status
- ChallanEngine: challan issuance and payment lifecycle
- StatsAggregator: dashboard and report metrics
- ReviewWorkflow: validated operation surface over the three

Usage:
    from enforcement.challan import init_review_workflow

    workflow = init_review_workflow(session_factory, get_config())
    workflow.review_violation(violation_id, "verified")
    challan = workflow.issue_challan(violation_id, "Rajesh Kumar")
"""

from .clock import Clock

from .violation_store import ViolationStore

from .challan_engine import ChallanEngine

from .stats_aggregator import (
    StatsAggregator,
    TelemetryRegistry,
)

from .review_workflow import (
    ReviewWorkflow,
    build_review_workflow,
    init_review_workflow,
    set_review_workflow,
    get_review_workflow,
)


__all__ = [
    "Clock",
    "ViolationStore",
    "ChallanEngine",
    "StatsAggregator",
    "TelemetryRegistry",
    "ReviewWorkflow",
    "build_review_workflow",
    "init_review_workflow",
    "set_review_workflow",
    "get_review_workflow",
]
