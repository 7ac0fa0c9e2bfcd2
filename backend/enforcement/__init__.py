"""
Traffic Violation Review Service

Violation review workflow, challan issuance and dashboard statistics.
"""

__version__ = "1.0.0"
