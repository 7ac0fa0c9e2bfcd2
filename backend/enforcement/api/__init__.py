"""
API Routes Package

This module exports all FastAPI routers for the violation review service.
"""

from .violation_routes import router as violation_router
from .challan_routes import router as challan_router
from .stats_routes import router as stats_router
from .dependencies import get_workflow, register_error_handlers

__all__ = [
    "violation_router",
    "challan_router",
    "stats_router",
    "get_workflow",
    "register_error_handlers",
]
