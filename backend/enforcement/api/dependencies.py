"""
Shared FastAPI dependencies and error envelope
"""

import logging

from fastapi import FastAPI, Request
from fastapi.encoders import jsonable_encoder
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse

from enforcement.challan import ReviewWorkflow, get_review_workflow
from enforcement.errors import EnforcementError, Unavailable, ValidationError

logger = logging.getLogger(__name__)


def get_workflow() -> ReviewWorkflow:
    """Dependency for FastAPI - provides the review workflow"""
    workflow = get_review_workflow()
    if workflow is None:
        raise Unavailable("Review service is not initialized")
    return workflow


def error_response(error: EnforcementError) -> JSONResponse:
    return JSONResponse(
        status_code=error.http_status,
        content={"error": jsonable_encoder(error.to_dict())},
    )


async def enforcement_error_handler(request: Request, exc: EnforcementError) -> JSONResponse:
    if exc.retryable:
        logger.error("%s %s failed: %s", request.method, request.url.path, exc.message)
    return error_response(exc)


async def request_validation_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    errors = exc.errors()
    fields = [".".join(str(p) for p in err.get("loc", ()) if p != "body") for err in errors]
    return error_response(ValidationError(
        f"Invalid request: {', '.join(f for f in fields if f) or 'body'}",
        {"errors": [{"field": f, "message": err.get("msg")} for f, err in zip(fields, errors)]},
    ))


def register_error_handlers(app: FastAPI):
    """Map every EnforcementError and request-shape error onto one envelope"""
    app.add_exception_handler(EnforcementError, enforcement_error_handler)
    app.add_exception_handler(RequestValidationError, request_validation_handler)
