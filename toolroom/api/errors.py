import logging
from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse

from toolroom.exceptions import (
    InvalidSelectionError, InvalidTransitionError, NotFoundError, PermissionDeniedError,
    ProcurementError, StoreError, ValidationError
)

logger = logging.getLogger(__name__)

STATUS_CODES = {
    ValidationError: 400,
    PermissionDeniedError: 403,
    NotFoundError: 404,
    InvalidTransitionError: 409,
    InvalidSelectionError: 409,
    StoreError: 503,
}

def status_code_for(exc: ProcurementError) -> int:
    for exc_type, status_code in STATUS_CODES.items():
        if isinstance(exc, exc_type):
            return status_code
    return 500

async def procurement_error_handler(request: Request, exc: ProcurementError) -> JSONResponse:
    status_code = status_code_for(exc)
    if status_code >= 500:
        logger.error(f"{request.method} {request.url.path} failed: {exc}")
    body = {"code": exc.code, "detail": str(exc)}
    if isinstance(exc, InvalidSelectionError):
        body["offending"] = exc.offending
    return JSONResponse(status_code=status_code, content=body)

def register_error_handlers(app: FastAPI):
    app.add_exception_handler(ProcurementError, procurement_error_handler)
