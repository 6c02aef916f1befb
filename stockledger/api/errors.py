"""
Exception handlers mapping ledger errors onto JSON responses
"""
from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
import logging

from stockledger.core.exceptions import StockLedgerError, ValidationError

logger = logging.getLogger(__name__)

GENERIC_SERVER_ERROR_MESSAGE = "Internal server error"
REQUEST_LOCATIONS = ("body", "query", "path")


async def stock_ledger_error_handler(request: Request, exc: StockLedgerError):
    if exc.status_code >= 500:
        logger.error(f"{request.method} {request.url.path} failed: {exc.message}", exc_info=exc)
    else:
        logger.info(f"{request.method} {request.url.path} rejected: {exc.code} - {exc.message}")
    return JSONResponse(status_code=exc.status_code, content=exc.to_dict())


async def request_validation_error_handler(request: Request, exc: RequestValidationError):
    """Malformed requests get the same envelope as domain validation errors"""
    errors = {}
    for error in exc.errors():
        loc = list(error.get("loc", ()))
        if loc and loc[0] in REQUEST_LOCATIONS:
            loc = loc[1:]
        field = ".".join(str(part) for part in loc) or "request"
        errors.setdefault(field, error.get("msg", "Invalid value"))

    logger.info(f"{request.method} {request.url.path} rejected: invalid request {errors}")
    failure = ValidationError("Validation failed", errors)
    return JSONResponse(status_code=failure.status_code, content=failure.to_dict())


async def unhandled_error_handler(request: Request, exc: Exception):
    logger.exception(f"Unhandled error on {request.method} {request.url.path}", exc_info=exc)
    return JSONResponse(
        status_code=500,
        content={"success": False, "code": "internal_server_error", "message": GENERIC_SERVER_ERROR_MESSAGE},
    )


def register_exception_handlers(app: FastAPI) -> None:
    app.add_exception_handler(StockLedgerError, stock_ledger_error_handler)
    app.add_exception_handler(RequestValidationError, request_validation_error_handler)
    app.add_exception_handler(Exception, unhandled_error_handler)
