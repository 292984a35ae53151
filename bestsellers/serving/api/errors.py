"""
API Error Handlers

Maps ranking engine errors to HTTP responses with a
{"error": ..., "detail": ...} body.
"""

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse
import structlog

from bestsellers.ranking.exceptions import (
    BestSellersError,
    DataSourceError,
    InvalidArgument,
    OperationTimeout,
    RecomputeInProgress,
)

logger = structlog.get_logger(__name__)

STATUS_CODES = [
    (InvalidArgument, 400),
    (RecomputeInProgress, 409),
    (DataSourceError, 503),
    (OperationTimeout, 504),
]


def status_code_for(exc: BestSellersError) -> int:
    for error_type, status_code in STATUS_CODES:
        if isinstance(exc, error_type):
            return status_code
    return 500


async def best_sellers_error_handler(request: Request, exc: BestSellersError) -> JSONResponse:
    status_code = status_code_for(exc)
    log = logger.error if status_code >= 500 else logger.warning
    log(
        "Request failed",
        path=request.url.path,
        status_code=status_code,
        error_type=type(exc).__name__,
        error=str(exc),
    )
    return JSONResponse(
        status_code=status_code,
        content={"error": type(exc).__name__, "detail": str(exc)},
    )


def register_exception_handlers(app: FastAPI) -> None:
    app.add_exception_handler(BestSellersError, best_sellers_error_handler)
