from fastapi import Request
from fastapi.responses import JSONResponse
from fastapi.exceptions import RequestValidationError
from starlette import status
from exchangerate.core.logging import get_logger

from exchangerate.services.errors import (
    ExchangeRateError,
    InactiveAccountError,
    InvalidKeyError,
    MalformedRequestError,
    MissingApiKeyError,
    QuotaReachedError,
    UnsupportedCodeError,
)

logger = get_logger("errors")

_STATUS_BY_ERROR = {
    UnsupportedCodeError: status.HTTP_400_BAD_REQUEST,
    MalformedRequestError: status.HTTP_400_BAD_REQUEST,
    MissingApiKeyError: status.HTTP_401_UNAUTHORIZED,
    InvalidKeyError: status.HTTP_401_UNAUTHORIZED,
    InactiveAccountError: status.HTTP_403_FORBIDDEN,
    QuotaReachedError: status.HTTP_429_TOO_MANY_REQUESTS,
}


def http_error_handler(request: Request, exc):  # type: ignore
    code = getattr(exc, "status_code", status.HTTP_404_NOT_FOUND)
    detail = getattr(exc, "detail", None)
    if code != status.HTTP_404_NOT_FOUND:
        return JSONResponse(
            status_code=code, content={"error": "http_error", "detail": detail}
        )
    if detail in (None, "Not Found"):
        detail = f"No route for {request.method} {request.url.path}"
    return JSONResponse(
        status_code=status.HTTP_404_NOT_FOUND,
        content={"error": "not_found", "detail": detail},
    )


def validation_error_handler(request: Request, exc: RequestValidationError):  # type: ignore
    return JSONResponse(
        status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
        content={
            "error": "validation_error",
            "detail": exc.errors(),
        },
    )


def upstream_error_handler(request: Request, exc: ExchangeRateError):  # type: ignore
    code = _STATUS_BY_ERROR.get(type(exc), status.HTTP_502_BAD_GATEWAY)
    logger.warning("upstream request failed: %s", exc)
    return JSONResponse(
        status_code=code,
        content={"error": exc.error_type, "detail": str(exc)},
    )


def server_error_handler(request: Request, exc: Exception):  # type: ignore
    logger.exception("unhandled exception")
    return JSONResponse(
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        content={
            "error": "internal_error",
            "detail": "An unexpected error occurred.",
        },
    )
