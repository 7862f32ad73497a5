"""FastAPI exception handlers for converting gateway errors to HTTP responses.

The ErrorCode-to-HTTP status mapping:
- 400 Bad Request: webhook rejected at the boundary (signature, payload)
- 500 Internal Server Error: missing configuration
- 502 Bad Gateway / 503 Service Unavailable: upstream failures, which only
  reach the HTTP layer from admin endpoints; webhook fulfillment failures
  are acknowledged, not raised

Usage:
    from api.exceptions import register_exception_handlers
    register_exception_handlers(app)
"""

import logging

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse
from starlette.status import (
    HTTP_400_BAD_REQUEST,
    HTTP_404_NOT_FOUND,
    HTTP_500_INTERNAL_SERVER_ERROR,
    HTTP_502_BAD_GATEWAY,
    HTTP_503_SERVICE_UNAVAILABLE,
)

from shared.models.errors import (
    ConfigurationError,
    ErrorCode,
    ErrorResponse,
    UpstreamGatewayError,
    WebhookError,
)

logger = logging.getLogger(__name__)

# Map ErrorCode to HTTP status codes
ERROR_CODE_TO_HTTP_STATUS: dict[ErrorCode, int] = {
    ErrorCode.INVALID_WEBHOOK_SIGNATURE: HTTP_400_BAD_REQUEST,
    ErrorCode.MALFORMED_PAYLOAD: HTTP_400_BAD_REQUEST,
    ErrorCode.ORDER_NOT_FOUND: HTTP_404_NOT_FOUND,
    ErrorCode.UPSTREAM_UNAVAILABLE: HTTP_503_SERVICE_UNAVAILABLE,
    ErrorCode.UPSTREAM_ERROR: HTTP_502_BAD_GATEWAY,
    ErrorCode.CONFIGURATION_ERROR: HTTP_500_INTERNAL_SERVER_ERROR,
}


def get_http_status_for_error(code: ErrorCode) -> int:
    """Get HTTP status code for an ErrorCode, defaulting to 400."""
    return ERROR_CODE_TO_HTTP_STATUS.get(code, HTTP_400_BAD_REQUEST)


async def webhook_error_handler(request: Request, exc: WebhookError) -> JSONResponse:
    """Convert a rejected webhook to an ErrorResponse body."""
    return JSONResponse(
        status_code=get_http_status_for_error(exc.code),
        content=exc.to_error_response().model_dump(mode="json"),
    )


async def upstream_error_handler(request: Request, exc: UpstreamGatewayError) -> JSONResponse:
    """Convert an upstream failure (Fragment, Telegram) to 502/503."""
    logger.error("Upstream failure on %s: %s", request.url.path, exc)
    body = ErrorResponse.from_code(exc.code, {"service": exc.service})
    return JSONResponse(
        status_code=get_http_status_for_error(exc.code),
        content=body.model_dump(mode="json"),
    )


async def configuration_error_handler(request: Request, exc: ConfigurationError) -> JSONResponse:
    """Missing secrets are reported to operators, not to callers."""
    logger.error("Configuration error on %s: %s", request.url.path, exc)
    body = ErrorResponse.from_code(ErrorCode.CONFIGURATION_ERROR)
    return JSONResponse(
        status_code=HTTP_500_INTERNAL_SERVER_ERROR,
        content=body.model_dump(mode="json"),
    )


def register_exception_handlers(app: FastAPI) -> None:
    """Register all exception handlers with the FastAPI app.

    Args:
        app: The FastAPI application instance.
    """
    app.add_exception_handler(WebhookError, webhook_error_handler)  # type: ignore[arg-type]
    app.add_exception_handler(UpstreamGatewayError, upstream_error_handler)  # type: ignore[arg-type]
    app.add_exception_handler(ConfigurationError, configuration_error_handler)  # type: ignore[arg-type]
