"""Standard error codes for the payment webhook gateway.

Webhook-boundary failures (bad signature, unparsable body) are raised as
WebhookError and converted to HTTP 4xx by the API layer. Upstream failures
(Fragment, Telegram) are raised as UpstreamGatewayError and are handled by the
fulfillment orchestrator, never by the HTTP layer of a webhook.
"""

from enum import Enum
from typing import Optional

from pydantic import BaseModel, ConfigDict


class ErrorCode(str, Enum):
    """Standard gateway error codes."""

    # Webhook boundary (ERR_WH_001-ERR_WH_003)
    INVALID_WEBHOOK_SIGNATURE = "ERR_WH_001"
    MALFORMED_PAYLOAD = "ERR_WH_002"
    ORDER_NOT_FOUND = "ERR_WH_003"

    # Upstream collaborators (ERR_UP_001-ERR_UP_002)
    UPSTREAM_UNAVAILABLE = "ERR_UP_001"
    UPSTREAM_ERROR = "ERR_UP_002"

    # Process configuration
    CONFIGURATION_ERROR = "ERR_CFG_001"


# Human-readable error messages
ERROR_MESSAGES: dict[ErrorCode, str] = {
    ErrorCode.INVALID_WEBHOOK_SIGNATURE: "Invalid webhook signature",
    ErrorCode.MALFORMED_PAYLOAD: "Malformed webhook payload",
    ErrorCode.ORDER_NOT_FOUND: "Order not found",
    ErrorCode.UPSTREAM_UNAVAILABLE: "Upstream service is unavailable",
    ErrorCode.UPSTREAM_ERROR: "Upstream service returned an error",
    ErrorCode.CONFIGURATION_ERROR: "Gateway is misconfigured",
}

# Recovery suggestions for operators
ERROR_RECOVERY: dict[ErrorCode, str] = {
    ErrorCode.INVALID_WEBHOOK_SIGNATURE: "Verify provider keys and that the raw body is forwarded unmodified",
    ErrorCode.MALFORMED_PAYLOAD: "Check the provider payload format",
    ErrorCode.ORDER_NOT_FOUND: "Order expired or was created by another process; reconcile manually",
    ErrorCode.UPSTREAM_UNAVAILABLE: "Retry later; the provider will re-deliver the webhook",
    ErrorCode.UPSTREAM_ERROR: "Inspect the upstream response and retry the order manually",
    ErrorCode.CONFIGURATION_ERROR: "Set the missing environment variable or SSM parameter",
}


class ErrorResponse(BaseModel):
    """Standard error body returned by the API for rejected requests."""

    model_config = ConfigDict(strict=True)

    success: bool = False
    error_code: ErrorCode
    message: str
    recovery: str
    details: Optional[dict[str, str]] = None

    @classmethod
    def from_code(
        cls,
        code: ErrorCode,
        details: Optional[dict[str, str]] = None,
    ) -> "ErrorResponse":
        """Create an ErrorResponse from an error code.

        Args:
            code: The error code
            details: Optional additional context about the error

        Returns:
            An ErrorResponse with the message and recovery hint for the code.
        """
        return cls(
            error_code=code,
            message=ERROR_MESSAGES[code],
            recovery=ERROR_RECOVERY[code],
            details=details,
        )


class WebhookError(Exception):
    """Raised when an inbound webhook is rejected at the boundary.

    Converted to an HTTP 4xx by the API exception handlers.
    """

    def __init__(
        self,
        code: ErrorCode,
        details: Optional[dict[str, str]] = None,
    ):
        self.code = code
        self.message = ERROR_MESSAGES[code]
        self.recovery = ERROR_RECOVERY[code]
        self.details = details
        super().__init__(self.message)

    def to_error_response(self) -> ErrorResponse:
        """Convert this exception to an ErrorResponse body."""
        return ErrorResponse.from_code(self.code, self.details)


class UpstreamGatewayError(Exception):
    """Raised when a collaborator API (Fragment, Telegram) fails.

    Carries a human-readable cause and, when the upstream answered, its HTTP
    status code.
    """

    code = ErrorCode.UPSTREAM_ERROR

    def __init__(
        self,
        service: str,
        message: str,
        status_code: int | None = None,
    ) -> None:
        super().__init__(message)
        self.service = service
        self.message = message
        self.status_code = status_code

    def __str__(self) -> str:
        return f"{self.service}: {self.message}"


class UpstreamUnavailableError(UpstreamGatewayError):
    """Timeout or connection failure talking to a collaborator API."""

    code = ErrorCode.UPSTREAM_UNAVAILABLE


class ConfigurationError(Exception):
    """Raised when a required setting or secret cannot be resolved."""

    code = ErrorCode.CONFIGURATION_ERROR
