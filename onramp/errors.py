# ==== ONRAMP ERROR HIERARCHY ==== #

"""
Exception hierarchy for the onramp order engine.

Every error that may reach the API boundary derives from OnrampError and
carries a machine-readable code, an HTTP status and optional details. The
application registers a single handler that renders them.
"""

from typing import Any, Dict, Optional

from onramp.business.reason_codes import ErrorCode, TokenSupportReason


class OnrampError(Exception):
    """Base error rendered as a structured JSON response."""
    
    status_code: int = 500
    default_code: str = ErrorCode.INTERNAL_ERROR.value
    
    def __init__(
        self,
        message: str,
        code: Optional[str] = None,
        status_code: Optional[int] = None,
        details: Optional[Dict[str, Any]] = None,
    ):
        super().__init__(message)
        self.message = message
        self.code = code or self.default_code
        if status_code is not None:
            self.status_code = status_code
        self.details = details
    
    def to_dict(self) -> Dict[str, Any]:
        body: Dict[str, Any] = {
            "success": False,
            "message": self.message,
            "code": self.code,
        }
        if self.details:
            body["details"] = self.details
        return body


class OrderValidationError(OnrampError):
    """Request input failed a business rule (amount bounds, network config)."""
    
    status_code = 400
    default_code = ErrorCode.INVALID_REQUEST.value


class TokenRejectedError(OnrampError):
    """Token support verdict rejected the order or quote."""
    
    status_code = 400
    default_code = TokenSupportReason.VALIDATION_ERROR.value


class PricingError(OnrampError):
    """A price could not be resolved from any permitted source."""
    
    status_code = 500
    default_code = ErrorCode.PRICE_CALCULATION_FAILED.value


class PaymentLinkError(OnrampError):
    """The hosted fiat payment link could not be issued."""
    
    status_code = 500
    default_code = ErrorCode.PAYMENT_LINK_FAILED.value


class OrderNotFoundError(OnrampError):
    """No order matched the given identifier."""
    
    status_code = 404
    default_code = ErrorCode.ORDER_NOT_FOUND.value


class UnknownBusinessError(OnrampError):
    """The calling merchant could not be resolved."""
    
    status_code = 401
    default_code = ErrorCode.UNKNOWN_BUSINESS.value


class WebhookSignatureError(OnrampError):
    """Inbound webhook signature missing or invalid."""
    
    status_code = 401
    default_code = ErrorCode.INVALID_WEBHOOK_SIGNATURE.value


class WebhookPayloadError(OnrampError):
    """Inbound webhook body is not a valid payload for its channel."""
    
    status_code = 400
    default_code = ErrorCode.INVALID_WEBHOOK_PAYLOAD.value


class OrderConflictError(OnrampError):
    """Requested transition conflicts with the order's terminal state."""
    
    status_code = 409
    default_code = ErrorCode.ORDER_ALREADY_FINALIZED.value
