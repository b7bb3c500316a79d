# ==== BUSINESS CONTEXT MIDDLEWARE ==== #

"""
Business context middleware for merchant request scoping.

Merchant authentication (API keys, JWT) happens upstream; requests reach the
engine with the resolved merchant identity in the ``X-Business-Id`` header.
This middleware validates the header and injects the id into the request
scope. Liquidity-provider webhooks and operational endpoints are exempt.
"""

import json

from fastapi import Request
from starlette.types import ASGIApp, Receive, Scope, Send

from onramp.business.reason_codes import ErrorCode


BUSINESS_HEADER = b"x-business-id"

# Path prefixes that do not carry a merchant identity
EXEMPT_PREFIXES = (
    "/healthz",
    "/readyz",
    "/info",
    "/metrics",
    "/docs",
    "/redoc",
    "/openapi.json",
    "/api/v1/liquidity-webhook",
)


def get_business_id(request: Request) -> str | None:
    """Business id injected by BusinessContextMiddleware, if any."""
    return request.scope.get("business_id")


class BusinessContextMiddleware:
    """Extract and validate the calling business id for merchant routes."""

    def __init__(self, app: ASGIApp, require_business: bool = True):
        self.app = app
        self.require_business = require_business

    async def __call__(self, scope: Scope, receive: Receive, send: Send) -> None:
        if scope["type"] != "http":
            await self.app(scope, receive, send)
            return

        # CORS preflight never carries credentials
        if scope["method"] == "OPTIONS" or scope["path"].startswith(EXEMPT_PREFIXES):
            await self.app(scope, receive, send)
            return

        headers = dict(scope["headers"])
        raw_business_id = headers.get(BUSINESS_HEADER)
        # Latin-1 maps every byte, so arbitrary header bytes reach validation
        business_id = raw_business_id.decode("latin-1") if raw_business_id is not None else None

        if self.require_business and not business_id:
            await self._send_error_response(send, 401, "Missing X-Business-Id header")
            return

        if business_id and not self._is_valid_business_id(business_id):
            await self._send_error_response(send, 400, "Invalid X-Business-Id format")
            return

        scope["business_id"] = business_id or None
        await self.app(scope, receive, send)

    async def _send_error_response(self, send: Send, status: int, message: str) -> None:
        """Send a JSON error response directly through ASGI."""
        code = ErrorCode.UNKNOWN_BUSINESS if status == 401 else ErrorCode.INVALID_REQUEST
        body = json.dumps({"success": False, "message": message, "code": code.value})
        await send({
            "type": "http.response.start",
            "status": status,
            "headers": [[b"content-type", b"application/json"]],
        })
        await send({"type": "http.response.body", "body": body.encode()})

    def _is_valid_business_id(self, business_id: str) -> bool:
        if not business_id or len(business_id) > 64 or not business_id.isascii():
            return False
        # Alphanumeric characters, hyphens and underscores only
        return all(c.isalnum() or c in "-_" for c in business_id)
