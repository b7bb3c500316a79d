# ==== WEBHOOK SIGNATURES ==== #

"""
HMAC-SHA256 webhook signatures shared by inbound and outbound webhooks.

Both directions use the header ``X-Webhook-Signature: sha256=<hex>`` computed
over the exact body bytes. Inbound liquidity webhooks and outbound merchant
webhooks use distinct secrets.
"""

import hashlib
import hmac

from fastapi import Header, Request

from onramp.errors import WebhookSignatureError
from onramp.settings import settings


SIGNATURE_HEADER = "X-Webhook-Signature"
SIGNATURE_PREFIX = "sha256="


def sign_payload(body: bytes, secret: str) -> str:
    """
    Compute the signature header value for a body.

    Args:
        body (bytes): Exact bytes that are (or were) sent on the wire
        secret (str): Shared signing secret

    Returns:
        str: ``sha256=<hex digest>``
    """
    digest = hmac.new(secret.encode(), body, hashlib.sha256).hexdigest()
    return SIGNATURE_PREFIX + digest


def verify_signature(body: bytes, signature: str | None, secret: str) -> bool:
    """Constant-time check of a signature header against the body."""
    if not signature or not signature.startswith(SIGNATURE_PREFIX):
        return False
    # Header values are latin-1 decoded and may hold non-ASCII characters
    return hmac.compare_digest(
        sign_payload(body, secret).encode(), signature.strip().encode("latin-1", errors="replace")
    )


async def require_liquidity_signature(
    request: Request,
    x_webhook_signature: str | None = Header(None),
) -> bytes:
    """
    FastAPI dependency verifying an inbound liquidity-provider webhook.

    Verification runs over the raw body before any parsing so a request
    with a bad signature never reaches payload validation or the database.

    Returns:
        bytes: The verified raw body

    Raises:
        WebhookSignatureError: Signature missing or not matching
    """
    body = await request.body()
    if not verify_signature(body, x_webhook_signature, settings.LIQUIDITY_WEBHOOK_SECRET):
        raise WebhookSignatureError("Invalid webhook signature")
    return body
