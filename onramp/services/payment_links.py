# ==== HOSTED PAYMENT LINK PROVIDER ==== #

"""
Monnify client issuing hosted fiat payment-collection links.

Login uses HTTP basic auth with the API key and secret; the returned bearer
token is cached until shortly before it expires. Transactions are initialised
with the merchant-facing order reference as the payment reference.
"""

import base64
import datetime as dt
from dataclasses import dataclass
from decimal import Decimal
from typing import Any, Dict, Optional

import httpx

from onramp.errors import PaymentLinkError
from onramp.observability.logging import get_logger
from onramp.settings import settings


logger = get_logger(__name__)

# Used when the login response carries no expiresIn
DEFAULT_TOKEN_LIFETIME = dt.timedelta(hours=5)
TOKEN_REFRESH_MARGIN = dt.timedelta(seconds=60)
PAYMENT_METHODS = ["CARD", "ACCOUNT_TRANSFER", "USSD"]


@dataclass(frozen=True)
class PaymentLink:
    checkout_url: str
    payment_reference: str
    transaction_reference: Optional[str] = None


class MonnifyClient:
    """Payment link provider backed by the Monnify merchant API."""

    def __init__(
        self,
        base_url: str | None = None,
        api_key: str | None = None,
        secret_key: str | None = None,
        contract_code: str | None = None,
        *,
        timeout: float | None = None,
    ):
        self.base_url = (base_url or settings.MONNIFY_BASE_URL).rstrip("/")
        self.api_key = api_key or settings.MONNIFY_API_KEY
        self.secret_key = secret_key or settings.MONNIFY_SECRET_KEY
        self.contract_code = contract_code or settings.MONNIFY_CONTRACT_CODE
        self.timeout = timeout or settings.PAYMENT_LINK_TIMEOUT_SECONDS

        self._access_token: Optional[str] = None
        self._token_expires_at: Optional[dt.datetime] = None

    async def _get_access_token(self, client: httpx.AsyncClient) -> str:
        now = dt.datetime.now(dt.timezone.utc)
        if self._access_token and self._token_expires_at and now < self._token_expires_at:
            return self._access_token

        if not self.api_key or not self.secret_key:
            raise PaymentLinkError("Payment provider credentials are not configured")

        credentials = base64.b64encode(f"{self.api_key}:{self.secret_key}".encode()).decode()
        response = await client.post(
            f"{self.base_url}/api/v1/auth/login",
            headers={"Authorization": f"Basic {credentials}"},
        )
        response.raise_for_status()
        body = response.json().get("responseBody") or {}
        token = body.get("accessToken")
        if not token:
            raise PaymentLinkError("Payment provider login returned no access token")

        expires_in = body.get("expiresIn")
        lifetime = dt.timedelta(seconds=int(expires_in)) if expires_in else DEFAULT_TOKEN_LIFETIME
        self._access_token = token
        self._token_expires_at = now + lifetime - TOKEN_REFRESH_MARGIN
        return token

    async def create_payment_link(
        self,
        *,
        amount: Decimal,
        reference: str,
        customer_name: str,
        customer_email: str,
        redirect_url: str | None = None,
    ) -> PaymentLink:
        """
        Initialise a hosted checkout for an order.

        Args:
            amount: Fiat amount to collect
            reference: Merchant-facing order reference used as payment reference
            customer_name: Payer name shown on checkout
            customer_email: Payer email
            redirect_url: Where the payer lands after checkout

        Returns:
            PaymentLink: Checkout URL and provider references

        Raises:
            PaymentLinkError: Provider unreachable or response unusable
        """
        payload: Dict[str, Any] = {
            "amount": float(amount),
            "customerName": customer_name,
            "customerEmail": customer_email,
            "paymentReference": reference,
            "paymentDescription": f"Onramp order {reference}",
            "currencyCode": settings.FIAT_CURRENCY,
            "contractCode": self.contract_code,
            "redirectUrl": redirect_url or f"{settings.FRONTEND_URL}/payment/status",
            "paymentMethods": PAYMENT_METHODS,
        }

        try:
            async with httpx.AsyncClient(timeout=self.timeout) as client:
                token = await self._get_access_token(client)
                response = await client.post(
                    f"{self.base_url}/api/v1/merchant/transactions/init-transaction",
                    json=payload,
                    headers={"Authorization": f"Bearer {token}"},
                )
                response.raise_for_status()
                body = response.json().get("responseBody") or {}
        except httpx.HTTPError as e:
            logger.error("Payment link request failed", reference=reference, error=str(e))
            raise PaymentLinkError(f"Payment link generation failed: {e}") from e
        except ValueError as e:
            raise PaymentLinkError("Payment provider returned invalid JSON") from e

        checkout_url = body.get("checkoutUrl")
        if not checkout_url:
            raise PaymentLinkError("Invalid response from payment provider: missing checkoutUrl")

        return PaymentLink(
            checkout_url=checkout_url,
            payment_reference=body.get("paymentReference") or reference,
            transaction_reference=body.get("transactionReference"),
        )


# Global instance
_payment_client: Optional[MonnifyClient] = None


def get_payment_link_client() -> MonnifyClient:
    """Get global payment link client (holds the cached provider token)."""
    global _payment_client
    if _payment_client is None:
        _payment_client = MonnifyClient()
    return _payment_client
