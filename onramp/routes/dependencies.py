# ==== ROUTE DEPENDENCIES ==== #

"""
FastAPI dependency providers shared by the route modules.

Collaborator getters return process-wide singletons; tests replace them
through ``app.dependency_overrides``.
"""

from fastapi import BackgroundTasks, Depends, Request
from pydantic import ValidationError
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from onramp.business.config import BusinessConfig, load_business_config
from onramp.business.reason_codes import ErrorCode
from onramp.errors import OnrampError, UnknownBusinessError
from onramp.middleware.business_context import get_business_id
from onramp.observability.logging import get_logger
from onramp.services.order_lifecycle import OrderLifecycleManager
from onramp.services.payment_links import MonnifyClient, get_payment_link_client
from onramp.services.reference_prices import ReferencePriceClient, get_reference_price_client
from onramp.services.reserve_client import ReserveQuoter, get_reserve_quoter
from onramp.services.settlement import SettlementWebhookProcessor
from onramp.services.webhook_dispatcher import WebhookDispatcher, get_webhook_dispatcher
from onramp.storage.db import get_db_session
from onramp.storage.models import Business


logger = get_logger(__name__)


async def get_current_business(
    request: Request,
    db: AsyncSession = Depends(get_db_session),
) -> BusinessConfig:
    """
    Resolve the calling business and validate its stored configuration.

    Raises:
        UnknownBusinessError: No business id on the request or no such business
        OnrampError: Stored token or fee configuration is malformed
    """
    business_id = get_business_id(request)
    if not business_id:
        raise UnknownBusinessError("Business context required")

    record = (
        await db.execute(select(Business).where(Business.business_id == business_id))
    ).scalar_one_or_none()
    if record is None:
        raise UnknownBusinessError(f"Unknown business: {business_id}")

    try:
        return load_business_config(record)
    except ValidationError as e:
        logger.error("Stored business configuration is invalid",
                     business_id=business_id, errors=e.error_count())
        raise OnrampError(
            "Business configuration is invalid",
            code=ErrorCode.INTERNAL_ERROR.value,
            status_code=500,
        ) from e


def get_lifecycle_manager(
    db: AsyncSession = Depends(get_db_session),
    reserve: ReserveQuoter = Depends(get_reserve_quoter),
    reference: ReferencePriceClient = Depends(get_reference_price_client),
    payment_links: MonnifyClient = Depends(get_payment_link_client),
    dispatcher: WebhookDispatcher = Depends(get_webhook_dispatcher),
) -> OrderLifecycleManager:
    return OrderLifecycleManager(db, reserve, reference, payment_links, dispatcher)


def get_settlement_processor(
    background: BackgroundTasks,
    db: AsyncSession = Depends(get_db_session),
    dispatcher: WebhookDispatcher = Depends(get_webhook_dispatcher),
) -> SettlementWebhookProcessor:
    return SettlementWebhookProcessor(db, dispatcher, background)
