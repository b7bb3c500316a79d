# ==== BUSINESS ONRAMP ROUTES ==== #

"""
Merchant-facing onramp API.

Every route is scoped to the business resolved by BusinessContextMiddleware.
Successful responses use the ``{"success": true, "data": ...}`` envelope;
failures are OnrampErrors rendered by the application exception handler.
"""

from typing import Any, Dict

from fastapi import APIRouter, BackgroundTasks, Depends, Query, Request
from fastapi.encoders import jsonable_encoder
from fastapi.responses import JSONResponse
from pydantic import ValidationError

from onramp.business.config import BusinessConfig
from onramp.errors import OrderValidationError
from onramp.observability.tracing import get_tracer
from onramp.routes.dependencies import get_current_business, get_lifecycle_manager
from onramp.schemas.onramp import CreateOrderRequest, OrderListQuery, QuoteRequest, Timeframe
from onramp.services.order_lifecycle import OrderLifecycleManager


router = APIRouter()
tracer = get_tracer(__name__)


def _envelope(data: Any, status_code: int = 200, message: str | None = None) -> JSONResponse:
    body: Dict[str, Any] = {"success": status_code < 400, "data": data}
    if message:
        body["message"] = message
    return JSONResponse(status_code=status_code, content=jsonable_encoder(body))


# ==== ORDER CREATION AND QUOTES ==== #


@router.post("/create", status_code=201)
async def create_order(
    payload: CreateOrderRequest,
    background: BackgroundTasks,
    business: BusinessConfig = Depends(get_current_business),
    manager: OrderLifecycleManager = Depends(get_lifecycle_manager),
) -> JSONResponse:
    """
    Create an onramp order for one of the business's customers.

    Runs token validation, pricing and fee calculation, persists the order
    as ``initiated`` and returns the hosted payment link. The merchant's
    ``order.created`` webhook is delivered after the response.

    Args:
        payload (CreateOrderRequest): Order request body
        background (BackgroundTasks): Background tasks for webhook delivery
        business (BusinessConfig): Calling business configuration
        manager (OrderLifecycleManager): Order lifecycle manager

    Returns:
        JSONResponse: 201 with the order summary and payment details
    """
    with tracer.start_as_current_span("create_onramp_order") as span:
        span.set_attribute("business_id", business.business_id)
        span.set_attribute("target_token", payload.target_token)
        span.set_attribute("target_network", payload.target_network)

        data = await manager.create(business, payload, background)
        span.set_attribute("order_id", data["orderId"])

    return _envelope(data, 201, "Onramp order created successfully")


@router.post("/quote")
async def get_quote(
    payload: QuoteRequest,
    business: BusinessConfig = Depends(get_current_business),
    manager: OrderLifecycleManager = Depends(get_lifecycle_manager),
) -> JSONResponse:
    """Price a fiat amount in a target token without creating an order."""
    with tracer.start_as_current_span("quote_onramp_order") as span:
        span.set_attribute("business_id", business.business_id)
        span.set_attribute("target_token", payload.target_token)
        data = await manager.quote(business, payload)
    return _envelope(data)


# ==== ORDER QUERIES ==== #


@router.get("/orders/{identifier}")
async def get_order(
    identifier: str,
    business: BusinessConfig = Depends(get_current_business),
    manager: OrderLifecycleManager = Depends(get_lifecycle_manager),
) -> JSONResponse:
    """
    Look up an order by order id or business order reference.

    Args:
        identifier (str): ``BO_...`` order id or ``BIZRAMP-...`` reference
        business (BusinessConfig): Calling business configuration
        manager (OrderLifecycleManager): Order lifecycle manager

    Returns:
        JSONResponse: Order details including expiry and webhook status
    """
    return _envelope(await manager.get_order(business, identifier))


@router.get("/orders")
async def list_orders(
    request: Request,
    business: BusinessConfig = Depends(get_current_business),
    manager: OrderLifecycleManager = Depends(get_lifecycle_manager),
) -> JSONResponse:
    """
    List the business's orders with filters, pagination and sorting.

    Query parameters use camelCase names (``targetToken``, ``startDate``,
    ``sortBy`` ...) matching OrderListQuery.
    """
    try:
        query = OrderListQuery.model_validate(dict(request.query_params))
    except ValidationError as e:
        raise OrderValidationError(
            "Invalid order list query",
            details={"errors": jsonable_encoder(e.errors(include_url=False, include_context=False))},
        ) from e

    with tracer.start_as_current_span("list_onramp_orders") as span:
        span.set_attribute("business_id", business.business_id)
        span.set_attribute("page", query.page)
        data = await manager.list_orders(business, query)
    return _envelope(data)


@router.get("/stats")
async def get_stats(
    timeframe: Timeframe = Query("30d"),
    business: BusinessConfig = Depends(get_current_business),
    manager: OrderLifecycleManager = Depends(get_lifecycle_manager),
) -> JSONResponse:
    """Order statistics for the business over a timeframe."""
    return _envelope(await manager.business_stats(business, timeframe))


# ==== TOKEN CATALOGUE AND HEALTH ==== #


@router.get("/supported-tokens")
async def get_supported_tokens(
    business: BusinessConfig = Depends(get_current_business),
    manager: OrderLifecycleManager = Depends(get_lifecycle_manager),
) -> JSONResponse:
    """
    Tradable tokens of the business with live on-chain support flags.

    Returns:
        JSONResponse: Per-network catalogue, statistics and summary
    """
    with tracer.start_as_current_span("supported_tokens") as span:
        span.set_attribute("business_id", business.business_id)
        data = await manager.supported_tokens(business)
    return _envelope(data)


@router.get("/health")
async def pricing_health(
    manager: OrderLifecycleManager = Depends(get_lifecycle_manager),
) -> JSONResponse:
    """
    Health of the pricing collaborators.

    Returns 503 Service Unavailable when neither the on-chain quoter nor
    the internal reference API can be reached.
    """
    status_code, report = await manager.health()
    return _envelope(report, status_code)
