"""Order endpoints (session-authenticated)."""

import logging

from fastapi import APIRouter, Depends, status
from sqlalchemy.orm import Session

from vippay_api.auth.session_auth import SessionAuthContext, get_session_auth_context
from vippay_api.billing.order_lifecycle import OrderLifecycle
from vippay_api.billing.yungou import YunGouPayClient
from vippay_api.config.env import PaymentConfig, load_payment_config
from vippay_api.db.session import get_db
from vippay_api.schemas import (
    CreateOrderRequest,
    CreateOrderResponse,
    OrderViewResponse,
    PayParams,
)

router = APIRouter(prefix="/v1/orders", tags=["orders"])
logger = logging.getLogger(__name__)


def get_payment_config() -> PaymentConfig:
    """Payment configuration dependency (ConfigurationMissing → 503)."""
    return load_payment_config()


def get_upstream_client(
    config: PaymentConfig = Depends(get_payment_config),
) -> YunGouPayClient:
    return YunGouPayClient(config)


@router.post("", response_model=CreateOrderResponse, status_code=status.HTTP_201_CREATED)
async def create_order(
    request: CreateOrderRequest,
    auth: SessionAuthContext = Depends(get_session_auth_context),
    config: PaymentConfig = Depends(get_payment_config),
    upstream_client: YunGouPayClient = Depends(get_upstream_client),
    db: Session = Depends(get_db),
) -> CreateOrderResponse:
    """Create a VIP order and return the App Pay parameters.

    Errors (RFC 9457):
        400 INVALID_PRODUCT, 502 UPSTREAM_ORDER_CREATION_FAILED,
        503 CONFIGURATION_MISSING / STORE_UNAVAILABLE
    """
    lifecycle = OrderLifecycle(db, config, upstream_client=upstream_client)
    created = await lifecycle.create_order(auth.user_id, request.productType)

    return CreateOrderResponse(
        orderId=created.order_id,
        outTradeNo=created.out_trade_no,
        payParams=PayParams(**created.pay_params),
    )


@router.get("/{order_id}", response_model=OrderViewResponse)
async def get_order(
    order_id: str,
    auth: SessionAuthContext = Depends(get_session_auth_context),
    db: Session = Depends(get_db),
) -> OrderViewResponse:
    """Return an order owned by the caller (404 for absent or foreign orders).

    Read-only: answers whether or not the payment provider is configured.
    """
    view = OrderLifecycle(db).query_order(order_id, auth.user_id)

    return OrderViewResponse(
        status=view.status,
        productType=view.product_type,
        amount=view.amount,
        paidAt=view.paid_at,
    )
