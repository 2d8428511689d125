"""Log-based metrics for the VIP payment flow.

Usage:
    from vippay_api.observability.metrics import log_order_created, log_payment_success

    log_order_created(user_id="u1", out_trade_no="VIP_u1_1700000000000", amount=6900)
    log_payment_success(user_id="u1", out_trade_no="VIP_u1_1700000000000", amount=6900)

Each helper emits one structured log line whose ``event`` field is the metric
name; dashboards aggregate on it.

Security:
- Signatures, secrets and raw callback bodies are NEVER logged
- transaction_id is masked (prefix only)
"""

import logging
from typing import Optional

from vippay_api.utils.sanitize import mask_identifier

logger = logging.getLogger(__name__)


# ============================================================================
# Order Metrics
# ============================================================================


def log_order_created(
    user_id: str,
    out_trade_no: str,
    amount: int,
    product_type: Optional[str] = None,
) -> None:
    """Log a pending order created with the provider.

    Args:
        user_id: Order owner
        out_trade_no: Merchant order number
        amount: Amount in minor units (fen)
        product_type: Product purchased (optional)
    """
    logger.info(
        "order.created",
        extra={
            "event": "order.created",
            "user_id": user_id,
            "out_trade_no": out_trade_no,
            "amount": amount,
            "product_type": product_type,
        },
    )


def log_payment_success(
    user_id: str,
    out_trade_no: str,
    amount: Optional[int],
    transaction_id: Optional[str] = None,
) -> None:
    """Log the committed pending → paid transition (one per order)."""
    logger.info(
        "payment.success",
        extra={
            "event": "payment.success",
            "user_id": user_id,
            "out_trade_no": out_trade_no,
            "amount": amount,
            "transaction_id": mask_identifier(transaction_id) if transaction_id else None,
        },
    )


# ============================================================================
# Callback Metrics
# ============================================================================


def log_callback_rejected(
    reason: str,
    out_trade_no: Optional[str] = None,
) -> None:
    """Log a rejected payment callback.

    Args:
        reason: Machine-readable reason (signature_mismatch, malformed_attachment,
            order_not_found, invalid_state_transition, store_unavailable, ...)
        out_trade_no: Merchant order number, if the callback carried one
    """
    logger.warning(
        "callback.rejected",
        extra={
            "event": "callback.rejected",
            "reason": reason,
            "out_trade_no": out_trade_no,
        },
    )


# ============================================================================
# Entitlement Metrics
# ============================================================================


def log_entitlement_granted(
    user_id: str,
    out_trade_no: str,
    vip_type: str,
) -> None:
    """Log an entitlement grant applied after a successful payment."""
    logger.info(
        "entitlement.granted",
        extra={
            "event": "entitlement.granted",
            "user_id": user_id,
            "out_trade_no": out_trade_no,
            "vip_type": vip_type,
        },
    )


def log_entitlement_inconsistency(
    user_id: str,
    out_trade_no: str,
    reason: str,
) -> None:
    """Log a paid order whose entitlement could not be applied.

    Reconciliation picks these up (together with VIP_GRANT_SKIPPED audit rows).

    Args:
        user_id: User id decoded from the attachment
        out_trade_no: Merchant order number (order is already paid)
        reason: user_not_found, grant_failed, ...
    """
    logger.error(
        "entitlement.inconsistency",
        extra={
            "event": "entitlement.inconsistency",
            "user_id": user_id,
            "out_trade_no": out_trade_no,
            "reason": reason,
        },
    )
