"""Order lifecycle: creation, payment callback transition, query.

Callback processing is two-phase:

  Phase 1 (mandatory): conditional UPDATE pending -> paid + ORDER_PAID audit,
      committed on its own. Exactly one concurrent delivery wins.
  Phase 2 (best-effort, winner only): entitlement grant + VIP_GRANTED audit
      (or VIP_GRANT_SKIPPED when the user does not exist). A phase 2 failure
      is logged as an entitlement inconsistency and never undoes phase 1.

Losers of the transition read the order back and acknowledge only if it is
already paid.
"""

import enum
import logging
import uuid
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Mapping, Optional

from sqlalchemy.exc import DBAPIError, OperationalError
from sqlalchemy.orm import Session

from vippay_api.billing.attachment import decode_attachment, encode_attachment
from vippay_api.billing.products import build_out_trade_no, get_product, is_non_expiring
from vippay_api.billing.signature import verify_signature
from vippay_api.billing.yungou import YunGouPayClient
from vippay_api.config.env import PaymentConfig, load_payment_config
from vippay_api.context import out_trade_no_var
from vippay_api.db.models import ORDER_PAID, ORDER_PENDING, Order
from vippay_api.db.repo_orders import OrderRepository
from vippay_api.db.repo_users import UserRepository, add_audit_log
from vippay_api.errors import (
    InvalidStateTransition,
    MalformedAttachment,
    OrderNotFound,
    SignatureMismatch,
    StoreUnavailable,
    VipPayError,
)
from vippay_api.observability.metrics import (
    log_callback_rejected,
    log_entitlement_granted,
    log_entitlement_inconsistency,
    log_order_created,
    log_payment_success,
)
from vippay_api.utils.sanitize import mask_identifier, sanitize_str

logger = logging.getLogger(__name__)

# Fields covered by the callback signature
CALLBACK_SIGNED_FIELDS = ("out_trade_no", "transaction_id", "total_fee")


class CallbackOutcome(str, enum.Enum):
    ACKNOWLEDGED = "acknowledged"
    REJECTED = "rejected"


# Machine-readable callback reasons (rejections use the error code, lower-cased)
REASON_PAID = "paid"
REASON_ALREADY_PAID = "already_paid"
REASON_SIGNATURE_MISMATCH = SignatureMismatch.error_code.lower()
REASON_MALFORMED_ATTACHMENT = MalformedAttachment.error_code.lower()
REASON_ORDER_NOT_FOUND = OrderNotFound.error_code.lower()
REASON_INVALID_STATE_TRANSITION = InvalidStateTransition.error_code.lower()


@dataclass(frozen=True)
class CallbackResult:
    outcome: CallbackOutcome
    reason: str

    @property
    def acknowledged(self) -> bool:
        return self.outcome is CallbackOutcome.ACKNOWLEDGED


@dataclass(frozen=True)
class CreatedOrder:
    """Result of create_order: local ids + provider payment parameters."""

    order_id: str
    out_trade_no: str
    pay_params: dict[str, Any] = field(default_factory=dict)


@dataclass(frozen=True)
class OrderView:
    """Read-only order projection returned to the owning user."""

    status: str
    product_type: str
    amount: int
    paid_at: Optional[str]


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def _isoformat_utc(value: Optional[datetime]) -> Optional[str]:
    if value is None:
        return None
    if value.tzinfo is None:
        # SQLite returns naive datetimes; values are stored as UTC
        value = value.replace(tzinfo=timezone.utc)
    return value.isoformat()


def _parse_fee(raw: Any) -> Optional[int]:
    try:
        return int(str(raw))
    except (TypeError, ValueError):
        return None


class OrderLifecycle:
    """Order state machine over the record store.

    Args:
        db: SQLAlchemy session (one per request / delivery)
        config: Payment configuration (signing secret, merchant id, notify URL).
            Loaded from the environment on first use when omitted; queries
            never need it.
        upstream_client: Order-creation client (defaults to YunGouPayClient(config))
    """

    def __init__(
        self,
        db: Session,
        config: Optional[PaymentConfig] = None,
        upstream_client: Optional[YunGouPayClient] = None,
    ):
        self.db = db
        self._config = config
        self._upstream_client = upstream_client
        self.orders = OrderRepository(db)
        self.users = UserRepository(db)

    @property
    def config(self) -> PaymentConfig:
        """Payment configuration (raises ConfigurationMissing when incomplete)."""
        if self._config is None:
            self._config = load_payment_config()
        return self._config

    @property
    def upstream_client(self) -> YunGouPayClient:
        if self._upstream_client is None:
            self._upstream_client = YunGouPayClient(self.config)
        return self._upstream_client

    # ------------------------------------------------------------------
    # Creation
    # ------------------------------------------------------------------

    async def create_order(self, user_id: str, product_type: str) -> CreatedOrder:
        """Create a pending order with the payment provider.

        Raises:
            InvalidProduct: Unknown product type
            UpstreamOrderCreationFailed: Provider did not confirm the order
            StoreUnavailable: Order could not be persisted
        """
        product = get_product(product_type)
        now = _utcnow()
        out_trade_no = build_out_trade_no(user_id, int(now.timestamp() * 1000))
        out_trade_no_var.set(out_trade_no)

        provider_order = await self.upstream_client.create_app_pay_order(
            out_trade_no=out_trade_no,
            total_fee=product.amount,
            body=product.description,
            attach=encode_attachment(user_id, product.product_type),
        )

        order = Order(
            id=uuid.uuid4().hex,
            out_trade_no=out_trade_no,
            user_id=user_id,
            product_type=product.product_type,
            amount=product.amount,
            status=ORDER_PENDING,
            provider_order_id=provider_order.provider_order_id,
            created_at=now,
            updated_at=now,
        )
        add_audit_log(
            self.db,
            event_type="ORDER_CREATED",
            actor="API",
            user_id=user_id,
            related_entity_type="ORDER",
            related_entity_id=order.id,
            details={
                "out_trade_no": out_trade_no,
                "product_type": product.product_type,
                "amount": product.amount,
                "provider_order_id": provider_order.provider_order_id,
            },
        )
        self.orders.create(order)

        log_order_created(
            user_id=user_id,
            out_trade_no=out_trade_no,
            amount=product.amount,
            product_type=product.product_type,
        )
        return CreatedOrder(
            order_id=order.id,
            out_trade_no=out_trade_no,
            pay_params=dict(provider_order.pay_params),
        )

    # ------------------------------------------------------------------
    # Payment callback
    # ------------------------------------------------------------------

    def handle_callback(
        self,
        raw_params: Mapping[str, Any],
        provided_signature: Optional[str],
        attachment_raw: Optional[str],
        merchant_order_number: Optional[str],
        transaction_id: Optional[str],
    ) -> CallbackResult:
        """Process one payment-success notification.

        Raises:
            StoreUnavailable: Phase 1 could not read or write the store
        """
        out_trade_no_var.set(merchant_order_number or "")

        signed = {name: raw_params.get(name) for name in CALLBACK_SIGNED_FIELDS}
        if not verify_signature(signed, provided_signature, self.config.api_key):
            return self._reject(SignatureMismatch(), merchant_order_number)

        try:
            attachment = decode_attachment(attachment_raw)
        except MalformedAttachment as e:
            logger.warning(
                "callback.attachment_invalid",
                extra={
                    "event": "callback.attachment_invalid",
                    "out_trade_no": merchant_order_number,
                    "error": sanitize_str(e.detail),
                },
            )
            return self._reject(e, merchant_order_number)

        if not merchant_order_number or not transaction_id:
            return self._reject(
                OrderNotFound("Callback carries no order number or transaction id"),
                merchant_order_number,
            )

        # Phase 1: compare-and-swap pending -> paid
        now = _utcnow()
        won = self.orders.mark_paid_if_pending(merchant_order_number, transaction_id, now)
        order = self.orders.get_by_out_trade_no(merchant_order_number)

        if not won:
            # Nothing was written; end the read transaction
            self.db.rollback()
            if order is None:
                return self._reject(
                    OrderNotFound(f"Order {merchant_order_number} not found"),
                    merchant_order_number,
                )
            if order.status == ORDER_PAID:
                logger.info(
                    "callback.already_paid",
                    extra={
                        "event": "callback.already_paid",
                        "out_trade_no": merchant_order_number,
                    },
                )
                return CallbackResult(CallbackOutcome.ACKNOWLEDGED, REASON_ALREADY_PAID)
            return self._reject(InvalidStateTransition(order.status), merchant_order_number)

        add_audit_log(
            self.db,
            event_type="ORDER_PAID",
            actor="WEBHOOK",
            user_id=order.user_id,
            related_entity_type="ORDER",
            related_entity_id=order.id,
            details={
                "out_trade_no": merchant_order_number,
                "transaction_id": mask_identifier(transaction_id),
                "total_fee": raw_params.get("total_fee"),
            },
        )
        self._commit_phase_one()

        self._check_amount(order, raw_params.get("total_fee"))
        log_payment_success(
            user_id=order.user_id,
            out_trade_no=merchant_order_number,
            amount=order.amount,
            transaction_id=transaction_id,
        )

        # Phase 2: entitlement grant (best-effort)
        try:
            self._grant_entitlement(order, attachment.user_id, attachment.product_type, now)
        except Exception as e:
            self.db.rollback()
            logger.error(
                "entitlement.grant_failed",
                extra={
                    "event": "entitlement.grant_failed",
                    "out_trade_no": merchant_order_number,
                    "error_type": type(e).__name__,
                    "error": sanitize_str(str(e)),
                },
            )
            log_entitlement_inconsistency(
                user_id=attachment.user_id,
                out_trade_no=merchant_order_number,
                reason="grant_failed",
            )

        logger.info(
            "callback.acknowledged",
            extra={"event": "callback.acknowledged", "out_trade_no": merchant_order_number},
        )
        return CallbackResult(CallbackOutcome.ACKNOWLEDGED, REASON_PAID)

    def _commit_phase_one(self) -> None:
        try:
            self.db.commit()
        except (OperationalError, DBAPIError) as e:
            self.db.rollback()
            raise StoreUnavailable(f"Order transition commit failed: {type(e).__name__}") from e

    def _check_amount(self, order: Order, total_fee: Any) -> None:
        fee = _parse_fee(total_fee)
        if fee != order.amount:
            logger.warning(
                "callback.amount_mismatch",
                extra={
                    "event": "callback.amount_mismatch",
                    "out_trade_no": order.out_trade_no,
                    "expected_amount": order.amount,
                    "total_fee": fee,
                    "fraud_flag": True,
                },
            )

    def _grant_entitlement(
        self,
        order: Order,
        user_id: str,
        product_type: str,
        purchased_at: datetime,
    ) -> None:
        user = self.users.grant_vip(
            user_id,
            order_id=order.id,
            vip_type=product_type,
            purchased_at=purchased_at,
            non_expiring=is_non_expiring(product_type),
        )

        if user is None:
            self.db.rollback()
            add_audit_log(
                self.db,
                event_type="VIP_GRANT_SKIPPED",
                actor="WEBHOOK",
                user_id=user_id,
                related_entity_type="ORDER",
                related_entity_id=order.id,
                details={"out_trade_no": order.out_trade_no, "reason": "user_not_found"},
            )
            self.db.commit()
            log_entitlement_inconsistency(
                user_id=user_id,
                out_trade_no=order.out_trade_no,
                reason="user_not_found",
            )
            return

        add_audit_log(
            self.db,
            event_type="VIP_GRANTED",
            actor="WEBHOOK",
            user_id=user_id,
            related_entity_type="ORDER",
            related_entity_id=order.id,
            details={
                "out_trade_no": order.out_trade_no,
                "vip_type": product_type,
                "non_expiring": is_non_expiring(product_type),
            },
        )
        self.db.commit()
        log_entitlement_granted(
            user_id=user_id,
            out_trade_no=order.out_trade_no,
            vip_type=product_type,
        )

    def _reject(self, error: VipPayError, out_trade_no: Optional[str]) -> CallbackResult:
        """Collapse a callback-path error into a rejection (reason = error code)."""
        reason = error.error_code.lower()
        logger.info(
            "callback.rejection_detail",
            extra={
                "event": "callback.rejection_detail",
                "out_trade_no": out_trade_no,
                "error_code": error.error_code,
                "detail": sanitize_str(error.detail),
            },
        )
        log_callback_rejected(reason=reason, out_trade_no=out_trade_no)
        return CallbackResult(CallbackOutcome.REJECTED, reason)

    # ------------------------------------------------------------------
    # Query
    # ------------------------------------------------------------------

    def query_order(self, order_id: str, requesting_user_id: str) -> OrderView:
        """Return an order owned by requesting_user_id.

        Raises:
            OrderNotFound: Order absent or owned by another user (indistinguishable)
        """
        order = self.orders.get_by_id_for_user(order_id, requesting_user_id)
        if order is None:
            raise OrderNotFound(f"Order {order_id} not found")
        return OrderView(
            status=order.status,
            product_type=order.product_type,
            amount=order.amount,
            paid_at=_isoformat_utc(order.paid_at),
        )
