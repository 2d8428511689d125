"""SQLAlchemy ORM Models for the VIP payment service."""

import uuid
from datetime import datetime, timezone
from typing import Optional

from sqlalchemy import BIGINT, JSON, TEXT, TIMESTAMP, Index, Integer, UniqueConstraint
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column


def _new_id() -> str:
    return uuid.uuid4().hex


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class Base(DeclarativeBase):
    """Base class for all ORM models."""

    pass


# Order status values
ORDER_PENDING = "pending"
ORDER_PAID = "paid"
ORDER_CANCELLED = "cancelled"
ORDER_EXPIRED = "expired"

ORDER_STATUSES = (ORDER_PENDING, ORDER_PAID, ORDER_CANCELLED, ORDER_EXPIRED)


class Order(Base):
    """Order model - one VIP purchase attempt.

    status only moves pending -> paid on this service's write path;
    cancelled/expired are terminal values written by other tooling.
    transaction_id and paid_at are set iff status == paid.
    """

    __tablename__ = "vip_orders"

    id: Mapped[str] = mapped_column(TEXT, primary_key=True, default=_new_id)

    # Merchant order number: VIP_<user_id>_<epoch millis>, idempotency key for callbacks
    out_trade_no: Mapped[str] = mapped_column(TEXT, nullable=False)

    # Plain identifier of the paying user (lookup key, no FK)
    user_id: Mapped[str] = mapped_column(TEXT, nullable=False)

    product_type: Mapped[str] = mapped_column(TEXT, nullable=False)
    amount: Mapped[int] = mapped_column(BIGINT, nullable=False)  # Minor units (fen)

    status: Mapped[str] = mapped_column(TEXT, nullable=False, default=ORDER_PENDING)

    # Provider references
    provider_order_id: Mapped[Optional[str]] = mapped_column(TEXT, nullable=True)
    pay_method: Mapped[str] = mapped_column(TEXT, nullable=False, default="wxpay")
    transaction_id: Mapped[Optional[str]] = mapped_column(TEXT, nullable=True)

    paid_at: Mapped[Optional[datetime]] = mapped_column(TIMESTAMP(timezone=True), nullable=True)
    created_at: Mapped[datetime] = mapped_column(
        TIMESTAMP(timezone=True),
        nullable=False,
        default=_utcnow,
    )
    updated_at: Mapped[datetime] = mapped_column(
        TIMESTAMP(timezone=True),
        nullable=False,
        default=_utcnow,
        onupdate=_utcnow,
    )

    __table_args__ = (
        UniqueConstraint("out_trade_no", name="uq_vip_orders_out_trade_no"),
        Index("idx_vip_orders_user", "user_id"),
        Index("idx_vip_orders_status", "status"),
    )


class User(Base):
    """User identity - carries the VIP entitlement fields.

    Rows are provisioned by the login flow; this service only updates
    the vip_* columns on a successful pending -> paid transition.
    """

    __tablename__ = "users"

    id: Mapped[str] = mapped_column(TEXT, primary_key=True, default=_new_id)
    username: Mapped[Optional[str]] = mapped_column(TEXT, nullable=True)
    wechat_openid: Mapped[Optional[str]] = mapped_column(TEXT, nullable=True)

    # Entitlement
    vip_type: Mapped[Optional[str]] = mapped_column(TEXT, nullable=True)
    vip_purchase_time: Mapped[Optional[datetime]] = mapped_column(
        TIMESTAMP(timezone=True), nullable=True
    )
    vip_expire_time: Mapped[Optional[datetime]] = mapped_column(
        TIMESTAMP(timezone=True), nullable=True
    )  # NULL = never expires
    vip_order_ids: Mapped[list] = mapped_column(JSON, nullable=False, default=list)

    created_at: Mapped[datetime] = mapped_column(
        TIMESTAMP(timezone=True),
        nullable=False,
        default=_utcnow,
    )
    updated_at: Mapped[datetime] = mapped_column(
        TIMESTAMP(timezone=True),
        nullable=False,
        default=_utcnow,
        onupdate=_utcnow,
    )

    __table_args__ = (Index("idx_users_wechat_openid", "wechat_openid"),)


class UserSession(Base):
    """UserSession model - opaque login session tokens (hash only)."""

    __tablename__ = "user_sessions"

    id: Mapped[str] = mapped_column(TEXT, primary_key=True, default=_new_id)
    user_id: Mapped[str] = mapped_column(TEXT, nullable=False)
    token_hash: Mapped[str] = mapped_column(TEXT, nullable=False)

    status: Mapped[str] = mapped_column(TEXT, nullable=False, default="active")
    # active | revoked

    created_at: Mapped[datetime] = mapped_column(
        TIMESTAMP(timezone=True),
        nullable=False,
        default=_utcnow,
    )
    expires_at: Mapped[Optional[datetime]] = mapped_column(
        TIMESTAMP(timezone=True), nullable=True
    )

    __table_args__ = (
        UniqueConstraint("token_hash", name="uq_user_sessions_token_hash"),
        Index("idx_user_sessions_user", "user_id"),
    )


class BillingAuditLog(Base):
    """BillingAuditLog model - audit trail for order and entitlement changes.

    event_type: ORDER_CREATED, ORDER_PAID, VIP_GRANTED, VIP_GRANT_SKIPPED
    VIP_GRANT_SKIPPED rows are the reconciliation backlog (paid order,
    identity not found).
    """

    __tablename__ = "billing_audit_logs"

    id: Mapped[int] = mapped_column(
        BIGINT().with_variant(Integer, "sqlite"), primary_key=True, autoincrement=True
    )

    event_type: Mapped[str] = mapped_column(TEXT, nullable=False)

    user_id: Mapped[Optional[str]] = mapped_column(TEXT, nullable=True)
    related_entity_type: Mapped[Optional[str]] = mapped_column(TEXT, nullable=True)  # ORDER, USER
    related_entity_id: Mapped[Optional[str]] = mapped_column(TEXT, nullable=True)

    actor: Mapped[Optional[str]] = mapped_column(TEXT, nullable=True)  # API, WEBHOOK
    details: Mapped[dict] = mapped_column(JSON, nullable=False)

    created_at: Mapped[datetime] = mapped_column(
        TIMESTAMP(timezone=True),
        nullable=False,
        default=_utcnow,
    )

    __table_args__ = (
        Index("idx_billing_audit_user", "user_id"),
        Index("idx_billing_audit_event_type", "event_type"),
        Index("idx_billing_audit_created", "created_at"),
    )
