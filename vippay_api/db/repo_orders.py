"""Order repository.

The pending -> paid transition is a single conditional UPDATE
(compare-and-swap on status) so concurrent webhook deliveries converge to
exactly one committed transition:

    UPDATE vip_orders
    SET status='paid', transaction_id=:tx, paid_at=:now
    WHERE out_trade_no=:no AND status='pending'

    → rowcount 1 : this caller won the transition
    → rowcount 0 : order absent or already moved (caller reads it back)
"""

from datetime import datetime
from typing import Optional

from sqlalchemy import select, update
from sqlalchemy.exc import DBAPIError, OperationalError
from sqlalchemy.orm import Session

from vippay_api.db.models import ORDER_PAID, ORDER_PENDING, Order
from vippay_api.errors import StoreUnavailable


class OrderRepository:
    """Record store access for vip_orders."""

    def __init__(self, db: Session):
        self.db = db

    def create(self, order: Order) -> Order:
        """Insert a new order and commit."""
        try:
            self.db.add(order)
            self.db.commit()
            self.db.refresh(order)
        except (OperationalError, DBAPIError) as e:
            self.db.rollback()
            raise StoreUnavailable(f"Order insert failed: {type(e).__name__}") from e
        return order

    def get_by_id(self, order_id: str) -> Optional[Order]:
        try:
            return self.db.get(Order, order_id)
        except (OperationalError, DBAPIError) as e:
            raise StoreUnavailable(f"Order lookup failed: {type(e).__name__}") from e

    def get_by_id_for_user(self, order_id: str, user_id: str) -> Optional[Order]:
        """Ownership-scoped lookup: returns None unless the order belongs to user_id."""
        stmt = (
            select(Order)
            .where(Order.id == order_id, Order.user_id == user_id)
            .execution_options(populate_existing=True)
        )
        try:
            return self.db.execute(stmt).scalar_one_or_none()
        except (OperationalError, DBAPIError) as e:
            raise StoreUnavailable(f"Order lookup failed: {type(e).__name__}") from e

    def get_by_out_trade_no(self, out_trade_no: str) -> Optional[Order]:
        # populate_existing: the row may have been moved by a bulk UPDATE in this session
        stmt = (
            select(Order)
            .where(Order.out_trade_no == out_trade_no)
            .execution_options(populate_existing=True)
        )
        try:
            return self.db.execute(stmt).scalar_one_or_none()
        except (OperationalError, DBAPIError) as e:
            raise StoreUnavailable(f"Order lookup failed: {type(e).__name__}") from e

    def mark_paid_if_pending(
        self,
        out_trade_no: str,
        transaction_id: str,
        paid_at: datetime,
    ) -> bool:
        """Atomically move an order from pending to paid.

        Does NOT commit; the caller commits the transition together with
        its audit row.

        Returns:
            True if exactly one row transitioned, False otherwise

        Raises:
            StoreUnavailable: If the conditional update fails
        """
        stmt = (
            update(Order)
            .where(Order.out_trade_no == out_trade_no, Order.status == ORDER_PENDING)
            .values(
                status=ORDER_PAID,
                transaction_id=transaction_id,
                paid_at=paid_at,
                updated_at=paid_at,
            )
            .execution_options(synchronize_session=False)
        )
        try:
            result = self.db.execute(stmt)
        except (OperationalError, DBAPIError) as e:
            self.db.rollback()
            raise StoreUnavailable(f"Order transition failed: {type(e).__name__}") from e
        return result.rowcount == 1
