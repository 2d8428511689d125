"""User identity / entitlement repository."""

import hashlib
from datetime import datetime, timezone
from typing import Optional

from sqlalchemy import select, update
from sqlalchemy.exc import DBAPIError, OperationalError
from sqlalchemy.orm import Session

from vippay_api.db.models import BillingAuditLog, User, UserSession
from vippay_api.errors import StoreUnavailable


def hash_session_token(token: str) -> str:
    """SHA-256 hex of a session token (only the hash is stored)."""
    return hashlib.sha256(token.encode("utf-8")).hexdigest()


class UserRepository:
    """Record store access for users (entitlement fields) and sessions."""

    def __init__(self, db: Session):
        self.db = db

    def get_by_id(self, user_id: str) -> Optional[User]:
        try:
            return self.db.get(User, user_id)
        except (OperationalError, DBAPIError) as e:
            raise StoreUnavailable(f"User lookup failed: {type(e).__name__}") from e

    def grant_vip(
        self,
        user_id: str,
        *,
        order_id: str,
        vip_type: str,
        purchased_at: datetime,
        non_expiring: bool,
    ) -> Optional[User]:
        """Apply an entitlement grant to a user (not committed).

        Write-first: the UPDATE takes the row lock before vip_order_ids is
        read, so concurrent grants for the same user append serially.

        Returns:
            The updated user, or None if no such user exists
        """
        values: dict = {
            "vip_type": vip_type,
            "vip_purchase_time": purchased_at,
            "updated_at": purchased_at,
        }
        if non_expiring:
            values["vip_expire_time"] = None

        stmt = (
            update(User)
            .where(User.id == user_id)
            .values(**values)
            .execution_options(synchronize_session=False)
        )
        try:
            result = self.db.execute(stmt)
            if result.rowcount == 0:
                return None

            user = self.db.get(User, user_id, populate_existing=True)
            # New list object so the JSON column is flagged dirty
            user.vip_order_ids = [*(user.vip_order_ids or []), order_id]
            self.db.flush()
        except (OperationalError, DBAPIError) as e:
            self.db.rollback()
            raise StoreUnavailable(f"Entitlement update failed: {type(e).__name__}") from e
        return user

    def get_user_id_for_session(self, token: str) -> Optional[str]:
        """Resolve an active, unexpired session token to its user_id."""
        stmt = select(UserSession).where(
            UserSession.token_hash == hash_session_token(token),
            UserSession.status == "active",
        )
        try:
            session_row = self.db.execute(stmt).scalar_one_or_none()
        except (OperationalError, DBAPIError) as e:
            raise StoreUnavailable(f"Session lookup failed: {type(e).__name__}") from e

        if session_row is None:
            return None

        if session_row.expires_at is not None:
            expires_at = session_row.expires_at
            if expires_at.tzinfo is None:
                # SQLite returns naive datetimes; values are stored as UTC
                expires_at = expires_at.replace(tzinfo=timezone.utc)
            if expires_at <= datetime.now(timezone.utc):
                return None

        return session_row.user_id


def add_audit_log(
    db: Session,
    *,
    event_type: str,
    actor: str,
    details: dict,
    user_id: Optional[str] = None,
    related_entity_type: Optional[str] = None,
    related_entity_id: Optional[str] = None,
) -> BillingAuditLog:
    """Stage a billing audit row in the current transaction."""
    audit_log = BillingAuditLog(
        event_type=event_type,
        user_id=user_id,
        related_entity_type=related_entity_type,
        related_entity_id=related_entity_id,
        actor=actor,
        details=details,
    )
    db.add(audit_log)
    return audit_log
