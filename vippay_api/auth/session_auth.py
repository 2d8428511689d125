"""Session authentication for client-facing order endpoints.

FLOW:
1. The login flow issues an opaque session token and stores its SHA-256 hash
2. Client calls an order endpoint with Authorization: Bearer <session token>
3. The token hash is resolved to an active, unexpired user_sessions row
4. Returns SessionAuthContext(user_id)

SECURITY:
- Raw tokens are never stored or logged
- Revoked or expired sessions are rejected with 401
"""

import logging
from typing import Optional

from fastapi import Depends, HTTPException, Request, status
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from sqlalchemy.orm import Session

from vippay_api.context import request_id_var, user_id_var
from vippay_api.db.repo_users import UserRepository
from vippay_api.db.session import get_db
from vippay_api.errors import StoreUnavailable
from vippay_api.schemas import ProblemDetail

logger = logging.getLogger(__name__)

session_security = HTTPBearer(auto_error=False, description="Login session token")


class SessionAuthContext:
    """Session authentication context for user-authenticated requests."""

    def __init__(self, user_id: str):
        self.user_id = user_id


def _create_session_problem(
    status_code: int,
    title: str,
    detail: str,
    request: Request,
) -> HTTPException:
    """Create RFC 9457 Problem Detail for session auth errors."""
    request_id = request_id_var.get()

    problem = ProblemDetail(
        type=f"urn:vippay:problems:{title.lower().replace(' ', '-')}",
        title=title,
        status=status_code,
        detail=detail,
        instance=f"urn:vippay:trace:{request_id}" if request_id else str(request.url.path),
        error_code="SESSION_INVALID",
    )

    return HTTPException(
        status_code=status_code,
        detail=problem.model_dump(exclude_none=True),
        headers={"WWW-Authenticate": "Bearer"},
    )


async def get_session_auth_context(
    request: Request,
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(session_security),
    db: Session = Depends(get_db),
) -> SessionAuthContext:
    """Resolve the bearer session token to the requesting user.

    Raises:
        HTTPException: 401 if the token is missing, unknown, revoked or expired
        StoreUnavailable: If the session lookup fails
    """
    if not credentials or not credentials.credentials:
        raise _create_session_problem(
            status_code=status.HTTP_401_UNAUTHORIZED,
            title="Unauthorized",
            detail="Missing Authorization header. Please log in first.",
            request=request,
        )

    try:
        user_id = UserRepository(db).get_user_id_for_session(credentials.credentials)
    except StoreUnavailable:
        logger.error("Session lookup failed", extra={"event": "session.lookup_failed"})
        raise

    if not user_id:
        logger.warning("Session token rejected", extra={"event": "session.rejected"})
        raise _create_session_problem(
            status_code=status.HTTP_401_UNAUTHORIZED,
            title="Unauthorized",
            detail="Invalid or expired session token. Please log in again.",
            request=request,
        )

    user_id_var.set(user_id)
    return SessionAuthContext(user_id=user_id)
