"""Database engine builder (SSOT).

- Default: NullPool (client-side pooling disabled)
- pool_pre_ping=True (always verify connections)
- ENV: VIPPAY_DB_POOL=nullpool|queuepool (default: nullpool)
- ENV: VIPPAY_DB_CONNECT_TIMEOUT=<seconds> (default: 10, PostgreSQL only)
"""

import logging
import os
import re
from typing import Any

from sqlalchemy import Engine, NullPool, create_engine
from sqlalchemy.orm import Session, sessionmaker

logger = logging.getLogger(__name__)


def _mask_password(url: str) -> str:
    """Mask password in database URL for safe logging."""
    return re.sub(r"://([^:]+):([^@]+)@", r"://\1:***@", url)


def _connect_args_for(url: str) -> dict[str, Any]:
    """Driver-level connect arguments (bounded connect time for store calls)."""
    if url.startswith("sqlite"):
        # Busy timeout for concurrent writers (seconds)
        return {"check_same_thread": False, "timeout": 30}

    connect_args: dict[str, Any] = {
        "connect_timeout": int(os.getenv("VIPPAY_DB_CONNECT_TIMEOUT", "10")),
    }
    app_name = os.getenv("VIPPAY_DB_APPLICATION_NAME", "vippay-api")
    if app_name:
        connect_args["application_name"] = app_name
    return connect_args


def build_engine(database_url: str | None = None) -> Engine:
    """
    Build SQLAlchemy engine.

    Args:
        database_url: Database URL. If None, reads from env DATABASE_URL.

    Returns:
        SQLAlchemy Engine instance.

    Raises:
        ValueError: If DATABASE_URL not provided and not in environment,
            or VIPPAY_DB_POOL has an unknown value.
    """
    url = database_url or os.getenv("DATABASE_URL")
    if not url:
        raise ValueError(
            "DATABASE_URL is required. "
            "Pass as argument or set DATABASE_URL environment variable."
        )

    connect_args = _connect_args_for(url)

    pool_mode = os.getenv("VIPPAY_DB_POOL", "nullpool").lower()

    if pool_mode == "nullpool":
        engine = create_engine(
            url,
            poolclass=NullPool,
            pool_pre_ping=True,
            connect_args=connect_args,
        )
    elif pool_mode == "queuepool":
        pool_size = int(os.getenv("VIPPAY_DB_POOL_SIZE", "5"))
        max_overflow = int(os.getenv("VIPPAY_DB_MAX_OVERFLOW", "10"))
        engine = create_engine(
            url,
            pool_pre_ping=True,
            pool_size=pool_size,
            max_overflow=max_overflow,
            pool_timeout=int(os.getenv("VIPPAY_DB_POOL_TIMEOUT", "10")),
            connect_args=connect_args,
        )
    else:
        raise ValueError(
            f"Invalid VIPPAY_DB_POOL value: {pool_mode}. "
            "Must be 'nullpool' or 'queuepool'."
        )

    logger.debug(
        "Database engine created: pool=%s, url=%s",
        engine.pool.__class__.__name__,
        _mask_password(url),
    )

    return engine


def build_sessionmaker(engine: Engine) -> sessionmaker[Session]:
    """
    Build SQLAlchemy sessionmaker.

    Args:
        engine: SQLAlchemy Engine instance.

    Returns:
        sessionmaker instance configured with autocommit=False, autoflush=False.
    """
    return sessionmaker(autocommit=False, autoflush=False, expire_on_commit=False, bind=engine)
