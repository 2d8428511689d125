"""Alembic environment for the VIP payment schema.

The target URL is taken from DATABASE_URL_MIGRATIONS, then DATABASE_URL,
then ``sqlalchemy.url`` in alembic.ini. Online runs share the application's
engine builder so pool and connect-timeout policy match the service.
"""

import os
from logging.config import fileConfig

from alembic import context

from vippay_api.db.engine import build_engine
from vippay_api.db.models import Base

MIGRATION_URL_ENV_VARS = ("DATABASE_URL_MIGRATIONS", "DATABASE_URL")

alembic_cfg = context.config
if alembic_cfg.config_file_name is not None:
    fileConfig(alembic_cfg.config_file_name)


def resolve_migration_url() -> str:
    for name in MIGRATION_URL_ENV_VARS:
        url = os.getenv(name)
        if url:
            return url
    url = alembic_cfg.get_main_option("sqlalchemy.url")
    if not url:
        raise RuntimeError(
            "No database URL for migrations: set "
            + " or ".join(MIGRATION_URL_ENV_VARS)
            + ", or sqlalchemy.url in alembic.ini"
        )
    return url


def migrate_offline(url: str) -> None:
    """Emit SQL for the pending revisions without connecting."""
    context.configure(
        url=url,
        target_metadata=Base.metadata,
        literal_binds=True,
        dialect_opts={"paramstyle": "named"},
        compare_type=True,
    )
    with context.begin_transaction():
        context.run_migrations()


def migrate_online(url: str) -> None:
    engine = build_engine(url)
    try:
        with engine.connect() as connection:
            context.configure(
                connection=connection,
                target_metadata=Base.metadata,
                compare_type=True,
                render_as_batch=connection.dialect.name == "sqlite",
            )
            with context.begin_transaction():
                context.run_migrations()
    finally:
        engine.dispose()


_url = resolve_migration_url()
if context.is_offline_mode():
    migrate_offline(_url)
else:
    migrate_online(_url)
