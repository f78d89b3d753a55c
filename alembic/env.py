"""Alembic environment for the shared tenants schema.

Usage:
  alembic upgrade head

The alembic_version table lives in the shared schema next to the tenants
table.
"""

from logging.config import fileConfig

from alembic import context
from sqlalchemy import create_engine, pool, text

from src.tenancy.config import get_settings
from src.tenancy.core.database import SharedBase
from src.tenancy.tenants import models  # noqa: F401  registers TenantModel

# Alembic Config object
config = context.config

# Interpret the config file for Python logging
if config.config_file_name is not None:
    fileConfig(config.config_file_name)

target_schema = get_settings().SHARED_SCHEMA
target_metadata = SharedBase.metadata


def _sync_url() -> str:
    return get_settings().DATABASE_URL.replace("+asyncpg", "")


def run_migrations_offline() -> None:
    """Run migrations in 'offline' mode."""
    context.configure(
        url=_sync_url(),
        target_metadata=target_metadata,
        literal_binds=True,
        dialect_opts={"paramstyle": "named"},
        version_table_schema=target_schema,
    )

    with context.begin_transaction():
        context.run_migrations()


def run_migrations_online() -> None:
    """Run migrations in 'online' mode."""
    connectable = create_engine(_sync_url(), poolclass=pool.NullPool)

    with connectable.connect() as connection:
        # The version table is created inside the schema, so it must exist first
        connection.execute(text(f'CREATE SCHEMA IF NOT EXISTS "{target_schema}"'))
        connection.commit()

        context.configure(
            connection=connection,
            target_metadata=target_metadata,
            version_table_schema=target_schema,
            include_schemas=True,
        )

        with context.begin_transaction():
            context.run_migrations()


if context.is_offline_mode():
    run_migrations_offline()
else:
    run_migrations_online()
