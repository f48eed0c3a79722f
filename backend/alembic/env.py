"""
Alembic Migration Environment
===============================

What:  Runs Alembic against the async SQLAlchemy engine the app uses.
How:   Takes the database URL from mhike.config.Settings (not alembic.ini),
       imports every model so autogenerate sees the full schema, and runs
       the migration steps through connection.run_sync().
Who:   `alembic upgrade head` / `alembic revision --autogenerate`, run from
       backend/.

Deployments that manage the schema with Alembic set DB_CREATE_ALL=false so
the app lifespan does not create tables itself.
"""

import asyncio
from logging.config import fileConfig

from sqlalchemy import pool
from sqlalchemy.ext.asyncio import async_engine_from_config
from alembic import context

from mhike.config import settings
from mhike.database import Base

# Registering the models on Base.metadata
from mhike.models.user import User  # noqa: F401
from mhike.models.hike import Hike  # noqa: F401
from mhike.models.observation import Observation  # noqa: F401

config = context.config

if config.config_file_name is not None:
    fileConfig(config.config_file_name)

target_metadata = Base.metadata

# Single source of truth for the connection URL
config.set_main_option("sqlalchemy.url", settings.database_url)


def run_migrations_offline() -> None:
    """Emit the migration SQL to stdout without connecting."""
    context.configure(
        url=config.get_main_option("sqlalchemy.url"),
        target_metadata=target_metadata,
        literal_binds=True,
        dialect_opts={"paramstyle": "named"},
        render_as_batch=settings.is_sqlite,
    )

    with context.begin_transaction():
        context.run_migrations()


def do_run_migrations(connection):
    # SQLite cannot ALTER most constraints in place; batch mode rebuilds tables
    context.configure(
        connection=connection,
        target_metadata=target_metadata,
        render_as_batch=connection.dialect.name == "sqlite",
    )

    with context.begin_transaction():
        context.run_migrations()


async def run_async_migrations() -> None:
    connectable = async_engine_from_config(
        config.get_section(config.config_ini_section, {}),
        prefix="sqlalchemy.",
        poolclass=pool.NullPool,
    )

    async with connectable.connect() as connection:
        await connection.run_sync(do_run_migrations)

    await connectable.dispose()


def run_migrations_online() -> None:
    asyncio.run(run_async_migrations())


if context.is_offline_mode():
    run_migrations_offline()
else:
    run_migrations_online()
