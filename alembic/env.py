import logging
from collections.abc import Collection, Mapping
from logging.config import fileConfig
from typing import Any

from alembic import context
from alembic.runtime.migration import MigrationContext, MigrationInfo
from sqlalchemy import engine_from_config, pool

from railwatch.core.config import settings
from railwatch.core.utils import convert_async_db_url_to_sync
from railwatch.models import Base  # Registers every model on Base.metadata

logger = logging.getLogger("alembic.env")

config = context.config

# Migrations run synchronously through psycopg; a URL set on the Config
# (test databases) takes precedence over the application setting
if not config.get_main_option("sqlalchemy.url"):
    config.set_main_option("sqlalchemy.url", convert_async_db_url_to_sync(settings.DATABASE_URL))

if config.config_file_name is not None:
    fileConfig(config.config_file_name)

target_metadata = Base.metadata


def run_migrations_offline() -> None:
    """Emit migration SQL without a database connection."""
    context.configure(
        url=config.get_main_option("sqlalchemy.url"),
        target_metadata=target_metadata,
        literal_binds=True,
        dialect_opts={"paramstyle": "named"},
    )

    with context.begin_transaction():
        context.run_migrations()


def run_migrations_online() -> None:
    """Apply migrations against the configured database, logging each step."""
    connectable = engine_from_config(
        config.get_section(config.config_ini_section, {}),
        prefix="sqlalchemy.",
        poolclass=pool.NullPool,
    )

    with connectable.connect() as connection:
        applied: list[str] = []

        def on_version_apply(
            ctx: MigrationContext,
            step: MigrationInfo,
            heads: Collection[Any],
            run_args: Mapping[str, Any],
        ) -> None:
            applied.append(step.up_revision_id)
            logger.info("Applying migration %s", step.up_revision_id)

        context.configure(
            connection=connection,
            target_metadata=target_metadata,
            on_version_apply=on_version_apply,
        )

        current_rev = context.get_context().get_current_revision()
        head_rev = context.script.get_current_head()
        if current_rev == head_rev:
            logger.info("Database already at revision %s", head_rev or "base")
        else:
            logger.info("Upgrading database from %s to %s", current_rev or "base", head_rev)

        with context.begin_transaction():
            context.run_migrations()

        if applied:
            logger.info("Applied %d migration(s); database now at %s", len(applied), head_rev)


if context.is_offline_mode():
    run_migrations_offline()
else:
    run_migrations_online()
