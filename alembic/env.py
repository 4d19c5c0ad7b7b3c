"""Alembic environment for the white-label orchestrator schema.

Targets the ORM metadata and runs SQLite migrations in batch mode so
ALTER TABLE works.
"""

from __future__ import annotations

from logging.config import fileConfig

from alembic import context

from whitelabel.db.orm import Base

config = context.config

if config.config_file_name is not None:
    fileConfig(config.config_file_name, disable_existing_loggers=False)

target_metadata = Base.metadata

_DEFAULT_URL = "sqlite:///data/whitelabel.db"


def run_migrations_offline() -> None:
    """Emit SQL to stdout without a database connection."""
    context.configure(
        url=config.get_main_option("sqlalchemy.url", _DEFAULT_URL),
        target_metadata=target_metadata,
        literal_binds=True,
        dialect_opts={"paramstyle": "named"},
        render_as_batch=True,
    )

    with context.begin_transaction():
        context.run_migrations()


def run_migrations_online() -> None:
    from whitelabel.db.engine import create_db_engine

    url = config.get_main_option("sqlalchemy.url", _DEFAULT_URL)
    # sqlite:///relative/path or sqlite:////absolute/path
    connectable = create_db_engine(url.replace("sqlite:///", "", 1))

    with connectable.connect() as connection:
        context.configure(
            connection=connection,
            target_metadata=target_metadata,
            render_as_batch=True,
        )
        with context.begin_transaction():
            context.run_migrations()

    connectable.dispose()


if context.is_offline_mode():
    run_migrations_offline()
else:
    run_migrations_online()
