from __future__ import annotations

from logging.config import fileConfig

from alembic import context
from sqlalchemy import create_engine, pool

from tracking.infra.db import get_conn

config = context.config
if config.config_file_name is not None:
    fileConfig(config.config_file_name)

# Revisions execute raw SQL from migrations/sql; nothing to autogenerate from.
target_metadata = None

# Offline mode only needs the dialect, no credentials.
OFFLINE_URL = "postgresql+psycopg2://"


def _run(**configure_kwargs) -> None:
    context.configure(target_metadata=target_metadata, **configure_kwargs)
    with context.begin_transaction():
        context.run_migrations()


def run_offline() -> None:
    """Print the migration SQL instead of executing it."""
    _run(url=OFFLINE_URL, literal_binds=True, dialect_opts={"paramstyle": "named"})


def run_online() -> None:
    """Apply migrations over the same DATABASE_URL connection the worker uses."""
    engine = create_engine(OFFLINE_URL, creator=get_conn, poolclass=pool.NullPool)
    with engine.connect() as connection:
        _run(connection=connection)


if context.is_offline_mode():
    run_offline()
else:
    run_online()
