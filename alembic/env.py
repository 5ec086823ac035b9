"""Alembic environment for the Lorekeeper schema.

Online runs reuse :func:`lorekeeper.database.engine.create_db_engine`, so
migrations see the same ``DATABASE_URL`` as the API.  Offline runs
(``alembic upgrade head --sql``) fall back to the URL in ``alembic.ini``
when the variable is unset.
"""

from __future__ import annotations

import os
from logging.config import fileConfig

from dotenv import load_dotenv

from alembic import context
from lorekeeper.database.engine import create_db_engine
from lorekeeper.database.models import Base

load_dotenv()

config = context.config
if config.config_file_name is not None:
    fileConfig(config.config_file_name)

target_metadata = Base.metadata


def _offline() -> None:
    context.configure(
        url=os.getenv("DATABASE_URL") or config.get_main_option("sqlalchemy.url"),
        target_metadata=target_metadata,
        literal_binds=True,
        dialect_opts={"paramstyle": "named"},
    )
    with context.begin_transaction():
        context.run_migrations()


def _online() -> None:
    engine = create_db_engine()
    try:
        with engine.connect() as connection:
            context.configure(
                connection=connection,
                target_metadata=target_metadata,
                compare_type=True,
                compare_server_default=True,
            )
            with context.begin_transaction():
                context.run_migrations()
    finally:
        engine.dispose()


if context.is_offline_mode():
    _offline()
else:
    _online()
