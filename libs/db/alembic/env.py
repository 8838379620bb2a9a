"""Alembic environment for the ledger tables.

``DATABASE_URL`` (from the environment or the nearest ``.env``) wins over
``sqlalchemy.url`` in ``alembic.ini``. ``alembic.ini`` prepends ``src/`` to
``sys.path`` so the ``db`` package imports without installation.
"""

from __future__ import annotations

import os
from logging.config import fileConfig

from alembic import context
from dotenv import find_dotenv, load_dotenv
from sqlalchemy import engine_from_config, pool

from db import metadata

config = context.config
if config.config_file_name is not None:
    fileConfig(config.config_file_name)

_dotenv = find_dotenv(usecwd=True)
if _dotenv:
    load_dotenv(_dotenv, override=False)

url = os.getenv("DATABASE_URL") or config.get_main_option("sqlalchemy.url")
if not url:
    raise RuntimeError("DATABASE_URL is not set and alembic.ini has no sqlalchemy.url")
config.set_main_option("sqlalchemy.url", url)

# SQLite cannot ALTER most constraints in place; batch mode rebuilds the table.
_BATCH = url.startswith("sqlite")


def run_migrations_offline() -> None:
    context.configure(
        url=url,
        target_metadata=metadata,
        literal_binds=True,
        compare_type=True,
        render_as_batch=_BATCH,
    )
    with context.begin_transaction():
        context.run_migrations()


def run_migrations_online() -> None:
    engine = engine_from_config(
        config.get_section(config.config_ini_section) or {},
        prefix="sqlalchemy.",
        poolclass=pool.NullPool,
    )
    with engine.connect() as connection:
        context.configure(
            connection=connection,
            target_metadata=metadata,
            compare_type=True,
            render_as_batch=_BATCH,
        )
        with context.begin_transaction():
            context.run_migrations()


if context.is_offline_mode():
    run_migrations_offline()
else:
    run_migrations_online()
