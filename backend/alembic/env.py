"""Alembic environment for the order sync schema.

Database URL comes from the environment (same resolution as the app) and
the models' metadata drives autogenerate.
"""

from __future__ import annotations

from logging.config import fileConfig
from typing import Any

from alembic import context
from sqlalchemy import create_engine
from sqlalchemy.pool import NullPool

config = context.config
if config.config_file_name is not None:
    fileConfig(config.config_file_name)

from backoffice.database import DATABASE_URL  # noqa: E402
from backoffice.models import Base  # noqa: E402

target_metadata = Base.metadata


# ---------------------------------------------------------------------------
# include_object: only objects the models know about take part in the diff
# ---------------------------------------------------------------------------

def include_object(
    obj: Any, name: str | None, type_: str, reflected: bool, compare_to: Any
) -> bool:
    """Skip objects that exist in the database but not in the models.

    Autogenerate then never emits drops for tables created outside this
    service.
    """
    if reflected and compare_to is None:
        return False
    return True


# ---------------------------------------------------------------------------
# URL resolution
# ---------------------------------------------------------------------------

def get_url() -> str:
    """Resolve the database URL.

    DATABASE_URL wins (environment or backend/.env, see backoffice.database,
    which also rewrites postgres://); sqlalchemy.url in alembic.ini is not used.
    """
    url = DATABASE_URL.strip()

    # Strip quotes left over from .env files, e.g. '"postgresql://..."'
    if (url.startswith('"') and url.endswith('"')) or (url.startswith("'") and url.endswith("'")):
        url = url[1:-1].strip()

    return url


# ---------------------------------------------------------------------------
# Migration runners
# ---------------------------------------------------------------------------

def run_migrations_offline() -> None:
    """Emit SQL without connecting."""
    context.configure(
        url=get_url(),
        target_metadata=target_metadata,
        literal_binds=True,
        dialect_opts={"paramstyle": "named"},
        compare_type=True,
        compare_server_default=False,
        include_object=include_object,
    )

    with context.begin_transaction():
        context.run_migrations()


def run_migrations_online() -> None:
    """Run migrations against a live connection."""
    url = get_url()
    engine = create_engine(url, poolclass=NullPool, future=True)

    with engine.connect() as connection:
        context.configure(
            connection=connection,
            target_metadata=target_metadata,
            compare_type=True,
            compare_server_default=False,
            include_object=include_object,
            render_as_batch=url.startswith("sqlite"),
        )

        with context.begin_transaction():
            context.run_migrations()


if context.is_offline_mode():
    run_migrations_offline()
else:
    run_migrations_online()
