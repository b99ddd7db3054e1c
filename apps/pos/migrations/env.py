import os

from alembic import context
from sqlalchemy import create_engine, pool

config = context.config


def _db_url() -> str:
    return os.getenv("POS_DB_URL") or os.getenv("DB_URL") or config.get_main_option("sqlalchemy.url")


def _schema():
    url = _db_url()
    return os.getenv("DB_SCHEMA") if not url.startswith("sqlite") else None


def run_migrations_offline() -> None:
    context.configure(
        url=_db_url(),
        literal_binds=True,
        dialect_opts={"paramstyle": "named"},
        version_table_schema=_schema(),
    )
    with context.begin_transaction():
        context.run_migrations()


def run_migrations_online() -> None:
    connectable = create_engine(_db_url(), poolclass=pool.NullPool, future=True)
    with connectable.connect() as connection:
        context.configure(connection=connection, version_table_schema=_schema())
        with context.begin_transaction():
            context.run_migrations()


if context.is_offline_mode():
    run_migrations_offline()
else:
    run_migrations_online()
