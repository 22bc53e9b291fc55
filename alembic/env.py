"""Alembic migration environment.

Migrations run synchronously: the async URL from settings is mapped onto a
sync driver (psycopg 3 serves both modes; aiosqlite becomes pysqlite).
"""

from logging.config import fileConfig
from sqlalchemy import engine_from_config, pool
from sqlalchemy.engine import make_url
from alembic import context
import os
import sys

# Add parent directory to path
sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from inward.core.config import settings
from inward.core.database import Base, normalize_async_database_url
import inward.models  # noqa: F401  registers every table on Base.metadata

config = context.config


def sync_database_url(database_url: str) -> str:
    url = make_url(normalize_async_database_url(database_url))
    if url.drivername == "sqlite+aiosqlite":
        url = url.set(drivername="sqlite")
    return url.render_as_string(hide_password=False)


if not settings.DATABASE_URL:
    print("CRITICAL: DATABASE_URL is EMPTY in settings!")
    sys.exit(255)

migration_url = sync_database_url(settings.DATABASE_URL)
print(f"Using database URL (redacted): {make_url(migration_url).render_as_string(hide_password=True)}")
# ConfigParser interpolation treats % specially
config.set_main_option("sqlalchemy.url", migration_url.replace("%", "%%"))

# Logging config
if config.config_file_name is not None:
    fileConfig(config.config_file_name)

target_metadata = Base.metadata


def run_migrations_offline() -> None:
    url = config.get_main_option("sqlalchemy.url")
    context.configure(
        url=url,
        target_metadata=target_metadata,
        literal_binds=True,
        dialect_opts={"paramstyle": "named"},
        compare_type=True,
    )

    with context.begin_transaction():
        context.run_migrations()


def run_migrations_online() -> None:
    connectable = engine_from_config(
        config.get_section(config.config_ini_section),
        prefix="sqlalchemy.",
        poolclass=pool.NullPool,
    )

    with connectable.connect() as connection:
        context.configure(
            connection=connection,
            target_metadata=target_metadata,
            compare_type=True,
            # SQLite cannot ALTER most constraints in place
            render_as_batch=connection.dialect.name == "sqlite",
        )

        with context.begin_transaction():
            context.run_migrations()


if context.is_offline_mode():
    run_migrations_offline()
else:
    run_migrations_online()
