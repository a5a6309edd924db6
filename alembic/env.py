import os
import sys
from logging.config import fileConfig

from alembic import context
from sqlalchemy import engine_from_config, make_url, pool

# Make the loopreviews package importable when alembic runs from the repo root
sys.path.append(os.path.dirname(os.path.dirname(__file__)))

from loopreviews.config import settings  # noqa: E402
from loopreviews.models import Base  # noqa: E402

config = context.config

if config.config_file_name is not None:
    fileConfig(config.config_file_name)

target_metadata = Base.metadata


def _synchronous_url(async_url: str) -> str:
    """Migrations run on a blocking driver; map the app's async driver to its sync twin"""
    url = make_url(async_url)
    driver = url.drivername

    if driver in {"postgresql+asyncpg", "postgresql+psycopg_async", "postgresql+psycopg2"}:
        url = url.set(drivername="postgresql+psycopg")
    elif driver == "sqlite+aiosqlite":
        url = url.set(drivername="sqlite+pysqlite")
    elif "+" in driver:
        url = url.set(drivername=driver.split("+")[0])

    return url.render_as_string(hide_password=False)


sync_database_url = _synchronous_url(settings.database_url)


def run_migrations_offline() -> None:
    """Emit SQL to stdout without connecting."""
    context.configure(
        url=sync_database_url,
        target_metadata=target_metadata,
        literal_binds=True,
        dialect_opts={"paramstyle": "named"},
    )

    with context.begin_transaction():
        context.run_migrations()


def run_migrations_online() -> None:
    configuration = config.get_section(config.config_ini_section) or {}
    configuration["sqlalchemy.url"] = sync_database_url
    connectable = engine_from_config(
        configuration,
        prefix="sqlalchemy.",
        poolclass=pool.NullPool,
    )

    with connectable.connect() as connection:
        context.configure(
            connection=connection,
            target_metadata=target_metadata,
            compare_type=True,
        )

        with context.begin_transaction():
            context.run_migrations()


if context.is_offline_mode():
    run_migrations_offline()
else:
    run_migrations_online()
