# migrations/env.py
from alembic import context
from dotenv import load_dotenv
from sqlalchemy import engine_from_config, pool

from budget_auth.core.config import Settings
from budget_auth.db.base import Base
from budget_auth.db.database import normalize_url, postgres_url

config = context.config


def _settings_url() -> str:
    load_dotenv()
    settings = Settings()
    if settings.postgres_configured():
        url = postgres_url(settings)
        return normalize_url(url) if isinstance(url, str) else url.render_as_string(hide_password=False)
    return f"sqlite:///{settings.AUTH_DB_PATH}"


db_url = config.get_main_option("sqlalchemy.url")
if not db_url or db_url.strip() == "":
    config.set_main_option("sqlalchemy.url", _settings_url().replace("%", "%%"))
else:
    config.set_main_option("sqlalchemy.url", normalize_url(db_url).replace("%", "%%"))

target_metadata = Base.metadata


def run_migrations_offline():
    url = config.get_main_option("sqlalchemy.url")
    context.configure(url=url, target_metadata=target_metadata, literal_binds=True)
    with context.begin_transaction():
        context.run_migrations()


def run_migrations_online():
    connectable = engine_from_config(
        config.get_section(config.config_ini_section, {}), prefix="sqlalchemy.", poolclass=pool.NullPool
    )
    with connectable.connect() as connection:
        context.configure(connection=connection, target_metadata=target_metadata, render_as_batch=True)
        with context.begin_transaction():
            context.run_migrations()


if context.is_offline_mode():
    run_migrations_offline()
else:
    run_migrations_online()
