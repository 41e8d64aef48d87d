# budget_auth/db/bootstrap.py
import os

from alembic import command
from alembic.config import Config

BASE_DIR = os.path.abspath(os.path.join(os.path.dirname(__file__), "..", ".."))


def alembic_config(url: str) -> Config:
    cfg = Config()
    cfg.set_main_option("script_location", os.path.join(BASE_DIR, "migrations"))
    cfg.set_main_option("sqlalchemy.url", url.replace("%", "%%"))
    return cfg


def run_migrations(url: str, revision: str = "head") -> None:
    """Upgrade the database at ``url``; operators use this instead of implicit create_all."""
    command.upgrade(alembic_config(url), revision)
