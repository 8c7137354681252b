# src/forum_notify/scripts/migrate.py
from __future__ import annotations

import os

from alembic import command
from alembic.config import Config

from forum_notify.core.settings import settings


def run_upgrade_head() -> None:
    """Upgrade the configured database to the latest schema."""
    root = os.path.join(os.path.dirname(__file__), "..", "..", "..")
    cfg = Config(os.path.join(root, "alembic.ini"))
    cfg.set_main_option("sqlalchemy.url", settings.database_url_sync)
    cfg.set_main_option("script_location", os.path.abspath(os.path.join(root, "migrations")))
    command.upgrade(cfg, "head")


if __name__ == "__main__":
    run_upgrade_head()
