"""Programmatic access to the Alembic migration chain of the job store."""

from __future__ import annotations

import logging
from pathlib import Path

from sqlalchemy import create_engine
from sqlalchemy.pool import NullPool

from alembic import command
from alembic.config import Config
from alembic.runtime.migration import MigrationContext
from alembic.script import ScriptDirectory

logger = logging.getLogger(__name__)

PROJECT_ROOT = Path(__file__).resolve().parents[3]


def _alembic_config(db_path: Path) -> Config:
    config = Config(str(PROJECT_ROOT / "alembic.ini"))
    config.set_main_option("script_location", str(PROJECT_ROOT / "alembic"))
    config.set_main_option("sqlalchemy.url", f"sqlite:///{db_path}")
    return config


def head_revision(db_path: Path) -> str | None:
    """Newest revision known to the migration scripts."""

    return ScriptDirectory.from_config(_alembic_config(db_path)).get_current_head()


def current_revision(db_path: Path) -> str | None:
    """Revision stamped in the database, ``None`` for a fresh file."""

    engine = create_engine(f"sqlite:///{db_path}", poolclass=NullPool)
    try:
        with engine.connect() as connection:
            return MigrationContext.configure(connection).get_current_revision()
    finally:
        engine.dispose()


def upgrade_head(db_path: Path) -> None:
    """Bring the SQLite job store at ``db_path`` up to the newest schema."""

    config = _alembic_config(db_path)
    before = current_revision(db_path)
    target = head_revision(db_path)
    if before == target:
        return
    logger.info("Migrating job store %s from %s to %s", db_path, before or "<empty>", target)
    command.upgrade(config, "head")
