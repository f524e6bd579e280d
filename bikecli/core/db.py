from __future__ import annotations

import logging
from contextlib import contextmanager
from pathlib import Path
from typing import Generator

from alembic import command
from alembic.config import Config
from sqlalchemy import create_engine
from sqlalchemy.engine import Engine, make_url
from sqlalchemy.orm import Session, sessionmaker

logger = logging.getLogger(__name__)

MIGRATIONS_DIR = Path(__file__).resolve().parents[1] / "migrations"


def create_db_engine(database_url: str) -> Engine:
    url = make_url(database_url)
    if url.get_backend_name() == "sqlite" and url.database and url.database != ":memory:":
        Path(url.database).expanduser().parent.mkdir(parents=True, exist_ok=True)
    return create_engine(url, future=True)


def run_migrations(engine: Engine) -> None:
    config = Config()
    config.set_main_option("script_location", str(MIGRATIONS_DIR))
    config.set_main_option("sqlalchemy.url", engine.url.render_as_string(hide_password=False))

    with engine.begin() as connection:
        config.attributes["connection"] = connection
        command.upgrade(config, "head")
    logger.debug("Document store schema is up to date", extra={"database": str(engine.url)})


@contextmanager
def open_session(database_url: str) -> Generator[Session, None, None]:
    """Open a migrated database and yield one session for the whole invocation."""
    engine = create_db_engine(database_url)
    try:
        run_migrations(engine)
        session_factory = sessionmaker(bind=engine, autoflush=False)
        with session_factory() as db:
            yield db
    finally:
        engine.dispose()
