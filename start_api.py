#!/usr/bin/env python3
"""Container entry point: wait for Postgres, migrate, seed demo data, then serve."""
import logging
import os
import sys

from alembic import command
from alembic.config import Config
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker

logger = logging.getLogger("start_api")

ROOT = os.path.dirname(os.path.abspath(__file__))


def migrate(database_url: str):
    cfg = Config(os.path.join(ROOT, "alembic.ini"))
    cfg.set_main_option("script_location", os.path.join(ROOT, "alembic"))
    cfg.set_main_option("sqlalchemy.url", database_url)
    command.upgrade(cfg, "head")


def seed(database_url: str):
    # Fresh engine: the app engine may have been created before the tables existed.
    engine = create_engine(database_url, pool_pre_ping=True)
    try:
        from bookon.seed import run
        run(sessionmaker(autocommit=False, autoflush=False, bind=engine)())
    finally:
        engine.dispose()


def main():
    import wait_for_db  # noqa: F401  (blocks until the database accepts connections)
    from bookon.core.config import settings

    logger.info("Applying migrations")
    migrate(settings.DATABASE_URL)
    if os.getenv("SEED_DEMO_DATA", "1") == "1":
        seed(settings.DATABASE_URL)

    port = os.getenv("PORT", "8000")
    logger.info("Starting uvicorn on port %s", port)
    os.execv(sys.executable, [sys.executable, "-m", "uvicorn", "bookon.main:app", "--host", "0.0.0.0", "--port", port])


if __name__ == "__main__":
    logging.basicConfig(level=logging.INFO, format="[start_api] %(message)s")
    main()
