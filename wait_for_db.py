import logging
import os
import time
from urllib.parse import urlparse

import psycopg2

logging.basicConfig(level=logging.INFO, format="[wait_for_db] %(message)s")
logger = logging.getLogger("wait_for_db")

DATABASE_URL = os.getenv("DATABASE_URL")
if not DATABASE_URL:
    raise SystemExit("DATABASE_URL is not set")

# SQLAlchemy URL may carry a driver suffix, e.g. postgresql+psycopg2://
p = urlparse(DATABASE_URL.replace("postgresql+psycopg2://", "postgresql://").replace("postgres://", "postgresql://"))

host = p.hostname or "db"
port = p.port or 5432
user = p.username or "bookon"
password = p.password or "bookon"
dbname = (p.path or "/bookon").lstrip("/") or "bookon"

timeout_s = int(os.getenv("DB_WAIT_TIMEOUT", "60"))
start = time.time()

logger.info("Waiting for Postgres at %s:%s db=%s user=%s (timeout=%ss)", host, port, dbname, user, timeout_s)
while True:
    try:
        psycopg2.connect(host=host, port=port, user=user, password=password, dbname=dbname).close()
        logger.info("Postgres is ready.")
        break
    except psycopg2.OperationalError as e:
        if time.time() - start > timeout_s:
            logger.error("Timed out waiting for DB. Last error: %s", e)
            raise
        time.sleep(1)
