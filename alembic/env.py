import os
from logging.config import fileConfig

from alembic import context
from sqlalchemy import create_engine, pool

from bookon.core.config import settings
from bookon.db.session import Base

# Register every table on Base.metadata for autogenerate
from bookon.models.user import User  # noqa: F401
from bookon.models.activity import Activity  # noqa: F401
from bookon.models.booking import Booking  # noqa: F401
from bookon.models.refund_transaction import RefundTransaction  # noqa: F401
from bookon.models.wallet_credit import WalletCredit  # noqa: F401
from bookon.models.audit_log import AuditLog  # noqa: F401
from bookon.models.email_log import EmailLog  # noqa: F401

config = context.config

if config.config_file_name is not None:
    fileConfig(config.config_file_name, disable_existing_loggers=False)

target_metadata = Base.metadata


def database_url() -> str:
    # start_api passes the url explicitly; plain `alembic upgrade head` falls back to settings.
    url = config.get_main_option("sqlalchemy.url") or settings.DATABASE_URL or os.getenv("DATABASE_URL")
    if not url:
        raise RuntimeError("DATABASE_URL is not set (check .env / bookon.core.config.settings)")
    return url


def _configure_kwargs(url: str) -> dict:
    # SQLite cannot ALTER most constraints in place.
    return {"target_metadata": target_metadata, "compare_type": True, "render_as_batch": url.startswith("sqlite")}


def run_migrations_offline() -> None:
    url = database_url()
    context.configure(url=url, literal_binds=True, dialect_opts={"paramstyle": "named"}, **_configure_kwargs(url))
    with context.begin_transaction():
        context.run_migrations()


def run_migrations_online() -> None:
    url = database_url()
    connectable = create_engine(url, poolclass=pool.NullPool)
    with connectable.connect() as connection:
        context.configure(connection=connection, **_configure_kwargs(url))
        with context.begin_transaction():
            context.run_migrations()


if context.is_offline_mode():
    run_migrations_offline()
else:
    run_migrations_online()
