"""Database engine and session management.

The worker, the stale-run collector and the CLI may touch the same store at
once. SQLite databases are opened in WAL mode with foreign keys enforced;
any other SQLAlchemy URL (e.g. PostgreSQL) can be supplied via DATABASE_URL.
"""

import logging
import os
from collections.abc import Generator
from contextlib import contextmanager
from pathlib import Path

from alembic import command
from alembic.config import Config
from sqlalchemy import create_engine, event
from sqlalchemy.engine import Engine
from sqlalchemy.orm import Session, sessionmaker

logger = logging.getLogger(__name__)

DEFAULT_DB_PATH = Path.home() / ".dogpile" / "dogpile.db"
MIGRATIONS_DIR = Path(__file__).resolve().parent / "migrations"


def get_database_url(db_path: Path | str | None = None) -> str:
    """
    Resolve the store's connection URL.

    Precedence: explicit ``db_path`` (a SQLite file), then ``DATABASE_URL``
    (a full URL or a bare SQLite path), then ``~/.dogpile/dogpile.db``.
    """
    if db_path is None:
        configured = os.environ.get("DATABASE_URL", "")
        if "://" in configured:
            return configured
        db_path = configured or DEFAULT_DB_PATH

    path = Path(db_path).expanduser()
    path.parent.mkdir(parents=True, exist_ok=True)
    return f"sqlite:///{path}"


def _enable_sqlite_pragmas(dbapi_connection, connection_record) -> None:
    cursor = dbapi_connection.cursor()
    cursor.execute("PRAGMA journal_mode=WAL")
    cursor.execute("PRAGMA foreign_keys=ON")
    cursor.execute("PRAGMA busy_timeout=5000")
    cursor.close()


def create_db_engine(db_path: Path | str | None = None, echo: bool = False) -> Engine:
    """Create an engine for the configured store."""
    url = get_database_url(db_path)
    if not url.startswith("sqlite"):
        return create_engine(url, echo=echo, pool_pre_ping=True)

    engine = create_engine(url, echo=echo, connect_args={"check_same_thread": False})
    event.listen(engine, "connect", _enable_sqlite_pragmas)
    return engine


# Process-wide engine and session factory, created on first use
_engine: Engine | None = None
_SessionLocal: sessionmaker | None = None


def get_engine(db_path: Path | str | None = None, echo: bool = False) -> Engine:
    global _engine
    if _engine is None:
        _engine = create_db_engine(db_path, echo)
    return _engine


def get_session_factory(db_path: Path | str | None = None) -> sessionmaker:
    global _SessionLocal
    if _SessionLocal is None:
        _SessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=get_engine(db_path))
    return _SessionLocal


def reset_engine() -> None:
    """Dispose of the process-wide engine; the next session reconnects."""
    global _engine, _SessionLocal
    if _engine is not None:
        _engine.dispose()
    _engine = None
    _SessionLocal = None


@contextmanager
def get_session(db_path: Path | str | None = None) -> Generator[Session, None, None]:
    """
    Open a session; callers commit their own units of work.

    Uncommitted changes are rolled back on close.
    """
    session = get_session_factory(db_path)()
    try:
        yield session
    finally:
        session.close()


def init_db(db_path: Path | str | None = None) -> None:
    """Create all tables directly from the models (tests and local use)."""
    from dogpile_sync.db.models import Base

    Base.metadata.create_all(bind=get_engine(db_path))


def run_migrations(db_path: Path | str | None = None) -> None:
    """Upgrade the store to the latest Alembic revision."""
    config = Config()
    config.set_main_option("script_location", str(MIGRATIONS_DIR))
    config.set_main_option("sqlalchemy.url", get_database_url(db_path))
    logger.info(f"Running migrations against {config.get_main_option('sqlalchemy.url')}")
    command.upgrade(config, "head")
