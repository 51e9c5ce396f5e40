"""Database handle and session helpers.

One ``Database`` is built when the application starts and disposed when it
stops. Request handlers never reach for a module-level engine; they receive a
session through ``get_db``, which looks the handle up on ``app.state``.
"""

from __future__ import annotations

from collections.abc import Generator

from fastapi import Request
from sqlalchemy import create_engine, event
from sqlalchemy.engine import Engine
from sqlalchemy.orm import Session, declarative_base, sessionmaker

from ..core.config import AppSettings, settings as default_settings

# ``Base`` is the parent class for every SQLAlchemy model defined in toolcrib/models.
Base = declarative_base()


def _enable_sqlite_foreign_keys(dbapi_connection, connection_record) -> None:
    # SQLite ignores FOREIGN KEY clauses unless this is set per connection.
    cursor = dbapi_connection.cursor()
    cursor.execute("PRAGMA foreign_keys=ON")
    cursor.close()


def build_engine(url: str, *, pool_size: int = 10, max_overflow: int = 0, pool_timeout: int = 30) -> Engine:
    if url.startswith("sqlite"):
        # SQLite connections are shared by FastAPI worker threads. Pool sizing
        # arguments do not apply to SQLite's pool classes.
        engine = create_engine(url, connect_args={"check_same_thread": False})
        event.listen(engine, "connect", _enable_sqlite_foreign_keys)
        return engine
    return create_engine(
        url,
        pool_size=pool_size,
        max_overflow=max_overflow,
        pool_timeout=pool_timeout,
        pool_pre_ping=True,
    )


class Database:
    """Owns the engine (and its bounded connection pool) plus the session factory."""

    def __init__(self, engine: Engine) -> None:
        self.engine = engine
        self.session_factory = sessionmaker(bind=engine, autocommit=False, autoflush=False, expire_on_commit=False)

    @classmethod
    def from_settings(cls, config: AppSettings | None = None) -> "Database":
        config = config or default_settings
        return cls(
            build_engine(
                config.DB_URL,
                pool_size=config.DB_POOL_SIZE,
                max_overflow=config.DB_MAX_OVERFLOW,
                pool_timeout=config.DB_POOL_TIMEOUT,
            )
        )

    def create_all(self) -> None:
        # Importing the models registers them with the metadata.
        from ..models import loan as _loan  # noqa: F401
        from ..models import product as _product  # noqa: F401
        from ..models import tool as _tool  # noqa: F401
        from ..models import user as _user  # noqa: F401
        from ..models import withdrawal as _withdrawal  # noqa: F401

        Base.metadata.create_all(bind=self.engine)

    def session(self) -> Session:
        return self.session_factory()

    def dispose(self) -> None:
        self.engine.dispose()


def get_db(request: Request) -> Generator[Session, None, None]:
    """FastAPI dependency that yields a session and guarantees cleanup."""

    db = request.app.state.database.session()
    try:
        yield db
    finally:
        db.close()
