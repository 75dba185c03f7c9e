from collections.abc import Generator
from contextlib import contextmanager

from fastapi import Depends, Request
from sqlalchemy import create_engine
from sqlalchemy.orm import Session, sessionmaker
from sqlalchemy.pool import QueuePool, StaticPool

import core.sqlalchemy_logging  # noqa: F401
from core.dependencies import get_settings
from core.settings import Settings
from db.models import Base

# Global engine singleton
_engine = None


def reset_engines():
    """Reset the global engine singleton. Used for testing."""
    global _engine
    if _engine:
        _engine.dispose()
        _engine = None


def get_engine(settings: Settings = Depends(get_settings)):
    """Get or create the SQLAlchemy engine."""
    global _engine
    if _engine is None:
        if settings.DATABASE_URL.startswith("postgresql"):
            _engine = create_engine(
                settings.DATABASE_URL,
                future=True,
                poolclass=QueuePool,
                pool_size=settings.DATABASE_POOL_SIZE,
                max_overflow=settings.DATABASE_MAX_OVERFLOW,
                pool_timeout=settings.DATABASE_POOL_TIMEOUT,
                pool_recycle=settings.DATABASE_POOL_RECYCLE,
                pool_pre_ping=True,  # Verify connections before use
            )
        elif settings.DATABASE_URL.startswith("sqlite"):
            # SQLite for tests and local development
            _engine = create_engine(
                settings.DATABASE_URL,
                future=True,
                connect_args={"check_same_thread": False},
                poolclass=StaticPool,
            )
        else:
            _engine = create_engine(settings.DATABASE_URL, future=True)
    return _engine


SessionLocal = sessionmaker(autocommit=False, autoflush=False, expire_on_commit=False)


def get_db(
    request: Request, settings: Settings = Depends(get_settings)
) -> Generator[Session, None, None]:
    """FastAPI dependency that yields a session and stores it for the audit middleware.

    Services own their transactions; the session is only closed here.
    """
    engine = get_engine(settings)
    SessionLocal.configure(bind=engine)
    db = SessionLocal()
    store_db_in_request_state(request, db)
    try:
        yield db
    finally:
        db.close()


def store_db_in_request_state(request, db):
    """Store database session in request state for middleware access."""
    request.state.db = db


# For use in scripts and tests
@contextmanager
def get_session_context(settings: Settings = None) -> Generator[Session, None, None]:
    """Context manager for database sessions."""
    if settings is None:
        settings = Settings()
    engine = get_engine(settings)
    SessionLocal.configure(bind=engine)
    with SessionLocal() as session:
        yield session


def init_db(settings: Settings) -> None:
    """Initialize database tables."""
    engine = get_engine(settings)
    Base.metadata.create_all(engine)
