# inventory_service/db.py

"""
Database engine and session management for the Inventory Service.
"""
from sqlalchemy import create_engine
from sqlalchemy.engine import make_url
from sqlalchemy.orm import declarative_base, sessionmaker
from sqlalchemy.pool import StaticPool

from .config import DATABASE_URL


def build_engine(url: str = DATABASE_URL):
    """
    Create the SQLAlchemy engine for `url`.

    pool_pre_ping=True drops dead pooled connections before they are handed out.
    SQLite needs cross-thread access for FastAPI's threadpool, and an in-memory
    SQLite database only lives as long as its single connection.
    """
    kwargs = {"pool_pre_ping": True}
    parsed = make_url(url)
    if parsed.get_backend_name() == "sqlite":
        kwargs["connect_args"] = {"check_same_thread": False}
        if parsed.database in (None, "", ":memory:"):
            kwargs["poolclass"] = StaticPool
    return create_engine(url, **kwargs)


engine = build_engine()

# autocommit=False: transactions must be committed explicitly.
# autoflush=False: changes are not flushed until commit or an explicit flush.
SessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)

# Base class for the ORM models
Base = declarative_base()


def get_db():
    """
    Dependency that provides a database session per request.
    The session is always closed after the request, even when the backend is down.
    """
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()
