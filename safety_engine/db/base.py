"""SQLAlchemy base configuration."""

from sqlalchemy import Engine, create_engine
from sqlalchemy.orm import Session, declarative_base, sessionmaker
from sqlalchemy.pool import StaticPool

from safety_engine.config import get_settings

# Create declarative base
Base = declarative_base()


def build_engine(database_url: str | None = None) -> Engine:
    """Create an engine for the store backing database.

    In-memory SQLite shares one connection across threads so every session
    sees the same database.
    """
    url = database_url or get_settings().DATABASE_URL

    if url.startswith("sqlite"):
        if ":memory:" in url or url in ("sqlite://", "sqlite+pysqlite://"):
            return create_engine(
                url, connect_args={"check_same_thread": False}, poolclass=StaticPool
            )
        return create_engine(url, connect_args={"check_same_thread": False})

    return create_engine(
        url,
        pool_pre_ping=True,
        pool_size=10,
        max_overflow=20,
    )


def build_session_factory(engine: Engine) -> sessionmaker[Session]:
    """Create session factory bound to ``engine``."""
    return sessionmaker(autocommit=False, autoflush=False, expire_on_commit=False, bind=engine)


def init_db(engine: Engine) -> None:
    """Create all tables that do not exist yet."""
    # Register models on Base.metadata
    from safety_engine import models  # noqa: F401

    Base.metadata.create_all(bind=engine)
