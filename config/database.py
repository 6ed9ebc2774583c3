"""
Mimi's Kitchen API - Database Configuration
============================================
Database (engine + session factory), Base, and get_db dependency.
All models across all modules inherit from this Base.

The Database object is built by the application lifespan and stored on
app.state.db; nothing here connects at import time.
"""

from typing import Iterator

from fastapi import Request
from sqlalchemy import create_engine
from sqlalchemy.engine import Engine
from sqlalchemy.orm import Session, declarative_base, sessionmaker

Base = declarative_base()


class Database:
    """Owns the engine and session factory for one application instance."""

    def __init__(self, url: str, pool_size: int = 20, max_overflow: int = 40):
        self.url = url
        kwargs = {}
        if url.startswith("sqlite"):
            kwargs["connect_args"] = {"check_same_thread": False}
        else:
            kwargs.update(
                pool_size=pool_size,
                max_overflow=max_overflow,
                pool_timeout=30,
                pool_recycle=1800,  # Refresh connections every 30 minutes
            )
        self.engine: Engine = create_engine(url, **kwargs)
        # Copied into every new session's .info (e.g. the notification dispatcher)
        self.session_info = {}
        self.SessionLocal = sessionmaker(
            autocommit=False, autoflush=False, bind=self.engine, info=self.session_info,
        )

    def session(self) -> Session:
        return self.SessionLocal()

    def create_all(self):
        """Create any missing tables (safe for existing tables)."""
        Base.metadata.create_all(bind=self.engine)

    def dispose(self):
        self.engine.dispose()


def get_db(request: Request) -> Iterator[Session]:
    """FastAPI dependency: yields a database session, auto-closes after request."""
    db = request.app.state.db.session()
    try:
        yield db
    finally:
        db.close()
