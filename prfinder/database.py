"""
Database schema and connection management.

Uses SQLite with SQLAlchemy for the persisted profile cache.
"""

from datetime import datetime
from pathlib import Path
from sqlalchemy import create_engine, Column, String, DateTime, Text
from sqlalchemy.orm import declarative_base, sessionmaker

Base = declarative_base()


class CachedProfile(Base):
    """Deep-fetched profile, keyed the same way as the in-memory cache."""

    __tablename__ = "profiles"

    source = Column(String, primary_key=True)
    detail_reference = Column(String, primary_key=True)
    payload = Column(Text, nullable=True)  # JSON DetailProfile, NULL for a failed fetch
    fetched_at = Column(DateTime, nullable=False, default=datetime.now)


def get_engine(db_path: Path):
    return create_engine(f"sqlite:///{db_path}")


def init_database(db_path: Path):
    """
    Initialize database and create tables.

    Args:
        db_path: Path to SQLite database file

    Returns:
        The engine bound to the database
    """
    db_path.parent.mkdir(parents=True, exist_ok=True)
    engine = get_engine(db_path)
    Base.metadata.create_all(engine)
    return engine


def get_session(db_path: Path, engine=None):
    """
    Get database session.

    Args:
        db_path: Path to SQLite database file
        engine: Reuse an existing engine instead of creating one

    Returns:
        SQLAlchemy session
    """
    engine = engine or get_engine(db_path)
    Session = sessionmaker(bind=engine)
    return Session()
