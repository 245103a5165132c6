"""Database engine and sessions; a request's session doubles as its unit of work"""

from typing import Any, Dict
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker, Session
from ramp_gateway.config import settings


def engine_options(database_url: str) -> Dict[str, Any]:
    """Pool settings for server databases; SQLite (local runs) gets a thread-shareable connection"""
    if database_url.startswith("sqlite"):
        return {"connect_args": {"check_same_thread": False}}
    return {
        "pool_pre_ping": True,  # Verify connections before using
        "pool_size": settings.db_pool_size,
        "max_overflow": settings.db_max_overflow,
        "pool_recycle": 3600,
    }


engine = create_engine(settings.database_url, **engine_options(settings.database_url))

SessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)


def get_db() -> Session:
    """
    One session per request.

    Lifecycle steps commit through it so a status change, its audit entry and
    any refund request land together; whatever is left uncommitted is discarded
    on close.
    """
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()
