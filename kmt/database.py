"""Database engine and session factory."""
from typing import Any, Dict

from sqlalchemy import create_engine
from sqlalchemy.orm import declarative_base, sessionmaker

from kmt.config import Settings, get_settings


def engine_options(settings: Settings) -> Dict[str, Any]:
    """Keyword arguments for create_engine for the configured backend."""
    if settings.is_sqlite:
        # One connection is shared across the request threads
        return {"connect_args": {"check_same_thread": False}}
    return {
        "pool_pre_ping": True,
        "pool_size": 5,
        "max_overflow": 10,
    }


settings = get_settings()
engine = create_engine(settings.database_url, **engine_options(settings))

SessionLocal = sessionmaker(autoflush=False, bind=engine)

Base = declarative_base()


def get_db():
    """Session per HTTP request, closed when the response is sent."""
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()
