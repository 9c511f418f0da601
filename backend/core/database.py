# backend/core/database.py

from sqlalchemy import create_engine
from sqlalchemy.engine import Engine
from sqlalchemy.orm import declarative_base, sessionmaker
from sqlalchemy.pool import StaticPool

from .config import settings

IN_MEMORY_URLS = {"sqlite://", "sqlite:///:memory:"}


def build_engine(url: str) -> Engine:
    """Engine for ``url``; SQLite connections may be used from any thread"""
    if not url.startswith("sqlite"):
        return create_engine(url, pool_pre_ping=True, pool_size=10, max_overflow=20)

    kwargs = {"connect_args": {"check_same_thread": False}}
    if url in IN_MEMORY_URLS:
        kwargs["poolclass"] = StaticPool
    return create_engine(url, **kwargs)


engine = build_engine(settings.database_url)

SessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)

Base = declarative_base()


def get_db():
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()
