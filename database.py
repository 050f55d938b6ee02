"""SQLAlchemy engine and session factory for the course store."""
from sqlalchemy import create_engine
from sqlalchemy.orm import declarative_base, sessionmaker
from sqlalchemy.pool import StaticPool

from core.config import get_settings


def create_db_engine(database_url: str):
    kwargs = {}
    if database_url.startswith("sqlite"):
        # FastAPI serves requests from a thread pool
        kwargs["connect_args"] = {"check_same_thread": False}
        if database_url in ("sqlite://", "sqlite:///:memory:"):
            kwargs["poolclass"] = StaticPool
    return create_engine(database_url, **kwargs)


Base = declarative_base()

engine = create_db_engine(get_settings().database_url)
SessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)


def init_db(bind=None) -> None:
    # Register models on Base.metadata before creating tables
    import models  # noqa: F401

    Base.metadata.create_all(bind=bind or engine)
