from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker, declarative_base

from .config import settings


def build_engine(database_url: str, timeout: float, echo: bool = False):
    """Create an engine whose connections give up after ``timeout`` seconds."""
    if database_url.startswith("sqlite"):
        # busy timeout: how long a writer waits on a locked database
        connect_args = {"timeout": timeout, "check_same_thread": False}
        return create_engine(database_url, echo=echo, connect_args=connect_args)
    return create_engine(
        database_url,
        echo=echo,
        pool_timeout=timeout,
        pool_pre_ping=True,
    )


engine = build_engine(
    settings.database_url, settings.db_timeout_seconds, settings.sql_echo
)
SessionLocal = sessionmaker(bind=engine, autocommit=False, autoflush=False)

Base = declarative_base()


# Dependency for FastAPI routes
def get_db():
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()


def init_db(bind=None):
    # models must be imported so their tables are registered on Base
    from .models import models  # noqa: F401

    Base.metadata.create_all(bind=bind or engine)
