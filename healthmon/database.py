from sqlalchemy import create_engine
from sqlalchemy.orm import declarative_base, sessionmaker
from sqlalchemy.pool import StaticPool

from healthmon.config import get_settings

DATABASE_URL = get_settings().DATABASE_URL


def build_engine(url: str):
    """
    Create an engine for the given URL.

    In-memory SQLite needs a single shared connection, otherwise every
    session would see its own empty database.
    """
    if url.startswith("sqlite"):
        kwargs = {"connect_args": {"check_same_thread": False}}
        if ":memory:" in url or url == "sqlite://":
            kwargs["poolclass"] = StaticPool
        return create_engine(url, future=True, echo=False, **kwargs)

    return create_engine(
        url,
        future=True,
        echo=False,  # set True if you want to see SQL in terminal
        pool_pre_ping=True,
    )


# SQLAlchemy engine & session factory
engine = build_engine(DATABASE_URL)

SessionLocal = sessionmaker(
    autocommit=False,
    autoflush=False,
    bind=engine,
    future=True,
    expire_on_commit=False,
)

Base = declarative_base()


def init_db(bind=None) -> None:
    """
    Import models and create tables if they don't exist.
    """
    from healthmon import models  # noqa: F401

    Base.metadata.create_all(bind=bind or engine)
