# booking/db.py

from typing import Optional

from sqlalchemy.engine import Engine
from sqlmodel import SQLModel, create_engine, Session

from booking.config import get_settings

_engine: Optional[Engine] = None


def build_engine(database_url: str, echo: bool = False) -> Engine:
    connect_args = {}
    if database_url.startswith("sqlite"):
        connect_args["check_same_thread"] = False  # required for SQLite + FastAPI
    return create_engine(database_url, echo=echo, connect_args=connect_args)


# Engine = connection to the database, created on first use
def get_engine() -> Engine:
    global _engine
    if _engine is None:
        settings = get_settings()
        _engine = build_engine(settings.database_url, echo=settings.db_echo)
    return _engine


def create_db_and_tables(engine: Engine) -> None:
    # importing models registers the tables on SQLModel.metadata
    from booking import models  # noqa: F401

    SQLModel.metadata.create_all(engine)


# Dependency: one session per request
def get_session():
    with Session(get_engine()) as session:
        yield session
