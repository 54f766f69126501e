"""Database configuration for the local queue storage."""
from sqlalchemy import create_engine
from sqlalchemy.engine import Engine
from sqlalchemy.orm import declarative_base, sessionmaker

Base = declarative_base()


def create_db_engine(database_url: str) -> Engine:
    """Create an engine for the local store (SQLite by default)."""
    connect_args = {}
    if database_url.startswith("sqlite"):
        # Sessions may run on a different thread than the one that opened the connection
        connect_args["check_same_thread"] = False
    return create_engine(database_url, connect_args=connect_args, pool_pre_ping=True)


def create_session_maker(engine: Engine) -> sessionmaker:
    """Create a session factory bound to the given engine."""
    return sessionmaker(bind=engine, expire_on_commit=False)


def init_db(engine: Engine) -> None:
    """Create tables that do not exist yet."""
    # Import models so they register on Base.metadata
    from offline_booking import models  # noqa: F401

    Base.metadata.create_all(engine)
