"""
SQLAlchemy base configuration and session management.

Uses SQLAlchemy 2.0 style with type hints and declarative base.
Only the durable mirror talks to the database; the live store never
waits on it.
"""

from sqlalchemy import create_engine, event
from sqlalchemy.engine import Engine
from sqlalchemy.orm import DeclarativeBase, sessionmaker


class Base(DeclarativeBase):
    """Base class for all models."""
    pass


def create_db_engine(url: str, echo: bool = False) -> Engine:
    """
    Create an engine with settings appropriate for the database type.

    SQLite gets WAL mode so the mirror can be read by other tools while
    the scheduler is writing to it.
    """
    engine_kwargs = {'echo': echo}
    is_sqlite = url.startswith('sqlite')

    if is_sqlite:
        engine_kwargs['connect_args'] = {'check_same_thread': False}

    engine = create_engine(url, **engine_kwargs)

    if is_sqlite:
        @event.listens_for(engine, 'connect')
        def set_sqlite_pragma(dbapi_connection, connection_record):
            cursor = dbapi_connection.cursor()
            cursor.execute('PRAGMA journal_mode=WAL')
            cursor.execute('PRAGMA synchronous=NORMAL')
            cursor.execute('PRAGMA foreign_keys=ON')
            cursor.close()

    return engine


def create_session_factory(engine: Engine) -> sessionmaker:
    """Session factory bound to the given engine."""
    return sessionmaker(
        bind=engine,
        autocommit=False,
        autoflush=False,
        expire_on_commit=False,  # Avoid lazy loading issues
    )


def init_db(engine: Engine) -> None:
    """
    Initialize database schema.

    Creates all tables if they don't exist.
    """
    # Register the mirror tables on Base.metadata
    from simtraffic.models import flight_record  # noqa: F401

    Base.metadata.create_all(bind=engine)
