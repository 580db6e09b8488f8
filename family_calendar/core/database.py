"""Database configuration and session management for SQLite.

The engine enables two connection-level pragmas:

    - **WAL (Write-Ahead Logging)**: readers are not blocked while the
      refresh job or a request writes exceptions and derived events.

    - **Foreign Keys**: off by default in SQLite. Exceptions, derived events
      and assignments all reference their parent rows, so the series delete
      order matters and must be enforced.
"""

from sqlalchemy import event as sa_event
from sqlmodel import Session, SQLModel, create_engine

from family_calendar.core.config import settings

# FastAPI runs sync dependencies in a threadpool, so a connection may be used
# from a thread other than the one that created it.
connect_args = {"check_same_thread": False}

engine = create_engine(
    settings.database_url,
    connect_args=connect_args,
    echo=settings.debug,  # Log SQL statements when DEBUG=true
)


@sa_event.listens_for(engine, "connect")
def set_sqlite_pragma(dbapi_connection, connection_record):
    """Configure SQLite pragmas on each new connection."""
    cursor = dbapi_connection.cursor()
    cursor.execute("PRAGMA journal_mode=WAL")
    cursor.execute("PRAGMA foreign_keys=ON")
    cursor.close()


def create_db_and_tables():
    """Create all database tables."""
    # Import models so their tables are registered on the metadata
    import family_calendar.models  # noqa: F401

    SQLModel.metadata.create_all(engine)


def get_session():
    """Dependency for getting database session."""
    with Session(engine) as session:
        yield session
