from sqlalchemy import create_engine, event, text
from sqlalchemy.engine import Engine
from sqlalchemy.orm import DeclarativeBase, Session, sessionmaker

from redirector.config import settings

SQLITE_BUSY_TIMEOUT_MS = 30_000


class Base(DeclarativeBase):
    pass


def make_engine(url: str) -> Engine:
    if url.startswith("sqlite"):
        # Accounting jobs write from worker threads
        sqlite_engine = create_engine(
            url, connect_args={"check_same_thread": False, "timeout": SQLITE_BUSY_TIMEOUT_MS / 1000}
        )

        @event.listens_for(sqlite_engine, "checkout")
        def _reset_busy_timeout(dbapi_connection, connection_record, connection_proxy):
            # A bounded call may have shortened it on this pooled connection
            dbapi_connection.execute(f"PRAGMA busy_timeout = {SQLITE_BUSY_TIMEOUT_MS}")

        return sqlite_engine
    return create_engine(url, pool_pre_ping=True, pool_size=5, max_overflow=10, pool_recycle=1800)


def apply_statement_timeout(session: Session, seconds: float | None) -> None:
    """
    Bound every statement of the session's current transaction.
    PostgreSQL: transaction-local statement_timeout. SQLite: busy timeout on
    the checked-out connection, restored on the next checkout.
    """
    if seconds is None:
        return
    ms = max(1, int(seconds * 1000))
    conn = session.connection()
    dialect = conn.dialect.name
    if dialect == "postgresql":
        conn.execute(text("SELECT set_config('statement_timeout', :ms, true)"), {"ms": str(ms)})
    elif dialect == "sqlite":
        conn.exec_driver_sql(f"PRAGMA busy_timeout = {ms}")


engine = make_engine(settings.database_url)


def make_session_factory(bind: Engine) -> sessionmaker:
    return sessionmaker(bind=bind, autocommit=False, autoflush=False, expire_on_commit=False)


SessionLocal = make_session_factory(engine)
