from sqlalchemy import create_engine, event
from sqlalchemy.engine import Engine
from sqlalchemy.orm import declarative_base, sessionmaker
from bookhaven.core.config import settings
import logging
import time

logger = logging.getLogger(__name__)

logger.info("BOOKHAVEN DATABASE_URL = %s", settings.get_masked_database_url())


def enable_sqlite_savepoints(target: Engine) -> None:
    """
    Let pysqlite run proper SAVEPOINTs.

    The driver's own transaction handling defers BEGIN and breaks nested
    transactions, which the catalog dedup and rating upsert rely on. This is
    the recipe from the SQLAlchemy SQLite dialect docs.
    """

    @event.listens_for(target, "connect")
    def do_connect(dbapi_connection, connection_record):
        dbapi_connection.isolation_level = None

    @event.listens_for(target, "begin")
    def do_begin(conn):
        conn.exec_driver_sql("BEGIN")


if settings.is_sqlite:
    engine = create_engine(
        settings.DATABASE_URL,
        connect_args={"check_same_thread": False},
        echo=False,
    )
    enable_sqlite_savepoints(engine)
else:
    # Create engine with connection pooling and pre-ping to verify connections
    engine = create_engine(
        settings.DATABASE_URL,
        pool_pre_ping=True,  # Verify connections before using them
        echo=False,  # Keep echo off - we'll log slow queries separately
    )

# Add slow query logging (DEBUG mode only)
if settings.DEBUG:
    SLOW_QUERY_THRESHOLD_MS = 200.0

    @event.listens_for(engine, "before_cursor_execute")
    def receive_before_cursor_execute(conn, cursor, statement, parameters, context, executemany):
        """Store query start time before execution."""
        context._query_start_time = time.perf_counter()

    @event.listens_for(engine, "after_cursor_execute")
    def receive_after_cursor_execute(conn, cursor, statement, parameters, context, executemany):
        """Log slow queries after execution."""
        if hasattr(context, "_query_start_time"):
            elapsed_ms = (time.perf_counter() - context._query_start_time) * 1000
            if elapsed_ms >= SLOW_QUERY_THRESHOLD_MS:
                # Get first line of statement for brevity
                statement_first_line = statement.split("\n")[0].strip()[:100]
                logger.warning(
                    f"SLOW_QUERY: {elapsed_ms:.2f}ms - {statement_first_line}"
                )

SessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)

Base = declarative_base()


def get_db():
    """Dependency for getting database session."""
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()


def init_db() -> None:
    """
    Dev convenience: ensure all tables exist.
    In production, prefer running Alembic migrations instead.

    WARNING: create_all() will NOT add missing columns to existing tables.
    It only creates tables that don't exist. Use Alembic migrations for schema changes.
    """
    import os
    alembic_versions_path = os.path.join(os.path.dirname(__file__), "..", "alembic", "versions")
    if not settings.is_sqlite and os.path.exists(alembic_versions_path) and os.listdir(alembic_versions_path):
        import warnings
        warnings.warn(
            "Alembic migrations detected. Skipping Base.metadata.create_all(). "
            "Use 'alembic upgrade head' for schema changes.",
            UserWarning
        )
        # Skip create_all() when Alembic is present - migrations are the source of truth
        return

    # Import all models to ensure they're registered with Base.metadata
    from bookhaven import models  # noqa: F401

    Base.metadata.create_all(bind=engine)
