"""Database session management with tenant isolation."""

from contextlib import contextmanager
from typing import Generator, Optional
from sqlalchemy import create_engine, text
from sqlalchemy.engine import Engine
from sqlalchemy.orm import sessionmaker, Session
from sqlalchemy.pool import QueuePool, StaticPool

from replyhub.infra.config import config


engine: Optional[Engine] = None
SessionLocal: Optional[sessionmaker] = None


def init_engine(database_url: Optional[str] = None) -> Engine:
    """
    Create (or replace) the process-wide engine.

    In-memory SQLite shares a single connection so every session sees the
    same database; other backends use connection pooling.
    """
    global engine, SessionLocal

    url = database_url or config.DATABASE_URL
    if url.startswith("sqlite") and (":memory:" in url or url in ("sqlite://", "sqlite:///")):
        new_engine = create_engine(
            url,
            connect_args={"check_same_thread": False},
            poolclass=StaticPool,
            echo=config.DEBUG,
        )
    elif url.startswith("sqlite"):
        new_engine = create_engine(
            url,
            connect_args={"check_same_thread": False},
            echo=config.DEBUG,
        )
    else:
        new_engine = create_engine(
            url,
            poolclass=QueuePool,
            pool_size=10,  # Number of connections to maintain
            max_overflow=20,  # Max connections beyond pool_size
            pool_timeout=30,  # Seconds to wait for connection from pool
            pool_recycle=3600,  # Recycle connections after 1 hour
            pool_pre_ping=True,  # Verify connections before using
            echo=config.DEBUG,
        )

    if engine is not None:
        engine.dispose()
    engine = new_engine
    SessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)
    return engine


def get_engine() -> Engine:
    if engine is None:
        return init_engine()
    return engine


@contextmanager
def get_db_session(tenant_id: Optional[str] = None) -> Generator[Session, None, None]:
    """
    Get a database session with tenant isolation.

    On PostgreSQL sets app.current_tenant_id for RLS enforcement.
    Must be called with tenant_id for tenant-scoped operations.
    """
    get_engine()
    session = SessionLocal()
    try:
        if tenant_id and session.get_bind().dialect.name == "postgresql":
            session.execute(text("SELECT set_config('app.current_tenant_id', :tenant_id, false)"), {"tenant_id": tenant_id})

        yield session
        session.commit()
    except Exception:
        session.rollback()
        raise
    finally:
        session.close()


SCHEMA_STATEMENTS = [
    """
    CREATE TABLE IF NOT EXISTS tenants (
        id VARCHAR(64) PRIMARY KEY,
        business_name VARCHAR(255) NOT NULL,
        signature TEXT NOT NULL DEFAULT '',
        llm_model VARCHAR(128),
        formality REAL NOT NULL DEFAULT 0.5,
        enthusiasm REAL NOT NULL DEFAULT 0.5,
        detail_level REAL NOT NULL DEFAULT 0.5,
        service_types TEXT NOT NULL DEFAULT '[]'
    )
    """,
    """
    CREATE TABLE IF NOT EXISTS tenant_pricing_rules (
        tenant_id VARCHAR(64) NOT NULL,
        service_type VARCHAR(128) NOT NULL,
        rule TEXT NOT NULL,
        PRIMARY KEY (tenant_id, service_type)
    )
    """,
    """
    CREATE TABLE IF NOT EXISTS tenant_tool_policies (
        tenant_id VARCHAR(64) NOT NULL,
        tool_name VARCHAR(128) NOT NULL,
        is_enabled BOOLEAN NOT NULL DEFAULT TRUE,
        PRIMARY KEY (tenant_id, tool_name)
    )
    """,
    """
    CREATE TABLE IF NOT EXISTS tenant_templates (
        tenant_id VARCHAR(64) NOT NULL,
        category VARCHAR(64) NOT NULL,
        template TEXT NOT NULL,
        PRIMARY KEY (tenant_id, category)
    )
    """,
    """
    CREATE TABLE IF NOT EXISTS conversation_messages (
        tenant_id VARCHAR(64) NOT NULL,
        conversation_id VARCHAR(128) NOT NULL,
        position INTEGER NOT NULL,
        payload TEXT NOT NULL,
        PRIMARY KEY (tenant_id, conversation_id, position)
    )
    """,
]


def init_schema() -> None:
    """Create the tables used by the tenant loader and conversation store."""
    with get_engine().begin() as conn:
        for statement in SCHEMA_STATEMENTS:
            conn.execute(text(statement))
