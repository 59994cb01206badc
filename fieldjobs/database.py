import logging
import time

from sqlalchemy import create_engine, event
from sqlalchemy.orm import declarative_base, sessionmaker

from .config import (
    DATABASE_URL,
    DB_POOL_RECYCLE,
    DB_POOL_SIZE,
    DB_SLOW_QUERY_SECONDS,
    DB_TIMEOUT,
)

logger = logging.getLogger(__name__)


def build_engine(url: str):
    """SQLite gets a busy timeout; server databases get a bounded, pre-pinged pool"""
    if url.startswith("sqlite"):
        return create_engine(url, connect_args={"check_same_thread": False, "timeout": DB_TIMEOUT})

    return create_engine(
        url,
        pool_pre_ping=True,
        pool_size=DB_POOL_SIZE,
        pool_recycle=DB_POOL_RECYCLE,
        pool_timeout=DB_TIMEOUT,
    )


def log_slow_queries(target, threshold: float = DB_SLOW_QUERY_SECONDS) -> None:
    """Warn about statements slower than ``threshold`` seconds; 0 disables"""
    if threshold <= 0:
        return

    @event.listens_for(target, "before_cursor_execute")
    def _started(conn, _cursor, _statement, _parameters, _context, _executemany):
        conn.info.setdefault("query_started", []).append(time.perf_counter())

    @event.listens_for(target, "after_cursor_execute")
    def _finished(conn, _cursor, statement, _parameters, _context, _executemany):
        elapsed = time.perf_counter() - conn.info["query_started"].pop()
        if elapsed > threshold:
            logger.warning(f"🐌 Slow query ({elapsed:.2f}s): {statement[:200]}")


engine = build_engine(DATABASE_URL)
log_slow_queries(engine)
logger.info(f"✅ Job store engine ready ({engine.dialect.name})")

SessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)
Base = declarative_base()


def get_db():
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()
