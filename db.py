# db.py
from __future__ import annotations

from contextlib import contextmanager
from typing import Iterator

import psycopg2
import psycopg2.extras
from psycopg2.extensions import connection as PgConnection
from psycopg2.pool import SimpleConnectionPool

from settings import settings

_pool: SimpleConnectionPool | None = None


def init_pool() -> SimpleConnectionPool:
    """Create the process-wide pool on first use."""
    global _pool
    if _pool is not None:
        return _pool

    if not settings.DATABASE_URL:
        raise RuntimeError("DATABASE_URL is not set.")

    # referral / subscription ids come back as uuid.UUID
    psycopg2.extras.register_uuid()
    _pool = SimpleConnectionPool(
        minconn=settings.DB_POOL_MIN,
        maxconn=settings.DB_POOL_MAX,
        dsn=settings.DATABASE_URL,
        connect_timeout=5,
    )
    return _pool


def close_pool() -> None:
    global _pool
    if _pool is not None:
        _pool.closeall()
        _pool = None


@contextmanager
def get_conn() -> Iterator[PgConnection]:
    """
    One transaction per block: commit when the block exits cleanly,
    roll back and re-raise otherwise.
    """
    pool = init_pool()
    conn = pool.getconn()
    try:
        with conn.cursor() as cur:
            cur.execute("SET statement_timeout = %s;", (f"{settings.DB_STATEMENT_TIMEOUT_MS}ms",))
            cur.execute("SET application_name = 'memories_billing';")
        yield conn
        conn.commit()
    except Exception:
        conn.rollback()
        raise
    finally:
        pool.putconn(conn)


def dict_cursor(conn: PgConnection):
    return conn.cursor(cursor_factory=psycopg2.extras.RealDictCursor)
