import os
import threading
from contextlib import contextmanager
from typing import Optional

from psycopg.rows import dict_row

# psycopg3 connection pooling lives in a separate package.
from psycopg_pool import ConnectionPool

from .config import build_database_url


def _env_int(name: str, default: int) -> int:
    raw = (os.getenv(name) or "").strip()
    if not raw:
        return default
    try:
        return int(raw)
    except ValueError:
        return default


# Pool sizing defaults are conservative for a single shop. Override via env:
# - DB_POOL_MIN_SIZE / DB_POOL_MAX_SIZE
_POOL_MIN = _env_int("DB_POOL_MIN_SIZE", 1)
_POOL_MAX = _env_int("DB_POOL_MAX_SIZE", 10)

_pool: Optional[ConnectionPool] = None
_pool_lock = threading.Lock()


def _new_pool() -> ConnectionPool:
    pool = ConnectionPool(
        conninfo=build_database_url(),
        min_size=_POOL_MIN,
        max_size=_POOL_MAX,
        kwargs={"row_factory": dict_row},
        open=False,
    )
    pool.open()
    return pool


def get_pool() -> ConnectionPool:
    global _pool
    with _pool_lock:
        if _pool is None:
            _pool = _new_pool()
        return _pool


def recreate_pool() -> None:
    """
    Drop the current pool so the next request connects with the saved setup settings.
    """
    global _pool
    with _pool_lock:
        old, _pool = _pool, None
    if old is not None:
        old.close()


@contextmanager
def _pooled_conn(pool: ConnectionPool):
    # `with get_conn() as conn:`
    # - commit on success
    # - rollback on exception
    # - return connection to pool
    with pool.connection() as conn:
        with conn:
            yield conn


def get_conn():
    return _pooled_conn(get_pool())


def close_pools() -> None:
    recreate_pool()
