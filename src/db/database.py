# manages connection to db, provides helper methods internal to db package
import asyncio
import os.path
from contextlib import asynccontextmanager
from pathlib import Path
from sqlite3 import Row
from typing import AsyncIterator, Optional

import aiosqlite

from utils.logger import get_logger
from utils.settings import get_settings

_logger = get_logger(__name__)

_SQL_DIR = Path(__file__).resolve().parent
SCHEMA_SCRIPT = _SQL_DIR / "schema.sql"
SEED_SCRIPT = _SQL_DIR / "seed.sql"

DB_PATH = get_settings().db_path
SEED_DATA = get_settings().seed_data
BUSY_TIMEOUT = get_settings().busy_timeout

_initialized = False
_init_lock: Optional[asyncio.Lock] = None


def configure(
    db_path: str, seed_data: Optional[bool] = None, busy_timeout: Optional[float] = None
) -> None:
    """Point the package at another database file and force re-initialization."""
    global DB_PATH, SEED_DATA, BUSY_TIMEOUT, _initialized, _init_lock
    DB_PATH = db_path
    if seed_data is not None:
        SEED_DATA = seed_data
    if busy_timeout is not None:
        BUSY_TIMEOUT = busy_timeout
    _initialized = False
    _init_lock = None


def _scripts() -> list:
    scripts = [SCHEMA_SCRIPT]
    if SEED_DATA:
        scripts.append(SEED_SCRIPT)
    return scripts


async def _init_db(conn: aiosqlite.Connection) -> None:
    for script in _scripts():
        if not os.path.exists(script) or os.path.getsize(script) == 0:
            continue
        _logger.info(f"Initializing database with script {script.name}...")
        with open(script, "r", encoding="utf-8") as f:
            await conn.executescript(f.read())
    await conn.commit()


async def _table_exists(conn: aiosqlite.Connection, table_name: str) -> bool:
    cur = await conn.execute(
        """
        SELECT name
        FROM sqlite_master
        WHERE type = 'table'
          AND name = ?;
        """,
        (table_name,),
    )
    row = await cur.fetchone()
    await cur.close()
    return row is not None


async def _ensure_initialized(conn: aiosqlite.Connection) -> None:
    global _initialized, _init_lock
    if _initialized:
        return
    if _init_lock is None:
        _init_lock = asyncio.Lock()
    async with _init_lock:
        if _initialized:
            return
        if not await _table_exists(conn, "products"):
            _logger.info("Initializing database...")
            await _init_db(conn)
        _initialized = True


@asynccontextmanager
async def connect(autocommit: bool = False) -> AsyncIterator[aiosqlite.Connection]:
    """Async context manager yielding an aiosqlite connection with FK enabled.

    Ensures the database is initialized (tables and seed data) on first use.
    With autocommit=True the connection never opens implicit transactions, so
    callers control BEGIN/COMMIT themselves.
    """
    parent = os.path.dirname(os.path.abspath(DB_PATH))
    os.makedirs(parent, exist_ok=True)

    kwargs = {"timeout": BUSY_TIMEOUT}
    if autocommit:
        kwargs["isolation_level"] = None
    conn = await aiosqlite.connect(DB_PATH, **kwargs)
    conn.row_factory = Row
    try:
        await conn.execute("PRAGMA foreign_keys = ON;")
        await _ensure_initialized(conn)
        yield conn
    finally:
        await conn.close()


@asynccontextmanager
async def transaction() -> AsyncIterator[aiosqlite.Connection]:
    """Yield a connection inside BEGIN IMMEDIATE; commit on exit, roll back on any error.

    BEGIN IMMEDIATE takes the write lock up front, so concurrent writers
    serialize here instead of failing midway with a lock upgrade error.
    Cancellation (including timeouts) also rolls back.
    """
    async with connect(autocommit=True) as conn:
        await conn.execute("BEGIN IMMEDIATE;")
        try:
            yield conn
        except BaseException:
            if conn.in_transaction:
                await conn.execute("ROLLBACK;")
            raise
        await conn.execute("COMMIT;")
