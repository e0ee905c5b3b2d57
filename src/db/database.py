# manages connection to db and the schema migrations, internal to db package
import asyncio
import os
import sqlite3
from contextlib import asynccontextmanager
from sqlite3 import Row
from typing import AsyncIterator, Awaitable, Callable, List, Optional

import aiosqlite

from db.errors import ConflictError, StorageError, ValidationError
from utils.logger import get_logger

_logger = get_logger(__name__)

DB_PATH = os.getenv("CLASSDESK_DB", "data/classdesk.sqlite")
BUSY_TIMEOUT = 30.0

# range of an SQLite INTEGER
SQLITE_INT_MIN = -(2**63)
SQLITE_INT_MAX = 2**63 - 1

_initialized = False
_init_lock: Optional[asyncio.Lock] = None
_init_lock_loop: Optional[asyncio.AbstractEventLoop] = None


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


async def _columns(conn: aiosqlite.Connection, table_name: str) -> List[str]:
    cur = await conn.execute(f"PRAGMA table_info({table_name});")
    rows = await cur.fetchall()
    await cur.close()
    return [row[1] for row in rows]


async def _run_script(conn: aiosqlite.Connection, script: str) -> None:
    # executescript() would commit the surrounding migration transaction
    for statement in script.split(";"):
        if statement.strip():
            await conn.execute(statement)


# ---------------------------
# Migrations
# ---------------------------


async def _create_base_tables(conn: aiosqlite.Connection) -> None:
    await _run_script(
        conn,
        """
        CREATE TABLE IF NOT EXISTS classes (
            id INTEGER PRIMARY KEY AUTOINCREMENT,
            special_id TEXT UNIQUE,
            main_category TEXT NOT NULL DEFAULT '',
            quality TEXT NOT NULL DEFAULT '',
            class_name TEXT NOT NULL DEFAULT '',
            class_name_ar TEXT,
            class_name_en TEXT,
            class_features TEXT,
            class_price REAL,
            class_weight REAL,
            class_quantity INTEGER,
            class_video TEXT,
            created_at DATETIME DEFAULT CURRENT_TIMESTAMP,
            updated_at DATETIME DEFAULT CURRENT_TIMESTAMP
        );
        CREATE INDEX IF NOT EXISTS idx_classes_special_id ON classes(special_id);
        CREATE INDEX IF NOT EXISTS idx_classes_main_category ON classes(main_category);
        CREATE INDEX IF NOT EXISTS idx_classes_quality ON classes(quality);

        CREATE TABLE IF NOT EXISTS settings (
            key TEXT PRIMARY KEY,
            value TEXT NOT NULL
        );

        CREATE TABLE IF NOT EXISTS price_history (
            id INTEGER PRIMARY KEY AUTOINCREMENT,
            class_id INTEGER NOT NULL,
            old_price REAL,
            new_price REAL,
            changed_at DATETIME DEFAULT CURRENT_TIMESTAMP,
            FOREIGN KEY (class_id) REFERENCES classes(id) ON DELETE CASCADE
        );
        CREATE INDEX IF NOT EXISTS idx_price_history_class_id ON price_history(class_id);
        CREATE INDEX IF NOT EXISTS idx_price_history_changed_at ON price_history(changed_at);

        CREATE TABLE IF NOT EXISTS orders (
            id INTEGER PRIMARY KEY AUTOINCREMENT,
            order_id TEXT UNIQUE NOT NULL,
            customer_full_name TEXT NOT NULL,
            customer_company TEXT,
            customer_phone TEXT,
            customer_sales_person TEXT,
            customer_notes TEXT,
            items TEXT NOT NULL,
            known_total REAL NOT NULL,
            total_items INTEGER NOT NULL,
            has_unknown_prices INTEGER NOT NULL DEFAULT 0,
            language TEXT NOT NULL DEFAULT 'es',
            created_at DATETIME DEFAULT CURRENT_TIMESTAMP
        );
        CREATE INDEX IF NOT EXISTS idx_orders_order_id ON orders(order_id);
        CREATE INDEX IF NOT EXISTS idx_orders_created_at ON orders(created_at);
        """
    )


# optional columns that older classes tables may lack
_OPTIONAL_CLASS_COLUMNS = [
    ("class_name_ar", "TEXT"),
    ("class_name_en", "TEXT"),
    ("class_features", "TEXT"),
    ("class_weight", "REAL"),
    ("class_quantity", "INTEGER"),
    ("class_video", "TEXT"),
    ("created_at", "DATETIME"),
    ("updated_at", "DATETIME"),
]


async def _add_optional_class_columns(conn: aiosqlite.Connection) -> None:
    existing = set(await _columns(conn, "classes"))
    for name, sql_type in _OPTIONAL_CLASS_COLUMNS:
        if name not in existing:
            _logger.info(f"Adding missing column classes.{name}")
            await conn.execute(f"ALTER TABLE classes ADD COLUMN {name} {sql_type};")


# target column -> (expression when the source column exists, fallback literal)
_ORDER_COLUMN_COPY = [
    ("id", "id", None),
    ("order_id", "order_id", None),
    ("customer_full_name", "COALESCE(customer_full_name, '')", "''"),
    ("customer_company", "customer_company", "NULL"),
    ("customer_phone", "customer_phone", "NULL"),
    ("customer_sales_person", "customer_sales_person", "NULL"),
    ("customer_notes", "customer_notes", "NULL"),
    ("known_total", "COALESCE(known_total, 0)", "0"),
    ("total_items", "COALESCE(total_items, 0)", "0"),
    ("has_unknown_prices", "COALESCE(has_unknown_prices, 0)", "0"),
    ("language", "COALESCE(language, 'es')", "'es'"),
    ("created_at", "created_at", "CURRENT_TIMESTAMP"),
]


async def _collapse_order_items_column(conn: aiosqlite.Connection) -> None:
    """
    Older order tables stored the frozen line items in `items_json` (or in
    both `items_json` and `items`). Rebuild the table so that `items` is the
    only item column.
    """
    if not await _table_exists(conn, "orders"):
        return
    cols = set(await _columns(conn, "orders"))
    if "items_json" not in cols and "items" in cols:
        return

    _logger.info("Rebuilding orders table onto the canonical items column...")
    if "items" in cols:
        items_expr = "COALESCE(NULLIF(items, ''), items_json, '[]')"
    elif "items_json" in cols:
        items_expr = "COALESCE(items_json, '[]')"
    else:
        items_expr = "'[]'"

    targets = []
    exprs = []
    for target, expr, fallback in _ORDER_COLUMN_COPY:
        if target in cols:
            targets.append(target)
            exprs.append(expr)
        elif fallback is not None:
            targets.append(target)
            exprs.append(fallback)
    targets.append("items")
    exprs.append(items_expr)

    await conn.execute("ALTER TABLE orders RENAME TO orders_legacy;")
    await conn.execute("DROP INDEX IF EXISTS idx_orders_order_id;")
    await conn.execute("DROP INDEX IF EXISTS idx_orders_created_at;")
    await _create_base_tables(conn)
    await conn.execute(
        f"INSERT INTO orders ({', '.join(targets)}) "
        f"SELECT {', '.join(exprs)} FROM orders_legacy;"
    )
    await conn.execute("DROP TABLE orders_legacy;")


async def _create_cart_tables(conn: aiosqlite.Connection) -> None:
    await _run_script(
        conn,
        """
        CREATE TABLE IF NOT EXISTS cart_sessions (
            session_id TEXT PRIMARY KEY,
            known_total REAL NOT NULL DEFAULT 0,
            started_at DATETIME DEFAULT CURRENT_TIMESTAMP,
            updated_at DATETIME DEFAULT CURRENT_TIMESTAMP
        );
        CREATE TABLE IF NOT EXISTS cart_lines (
            session_id TEXT NOT NULL,
            class_id INTEGER NOT NULL,
            quantity INTEGER NOT NULL CHECK (quantity >= 1),
            PRIMARY KEY (session_id, class_id),
            FOREIGN KEY (session_id) REFERENCES cart_sessions(session_id) ON DELETE CASCADE
        );
        """
    )


# index + 1 == schema version reached after the step
MIGRATIONS: List[Callable[[aiosqlite.Connection], Awaitable[None]]] = [
    _create_base_tables,
    _add_optional_class_columns,
    _collapse_order_items_column,
    _create_cart_tables,
]
SCHEMA_VERSION = len(MIGRATIONS)


async def schema_version(conn: aiosqlite.Connection) -> int:
    cur = await conn.execute("PRAGMA user_version;")
    row = await cur.fetchone()
    await cur.close()
    return int(row[0])


async def _migrate(conn: aiosqlite.Connection) -> None:
    await conn.execute("PRAGMA journal_mode = WAL;")
    version = await schema_version(conn)
    if version >= SCHEMA_VERSION:
        return
    # foreign keys must be off while tables get renamed
    await conn.execute("PRAGMA foreign_keys = OFF;")
    for step_no in range(version, SCHEMA_VERSION):
        step = MIGRATIONS[step_no]
        _logger.info(f"Migrating database to version {step_no + 1} ({step.__name__})")
        await conn.execute("BEGIN IMMEDIATE;")
        try:
            await step(conn)
            await conn.execute(f"PRAGMA user_version = {step_no + 1};")
            await conn.commit()
        except sqlite3.Error:
            await conn.rollback()
            raise
    await conn.execute("PRAGMA foreign_keys = ON;")


def _get_init_lock() -> asyncio.Lock:
    # the lock must belong to the running loop; test cases spin up a new one each
    global _init_lock, _init_lock_loop
    loop = asyncio.get_running_loop()
    if _init_lock is None or _init_lock_loop is not loop:
        _init_lock = asyncio.Lock()
        _init_lock_loop = loop
    return _init_lock


def _integrity_to_error(err: sqlite3.IntegrityError) -> Exception:
    msg = str(err)
    column = msg.rsplit(".", 1)[-1].strip() if "." in msg else None
    if msg.startswith("UNIQUE constraint failed") and column:
        return ConflictError(column)
    if msg.startswith("NOT NULL constraint failed") and column:
        return ValidationError(f"{column} is required.", field=column)
    _logger.error(f"Unexpected integrity error: {msg}")
    return StorageError()


@asynccontextmanager
async def connect() -> AsyncIterator[aiosqlite.Connection]:
    """Async context manager yielding an aiosqlite connection with FK enabled.

    Migrates the database to the current schema version on first use. Driver
    errors raised inside the block are translated into the typed errors of
    db.errors; uncommitted work is discarded on close.
    """
    global _initialized
    parent = os.path.dirname(DB_PATH)
    if parent:
        os.makedirs(parent, exist_ok=True)

    try:
        conn = await aiosqlite.connect(DB_PATH, timeout=BUSY_TIMEOUT)
    except sqlite3.Error as e:
        _logger.exception(f"Could not open database {DB_PATH}")
        raise StorageError() from e

    conn.row_factory = Row
    try:
        if not _initialized:
            async with _get_init_lock():
                if not _initialized:
                    _logger.info("Initializing database...")
                    await _migrate(conn)
                    _initialized = True
        await conn.execute("PRAGMA foreign_keys = ON;")
        yield conn
    except sqlite3.IntegrityError as e:
        raise _integrity_to_error(e) from e
    except sqlite3.Error as e:
        _logger.exception("Database operation failed")
        raise StorageError() from e
    finally:
        await conn.close()
