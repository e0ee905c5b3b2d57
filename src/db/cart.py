# session scoped carts; totals are always re-derived from the live catalog
from __future__ import annotations

import uuid
from typing import Iterable, List, Tuple

import aiosqlite

from db import models
from db.catalog import row_to_record
from db.database import connect
from db.errors import NotFoundError, ValidationError
from utils.logger import get_logger

_logger = get_logger(__name__)


def compute_totals(lines: Iterable[models.CartLine]) -> Tuple[float, int, bool]:
    """(known_total, total_items, has_unknown_prices) for the given lines."""
    known_total = 0.0
    total_items = 0
    has_unknown_prices = False
    for line in lines:
        total_items += line.quantity
        if line.record.class_price is None:
            has_unknown_prices = True
        else:
            known_total += line.record.class_price * line.quantity
    return known_total, total_items, has_unknown_prices


def _check_session(session_id: str) -> str:
    if not isinstance(session_id, str) or not session_id.strip():
        raise ValidationError("A cart session id is required.", field="session_id")
    return session_id


async def _fetch_lines(
    conn: aiosqlite.Connection, session_id: str
) -> List[models.CartLine]:
    # inner join: lines whose class was deleted simply drop out
    cur = await conn.execute(
        """
        SELECT l.quantity AS quantity,
               c.id, c.special_id, c.main_category, c.quality, c.class_name,
               c.class_name_ar, c.class_name_en, c.class_features,
               c.class_price, c.class_weight, c.class_quantity, c.class_video,
               c.created_at, c.updated_at
        FROM cart_lines l
        JOIN classes c ON c.id = l.class_id
        WHERE l.session_id = ?
        ORDER BY l.rowid;
        """,
        (session_id,),
    )
    rows = await cur.fetchall()
    await cur.close()
    return [
        models.CartLine(class_id=row["id"], quantity=row["quantity"], record=row_to_record(row))
        for row in rows
    ]


async def _refresh_total(conn: aiosqlite.Connection, session_id: str) -> float:
    known_total, _, _ = compute_totals(await _fetch_lines(conn, session_id))
    await conn.execute(
        """
        UPDATE cart_sessions
        SET known_total = ?, updated_at = CURRENT_TIMESTAMP
        WHERE session_id = ?;
        """,
        (known_total, session_id),
    )
    return known_total


async def _ensure_session(conn: aiosqlite.Connection, session_id: str) -> None:
    await conn.execute(
        "INSERT OR IGNORE INTO cart_sessions(session_id) VALUES (?);", (session_id,)
    )


# ---------------------------
# Sessions
# ---------------------------


async def start_session() -> str:
    """Open a new, empty cart session and return its id."""
    session_id = uuid.uuid4().hex
    async with connect() as conn:
        await _ensure_session(conn, session_id)
        await conn.commit()
    _logger.debug(f"Cart session {session_id} started")
    return session_id


async def end_session(session_id: str) -> None:
    """Drop the session together with its lines."""
    _check_session(session_id)
    async with connect() as conn:
        await conn.execute(
            "DELETE FROM cart_sessions WHERE session_id = ?;", (session_id,)
        )
        await conn.commit()
    _logger.debug(f"Cart session {session_id} ended")


# ---------------------------
# Cart Management
# ---------------------------


async def add(session_id: str, class_id: int) -> float:
    """
    Put one more unit of the class into the cart (new lines start at 1).
    Returns the recomputed known total.
    """
    _check_session(session_id)
    async with connect() as conn:
        await conn.execute("BEGIN IMMEDIATE;")
        cur = await conn.execute("SELECT 1 FROM classes WHERE id = ?;", (class_id,))
        exists = await cur.fetchone()
        await cur.close()
        if not exists:
            raise NotFoundError("Class", class_id)

        await _ensure_session(conn, session_id)
        await conn.execute(
            """
            INSERT INTO cart_lines(session_id, class_id, quantity) VALUES (?, ?, 1)
            ON CONFLICT(session_id, class_id) DO UPDATE SET quantity = quantity + 1;
            """,
            (session_id, class_id),
        )
        total = await _refresh_total(conn, session_id)
        await conn.commit()
    return total


async def set_quantity(session_id: str, class_id: int, quantity: int) -> float:
    """
    Overwrite the quantity of an existing line. quantity <= 0 removes the line.
    A missing line with a positive quantity is a NotFoundError, add() first.
    """
    _check_session(session_id)
    if isinstance(quantity, bool) or not isinstance(quantity, int):
        raise ValidationError("Quantity must be a whole number.", field="quantity", value=quantity)
    if quantity <= 0:
        return await remove(session_id, class_id)

    async with connect() as conn:
        await conn.execute("BEGIN IMMEDIATE;")
        cur = await conn.execute(
            "UPDATE cart_lines SET quantity = ? WHERE session_id = ? AND class_id = ?;",
            (quantity, session_id, class_id),
        )
        changed = cur.rowcount
        await cur.close()
        if not changed:
            raise NotFoundError("Cart line", class_id)
        total = await _refresh_total(conn, session_id)
        await conn.commit()
    return total


async def remove(session_id: str, class_id: int) -> float:
    """Delete the line if present; absent lines are not an error."""
    _check_session(session_id)
    async with connect() as conn:
        await conn.execute("BEGIN IMMEDIATE;")
        await conn.execute(
            "DELETE FROM cart_lines WHERE session_id = ? AND class_id = ?;",
            (session_id, class_id),
        )
        total = await _refresh_total(conn, session_id)
        await conn.commit()
    return total


async def clear(session_id: str) -> None:
    """Empty this session's cart, other sessions are untouched."""
    _check_session(session_id)
    async with connect() as conn:
        await conn.execute("BEGIN IMMEDIATE;")
        await conn.execute(
            "DELETE FROM cart_lines WHERE session_id = ?;", (session_id,)
        )
        await _refresh_total(conn, session_id)
        await conn.commit()


async def view(session_id: str) -> models.CartView:
    """Lines joined with current product data, totals computed now."""
    _check_session(session_id)
    async with connect() as conn:
        lines = await _fetch_lines(conn, session_id)
    known_total, total_items, has_unknown_prices = compute_totals(lines)
    return models.CartView(
        session_id=session_id,
        lines=tuple(lines),
        known_total=known_total,
        total_items=total_items,
        has_unknown_prices=has_unknown_prices,
    )


async def cart_total(session_id: str) -> float:
    return (await view(session_id)).known_total


async def cached_total(session_id: str) -> float:
    """The total persisted by the last mutation of this session."""
    _check_session(session_id)
    async with connect() as conn:
        cur = await conn.execute(
            "SELECT known_total FROM cart_sessions WHERE session_id = ?;",
            (session_id,),
        )
        row = await cur.fetchone()
        await cur.close()
    return float(row[0]) if row else 0.0
