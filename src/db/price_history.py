# append-only audit log of class price changes
from __future__ import annotations

from typing import List, Optional

import aiosqlite

from db import models
from db.database import connect
from utils.logger import get_logger

_logger = get_logger(__name__)

RECENT_LIMIT = 50


def prices_differ(old_price: Optional[float], new_price: Optional[float]) -> bool:
    """None vs None is no change, None vs a number is."""
    if old_price is None or new_price is None:
        return (old_price is None) != (new_price is None)
    return float(old_price) != float(new_price)


async def record(
    conn: aiosqlite.Connection,
    class_id: int,
    old_price: Optional[float],
    new_price: Optional[float],
) -> bool:
    """
    Append one entry on the caller's connection, inside the caller's
    transaction, so the price update and its entry commit together.
    Returns False (and writes nothing) when the prices are equal.
    """
    if not prices_differ(old_price, new_price):
        return False
    await conn.execute(
        "INSERT INTO price_history(class_id, old_price, new_price) VALUES (?, ?, ?);",
        (class_id, old_price, new_price),
    )
    _logger.info(f"Price of class {class_id} changed: {old_price} -> {new_price}")
    return True


def _row_to_entry(row) -> models.PriceHistoryEntry:
    return models.PriceHistoryEntry(
        id=row["id"],
        class_id=row["class_id"],
        old_price=row["old_price"],
        new_price=row["new_price"],
        changed_at=row["changed_at"],
    )


async def history(class_id: int) -> List[models.PriceHistoryEntry]:
    """All entries of one class, newest first."""
    async with connect() as conn:
        cur = await conn.execute(
            """
            SELECT id, class_id, old_price, new_price, changed_at
            FROM price_history
            WHERE class_id = ?
            ORDER BY changed_at DESC, id DESC;
            """,
            (class_id,),
        )
        rows = await cur.fetchall()
        await cur.close()
    return [_row_to_entry(row) for row in rows]


async def recent_changes(limit: int = RECENT_LIMIT) -> List[models.PriceChange]:
    """Cross-product feed, newest first, joined with current product identity."""
    async with connect() as conn:
        cur = await conn.execute(
            """
            SELECT ph.id, ph.class_id, ph.old_price, ph.new_price, ph.changed_at,
                   c.special_id, c.class_name
            FROM price_history ph
            JOIN classes c ON c.id = ph.class_id
            ORDER BY ph.changed_at DESC, ph.id DESC
            LIMIT ?;
            """,
            (max(int(limit), 0),),
        )
        rows = await cur.fetchall()
        await cur.close()
    return [
        models.PriceChange(
            entry=_row_to_entry(row),
            special_id=row["special_id"],
            class_name=row["class_name"],
        )
        for row in rows
    ]
