# src/db/orders.py
from __future__ import annotations

import json
import math
import os
from dataclasses import asdict
from datetime import datetime
from typing import Any, Dict, List, Mapping, Optional
from zoneinfo import ZoneInfo

from db import cart, models
from db.database import SQLITE_INT_MAX, SQLITE_INT_MIN, connect
from db.errors import ConflictError, NotFoundError, ValidationError
from utils.logger import get_logger

_logger = get_logger(__name__)

TIMEZONE = os.getenv("CLASSDESK_TIMEZONE", "Europe/Istanbul")
DEFAULT_LANGUAGE = "es"
DEFAULT_LIST_LIMIT = 100

_SELECT_ORDER = """
    SELECT id, order_id, customer_full_name, customer_company, customer_phone,
           customer_sales_person, customer_notes, items, known_total,
           total_items, has_unknown_prices, language, created_at
    FROM orders
"""


def _now() -> str:
    return datetime.now(ZoneInfo(TIMEZONE)).strftime("%Y-%m-%d %H:%M:%S")


# ---------------------------
# Validation
# ---------------------------


def _is_int(value: Any) -> bool:
    """A whole number that fits an SQLite INTEGER."""
    return (
        isinstance(value, int)
        and not isinstance(value, bool)
        and SQLITE_INT_MIN <= value <= SQLITE_INT_MAX
    )


def _is_number(value: Any) -> bool:
    if not isinstance(value, (int, float)) or isinstance(value, bool):
        return False
    try:
        return math.isfinite(value)
    except OverflowError:
        return False


def _optional_text(item: Mapping[str, Any], key: str, position: int) -> Optional[str]:
    value = item.get(key)
    if value is not None and not isinstance(value, str):
        raise ValidationError(
            f"Item {position}: {key} must be text.", field=f"items[{position}].{key}", value=value
        )
    return value


def _parse_item(item: Any, position: int) -> models.OrderLineSnapshot:
    if not isinstance(item, Mapping):
        raise ValidationError(f"Item {position} is malformed.", field=f"items[{position}]")

    def bad(key: str, message: str) -> ValidationError:
        return ValidationError(
            f"Item {position}: {key} {message}",
            field=f"items[{position}].{key}",
            value=item.get(key),
        )

    class_id = item.get("class_id")
    if not _is_int(class_id):
        raise bad("class_id", "must be an integer.")
    quantity = item.get("quantity")
    if not _is_int(quantity) or quantity < 1:
        raise bad("quantity", "must be a whole number of at least 1.")
    special_id = item.get("special_id")
    if not isinstance(special_id, str):
        raise bad("special_id", "must be text.")
    class_name = item.get("class_name")
    if not isinstance(class_name, str):
        raise bad("class_name", "must be text.")
    price = item.get("class_price")
    if price is not None and (not _is_number(price) or price < 0):
        raise bad("class_price", "must be a non-negative number or empty.")

    return models.OrderLineSnapshot(
        class_id=class_id,
        quantity=quantity,
        special_id=special_id,
        class_name=class_name,
        class_price=None if price is None else float(price),
        quality=_optional_text(item, "quality", position) or "",
        class_name_arabic=_optional_text(item, "class_name_arabic", position),
        class_name_english=_optional_text(item, "class_name_english", position),
    )


def _parse_customer(info: Any) -> models.CustomerInfo:
    if isinstance(info, models.CustomerInfo):
        info = asdict(info)
    if not isinstance(info, Mapping):
        raise ValidationError("Customer info is required.", field="customer_info")
    full_name = info.get("full_name")
    if not isinstance(full_name, str) or not full_name.strip():
        raise ValidationError("Customer full name is required.", field="customer_info.full_name")

    optional = {}
    for key in ("company", "phone", "sales_person", "notes"):
        value = info.get(key)
        optional[key] = "" if value is None else str(value).strip()
    return models.CustomerInfo(full_name=full_name.strip(), **optional)


def _parse_order_id(value: Any) -> str:
    if _is_int(value):
        value = str(value)
    if not isinstance(value, str) or not value.strip():
        raise ValidationError("Order id is required.", field="order_id", value=value)
    return value.strip()


def parse_order_payload(payload: Mapping[str, Any]) -> Dict[str, Any]:
    """
    Validate a submission payload and return the normalized row values.
    total_items and has_unknown_prices are derived from the items when absent.
    """
    if not isinstance(payload, Mapping):
        raise ValidationError("Order payload must be an object.")

    order_id = _parse_order_id(payload.get("order_id"))
    customer = _parse_customer(payload.get("customer_info"))

    raw_items = payload.get("items")
    if not isinstance(raw_items, (list, tuple)) or not raw_items:
        raise ValidationError("Order must contain at least one item.", field="items")
    items = tuple(_parse_item(item, pos) for pos, item in enumerate(raw_items))

    known_total = payload.get("known_total")
    if not _is_number(known_total) or known_total < 0:
        raise ValidationError(
            "Known total must be a non-negative number.", field="known_total", value=known_total
        )

    total_items = payload.get("total_items")
    if total_items is None:
        total_items = sum(item.quantity for item in items)
    if not _is_int(total_items) or total_items < 0:
        raise ValidationError(
            "Total items must be a non-negative whole number.",
            field="total_items",
            value=total_items,
        )

    has_unknown_prices = payload.get("has_unknown_prices")
    if has_unknown_prices is None:
        has_unknown_prices = any(item.class_price is None for item in items)

    language = payload.get("language") or DEFAULT_LANGUAGE
    if language not in models.LANGUAGES:
        raise ValidationError(f"Unsupported language: {language}", field="language", value=language)

    return {
        "order_id": order_id,
        "customer": customer,
        "items": items,
        "known_total": float(known_total),
        "total_items": total_items,
        "has_unknown_prices": bool(has_unknown_prices),
        "language": language,
    }


# stored snapshot key -> OrderLineSnapshot field; rows written before the
# rename carry the camelCase keys
_SNAPSHOT_KEYS = {
    "class_id": "class_id",
    "classId": "class_id",
    "quantity": "quantity",
    "special_id": "special_id",
    "specialId": "special_id",
    "class_name": "class_name",
    "className": "class_name",
    "class_price": "class_price",
    "classPrice": "class_price",
    "quality": "quality",
    "class_name_arabic": "class_name_arabic",
    "classNameArabic": "class_name_arabic",
    "class_name_english": "class_name_english",
    "classNameEnglish": "class_name_english",
}


def _snapshot_from_dict(item: Mapping[str, Any]) -> models.OrderLineSnapshot:
    values = {
        _SNAPSHOT_KEYS[key]: value for key, value in item.items() if key in _SNAPSHOT_KEYS
    }
    return models.OrderLineSnapshot(
        class_id=values.get("class_id"),
        quantity=values.get("quantity") or 0,
        special_id=values.get("special_id") or "",
        class_name=values.get("class_name") or "",
        class_price=values.get("class_price"),
        quality=values.get("quality") or "",
        class_name_arabic=values.get("class_name_arabic"),
        class_name_english=values.get("class_name_english"),
    )


def _row_to_order(row) -> models.Order:
    snapshots = tuple(
        _snapshot_from_dict(item) for item in json.loads(row["items"] or "[]")
    )
    return models.Order(
        id=row["id"],
        order_id=row["order_id"],
        customer=models.CustomerInfo(
            full_name=row["customer_full_name"],
            company=row["customer_company"] or "",
            phone=row["customer_phone"] or "",
            sales_person=row["customer_sales_person"] or "",
            notes=row["customer_notes"] or "",
        ),
        items=snapshots,
        known_total=row["known_total"],
        total_items=row["total_items"],
        has_unknown_prices=bool(row["has_unknown_prices"]),
        language=row["language"] or DEFAULT_LANGUAGE,
        created_at=row["created_at"],
    )


# ---------------------------
# Order Management
# ---------------------------


async def submit(payload: Mapping[str, Any]) -> models.Order:
    """
    Store a new order with its frozen item snapshot.
    A duplicate order id raises ConflictError and leaves the stored order as is.
    """
    data = parse_order_payload(payload)
    customer: models.CustomerInfo = data["customer"]
    items_json = json.dumps(
        [item.to_dict() for item in data["items"]], ensure_ascii=False
    )

    try:
        async with connect() as conn:
            await conn.execute(
                """
                INSERT INTO orders (
                    order_id, customer_full_name, customer_company, customer_phone,
                    customer_sales_person, customer_notes, items, known_total,
                    total_items, has_unknown_prices, language, created_at
                ) VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?);
                """,
                (
                    data["order_id"],
                    customer.full_name,
                    customer.company,
                    customer.phone,
                    customer.sales_person,
                    customer.notes,
                    items_json,
                    data["known_total"],
                    data["total_items"],
                    int(data["has_unknown_prices"]),
                    data["language"],
                    _now(),
                ),
            )
            await conn.commit()
    except ConflictError as e:
        _logger.warning(f"Rejected duplicate order {data['order_id']}")
        raise ConflictError("order_id", data["order_id"]) from e

    _logger.info(
        f"Order {data['order_id']} submitted: {data['total_items']} items, "
        f"known total {data['known_total']:.2f}"
    )
    return await get_order(data["order_id"])


async def build_payload_from_cart(
    session_id: str,
    order_id: Any,
    customer_info: Mapping[str, Any] | models.CustomerInfo,
    language: str = DEFAULT_LANGUAGE,
) -> Dict[str, Any]:
    """Freeze the session's current cart into a payload accepted by submit()."""
    view = await cart.view(session_id)
    if isinstance(customer_info, models.CustomerInfo):
        customer_info = asdict(customer_info)
    return {
        "order_id": order_id,
        "customer_info": dict(customer_info),
        "items": [
            models.OrderLineSnapshot.from_record(line.record, line.quantity).to_dict()
            for line in view.lines
        ],
        "known_total": view.known_total,
        "total_items": view.total_items,
        "has_unknown_prices": view.has_unknown_prices,
        "language": language,
    }


async def list_orders(
    limit: int = DEFAULT_LIST_LIMIT, offset: int = 0
) -> List[models.Order]:
    """Orders newest first."""
    async with connect() as conn:
        cur = await conn.execute(
            _SELECT_ORDER + " ORDER BY created_at DESC, id DESC LIMIT ? OFFSET ?;",
            (max(int(limit), 0), max(int(offset), 0)),
        )
        rows = await cur.fetchall()
        await cur.close()
    return [_row_to_order(row) for row in rows]


async def count_orders() -> int:
    async with connect() as conn:
        cur = await conn.execute("SELECT COUNT(*) FROM orders;")
        row = await cur.fetchone()
        await cur.close()
    return row[0]


async def get_order(order_id: Any) -> models.Order:
    key = _parse_order_id(order_id)
    async with connect() as conn:
        cur = await conn.execute(_SELECT_ORDER + " WHERE order_id = ?;", (key,))
        row = await cur.fetchone()
        await cur.close()
    if not row:
        raise NotFoundError("Order", key)
    return _row_to_order(row)


async def delete_order(order_id: Any) -> None:
    key = _parse_order_id(order_id)
    async with connect() as conn:
        cur = await conn.execute("DELETE FROM orders WHERE order_id = ?;", (key,))
        deleted = cur.rowcount
        await cur.close()
        await conn.commit()
    if not deleted:
        raise NotFoundError("Order", key)
    _logger.info(f"Deleted order {key}")
