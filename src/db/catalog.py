# src/db/catalog.py
from __future__ import annotations

import math
from typing import Any, Dict, List, Mapping, Optional

from db import models, price_history
from db.database import SQLITE_INT_MAX, connect
from db.errors import ConflictError, NotFoundError, ValidationError
from utils import media
from utils.logger import get_logger

_logger = get_logger(__name__)

DEFAULT_SPECIAL_ID_PREFIX = "CL"

# payload field -> classes column
FIELD_COLUMNS: Dict[str, str] = {
    "special_id": "special_id",
    "main_category": "main_category",
    "quality": "quality",
    "class_name": "class_name",
    "class_name_arabic": "class_name_ar",
    "class_name_english": "class_name_en",
    "class_features": "class_features",
    "class_price": "class_price",
    "class_weight": "class_weight",
    "class_quantity": "class_quantity",
    "class_video": "class_video",
}

TEXT_FIELDS = (
    "special_id",
    "main_category",
    "quality",
    "class_name",
    "class_name_arabic",
    "class_name_english",
    "class_features",
    "class_video",
)
DECIMAL_FIELDS = ("class_price", "class_weight")

# columns that are NOT NULL in the schema
_NOT_NULL_TEXT = ("main_category", "quality", "class_name")

BULK_REPLACE_FIELDS = (
    "main_category",
    "quality",
    "class_name",
    "class_name_arabic",
    "class_name_english",
)

_SELECT_CLASS = """
    SELECT id, special_id, main_category, quality, class_name,
           class_name_ar, class_name_en, class_features,
           class_price, class_weight, class_quantity, class_video,
           created_at, updated_at
    FROM classes
"""


# ---------------------------
# Coercion
# ---------------------------


def coerce_text(value: Any) -> Optional[str]:
    if value is None:
        return None
    text = str(value).strip()
    return text or None


def _finite(value: float | int) -> Optional[float]:
    try:
        number = float(value)
    except OverflowError:
        return None
    return number if math.isfinite(number) else None


def coerce_number(value: Any) -> Optional[float]:
    """Lenient number parsing: empty or unparsable input gives None."""
    if value is None or isinstance(value, bool):
        return None
    if isinstance(value, (int, float)):
        return _finite(value)
    text = str(value).strip().replace(" ", "")
    if not text:
        return None
    if "," in text and "." not in text:
        text = text.replace(",", ".")
    try:
        return _finite(float(text))
    except ValueError:
        return None


def coerce_int(value: Any) -> Optional[int]:
    number = coerce_number(value)
    if number is None or not number.is_integer():
        return None
    return int(number)


def parse_class_payload(payload: Mapping[str, Any]) -> Dict[str, Any]:
    """
    Validate and coerce a create/update payload. Only keys present in the
    payload are returned, so the result doubles as a partial update.
    """
    unknown = set(payload) - set(FIELD_COLUMNS)
    if unknown:
        name = sorted(unknown)[0]
        raise ValidationError(f"Unknown field: {name}", field=name)

    data: Dict[str, Any] = {}
    for key, value in payload.items():
        if key in TEXT_FIELDS:
            data[key] = coerce_text(value)
            continue

        blank = value is None or (isinstance(value, str) and not value.strip())
        if blank:
            data[key] = None
            continue

        if key in DECIMAL_FIELDS:
            number = coerce_number(value)
            if number is None:
                raise ValidationError(f"{key} must be a number.", field=key, value=value)
        else:
            number = coerce_int(value)
            if number is None:
                raise ValidationError(
                    f"{key} must be a whole number.", field=key, value=value
                )
        if number < 0:
            raise ValidationError(f"{key} cannot be negative.", field=key, value=value)
        if isinstance(number, int) and number > SQLITE_INT_MAX:
            raise ValidationError(f"{key} is too large.", field=key, value=value)
        data[key] = number
    return data


def row_to_record(row) -> models.ClassRecord:
    return models.ClassRecord(
        id=row["id"],
        special_id=row["special_id"],
        main_category=row["main_category"] or "",
        quality=row["quality"] or "",
        class_name=row["class_name"] or "",
        class_name_arabic=row["class_name_ar"],
        class_name_english=row["class_name_en"],
        class_features=row["class_features"],
        class_price=row["class_price"],
        class_weight=row["class_weight"],
        class_quantity=row["class_quantity"],
        class_video=row["class_video"],
        created_at=row["created_at"],
        updated_at=row["updated_at"],
    )


# ---------------------------
# Special IDs
# ---------------------------


async def generate_special_id(prefix: Optional[str] = None) -> str:
    """
    Next free special id for the prefix: max numeric suffix + 1, at least two
    digits. Read-only, nothing is reserved; two callers racing may get the same
    id and the loser's insert fails with ConflictError.
    """
    prefix = (prefix or "").strip() or DEFAULT_SPECIAL_ID_PREFIX
    async with connect() as conn:
        cur = await conn.execute(
            "SELECT special_id FROM classes WHERE substr(special_id, 1, ?) = ?;",
            (len(prefix), prefix),
        )
        rows = await cur.fetchall()
        await cur.close()

    highest = 0
    for row in rows:
        suffix = row[0][len(prefix) :]
        if suffix.isdigit():
            highest = max(highest, int(suffix))
    return f"{prefix}{highest + 1:02d}"


# ---------------------------
# Read
# ---------------------------


async def get_class(class_id: int) -> models.ClassRecord:
    async with connect() as conn:
        cur = await conn.execute(_SELECT_CLASS + " WHERE id = ?;", (class_id,))
        row = await cur.fetchone()
        await cur.close()
    if not row:
        raise NotFoundError("Class", class_id)
    return row_to_record(row)


async def get_class_by_special_id(special_id: str) -> models.ClassRecord:
    """Case-insensitive lookup, as used by the list/detail views."""
    async with connect() as conn:
        cur = await conn.execute(
            _SELECT_CLASS + " WHERE LOWER(special_id) = LOWER(?) ORDER BY id LIMIT 1;",
            ((special_id or "").strip(),),
        )
        row = await cur.fetchone()
        await cur.close()
    if not row:
        raise NotFoundError("Class", special_id)
    return row_to_record(row)


async def find_class_by_exact_special_id(
    special_id: str,
) -> Optional[models.ClassRecord]:
    """Case-sensitive exact lookup, used by bulk sync."""
    async with connect() as conn:
        cur = await conn.execute(
            _SELECT_CLASS + " WHERE special_id = ?;",
            (special_id,),
        )
        row = await cur.fetchone()
        await cur.close()
    return row_to_record(row) if row else None


async def list_classes(
    search: Optional[str] = None,
    category: Optional[str] = None,
    quality: Optional[str] = None,
    orderable_only: bool = False,
) -> List[models.ClassRecord]:
    """
    AND-combined filters:
    - search: case-insensitive substring over special id and the name fields
    - category / quality: case-insensitive exact match
    - orderable_only: drop records whose quantity is 0
    Sorted by category, group, name.
    """
    filters: List[str] = []
    params: List[Any] = []

    term = (search or "").strip().lower()
    if term:
        escaped = term.replace("\\", "\\\\").replace("%", "\\%").replace("_", "\\_")
        like = f"%{escaped}%"
        filters.append(
            "(LOWER(IFNULL(special_id, '')) LIKE ? ESCAPE '\\'"
            " OR LOWER(class_name) LIKE ? ESCAPE '\\'"
            " OR LOWER(IFNULL(class_name_ar, '')) LIKE ? ESCAPE '\\'"
            " OR LOWER(IFNULL(class_name_en, '')) LIKE ? ESCAPE '\\')"
        )
        params.extend([like, like, like, like])
    if category and category.strip():
        filters.append("LOWER(main_category) = ?")
        params.append(category.strip().lower())
    if quality and quality.strip():
        filters.append("LOWER(quality) = ?")
        params.append(quality.strip().lower())
    if orderable_only:
        filters.append("(class_quantity IS NULL OR class_quantity != 0)")

    where_clause = f"WHERE {' AND '.join(filters)}" if filters else ""
    async with connect() as conn:
        cur = await conn.execute(
            f"""
            {_SELECT_CLASS}
            {where_clause}
            ORDER BY main_category ASC, quality ASC, class_name ASC, id ASC;
            """,
            tuple(params),
        )
        rows = await cur.fetchall()
        await cur.close()
    return [row_to_record(row) for row in rows]


async def _distinct_values(column: str) -> List[str]:
    async with connect() as conn:
        cur = await conn.execute(
            f"SELECT DISTINCT {column} FROM classes WHERE TRIM({column}) != '' ORDER BY {column};"
        )
        rows = await cur.fetchall()
        await cur.close()
    return [row[0] for row in rows]


async def list_categories() -> List[str]:
    return await _distinct_values("main_category")


async def list_groups() -> List[str]:
    return await _distinct_values("quality")


# ---------------------------
# Write
# ---------------------------


async def create_class(
    payload: Mapping[str, Any], require_name: bool = True
) -> models.ClassRecord:
    """
    Insert a new class and return the stored record.
    The display name falls back to the English, then the Arabic name. Bulk
    imports pass require_name=False and may store an empty name.
    """
    data = parse_class_payload(payload)
    name = (
        data.get("class_name")
        or data.get("class_name_english")
        or data.get("class_name_arabic")
    )
    if not name:
        if require_name:
            raise ValidationError("Class name is required.", field="class_name")
        name = ""
    data["class_name"] = name

    special_id = data.get("special_id") or await generate_special_id()
    data["special_id"] = special_id
    for key in _NOT_NULL_TEXT:
        data[key] = data.get(key) or ""

    columns = [FIELD_COLUMNS[k] for k in data]
    placeholders = ", ".join("?" for _ in columns)
    try:
        async with connect() as conn:
            cur = await conn.execute(
                f"INSERT INTO classes ({', '.join(columns)}) VALUES ({placeholders});",
                tuple(data.values()),
            )
            new_id = cur.lastrowid
            await cur.close()
            await conn.commit()
    except ConflictError as e:
        raise ConflictError("special_id", special_id) from e

    _logger.info(f"Created class {new_id} ({special_id})")
    return await get_class(new_id)


async def update_class(class_id: int, changes: Mapping[str, Any]) -> models.ClassRecord:
    """
    Partial update: only the keys present in `changes` are written. A changed
    price appends a price history entry in the same transaction.
    """
    data = parse_class_payload(changes)
    # blank special id / name keep the stored value
    for key in ("special_id", "class_name"):
        if key in data and not data[key]:
            del data[key]
    for key in _NOT_NULL_TEXT:
        if key in data and data[key] is None:
            data[key] = ""

    if not data:
        return await get_class(class_id)

    assignments = ", ".join(f"{FIELD_COLUMNS[k]} = ?" for k in data)
    try:
        async with connect() as conn:
            await conn.execute("BEGIN IMMEDIATE;")
            cur = await conn.execute(
                "SELECT class_price, class_video FROM classes WHERE id = ?;",
                (class_id,),
            )
            current = await cur.fetchone()
            await cur.close()
            if not current:
                raise NotFoundError("Class", class_id)

            await conn.execute(
                f"UPDATE classes SET {assignments}, updated_at = CURRENT_TIMESTAMP WHERE id = ?;",
                (*data.values(), class_id),
            )
            if "class_price" in data:
                await price_history.record(
                    conn, class_id, current["class_price"], data["class_price"]
                )
            await conn.commit()
    except ConflictError as e:
        raise ConflictError("special_id", data.get("special_id")) from e

    old_video = current["class_video"]
    if "class_video" in data and old_video and old_video != data["class_video"]:
        media.schedule_delete([old_video])
    return await get_class(class_id)


async def delete_class(class_id: int) -> None:
    """Delete one class; its price history goes with it (cascade)."""
    async with connect() as conn:
        cur = await conn.execute(
            "SELECT class_video FROM classes WHERE id = ?;", (class_id,)
        )
        row = await cur.fetchone()
        await cur.close()
        if not row:
            raise NotFoundError("Class", class_id)
        await conn.execute("DELETE FROM classes WHERE id = ?;", (class_id,))
        await conn.commit()

    _logger.info(f"Deleted class {class_id}")
    if row["class_video"]:
        media.schedule_delete([row["class_video"]])


async def delete_all_classes() -> int:
    """Purge the catalog, return the number of records deleted."""
    async with connect() as conn:
        cur = await conn.execute(
            "SELECT class_video FROM classes WHERE class_video IS NOT NULL;"
        )
        videos = [row[0] for row in await cur.fetchall()]
        await cur.close()
        cur = await conn.execute("DELETE FROM classes;")
        deleted = cur.rowcount
        await cur.close()
        await conn.commit()

    _logger.info(f"Deleted all classes ({deleted})")
    media.schedule_delete(videos)
    return deleted


async def bulk_replace(field: str, search_text: str, replace_text: str) -> int:
    """
    Substring find/replace over a single text field of every record.
    Case-sensitive; returns the number of records touched.
    """
    if field not in BULK_REPLACE_FIELDS:
        raise ValidationError(f"Field cannot be bulk replaced: {field}", field="field", value=field)
    if not search_text:
        raise ValidationError("Search text is required.", field="search_text")
    replace_text = replace_text or ""
    if search_text == replace_text:
        return 0

    column = FIELD_COLUMNS[field]
    async with connect() as conn:
        cur = await conn.execute(
            f"""
            UPDATE classes
            SET {column} = REPLACE({column}, ?, ?),
                updated_at = CURRENT_TIMESTAMP
            WHERE instr({column}, ?) > 0;
            """,
            (search_text, replace_text, search_text),
        )
        touched = cur.rowcount
        await cur.close()
        await conn.commit()

    _logger.info(f"Bulk replace on {field}: {search_text!r} -> {replace_text!r} ({touched})")
    return touched
