# key/value settings stored as JSON text
from __future__ import annotations

import json
from typing import Any, Dict, Mapping, Optional

from db.database import connect
from db.errors import ValidationError
from utils.logger import get_logger

_logger = get_logger(__name__)

COLUMN_VISIBILITY_KEY = "column_visibility"
SHEETS_SYNC_KEY = "google_sheets_sync"

# catalog table columns, in display order
COLUMN_KEYS = (
    "special_id",
    "main_category",
    "quality",
    "class_name",
    "class_name_arabic",
    "class_name_english",
    "class_features",
    "class_weight",
    "class_price",
    "class_video",
)

COLUMN_LABELS = {
    "special_id": "Special ID",
    "main_category": "Main Category",
    "quality": "Group",
    "class_name": "Class Name",
    "class_name_arabic": "Class Name Arabic",
    "class_name_english": "Class Name English",
    "class_features": "Class Features",
    "class_weight": "Class KG",
    "class_price": "Class Price",
    "class_video": "Class Video",
}


async def get_setting(key: str, default: Any = None) -> Any:
    async with connect() as conn:
        cur = await conn.execute("SELECT value FROM settings WHERE key = ?;", (key,))
        row = await cur.fetchone()
        await cur.close()
    if not row:
        return default
    try:
        return json.loads(row[0])
    except json.JSONDecodeError:
        _logger.warning(f"Setting {key!r} holds invalid JSON, using default")
        return default


async def set_setting(key: str, value: Any) -> None:
    if not key:
        raise ValidationError("Setting key is required.", field="key")
    async with connect() as conn:
        await conn.execute(
            """
            INSERT INTO settings(key, value) VALUES (?, ?)
            ON CONFLICT(key) DO UPDATE SET value = excluded.value;
            """,
            (key, json.dumps(value, ensure_ascii=False)),
        )
        await conn.commit()
    _logger.debug(f"Setting {key!r} saved")


# ---------------------------
# Column visibility
# ---------------------------


def normalize_column_visibility(columns: Optional[Mapping[str, Any]]) -> Dict[str, bool]:
    """Every known column key present, unknown keys dropped, missing keys visible."""
    columns = columns if isinstance(columns, Mapping) else {}
    return {key: bool(columns.get(key, True)) for key in COLUMN_KEYS}


async def get_column_visibility() -> Dict[str, bool]:
    return normalize_column_visibility(await get_setting(COLUMN_VISIBILITY_KEY))


async def set_column_visibility(columns: Mapping[str, Any]) -> Dict[str, bool]:
    """Merge the given flags over the stored ones; at least one column stays visible."""
    current = await get_column_visibility()
    current.update({k: bool(v) for k, v in (columns or {}).items() if k in COLUMN_KEYS})
    if not any(current.values()):
        raise ValidationError("At least one column must stay visible.", field="columns")
    await set_setting(COLUMN_VISIBILITY_KEY, current)
    return current


# ---------------------------
# Google Sheets sync
# ---------------------------


def _is_http_url(url: str) -> bool:
    return url.lower().startswith(("http://", "https://"))


async def get_sheets_sync() -> Dict[str, Any]:
    stored = await get_setting(SHEETS_SYNC_KEY) or {}
    return {
        "url": str(stored.get("url") or ""),
        "auto_sync": bool(stored.get("auto_sync", False)),
    }


async def set_sheets_sync(url: Optional[str], auto_sync: bool = False) -> Dict[str, Any]:
    url = (url or "").strip()
    if url and not _is_http_url(url):
        raise ValidationError("Sheet URL must start with http:// or https://.", field="url", value=url)
    if auto_sync and not url:
        raise ValidationError("Auto sync needs a sheet URL.", field="auto_sync")
    value = {"url": url, "auto_sync": bool(auto_sync)}
    await set_setting(SHEETS_SYNC_KEY, value)
    return value
