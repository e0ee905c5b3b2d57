# spreadsheet rows -> catalog upserts, with a per-row skip report
from __future__ import annotations

import asyncio
import os
from collections import OrderedDict
from typing import Any, Dict, List, Mapping, Optional, Sequence, Tuple

from db import catalog, models
from db.errors import CatalogError
from utils.logger import get_logger

_logger = get_logger(__name__)

SYNC_CONCURRENCY = int(os.getenv("CLASSDESK_SYNC_CONCURRENCY", "4"))

# spreadsheet row 1 is the header, data starts at row 2
ROW_OFFSET = 2

REASON_NO_SPECIAL_ID = "Special ID is required."
REASON_UPDATE_ONLY = "Record not found (update-only mode)."
REASON_UNEXPECTED = "Row could not be stored."

# canonical field -> accepted headers, first non-blank cell wins
HEADER_SYNONYMS: Dict[str, Tuple[str, ...]] = {
    "special_id": ("Special ID", "special_id"),
    "main_category": ("Main Category", "main_category"),
    "quality": ("Group", "group", "Quality", "quality"),
    "class_name": ("Class Name", "class_name"),
    "class_name_arabic": ("Class Name Arabic", "class_name_ar", "class_name_arabic"),
    "class_name_english": ("Class Name English", "class_name_en", "class_name_english"),
    "class_features": ("Class Features", "class_features"),
    "class_price": ("Class Price", "class_price"),
    "class_weight": ("Class KG", "class_weight", "Class Weight"),
    "class_quantity": ("Class Quantity", "class_quantity"),
    "class_video": ("Class Video", "class_video"),
}

_NUMBER_FIELDS = ("class_price", "class_weight")


def _blank(value: Any) -> bool:
    return value is None or (isinstance(value, str) and not value.strip())


def normalize_row(row: Mapping[str, Any]) -> Dict[str, Any]:
    """
    Map a loosely named row onto canonical field names.
    Only fields with a non-blank cell are returned; blank cells are left out
    so an update keeps the stored value. Numbers are parsed leniently: a cell
    that is not a number becomes None (price on request).
    """
    normalized: Dict[str, Any] = {}
    for field, headers in HEADER_SYNONYMS.items():
        value = next((row[h] for h in headers if h in row and not _blank(row[h])), None)
        if value is None:
            continue
        if field in _NUMBER_FIELDS:
            number = catalog.coerce_number(value)
            normalized[field] = None if number is None or number < 0 else number
        elif field == "class_quantity":
            normalized[field] = catalog.coerce_int(value)
        else:
            normalized[field] = catalog.coerce_text(value)
    return normalized


async def _apply_row(
    index: int, data: Dict[str, Any], update_only: bool
) -> models.ProcessedRow | models.SkippedRow:
    special_id = data["special_id"]
    try:
        existing = await catalog.find_class_by_exact_special_id(special_id)
        if existing:
            changes = {k: v for k, v in data.items() if k != "special_id"}
            await catalog.update_class(existing.id, changes)
            return models.ProcessedRow(index=index, special_id=special_id, action="updated")
        if update_only:
            return models.SkippedRow(index=index, reason=REASON_UPDATE_ONLY)
        await catalog.create_class(data, require_name=False)
        return models.ProcessedRow(index=index, special_id=special_id, action="created")
    except CatalogError as e:
        return models.SkippedRow(index=index, reason=str(e))
    except Exception:
        _logger.exception(f"Row {index} ({special_id}) failed unexpectedly")
        return models.SkippedRow(index=index, reason=REASON_UNEXPECTED)


async def reconcile(
    rows: Sequence[Mapping[str, Any]],
    update_only: bool = False,
    concurrency: Optional[int] = None,
) -> models.SyncReport:
    """
    Upsert every row by special id and report what happened to each.

    No row error escapes: a failing row becomes a skip entry and the batch
    goes on. Rows run concurrently, except rows sharing a special id, which
    run one after another in submitted order.
    """
    report = models.SyncReport()
    groups: "OrderedDict[str, List[Tuple[int, Dict[str, Any]]]]" = OrderedDict()

    for position, row in enumerate(rows):
        index = position + ROW_OFFSET
        data = normalize_row(row if isinstance(row, Mapping) else {})
        special_id = data.get("special_id")
        if not special_id:
            report.skipped.append(models.SkippedRow(index=index, reason=REASON_NO_SPECIAL_ID))
            continue
        groups.setdefault(special_id, []).append((index, data))

    semaphore = asyncio.Semaphore(max(1, concurrency or SYNC_CONCURRENCY))

    async def run_group(entries: List[Tuple[int, Dict[str, Any]]]) -> None:
        for index, data in entries:
            async with semaphore:
                outcome = await _apply_row(index, data, update_only)
            if isinstance(outcome, models.SkippedRow):
                report.skipped.append(outcome)
            else:
                report.processed.append(outcome)

    await asyncio.gather(*(run_group(entries) for entries in groups.values()))

    report.processed.sort(key=lambda p: p.index)
    report.skipped.sort(key=lambda s: s.index)
    for skip in report.skipped:
        _logger.warning(f"Row {skip.index} skipped: {skip.reason}")
    _logger.info(
        f"Bulk sync finished: {report.processed_count} processed, "
        f"{report.skipped_count} skipped"
    )
    return report
