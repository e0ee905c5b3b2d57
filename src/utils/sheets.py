"""
Spreadsheet ingestion and export.

Rows come in as plain dicts keyed by the header cell, ready for
db.bulk_sync.reconcile(); exports honor the catalog column visibility.
"""

from __future__ import annotations

import csv
import io
import re
from pathlib import Path
from typing import Any, Dict, Iterable, List, Mapping, Optional, Sequence
from urllib.parse import parse_qs, urlparse
from zipfile import BadZipFile

import httpx
from openpyxl import Workbook, load_workbook
from openpyxl.styles import Font
from openpyxl.utils.exceptions import InvalidFileException

from db import models
from db.errors import SyncSourceError, ValidationError
from db.settings import COLUMN_KEYS, COLUMN_LABELS
from utils.logger import get_logger

_logger = get_logger(__name__)

FETCH_TIMEOUT = 30.0

_SHEET_ID = re.compile(r"/spreadsheets/d/(e/)?([a-zA-Z0-9_-]+)")


def _rows_from_table(table: Iterable[Sequence[Any]]) -> List[Dict[str, Any]]:
    """First row is the header; empty header cells and blank rows are dropped."""
    iterator = iter(table)
    header_row = next(iterator, None)
    if not header_row:
        return []
    headers = [str(h).strip() if h is not None else "" for h in header_row]

    rows: List[Dict[str, Any]] = []
    for values in iterator:
        row = {
            header: value
            for header, value in zip(headers, values)
            if header
        }
        if any(v is not None and str(v).strip() for v in row.values()):
            rows.append(row)
    return rows


def read_xlsx_rows(path: str | Path) -> List[Dict[str, Any]]:
    """Rows of the first worksheet as header -> cell dicts."""
    try:
        workbook = load_workbook(filename=path, read_only=True, data_only=True)
    except (InvalidFileException, BadZipFile, OSError) as e:
        _logger.warning(f"Cannot open workbook {path}: {e}")
        raise SyncSourceError(f"Cannot read Excel file: {path}", source=str(path)) from e
    try:
        sheet = workbook.worksheets[0]
        rows = _rows_from_table(sheet.iter_rows(values_only=True))
    finally:
        workbook.close()
    if not rows:
        raise ValidationError("Excel sheet is empty.", field="file", value=str(path))
    _logger.debug(f"Read {len(rows)} rows from {path}")
    return rows


def sheet_csv_url(url: str) -> str:
    """
    CSV export URL of a Google Sheet.
    Edit/share links are rewritten to the export endpoint, keeping the tab
    (gid); published links get output=csv. Anything else passes through.
    """
    url = (url or "").strip()
    parsed = urlparse(url)
    query = parse_qs(parsed.query)
    if query.get("output") == ["csv"] or query.get("format") == ["csv"]:
        return url

    match = _SHEET_ID.search(parsed.path)
    if "docs.google.com" not in parsed.netloc or not match:
        return url

    gid = (query.get("gid") or [None])[0]
    if gid is None and parsed.fragment.startswith("gid="):
        gid = parsed.fragment[len("gid=") :]

    published, sheet_id = match.group(1), match.group(2)
    if published:
        csv_url = f"https://docs.google.com/spreadsheets/d/e/{sheet_id}/pub?output=csv"
    else:
        csv_url = f"https://docs.google.com/spreadsheets/d/{sheet_id}/export?format=csv"
    if gid:
        csv_url += f"&gid={gid}"
    return csv_url


def parse_csv_rows(text: str) -> List[Dict[str, Any]]:
    return _rows_from_table(csv.reader(io.StringIO(text.lstrip("\ufeff"))))


async def fetch_sheet_rows(
    url: str, client: Optional[httpx.AsyncClient] = None
) -> List[Dict[str, Any]]:
    """Download a Google Sheet as CSV and parse it into rows."""
    if not url:
        raise SyncSourceError("No sheet URL configured.")
    csv_url = sheet_csv_url(url)

    async def _get(http: httpx.AsyncClient) -> httpx.Response:
        resp = await http.get(csv_url)
        resp.raise_for_status()
        return resp

    try:
        if client is None:
            async with httpx.AsyncClient(
                timeout=FETCH_TIMEOUT, follow_redirects=True
            ) as http:
                resp = await _get(http)
        else:
            resp = await _get(client)
    except httpx.HTTPStatusError as e:
        _logger.warning(f"Sheet download failed: HTTP {e.response.status_code} for {csv_url}")
        raise SyncSourceError(
            f"Sheet download failed (HTTP {e.response.status_code}).", source=csv_url
        ) from e
    except httpx.HTTPError as e:
        _logger.warning(f"Sheet download failed for {csv_url}: {e}")
        raise SyncSourceError("Sheet could not be reached.", source=csv_url) from e

    rows = parse_csv_rows(resp.text)
    _logger.info(f"Fetched {len(rows)} rows from sheet")
    return rows


# ---------------------------
# Export
# ---------------------------


def visible_columns(visibility: Optional[Mapping[str, bool]] = None) -> List[str]:
    if visibility is None:
        return list(COLUMN_KEYS)
    return [key for key in COLUMN_KEYS if visibility.get(key, True)]


def write_classes_xlsx(
    records: Iterable[models.ClassRecord],
    path: str | Path,
    columns: Optional[Mapping[str, bool]] = None,
) -> int:
    """Write the catalog with the visible columns only, return the row count."""
    keys = visible_columns(columns)
    workbook = Workbook()
    sheet = workbook.active
    sheet.title = "Classes"
    sheet.append([COLUMN_LABELS[k] for k in keys])
    for cell in sheet[1]:
        cell.font = Font(bold=True)

    count = 0
    for record in records:
        sheet.append([getattr(record, k) for k in keys])
        count += 1
    workbook.save(path)
    _logger.info(f"Exported {count} classes to {path}")
    return count


def write_order_xlsx(order: models.Order, path: str | Path) -> None:
    """Order form: customer block, item table, totals."""
    workbook = Workbook()
    sheet = workbook.active
    sheet.title = f"Order {order.order_id}"[:31]

    customer = order.customer
    for label, value in (
        ("Order ID", order.order_id),
        ("Date", order.created_at),
        ("Customer", customer.full_name),
        ("Company", customer.company),
        ("Phone", customer.phone),
        ("Sales Person", customer.sales_person),
        ("Notes", customer.notes),
    ):
        sheet.append([label, value])
        sheet.cell(row=sheet.max_row, column=1).font = Font(bold=True)
    sheet.append([])

    sheet.append(["Special ID", "Group", "Class Name", "Quantity", "Unit Price", "Line Total"])
    for cell in sheet[sheet.max_row]:
        cell.font = Font(bold=True)
    for item in order.items:
        name = item.class_name
        if order.language == "ar" and item.class_name_arabic:
            name = item.class_name_arabic
        elif order.language == "en" and item.class_name_english:
            name = item.class_name_english
        sheet.append(
            [
                item.special_id,
                item.quality,
                name,
                item.quantity,
                item.class_price if item.class_price is not None else "Price on request",
                item.line_total,
            ]
        )
    sheet.append([])
    sheet.append(["Total items", order.total_items])
    sheet.append(["Known total", order.known_total])
    if order.has_unknown_prices:
        sheet.append(["", "Some prices are on request and not included."])
    workbook.save(path)
    _logger.info(f"Exported order {order.order_id} to {path}")
