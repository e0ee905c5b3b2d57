import os
import tempfile
import unittest

import httpx
from openpyxl import Workbook, load_workbook

import db_case  # noqa: F401  (puts src/ on sys.path)
from db.errors import SyncSourceError, ValidationError
from db.models import ClassRecord, CustomerInfo, Order, OrderLineSnapshot
from utils import sheets


def record(**overrides) -> ClassRecord:
    base = dict(
        id=1,
        special_id="CL01",
        main_category="Boxes",
        quality="A",
        class_name="Box",
        class_name_arabic=None,
        class_name_english="Box EN",
        class_features=None,
        class_price=12.5,
        class_weight=None,
        class_quantity=None,
        class_video=None,
    )
    base.update(overrides)
    return ClassRecord(**base)


class SheetUrlTestCase(unittest.TestCase):
    def test_edit_link_becomes_export_link(self):
        url = "https://docs.google.com/spreadsheets/d/AbC_123/edit#gid=42"
        self.assertEqual(
            sheets.sheet_csv_url(url),
            "https://docs.google.com/spreadsheets/d/AbC_123/export?format=csv&gid=42",
        )

    def test_query_gid_is_kept(self):
        url = "https://docs.google.com/spreadsheets/d/xyz/edit?gid=7"
        self.assertTrue(sheets.sheet_csv_url(url).endswith("export?format=csv&gid=7"))

    def test_published_link(self):
        url = "https://docs.google.com/spreadsheets/d/e/2PACX-abc/pubhtml"
        self.assertEqual(
            sheets.sheet_csv_url(url),
            "https://docs.google.com/spreadsheets/d/e/2PACX-abc/pub?output=csv",
        )

    def test_csv_and_foreign_links_pass_through(self):
        for url in (
            "https://docs.google.com/spreadsheets/d/e/x/pub?output=csv",
            "https://example.com/catalog.csv",
        ):
            self.assertEqual(sheets.sheet_csv_url(url), url)


class CsvRowsTestCase(unittest.TestCase):
    def test_parse_csv_rows(self):
        text = "\ufeffSpecial ID,Class Name,,Class Price\nA1,Box,x,10\n,,,\nA2,Lid,,\n"
        self.assertEqual(
            sheets.parse_csv_rows(text),
            [
                {"Special ID": "A1", "Class Name": "Box", "Class Price": "10"},
                {"Special ID": "A2", "Class Name": "Lid", "Class Price": ""},
            ],
        )

    def test_empty_text(self):
        self.assertEqual(sheets.parse_csv_rows(""), [])


class FetchSheetRowsTestCase(unittest.IsolatedAsyncioTestCase):
    async def test_fetch_uses_export_url(self):
        seen = []

        def handler(request: httpx.Request) -> httpx.Response:
            seen.append(str(request.url))
            return httpx.Response(200, text="Special ID,Class Name\nS1,Sheet box\n")

        async with httpx.AsyncClient(transport=httpx.MockTransport(handler)) as client:
            rows = await sheets.fetch_sheet_rows(
                "https://docs.google.com/spreadsheets/d/abc/edit", client=client
            )

        self.assertEqual(rows, [{"Special ID": "S1", "Class Name": "Sheet box"}])
        self.assertEqual(seen, ["https://docs.google.com/spreadsheets/d/abc/export?format=csv"])

    async def test_http_error_is_a_source_error(self):
        def handler(request: httpx.Request) -> httpx.Response:
            return httpx.Response(404)

        async with httpx.AsyncClient(transport=httpx.MockTransport(handler)) as client:
            with self.assertRaises(SyncSourceError) as ctx:
                await sheets.fetch_sheet_rows("https://example.com/sheet.csv", client=client)
        self.assertIn("404", str(ctx.exception))

    async def test_network_error_is_a_source_error(self):
        def handler(request: httpx.Request) -> httpx.Response:
            raise httpx.ConnectError("down", request=request)

        async with httpx.AsyncClient(transport=httpx.MockTransport(handler)) as client:
            with self.assertRaises(SyncSourceError):
                await sheets.fetch_sheet_rows("https://example.com/sheet.csv", client=client)

    async def test_missing_url(self):
        with self.assertRaises(SyncSourceError):
            await sheets.fetch_sheet_rows("")


class WorkbookTestCase(unittest.TestCase):
    def setUp(self):
        self.temp_dir = tempfile.TemporaryDirectory()

    def tearDown(self):
        self.temp_dir.cleanup()

    def path(self, name):
        return os.path.join(self.temp_dir.name, name)

    def test_export_honors_column_visibility_and_reads_back(self):
        path = self.path("classes.xlsx")
        visibility = {"class_video": False, "class_name_arabic": False}

        count = sheets.write_classes_xlsx([record(), record(id=2, special_id="CL02")], path, visibility)

        self.assertEqual(count, 2)
        rows = sheets.read_xlsx_rows(path)
        self.assertEqual(len(rows), 2)
        self.assertNotIn("Class Video", rows[0])
        self.assertNotIn("Class Name Arabic", rows[0])
        self.assertEqual(rows[1]["Special ID"], "CL02")
        self.assertEqual(rows[0]["Class Price"], 12.5)

    def test_visible_columns(self):
        self.assertEqual(sheets.visible_columns(), list(sheets.COLUMN_KEYS))
        self.assertEqual(
            sheets.visible_columns({k: k == "quality" for k in sheets.COLUMN_KEYS}), ["quality"]
        )

    def test_empty_sheet(self):
        path = self.path("empty.xlsx")
        workbook = Workbook()
        workbook.active.append(["Special ID", "Class Name"])
        workbook.save(path)
        with self.assertRaises(ValidationError):
            sheets.read_xlsx_rows(path)

    def test_unreadable_file(self):
        path = self.path("broken.xlsx")
        with open(path, "w") as f:
            f.write("not a workbook")
        with self.assertRaises(SyncSourceError):
            sheets.read_xlsx_rows(path)
        with self.assertRaises(SyncSourceError):
            sheets.read_xlsx_rows(self.path("missing.xlsx"))

    def test_order_form(self):
        order = Order(
            id=1,
            order_id="ORD-7",
            customer=CustomerInfo(full_name="Jane", company="ACME"),
            items=(
                OrderLineSnapshot(1, 2, "CL01", "Box", 5.0, "A", class_name_english="Box EN"),
                OrderLineSnapshot(2, 1, "CL02", "Lid", None, "B"),
            ),
            known_total=10.0,
            total_items=3,
            has_unknown_prices=True,
            language="en",
            created_at="2024-05-01 09:00:00",
        )
        path = self.path("order.xlsx")
        sheets.write_order_xlsx(order, path)

        values = [
            [c for c in row if c is not None]
            for row in load_workbook(path).active.iter_rows(values_only=True)
        ]
        self.assertIn(["Order ID", "ORD-7"], values)
        self.assertIn(["CL01", "A", "Box EN", 2, 5, 10], values)
        self.assertIn(["CL02", "B", "Lid", 1, "Price on request"], values)
        self.assertIn(["Known total", 10], values)
