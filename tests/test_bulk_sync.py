from unittest import mock

from db_case import DatabaseTestCase

from db import bulk_sync, catalog, price_history


class NormalizeRowTestCase(DatabaseTestCase):
    def test_header_synonyms(self):
        data = bulk_sync.normalize_row(
            {
                "Special ID": " X1 ",
                "Group": "Premium",
                "class_name_en": "Crate",
                "Class KG": "2,5",
                "Class Price": "1 200",
                "Class Quantity": "3",
                "Unrelated": "ignored",
            }
        )
        self.assertEqual(
            data,
            {
                "special_id": "X1",
                "quality": "Premium",
                "class_name_english": "Crate",
                "class_weight": 2.5,
                "class_price": 1200.0,
                "class_quantity": 3,
            },
        )

    def test_first_non_blank_synonym_wins(self):
        data = bulk_sync.normalize_row({"Group": "", "quality": "B"})
        self.assertEqual(data, {"quality": "B"})

    def test_blank_cells_are_left_out_and_bad_prices_become_none(self):
        data = bulk_sync.normalize_row(
            {"special_id": "X1", "class_name": "  ", "class_price": "ask", "class_weight": -1}
        )
        self.assertEqual(data, {"special_id": "X1", "class_price": None, "class_weight": None})


class ReconcileTestCase(DatabaseTestCase):
    async def test_creates_and_updates_with_row_indexes(self):
        await self.make_class(special_id="A1", class_name="Old", class_price=5)

        report = await bulk_sync.reconcile(
            [
                {"special_id": "A1", "class_name": "New", "class_price": "7"},
                {"special_id": "B1", "class_name": "Fresh"},
            ]
        )

        self.assertEqual(
            [(p.index, p.special_id, p.action) for p in report.processed],
            [(2, "A1", "updated"), (3, "B1", "created")],
        )
        self.assertEqual(report.skipped, [])
        updated = await catalog.get_class_by_special_id("A1")
        self.assertEqual((updated.class_name, updated.class_price), ("New", 7))
        self.assertEqual(len(await price_history.history(updated.id)), 1)

    async def test_update_only_skips_unknown_ids(self):
        report = await bulk_sync.reconcile([{"special_id": "Z9", "class_name": "Ghost"}], update_only=True)
        self.assertEqual(report.processed_count, 0)
        self.assertEqual(report.skipped[0].index, 2)
        self.assertEqual(report.skipped[0].reason, bulk_sync.REASON_UPDATE_ONLY)
        self.assertEqual(await catalog.list_classes(), [])

        report = await bulk_sync.reconcile([{"special_id": "Z9", "class_name": "Ghost"}])
        self.assertEqual(report.processed[0].action, "created")

    async def test_bad_row_does_not_stop_the_batch(self):
        report = await bulk_sync.reconcile(
            [
                {"special_id": "R1", "class_name": "One"},
                {"class_name": "No id"},
                "not a row",
                {"special_id": "R4", "class_name": "Four", "class_quantity": "-3"},
                {"special_id": "R5", "class_name": "Five"},
            ]
        )

        self.assertEqual([p.special_id for p in report.processed], ["R1", "R5"])
        self.assertEqual([s.index for s in report.skipped], [3, 4, 5])
        self.assertEqual(report.skipped[0].reason, bulk_sync.REASON_NO_SPECIAL_ID)
        self.assertIn("negative", report.skipped[2].reason)

    async def test_oversized_quantity_is_skipped(self):
        report = await bulk_sync.reconcile(
            [
                {"Special ID": "OV1", "Class Name": "Small"},
                {"Special ID": "OV2", "Class Name": "Huge", "Class Quantity": "1e20"},
                {"Special ID": "OV3", "Class Name": "Also small"},
            ]
        )

        self.assertEqual([p.index for p in report.processed], [2, 4])
        self.assertEqual([s.index for s in report.skipped], [3])
        self.assertIn("too large", report.skipped[0].reason)
        self.assertIsNone(await catalog.find_class_by_exact_special_id("OV2"))

    async def test_unexpected_row_error_becomes_a_skip(self):
        with mock.patch.object(catalog, "create_class", side_effect=RuntimeError("disk")):
            with self.assertLogs("db.bulk_sync", level="ERROR"):
                report = await bulk_sync.reconcile([{"Special ID": "U1", "Class Name": "One"}])

        self.assertEqual(report.processed, [])
        self.assertEqual(report.skipped[0].reason, bulk_sync.REASON_UNEXPECTED)

    async def test_blank_cell_keeps_value_and_bad_price_clears_it(self):
        record = await self.make_class(
            special_id="K1", class_features="Strong", class_price=10
        )

        await bulk_sync.reconcile(
            [{"special_id": "K1", "class_features": "", "class_price": "on request"}]
        )

        stored = await catalog.get_class(record.id)
        self.assertEqual(stored.class_features, "Strong")
        self.assertIsNone(stored.class_price)
        entries = await price_history.history(record.id)
        self.assertEqual([(e.old_price, e.new_price) for e in entries], [(10, None)])

    async def test_special_id_match_is_case_sensitive(self):
        await self.make_class(special_id="ab1")
        report = await bulk_sync.reconcile([{"special_id": "AB1", "class_name": "Upper"}])

        self.assertEqual(report.processed[0].action, "created")
        self.assertEqual(len(await catalog.list_classes()), 2)

    async def test_rows_sharing_an_id_apply_in_order(self):
        report = await bulk_sync.reconcile(
            [
                {"special_id": "D1", "class_name": "First", "class_price": 1},
                {"special_id": "E1", "class_name": "Other"},
                {"special_id": "D1", "class_price": 2},
            ],
            concurrency=3,
        )

        self.assertEqual(
            [(p.index, p.action) for p in report.processed],
            [(2, "created"), (3, "created"), (4, "updated")],
        )
        record = await catalog.get_class_by_special_id("D1")
        self.assertEqual((record.class_name, record.class_price), ("First", 2))
        self.assertEqual(len(await catalog.list_classes()), 2)

    async def test_report_as_dict(self):
        report = await bulk_sync.reconcile([{"special_id": "M1"}, {}])
        self.assertEqual(
            report.as_dict(),
            {
                "processedCount": 1,
                "skippedCount": 1,
                "skipped": [{"index": 3, "reason": bulk_sync.REASON_NO_SPECIAL_ID}],
            },
        )
        # created without a name
        self.assertEqual((await catalog.get_class_by_special_id("M1")).class_name, "")
