from db_case import DatabaseTestCase

from db import catalog, price_history
from db.errors import ConflictError


class PriceHistoryTestCase(DatabaseTestCase):
    async def test_price_change_appends_one_entry(self):
        record = await catalog.create_class({"class_name": "Box", "class_price": 10})
        await catalog.update_class(record.id, {"class_price": 12})

        entries = await price_history.history(record.id)
        self.assertEqual(len(entries), 1)
        self.assertEqual(entries[0].old_price, 10)
        self.assertEqual(entries[0].new_price, 12)
        self.assertEqual(entries[0].class_id, record.id)

    async def test_unchanged_price_appends_nothing(self):
        record = await self.make_class(class_price=10)
        await catalog.update_class(record.id, {"class_name": "Bigger box"})
        await catalog.update_class(record.id, {"class_price": "10"})
        self.assertEqual(await price_history.history(record.id), [])

    async def test_price_on_request_transitions_are_changes(self):
        record = await self.make_class()
        await catalog.update_class(record.id, {"class_price": 5})
        await catalog.update_class(record.id, {"class_price": ""})
        await catalog.update_class(record.id, {"class_price": None})

        entries = await price_history.history(record.id)
        self.assertEqual(
            [(e.old_price, e.new_price) for e in entries], [(5, None), (None, 5)]
        )

    async def test_history_is_newest_first(self):
        record = await self.make_class(class_price=1)
        for price in (2, 3, 4):
            await catalog.update_class(record.id, {"class_price": price})

        entries = await price_history.history(record.id)
        self.assertEqual([e.new_price for e in entries], [4, 3, 2])

    async def test_failed_update_leaves_no_entry(self):
        await self.make_class(special_id="P1")
        record = await self.make_class(special_id="P2", class_price=1)

        with self.assertRaises(ConflictError):
            await catalog.update_class(record.id, {"special_id": "P1", "class_price": 9})

        self.assertEqual((await catalog.get_class(record.id)).class_price, 1)
        self.assertEqual(await price_history.history(record.id), [])

    async def test_recent_changes_uses_current_identity(self):
        first = await self.make_class(special_id="R1", class_price=1)
        second = await self.make_class(special_id="R2", class_price=1)
        await catalog.update_class(first.id, {"class_price": 2})
        await catalog.update_class(second.id, {"class_price": 3})
        await catalog.update_class(first.id, {"class_name": "Renamed"})

        changes = await price_history.recent_changes()
        self.assertEqual([c.special_id for c in changes], ["R2", "R1"])
        self.assertEqual(changes[1].class_name, "Renamed")

        self.assertEqual(len(await price_history.recent_changes(limit=1)), 1)

    def test_prices_differ(self):
        self.assertFalse(price_history.prices_differ(None, None))
        self.assertFalse(price_history.prices_differ(3, 3.0))
        self.assertTrue(price_history.prices_differ(None, 0))
        self.assertTrue(price_history.prices_differ(1, None))
        self.assertTrue(price_history.prices_differ(1, 1.5))
