import random

from db_case import DatabaseTestCase

from db import cart, catalog
from db.errors import NotFoundError, ValidationError


class CartTestCase(DatabaseTestCase):
    async def asyncSetUp(self):
        await super().asyncSetUp()
        self.sid = await cart.start_session()

    async def assert_totals_consistent(self, session_id):
        view = await cart.view(session_id)
        expected = sum(
            line.quantity * line.record.class_price
            for line in view.lines
            if line.record.class_price is not None
        )
        self.assertAlmostEqual(view.known_total, expected)
        self.assertAlmostEqual(await cart.cached_total(session_id), expected)
        self.assertEqual(view.total_items, sum(line.quantity for line in view.lines))
        return view

    async def test_add_twice_then_zero_quantity(self):
        record = await self.make_class(class_price=4)

        await cart.add(self.sid, record.id)
        total = await cart.add(self.sid, record.id)

        view = await cart.view(self.sid)
        self.assertEqual(len(view.lines), 1)
        self.assertEqual((view.lines[0].class_id, view.lines[0].quantity), (record.id, 2))
        self.assertEqual(total, 8)

        await cart.set_quantity(self.sid, record.id, 0)
        view = await cart.view(self.sid)
        self.assertTrue(view.is_empty)
        self.assertEqual(await cart.cart_total(self.sid), 0)

    async def test_add_unknown_class(self):
        with self.assertRaises(NotFoundError):
            await cart.add(self.sid, 12345)

    async def test_set_quantity_rules(self):
        record = await self.make_class(class_price=1)
        with self.assertRaises(NotFoundError):
            await cart.set_quantity(self.sid, record.id, 3)
        with self.assertRaises(ValidationError):
            await cart.set_quantity(self.sid, record.id, "3")

        await cart.add(self.sid, record.id)
        self.assertEqual(await cart.set_quantity(self.sid, record.id, 5), 5)
        # negative behaves as remove
        await cart.set_quantity(self.sid, record.id, -1)
        self.assertTrue((await cart.view(self.sid)).is_empty)

    async def test_remove_absent_line_is_noop(self):
        record = await self.make_class(class_price=1)
        self.assertEqual(await cart.remove(self.sid, record.id), 0)

    async def test_invalid_session_id(self):
        with self.assertRaises(ValidationError):
            await cart.view("")

    async def test_unknown_prices_are_flagged_not_summed(self):
        priced = await self.make_class(class_price=2.5)
        on_request = await self.make_class()

        await cart.add(self.sid, priced.id)
        await cart.add(self.sid, on_request.id)
        await cart.add(self.sid, on_request.id)

        view = await self.assert_totals_consistent(self.sid)
        self.assertTrue(view.has_unknown_prices)
        self.assertEqual(view.known_total, 2.5)
        self.assertEqual(view.total_items, 3)
        self.assertIsNone(view.lines[1].line_total)

    async def test_totals_never_drift_over_random_operations(self):
        rng = random.Random(7)
        records = [await self.make_class(class_price=p) for p in (1.25, 3, None, 10.5)]

        for _ in range(40):
            record = rng.choice(records)
            op = rng.choice(["add", "add", "set", "remove"])
            if op == "add":
                await cart.add(self.sid, record.id)
            elif op == "remove":
                await cart.remove(self.sid, record.id)
            else:
                view = await cart.view(self.sid)
                if any(line.class_id == record.id for line in view.lines):
                    await cart.set_quantity(self.sid, record.id, rng.randint(0, 5))
            await self.assert_totals_consistent(self.sid)

    async def test_view_follows_live_catalog(self):
        record = await self.make_class(class_price=10)
        other = await self.make_class(class_price=1)
        await cart.add(self.sid, record.id)
        await cart.add(self.sid, other.id)

        await catalog.update_class(record.id, {"class_price": 20, "class_name": "Renamed"})
        view = await cart.view(self.sid)
        self.assertEqual(view.known_total, 21)
        self.assertEqual(view.lines[0].record.class_name, "Renamed")

        await catalog.delete_class(other.id)
        view = await cart.view(self.sid)
        self.assertEqual([line.class_id for line in view.lines], [record.id])
        self.assertEqual(view.known_total, 20)

    async def test_sessions_are_isolated(self):
        record = await self.make_class(class_price=1)
        other_sid = await cart.start_session()
        self.assertNotEqual(other_sid, self.sid)

        await cart.add(self.sid, record.id)
        await cart.add(other_sid, record.id)
        await cart.add(other_sid, record.id)

        await cart.clear(self.sid)
        self.assertTrue((await cart.view(self.sid)).is_empty)
        self.assertEqual((await cart.view(other_sid)).total_items, 2)

        await cart.end_session(other_sid)
        self.assertTrue((await cart.view(other_sid)).is_empty)
        self.assertEqual(await cart.cached_total(other_sid), 0)
