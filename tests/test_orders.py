import copy
import re

from db_case import DatabaseTestCase

from db import cart, catalog, orders
from db.errors import ConflictError, NotFoundError, ValidationError
from db.models import CustomerInfo


def item(**overrides):
    base = {
        "class_id": 1,
        "quantity": 2,
        "special_id": "CL01",
        "class_name": "Box",
        "class_price": 10.0,
    }
    base.update(overrides)
    return base


def payload(order_id="ORD-1", **overrides):
    base = {
        "order_id": order_id,
        "customer_info": {"full_name": "Jane Doe", "company": "ACME"},
        "items": [item()],
        "known_total": 20.0,
    }
    base.update(overrides)
    return base


class OrdersTestCase(DatabaseTestCase):
    async def test_submit_and_get(self):
        order = await orders.submit(payload())

        self.assertEqual(order.order_id, "ORD-1")
        self.assertEqual(order.customer.full_name, "Jane Doe")
        self.assertEqual(order.customer.company, "ACME")
        self.assertEqual(order.customer.phone, "")
        self.assertEqual(order.language, "es")
        self.assertEqual(order.total_items, 2)
        self.assertFalse(order.has_unknown_prices)
        self.assertRegex(order.created_at, r"^\d{4}-\d{2}-\d{2} \d{2}:\d{2}:\d{2}$")
        self.assertEqual(order.items[0].line_total, 20.0)

        self.assertEqual(await orders.get_order("ORD-1"), order)

    async def test_integer_order_id_is_normalized(self):
        await orders.submit(payload(order_id=1001))
        self.assertEqual((await orders.get_order("1001")).order_id, "1001")
        self.assertEqual((await orders.get_order(1001)).order_id, "1001")

    async def test_duplicate_order_id_conflicts(self):
        first = await orders.submit(payload())
        with self.assertRaises(ConflictError) as ctx:
            await orders.submit(
                payload(customer_info={"full_name": "Someone Else"}, known_total=1.0)
            )
        self.assertEqual(ctx.exception.field, "order_id")
        self.assertEqual(await orders.get_order("ORD-1"), first)

    async def test_validation(self):
        bad_payloads = [
            payload(items=[]),
            payload(items=None),
            payload(order_id=""),
            payload(customer_info={"full_name": "  "}),
            payload(customer_info=None),
            payload(known_total=-1),
            payload(known_total="20"),
            payload(language="fr"),
            payload(total_items=-2),
            payload(items=[item(quantity=0)]),
            payload(items=[item(quantity=True)]),
            payload(items=[item(class_id="1")]),
            payload(items=[item(class_price="abc")]),
            payload(items=[item(class_price=-5)]),
            payload(items=[item(special_id=None)]),
            payload(items=["not an item"]),
        ]
        for bad in bad_payloads:
            with self.subTest(bad=bad):
                with self.assertRaises(ValidationError):
                    await orders.submit(bad)
        self.assertEqual(await orders.list_orders(), [])

    async def test_numbers_beyond_integer_range_are_rejected(self):
        too_big = [
            payload(total_items=10**20),
            payload(items=[item(quantity=10**20)]),
            payload(items=[item(class_id=10**20)]),
            payload(items=[item(quantity=2**62), item(class_id=2, quantity=2**62)]),
            payload(known_total=10**400),
            payload(known_total=float("inf")),
        ]
        for bad in too_big:
            with self.subTest(bad=bad):
                with self.assertRaises(ValidationError):
                    await orders.submit(bad)
        self.assertEqual(await orders.list_orders(), [])

    async def test_derived_totals_and_unknown_prices(self):
        order = await orders.submit(
            payload(
                items=[item(), item(class_id=2, quantity=3, class_price=None)],
                language="ar",
            )
        )
        self.assertEqual(order.total_items, 5)
        self.assertTrue(order.has_unknown_prices)
        self.assertEqual(order.language, "ar")

    async def test_snapshot_survives_catalog_changes(self):
        record = await catalog.create_class(
            {"special_id": "S1", "class_name": "Box", "class_price": 10, "class_name_arabic": "صندوق"}
        )
        sid = await cart.start_session()
        await cart.add(sid, record.id)
        await cart.add(sid, record.id)

        built = await orders.build_payload_from_cart(
            sid, "ORD-S", CustomerInfo(full_name="Jane"), "en"
        )
        sent = copy.deepcopy(built)
        order = await orders.submit(built)
        self.assertEqual(order.known_total, 20)
        self.assertEqual(order.items[0].class_name_arabic, "صندوق")

        await catalog.update_class(record.id, {"class_price": 99, "class_name": "Changed"})
        await catalog.delete_class(record.id)

        stored = await orders.get_order("ORD-S")
        self.assertEqual(stored.items, order.items)
        self.assertEqual(stored.items[0].class_price, 10)
        self.assertEqual(stored.items[0].class_name, "Box")
        self.assertEqual(stored.known_total, 20)
        self.assertEqual(built, sent)

    async def test_list_newest_first_with_paging(self):
        for n in range(1, 6):
            await orders.submit(payload(order_id=f"ORD-{n}"))

        listed = [o.order_id for o in await orders.list_orders()]
        self.assertEqual(listed, ["ORD-5", "ORD-4", "ORD-3", "ORD-2", "ORD-1"])

        page = [o.order_id for o in await orders.list_orders(limit=2, offset=2)]
        self.assertEqual(page, ["ORD-3", "ORD-2"])
        self.assertEqual(await orders.count_orders(), 5)

    async def test_delete(self):
        await orders.submit(payload())
        await orders.delete_order("ORD-1")
        with self.assertRaises(NotFoundError):
            await orders.get_order("ORD-1")
        with self.assertRaises(NotFoundError):
            await orders.delete_order("ORD-1")

    async def test_created_at_uses_business_timezone(self):
        order = await orders.submit(payload())
        self.assertTrue(re.match(r"\d{4}-", order.created_at))
        self.assertEqual(orders.TIMEZONE, "Europe/Istanbul")
