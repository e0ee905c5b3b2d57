from unittest import mock

from db_case import DatabaseTestCase

from db import cart
from utils import state


class StateTestCase(DatabaseTestCase):
    def test_role_for_password(self):
        with mock.patch.object(state, "ADMIN_PASSWORD", "boss"), mock.patch.object(
            state, "USER_PASSWORD", "shop"
        ):
            self.assertEqual(state.role_for_password("boss"), "admin")
            self.assertEqual(state.role_for_password("shop"), "customer")
            self.assertIsNone(state.role_for_password("guess"))
            self.assertIsNone(state.role_for_password(""))

    async def test_session_lifecycle(self):
        record = await self.make_class(class_price=3)
        gs = state.GlobalState(role="customer")

        sid = await gs.start_session()
        self.assertEqual(await gs.start_session(), sid)
        await cart.add(sid, record.id)

        await gs.end_session()
        self.assertIsNone(gs.cart_session)
        self.assertIsNone(gs.role)
        self.assertTrue((await cart.view(sid)).is_empty)
        self.assertFalse(gs.is_admin)
