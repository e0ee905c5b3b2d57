from datetime import datetime

from textual import events, on, work
from textual.app import ComposeResult
from textual.containers import Horizontal, Vertical, VerticalScroll
from textual.screen import ModalScreen
from textual.widgets import Button, Input, Label, MarkdownViewer

from db import cart, orders
from db.errors import CatalogError, ConflictError
from db.models import CartView
from utils.pure import format_price, format_total, generate_markdown_table
from views.modal_dialog import DialogModal

CUSTOMER_FIELDS = [
    ("full_name", "Full Name *", "Jane Doe"),
    ("company", "Company", ""),
    ("phone", "Phone", ""),
    ("sales_person", "Sales Person", ""),
    ("notes", "Notes", ""),
]


def new_order_id() -> str:
    return datetime.now().strftime("ORD-%Y%m%d-%H%M%S-%f")


def checkout_markdown(order_id: str, view: CartView, language: str) -> str:
    rows = [
        [
            line.record.special_id,
            line.record.display_name(language),
            format_price(line.record.class_price),
            line.quantity,
            format_price(line.line_total) if line.record.has_price else "",
        ]
        for line in view.lines
    ]
    md = generate_markdown_table(
        ["Special ID", "Class", "Unit Price", "Quantity", "Line Total"],
        rows,
        ["l", "l", "r", "r", "r"],
    )
    md = f"### Order {order_id}\n\n{md}"
    md += f"\n\n**Items:** {view.total_items}  \n"
    md += f"**Total:** {format_total(view.known_total, view.has_unknown_prices)}"
    return md


class CheckoutModal(ModalScreen[bool]):
    """
    Order summary plus customer info. Dismisses with True once the order is stored.
    """

    def __init__(self):
        super().__init__()
        self._order_id = new_order_id()

    def compose(self) -> ComposeResult:
        with Vertical(id="vert-checkout"):
            yield MarkdownViewer("", show_table_of_contents=False)
            with VerticalScroll(id="vert-customer"):
                for key, label, placeholder in CUSTOMER_FIELDS:
                    yield Label(label)
                    yield Input(placeholder=placeholder, id=f"input-{key}")
            with Horizontal():
                yield Button("Go Back", id="btn-quit")
                yield Button("Place Order", id="btn-submit", variant="primary")

    async def _render_summary(self) -> None:
        view = await cart.view(self.app.state.cart_session)
        md = checkout_markdown(self._order_id, view, self.app.state.language)
        await self.query_one(MarkdownViewer).document.update(md)

    async def on_mount(self):
        await self._render_summary()
        self.query_one("#input-full_name").focus()

    def on_key(self, event: events.Key) -> None:
        if event.key == "escape":
            self.dismiss(False)

    @on(Button.Pressed, "#btn-submit")
    @work(exclusive=True)
    async def handle_submit(self):
        customer = {
            key: self.query_one(f"#input-{key}", Input).value.strip()
            for key, _, _ in CUSTOMER_FIELDS
        }
        if not customer["full_name"]:
            name_input = self.query_one("#input-full_name", Input)
            name_input.focus()
            name_input.add_class("-invalid")
            self.notify("Full name is required.", severity="error")
            return

        if not await self.app.push_screen_wait(
            DialogModal(
                "Place order? This cannot be undone.",
                primary_text="Yes",
                secondary_text="No",
                tone="positive",
            )
        ):
            return

        session_id = self.app.state.cart_session
        try:
            payload = await orders.build_payload_from_cart(
                session_id, self._order_id, customer, self.app.state.language
            )
            order = await orders.submit(payload)
        except ConflictError:
            # same id submitted twice, keep the stored order and retry with a new id
            self._order_id = new_order_id()
            await self._render_summary()
            self.notify("Order id already used, please submit again.", severity="warning")
            return
        except CatalogError as e:
            self.notify(str(e), severity="error")
            return

        await cart.clear(session_id)
        self.notify(f"Order placed. Your order number is {order.order_id}.")
        self.dismiss(True)

    @on(Button.Pressed, "#btn-quit")
    def handle_quit(self):
        self.dismiss(False)
