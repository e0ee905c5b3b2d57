from textual import events, on, work
from textual.app import ComposeResult
from textual.containers import Horizontal, Vertical
from textual.reactive import reactive
from textual.screen import ModalScreen
from textual.validation import Number
from textual.widgets import Button, Input, Label, MarkdownViewer

from db import cart, catalog
from db.errors import CatalogError
from db.models import CartLine, ClassRecord
from utils.pure import format_price, format_weight, generate_markdown_table


def class_markdown(record: ClassRecord, language: str = "es") -> str:
    rows = [
        ["Special ID", record.special_id],
        ["Main Category", record.main_category],
        ["Group", record.quality],
        ["Class Name", record.class_name],
        ["Class Name Arabic", record.class_name_arabic],
        ["Class Name English", record.class_name_english],
        ["Features", record.class_features],
        ["Weight", format_weight(record.class_weight)],
        ["Price", format_price(record.class_price)],
        ["Quantity", "" if record.class_quantity is None else record.class_quantity],
        ["Video", record.class_video],
    ]
    table = generate_markdown_table(["Attribute", "Value"], rows, ["l", "l"])
    return f"### {record.display_name(language)}\n\n{table}"


class ClassDetailModal(ModalScreen[bool]):
    """
    Class detail plus ordering.
    Dismisses with True when the cart changed.
    """

    order_qty = reactive(1)

    def __init__(self, class_id: int) -> None:
        super().__init__()

        self._class_id = class_id
        self._record: ClassRecord | None = None
        self._existing_line: CartLine | None = None

    def compose(self) -> ComposeResult:
        with Horizontal(id="hort-class-detail"):
            yield MarkdownViewer("", show_table_of_contents=False)
            with Vertical(id="vert-order"):
                yield Label("Order Quantity")
                with Horizontal():
                    yield Button("-", id="btn-sub-qty")
                    yield Input(
                        value="1",
                        id="input-order-qty",
                        type="integer",
                        validators=[Number(minimum=1)],
                    )
                    yield Button("+", id="btn-add-qty")
                with Horizontal():
                    yield Button("Go Back", id="btn-quit")
                    yield Button("Add to Cart", id="btn-addcart", variant="primary")

    async def on_mount(self):
        try:
            self._record = await catalog.get_class(self._class_id)
        except CatalogError as e:
            self.app.notify(str(e), severity="error")
            self.dismiss(False)
            return

        language = self.app.state.language
        await self.query_one(MarkdownViewer).document.update(
            class_markdown(self._record, language)
        )

        if not self._record.is_orderable:
            order_btn = self.query_one("#btn-addcart", Button)
            order_btn.label = "Not Orderable"
            order_btn.disabled = True
            order_btn.variant = "warning"

        session_id = await self.app.state.start_session()
        view = await cart.view(session_id)
        self._existing_line = next(
            (line for line in view.lines if line.class_id == self._class_id), None
        )
        if self._existing_line:
            self.order_qty = self._existing_line.quantity
            self.query_one("#btn-addcart", Button).label = "Update Cart"

        self.query_one("#input-order-qty").focus()

    def on_key(self, event: events.Key) -> None:
        if event.key == "escape":
            self.dismiss(False)

    def on_input_changed(self, message: Input.Changed) -> None:
        if (
            message.input.id == "input-order-qty"
            and message.input.is_valid
            and self.focused == message.input
        ):
            self.order_qty = int(message.value)

    def validate_order_qty(self, qty: int) -> int:
        return max(qty, 1)

    def watch_order_qty(self, qty: int):
        self.query_one("#btn-sub-qty").disabled = qty <= 1
        input_order_qty = self.query_one("#input-order-qty", Input)
        if input_order_qty.value != str(qty):
            input_order_qty.value = str(qty)

    @on(Button.Pressed, "#btn-add-qty")
    def handle_add_qty(self):
        self.order_qty += 1

    @on(Button.Pressed, "#btn-sub-qty")
    def handle_sub_qty(self):
        self.order_qty -= 1

    @on(Button.Pressed, "#btn-quit")
    def handle_quit(self):
        self.dismiss(False)

    @on(Button.Pressed, "#btn-addcart")
    @work(exclusive=True)
    async def handle_addcart(self):
        session_id = await self.app.state.start_session()
        try:
            if not self._existing_line:
                await cart.add(session_id, self._class_id)
            await cart.set_quantity(session_id, self._class_id, self.order_qty)
        except CatalogError as e:
            self.app.notify(str(e), severity="error")
            return

        if self._existing_line:
            self.app.notify("Updated cart quantity.")
        else:
            self.app.notify("Class added to cart.")
        self.dismiss(True)
