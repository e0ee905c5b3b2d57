from textual import on, work
from textual.app import ComposeResult
from textual.containers import Container, Horizontal, HorizontalGroup, VerticalScroll
from textual.events import ScreenResume
from textual.message import Message
from textual.widgets import Button, Label, Rule

from db import cart
from db.models import CartLine, CartView
from utils.messages import (
    CartChangedMessage,
    CatalogChangedMessage,
    ModeSwitchedMessage,
    NewOrderMessage,
)
from utils.pure import format_price, format_total
from views.base_screen import BaseScreen
from views.modal_checkout import CheckoutModal
from views.modal_class_detail import ClassDetailModal
from views.modal_dialog import DialogModal


class CartLineActionMessage(Message):
    bubble = True

    def __init__(self, action: str) -> None:
        super().__init__()
        self.action = action


class CartLineActionLabel(Label):
    def action_edit(self):
        self.post_message(CartLineActionMessage("edit"))

    def action_remove(self):
        self.post_message(CartLineActionMessage("remove"))


class CartLineWidget(HorizontalGroup):
    def __init__(self, line: CartLine, language: str):
        super().__init__()
        self.line = line
        self.language = language

    def compose(self):
        record = self.line.record
        with Container(classes="div-cart-line"):
            with Container(classes="div-line"):
                yield Label(
                    f"{record.special_id or ''}  {record.display_name(self.language)}",
                    classes="label-line-name",
                )
                yield Label(f"x {self.line.quantity}", classes="label-line-qty")
                yield Label(
                    format_price(record.class_price), classes="label-line-price"
                )
                yield Label(
                    format_price(self.line.line_total)
                    if record.has_price
                    else "",
                    classes="label-line-total",
                )
            with Container(classes="div-actions"):
                yield CartLineActionLabel("[@click=edit()]Edit[/]")
                yield CartLineActionLabel("[@click=remove()]Remove[/]")

    @on(CartLineActionMessage)
    @work()
    async def handle_action(self, message: CartLineActionMessage):
        message.stop()
        if message.action == "edit":
            if await self.app.push_screen_wait(ClassDetailModal(self.line.class_id)):
                self.post_message(CartChangedMessage())
            return

        if await self.app.push_screen_wait(
            DialogModal(
                "Do you really want to remove this class from the cart?",
                primary_text="Yes",
                secondary_text="No",
                tone="warning",
            )
        ):
            await cart.remove(self.app.state.cart_session, self.line.class_id)
            self.post_message(CartChangedMessage())
            self.notify("Removed from cart.", severity="information")


class CartScreen(BaseScreen):
    """
    Cart lines joined with live catalog data, totals and checkout.
    """

    def __init__(self) -> None:
        super().__init__()
        self._view: CartView | None = None

    def compose(self) -> ComposeResult:
        yield from super().compose()
        yield VerticalScroll(id="vertscroll-content")
        yield Label("Total: 0.00", id="label-cart-total")
        yield Rule(line_style="dashed")
        with Horizontal(id="hort-buttons"):
            yield Button("Clear Cart", id="btn-clear-cart")
            yield Button("Refresh", id="btn-refresh")
            yield Button("Checkout", id="btn-checkout", variant="primary")

    def on_mount(self):
        self.handle_cart_change()

    @on(CartChangedMessage)
    @on(CatalogChangedMessage)
    @on(NewOrderMessage)
    @on(ModeSwitchedMessage)
    @on(ScreenResume)
    @on(Button.Pressed, "#btn-refresh")
    @work(exclusive=True)  # exclusive, or overlapping reloads mount duplicates
    async def handle_cart_change(self):
        session_id = await self.app.state.start_session()
        view = await cart.view(session_id)

        if self._view is not None and view == self._view:
            return
        self._view = view

        content = self.query_one("#vertscroll-content")
        await content.remove_children()
        await content.mount_all(
            [CartLineWidget(line, self.app.state.language) for line in view.lines]
        )
        content.set_class(view.is_empty, "no-items")

        total_text = format_total(view.known_total, view.has_unknown_prices)
        self.query_one("#label-cart-total", Label).update(
            f"Items: {view.total_items}    Total: {total_text}"
        )

    @on(Button.Pressed, "#btn-clear-cart")
    @work()
    async def handle_clear_cart(self) -> None:
        if not self._view or self._view.is_empty:
            self.app.notify("Cart is empty.", severity="warning")
            return

        if await self.app.push_screen_wait(
            DialogModal(
                "Do you really want to remove everything from the cart?",
                primary_text="Yes",
                secondary_text="No",
                tone="error",
            )
        ):
            await cart.clear(self.app.state.cart_session)
            self.post_message(CartChangedMessage())

    @on(Button.Pressed, "#btn-checkout")
    @work()
    async def handle_checkout(self) -> None:
        """
        Open up the checkout modal
        """
        if not self._view or self._view.is_empty:
            self.app.notify("Cart is empty.", severity="warning")
            return

        if await self.app.push_screen_wait(CheckoutModal()):
            self.app.post_message(NewOrderMessage())
        self.post_message(CartChangedMessage())
