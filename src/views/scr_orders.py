import asyncio
import os
from math import ceil
from typing import Dict

from textual import on, work
from textual.app import ComposeResult
from textual.containers import Horizontal, Vertical
from textual.events import ScreenResume
from textual.reactive import reactive
from textual.widgets import Button, DataTable, Label, MarkdownViewer

from db import orders
from db.errors import CatalogError
from db.models import Order
from utils import sheets
from utils.messages import ModeSwitchedMessage, NewOrderMessage
from utils.pure import format_price, format_total, generate_markdown_table
from views.base_screen import BaseScreen
from views.modal_dialog import DialogModal

EXPORT_DIR = os.getenv("CLASSDESK_EXPORT_DIR", "exports")
PAGE_SIZE = 10


def order_markdown(order: Order) -> str:
    customer = order.customer
    header = (
        f"### Order {order.order_id}\n"
        f"Date: {order.created_at}  \n"
        f"Customer: {customer.full_name}"
        + (f" ({customer.company})" if customer.company else "")
        + "  \n"
        f"Phone: {customer.phone or '-'}  \n"
        f"Sales Person: {customer.sales_person or '-'}  \n"
        f"Language: {order.language}\n\n"
    )
    if customer.notes:
        header += f"> {customer.notes}\n\n"

    rows = [
        [
            item.special_id,
            item.quality,
            item.class_name,
            item.quantity,
            format_price(item.class_price),
            format_price(item.line_total) if item.class_price is not None else "",
        ]
        for item in order.items
    ]
    table = generate_markdown_table(
        ["Special ID", "Group", "Class", "Qty", "Unit Price", "Line Total"],
        rows,
        ["l", "l", "l", "r", "r", "r"],
    )
    footer = (
        f"\n\n**Items:** {order.total_items}  \n"
        f"**Total:** {format_total(order.known_total, order.has_unknown_prices)}"
    )
    return header + table + footer


class OrdersScreen(BaseScreen):
    """
    Order ledger: newest first, paginated, with detail, delete and xlsx export.
    Details come from the frozen snapshot, never from the live catalog.
    """

    page_idx = reactive(1)
    page_cnt = reactive(1)

    def __init__(self) -> None:
        super().__init__()
        self._orders: Dict[str, Order] = {}

    def compose(self) -> ComposeResult:
        yield from super().compose()
        with Vertical():
            yield MarkdownViewer(id="md-order-detail", show_table_of_contents=False)
            yield DataTable(id="table-orders")
        with Horizontal(id="hort-table-control"):
            yield Button("Refresh", id="btn-refresh")
            yield Button("<", id="btn-prev")
            yield Label("1 / 1", id="label-page")
            yield Button(">", id="btn-next")
            yield Button("Export xlsx", id="btn-export", variant="primary")
            yield Button("Delete", id="btn-delete", variant="error")

    def on_mount(self) -> None:
        table = self.query_one(DataTable)
        table.cursor_type = "row"
        table.zebra_stripes = True
        table.add_columns("Order ID", "Date", "Customer", "Items", "Total")
        self._load_orders()

    @on(Button.Pressed, "#btn-refresh")
    @on(ModeSwitchedMessage)
    @on(ScreenResume)
    @on(NewOrderMessage)
    def handle_refresh(self):
        self._load_orders()

    def watch_page_idx(self, old: int, new: int) -> None:
        self._load_orders()

    def _refresh_buttons(self) -> None:
        self.query_one("#btn-prev", Button).disabled = self.page_idx <= 1
        self.query_one("#btn-next", Button).disabled = self.page_idx >= self.page_cnt
        self.query_one("#label-page", Label).update(f"{self.page_idx} / {self.page_cnt}")

    @on(Button.Pressed, "#btn-prev")
    def handle_prev(self) -> None:
        if self.page_idx > 1:
            self.page_idx -= 1

    @on(Button.Pressed, "#btn-next")
    def handle_next(self) -> None:
        if self.page_idx < self.page_cnt:
            self.page_idx += 1

    @work(exclusive=True, group="orders")
    async def _load_orders(self) -> None:
        total, page = await asyncio.gather(
            orders.count_orders(),
            orders.list_orders(limit=PAGE_SIZE, offset=(self.page_idx - 1) * PAGE_SIZE),
        )
        self.page_cnt = max(ceil(total / PAGE_SIZE), 1)

        table = self.query_one(DataTable)
        table.clear()
        self._orders = {}
        for order in page:
            self._orders[order.order_id] = order
            table.add_row(
                order.order_id,
                order.created_at,
                order.customer.full_name,
                order.total_items,
                format_total(order.known_total, order.has_unknown_prices),
                key=order.order_id,
            )
        self._refresh_buttons()
        self._render_detail(page[0] if page else None)

    def _selected_order(self) -> Order | None:
        table = self.query_one(DataTable)
        if table.row_count == 0:
            return None
        row_key = table.coordinate_to_cell_key(table.cursor_coordinate).row_key
        return self._orders.get(row_key.value)

    @on(DataTable.RowHighlighted)
    def handle_row_highlight(self, event: DataTable.RowHighlighted) -> None:
        self._render_detail(self._orders.get(event.row_key.value))

    def _render_detail(self, order: Order | None) -> None:
        md = order_markdown(order) if order else "### Select an order to view its details."
        self.query_one("#md-order-detail", MarkdownViewer).document.update(md)

    @on(Button.Pressed, "#btn-delete")
    @work(exclusive=True)
    async def handle_delete(self) -> None:
        order = self._selected_order()
        if not order:
            self.notify("No order selected.", severity="warning")
            return
        if not await self.app.push_screen_wait(
            DialogModal(
                f"Delete order {order.order_id}? This cannot be undone.",
                primary_text="Delete",
                secondary_text="Cancel",
                tone="error",
            )
        ):
            return
        try:
            await orders.delete_order(order.order_id)
        except CatalogError as e:
            self.notify(str(e), severity="error")
        else:
            self.notify(f"Order {order.order_id} deleted.")
        self._load_orders()

    @on(Button.Pressed, "#btn-export")
    @work(exclusive=True)
    async def handle_export(self) -> None:
        order = self._selected_order()
        if not order:
            self.notify("No order selected.", severity="warning")
            return
        os.makedirs(EXPORT_DIR, exist_ok=True)
        safe_id = "".join(c if c.isalnum() or c in "-_" else "_" for c in order.order_id)
        path = os.path.join(EXPORT_DIR, f"order-{safe_id}.xlsx")
        try:
            await asyncio.to_thread(sheets.write_order_xlsx, order, path)
        except OSError as e:
            self.notify(f"Export failed: {e}", severity="error")
            return
        self.notify(f"Exported to {path}")
