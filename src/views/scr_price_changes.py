from typing import List

from textual import on, work
from textual.app import ComposeResult
from textual.containers import Vertical
from textual.events import ScreenResume
from textual.widgets import MarkdownViewer

from db import price_history
from db.models import PriceChange
from utils.messages import CatalogChangedMessage, ModeSwitchedMessage
from utils.pure import format_price, generate_markdown_table
from views.base_screen import BaseScreen


def _direction(change: PriceChange) -> str:
    old, new = change.entry.old_price, change.entry.new_price
    if old is None or new is None:
        return "set" if old is None else "on request"
    return "up" if new > old else "down"


def price_changes_markdown(changes: List[PriceChange]) -> str:
    if not changes:
        return "### Recent Price Changes\n\nNo price changes recorded yet."
    rows = [
        [
            c.entry.changed_at,
            c.special_id or "-",
            c.class_name,
            format_price(c.entry.old_price),
            format_price(c.entry.new_price),
            _direction(c),
        ]
        for c in changes
    ]
    table = generate_markdown_table(
        ["Changed At", "Special ID", "Class", "Old", "New", ""],
        rows,
        ["l", "l", "l", "r", "r", "c"],
    )
    return f"### Recent Price Changes (last {len(changes)})\n\n{table}"


class PriceChangesScreen(BaseScreen):
    """
    Audit feed of the latest price changes across the catalog, newest first.
    """

    def compose(self) -> ComposeResult:
        yield from super().compose()
        with Vertical():
            yield MarkdownViewer(id="md-price-changes", show_table_of_contents=False)

    def on_mount(self) -> None:
        self.handle_reload()

    @on(CatalogChangedMessage)
    @on(ScreenResume)
    @on(ModeSwitchedMessage)
    @work(exclusive=True)
    async def handle_reload(self) -> None:
        changes = await price_history.recent_changes()
        await self.query_one("#md-price-changes", MarkdownViewer).document.update(
            price_changes_markdown(changes)
        )
