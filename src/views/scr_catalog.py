from typing import List

from textual import on, work
from textual.app import ComposeResult
from textual.binding import Binding
from textual.containers import Horizontal
from textual.events import ScreenResume
from textual.widgets import Checkbox, DataTable, Input, Label, Select

from db import cart, catalog, settings
from db.errors import CatalogError
from db.models import ClassRecord
from utils.messages import CartChangedMessage, CatalogChangedMessage, SettingsChangedMessage
from utils.pure import format_price, format_weight
from views.base_screen import BaseScreen
from views.modal_class_detail import ClassDetailModal


def cell_value(record: ClassRecord, key: str, language: str = "es") -> str:
    if key == "class_price":
        return format_price(record.class_price)
    if key == "class_weight":
        return format_weight(record.class_weight)
    if key == "class_name":
        return record.display_name(language)
    value = getattr(record, key)
    return "" if value is None else str(value)


class CatalogScreen(BaseScreen):
    """
    Catalog browser for customers: filter, open details, add to cart.
    """

    BINDINGS = [
        Binding("ctrl+a", "add_to_cart", "Add to Cart", show=True),
    ]

    def __init__(self):
        super().__init__()
        self._columns: List[str] = list(settings.COLUMN_KEYS)

    def compose(self) -> ComposeResult:
        yield from super().compose()
        with Horizontal(id="hort-filters"):
            yield Input(id="input-search", placeholder="Search by special id or name...")
            yield Select([], prompt="All categories", id="select-category")
            yield Select([], prompt="All groups", id="select-group")
            yield Checkbox("Orderable only", value=True, id="chk-orderable")
        yield DataTable(id="table-classes")
        yield Label("", id="label-result-cnt")

    def on_mount(self):
        table = self.query_one(DataTable)
        table.cursor_type = "row"
        table.zebra_stripes = True
        self.query_one("#input-search").focus()
        self.reload_filters()

    @on(ScreenResume)
    @on(CatalogChangedMessage)
    @on(SettingsChangedMessage)
    @work(exclusive=True, group="filters")
    async def reload_filters(self) -> None:
        categories = await catalog.list_categories()
        groups = await catalog.list_groups()
        self.query_one("#select-category", Select).set_options((c, c) for c in categories)
        self.query_one("#select-group", Select).set_options((g, g) for g in groups)

        visibility = await settings.get_column_visibility()
        self._columns = [k for k in settings.COLUMN_KEYS if visibility[k]]
        table = self.query_one(DataTable)
        table.clear(columns=True)
        table.add_columns(*(settings.COLUMN_LABELS[k] for k in self._columns))
        self.update_search_result()

    @on(Input.Changed, "#input-search")
    @on(Select.Changed)
    @on(Checkbox.Changed, "#chk-orderable")
    def handle_filter_change(self) -> None:
        self.update_search_result()

    def _select_value(self, selector: str):
        value = self.query_one(selector, Select).value
        return value if isinstance(value, str) else None

    @work(exclusive=True, group="search")
    async def update_search_result(self) -> None:
        records = await catalog.list_classes(
            search=self.query_one("#input-search", Input).value,
            category=self._select_value("#select-category"),
            quality=self._select_value("#select-group"),
            orderable_only=self.query_one("#chk-orderable", Checkbox).value,
        )

        language = self.app.state.language
        table = self.query_one(DataTable)
        table.clear()
        for record in records:
            table.add_row(
                *(cell_value(record, k, language) for k in self._columns),
                key=str(record.id),
            )
        self.query_one("#label-result-cnt", Label).update(f"{len(records)} classes")

    def _cursor_class_id(self) -> int | None:
        table = self.query_one(DataTable)
        if table.row_count == 0:
            return None
        row_key = table.coordinate_to_cell_key(table.cursor_coordinate).row_key
        return int(row_key.value)

    @on(DataTable.RowSelected)
    @work()
    async def handle_row_selected(self, event: DataTable.RowSelected) -> None:
        if await self.app.push_screen_wait(ClassDetailModal(int(event.row_key.value))):
            self.app.post_message(CartChangedMessage())

    @work(exclusive=True, group="cart")
    async def action_add_to_cart(self) -> None:
        class_id = self._cursor_class_id()
        if class_id is None:
            return
        try:
            await cart.add(await self.app.state.start_session(), class_id)
        except CatalogError as e:
            self.notify(str(e), severity="error")
            return
        self.notify("Added to cart.")
        self.app.post_message(CartChangedMessage())
