from __future__ import annotations

from typing import List, Optional

from textual import on, work
from textual.app import ComposeResult
from textual.containers import Horizontal, Vertical
from textual.events import ScreenResume
from textual.widgets import Button, Input, MarkdownViewer, OptionList
from textual.widgets.option_list import Option

from db import catalog, price_history
from db.errors import CatalogError
from db.models import ClassRecord
from utils.messages import CatalogChangedMessage
from utils.pure import format_price, generate_markdown_table
from views.base_screen import BaseScreen
from views.modal_class_detail import class_markdown
from views.modal_class_form import ClassFormModal
from views.modal_dialog import DialogModal


class ManageClassesScreen(BaseScreen):
    """
    Admin can search a class, inspect it with its price history, and
    create, edit or delete classes.
    """

    current_id: Optional[int] = None

    def __init__(self) -> None:
        super().__init__()

    def compose(self) -> ComposeResult:
        yield from super().compose()
        with Vertical():
            yield Input(id="input-search", placeholder="Search for a class...")
            yield OptionList(id="optlist-classes")
            yield MarkdownViewer(id="md-class", show_table_of_contents=False)
            with Horizontal(id="hort-controls"):
                yield Button("New", id="btn-new", variant="success")
                yield Button("Edit", id="btn-edit", variant="primary")
                yield Button("Delete", id="btn-delete", variant="warning")
                yield Button("Delete All", id="btn-delete-all", variant="error")

    def on_mount(self) -> None:
        self.query_one("#input-search", Input).focus()
        self.query_one("#md-class").add_class("hidden")
        self.update_optlist("")

    @on(ScreenResume)
    @on(CatalogChangedMessage)
    def handle_reload(self) -> None:
        self.update_optlist(self.query_one("#input-search", Input).value)
        if self.current_id is not None:
            self.render_class()

    @on(Input.Changed, "#input-search")
    def handle_search(self, message: Input.Changed) -> None:
        self.update_optlist(message.value)

    @on(OptionList.OptionSelected)
    def handle_option_selected(self, message: OptionList.OptionSelected):
        self.current_id = int(message.option.id)
        self.render_class()
        self.query_one("#md-class").remove_class("hidden")

    @work(exclusive=True, group="search")
    async def update_optlist(self, query: str):
        """
        fill option list with search results
        """
        records: List[ClassRecord] = await catalog.list_classes(search=query)

        opt_list = self.query_one("#optlist-classes", OptionList)
        opt_list.clear_options()
        opt_list.add_options(
            [
                Option(f"{r.special_id or '-'}  {r.class_name}  ({r.main_category})", id=str(r.id))
                for r in records
            ]
        )

    @work(exclusive=True, group="detail")
    async def render_class(self) -> None:
        try:
            record = await catalog.get_class(self.current_id)
        except CatalogError:
            self.current_id = None
            self.query_one("#md-class").add_class("hidden")
            return
        history = await price_history.history(record.id)

        md = class_markdown(record)
        md += "\n\n#### Price History\n\n"
        if history:
            md += generate_markdown_table(
                ["Changed At", "Old Price", "New Price"],
                [
                    [e.changed_at, format_price(e.old_price), format_price(e.new_price)]
                    for e in history
                ],
                ["l", "r", "r"],
            )
        else:
            md += "No price changes recorded."
        await self.query_one("#md-class", MarkdownViewer).document.update(md)

    @on(Button.Pressed, "#btn-new")
    @work(exclusive=True, group="write")
    async def handle_new(self) -> None:
        payload = await self.app.push_screen_wait(ClassFormModal())
        if payload is None:
            return
        try:
            record = await catalog.create_class(payload)
        except CatalogError as e:
            self.notify(str(e), severity="error")
            return
        self.current_id = record.id
        self.notify(f"Class {record.special_id} created.")
        self.post_message(CatalogChangedMessage())

    @on(Button.Pressed, "#btn-edit")
    @work(exclusive=True, group="write")
    async def handle_edit(self) -> None:
        if self.current_id is None:
            self.notify("Select a class first.", severity="warning")
            return
        try:
            record = await catalog.get_class(self.current_id)
            payload = await self.app.push_screen_wait(ClassFormModal(record))
            if payload is None:
                return
            await catalog.update_class(record.id, payload)
        except CatalogError as e:
            self.notify(str(e), severity="error")
            return
        self.notify("Class updated.")
        self.post_message(CatalogChangedMessage())

    @on(Button.Pressed, "#btn-delete")
    @work(exclusive=True, group="write")
    async def handle_delete(self) -> None:
        if self.current_id is None:
            self.notify("Select a class first.", severity="warning")
            return
        if not await self.app.push_screen_wait(
            DialogModal(
                "Delete this class and its price history?",
                primary_text="Delete",
                secondary_text="Cancel",
                tone="error",
            )
        ):
            return
        try:
            await catalog.delete_class(self.current_id)
        except CatalogError as e:
            self.notify(str(e), severity="error")
            return
        self.current_id = None
        self.query_one("#md-class").add_class("hidden")
        self.notify("Class deleted.")
        self.post_message(CatalogChangedMessage())

    @on(Button.Pressed, "#btn-delete-all")
    @work(exclusive=True, group="write")
    async def handle_delete_all(self) -> None:
        if not await self.app.push_screen_wait(
            DialogModal(
                "Delete ALL classes? Orders keep their snapshots.",
                primary_text="Delete All",
                secondary_text="Cancel",
                tone="error",
            )
        ):
            return
        try:
            deleted = await catalog.delete_all_classes()
        except CatalogError as e:
            self.notify(str(e), severity="error")
            return
        self.current_id = None
        self.query_one("#md-class").add_class("hidden")
        self.notify(f"{deleted} classes deleted.")
        self.post_message(CatalogChangedMessage())
