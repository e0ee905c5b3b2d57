import asyncio
import os

from textual import on, work
from textual.app import ComposeResult
from textual.containers import Horizontal, Vertical
from textual.events import ScreenResume
from textual.widgets import (
    Button,
    Checkbox,
    Input,
    Label,
    MarkdownViewer,
    Select,
    Switch,
    TabbedContent,
    TabPane,
)

from db import bulk_sync, catalog, settings
from db.errors import CatalogError
from db.models import SyncReport
from utils import sheets
from utils.messages import CatalogChangedMessage, SettingsChangedMessage
from utils.pure import generate_markdown_table
from views.base_screen import BaseScreen
from views.modal_dialog import DialogModal

EXPORT_DIR = os.getenv("CLASSDESK_EXPORT_DIR", "exports")


def sync_report_markdown(title: str, report: SyncReport) -> str:
    md = (
        f"### {title}\n\n"
        f"- Processed: {report.processed_count}\n"
        f"- Skipped: {report.skipped_count}\n"
    )
    if report.skipped:
        md += "\n" + generate_markdown_table(
            ["Row", "Reason"],
            [[s.index, s.reason] for s in report.skipped],
            ["r", "l"],
        )
    return md


class BulkToolsScreen(BaseScreen):
    """
    Admin bulk operations: xlsx import, Google Sheets sync, find/replace,
    column visibility and catalog export.
    """

    def compose(self) -> ComposeResult:
        yield from super().compose()
        with Vertical():
            with TabbedContent(id="tabs-bulk"):
                with TabPane("Import", id="tab-import"):
                    yield Label("Excel file (.xlsx)")
                    yield Input(placeholder="path/to/classes.xlsx", id="input-import-path")
                    with Horizontal(classes="hort-row"):
                        yield Checkbox("Update existing only", id="chk-update-only")
                        yield Button("Import", id="btn-import", variant="primary")

                with TabPane("Google Sheets", id="tab-sheets"):
                    yield Label("Sheet URL")
                    yield Input(
                        placeholder="https://docs.google.com/spreadsheets/d/...",
                        id="input-sheet-url",
                    )
                    with Horizontal(classes="hort-row"):
                        yield Label("Auto sync")
                        yield Switch(id="switch-autosync")
                        yield Button("Save", id="btn-save-sheets")
                        yield Button("Sync Now", id="btn-sync-now", variant="primary")

                with TabPane("Replace", id="tab-replace"):
                    yield Select(
                        [(settings.COLUMN_LABELS[f], f) for f in catalog.BULK_REPLACE_FIELDS],
                        value=catalog.BULK_REPLACE_FIELDS[0],
                        allow_blank=False,
                        id="select-replace-field",
                    )
                    yield Input(placeholder="Find", id="input-find")
                    yield Input(placeholder="Replace with", id="input-replace")
                    yield Button("Replace All", id="btn-replace", variant="warning")

                with TabPane("Columns", id="tab-columns"):
                    for key in settings.COLUMN_KEYS:
                        yield Checkbox(
                            settings.COLUMN_LABELS[key], value=True, id=f"chk-col-{key}"
                        )
                    yield Button("Save Columns", id="btn-save-columns", variant="primary")

                with TabPane("Export", id="tab-export"):
                    yield Label("Target file")
                    yield Input(
                        value=os.path.join(EXPORT_DIR, "classes.xlsx"),
                        id="input-export-path",
                    )
                    yield Button("Export Catalog", id="btn-export", variant="primary")
            yield MarkdownViewer(
                "### Results appear here.",
                id="md-bulk-report",
                show_table_of_contents=False,
            )

    def on_mount(self) -> None:
        self.load_settings()

    @on(ScreenResume)
    @on(SettingsChangedMessage)
    @work(exclusive=True, group="settings")
    async def load_settings(self) -> None:
        sync = await settings.get_sheets_sync()
        self.query_one("#input-sheet-url", Input).value = sync["url"]
        self.query_one("#switch-autosync", Switch).value = sync["auto_sync"]
        for key, visible in (await settings.get_column_visibility()).items():
            self.query_one(f"#chk-col-{key}", Checkbox).value = visible

    async def _show(self, md: str) -> None:
        await self.query_one("#md-bulk-report", MarkdownViewer).document.update(md)

    @on(Button.Pressed, "#btn-import")
    @work(exclusive=True, group="bulk")
    async def handle_import(self) -> None:
        path = self.query_one("#input-import-path", Input).value.strip()
        if not path:
            self.notify("Excel file is required.", severity="error")
            return
        update_only = self.query_one("#chk-update-only", Checkbox).value
        try:
            rows = await asyncio.to_thread(sheets.read_xlsx_rows, path)
        except CatalogError as e:
            self.notify(str(e), severity="error")
            return

        report = await bulk_sync.reconcile(rows, update_only=update_only)
        await self._show(sync_report_markdown(f"Import of {os.path.basename(path)}", report))
        self.notify(f"Imported: {report.processed_count} processed, {report.skipped_count} skipped.")
        self.post_message(CatalogChangedMessage())

    @on(Button.Pressed, "#btn-save-sheets")
    @work(exclusive=True, group="settings")
    async def handle_save_sheets(self) -> None:
        url = self.query_one("#input-sheet-url", Input).value
        auto_sync = self.query_one("#switch-autosync", Switch).value
        try:
            saved = await settings.set_sheets_sync(url, auto_sync)
        except CatalogError as e:
            self.notify(str(e), severity="error")
            return
        self.app.apply_autosync(saved)
        self.notify("Sheet settings saved.")

    @on(Button.Pressed, "#btn-sync-now")
    @work(exclusive=True, group="bulk")
    async def handle_sync_now(self) -> None:
        try:
            report = await self.app.autosync.trigger()
        except CatalogError as e:
            self.notify(str(e), severity="error")
            return
        if report is None:
            self.notify("A sync is already running.", severity="warning")
            return
        await self._show(sync_report_markdown("Google Sheets sync", report))
        self.post_message(CatalogChangedMessage())

    @on(Button.Pressed, "#btn-replace")
    @work(exclusive=True, group="bulk")
    async def handle_replace(self) -> None:
        field = self.query_one("#select-replace-field", Select).value
        find = self.query_one("#input-find", Input).value
        replace = self.query_one("#input-replace", Input).value
        if not find:
            self.notify("Search text is required.", severity="error")
            return
        if not await self.app.push_screen_wait(
            DialogModal(
                f"Replace {find!r} with {replace!r} in {settings.COLUMN_LABELS[field]} "
                f"of every class?",
                primary_text="Replace",
                secondary_text="Cancel",
                tone="warning",
            )
        ):
            return
        try:
            touched = await catalog.bulk_replace(field, find, replace)
        except CatalogError as e:
            self.notify(str(e), severity="error")
            return
        await self._show(f"### Replace\n\n{touched} classes updated.")
        self.post_message(CatalogChangedMessage())

    @on(Button.Pressed, "#btn-save-columns")
    @work(exclusive=True, group="settings")
    async def handle_save_columns(self) -> None:
        columns = {
            key: self.query_one(f"#chk-col-{key}", Checkbox).value
            for key in settings.COLUMN_KEYS
        }
        try:
            await settings.set_column_visibility(columns)
        except CatalogError as e:
            self.notify(str(e), severity="error")
            return
        self.notify("Column visibility saved.")
        self.post_message(SettingsChangedMessage())

    @on(Button.Pressed, "#btn-export")
    @work(exclusive=True, group="bulk")
    async def handle_export(self) -> None:
        path = self.query_one("#input-export-path", Input).value.strip()
        if not path:
            self.notify("Target file is required.", severity="error")
            return
        records = await catalog.list_classes()
        columns = await settings.get_column_visibility()
        try:
            if os.path.dirname(path):
                os.makedirs(os.path.dirname(path), exist_ok=True)
            count = await asyncio.to_thread(sheets.write_classes_xlsx, records, path, columns)
        except OSError as e:
            self.notify(f"Export failed: {e}", severity="error")
            return
        self.notify(f"Exported {count} classes to {path}")
