from typing import Any, Dict, List, Mapping

from textual import on, work
from textual.app import App, ComposeResult
from textual.binding import Binding
from textual.widgets import LoadingIndicator

from db import settings
from db.models import SyncReport
from utils import sheets
from utils.autosync import AutoSync
from utils.logger import get_logger
from utils.messages import (
    CatalogChangedMessage,
    ModeSwitchedMessage,
    QuitRequestedMessage,
    UserLogoutMessage,
)
from utils.state import GlobalState
from views.scr_bulk_tools import BulkToolsScreen
from views.scr_cart import CartScreen
from views.scr_catalog import CatalogScreen
from views.scr_login import LoginScreen
from views.scr_manage_classes import ManageClassesScreen
from views.scr_orders import OrdersScreen
from views.scr_price_changes import PriceChangesScreen

_logger = get_logger(__name__)


async def load_sheet_rows() -> List[Mapping[str, Any]]:
    """Rows of the configured Google Sheet."""
    sync = await settings.get_sheets_sync()
    return await sheets.fetch_sheet_rows(sync["url"])


class ClassDeskApp(App):
    BINDINGS = [
        Binding("ctrl+t", "switch_light", "Toggle Theme", show=True),
    ]

    MODES = {
        "catalog": CatalogScreen,
        "cart": CartScreen,
        "orders": OrdersScreen,
        "classes": ManageClassesScreen,
        "price_changes": PriceChangesScreen,
        "bulk": BulkToolsScreen,
    }

    ADMIN_MODES = {
        "orders": "Orders",
        "classes": "Manage Classes",
        "price_changes": "Price Changes",
        "bulk": "Bulk Tools",
    }
    CUSTOMER_MODES = {
        "catalog": "Catalog",
        "cart": "Cart",
    }

    CSS_PATH = "styles/app.tcss"

    state: GlobalState
    autosync: AutoSync

    def __init__(self):
        super().__init__()
        self.state = GlobalState()
        self.autosync = AutoSync(load_sheet_rows, on_report=self.handle_sync_report)

    def compose(self) -> ComposeResult:
        yield LoadingIndicator()

    async def on_mount(self) -> None:
        self.main_flow()

    def action_switch_light(self):
        if self.theme == "textual-dark":
            self.theme = "solarized-light"
        else:
            self.theme = "textual-dark"
        self.notify(f"Theme changed to {self.theme}")

    def apply_autosync(self, sync: Dict[str, Any]) -> None:
        """Start or stop the periodic sheet sync to match the saved settings."""
        if sync.get("auto_sync") and sync.get("url"):
            self.autosync.start()
        else:
            self.stop_autosync()

    @work
    async def stop_autosync(self) -> None:
        await self.autosync.stop()

    def handle_sync_report(self, report: SyncReport) -> None:
        self.notify(
            f"Sheet sync: {report.processed_count} processed, "
            f"{report.skipped_count} skipped."
        )
        self.screen.post_message(CatalogChangedMessage())

    @on(UserLogoutMessage)
    @work
    async def handle_user_logout(self):
        await self.autosync.stop()
        await self.state.end_session()
        self.notify("Logout successful.")
        self.main_flow()

    @on(QuitRequestedMessage)
    @work
    async def handle_quit(self):
        await self.autosync.stop()
        await self.state.end_session()
        self.exit()

    @work
    async def main_flow(self):
        await self.push_screen_wait(LoginScreen())
        if self.state.role == "customer":
            self.post_message(ModeSwitchedMessage(self.current_mode, "catalog"))
            await self.switch_mode("catalog")
        elif self.state.role == "admin":
            self.apply_autosync(await settings.get_sheets_sync())
            self.post_message(ModeSwitchedMessage(self.current_mode, "orders"))
            await self.switch_mode("orders")
        _logger.info(f"Signed in as {self.state.role}")


if __name__ == "__main__":
    app = ClassDeskApp()
    app.run()
