from textual import on, work
from textual.app import ComposeResult
from textual.containers import Horizontal, Vertical
from textual.widgets import Button, Input, Label, Select

from db.models import LANGUAGES
from utils.messages import UserLoginMessage
from utils.state import role_for_password
from views.base_screen import BaseScreen
from views.modal_dialog import QuitDialogModal

LANGUAGE_NAMES = {"es": "Español", "en": "English", "ar": "العربية"}


class LoginScreen(BaseScreen):
    """
    Shared password gate. The password decides the role:
    the admin password opens the admin panel, the user password the catalog.
    """

    def __init__(self):
        super().__init__()
        self.configure(header_sub_title="Sign in", show_sidebar=False)

    def compose(self) -> ComposeResult:
        yield from super().compose()
        with Vertical(id="div-login"):
            yield Label("Password")
            yield Input(placeholder="*********", password=True, id="input-login-pwd")
            yield Label("Language")
            yield Select(
                [(LANGUAGE_NAMES[code], code) for code in LANGUAGES],
                value=self.app.state.language,
                allow_blank=False,
                id="select-language",
            )
            with Horizontal(id="div-login-btns"):
                yield Button("Quit", id="btn-quit")
                yield Button("Enter", id="btn-login", variant="primary")

    def on_mount(self):
        self.query_one("#input-login-pwd").focus()

    @on(Input.Submitted, "#input-login-pwd")
    @on(Button.Pressed, "#btn-login")
    @work(exclusive=True)
    async def handle_login_submit(self) -> None:
        pwd_input = self.query_one("#input-login-pwd", Input)
        pwd = pwd_input.value

        if not pwd:
            self.notify("Password cannot be empty!", severity="error")
            return

        role = role_for_password(pwd)
        if role is None:
            self.notify("Invalid password.", severity="error")
            pwd_input.value = ""
            pwd_input.focus()
            pwd_input.add_class("-invalid")
            return

        self.app.state.role = role
        self.app.state.language = self.query_one("#select-language", Select).value
        if role == "customer":
            await self.app.state.start_session()

        self.notify("Welcome, administrator." if role == "admin" else "Welcome!")
        self.app.post_message(UserLoginMessage())
        self.dismiss()

    @on(Button.Pressed, "#btn-quit")
    def handle_quit_(self) -> None:
        self.app.push_screen(QuitDialogModal())
