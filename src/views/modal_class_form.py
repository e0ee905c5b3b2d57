from typing import Any, Dict, Optional

from textual import events, on, work
from textual.app import ComposeResult
from textual.containers import Horizontal, Vertical, VerticalScroll
from textual.screen import ModalScreen
from textual.validation import Number
from textual.widgets import Button, Input, Label

from db import catalog
from db.models import ClassRecord

# (payload key, label, input type)
FORM_FIELDS = [
    ("special_id", "Special ID", "text"),
    ("main_category", "Main Category", "text"),
    ("quality", "Group", "text"),
    ("class_name", "Class Name", "text"),
    ("class_name_arabic", "Class Name Arabic", "text"),
    ("class_name_english", "Class Name English", "text"),
    ("class_features", "Class Features", "text"),
    ("class_price", "Class Price (blank = on request)", "number"),
    ("class_weight", "Class KG", "number"),
    ("class_quantity", "Class Quantity (0 = not orderable)", "integer"),
    ("class_video", "Class Video (URL or /uploads/...)", "text"),
]


class ClassFormModal(ModalScreen[Optional[Dict[str, Any]]]):
    """
    Create/edit form. Dismisses with the raw payload, or None when cancelled.
    Validation happens in the catalog store.
    """

    def __init__(self, record: Optional[ClassRecord] = None) -> None:
        super().__init__()
        self._record = record

    def compose(self) -> ComposeResult:
        title = "Edit Class" if self._record else "New Class"
        with Vertical(id="vert-class-form"):
            yield Label(title, id="label-form-title")
            with VerticalScroll():
                for key, label, input_type in FORM_FIELDS:
                    yield Label(label)
                    validators = [Number(minimum=0)] if input_type != "text" else []
                    yield Input(
                        id=f"input-{key}",
                        type=input_type,
                        validators=validators,
                        valid_empty=True,
                    )
            with Horizontal():
                yield Button("Cancel", id="btn-cancel")
                if not self._record:
                    yield Button("Generate ID", id="btn-gen-id")
                yield Button("Save", id="btn-save", variant="primary")

    def on_mount(self) -> None:
        if self._record:
            for key, _, _ in FORM_FIELDS:
                value = getattr(self._record, key)
                self.query_one(f"#input-{key}", Input).value = (
                    "" if value is None else str(value)
                )
        self.query_one("#input-special_id").focus()

    def on_key(self, event: events.Key) -> None:
        if event.key == "escape":
            self.dismiss(None)

    @on(Button.Pressed, "#btn-gen-id")
    @work(exclusive=True)
    async def handle_generate_id(self) -> None:
        id_input = self.query_one("#input-special_id", Input)
        prefix = "".join(ch for ch in id_input.value if not ch.isdigit())
        id_input.value = await catalog.generate_special_id(prefix or None)

    @on(Button.Pressed, "#btn-save")
    def handle_save(self) -> None:
        payload = {
            key: self.query_one(f"#input-{key}", Input).value for key, _, _ in FORM_FIELDS
        }
        self.dismiss(payload)

    @on(Button.Pressed, "#btn-cancel")
    def handle_cancel(self) -> None:
        self.dismiss(None)
