"""
history_picker.py - Interactive history file chooser

A minimal Textual app that lists candidate history files and returns the one
the user picks. Enter selects the highlighted file; escape or q cancel, in
which case the app returns ``None``.
"""

from __future__ import annotations

from pathlib import Path

from rich.text import Text as RichText
from textual import on
from textual.app import App, ComposeResult
from textual.binding import Binding
from textual.widgets import Footer, Header, OptionList
from textual.widgets.option_list import Option


def _format_size(num_bytes: int) -> str:
    if num_bytes < 1024:
        return f"{num_bytes} B"
    if num_bytes < 1024 * 1024:
        return f"{num_bytes / 1024:.1f} KiB"
    return f"{num_bytes / (1024 * 1024):.1f} MiB"


def _describe(path: Path) -> RichText:
    try:
        size = _format_size(path.stat().st_size)
    except OSError:
        size = "?"
    return RichText.assemble((path.name, "bold"), "  ", (size, "dim"), "  ", (str(path.parent), "#5C6370"))


class HistoryPickerApp(App[Path | None]):
    """Lists history files; exits with the chosen path or None."""

    CSS = """
    OptionList {
        margin: 1 2;
        border: round $primary;
    }
    OptionList:focus {
        border: round #FF4500;
    }
    """

    TITLE = "Choose a history file"

    BINDINGS = [
        Binding("escape", "cancel", "Cancel", priority=True),
        ("q", "cancel", "Cancel"),
    ]

    def __init__(self, paths: list[Path], *args, **kwargs):
        super().__init__(*args, **kwargs)
        self.paths = list(paths)

    def compose(self) -> ComposeResult:
        yield Header()
        yield OptionList(*(Option(_describe(path), id=str(i)) for i, path in enumerate(self.paths)))
        yield Footer()

    def on_mount(self):
        option_list = self.query_one(OptionList)
        option_list.focus()
        if self.paths:
            option_list.highlighted = 0

    @on(OptionList.OptionSelected)
    def handle_selected(self, event: OptionList.OptionSelected):
        self.exit(self.paths[event.option_index])

    def action_cancel(self):
        self.exit(None)
