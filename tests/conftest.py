"""Shared fixtures for histsearch tests."""

from collections.abc import Callable
from pathlib import Path

import pytest
from rich.console import Console

import histsearch


@pytest.fixture(autouse=True)
def wide_console(monkeypatch: pytest.MonkeyPatch) -> None:
    """Keep diagnostics on one line so assertions don't depend on terminal width."""
    monkeypatch.setattr(
        histsearch,
        "console",
        Console(stderr=True, theme=histsearch.CUSTOM_THEME, width=1000),
    )


@pytest.fixture
def write_history(tmp_path: Path) -> Callable[..., Path]:
    """Write lines to a history file under tmp_path and return its path."""

    def _write(lines: list[str], name: str = ".zsh_history") -> Path:
        path = tmp_path / name
        path.write_text("".join(f"{line}\n" for line in lines), encoding="utf-8")
        return path

    return _write


@pytest.fixture
def zsh_home(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> Path:
    """A fake home directory for a zsh user, wired into the process environment."""
    monkeypatch.setenv("HOME", str(tmp_path))
    monkeypatch.setenv("SHELL", "/bin/zsh")
    monkeypatch.delenv("HISTFILE", raising=False)
    return tmp_path
