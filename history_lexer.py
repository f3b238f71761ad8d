# ============================================================================
# HISTORY COMMAND LEXER
# ============================================================================

from __future__ import annotations

import re
from typing import Iterable

from pygments.lexer import RegexLexer, bygroups, include
from pygments.token import (
    Comment,
    Keyword,
    Name,
    Number,
    Operator,
    Punctuation,
    String,
    Text,
    Token,
    _TokenType,
)
from rich.style import Style
from rich.syntax import SyntaxTheme
from rich.text import Text as RichText

Argument = Token.Name.Argument
Option = Token.Name.Attribute
Expansion = Token.Name.Variable.Magic

MATCH_STYLE = Style(bold=True, underline=True, color="#ffd866")

# BEL, BS, VT, FF, CR -> their Unicode control pictures
CONTROL_GLYPHS = str.maketrans({
    "\a": "␇",
    "\b": "␈",
    "\v": "␋",
    "\f": "␌",
    "\r": "␍",
})


class HistoryLexer(RegexLexer):
    """
    A small lexer for single shell commands as they appear in history files.

    It is line-oriented: a history entry is one command, so there
    is no heredoc or multi-line block handling. Build it with
    ``stripnl=False, ensurenl=False`` (see ``make_lexer``) so the emitted token
    values concatenate back to the exact input and character offsets survive.
    """

    name = "Shell history"
    aliases = ["shell-history", "histsearch"]
    filenames = [".zsh_history", ".bash_history", "fish_history"]

    flags = re.MULTILINE

    tokens = {
        "common": [
            (r"\\.", String.Escape),
            (r"\$\(", String.Interpol, "subshell"),
            (r"`[^`]*`", String.Backtick),
            (r"\$\{[^}]*\}", Expansion),
            (r"\$[a-zA-Z0-9_@*#?$!-]+", Name.Variable),
            (r"'[^']*'?", String.Single),
            (r'"(\\\\|\\"|[^"])*"?', String.Double),
        ],
        "root": [
            (r"\s+", Text),
            (r"#.*$", Comment.Single),
            (r"(&&|\|\||\||;|&)", Operator),
            (r"\d*(>>|<<<|<<|>&|<&|>|<)", Operator),
            (r"[()\[\]{}]", Punctuation),
            (r"([a-zA-Z_][a-zA-Z0-9_]*)(=)", bygroups(Name.Variable, Operator)),
            (
                r"(if|then|else|elif|fi|for|while|until|do|done|case|esac|function|in)(?=[\s;]|$)",
                Keyword.Reserved,
            ),
            (
                r"(cd|echo|export|source|alias|unset|eval|exec|exit|printf|pwd|set|type)(?=[\s;|&]|$)",
                Name.Builtin,
                "arguments",
            ),
            include("common"),
            (r"[^\s;&|()<>'\"`$\\]+", Name.Function, "arguments"),
            (r".", Text),
        ],
        "arguments": [
            (r"(&&|\|\||\||;|&)", Operator, "#pop"),
            (r"\s+", Text),
            (r"#.*$", Comment.Single),
            (r"\d*(>>|>&|<&|>|<)", Operator),
            (r"(--?|\+)[a-zA-Z0-9][\w-]*", Option),
            (r"=", Operator),
            (r"\b\d+\b", Number.Integer),
            include("common"),
            (r"[^\s;&|()<>'\"`$\\=]+", Argument),
            (r"\)", Punctuation, "#pop:2"),
            (r".", Text),
        ],
        "subshell": [
            (r"\)", String.Interpol, "#pop"),
            include("root"),
        ],
    }


class HistoryTheme(SyntaxTheme):
    """Token colours for matched history commands, on the terminal's own background."""

    _RED = "#ff6188"
    _GREEN = "#a9dc76"
    _YELLOW = "#e5c07b"
    _ORANGE = "#fc9867"
    _PURPLE = "#ab9df2"
    _CYAN = "#78dce8"
    _GRAY = "#727072"

    styles = {
        Token: Style(),
        Name.Function: Style(color=_GREEN, bold=True),
        Name.Builtin: Style(color=_CYAN, italic=True),
        Option: Style(color=_ORANGE),
        Argument: Style(color=_PURPLE),
        Expansion: Style(color=_PURPLE),
        Name.Variable: Style(color=_PURPLE),
        Keyword: Style(color=_RED, bold=True),
        Operator: Style(color=_RED),
        Number: Style(color=_CYAN),
        String: Style(color=_YELLOW),
        String.Escape: Style(color=_PURPLE),
        String.Interpol: Style(color=_PURPLE, bold=True),
        Comment: Style(color=_GRAY, italic=True),
    }

    @classmethod
    def get_style_for_token(cls, token_type: _TokenType) -> Style:
        # Fall back through parent token types, e.g. String.Single -> String.
        while token_type not in cls.styles:
            token_type = token_type.parent
        return cls.styles[token_type]

    @classmethod
    def get_background_style(cls) -> Style:
        return Style()


def make_lexer() -> HistoryLexer:
    return HistoryLexer(stripnl=False, ensurenl=False)


def highlight_command(
    command: str,
    spans: Iterable[tuple[int, int]] = (),
    match_style: Style = MATCH_STYLE,
) -> RichText:
    """→ Lexes one logical line into a styled rich Text, emphasising matched spans"""
    # rich drops these characters and pygments rewrites \r; swap in same-length glyphs
    # so span offsets still line up with the original line.
    visible = command.translate(CONTROL_GLYPHS)
    text = RichText(no_wrap=True)
    for token_type, value in make_lexer().get_tokens(visible):
        text.append(value, style=HistoryTheme.get_style_for_token(token_type))

    if text.plain != visible:
        text = RichText(visible, no_wrap=True)

    for start, end in spans:
        text.stylize(match_style, start, end)
    return text
