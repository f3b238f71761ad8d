#!/usr/bin/env python3
"""
histsearch.py - Shell history search utility

**How a search runs**

1.  **Configuration:** The command line is parsed once, at the boundary. The shell, home
    directory and history file are resolved into a frozen `RunConfig`, which carries an
    immutable `Query` (terms + `MatchMode`). Nothing downstream re-reads `sys.argv` or the
    environment.
2.  **Reading:** `read_history_lines` returns the file's lines. A missing or unreadable
    file yields no lines. A line that is not valid UTF-8 is skipped.
3.  **Normalization:** `normalize_line` strips the shell's framing (e.g. the zsh
    `: <epoch>:<duration>;` prefix) and recovers the logical command.
4.  **Indexing:** `LineIndex.build` deduplicates logical lines. It keeps every 1-based
    position each one occurred at, in file order.
5.  **Matching:** `execute_query` runs each distinct line through the strategy selected by
    `MatchMode`. The strategy returns the matched spans, which the presentation layer
    highlights.

**Matching disciplines**

*   `UNORDERED` (default): every term must occur somewhere. A character consumed by one
    term is unavailable to the next, so `["a", "a"]` needs two separate `a`s.
*   `ORDERED`: terms must occur left to right, each strictly after the previous one ends.

An empty term list matches every line. An empty-string term never matches and is
rejected on the command line.

**Adding a shell dialect**

Add a member to `ShellDialect`, map the shell's executable name to it in
`SHELL_DIALECTS`, and teach `normalize_line` how to unwrap its lines. The index,
matchers and presentation stay untouched.
"""

from __future__ import annotations

import argparse
import os
import re
import subprocess
import sys
from collections import defaultdict
from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from typing import Callable, Iterable, Iterator, Mapping, Sequence

from rich.console import Console
from rich.markup import escape
from rich.prompt import Prompt
from rich.table import Table
from rich.text import Text as RichText
from rich.theme import Theme

from history_lexer import highlight_command
from history_picker import HistoryPickerApp

# ============================================================================
# CONFIGURATION & CONSTANTS
# ============================================================================

CUSTOM_THEME = Theme({
    "info": "#61AFEF",
    "success": "#98C379",
    "warning": "#E5C07B",
    "error": "#E06C75",
    "linenumber": "#5C6370",
    "separator": "#4B5263",
    "label": "bold #98C379",
})


class ResultConsole(Console):
    """Console for results on stdout; a closed pipe surfaces as BrokenPipeError."""

    def on_broken_pipe(self) -> None:
        # rich's default exits with status 1; the reader leaving early is not a failure.
        self.quiet = True
        try:
            devnull = os.open(os.devnull, os.O_WRONLY)
            os.dup2(devnull, sys.stdout.fileno())
            os.close(devnull)
        except (OSError, ValueError):
            # stdout has no descriptor (e.g. captured in-process); nothing to redirect
            pass
        raise BrokenPipeError


# Diagnostics go to stderr so stdout carries nothing but results.
console = Console(stderr=True, theme=CUSTOM_THEME)
out_console = ResultConsole(theme=CUSTOM_THEME, soft_wrap=True, highlight=False)

HOME_ENV = "HOME"
SHELL_ENV = "SHELL"
HISTFILE_ENV = "HISTFILE"

# A home-directory file is offered by --history when its name contains this marker.
HISTORY_NAME_MARKER = "history"
FISH_HISTORY_PATH = Path(".local") / "share" / "fish" / "fish_history"

BASH_TIMESTAMP_RE = re.compile(r"^#\d+\s*$")
FISH_COMMAND_RE = re.compile(r"^- cmd: ?(.*)$")
FISH_ESCAPE_RE = re.compile(r"\\([\\n])")


# ============================================================================
# ERRORS
# ============================================================================


class HistSearchError(Exception):
    """Base class for histsearch failures."""


class EnvironmentLookupError(HistSearchError):
    """A required environment variable (HOME, SHELL) is missing."""


class ShellDetectionError(HistSearchError):
    """The user's shell could not be determined."""


class HistoryReadError(HistSearchError):
    """A history file could not be opened."""


class SelectionCancelled(HistSearchError):
    """No history file was chosen; the search cannot proceed."""


class InvalidQueryError(HistSearchError, ValueError):
    """A query was built from unusable terms."""


# ============================================================================
# DATA STRUCTURES
# ============================================================================


class ShellDialect(Enum):
    """How a shell frames commands in its history file."""

    GENERIC = "generic"
    ZSH_EXTENDED = "zsh"
    BASH_TIMESTAMPED = "bash"
    FISH = "fish"


SHELL_DIALECTS: dict[str, ShellDialect] = {
    "zsh": ShellDialect.ZSH_EXTENDED,
    "bash": ShellDialect.BASH_TIMESTAMPED,
    "fish": ShellDialect.FISH,
}


class MatchMode(Enum):
    UNORDERED = "unordered"
    ORDERED = "ordered"


Span = tuple[int, int]


@dataclass(frozen=True)
class Query:
    """Search terms plus the discipline used to match them. Immutable."""

    terms: tuple[str, ...] = ()
    mode: MatchMode = MatchMode.UNORDERED

    def __post_init__(self):
        object.__setattr__(self, "terms", tuple(self.terms))
        if any(term == "" for term in self.terms):
            raise InvalidQueryError("Search terms must not be empty strings")


@dataclass(frozen=True)
class Match:
    """One matching logical line, where it occurred, and where each term was found."""

    line: str
    positions: tuple[int, ...]
    spans: tuple[Span, ...] = ()


@dataclass
class MatchResult:
    query: Query
    matches: list[Match] = field(default_factory=list)

    def __len__(self) -> int:
        return len(self.matches)

    def __iter__(self) -> Iterator[Match]:
        return iter(self.matches)

    @property
    def lines(self) -> list[str]:
        return [match.line for match in self.matches]

    @property
    def occurrence_count(self) -> int:
        return sum(len(match.positions) for match in self.matches)

    def as_dict(self) -> dict[str, list[int]]:
        return {match.line: list(match.positions) for match in self.matches}

    def occurrences(self) -> list[tuple[int, Match]]:
        """→ Every (position, match) pair, in file order"""
        return sorted(
            ((position, match) for match in self.matches for position in match.positions),
            key=lambda pair: pair[0],
        )


class LineIndex:
    """
    Deduplicated view of a history file: logical line -> 1-based positions.

    Keys iterate in first-occurrence order and each position list is ascending.
    The index is built in one pass and never modified afterwards, so a single
    index can serve any number of queries.
    """

    def __init__(self, entries: dict[str, list[int]], line_count: int):
        self._entries = entries
        self.line_count = line_count

    @classmethod
    def build(cls, lines: Iterable[str]) -> LineIndex:
        entries: dict[str, list[int]] = defaultdict(list)
        line_count = 0
        for line_count, line in enumerate(lines, 1):
            entries[line].append(line_count)
        return cls(dict(entries), line_count)

    def positions(self, line: str) -> tuple[int, ...]:
        return tuple(self._entries[line])

    def items(self) -> Iterator[tuple[str, tuple[int, ...]]]:
        for line, positions in self._entries.items():
            yield line, tuple(positions)

    def __contains__(self, line: object) -> bool:
        return line in self._entries

    def __iter__(self) -> Iterator[str]:
        return iter(self._entries)

    def __len__(self) -> int:
        return len(self._entries)


@dataclass(frozen=True)
class RunConfig:
    """Everything a run needs, resolved once from the command line and environment."""

    query: Query
    dialect: ShellDialect = ShellDialect.GENERIC
    history_path: Path | None = None
    dedupe: bool = False
    shell: str | None = None
    home: Path | None = None
    source: str = "default"


# ============================================================================
# NORMALIZATION
# ============================================================================


def normalize_line(raw: str, dialect: ShellDialect) -> str:
    """→ Recovers the logical command from a raw history line"""
    if dialect is ShellDialect.ZSH_EXTENDED:
        # ": <epoch>:<duration>;<command>" keeps the text after the last ';'
        if ";" not in raw:
            return raw
        return raw.rsplit(";", 1)[1]
    if dialect is ShellDialect.BASH_TIMESTAMPED:
        return "" if BASH_TIMESTAMP_RE.match(raw) else raw
    if dialect is ShellDialect.FISH:
        if match := FISH_COMMAND_RE.match(raw):
            # fish writes embedded newlines and backslashes as \n and \\
            return FISH_ESCAPE_RE.sub(lambda m: "\n" if m.group(1) == "n" else "\\", match.group(1))
        # when:/paths: records belonging to the previous command
        return "" if raw.startswith(" ") else raw
    return raw


def normalize_lines(lines: Iterable[str], dialect: ShellDialect) -> Iterator[str]:
    for raw in lines:
        yield normalize_line(raw, dialect)


def shell_basename(shell_path: str) -> str:
    """→ 'zsh' for '/bin/zsh', 'zsh' or a login shell's '-zsh'"""
    return shell_path.rstrip("/").rsplit("/", 1)[-1].lstrip("-")


def detect_dialect(shell_name: str | None) -> ShellDialect:
    """→ Maps a shell name or executable path (/bin/zsh, zsh) to its dialect"""
    if not shell_name:
        return ShellDialect.GENERIC
    return SHELL_DIALECTS.get(shell_basename(shell_name), ShellDialect.GENERIC)


def dialect_for_history_file(path: Path | None) -> ShellDialect | None:
    """→ The dialect a file's name announces (.bash_history, fish_history, ...), if any"""
    if path is None:
        return None
    name = path.name.lower()
    for shell, dialect in SHELL_DIALECTS.items():
        if shell in name:
            return dialect
    return None


# ============================================================================
# MATCHING STRATEGIES
# ============================================================================

SpanStrategy = Callable[[str, Sequence[str]], list[Span] | None]


def find_unordered_spans(candidate: str, terms: Sequence[str]) -> list[Span] | None:
    """
    Unordered strategy: each term must occur somewhere in `candidate`.

    Terms are placed in the order given, each at its leftmost occurrence that
    does not reuse a character already claimed by an earlier term. Returns one
    (start, end) span per term, or None if some term has no free occurrence.
    """
    used = bytearray(len(candidate))
    spans: list[Span] = []
    for term in terms:
        if not term:
            return None
        start = candidate.find(term)
        while start != -1 and any(used[start : start + len(term)]):
            start = candidate.find(term, start + 1)
        if start == -1:
            return None
        end = start + len(term)
        used[start:end] = b"\x01" * len(term)
        spans.append((start, end))
    return spans


def find_ordered_spans(candidate: str, terms: Sequence[str]) -> list[Span] | None:
    """
    Ordered strategy: terms must occur in sequence, each after the previous one ends.

    Returns one (start, end) span per term, or None.
    """
    spans: list[Span] = []
    cursor = 0
    for term in terms:
        if not term:
            return None
        start = candidate.find(term, cursor)
        if start == -1:
            return None
        cursor = start + len(term)
        spans.append((start, cursor))
    return spans


def unordered_match(candidate: str, terms: Sequence[str]) -> bool:
    return find_unordered_spans(candidate, terms) is not None


def ordered_match(candidate: str, terms: Sequence[str]) -> bool:
    return find_ordered_spans(candidate, terms) is not None


MATCH_STRATEGIES: dict[MatchMode, SpanStrategy] = {
    MatchMode.UNORDERED: find_unordered_spans,
    MatchMode.ORDERED: find_ordered_spans,
}


def find_match_spans(candidate: str, terms: Sequence[str], mode: MatchMode) -> list[Span] | None:
    return MATCH_STRATEGIES[mode](candidate, terms)


# ============================================================================
# QUERY EXECUTION
# ============================================================================


def execute_query(
    index: LineIndex,
    query: Query,
    on_match: Callable[[Match], None] | None = None,
) -> MatchResult:
    """→ Runs every distinct line of `index` through the query's strategy"""
    strategy = MATCH_STRATEGIES[query.mode]
    result = MatchResult(query=query)
    for line, positions in index.items():
        spans = strategy(line, query.terms)
        if spans is None:
            continue
        match = Match(line=line, positions=positions, spans=tuple(spans))
        result.matches.append(match)
        if on_match is not None:
            on_match(match)
    return result


# ============================================================================
# ENVIRONMENT & FILE I/O
# ============================================================================


def _console_print(string="", *args, **kwargs) -> None:
    """→ Safe console printing with fallback"""
    try:
        console.print(string, *args, **kwargs)
    except Exception:
        kwargs_clean = {k: v for k, v in kwargs.items() if k in ["sep", "end", "flush"]}
        print(string, *args, file=sys.stderr, **kwargs_clean)


def get_home(environ: Mapping[str, str]) -> Path:
    home = environ.get(HOME_ENV, "")
    if not home:
        raise EnvironmentLookupError(f"${HOME_ENV} is not set")
    return Path(home)


def detect_shell(environ: Mapping[str, str]) -> str:
    """→ Returns the short name of the user's shell, e.g. 'zsh' for /bin/zsh"""
    shell_path = environ.get(SHELL_ENV, "").strip()
    if not shell_path:
        try:
            completed = subprocess.run(
                ["sh", "-c", "echo $0"],
                capture_output=True,
                check=True,
                encoding="utf-8",
                errors="replace",
                timeout=5,
            )
        except (OSError, subprocess.SubprocessError) as e:
            raise ShellDetectionError(f"${SHELL_ENV} is not set and probing the shell failed: {e}") from e
        shell_path = completed.stdout.strip()

    shell_name = shell_basename(shell_path)
    if not shell_name:
        raise ShellDetectionError(f"Could not determine a shell name from {shell_path!r}")
    return shell_name


def default_history_path(home: Path | None, shell: str | None, environ: Mapping[str, str]) -> Path | None:
    """→ $HISTFILE if exported, else the shell's conventional history file under home"""
    if histfile := environ.get(HISTFILE_ENV, "").strip():
        return Path(histfile).expanduser()
    if home is None or not shell:
        return None
    if shell == "fish":
        return home / FISH_HISTORY_PATH
    return home / f".{shell}_history"


def discover_history_files(home: Path) -> list[Path]:
    """→ Regular files directly under `home` whose name mentions history"""
    try:
        candidates = [p for p in home.iterdir() if HISTORY_NAME_MARKER in p.name and p.is_file()]
    except OSError as e:
        _console_print(f"[error]Error listing '{escape(str(home))}': {escape(str(e))}[/error]")
        return []
    return sorted(candidates, key=lambda p: p.name)


def _decode_history_file(file_path: Path) -> tuple[list[str], list[int]]:
    """→ File I/O: Returns the decodable lines and the line numbers that were not UTF-8"""
    lines: list[str] = []
    skipped: list[int] = []
    try:
        with file_path.open("rb") as f:
            for line_num, raw in enumerate(f, 1):
                try:
                    lines.append(raw.rstrip(b"\r\n").decode("utf-8"))
                except UnicodeDecodeError:
                    skipped.append(line_num)
    except FileNotFoundError as e:
        raise HistoryReadError(f"Error: History file not found at '{file_path}'") from e
    except OSError as e:
        raise HistoryReadError(f"Error reading file '{file_path}': {e}") from e
    return lines, skipped


def read_history_lines(file_path: Path) -> list[str]:
    """→ File I/O: Reads the history file's lines; an unreadable file yields none"""
    try:
        lines, skipped = _decode_history_file(file_path)
    except HistoryReadError as e:
        _console_print(f"[error]{escape(str(e))}[/error]")
        return []

    if skipped:
        first = ", ".join(str(n) for n in skipped[:5])
        more = ", ..." if len(skipped) > 5 else ""
        _console_print(
            f"[warning]Skipped {len(skipped)} undecodable line(s) in '{escape(str(file_path))}' "
            f"(line {first}{more})[/warning]"
        )
    return lines


def choose_history_file(paths: list[Path]) -> Path | None:
    """→ UI: Lets the user pick one of `paths`; None when they back out"""
    app = HistoryPickerApp(paths)
    choice = app.run()
    if choice is not None:
        _console_print(f"Selected [success]{escape(str(choice))}[/success]")
    return choice


def prompt_file_path() -> Path | None:
    """→ UI: Asks for a file path on the terminal"""
    answer = Prompt.ask("Please enter a valid file path", console=console, default="", show_default=False)
    answer = answer.strip()
    return Path(answer).expanduser() if answer else None


def resolve_history_path(
    args: argparse.Namespace,
    home: Path | None,
    shell: str | None,
    environ: Mapping[str, str],
) -> tuple[Path | None, str]:
    """→ Decides which file to search and how it was chosen; raises SelectionCancelled"""
    if args.history:
        if home is None:
            raise SelectionCancelled("No home directory to list history files from")
        paths = discover_history_files(home)
        if not paths:
            raise SelectionCancelled(f"No history files found in {home}")
        choice = choose_history_file(paths)
        if choice is None:
            raise SelectionCancelled("No history file was selected")
        return choice, "picker"

    if args.file is not None:
        path = Path(args.file).expanduser() if args.file else prompt_file_path()
        if path is None:
            raise SelectionCancelled("No file path was given")
        return path, "file"

    return default_history_path(home, shell, environ), "default"


def resolve_config(args: argparse.Namespace, environ: Mapping[str, str] | None = None) -> RunConfig:
    """→ Turns parsed arguments and the environment into an immutable RunConfig"""
    environ = os.environ if environ is None else environ

    try:
        home = get_home(environ)
    except EnvironmentLookupError as e:
        try:
            home = Path.home()
        except (RuntimeError, KeyError):
            home = None
        fallback = f"using {home}" if home else "no default history file"
        _console_print(f"[warning]{escape(str(e))}; {fallback}[/warning]")

    try:
        shell = detect_shell(environ)
    except ShellDetectionError as e:
        _console_print(f"[warning]{escape(str(e))}; using generic history parsing[/warning]")
        shell = None

    history_path, source = resolve_history_path(args, home, shell, environ)
    if args.dialect:
        dialect = ShellDialect(args.dialect)
    else:
        dialect = dialect_for_history_file(history_path) or detect_dialect(shell)
    mode = MatchMode.ORDERED if args.ordered else MatchMode.UNORDERED

    return RunConfig(
        query=Query(tuple(args.terms), mode),
        dialect=dialect,
        history_path=history_path,
        dedupe=args.dedupe,
        shell=shell,
        home=home,
        source=source,
    )


# ============================================================================
# PRESENTATION
# ============================================================================


def render_match(match: Match) -> RichText:
    """→ `[1, 3]:: ls -la` with the matched terms emphasised"""
    return RichText.assemble(
        (f"{list(match.positions)}", "linenumber"),
        (":: ", "separator"),
        highlight_command(match.line, match.spans),
    )


def render_occurrence(position: int, match: Match, width: int) -> RichText:
    return RichText.assemble(
        (f"{position:>{width}}", "linenumber"),
        (": ", "separator"),
        highlight_command(match.line, match.spans),
    )


def render_summary(index: LineIndex, result: MatchResult) -> Table:
    summary = Table.grid(padding=(0, 2))
    summary.add_column(style="label")
    summary.add_column(justify="right")
    summary.add_row("Lines read:", f"{index.line_count:,}")
    summary.add_row("Distinct lines:", f"{len(index):,}")
    summary.add_row("Matching lines:", f"{len(result):,}")
    summary.add_row("Occurrences:", f"{result.occurrence_count:,}")
    return summary


def run(config: RunConfig) -> int:
    """→ Main: reads, normalizes, indexes, queries and prints"""
    if config.history_path is None:
        _console_print("[warning]No history file could be determined; nothing to search[/warning]")
        raw_lines: list[str] = []
    else:
        raw_lines = read_history_lines(config.history_path)

    index = LineIndex.build(normalize_lines(raw_lines, config.dialect))

    terms = " ".join(repr(term) for term in config.query.terms)
    where = escape(str(config.history_path)) if config.history_path else "nothing"
    _console_print(
        f"Searching for [info]{escape(terms)}[/info] in [info]{where}[/info] "
        f"[linenumber]({config.query.mode.value}, {config.dialect.value})[/linenumber]"
    )

    width = len(str(index.line_count))
    try:
        if config.dedupe:
            result = execute_query(index, config.query, on_match=lambda m: out_console.print(render_match(m)))
        else:
            result = execute_query(index, config.query)
            for position, match in result.occurrences():
                out_console.print(render_occurrence(position, match, width))
    except BrokenPipeError:
        # Downstream consumer closed early (e.g., piped to `head`).
        return 0

    _console_print()
    _console_print(render_summary(index, result))
    return 0


# ============================================================================
# COMMAND LINE
# ============================================================================


def _search_term(value: str) -> str:
    if value == "":
        raise argparse.ArgumentTypeError("search terms must not be empty")
    return value


def build_parser() -> argparse.ArgumentParser:
    ap = argparse.ArgumentParser(
        prog="histsearch",
        description="Search a shell history file for lines containing all of the given terms",
        formatter_class=argparse.RawDescriptionHelpFormatter,
    )
    ap.add_argument(
        "terms",
        nargs="+",
        type=_search_term,
        metavar="TERM",
        help="Sequence of search terms used to select matching lines",
    )
    source = ap.add_mutually_exclusive_group()
    source.add_argument(
        "--history",
        action="store_true",
        help="Select a history file to search from the home folder",
    )
    source.add_argument(
        "-f",
        "--file",
        nargs="?",
        const="",
        metavar="PATH",
        help="Search PATH; prompts for a path when given without one (put terms first or use --)",
    )
    ap.add_argument(
        "-o",
        "--ordered",
        action="store_true",
        help="Terms must appear in the given order",
    )
    ap.add_argument(
        "-d",
        "--dedupe",
        action="store_true",
        help="Print each distinct line once, with all of its line numbers",
    )
    ap.add_argument(
        "--dialect",
        choices=[d.value for d in ShellDialect],
        help="History format to parse (default: derived from $SHELL)",
    )
    return ap


def main(argv: list[str] | None = None) -> int:
    args = build_parser().parse_args(argv)

    try:
        config = resolve_config(args)
    except SelectionCancelled as e:
        _console_print(f"[warning]{escape(str(e))}. Nothing searched.[/warning]")
        return 1

    return run(config)


if __name__ == "__main__":
    sys.exit(main())
