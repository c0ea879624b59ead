"""Terminal output for the ``pagecache`` administration commands.

Reports (cache statistics, the effective configuration) are written to
stdout so that cron jobs and monitoring scripts can parse them. Everything
else, from "Cache cleared" confirmations to errors and debug traces, goes
to stderr.

Three report renderings exist: JSON for machines, tab-separated
``key<TAB>value`` lines for shell pipelines, and Rich tables when a person
is watching the terminal. ``NO_COLOR``, ``TERM=dumb`` and ``--no-color``
all force the uncoloured variants.

The root callback in :mod:`pagecache.app` builds one :class:`OutputManager`
per invocation and installs it with :func:`set_output`; commands then use
the module-level shortcuts (:func:`format_response`, :func:`success`, ...).
"""

from __future__ import annotations

import json
import os
import sys
from enum import Enum
from typing import Any, Optional

from rich.console import Console
from rich.markup import escape
from rich.syntax import Syntax
from rich.table import Table


class OutputFormat(str, Enum):
    """How reports are rendered on stdout.

    ``AUTO`` becomes ``RICH`` on an interactive, colour-capable terminal
    and ``PLAIN`` everywhere else.
    """

    AUTO = "auto"
    JSON = "json"
    PLAIN = "plain"
    RICH = "rich"


class OutputManager:
    """Renders reports to stdout and status messages to stderr.

    Args:
        format: Report format requested on the command line.
        no_color: Strip colour from both streams.
        quiet: Drop info and success messages (warnings and errors remain).
        verbose: Show debug messages.
    """

    def __init__(
        self,
        format: OutputFormat = OutputFormat.AUTO,
        no_color: bool = False,
        quiet: bool = False,
        verbose: bool = False,
    ) -> None:
        self._no_color = no_color or _should_disable_color()
        self._quiet = quiet
        self._verbose = verbose
        self._format = _resolve_format(format, self._no_color)

        self._report_console = Console(
            file=sys.stdout,
            no_color=self._no_color,
            force_terminal=self._format == OutputFormat.RICH,
        )
        self._status_console = Console(file=sys.stderr, no_color=self._no_color, stderr=True)

    @property
    def format(self) -> OutputFormat:
        return self._format

    @property
    def is_quiet(self) -> bool:
        return self._quiet

    @property
    def is_verbose(self) -> bool:
        return self._verbose

    @property
    def stderr_console(self) -> Console:
        """Console bound to stderr, shared with the logging handler."""
        return self._status_console

    # -- reports (stdout) ------------------------------------------------

    def format_response(self, data: Any) -> None:
        """Write a report to stdout in the resolved format."""
        if self._format == OutputFormat.JSON:
            self.print_data(json.dumps(data, indent=2, ensure_ascii=False, default=str))
        elif self._format == OutputFormat.PLAIN:
            for line in _plain_lines(data):
                self.print_data(line)
        else:
            self._report_console.print(_rich_renderable(data))

    def print_data(self, text: str) -> None:
        print(text, file=sys.stdout, flush=True)

    # -- status messages (stderr) ----------------------------------------

    def info(self, message: str) -> None:
        if not self._quiet:
            self._status(message)

    def success(self, message: str) -> None:
        if not self._quiet:
            self._status(message, style="green")

    def warning(self, message: str) -> None:
        self._status(message, label="Warning:", label_style="yellow")

    def error(self, message: str) -> None:
        self._status(message, label="Error:", label_style="bold red")

    def debug(self, message: str) -> None:
        if self._verbose:
            self._status(message, label="[debug]", style="dim")

    def _status(
        self,
        message: str,
        *,
        label: str = "",
        style: Optional[str] = None,
        label_style: Optional[str] = None,
    ) -> None:
        if self._no_color:
            line = f"{label} {message}" if label else message
            print(line, file=sys.stderr, flush=True)
            return
        text = escape(message)
        if label:
            head = escape(label)
            if label_style:
                head = f"[{label_style}]{head}[/{label_style}]"
            text = f"{head} {text}"
        if style:
            text = f"[{style}]{text}[/{style}]"
        self._status_console.print(text)


def _resolve_format(requested: OutputFormat, no_color: bool) -> OutputFormat:
    if requested != OutputFormat.AUTO:
        return requested
    if _is_tty() and not no_color:
        return OutputFormat.RICH
    return OutputFormat.PLAIN


def _plain_lines(data: Any) -> list[str]:
    """Flatten a report into ``key<TAB>value`` lines.

    Nested sections (``cache`` in the config dump) are emitted as compact
    JSON on a single line so every top-level key stays on its own row.
    """
    if isinstance(data, dict):
        lines = []
        for key, value in data.items():
            if isinstance(value, (dict, list)):
                value = json.dumps(value, ensure_ascii=False, default=str)
            lines.append(f"{key}\t{value}")
        return lines
    if isinstance(data, list):
        return [str(item) for item in data]
    return [str(data)]


def _rich_renderable(data: Any) -> Any:
    if isinstance(data, dict) and not any(isinstance(v, (dict, list)) for v in data.values()):
        # Flat mappings (the stats report) render as key/value rows.
        table = Table(show_header=False, box=None, pad_edge=False)
        table.add_column(style="bold cyan")
        table.add_column()
        for key, value in data.items():
            table.add_row(str(key), str(value))
        return table
    if isinstance(data, (dict, list)):
        dumped = json.dumps(data, indent=2, ensure_ascii=False, default=str)
        return Syntax(dumped, "json", theme="monokai", word_wrap=True)
    return escape(str(data))


def _is_tty() -> bool:
    return hasattr(sys.stdout, "isatty") and sys.stdout.isatty()


def _should_disable_color() -> bool:
    """True when ``NO_COLOR`` is present (any value) or ``TERM`` is ``dumb``."""
    return os.environ.get("NO_COLOR") is not None or os.environ.get("TERM") == "dumb"


# -- process-wide manager ------------------------------------------------

_output: Optional[OutputManager] = None


def get_output() -> OutputManager:
    """Return the installed manager, building a default one on first use."""
    global _output
    if _output is None:
        _output = OutputManager()
    return _output


def set_output(output: OutputManager) -> None:
    global _output
    _output = output


def reset_output() -> None:
    """Forget the installed manager so the next call builds a fresh one."""
    global _output
    _output = None


def format_response(data: Any) -> None:
    get_output().format_response(data)


def info(message: str) -> None:
    get_output().info(message)


def success(message: str) -> None:
    get_output().success(message)


def warning(message: str) -> None:
    get_output().warning(message)


def error(message: str) -> None:
    get_output().error(message)


def debug(message: str) -> None:
    get_output().debug(message)
