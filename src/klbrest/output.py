"""Diagnostics output on stderr.

klbrest never writes to stdout. Request traces (when
:attr:`~klbrest.models.RestConfig.debug` is on), token renewal decisions
and warnings all go to stderr through one :class:`OutputManager`, reached
with :func:`get_output` so library code does not pass it around.

Levels::

    trace    request timing lines       hidden when quiet
    info     general notices            hidden when quiet
    debug    renewal/retry decisions    shown only when verbose
    warning  always shown
    error    always shown

Colour follows Rich unless ``NO_COLOR`` is set, ``TERM=dumb``, or the
manager is built with ``no_color=True``; without colour lines are written
as plain text with a textual prefix.
"""

from __future__ import annotations

import os
import sys
from typing import Optional

from rich.console import Console
from rich.markup import escape


class OutputManager:
    """Level-filtered diagnostics writer bound to stderr.

    Args:
        no_color: Write plain text even when the terminal supports colour.
        quiet: Drop ``trace`` and ``info`` lines.
        verbose: Emit ``debug`` lines.
    """

    def __init__(
        self,
        no_color: bool = False,
        quiet: bool = False,
        verbose: bool = False,
    ) -> None:
        self._plain = no_color or _should_disable_color()
        self._quiet = quiet
        self._verbose = verbose
        self._console = Console(file=sys.stderr, no_color=self._plain, stderr=True)

    @property
    def is_quiet(self) -> bool:
        return self._quiet

    @property
    def is_verbose(self) -> bool:
        return self._verbose

    def trace(self, message: str) -> None:
        """Request trace line; emitted by the engine only when ``debug`` is on."""
        if not self._quiet:
            self._emit(message, style="cyan")

    def info(self, message: str) -> None:
        if not self._quiet:
            self._emit(message)

    def debug(self, message: str) -> None:
        if self._verbose:
            self._emit(message, prefix="[debug]", style="dim")

    def warning(self, message: str) -> None:
        self._emit(message, prefix="Warning:", prefix_style="yellow")

    def error(self, message: str) -> None:
        self._emit(message, prefix="Error:", prefix_style="bold red")

    def _emit(
        self,
        message: str,
        prefix: str = "",
        style: str = "",
        prefix_style: str = "",
    ) -> None:
        if self._plain:
            line = f"{prefix} {message}" if prefix else message
            sys.stderr.write(line + "\n")
            sys.stderr.flush()
            return

        text = escape(f"{prefix} {message}" if prefix and not prefix_style else message)
        if prefix and prefix_style:
            text = f"[{prefix_style}]{escape(prefix)}[/{prefix_style}] {text}"
        if style:
            text = f"[{style}]{text}[/{style}]"
        self._console.print(text)


def _should_disable_color() -> bool:
    """True when ``NO_COLOR`` is set (to anything) or ``TERM`` is ``dumb``."""
    return os.environ.get("NO_COLOR") is not None or os.environ.get("TERM") == "dumb"


# ------------------------------------------------------------------ #
# Process-wide manager
# ------------------------------------------------------------------ #

_current: Optional[OutputManager] = None


def get_output() -> OutputManager:
    """Return the installed manager, creating a default one on first use."""
    global _current
    if _current is None:
        _current = OutputManager()
    return _current


def set_output(output: OutputManager) -> None:
    """Install *output* for all subsequent diagnostics."""
    global _current
    _current = output


def reset_output() -> None:
    """Drop the installed manager so the next :func:`get_output` builds a fresh one.

    Tests call this between cases because the console binds ``sys.stderr``
    when it is created.
    """
    global _current
    _current = None
