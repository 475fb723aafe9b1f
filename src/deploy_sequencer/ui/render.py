"""Plain-text rendering for ``deployseq`` command output.

Human-readable output goes to stdout through :class:`CLIRenderer`; machine
output (``--json``) bypasses it entirely. Nothing here depends on a terminal,
so rendered text is identical in CI logs and interactive shells.
"""

from __future__ import annotations

import sys
from typing import TYPE_CHECKING, TextIO

if TYPE_CHECKING:
    from collections.abc import Sequence


class CLIRenderer:
    """Thin, deterministic plain-text renderer."""

    def __init__(self, *, verbose: bool = False, stream: TextIO | None = None) -> None:
        self.verbose = verbose
        self._stream = stream

    @property
    def stream(self) -> TextIO:
        # Resolved lazily so pytest's capsys replacement of sys.stdout is honoured.
        return self._stream if self._stream is not None else sys.stdout

    def heading(self, text: str) -> None:
        self._write(text)
        self._write("=" * len(text))

    def kv(self, key: str, value: object) -> None:
        self._write(f"{key}: {value}")

    def text(self, line: str) -> None:
        self._write(line)

    def blank(self) -> None:
        self._write("")

    def section(self, title: str) -> None:
        """Print a section header with a preceding blank line."""

        self._write(f"\n{title}")

    def warning(self, text: str) -> None:
        self._write(f"  Warning: {text}")

    def items(self, entries: Sequence[str], *, prefix: str = "- ") -> None:
        for entry in entries:
            self._write(f"  {prefix}{entry}")

    def detail(self, text: str) -> None:
        """Print only in verbose mode."""

        if self.verbose:
            self._write(f"    {text}")

    def table(
        self,
        headers: Sequence[str],
        rows: Sequence[Sequence[object]],
        *,
        title: str | None = None,
    ) -> None:
        """Print an aligned ASCII table; nothing is printed for zero rows."""

        if not rows:
            return

        col_count = len(headers)
        widths = [len(h) for h in headers]
        cells = [[_cell(row, i) for i in range(col_count)] for row in rows]
        for row_cells in cells:
            for i, cell in enumerate(row_cells):
                widths[i] = max(widths[i], len(cell))

        def _pad(values: Sequence[str]) -> str:
            return "  ".join(value.ljust(widths[i]) for i, value in enumerate(values)).rstrip()

        if title:
            self.section(title)
        self._write(f"  {_pad(list(headers))}")
        self._write(f"  {'  '.join('-' * w for w in widths)}")
        for row_cells in cells:
            self._write(f"  {_pad(row_cells)}")

    def next_steps(self, steps: Sequence[str]) -> None:
        if not steps:
            return
        self.section("Next steps:")
        for step in steps:
            self._write(f"  $ {step}")

    def ok(self, label: str) -> None:
        self._write(f"  OK    {label}")

    def fail(self, label: str) -> None:
        self._write(f"  FAIL  {label}")

    def _write(self, line: str) -> None:
        self.stream.write(line + "\n")


def _cell(row: Sequence[object], index: int) -> str:
    if index >= len(row):
        return ""
    value = row[index]
    return "" if value is None else str(value)


def create_renderer(*, verbose: bool = False, stream: TextIO | None = None) -> CLIRenderer:
    return CLIRenderer(verbose=verbose, stream=stream)


__all__ = ["CLIRenderer", "create_renderer"]
