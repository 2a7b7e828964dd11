"""
copyguard/reporter.py
═════════════════════

Presentation of :class:`~copyguard.checkers.Diagnostic` objects.

Output formats
──────────────
  • text : colourful Rust-style rendering with a source excerpt
  • gcc  : ``file:line:col: severity: message [CPY003]``
  • json : one JSON object per line

Usage
─────
    with Reporter(sys.stdout, fmt="text") as rep:
        rep.emit_all(results.diagnostics)
"""

from __future__ import annotations

import sys
from dataclasses import dataclass
from pathlib import Path
from typing import Dict, Iterable, List, Optional, TextIO

from termcolor import colored

from copyguard.checkers import Diagnostic, DiagnosticSeverity

FORMATS = ("text", "gcc", "json")

_COLORS: Dict[DiagnosticSeverity, str] = {
    DiagnosticSeverity.ERROR: "red",
    DiagnosticSeverity.WARNING: "yellow",
    DiagnosticSeverity.INFORMATION: "white",
}

_HELP: Dict[str, str] = {
    "CPY002": "decorate the class with @typing.final, or mark the member "
              "with Annotated[..., CopyIgnore]",
    "CPY003": "read every listed member in the body, or mark it with "
              "Annotated[..., CopyIgnore]",
}


@dataclass
class ReporterStats:
    """Aggregate counts per severity."""
    error: int = 0
    warning: int = 0
    information: int = 0

    def record(self, severity: DiagnosticSeverity) -> None:
        attr = severity.value
        setattr(self, attr, getattr(self, attr) + 1)

    @property
    def total(self) -> int:
        return self.error + self.warning + self.information

    def summary_line(self) -> str:
        parts: List[str] = []
        if self.error:
            parts.append(f"{self.error} error{'s' if self.error != 1 else ''}")
        if self.warning:
            parts.append(f"{self.warning} warning{'s' if self.warning != 1 else ''}")
        if self.information:
            parts.append(f"{self.information} info")
        if not parts:
            return "no diagnostics emitted"
        return "; ".join(parts) + f" ({self.total} total)"


# ═════════════════════════════════════════════════════════════════════════
#  TERMINAL RENDERER  (Rust-style colourful output)
# ═════════════════════════════════════════════════════════════════════════

class _TerminalRenderer:
    """Render diagnostics with colours and a one-line source excerpt."""

    def __init__(self, stream: TextIO, color: bool = True,
                 sources: Optional[Dict[str, str]] = None) -> None:
        self._stream = stream
        self._color = color
        self._sources = sources or {}
        self._cache: Dict[str, List[str]] = {}

    def _paint(self, text: str, color: Optional[str] = None,
               attrs: Optional[List[str]] = None) -> str:
        if not self._color:
            return text
        return colored(text, color, attrs=attrs, force_color=True)

    def render(self, diag: Diagnostic) -> None:
        lines: List[str] = []
        color = _COLORS[diag.severity]

        # ── header: severity[CPY003]: message ────────────────────────
        head = self._paint(f"{diag.severity.value}[{diag.rule_id}]", color, ["bold"])
        lines.append(f"{head}: {self._paint(diag.message, attrs=['bold'])}")

        loc = diag.location
        if loc.file:
            arrow = self._paint("-->", "blue", ["bold"])
            lines.append(f"  {arrow} {loc}")

        # ── source excerpt ───────────────────────────────────────────
        text = self._line(loc.file, loc.line)
        if text is not None:
            gutter = str(loc.line)
            pipe = self._paint("|", "blue", ["bold"])
            blank = " " * len(gutter)
            lines.append(f" {blank} {pipe}")
            lines.append(f" {self._paint(gutter, 'blue', ['bold'])} {pipe} {text}")
            if loc.column:
                width = max(loc.end_column - loc.column, 1)
                marker = " " * (loc.column - 1) + "^" * width
                lines.append(f" {blank} {pipe} {self._paint(marker, color, ['bold'])}")

        hint = _HELP.get(diag.rule_id)
        if hint:
            lines.append(f"  = {self._paint('help', 'green', ['bold'])}: {hint}")

        lines.append("")
        self._stream.write("\n".join(lines) + "\n")

    def _line(self, file: str, line: int) -> Optional[str]:
        if not file or line < 1:
            return None
        if file not in self._cache:
            source = self._sources.get(file)
            if source is None:
                try:
                    source = Path(file).read_text(encoding="utf-8", errors="replace")
                except OSError:
                    source = ""
            self._cache[file] = source.splitlines()
        text = self._cache[file]
        return text[line - 1].rstrip() if line <= len(text) else None


class Reporter:
    """
    Writes diagnostics to *stream* in one of :data:`FORMATS`.

    ``color=None`` enables colour only when *stream* is a terminal.
    *sources* maps file names to source text for in-memory modules.
    """

    def __init__(
        self,
        stream: Optional[TextIO] = None,
        fmt: str = "text",
        color: Optional[bool] = None,
        sources: Optional[Dict[str, str]] = None,
    ) -> None:
        if fmt not in FORMATS:
            raise ValueError(f"unknown output format {fmt!r}")
        self.stream = stream or sys.stdout
        self.fmt = fmt
        if color is None:
            color = hasattr(self.stream, "isatty") and self.stream.isatty()
        self.stats = ReporterStats()
        self._terminal = _TerminalRenderer(self.stream, color, sources)

    def __enter__(self) -> Reporter:
        return self

    def __exit__(self, *exc: object) -> None:
        self.finish()

    def emit(self, diag: Diagnostic) -> None:
        self.stats.record(diag.severity)
        if self.fmt == "json":
            self.stream.write(diag.to_json_str() + "\n")
        elif self.fmt == "gcc":
            self.stream.write(diag.to_gcc_format() + "\n")
        else:
            self._terminal.render(diag)

    def emit_all(self, diagnostics: Iterable[Diagnostic]) -> None:
        for diag in diagnostics:
            self.emit(diag)

    def finish(self) -> None:
        if self.fmt == "text":
            self.stream.write(self.stats.summary_line() + "\n")
        self.stream.flush()
