# copyguard/errors.py
"""
copyguard error types.

Error hierarchy
───────────────
┌──────────────────────────────────────────────────────────────────────┐
│  CopyGuardError (base)                                               │
│  ├── ConfigError          - malformed ``.copyguard`` configuration   │
│  ├── SourceError          - analysed file cannot be read or parsed   │
│  └── OperationCancelled   - host requested cancellation              │
└──────────────────────────────────────────────────────────────────────┘

Findings about copy procedures are *not* exceptions: they are
``Diagnostic`` objects produced by the checkers.  The exceptions in this
module describe infrastructure problems only.

Error codes follow the pattern ``CG-NNNN``:
  - 1000-1999: configuration errors
  - 2000-2999: source errors
  - 9000-9999: internal errors
"""

from __future__ import annotations

from enum import Enum, unique
from typing import Optional


@unique
class ErrorPhase(Enum):
    """Phase of a copyguard run where an error occurred."""

    CONFIG = "config"
    SOURCE = "source"
    ANALYSIS = "analysis"
    INTERNAL = "internal"


class ErrorCode:
    """
    Structured error code ``CG-NNNN``.

    Instances compare equal to their string form, so callers can write
    ``exc.code == "CG-1001"``.
    """

    __slots__ = ("number", "phase", "title")

    PREFIX = "CG"

    def __init__(self, number: int, phase: ErrorPhase, title: str) -> None:
        self.number = number
        self.phase = phase
        self.title = title

    @property
    def code(self) -> str:
        return f"{self.PREFIX}-{self.number:04d}"

    def __str__(self) -> str:
        return self.code

    def __repr__(self) -> str:
        return f"ErrorCode({self.code!r}, {self.phase.name})"

    def __hash__(self) -> int:
        return hash(self.number)

    def __eq__(self, other: object) -> bool:
        if isinstance(other, ErrorCode):
            return self.number == other.number
        if isinstance(other, str):
            return self.code == other
        return False


class ErrorCodes:
    """Predefined error codes."""

    CONFIG_SYNTAX = ErrorCode(1000, ErrorPhase.CONFIG, "malformed S-expression")
    CONFIG_UNKNOWN_FORM = ErrorCode(1001, ErrorPhase.CONFIG, "unknown configuration form")
    CONFIG_BAD_VALUE = ErrorCode(1002, ErrorPhase.CONFIG, "invalid configuration value")
    CONFIG_NOT_FOUND = ErrorCode(1003, ErrorPhase.CONFIG, "configuration file not found")

    SOURCE_UNREADABLE = ErrorCode(2000, ErrorPhase.SOURCE, "source file cannot be read")
    SOURCE_SYNTAX = ErrorCode(2001, ErrorPhase.SOURCE, "source file has a syntax error")
    SOURCE_DUPLICATE = ErrorCode(2002, ErrorPhase.SOURCE, "duplicate module name")

    CANCELLED = ErrorCode(9000, ErrorPhase.ANALYSIS, "analysis cancelled")
    INTERNAL = ErrorCode(9999, ErrorPhase.INTERNAL, "internal error")


# ═══════════════════════════════════════════════════════════════════════════════
# EXCEPTION CLASSES
# ═══════════════════════════════════════════════════════════════════════════════

class CopyGuardError(Exception):
    """
    Base exception for all copyguard errors.

    Carries an :class:`ErrorCode` and, where known, the file and line the
    error refers to.
    """

    default_code: ErrorCode = ErrorCodes.INTERNAL

    def __init__(
        self,
        message: str,
        code: Optional[ErrorCode] = None,
        file: str = "",
        line: int = 0,
        hint: str = "",
    ) -> None:
        super().__init__(message)
        self.message = message
        self.code = code or self.default_code
        self.file = file
        self.line = line
        self.hint = hint

    def to_gcc_format(self) -> str:
        """Format as ``file:line: error: message [CG-NNNN]``."""
        where = ""
        if self.file:
            where = f"{self.file}:{self.line}: " if self.line else f"{self.file}: "
        text = f"{where}error: {self.message} [{self.code}]"
        if self.hint:
            text += f"\n  hint: {self.hint}"
        return text

    def __str__(self) -> str:
        return self.to_gcc_format()


class ConfigError(CopyGuardError):
    """The configuration file is malformed or contains invalid values."""

    default_code = ErrorCodes.CONFIG_BAD_VALUE


class SourceError(CopyGuardError):
    """An analysed Python file could not be read or parsed."""

    default_code = ErrorCodes.SOURCE_SYNTAX


class OperationCancelled(CopyGuardError):
    """Raised by :meth:`CancellationToken.throw_if_cancelled`."""

    default_code = ErrorCodes.CANCELLED

    def __init__(self, message: str = "analysis cancelled") -> None:
        super().__init__(message)
