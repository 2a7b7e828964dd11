"""
copyguard/checkers.py
═════════════════════

Checker framework that turns the verifiers into diagnostics.

Architecture
────────────

  ┌────────────────────────────────────────────────────────────┐
  │                      CheckerRunner                         │
  │  ┌─────────────────────────┐  ┌─────────────────────────┐  │
  │  │  DeepCopyUsageChecker   │  │ DeepCopyCompleteness    │  │
  │  │  arity + closedness     │  │ Checker                 │  │
  │  └───────────┬─────────────┘  └───────────┬─────────────┘  │
  │              │                            │                │
  │  ┌───────────▼────────────────────────────▼─────────────┐  │
  │  │  TypeGraphBuilder │ ClosednessVerifier │ AccessPath   │  │
  │  │  MemberEnumerator │ CompletenessVerifier │ Extractor  │  │
  │  └───────────────────────────┬──────────────────────────┘  │
  │                              │                             │
  │  ┌───────────────────────────▼──────────────────────────┐  │
  │  │  SuppressionManager                                  │  │
  │  │  # copyguard: ignore │ file patterns │ disabled rules│  │
  │  └───────────────────────────┬──────────────────────────┘  │
  │                              │                             │
  │  ┌───────────────────────────▼──────────────────────────┐  │
  │  │  Diagnostic formatter (JSON / GCC / terminal)        │  │
  │  └──────────────────────────────────────────────────────┘  │
  └────────────────────────────────────────────────────────────┘

Each Checker follows a four-phase lifecycle:

  1. **configure()**        - read configuration
  2. **collect_evidence()** - run the verifiers per copy procedure
  3. **diagnose()**         - turn evidence into Diagnostics
  4. **report()**           - return Diagnostics not suppressed

Rules
─────
  CPY001  reserved
  CPY002  deepCopyUsage       error    parameter (procedure for arity)
  CPY003  deepCopyIncomplete  warning  procedure name
"""

from __future__ import annotations

import io
import json
import logging
import re
import time
import tokenize
from abc import ABC, abstractmethod
from collections import defaultdict
from dataclasses import dataclass, field
from enum import Enum, auto
from fnmatch import fnmatch
from pathlib import Path, PurePath
from typing import (
    Any,
    ClassVar,
    Dict,
    Iterable,
    List,
    Optional,
    Sequence,
    Set,
    Tuple,
    Type,
    Union,
)

from copyguard.access_paths import AccessPathExtractor
from copyguard.cancellation import CancellationToken
from copyguard.closedness import ClosednessVerifier
from copyguard.completeness import CompletenessVerifier
from copyguard.config import Config
from copyguard.errors import (
    CopyGuardError,
    ErrorCodes,
    OperationCancelled,
    SourceError,
)
from copyguard.members import MemberEnumerator
from copyguard.symbols import (
    ModuleSymbols,
    ParameterSymbol,
    ProcedureSymbol,
    SourceLocation,
    SymbolTable,
    TypeRef,
)
from copyguard.type_graph import TypeGraphBuilder, TypeKind, TypeNode

_log = logging.getLogger(__name__)


# ═════════════════════════════════════════════════════════════════════════
#  PART 1: DIAGNOSTIC MODEL
# ═════════════════════════════════════════════════════════════════════════

class DiagnosticSeverity(Enum):
    ERROR = "error"
    WARNING = "warning"
    INFORMATION = "information"


class Confidence(Enum):
    """
    How certain we are that the diagnostic is a true positive.

    HIGH   - every name involved was resolved
    MEDIUM - some member types were opaque
    """
    HIGH = auto()
    MEDIUM = auto()


@dataclass(frozen=True)
class RuleDescriptor:
    """Static description of one rule."""
    rule_id: str
    error_id: str
    title: str
    message_format: str
    severity: DiagnosticSeverity
    category: str = "Usage"
    description: str = ""

    def format(self, *arguments: str) -> str:
        return self.message_format.format(*arguments)


USAGE_RULE = RuleDescriptor(
    rule_id="CPY002",
    error_id="deepCopyUsage",
    title="deep_copy usage violation",
    message_format="{0}",
    severity=DiagnosticSeverity.ERROR,
    description=(
        "Procedures marked with deep_copy must have a single closed "
        "parameter, and all nested types and collections (not marked with "
        "CopyIgnore) must also be closed."
    ),
)

COMPLETENESS_RULE = RuleDescriptor(
    rule_id="CPY003",
    error_id="deepCopyIncomplete",
    title="deep_copy procedure incomplete",
    message_format="Method '{0}' does not copy the following members: {1}",
    severity=DiagnosticSeverity.WARNING,
    description=(
        "Every public instance member reachable from the parameter of a "
        "deep_copy procedure must be read by its body."
    ),
)

#: Rule id kept for the equality-pattern rewrite, which copyguard does not ship.
RESERVED_RULE_IDS = frozenset({"CPY001"})

RULES: Dict[str, RuleDescriptor] = {
    r.rule_id: r for r in (USAGE_RULE, COMPLETENESS_RULE)
}


@dataclass(frozen=True)
class Diagnostic:
    """
    A single finding.

    Attributes
    ----------
    rule_id      : Stable rule identifier (e.g., "CPY003")
    error_id     : Symbolic identifier (e.g., "deepCopyIncomplete")
    message      : Human-readable description
    severity     : DiagnosticSeverity
    location     : Primary source location
    arguments    : Positional message arguments
    confidence   : Confidence level
    checker_name : Name of the checker that produced this
    evidence     : Machine-readable evidence dict for downstream tooling
    """
    rule_id: str
    error_id: str
    message: str
    severity: DiagnosticSeverity
    location: SourceLocation
    arguments: Tuple[str, ...] = ()
    confidence: Confidence = Confidence.HIGH
    checker_name: str = ""
    evidence: Dict[str, Any] = field(default_factory=dict)

    def to_json_dict(self) -> Dict[str, Any]:
        result: Dict[str, Any] = {
            "file": self.location.file,
            "linenr": self.location.line,
            "column": self.location.column,
            "severity": self.severity.value,
            "message": self.message,
            "ruleId": self.rule_id,
            "errorId": self.error_id,
            "arguments": list(self.arguments),
        }
        if self.evidence:
            result["evidence"] = self.evidence
        return result

    def to_json_str(self) -> str:
        return json.dumps(self.to_json_dict())

    def to_gcc_format(self) -> str:
        """GCC-style diagnostic string: file:line:col: severity: message."""
        sev = self.severity.value
        return f"{self.location}: {sev}: {self.message} [{self.rule_id}]"


# ═════════════════════════════════════════════════════════════════════════
#  PART 2: SUPPRESSION MANAGER
# ═════════════════════════════════════════════════════════════════════════

_INLINE_RE = re.compile(
    r"#\s*copyguard:\s*ignore(?:\[(?P<ids>[^\]]*)\])?", re.IGNORECASE
)


class SuppressionManager:
    """
    Manages diagnostic suppressions from multiple sources.

    Sources:
      1. Inline comments:  ``# copyguard: ignore[CPY003]`` on the
         finding's line or the line above (no id list means any rule)
      2. File-level suppressions (``suppress`` config form)
      3. Global suppressions (``disable`` config form)

    Rules match by rule id or error id.
    """

    def __init__(self) -> None:
        # {(file, line)} → set of ids suppressed at that location
        self._inline: Dict[Tuple[str, int], Set[str]] = defaultdict(set)
        # file pattern → set of ids
        self._file_level: Dict[str, Set[str]] = defaultdict(set)
        self._global: Set[str] = set()

    @classmethod
    def from_config(cls, config: Config) -> SuppressionManager:
        sm = cls()
        for rule in config.disabled_rules:
            sm.add_global_suppression(rule)
        for rule, pattern in config.suppressions:
            sm.add_file_suppression(rule, pattern)
        return sm

    def load_inline_suppressions(self, module: ModuleSymbols) -> None:
        """Scan *module*'s comments for ``# copyguard: ignore``."""
        readline = io.StringIO(module.source).readline
        try:
            for tok in tokenize.generate_tokens(readline):
                if tok.type != tokenize.COMMENT:
                    continue
                m = _INLINE_RE.search(tok.string)
                if m is None:
                    continue
                ids = m.group("ids")
                key = (module.path, tok.start[0])
                if ids is None:
                    self._inline[key].add("*")
                else:
                    self._inline[key].update(
                        i.strip() for i in ids.split(",") if i.strip()
                    )
        except (tokenize.TokenError, SyntaxError) as exc:
            _log.debug("cannot tokenize %s: %s", module.path, exc)

    def add_file_suppression(self, rule: str, file_pattern: str) -> None:
        self._file_level[file_pattern].add(rule)

    def add_global_suppression(self, rule: str) -> None:
        self._global.add(rule)

    @staticmethod
    def _matches(ids: Set[str], diag: Diagnostic) -> bool:
        return "*" in ids or diag.rule_id in ids or diag.error_id in ids

    def is_suppressed(self, diag: Diagnostic) -> bool:
        if self._matches(self._global, diag):
            return True

        loc = diag.location
        # same line, or the line above
        for line_offset in (0, 1):
            ids = self._inline.get((loc.file, loc.line - line_offset))
            if ids and self._matches(ids, diag):
                return True

        for pattern, ids in self._file_level.items():
            if not self._matches(ids, diag):
                continue
            if self._file_matches(loc.file, pattern):
                return True
        return False

    @staticmethod
    def _file_matches(file: str, pattern: str) -> bool:
        """Glob match, or *pattern* names the trailing path components of *file*."""
        if file == pattern or fnmatch(file, pattern):
            return True
        tail = PurePath(pattern).parts
        return bool(tail) and PurePath(file).parts[-len(tail):] == tail

    def filter_diagnostics(
        self, diagnostics: Iterable[Diagnostic]
    ) -> List[Diagnostic]:
        return [d for d in diagnostics if not self.is_suppressed(d)]


# ═════════════════════════════════════════════════════════════════════════
#  PART 3: CHECKER BASE CLASS
# ═════════════════════════════════════════════════════════════════════════

@dataclass
class CheckerContext:
    """
    Shared context passed to every checker for one module.

    Attributes
    ----------
    symbols      : SymbolTable of the whole run (for cross-module types)
    module       : the module being checked
    config       : Config
    suppressions : SuppressionManager
    cancellation : CancellationToken
    stats        : mutable dict for timing / counting statistics
    """
    symbols: SymbolTable
    module: ModuleSymbols
    config: Config = field(default_factory=Config)
    suppressions: SuppressionManager = field(default_factory=SuppressionManager)
    cancellation: CancellationToken = field(default_factory=CancellationToken)
    stats: Dict[str, Any] = field(default_factory=dict)

    def copy_procedures(self) -> List[ProcedureSymbol]:
        markers = self.config.copy_procedure_markers
        return [p for p in self.module.procedures if p.decorators & markers]


class Checker(ABC):
    """
    Abstract base class for the copy checkers.

    Lifecycle
    ─────────
      1. ``configure(ctx)``        - receive context
      2. ``collect_evidence(ctx)`` - run verifiers, one procedure at a time
      3. ``diagnose(ctx)``         - correlate evidence into diagnostics
      4. ``report(ctx)``           - yield final diagnostics

    A failure while verifying one procedure is logged and yields no
    finding for that procedure; ``OperationCancelled`` is re-raised.
    """

    name: ClassVar[str] = "base-checker"
    description: ClassVar[str] = ""
    rule: ClassVar[RuleDescriptor]

    def __init__(self) -> None:
        self._diagnostics: List[Diagnostic] = []

    @property
    def diagnostics(self) -> List[Diagnostic]:
        return list(self._diagnostics)

    def configure(self, ctx: CheckerContext) -> None:
        pass

    def collect_evidence(self, ctx: CheckerContext) -> None:
        for proc in ctx.copy_procedures():
            ctx.cancellation.throw_if_cancelled()
            try:
                self.check_procedure(ctx, proc)
            except OperationCancelled:
                raise
            except Exception:
                _log.exception("%s: verification of %s failed", self.name,
                               proc.qualname)
            key = f"{self.name}_procedures"
            ctx.stats[key] = ctx.stats.get(key, 0) + 1

    @abstractmethod
    def check_procedure(self, ctx: CheckerContext, proc: ProcedureSymbol) -> None:
        ...

    @abstractmethod
    def diagnose(self, ctx: CheckerContext) -> None:
        ...

    def report(self, ctx: CheckerContext) -> List[Diagnostic]:
        return ctx.suppressions.filter_diagnostics(self._diagnostics)

    def _emit(
        self,
        location: SourceLocation,
        *arguments: str,
        confidence: Confidence = Confidence.HIGH,
        evidence: Optional[Dict[str, Any]] = None,
    ) -> None:
        rule = self.rule
        self._diagnostics.append(Diagnostic(
            rule_id=rule.rule_id,
            error_id=rule.error_id,
            message=rule.format(*arguments),
            severity=rule.severity,
            location=location,
            arguments=tuple(arguments),
            confidence=confidence,
            checker_name=self.name,
            evidence=evidence or {},
        ))

    def __repr__(self) -> str:
        return f"<{self.__class__.__name__} '{self.name}'>"


def _parameter_graph(
    ctx: CheckerContext, proc: ProcedureSymbol
) -> Optional[Tuple[ParameterSymbol, TypeNode]]:
    """The single parameter and its type graph, or None if unverifiable."""
    if len(proc.parameters) != 1:
        return None
    param = proc.parameters[0]
    ref: TypeRef = ctx.symbols.resolve_annotation(
        proc.module, param.annotation, scope=proc.enclosing_class
    )
    if not ref.is_resolved:
        _log.debug("%s: parameter %r has no resolvable type, skipped",
                   proc.qualname, param.name)
        return None
    builder = TypeGraphBuilder(ctx.symbols, ctx.config, ctx.cancellation)
    root = builder.build(ref)
    if root.kind is TypeKind.OPAQUE:
        _log.debug("%s: parameter type %s is opaque, skipped",
                   proc.qualname, ref)
        return None
    return param, root


# ═════════════════════════════════════════════════════════════════════════
#  PART 4: CHECKERS
# ═════════════════════════════════════════════════════════════════════════

class DeepCopyUsageChecker(Checker):
    """
    Detects copy procedures that cannot be verified safely: wrong arity,
    or a parameter type graph containing a type that is not closed.
    """

    name: ClassVar[str] = "deep-copy-usage"
    description: ClassVar[str] = "deep_copy arity and closedness"
    rule: ClassVar[RuleDescriptor] = USAGE_RULE

    def __init__(self) -> None:
        super().__init__()
        # (location, message, evidence)
        self._violations: List[Tuple[SourceLocation, str, Dict[str, Any]]] = []

    def check_procedure(self, ctx: CheckerContext, proc: ProcedureSymbol) -> None:
        if len(proc.parameters) != 1:
            self._violations.append((
                proc.location,
                "Method must have exactly one parameter.",
                {"procedure": proc.qualname, "violation": "arity",
                 "parameters": len(proc.parameters)},
            ))
            return
        found = _parameter_graph(ctx, proc)
        if found is None:
            return
        param, root = found
        verifier = ClosednessVerifier(MemberEnumerator(), ctx.cancellation)
        result = verifier.verify(root)
        if not result.ok:
            self._violations.append((
                param.location,
                result.message,
                {"procedure": proc.qualname,
                 "violation": result.violation.value,  # type: ignore[union-attr]
                 "type": result.type_name,
                 "member": result.member_path},
            ))

    def diagnose(self, ctx: CheckerContext) -> None:
        for location, message, evidence in self._violations:
            self._emit(location, message, evidence=evidence)


class DeepCopyCompletenessChecker(Checker):
    """
    Detects copy procedures whose body does not read every copyable
    member reachable from the parameter.

    Procedures whose parameter type is not closed are left to
    :class:`DeepCopyUsageChecker`.
    """

    name: ClassVar[str] = "deep-copy-completeness"
    description: ClassVar[str] = "deep_copy reads every member"
    rule: ClassVar[RuleDescriptor] = COMPLETENESS_RULE

    def __init__(self) -> None:
        super().__init__()
        self._incomplete: List[Tuple[ProcedureSymbol, List[str], bool]] = []

    def check_procedure(self, ctx: CheckerContext, proc: ProcedureSymbol) -> None:
        found = _parameter_graph(ctx, proc)
        if found is None:
            return
        param, root = found
        if root.kind is TypeKind.COMPOSITE and not root.is_closed:
            return
        if root.kind not in (TypeKind.COMPOSITE, TypeKind.COLLECTION):
            return

        module, scope = proc.module, proc.enclosing_class
        extractor = AccessPathExtractor(
            root,
            resolve=lambda expr: module.resolve_expr(expr, scope),
            config=ctx.config,
        )
        observed = extractor.extract(proc.body, param.name)
        verifier = CompletenessVerifier(
            MemberEnumerator(), ctx.config, ctx.cancellation
        )
        missing = verifier.missing_paths(root, observed)
        if missing:
            opaque = any(m.declared_type is not None
                         and m.declared_type.kind is TypeKind.OPAQUE
                         for m in root.members)
            self._incomplete.append((proc, [str(p) for p in missing], opaque))

    def diagnose(self, ctx: CheckerContext) -> None:
        for proc, missing, opaque in self._incomplete:
            self._emit(
                proc.location,
                proc.name,
                ", ".join(missing),
                confidence=Confidence.MEDIUM if opaque else Confidence.HIGH,
                evidence={"procedure": proc.qualname, "missing": missing},
            )


# ═════════════════════════════════════════════════════════════════════════
#  PART 5: CHECKER REGISTRY
# ═════════════════════════════════════════════════════════════════════════

class CheckerRegistry:
    """
    Registry of available checkers.

    >>> registry = CheckerRegistry()
    >>> registry.register(DeepCopyUsageChecker)
    >>> checkers = registry.get_enabled()
    """

    def __init__(self) -> None:
        self._checkers: Dict[str, Type[Checker]] = {}
        self._disabled: Set[str] = set()

    def register(self, checker_cls: Type[Checker]) -> None:
        self._checkers[checker_cls.name] = checker_cls

    def disable(self, name: str) -> None:
        self._disabled.add(name)

    def enable(self, name: str) -> None:
        self._disabled.discard(name)

    def get_enabled(self) -> List[Type[Checker]]:
        return [
            cls for name, cls in self._checkers.items()
            if name not in self._disabled
        ]

    def filter_by_rule(self, rule_id: str) -> List[Type[Checker]]:
        return [
            cls for cls in self._checkers.values()
            if rule_id in (cls.rule.rule_id, cls.rule.error_id)
        ]


_DEFAULT_REGISTRY = CheckerRegistry()
_DEFAULT_REGISTRY.register(DeepCopyUsageChecker)
_DEFAULT_REGISTRY.register(DeepCopyCompletenessChecker)


def default_registry() -> CheckerRegistry:
    return _DEFAULT_REGISTRY


# ═════════════════════════════════════════════════════════════════════════
#  PART 6: SOURCE DISCOVERY
# ═════════════════════════════════════════════════════════════════════════

_SKIP_DIRS = frozenset({"__pycache__", "node_modules", "build", "dist"})


def module_name_for(path: Path, root: Optional[Path] = None) -> str:
    """Dotted module name of *path*.

    Without *root* the name climbs through package directories.  With a
    scanned *root* directory the name is the path relative to it,
    prefixed by the root's own package name when the root is a package.
    """
    path = path.resolve()
    if root is None:
        parts = [] if path.name == "__init__.py" else [path.stem]
        parent = path.parent
        while (parent / "__init__.py").is_file():
            parts.append(parent.name)
            if parent.parent == parent:
                break
            parent = parent.parent
        parts.reverse()
        return ".".join(parts) or path.stem

    root = root.resolve()
    parts = list(path.relative_to(root).with_suffix("").parts)
    if parts and parts[-1] == "__init__":
        parts.pop()
    if (root / "__init__.py").is_file():
        parts.insert(0, module_name_for(root / "__init__.py"))
    return ".".join(parts) or path.stem


def discover_sources(paths: Iterable[Union[str, Path]]) -> List[Path]:
    """Python files named by *paths*; directories are scanned recursively."""
    found: List[Path] = []
    for raw in paths:
        p = Path(raw)
        if p.is_dir():
            for f in sorted(p.rglob("*.py")):
                rel = f.relative_to(p).parts[:-1]
                if any(d in _SKIP_DIRS or d.startswith(".") for d in rel):
                    continue
                found.append(f)
        elif p.exists():
            found.append(p)
        else:
            raise SourceError(
                f"No such file or directory: {p}",
                code=ErrorCodes.SOURCE_UNREADABLE,
                file=str(p),
            )
    return found


# ═════════════════════════════════════════════════════════════════════════
#  PART 7: RUNNER
# ═════════════════════════════════════════════════════════════════════════

@dataclass
class CheckerRunResults:
    """
    Aggregate results from running the checkers.

    Attributes
    ----------
    diagnostics            : All diagnostics from all checkers
    diagnostics_by_checker : Diagnostics grouped by checker name
    errors                 : Infrastructure errors (unreadable / invalid files)
    stats                  : Timing and counting statistics
    checker_names          : Names of checkers that were run
    cancelled              : True if the run stopped early
    """
    diagnostics: List[Diagnostic] = field(default_factory=list)
    diagnostics_by_checker: Dict[str, List[Diagnostic]] = field(
        default_factory=lambda: defaultdict(list)
    )
    errors: List[CopyGuardError] = field(default_factory=list)
    stats: Dict[str, Any] = field(default_factory=dict)
    checker_names: List[str] = field(default_factory=list)
    cancelled: bool = False

    @property
    def error_count(self) -> int:
        return sum(
            1 for d in self.diagnostics
            if d.severity == DiagnosticSeverity.ERROR
        )

    @property
    def warning_count(self) -> int:
        return sum(
            1 for d in self.diagnostics
            if d.severity == DiagnosticSeverity.WARNING
        )

    @property
    def total_count(self) -> int:
        return len(self.diagnostics)

    def by_rule(self, rule_id: str) -> List[Diagnostic]:
        return [d for d in self.diagnostics if d.rule_id == rule_id]

    def by_file(self, file: str) -> List[Diagnostic]:
        return [d for d in self.diagnostics if d.location.file == file]

    def to_json_lines(self) -> str:
        return "\n".join(d.to_json_str() for d in self.diagnostics)

    def to_gcc_format(self) -> str:
        return "\n".join(d.to_gcc_format() for d in self.diagnostics)

    def summary(self) -> str:
        lines = [
            f"Checker run complete: {self.total_count} diagnostics "
            f"({self.error_count} errors, {self.warning_count} warnings)",
        ]
        for name in self.checker_names:
            count = len(self.diagnostics_by_checker.get(name, []))
            elapsed = self.stats.get(f"{name}_elapsed_ms", 0)
            lines.append(f"  {name}: {count} findings ({elapsed:.1f}ms)")
        if self.errors:
            lines.append(f"  {len(self.errors)} file(s) could not be analysed")
        if self.cancelled:
            lines.append("  run cancelled")
        return "\n".join(lines)


class CheckerRunner:
    """
    Runs the registered checkers over a set of modules.

    >>> runner = CheckerRunner(load_config())
    >>> results = runner.run_paths(["src/"])
    >>> print(results.summary())

    Every module is analysed against a single :class:`SymbolTable`, so
    types declared in one file resolve in another.
    """

    def __init__(
        self,
        config: Optional[Config] = None,
        registry: Optional[CheckerRegistry] = None,
        cancellation: Optional[CancellationToken] = None,
    ) -> None:
        self.config = config or Config()
        self.registry = registry or _DEFAULT_REGISTRY
        self.cancellation = cancellation or CancellationToken(
            self.config.step_budget
        )

    def run_paths(self, paths: Iterable[Union[str, Path]]) -> CheckerRunResults:
        results = CheckerRunResults()
        symbols = SymbolTable()
        seen: Set[Path] = set()
        for raw in paths:
            root = Path(raw)
            for path in discover_sources([root]):
                if path.resolve() in seen:
                    continue
                seen.add(path.resolve())
                name = module_name_for(path, root if root.is_dir() else None)
                try:
                    symbols.add_file(path, name)
                except CopyGuardError as exc:
                    _log.warning("%s", exc.to_gcc_format())
                    results.errors.append(exc)
        return self.run(symbols, results=results)

    def run_source(self, source: str, module_name: str = "__main__") -> CheckerRunResults:
        symbols = SymbolTable()
        symbols.add_source(source, module_name)
        return self.run(symbols)

    def run(
        self,
        symbols: SymbolTable,
        modules: Optional[Sequence[str]] = None,
        results: Optional[CheckerRunResults] = None,
    ) -> CheckerRunResults:
        results = results or CheckerRunResults()
        checker_classes = [
            cls for cls in self.registry.get_enabled()
            if cls.rule.rule_id not in self.config.disabled_rules
            and cls.rule.error_id not in self.config.disabled_rules
        ]
        results.checker_names.extend(cls.name for cls in checker_classes)

        for module in symbols:
            if modules is not None and module.name not in modules:
                continue
            if not self._run_module(symbols, module, checker_classes, results):
                break

        results.diagnostics.sort(
            key=lambda d: (d.location.file, d.location.line, d.location.column)
        )
        return results

    def _run_module(
        self,
        symbols: SymbolTable,
        module: ModuleSymbols,
        checker_classes: List[Type[Checker]],
        results: CheckerRunResults,
    ) -> bool:
        suppressions = SuppressionManager.from_config(self.config)
        suppressions.load_inline_suppressions(module)
        ctx = CheckerContext(
            symbols=symbols,
            module=module,
            config=self.config,
            suppressions=suppressions,
            cancellation=self.cancellation,
            stats=results.stats,
        )
        for cls in checker_classes:
            checker = cls()
            t0 = time.monotonic()
            try:
                checker.configure(ctx)
                checker.collect_evidence(ctx)
                checker.diagnose(ctx)
                diags = checker.report(ctx)
            except OperationCancelled as exc:
                _log.warning("%s while checking %s", exc, module.name)
                results.cancelled = True
                return False
            except Exception:
                # degrade to no finding for this checker and module
                _log.exception("checker %s failed on %s", cls.name, module.name)
                diags = []
            elapsed_ms = (time.monotonic() - t0) * 1000.0

            results.diagnostics.extend(diags)
            results.diagnostics_by_checker[cls.name].extend(diags)
            key = f"{cls.name}_elapsed_ms"
            results.stats[key] = results.stats.get(key, 0.0) + elapsed_ms
        return True


__all__ = [
    "Diagnostic",
    "DiagnosticSeverity",
    "Confidence",
    "RuleDescriptor",
    "RULES",
    "RESERVED_RULE_IDS",
    "USAGE_RULE",
    "COMPLETENESS_RULE",
    "SuppressionManager",
    "Checker",
    "CheckerContext",
    "CheckerRegistry",
    "DeepCopyUsageChecker",
    "DeepCopyCompletenessChecker",
    "CheckerRunner",
    "CheckerRunResults",
    "default_registry",
    "discover_sources",
    "module_name_for",
]
