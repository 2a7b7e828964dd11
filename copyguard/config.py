"""
copyguard/config.py
═══════════════════

Analyzer configuration and its S-expression file format.

File format
───────────
A ``.copyguard`` file holds one ``(copyguard ...)`` form::

    ; comments start with a semicolon
    (copyguard
      (markers
        (copy-procedure "mylib.annotations.deep_copy")
        (exempt "mylib.annotations.NoCopy"))
      (closed-types "mylib.FrozenThing")
      (primitive-types "numpy.float64" "numpy.int64")
      (collection-types "mylib.Bag")
      (element-consumers list tuple sorted)
      (global-iteration-satisfies-all #f)
      (step-budget 100000)
      (disable "CPY003")
      (suppress "CPY003" "legacy/*.py"))

Every list-valued form *adds* to the built-in defaults.  Names are
fully qualified (``module.Name``); bare builtin names such as ``list``
are accepted for ``element-consumers``.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field, replace
from pathlib import Path
from typing import Any, Callable, Dict, FrozenSet, List, Optional, Tuple, Union

import sexpdata
from sexpdata import Symbol

from copyguard.errors import ConfigError, ErrorCodes
from copyguard.markers import COPY_PROCEDURE_MARKERS, EXEMPT_MARKERS

_log = logging.getLogger(__name__)

DEFAULT_CONFIG_NAME = ".copyguard"

# ═══════════════════════════════════════════════════════════════════════
#  Built-in type tables
# ═══════════════════════════════════════════════════════════════════════

FINAL_DECORATORS: FrozenSet[str] = frozenset({
    "typing.final",
    "typing_extensions.final",
})

PRIMITIVE_TYPES: FrozenSet[str] = frozenset({
    "builtins.int",
    "builtins.float",
    "builtins.complex",
    "builtins.bool",
    "builtins.str",
    "builtins.bytes",
    "builtins.bytearray",
    "builtins.NoneType",
    "builtins.type",
    "typing.Literal",
    "typing.LiteralString",
    "decimal.Decimal",
    "fractions.Fraction",
    "datetime.date",
    "datetime.datetime",
    "datetime.time",
    "datetime.timedelta",
    "datetime.timezone",
    "uuid.UUID",
    "pathlib.Path",
    "pathlib.PurePath",
    "pathlib.PosixPath",
    "pathlib.WindowsPath",
    "re.Pattern",
    "typing.Pattern",
})

COLLECTION_TYPES: FrozenSet[str] = frozenset({
    "builtins.list",
    "builtins.tuple",
    "builtins.set",
    "builtins.frozenset",
    "builtins.dict",
    "collections.deque",
    "collections.defaultdict",
    "collections.OrderedDict",
    "collections.Counter",
    "collections.ChainMap",
    "collections.abc.Iterable",
    "collections.abc.Collection",
    "collections.abc.Sequence",
    "collections.abc.MutableSequence",
    "collections.abc.Set",
    "collections.abc.MutableSet",
    "collections.abc.Mapping",
    "collections.abc.MutableMapping",
})

ELEMENT_CONSUMERS: FrozenSet[str] = frozenset({
    "builtins.list",
    "builtins.tuple",
    "builtins.set",
    "builtins.frozenset",
    "builtins.dict",
    "builtins.sorted",
    "builtins.reversed",
    "builtins.enumerate",
    "builtins.iter",
    "builtins.map",
    "builtins.filter",
    "builtins.zip",
    "collections.deque",
    "collections.OrderedDict",
    "copy.deepcopy",
})


@dataclass(frozen=True)
class Config:
    """
    Immutable analyzer settings.

    Attributes
    ----------
    copy_procedure_markers : qualified names of the copy-procedure decorator
    exempt_markers         : qualified names of exemption markers
    final_decorators       : decorators that make a class closed
    closed_types           : extra qualified names treated as closed
    primitive_types        : qualified names treated as scalar leaves
    collection_types       : qualified names treated as element containers
    element_consumers      : callables whose first argument is iterated
    global_iteration_satisfies_all :
        when true, iterating the parameter itself satisfies every
        collection member (the permissive reference behaviour)
    step_budget            : verification steps allowed per run (``None`` = no limit)
    disabled_rules         : rule ids never reported
    suppressions           : ``(rule_id, file_pattern)`` pairs
    """

    copy_procedure_markers: FrozenSet[str] = COPY_PROCEDURE_MARKERS
    exempt_markers: FrozenSet[str] = EXEMPT_MARKERS
    final_decorators: FrozenSet[str] = FINAL_DECORATORS
    closed_types: FrozenSet[str] = frozenset()
    primitive_types: FrozenSet[str] = PRIMITIVE_TYPES
    collection_types: FrozenSet[str] = COLLECTION_TYPES
    element_consumers: FrozenSet[str] = ELEMENT_CONSUMERS
    global_iteration_satisfies_all: bool = True
    step_budget: Optional[int] = None
    disabled_rules: FrozenSet[str] = frozenset()
    suppressions: Tuple[Tuple[str, str], ...] = field(default_factory=tuple)

    def with_overrides(self, **changes: Any) -> Config:
        return replace(self, **changes)


# ═══════════════════════════════════════════════════════════════════════
#  S-expression helpers
# ═══════════════════════════════════════════════════════════════════════

Sexp = Any


def _sym_name(s: Sexp) -> str:
    """Extract the string name from a ``sexpdata.Symbol``, or raise."""
    if isinstance(s, Symbol):
        value = getattr(s, "value", None)
        return value() if callable(value) else str(s)
    raise ConfigError(
        f"Expected symbol, got {type(s).__name__}: {s!r}",
        code=ErrorCodes.CONFIG_BAD_VALUE,
    )


def _as_str(s: Sexp) -> str:
    """Coerce *s* to ``str``; accepts a symbol or a string literal."""
    if isinstance(s, Symbol):
        return _sym_name(s)
    if isinstance(s, str):
        return s
    raise ConfigError(
        f"Expected string or symbol, got {type(s).__name__}: {s!r}",
        code=ErrorCodes.CONFIG_BAD_VALUE,
    )


def _as_bool(s: Sexp) -> bool:
    if isinstance(s, bool):
        return s
    if isinstance(s, Symbol):
        v = _sym_name(s).lower()
        if v in ("true", "#t", "t", "yes"):
            return True
        if v in ("false", "#f", "nil", "no"):
            return False
    raise ConfigError(
        f"Expected boolean, got {s!r}", code=ErrorCodes.CONFIG_BAD_VALUE
    )


def _as_int(s: Sexp) -> int:
    if isinstance(s, int) and not isinstance(s, bool):
        return s
    raise ConfigError(
        f"Expected integer, got {s!r}", code=ErrorCodes.CONFIG_BAD_VALUE
    )


def _expect_form(s: Sexp) -> Tuple[str, list]:
    """Split ``(tag args...)`` into its head name and arguments."""
    if not isinstance(s, list) or not s:
        raise ConfigError(
            f"Expected a (form ...), got {s!r}", code=ErrorCodes.CONFIG_BAD_VALUE
        )
    return _sym_name(s[0]), list(s[1:])


def _qualify_builtin(name: str) -> str:
    return name if "." in name else f"builtins.{name}"


# ═══════════════════════════════════════════════════════════════════════
#  Form handlers
# ═══════════════════════════════════════════════════════════════════════

_FORMS: Dict[str, Callable[[Dict[str, Any], list], None]] = {}


def _register(tag: str):
    """Decorator: register a handler for the ``(tag ...)`` form."""
    def deco(fn):
        _FORMS[tag] = fn
        return fn
    return deco


def _extend(acc: Dict[str, Any], key: str, values: List[str]) -> None:
    acc[key] = frozenset(acc[key]) | frozenset(values)


@_register("markers")
def _form_markers(acc: Dict[str, Any], args: list) -> None:
    for item in args:
        tag, values = _expect_form(item)
        names = [_as_str(v) for v in values]
        if tag == "copy-procedure":
            _extend(acc, "copy_procedure_markers", names)
        elif tag == "exempt":
            _extend(acc, "exempt_markers", names)
        elif tag == "final":
            _extend(acc, "final_decorators", names)
        else:
            raise ConfigError(
                f"Unknown marker kind '{tag}'",
                code=ErrorCodes.CONFIG_UNKNOWN_FORM,
                hint="expected copy-procedure, exempt or final",
            )


@_register("closed-types")
def _form_closed(acc: Dict[str, Any], args: list) -> None:
    _extend(acc, "closed_types", [_as_str(a) for a in args])


@_register("primitive-types")
def _form_primitive(acc: Dict[str, Any], args: list) -> None:
    _extend(acc, "primitive_types", [_as_str(a) for a in args])


@_register("collection-types")
def _form_collection(acc: Dict[str, Any], args: list) -> None:
    _extend(acc, "collection_types", [_as_str(a) for a in args])


@_register("element-consumers")
def _form_consumers(acc: Dict[str, Any], args: list) -> None:
    _extend(
        acc, "element_consumers", [_qualify_builtin(_as_str(a)) for a in args]
    )


@_register("global-iteration-satisfies-all")
def _form_global_iteration(acc: Dict[str, Any], args: list) -> None:
    if len(args) != 1:
        raise ConfigError(
            "global-iteration-satisfies-all takes exactly one boolean",
            code=ErrorCodes.CONFIG_BAD_VALUE,
        )
    acc["global_iteration_satisfies_all"] = _as_bool(args[0])


@_register("step-budget")
def _form_step_budget(acc: Dict[str, Any], args: list) -> None:
    if len(args) != 1:
        raise ConfigError(
            "step-budget takes exactly one integer",
            code=ErrorCodes.CONFIG_BAD_VALUE,
        )
    budget = _as_int(args[0])
    if budget <= 0:
        raise ConfigError(
            f"step-budget must be positive, got {budget}",
            code=ErrorCodes.CONFIG_BAD_VALUE,
        )
    acc["step_budget"] = budget


@_register("disable")
def _form_disable(acc: Dict[str, Any], args: list) -> None:
    _extend(acc, "disabled_rules", [_as_str(a) for a in args])


@_register("suppress")
def _form_suppress(acc: Dict[str, Any], args: list) -> None:
    if len(args) != 2:
        raise ConfigError(
            "suppress takes a rule id and a file pattern",
            code=ErrorCodes.CONFIG_BAD_VALUE,
        )
    acc["suppressions"] = tuple(acc["suppressions"]) + (
        (_as_str(args[0]), _as_str(args[1])),
    )


# ═══════════════════════════════════════════════════════════════════════
#  Public API
# ═══════════════════════════════════════════════════════════════════════

def parse_config(text: str, source: str = "<config>") -> Config:
    """Parse configuration text into a :class:`Config`."""
    try:
        forms = sexpdata.loads(f"({text})", nil=None, true=None)
    except Exception as exc:
        raise ConfigError(
            f"Failed to parse S-expression: {exc}",
            code=ErrorCodes.CONFIG_SYNTAX,
            file=source,
        ) from exc

    defaults = Config()
    acc: Dict[str, Any] = {
        name: getattr(defaults, name) for name in defaults.__dataclass_fields__
    }
    for top in forms:
        tag, body = _expect_form(top)
        if tag != "copyguard":
            raise ConfigError(
                f"Expected (copyguard ...), got ({tag} ...)",
                code=ErrorCodes.CONFIG_UNKNOWN_FORM,
                file=source,
            )
        for item in body:
            form, args = _expect_form(item)
            handler = _FORMS.get(form)
            if handler is None:
                raise ConfigError(
                    f"Unknown configuration form '{form}'",
                    code=ErrorCodes.CONFIG_UNKNOWN_FORM,
                    file=source,
                    hint="known forms: " + ", ".join(sorted(_FORMS)),
                )
            handler(acc, args)

    config = Config(**acc)
    _log.debug("loaded configuration from %s: %r", source, config)
    return config


def load_config(path: Optional[Union[str, Path]] = None) -> Config:
    """
    Load configuration from *path*.

    With ``path=None`` the file ``.copyguard`` in the current directory is
    used when it exists, otherwise the defaults are returned.  An explicit
    path that does not exist raises :class:`ConfigError`.
    """
    if path is None:
        candidate = Path.cwd() / DEFAULT_CONFIG_NAME
        if not candidate.is_file():
            return Config()
        path = candidate
    p = Path(path)
    try:
        text = p.read_text(encoding="utf-8")
    except FileNotFoundError as exc:
        raise ConfigError(
            f"Configuration file not found: {p}",
            code=ErrorCodes.CONFIG_NOT_FOUND,
            file=str(p),
        ) from exc
    except OSError as exc:
        raise ConfigError(
            f"Cannot read configuration file: {exc}",
            code=ErrorCodes.CONFIG_NOT_FOUND,
            file=str(p),
        ) from exc
    return parse_config(text, source=str(p))
