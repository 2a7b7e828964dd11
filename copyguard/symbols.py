"""
copyguard/symbols.py
════════════════════

Symbol model for analysed Python source.

This is the "host" layer the verifiers run on: it turns source text into
modules, classes, fields, procedures and resolved type references.  The
verifiers never look at raw syntax except for procedure bodies, and even
there every name goes through this model first.

Resolution rules
────────────────
  • A dotted name is resolved through the module's import table, then
    the module's own classes / functions / type variables, then builtins.
  • ``typing`` and ``typing_extensions`` aliases are canonicalised, so
    ``List[int]``, ``typing.List[int]`` and ``list[int]`` all resolve to
    ``builtins.list[builtins.int]``.
  • ``Optional[X]`` / ``X | None`` collapse to ``X``; other unions keep
    their arms under ``typing.Union``.
  • ``Annotated[X, ...]``, ``ClassVar[X]``, ``Final[X]`` resolve to ``X``;
    their wrappers are recorded on the field instead.
  • Anything else resolves to :data:`UNRESOLVED`.

Fields
──────
  • class-body annotated assignments,
  • ``self.x = ...`` / ``self.x: T = ...`` inside ``__init__`` (type taken
    from the annotation, or from the annotated ``__init__`` parameter the
    value is copied from),
  • ``@property`` / ``functools.cached_property`` methods.
"""

from __future__ import annotations

import ast
import builtins
import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import (
    Dict,
    FrozenSet,
    Iterator,
    List,
    Mapping,
    Optional,
    Sequence,
    Set,
    Tuple,
    Union,
)

from copyguard.errors import ErrorCodes, SourceError

_log = logging.getLogger(__name__)

_BUILTIN_NAMES: FrozenSet[str] = frozenset(dir(builtins))


# ═════════════════════════════════════════════════════════════════════════
#  PART 1: LOCATIONS AND TYPE REFERENCES
# ═════════════════════════════════════════════════════════════════════════

@dataclass(frozen=True)
class SourceLocation:
    """A specific point in source code (1-based line and column)."""
    file: str = ""
    line: int = 0
    column: int = 0
    end_column: int = 0

    def __str__(self) -> str:
        if self.column:
            return f"{self.file}:{self.line}:{self.column}"
        return f"{self.file}:{self.line}"


@dataclass(frozen=True)
class TypeRef:
    """
    A resolved type expression.

    ``qualname`` is fully qualified (``pkg.mod.Class``); ``args`` are the
    resolved type arguments, so ``list[A]`` and ``list[B]`` differ.
    """
    qualname: str
    args: Tuple[TypeRef, ...] = ()

    @property
    def identity(self) -> str:
        if not self.args:
            return self.qualname
        return f"{self.qualname}[{', '.join(a.identity for a in self.args)}]"

    @property
    def display_name(self) -> str:
        short = self.qualname.rsplit(".", 1)[-1]
        if not self.args:
            return short
        return f"{short}[{', '.join(a.display_name for a in self.args)}]"

    @property
    def is_resolved(self) -> bool:
        return self.qualname != UNRESOLVED.qualname

    def __str__(self) -> str:
        return self.identity


UNRESOLVED = TypeRef("?")
NONE_TYPE = TypeRef("builtins.NoneType")
UNION = "typing.Union"

_CANONICAL: Dict[str, str] = {
    "typing.List": "builtins.list",
    "typing.Dict": "builtins.dict",
    "typing.Set": "builtins.set",
    "typing.FrozenSet": "builtins.frozenset",
    "typing.Tuple": "builtins.tuple",
    "typing.Type": "builtins.type",
    "typing.Text": "builtins.str",
    "typing.Deque": "collections.deque",
    "typing.DefaultDict": "collections.defaultdict",
    "typing.OrderedDict": "collections.OrderedDict",
    "typing.Counter": "collections.Counter",
    "typing.ChainMap": "collections.ChainMap",
    "typing.Iterable": "collections.abc.Iterable",
    "typing.Collection": "collections.abc.Collection",
    "typing.Sequence": "collections.abc.Sequence",
    "typing.MutableSequence": "collections.abc.MutableSequence",
    "typing.AbstractSet": "collections.abc.Set",
    "typing.MutableSet": "collections.abc.MutableSet",
    "typing.Mapping": "collections.abc.Mapping",
    "typing.MutableMapping": "collections.abc.MutableMapping",
    "typing.Callable": "collections.abc.Callable",
    "typing.Pattern": "re.Pattern",
}

_WRAPPERS: FrozenSet[str] = frozenset({
    "typing.Annotated",
    "typing.ClassVar",
    "typing.Final",
    "typing.Required",
    "typing.NotRequired",
    "typing.ReadOnly",
})

_OPAQUE_GENERICS: FrozenSet[str] = frozenset({
    "collections.abc.Callable",
    "typing.Any",
    "typing.Protocol",
    "typing.Generic",
})

_PROPERTY_DECORATORS: FrozenSet[str] = frozenset({
    "builtins.property",
    "functools.cached_property",
})

_TYPEVAR_FACTORIES: FrozenSet[str] = frozenset({
    "typing.TypeVar",
    "typing.ParamSpec",
    "typing.TypeVarTuple",
})


def canonical_name(qualname: str) -> str:
    """Map ``typing`` / ``typing_extensions`` aliases to their runtime type."""
    if qualname.startswith("typing_extensions."):
        qualname = "typing." + qualname[len("typing_extensions."):]
    return _CANONICAL.get(qualname, qualname)


def dotted_name(node: ast.AST) -> Optional[str]:
    """``a.b.c`` for a Name/Attribute chain, else ``None``."""
    parts: List[str] = []
    while isinstance(node, ast.Attribute):
        parts.append(node.attr)
        node = node.value
    if not isinstance(node, ast.Name):
        return None
    parts.append(node.id)
    return ".".join(reversed(parts))


def _location(file: str, node: ast.AST, width: int = 0) -> SourceLocation:
    line = getattr(node, "lineno", 0) or 0
    col = (getattr(node, "col_offset", -1) or 0) + 1
    return SourceLocation(file=file, line=line, column=col,
                          end_column=col + width if width else 0)


# ═════════════════════════════════════════════════════════════════════════
#  PART 2: SYMBOLS
# ═════════════════════════════════════════════════════════════════════════

@dataclass
class FieldSymbol:
    """A field or property declared on a class."""
    name: str
    annotation: Optional[ast.expr]
    location: SourceLocation
    is_property: bool = False
    is_static: bool = False
    markers: FrozenSet[str] = frozenset()

    @property
    def is_public(self) -> bool:
        return not self.name.startswith("_")


@dataclass
class ClassSymbol:
    """A class declaration.  ``qualname`` is module-qualified."""
    name: str
    qualname: str
    module: ModuleSymbols
    node: ast.ClassDef
    location: SourceLocation
    decorators: FrozenSet[str] = frozenset()
    fields: List[FieldSymbol] = field(default_factory=list)
    methods: Set[str] = field(default_factory=set)
    type_params: Tuple[str, ...] = ()
    nested: Dict[str, str] = field(default_factory=dict)

    @property
    def local_name(self) -> str:
        """Name relative to the module (``Outer.Inner``)."""
        return self.qualname[len(self.module.name) + 1:]

    @property
    def bases(self) -> List[ast.expr]:
        return list(self.node.bases)

    def __repr__(self) -> str:
        return f"<ClassSymbol {self.qualname}>"


@dataclass(frozen=True)
class ParameterSymbol:
    name: str
    annotation: Optional[ast.expr]
    location: SourceLocation


@dataclass
class ProcedureSymbol:
    """A function or method declaration."""
    name: str
    qualname: str
    module: ModuleSymbols
    node: Union[ast.FunctionDef, ast.AsyncFunctionDef]
    location: SourceLocation
    parameters: List[ParameterSymbol] = field(default_factory=list)
    decorators: FrozenSet[str] = frozenset()
    enclosing_class: Optional[ClassSymbol] = None

    @property
    def body(self) -> List[ast.stmt]:
        return list(self.node.body)

    def __repr__(self) -> str:
        return f"<ProcedureSymbol {self.qualname}>"


# ═════════════════════════════════════════════════════════════════════════
#  PART 3: MODULES
# ═════════════════════════════════════════════════════════════════════════

class ModuleSymbols:
    """
    Symbols declared by one module.

    Build with :meth:`SymbolTable.add_source`; the constructor only
    stores the parsed tree.
    """

    def __init__(
        self,
        name: str,
        tree: ast.Module,
        source: str = "",
        path: str = "",
        is_package: bool = False,
    ) -> None:
        self.name = name
        self.tree = tree
        self.source = source
        self.path = path or f"<{name}>"
        self.is_package = is_package
        self.imports: Dict[str, str] = {}
        self.classes: Dict[str, ClassSymbol] = {}
        self.class_names: Set[str] = set()
        self.functions: Set[str] = set()
        self.type_vars: Set[str] = set()
        self.procedures: List[ProcedureSymbol] = []

    def __repr__(self) -> str:
        return f"<ModuleSymbols {self.name} ({len(self.classes)} classes)>"

    # ── name resolution ──────────────────────────────────────────────

    def resolve_name(
        self, dotted: str, scope: Optional[ClassSymbol] = None
    ) -> Optional[str]:
        """Resolve a dotted name used in this module to a qualified name."""
        head, _, rest = dotted.partition(".")
        tail = f".{rest}" if rest else ""
        while scope is not None:
            if head in scope.nested:
                return scope.nested[head] + tail
            scope = self._enclosing_class(scope)
        if head in self.imports:
            return self.imports[head] + tail
        if head in self.class_names or head in self.functions or head in self.type_vars:
            return f"{self.name}.{dotted}"
        if head in _BUILTIN_NAMES:
            return f"builtins.{dotted}"
        return None

    def _enclosing_class(self, cls: ClassSymbol) -> Optional[ClassSymbol]:
        outer, _, _ = cls.local_name.rpartition(".")
        return self.classes.get(outer) if outer else None

    def resolve_expr(
        self, node: ast.AST, scope: Optional[ClassSymbol] = None
    ) -> Optional[str]:
        """Resolve a decorator / metadata expression (calls are unwrapped)."""
        if isinstance(node, ast.Call):
            node = node.func
        dotted = dotted_name(node)
        if dotted is None:
            return None
        resolved = self.resolve_name(dotted, scope)
        return canonical_name(resolved) if resolved else None

    def is_type_var(self, qualname: str) -> bool:
        mod, _, name = qualname.rpartition(".")
        return mod == self.name and name in self.type_vars

    # ── building ─────────────────────────────────────────────────────

    def _package(self) -> str:
        if self.is_package:
            return self.name
        return self.name.rpartition(".")[0]

    def _absolute_module(self, module: Optional[str], level: int) -> str:
        if level == 0:
            return module or ""
        base = self._package()
        for _ in range(level - 1):
            base = base.rpartition(".")[0]
        if module:
            return f"{base}.{module}" if base else module
        return base

    def _collect_globals(self, body: Sequence[ast.stmt]) -> None:
        """First pass: imports, class names, functions, type variables."""
        for stmt in body:
            if isinstance(stmt, ast.Import):
                for alias in stmt.names:
                    if alias.asname:
                        self.imports[alias.asname] = alias.name
                    else:
                        head = alias.name.split(".", 1)[0]
                        self.imports[head] = head
            elif isinstance(stmt, ast.ImportFrom):
                base = self._absolute_module(stmt.module, stmt.level)
                for alias in stmt.names:
                    if alias.name == "*":
                        continue
                    target = f"{base}.{alias.name}" if base else alias.name
                    self.imports[alias.asname or alias.name] = target
            elif isinstance(stmt, ast.ClassDef):
                self.class_names.add(stmt.name)
            elif isinstance(stmt, (ast.FunctionDef, ast.AsyncFunctionDef)):
                self.functions.add(stmt.name)
            elif isinstance(stmt, ast.Assign):
                self._maybe_type_var(stmt)
            elif isinstance(stmt, ast.If):
                self._collect_globals(stmt.body)
                self._collect_globals(stmt.orelse)
            elif isinstance(stmt, ast.Try):
                self._collect_globals(stmt.body)
                for handler in stmt.handlers:
                    self._collect_globals(handler.body)
                self._collect_globals(stmt.orelse)
                self._collect_globals(stmt.finalbody)

    def _maybe_type_var(self, stmt: ast.Assign) -> None:
        if len(stmt.targets) != 1 or not isinstance(stmt.targets[0], ast.Name):
            return
        if not isinstance(stmt.value, ast.Call):
            return
        dotted = dotted_name(stmt.value.func)
        if dotted is None:
            return
        head = dotted.partition(".")[0]
        if head not in self.imports:
            return
        resolved = self.resolve_name(dotted)
        if resolved and canonical_name(resolved) in _TYPEVAR_FACTORIES:
            self.type_vars.add(stmt.targets[0].id)


# ═════════════════════════════════════════════════════════════════════════
#  PART 4: DECLARATION VISITOR
# ═════════════════════════════════════════════════════════════════════════

class _DeclarationVisitor(ast.NodeVisitor):
    """Second pass: classes, fields and procedures of one module."""

    def __init__(self, module: ModuleSymbols) -> None:
        self.module = module
        self._class_stack: List[ClassSymbol] = []
        self._func_depth = 0

    # ── classes ──────────────────────────────────────────────────────

    def visit_ClassDef(self, node: ast.ClassDef) -> None:
        if self._func_depth:
            # classes local to a function are not addressable by name
            return
        mod = self.module
        outer = self._class_stack[-1] if self._class_stack else None
        local = f"{outer.local_name}.{node.name}" if outer else node.name
        scope = outer
        cls = ClassSymbol(
            name=node.name,
            qualname=f"{mod.name}.{local}",
            module=mod,
            node=node,
            location=_location(mod.path, node),
            decorators=self._decorators(node.decorator_list, scope),
        )
        mod.classes[local] = cls
        if outer is not None:
            outer.nested[node.name] = cls.qualname

        self._class_stack.append(cls)
        cls.type_params = self._type_params(cls)
        for stmt in node.body:
            self._class_member(cls, stmt)
        for stmt in node.body:
            self.visit(stmt)
        self._class_stack.pop()

    def _type_params(self, cls: ClassSymbol) -> Tuple[str, ...]:
        pep695 = [
            p.name for p in getattr(cls.node, "type_params", None) or []
            if hasattr(p, "name")
        ]
        if pep695:
            return tuple(pep695)
        mod = self.module
        generic: List[str] = []
        seen: List[str] = []
        for base in cls.node.bases:
            if not isinstance(base, ast.Subscript):
                continue
            base_name = mod.resolve_expr(base.value)
            elts = (base.slice.elts if isinstance(base.slice, ast.Tuple)
                    else [base.slice])
            names = []
            for elt in elts:
                if isinstance(elt, ast.Name):
                    q = mod.resolve_name(elt.id)
                    if q and mod.is_type_var(q):
                        names.append(elt.id)
            if base_name in ("typing.Generic", "typing.Protocol"):
                generic = names
            for n in names:
                if n not in seen:
                    seen.append(n)
        return tuple(generic or seen)

    def _class_member(self, cls: ClassSymbol, stmt: ast.stmt) -> None:
        mod = self.module
        if isinstance(stmt, ast.AnnAssign) and isinstance(stmt.target, ast.Name):
            is_static, markers = _inspect_wrappers(mod, stmt.annotation, cls)
            self._add_field(cls, FieldSymbol(
                name=stmt.target.id,
                annotation=stmt.annotation,
                location=_location(mod.path, stmt.target, len(stmt.target.id)),
                is_static=is_static,
                markers=markers,
            ))
        elif isinstance(stmt, (ast.FunctionDef, ast.AsyncFunctionDef)):
            decorators = self._decorators(stmt.decorator_list, cls)
            if decorators & _PROPERTY_DECORATORS:
                self._add_field(cls, FieldSymbol(
                    name=stmt.name,
                    annotation=stmt.returns,
                    location=_location(mod.path, stmt, len(stmt.name)),
                    is_property=True,
                    markers=decorators,
                ))
            elif any(_is_accessor_decorator(d, stmt.name) for d in stmt.decorator_list):
                return
            else:
                cls.methods.add(stmt.name)
                if stmt.name == "__init__":
                    self._init_fields(cls, stmt)

    def _init_fields(
        self, cls: ClassSymbol, init: Union[ast.FunctionDef, ast.AsyncFunctionDef]
    ) -> None:
        positional = list(init.args.posonlyargs) + list(init.args.args)
        if not positional:
            return
        self_name = positional[0].arg
        params = {
            a.arg: a.annotation
            for a in positional[1:] + list(init.args.kwonlyargs)
        }
        mod = self.module
        for node in ast.walk(init):
            targets: List[ast.expr] = []
            annotation: Optional[ast.expr] = None
            value: Optional[ast.expr] = None
            if isinstance(node, ast.Assign):
                targets = list(node.targets)
                value = node.value
            elif isinstance(node, ast.AnnAssign):
                targets = [node.target]
                annotation = node.annotation
                value = node.value
            for target in targets:
                if not (isinstance(target, ast.Attribute)
                        and isinstance(target.value, ast.Name)
                        and target.value.id == self_name):
                    continue
                ann = annotation
                if ann is None and isinstance(value, ast.Name):
                    ann = params.get(value.id)
                is_static, markers = (
                    _inspect_wrappers(mod, ann, cls) if ann is not None
                    else (False, frozenset())
                )
                self._add_field(cls, FieldSymbol(
                    name=target.attr,
                    annotation=ann,
                    location=_location(mod.path, target, len(target.attr)),
                    is_static=is_static,
                    markers=markers,
                ))

    @staticmethod
    def _add_field(cls: ClassSymbol, sym: FieldSymbol) -> None:
        for existing in cls.fields:
            if existing.name == sym.name:
                if existing.annotation is None and sym.annotation is not None:
                    cls.fields[cls.fields.index(existing)] = sym
                return
        cls.fields.append(sym)

    # ── procedures ───────────────────────────────────────────────────

    def visit_FunctionDef(self, node: ast.FunctionDef) -> None:
        self._procedure(node, "def ")

    def visit_AsyncFunctionDef(self, node: ast.AsyncFunctionDef) -> None:
        self._procedure(node, "async def ")

    def _procedure(
        self,
        node: Union[ast.FunctionDef, ast.AsyncFunctionDef],
        keyword: str,
    ) -> None:
        mod = self.module
        owner = (self._class_stack[-1]
                 if self._class_stack and not self._func_depth else None)
        decorators = self._decorators(node.decorator_list, owner)
        args = node.args
        positional = list(args.posonlyargs) + list(args.args)
        if owner is not None and "builtins.staticmethod" not in decorators:
            positional = positional[1:]
        declared = positional[:]
        if args.vararg is not None:
            declared.append(args.vararg)
        declared.extend(args.kwonlyargs)
        if args.kwarg is not None:
            declared.append(args.kwarg)

        prefix = f"{owner.qualname}." if owner else f"{mod.name}."
        name_loc = SourceLocation(
            file=mod.path,
            line=node.lineno,
            column=node.col_offset + len(keyword) + 1,
            end_column=node.col_offset + len(keyword) + 1 + len(node.name),
        )
        mod.procedures.append(ProcedureSymbol(
            name=node.name,
            qualname=prefix + node.name,
            module=mod,
            node=node,
            location=name_loc,
            parameters=[
                ParameterSymbol(
                    name=a.arg,
                    annotation=a.annotation,
                    location=_location(mod.path, a, len(a.arg)),
                )
                for a in declared
            ],
            decorators=decorators,
            enclosing_class=owner,
        ))
        self._func_depth += 1
        self.generic_visit(node)
        self._func_depth -= 1

    # ── helpers ──────────────────────────────────────────────────────

    def _decorators(
        self, decorators: Sequence[ast.expr], scope: Optional[ClassSymbol]
    ) -> FrozenSet[str]:
        resolved = set()
        for deco in decorators:
            q = self.module.resolve_expr(deco, scope)
            if q:
                resolved.add(q)
        return frozenset(resolved)


def _is_accessor_decorator(deco: ast.expr, name: str) -> bool:
    """``@x.setter`` / ``@x.deleter`` on a property named ``x``."""
    return (isinstance(deco, ast.Attribute)
            and deco.attr in ("setter", "deleter", "getter")
            and isinstance(deco.value, ast.Name)
            and deco.value.id == name)


def _unquote(node: Optional[ast.expr]) -> Optional[ast.expr]:
    """Parse a string annotation into an expression."""
    if isinstance(node, ast.Constant) and isinstance(node.value, str):
        try:
            return ast.parse(node.value.strip(), mode="eval").body
        except SyntaxError:
            return None
    return node


def _subscript_args(node: ast.Subscript) -> List[ast.expr]:
    sl = node.slice
    if isinstance(sl, ast.Tuple):
        return list(sl.elts)
    return [sl]


def _inspect_wrappers(
    module: ModuleSymbols,
    annotation: Optional[ast.expr],
    scope: Optional[ClassSymbol],
) -> Tuple[bool, FrozenSet[str]]:
    """Return ``(is_class_var, annotated_metadata)`` for a field annotation."""
    is_static = False
    markers: Set[str] = set()
    node = _unquote(annotation)
    while isinstance(node, ast.Subscript):
        base = module.resolve_expr(node.value, scope)
        if base not in _WRAPPERS:
            break
        args = _subscript_args(node)
        if base == "typing.ClassVar":
            is_static = True
        elif base == "typing.Annotated":
            for meta in args[1:]:
                q = module.resolve_expr(meta, scope)
                if q:
                    markers.add(q)
        node = _unquote(args[0]) if args else None
    return is_static, frozenset(markers)


# ═════════════════════════════════════════════════════════════════════════
#  PART 5: SYMBOL TABLE
# ═════════════════════════════════════════════════════════════════════════

class SymbolTable:
    """
    All modules of one analysis run.

    Lookups are read-only once every module has been added, so a table
    may be shared by concurrent verifications.
    """

    def __init__(self) -> None:
        self.modules: Dict[str, ModuleSymbols] = {}

    def __iter__(self) -> Iterator[ModuleSymbols]:
        return iter(self.modules.values())

    def __len__(self) -> int:
        return len(self.modules)

    # ── construction ─────────────────────────────────────────────────

    def add_source(
        self,
        source: str,
        module_name: str = "__main__",
        path: str = "",
        is_package: bool = False,
    ) -> ModuleSymbols:
        """Parse *source* and register it as *module_name*."""
        filename = path or f"<{module_name}>"
        if module_name in self.modules:
            raise SourceError(
                f"Module '{module_name}' is already registered from "
                f"{self.modules[module_name].path}",
                code=ErrorCodes.SOURCE_DUPLICATE,
                file=filename,
            )
        try:
            tree = ast.parse(source, filename=filename)
        except SyntaxError as exc:
            raise SourceError(
                f"Syntax error: {exc.msg}",
                code=ErrorCodes.SOURCE_SYNTAX,
                file=filename,
                line=exc.lineno or 0,
            ) from exc
        module = ModuleSymbols(module_name, tree, source, filename, is_package)
        module._collect_globals(tree.body)
        _DeclarationVisitor(module).visit(tree)
        self.modules[module_name] = module
        _log.debug("registered %r", module)
        return module

    def add_file(self, path: Union[str, Path], module_name: str) -> ModuleSymbols:
        p = Path(path)
        try:
            source = p.read_text(encoding="utf-8")
        except (OSError, UnicodeDecodeError) as exc:
            raise SourceError(
                f"Cannot read source file: {exc}",
                code=ErrorCodes.SOURCE_UNREADABLE,
                file=str(p),
            ) from exc
        return self.add_source(
            source, module_name, str(p), is_package=p.name == "__init__.py"
        )

    # ── lookups ──────────────────────────────────────────────────────

    def lookup_class(self, qualname: str, _depth: int = 0) -> Optional[ClassSymbol]:
        """Find the class declared under *qualname*, following re-exports."""
        if _depth > 16:
            return None
        parts = qualname.split(".")
        for i in range(len(parts) - 1, 0, -1):
            module = self.modules.get(".".join(parts[:i]))
            if module is None:
                continue
            local = ".".join(parts[i:])
            cls = module.classes.get(local)
            if cls is not None:
                return cls
            head, _, rest = local.partition(".")
            if head in module.imports:
                target = module.imports[head] + (f".{rest}" if rest else "")
                if target != qualname:
                    return self.lookup_class(target, _depth + 1)
            return None
        return None

    # ── annotation resolution ────────────────────────────────────────

    def resolve_annotation(
        self,
        module: ModuleSymbols,
        annotation: Optional[ast.expr],
        env: Optional[Mapping[str, TypeRef]] = None,
        scope: Optional[ClassSymbol] = None,
    ) -> TypeRef:
        """Resolve a type annotation expression to a :class:`TypeRef`."""
        env = env or {}
        node = _unquote(annotation)
        if node is None:
            return UNRESOLVED

        if isinstance(node, ast.Constant):
            if node.value is None:
                return NONE_TYPE
            return UNRESOLVED

        if isinstance(node, ast.BinOp) and isinstance(node.op, ast.BitOr):
            return _union([
                self.resolve_annotation(module, node.left, env, scope),
                self.resolve_annotation(module, node.right, env, scope),
            ])

        if isinstance(node, (ast.Name, ast.Attribute)):
            dotted = dotted_name(node)
            if dotted is None:
                return UNRESOLVED
            if dotted in env:
                return env[dotted]
            return self._named(module, dotted, scope)

        if isinstance(node, ast.Subscript):
            base = self.resolve_annotation(module, node.value, env, scope)
            if not base.is_resolved:
                return UNRESOLVED
            q = base.qualname
            raw_args = _subscript_args(node)
            if q in _WRAPPERS:
                return self.resolve_annotation(module, raw_args[0], env, scope)
            if q == "typing.Optional":
                return _union([
                    self.resolve_annotation(module, raw_args[0], env, scope),
                    NONE_TYPE,
                ])
            if q == UNION:
                return _union([
                    self.resolve_annotation(module, a, env, scope)
                    for a in raw_args
                ])
            if q in _OPAQUE_GENERICS:
                return UNRESOLVED
            if q in ("typing.Literal", "builtins.type"):
                return TypeRef(q)
            args = tuple(
                self.resolve_annotation(module, a, env, scope)
                for a in raw_args
                if not (isinstance(a, ast.Constant) and a.value is Ellipsis)
                and not isinstance(a, ast.List)
            )
            return TypeRef(q, args)

        return UNRESOLVED

    def _named(
        self, module: ModuleSymbols, dotted: str, scope: Optional[ClassSymbol]
    ) -> TypeRef:
        resolved = module.resolve_name(dotted, scope)
        if resolved is None:
            return UNRESOLVED
        if module.is_type_var(resolved) or self._is_foreign_type_var(resolved):
            return UNRESOLVED
        q = canonical_name(resolved)
        if q in _OPAQUE_GENERICS:
            return UNRESOLVED
        if q == "builtins.None":
            return NONE_TYPE
        return TypeRef(q)

    def _is_foreign_type_var(self, qualname: str) -> bool:
        mod, _, name = qualname.rpartition(".")
        module = self.modules.get(mod)
        return module is not None and name in module.type_vars

    def resolve_base(
        self, cls: ClassSymbol, base: ast.expr, env: Mapping[str, TypeRef]
    ) -> TypeRef:
        """Resolve a base-class expression of *cls* in its outer scope."""
        outer = cls.module._enclosing_class(cls)
        return self.resolve_annotation(cls.module, base, env, outer)


def _union(arms: Sequence[TypeRef]) -> TypeRef:
    flat: List[TypeRef] = []
    for arm in arms:
        members = arm.args if arm.qualname == UNION else (arm,)
        for m in members:
            if m == NONE_TYPE or m in flat:
                continue
            flat.append(m)
    if not flat:
        return NONE_TYPE
    if len(flat) == 1:
        return flat[0]
    return TypeRef(UNION, tuple(flat))
