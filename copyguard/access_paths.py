"""
copyguard/access_paths.py
═════════════════════════

Static extraction of the member paths a procedure body reads from its
parameter.

    def clone(order: Order) -> Order:
        lines = [copy_line(l) for l in order.lines]   # lines.*
        return Order(order.id, order.customer.name,   # id, customer.name
                     lines)

Rules
─────
  • An attribute chain rooted at the parameter registers the longest
    prefix whose names resolve to fields or properties of the parameter's
    type graph.  Methods and unknown names end the chain; subscripts
    break it.
  • Iterating a chain (``for``, comprehensions, ``*x``, ``yield from``
    or an element-consumer call such as ``list(x)``) registers the chain
    followed by ``*``.  Iterating the bare parameter registers ``*``.
  • ``x.items()`` / ``x.values()`` / ``x.keys()`` / ``x.copy()`` count as
    iterating ``x``.
  • A nested ``def``, ``lambda`` or comprehension that rebinds the
    parameter name hides it.  A top-level statement that rebinds it hides
    the parameter from every later statement; reads inside that
    statement still count.

The result is a plain set; order and duplicates do not matter.
"""

from __future__ import annotations

import ast
import logging
from typing import Callable, FrozenSet, Iterable, List, Optional, Set

from copyguard.config import Config
from copyguard.type_graph import GLOBAL_ALL_ITEMS, AccessPath, TypeKind, TypeNode

_log = logging.getLogger(__name__)

_VIEW_METHODS: FrozenSet[str] = frozenset({"items", "values", "keys", "copy"})


def _bound_names(args: ast.arguments) -> Set[str]:
    names = {a.arg for a in args.posonlyargs + args.args + args.kwonlyargs}
    if args.vararg is not None:
        names.add(args.vararg.arg)
    if args.kwarg is not None:
        names.add(args.kwarg.arg)
    return names


def _target_names(target: ast.AST) -> Set[str]:
    return {n.id for n in ast.walk(target) if isinstance(n, ast.Name)}


def _stored_names(body: Iterable[ast.stmt]) -> Set[str]:
    names: Set[str] = set()
    for stmt in body:
        for node in ast.walk(stmt):
            if isinstance(node, ast.Name) and isinstance(node.ctx, ast.Store):
                names.add(node.id)
    return names


def _rebinds(stmt: ast.stmt, name: str) -> bool:
    """True if *stmt* binds *name* in the enclosing function scope."""
    pending: List[ast.AST] = [stmt]
    while pending:
        node = pending.pop()
        if isinstance(node, ast.Name):
            if node.id == name and isinstance(node.ctx, ast.Store):
                return True
            continue
        if isinstance(node, (ast.FunctionDef, ast.AsyncFunctionDef, ast.ClassDef)):
            if node.name == name:
                return True
            pending.extend(node.decorator_list)
            continue
        if isinstance(node, ast.ExceptHandler) and node.name == name:
            return True
        if isinstance(node, ast.alias):
            if (node.asname or node.name.partition(".")[0]) == name:
                return True
            continue
        if isinstance(node, (ast.Lambda, ast.ListComp, ast.SetComp,
                             ast.DictComp, ast.GeneratorExp)):
            continue
        pending.extend(ast.iter_child_nodes(node))
    return False


class AccessPathExtractor:
    """
    Extract access paths for one parameter.

    *root* is the parameter's type graph, used to tell fields and
    properties from methods.  *resolve* maps a call's callee expression
    to a qualified name (``builtins.list``); without it element-consumer
    calls are not recognised.
    """

    def __init__(
        self,
        root: TypeNode,
        resolve: Optional[Callable[[ast.expr], Optional[str]]] = None,
        config: Optional[Config] = None,
    ) -> None:
        self.root = root
        self.resolve = resolve
        self.config = config or Config()

    def extract(
        self, body: Iterable[ast.stmt], root_param_name: str
    ) -> FrozenSet[AccessPath]:
        collector = _PathCollector(self, root_param_name)
        for stmt in body:
            collector.visit(stmt)
            if not collector.hidden and _rebinds(stmt, root_param_name):
                _log.debug("%r rebound at line %d", root_param_name, stmt.lineno)
                collector.hidden = True
        _log.debug("extracted %d path(s) for %r", len(collector.paths),
                   root_param_name)
        return frozenset(collector.paths)

    def resolve_chain(self, names: List[str]) -> AccessPath:
        """Longest prefix of *names* that resolves to fields/properties."""
        node: Optional[TypeNode] = self.root
        resolved: List[str] = []
        for name in names:
            if node is None or node.kind is not TypeKind.COMPOSITE:
                break
            member = node.member(name)
            if member is None:
                break
            resolved.append(name)
            node = member.declared_type
        return AccessPath(tuple(resolved))


class _PathCollector(ast.NodeVisitor):
    """
    Visitor behind :meth:`AccessPathExtractor.extract`.

    Attributes
    ----------
    param  : Name of the parameter being tracked
    paths  : Access paths registered so far
    hidden : True while the parameter name is rebound, so reads
             of it are not registered
    """

    def __init__(self, extractor: AccessPathExtractor, param: str) -> None:
        self.extractor = extractor
        self.param = param
        self.paths: Set[AccessPath] = set()
        self.hidden = False

    # ── helpers ──────────────────────────────────────────────────────

    def _chain(self, node: ast.expr) -> Optional[List[str]]:
        names: List[str] = []
        while isinstance(node, ast.Attribute):
            names.append(node.attr)
            node = node.value
        if isinstance(node, ast.Name) and node.id == self.param:
            names.reverse()
            return names
        return None

    def _iterated(self, subject: ast.expr) -> None:
        if self.hidden:
            return
        if (isinstance(subject, ast.Call) and not subject.args
                and isinstance(subject.func, ast.Attribute)
                and subject.func.attr in _VIEW_METHODS):
            subject = subject.func.value
        if isinstance(subject, ast.Name) and subject.id == self.param:
            self.paths.add(GLOBAL_ALL_ITEMS)
            return
        names = self._chain(subject)
        if not names:
            return
        path = self.extractor.resolve_chain(names)
        if len(path) == len(names):
            self.paths.add(path.all_items())

    def _hiding(self, hidden: bool, nodes: Iterable[ast.AST]) -> None:
        saved = self.hidden
        self.hidden = self.hidden or hidden
        for node in nodes:
            self.visit(node)
        self.hidden = saved

    # ── accesses ─────────────────────────────────────────────────────

    def visit_Attribute(self, node: ast.Attribute) -> None:
        if not self.hidden:
            names = self._chain(node)
            if names:
                path = self.extractor.resolve_chain(names)
                if path.components:
                    self.paths.add(path)
        self.generic_visit(node)

    # ── iteration ────────────────────────────────────────────────────

    def visit_For(self, node: ast.For) -> None:
        self._iterated(node.iter)
        self.generic_visit(node)

    visit_AsyncFor = visit_For

    def visit_Starred(self, node: ast.Starred) -> None:
        if isinstance(node.ctx, ast.Load):
            self._iterated(node.value)
        self.generic_visit(node)

    def visit_YieldFrom(self, node: ast.YieldFrom) -> None:
        self._iterated(node.value)
        self.generic_visit(node)

    def visit_Call(self, node: ast.Call) -> None:
        resolve = self.extractor.resolve
        if resolve is not None and node.args:
            callee = resolve(node.func)
            if callee in self.extractor.config.element_consumers:
                for arg in self._consumed(callee, node.args):
                    self._iterated(arg)
        self.generic_visit(node)

    @staticmethod
    def _consumed(callee: str, args: List[ast.expr]) -> List[ast.expr]:
        if callee == "builtins.zip":
            return args
        if callee in ("builtins.map", "builtins.filter"):
            return args[1:]
        return args[:1]

    # ── scopes ───────────────────────────────────────────────────────

    def _visit_function(self, node: ast.AST, args: ast.arguments,
                        body: List[ast.AST]) -> None:
        # defaults and decorators belong to the enclosing scope
        outer: List[ast.AST] = list(args.defaults)
        outer.extend(d for d in args.kw_defaults if d is not None)
        outer.extend(getattr(node, "decorator_list", []))
        self._hiding(False, outer)
        stmts = [s for s in body if isinstance(s, ast.stmt)]
        rebinds = self.param in _bound_names(args) or self.param in _stored_names(stmts)
        self._hiding(rebinds, body)

    def visit_FunctionDef(self, node: ast.FunctionDef) -> None:
        self._visit_function(node, node.args, list(node.body))

    visit_AsyncFunctionDef = visit_FunctionDef

    def visit_Lambda(self, node: ast.Lambda) -> None:
        self._visit_function(node, node.args, [node.body])

    def _visit_comprehension(self, node: ast.AST, results: List[ast.expr]) -> None:
        saved = self.hidden
        for gen in node.generators:  # type: ignore[attr-defined]
            self._iterated(gen.iter)
            self.visit(gen.iter)
            if self.param in _target_names(gen.target):
                self.hidden = True
            for cond in gen.ifs:
                self.visit(cond)
        for result in results:
            self.visit(result)
        self.hidden = saved

    def visit_ListComp(self, node: ast.ListComp) -> None:
        self._visit_comprehension(node, [node.elt])

    visit_SetComp = visit_ListComp
    visit_GeneratorExp = visit_ListComp

    def visit_DictComp(self, node: ast.DictComp) -> None:
        self._visit_comprehension(node, [node.key, node.value])
