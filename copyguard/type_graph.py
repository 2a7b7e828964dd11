"""
copyguard/type_graph.py
═══════════════════════

Type-graph model shared by the verifiers.

  TypeNode ──(members)──▶ Member ──(declared_type)──▶ TypeNode
  TypeNode ──(element_types)──▶ TypeNode            (collections, unions)

The graph may contain cycles (``class Node: next: Node``) and shared
nodes (diamonds).  Node identity is the canonical string of the resolved
type, so ``list[A]`` and ``list[B]`` are different nodes while two
references to ``A`` are the same node.

Graphs are built fresh for every verification call by
:class:`TypeGraphBuilder` and never shared between calls.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from enum import Enum
from typing import Dict, FrozenSet, List, Mapping, Optional, Set, Tuple

from copyguard.cancellation import CancellationToken
from copyguard.config import Config
from copyguard.symbols import (
    UNION,
    UNRESOLVED,
    ClassSymbol,
    FieldSymbol,
    SourceLocation,
    SymbolTable,
    TypeRef,
)

_log = logging.getLogger(__name__)

#: Final path component meaning "every element was iterated".
ALL_ITEMS = "*"

_ENUM_BASES: FrozenSet[str] = frozenset({
    "enum.Enum",
    "enum.IntEnum",
    "enum.StrEnum",
    "enum.Flag",
    "enum.IntFlag",
    "enum.ReprEnum",
})

# Deeper type expressions are treated as opaque; this bounds graphs built
# from self-expanding generics such as ``child: Node[list[T]]``.
_MAX_TYPE_NESTING = 12


class TypeKind(Enum):
    PRIMITIVE = "primitive"
    COMPOSITE = "composite"
    COLLECTION = "collection"
    UNION = "union"
    OPAQUE = "opaque"


class MemberKind(Enum):
    SCALAR = "scalar"
    COMPOSITE = "composite"
    COLLECTION = "collection"
    OPAQUE = "opaque"


_MEMBER_KIND = {
    TypeKind.PRIMITIVE: MemberKind.SCALAR,
    TypeKind.COMPOSITE: MemberKind.COMPOSITE,
    TypeKind.COLLECTION: MemberKind.COLLECTION,
    TypeKind.UNION: MemberKind.OPAQUE,
    TypeKind.OPAQUE: MemberKind.OPAQUE,
}


# ═════════════════════════════════════════════════════════════════════════
#  PART 1: MODEL
# ═════════════════════════════════════════════════════════════════════════

@dataclass(eq=False)
class TypeNode:
    """
    One type reachable from a copy procedure's parameter.

    ``members`` lists every field and property in declaration order,
    inherited ones first; use :class:`~copyguard.members.MemberEnumerator`
    for the copyable subset.
    """
    identity: str
    name: str
    kind: TypeKind
    is_closed: bool
    members: List[Member] = field(default_factory=list)
    element_types: Tuple[TypeNode, ...] = ()
    methods: FrozenSet[str] = frozenset()
    location: Optional[SourceLocation] = None

    def member(self, name: str) -> Optional[Member]:
        for m in self.members:
            if m.name == name:
                return m
        return None

    def __repr__(self) -> str:
        return f"<TypeNode {self.identity} {self.kind.value}>"


@dataclass(eq=False)
class Member:
    """A field or property of a :class:`TypeNode`."""
    name: str
    declared_type: Optional[TypeNode]
    exempted: bool = False
    is_public: bool = True
    is_static: bool = False
    is_property: bool = False
    location: Optional[SourceLocation] = None

    @property
    def kind(self) -> MemberKind:
        if self.declared_type is None:
            return MemberKind.OPAQUE
        return _MEMBER_KIND[self.declared_type.kind]

    @property
    def element_types(self) -> Tuple[TypeNode, ...]:
        if self.kind is MemberKind.COLLECTION:
            return self.declared_type.element_types  # type: ignore[union-attr]
        return ()

    @property
    def element_type(self) -> Optional[TypeNode]:
        elements = self.element_types
        return elements[0] if elements else None

    def __repr__(self) -> str:
        return f"<Member {self.name}: {self.kind.value}>"


@dataclass(frozen=True)
class AccessPath:
    """
    Dot-separated member names read from the parameter.

    The last component may be :data:`ALL_ITEMS`; ``AccessPath((ALL_ITEMS,))``
    means the parameter itself was iterated.
    """
    components: Tuple[str, ...] = ()

    @classmethod
    def of(cls, *names: str) -> AccessPath:
        return cls(tuple(names))

    @classmethod
    def parse(cls, text: str) -> AccessPath:
        return cls(tuple(p for p in text.split(".") if p))

    def child(self, name: str) -> AccessPath:
        return AccessPath(self.components + (name,))

    def all_items(self) -> AccessPath:
        return self.child(ALL_ITEMS)

    @property
    def is_global_all_items(self) -> bool:
        return self.components == (ALL_ITEMS,)

    def __len__(self) -> int:
        return len(self.components)

    def __str__(self) -> str:
        return ".".join(self.components)


GLOBAL_ALL_ITEMS = AccessPath((ALL_ITEMS,))


# ═════════════════════════════════════════════════════════════════════════
#  PART 2: CONSTRUCTION
# ═════════════════════════════════════════════════════════════════════════

def _nesting(ref: TypeRef) -> int:
    depth, stack = 0, [(ref, 1)]
    while stack:
        current, level = stack.pop()
        depth = max(depth, level)
        stack.extend((a, level + 1) for a in current.args)
    return depth


class TypeGraphBuilder:
    """
    Build the type graph reachable from a :class:`TypeRef`.

    One builder per verification call.  Nodes are memoised by identity
    for the lifetime of the builder, which is what makes cyclic and
    diamond-shaped graphs finite.  Only copyable members (public,
    instance-level, not exempted) have their types resolved and expanded;
    other members are recorded with ``declared_type=None`` so the access
    path extractor can still recognise them as fields.
    """

    def __init__(
        self,
        symbols: SymbolTable,
        config: Optional[Config] = None,
        cancellation: Optional[CancellationToken] = None,
    ) -> None:
        self.symbols = symbols
        self.config = config or Config()
        self.cancellation = cancellation or CancellationToken()
        self._nodes: Dict[str, TypeNode] = {}
        self._pending: List[Tuple[TypeNode, ClassSymbol, Dict[str, TypeRef]]] = []

    @property
    def node_count(self) -> int:
        return len(self._nodes)

    def build(self, ref: TypeRef) -> TypeNode:
        root = self._node_for(ref)
        while self._pending:
            self.cancellation.throw_if_cancelled()
            node, cls, env = self._pending.pop()
            self._expand(node, cls, env)
        _log.debug("built type graph for %s: %d node(s)", ref, len(self._nodes))
        return root

    # ── node classification ──────────────────────────────────────────

    def _node_for(self, ref: TypeRef) -> TypeNode:
        key = ref.identity
        node = self._nodes.get(key)
        if node is not None:
            return node

        cfg = self.config
        q = ref.qualname
        if not ref.is_resolved or _nesting(ref) > _MAX_TYPE_NESTING:
            node = self._add(ref, TypeKind.OPAQUE, False)
        elif q == UNION:
            node = self._add(ref, TypeKind.UNION, False)
            node.element_types = tuple(self._node_for(a) for a in ref.args)
        elif q in cfg.primitive_types:
            node = self._add(ref, TypeKind.PRIMITIVE, True)
        elif q in cfg.collection_types:
            node = self._add(ref, TypeKind.COLLECTION, q in cfg.closed_types)
            node.element_types = tuple(self._node_for(a) for a in ref.args)
        else:
            node = self._node_for_class(ref)
        return node

    def _node_for_class(self, ref: TypeRef) -> TypeNode:
        cfg = self.config
        cls = self.symbols.lookup_class(ref.qualname)
        if cls is None:
            if ref.qualname in cfg.closed_types:
                return self._add(ref, TypeKind.COMPOSITE, True)
            return self._add(ref, TypeKind.OPAQUE, False)

        is_closed = bool(cls.decorators & cfg.final_decorators) or (
            cls.qualname in cfg.closed_types
        )
        if self._is_enum(cls, set()):
            return self._add(ref, TypeKind.PRIMITIVE, True, cls.location)

        env = self._env(cls, ref.args)
        elements = self._collection_base(cls, env, set())
        if elements is not None:
            node = self._add(ref, TypeKind.COLLECTION, is_closed, cls.location)
            node.element_types = tuple(self._node_for(a) for a in elements)
            return node

        node = self._add(ref, TypeKind.COMPOSITE, is_closed, cls.location)
        self._pending.append((node, cls, env))
        return node

    def _add(
        self,
        ref: TypeRef,
        kind: TypeKind,
        is_closed: bool,
        location: Optional[SourceLocation] = None,
    ) -> TypeNode:
        node = TypeNode(
            identity=ref.identity,
            name=ref.display_name,
            kind=kind,
            is_closed=is_closed,
            location=location,
        )
        self._nodes[node.identity] = node
        return node

    @staticmethod
    def _env(cls: ClassSymbol, args: Tuple[TypeRef, ...]) -> Dict[str, TypeRef]:
        return {
            name: args[i] if i < len(args) else UNRESOLVED
            for i, name in enumerate(cls.type_params)
        }

    def _bases(
        self, cls: ClassSymbol, env: Mapping[str, TypeRef]
    ) -> List[TypeRef]:
        return [self.symbols.resolve_base(cls, b, env) for b in cls.bases]

    def _is_enum(self, cls: ClassSymbol, seen: Set[str]) -> bool:
        if cls.qualname in seen:
            return False
        seen.add(cls.qualname)
        for base in self._bases(cls, {}):
            if base.qualname in _ENUM_BASES:
                return True
            base_cls = self.symbols.lookup_class(base.qualname)
            if base_cls is not None and self._is_enum(base_cls, seen):
                return True
        return False

    def _collection_base(
        self, cls: ClassSymbol, env: Mapping[str, TypeRef], seen: Set[str]
    ) -> Optional[Tuple[TypeRef, ...]]:
        """Element type arguments if *cls* derives from a collection."""
        if cls.qualname in seen:
            return None
        seen.add(cls.qualname)
        for base in self._bases(cls, env):
            if base.qualname in self.config.collection_types:
                return base.args
            base_cls = self.symbols.lookup_class(base.qualname)
            if base_cls is not None:
                found = self._collection_base(
                    base_cls, self._env(base_cls, base.args), seen
                )
                if found is not None:
                    return found
        return None

    # ── member expansion ─────────────────────────────────────────────

    def _expand(
        self, node: TypeNode, cls: ClassSymbol, env: Dict[str, TypeRef]
    ) -> None:
        fields: Dict[str, Tuple[FieldSymbol, ClassSymbol, Dict[str, TypeRef]]] = {}
        methods: Set[str] = set()
        self._collect(cls, env, fields, methods, set())

        exempt = self.config.exempt_markers
        for name, (sym, owner, owner_env) in fields.items():
            self.cancellation.throw_if_cancelled()
            exempted = bool(sym.markers & exempt)
            declared: Optional[TypeNode] = None
            if sym.is_public and not sym.is_static and not exempted:
                ref = self.symbols.resolve_annotation(
                    owner.module, sym.annotation, owner_env, scope=owner
                )
                declared = self._node_for(ref)
            node.members.append(Member(
                name=name,
                declared_type=declared,
                exempted=exempted,
                is_public=sym.is_public,
                is_static=sym.is_static,
                is_property=sym.is_property,
                location=sym.location,
            ))
        node.methods = frozenset(methods - set(fields))

    def _collect(
        self,
        cls: ClassSymbol,
        env: Dict[str, TypeRef],
        fields: Dict[str, Tuple[FieldSymbol, ClassSymbol, Dict[str, TypeRef]]],
        methods: Set[str],
        seen: Set[str],
    ) -> None:
        """Gather fields base-first (dataclass order) and method names."""
        if cls.qualname in seen:
            return
        seen.add(cls.qualname)
        for base in reversed(self._bases(cls, env)):
            base_cls = self.symbols.lookup_class(base.qualname)
            if base_cls is not None:
                self._collect(
                    base_cls, self._env(base_cls, base.args), fields, methods, seen
                )
        for sym in cls.fields:
            fields[sym.name] = (sym, cls, env)
        methods.update(cls.methods)
