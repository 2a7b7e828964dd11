"""
copyguard/closedness.py
═══════════════════════

Closedness verification: every type reachable from a copy procedure's
parameter through copyable members must be closed (``@final``, an enum,
a primitive or listed in ``closed-types``).

Traversal
─────────
  • The root must be closed; otherwise verification stops there.
  • Members are visited depth-first in declaration order; exempted and
    otherwise non-copyable members are skipped.
  • Collections and unions are structural: they are never required to be
    closed themselves, only their type arguments are.
  • A type identity already seen in the same call counts as satisfied,
    which makes cyclic graphs terminate.
  • Opaque (unresolvable) types are skipped.

The first violation wins.  Its kind tells whether it was the root, the
declared type of a top-level member, or something deeper.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from enum import Enum
from typing import List, Optional, Set, Tuple

from copyguard.cancellation import CancellationToken
from copyguard.members import MemberEnumerator
from copyguard.type_graph import TypeKind, TypeNode

_log = logging.getLogger(__name__)


class ViolationKind(Enum):
    ROOT = "root"
    MEMBER = "member"
    TRANSITIVE = "transitive"


@dataclass(frozen=True)
class ClosednessResult:
    violation: Optional[ViolationKind] = None
    type_name: str = ""
    member_path: str = ""

    @property
    def ok(self) -> bool:
        return self.violation is None

    @property
    def message(self) -> str:
        if self.violation is ViolationKind.ROOT:
            return f"Parameter type '{self.type_name}' must be closed."
        if self.violation is ViolationKind.MEMBER:
            return (f"Type '{self.type_name}' of member '{self.member_path}' "
                    f"must be closed.")
        if self.violation is ViolationKind.TRANSITIVE:
            return ("All nested types and collections (not marked with "
                    f"CopyIgnore) must be closed; '{self.type_name}' reached "
                    f"through '{self.member_path}' is not.")
        return ""


_OK = ClosednessResult()

# (node, member path, level the node was reached at)
_Frame = Tuple[TypeNode, Tuple[str, ...], ViolationKind]


class ClosednessVerifier:
    """
    Checks that a type and everything reachable from it is closed.

    Attributes
    ----------
    enumerator   : Supplies the copyable members and collection elements
    cancellation : Polled once per visited node

    Usage
    -----
    >>> result = ClosednessVerifier().verify(root)
    >>> if not result.ok:
    ...     print(result.message)

    Primitives and opaque types are accepted; collections and unions are
    looked through to their element types.
    """

    def __init__(
        self,
        enumerator: Optional[MemberEnumerator] = None,
        cancellation: Optional[CancellationToken] = None,
    ) -> None:
        self.enumerator = enumerator or MemberEnumerator()
        self.cancellation = cancellation or CancellationToken()

    def verify(self, root: TypeNode) -> ClosednessResult:
        """Return the first violation reachable from *root*, if any."""
        return self._walk(root, set())

    def is_closed_transitively(self, node: TypeNode, visited: Set[str]) -> bool:
        """True if *node* and everything it reaches is closed.

        *visited* holds type identities already proven in this call and
        is updated in place.
        """
        return self._walk(node, visited).ok

    def _walk(self, root: TypeNode, visited: Set[str]) -> ClosednessResult:
        stack: List[_Frame] = [(root, (), ViolationKind.ROOT)]
        while stack:
            self.cancellation.throw_if_cancelled()
            node, path, level = stack.pop()
            if node.identity in visited:
                continue
            visited.add(node.identity)

            if node.kind in (TypeKind.PRIMITIVE, TypeKind.OPAQUE):
                continue
            if node.kind is TypeKind.COLLECTION:
                for element in reversed(self.enumerator.element_types(node)):
                    stack.append((element, path, level))
                continue
            if node.kind is TypeKind.UNION:
                for element in reversed(node.element_types):
                    stack.append((element, path, level))
                continue

            if not node.is_closed:
                result = ClosednessResult(level, node.name, ".".join(path))
                _log.debug("closedness violation: %s", result.message)
                return result

            child_level = (ViolationKind.MEMBER if level is ViolationKind.ROOT
                           else ViolationKind.TRANSITIVE)
            for member in reversed(self.enumerator.enumerate(node)):
                if member.declared_type is not None:
                    stack.append(
                        (member.declared_type, path + (member.name,), child_level)
                    )
        return _OK
