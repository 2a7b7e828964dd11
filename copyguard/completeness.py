"""
copyguard/completeness.py
═════════════════════════

Completeness verification: cross-reference a type graph against the set
of access paths a procedure body reads.

For each top-level copyable member the *first* missing path is found,
in this order of precedence:

  1. collection  → ``<path>.*`` must be observed (or the bare ``*``
                   sentinel, see ``global_iteration_satisfies_all``);
  2. composite with copyable members → recurse into them, the member's
                   own path is not required;
  3. composite without copyable members → own path required;
  4. scalar / opaque / union → own path required.

A composite already on the current descent path (``next: Node`` inside
``Node``) requires its own path instead of being expanded again.
"""

from __future__ import annotations

import logging
from typing import AbstractSet, List, Optional, Tuple

from copyguard.cancellation import CancellationToken
from copyguard.config import Config
from copyguard.members import MemberEnumerator
from copyguard.type_graph import (
    GLOBAL_ALL_ITEMS,
    AccessPath,
    Member,
    MemberKind,
    TypeKind,
    TypeNode,
)

_log = logging.getLogger(__name__)

_Frame = Tuple[Member, AccessPath, Tuple[str, ...]]


class CompletenessVerifier:
    """
    Compares the access paths a procedure reads against the members of
    its parameter type.

    Attributes
    ----------
    enumerator   : Supplies the copyable members of each composite
    config       : Decides whether ``*`` on the parameter satisfies
                   every collection member
    cancellation : Polled once per visited member

    Usage
    -----
    >>> verifier = CompletenessVerifier(config=config)
    >>> missing = verifier.missing_paths(root, observed)
    >>> ", ".join(str(p) for p in missing)
    'B, I.Y'
    """

    def __init__(
        self,
        enumerator: Optional[MemberEnumerator] = None,
        config: Optional[Config] = None,
        cancellation: Optional[CancellationToken] = None,
    ) -> None:
        self.enumerator = enumerator or MemberEnumerator()
        self.config = config or Config()
        self.cancellation = cancellation or CancellationToken()

    def missing_paths(
        self, root: TypeNode, observed: AbstractSet[AccessPath]
    ) -> List[AccessPath]:
        """First missing path of every top-level member, in declaration order."""
        if root.kind is TypeKind.COLLECTION:
            return [] if GLOBAL_ALL_ITEMS in observed else [GLOBAL_ALL_ITEMS]
        missing: List[AccessPath] = []
        for member in self.enumerator.enumerate(root):
            path = self.first_missing_path(
                member, observed, AccessPath(), (root.identity,)
            )
            if path is not None:
                missing.append(path)
        return missing

    def first_missing_path(
        self,
        member: Member,
        observed: AbstractSet[AccessPath],
        prefix: AccessPath = AccessPath(),
        ancestors: Tuple[str, ...] = (),
    ) -> Optional[AccessPath]:
        """The first required path under *member* absent from *observed*."""
        stack: List[_Frame] = [(member, prefix, ancestors)]
        while stack:
            self.cancellation.throw_if_cancelled()
            current, parent, seen = stack.pop()
            path = parent.child(current.name)
            kind = current.kind

            if kind is MemberKind.COLLECTION:
                if not self._iterated(path, observed):
                    return path
                continue

            if kind is MemberKind.COMPOSITE:
                node = current.declared_type
                assert node is not None
                subs = self.enumerator.enumerate(node)
                if subs and node.identity not in seen:
                    frames = [(m, path, seen + (node.identity,)) for m in subs]
                    stack.extend(reversed(frames))
                    continue

            if path not in observed:
                return path
        return None

    def _iterated(self, path: AccessPath, observed: AbstractSet[AccessPath]) -> bool:
        if path.all_items() in observed:
            return True
        if self.config.global_iteration_satisfies_all and GLOBAL_ALL_ITEMS in observed:
            _log.debug("'%s' satisfied only by iteration over the parameter", path)
            return True
        return False
