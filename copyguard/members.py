"""
copyguard/members.py
════════════════════

Member enumeration shared by both verifiers.

A member is *copyable* when it is public, instance-level and not exempted.
Collections expose element types instead of members.
"""

from __future__ import annotations

from typing import Optional, Tuple

from copyguard.type_graph import Member, TypeKind, TypeNode


def is_copyable(member: Member) -> bool:
    return member.is_public and not member.is_static and not member.exempted


class MemberEnumerator:
    """Stateless; one instance may be shared freely."""

    def enumerate(self, node: Optional[TypeNode]) -> Tuple[Member, ...]:
        """Copyable members of *node* in declaration order.

        Returns nothing for collections, primitives, unions and opaque
        types.
        """
        if node is None or node.kind is not TypeKind.COMPOSITE:
            return ()
        return tuple(m for m in node.members if is_copyable(m))

    def element_types(self, node: Optional[TypeNode]) -> Tuple[TypeNode, ...]:
        if node is None or node.kind is not TypeKind.COLLECTION:
            return ()
        return node.element_types

