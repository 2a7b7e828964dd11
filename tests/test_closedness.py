# tests/test_closedness.py
"""
Tests for ClosednessVerifier.
"""

import textwrap

import pytest

from copyguard.cancellation import CancellationToken
from copyguard.closedness import ClosednessVerifier, ViolationKind
from copyguard.config import Config
from copyguard.errors import OperationCancelled
from copyguard.symbols import TypeRef
from copyguard.type_graph import TypeGraphBuilder
from tests.conftest import HEADER, NODE, OUTER_INNER, build_graph, build_table

MODELS = HEADER + textwrap.dedent('''
    class Open:
        v: int


    @final
    class Leaf:
        v: int


    @final
    class Mid:
        leaf: Open


    @final
    class Deep:
        mid: Mid


    @final
    class WithOpenMember:
        ok: Leaf
        first: Open
        second: "Other"


    class Other:
        v: int


    @final
    class WithOpenElement:
        items: list[Open]


    @final
    class WithUnion:
        value: Union[Leaf, Open]


    @final
    class Exempted:
        skip: Annotated[Open, CopyIgnore]
        _private: Open
        shared: ClassVar[Open]
        thing: Undefined


    @final
    class A:
        b: "B"


    @final
    class B:
        a: A
''')


def _verify(qualname, source=MODELS):
    return ClosednessVerifier().verify(build_graph(source, qualname))


class TestViolations:
    """Each violation kind and its message."""

    def test_root(self):
        result = _verify("m.Open")
        assert result.violation is ViolationKind.ROOT
        assert result.message == "Parameter type 'Open' must be closed."

    def test_member(self):
        result = _verify("m.Mid")
        assert result.violation is ViolationKind.MEMBER
        assert result.message == "Type 'Open' of member 'leaf' must be closed."

    def test_transitive(self):
        result = _verify("m.Deep")
        assert result.violation is ViolationKind.TRANSITIVE
        assert result.member_path == "mid.leaf"
        assert result.message == (
            "All nested types and collections (not marked with CopyIgnore) "
            "must be closed; 'Open' reached through 'mid.leaf' is not."
        )

    def test_first_violation_in_declaration_order(self):
        result = _verify("m.WithOpenMember")
        assert result.member_path == "first"

    def test_collection_element(self):
        result = _verify("m.WithOpenElement")
        assert result.violation is ViolationKind.MEMBER
        assert result.type_name == "Open"
        assert result.member_path == "items"

    def test_union_arm(self):
        result = _verify("m.WithUnion")
        assert result.violation is ViolationKind.MEMBER
        assert result.type_name == "Open"

    def test_member_type_not_final(self):
        source = OUTER_INNER.replace("@final\n@dataclass\nclass Inner", "@dataclass\nclass Inner")
        result = _verify("m.Outer", source)
        assert result.message == "Type 'Inner' of member 'I' must be closed."

    def test_collection_root_checks_elements(self):
        table = build_table(MODELS)
        root = TypeGraphBuilder(table, Config()).build(
            TypeRef("builtins.list", (TypeRef("m.Open"),))
        )
        result = ClosednessVerifier().verify(root)
        assert result.violation is ViolationKind.ROOT
        assert result.type_name == "Open"


class TestSatisfied:
    """Closed graphs, skipped members and cycles."""

    @pytest.mark.parametrize("qualname", ["m.Leaf", "m.Exempted", "m.A"])
    def test_ok(self, qualname):
        result = _verify(qualname)
        assert result.ok
        assert result.message == ""

    def test_self_cycle(self):
        assert _verify("m.Node", NODE).ok

    def test_closed_model(self):
        assert _verify("m.Outer", OUTER_INNER).ok

    def test_visited_identities_are_trusted(self):
        verifier = ClosednessVerifier()
        mid = build_graph(MODELS, "m.Mid")
        assert not verifier.is_closed_transitively(mid, set())
        visited = {"m.Open"}
        assert verifier.is_closed_transitively(mid, visited)
        assert "m.Mid" in visited


class TestCancellation:

    def test_step_budget_exceeded(self):
        root = build_graph(OUTER_INNER, "m.Outer")
        verifier = ClosednessVerifier(cancellation=CancellationToken(step_budget=1))
        with pytest.raises(OperationCancelled):
            verifier.verify(root)
