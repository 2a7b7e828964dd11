# tests/test_checkers.py
"""
End-to-end tests of the checkers through CheckerRunner.
"""

import json
import textwrap
from pathlib import Path

import pytest

from copyguard.cancellation import CancellationToken
from copyguard.checkers import (
    COMPLETENESS_RULE,
    USAGE_RULE,
    CheckerRegistry,
    CheckerRunner,
    Confidence,
    DeepCopyCompletenessChecker,
    DeepCopyUsageChecker,
    DiagnosticSeverity,
    default_registry,
    discover_sources,
    module_name_for,
)
from copyguard.completeness import CompletenessVerifier
from copyguard.config import Config
from copyguard.errors import ErrorCodes, SourceError
from copyguard.symbols import SymbolTable
from tests.conftest import FOO_AB, HEADER, OUTER_INNER, line_of, with_procedure


def _run(source, config=None, **kwargs):
    return CheckerRunner(config or Config(), **kwargs).run_source(source, "m")


FOO_ITEMS = HEADER + textwrap.dedent('''
    @final
    class Foo:
        Items: list[int]
''')


class TestScenarios:
    """The reference scenarios."""

    def test_unread_member_reported(self):
        src = with_procedure(FOO_AB, "clone(foo: Foo)", "return Foo(foo.A, 0)")
        results = _run(src)
        assert len(results.diagnostics) == 1
        diag = results.diagnostics[0]
        assert diag.rule_id == "CPY003"
        assert diag.error_id == "deepCopyIncomplete"
        assert diag.severity is DiagnosticSeverity.WARNING
        assert diag.message == "Method 'clone' does not copy the following members: B"
        assert diag.arguments == ("clone", "B")
        assert diag.location.line == line_of(src, "def clone")
        assert diag.location.column == 5

    def test_complete_copy(self):
        src = with_procedure(FOO_AB, "clone(foo: Foo)", "return Foo(foo.A, foo.B)")
        assert _run(src).diagnostics == []

    def test_nested_leaf_reported(self):
        src = with_procedure(
            OUTER_INNER, "clone(outer: Outer)", "return Outer(Inner(outer.I.X, 0))"
        )
        (diag,) = _run(src).diagnostics
        assert diag.arguments == ("clone", "I.Y")

    def test_collection_requires_iteration(self):
        src = with_procedure(FOO_ITEMS, "clone(foo: Foo)", "return foo.Items")
        (diag,) = _run(src).diagnostics
        assert diag.arguments == ("clone", "Items")

        body = """
            result = []
            for item in foo.Items:
                result.append(item)
            return result
        """
        assert _run(with_procedure(FOO_ITEMS, "clone(foo: Foo)", body)).diagnostics == []

    def test_open_parameter_type(self):
        model = FOO_AB.replace("@final\n", "")
        src = with_procedure(model, "clone(foo: Foo)", "return Foo(foo.A, 0)")
        results = _run(src)
        assert len(results.diagnostics) == 1
        diag = results.diagnostics[0]
        assert diag.rule_id == "CPY002"
        assert diag.severity is DiagnosticSeverity.ERROR
        assert diag.message == "Parameter type 'Foo' must be closed."
        assert diag.location.line == line_of(src, "def clone")
        assert diag.location.column == 11
        assert diag.location.end_column == 14

    def test_exempted_member_unread(self):
        model = FOO_AB.replace("B: int", "B: Annotated[int, CopyIgnore]")
        src = with_procedure(model, "clone(foo: Foo)", "return Foo(foo.A)")
        assert _run(src).diagnostics == []


class TestUsage:
    """Arity and closedness findings."""

    @pytest.mark.parametrize("signature", [
        "clone(a: Foo, b: Foo)",
        "clone()",
        "clone(foo: Foo, *, deep=True)",
    ])
    def test_arity(self, signature):
        src = with_procedure(FOO_AB, signature, "return None")
        (diag,) = _run(src).diagnostics
        assert diag.rule_id == "CPY002"
        assert diag.message == "Method must have exactly one parameter."
        assert diag.location.column == 5
        assert diag.evidence["violation"] == "arity"

    def test_member_not_closed(self):
        model = OUTER_INNER.replace("@final\n@dataclass\nclass Inner", "@dataclass\nclass Inner")
        src = with_procedure(model, "clone(outer: Outer)", "return outer.I.X, outer.I.Y")
        (diag,) = _run(src).diagnostics
        assert diag.message == "Type 'Inner' of member 'I' must be closed."
        assert diag.evidence["member"] == "I"

    def test_closedness_and_completeness_reported_together(self):
        model = OUTER_INNER.replace("@final\n@dataclass\nclass Inner", "@dataclass\nclass Inner")
        src = with_procedure(model, "clone(outer: Outer)", "return outer.I.X")
        results = _run(src)
        assert sorted(d.rule_id for d in results.diagnostics) == ["CPY002", "CPY003"]

    @pytest.mark.parametrize("signature", [
        "clone(foo)",
        "clone(foo: Unknown)",
        "clone(foo: Callable[[int], int])",
    ])
    def test_unresolvable_parameter_is_skipped(self, signature):
        src = "from typing import Callable\n" + with_procedure(
            FOO_AB, signature, "return foo"
        )
        assert _run(src).diagnostics == []

    def test_primitive_parameter(self):
        src = with_procedure(FOO_AB, "clone(value: int)", "return value")
        assert _run(src).diagnostics == []


class TestProcedures:
    """Methods, collection parameters and confidence."""

    def test_method_procedure(self):
        src = FOO_AB + textwrap.indent(textwrap.dedent('''
            @deep_copy
            def clone(self, other: "Foo") -> "Foo":
                return Foo(other.A, 0)
        '''), "    ")
        (diag,) = _run(src).diagnostics
        assert diag.arguments == ("clone", "B")
        assert diag.location.column == 9
        assert diag.evidence["procedure"] == "m.Foo.clone"

    def test_staticmethod_procedure(self):
        src = FOO_AB + textwrap.indent(textwrap.dedent('''
            @staticmethod
            @deep_copy
            def clone(other: "Foo") -> "Foo":
                return Foo(other.A, other.B)
        '''), "    ")
        assert _run(src).diagnostics == []

    def test_undecorated_functions_are_ignored(self):
        src = FOO_AB + "\n\ndef clone(foo: Foo):\n    return foo.A\n"
        assert _run(src).diagnostics == []

    def test_collection_parameter(self):
        src = with_procedure(OUTER_INNER, "clone(items: list[Inner])", "return items")
        (diag,) = _run(src).diagnostics
        assert diag.arguments == ("clone", "*")

        body = "return [Inner(i.X, i.Y) for i in items]"
        src = with_procedure(OUTER_INNER, "clone(items: list[Inner])", body)
        assert _run(src).diagnostics == []

    def test_confidence_lowered_by_opaque_member(self):
        model = FOO_AB.replace("B: int", "B: int\n    C: Undefined")
        src = with_procedure(model, "clone(foo: Foo)", "return foo.A")
        (diag,) = _run(src).diagnostics
        assert diag.arguments == ("clone", "B, C")
        assert diag.confidence is Confidence.MEDIUM

    def test_rebound_parameter_does_not_count(self):
        body = "foo = Foo(1, 2)\nreturn foo.A, foo.B"
        (diag,) = _run(with_procedure(FOO_AB, "clone(foo: Foo)", body)).diagnostics
        assert diag.arguments == ("clone", "A, B")

    def test_diagnostics_sorted_by_location(self):
        src = with_procedure(FOO_AB, "first(foo: Foo)", "return foo.A")
        src = with_procedure(src, "second(foo: Foo)", "return foo.B")
        results = _run(src)
        assert [d.arguments[0] for d in results.diagnostics] == ["first", "second"]
        assert results.warning_count == 2
        assert results.error_count == 0
        assert len(results.by_rule("CPY003")) == 2


class TestSuppressions:

    def test_inline_on_decorator_line(self):
        src = FOO_AB + (
            "\n\n@deep_copy  # copyguard: ignore[deepCopyIncomplete]\n"
            "def clone(foo: Foo):\n"
            "    return foo.A\n"
        )
        assert _run(src).diagnostics == []

    def test_inline_on_definition_line(self):
        src = FOO_AB + (
            "\n\n@deep_copy\n"
            "def clone(foo: Foo):  # copyguard: ignore\n"
            "    return foo.A\n"
        )
        assert _run(src).diagnostics == []

    def test_inline_for_other_rule(self):
        src = FOO_AB + (
            "\n\n@deep_copy\n"
            "def clone(foo: Foo):  # copyguard: ignore[CPY002]\n"
            "    return foo.A\n"
        )
        assert len(_run(src).diagnostics) == 1

    def test_disabled_rule(self):
        src = with_procedure(FOO_AB, "clone(foo: Foo)", "return foo.A")
        results = _run(src, Config(disabled_rules=frozenset({"CPY003"})))
        assert results.diagnostics == []
        assert DeepCopyCompletenessChecker.name not in results.checker_names

    def test_file_pattern(self, tmp_path):
        legacy = tmp_path / "legacy"
        legacy.mkdir()
        (legacy / "models.py").write_text(
            with_procedure(FOO_AB, "clone(foo: Foo)", "return foo.A")
        )
        assert len(CheckerRunner().run_paths([tmp_path]).diagnostics) == 1

        config = Config(suppressions=(("CPY003", "*legacy/*"),))
        assert CheckerRunner(config).run_paths([tmp_path]).diagnostics == []

    @pytest.mark.parametrize("pattern, suppressed", [
        ("models.py", True),
        ("legacy/models.py", True),
        ("els.py", False),
        ("y/models.py", False),
        ("*/legacy/*", True),
    ])
    def test_file_pattern_matches_whole_components(self, tmp_path, pattern, suppressed):
        legacy = tmp_path / "legacy"
        legacy.mkdir()
        (legacy / "models.py").write_text(
            with_procedure(FOO_AB, "clone(foo: Foo)", "return foo.A")
        )
        config = Config(suppressions=(("CPY003", pattern),))
        results = CheckerRunner(config).run_paths([tmp_path])
        assert (results.diagnostics == []) is suppressed


class TestRobustness:
    """Failures degrade to no finding; cancellation stops the run."""

    def test_internal_failure_yields_no_finding(self, monkeypatch):
        def boom(self, root, observed):
            raise RuntimeError("boom")

        monkeypatch.setattr(CompletenessVerifier, "missing_paths", boom)
        src = with_procedure(FOO_AB, "clone(foo: Foo)", "return foo.A")
        results = _run(src)
        assert results.diagnostics == []
        assert not results.cancelled

    def test_pre_cancelled(self):
        token = CancellationToken()
        token.cancel()
        src = with_procedure(FOO_AB, "clone(foo: Foo)", "return foo.A")
        results = _run(src, cancellation=token)
        assert results.cancelled
        assert results.diagnostics == []
        assert "run cancelled" in results.summary()

    def test_step_budget(self):
        src = with_procedure(OUTER_INNER, "clone(outer: Outer)", "return outer.I.X")
        results = _run(src, Config(step_budget=1))
        assert results.cancelled

    def test_syntax_error_file(self, tmp_path):
        (tmp_path / "bad.py").write_text("def broken(:\n")
        (tmp_path / "good.py").write_text(
            with_procedure(FOO_AB, "clone(foo: Foo)", "return foo.A")
        )
        results = CheckerRunner().run_paths([tmp_path])
        assert len(results.errors) == 1
        assert results.errors[0].code == ErrorCodes.SOURCE_SYNTAX
        assert len(results.diagnostics) == 1

    def test_missing_path(self, tmp_path):
        with pytest.raises(SourceError):
            CheckerRunner().run_paths([tmp_path / "nope.py"])


class TestModules:

    def test_cross_module_types(self):
        table = SymbolTable()
        table.add_source(FOO_AB, "app.models")
        table.add_source(textwrap.dedent('''
            from app.models import Foo
            from copyguard import deep_copy


            @deep_copy
            def clone(foo: Foo):
                return foo.B
        '''), "app.copying")
        results = CheckerRunner().run(table)
        (diag,) = results.diagnostics
        assert diag.arguments == ("clone", "A")
        assert diag.location.file == "<app.copying>"

    def test_module_filter(self):
        table = SymbolTable()
        table.add_source(with_procedure(FOO_AB, "clone(foo: Foo)", "return foo.A"), "a")
        table.add_source(with_procedure(FOO_AB, "clone(foo: Foo)", "return foo.A"), "b")
        results = CheckerRunner().run(table, modules=["b"])
        assert [d.location.file for d in results.diagnostics] == ["<b>"]

    def test_module_name_for(self, tmp_path):
        sub = tmp_path / "pkg" / "sub"
        sub.mkdir(parents=True)
        for path in (tmp_path / "pkg" / "__init__.py", sub / "__init__.py", sub / "mod.py"):
            path.write_text("")
        assert module_name_for(sub / "mod.py") == "pkg.sub.mod"
        assert module_name_for(sub / "__init__.py") == "pkg.sub"

    def test_module_name_relative_to_root(self, tmp_path):
        pkg = tmp_path / "pkg"
        (pkg / "sub").mkdir(parents=True)
        for path in (pkg / "__init__.py", pkg / "sub" / "mod.py", tmp_path / "tool.py"):
            path.write_text("")
        assert module_name_for(pkg / "sub" / "mod.py", tmp_path) == "pkg.sub.mod"
        assert module_name_for(pkg / "sub" / "mod.py", pkg) == "pkg.sub.mod"
        assert module_name_for(pkg / "__init__.py", pkg) == "pkg"
        assert module_name_for(tmp_path / "tool.py", tmp_path) == "tool"

    def test_same_stem_in_sibling_directories(self, tmp_path):
        source = with_procedure(FOO_AB, "clone(foo: Foo)", "return foo.A")
        for sub in ("a", "b"):
            (tmp_path / sub).mkdir()
            (tmp_path / sub / "models.py").write_text(source)
        results = CheckerRunner().run_paths([tmp_path])
        assert results.errors == []
        files = sorted(Path(d.location.file).parent.name for d in results.diagnostics)
        assert files == ["a", "b"]

    def test_duplicate_module_name_is_an_error(self, tmp_path):
        source = with_procedure(FOO_AB, "clone(foo: Foo)", "return foo.A")
        for sub in ("a", "b"):
            (tmp_path / sub).mkdir()
            (tmp_path / sub / "models.py").write_text(source)
        results = CheckerRunner().run_paths([tmp_path / "a", tmp_path / "b"])
        (error,) = results.errors
        assert error.code == ErrorCodes.SOURCE_DUPLICATE
        assert len(results.diagnostics) == 1

    def test_same_file_given_twice(self, tmp_path):
        path = tmp_path / "models.py"
        path.write_text(with_procedure(FOO_AB, "clone(foo: Foo)", "return foo.A"))
        results = CheckerRunner().run_paths([path, tmp_path])
        assert results.errors == []
        assert len(results.diagnostics) == 1

    def test_discover_skips_hidden_and_cache_dirs(self, tmp_path):
        for rel in ("a.py", ".venv/b.py", "__pycache__/c.py", "src/d.py", "notes.txt"):
            path = tmp_path / rel
            path.parent.mkdir(parents=True, exist_ok=True)
            path.write_text("")
        names = sorted(p.name for p in discover_sources([tmp_path]))
        assert names == ["a.py", "d.py"]


class TestRegistry:

    def test_default_checkers(self):
        registry = default_registry()
        assert [cls.name for cls in registry.get_enabled()] == [
            "deep-copy-usage", "deep-copy-completeness",
        ]
        assert registry.filter_by_rule("CPY002") == [DeepCopyUsageChecker]
        assert registry.filter_by_rule("deepCopyIncomplete") == [DeepCopyCompletenessChecker]

    def test_disable_and_enable(self):
        registry = CheckerRegistry()
        registry.register(DeepCopyUsageChecker)
        registry.register(DeepCopyCompletenessChecker)
        registry.disable("deep-copy-completeness")
        assert registry.get_enabled() == [DeepCopyUsageChecker]
        src = with_procedure(FOO_AB, "clone(foo: Foo)", "return foo.A")
        assert CheckerRunner(registry=registry).run_source(src, "m").diagnostics == []
        registry.enable("deep-copy-completeness")
        results = CheckerRunner(registry=registry).run_source(src, "m")
        assert len(results.by_file("<m>")) == 1
        assert json.loads(results.to_json_lines())["ruleId"] == "CPY003"

    def test_rules(self):
        assert USAGE_RULE.severity is DiagnosticSeverity.ERROR
        assert COMPLETENESS_RULE.format("clone", "A, B") == (
            "Method 'clone' does not copy the following members: A, B"
        )
