# tests/test_cli.py
"""
Tests for the ``copyguard`` command line.
"""

import json

import pytest

from copyguard import __version__
from copyguard.main import EXIT_ERROR, EXIT_INFRA, EXIT_OK, main
from tests.conftest import FOO_AB, HEADER, with_procedure

FOO_ITEMS = HEADER + '''
@final
class Foo:
    Items: list[int]
'''


def _write(tmp_path, source, name="models.py"):
    path = tmp_path / name
    path.write_text(source)
    return str(path)


class TestCheck:

    def test_clean(self, tmp_path, capsys):
        path = _write(tmp_path, with_procedure(FOO_AB, "clone(foo: Foo)", "return foo.A, foo.B"))
        assert main(["check", path, "--no-color"]) == EXIT_OK
        assert "no diagnostics emitted" in capsys.readouterr().out

    def test_warnings_do_not_fail(self, tmp_path, capsys):
        path = _write(tmp_path, with_procedure(FOO_AB, "clone(foo: Foo)", "return foo.A"))
        assert main(["check", path, "--no-color"]) == EXIT_OK
        out = capsys.readouterr().out
        assert "warning[CPY003]" in out
        assert "1 warning (1 total)" in out

    def test_errors_fail(self, tmp_path, capsys):
        model = FOO_AB.replace("@final\n", "")
        path = _write(tmp_path, with_procedure(model, "clone(foo: Foo)", "return foo.A"))
        assert main(["check", path, "-f", "gcc"]) == EXIT_ERROR
        out = capsys.readouterr().out
        assert "error: Parameter type 'Foo' must be closed. [CPY002]" in out

    def test_directory(self, tmp_path, capsys):
        _write(tmp_path, with_procedure(FOO_AB, "clone(foo: Foo)", "return foo.A"), "a.py")
        _write(tmp_path, with_procedure(FOO_AB, "clone(foo: Foo)", "return foo.B"), "b.py")
        assert main(["check", str(tmp_path), "-f", "gcc"]) == EXIT_OK
        lines = capsys.readouterr().out.splitlines()
        assert len(lines) == 2
        assert lines[0].endswith("members: B [CPY003]")

    def test_strict_iteration(self, tmp_path, capsys):
        path = _write(tmp_path, with_procedure(FOO_ITEMS, "clone(foo: Foo)", "return [x for x in foo]"))
        main(["check", path, "-f", "gcc"])
        assert capsys.readouterr().out == ""
        main(["check", path, "-f", "gcc", "--strict-iteration"])
        assert "members: Items [CPY003]" in capsys.readouterr().out

    def test_config_file(self, tmp_path, capsys):
        path = _write(tmp_path, with_procedure(FOO_AB, "clone(foo: Foo)", "return foo.A"))
        config = tmp_path / "ci.copyguard"
        config.write_text('(copyguard (disable "deepCopyIncomplete"))')
        assert main(["check", path, "-c", str(config), "-f", "gcc"]) == EXIT_OK
        assert capsys.readouterr().out == ""

    def test_output_file(self, tmp_path):
        path = _write(tmp_path, with_procedure(FOO_AB, "clone(foo: Foo)", "return foo.A"))
        report = tmp_path / "out" / "report.jsonl"
        assert main(["check", path, "-f", "json", "-o", str(report)]) == EXIT_OK
        (record,) = [json.loads(line) for line in report.read_text().splitlines()]
        assert record["ruleId"] == "CPY003"
        assert record["arguments"] == ["clone", "B"]


class TestInfrastructureFailures:

    def test_missing_path(self, tmp_path):
        assert main(["check", str(tmp_path / "nope.py")]) == EXIT_INFRA

    def test_missing_config(self, tmp_path):
        path = _write(tmp_path, FOO_AB)
        assert main(["check", path, "--config", str(tmp_path / "absent")]) == EXIT_INFRA

    def test_malformed_config(self, tmp_path):
        path = _write(tmp_path, FOO_AB)
        (tmp_path / ".copyguard").write_text("(copyguard (frobnicate))")
        assert main(["check", path]) == EXIT_INFRA

    def test_syntax_error(self, tmp_path):
        path = _write(tmp_path, "def broken(:\n")
        assert main(["check", path]) == EXIT_INFRA

    def test_step_budget_cancels(self, tmp_path):
        path = _write(tmp_path, with_procedure(FOO_AB, "clone(foo: Foo)", "return foo.A"))
        (tmp_path / ".copyguard").write_text("(copyguard (step-budget 1))")
        assert main(["check", path]) == EXIT_INFRA

    def test_no_command(self):
        assert main([]) == EXIT_INFRA


class TestMisc:

    def test_rules(self, capsys):
        assert main(["rules"]) == EXIT_OK
        out = capsys.readouterr().out
        assert "CPY001  (reserved)" in out
        assert "deepCopyUsage" in out
        assert "deepCopyIncomplete" in out

    def test_verbose_rules_describe(self, capsys):
        main(["-v", "rules"])
        out = capsys.readouterr().out
        assert "closed" in out
        assert "checker: deep-copy-usage" in out
        assert "checker: deep-copy-completeness" in out

    def test_version(self, capsys):
        with pytest.raises(SystemExit) as info:
            main(["--version"])
        assert info.value.code == 0
        assert __version__ in capsys.readouterr().out
