# tests/conftest.py
"""
Shared sources and helpers for the copyguard test-suite.

Model sources are complete modules; procedures are appended with
:func:`with_procedure`.
"""

import ast
import textwrap

import pytest

from copyguard.config import Config
from copyguard.symbols import SymbolTable, TypeRef
from copyguard.type_graph import TypeGraphBuilder, TypeNode

MODULE = "m"

HEADER = textwrap.dedent('''\
    from dataclasses import dataclass, field
    from enum import Enum
    from typing import Annotated, ClassVar, Dict, Generic, List, Optional, TypeVar, Union, final

    from copyguard import CopyIgnore, copy_ignore, deep_copy
''')

# Foo{A:int, B:int}
FOO_AB = HEADER + textwrap.dedent('''
    @final
    @dataclass
    class Foo:
        A: int
        B: int
''')

# Outer{I: Inner}, Inner{X:int, Y:int}
OUTER_INNER = HEADER + textwrap.dedent('''
    @final
    @dataclass
    class Inner:
        X: int
        Y: int


    @final
    @dataclass
    class Outer:
        I: Inner
''')

# A model touching every member kind.
RICH = HEADER + textwrap.dedent('''
    @final
    class Inner:
        x: int
        y: int


    @final
    class Foo:
        a: int
        name: str
        inner: Inner
        items: list[Inner]
        tags: set[str]
        mapping: dict[str, int]

        def describe(self) -> str:
            return self.name
''')

# Self-referential node.
NODE = HEADER + textwrap.dedent('''
    @final
    class Node:
        def __init__(self, value: int, next: "Optional[Node]" = None):
            self.value = value
            self.next = next
''')


def with_procedure(model: str, signature: str, body: str) -> str:
    """Append ``@deep_copy def <signature>:`` with *body* to *model*."""
    return (
        model
        + "\n\n@deep_copy\n"
        + f"def {signature}:\n"
        + textwrap.indent(textwrap.dedent(body).strip("\n"), "    ")
        + "\n"
    )


def build_table(source: str, module: str = MODULE) -> SymbolTable:
    table = SymbolTable()
    table.add_source(source, module)
    return table


def build_graph(
    source: str, qualname: str, config: Config = None, module: str = MODULE
) -> TypeNode:
    """Type graph of the class *qualname* declared in *source*."""
    table = build_table(source, module)
    return TypeGraphBuilder(table, config or Config()).build(TypeRef(qualname))


def annotation(text: str) -> ast.expr:
    return ast.parse(text, mode="eval").body


def line_of(source: str, needle: str) -> int:
    """1-based number of the first line of *source* containing *needle*."""
    for i, line in enumerate(source.splitlines(), 1):
        if needle in line:
            return i
    raise AssertionError(f"{needle!r} not in source")


@pytest.fixture
def strict_config():
    return Config(global_iteration_satisfies_all=False)


@pytest.fixture(autouse=True)
def _isolated_cwd(tmp_path, monkeypatch):
    """Keep a stray ./.copyguard from leaking into tests."""
    monkeypatch.chdir(tmp_path)
