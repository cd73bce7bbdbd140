"""Tests for the Python toolchain's compiler and compilation modes."""

from __future__ import annotations

import concurrent.futures
import marshal
import sys

import pytest

from tryexec.compiler import CompilerAdapter, compilation_mode
from tryexec.toolchain import CompilationMode, PythonToolchain
from tryexec.toolchain.base import ERROR, WARNING
from tryexec.toolchain.lines import LineIndex
from tryexec.workspace import Buffer, Workspace


@pytest.fixture
def toolchain():
    return PythonToolchain()


@pytest.mark.parametrize(
    "workspace_type, mode",
    [("script", CompilationMode.SCRIPT), ("Script", CompilationMode.SCRIPT), ("console", CompilationMode.PROGRAM)],
)
def test_compilation_mode_follows_workspace_type(workspace_type, mode):
    assert compilation_mode(workspace_type) is mode


def test_script_statement_compiles(toolchain):
    result = toolchain.compile('print("hello!")', CompilationMode.SCRIPT)

    assert result.succeeded
    assert result.diagnostics == []
    assert result.artifact.entry_point is None
    marshal.loads(result.artifact.code)


def test_script_statement_without_entry_point_fails_in_program_mode(toolchain):
    result = toolchain.compile('print("hello!")', CompilationMode.PROGRAM)

    assert not result.succeeded
    assert {d.id for d in result.diagnostics} == {"PY5001", "PY5002"}
    missing = next(d for d in result.diagnostics if d.id == "PY5001")
    assert missing.start is None


def test_program_with_main_compiles(toolchain):
    source = 'import math\n\nLIMIT = 3\n\ndef main():\n    print(math.pi)\n\nif __name__ == "__main__":\n    main()\n'
    result = toolchain.compile(source, CompilationMode.PROGRAM)

    assert result.succeeded
    assert result.artifact.entry_point == "main"


def test_main_with_required_arguments_is_rejected(toolchain):
    source = "def main(args):\n    pass\n"
    result = toolchain.compile(source, CompilationMode.PROGRAM)

    assert [d.id for d in result.diagnostics] == ["PY5001"]
    assert (result.diagnostics[0].start, result.diagnostics[0].end) == (0, len("def main"))


def test_missing_parenthesis_points_at_the_parenthesis(toolchain):
    result = toolchain.compile('print("abc"', CompilationMode.SCRIPT)

    assert not result.succeeded
    [diagnostic] = result.errors
    assert diagnostic.id == "PY1001"
    assert diagnostic.severity == ERROR
    assert diagnostic.start == 5


def test_indentation_error_has_its_own_code(toolchain):
    result = toolchain.compile("if True:\nprint(1)\n", CompilationMode.SCRIPT)

    assert [d.id for d in result.errors] == ["PY1002"]


def test_syntax_warning_is_reported_without_failing(toolchain):
    result = toolchain.compile("x = 1\nassert (x, 'message')\n", CompilationMode.SCRIPT)

    assert result.succeeded
    assert result.diagnostics
    for warning in result.diagnostics:
        assert warning.severity == WARNING
        assert warning.id == "PY2001"
        assert warning.start == len("x = 1\n")


def test_top_level_await_is_allowed_in_script_mode(toolchain):
    result = toolchain.compile("import asyncio\nawait asyncio.sleep(0)\n", CompilationMode.SCRIPT)

    assert result.succeeded


def test_adapter_compiles_the_merged_source(toolchain):
    workspace = Workspace(
        workspace_type="console",
        buffers=(Buffer("helpers", "def greet():\n    return 'hi'"), Buffer("program", "def main():\n    print(greet())")),
        usings=("import sys",),
    )
    outcome = CompilerAdapter(toolchain).compile(workspace)

    assert outcome.succeeded
    assert outcome.mode is CompilationMode.PROGRAM


def test_line_index_handles_multibyte_columns():
    lines = LineIndex("x = 'é'\ny = ((\n")

    assert lines.position(0) == (1, 1)
    assert lines.position(8) == (2, 1)
    assert lines.offset(2, 4) == 12
    # 'é' is two bytes in UTF-8.
    assert lines.byte_offset(1, 8) == 7
    assert lines.offset(10, 0) == len(lines.text)


def test_concurrent_compilations_keep_their_own_warnings(toolchain):
    sources = ["x = 1\n", "y = 2\nassert (y, 'message')\n"] * 40

    with concurrent.futures.ThreadPoolExecutor(max_workers=8) as pool:
        results = list(pool.map(lambda s: toolchain.compile(s, CompilationMode.SCRIPT), sources))

    for source, result in zip(sources, results):
        assert result.succeeded
        if "assert" in source:
            assert result.diagnostics
            assert {d.id for d in result.diagnostics} == {"PY2001"}
        else:
            assert result.diagnostics == []


def test_each_compilation_gets_its_own_filename(toolchain):
    first = toolchain.compile("pass", CompilationMode.SCRIPT)
    second = toolchain.compile("pass", CompilationMode.SCRIPT)

    assert first.artifact.filename != second.artifact.filename


@pytest.mark.skipif(sys.version_info < (3, 11), reason="except* needs Python 3.11")
def test_try_star_is_a_declaration_in_program_mode(toolchain):
    source = (
        "try:\n"
        "    import json\n"
        "except* ImportError:\n"
        "    json = None\n"
        "\n"
        "def main():\n"
        "    pass\n"
    )
    result = toolchain.compile(source, CompilationMode.PROGRAM)

    assert result.succeeded
