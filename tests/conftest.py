"""Pytest fixtures for scala-build-mcp tests."""

import os
import struct
import sys

import pytest

# Add src to path for imports
sys.path.insert(0, os.path.join(os.path.dirname(__file__), "..", "src"))


def _utf8(text):
    encoded = text.encode("utf-8")
    return bytes([1]) + struct.pack(">H", len(encoded)) + encoded


def make_class_file(
    name="foo/Hello$",
    source_file="hello.scala",
    lines=(3, 4),
    main=False,
):
    """Build a minimal class file with one method.

    The method carries a LineNumberTable with ``lines``; the class carries a
    SourceFile attribute unless ``source_file`` is None. A Long constant sits
    in the pool to exercise two-slot entries.
    """
    pool = [
        _utf8(name),  # 1
        bytes([7]) + struct.pack(">H", 1),  # 2 Class
        _utf8("java/lang/Object"),  # 3
        bytes([7]) + struct.pack(">H", 3),  # 4 Class
        _utf8("main"),  # 5
        _utf8("([Ljava/lang/String;)V"),  # 6
        _utf8("Code"),  # 7
        _utf8("LineNumberTable"),  # 8
        _utf8("SourceFile"),  # 9
        _utf8(source_file or "unused"),  # 10
        bytes([5]) + struct.pack(">q", 42),  # 11 and 12 Long
    ]
    cp_count = 13

    line_table = struct.pack(">H", len(lines)) + b"".join(
        struct.pack(">HH", pc, line) for pc, line in enumerate(lines)
    )
    code = (
        struct.pack(">HH", 1, 1)
        + struct.pack(">I", 1)
        + b"\xb1"
        + struct.pack(">H", 0)
        + struct.pack(">H", 1)
        + struct.pack(">HI", 8, len(line_table))
        + line_table
    )
    access = 0x0009 if main else 0x0001
    method = struct.pack(">HHHH", access, 5, 6, 1) + struct.pack(">HI", 7, len(code)) + code

    if source_file is None:
        class_attributes = struct.pack(">H", 0)
    else:
        class_attributes = struct.pack(">H", 1) + struct.pack(">HIH", 9, 2, 10)

    return (
        struct.pack(">IHH", 0xCAFEBABE, 0, 52)
        + struct.pack(">H", cp_count)
        + b"".join(pool)
        + struct.pack(">HHH", 0x0021, 2, 4)
        + struct.pack(">H", 0)  # interfaces
        + struct.pack(">H", 0)  # fields
        + struct.pack(">H", 1)  # methods
        + method
        + class_attributes
    )


@pytest.fixture
def class_file_factory():
    """Factory for minimal class file bytes."""
    return make_class_file


@pytest.fixture
def write_class(tmp_path):
    """Write a class file under ``tmp_path/classes`` and return its path."""
    classes = tmp_path / "classes"

    def write(relative="foo/Hello$.class", **kwargs):
        path = classes / relative
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_bytes(make_class_file(**kwargs))
        return path

    write.root = classes
    classes.mkdir(parents=True, exist_ok=True)
    return write


class FakeResolver:
    """Resolver returning empty artifacts, recording requests."""

    def __init__(self, java_home):
        self.java_home = java_home
        self.requests = []

    async def resolve(self, request):
        from scalabuild_mcp.build.artifacts import Artifacts

        self.requests.append(request)
        return Artifacts(
            java_home=self.java_home,
            compiler_class_path=(),
            compiler_plugins=(),
            class_path=(),
        )


class FakeCompiler:
    """Compile service stand-in.

    Reads the Bloop file the pipeline wrote and emits one class per source,
    with the source's file name as SourceFile and ``lines`` as line numbers.
    Projects listed in ``failing`` fail.
    """

    def __init__(self, lines=(2, 3)):
        self.lines = lines
        self.failing = set()
        self.calls = []

    async def compile(self, workspace, project_name):
        import json

        from scalabuild_mcp.build.project import bloop_dir

        self.calls.append(project_name)
        if project_name in self.failing:
            return None

        config = json.loads((bloop_dir(workspace) / f"{project_name}.json").read_text())
        classes = bloop_dir(workspace) / project_name / "classes"
        classes.mkdir(parents=True, exist_ok=True)
        for source in config["project"]["sources"]:
            stem = os.path.basename(source).rsplit(".", 1)[0]
            (classes / f"{stem}.class").write_bytes(
                make_class_file(
                    name=stem,
                    source_file=os.path.basename(source),
                    lines=self.lines,
                    main=True,
                )
            )
        return classes


class FakeRunner:
    """JVM runner stand-in for the JMH generator."""

    def __init__(self, exit_code=0):
        self.exit_code = exit_code
        self.calls = []

    async def run(self, java_home, class_path, main_class, args, cwd=None):
        self.calls.append((main_class, list(args), cwd))
        if self.exit_code == 0:
            from pathlib import Path

            source_dir = Path(args[1])
            (source_dir / "Bench_jmhTest.java").write_text("class Bench_jmhTest {}\n")
        return self.exit_code


@pytest.fixture
def fake_services(tmp_path):
    """Build services that never leave the process."""
    from scalabuild_mcp.build.pipeline import BuildServices
    from scalabuild_mcp.build.sources import ScalaSourceMaterializer

    return BuildServices(
        materializer=ScalaSourceMaterializer(),
        resolver=FakeResolver(tmp_path / "jdk"),
        compiler=FakeCompiler(),
        runner=FakeRunner(),
    )


@pytest.fixture
def script_workspace(tmp_path):
    """Workspace with a single ``hello.sc`` script."""
    workspace = tmp_path / "ws"
    workspace.mkdir()
    (workspace / "hello.sc").write_text('println("hello")\nprintln("world")\n')
    return workspace
