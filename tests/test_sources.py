"""Tests for source materialization and script wrapping."""

import pytest

from scalabuild_mcp.build.inputs import Directory, Inputs, ResourceDirectory, SingleFile
from scalabuild_mcp.build.options import CodeWrapper, Dependency
from scalabuild_mcp.build.sources import (
    GeneratedSource,
    ScalaSourceMaterializer,
    parse_using_directives,
    wrap_script,
)
from scalabuild_mcp.build.state import InputsError


def _materialize(inputs, root, code_wrapper=CodeWrapper.OBJECT):
    return ScalaSourceMaterializer().materialize(inputs, code_wrapper, "", "2.13", root)


class TestWrapScript:
    """Tests for wrap_script."""

    def test_object_wrapper(self):
        code, header_lines, main_class = wrap_script("val x = 1\n", "hello", (), CodeWrapper.OBJECT)

        assert code.startswith("object hello {\nval x = 1\n")
        assert header_lines == 1
        assert main_class == "hello_sc"
        assert "object hello_sc {" in code

    def test_app_wrapper(self):
        code, header_lines, main_class = wrap_script("val x = 1", "hello", (), CodeWrapper.APP)

        assert code.startswith("object hello extends App {\nval x = 1\n")
        assert header_lines == 1
        assert main_class == "hello"

    def test_package_adds_header_lines(self):
        code, header_lines, main_class = wrap_script("1\n", "b", ("a",), CodeWrapper.OBJECT)

        assert code.startswith("package a\n\nobject b {\n")
        assert header_lines == 3
        assert main_class == "a.b_sc"

    def test_user_line_position(self):
        """Line N of the script is line N + header in the wrapper."""
        script = "val a = 1\nval b = 2\nval c = 3\n"
        code, header_lines, _ = wrap_script(script, "s", ("p", "q"), CodeWrapper.OBJECT)
        assert code.splitlines()[header_lines + 2 - 1] == "val b = 2"


class TestUsingDirectives:
    """Tests for parse_using_directives."""

    def test_dependencies(self):
        deps, main = parse_using_directives(
            '//> using lib "com.lihaoyi::os-lib:0.9.1"\nprintln(1)\n', "2.13", ""
        )
        assert deps == [Dependency("com.lihaoyi", "os-lib_2.13", "0.9.1")]
        assert main is None

    def test_main_class(self):
        _, main = parse_using_directives("//> using main-class foo.Main\n", "2.13", "")
        assert main == "foo.Main"

    def test_stops_at_code(self):
        deps, _ = parse_using_directives(
            'println(1)\n//> using lib "org:name:1.0"\n', "2.13", ""
        )
        assert deps == []

    def test_comments_skipped(self):
        deps, _ = parse_using_directives(
            '// a script\n\n//> using dep "org:name:1.0"\n', "2.13", ""
        )
        assert deps == [Dependency("org", "name", "1.0")]

    def test_malformed_dependency(self):
        with pytest.raises(InputsError):
            parse_using_directives('//> using lib "broken"\n', "2.13", "")


class TestGeneratedSource:
    """Tests for GeneratedSource."""

    def test_negative_header_rejected(self, tmp_path):
        with pytest.raises(ValueError):
            GeneratedSource(tmp_path / "a.scala", tmp_path / "a.sc", -1)


class TestScalaSourceMaterializer:
    """Tests for ScalaSourceMaterializer."""

    def test_single_script(self, tmp_path):
        script = tmp_path / "hello.sc"
        script.write_text('println("hi")\n')
        root = tmp_path / "gen"

        sources = _materialize(Inputs((SingleFile(script),), tmp_path), root)

        assert sources.paths == ()
        assert len(sources.generated) == 1
        generated = sources.generated[0]
        assert generated.path == root / "hello.scala"
        assert generated.reporting_path == script
        assert generated.top_wrapper_lines == 1
        assert generated.path.read_text().startswith("object hello {\n")
        assert sources.main_class == "hello_sc"

    def test_directory_walk(self, tmp_path):
        src = tmp_path / "src"
        (src / "pkg").mkdir(parents=True)
        (src / "A.scala").write_text("object A\n")
        (src / "B.java").write_text("class B {}\n")
        (src / "pkg" / "s.sc").write_text("1\n")
        (src / "notes.txt").write_text("x\n")
        (src / ".hidden").mkdir()
        (src / ".hidden" / "H.scala").write_text("object H\n")
        root = tmp_path / "gen"

        sources = _materialize(Inputs((Directory(src),), src), root)

        assert sources.paths == (src / "A.scala", src / "B.java")
        assert sources.generated[0].path == root / "pkg" / "s.scala"
        assert sources.generated[0].top_wrapper_lines == 3
        assert sources.main_class == "pkg.s_sc"

    def test_several_scripts_no_default_main(self, tmp_path):
        (tmp_path / "a.sc").write_text("1\n")
        (tmp_path / "b.sc").write_text("2\n")

        sources = _materialize(Inputs((Directory(tmp_path),), tmp_path), tmp_path / ".gen")

        assert len(sources.generated) == 2
        assert sources.main_class is None

    def test_directive_main_class_wins(self, tmp_path):
        script = tmp_path / "hello.sc"
        script.write_text("//> using main-class other.Main\n1\n")

        sources = _materialize(Inputs((SingleFile(script),), tmp_path), tmp_path / "gen")

        assert sources.main_class == "other.Main"

    def test_dependencies_deduplicated(self, tmp_path):
        (tmp_path / "a.sc").write_text('//> using lib "org:name:1.0"\n')
        (tmp_path / "B.scala").write_text('//> using lib "org:name:1.0"\nobject B\n')

        sources = _materialize(Inputs((Directory(tmp_path),), tmp_path), tmp_path / ".gen")

        assert sources.dependencies == (Dependency("org", "name", "1.0"),)

    def test_resource_directories(self, tmp_path):
        (tmp_path / "res").mkdir()
        inputs = Inputs((ResourceDirectory(tmp_path / "res"),), tmp_path)

        sources = _materialize(inputs, tmp_path / "gen")

        assert sources.resource_dirs == (tmp_path / "res",)

    def test_unknown_single_file(self, tmp_path):
        path = tmp_path / "notes.txt"
        path.write_text("x\n")

        with pytest.raises(InputsError):
            _materialize(Inputs((SingleFile(path),), tmp_path), tmp_path / "gen")

    def test_unchanged_generated_file_not_rewritten(self, tmp_path):
        script = tmp_path / "hello.sc"
        script.write_text("1\n")
        inputs = Inputs((SingleFile(script),), tmp_path)
        root = tmp_path / "gen"

        first = _materialize(inputs, root)
        mtime = first.generated[0].path.stat().st_mtime_ns
        _materialize(inputs, root)

        assert first.generated[0].path.stat().st_mtime_ns == mtime

    def test_app_wrapper_main_class(self, tmp_path):
        script = tmp_path / "hello.sc"
        script.write_text("1\n")

        sources = _materialize(
            Inputs((SingleFile(script),), tmp_path), tmp_path / "gen", CodeWrapper.APP
        )

        assert sources.main_class == "hello"

    def test_invalid_utf8_script(self, tmp_path):
        script = tmp_path / "hello.sc"
        script.write_bytes(b'println("\xff\xfe")\n')

        with pytest.raises(InputsError, match="Cannot read source") as exc_info:
            _materialize(Inputs((SingleFile(script),), tmp_path), tmp_path / "gen")

        assert isinstance(exc_info.value.__cause__, UnicodeDecodeError)

    def test_invalid_utf8_scala_source(self, tmp_path):
        source = tmp_path / "A.scala"
        source.write_bytes(b"object A // \xff\n")

        with pytest.raises(InputsError):
            _materialize(Inputs((SingleFile(source),), tmp_path), tmp_path / "gen")

    def test_same_named_scripts_get_distinct_targets(self, tmp_path):
        (tmp_path / "a").mkdir()
        (tmp_path / "b").mkdir()
        first = tmp_path / "a" / "hello.sc"
        second = tmp_path / "b" / "hello.sc"
        first.write_text("1\n")
        second.write_text("2\n")
        root = tmp_path / "gen"

        sources = _materialize(Inputs((SingleFile(first), SingleFile(second)), tmp_path), root)

        paths = [g.path for g in sources.generated]
        assert paths == [root / "hello.scala", root / "hello_2.scala"]
        assert [g.reporting_path for g in sources.generated] == [first, second]
        assert paths[0].read_text().startswith("object hello {\n")
        assert paths[1].read_text().startswith("object hello_2 {\n")
