"""Tests for the build pipeline and the JMH pass."""

import json

import pytest

from scalabuild_mcp.build.classfile import ClassFile
from scalabuild_mcp.build.inputs import Inputs
from scalabuild_mcp.build.options import BuildOptions
from scalabuild_mcp.build.pipeline import (
    artifact_request,
    build,
    position_mappings,
    scalac_options,
)
from scalabuild_mcp.build.artifacts import Artifacts
from scalabuild_mcp.build.options import Dependency
from scalabuild_mcp.build.project import bloop_dir
from scalabuild_mcp.build.sources import GeneratedSource, Sources
from scalabuild_mcp.build.state import Failed, SecondaryBuildError, Successful


def _script_inputs(workspace):
    return Inputs.from_paths(["hello.sc"], cwd=workspace)


def _hello_class(result):
    return ClassFile.parse((result.output / "hello.class").read_bytes())


class TestBuild:
    """Tests for a single build."""

    @pytest.mark.asyncio
    async def test_scala2_success_keeps_lines(self, script_workspace, fake_services):
        """Line modifier plugin active: positions only need the file name fixed."""
        inputs = _script_inputs(script_workspace)

        result = await build(
            inputs, BuildOptions.create("2.13.12"), script_workspace, services=fake_services
        )

        assert isinstance(result, Successful)
        assert result.success
        cf = _hello_class(result)
        assert cf.source_file == "hello.sc"
        assert cf.line_numbers == [2, 3]

    @pytest.mark.asyncio
    async def test_scala3_success_shifts_lines(self, script_workspace, fake_services):
        """Without the plugin, lines are shifted back by the wrapper header."""
        inputs = _script_inputs(script_workspace)

        result = await build(
            inputs, BuildOptions.create("3.3.1"), script_workspace, services=fake_services
        )

        cf = _hello_class(result)
        assert cf.source_file == "hello.sc"
        assert cf.line_numbers == [1, 2]

    @pytest.mark.asyncio
    async def test_plugin_disabled_on_scala2(self, script_workspace, fake_services):
        inputs = _script_inputs(script_workspace)
        options = BuildOptions.create("2.13.12", add_line_modifier_plugin_opt=False)

        result = await build(inputs, options, script_workspace, services=fake_services)

        assert _hello_class(result).line_numbers == [1, 2]

    @pytest.mark.asyncio
    async def test_compile_failure(self, script_workspace, fake_services):
        inputs = _script_inputs(script_workspace)
        fake_services.compiler.failing.add(inputs.project_name)

        result = await build(
            inputs, BuildOptions.create("2.13.12"), script_workspace, services=fake_services
        )

        assert isinstance(result, Failed)
        assert not result.success
        assert result.output_opt is None
        assert result.context.project.project_name == inputs.project_name
        assert result.to_dict()["state"] == "failed"

    @pytest.mark.asyncio
    async def test_writes_bloop_file(self, script_workspace, fake_services):
        inputs = _script_inputs(script_workspace)

        result = await build(
            inputs, BuildOptions.create("2.13.12"), script_workspace, services=fake_services
        )

        bloop_file = bloop_dir(inputs.workspace) / f"{inputs.project_name}.json"
        config = json.loads(bloop_file.read_text())
        assert config["version"] == "1.4.0"
        assert config["project"]["name"] == inputs.project_name
        sources = config["project"]["sources"]
        assert len(sources) == 1
        assert sources[0].endswith("hello.scala")
        assert result.context.project.bloop_file == bloop_file

    @pytest.mark.asyncio
    async def test_repeated_build_is_stable(self, script_workspace, fake_services):
        inputs = _script_inputs(script_workspace)
        options = BuildOptions.create("3.3.1")

        first = await build(inputs, options, script_workspace, services=fake_services)
        bloop_file = first.context.project.bloop_file
        mtime = bloop_file.stat().st_mtime_ns
        second = await build(inputs, options, script_workspace, services=fake_services)

        assert first.output == second.output
        assert bloop_file.stat().st_mtime_ns == mtime
        # The fake recompiles, so remapping applies once per compile
        assert _hello_class(second).line_numbers == [1, 2]

    @pytest.mark.asyncio
    async def test_duration_recorded(self, script_workspace, fake_services):
        result = await build(
            _script_inputs(script_workspace),
            BuildOptions.create("2.13.12"),
            script_workspace,
            services=fake_services,
        )
        assert result.duration_ms >= 0


class TestJmhBuild:
    """Tests for the benchmark generation pass."""

    @pytest.mark.asyncio
    async def test_jmh_pass_builds_generated_sources(self, script_workspace, fake_services):
        inputs = _script_inputs(script_workspace)
        options = BuildOptions.create("2.13.12", run_jmh=True, add_jmh_dependencies="1.37")

        result = await build(inputs, options, script_workspace, services=fake_services)

        jmh_name = inputs.project_name + "_jmh"
        assert isinstance(result, Successful)
        assert result.inputs.project_name == jmh_name
        assert not result.options.run_jmh
        assert fake_services.compiler.calls == [inputs.project_name, jmh_name]
        assert (result.output / "Bench_jmhTest.class").is_file()

        main_class, args, cwd = fake_services.runner.calls[0]
        jmh_dir = bloop_dir(inputs.workspace) / jmh_name
        assert main_class == "org.openjdk.jmh.generators.bytecode.JmhBytecodeGenerator"
        assert args[1:] == [str(jmh_dir / "sources"), str(jmh_dir / "resources"), "default"]
        assert cwd == script_workspace

    @pytest.mark.asyncio
    async def test_generator_failure_raises(self, script_workspace, fake_services):
        fake_services.runner.exit_code = 2
        options = BuildOptions.create("2.13.12", run_jmh=True)

        with pytest.raises(SecondaryBuildError):
            await build(
                _script_inputs(script_workspace), options, script_workspace, services=fake_services
            )

    @pytest.mark.asyncio
    async def test_nested_compile_failure_returned(self, script_workspace, fake_services):
        inputs = _script_inputs(script_workspace)
        fake_services.compiler.failing.add(inputs.project_name + "_jmh")
        options = BuildOptions.create("2.13.12", run_jmh=True)

        result = await build(inputs, options, script_workspace, services=fake_services)

        assert isinstance(result, Failed)
        assert result.inputs.project_name == inputs.project_name + "_jmh"

    @pytest.mark.asyncio
    async def test_primary_failure_skips_jmh(self, script_workspace, fake_services):
        inputs = _script_inputs(script_workspace)
        fake_services.compiler.failing.add(inputs.project_name)
        options = BuildOptions.create("2.13.12", run_jmh=True)

        result = await build(inputs, options, script_workspace, services=fake_services)

        assert isinstance(result, Failed)
        assert fake_services.runner.calls == []

    @pytest.mark.asyncio
    async def test_stale_jmh_output_removed(self, script_workspace, fake_services):
        inputs = _script_inputs(script_workspace)
        stale = bloop_dir(inputs.workspace) / (inputs.project_name + "_jmh") / "sources" / "Old.java"
        stale.parent.mkdir(parents=True)
        stale.write_text("class Old {}\n")
        options = BuildOptions.create("2.13.12", run_jmh=True)

        result = await build(inputs, options, script_workspace, services=fake_services)

        assert not stale.exists()
        assert not (result.output / "Old.class").exists()


class TestCompilerOptions:
    """Tests for scalac options and position mappings."""

    def _artifacts(self, tmp_path, plugins=()):
        return Artifacts(tmp_path, (), tuple(plugins), ())

    def test_line_modifier_option(self, tmp_path):
        inputs = Inputs((), tmp_path)
        generated = (GeneratedSource(tmp_path / "gen" / "a.scala", tmp_path / "a.sc", 1),)
        options = BuildOptions.create("2.13.12")

        result = scalac_options(options, inputs, self._artifacts(tmp_path), generated)

        assert result[:4] == ["-encoding", "UTF-8", "-deprecation", "-feature"]
        assert any(o.startswith("-P:linemodifier:topWrapperLengths=") for o in result)
        assert "-sourceroot" not in result

    def test_scala3_sourceroot(self, tmp_path):
        inputs = Inputs((), tmp_path)
        options = BuildOptions.create("3.3.1")

        result = scalac_options(options, inputs, self._artifacts(tmp_path), ())

        assert result[-2:] == ["-sourceroot", str(tmp_path)]
        assert not any(o.startswith("-P:linemodifier") for o in result)

    def test_plugin_jars(self, tmp_path):
        jar = tmp_path / "plugin.jar"
        plugins = [(Dependency("org", "plugin", "1.0"), jar)]
        options = BuildOptions.create("3.3.1")

        result = scalac_options(options, Inputs((), tmp_path), self._artifacts(tmp_path, plugins), ())

        assert f"-Xplugin:{jar}" in result

    def test_position_mappings(self, tmp_path):
        root = tmp_path / "gen"
        generated = (
            GeneratedSource(root / "a.scala", tmp_path / "a.sc", 1),
            GeneratedSource(root / "dir" / "b.scala", tmp_path / "dir" / "b.sc", 3),
        )

        assert position_mappings(generated, root, False) == {
            "a.scala": ("a.sc", -1),
            "dir/b.scala": ("b.sc", -3),
        }
        assert position_mappings(generated, root, True)["dir/b.scala"] == ("b.sc", 0)

    def test_artifact_request_scala2(self):
        options = BuildOptions.create("2.13.12")

        request = artifact_request(options, Sources())

        assert Dependency("org.scala-lang", "scala-library", "2.13.12") in request.dependencies
        assert [p.name for p in request.compiler_plugins] == ["line-modifier-compiler-plugin_2.13"]
        assert request.add_stubs
        assert request.add_jvm_runner

    def test_artifact_request_scala3_library(self):
        request = artifact_request(BuildOptions.create("3.3.1"), Sources())

        assert Dependency("org.scala-lang", "scala3-library_3", "3.3.1") in request.dependencies
        assert request.compiler_plugins == ()
