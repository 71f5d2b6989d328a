"""Build pipeline.

materialize sources → resolve artifacts → write the Bloop project → compile →
correct script positions → (optionally) run the JMH pass on top of the result.
"""

from __future__ import annotations

import logging
import shutil
import time
from dataclasses import dataclass, field, replace
from pathlib import Path

from . import constants
from .artifacts import ArtifactRequest, ArtifactResolver, Artifacts, CoursierResolver
from .bloop import BloopCompiler, Compiler
from .inputs import Directory, Inputs, ResourceDirectory
from .options import BuildOptions, Dependency
from .positions import post_process
from .project import Project, ScalaCompiler, bloop_dir
from .runner import JvmRunner, Runner
from .sources import GeneratedSource, ScalaSourceMaterializer, SourceMaterializer, Sources
from .state import BuildContext, BuildResult, Failed, SecondaryBuildError, Successful

logger = logging.getLogger(__name__)


@dataclass
class BuildServices:
    """External collaborators of the pipeline."""

    materializer: SourceMaterializer = field(default_factory=ScalaSourceMaterializer)
    resolver: ArtifactResolver = field(default_factory=CoursierResolver)
    compiler: Compiler = field(default_factory=BloopCompiler)
    runner: Runner = field(default_factory=JvmRunner)


def scala_library_dependencies(options: BuildOptions) -> list[Dependency]:
    if not options.add_scala_library:
        return []
    if options.scala_version.startswith("3."):
        return [
            Dependency(
                "org.scala-lang",
                f"scala3-library_{options.scala_binary_version}",
                options.scala_version,
            )
        ]
    return [Dependency("org.scala-lang", "scala-library", options.scala_version)]


def line_modifier_plugin(options: BuildOptions) -> Dependency:
    return Dependency(
        constants.LINE_MODIFIER_PLUGIN_ORGANIZATION,
        f"{constants.LINE_MODIFIER_PLUGIN_MODULE}_{options.scala_binary_version}",
        constants.LINE_MODIFIER_PLUGIN_VERSION,
    )


def artifact_request(options: BuildOptions, sources: Sources) -> ArtifactRequest:
    platform = options.platform
    dependencies = list(sources.dependencies)
    plugins: list[Dependency] = []
    if platform is not None:
        dependencies.extend(platform.dependencies)
        plugins.extend(platform.compiler_plugins)
    dependencies.extend(scala_library_dependencies(options))
    if options.add_line_modifier_plugin:
        plugins.append(line_modifier_plugin(options))

    extra_jars: list[Path] = []
    if options.stubs_jar is not None:
        extra_jars.append(options.stubs_jar)
    extra_jars.extend(options.test_runner_jars or ())

    js_test_bridge = None
    if options.add_test_runner_dependency and options.scala_js is not None:
        js_test_bridge = options.scala_js.version

    return ArtifactRequest(
        scala_version=options.scala_version,
        scala_binary_version=options.scala_binary_version,
        dependencies=tuple(dependencies),
        compiler_plugins=tuple(plugins),
        extra_jars=tuple(extra_jars),
        java_home=options.java_home or None,
        jvm_id=options.jvm_id,
        add_stubs=options.add_stubs_dependency,
        add_jvm_runner=options.add_runner_dependency,
        add_jvm_test_runner=platform is None and options.add_test_runner_dependency,
        add_js_test_bridge=js_test_bridge,
        add_jmh_dependencies=options.add_jmh_dependencies,
    )


def scalac_options(
    options: BuildOptions,
    inputs: Inputs,
    artifacts: Artifacts,
    generated: tuple[GeneratedSource, ...],
) -> list[str]:
    """Compiler options for one build.

    When the line modifier plugin is active it receives the header length of
    every wrapped script, and the post-hoc remapper then shifts by zero.
    """
    result = ["-encoding", "UTF-8", "-deprecation", "-feature"]
    result.extend(f"-Xplugin:{path.absolute()}" for _dep, path in artifacts.compiler_plugins)
    if options.platform is not None:
        result.extend(options.platform.scalac_options)
    if options.add_line_modifier_plugin:
        lengths = ";".join(
            f"{g.path}->{g.reporting_path}={g.top_wrapper_lines}" for g in generated
        )
        result.append(f"-P:linemodifier:topWrapperLengths={lengths}")
    if not options.is_scala2:
        result.extend(["-sourceroot", str(inputs.workspace)])
    return result


def position_mappings(
    generated: tuple[GeneratedSource, ...],
    generated_src_root: Path,
    line_modifier_active: bool,
) -> dict[str, tuple[str, int]]:
    """Per generated file: reported file name and line shift."""
    mappings: dict[str, tuple[str, int]] = {}
    for g in generated:
        try:
            key = g.path.relative_to(generated_src_root).as_posix()
        except ValueError:
            key = g.path.name
        shift = 0 if line_modifier_active else -g.top_wrapper_lines
        mappings[key] = (g.reporting_path.name, shift)
    return mappings


async def build(
    inputs: Inputs,
    options: BuildOptions,
    cwd: Path,
    *,
    services: BuildServices | None = None,
) -> BuildResult:
    """Build inputs once.

    Returns:
        ``Successful`` with the classes directory, or ``Failed`` if the
        compile service produced nothing

    Raises:
        ResolutionError: If dependencies or the toolchain cannot be fetched
        RemappingError: If compiled classes cannot be post-processed
        SecondaryBuildError: If the requested JMH pass failed
    """
    services = services or BuildServices()
    generated_src_root = options.generated_sources_root(inputs.workspace, inputs.project_name)
    sources = services.materializer.materialize(
        inputs,
        options.code_wrapper,
        options.platform_suffix,
        options.scala_binary_version,
        generated_src_root,
    )
    result = await _build_once(inputs, sources, options, generated_src_root, services)

    if isinstance(result, Successful) and options.run_jmh:
        jmh_result = await jmh_build(inputs, result, cwd, services=services)
        if jmh_result is None:
            raise SecondaryBuildError("JMH build failed")
        return jmh_result
    return result


async def _build_once(
    inputs: Inputs,
    sources: Sources,
    options: BuildOptions,
    generated_src_root: Path,
    services: BuildServices,
) -> BuildResult:
    start_time = time.perf_counter()

    artifacts = await services.resolver.resolve(artifact_request(options, sources))

    compiler = ScalaCompiler(
        scala_version=options.scala_version,
        scala_binary_version=options.scala_binary_version,
        scalac_options=tuple(scalac_options(options, inputs, artifacts, sources.generated)),
        compiler_class_path=artifacts.compiler_class_path,
    )
    project = Project(
        workspace=inputs.workspace,
        project_name=inputs.project_name,
        java_home=artifacts.java_home,
        scala_compiler=compiler,
        class_path=artifacts.class_path,
        sources=tuple(sources.all_paths),
        resource_dirs=sources.resource_dirs,
        platform=options.platform,
    )
    project.write_bloop_file()

    output = await services.compiler.compile(inputs.workspace, inputs.project_name)
    context = BuildContext(inputs, options, sources, artifacts, project)

    if output is None:
        duration = (time.perf_counter() - start_time) * 1000
        return Failed(context, duration_ms=duration)

    # Only after the compile service is done with the output directory
    mappings = position_mappings(
        sources.generated, generated_src_root, options.add_line_modifier_plugin
    )
    post_process(mappings, output)

    duration = (time.perf_counter() - start_time) * 1000
    logger.info(f"Built {inputs.project_name} in {duration:.0f}ms")
    return Successful(context, output, duration_ms=duration)


async def jmh_build(
    inputs: Inputs,
    primary: Successful,
    cwd: Path,
    *,
    services: BuildServices,
) -> BuildResult | None:
    """Generate JMH benchmark sources from a build and compile them.

    Returns:
        The nested build result, or None if the generator failed
    """
    jmh_project_name = inputs.project_name + "_jmh"
    jmh_output_dir = bloop_dir(inputs.workspace) / jmh_project_name
    shutil.rmtree(jmh_output_dir, ignore_errors=True)
    jmh_source_dir = jmh_output_dir / "sources"
    jmh_resource_dir = jmh_output_dir / "resources"
    jmh_source_dir.mkdir(parents=True)
    jmh_resource_dir.mkdir(parents=True)

    exit_code = await services.runner.run(
        primary.context.artifacts.java_home,
        primary.full_class_path,
        constants.JMH_GENERATOR_MAIN_CLASS,
        [str(primary.output), str(jmh_source_dir), str(jmh_resource_dir), "default"],
        cwd=cwd,
    )
    if exit_code != 0:
        logger.error(f"jmh bytecode generator exited with return code {exit_code}")
        return None

    # The hash of the primary project is already part of jmh_project_name
    jmh_inputs = inputs.derive(
        base_project_name=jmh_project_name,
        may_append_hash=False,
        extra_elements=[Directory(jmh_source_dir), ResourceDirectory(jmh_resource_dir)],
    )
    return await build(
        jmh_inputs,
        replace(primary.options, run_jmh=False),
        cwd,
        services=services,
    )
