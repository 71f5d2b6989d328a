"""Artifact resolution: compiler, compiler plugins and class path as local files.

Resolution itself is Coursier's job; this module only asks for the right
coordinates and turns its answer into paths.
"""

from __future__ import annotations

import logging
from collections.abc import Sequence
from dataclasses import dataclass
from pathlib import Path
from typing import Protocol

from . import constants
from .options import Dependency
from .process import run_process
from .state import ResolutionError

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ArtifactRequest:
    """What a build needs resolved."""

    scala_version: str
    scala_binary_version: str
    dependencies: tuple[Dependency, ...] = ()
    compiler_plugins: tuple[Dependency, ...] = ()
    extra_jars: tuple[Path, ...] = ()
    java_home: str | None = None
    jvm_id: str | None = None
    add_stubs: bool = False
    add_jvm_runner: bool = False
    add_jvm_test_runner: bool = False
    add_js_test_bridge: str | None = None
    add_jmh_dependencies: str | None = None

    @property
    def _scala2_binary_version(self) -> str:
        # Scala 3 consumes Scala 2.13 artifacts
        return "2.13" if self.scala_binary_version == "3" else self.scala_binary_version

    def compiler_dependencies(self) -> list[Dependency]:
        if self.scala_version.startswith("3."):
            return [Dependency("org.scala-lang", "scala3-compiler_3", self.scala_version)]
        return [Dependency("org.scala-lang", "scala-compiler", self.scala_version)]

    def internal_dependencies(self) -> list[Dependency]:
        """Dependencies added by the build itself rather than by the user."""
        org = constants.SCALA_CLI_ORGANIZATION
        version = constants.SCALA_CLI_VERSION
        sbv = self._scala2_binary_version
        deps: list[Dependency] = []
        if self.add_stubs:
            deps.append(Dependency(org, constants.STUBS_MODULE, version))
        if self.add_jvm_runner:
            deps.append(Dependency(org, f"{constants.RUNNER_MODULE}_{sbv}", version))
        if self.add_jvm_test_runner:
            deps.append(Dependency(org, f"{constants.TEST_RUNNER_MODULE}_{sbv}", version))
        if self.add_js_test_bridge:
            deps.append(
                Dependency("org.scala-js", f"scalajs-test-bridge_{sbv}", self.add_js_test_bridge)
            )
        if self.add_jmh_dependencies:
            for name in ("jmh-core", "jmh-generator-bytecode"):
                deps.append(Dependency(constants.JMH_ORGANIZATION, name, self.add_jmh_dependencies))
        return deps

    def all_dependencies(self) -> list[Dependency]:
        return list(self.dependencies) + self.internal_dependencies()


@dataclass(frozen=True)
class Artifacts:
    """Resolved local files for one build."""

    java_home: Path
    compiler_class_path: tuple[Path, ...]
    compiler_plugins: tuple[tuple[Dependency, Path], ...]
    class_path: tuple[Path, ...]


class ArtifactResolver(Protocol):
    async def resolve(self, request: ArtifactRequest) -> Artifacts:
        """Resolve a request to local files.

        Raises:
            ResolutionError: If anything cannot be fetched
        """
        ...


class CoursierResolver:
    """Resolve artifacts with the Coursier command line launcher."""

    def __init__(self, cs_path: str = "cs"):
        self.cs_path = cs_path

    async def _run(self, args: Sequence[str]) -> str:
        command = [self.cs_path, *args]
        try:
            result = await run_process(command)
        except FileNotFoundError as e:
            raise ResolutionError(f"Coursier not found: {self.cs_path}") from e
        if not result.success:
            details = result.stderr.strip().splitlines()[-5:]
            raise ResolutionError(
                f"Resolution failed ({' '.join(args[:2])}): " + " | ".join(details),
                exit_code=result.exit_code,
            )
        return result.stdout

    async def fetch(
        self, dependencies: Sequence[Dependency], intransitive: bool = False
    ) -> list[Path]:
        """Fetch dependencies, returning their jars."""
        if not dependencies:
            return []
        args = ["fetch"]
        if intransitive:
            args.append("--intransitive")
        args.extend(dep.coordinates for dep in dependencies)
        stdout = await self._run(args)
        return [Path(line.strip()) for line in stdout.splitlines() if line.strip()]

    async def java_home(self, jvm_id: str | None) -> Path:
        args = ["java-home"]
        if jvm_id:
            args.extend(["--jvm", jvm_id])
        stdout = (await self._run(args)).strip()
        if not stdout:
            raise ResolutionError("Coursier returned no Java home")
        return Path(stdout.splitlines()[-1])

    async def resolve(self, request: ArtifactRequest) -> Artifacts:
        if request.java_home:
            java_home = Path(request.java_home)
        else:
            java_home = await self.java_home(request.jvm_id)

        compiler_class_path = await self.fetch(request.compiler_dependencies())

        plugins: list[tuple[Dependency, Path]] = []
        for plugin in request.compiler_plugins:
            jars = await self.fetch([plugin], intransitive=True)
            if not jars:
                raise ResolutionError(f"No jar found for compiler plugin {plugin}")
            plugins.append((plugin, jars[0]))

        class_path = await self.fetch(request.all_dependencies())
        class_path.extend(request.extra_jars)

        logger.info(
            f"Resolved {len(class_path)} class path entries, "
            f"{len(plugins)} compiler plugins"
        )
        return Artifacts(
            java_home=java_home,
            compiler_class_path=tuple(compiler_class_path),
            compiler_plugins=tuple(plugins),
            class_path=tuple(class_path),
        )
