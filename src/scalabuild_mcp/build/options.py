"""Build options: Scala version, wrapping strategy, platform and toolchain settings."""

from __future__ import annotations

import shutil
from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from typing import Any

from . import constants


@dataclass(frozen=True)
class Dependency:
    """Maven coordinates of a library."""

    organization: str
    name: str
    version: str

    @property
    def coordinates(self) -> str:
        return f"{self.organization}:{self.name}:{self.version}"

    def __str__(self) -> str:
        return self.coordinates

    @classmethod
    def parse(
        cls,
        text: str,
        scala_binary_version: str,
        platform_suffix: str = "",
    ) -> Dependency:
        """Parse ``org:name:version`` or ``org::name:version``.

        With ``::`` the module name gets the platform suffix and the Scala
        binary version appended, e.g. ``org::lib:1.0`` → ``lib_sjs1_2.13``.

        Raises:
            ValueError: If the coordinates are malformed
        """
        text = text.strip()
        if "::" in text:
            org, _, rest = text.partition("::")
            parts = rest.split(":")
            if len(parts) != 2 or not org or not all(parts):
                raise ValueError(f"Malformed dependency: {text}")
            name = f"{parts[0]}{platform_suffix}_{scala_binary_version}"
            return cls(org, name, parts[1])

        parts = text.split(":")
        if len(parts) != 3 or not all(parts):
            raise ValueError(f"Malformed dependency: {text}")
        return cls(parts[0], parts[1], parts[2])


class CodeWrapper(str, Enum):
    """How scripts are wrapped into compilable units."""

    OBJECT = "object"  # object <name> { ... } plus a <name>_sc launcher
    APP = "app"  # object <name> extends App { ... }


@dataclass(frozen=True)
class PlatformOptions:
    """Cross-compilation target (Scala.js or Scala Native)."""

    platform: str
    platform_suffix: str
    dependencies: tuple[Dependency, ...]
    compiler_plugins: tuple[Dependency, ...]
    config: dict[str, Any] = field(default_factory=dict, hash=False)
    scalac_options: tuple[str, ...] = ()

    @property
    def version(self) -> str:
        return self.config["version"]


def scala_binary_version(scala_version: str) -> str:
    """``3.3.3`` → ``3``, ``2.13.14`` → ``2.13``."""
    parts = scala_version.split(".")
    if parts[0] == "3":
        return "3"
    return ".".join(parts[:2])


def scala_js_options(scala_version: str, binary_version: str) -> PlatformOptions:
    version = constants.SCALA_JS_VERSION
    # 0.6.x → _sjs0.6, 1.x → _sjs1
    kept = 2 if version.startswith("0.") else 1
    platform_suffix = "_sjs" + ".".join(version.split(".")[:kept])
    library_binary_version = "2.13" if binary_version == "3" else binary_version

    if scala_version.startswith("3."):
        plugins: tuple[Dependency, ...] = ()
        scalac_options: tuple[str, ...] = ("-scalajs",)
    else:
        plugins = (Dependency("org.scala-js", f"scalajs-compiler_{scala_version}", version),)
        scalac_options = ()

    return PlatformOptions(
        platform="js",
        platform_suffix=platform_suffix,
        dependencies=(
            Dependency("org.scala-js", f"scalajs-library_{library_binary_version}", version),
        ),
        compiler_plugins=plugins,
        config={
            "version": version,
            "mode": "debug",
            "kind": "none",
            "emitSourceMaps": False,
            "jsdom": False,
            "output": None,
            "nodePath": None,
            "toolchain": [],
        },
        scalac_options=scalac_options,
    )


def scala_native_options(scala_version: str, binary_version: str) -> PlatformOptions:
    version = constants.SCALA_NATIVE_VERSION
    platform_suffix = "_native" + ".".join(version.split(".")[:2])
    dependencies = tuple(
        Dependency("org.scala-native", f"{name}{platform_suffix}_{binary_version}", version)
        for name in ("nativelib", "javalib", "auxlib", "scalalib")
    )
    return PlatformOptions(
        platform="native",
        platform_suffix=platform_suffix,
        dependencies=dependencies,
        compiler_plugins=(
            Dependency("org.scala-native", f"nscplugin_{scala_version}", version),
        ),
        config={
            "version": version,
            "mode": "debug",
            "gc": "default",
            "targetTriple": None,
            "clang": shutil.which("clang") or "clang",
            "clangpp": shutil.which("clang++") or "clang++",
            "toolchain": [],
            "options": {"linker": [], "compiler": []},
            "linkStubs": False,
            "check": False,
            "dump": False,
            "output": None,
        },
    )


@dataclass(frozen=True)
class BuildOptions:
    """Immutable configuration of a build.

    The ``*_opt`` flags are tri-state: None means "use the default", which
    the matching property computes.
    """

    scala_version: str
    scala_binary_version: str
    generated_src_root: Path | None = None
    code_wrapper: CodeWrapper = CodeWrapper.OBJECT
    scala_js: PlatformOptions | None = None
    scala_native: PlatformOptions | None = None
    java_home: str | None = None
    jvm_id: str | None = None
    stubs_jar: Path | None = None
    add_stubs_dependency_opt: bool | None = None
    test_runner_jars: tuple[Path, ...] | None = None
    add_runner_dependency_opt: bool | None = None
    add_test_runner_dependency_opt: bool | None = None
    add_jmh_dependencies: str | None = None
    run_jmh: bool = False
    add_line_modifier_plugin_opt: bool | None = None
    add_scala_library: bool = True

    def __post_init__(self) -> None:
        if self.scala_js is not None and self.scala_native is not None:
            raise ValueError("Scala.js and Scala Native cannot be enabled together")

    @classmethod
    def create(cls, scala_version: str, **kwargs: Any) -> BuildOptions:
        """Build options for a Scala version, deriving its binary version."""
        return cls(
            scala_version=scala_version,
            scala_binary_version=scala_binary_version(scala_version),
            **kwargs,
        )

    @property
    def is_scala2(self) -> bool:
        return self.scala_version.startswith("2.")

    @property
    def platform(self) -> PlatformOptions | None:
        return self.scala_js or self.scala_native

    @property
    def platform_suffix(self) -> str:
        platform = self.platform
        return platform.platform_suffix if platform is not None else ""

    @property
    def add_stubs_dependency(self) -> bool:
        if self.add_stubs_dependency_opt is not None:
            return self.add_stubs_dependency_opt
        return self.stubs_jar is None

    @property
    def add_runner_dependency(self) -> bool:
        if self.platform is not None:
            return False
        if self.add_runner_dependency_opt is not None:
            return self.add_runner_dependency_opt
        return True

    @property
    def add_test_runner_dependency(self) -> bool:
        return bool(self.add_test_runner_dependency_opt)

    @property
    def add_line_modifier_plugin(self) -> bool:
        """Whether scalac itself corrects script positions.

        When true the post-hoc remapper runs with a zero shift.
        """
        if self.add_line_modifier_plugin_opt is not None:
            return self.add_line_modifier_plugin_opt
        return self.is_scala2

    def generated_sources_root(self, workspace: Path, project_name: str) -> Path:
        """Where wrapped scripts are written."""
        if self.generated_src_root is not None:
            return self.generated_src_root
        return (
            workspace
            / constants.BUILD_DIR_NAME
            / constants.BLOOP_DIR_NAME
            / project_name
            / ".src_generated"
        )
