"""Project descriptor: the Bloop configuration file handed to the compile service."""

from __future__ import annotations

import json
import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

from . import constants
from .options import PlatformOptions

logger = logging.getLogger(__name__)


def bloop_dir(workspace: Path) -> Path:
    """Directory holding Bloop files for a workspace."""
    return workspace / constants.BUILD_DIR_NAME / constants.BLOOP_DIR_NAME


@dataclass(frozen=True)
class ScalaCompiler:
    scala_version: str
    scala_binary_version: str
    scalac_options: tuple[str, ...]
    compiler_class_path: tuple[Path, ...]


@dataclass(frozen=True)
class Project:
    """Everything Bloop needs to compile one project."""

    workspace: Path
    project_name: str
    java_home: Path
    scala_compiler: ScalaCompiler
    class_path: tuple[Path, ...]
    sources: tuple[Path, ...]
    resource_dirs: tuple[Path, ...] = ()
    platform: PlatformOptions | None = field(default=None)

    @property
    def bloop_file(self) -> Path:
        return bloop_dir(self.workspace) / f"{self.project_name}.json"

    @property
    def out_dir(self) -> Path:
        return bloop_dir(self.workspace) / self.project_name

    @property
    def classes_dir(self) -> Path:
        return self.out_dir / "classes"

    def _platform_config(self) -> dict[str, Any]:
        if self.platform is None:
            return {
                "name": "jvm",
                "config": {"home": str(self.java_home), "options": []},
                "mainClass": [],
            }
        return {
            "name": self.platform.platform,
            "config": dict(self.platform.config),
            "mainClass": [],
        }

    def to_bloop_config(self) -> dict[str, Any]:
        """Serialize as a Bloop configuration document."""
        compiler = self.scala_compiler
        compiler_name = (
            "scala3-compiler" if compiler.scala_version.startswith("3.") else "scala-compiler"
        )
        return {
            "version": constants.BLOOP_CONFIG_VERSION,
            "project": {
                "name": self.project_name,
                "directory": str(self.workspace),
                "workspaceDir": str(self.workspace),
                "sources": [str(p) for p in self.sources],
                "dependencies": [],
                "classpath": [str(p) for p in self.class_path],
                "out": str(self.out_dir),
                "classesDir": str(self.classes_dir),
                "resources": [str(p) for p in self.resource_dirs],
                "scala": {
                    "organization": "org.scala-lang",
                    "name": compiler_name,
                    "version": compiler.scala_version,
                    "options": list(compiler.scalac_options),
                    "jars": [str(p) for p in compiler.compiler_class_path],
                    "analysis": str(self.out_dir / "inc_compile.zip"),
                    "setup": {
                        "order": "mixed",
                        "addLibraryToBootClasspath": True,
                        "addCompilerToClasspath": False,
                        "addExtraJarsToClasspath": False,
                        "manageBootClasspath": True,
                        "filterLibraryFromClasspath": True,
                    },
                },
                "java": {"options": []},
                "platform": self._platform_config(),
                "tags": ["library"],
            },
        }

    def write_bloop_file(self) -> bool:
        """Persist the descriptor.

        The file is left untouched when its content would not change, so Bloop
        keeps reusing its cached compilation state.

        Returns:
            True if the file was written
        """
        content = json.dumps(self.to_bloop_config(), indent=2) + "\n"
        path = self.bloop_file
        if path.is_file() and path.read_text(encoding="utf-8") == content:
            logger.debug(f"Bloop file unchanged: {path}")
            return False
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_text(content, encoding="utf-8")
        logger.debug(f"Wrote Bloop file {path}")
        return True
