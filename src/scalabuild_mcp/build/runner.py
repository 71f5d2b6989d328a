"""Running JVM main classes as external processes."""

from __future__ import annotations

import logging
import os
from collections.abc import Sequence
from pathlib import Path
from typing import Protocol

from .process import run_process

logger = logging.getLogger(__name__)


class Runner(Protocol):
    async def run(
        self,
        java_home: Path,
        class_path: Sequence[Path],
        main_class: str,
        args: Sequence[str],
        cwd: Path | None = None,
    ) -> int:
        """Run ``main_class`` and return its exit code."""
        ...


def java_executable(java_home: Path) -> Path:
    name = "java.exe" if os.name == "nt" else "java"
    return java_home / "bin" / name


class JvmRunner:
    """Run a main class in a fresh JVM."""

    def __init__(self, java_options: Sequence[str] = ()):
        self.java_options = list(java_options)

    async def run(
        self,
        java_home: Path,
        class_path: Sequence[Path],
        main_class: str,
        args: Sequence[str],
        cwd: Path | None = None,
    ) -> int:
        command = [
            str(java_executable(java_home)),
            *self.java_options,
            "-cp",
            os.pathsep.join(str(p) for p in class_path),
            main_class,
            *args,
        ]
        logger.info(f"Running {main_class}")
        try:
            result = await run_process(command, cwd=cwd)
        except FileNotFoundError:
            logger.error(f"Java not found in {java_home}")
            return 127

        for line in result.stdout.splitlines():
            logger.info(f"[{main_class}] {line}")
        for line in result.stderr.splitlines():
            logger.warning(f"[{main_class}] {line}")
        return result.exit_code
