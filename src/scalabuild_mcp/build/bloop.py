"""Compile invoker: hands a persisted project to the Bloop compile service."""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Protocol

from .process import run_process
from .project import bloop_dir
from .state import DiagnosticSeverity, parse_bloop_output

logger = logging.getLogger(__name__)


class Compiler(Protocol):
    async def compile(self, workspace: Path, project_name: str) -> Path | None:
        """Compile a project whose descriptor was already written.

        Returns:
            The classes directory, or None if compilation failed (already logged)
        """
        ...


class BloopCompiler:
    """Compile through the ``bloop`` command line client."""

    def __init__(self, bloop_path: str = "bloop"):
        self.bloop_path = bloop_path

    async def compile(self, workspace: Path, project_name: str) -> Path | None:
        config_dir = bloop_dir(workspace)
        command = [
            self.bloop_path,
            "compile",
            "--config-dir",
            str(config_dir),
            project_name,
        ]
        logger.info(f"Compiling {project_name}")
        try:
            result = await run_process(command, cwd=workspace)
        except FileNotFoundError:
            logger.error(f"Bloop not found: {self.bloop_path}")
            return None

        if not result.success:
            diagnostics = parse_bloop_output(result.stdout + "\n" + result.stderr)
            errors = [d for d in diagnostics if d.severity == DiagnosticSeverity.ERROR]
            logger.error(
                f"Compilation of {project_name} failed "
                f"(exit code {result.exit_code}, {len(errors)} errors)"
            )
            for err in errors[:5]:
                logger.error(f"  {err.file}:{err.line}:{err.column}: {err.message}")
            if len(errors) > 5:
                logger.error(f"  ... and {len(errors) - 5} more errors")
            if not errors:
                logger.error(result.stderr.strip() or result.stdout.strip())
            return None

        return config_dir / project_name / "classes"
