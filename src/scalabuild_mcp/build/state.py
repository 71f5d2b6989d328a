"""Build state management and result types.

State machine for one-shot builds:
IDLE → BUILDING → READY | FAILED
     ↑__________________|

State machine for watch sessions:
IDLE → PENDING_REBUILD → REBUILDING → IDLE

A build result is a tagged variant: ``Successful`` or ``Failed``, both
wrapping the same ``BuildContext``. Only ``Successful`` carries an output
directory.
"""

from __future__ import annotations

import logging
import re
from collections.abc import Callable
from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from typing import TYPE_CHECKING, Any, Union

if TYPE_CHECKING:
    from .artifacts import Artifacts
    from .inputs import Inputs
    from .options import BuildOptions
    from .project import Project
    from .sources import Sources

logger = logging.getLogger(__name__)


class BuildState(str, Enum):
    """Build state machine states."""

    IDLE = "idle"
    BUILDING = "building"
    READY = "ready"
    FAILED = "failed"


class WatchState(str, Enum):
    """Watch session state machine states."""

    IDLE = "idle"
    PENDING_REBUILD = "pending_rebuild"
    REBUILDING = "rebuilding"


class DiagnosticSeverity(str, Enum):
    """Compiler diagnostic severity levels."""

    ERROR = "error"
    WARNING = "warning"
    INFO = "info"


@dataclass
class CompileDiagnostic:
    """Parsed compiler diagnostic (error/warning)."""

    severity: DiagnosticSeverity
    message: str
    file: str | None = None
    line: int | None = None
    column: int | None = None

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary for JSON serialization."""
        result: dict[str, Any] = {
            "severity": self.severity.value,
            "message": self.message,
        }
        if self.file:
            result["file"] = self.file
        if self.line is not None:
            result["line"] = self.line
        if self.column is not None:
            result["column"] = self.column
        return result


# Bloop CLI format, message on the following line(s):
# [E] [E1] /path/Foo.scala:3:5
# [E]      not found: value x
BLOOP_DIAGNOSTIC_PATTERN = re.compile(
    r"^(?:\[[EWI]\]\s+)?\[(?P<severity>[EWI])\d+\]\s+"
    r"(?P<file>.+?):(?P<line>\d+):(?P<col>\d+)\s*$"
)

# Plain scalac / javac format: path:line[:col]: severity: message
SCALAC_DIAGNOSTIC_PATTERN = re.compile(
    r"^(?P<file>[^:\s][^:]*\.(?:scala|sc|java)):(?P<line>\d+):(?:(?P<col>\d+):)?\s*"
    r"(?P<severity>error|warning|info):\s*(?P<message>.+)$",
    re.IGNORECASE,
)

_LEVEL_PREFIX = re.compile(r"^\[[EWI]\]\s?")

_SEVERITY_LETTERS = {
    "E": DiagnosticSeverity.ERROR,
    "W": DiagnosticSeverity.WARNING,
    "I": DiagnosticSeverity.INFO,
}


def parse_bloop_output(output: str) -> list[CompileDiagnostic]:
    """Parse compile service output into structured diagnostics.

    Args:
        output: Bloop console output

    Returns:
        List of parsed diagnostics
    """
    diagnostics: list[CompileDiagnostic] = []
    lines = output.splitlines()

    for index, raw in enumerate(lines):
        line = raw.strip()
        if not line:
            continue

        match = BLOOP_DIAGNOSTIC_PATTERN.match(line)
        if match:
            message = ""
            if index + 1 < len(lines):
                message = _LEVEL_PREFIX.sub("", lines[index + 1].strip()).strip()
            diagnostics.append(
                CompileDiagnostic(
                    severity=_SEVERITY_LETTERS[match.group("severity")],
                    message=message,
                    file=match.group("file"),
                    line=int(match.group("line")),
                    column=int(match.group("col")),
                )
            )
            continue

        match = SCALAC_DIAGNOSTIC_PATTERN.match(line)
        if match:
            col = match.group("col")
            diagnostics.append(
                CompileDiagnostic(
                    severity=DiagnosticSeverity(match.group("severity").lower()),
                    message=match.group("message"),
                    file=match.group("file"),
                    line=int(match.group("line")),
                    column=int(col) if col else None,
                )
            )

    return diagnostics


class BuildError(Exception):
    """Build operation error."""

    def __init__(self, message: str, exit_code: int | None = None):
        super().__init__(message)
        self.exit_code = exit_code

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary for JSON serialization."""
        result: dict[str, Any] = {
            "error": str(self),
            "kind": type(self).__name__,
        }
        if self.exit_code is not None:
            result["exitCode"] = self.exit_code
        return result


class InputsError(BuildError):
    """Invalid or missing build inputs."""


class ResolutionError(BuildError):
    """Dependency or toolchain resolution failed."""


class ClassFileError(BuildError):
    """Malformed JVM class file."""


class RemappingError(BuildError):
    """A compiled unit could not be post-processed."""

    def __init__(self, message: str, unit_path: Path):
        super().__init__(message)
        self.unit_path = unit_path

    def to_dict(self) -> dict[str, Any]:
        result = super().to_dict()
        result["unitPath"] = str(self.unit_path)
        return result


class NoMainClassError(BuildError):
    """No entry point found in the build output."""


class SecondaryBuildError(BuildError):
    """The benchmark (JMH) build pass failed."""


@dataclass(frozen=True)
class MainClassResolution:
    """Outcome of picking the entry point of a successful build.

    ``main_class`` is None when several candidates exist and none of them is
    the default one.
    """

    main_class: str | None
    candidates: tuple[str, ...] = ()

    @property
    def ambiguous(self) -> bool:
        return self.main_class is None and len(self.candidates) > 1

    def to_dict(self) -> dict[str, Any]:
        return {
            "mainClass": self.main_class,
            "candidates": list(self.candidates),
            "ambiguous": self.ambiguous,
        }


@dataclass(frozen=True)
class BuildContext:
    """What every build result carries, successful or not."""

    inputs: Inputs
    options: BuildOptions
    sources: Sources
    artifacts: Artifacts
    project: Project


@dataclass(frozen=True)
class Successful:
    """Compilation succeeded; ``output`` holds the class files."""

    context: BuildContext
    output: Path
    duration_ms: float = field(default=0.0, compare=False)

    success = True
    state = BuildState.READY

    @property
    def inputs(self) -> Inputs:
        return self.context.inputs

    @property
    def options(self) -> BuildOptions:
        return self.context.options

    @property
    def output_opt(self) -> Path | None:
        return self.output

    @property
    def full_class_path(self) -> list[Path]:
        """Output directory, then resource directories, then dependencies."""
        return (
            [self.output]
            + list(self.context.sources.resource_dirs)
            + list(self.context.artifacts.class_path)
        )

    def found_main_classes(
        self, finder: Callable[[Path], list[str]] | None = None
    ) -> list[str]:
        """List entry points discoverable in the output directory."""
        if finder is None:
            from .main_class import find_main_classes

            finder = find_main_classes
        return finder(self.output)

    def retained_main_class(
        self,
        warn_if_several: bool = False,
        finder: Callable[[Path], list[str]] | None = None,
    ) -> MainClassResolution:
        """Pick the entry point to run.

        The default main class reported by the sources wins when it was
        actually compiled. Otherwise a single discovered entry point is used.

        Raises:
            NoMainClassError: If the output has no entry point at all
        """
        found = self.found_main_classes(finder)
        default = self.context.sources.main_class
        if default is not None and default in found:
            return MainClassResolution(default, tuple(found))

        if not found:
            raise NoMainClassError("No main class found")
        if len(found) == 1:
            return MainClassResolution(found[0], tuple(found))

        if warn_if_several:
            logger.warning(
                "Found several main classes: "
                + ", ".join(found)
                + ". Please specify which one to use."
            )
        return MainClassResolution(None, tuple(found))

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary for JSON serialization."""
        return {
            "success": True,
            "state": self.state.value,
            "projectName": self.context.inputs.project_name,
            "workspace": str(self.context.inputs.workspace),
            "output": str(self.output),
            "sources": len(self.context.sources.all_paths),
            "durationMs": round(self.duration_ms, 2),
        }

    def to_summary(self) -> str:
        """Generate human-readable summary."""
        return "\n".join(
            [
                "[OK] Build succeeded",
                f"  Project: {self.context.inputs.project_name}",
                f"  Output: {self.output}",
                f"  Duration: {self.duration_ms:.0f}ms",
            ]
        )


@dataclass(frozen=True)
class Failed:
    """Compilation failed; there is no output directory."""

    context: BuildContext
    duration_ms: float = field(default=0.0, compare=False)

    success = False
    state = BuildState.FAILED

    @property
    def inputs(self) -> Inputs:
        return self.context.inputs

    @property
    def options(self) -> BuildOptions:
        return self.context.options

    @property
    def output_opt(self) -> Path | None:
        return None

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary for JSON serialization."""
        return {
            "success": False,
            "state": self.state.value,
            "projectName": self.context.inputs.project_name,
            "workspace": str(self.context.inputs.workspace),
            "sources": len(self.context.sources.all_paths),
            "durationMs": round(self.duration_ms, 2),
        }

    def to_summary(self) -> str:
        """Generate human-readable summary."""
        return "\n".join(
            [
                "[FAILED] Build failed",
                f"  Project: {self.context.inputs.project_name}",
                f"  Duration: {self.duration_ms:.0f}ms",
            ]
        )


BuildResult = Union[Successful, Failed]
