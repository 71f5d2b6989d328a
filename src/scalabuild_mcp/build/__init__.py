"""Build orchestration module for Scala scripts and sources.

Provides:
- Single builds through Bloop, with dependencies fetched by Coursier
- Position correction of classes compiled from wrapped scripts
- Debounced watch mode
- Optional JMH benchmark generation pass
"""

from .inputs import Directory, Inputs, ResourceDirectory, SingleFile
from .manager import BuildManager
from .options import BuildOptions, CodeWrapper, Dependency
from .pipeline import BuildServices, build
from .state import (
    BuildError,
    BuildResult,
    BuildState,
    Failed,
    MainClassResolution,
    Successful,
    WatchState,
)
from .watcher import Watcher, watch

__all__ = [
    "BuildError",
    "BuildManager",
    "BuildOptions",
    "BuildResult",
    "BuildServices",
    "BuildState",
    "CodeWrapper",
    "Dependency",
    "Directory",
    "Failed",
    "Inputs",
    "MainClassResolution",
    "ResourceDirectory",
    "SingleFile",
    "Successful",
    "Watcher",
    "WatchState",
    "build",
    "watch",
]
