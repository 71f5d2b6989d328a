"""Build manager - singleton orchestrating builds and watch sessions.

Provides:
- Per-workspace build state and last result
- Watch session lifecycle
- State change notifications
"""

from __future__ import annotations

import logging
import os
import threading
from collections.abc import Callable
from pathlib import Path
from typing import Any

from . import pipeline, watcher
from .inputs import Inputs
from .options import BuildOptions
from .pipeline import BuildServices
from .state import BuildResult, BuildState, WatchState
from .watcher import Watcher

logger = logging.getLogger(__name__)


class BuildManager:
    """Singleton manager for builds across workspaces.

    Usage:
        manager = BuildManager()
        inputs = Inputs.from_paths(["hello.sc"], cwd="/path/to/workspace")
        result = await manager.build(inputs, BuildOptions.create("2.13.12"))
    """

    _instance: BuildManager | None = None

    def __new__(cls) -> BuildManager:
        """Singleton pattern."""
        if cls._instance is None:
            cls._instance = super().__new__(cls)
            cls._instance._initialized = False
        return cls._instance

    def __init__(self) -> None:
        """Initialize manager (only once)."""
        if self._initialized:
            return
        # Watch rebuilds report from worker threads
        self._lock = threading.Lock()
        self._states: dict[str, BuildState] = {}
        self._results: dict[str, BuildResult] = {}
        self._watchers: dict[str, Watcher] = {}
        self._listeners: list[Callable[[str, BuildState], None]] = []
        self.services: BuildServices | None = None
        self._initialized = True

    def _normalize_path(self, path: str | os.PathLike[str]) -> str:
        """Normalize path for consistent key lookup."""
        return os.path.normcase(os.path.normpath(os.path.abspath(path)))

    def _set_state(self, workspace: str, state: BuildState) -> None:
        key = self._normalize_path(workspace)
        with self._lock:
            old_state = self._states.get(key)
            self._states[key] = state
        if old_state != state:
            logger.debug(f"Build state of {workspace}: {old_state} -> {state.value}")
            self._notify_listeners(workspace, state)

    def _record(self, workspace: str, result: BuildResult) -> None:
        key = self._normalize_path(workspace)
        with self._lock:
            self._results[key] = result
        self._set_state(workspace, result.state)

    def _notify_listeners(self, workspace: str, state: BuildState) -> None:
        """Notify state listeners."""
        for listener in list(self._listeners):
            try:
                listener(workspace, state)
            except Exception:
                logger.exception("Build listener error")

    def on_build_state_change(
        self, listener: Callable[[str, BuildState], None]
    ) -> None:
        """Register build state change listener.

        Listener receives (workspace_path, new_state). It may be called from
        a watch worker thread.
        """
        self._listeners.append(listener)

    async def build(
        self,
        inputs: Inputs,
        options: BuildOptions,
        cwd: Path | None = None,
    ) -> BuildResult:
        """Build inputs once and record the result for their workspace.

        Args:
            inputs: What to build
            options: How to build it
            cwd: Working directory for helper processes, defaults to the workspace

        Returns:
            Build result

        Raises:
            BuildError: If the build could not run to a result, after marking
                the workspace failed
        """
        workspace = str(inputs.workspace)
        self._set_state(workspace, BuildState.BUILDING)
        try:
            result = await pipeline.build(
                inputs, options, cwd or inputs.workspace, services=self.services
            )
        except Exception:
            self._set_state(workspace, BuildState.FAILED)
            raise
        self._record(workspace, result)
        return result

    async def start_watch(
        self,
        inputs: Inputs,
        options: BuildOptions,
        cwd: Path | None = None,
        on_build_result: Callable[[BuildResult], None] | None = None,
    ) -> Watcher:
        """Start a watch session, replacing any previous one for the workspace.

        The initial build runs before this returns.

        Raises:
            OSError: If an input cannot be watched
        """
        workspace = str(inputs.workspace)
        self.stop_watch(workspace)

        # Iterations never overlap: the initial build, then one worker thread
        reported = False

        def handle_result(result: BuildResult) -> None:
            nonlocal reported
            reported = True
            self._record(workspace, result)
            if on_build_result is not None:
                on_build_result(result)

        def handle_iteration() -> None:
            nonlocal reported
            # The build raised; the previous result is stale
            if not reported:
                self._set_state(workspace, BuildState.FAILED)
            reported = False

        self._set_state(workspace, BuildState.BUILDING)
        session = await watcher.watch(
            inputs,
            options,
            cwd or inputs.workspace,
            handle_result,
            handle_iteration,
            services=self.services,
        )
        with self._lock:
            self._watchers[self._normalize_path(workspace)] = session
        return session

    def stop_watch(self, workspace_root: str | os.PathLike[str]) -> bool:
        """Stop the watch session of a workspace.

        Returns:
            True if a session was stopped
        """
        key = self._normalize_path(workspace_root)
        with self._lock:
            session = self._watchers.pop(key, None)
        if session is None:
            return False
        session.dispose()
        logger.info(f"Stopped watching {workspace_root}")
        return True

    def stop_all(self) -> int:
        """Stop all watch sessions.

        Returns:
            Number of sessions stopped
        """
        with self._lock:
            sessions = list(self._watchers.values())
            self._watchers.clear()
        for session in sessions:
            session.dispose()
        return len(sessions)

    def is_watching(self, workspace_root: str | os.PathLike[str]) -> bool:
        key = self._normalize_path(workspace_root)
        return key in self._watchers

    def get_watch_state(self, workspace_root: str | os.PathLike[str]) -> WatchState | None:
        key = self._normalize_path(workspace_root)
        session = self._watchers.get(key)
        return session.state if session is not None else None

    def get_state(self, workspace_root: str | os.PathLike[str]) -> BuildState | None:
        """Get current build state for workspace.

        Returns:
            Build state or None if nothing was built there
        """
        return self._states.get(self._normalize_path(workspace_root))

    def get_last_result(self, workspace_root: str | os.PathLike[str]) -> BuildResult | None:
        """Get last build result for workspace."""
        return self._results.get(self._normalize_path(workspace_root))

    def get_all_states(self) -> dict[str, BuildState]:
        """Get build states for all workspaces."""
        return dict(self._states)

    def clear(self, workspace_root: str | os.PathLike[str]) -> bool:
        """Forget state of a workspace, stopping its watch session.

        Returns:
            True if anything was removed
        """
        key = self._normalize_path(workspace_root)
        stopped = self.stop_watch(workspace_root)
        with self._lock:
            had_state = self._states.pop(key, None) is not None
            self._results.pop(key, None)
        return stopped or had_state

    def to_dict(self) -> dict[str, Any]:
        """Get manager status as dictionary."""
        workspaces: dict[str, Any] = {}
        for path, state in self._states.items():
            result = self._results.get(path)
            session = self._watchers.get(path)
            workspaces[path] = {
                "state": state.value,
                "watch": session.state.value if session is not None else None,
                "lastResult": result.to_dict() if result is not None else None,
            }
        return {"workspaces": workspaces}
