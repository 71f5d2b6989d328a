"""Watch mode: rebuild whenever inputs change.

State machine:
IDLE → PENDING_REBUILD → REBUILDING → IDLE

File system notifications arrive on watchdog's threads. They only ever arm
the debounce timer; the timer and every rebuild run on one worker thread, so
rebuilds never overlap and a burst of changes yields one trailing rebuild.
"""

from __future__ import annotations

import asyncio
import logging
import os
import threading
import time
from collections.abc import Callable
from concurrent.futures import Future, ThreadPoolExecutor
from pathlib import Path

from watchdog.events import FileSystemEvent, FileSystemEventHandler
from watchdog.observers import Observer
from watchdog.observers.api import BaseObserver, EventEmitter

from . import constants
from .inputs import Directory, Element, Inputs, SingleFile
from .options import BuildOptions
from .pipeline import BuildServices, build
from .state import BuildResult, WatchState

logger = logging.getLogger(__name__)

DEBOUNCE_SECONDS: float = 0.05
OBSERVER_JOIN_TIMEOUT: float = 5.0

# Reading a file is not a change
IGNORED_EVENT_TYPES = frozenset({"opened", "closed_no_write"})


def event_filter(elem: Element) -> Callable[[str], bool]:
    """Which event paths of an input element should trigger a rebuild."""
    if isinstance(elem, Directory):
        root = elem.path

        def accept_source(path: str) -> bool:
            try:
                rel = Path(path).absolute().relative_to(root)
            except ValueError:
                return False
            # Skips .scala/.bloop output in particular
            if any(part.startswith(".") for part in rel.parts):
                return False
            return rel.name.endswith(constants.SOURCE_EXTENSIONS)

        return accept_source

    if isinstance(elem, SingleFile):
        target = elem.path

        def accept_file(path: str) -> bool:
            return Path(path).absolute() == target

        return accept_file

    return lambda path: True


def logging_emitter(emitter_class: type[EventEmitter]) -> type[EventEmitter]:
    """Subclass a watchdog emitter so backend errors are logged, not fatal.

    A plain emitter thread ends on the first exception out of
    ``queue_events``, silently dropping its path from the session.
    """

    class LoggingEmitter(emitter_class):
        def queue_events(self, timeout, *args, **kwargs):
            try:
                super().queue_events(timeout, *args, **kwargs)
            except Exception:
                logger.exception(f"File watcher error on {self.watch.path}")
                # A persistent failure retries once per timeout
                self.stopped_event.wait(timeout)

    LoggingEmitter.__name__ = f"Logging{emitter_class.__name__}"
    LoggingEmitter.__qualname__ = LoggingEmitter.__name__
    return LoggingEmitter


class _InputEventHandler(FileSystemEventHandler):
    """Forwards accepted events of one input element to the watcher."""

    def __init__(self, accept: Callable[[str], bool], on_change: Callable[[], None]):
        super().__init__()
        self._accept = accept
        self._on_change = on_change

    def on_any_event(self, event: FileSystemEvent) -> None:
        try:
            if event.event_type in IGNORED_EVENT_TYPES:
                return
            paths = [event.src_path]
            dest_path = getattr(event, "dest_path", "")
            if dest_path:
                paths.append(dest_path)
            if any(self._accept(os.fsdecode(p)) for p in paths):
                self._on_change()
        except Exception:
            logger.exception(f"Error handling file system event {event!r}")


class Watcher:
    """Path watch handles plus the single worker that debounces and rebuilds.

    One instance per watch session; ``dispose()`` ends it.
    """

    def __init__(self, on_change: Callable[[], None], debounce: float = DEBOUNCE_SECONDS):
        self._on_change = on_change
        self._debounce = debounce
        self._observers: list[BaseObserver] = []
        self._executor = ThreadPoolExecutor(
            max_workers=1, thread_name_prefix="scalabuild-file-watcher"
        )
        self._lock = threading.Lock()
        self._pending: Future[None] | None = None
        self._rebuilding = False
        self._disposed = False

    @property
    def state(self) -> WatchState:
        if self._rebuilding:
            return WatchState.REBUILDING
        if self._pending is not None:
            return WatchState.PENDING_REBUILD
        return WatchState.IDLE

    @property
    def disposed(self) -> bool:
        return self._disposed

    @property
    def observers(self) -> list[BaseObserver]:
        return list(self._observers)

    def new_observer(self) -> BaseObserver:
        observer = Observer()
        observer._emitter_class = logging_emitter(observer._emitter_class)
        self._observers.append(observer)
        return observer

    def register(self, elem: Element) -> None:
        """Start watching one input element.

        Single files are watched through their parent directory,
        non-recursively, with events for other files filtered out.

        Raises:
            OSError: If the backend cannot watch the path
        """
        handler = _InputEventHandler(event_filter(elem), self.schedule)
        observer = self.new_observer()
        if isinstance(elem, SingleFile):
            observer.schedule(handler, str(elem.path.parent), recursive=False)
        else:
            observer.schedule(handler, str(elem.path), recursive=True)
        observer.start()
        logger.debug(f"Watching {elem.path} (recursive={elem.recursive})")

    def schedule(self) -> None:
        """Request a rebuild after the debounce delay.

        Absorbed if a rebuild is already pending; at most one timer is
        armed at any time.
        """
        if self._pending is not None or self._disposed:
            return
        with self._lock:
            if self._pending is None and not self._disposed:
                deadline = time.monotonic() + self._debounce
                self._pending = self._executor.submit(self._fire, deadline)

    def _fire(self, deadline: float) -> None:
        delay = deadline - time.monotonic()
        if delay > 0:
            time.sleep(delay)
        with self._lock:
            self._pending = None
            if self._disposed:
                return
            self._rebuilding = True
        try:
            self._on_change()
        except Exception:
            logger.exception("Rebuild failed")
        finally:
            self._rebuilding = False

    def dispose(self) -> None:
        """Close all watch handles and stop the worker.

        Does not wait for an in-flight rebuild; safe to call from within one,
        and more than once.
        """
        with self._lock:
            if self._disposed:
                return
            self._disposed = True

        for observer in self._observers:
            try:
                observer.stop()
            except Exception:
                logger.exception("Error stopping file watcher")
        current = threading.current_thread()
        for observer in self._observers:
            if observer is not current and observer.is_alive():
                observer.join(timeout=OBSERVER_JOIN_TIMEOUT)

        self._executor.shutdown(wait=False, cancel_futures=True)
        logger.debug("Watcher disposed")


async def watch(
    inputs: Inputs,
    options: BuildOptions,
    cwd: Path,
    on_build_result: Callable[[BuildResult], None],
    on_iteration_complete: Callable[[], None] | None = None,
    *,
    services: BuildServices | None = None,
    debounce: float = DEBOUNCE_SECONDS,
) -> Watcher:
    """Build once, then rebuild on every settled burst of input changes.

    ``on_build_result`` is called with the initial result before anything is
    watched, then once per rebuild from the watcher's worker thread. Build
    errors are logged and watching continues.

    Raises:
        OSError: If an input cannot be watched
    """

    async def run_once() -> None:
        try:
            result = await build(inputs, options, cwd, services=services)
            on_build_result(result)
        except Exception:
            logger.exception("Build failed")
        if on_iteration_complete is not None:
            on_iteration_complete()

    await run_once()

    # Each rebuild gets its own event loop on the worker thread
    watcher = Watcher(lambda: asyncio.run(run_once()), debounce=debounce)
    try:
        for elem in inputs.elements:
            watcher.register(elem)
    except Exception:
        watcher.dispose()
        raise

    logger.info(f"Watching {len(inputs.elements)} inputs of {inputs.project_name}")
    return watcher
