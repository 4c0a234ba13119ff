"""Watch a snapshot file and feed each new version to a DifferenceEngine."""

from __future__ import annotations

import logging
import threading
from collections.abc import Callable
from pathlib import Path
from typing import Any

from watchdog.events import FileSystemEvent, FileSystemEventHandler
from watchdog.observers import Observer

from . import ConfigDiffError
from .differ import ChangeEvent, DifferenceEngine
from .loader import EmptySnapshotError, load_snapshot

logger = logging.getLogger(__name__)

# Callback signature: (event, snapshot the event was detected in)
ChangeCallback = Callable[[ChangeEvent, Any], None]


class _SnapshotFileHandler(FileSystemEventHandler):
    """Schedules a debounced check when the watched file changes."""

    def __init__(self, target: Path, schedule: Callable[[], None]) -> None:
        super().__init__()
        self._target = target
        self._schedule = schedule

    def _is_target(self, path: str | bytes | None) -> bool:
        if not path:
            return False
        if isinstance(path, bytes):
            path = path.decode()
        return Path(path).resolve() == self._target

    def on_any_event(self, event: FileSystemEvent) -> None:
        if event.is_directory:
            return
        # Editors often save via temp file + rename onto the target
        if self._is_target(event.src_path) or self._is_target(
            getattr(event, "dest_path", None)
        ):
            logger.debug("%s: %s", event.event_type, event.src_path)
            self._schedule()


class SnapshotWatcher:
    """Re-reads a JSON/YAML file on change and publishes per-path changes.

    The first successful read initializes the engine. A read that fails to
    load or serialize marks the engine for re-initialization on the next
    successful read, since a failed update may leave the tree half-written.
    """

    def __init__(
        self,
        path: Path,
        engine: DifferenceEngine | None = None,
        debounce_ms: int | None = None,
        on_change: ChangeCallback | None = None,
    ) -> None:
        self.path = Path(path).resolve()
        self.engine = engine or DifferenceEngine()
        self.debounce_ms = (
            debounce_ms if debounce_ms is not None else self.engine.config.watch_debounce_ms
        )
        self.on_change = on_change
        self.initialized = False

        self._lock = threading.Lock()
        self._timer_lock = threading.Lock()
        self._timer: threading.Timer | None = None
        self._observer: Observer | None = None
        self._handler = _SnapshotFileHandler(self.path, self._schedule_check)

    @property
    def is_running(self) -> bool:
        return self._observer is not None

    def check(self) -> list[ChangeEvent]:
        """Read the file once and diff it against the current tree.

        Returns the events published by this check. Empty files are skipped.
        """
        with self._lock:
            try:
                snapshot = load_snapshot(self.path)
            except EmptySnapshotError:
                logger.debug("Skipping empty snapshot %s", self.path)
                return []
            except ConfigDiffError:
                logger.exception("Failed to load %s", self.path)
                return []

            if not self.initialized or self.engine.needs_reset:
                return self._initialize(snapshot)

            try:
                with self.engine.collect() as changes:
                    self.engine.update(snapshot)
            except ConfigDiffError:
                logger.exception("Failed to diff %s; will re-initialize", self.path)
                return []

            for event in changes.events:
                self._notify(event, snapshot)
            return changes.events

    def _initialize(self, snapshot: Any) -> list[ChangeEvent]:
        try:
            self.engine.initialize(snapshot)
        except ConfigDiffError:
            logger.exception("Failed to initialize from %s", self.path)
            return []
        self.initialized = True
        logger.info("Initialized baseline from %s", self.path)
        return []

    def _notify(self, event: ChangeEvent, snapshot: Any) -> None:
        if self.on_change is None:
            return
        try:
            self.on_change(event, snapshot)
        except Exception:
            logger.exception("Change callback failed for %s", event.path)

    def _schedule_check(self) -> None:
        """Run check() once the file has been quiet for the debounce window."""
        with self._timer_lock:
            if self._timer is not None:
                self._timer.cancel()
            self._timer = threading.Timer(self.debounce_ms / 1000.0, self.check)
            self._timer.daemon = True
            self._timer.start()

    def start(self) -> None:
        """Load the initial baseline and begin watching the file."""
        if self._observer is not None:
            return
        self.check()
        self._observer = Observer()
        self._observer.schedule(self._handler, str(self.path.parent), recursive=False)
        self._observer.start()
        logger.info("Watching %s for changes", self.path)

    def stop(self) -> None:
        """Stop watching and cancel any pending check."""
        with self._timer_lock:
            if self._timer is not None:
                self._timer.cancel()
                self._timer = None
        if self._observer is None:
            return
        self._observer.stop()
        self._observer.join(timeout=5)
        self._observer = None
        logger.info("Stopped watching %s", self.path)
