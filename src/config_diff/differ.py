"""Incremental differencing engine over an owned hash tree."""

from __future__ import annotations

import logging
from collections.abc import Callable, Iterator
from contextlib import contextmanager
from dataclasses import dataclass, field
from enum import Enum
from typing import Any

from .config import DiffConfig
from .merkle import Hasher, HashNode, NodeKind, TreeBuilder, child_entries, join_path

logger = logging.getLogger(__name__)


class ChangeType(str, Enum):
    ADDED = "added"
    REMOVED = "removed"
    MODIFIED = "modified"


@dataclass(frozen=True)
class ChangeEvent:
    """A single change notification."""

    type: ChangeType
    path: str

    def to_dict(self) -> dict[str, str]:
        return {"type": self.type.value, "path": self.path}


# Subscriber signature
ChangeListener = Callable[[ChangeEvent], None]


@dataclass
class ChangeSet:
    """Collects the events published during one or more updates."""

    added: list[str] = field(default_factory=list)
    removed: list[str] = field(default_factory=list)
    modified: list[str] = field(default_factory=list)
    events: list[ChangeEvent] = field(default_factory=list)

    def __call__(self, event: ChangeEvent) -> None:
        self.events.append(event)
        if event.type is ChangeType.ADDED:
            self.added.append(event.path)
        elif event.type is ChangeType.REMOVED:
            self.removed.append(event.path)
        else:
            self.modified.append(event.path)

    @property
    def has_changes(self) -> bool:
        """Check if there are any changes."""
        return bool(self.events)

    @property
    def total_changes(self) -> int:
        """Total number of change events."""
        return len(self.events)


class DifferenceEngine:
    """Detects per-path changes between successive snapshots.

    The engine owns one mutable hash tree. ``initialize`` builds it from a
    first snapshot; each ``update`` walks it against a new snapshot, skips
    subtrees whose serialized form is unchanged, publishes added / removed /
    modified events to subscribers, and rewrites the tree in place.

    Calls on one instance must not overlap; the engine does no locking.
    """

    def __init__(
        self,
        config: DiffConfig | None = None,
        hasher: Hasher | None = None,
    ):
        self.config = config or DiffConfig()
        self.builder = TreeBuilder.from_config(self.config, hasher=hasher)
        self.needs_reset = False
        self._root = HashNode()
        self._listeners: list[ChangeListener] = []

    @property
    def root(self) -> HashNode:
        return self._root

    # ------------------------------------------------------------------
    # Subscriptions
    # ------------------------------------------------------------------

    def subscribe(self, listener: ChangeListener) -> Callable[[], None]:
        """Register *listener*; returns a function that unsubscribes it."""
        self._listeners.append(listener)
        return lambda: self.unsubscribe(listener)

    def unsubscribe(self, listener: ChangeListener) -> None:
        """Remove *listener*. Unknown listeners are ignored."""
        if listener in self._listeners:
            self._listeners.remove(listener)

    @contextmanager
    def collect(self) -> Iterator[ChangeSet]:
        """Collect events published inside the ``with`` block."""
        changes = ChangeSet()
        self.subscribe(changes)
        try:
            yield changes
        finally:
            self.unsubscribe(changes)

    def _emit(self, change_type: ChangeType, path: str) -> None:
        event = ChangeEvent(change_type, path)
        logger.debug("%s: %s", change_type.value, path or "<root>")
        for listener in list(self._listeners):
            listener(event)

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    def initialize(self, value: Any) -> HashNode:
        """Discard the current tree and build a new baseline from *value*."""
        try:
            root = self.builder.build(value)
        except Exception:
            self.needs_reset = True
            raise
        self._root = root
        self.needs_reset = False
        return self._root

    def restore(self, root: HashNode) -> HashNode:
        """Adopt a previously stored tree as the baseline."""
        self._root = root
        self.needs_reset = False
        return self._root

    def update(self, value: Any) -> HashNode:
        """Compare *value* against the tree, publish changes, update the tree.

        If this raises, the tree may be partially updated and
        ``needs_reset`` is set until the next ``initialize``.
        """
        try:
            self._update_root(value)
        except Exception:
            self.needs_reset = True
            raise
        return self._root

    def _update_root(self, value: Any) -> None:
        root = self._root
        kind = self.builder.classify(value)

        if kind.is_structural:
            if not root.is_structural:
                root.reset(kind)
            self._reconcile(root, value, kind, "")
            return

        digest = self.builder.fingerprint(value)
        if root.digest != digest:
            self._emit(ChangeType.MODIFIED, "")
            root.become_leaf(kind, digest)

    # ------------------------------------------------------------------
    # Reconcile
    # ------------------------------------------------------------------

    def _reconcile(self, node: HashNode, value: Any, kind: NodeKind, path: str) -> None:
        """Bring *node* in line with *value*, publishing changes below *path*."""
        fingerprint = self.builder.fingerprint(value)
        if node.fingerprint == fingerprint:
            return

        entries = child_entries(value, kind)
        node.kind = kind

        # Removed keys
        for key in list(node.children):
            if key not in entries:
                self._emit(ChangeType.REMOVED, join_path(path, key))
                del node.children[key]

        # Keys present on both sides
        for key in list(node.children):
            self._update_child(node, key, entries[key], join_path(path, key))

        # Added keys
        for key, child_value in entries.items():
            if key not in node.children:
                self._emit(ChangeType.ADDED, join_path(path, key))
                node.children[key] = self.builder.build(child_value)

        node.digest = self.builder.combine(kind, node.children, self.config.digest_order)
        node.fingerprint = fingerprint

    def _update_child(self, parent: HashNode, key: str, value: Any, path: str) -> None:
        child = parent.children[key]
        kind = self.builder.classify(value)

        if kind.is_structural:
            if not child.is_structural:
                child = parent.children[key] = HashNode.placeholder(kind)
            self._reconcile(child, value, kind, path)
            return

        # Primitive and opaque values are compared as a whole
        digest = self.builder.fingerprint(value)
        if child.digest != digest:
            self._emit(ChangeType.MODIFIED, path)
            parent.children[key] = HashNode.leaf(kind, digest)
