"""Hash tree construction for nested, JSON-like values."""

from __future__ import annotations

import hashlib
import json
from collections.abc import Callable, Mapping
from dataclasses import dataclass, field
from enum import Enum
from typing import TYPE_CHECKING, Any, Literal

from . import ConfigDiffError

if TYPE_CHECKING:
    from .config import DiffConfig

# Hash function signature: canonical text -> hex digest
Hasher = Callable[[str], str]

DigestOrder = Literal["insertion", "sorted"]

DEFAULT_DISCRIMINATOR = "type"
DEFAULT_ALGORITHM = "sha256"


class SerializationError(ConfigDiffError):
    """Raised when a value has no canonical JSON encoding."""


class NodeKind(str, Enum):
    """How a value is represented in the hash tree."""

    PRIMITIVE = "primitive"
    OPAQUE = "opaque"
    ARRAY = "array"
    OBJECT = "object"

    @property
    def is_structural(self) -> bool:
        return self in (NodeKind.ARRAY, NodeKind.OBJECT)


@dataclass
class HashNode:
    """A node in the hash tree.

    Leaves (primitive or opaque) have no children. Structural nodes (arrays
    and plain objects) keep one child per index or property name.
    """

    digest: str = ""
    kind: NodeKind = NodeKind.PRIMITIVE
    children: dict[str, HashNode] = field(default_factory=dict)
    fingerprint: str = ""  # Hash of the canonical serialization of the value

    @classmethod
    def leaf(cls, kind: NodeKind, digest: str) -> HashNode:
        return cls(digest=digest, kind=kind, fingerprint=digest)

    @classmethod
    def placeholder(cls, kind: NodeKind) -> HashNode:
        """Empty structural node, filled in by the next reconcile."""
        return cls(kind=kind)

    @property
    def is_structural(self) -> bool:
        return self.kind.is_structural

    def reset(self, kind: NodeKind) -> None:
        """Turn this node into an empty placeholder in place."""
        self.digest = ""
        self.fingerprint = ""
        self.kind = kind
        self.children.clear()

    def become_leaf(self, kind: NodeKind, digest: str) -> None:
        """Rewrite this node as a leaf in place."""
        self.children.clear()
        self.kind = kind
        self.digest = digest
        self.fingerprint = digest

    def to_dict(self) -> dict[str, Any]:
        """Serialize to dictionary for JSON storage in a baseline."""
        result: dict[str, Any] = {
            "digest": self.digest,
            "kind": self.kind.value,
            "fingerprint": self.fingerprint,
        }
        if self.is_structural:
            result["children"] = {
                name: child.to_dict() for name, child in self.children.items()
            }
        return result

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> HashNode:
        """Deserialize from dictionary, preserving child order."""
        kind = NodeKind(data.get("kind", NodeKind.PRIMITIVE.value))
        children = {}
        if kind.is_structural and "children" in data:
            children = {
                name: cls.from_dict(child_data)
                for name, child_data in data["children"].items()
            }
        digest = data["digest"]
        return cls(
            digest=digest,
            kind=kind,
            children=children,
            fingerprint=data.get("fingerprint", digest if not kind.is_structural else ""),
        )


def canonical_json(value: Any) -> str:
    """Serialize *value* to compact JSON with sorted keys."""
    try:
        return json.dumps(
            value,
            sort_keys=True,
            separators=(",", ":"),
            ensure_ascii=False,
        )
    except (TypeError, ValueError) as e:
        raise SerializationError(f"Cannot serialize value: {e}") from e


def make_hasher(algorithm: str = DEFAULT_ALGORITHM) -> Hasher:
    """Return a hasher that digests UTF-8 text with *algorithm*."""
    hashlib.new(algorithm)  # Fail fast on unknown algorithms

    def _hash(text: str) -> str:
        return hashlib.new(algorithm, text.encode("utf-8")).hexdigest()

    return _hash


def _is_tag(tag: Any) -> bool:
    # Only None, False, zero, NaN and "" are unset; empty containers count.
    if tag is None or tag is False:
        return False
    if isinstance(tag, (int, float)):
        return tag == tag and tag != 0
    if isinstance(tag, str):
        return tag != ""
    return True


def classify(value: Any, discriminator: str = DEFAULT_DISCRIMINATOR) -> NodeKind:
    """Decide how *value* is represented in the tree."""
    if isinstance(value, Mapping):
        if _is_tag(value.get(discriminator)):
            return NodeKind.OPAQUE
        return NodeKind.OBJECT
    if isinstance(value, (list, tuple)):
        return NodeKind.ARRAY
    return NodeKind.PRIMITIVE


def child_entries(value: Any, kind: NodeKind) -> dict[str, Any]:
    """Map child keys to child values for a structural value."""
    if kind is NodeKind.ARRAY:
        return {str(i): item for i, item in enumerate(value)}
    return {str(key): item for key, item in value.items()}


def join_path(path: str, key: str) -> str:
    """Append *key* to a dotted path. Keys are not escaped."""
    return f"{path}.{key}" if path else key


def _index_key(key: str) -> tuple[int, int | str]:
    # Numeric keys in index order; anything else after them
    return (0, int(key)) if key.isdigit() else (1, key)


class TreeBuilder:
    """Builds hash trees and computes the digests the differ compares."""

    def __init__(
        self,
        discriminator: str = DEFAULT_DISCRIMINATOR,
        hasher: Hasher | None = None,
    ):
        self.discriminator = discriminator
        self.hasher = hasher or make_hasher()

    @classmethod
    def from_config(cls, config: DiffConfig, hasher: Hasher | None = None) -> TreeBuilder:
        return cls(
            discriminator=config.discriminator_field,
            hasher=hasher or make_hasher(config.hash_algorithm),
        )

    def classify(self, value: Any) -> NodeKind:
        return classify(value, self.discriminator)

    def fingerprint(self, value: Any) -> str:
        """Hash of the canonical serialization of *value*."""
        return self.hasher(canonical_json(value))

    def build(self, value: Any) -> HashNode:
        """Recursively build a hash tree for *value*."""
        kind = self.classify(value)
        # Serialize before descending so cyclic values fail here.
        fingerprint = self.fingerprint(value)

        if not kind.is_structural:
            return HashNode.leaf(kind, fingerprint)

        entries = child_entries(value, kind)
        keys = list(entries) if kind is NodeKind.ARRAY else sorted(entries)
        children = {key: self.build(entries[key]) for key in keys}

        return HashNode(
            digest=self.combine(kind, children),
            kind=kind,
            children=children,
            fingerprint=fingerprint,
        )

    def combine(
        self,
        kind: NodeKind,
        children: dict[str, HashNode],
        order: DigestOrder = "insertion",
    ) -> str:
        """Compute a structural node's digest from its children.

        Arrays concatenate child digests positionally; objects concatenate
        ``key:digest`` pairs. With ``order="insertion"`` children are taken
        in their current dict order, with ``order="sorted"`` in sorted key
        (or index) order.
        """
        keys = list(children)
        if order == "sorted":
            keys.sort(key=_index_key if kind is NodeKind.ARRAY else None)

        if kind is NodeKind.ARRAY:
            joined = "".join(children[key].digest for key in keys)
        else:
            joined = "".join(f"{key}:{children[key].digest}" for key in keys)
        return self.hasher(joined)


def build_tree(
    value: Any,
    discriminator: str = DEFAULT_DISCRIMINATOR,
    hasher: Hasher | None = None,
) -> HashNode:
    """Convenience wrapper around TreeBuilder.build()."""
    return TreeBuilder(discriminator, hasher).build(value)


def iter_nodes(node: HashNode, path: str = ""):
    """Yield ``(path, node)`` for *node* and all of its descendants."""
    yield path, node
    for key, child in node.children.items():
        yield from iter_nodes(child, join_path(path, key))
