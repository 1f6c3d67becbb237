"""Resource documents exchanged with the cluster control plane.

A document is a schema-less JSON tree (``None | bool | int | float | str |
mapping | sequence``) tagged with the resource kind it belongs to. The desired
document is built fresh for every reconcile call and the live document is
fetched fresh; neither is cached.
"""

from __future__ import annotations

import copy
import math
from collections.abc import Mapping, Sequence
from dataclasses import dataclass
from typing import TYPE_CHECKING, Any

from .errors import SerializeError
from .paths import FieldPath, MergeKeySelector

if TYPE_CHECKING:
    from collections.abc import Callable

    from .paths import PathSegment

type Node = None | bool | int | float | str | dict[str, Node] | list[Node]


@dataclass(frozen=True, slots=True)
class ResourceKind:
    """Group/version/kind of a resource plus its REST resource name."""

    group: str
    version: str
    kind: str
    plural: str
    namespaced: bool = True

    @property
    def api_version(self) -> str:
        return f"{self.group}/{self.version}" if self.group else self.version

    def __str__(self) -> str:
        return f"{self.api_version}, Kind={self.kind}"


@dataclass(frozen=True, slots=True, order=True)
class ObjectKey:
    """Identity of one object within a kind."""

    name: str
    namespace: str | None = None

    def __str__(self) -> str:
        return f"{self.namespace}/{self.name}" if self.namespace else self.name


@dataclass(frozen=True, slots=True)
class ResourceDocument:
    """One cluster object: its kind plus the raw JSON body.

    The body is copied on construction through ``from_body`` and callers get a
    copy back from ``to_body``; matcher and resolver never mutate it.
    """

    kind: ResourceKind
    body: Mapping[str, Any]

    @classmethod
    def from_body(cls, kind: ResourceKind, body: Mapping[str, Any]) -> ResourceDocument:
        data = copy.deepcopy(dict(body))
        data.setdefault("apiVersion", kind.api_version)
        data.setdefault("kind", kind.kind)
        return cls(kind=kind, body=data)

    def to_body(self) -> dict[str, Any]:
        return copy.deepcopy(dict(self.body))

    @property
    def metadata(self) -> Mapping[str, Any]:
        metadata = self.body.get("metadata")
        if not isinstance(metadata, Mapping):
            raise SerializeError(
                f"{self.kind.kind} document has no metadata mapping",
                path=FieldPath(("metadata",)),
            )
        return metadata

    @property
    def key(self) -> ObjectKey:
        metadata = self.metadata
        name = metadata.get("name")
        if not isinstance(name, str) or not name:
            raise SerializeError(
                f"{self.kind.kind} document has no name",
                path=FieldPath(("metadata", "name")),
            )
        namespace = metadata.get("namespace") if self.kind.namespaced else None
        if namespace is not None and not isinstance(namespace, str):
            raise SerializeError(
                f"{self.kind.kind} document has an invalid namespace",
                path=FieldPath(("metadata", "namespace")),
            )
        return ObjectKey(name=name, namespace=namespace or None)

    @property
    def resource_version(self) -> str | None:
        value = self.metadata.get("resourceVersion")
        return value if isinstance(value, str) else None


def canonicalize(value: object, path: FieldPath | None = None) -> Node:
    """Return the canonical tree for ``value``.

    Mappings get sorted keys, sequences keep their order. Anything that is not
    representable as JSON raises ``SerializeError`` naming the offending path.
    """

    current = path or FieldPath()
    if value is None or isinstance(value, (bool, str)):
        return value
    if isinstance(value, int):
        return value
    if isinstance(value, float):
        if not math.isfinite(value):
            raise SerializeError(f"Non-finite number {value!r} is not serialisable", path=current)
        return value
    if isinstance(value, Mapping):
        mapping: dict[str, Node] = {}
        for key in sorted(value, key=_mapping_key(current)):
            mapping[key] = canonicalize(value[key], current.child(key))
        return mapping
    if isinstance(value, Sequence) and not isinstance(value, (bytes, bytearray)):
        return [canonicalize(item, current.child(index)) for index, item in enumerate(value)]
    raise SerializeError(f"Unsupported value of type {type(value).__name__}", path=current)


def _mapping_key(path: FieldPath) -> Callable[[object], str]:
    def key(item: object) -> str:
        if not isinstance(item, str):
            raise SerializeError(f"Mapping key {item!r} is not a string", path=path)
        return item

    return key


def get_node(tree: Any, path: FieldPath) -> Any:
    """Return the node at ``path`` or raise ``KeyError``."""

    node = tree
    for segment in path:
        node = _step(node, segment)
    return node


def set_node(tree: Any, path: FieldPath, value: Any) -> None:
    """Write ``value`` at ``path`` inside ``tree``.

    Intermediate nodes must exist. A sequence position one past the end and a
    merge-key selector without a matching element both append.
    """

    if not path.segments:
        raise ValueError("Cannot replace the document root")
    parent = get_node(tree, path.parent)
    segment = path.last
    if isinstance(segment, str):
        if not isinstance(parent, dict):
            raise KeyError(str(path))
        parent[segment] = value
        return
    if not isinstance(parent, list):
        raise KeyError(str(path))
    if isinstance(segment, MergeKeySelector):
        for index, element in enumerate(parent):
            if isinstance(element, Mapping) and element.get(segment.field) == segment.value:
                parent[index] = value
                return
        parent.append(value)
        return
    if segment < len(parent):
        parent[segment] = value
    elif segment == len(parent):
        parent.append(value)
    else:
        raise IndexError(f"Cannot write {path}: sequence has {len(parent)} elements")


def _step(node: Any, segment: PathSegment) -> Any:
    if isinstance(segment, str):
        if isinstance(node, Mapping) and segment in node:
            return node[segment]
        raise KeyError(segment)
    if not isinstance(node, Sequence) or isinstance(node, str):
        raise KeyError(str(segment))
    if isinstance(segment, MergeKeySelector):
        for element in node:
            if isinstance(element, Mapping) and element.get(segment.field) == segment.value:
                return element
        raise KeyError(str(segment))
    if 0 <= segment < len(node):
        return node[segment]
    raise KeyError(str(segment))
