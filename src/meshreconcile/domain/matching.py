"""Semantic matcher for live vs. desired resource documents.

The control plane adds generated identifiers, status, resource-version tokens
and defaulted fields to every object it stores. A plain equality check would
report those as differences on every pass and the controller would keep
rewriting the object. The matcher therefore compares only what the desired
document declares:

- every field present in desired must be present in live with the same value
- fields present only in live are ignored
- sequences compare by position up to the desired length, or by merge key when
  a rule is registered for that kind and path
- a field missing from live is accepted when the rules register a server
  default for it and desired asks for exactly that default

Matching is a pure function of the two documents and the rules.
"""

from __future__ import annotations

import dataclasses
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Final

from .document import Node, canonicalize
from .errors import IdentityMismatchError, SerializeError
from .paths import FieldPath, MergeKeySelector, PathPattern

if TYPE_CHECKING:
    from collections.abc import Hashable, Iterable

    from .document import ResourceDocument, ResourceKind

SERVER_MANAGED_FIELDS: Final[tuple[str, ...]] = (
    "metadata.uid",
    "metadata.resourceVersion",
    "metadata.generation",
    "metadata.creationTimestamp",
    "metadata.deletionTimestamp",
    "metadata.deletionGracePeriodSeconds",
    "metadata.managedFields",
    "metadata.selfLink",
    "status",
)


@dataclass(frozen=True, slots=True)
class MatchVerdict:
    """Result of one match: the set of desired paths that differ in live."""

    diff_paths: frozenset[FieldPath] = frozenset()

    @property
    def equal(self) -> bool:
        return not self.diff_paths

    def sorted_paths(self) -> list[FieldPath]:
        return sorted(self.diff_paths, key=FieldPath.sort_key)


@dataclass(frozen=True, slots=True)
class DefaultRule:
    """A field the control plane fills with ``value`` when it is omitted."""

    kind: ResourceKind
    pattern: PathPattern
    value: Node


@dataclass(frozen=True, slots=True)
class MergeKeyRule:
    """A sequence whose elements are identified by ``key`` rather than position."""

    kind: ResourceKind
    pattern: PathPattern
    key: str


@dataclass(frozen=True, slots=True)
class MatchRules:
    """Injectable rule table consulted by the matcher.

    Default and merge-key rules are scoped to one resource kind; ignored
    patterns apply to every kind. The table is immutable: ``register_*``
    returns a new table.
    """

    ignored: tuple[PathPattern, ...] = field(
        default_factory=lambda: tuple(PathPattern.parse(path) for path in SERVER_MANAGED_FIELDS)
    )
    defaults: tuple[DefaultRule, ...] = ()
    merge_keys: tuple[MergeKeyRule, ...] = ()

    def register_default(self, kind: ResourceKind, path: str, value: object) -> MatchRules:
        rule = DefaultRule(kind=kind, pattern=PathPattern.parse(path), value=canonicalize(value))
        return dataclasses.replace(self, defaults=(*self.defaults, rule))

    def register_merge_key(self, kind: ResourceKind, path: str, key: str) -> MatchRules:
        rule = MergeKeyRule(kind=kind, pattern=PathPattern.parse(path), key=key)
        return dataclasses.replace(self, merge_keys=(*self.merge_keys, rule))

    def ignore(self, *paths: str) -> MatchRules:
        patterns = tuple(PathPattern.parse(path) for path in paths)
        return dataclasses.replace(self, ignored=(*self.ignored, *patterns))

    def is_ignored(self, path: FieldPath) -> bool:
        return any(pattern.covers(path) for pattern in self.ignored)

    def is_server_default(self, kind: ResourceKind, path: FieldPath, value: Node) -> bool:
        return any(
            rule.kind == kind and rule.pattern.matches(path) and values_equal(rule.value, value)
            for rule in self.defaults
        )

    def merge_key_for(self, kind: ResourceKind, path: FieldPath) -> str | None:
        for rule in self.merge_keys:
            if rule.kind == kind and rule.pattern.matches(path):
                return rule.key
        return None


DEFAULT_MATCH_RULES: Final = MatchRules()


@dataclass(frozen=True, slots=True)
class SemanticMatcher:
    """Compare a live document against a desired one."""

    rules: MatchRules = DEFAULT_MATCH_RULES

    def match(self, live: ResourceDocument, desired: ResourceDocument) -> MatchVerdict:
        if live.kind != desired.kind:
            raise IdentityMismatchError(f"Cannot match {live.kind} against {desired.kind}")
        if live.key != desired.key:
            raise IdentityMismatchError(
                f"Cannot match {desired.kind.kind} {live.key} against {desired.key}"
            )

        live_tree = canonicalize(live.body)
        desired_tree = canonicalize(desired.body)
        comparison = _Comparison(kind=desired.kind, rules=self.rules)
        comparison.compare(live_tree, desired_tree, FieldPath())
        return MatchVerdict(frozenset(comparison.diff_paths))


def match(
    live: ResourceDocument,
    desired: ResourceDocument,
    *,
    rules: MatchRules = DEFAULT_MATCH_RULES,
) -> MatchVerdict:
    """Match ``live`` against ``desired`` using ``rules``."""

    return SemanticMatcher(rules=rules).match(live, desired)


@dataclass(slots=True)
class _Comparison:
    kind: ResourceKind
    rules: MatchRules
    diff_paths: set[FieldPath] = field(default_factory=set)

    def compare(self, live: Node, desired: Node, path: FieldPath) -> None:
        if isinstance(desired, dict):
            if not isinstance(live, dict):
                self.diff_paths.add(path)
                return
            self._compare_mapping(live, desired, path)
        elif isinstance(desired, list):
            if not isinstance(live, list):
                self.diff_paths.add(path)
                return
            merge_key = self.rules.merge_key_for(self.kind, path)
            if merge_key is None:
                self._compare_positional(live, desired, path)
            else:
                self._compare_keyed(live, desired, path, merge_key)
        elif not scalars_equal(live, desired):
            self.diff_paths.add(path)

    def _compare_mapping(
        self,
        live: dict[str, Node],
        desired: dict[str, Node],
        path: FieldPath,
    ) -> None:
        for key, value in desired.items():
            child = path.child(key)
            if self.rules.is_ignored(child):
                continue
            if key in live:
                self.compare(live[key], value, child)
            elif value is not None:
                self._missing(child, value)

    def _compare_positional(self, live: list[Node], desired: list[Node], path: FieldPath) -> None:
        for index, value in enumerate(desired):
            child = path.child(index)
            if index < len(live):
                self.compare(live[index], value, child)
            else:
                self._missing(child, value)

    def _compare_keyed(
        self,
        live: list[Node],
        desired: list[Node],
        path: FieldPath,
        merge_key: str,
    ) -> None:
        live_by_key = _index_by_merge_key(live, merge_key)
        seen: set[Hashable] = set()
        for index, element in enumerate(desired):
            if not isinstance(element, dict) or merge_key not in element:
                raise SerializeError(
                    f"Sequence element has no merge key {merge_key!r}",
                    path=path.child(index),
                )
            key_value = element[merge_key]
            if isinstance(key_value, (dict, list)):
                raise SerializeError(
                    f"Merge key {merge_key!r} must be a scalar",
                    path=path.child(index).child(merge_key),
                )
            identity = _identity(key_value)
            if identity in seen:
                raise SerializeError(
                    f"Duplicate merge key {merge_key}={key_value!r}",
                    path=path.child(index),
                )
            seen.add(identity)

            child = path.child(MergeKeySelector(merge_key, key_value))
            counterpart = live_by_key.get(identity)
            if counterpart is None:
                self._missing(child, element)
            else:
                self.compare(counterpart, element, child)

    def _missing(self, path: FieldPath, value: Node) -> None:
        if not self.rules.is_server_default(self.kind, path, value):
            self.diff_paths.add(path)


def _identity(value: Node) -> Hashable:
    return (type(value).__name__ if isinstance(value, bool) else "scalar", value)


def _index_by_merge_key(elements: Iterable[Node], merge_key: str) -> dict[Hashable, Node]:
    indexed: dict[Hashable, Node] = {}
    for element in elements:
        if isinstance(element, dict) and merge_key in element:
            key_value = element[merge_key]
            if not isinstance(key_value, (dict, list)):
                indexed.setdefault(_identity(key_value), element)
    return indexed


def scalars_equal(left: Node, right: Node) -> bool:
    """Compare two JSON scalars: numbers numerically, booleans only with booleans."""

    if isinstance(left, bool) or isinstance(right, bool):
        return isinstance(left, bool) and isinstance(right, bool) and left == right
    if isinstance(left, (int, float)) and isinstance(right, (int, float)):
        return left == right
    return type(left) is type(right) and left == right


def values_equal(left: Node, right: Node) -> bool:
    """Full structural equality with the scalar rules of ``scalars_equal``."""

    if isinstance(left, dict) and isinstance(right, dict):
        return left.keys() == right.keys() and all(values_equal(left[k], right[k]) for k in left)
    if isinstance(left, list) and isinstance(right, list):
        return len(left) == len(right) and all(
            values_equal(a, b) for a, b in zip(left, right, strict=True)
        )
    if isinstance(left, (dict, list)) or isinstance(right, (dict, list)):
        return False
    return scalars_equal(left, right)
