"""Field paths addressing nodes inside resource documents.

A path is a tuple of segments:
- ``str`` selects a mapping key
- ``int`` selects a sequence position
- ``MergeKeySelector`` selects the sequence element whose merge-key field
  carries a given value

Paths render as ``spec.ports[0].name``, ``spec.servers[port=443].hosts`` or
``metadata.labels["app.kubernetes.io/name"]`` and parse back from the same
notation. ``PathPattern`` adds a ``[*]`` wildcard matching any sequence
element, used by the defaulting and ignore tables.
"""

from __future__ import annotations

import json
import re
from dataclasses import dataclass
from enum import Enum
from typing import TYPE_CHECKING, Final

if TYPE_CHECKING:
    from collections.abc import Iterator

type Scalar = str | int | float | bool | None


class _Wildcard(Enum):
    ANY = "*"

    def __repr__(self) -> str:
        return "ANY"


ANY: Final = _Wildcard.ANY

_BARE_KEY = re.compile(r"[A-Za-z_][A-Za-z0-9_-]*")
_TOKEN = re.compile(
    r"""
      (?P<key>[^.\[\]"]+)
    | \[(?P<index>\d+)\]
    | \[(?P<wildcard>\*)\]
    | \["(?P<quoted>(?:[^"\\]|\\.)*)"\]
    | \[(?P<field>[^=\]"]+)=(?P<value>(?:"(?:[^"\\]|\\.)*"|[^\]]*))\]
    | (?P<dot>\.)
    """,
    re.VERBOSE,
)


@dataclass(frozen=True, slots=True)
class MergeKeySelector:
    """Sequence element identified by the value of its merge-key field."""

    field: str
    value: Scalar

    def __str__(self) -> str:
        return f"[{_render_key(self.field)}={_render_value(self.value)}]"


type PathSegment = str | int | MergeKeySelector
type PatternSegment = str | int | MergeKeySelector | _Wildcard


@dataclass(frozen=True, slots=True)
class FieldPath:
    """Structural address of one node inside a resource document."""

    segments: tuple[PathSegment, ...] = ()

    @classmethod
    def parse(cls, text: str) -> FieldPath:
        segments: list[PathSegment] = []
        for segment in _parse_segments(text):
            if isinstance(segment, _Wildcard):
                raise ValueError(f"Wildcards are only allowed in path patterns: {text!r}")
            segments.append(segment)
        return cls(tuple(segments))

    def child(self, segment: PathSegment) -> FieldPath:
        return FieldPath((*self.segments, segment))

    @property
    def parent(self) -> FieldPath:
        if not self.segments:
            raise ValueError("The root path has no parent")
        return FieldPath(self.segments[:-1])

    @property
    def last(self) -> PathSegment:
        if not self.segments:
            raise ValueError("The root path has no segments")
        return self.segments[-1]

    def startswith(self, prefix: FieldPath) -> bool:
        return self.segments[: len(prefix.segments)] == prefix.segments

    def sort_key(self) -> tuple[tuple[int, str, int], ...]:
        """Order paths so sequence positions sort numerically."""

        key: list[tuple[int, str, int]] = []
        for segment in self.segments:
            if isinstance(segment, int):
                key.append((1, "", segment))
            elif isinstance(segment, MergeKeySelector):
                key.append((2, str(segment), 0))
            else:
                key.append((0, segment, 0))
        return tuple(key)

    def __iter__(self) -> Iterator[PathSegment]:
        return iter(self.segments)

    def __len__(self) -> int:
        return len(self.segments)

    def __str__(self) -> str:
        return _render(self.segments) or "."


@dataclass(frozen=True, slots=True)
class PathPattern:
    """Path with optional ``[*]`` wildcards over sequence elements."""

    segments: tuple[PatternSegment, ...] = ()

    @classmethod
    def parse(cls, text: str) -> PathPattern:
        return cls(tuple(_parse_segments(text)))

    def matches(self, path: FieldPath) -> bool:
        """Return whether ``path`` is exactly the location this pattern names."""

        if len(self.segments) != len(path.segments):
            return False
        pairs = zip(self.segments, path.segments, strict=True)
        return all(_segment_matches(pattern, segment) for pattern, segment in pairs)

    def covers(self, path: FieldPath) -> bool:
        """Return whether ``path`` is the pattern location or lies beneath it."""

        if len(path.segments) < len(self.segments):
            return False
        pairs = zip(self.segments, path.segments, strict=False)
        return all(_segment_matches(pattern, segment) for pattern, segment in pairs)

    def __str__(self) -> str:
        return _render(self.segments) or "."


def _segment_matches(pattern: PatternSegment, segment: PathSegment) -> bool:
    if pattern is ANY:
        return not isinstance(segment, str)
    return pattern == segment


def _render(segments: tuple[PatternSegment, ...]) -> str:
    parts: list[str] = []
    for segment in segments:
        if isinstance(segment, _Wildcard):
            parts.append("[*]")
        elif isinstance(segment, int):
            parts.append(f"[{segment}]")
        elif isinstance(segment, MergeKeySelector):
            parts.append(str(segment))
        elif _BARE_KEY.fullmatch(segment):
            parts.append(f".{segment}" if parts else segment)
        else:
            parts.append(f"[{json.dumps(segment)}]")
    return "".join(parts)


def _render_key(key: str) -> str:
    return key if _BARE_KEY.fullmatch(key) else json.dumps(key)


def _render_value(value: Scalar) -> str:
    if isinstance(value, str) and _BARE_KEY.fullmatch(value):
        return value
    return json.dumps(value)


def _parse_value(raw: str) -> Scalar:
    try:
        value = json.loads(raw)
    except json.JSONDecodeError:
        return raw
    if isinstance(value, (dict, list)):
        raise ValueError(f"Merge-key selector values must be scalars: {raw!r}")
    return value


def _parse_segments(text: str) -> list[PatternSegment]:
    segments: list[PatternSegment] = []
    position = 0
    expect_key = False
    while position < len(text):
        token = _TOKEN.match(text, position)
        if token is None:
            raise ValueError(f"Invalid field path {text!r} at offset {position}")
        position = token.end()
        if token.group("dot") is not None:
            if not segments or expect_key:
                raise ValueError(f"Invalid field path {text!r}: unexpected '.'")
            expect_key = True
            continue
        if token.group("key") is not None:
            if segments and not expect_key:
                raise ValueError(f"Invalid field path {text!r}: missing '.' before key")
            segments.append(token.group("key"))
        elif token.group("index") is not None:
            segments.append(int(token.group("index")))
        elif token.group("wildcard") is not None:
            segments.append(ANY)
        elif token.group("quoted") is not None:
            segments.append(json.loads(f'"{token.group("quoted")}"'))
        else:
            value = _parse_value(token.group("value"))
            segments.append(MergeKeySelector(token.group("field"), value))
        expect_key = False
    if expect_key:
        raise ValueError(f"Invalid field path {text!r}: trailing '.'")
    return segments
