"""
Path Addressing: Nested Reads and Writes by Dotted Path

Pure functions over nested containers (dicts and lists) addressed by
delimiter-joined paths such as "profile.addresses.0.city".

Segment rules (shared by every function):
    - Leading and trailing delimiters are trimmed
    - A canonical decimal segment ("0", "7", "12") is an int; anything
      else, including "007" or "-1", is a string key
    - The first segment names the owning field and is kept verbatim
    - On a dict, an int segment that is absent falls back to its string
      form, so data decoded from JSON (string keys only) stays addressable
    - On a list, only int segments address elements

Invariant:
    extract(insert(tree, p, v), p) == v   for any non-empty p and v is not None
"""

from __future__ import annotations

import re
from typing import Any, Sequence, Union

from redsession.core.constants import ARRAY_PATH_DELIMITER as DELIMITER
from redsession.core.errors import InvalidArgument, InvalidPath

Segment = Union[str, int]
PathLike = Union[str, Sequence[Segment], None]

_INT_SEGMENT = re.compile(r"(?:0|[1-9][0-9]*)\Z")
_MISSING = object()


def normalize_segment(segment: Segment) -> Segment:
    """"12" -> 12, "0" -> 0, "007" -> "007", "name" -> "name"."""
    if isinstance(segment, int):
        return segment
    if _INT_SEGMENT.match(segment):
        return int(segment)
    return segment


def _raw_segments(path: PathLike) -> list[Segment]:
    if path is None:
        return []
    if isinstance(path, str):
        path = path.strip(DELIMITER)
        if not path:
            return []
        return path.split(DELIMITER)
    return list(path)


def split_path(path: PathLike) -> list[Segment]:
    """Split and normalize a path; None, "" and "." give []."""
    return [normalize_segment(part) for part in _raw_segments(path)]


def basename(path: PathLike) -> str:
    """
    First segment of a path: the field that owns the value.

    Raises:
        InvalidPath: path is None or empty.
    """
    return split_field(path)[0]


def split_field(path: PathLike) -> tuple[str, list[Segment]]:
    """
    ("profile", ["name"]) for "profile.name".

    The field name is the raw first segment, so "007.x" owns field "007".
    """
    raw = _raw_segments(path)
    if not raw:
        raise InvalidPath.for_path(path)
    return str(raw[0]), [normalize_segment(part) for part in raw[1:]]


def _is_container(node: Any) -> bool:
    return isinstance(node, (dict, list))


def _resolve_key(node: Any, segment: Segment) -> Segment:
    if isinstance(node, dict) and isinstance(segment, int) and segment not in node:
        if str(segment) in node:
            return str(segment)
    return segment


def _child(node: Any, segment: Segment) -> Any:
    if isinstance(node, dict):
        return node.get(_resolve_key(node, segment), _MISSING)
    if isinstance(node, list) and isinstance(segment, int) and segment < len(node):
        return node[segment]
    return _MISSING


def _assign(node: Any, segment: Segment, value: Any, path: PathLike) -> None:
    if isinstance(node, dict):
        node[_resolve_key(node, segment)] = value
        return
    if not isinstance(segment, int):
        raise InvalidPath.for_path(path, f"'{segment}' cannot index a list")
    if segment < len(node):
        node[segment] = value
    elif segment == len(node):
        node.append(value)
    else:
        raise InvalidPath.for_path(path, f"index {segment} is past the end of a list")


def extract(tree: Any, path: PathLike, default: Any = None) -> Any:
    """
    Value at `path`, or `default` when any segment is absent.

    An empty path returns the whole tree. A key holding None reads as
    absent.
    """
    if not _is_container(tree):
        return default

    node = tree
    for segment in split_path(path):
        node = _child(node, segment)
        if node is _MISSING or node is None:
            return default
    return node


def insert(tree: Any, path: PathLike, value: Any) -> Any:
    """
    Set `value` at `path`, creating dict nodes for missing intermediates.

    Intermediates that exist but are not containers are replaced by dicts.
    Returns the mutated tree.

    Raises:
        InvalidPath: empty path, or a list index past the end of a list.
    """
    if not _is_container(tree):
        raise InvalidArgument.wrong_type("tree", "dict or list", tree)

    segments = split_path(path)
    if not segments:
        raise InvalidPath.for_path(path)

    node = tree
    for segment in segments[:-1]:
        child = _child(node, segment)
        if not _is_container(child):
            child = {}
            _assign(node, segment, child, path)
        node = child

    _assign(node, segments[-1], value, path)
    return tree


def delete(tree: Any, path: PathLike) -> Any:
    """
    Remove the entry at `path`.

    No-op when the path is empty or any intermediate is missing. Removing a
    list element shifts the elements after it. Returns the tree.
    """
    segments = split_path(path)
    if not segments or not _is_container(tree):
        return tree

    node = tree
    for segment in segments[:-1]:
        node = _child(node, segment)
        if not _is_container(node):
            return tree

    last = segments[-1]
    if isinstance(node, dict):
        node.pop(_resolve_key(node, last), None)
    elif isinstance(last, int) and last < len(node):
        del node[last]
    return tree


def check(tree: Any, path: PathLike) -> bool:
    """
    Whether `path` exists in `tree`.

    Unlike extract(), a key holding None exists. An empty path reports
    whether the tree itself is a container.
    """
    if not _is_container(tree):
        return False

    node = tree
    for segment in split_path(path):
        if not _is_container(node):
            return False
        node = _child(node, segment)
        if node is _MISSING:
            return False
    return True
