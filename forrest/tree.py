"""
Dotted-path access over nested dict/list trees.

Both the settings tree and the context data tree are plain nested dicts.
Paths address them with dots:

    set_path(tree, "db.pool.max", 5)
    get_path(tree, "db.pool.max")        # 5
    get_path(tree, "db.pool.min", 1)     # 1 (default)
    get_path(tree, "servers.0.host")     # list index segment

Reads and writes always go to the live tree, never a copy.
"""

from collections.abc import Mapping, MutableMapping, MutableSequence, Sequence
from typing import Any, Optional, Union

from forrest.errors import PathNotFoundError


class _Missing:
    """Sentinel type for "no default supplied"."""

    def __repr__(self) -> str:
        return "MISSING"


MISSING: Any = _Missing()
_ABSENT = object()

Path = Union[str, Sequence[str]]


def split_path(path: Path) -> list[str]:
    """
    Split a path into segments.

    Args:
        path: Dotted string ("a.b.c") or a sequence of segments

    Returns:
        List of segments

    Raises:
        ValueError: If the path is empty
    """
    if isinstance(path, str):
        segments = path.split(".")
    else:
        segments = [str(s) for s in path]
    if not segments or any(s == "" for s in segments):
        raise ValueError(f"Invalid path: {path!r}")
    return segments


def _step(node: Any, segment: str) -> Any:
    """Descend one segment, raising LookupError when it does not exist."""
    if isinstance(node, Mapping):
        return node[segment]
    if isinstance(node, Sequence) and not isinstance(node, (str, bytes)):
        try:
            index = int(segment)
        except ValueError:
            raise KeyError(segment)
        return node[index]
    raise KeyError(segment)


def get_path(tree: Any, path: Path, default: Any = MISSING) -> Any:
    """
    Resolve a path against a tree.

    A stored None is a value and is returned as such.

    Args:
        tree: Root of the tree
        path: Dotted path or sequence of segments
        default: Returned when the path does not exist

    Returns:
        The stored value, or default

    Raises:
        PathNotFoundError: If the path does not exist and no default was given
    """
    node = tree
    try:
        for segment in split_path(path):
            node = _step(node, segment)
    except (LookupError, TypeError):
        if default is not MISSING:
            return default
        raise PathNotFoundError(_display(path)) from None
    return node


def has_path(tree: Any, path: Path) -> bool:
    """Check whether a path exists in a tree."""
    return get_path(tree, path, _ABSENT) is not _ABSENT


def _list_index(node: Any, segment: str) -> Optional[int]:
    """Return the list index a segment addresses in node, or None."""
    if not isinstance(node, MutableSequence) or isinstance(node, (str, bytes)):
        return None
    try:
        index = int(segment)
    except ValueError:
        return None
    if -len(node) <= index < len(node):
        return index
    return None


def set_path(tree: MutableMapping, path: Path, value: Any) -> None:
    """
    Write a value at a path, creating intermediate dicts as needed.

    Writes descend through mappings and through lists addressed by an
    existing index ("servers.0.host"). Any other intermediate node (a
    scalar, a list with a non-index segment) is replaced by a new dict.

    Args:
        tree: Root of the tree (mutated in place)
        path: Dotted path or sequence of segments
        value: Value to store
    """
    segments = split_path(path)
    node = tree
    for position, segment in enumerate(segments[:-1]):
        key = _list_index(node, segment)
        if key is None:
            key = segment
            child = node.get(segment)
        else:
            child = node[key]
        following = segments[position + 1]
        if not isinstance(child, MutableMapping) and _list_index(child, following) is None:
            child = {}
            node[key] = child
        node = child
    index = _list_index(node, segments[-1])
    node[segments[-1] if index is None else index] = value


def _display(path: Path) -> str:
    return path if isinstance(path, str) else ".".join(str(s) for s in path)
