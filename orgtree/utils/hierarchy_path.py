"""
Materialized path helpers.

A path is the dot-separated chain of organization ids from the root down to
the node itself, e.g. ``"r1.a7.b3"``. Its segment count is the node's level.
Everything here is pure string work; nothing touches the database.
"""

SEPARATOR = "."


def build_path(parent_path: str | None, node_id: str) -> str:
    """Return the path of ``node_id`` placed under ``parent_path`` (or as a root)."""
    if not node_id or SEPARATOR in node_id:
        raise ValueError(f"Invalid path segment: {node_id!r}")
    if not parent_path:
        return node_id
    return f"{parent_path}{SEPARATOR}{node_id}"


def split_path(path: str) -> list[str]:
    if not path:
        return []
    return path.split(SEPARATOR)


def path_level(path: str) -> int:
    return len(split_path(path))


def parent_path(path: str) -> str | None:
    """Path of the parent, or None for a root path."""
    segments = split_path(path)
    if len(segments) <= 1:
        return None
    return SEPARATOR.join(segments[:-1])


def ancestor_ids(path: str) -> list[str]:
    """Ids of every strict ancestor, root first."""
    return split_path(path)[:-1]


def contains_segment(path: str, node_id: str) -> bool:
    # Segment match; "a1" must not match inside "a10".
    return node_id in split_path(path)


def is_descendant_path(path: str, ancestor_path: str) -> bool:
    """True when ``path`` lies strictly below ``ancestor_path``."""
    return path.startswith(ancestor_path + SEPARATOR)


def rebase_path(path: str, old_prefix: str, new_prefix: str) -> str:
    """
    Swap the leading ``old_prefix`` of ``path`` for ``new_prefix``.

    Used when a subtree moves: every descendant keeps its relative segments
    and only the part above the moved node changes.
    """
    if path == old_prefix:
        return new_prefix
    if not is_descendant_path(path, old_prefix):
        raise ValueError(f"Path {path!r} is not under {old_prefix!r}")
    return new_prefix + path[len(old_prefix):]
