"""
Path helpers for remote paths.

Remote paths are always POSIX-style and absolute. Windows separators are
accepted on input and converted.
"""


def normalize_path(path: str) -> str:
    """
    Turn an arbitrary path string into a canonical absolute path.

    Collapses duplicate separators, resolves "." and ".." segments and
    strips trailing slashes. ".." above the root stays at the root.

    Args:
        path: Any path string, relative or absolute.

    Returns:
        The normalized absolute path ("/" for the root).
    """
    parts: list[str] = []
    for part in path.replace("\\", "/").split("/"):
        if part in ("", "."):
            continue
        if part == "..":
            if parts:
                parts.pop()
            continue
        parts.append(part)
    return "/" + "/".join(parts)


def parent_path(path: str) -> str | None:
    """Return the parent of a normalized path, or None for the root."""
    if path == "/":
        return None
    parent = path.rsplit("/", 1)[0]
    return parent or "/"


def join_path(base: str, name: str) -> str:
    """Join a child name (or relative path) onto a base path and normalize."""
    return normalize_path(base.rstrip("/") + "/" + name)


def basename(path: str) -> str:
    """Last segment of a path ("" for the root)."""
    return path.rstrip("/").rsplit("/", 1)[-1]
