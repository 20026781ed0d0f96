"""Shared utilities for packsync."""

from __future__ import annotations

import os
import tempfile
from pathlib import Path, PurePosixPath

import structlog

logger = structlog.get_logger()


def normalize_relative_path(path: str) -> str:
    """Normalize a pack-relative destination path.

    Args:
        path: Path using ``/`` or ``\\`` separators

    Returns:
        Normalized POSIX-style relative path

    Raises:
        ValueError: If the path is empty, absolute, or escapes the pack folder

    Example:
        >>> normalize_relative_path("mods/./extra/../a.jar")
        'mods/a.jar'
    """
    candidate = path.replace("\\", "/")
    pure = PurePosixPath(candidate)
    if not candidate or pure.is_absolute() or (len(candidate) > 1 and candidate[1] == ":"):
        raise ValueError(f"Destination must be a relative path: {path!r}")

    parts: list[str] = []
    for part in pure.parts:
        if part in ("", "."):
            continue
        if part == "..":
            if not parts:
                raise ValueError(f"Destination escapes the pack folder: {path!r}")
            parts.pop()
            continue
        parts.append(part)

    if not parts:
        raise ValueError(f"Destination must name a file: {path!r}")
    return "/".join(parts)


def delete_quietly(pack_folder: Path, relative: str) -> bool:
    """Delete a pack-relative file, logging instead of raising on failure.

    Args:
        pack_folder: Pack root
        relative: File path relative to the pack root

    Returns:
        True if a file was removed
    """
    path = pack_folder / relative
    try:
        path.unlink()
    except FileNotFoundError:
        return False
    except OSError as e:
        logger.warning("file_delete_failed", path=str(path), error=str(e))
        return False
    logger.debug("file_deleted", path=str(path))
    return True


def atomic_write(path: Path, data: bytes) -> None:
    """Write bytes to ``path`` so that readers see either old or new content.

    Content goes to a temporary file in the destination directory which is
    then moved over the destination with ``os.replace``.

    Args:
        path: Destination file
        data: Content to write
    """
    path.parent.mkdir(parents=True, exist_ok=True)
    fd, tmp_name = tempfile.mkstemp(prefix=f".{path.name}.", suffix=".tmp", dir=path.parent)
    try:
        with os.fdopen(fd, "wb") as f:
            f.write(data)
        os.replace(tmp_name, path)
    except BaseException:
        Path(tmp_name).unlink(missing_ok=True)
        raise


def format_size(size: int) -> str:
    """Format byte size as human-readable string.

    Example:
        >>> format_size(1536)
        '1.5 KB'
    """
    if size < 0:
        return "0 B"

    size_float = float(size)
    for unit in ["B", "KB", "MB", "GB", "TB"]:
        if size_float < 1024.0:
            if unit == "B":
                return f"{int(size_float)} {unit}"
            return f"{size_float:.1f} {unit}"
        size_float /= 1024.0
    return f"{size_float:.1f} PB"
