"""
Filesystem utilities for minipm.

Safe helpers for reading and atomically writing the manifest, lockfile
and install markers, for confining package paths to the modules
directory, and for removing installed packages. All filesystem errors
are normalized to :class:`~minipm.exceptions.FileOperationError`.
"""

from __future__ import annotations

import os
import shutil
import tempfile
from pathlib import Path
from typing import Optional, Union

from minipm.utils.logger import get_logger
from minipm.constants import MAX_FILE_SIZE
from minipm.exceptions import FatalIOError, FileOperationError


logger = get_logger("filesystem")

PathLike = Union[str, Path]


def _validated_file(path: Path) -> Path:
    """Resolve a path that must point at an existing regular file."""
    if not path.exists():
        raise FileOperationError(
            f"File not found: {path}",
            file_path=str(path),
            operation="read",
        )
    if not path.is_file():
        raise FileOperationError(
            f"Not a file: {path}",
            file_path=str(path),
            operation="read",
        )
    return path.resolve()


def _atomic_write(target: Path, content: bytes) -> None:
    """Atomically write bytes to a file using a temporary file + replace."""
    target.parent.mkdir(parents=True, exist_ok=True)
    temp_path: Optional[Path] = None

    try:
        with tempfile.NamedTemporaryFile(
            mode="wb",
            dir=str(target.parent),
            delete=False,
            prefix=f".{target.name}.",
            suffix=".tmp",
        ) as tmp:
            temp_path = Path(tmp.name)
            tmp.write(content)
            tmp.flush()
            os.fsync(tmp.fileno())

        temp_path.replace(target)

    except OSError as exc:
        if temp_path and temp_path.exists():
            try:
                temp_path.unlink()
                logger.debug("Cleaned up temporary file: %s", temp_path)
            except OSError as cleanup_exc:
                logger.warning(
                    "Failed to clean up temporary file %s: %s",
                    temp_path,
                    cleanup_exc,
                )

        raise FileOperationError(
            f"Atomic write failed: {exc}",
            file_path=str(target),
            operation="write",
            original_error=exc,
        ) from exc


def safe_read_bytes(
    file_path: PathLike,
    *,
    max_size: Optional[int] = MAX_FILE_SIZE,
) -> bytes:
    """Read a file's bytes, refusing files larger than ``max_size``.

    Args:
        file_path: Path to the file.
        max_size: Maximum allowed file size in bytes (None disables limit).

    Returns:
        File contents.
    """
    path = _validated_file(Path(file_path))
    size = path.stat().st_size

    if max_size is not None and size > max_size:
        raise FileOperationError(
            f"File too large: {size} bytes (max {max_size})",
            file_path=str(path),
            operation="read",
        )

    try:
        return path.read_bytes()
    except OSError as exc:
        raise FileOperationError(
            f"Failed to read file: {exc}",
            file_path=str(path),
            operation="read",
            original_error=exc,
        ) from exc


def safe_read_file(
    file_path: PathLike,
    *,
    max_size: Optional[int] = MAX_FILE_SIZE,
    encoding: str = "utf-8",
) -> str:
    """Read a text file with the same limits as :func:`safe_read_bytes`."""
    data = safe_read_bytes(file_path, max_size=max_size)
    try:
        return data.decode(encoding)
    except UnicodeDecodeError as exc:
        raise FileOperationError(
            f"File is not valid {encoding}: {exc}",
            file_path=str(file_path),
            operation="read",
            original_error=exc,
        ) from exc


def safe_write_bytes(file_path: PathLike, content: bytes) -> None:
    """Write bytes using atomic replacement; readers never see partial files."""
    _atomic_write(Path(file_path), content)


def safe_write_file(
    file_path: PathLike,
    content: str,
    *,
    encoding: str = "utf-8",
) -> None:
    """Write text using atomic replacement."""
    _atomic_write(Path(file_path), content.encode(encoding))


def validate_path(
    path: PathLike,
    *,
    base_dir: Optional[PathLike] = None,
) -> Path:
    """Resolve and validate a filesystem path.

    If ``base_dir`` is provided, the resolved path must be within it.
    Package names come from remote metadata, so every install target is
    checked this way before anything is written.
    """
    resolved = Path(path).expanduser().resolve(strict=False)

    if base_dir:
        base = Path(base_dir).resolve(strict=False)
        try:
            resolved.relative_to(base)
        except ValueError:
            raise FileOperationError(
                f"Path outside allowed base directory: {resolved}",
                file_path=str(path),
                operation="validate",
            )

    return resolved


def remove_tree(path: PathLike) -> bool:
    """Delete a directory (or file) if present.

    Returns:
        ``True`` when something was removed, ``False`` when nothing existed.

    Raises:
        FatalIOError: The path exists but could not be removed.
    """
    target = Path(path)
    if not target.exists() and not target.is_symlink():
        return False

    try:
        if target.is_dir() and not target.is_symlink():
            shutil.rmtree(target)
        else:
            target.unlink()
    except OSError as exc:
        raise FatalIOError(
            f"Failed to remove {target}: {exc}",
            file_path=str(target),
            operation="delete",
            original_error=exc,
        ) from exc

    logger.debug("Removed %s", target)
    return True
