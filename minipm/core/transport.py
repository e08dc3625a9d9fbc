"""Artifact transport for minipm.

The installation scheduler only needs two things from the outside world:
the bytes of a tarball and a way to unpack them into a directory. Both
live behind :class:`Transport` so the scheduler can be exercised without
a network.

:class:`HttpTransport` downloads through the shared
:class:`~minipm.utils.http.HTTPClient` and unpacks npm-style gzip
tarballs. Every archive member lives under a single top-level directory
(``package/`` for npm); that component is stripped so files land directly
in the destination.
"""

from __future__ import annotations

import io
import asyncio
import tarfile
from pathlib import Path, PurePosixPath
from typing import Protocol

from minipm.utils.http import HTTPClient
from minipm.utils.logger import get_logger
from minipm.exceptions import FatalIOError
from minipm.utils.filesystem import validate_path

logger = get_logger("transport")

__all__ = ["Transport", "HttpTransport", "extract_tarball"]


class Transport(Protocol):
    """Fetches and unpacks package artifacts."""

    async def fetch_artifact(self, url: str) -> bytes:
        ...

    async def extract(self, data: bytes, dest: Path) -> None:
        ...


class HttpTransport:
    """Transport over HTTP(S) for npm-compatible tarballs.

    The client passed in should not retry on its own; the scheduler
    decides when and how often a download is repeated.

    Args:
        http_client: Client used for downloads.
    """

    def __init__(self, http_client: HTTPClient) -> None:
        self.http_client = http_client

    async def fetch_artifact(self, url: str) -> bytes:
        logger.debug("Downloading %s", url)
        return await self.http_client.get_bytes(url)

    async def extract(self, data: bytes, dest: Path) -> None:
        await asyncio.to_thread(extract_tarball, data, dest)


def _member_path(member: tarfile.TarInfo, archive: str) -> PurePosixPath:
    """Archive-relative path of ``member`` with its top directory removed."""
    raw = PurePosixPath(member.name)
    if raw.is_absolute() or member.name.startswith("\\"):
        raise FatalIOError(
            f"Archive {archive} contains absolute path {member.name!r}",
            file_path=member.name,
            operation="extract",
        )
    if ".." in raw.parts:
        raise FatalIOError(
            f"Archive {archive} contains path traversal {member.name!r}",
            file_path=member.name,
            operation="extract",
        )
    return PurePosixPath(*raw.parts[1:]) if len(raw.parts) > 1 else PurePosixPath()


def extract_tarball(data: bytes, dest: Path) -> None:
    """Unpack a gzip tarball into ``dest``.

    Only regular files and directories are allowed. Symlinks, hard links
    and device nodes abort the extraction, as does any member whose path
    would escape ``dest``.

    Raises:
        FatalIOError: The archive is corrupt or unsafe, or writing fails.
    """
    dest = Path(dest)
    label = dest.name or str(dest)

    try:
        with tarfile.open(fileobj=io.BytesIO(data), mode="r:gz") as archive:
            dest.mkdir(parents=True, exist_ok=True)
            count = 0
            for member in archive:
                relative = _member_path(member, label)
                if not relative.parts:
                    continue

                target = validate_path(dest / relative, base_dir=dest)
                if member.isdir():
                    target.mkdir(parents=True, exist_ok=True)
                    continue
                if not member.isfile():
                    raise FatalIOError(
                        f"Archive {label} contains unsupported entry {member.name!r}",
                        file_path=member.name,
                        operation="extract",
                    )

                source = archive.extractfile(member)
                if source is None:
                    continue
                target.parent.mkdir(parents=True, exist_ok=True)
                with source, open(target, "wb") as out:
                    out.write(source.read())
                if member.mode & 0o111:
                    target.chmod(0o755)
                count += 1
    except (tarfile.TarError, EOFError) as exc:
        raise FatalIOError(
            f"Corrupt archive for {label}: {exc}",
            file_path=str(dest),
            operation="extract",
            original_error=exc,
        ) from exc
    except OSError as exc:
        raise FatalIOError(
            f"Failed to extract into {dest}: {exc}",
            file_path=str(dest),
            operation="extract",
            original_error=exc,
        ) from exc

    logger.debug("Extracted %d file(s) into %s", count, dest)
