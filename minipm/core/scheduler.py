"""Concurrent installation of a resolved dependency graph.

:class:`InstallScheduler` fetches, verifies and extracts every node of a
:class:`~minipm.models.graph.DependencyGraph` into a flat modules
directory (``node_modules/<name>``). The layout is flat, so nodes have
no ordering constraints and are all eligible at once; a fixed pool of
worker tasks drains a shared queue.

Per node::

    marker matches?  ──yes──▶ skipped
         │ no
    cache hit? ──no──▶ transport.fetch_artifact (retry transient faults)
         │
    verify integrity ─▶ clear dest ─▶ transport.extract ─▶ write marker

A failure stops only the affected node. The outcome of every node is
recorded in an :class:`~minipm.models.report.InstallReport`.
"""

from __future__ import annotations

import json
import base64
import asyncio
import hashlib
import binascii
from pathlib import Path
from typing import Dict, Optional, Tuple

from minipm.utils.logger import get_logger
from minipm.core.transport import Transport
from minipm.models.graph import DependencyGraph, ResolvedNode
from minipm.models.report import InstallReport
from minipm.utils.filesystem import (
    remove_tree,
    safe_read_file,
    safe_write_bytes,
    safe_write_file,
    validate_path,
)
from minipm.constants import (
    INSTALL_MARKER,
    MAX_RETRY_BACKOFF,
    DEFAULT_FETCH_ATTEMPTS,
    DEFAULT_RETRY_BACKOFF,
    DEFAULT_MAX_CONCURRENCY,
)
from minipm.exceptions import (
    FatalIOError,
    FileOperationError,
    IntegrityMismatchError,
    MinipmError,
    TransientIOError,
)

logger = get_logger("scheduler")

__all__ = [
    "ArtifactCache",
    "InstallScheduler",
    "compute_integrity",
    "verify_integrity",
]

_SUPPORTED_ALGORITHMS = ("sha512", "sha384", "sha256", "sha1")


class _InstallCancelled(Exception):
    """The cancel event was set while a node was waiting to retry."""


# ---------------------------------------------------------------------------
# Integrity helpers
# ---------------------------------------------------------------------------


def _parse_integrity(integrity: str) -> Tuple[str, bytes]:
    """Split the strongest supported entry of an SRI string.

    ``integrity`` may hold several space separated ``algo-base64`` hashes;
    the strongest one minipm knows is used.
    """
    entries: Dict[str, bytes] = {}
    for token in integrity.split():
        algorithm, _, encoded = token.partition("-")
        if algorithm not in _SUPPORTED_ALGORITHMS or not encoded:
            continue
        try:
            entries[algorithm] = base64.b64decode(encoded.split("?")[0], validate=True)
        except (binascii.Error, ValueError):
            continue

    for algorithm in _SUPPORTED_ALGORITHMS:
        if algorithm in entries:
            return algorithm, entries[algorithm]
    raise IntegrityMismatchError(
        f"Unsupported integrity value: {integrity}",
        expected=integrity,
    )


def compute_integrity(data: bytes, algorithm: str = "sha512") -> str:
    """Return the SRI string (``sha512-<base64>``) of ``data``."""
    digest = hashlib.new(algorithm, data).digest()
    return f"{algorithm}-{base64.b64encode(digest).decode('ascii')}"


def verify_integrity(node: ResolvedNode, data: bytes) -> None:
    """Check ``data`` against ``node.integrity``.

    Nodes without an integrity string are accepted unchecked.

    Raises:
        IntegrityMismatchError: The digest does not match.
    """
    if not node.integrity:
        logger.debug("No integrity recorded for %s; skipping verification", node)
        return

    algorithm, expected = _parse_integrity(node.integrity)
    actual = hashlib.new(algorithm, data).digest()
    if actual != expected:
        raise IntegrityMismatchError(
            f"Integrity check failed for {node}",
            package_name=node.name,
            expected=node.integrity,
            actual=compute_integrity(data, algorithm),
        )


# ---------------------------------------------------------------------------
# Artifact cache
# ---------------------------------------------------------------------------


class ArtifactCache:
    """Content-addressed store of downloaded tarballs.

    Artifacts are keyed by their integrity digest and stored as
    ``<root>/<algorithm>/<hexdigest>.tgz``. Only nodes that carry an
    integrity string are cached.

    Args:
        root: Cache directory; created on first write.
    """

    def __init__(self, root: Path) -> None:
        self.root = Path(root)

    def path_for(self, integrity: str) -> Path:
        algorithm, digest = _parse_integrity(integrity)
        return self.root / algorithm / f"{digest.hex()}.tgz"

    def get(self, node: ResolvedNode) -> Optional[bytes]:
        if not node.integrity:
            return None
        path = self.path_for(node.integrity)
        if not path.is_file():
            return None
        try:
            return path.read_bytes()
        except OSError as exc:
            logger.warning("Ignoring unreadable cache entry %s: %s", path, exc)
            return None

    def put(self, node: ResolvedNode, data: bytes) -> None:
        if not node.integrity:
            return
        try:
            safe_write_bytes(self.path_for(node.integrity), data)
        except FileOperationError as exc:
            logger.warning("Could not cache artifact for %s: %s", node, exc)


# ---------------------------------------------------------------------------
# Scheduler
# ---------------------------------------------------------------------------


class InstallScheduler:
    """Installs a dependency graph with bounded concurrency.

    Args:
        transport: Fetches and extracts artifacts.
        max_concurrency: Number of worker tasks.
        max_attempts: Tries per artifact when the transport reports a
            transient fault.
        backoff: Base delay in seconds; attempt ``n`` waits
            ``backoff * 2**n`` capped at ``MAX_RETRY_BACKOFF``.
        cache: Optional :class:`ArtifactCache` consulted before fetching.
    """

    def __init__(
        self,
        transport: Transport,
        *,
        max_concurrency: int = DEFAULT_MAX_CONCURRENCY,
        max_attempts: int = DEFAULT_FETCH_ATTEMPTS,
        backoff: float = DEFAULT_RETRY_BACKOFF,
        cache: Optional[ArtifactCache] = None,
    ) -> None:
        if max_concurrency < 1:
            raise ValueError("max_concurrency must be at least 1")
        if max_attempts < 1:
            raise ValueError("max_attempts must be at least 1")

        self.transport = transport
        self.max_concurrency = max_concurrency
        self.max_attempts = max_attempts
        self.backoff = backoff
        self.cache = cache

    async def install(
        self,
        graph: DependencyGraph,
        dest_root: Path,
        cancel_event: Optional[asyncio.Event] = None,
    ) -> InstallReport:
        """Install every node of ``graph`` under ``dest_root``.

        Args:
            graph: Resolved graph to install.
            dest_root: Modules directory; each package goes to
                ``dest_root/<name>``.
            cancel_event: When set, no further fetches start and pending
                nodes are reported as cancelled.

        Returns:
            The populated :class:`InstallReport`.
        """
        report = InstallReport()
        dest_root = Path(dest_root)
        cancel_event = cancel_event or asyncio.Event()

        queue: "asyncio.Queue[ResolvedNode]" = asyncio.Queue()
        for node in graph.sorted_nodes():
            queue.put_nowait(node)

        worker_count = min(self.max_concurrency, len(graph))
        logger.info(
            "Installing %d package(s) into %s with %d worker(s)",
            len(graph),
            dest_root,
            worker_count,
        )

        workers = [
            asyncio.create_task(self._worker(queue, dest_root, report, cancel_event))
            for _ in range(worker_count)
        ]
        try:
            await asyncio.gather(*workers)
        except BaseException:
            for task in workers:
                task.cancel()
            await asyncio.gather(*workers, return_exceptions=True)
            raise

        logger.info("Install finished: %s", report.summary())
        return report

    async def _worker(
        self,
        queue: "asyncio.Queue[ResolvedNode]",
        dest_root: Path,
        report: InstallReport,
        cancel_event: asyncio.Event,
    ) -> None:
        while True:
            try:
                node = queue.get_nowait()
            except asyncio.QueueEmpty:
                return

            if cancel_event.is_set():
                report.record_cancelled(node)
                continue

            try:
                installed = await self._install_node(node, dest_root, cancel_event)
            except _InstallCancelled:
                logger.info("Cancelled %s before it was fetched", node)
                report.record_cancelled(node)
                continue
            except MinipmError as exc:
                logger.error("Failed to install %s: %s", node, exc)
                report.record_failed(node, exc)
                continue

            if installed:
                report.record_installed(node)
            else:
                report.record_skipped(node)

    async def _install_node(
        self,
        node: ResolvedNode,
        dest_root: Path,
        cancel_event: asyncio.Event,
    ) -> bool:
        """Install one node; return ``False`` when it was already present.

        Disk work runs in worker threads so the event loop keeps serving
        other downloads.
        """
        target = self._target_dir(node, dest_root)

        if await asyncio.to_thread(self._is_installed, node, target):
            logger.debug("%s already installed; skipping", node)
            return False

        data = await asyncio.to_thread(self.cache.get, node) if self.cache else None
        if data is None:
            data = await self._fetch_with_retry(node, cancel_event)
            verify_integrity(node, data)
            if self.cache:
                await asyncio.to_thread(self.cache.put, node, data)
        else:
            logger.debug("Using cached artifact for %s", node)
            verify_integrity(node, data)

        await asyncio.to_thread(remove_tree, target)
        await self.transport.extract(data, target)
        await asyncio.to_thread(self._write_marker, node, target)
        logger.debug("Installed %s", node)
        return True

    async def _fetch_with_retry(
        self,
        node: ResolvedNode,
        cancel_event: asyncio.Event,
    ) -> bytes:
        """Fetch the node's artifact, retrying transient faults.

        Raises:
            _InstallCancelled: ``cancel_event`` was set before a retry.
        """
        for attempt in range(self.max_attempts):
            if attempt and cancel_event.is_set():
                raise _InstallCancelled()
            try:
                return await self.transport.fetch_artifact(node.source_url)
            except TransientIOError as exc:
                if attempt + 1 >= self.max_attempts:
                    raise
                delay = min(self.backoff * (2 ** attempt), MAX_RETRY_BACKOFF)
                logger.warning(
                    "Fetching %s failed (%s); retry %d/%d in %.2fs",
                    node,
                    exc,
                    attempt + 1,
                    self.max_attempts - 1,
                    delay,
                )
                await self._pause(delay, cancel_event)

        raise AssertionError("max_attempts must be at least 1")

    @staticmethod
    async def _pause(delay: float, cancel_event: asyncio.Event) -> None:
        """Sleep for ``delay`` seconds, waking early once ``cancel_event`` is set."""
        sleeper = asyncio.ensure_future(asyncio.sleep(delay))
        waiter = asyncio.ensure_future(cancel_event.wait())
        try:
            await asyncio.wait({sleeper, waiter}, return_when=asyncio.FIRST_COMPLETED)
        finally:
            sleeper.cancel()
            waiter.cancel()

    # ------------------------------------------------------------------
    # On-disk state
    # ------------------------------------------------------------------

    @staticmethod
    def _target_dir(node: ResolvedNode, dest_root: Path) -> Path:
        try:
            return validate_path(dest_root / node.name, base_dir=dest_root)
        except FileOperationError as exc:
            raise FatalIOError(
                f"Refusing to install {node} outside {dest_root}",
                file_path=str(dest_root / node.name),
                operation="install",
                original_error=exc,
            ) from exc

    @staticmethod
    def _marker_payload(node: ResolvedNode) -> Dict[str, Optional[str]]:
        return {
            "name": node.name,
            "version": str(node.version),
            "integrity": node.integrity,
        }

    def _is_installed(self, node: ResolvedNode, target: Path) -> bool:
        marker = target / INSTALL_MARKER
        if not marker.is_file():
            return False
        try:
            recorded = json.loads(safe_read_file(marker))
        except (FileOperationError, ValueError):
            logger.debug("Unreadable install marker for %s; reinstalling", node)
            return False
        return recorded == self._marker_payload(node)

    def _write_marker(self, node: ResolvedNode, target: Path) -> None:
        try:
            safe_write_file(
                target / INSTALL_MARKER,
                json.dumps(self._marker_payload(node), indent=2) + "\n",
            )
        except FileOperationError as exc:
            raise FatalIOError(
                f"Failed to record installation of {node}: {exc}",
                file_path=str(target / INSTALL_MARKER),
                operation="write",
                original_error=exc,
            ) from exc
