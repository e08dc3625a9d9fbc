"""
Installation outcome model for minipm.

Worker tasks record every node they handle in a shared
:class:`InstallReport`. Recording is append-only and guarded by a lock,
so the report stays consistent even when extraction runs on worker
threads.
"""

from __future__ import annotations

import threading
from dataclasses import dataclass, field
from typing import Dict, List, Set, Tuple

from minipm.models.graph import ResolvedNode

InstalledKey = Tuple[str, str]


@dataclass
class InstallReport:
    """Per-package breakdown of an installation run.

    Attributes:
        installed: ``(name, version)`` pairs fetched and extracted.
        skipped: ``(name, version)`` pairs already present on disk with
            the same integrity.
        failed: Package name → the error that stopped it.
        cancelled: ``(name, version)`` pairs never started because the
            run was cancelled.
    """

    installed: Set[InstalledKey] = field(default_factory=set)
    skipped: Set[InstalledKey] = field(default_factory=set)
    failed: Dict[str, Exception] = field(default_factory=dict)
    cancelled: Set[InstalledKey] = field(default_factory=set)

    _lock: threading.Lock = field(
        default_factory=threading.Lock, init=False, repr=False, compare=False
    )

    # ------------------------------------------------------------------
    # Recording (thread-safe)
    # ------------------------------------------------------------------

    def record_installed(self, node: ResolvedNode) -> None:
        with self._lock:
            self.installed.add((node.name, str(node.version)))

    def record_skipped(self, node: ResolvedNode) -> None:
        with self._lock:
            self.skipped.add((node.name, str(node.version)))

    def record_failed(self, node: ResolvedNode, error: Exception) -> None:
        with self._lock:
            self.failed[node.name] = error

    def record_cancelled(self, node: ResolvedNode) -> None:
        with self._lock:
            self.cancelled.add((node.name, str(node.version)))

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------

    @property
    def ok(self) -> bool:
        """``True`` when every node was installed or skipped."""
        return not self.failed and not self.cancelled

    @property
    def total(self) -> int:
        return (
            len(self.installed)
            + len(self.skipped)
            + len(self.failed)
            + len(self.cancelled)
        )

    def summary(self) -> str:
        """One-line human summary, e.g. ``"2 installed, 1 skipped, 0 failed"``."""
        parts = [
            f"{len(self.installed)} installed",
            f"{len(self.skipped)} skipped",
            f"{len(self.failed)} failed",
        ]
        if self.cancelled:
            parts.append(f"{len(self.cancelled)} cancelled")
        return ", ".join(parts)

    def failure_lines(self) -> List[str]:
        """``"name: error"`` lines sorted by package name."""
        return [f"{name}: {error}" for name, error in sorted(self.failed.items())]
