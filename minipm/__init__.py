"""
minipm: a minimal npm-style package manager.

``minipm add`` records a dependency in ``package.json``, ``minipm install``
resolves the graph against an npm-compatible registry, writes
``minipm-lock.json`` and unpacks every tarball into ``node_modules``, and
``minipm delete`` takes a dependency out again.

The engine lives in :mod:`minipm.core`:

- :mod:`~minipm.core.constraints` for npm version ranges
- :mod:`~minipm.core.resolver` for flat, deduplicated resolution
- :mod:`~minipm.core.lockfile` for the reproducible lock document
- :mod:`~minipm.core.scheduler` for concurrent, verified installation
"""

from __future__ import annotations

from minipm.__version__ import __version__

__author__ = "minipm Contributors"
__license__ = "Apache-2.0"
__description__ = "Minimal npm-style package manager with a real resolver."

__all__ = [
    "__version__",
]
