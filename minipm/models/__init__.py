"""
Value types passed between the resolver, the lockfile and the installer.

- :class:`PackageSpec`: a ``name@range`` request.
- :class:`ResolvedNode` and :class:`DependencyGraph`: the resolver's output
  and the lockfile's in-memory form.
- :class:`InstallReport`: what happened to each node during installation.
"""

from __future__ import annotations

from minipm.models.spec import PackageSpec, validate_name
from minipm.models.graph import DependencyGraph, ResolvedNode
from minipm.models.report import InstallReport

__all__ = [
    "PackageSpec",
    "validate_name",
    "ResolvedNode",
    "DependencyGraph",
    "InstallReport",
]
