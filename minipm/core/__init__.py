"""
Core functionality exports for minipm.

This module provides convenient access to the core subsystems of minipm.
Importing from here keeps user-facing imports clean and stable:

    from minipm.core import Resolver, InstallScheduler
"""

from __future__ import annotations

from minipm.core.constraints import VersionRange, parse_version, pick_best, satisfies
from minipm.core.registry import (
    InMemoryRegistry,
    NpmRegistry,
    PackageMetadata,
    RegistryClient,
)
from minipm.core.resolver import ResolutionStats, Resolver
from minipm.core.transport import HttpTransport, Transport
from minipm.core.scheduler import ArtifactCache, InstallScheduler
from minipm.core.manifest import Manifest

__all__ = [
    "VersionRange",
    "parse_version",
    "pick_best",
    "satisfies",
    "RegistryClient",
    "NpmRegistry",
    "InMemoryRegistry",
    "PackageMetadata",
    "Resolver",
    "ResolutionStats",
    "Transport",
    "HttpTransport",
    "InstallScheduler",
    "ArtifactCache",
    "Manifest",
]
