"""
Resolved dependency graph models for minipm.

The resolver produces a :class:`DependencyGraph`; the lockfile manager
serializes it and the installation scheduler reads it. Nodes are frozen,
and nothing downstream of the resolver mutates a graph.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Dict, Iterable, Iterator, List, Optional, Tuple

from semantic_version import Version

from minipm.models.spec import PackageSpec

NodeKey = Tuple[str, Version]


@dataclass(frozen=True)
class ResolvedNode:
    """A concrete package version chosen by the resolver.

    Attributes:
        name: Package name.
        version: The chosen semantic version.
        dependencies: Requirements declared by this version, in the
            order the registry reported them.
        integrity: Subresource-integrity string (``sha512-…``) or
            ``None`` when the registry published no digest.
        source_url: Tarball URL the artifact is downloaded from.
    """

    name: str
    version: Version
    dependencies: Tuple[PackageSpec, ...] = ()
    integrity: Optional[str] = None
    source_url: str = ""

    @property
    def key(self) -> NodeKey:
        return (self.name, self.version)

    def __str__(self) -> str:
        return f"{self.name}@{self.version}"


@dataclass
class DependencyGraph:
    """A flat, deduplicated set of resolved packages.

    Each package name appears at most once (no nested copies). Instances
    are built by :class:`~minipm.core.resolver.Resolver` or loaded from a
    lockfile and are treated as read-only afterwards.

    Attributes:
        roots: Requirements taken from the manifest, in manifest order.
        nodes: ``(name, version)`` → :class:`ResolvedNode`.
    """

    roots: Tuple[PackageSpec, ...] = ()
    nodes: Dict[NodeKey, ResolvedNode] = field(default_factory=dict)

    @classmethod
    def from_nodes(
        cls,
        roots: Iterable[PackageSpec],
        nodes: Iterable[ResolvedNode],
    ) -> "DependencyGraph":
        return cls(roots=tuple(roots), nodes={node.key: node for node in nodes})

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------

    def get(self, name: str) -> Optional[ResolvedNode]:
        """Return the node chosen for ``name``, if any."""
        for node in self.nodes.values():
            if node.name == name:
                return node
        return None

    def sorted_nodes(self) -> List[ResolvedNode]:
        """Nodes ordered by name, then version."""
        return sorted(self.nodes.values(), key=lambda n: (n.name, n.version))

    def versions(self) -> Dict[str, str]:
        """Map of package name → chosen version string."""
        return {node.name: str(node.version) for node in self.sorted_nodes()}

    def __len__(self) -> int:
        return len(self.nodes)

    def __iter__(self) -> Iterator[ResolvedNode]:
        return iter(self.sorted_nodes())

    def __contains__(self, name: object) -> bool:
        return any(node.name == name for node in self.nodes.values())
