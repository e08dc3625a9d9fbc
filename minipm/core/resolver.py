"""Dependency graph resolution for minipm.

The resolver turns the manifest's requirements into a flat
:class:`~minipm.models.graph.DependencyGraph` where every package name
maps to exactly one version.

Algorithm
---------

Breadth-first work queue of ``(PackageSpec, requester)`` pairs, where
*requester* is the node whose dependency list produced the spec (``None``
for manifest entries). For every package name the resolver keeps the
chosen node and every range that was ever asked of it.

1. If the chosen version already satisfies the new range the spec is a
   *dedup hit* and nothing else happens. Diamonds and cycles end here.
2. Otherwise the highest version satisfying **all** live ranges for the
   name is picked. A new pick for a name that already had a node is a
   *replacement*: the old version is rejected for the rest of the run and
   the new node's dependencies are enqueued.
3. No such version → :class:`~minipm.exceptions.VersionConflictError`
   (or :class:`~minipm.exceptions.NotFoundError` for a single range).

Ranges whose requester has since been replaced are *stale* and ignored.
Because each replacement permanently rejects one version from a finite
candidate list, the loop always terminates. When the queue drains,
nodes no longer reachable from the manifest are pruned and every
remaining edge is re-validated.

Registry lookups for all names waiting in the queue are dispatched
concurrently at the start of each round; the graph itself is only ever
mutated by the single resolution coroutine.

Typical usage::

    registry = NpmRegistry(http)
    graph = await Resolver(registry).resolve(manifest.root_specs())
"""

from __future__ import annotations

import asyncio
from collections import deque
from dataclasses import dataclass, field
from typing import Deque, Dict, List, Optional, Sequence, Set, Tuple

from semantic_version import Version

from minipm.utils.logger import get_logger
from minipm.core.registry import RegistryClient
from minipm.models.spec import PackageSpec
from minipm.models.graph import DependencyGraph, NodeKey, ResolvedNode
from minipm.core.constraints import VersionRange, admits, pick_best
from minipm.exceptions import NotFoundError, VersionConflictError

logger = get_logger("resolver")

__all__ = ["Resolver", "ResolutionStats"]

_QueueItem = Tuple[PackageSpec, Optional[NodeKey]]


@dataclass
class ResolutionStats:
    """Counters describing one resolution run.

    Attributes:
        registry_lookups: Distinct names whose versions were listed.
        dedup_hits: Specs satisfied by an already-chosen node.
        replacements: Times a chosen node was swapped for another version.
        stale_edges: Specs dropped because their requester was replaced.
        pruned: Nodes removed at the end because nothing reached them.
    """

    registry_lookups: int = 0
    dedup_hits: int = 0
    replacements: int = 0
    stale_edges: int = 0
    pruned: int = 0


@dataclass(frozen=True)
class _Constraint:
    range: VersionRange
    requester: Optional[NodeKey]

    def label(self) -> str:
        origin = "manifest" if self.requester is None else "{}@{}".format(*self.requester)
        return f"{self.range.raw or '*'} (required by {origin})"


@dataclass
class _ResolutionState:
    """Mutable bookkeeping for a single :meth:`Resolver.resolve` call."""

    versions: Dict[str, List[Version]] = field(default_factory=dict)
    chosen: Dict[str, ResolvedNode] = field(default_factory=dict)
    constraints: Dict[str, List[_Constraint]] = field(default_factory=dict)
    rejected: Dict[str, Set[Version]] = field(default_factory=dict)
    stats: ResolutionStats = field(default_factory=ResolutionStats)

    def is_live(self, requester: Optional[NodeKey]) -> bool:
        if requester is None:
            return True
        node = self.chosen.get(requester[0])
        return node is not None and node.version == requester[1]

    def active_constraints(self, name: str) -> List[_Constraint]:
        return [c for c in self.constraints.get(name, []) if self.is_live(c.requester)]


class Resolver:
    """Builds a consistent, deduplicated dependency graph.

    Args:
        registry: Source of version lists and per-version metadata.
        concurrent_lookups: Upper bound on registry lookups dispatched
            together at the start of a round.
    """

    def __init__(self, registry: RegistryClient, *, concurrent_lookups: int = 10) -> None:
        self.registry = registry
        self.concurrent_lookups = max(1, concurrent_lookups)
        self.last_stats: Optional[ResolutionStats] = None

    async def resolve(self, root_specs: Sequence[PackageSpec]) -> DependencyGraph:
        """Resolve ``root_specs`` and their transitive dependencies.

        Args:
            root_specs: Manifest requirements, in manifest order.

        Returns:
            A new :class:`DependencyGraph`.

        Raises:
            NotFoundError: A package, or any version matching a range,
                does not exist.
            VersionConflictError: No single version of a package satisfies
                every range required of it.
            InvalidRangeError: A range expression cannot be parsed.
        """
        state = _ResolutionState()
        queue: Deque[_QueueItem] = deque((spec, None) for spec in root_specs)

        while queue:
            await self._prefetch_versions(queue, state)
            for _ in range(len(queue)):
                spec, requester = queue.popleft()
                await self._process(spec, requester, state, queue)

        graph = self._finalize(tuple(root_specs), state)
        self.last_stats = state.stats

        logger.info(
            "Resolved %d package(s): %d dedup hit(s), %d replacement(s)",
            len(graph),
            state.stats.dedup_hits,
            state.stats.replacements,
        )
        logger.debug("Resolution stats: %s", state.stats)
        return graph

    # ------------------------------------------------------------------
    # Queue processing
    # ------------------------------------------------------------------

    async def _process(
        self,
        spec: PackageSpec,
        requester: Optional[NodeKey],
        state: _ResolutionState,
        queue: Deque[_QueueItem],
    ) -> None:
        if not state.is_live(requester):
            state.stats.stale_edges += 1
            logger.debug("Dropping stale requirement %s from %s", spec, requester)
            return

        range_ = VersionRange.parse(spec.range)
        state.constraints.setdefault(spec.name, []).append(_Constraint(range_, requester))

        current = state.chosen.get(spec.name)
        if current is not None and admits(
            current.version, range_, state.versions[spec.name]
        ):
            state.stats.dedup_hits += 1
            logger.debug("%s satisfied by existing %s", spec, current)
            return

        best = await self._pick(spec.name, state)
        metadata = await self.registry.get_metadata(spec.name, best)
        node = ResolvedNode(
            name=spec.name,
            version=best,
            dependencies=metadata.dependencies,
            integrity=metadata.integrity,
            source_url=metadata.source_url,
        )

        if current is not None:
            state.rejected.setdefault(spec.name, set()).add(current.version)
            state.stats.replacements += 1
            logger.info(
                "Replacing %s with %s to satisfy %s",
                current,
                best,
                spec.range,
            )
        else:
            logger.debug("Chose %s for %s", node, spec)

        state.chosen[spec.name] = node
        queue.extend((dep, node.key) for dep in node.dependencies)

    async def _pick(self, name: str, state: _ResolutionState) -> Version:
        """Highest non-rejected version satisfying every live range for ``name``."""
        versions = await self._versions(name, state)
        rejected = state.rejected.get(name, set())
        candidates = [v for v in versions if v not in rejected]
        active = state.active_constraints(name)

        try:
            return pick_best(candidates, *(c.range for c in active), name=name)
        except NotFoundError:
            if len(active) <= 1:
                raise
            labels = [c.label() for c in active]
            raise VersionConflictError(
                f"No version of {name} satisfies all of: " + "; ".join(labels),
                package_name=name,
                ranges=labels,
            ) from None

    # ------------------------------------------------------------------
    # Registry access
    # ------------------------------------------------------------------

    async def _versions(self, name: str, state: _ResolutionState) -> List[Version]:
        if name not in state.versions:
            state.versions[name] = await self.registry.list_versions(name)
            state.stats.registry_lookups += 1
        return state.versions[name]

    async def _prefetch_versions(
        self,
        queue: Deque[_QueueItem],
        state: _ResolutionState,
    ) -> None:
        """List versions for every unknown, live name in ``queue`` concurrently.

        Results are joined before any graph mutation. The first failure
        in queue order is re-raised so errors are deterministic.
        """
        names: List[str] = []
        for spec, requester in queue:
            if (
                spec.name not in state.versions
                and spec.name not in names
                and state.is_live(requester)
            ):
                names.append(spec.name)
        if not names:
            return

        semaphore = asyncio.Semaphore(self.concurrent_lookups)

        async def lookup(name: str) -> List[Version]:
            async with semaphore:
                return await self.registry.list_versions(name)

        results = await asyncio.gather(*(lookup(n) for n in names), return_exceptions=True)
        for name, result in zip(names, results):
            if isinstance(result, BaseException):
                raise result
            state.versions[name] = result
            state.stats.registry_lookups += 1

    # ------------------------------------------------------------------
    # Finalization
    # ------------------------------------------------------------------

    def _finalize(
        self,
        roots: Tuple[PackageSpec, ...],
        state: _ResolutionState,
    ) -> DependencyGraph:
        """Prune unreachable nodes and re-check every edge of the result."""
        reachable: Dict[str, ResolvedNode] = {}
        pending: Deque[PackageSpec] = deque(roots)

        while pending:
            spec = pending.popleft()
            node = state.chosen[spec.name]
            if not admits(node.version, spec.range, state.versions[spec.name]):
                ranges = [c.label() for c in state.active_constraints(spec.name)]
                raise VersionConflictError(
                    f"{node} does not satisfy {spec}",
                    package_name=spec.name,
                    ranges=ranges,
                )
            if spec.name in reachable:
                continue
            reachable[spec.name] = node
            pending.extend(node.dependencies)

        for name, node in state.chosen.items():
            if name not in reachable:
                state.stats.pruned += 1
                logger.debug("Pruning unreachable %s", node)

        return DependencyGraph.from_nodes(roots, reachable.values())
