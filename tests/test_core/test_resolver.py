from __future__ import annotations

import pytest

from minipm.core.lockfile import save
from minipm.core.resolver import Resolver
from minipm.core.constraints import VersionRange
from minipm.core.registry import InMemoryRegistry
from minipm.models import DependencyGraph, PackageSpec
from minipm.exceptions import InvalidRangeError, NotFoundError, VersionConflictError


@pytest.fixture
def registry() -> InMemoryRegistry:
    """Registry with a small, realistic package set."""
    reg = InMemoryRegistry()
    for version in ("1.0.0", "1.1.0", "2.0.0"):
        reg.publish("left-pad", version)
    reg.publish("app-lib", "1.0.0", dependencies={"left-pad": "^1.0.0", "util": "~0.3.0"})
    reg.publish("util", "0.3.0")
    reg.publish("util", "0.3.4")
    reg.publish("util", "0.4.0")
    return reg


def _assert_consistent(graph: DependencyGraph) -> None:
    """Every edge lands on a node whose version satisfies the edge's range."""
    for spec in graph.roots:
        node = graph.get(spec.name)
        assert node is not None
        assert VersionRange.parse(spec.range).matches(node.version)
    for node in graph:
        for dep in node.dependencies:
            target = graph.get(dep.name)
            assert target is not None, f"{node} -> {dep} dangling"
            assert VersionRange.parse(dep.range).matches(target.version)


@pytest.mark.unit
class TestResolverBasics:
    """Single-package and transitive resolution."""

    @pytest.mark.asyncio
    async def test_picks_highest_matching_version(self, registry: InMemoryRegistry) -> None:
        """``left-pad@^1.0.0`` over {1.0.0, 1.1.0, 2.0.0} resolves to 1.1.0."""
        graph = await Resolver(registry).resolve([PackageSpec("left-pad", "^1.0.0")])

        assert graph.versions() == {"left-pad": "1.1.0"}

    @pytest.mark.asyncio
    async def test_latest_picks_highest_stable(self, registry: InMemoryRegistry) -> None:
        registry.publish("left-pad", "3.0.0-beta.1")

        graph = await Resolver(registry).resolve([PackageSpec("left-pad", "latest")])

        assert graph.versions() == {"left-pad": "2.0.0"}

    @pytest.mark.asyncio
    async def test_prerelease_range_skips_other_release_prereleases(self) -> None:
        reg = InMemoryRegistry()
        for version in ("1.0.0-beta", "1.2.0", "1.3.0-rc.1"):
            reg.publish("a", version)

        graph = await Resolver(reg).resolve([PackageSpec("a", "^1.0.0-beta")])

        assert graph.versions() == {"a": "1.2.0"}

    @pytest.mark.asyncio
    async def test_prerelease_only_package_is_shared(self) -> None:
        """Two requesters of a package with no releases reuse the same pick."""
        reg = InMemoryRegistry()
        reg.publish("next-lib", "3.0.0-rc.1")
        reg.publish("next-lib", "3.0.0-rc.2")
        reg.publish("b", "1.0.0", dependencies={"next-lib": "latest"})
        resolver = Resolver(reg)

        graph = await resolver.resolve(
            [PackageSpec("next-lib", "latest"), PackageSpec("b", "*")]
        )

        assert graph.versions() == {"b": "1.0.0", "next-lib": "3.0.0-rc.2"}
        assert resolver.last_stats is not None
        assert resolver.last_stats.replacements == 0
        assert resolver.last_stats.dedup_hits == 1

    @pytest.mark.asyncio
    async def test_transitive_dependencies(self, registry: InMemoryRegistry) -> None:
        graph = await Resolver(registry).resolve([PackageSpec("app-lib", "^1.0.0")])

        assert graph.versions() == {
            "app-lib": "1.0.0",
            "left-pad": "1.1.0",
            "util": "0.3.4",
        }
        _assert_consistent(graph)

    @pytest.mark.asyncio
    async def test_roots_preserve_manifest_order(self, registry: InMemoryRegistry) -> None:
        roots = [PackageSpec("util", "*"), PackageSpec("left-pad", "^1")]

        graph = await Resolver(registry).resolve(roots)

        assert graph.roots == tuple(roots)

    @pytest.mark.asyncio
    async def test_empty_roots(self, registry: InMemoryRegistry) -> None:
        graph = await Resolver(registry).resolve([])

        assert len(graph) == 0
        assert graph.roots == ()

    @pytest.mark.asyncio
    async def test_each_name_listed_once(self, registry: InMemoryRegistry) -> None:
        """Registry lookups are cached for the duration of a run."""
        registry.publish("other", "1.0.0", dependencies={"left-pad": "^1.0.0"})

        await Resolver(registry).resolve(
            [PackageSpec("app-lib", "^1"), PackageSpec("other", "*"), PackageSpec("left-pad", "*")]
        )

        assert registry.lookups["left-pad"] == 1
        assert all(count == 1 for count in registry.lookups.values())


@pytest.mark.unit
class TestResolverErrors:
    """Failures that abort resolution."""

    @pytest.mark.asyncio
    async def test_unknown_package(self, registry: InMemoryRegistry) -> None:
        with pytest.raises(NotFoundError) as exc_info:
            await Resolver(registry).resolve([PackageSpec("ghost", "*")])

        assert exc_info.value.package_name == "ghost"

    @pytest.mark.asyncio
    async def test_no_version_matches(self, registry: InMemoryRegistry) -> None:
        with pytest.raises(NotFoundError) as exc_info:
            await Resolver(registry).resolve([PackageSpec("left-pad", "^5.0.0")])

        assert exc_info.value.package_name == "left-pad"

    @pytest.mark.asyncio
    async def test_invalid_range(self, registry: InMemoryRegistry) -> None:
        with pytest.raises(InvalidRangeError):
            await Resolver(registry).resolve([PackageSpec("left-pad", "^nope")])

    @pytest.mark.asyncio
    async def test_transitive_conflict_names_package_and_ranges(self) -> None:
        """B needs A@^1 and C needs A@^2: no single A exists."""
        reg = InMemoryRegistry()
        reg.publish("a", "1.0.0")
        reg.publish("a", "2.0.0")
        reg.publish("b", "1.0.0", dependencies={"a": "^1.0.0"})
        reg.publish("c", "1.0.0", dependencies={"a": "^2.0.0"})

        with pytest.raises(VersionConflictError) as exc_info:
            await Resolver(reg).resolve([PackageSpec("b", "*"), PackageSpec("c", "*")])

        error = exc_info.value
        assert error.package_name == "a"
        assert any("^1.0.0" in r and "b@1.0.0" in r for r in error.ranges)
        assert any("^2.0.0" in r and "c@1.0.0" in r for r in error.ranges)


@pytest.mark.unit
class TestResolverGraphShapes:
    """Diamonds, cycles and version replacement."""

    @pytest.mark.asyncio
    async def test_diamond_is_deduplicated(self) -> None:
        reg = InMemoryRegistry()
        reg.publish("shared", "1.0.0")
        reg.publish("shared", "1.2.0")
        reg.publish("left", "1.0.0", dependencies={"shared": "^1.0.0"})
        reg.publish("right", "1.0.0", dependencies={"shared": "^1.1.0"})

        resolver = Resolver(reg)
        graph = await resolver.resolve([PackageSpec("left", "*"), PackageSpec("right", "*")])

        assert graph.versions() == {"left": "1.0.0", "right": "1.0.0", "shared": "1.2.0"}
        assert resolver.last_stats is not None
        assert resolver.last_stats.dedup_hits == 1
        assert resolver.last_stats.replacements == 0

    @pytest.mark.asyncio
    async def test_cycle_terminates(self) -> None:
        reg = InMemoryRegistry()
        reg.publish("ping", "1.0.0", dependencies={"pong": "^1.0.0"})
        reg.publish("pong", "1.0.0", dependencies={"ping": "^1.0.0"})

        graph = await Resolver(reg).resolve([PackageSpec("ping", "^1.0.0")])

        assert graph.versions() == {"ping": "1.0.0", "pong": "1.0.0"}
        _assert_consistent(graph)

    @pytest.mark.asyncio
    async def test_replacement_satisfies_every_range(self) -> None:
        """A later, narrower range swaps the chosen version out."""
        reg = InMemoryRegistry()
        reg.publish("shared", "1.0.0")
        reg.publish("shared", "2.0.0")
        reg.publish("loose", "1.0.0", dependencies={"shared": "*"})
        reg.publish("strict", "1.0.0", dependencies={"shared": "^1.0.0"})

        resolver = Resolver(reg)
        graph = await resolver.resolve([PackageSpec("loose", "*"), PackageSpec("strict", "*")])

        assert graph.versions()["shared"] == "1.0.0"
        assert resolver.last_stats is not None
        assert resolver.last_stats.replacements == 1
        _assert_consistent(graph)

    @pytest.mark.asyncio
    async def test_dependencies_of_replaced_version_are_pruned(self) -> None:
        reg = InMemoryRegistry()
        reg.publish("shared", "1.0.0")
        reg.publish("shared", "2.0.0", dependencies={"extra": "*"})
        reg.publish("extra", "1.0.0")
        reg.publish("loose", "1.0.0", dependencies={"shared": "*"})
        reg.publish("middle", "1.0.0", dependencies={"shared": "^1.0.0"})
        reg.publish("strict", "1.0.0", dependencies={"middle": "*"})

        resolver = Resolver(reg)
        graph = await resolver.resolve([PackageSpec("loose", "*"), PackageSpec("strict", "*")])

        assert "extra" not in graph
        assert graph.versions()["shared"] == "1.0.0"
        assert resolver.last_stats is not None
        assert resolver.last_stats.pruned == 1
        _assert_consistent(graph)

    @pytest.mark.asyncio
    async def test_stale_requirements_are_ignored(self) -> None:
        """Ranges from a replaced node no longer constrain anything."""
        reg = InMemoryRegistry()
        reg.publish("lib", "1.0.0", dependencies={"dep": "^1.0.0"})
        reg.publish("lib", "2.0.0", dependencies={"dep": "^2.0.0"})
        reg.publish("dep", "1.0.0")
        reg.publish("dep", "2.0.0")
        reg.publish("pin", "1.0.0", dependencies={"lib": "^1.0.0"})

        graph = await Resolver(reg).resolve([PackageSpec("lib", "*"), PackageSpec("pin", "*")])

        assert graph.versions() == {"dep": "1.0.0", "lib": "1.0.0", "pin": "1.0.0"}
        _assert_consistent(graph)


@pytest.mark.integration
class TestResolverDeterminism:
    """Identical inputs produce identical graphs."""

    @pytest.mark.asyncio
    async def test_two_runs_serialize_identically(self, registry: InMemoryRegistry) -> None:
        roots = [PackageSpec("app-lib", "^1.0.0"), PackageSpec("left-pad", "^1.0.0")]

        first = await Resolver(registry).resolve(roots)
        second = await Resolver(registry).resolve(roots)

        assert save(first) == save(second)
