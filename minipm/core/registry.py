"""Registry clients for minipm.

The resolver talks to a registry through two calls only:

- ``list_versions(name)`` → every published version, ascending.
- ``get_metadata(name, version)`` → dependencies, integrity and tarball
  URL of one version.

:class:`NpmRegistry` implements them over the npm registry protocol: one
``GET {registry}/{name}`` (the *packument*) per package, cached for the
lifetime of the client so that every version lookup after the first is
free. :class:`InMemoryRegistry` serves the same interface from a dict and
is used for offline work and tests.

Typical usage::

    async with HTTPClient() as client:
        registry = NpmRegistry(client)
        versions = await registry.list_versions("left-pad")
        meta = await registry.get_metadata("left-pad", versions[-1])
        print(meta.source_url, meta.integrity)
"""

from __future__ import annotations

import base64
import asyncio
import binascii
from urllib.parse import quote
from dataclasses import dataclass, field
from typing import Any, Dict, List, Mapping, Optional, Protocol, Tuple

from semantic_version import Version

from minipm.constants import DEFAULT_REGISTRY
from minipm.utils.http import HTTPClient
from minipm.utils.logger import get_logger
from minipm.models.spec import PackageSpec, validate_name
from minipm.core.constraints import VersionRange, parse_version
from minipm.exceptions import InvalidRangeError, NetworkError, NotFoundError

logger = get_logger("registry")

__all__ = [
    "InMemoryRegistry",
    "NpmRegistry",
    "PackageMetadata",
    "Packument",
    "RegistryClient",
]


# ---------------------------------------------------------------------------
# Data containers
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class PackageMetadata:
    """Install-relevant metadata of one published version.

    Attributes:
        dependencies: Declared runtime dependencies, in registry order.
        integrity: Subresource-integrity string, or ``None``.
        source_url: Tarball download URL.
    """

    dependencies: Tuple[PackageSpec, ...] = ()
    integrity: Optional[str] = None
    source_url: str = ""


@dataclass
class Packument:
    """Parsed registry document for one package.

    Attributes:
        name: Package name.
        versions: Every parseable version, ascending.
        metadata: Version → :class:`PackageMetadata`.
    """

    name: str
    versions: List[Version] = field(default_factory=list)
    metadata: Dict[Version, PackageMetadata] = field(default_factory=dict)


class RegistryClient(Protocol):
    """Interface the resolver consumes."""

    async def list_versions(self, name: str) -> List[Version]:
        ...

    async def get_metadata(self, name: str, version: Version) -> PackageMetadata:
        ...


# ---------------------------------------------------------------------------
# npm registry
# ---------------------------------------------------------------------------


class NpmRegistry:
    """Async-safe, per-run cache of npm packuments.

    Each package name triggers **at most one** HTTP request. A
    per-name :class:`asyncio.Lock` prevents duplicate fetches when
    several coroutines ask for the same package at once, and a
    semaphore bounds the number of packuments in flight.

    Args:
        http_client: A pre-configured :class:`HTTPClient`.
        registry_url: Base URL of an npm-compatible registry.
        concurrent_limit: Maximum simultaneous packument fetches.
    """

    def __init__(
        self,
        http_client: HTTPClient,
        registry_url: str = DEFAULT_REGISTRY,
        concurrent_limit: int = 10,
    ) -> None:
        self.http_client = http_client
        self.registry_url = registry_url.rstrip("/")
        self._semaphore = asyncio.Semaphore(concurrent_limit)
        self._packuments: Dict[str, Packument] = {}
        self._locks: Dict[str, asyncio.Lock] = {}

    async def get_packument(self, name: str) -> Packument:
        """Fetch (or return cached) packument for ``name``.

        Raises:
            NotFoundError: The registry does not know the package.
            NetworkError: The registry answered with another error.
        """
        if name in self._packuments:
            return self._packuments[name]

        lock = self._locks.setdefault(name, asyncio.Lock())
        async with lock:
            # Another coroutine may have populated while we waited
            if name in self._packuments:
                return self._packuments[name]

            async with self._semaphore:
                data = await self._fetch_packument(name)

            packument = _parse_packument(name, data)
            self._packuments[name] = packument
            logger.debug("Cached %s (%d versions)", name, len(packument.versions))
            return packument

    async def list_versions(self, name: str) -> List[Version]:
        return list((await self.get_packument(name)).versions)

    async def get_metadata(self, name: str, version: Version) -> PackageMetadata:
        packument = await self.get_packument(name)
        try:
            return packument.metadata[version]
        except KeyError:
            raise NotFoundError(
                f"Version {version} of {name} not found",
                package_name=name,
                requested=str(version),
            ) from None

    def packument_url(self, name: str) -> str:
        """Registry URL for ``name``; scoped names keep ``@`` but encode ``/``."""
        return f"{self.registry_url}/{quote(name, safe='@')}"

    async def _fetch_packument(self, name: str) -> Dict[str, Any]:
        url = self.packument_url(name)
        logger.debug("Fetching packument %s", url)
        try:
            return await self.http_client.get_json(url)
        except NetworkError as exc:
            if exc.status_code == 404:
                raise NotFoundError(
                    f"Package not found in registry: {name}",
                    package_name=name,
                ) from exc
            raise


def _parse_packument(name: str, data: Mapping[str, Any]) -> Packument:
    """Turn a raw packument into a :class:`Packument`.

    Versions that are not valid SemVer are skipped, as are dependency
    entries that minipm cannot resolve (``git+…``, ``file:``, aliases).
    """
    packument = Packument(name=name)
    raw_versions = data.get("versions") or {}

    for raw_version, manifest in raw_versions.items():
        try:
            version = parse_version(raw_version)
        except InvalidRangeError:
            logger.debug("Skipping unparseable version %r of %s", raw_version, name)
            continue
        if not isinstance(manifest, Mapping):
            continue

        dist = manifest.get("dist") or {}
        packument.metadata[version] = PackageMetadata(
            dependencies=_parse_dependencies(name, raw_version, manifest),
            integrity=_integrity_from_dist(dist),
            source_url=str(dist.get("tarball") or ""),
        )

    packument.versions = sorted(packument.metadata)
    return packument


def _parse_dependencies(
    name: str,
    version: str,
    manifest: Mapping[str, Any],
) -> Tuple[PackageSpec, ...]:
    deps = manifest.get("dependencies") or {}
    if not isinstance(deps, Mapping):
        return ()

    specs: List[PackageSpec] = []
    for dep_name, dep_range in deps.items():
        try:
            validate_name(dep_name)
            VersionRange.parse(str(dep_range))
        except InvalidRangeError:
            logger.warning(
                "Ignoring unsupported dependency %s@%s of %s@%s",
                dep_name,
                dep_range,
                name,
                version,
            )
            continue
        specs.append(PackageSpec(dep_name, str(dep_range).strip() or "*"))
    return tuple(specs)


def _integrity_from_dist(dist: Mapping[str, Any]) -> Optional[str]:
    """Prefer ``dist.integrity``; derive ``sha1-…`` from ``dist.shasum`` otherwise."""
    integrity = dist.get("integrity")
    if isinstance(integrity, str) and integrity:
        return integrity

    shasum = dist.get("shasum")
    if isinstance(shasum, str) and shasum:
        try:
            digest = binascii.unhexlify(shasum)
        except (binascii.Error, ValueError):
            return None
        return "sha1-" + base64.b64encode(digest).decode("ascii")
    return None


# ---------------------------------------------------------------------------
# In-memory registry
# ---------------------------------------------------------------------------


class InMemoryRegistry:
    """Dictionary-backed registry.

    Example::

        registry = InMemoryRegistry()
        registry.publish("left-pad", "1.1.0", integrity="sha512-…")
        registry.publish("app-lib", "2.0.0", dependencies={"left-pad": "^1.0.0"})
    """

    def __init__(self) -> None:
        self._packages: Dict[str, Dict[Version, PackageMetadata]] = {}
        self.lookups: Dict[str, int] = {}

    def publish(
        self,
        name: str,
        version: str,
        *,
        dependencies: Optional[Mapping[str, str]] = None,
        integrity: Optional[str] = None,
        source_url: Optional[str] = None,
    ) -> None:
        parsed = parse_version(version)
        specs = tuple(
            PackageSpec(dep, rng) for dep, rng in (dependencies or {}).items()
        )
        self._packages.setdefault(name, {})[parsed] = PackageMetadata(
            dependencies=specs,
            integrity=integrity,
            source_url=source_url or f"memory://{name}/-/{name}-{parsed}.tgz",
        )

    async def list_versions(self, name: str) -> List[Version]:
        self.lookups[name] = self.lookups.get(name, 0) + 1
        if name not in self._packages:
            raise NotFoundError(
                f"Package not found in registry: {name}", package_name=name
            )
        return sorted(self._packages[name])

    async def get_metadata(self, name: str, version: Version) -> PackageMetadata:
        try:
            return self._packages[name][version]
        except KeyError:
            raise NotFoundError(
                f"Version {version} of {name} not found",
                package_name=name,
                requested=str(version),
            ) from None
