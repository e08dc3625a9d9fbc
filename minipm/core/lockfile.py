"""Lockfile serialization for minipm.

A lockfile pins an exact :class:`~minipm.models.graph.DependencyGraph`
so later installs can skip resolution entirely. The format is JSON::

    {
      "lockfileVersion": 1,
      "root": {"left-pad": "^1.0.0"},
      "packages": [
        {
          "name": "left-pad",
          "version": "1.1.0",
          "resolved": "https://registry.npmjs.org/left-pad/-/left-pad-1.1.0.tgz",
          "integrity": "sha512-...",
          "dependencies": {}
        }
      ]
    }

``root`` keeps manifest order; ``packages`` is sorted by name then
version, and each entry's ``dependencies`` keep their declared order.
Serializing the same graph always produces the same bytes.
"""

from __future__ import annotations

import json
from pathlib import Path
from typing import Any, Dict, List, Mapping, Sequence, Union

from minipm.utils.logger import get_logger
from minipm.constants import LOCKFILE_VERSION
from minipm.models.spec import PackageSpec, validate_name
from minipm.core.constraints import parse_version
from minipm.models.graph import DependencyGraph, ResolvedNode
from minipm.utils.filesystem import safe_read_bytes, safe_write_bytes
from minipm.exceptions import InvalidRangeError, SchemaError

logger = get_logger("lockfile")

__all__ = [
    "save",
    "load",
    "read_lockfile",
    "write_lockfile",
    "is_lockfile_current",
]


def _node_entry(node: ResolvedNode) -> Dict[str, Any]:
    return {
        "name": node.name,
        "version": str(node.version),
        "resolved": node.source_url,
        "integrity": node.integrity,
        "dependencies": {dep.name: dep.range for dep in node.dependencies},
    }


def save(graph: DependencyGraph) -> bytes:
    """Serialize ``graph`` to canonical lockfile bytes."""
    document = {
        "lockfileVersion": LOCKFILE_VERSION,
        "root": {spec.name: spec.range for spec in graph.roots},
        "packages": [_node_entry(node) for node in graph.sorted_nodes()],
    }
    return (json.dumps(document, indent=2, ensure_ascii=False) + "\n").encode("utf-8")


def _require(condition: bool, message: str) -> None:
    if not condition:
        raise SchemaError(f"Malformed lockfile: {message}", expected=LOCKFILE_VERSION)


def _specs(mapping: Any, where: str) -> List[PackageSpec]:
    _require(isinstance(mapping, Mapping), f"{where} must be an object")
    specs = []
    for name, range_ in mapping.items():
        _require(isinstance(range_, str), f"{where}.{name} must be a string")
        try:
            specs.append(PackageSpec(validate_name(name), range_))
        except InvalidRangeError as exc:
            raise SchemaError(
                f"Malformed lockfile: {where} has invalid name {name!r}",
                expected=LOCKFILE_VERSION,
            ) from exc
    return specs


def _parse_entry(entry: Any, index: int) -> ResolvedNode:
    where = f"packages[{index}]"
    _require(isinstance(entry, Mapping), f"{where} must be an object")

    name = entry.get("name")
    version = entry.get("version")
    resolved = entry.get("resolved", "")
    integrity = entry.get("integrity")

    _require(isinstance(name, str) and bool(name), f"{where}.name is missing")
    _require(isinstance(version, str), f"{where}.version is missing")
    _require(isinstance(resolved, str), f"{where}.resolved must be a string")
    _require(
        integrity is None or isinstance(integrity, str),
        f"{where}.integrity must be a string or null",
    )

    try:
        validate_name(name)
        parsed = parse_version(version)
    except InvalidRangeError as exc:
        raise SchemaError(
            f"Malformed lockfile: {where} ({name}@{version}) is not a valid package",
            expected=LOCKFILE_VERSION,
        ) from exc

    return ResolvedNode(
        name=name,
        version=parsed,
        dependencies=tuple(_specs(entry.get("dependencies", {}), f"{where}.dependencies")),
        integrity=integrity,
        source_url=resolved,
    )


def load(data: Union[bytes, str]) -> DependencyGraph:
    """Rebuild a graph from lockfile bytes without contacting a registry.

    Raises:
        SchemaError: Unknown ``lockfileVersion`` or malformed content.
    """
    try:
        document = json.loads(data)
    except (ValueError, UnicodeDecodeError) as exc:
        raise SchemaError(
            f"Lockfile is not valid JSON: {exc}", expected=LOCKFILE_VERSION
        ) from exc

    _require(isinstance(document, Mapping), "top level must be an object")

    found = document.get("lockfileVersion")
    if found != LOCKFILE_VERSION or isinstance(found, bool):
        raise SchemaError(
            f"Unsupported lockfileVersion: {found!r} (expected {LOCKFILE_VERSION})",
            found=found,
            expected=LOCKFILE_VERSION,
        )

    roots = _specs(document.get("root", {}), "root")
    packages = document.get("packages", [])
    _require(isinstance(packages, list), "packages must be a list")

    nodes = [_parse_entry(entry, i) for i, entry in enumerate(packages)]
    names = [node.name for node in nodes]
    _require(len(names) == len(set(names)), "a package name appears more than once")
    missing = [spec.name for spec in roots if spec.name not in names]
    _require(not missing, "root entries without a package: " + ", ".join(missing))

    return DependencyGraph.from_nodes(roots, nodes)


def read_lockfile(path: Union[str, Path]) -> DependencyGraph:
    """Load the lockfile at ``path``."""
    graph = load(safe_read_bytes(path))
    logger.debug("Loaded lockfile %s (%d packages)", path, len(graph))
    return graph


def write_lockfile(path: Union[str, Path], graph: DependencyGraph) -> None:
    """Atomically write ``graph`` to ``path``."""
    safe_write_bytes(path, save(graph))
    logger.debug("Wrote lockfile %s (%d packages)", path, len(graph))


def is_lockfile_current(graph: DependencyGraph, root_specs: Sequence[PackageSpec]) -> bool:
    """``True`` when the locked roots are exactly the manifest's requirements."""
    locked = {spec.name: spec.range for spec in graph.roots}
    wanted = {spec.name: spec.range for spec in root_specs}
    return locked == wanted
