from __future__ import annotations

import json
from pathlib import Path

import pytest
from semantic_version import Version

from minipm.exceptions import FileOperationError, SchemaError
from minipm.models import DependencyGraph, PackageSpec, ResolvedNode
from minipm.core.lockfile import (
    is_lockfile_current,
    load,
    read_lockfile,
    save,
    write_lockfile,
)


@pytest.fixture
def graph() -> DependencyGraph:
    """Two-package graph whose nodes are deliberately given out of order."""
    util = ResolvedNode(
        name="util",
        version=Version("0.3.4"),
        integrity="sha512-util",
        source_url="https://registry.npmjs.org/util/-/util-0.3.4.tgz",
    )
    app = ResolvedNode(
        name="app-lib",
        version=Version("1.0.0"),
        dependencies=(PackageSpec("util", "~0.3.0"), PackageSpec("left-pad", "^1")),
        integrity="sha512-app",
        source_url="https://registry.npmjs.org/app-lib/-/app-lib-1.0.0.tgz",
    )
    pad = ResolvedNode(
        name="left-pad",
        version=Version("1.1.0"),
        integrity=None,
        source_url="https://registry.npmjs.org/left-pad/-/left-pad-1.1.0.tgz",
    )
    return DependencyGraph.from_nodes(
        [PackageSpec("left-pad", "^1.0.0"), PackageSpec("app-lib", "*")],
        [util, app, pad],
    )


@pytest.mark.unit
class TestSave:
    """Tests for lockfile.save."""

    def test_document_layout(self, graph: DependencyGraph) -> None:
        document = json.loads(save(graph))

        assert document["lockfileVersion"] == 1
        assert list(document["root"].items()) == [("left-pad", "^1.0.0"), ("app-lib", "*")]
        assert [p["name"] for p in document["packages"]] == ["app-lib", "left-pad", "util"]

    def test_entry_fields(self, graph: DependencyGraph) -> None:
        entry = json.loads(save(graph))["packages"][0]

        assert entry == {
            "name": "app-lib",
            "version": "1.0.0",
            "resolved": "https://registry.npmjs.org/app-lib/-/app-lib-1.0.0.tgz",
            "integrity": "sha512-app",
            "dependencies": {"util": "~0.3.0", "left-pad": "^1"},
        }

    def test_dependency_order_is_preserved(self, graph: DependencyGraph) -> None:
        entry = json.loads(save(graph))["packages"][0]

        assert list(entry["dependencies"]) == ["util", "left-pad"]

    def test_formatting(self, graph: DependencyGraph) -> None:
        data = save(graph)

        assert data.endswith(b"}\n")
        assert data.startswith(b'{\n  "lockfileVersion": 1,')

    def test_deterministic(self, graph: DependencyGraph) -> None:
        shuffled = DependencyGraph.from_nodes(graph.roots, reversed(list(graph.nodes.values())))

        assert save(graph) == save(shuffled)


@pytest.mark.unit
class TestLoad:
    """Tests for lockfile.load."""

    def test_round_trip(self, graph: DependencyGraph) -> None:
        loaded = load(save(graph))

        assert loaded == graph
        assert save(loaded) == save(graph)

    def test_accepts_text(self, graph: DependencyGraph) -> None:
        assert load(save(graph).decode("utf-8")) == graph

    @pytest.mark.parametrize("version", [None, 0, 2, "1", True])
    def test_unsupported_version(self, version: object) -> None:
        document = {"root": {}, "packages": []}
        if version is not None:
            document["lockfileVersion"] = version

        with pytest.raises(SchemaError) as exc_info:
            load(json.dumps(document))

        assert exc_info.value.expected == 1

    @pytest.mark.parametrize(
        "content",
        [
            "not json",
            "[]",
            '{"lockfileVersion": 1, "packages": {}}',
            '{"lockfileVersion": 1, "packages": [42]}',
            '{"lockfileVersion": 1, "packages": [{"name": "x"}]}',
            '{"lockfileVersion": 1, "packages": [{"name": "x", "version": "one"}]}',
            '{"lockfileVersion": 1, "packages": [{"name": "../x", "version": "1.0.0"}]}',
            '{"lockfileVersion": 1, "root": {"x": 1}, "packages": []}',
            '{"lockfileVersion": 1, "root": {"x": "*"}, "packages": []}',
            (
                '{"lockfileVersion": 1, "packages": ['
                '{"name": "x", "version": "1.0.0"}, {"name": "x", "version": "2.0.0"}]}'
            ),
        ],
    )
    def test_malformed_content(self, content: str) -> None:
        with pytest.raises(SchemaError):
            load(content)

    def test_optional_fields_default(self) -> None:
        loaded = load('{"lockfileVersion": 1, "packages": [{"name": "x", "version": "1.0.0"}]}')
        node = loaded.get("x")

        assert node is not None
        assert node.integrity is None
        assert node.dependencies == ()
        assert node.source_url == ""


@pytest.mark.unit
class TestLockfileFiles:
    """Tests for read_lockfile, write_lockfile and is_lockfile_current."""

    def test_write_then_read(self, tmp_path: Path, graph: DependencyGraph) -> None:
        path = tmp_path / "minipm-lock.json"

        write_lockfile(path, graph)

        assert path.read_bytes() == save(graph)
        assert read_lockfile(path) == graph

    def test_read_missing_file(self, tmp_path: Path) -> None:
        with pytest.raises(FileOperationError):
            read_lockfile(tmp_path / "absent.json")

    def test_current_when_roots_match(self, graph: DependencyGraph) -> None:
        roots = [PackageSpec("app-lib", "*"), PackageSpec("left-pad", "^1.0.0")]

        assert is_lockfile_current(graph, roots)

    def test_stale_when_range_changes(self, graph: DependencyGraph) -> None:
        roots = [PackageSpec("left-pad", "^2.0.0"), PackageSpec("app-lib", "*")]

        assert not is_lockfile_current(graph, roots)

    def test_stale_when_dependency_added(self, graph: DependencyGraph) -> None:
        roots = list(graph.roots) + [PackageSpec("new-dep", "*")]

        assert not is_lockfile_current(graph, roots)
