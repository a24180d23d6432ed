"""
Tests for unit pools and YAML unit metadata files.
"""

from __future__ import annotations

import textwrap
from pathlib import Path

import pytest

from builders import req, unit
from provisioning.core.models import Version, VersionRange
from provisioning.core.repository import (
    CompositeUnitPool,
    MemoryUnitPool,
    MetadataError,
    load_pool,
    load_units,
)

# ── Pools ────────────────────────────────────────────────────────────


class TestMemoryUnitPool:
    def test_duplicates_collapse(self):
        pool = MemoryUnitPool([unit("a"), unit("a", "1.0"), unit("a", "2.0")])
        assert len(pool) == 2

    def test_providers_highest_first(self):
        pool = MemoryUnitPool([unit("a", "1.0"), unit("a", "3.0"), unit("a", "2.0"), unit("b")])
        found = pool.providers_of(req("a", "[1.0,3.0)"))
        assert [str(u.version) for u in found] == ["2.0.0", "1.0.0"]

    def test_by_id_with_range(self):
        pool = MemoryUnitPool([unit("a", "1.0"), unit("a", "2.0"), unit("a", "3.0")])
        assert [u.version for u in pool.by_id("a")] == [
            Version(3), Version(2), Version(1),
        ]
        assert pool.by_id("a", VersionRange.exact("2.0")) == [unit("a", "2.0")]
        assert pool.by_id("missing") == []

    def test_query_predicate(self):
        pool = MemoryUnitPool([unit("a"), unit("b", singleton=True)])
        assert pool.query(lambda u: u.singleton) == [unit("b")]


class TestCompositeUnitPool:
    def test_union_first_wins(self):
        first = MemoryUnitPool([unit("a", "1.0", singleton=True)])
        second = MemoryUnitPool([unit("a", "1.0"), unit("b")])
        pool = CompositeUnitPool([first, second])
        units = {u.id: u for u in pool.all_units()}
        assert set(units) == {"a", "b"}
        assert units["a"].singleton


# ── Metadata files ───────────────────────────────────────────────────


def _write(path: Path, text: str) -> Path:
    path.write_text(textwrap.dedent(text), encoding="utf-8")
    return path


class TestLoadUnits:
    def test_full_unit(self, tmp_path: Path):
        path = _write(tmp_path / "units.yml", """\
            units:
              - id: org.example.editor
                version: 1.2.0
                singleton: true
                requires:
                  - name: org.example.runtime
                    range: "[1.0.0,2.0.0)"
                  - namespace: java.package
                    name: org.example.api
                    optional: true
                provides:
                  - namespace: java.package
                    name: org.example.editor.api
                    version: 1.2.0
                artifacts: [editor.jar]
                touchpoint:
                  install:
                    - kind: native.copy_artifact
                      params: {artifact: editor.jar, target: plugins/editor.jar}
            """)
        (editor,) = load_units(path)
        assert editor.key == "org.example.editor/1.2.0"
        assert editor.singleton
        assert editor.satisfies(req("org.example.editor", "[1.0,2.0)"))
        assert editor.requires[0].range.includes(Version.parse("1.5"))
        assert editor.requires[1].optional
        assert editor.artifacts == ("editor.jar",)
        (instr,) = editor.instructions("install")
        assert instr.kind == "native.copy_artifact"
        assert instr.params["target"] == "plugins/editor.jar"

    def test_unquoted_decimal_versions_keep_their_digits(self, tmp_path: Path):
        path = _write(tmp_path / "units.yml", """\
            units:
              - id: a
                version: 1.10
                requires:
                  - name: b
                    range: 1.10
                provides:
                  - namespace: java.package
                    name: a.api
                    version: 2.1
              - id: b
                version: 1.9
            """)
        a, b = load_units(path)
        assert a.version == Version(1, 10)
        assert a.key == "a/1.10.0"
        assert a.requires[0].range == VersionRange.parse("1.10.0")
        assert not b.satisfies(a.requires[0])
        assert a.provides[0].version == Version(2, 1)
        assert b.version == Version(1, 9)

    def test_integer_version(self, tmp_path: Path):
        path = _write(tmp_path / "units.yml", """\
            units:
              - id: a
                version: 3
                singleton: true
            """)
        (a,) = load_units(path)
        assert a.version == Version(3)
        assert a.singleton is True

    def test_empty_file(self, tmp_path: Path):
        assert load_units(_write(tmp_path / "units.yml", "")) == []

    def test_missing_file(self, tmp_path: Path):
        with pytest.raises(MetadataError, match="not found"):
            load_units(tmp_path / "nope.yml")

    def test_bad_yaml(self, tmp_path: Path):
        with pytest.raises(MetadataError, match="Invalid YAML"):
            load_units(_write(tmp_path / "units.yml", "units: [\n"))

    def test_wrong_shape(self, tmp_path: Path):
        with pytest.raises(MetadataError):
            load_units(_write(tmp_path / "units.yml", "- just a list\n"))

    def test_invalid_unit(self, tmp_path: Path):
        path = _write(tmp_path / "units.yml", """\
            units:
              - version: 1.0
            """)
        with pytest.raises(MetadataError, match="Invalid unit #0"):
            load_units(path)

    def test_load_pool_from_several_files(self, tmp_path: Path):
        one = _write(tmp_path / "one.yml", "units:\n  - {id: a, version: 1.0}\n")
        two = _write(tmp_path / "two.yml", "units:\n  - {id: b, version: 1.0}\n")
        pool = load_pool([one, two])
        assert sorted(u.id for u in pool.all_units()) == ["a", "b"]
