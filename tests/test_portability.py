"""Tests for portability detection and its marker-file cache."""

import os
import shutil

import pytest

from portability.cache import PortabilityCache

from npm_fakes import write_package

MARKER = ".depsync-portable"


@pytest.fixture
def cache():
    return PortabilityCache()


def test_text_only_package_is_portable(tmp_path, cache):
    pkg = tmp_path / "node_modules" / "pure"
    write_package(str(pkg), "pure", "1.0.0", files={"index.js": "module.exports = 1;", "lib/a.js": ""})

    assert cache.is_portable(str(pkg)) is True
    assert (pkg / MARKER).read_text() == "true\n"


def test_native_package_is_cached_without_rescan(tmp_path, cache):
    pkg = tmp_path / "node_modules" / "native"
    write_package(str(pkg), "native", "1.0.0", files={"build/Release/addon.node": "\x7fELF"})

    assert cache.is_portable(str(pkg)) is False
    assert (pkg / MARKER).read_text() == "false\n"

    # Remove the binary behind the cache's back; the stale marker still wins.
    shutil.rmtree(str(pkg / "build"))
    assert cache.is_portable(str(pkg)) is False


def test_nested_native_dependency_makes_parent_non_portable(tmp_path, cache):
    nm = tmp_path / "node_modules"
    write_package(str(nm / "outer"), "outer", "1.0.0")
    write_package(
        str(nm / "outer" / "node_modules" / "inner"), "inner", "1.0.0",
        files={"binding.node": ""},
    )
    assert cache.is_portable(str(nm / "outer")) is False


def test_dot_entries_are_ignored(tmp_path, cache):
    pkg = tmp_path / "pkg"
    write_package(str(pkg), "pkg", "1.0.0", files={".hidden/evil.node": ""})
    assert cache.is_portable(str(pkg)) is True


def test_unparseable_marker_is_recomputed(tmp_path, cache):
    pkg = tmp_path / "pkg"
    write_package(str(pkg), "pkg", "1.0.0", files={"x.node": ""})
    (pkg / MARKER).write_text("garbage")
    assert cache.is_portable(str(pkg)) is False
    assert (pkg / MARKER).read_text() == "false\n"


def test_non_boolean_marker_is_recomputed(tmp_path, cache):
    pkg = tmp_path / "pkg"
    write_package(str(pkg), "pkg", "1.0.0")
    (pkg / MARKER).write_text('"yes"\n')
    assert cache.is_portable(str(pkg)) is True
    assert (pkg / MARKER).read_text() == "true\n"


def test_stale_marker_removed_without_manifest(tmp_path, cache):
    d = tmp_path / "loose"
    d.mkdir()
    (d / "a.node").write_text("")
    (d / MARKER).write_text("true\n")

    assert cache.is_portable(str(d)) is False
    assert not (d / MARKER).exists()


def test_marker_write_failure_is_ignored(tmp_path, cache, monkeypatch):
    pkg = tmp_path / "pkg"
    write_package(str(pkg), "pkg", "1.0.0")
    real_open = open

    def failing_open(path, mode="r", *args, **kwargs):
        if str(path).endswith(MARKER) and "w" in mode:
            raise PermissionError("read-only file system")
        return real_open(path, mode, *args, **kwargs)

    monkeypatch.setattr("builtins.open", failing_open)
    assert cache.is_portable(str(pkg)) is True
    assert not (pkg / MARKER).exists()


def test_plain_files(tmp_path, cache):
    js = tmp_path / "index.js"
    js.write_text("")
    node = tmp_path / "addon.node"
    node.write_text("")
    assert cache.is_portable(str(js)) is True
    assert cache.is_portable(str(node)) is False


def test_symlink_is_not_followed(tmp_path, cache):
    native = tmp_path / "native"
    write_package(str(native), "native", "1.0.0", files={"a.node": ""})
    pkg = tmp_path / "pkg"
    write_package(str(pkg), "pkg", "1.0.0")
    os.symlink(str(native), str(pkg / "linked"))
    assert cache.is_portable(str(pkg)) is True


class TestDependenciesArePortable:
    def test_all_portable(self, tmp_path, cache):
        nm = tmp_path / "node_modules"
        write_package(str(nm / "a"), "a", "1.0.0")
        write_package(str(nm / "b"), "b", "1.0.0")
        assert cache.dependencies_are_portable(str(nm)) is True
        assert (nm / "a" / MARKER).exists()
        assert not (nm / MARKER).exists()

    def test_one_native(self, tmp_path, cache):
        nm = tmp_path / "node_modules"
        write_package(str(nm / "a"), "a", "1.0.0")
        write_package(str(nm / "b"), "b", "1.0.0", files={"b.node": ""})
        assert cache.dependencies_are_portable(str(nm)) is False

    def test_rejects_wrong_directory_name(self, tmp_path, cache):
        with pytest.raises(ValueError, match="Bad node_modules directory"):
            cache.dependencies_are_portable(str(tmp_path))
