"""Tests for the npm runner and client operations."""

import json
import os
import subprocess
import sys
from unittest.mock import patch

import pytest

from common.exceptions import DepsyncError
from common.outcome import Outcome, OutcomeKind
from portability.cache import PortabilityCache
from portability.stamp import RebuildStampStore
from registry.npm.client import (
    NpmClient,
    classify_install_failure,
    find_paths_with_colons,
    install_arg,
)
from registry.npm.runner import DEFAULT_USERCONFIG, NpmResult, NpmRunner

from npm_fakes import RUNTIME, FakeNpmRunner

STAMP = ".depsync-last-rebuild-version.json"


def _client(runner, probe=None):
    return NpmClient(
        runner,
        PortabilityCache(),
        RebuildStampStore(RUNTIME),
        probe=probe or Outcome.ok,
    )


class TestNpmRunner:
    def test_sets_userconfig_and_reports_success(self, tmp_path):
        completed = subprocess.CompletedProcess(args=[], returncode=0, stdout="ok", stderr="")
        with patch("registry.npm.runner.subprocess.run", return_value=completed) as run:
            result = NpmRunner(npm_path="/usr/bin/npm", env={}).run(["ls"], cwd=str(tmp_path))
        assert result == NpmResult(success=True, stdout="ok", stderr="", error="")
        cmd = run.call_args[0][0]
        kwargs = run.call_args[1]
        assert cmd == ["/usr/bin/npm", "ls"]
        assert kwargs["cwd"] == str(tmp_path)
        assert kwargs["env"]["npm_config_userconfig"] == DEFAULT_USERCONFIG

    def test_default_userconfig_ships_with_package(self):
        assert os.path.isfile(DEFAULT_USERCONFIG)

    def test_failure_includes_stderr(self):
        completed = subprocess.CompletedProcess(args=[], returncode=1, stdout="", stderr="E404")
        with patch("registry.npm.runner.subprocess.run", return_value=completed):
            result = NpmRunner(env={}).run(["install", "x@1"])
        assert not result.success
        assert result.error.endswith("E404")
        assert "exit code 1" in result.error

    def test_output_over_buffer_fails(self):
        completed = subprocess.CompletedProcess(args=[], returncode=0, stdout="x" * 20, stderr="")
        with patch("registry.npm.runner.subprocess.run", return_value=completed):
            result = NpmRunner(max_buffer=10, env={}).run(["ls"])
        assert not result.success
        assert len(result.stdout) == 10

    def test_buffer_limit_counts_bytes(self):
        # Six characters, twelve UTF-8 bytes.
        completed = subprocess.CompletedProcess(args=[], returncode=0, stdout="é" * 6, stderr="")
        with patch("registry.npm.runner.subprocess.run", return_value=completed):
            result = NpmRunner(max_buffer=10, env={}).run(["ls"])
        assert not result.success
        assert result.stdout == "é" * 5

    def test_undecodable_output_is_replaced(self):
        script = "import sys; sys.stdout.buffer.write(b'ok \\xff')"
        result = NpmRunner(npm_path=sys.executable).run(["-c", script])
        assert result.success
        assert result.stdout == "ok \ufffd"

    def test_missing_executable(self):
        with patch("registry.npm.runner.subprocess.run", side_effect=FileNotFoundError("npm")):
            result = NpmRunner(env={}).run(["ls"])
        assert not result.success
        assert "npm" in result.error


class TestHelpers:
    def test_install_arg(self):
        assert install_arg("a", "1.0.0") == "a@1.0.0"
        assert install_arg("a", "https://example.com/a.tgz") == "https://example.com/a.tgz"

    @pytest.mark.parametrize("stderr,expected", [
        ("npm ERR! 404 'nope' is not in the npm registry.", "there is no npm package named 'nope'"),
        ("npm ERR! 404 Not Found - GET https://registry.npmjs.org/nope - Not found",
         "there is no npm package named 'nope'"),
        ("npm ERR! version not found: nope@9.9.9", "nope version 9.9.9 is not available in the npm registry"),
        ("npm ERR! notarget No matching version found for nope@9.9.9.",
         "nope version 9.9.9 is not available in the npm registry"),
    ])
    def test_classify_known_failures(self, stderr, expected):
        result = NpmResult(success=False, stderr=stderr, error=stderr)
        assert classify_install_failure("nope", "9.9.9", result) == expected

    def test_classify_other_failure(self):
        result = NpmResult(success=False, stderr="EACCES", error="EACCES")
        assert classify_install_failure("a", "1.0.0", result) == "couldn't install npm package a@1.0.0: EACCES"

    def test_find_paths_with_colons(self, tmp_path):
        (tmp_path / "pkg" / "a:b").mkdir(parents=True)
        (tmp_path / "pkg" / "ok.js").write_text("")
        (tmp_path / "pkg" / "c:d.js").write_text("")
        assert find_paths_with_colons(str(tmp_path)) == [
            os.path.join("pkg", "a:b"),
            os.path.join("pkg", "c:d.js"),
        ]


class TestInstallModule:
    def test_success_stamps_native_package(self, tmp_path):
        (tmp_path / "node_modules").mkdir()
        runner = FakeNpmRunner(files={"native": {"build/addon.node": ""}})
        outcome = _client(runner).install_module("native", "1.0.0", str(tmp_path))
        assert outcome.is_ok
        assert runner.calls == [(["install", "native@1.0.0"], str(tmp_path))]
        assert (tmp_path / "node_modules" / "native" / STAMP).exists()

    def test_portable_package_not_stamped(self, tmp_path):
        (tmp_path / "node_modules").mkdir()
        outcome = _client(FakeNpmRunner()).install_module("pure", "1.0.0", str(tmp_path))
        assert outcome.is_ok
        assert not (tmp_path / "node_modules" / "pure" / STAMP).exists()

    def test_not_connected_skips_npm(self, tmp_path):
        runner = FakeNpmRunner()
        outcome = _client(runner, probe=lambda: Outcome.recoverable("offline")).install_module(
            "a", "1.0.0", str(tmp_path)
        )
        assert outcome == Outcome(OutcomeKind.RECOVERABLE, "offline")
        assert runner.calls == []

    def test_unknown_package(self, tmp_path):
        runner = FakeNpmRunner(failures={"nope": "404 'nope' is not in the npm registry"})
        outcome = _client(runner).install_module("nope", "1.0.0", str(tmp_path))
        assert outcome.kind is OutcomeKind.RECOVERABLE
        assert outcome.message == "there is no npm package named 'nope'"

    @pytest.mark.skipif(sys.platform == "win32", reason="colon check only runs off Windows")
    def test_colon_filenames_are_recoverable(self, tmp_path):
        (tmp_path / "node_modules").mkdir()
        runner = FakeNpmRunner(files={"bad": {"lib/a:b.js": ""}})
        outcome = _client(runner).install_module("bad", "1.0.0", str(tmp_path))
        assert outcome.kind is OutcomeKind.RECOVERABLE
        assert "have colons" in outcome.message
        assert os.path.join("bad", "lib", "a:b.js") in outcome.message


class TestInstallFromLock:
    def _write_lock(self, root, deps):
        with open(os.path.join(root, "npm-shrinkwrap.json"), "w") as f:
            json.dump({"dependencies": deps}, f)

    def test_requires_lock_file(self, tmp_path):
        with pytest.raises(DepsyncError):
            _client(FakeNpmRunner()).install_from_lock(str(tmp_path))

    def test_installs_and_removes_placeholder(self, tmp_path):
        self._write_lock(str(tmp_path), {"a": {"version": "1.0.0"}, "n": {"version": "2.0.0"}})
        runner = FakeNpmRunner(files={"n": {"n.node": ""}})
        outcome = _client(runner).install_from_lock(str(tmp_path))
        assert outcome.is_ok
        assert runner.calls == [(["install"], str(tmp_path))]
        assert not (tmp_path / "package.json").exists()
        assert (tmp_path / "node_modules" / "n" / STAMP).exists()
        assert not (tmp_path / "node_modules" / "a" / STAMP).exists()

    def test_keeps_existing_package_json(self, tmp_path):
        self._write_lock(str(tmp_path), {"a": {"version": "1.0.0"}})
        (tmp_path / "package.json").write_text('{"name": "mine"}')
        assert _client(FakeNpmRunner()).install_from_lock(str(tmp_path)).is_ok
        assert (tmp_path / "package.json").read_text() == '{"name": "mine"}'

    def test_failure_is_recoverable(self, tmp_path):
        self._write_lock(str(tmp_path), {"a": {"version": "1.0.0"}})
        outcome = _client(FakeNpmRunner(failures={"a": "ETARGET"})).install_from_lock(str(tmp_path))
        assert outcome.kind is OutcomeKind.RECOVERABLE
        assert "ETARGET" in outcome.message
        assert not (tmp_path / "package.json").exists()


class TestProdPackageNames:
    def test_flattens_tree(self, tmp_path):
        nm = tmp_path / "node_modules"
        nm.mkdir()
        (tmp_path / "package.json").write_text("{}")
        listing = {"dependencies": {"a": {"dependencies": {"b": {}}}, "c": {}}}
        runner = NpmRunner(env={})
        with patch.object(runner, "run", return_value=NpmResult(success=False, stdout=json.dumps(listing))) as run:
            names = _client(runner).get_prod_package_names(str(nm))
        assert names == {"a", "b", "c"}
        assert run.call_args[0][0] == ["ls", "--json", "--production"]

    def test_no_production_flag_without_package_json(self, tmp_path):
        nm = tmp_path / "node_modules"
        nm.mkdir()
        runner = NpmRunner(env={})
        with patch.object(runner, "run", return_value=NpmResult(success=True, stdout="{}")) as run:
            assert _client(runner).get_prod_package_names(str(nm)) == set()
        assert run.call_args[0][0] == ["ls", "--json"]

    def test_unparseable_output(self, tmp_path):
        runner = NpmRunner(env={})
        with patch.object(runner, "run", return_value=NpmResult(success=False, stdout="", error="boom")):
            assert _client(runner).get_prod_package_names(str(tmp_path)) == set()
        with patch.object(runner, "run", return_value=NpmResult(success=False, stdout="<html>", error="boom")):
            with pytest.raises(DepsyncError):
                _client(runner).get_prod_package_names(str(tmp_path))
