"""In-process stand-in for the npm executable used across tests."""

import json
import os

from registry.npm.runner import NpmResult, NpmRunner
from portability.stamp import RuntimeIdentity

RUNTIME = RuntimeIdentity(
    platform="linux",
    arch="x64",
    versions={"node": "18.17.1", "modules": "108"},
)


def write_package(pkg_dir, name, version, files=None, resolved=None, from_=None):
    """Create an installed package directory with a package.json."""
    os.makedirs(pkg_dir, exist_ok=True)
    manifest = {"name": name, "version": version}
    manifest["_resolved"] = resolved or f"https://registry.npmjs.org/{name}/-/{name}-{version}.tgz"
    if from_:
        manifest["_from"] = from_
    with open(os.path.join(pkg_dir, "package.json"), "w") as f:
        json.dump(manifest, f)
    for rel, content in (files or {}).items():
        path = os.path.join(pkg_dir, rel)
        os.makedirs(os.path.dirname(path), exist_ok=True)
        with open(path, "w") as f:
            f.write(content)


class FakeNpmRunner(NpmRunner):
    """Emulates ``npm install``, ``npm install <arg>`` and ``npm rebuild``.

    Args:
        files: package name -> {relative path: content} added on install.
        failures: package name -> stderr for a failing ``npm install <name>``.
        rebuild_ok: result of ``npm rebuild``.
        raise_on: command word that raises RuntimeError instead of running.
    """

    def __init__(self, files=None, failures=None, rebuild_ok=True, raise_on=None):
        super().__init__(npm_path="npm")
        self.files = files or {}
        self.failures = failures or {}
        self.rebuild_ok = rebuild_ok
        self.raise_on = raise_on
        self.calls = []

    def run(self, args, cwd=None):
        self.calls.append((list(args), cwd))
        if self.raise_on and args and args[0] == self.raise_on:
            raise RuntimeError("simulated crash")
        if args[0] == "install" and len(args) == 2:
            return self._install_one(args[1], cwd)
        if args == ["install"]:
            return self._install_from_lock(cwd)
        if args[0] == "rebuild":
            if self.rebuild_ok:
                return NpmResult(success=True)
            return NpmResult(success=False, stderr="gyp ERR!", error="rebuild failed")
        return NpmResult(success=False, error=f"unsupported: {args}")

    def _install_one(self, arg, cwd):
        if "://" in arg:
            name, version, from_ = arg.rstrip("/").rsplit("/", 1)[-1], "0.0.0-url", arg
        else:
            name, _, version = arg.rpartition("@")
            from_ = None
        if name in self.failures:
            stderr = self.failures[name]
            return NpmResult(success=False, stderr=stderr, error="failed\n" + stderr)
        write_package(
            os.path.join(cwd, "node_modules", name), name, version,
            files=self.files.get(name), from_=from_,
        )
        return NpmResult(success=True)

    def _materialize(self, node_modules, deps):
        for name, node in deps.items():
            pkg_dir = os.path.join(node_modules, name)
            write_package(pkg_dir, name, node["version"], files=self.files.get(name))
            self._materialize(os.path.join(pkg_dir, "node_modules"), node.get("dependencies", {}))

    def _install_from_lock(self, cwd):
        with open(os.path.join(cwd, "npm-shrinkwrap.json")) as f:
            lock = json.load(f)
        for name in lock.get("dependencies", {}):
            if name in self.failures:
                return NpmResult(success=False, error=self.failures[name])
        self._materialize(os.path.join(cwd, "node_modules"), lock.get("dependencies", {}))
        return NpmResult(success=True)

    def commands(self):
        return [args[0] for args, _ in self.calls]
