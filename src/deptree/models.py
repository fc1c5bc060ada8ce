"""Data models for dependency trees.

The same shape describes three things: the tree actually installed under
``node_modules``, the persisted ``npm-shrinkwrap.json`` lock tree, and the
tree synthesized from a desired dependency spec.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Dict, Mapping, Optional

# Desired dependencies: package name -> version requirement or source URL.
DependencySpec = Mapping[str, str]


@dataclass
class DependencyNode:
    """One installed (or locked) package and the packages nested under it."""

    version: Optional[str] = None
    resolved: Optional[str] = None
    from_: Optional[str] = None
    dependencies: Dict[str, "DependencyNode"] = field(default_factory=dict)

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "DependencyNode":
        deps = data.get("dependencies") or {}
        return cls(
            version=data.get("version"),
            resolved=data.get("resolved"),
            from_=data.get("from"),
            dependencies={
                name: cls.from_dict(child)
                for name, child in deps.items()
                if isinstance(child, Mapping)
            },
        )

    def to_dict(self) -> Dict[str, Any]:
        out: Dict[str, Any] = {"version": self.version}
        if self.resolved:
            out["resolved"] = self.resolved
        if self.from_:
            out["from"] = self.from_
        if self.dependencies:
            out["dependencies"] = {
                name: child.to_dict() for name, child in self.dependencies.items()
            }
        return out


@dataclass
class DependencyTree:
    """Root of a dependency tree.

    ``extra`` keeps top-level keys other than ``dependencies`` (for example
    ``name`` or ``lockfileVersion`` in a lock file) so a lock read from disk
    can be written back without losing them.
    """

    dependencies: Dict[str, DependencyNode] = field(default_factory=dict)
    extra: Dict[str, Any] = field(default_factory=dict)

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "DependencyTree":
        deps = data.get("dependencies") or {}
        return cls(
            dependencies={
                name: DependencyNode.from_dict(node)
                for name, node in deps.items()
                if isinstance(node, Mapping)
            },
            extra={k: v for k, v in data.items() if k != "dependencies"},
        )

    @classmethod
    def from_spec(cls, spec: DependencySpec) -> "DependencyTree":
        """Build a flat tree with one ``{version}`` node per desired entry."""
        return cls(
            dependencies={name: DependencyNode(version=version) for name, version in spec.items()}
        )

    def to_dict(self) -> Dict[str, Any]:
        out: Dict[str, Any] = dict(self.extra)
        out["dependencies"] = {
            name: node.to_dict() for name, node in self.dependencies.items()
        }
        return out

    def is_empty(self) -> bool:
        return not self.dependencies
