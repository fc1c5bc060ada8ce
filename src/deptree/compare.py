"""Comparison and minimization primitives for dependency trees.

Trees are compared in a reduced ("minimized") form that keeps only what a
user can express in a dependency spec: one canonical version string per node
plus the nested dependencies. Containment is asymmetric; a tree is a subtree
of another when every key it has is present, recursively, in the other.
"""

from __future__ import annotations

import re
from typing import Any, Callable, Dict, Mapping, Optional

import semantic_version

from constants import Constants
from deptree.models import DependencyNode, DependencySpec, DependencyTree

# Leaf comparison policy for is_subtree_of. Returning anything but a bool
# counts as "not equivalent".
Equivalence = Callable[[Any, Any], Any]

_SOURCE_URL_RE = re.compile(r"^(?:https?|git|git\+ssh|git\+https?)://", re.IGNORECASE)
_SCHEME_RE = re.compile(r"^https?://", re.IGNORECASE)


def is_source_url(value: Optional[str]) -> bool:
    """Return True if ``value`` names a tarball or git location instead of a version."""
    return isinstance(value, str) and bool(_SOURCE_URL_RE.match(value))


def canonical_version(node: DependencyNode) -> Optional[str]:
    """Version as a user would write it in a spec: the source URL or the version."""
    if is_source_url(node.from_):
        return node.from_
    return node.version


def _registry_prefix_re(registry_url: str) -> re.Pattern:
    host_and_path = _SCHEME_RE.sub("", registry_url.strip())
    if not host_and_path.endswith("/"):
        host_and_path += "/"
    return re.compile(r"^https?://" + re.escape(host_and_path), re.IGNORECASE)


def _minimize_node(node: DependencyNode, registry_re: re.Pattern) -> Dict[str, Any]:
    if node.resolved and not registry_re.match(node.resolved):
        # Forks and overrides keep their provenance through comparisons.
        version = node.resolved
    else:
        version = canonical_version(node)

    minimized: Dict[str, Any] = {"version": version}
    if node.dependencies:
        minimized["dependencies"] = {
            name: _minimize_node(child, registry_re)
            for name, child in node.dependencies.items()
        }
    return minimized


def minimize(tree: DependencyTree, registry_url: str = Constants.REGISTRY_URL_NPM) -> Dict[str, Any]:
    """Reduce ``tree`` to ``{"dependencies": {name: {"version", "dependencies"?}}}``.

    The result shares no state with ``tree``.
    """
    registry_re = _registry_prefix_re(registry_url)
    return {
        "dependencies": {
            name: _minimize_node(node, registry_re)
            for name, node in tree.dependencies.items()
        }
    }


def desired_tree(spec: DependencySpec) -> Dict[str, Any]:
    """Minimized tree for a desired dependency spec."""
    return {"dependencies": {name: {"version": version} for name, version in spec.items()}}


def is_subtree_of(subset: Any, superset: Any, equivalence: Optional[Equivalence] = None) -> bool:
    """Return True if ``subset`` is structurally contained in ``superset``.

    Mappings are compared key by key; keys only present in ``superset`` are
    ignored. Leaves are equal values, or values ``equivalence`` accepts.
    """
    if subset is superset:
        return True

    if isinstance(subset, Mapping):
        if not isinstance(superset, Mapping):
            return False
        for key, value in subset.items():
            if key not in superset:
                return False
            if not is_subtree_of(value, superset[key], equivalence):
                return False
        return True

    if type(subset) is type(superset) and subset == superset:
        return True

    if equivalence is not None:
        result = equivalence(subset, superset)
        if isinstance(result, bool):
            return result

    return False


def parse_version(value: str) -> Optional[semantic_version.Version]:
    """Parse a runtime version string such as ``v18.17.1`` or ``v0.10.*``.

    Returns None when the string is not a usable version.
    """
    text = value.strip()
    if text[:1] in ("v", "V"):
        text = text[1:]
    if text.endswith(".*"):
        text = text[:-2]
    if not text:
        return None
    try:
        return semantic_version.Version.coerce(text)
    except ValueError:
        return None


def versions_compatible(a: Any, b: Any) -> bool:
    """Leaf policy treating versions with equal major.minor as equivalent."""
    if a == b:
        return True
    if not a or not b:
        return False
    if not (isinstance(a, str) and isinstance(b, str)):
        return False
    a_ver = parse_version(a)
    b_ver = parse_version(b)
    if a_ver is None or b_ver is None:
        return False
    return a_ver.major == b_ver.major and a_ver.minor == b_ver.minor
