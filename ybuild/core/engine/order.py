"""
Target ordering — the ``build_after`` graph.

Pure functions, no I/O. ``build_order`` is a depth-first post-order walk:
every target comes after everything it builds after, each target appears
once, and ties keep the order in which targets were first reached.
"""

from __future__ import annotations

from collections.abc import Iterable, Mapping

from ybuild.core.errors import ManifestError
from ybuild.core.models.manifest import Target

_VISITING = 1
_DONE = 2


def validate_graph(after: Mapping[str, Iterable[str]]) -> list[str]:
    """Check that every edge resolves and the graph is acyclic.

    Args:
        after: target name → names it builds after.

    Returns:
        List of error strings (empty = valid).
    """
    errors: list[str] = []
    for name, deps in after.items():
        for dep in deps:
            if dep not in after:
                errors.append(f"target {name!r} builds after unknown target {dep!r}")
    if errors:
        return errors

    state: dict[str, int] = {}
    for name in after:
        cycle = _find_cycle(name, after, state, [])
        if cycle:
            errors.append(f"target {cycle[-1]} has a cycle: {' -> '.join(cycle)}")
            break
    return errors


def _find_cycle(
    name: str, after: Mapping[str, Iterable[str]], state: dict[str, int], path: list[str]
) -> list[str] | None:
    if state.get(name) == _DONE:
        return None
    if state.get(name) == _VISITING:
        return [*path[path.index(name):], name]
    state[name] = _VISITING
    path.append(name)
    for dep in after[name]:
        cycle = _find_cycle(dep, after, state, path)
        if cycle:
            return cycle
    path.pop()
    state[name] = _DONE
    return None


def build_order(targets: Mapping[str, Target], requested: Iterable[str]) -> list[Target]:
    """Targets to build, dependencies first, for the *requested* names.

    Raises:
        ManifestError: A name is unknown or the graph has a cycle.
    """
    ordered: list[Target] = []
    state: dict[str, int] = {}

    def visit(name: str, path: list[str]) -> None:
        if state.get(name) == _DONE:
            return
        if state.get(name) == _VISITING:
            cycle = [*path[path.index(name):], name]
            raise ManifestError(f"target {name} has a cycle: {' -> '.join(cycle)}")
        target = targets.get(name)
        if target is None:
            raise ManifestError(f"unknown target {name!r}")
        state[name] = _VISITING
        for dep in target.build_after:
            visit(dep, [*path, name])
        state[name] = _DONE
        ordered.append(target)

    for name in requested:
        visit(name, [])
    return ordered
