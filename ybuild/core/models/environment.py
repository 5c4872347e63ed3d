"""
Environment overlay — the unit of environment-variable mutation.

An overlay is a set of variables plus PATH entries to put before and after
whatever PATH the process would otherwise see. Overlays merge left to
right: later variables win, PATH lists are concatenated in merge order.
Merge is associative, which is what lets biome wrappers stack.
"""

from __future__ import annotations

from collections.abc import Iterable, Mapping
from dataclasses import dataclass, field


@dataclass(frozen=True)
class Environment:
    """Variables and PATH mutations applied to a spawned process."""

    vars: Mapping[str, str] = field(default_factory=dict)
    prepend_path: tuple[str, ...] = ()
    append_path: tuple[str, ...] = ()

    @classmethod
    def from_pairs(cls, pairs: Iterable[str]) -> Environment:
        """Build an overlay from ``KEY=VALUE`` strings.

        Raises:
            ValueError: If an entry has no ``=`` or an empty key.
        """
        parsed: dict[str, str] = {}
        for pair in pairs:
            key, sep, value = pair.partition("=")
            if not sep or not key.strip():
                raise ValueError(f"invalid environment entry {pair!r}: want KEY=VALUE")
            parsed[key.strip()] = value
        return cls(vars=parsed)

    def is_empty(self) -> bool:
        return not self.vars and not self.prepend_path and not self.append_path

    def merge(self, *others: Environment) -> Environment:
        """Return a new overlay with *others* applied on top of this one."""
        merged_vars = dict(self.vars)
        prepend = list(self.prepend_path)
        append = list(self.append_path)
        for other in others:
            merged_vars.update(other.vars)
            prepend.extend(other.prepend_path)
            append.extend(other.append_path)
        return Environment(vars=merged_vars, prepend_path=tuple(prepend), append_path=tuple(append))

    def path(self, default: str, sep: str = ":") -> str:
        """Effective PATH: prepend entries, then the base PATH, then append entries."""
        base = self.vars.get("PATH") or default
        parts = [*self.prepend_path, base, *self.append_path]
        return sep.join(p for p in parts if p)

    def environ(self, base: Mapping[str, str], default_path: str, sep: str = ":") -> dict[str, str]:
        """Apply the overlay to *base* and return a complete process environment."""
        env = dict(base)
        env.update(self.vars)
        env["PATH"] = self.path(env.get("PATH") or default_path, sep)
        return env

    def pairs(self, default_path: str, sep: str = ":") -> list[str]:
        """Sorted ``KEY=VALUE`` list including the effective PATH."""
        env = dict(self.vars)
        env["PATH"] = self.path(default_path, sep)
        return [f"{k}={env[k]}" for k in sorted(env)]

    def to_dict(self) -> dict:
        return {
            "vars": dict(self.vars),
            "prepend_path": list(self.prepend_path),
            "append_path": list(self.append_path),
        }
