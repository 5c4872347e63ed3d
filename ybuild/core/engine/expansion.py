"""
Environment templates — ``{{ .Containers.IP "label" }}`` and nothing else.

Manifest environment values may reference the IPv4 address of a running
resource container. The set of names a template can reach is spelled out
in ``ExpansionContext``; any other action is an error rather than being
resolved by reflection over the configuration.
"""

from __future__ import annotations

import re
from collections.abc import Mapping
from dataclasses import dataclass, field

from ybuild.core.errors import ExpansionError

_ACTION = re.compile(r"\{\{(.*?)\}\}", re.DOTALL)
_CONTAINER_IP = re.compile(r'^\s*\.Containers\.IP\s+(?:"((?:[^"\\]|\\.)*)"|`([^`]*)`)\s*$')
_ESCAPE = re.compile(r"\\(.)")


@dataclass(frozen=True)
class ExpansionContext:
    """Values visible to environment templates."""

    container_ips: Mapping[str, str] = field(default_factory=dict)

    def container_ip(self, label: str) -> str:
        try:
            return self.container_ips[label]
        except KeyError:
            raise ExpansionError(f"find IP for {label}: unknown container") from None


def expand(template: str, context: ExpansionContext) -> str:
    """Expand every ``{{ … }}`` action in *template*.

    Raises:
        ExpansionError: Unterminated or unsupported action, or an unknown
            container label.
    """
    if "{{" not in template:
        return template

    def replace(match: re.Match[str]) -> str:
        action = match.group(1)
        ip_match = _CONTAINER_IP.match(action)
        if ip_match is None:
            raise ExpansionError(f"unsupported template action {{{{{action}}}}}")
        if ip_match.group(1) is not None:
            label = _ESCAPE.sub(r"\1", ip_match.group(1))
        else:
            label = ip_match.group(2)
        return context.container_ip(label)

    expanded = _ACTION.sub(replace, template)
    if "{{" in _ACTION.sub("", template):
        raise ExpansionError(f"unterminated template action in {template!r}")
    return expanded


def expand_env(env: Mapping[str, str], context: ExpansionContext) -> dict[str, str]:
    """Expand each value of *env*, naming the variable on failure."""
    result: dict[str, str] = {}
    for key, value in env.items():
        try:
            result[key] = expand(value, context)
        except ExpansionError as exc:
            raise ExpansionError(f"expand {key}: {exc}") from exc
    return result
