"""
Netrc credentials handed to builds.

Every ``yb/netrc`` file found in the XDG config directories is
concatenated with the files passed through ``--netrc-file``. The result is
written to ``~/.netrc`` inside the biome for the duration of the target
and removed afterwards.
"""

from __future__ import annotations

import logging
import os
from collections.abc import Iterable, Mapping
from pathlib import Path

from ybuild.core.errors import ValidationError

logger = logging.getLogger(__name__)

NETRC_NAME = "netrc"


def config_dirs(environ: Mapping[str, str] | None = None) -> list[Path]:
    """XDG config directories, most important first."""
    env = os.environ if environ is None else environ
    home = env.get("XDG_CONFIG_HOME") or str(Path.home() / ".config")
    extra = env.get("XDG_CONFIG_DIRS") or "/etc/xdg"
    return [Path(home)] + [Path(p) for p in extra.split(os.pathsep) if p]


def default_netrc_files(environ: Mapping[str, str] | None = None) -> list[Path]:
    return [d / "yb" / NETRC_NAME for d in config_dirs(environ)]


def cat_netrc(defaults: Iterable[Path], explicit: Iterable[str | Path]) -> bytes:
    """Concatenate netrc files, each ending in a newline.

    Missing *defaults* are skipped; a missing *explicit* file is an error.

    Raises:
        ValidationError: An explicit file could not be read.
    """
    parts: list[bytes] = []
    for path in defaults:
        try:
            parts.append(Path(path).read_bytes())
        except FileNotFoundError:
            continue
        except OSError as exc:
            raise ValidationError(f"read netrc {path}: {exc}") from exc
    for path in explicit:
        try:
            parts.append(Path(path).read_bytes())
        except OSError as exc:
            raise ValidationError(f"read netrc {path}: {exc}") from exc
    return b"".join(p if p.endswith(b"\n") else p + b"\n" for p in parts if p)
