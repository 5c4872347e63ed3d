"""
Biome wrappers — composition instead of subclassing.

``EnvBiome`` merges an overlay into every invocation, ``ExecPrefix``
prepends a fixed argv and ``NetrcBiome`` removes an injected ``~/.netrc``
on close. All forward everything else to the wrapped biome,
including ``close()``, so the outermost wrapper owns the whole stack.
"""

from __future__ import annotations

import io
import logging
from dataclasses import replace
from pathlib import Path

from ybuild.adapters.base import Biome, Descriptor, Dirs, Invocation, remove_all, write_file
from ybuild.core.cancel import CancelToken, detached
from ybuild.core.errors import YbError
from ybuild.core.models.environment import Environment

logger = logging.getLogger(__name__)

NETRC_FILE = ".netrc"


class _Wrapper(Biome):
    def __init__(self, inner: Biome):
        self.inner = inner

    def describe(self) -> Descriptor:
        return self.inner.describe()

    def dirs(self) -> Dirs:
        return self.inner.dirs()

    def run(self, invocation: Invocation, cancel: CancelToken | None = None) -> None:
        self.inner.run(invocation, cancel)

    def close(self) -> None:
        self.inner.close()

    def host_path(self, path: str) -> Path | None:
        return self.inner.host_path(path)

    def join_path(self, *parts: str) -> str:
        return self.inner.join_path(*parts)

    def clean_path(self, path: str) -> str:
        return self.inner.clean_path(path)

    def is_abs_path(self, path: str) -> bool:
        return self.inner.is_abs_path(path)


class EnvBiome(_Wrapper):
    """Apply *env* underneath the invocation's own overlay on every run.

    ``EnvBiome(EnvBiome(b, o1), o2).run(inv)`` reaches ``b`` with
    ``o1.merge(o2).merge(inv.env)``.
    """

    def __init__(self, inner: Biome, env: Environment):
        super().__init__(inner)
        self.env = env

    def run(self, invocation: Invocation, cancel: CancelToken | None = None) -> None:
        self.inner.run(replace(invocation, env=self.env.merge(invocation.env)), cancel)


class ExecPrefix(_Wrapper):
    """Run every argv behind a fixed prefix, e.g. ``["sudo", "-u", "build"]``."""

    def __init__(self, inner: Biome, prefix: list[str]):
        super().__init__(inner)
        self.prefix = list(prefix)

    def run(self, invocation: Invocation, cancel: CancelToken | None = None) -> None:
        if not self.prefix:
            self.inner.run(invocation, cancel)
            return
        self.inner.run(replace(invocation, argv=[*self.prefix, *invocation.argv]), cancel)


class NetrcBiome(_Wrapper):
    """Owns a ``~/.netrc`` written into *inner*; deletes it before closing."""

    def __init__(self, inner: Biome, path: str):
        super().__init__(inner)
        self.path = path

    def close(self) -> None:
        try:
            remove_all(self.inner, self.path, detached())
        except (YbError, OSError) as exc:
            logger.warning("Could not clean up .netrc: %s", exc)
        self.inner.close()


def inject_netrc(biome: Biome, data: bytes, cancel: CancelToken | None = None) -> Biome:
    """Write *data* to ``~/.netrc`` in *biome*, private to the user.

    Returns *biome* unchanged when there is nothing to write.
    """
    if not data:
        logger.debug("No .netrc data, skipping")
        return biome
    path = biome.join_path(biome.dirs().home, NETRC_FILE)
    logger.info("Writing .netrc")
    write_file(biome, path, io.BytesIO(data), 0o600, cancel)
    return NetrcBiome(biome, path)
