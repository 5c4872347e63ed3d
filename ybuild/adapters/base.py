"""
Biome base — the contract every execution environment implements.

A biome is the only way a build step spawns a process. The executor and
the buildpacks talk to this interface and never to a concrete variant:
host, container and remote biomes must look the same apart from what
``describe()`` and ``dirs()`` report.

Paths handed to and returned by a biome are strings in the biome's own
syntax, not ``pathlib`` objects, because they may not exist on this
machine at all.

The module-level helpers (``mkdir_all``, ``write_file``, ``exists``, …) do
the filesystem work buildpacks need. They take the host filesystem
shortcut when ``host_path()`` says the biome path is visible locally and
fall back to running coreutils inside the biome otherwise.
"""

from __future__ import annotations

import io
import logging
import ntpath
import os
import posixpath
import shutil
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from pathlib import Path
from types import ModuleType
from typing import IO, Any

from ybuild.core.cancel import CancelToken
from ybuild.core.errors import RunError
from ybuild.core.models.environment import Environment
from ybuild.core.services.files import remove_tree

logger = logging.getLogger(__name__)

# ── Descriptor values ───────────────────────────────────────────────

LINUX = "linux"
MACOS = "darwin"
WINDOWS = "windows"

AMD64 = "amd64"
ARM64 = "arm64"
I386 = "386"


@dataclass(frozen=True)
class Descriptor:
    """The operating system and CPU architecture a biome runs on."""

    os: str
    arch: str

    def __str__(self) -> str:
        return f"{self.os}-{self.arch}"


@dataclass(frozen=True)
class Dirs:
    """Canonical directories of a biome, in the biome's path syntax."""

    package: str
    home: str
    tools: str


@dataclass
class Invocation:
    """A single process to spawn inside a biome.

    ``dir`` may be relative (resolved against ``Dirs.package``) or absolute.
    Writers receive raw bytes; ``None`` discards the stream. ``stdin=None``
    gives the process an empty stdin.
    """

    argv: list[str]
    dir: str = ""
    env: Environment = field(default_factory=Environment)
    stdin: IO[bytes] | None = None
    stdout: IO[Any] | None = None
    stderr: IO[Any] | None = None


class Biome(ABC):
    """Abstract execution environment.

    Subclasses implement ``describe``, ``dirs`` and ``run``. Path syntax
    follows the descriptor: backslash paths on Windows, slash elsewhere.
    Biomes are context managers; leaving the block calls ``close()``.
    """

    @abstractmethod
    def describe(self) -> Descriptor:
        """Return the biome's operating system and architecture."""

    @abstractmethod
    def dirs(self) -> Dirs:
        """Return the package, home and tools directories."""

    @abstractmethod
    def run(self, invocation: Invocation, cancel: CancelToken | None = None) -> None:
        """Run a process to completion.

        Raises:
            RunError: If the process exits non-zero or cannot be started.
            CancelError: If *cancel* fires while the process is running.
        """

    def close(self) -> None:
        """Release anything the biome holds. Safe to call more than once."""

    def host_path(self, path: str) -> Path | None:
        """Return where *path* lives on this machine, or None if it doesn't."""
        return None

    # ── Path syntax ─────────────────────────────────────────────

    @property
    def path_module(self) -> ModuleType:
        return ntpath if self.describe().os == WINDOWS else posixpath

    @property
    def path_separator(self) -> str:
        return ";" if self.describe().os == WINDOWS else ":"

    def join_path(self, *parts: str) -> str:
        return self.path_module.join(*parts)

    def clean_path(self, path: str) -> str:
        return self.path_module.normpath(path)

    def is_abs_path(self, path: str) -> bool:
        return self.path_module.isabs(path)

    def __enter__(self) -> Biome:
        return self

    def __exit__(self, *exc: object) -> None:
        self.close()


# ── Filesystem helpers ──────────────────────────────────────────────


def abs_path(biome: Biome, path: str) -> str:
    """Resolve *path* against the package directory if it is relative."""
    if biome.is_abs_path(path):
        return biome.clean_path(path)
    return biome.join_path(biome.dirs().package, path)


def run_output(biome: Biome, invocation: Invocation, cancel: CancelToken | None = None) -> str:
    """Run *invocation* and return its stdout decoded as UTF-8."""
    out = io.BytesIO()
    invocation.stdout = out
    biome.run(invocation, cancel)
    return out.getvalue().decode("utf-8", errors="replace")


def exists(biome: Biome, path: str, cancel: CancelToken | None = None) -> bool:
    local = biome.host_path(path)
    if local is not None:
        return local.exists()
    try:
        biome.run(Invocation(argv=["test", "-e", path]), cancel)
    except RunError:
        return False
    return True


def mkdir_all(biome: Biome, path: str, cancel: CancelToken | None = None) -> None:
    local = biome.host_path(path)
    if local is not None:
        local.mkdir(parents=True, exist_ok=True)
        return
    biome.run(Invocation(argv=["mkdir", "-p", path]), cancel)


def remove_all(biome: Biome, path: str, cancel: CancelToken | None = None) -> None:
    local = biome.host_path(path)
    if local is not None:
        remove_tree(local)
        return
    biome.run(Invocation(argv=["rm", "-rf", path]), cancel)


def rename(biome: Biome, src: str, dst: str, cancel: CancelToken | None = None) -> None:
    local_src, local_dst = biome.host_path(src), biome.host_path(dst)
    if local_src is not None and local_dst is not None:
        os.replace(local_src, local_dst)
        return
    biome.run(Invocation(argv=["mv", src, dst]), cancel)


def write_file(
    biome: Biome,
    path: str,
    data: IO[bytes],
    mode: int = 0o644,
    cancel: CancelToken | None = None,
) -> None:
    """Copy the bytes of *data* to *path* inside the biome."""
    local = biome.host_path(path)
    if local is not None:
        local.parent.mkdir(parents=True, exist_ok=True)
        with open(local, "wb") as f:
            shutil.copyfileobj(data, f)
        local.chmod(mode)
        return
    biome.run(Invocation(argv=["tee", path], stdin=data), cancel)
    biome.run(Invocation(argv=["chmod", f"{mode:o}", path]), cancel)


def make_read_only(biome: Biome, path: str, cancel: CancelToken | None = None) -> None:
    """Strip write permission from everything under *path*."""
    local = biome.host_path(path)
    if local is None:
        biome.run(Invocation(argv=["chmod", "-R", "a-w", path]), cancel)
        return
    for root, dirnames, filenames in os.walk(local):
        for name in filenames:
            p = os.path.join(root, name)
            if not os.path.islink(p):
                os.chmod(p, os.stat(p).st_mode & ~0o222)
        for name in dirnames:
            p = os.path.join(root, name)
            if not os.path.islink(p):
                os.chmod(p, os.stat(p).st_mode & ~0o222)
    os.chmod(local, os.stat(local).st_mode & ~0o222)

