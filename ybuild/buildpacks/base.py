"""
Buildpack base — the contract every toolchain provider implements.

A buildpack makes one ``tool:version`` available inside a biome:

    install() → install_dir      idempotent; downloads and unpacks on first use
    setup(install_dir) → Environment   PATH entries and tool variables

Installs are never visible half-done. Archive-based buildpacks unpack
into ``<install_dir>.tmp-<random>`` and rename it into place. Installer
based buildpacks (conda, rustup) run in place and drop a marker file as
their last step; a directory without the marker is wiped and redone.

Buildpacks only see the biome they were given and must not keep it
after returning.
"""

from __future__ import annotations

import io
import logging
import posixpath
import urllib.parse
import uuid
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from pathlib import Path
from typing import IO, Any, ClassVar

from ybuild.adapters.base import (
    Biome,
    Invocation,
    exists,
    make_read_only,
    mkdir_all,
    remove_all,
    rename,
    run_output,
    write_file,
)
from ybuild.core.cancel import CancelToken, detached
from ybuild.core.errors import BuildpackError, RunError, YbError
from ybuild.core.models.environment import Environment
from ybuild.core.models.manifest import BuildpackSpec
from ybuild.core.services import archive
from ybuild.core.services.downloads import Downloader

logger = logging.getLogger(__name__)

INSTALLED_MARKER = ".yb-installed"


@dataclass
class Sys:
    """What a buildpack may use while installing."""

    biome: Biome
    downloader: Downloader
    stdout: IO[Any] | None = None
    stderr: IO[Any] | None = None
    cancel: CancelToken = field(default_factory=CancelToken)


class Buildpack(ABC):
    """Abstract toolchain provider.

    Subclasses set ``tool`` and implement ``_install`` and ``setup``.
    Set ``read_only = True`` to strip write permission from the tree once
    it is in place.
    """

    tool: ClassVar[str] = ""
    read_only: ClassVar[bool] = False

    def __init__(self, spec: BuildpackSpec, sys: Sys):
        self.spec = spec
        self.sys = sys

    @property
    def version(self) -> str:
        return self.spec.version

    @property
    def biome(self) -> Biome:
        return self.sys.biome

    def install_dir(self) -> str:
        return self.biome.join_path(self.biome.dirs().tools, self.tool, self.version)

    def is_installed(self, install_dir: str) -> bool:
        return exists(self.biome, install_dir, self.sys.cancel)

    def install(self) -> str:
        """Make the toolchain present and return its directory."""
        install_dir = self.install_dir()
        if self.is_installed(install_dir):
            logger.info("%s located in %s", self.spec, install_dir)
            return install_dir
        logger.info("Installing %s in %s", self.spec, install_dir)
        self._install(install_dir)
        return install_dir

    @abstractmethod
    def _install(self, install_dir: str) -> None:
        """Populate *install_dir*. Only called when it is not yet installed."""

    @abstractmethod
    def setup(self, install_dir: str) -> Environment:
        """Return the overlay that puts the toolchain on PATH."""

    # ── Helpers ─────────────────────────────────────────────────

    def unsupported(self, what: str) -> BuildpackError:
        desc = self.biome.describe()
        return BuildpackError(f"{self.spec}: unsupported {what} ({desc})")

    def run(self, argv: list[str], env: Environment | None = None, dir: str = "") -> None:
        """Run an installer step in the biome, streaming to the build output."""
        self.biome.run(
            Invocation(
                argv=argv,
                dir=dir,
                env=env or Environment(),
                stdout=self.sys.stdout,
                stderr=self.sys.stderr,
            ),
            self.sys.cancel,
        )

    def fetch_to_biome(self, url: str, path: str, mode: int = 0o755) -> None:
        """Download *url* (through the cache) and copy it to *path* in the biome."""
        local = self.sys.downloader.download(url, self.sys.cancel)
        mkdir_all(self.biome, self.biome.path_module.dirname(path), self.sys.cancel)
        with open(local, "rb") as f:
            write_file(self.biome, path, f, mode, self.sys.cancel)

    def extract_url(self, url: str, install_dir: str, *, strip_top: bool = True) -> None:
        """Download an archive and unpack it atomically into *install_dir*.

        Args:
            strip_top: Drop the archive's single top-level directory. Pass
                False for archives that unpack straight into the current
                directory.
        """
        biome, cancel = self.biome, self.sys.cancel
        local = self.sys.downloader.download(url, cancel)
        parent = biome.path_module.dirname(install_dir)
        mkdir_all(biome, parent, cancel)
        staging = f"{install_dir}.tmp-{uuid.uuid4().hex[:8]}"
        try:
            host_staging = biome.host_path(staging)
            if host_staging is not None:
                archive.extract(
                    local,
                    host_staging,
                    name=url_filename(url),
                    strip_components=1 if strip_top else 0,
                    cancel=cancel,
                )
            else:
                self._extract_in_biome(local, url, staging, strip_top)
            try:
                rename(biome, staging, install_dir, cancel)
            except (OSError, RunError):
                if not exists(biome, install_dir, cancel):
                    raise
                # Another build finished the same install first.
                logger.debug("%s appeared while installing; keeping it", install_dir)
        except BaseException:
            self._discard(staging)
            raise
        self._discard(staging)
        if self.read_only:
            make_read_only(biome, install_dir, cancel)

    def _extract_in_biome(self, local: Path, url: str, staging: str, strip_top: bool) -> None:
        # The biome's filesystem is not ours; ship the archive and unpack there.
        biome, cancel = self.biome, self.sys.cancel
        name = url_filename(url)
        fmt = archive.archive_format(name)
        archive_path = f"{staging}.archive"
        with open(local, "rb") as f:
            write_file(biome, archive_path, f, 0o644, cancel)
        try:
            if fmt != "zip":
                argv = ["tar", "-x", "-f", archive_path, "-C", staging]
                if strip_top:
                    argv.append("--strip-components=1")
                mkdir_all(biome, staging, cancel)
                self.run(argv)
                return
            if not strip_top:
                self.run(["unzip", "-q", archive_path, "-d", staging])
                return
            unpacked = f"{staging}.unzip"
            self.run(["unzip", "-q", archive_path, "-d", unpacked])
            entries = run_output(biome, Invocation(argv=["ls", "-A", unpacked]), cancel).split()
            if len(entries) != 1:
                raise BuildpackError(f"{name}: expected one top-level directory, found {len(entries)}")
            rename(biome, biome.join_path(unpacked, entries[0]), staging, cancel)
        finally:
            remove_all(biome, archive_path, detached())
            if fmt == "zip" and strip_top:
                remove_all(biome, f"{staging}.unzip", detached())

    def _discard(self, path: str) -> None:
        try:
            remove_all(self.biome, path, detached())
        except YbError as exc:
            logger.warning("Could not remove %s: %s", path, exc)


class InstallerBuildpack(Buildpack):
    """Buildpack whose payload comes from running an installer in place.

    ``is_installed`` requires the completion marker; leftovers from an
    interrupted install are removed before ``_run_installer`` starts.
    """

    def marker_path(self, install_dir: str) -> str:
        return self.biome.join_path(install_dir, INSTALLED_MARKER)

    def is_installed(self, install_dir: str) -> bool:
        return exists(self.biome, self.marker_path(install_dir), self.sys.cancel)

    def _install(self, install_dir: str) -> None:
        self._clear_incomplete(install_dir)
        self._run_installer(install_dir)
        self._mark(install_dir)

    def _clear_incomplete(self, install_dir: str) -> None:
        if exists(self.biome, install_dir, self.sys.cancel):
            logger.info("Removing incomplete install at %s", install_dir)
            remove_all(self.biome, install_dir, self.sys.cancel)

    def _mark(self, install_dir: str) -> None:
        mkdir_all(self.biome, install_dir, self.sys.cancel)
        marker = io.BytesIO(str(self.spec).encode())
        write_file(self.biome, self.marker_path(install_dir), marker, 0o644, self.sys.cancel)

    @abstractmethod
    def _run_installer(self, install_dir: str) -> None:
        """Install into *install_dir*, which does not exist yet."""


def url_filename(url: str) -> str:
    """Last path segment of *url*, used to infer the archive format."""
    return posixpath.basename(urllib.parse.urlparse(url).path)


def version_tuple(version: str) -> tuple[int, ...]:
    """``"1.17.0-beta"`` → ``(1, 17, 0)``; non-numeric tails are ignored."""
    parts: list[int] = []
    for piece in version.lstrip("v").split("."):
        digits = ""
        for ch in piece:
            if not ch.isdigit():
                break
            digits += ch
        if not digits:
            break
        parts.append(int(digits))
        if len(digits) != len(piece):
            break
    return tuple(parts)
