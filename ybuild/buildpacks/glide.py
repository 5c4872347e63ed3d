"""Glide, the Go dependency manager, from its GitHub releases."""

from __future__ import annotations

from ybuild.adapters.base import AMD64, ARM64, I386, LINUX, MACOS
from ybuild.buildpacks.base import Buildpack
from ybuild.core.models.environment import Environment

_OS = {LINUX: "linux", MACOS: "darwin"}
_ARCH = {AMD64: "amd64", ARM64: "arm64", I386: "386"}


class GlideBuildpack(Buildpack):
    tool = "glide"
    read_only = True

    def _platform(self) -> str:
        desc = self.biome.describe()
        if desc.os not in _OS:
            raise self.unsupported("operating system")
        if desc.arch not in _ARCH:
            raise self.unsupported("architecture")
        return f"{_OS[desc.os]}-{_ARCH[desc.arch]}"

    def download_url(self) -> str:
        v = self.version.lstrip("v")
        return f"https://github.com/Masterminds/glide/releases/download/v{v}/glide-v{v}-{self._platform()}.tar.gz"

    def _install(self, install_dir: str) -> None:
        # The archive's top directory is named after the platform; setup points into it.
        self.extract_url(self.download_url(), install_dir, strip_top=False)

    def setup(self, install_dir: str) -> Environment:
        return Environment(prepend_path=(self.biome.join_path(install_dir, self._platform()),))
