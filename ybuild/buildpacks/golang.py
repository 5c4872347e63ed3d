"""Go toolchain from dl.google.com."""

from __future__ import annotations

from ybuild.adapters.base import AMD64, ARM64, I386, LINUX, MACOS, WINDOWS
from ybuild.buildpacks.base import Buildpack
from ybuild.core.models.environment import Environment

_OS = {LINUX: "linux", MACOS: "darwin", WINDOWS: "windows"}
_ARCH = {AMD64: "amd64", ARM64: "arm64", I386: "386"}


class GoBuildpack(Buildpack):
    tool = "go"
    read_only = True

    def download_url(self) -> str:
        desc = self.biome.describe()
        if desc.os not in _OS:
            raise self.unsupported("operating system")
        if desc.arch not in _ARCH:
            raise self.unsupported("architecture")
        ext = "zip" if desc.os == WINDOWS else "tar.gz"
        return f"https://dl.google.com/go/go{self.version}.{_OS[desc.os]}-{_ARCH[desc.arch]}.{ext}"

    def _install(self, install_dir: str) -> None:
        self.extract_url(self.download_url(), install_dir)

    def setup(self, install_dir: str) -> Environment:
        gopath = self.biome.join_path(self.biome.dirs().home, "go")
        return Environment(
            vars={"GOROOT": install_dir, "GOPATH": gopath},
            prepend_path=(
                self.biome.join_path(gopath, "bin"),
                self.biome.join_path(install_dir, "bin"),
            ),
        )
