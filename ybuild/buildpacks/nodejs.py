"""Node.js from nodejs.org release tarballs."""

from __future__ import annotations

from ybuild.adapters.base import AMD64, ARM64, I386, LINUX, MACOS
from ybuild.buildpacks.base import Buildpack
from ybuild.core.models.environment import Environment

_OS = {LINUX: "linux", MACOS: "darwin"}
_ARCH = {AMD64: "x64", ARM64: "arm64", I386: "x86"}


class NodeBuildpack(Buildpack):
    tool = "node"

    def download_url(self) -> str:
        desc = self.biome.describe()
        if desc.os not in _OS:
            raise self.unsupported("operating system")
        if desc.arch not in _ARCH:
            raise self.unsupported("architecture")
        v = self.version.lstrip("v")
        return f"https://nodejs.org/dist/v{v}/node-v{v}-{_OS[desc.os]}-{_ARCH[desc.arch]}.tar.gz"

    def _install(self, install_dir: str) -> None:
        self.extract_url(self.download_url(), install_dir)

    def setup(self, install_dir: str) -> Environment:
        package = self.biome.dirs().package
        return Environment(
            vars={"NODE_PATH": package},
            prepend_path=(
                self.biome.join_path(package, "node_modules", ".bin"),
                self.biome.join_path(install_dir, "bin"),
            ),
        )
