"""Protocol Buffers compiler release zips.

The zips have ``bin/`` and ``include/`` at the top level, so nothing is
stripped on extraction.
"""

from __future__ import annotations

from ybuild.adapters.base import AMD64, ARM64, I386, LINUX, MACOS, WINDOWS
from ybuild.buildpacks.base import Buildpack
from ybuild.core.models.environment import Environment

_VARIANTS = {
    (LINUX, AMD64): "linux-x86_64",
    (LINUX, I386): "linux-x86_32",
    (LINUX, ARM64): "linux-aarch_64",
    (MACOS, AMD64): "osx-x86_64",
    (MACOS, ARM64): "osx-aarch_64",
    (WINDOWS, AMD64): "win64",
    (WINDOWS, I386): "win32",
}


class ProtocBuildpack(Buildpack):
    tool = "protoc"

    def download_url(self) -> str:
        desc = self.biome.describe()
        variant = _VARIANTS.get((desc.os, desc.arch))
        if variant is None:
            raise self.unsupported("platform")
        v = self.version.lstrip("v")
        return f"https://github.com/google/protobuf/releases/download/v{v}/protoc-{v}-{variant}.zip"

    def _install(self, install_dir: str) -> None:
        self.extract_url(self.download_url(), install_dir, strip_top=False)

    def setup(self, install_dir: str) -> Environment:
        return Environment(prepend_path=(self.biome.join_path(install_dir, "bin"),))
