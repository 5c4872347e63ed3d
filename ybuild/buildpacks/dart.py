"""Dart SDK from the stable release channel."""

from __future__ import annotations

from ybuild.adapters.base import AMD64, ARM64, I386, LINUX, MACOS, WINDOWS
from ybuild.buildpacks.base import Buildpack
from ybuild.core.models.environment import Environment

_OS = {LINUX: "linux", MACOS: "macos", WINDOWS: "windows"}
_ARCH = {AMD64: "x64", ARM64: "arm64", I386: "ia32"}


class DartBuildpack(Buildpack):
    tool = "dart"

    def download_url(self) -> str:
        desc = self.biome.describe()
        if desc.os not in _OS:
            raise self.unsupported("operating system")
        if desc.arch not in _ARCH:
            raise self.unsupported("architecture")
        return (
            "https://storage.googleapis.com/dart-archive/channels/stable/release/"
            f"{self.version}/sdk/dartsdk-{_OS[desc.os]}-{_ARCH[desc.arch]}-release.zip"
        )

    def _install(self, install_dir: str) -> None:
        self.extract_url(self.download_url(), install_dir)

    def setup(self, install_dir: str) -> Environment:
        return Environment(prepend_path=(self.biome.join_path(install_dir, "bin"),))
