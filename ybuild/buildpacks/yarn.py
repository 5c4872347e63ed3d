"""Yarn (classic) release tarballs."""

from __future__ import annotations

from ybuild.buildpacks.base import Buildpack
from ybuild.core.models.environment import Environment


class YarnBuildpack(Buildpack):
    tool = "yarn"

    def download_url(self) -> str:
        v = self.version.lstrip("v")
        return f"https://github.com/yarnpkg/yarn/releases/download/v{v}/yarn-v{v}.tar.gz"

    def _install(self, install_dir: str) -> None:
        self.extract_url(self.download_url(), install_dir)

    def setup(self, install_dir: str) -> Environment:
        return Environment(prepend_path=(self.biome.join_path(install_dir, "bin"),))
