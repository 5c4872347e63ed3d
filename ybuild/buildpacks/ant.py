"""Apache Ant binary distributions."""

from __future__ import annotations

from ybuild.buildpacks.base import Buildpack
from ybuild.core.models.environment import Environment


class AntBuildpack(Buildpack):
    tool = "ant"

    def download_url(self) -> str:
        return f"https://archive.apache.org/dist/ant/binaries/apache-ant-{self.version}-bin.zip"

    def _install(self, install_dir: str) -> None:
        self.extract_url(self.download_url(), install_dir)

    def setup(self, install_dir: str) -> Environment:
        return Environment(
            vars={"ANT_HOME": install_dir},
            prepend_path=(self.biome.join_path(install_dir, "bin"),),
        )
