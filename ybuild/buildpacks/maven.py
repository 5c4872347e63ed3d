"""Apache Maven binary distributions."""

from __future__ import annotations

from ybuild.buildpacks.base import Buildpack
from ybuild.core.errors import BuildpackError
from ybuild.core.models.environment import Environment


class MavenBuildpack(Buildpack):
    tool = "maven"

    def download_url(self) -> str:
        major = self.version.split(".", 1)[0]
        if not major.isdigit():
            raise BuildpackError(f"{self.spec}: cannot determine major version")
        return (
            f"https://archive.apache.org/dist/maven/maven-{major}/{self.version}/"
            f"binaries/apache-maven-{self.version}-bin.tar.gz"
        )

    def _install(self, install_dir: str) -> None:
        self.extract_url(self.download_url(), install_dir)

    def setup(self, install_dir: str) -> Environment:
        return Environment(
            vars={"MAVEN_HOME": install_dir},
            prepend_path=(self.biome.join_path(install_dir, "bin"),),
        )
