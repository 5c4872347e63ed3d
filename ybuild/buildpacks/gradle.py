"""Gradle binary distributions from services.gradle.org."""

from __future__ import annotations

from ybuild.buildpacks.base import Buildpack
from ybuild.core.models.environment import Environment


class GradleBuildpack(Buildpack):
    tool = "gradle"

    def download_url(self) -> str:
        return f"https://services.gradle.org/distributions/gradle-{self.version}-bin.zip"

    def _install(self, install_dir: str) -> None:
        self.extract_url(self.download_url(), install_dir)

    def setup(self, install_dir: str) -> Environment:
        # The user home holds the dependency cache, so it lives in HOME, not tools.
        return Environment(
            vars={"GRADLE_USER_HOME": self.biome.join_path(self.biome.dirs().home, ".gradle")},
            prepend_path=(self.biome.join_path(install_dir, "bin"),),
        )
