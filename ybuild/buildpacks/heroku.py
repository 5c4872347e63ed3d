"""
Heroku CLI.

Only ``heroku:latest`` exists. The CLI updates itself, so an existing
install is refreshed with ``heroku update`` instead of being replaced.
"""

from __future__ import annotations

import logging

from ybuild.adapters.base import AMD64, I386, LINUX, MACOS
from ybuild.buildpacks.base import Buildpack
from ybuild.core.errors import BuildpackError
from ybuild.core.models.environment import Environment

logger = logging.getLogger(__name__)

_OS = {LINUX: "linux", MACOS: "darwin"}
_ARCH = {AMD64: "x64", I386: "x86"}


class HerokuBuildpack(Buildpack):
    tool = "heroku"

    def install_dir(self) -> str:
        return self.biome.join_path(self.biome.dirs().tools, "heroku")

    def download_url(self) -> str:
        desc = self.biome.describe()
        if desc.os not in _OS:
            raise self.unsupported("operating system")
        if desc.arch not in _ARCH:
            raise self.unsupported("architecture")
        return f"https://cli-assets.heroku.com/heroku-{_OS[desc.os]}-{_ARCH[desc.arch]}.tar.gz"

    def install(self) -> str:
        if self.version != "latest":
            raise BuildpackError(f"{self.spec}: 'latest' is the only allowed version")
        install_dir = self.install_dir()
        if not self.is_installed(install_dir):
            logger.info("Installing %s in %s", self.spec, install_dir)
            self._install(install_dir)
            return install_dir
        logger.info("%s located in %s; running update", self.spec, install_dir)
        self.run(["heroku", "update"], env=self.setup(install_dir))
        return install_dir

    def _install(self, install_dir: str) -> None:
        self.extract_url(self.download_url(), install_dir)

    def setup(self, install_dir: str) -> Environment:
        return Environment(prepend_path=(self.biome.join_path(install_dir, "bin"),))
