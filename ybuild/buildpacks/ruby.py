"""
Ruby, compiled with ruby-build.

ruby-build is cloned once per tools directory and shared by every Ruby
version. Gems go to a shared ``GEM_HOME`` so they survive Ruby upgrades.
"""

from __future__ import annotations

import uuid

from ybuild.adapters.base import exists, mkdir_all, rename
from ybuild.buildpacks.base import InstallerBuildpack
from ybuild.core.errors import RunError
from ybuild.core.models.environment import Environment

RUBY_BUILD_REPO = "https://github.com/rbenv/ruby-build.git"


class RubyBuildpack(InstallerBuildpack):
    tool = "ruby"

    def ruby_build_dir(self) -> str:
        return self.biome.join_path(self.biome.dirs().tools, "ruby-build")

    def gem_home(self) -> str:
        return self.biome.join_path(self.biome.dirs().tools, "rubygems")

    def _ensure_ruby_build(self) -> str:
        target, cancel = self.ruby_build_dir(), self.sys.cancel
        if exists(self.biome, target, cancel):
            return target
        mkdir_all(self.biome, self.biome.dirs().tools, cancel)
        staging = f"{target}.tmp-{uuid.uuid4().hex[:8]}"
        try:
            self.run(["git", "clone", "--depth=1", RUBY_BUILD_REPO, staging])
            try:
                rename(self.biome, staging, target, cancel)
            except (OSError, RunError):
                if not exists(self.biome, target, cancel):
                    raise
        finally:
            self._discard(staging)
        return target

    def _run_installer(self, install_dir: str) -> None:
        ruby_build = self.biome.join_path(self._ensure_ruby_build(), "bin", "ruby-build")
        self.run([ruby_build, self.version, install_dir])

    def setup(self, install_dir: str) -> Environment:
        gem_home = self.gem_home()
        return Environment(
            vars={"GEM_HOME": gem_home},
            prepend_path=(
                self.biome.join_path(install_dir, "bin"),
                self.biome.join_path(gem_home, "bin"),
            ),
        )
