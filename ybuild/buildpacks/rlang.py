"""R, compiled from the CRAN source tarball."""

from __future__ import annotations

from ybuild.buildpacks.base import InstallerBuildpack
from ybuild.core.models.environment import Environment

CRAN_SOURCE = "https://cloud.r-project.org/src/base"


class RBuildpack(InstallerBuildpack):
    tool = "r"

    def download_url(self) -> str:
        major, dot, _ = self.version.partition(".")
        if not dot or not major:
            raise self.unsupported(f"version {self.version!r}")
        return f"{CRAN_SOURCE}/R-{major}/R-{self.version}.tar.gz"

    def _run_installer(self, install_dir: str) -> None:
        src = self.biome.join_path(install_dir, "src")
        self.extract_url(self.download_url(), src)
        self.run([self.biome.join_path(src, "configure"), "--with-x=no", f"--prefix={install_dir}"], dir=src)
        self.run(["make", "--jobs=2"], dir=src)
        self.run(["make", "install"], dir=src)

    def setup(self, install_dir: str) -> Environment:
        return Environment(prepend_path=(self.biome.join_path(install_dir, "bin"),))
