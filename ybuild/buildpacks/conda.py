"""
Conda-based Python toolchains.

``anaconda2`` / ``anaconda3`` install a Miniconda of the requested
release. ``python`` installs a pinned Miniforge once and then creates a
conda environment holding the requested Python version.
"""

from __future__ import annotations

from ybuild.adapters.base import AMD64, ARM64, I386, LINUX, MACOS
from ybuild.buildpacks.base import InstallerBuildpack, version_tuple
from ybuild.core.errors import BuildpackError
from ybuild.core.models.environment import Environment

MINIFORGE_VERSION = "4.10.1-4"

_CONDA_OS = {MACOS: "MacOSX", LINUX: "Linux"}
_CONDA_ARCH = {AMD64: "x86_64", I386: "x86"}


def anaconda_download_url(version: str, py_major: int, py_minor: int, os_name: str, arch: str) -> str:
    """Miniconda installer URL; releases from 4.8 on embed the Python version."""
    parsed = version_tuple(version)
    if len(parsed) < 2:
        raise BuildpackError(f"compute anaconda {version} download url: not a version")
    if os_name not in _CONDA_OS:
        raise BuildpackError(f"compute anaconda {version} download url: not found for OS {os_name}")
    if arch not in _CONDA_ARCH:
        raise BuildpackError(f"compute anaconda {version} download url: not found for architecture {arch}")
    platform = f"{_CONDA_OS[os_name]}-{_CONDA_ARCH[arch]}"
    if parsed[:2] >= (4, 8):
        return f"https://repo.continuum.io/miniconda/Miniconda{py_major}-py{py_major}{py_minor}_{version}-{platform}.sh"
    return f"https://repo.continuum.io/miniconda/Miniconda{py_major}-{version}-{platform}.sh"


def miniforge_download_url(os_name: str, arch: str) -> str:
    if os_name == MACOS:
        arch_name = {AMD64: "x86_64", ARM64: "arm64"}.get(arch)
    elif os_name == LINUX:
        arch_name = {AMD64: "x86_64", ARM64: "aarch64"}.get(arch)
    else:
        raise BuildpackError(f"compute miniforge download url: not found for OS {os_name}")
    if arch_name is None:
        raise BuildpackError(f"compute miniforge download url: not found for architecture {arch}")
    return (
        f"https://github.com/conda-forge/miniforge/releases/download/{MINIFORGE_VERSION}/"
        f"Miniforge3-{_CONDA_OS[os_name]}-{arch_name}.sh"
    )


class _CondaInstaller(InstallerBuildpack):
    def _conda_env(self, prefix: str) -> Environment:
        return Environment(prepend_path=(self.biome.join_path(prefix, "bin"),))

    def _install_conda(self, url: str, prefix: str) -> None:
        script = f"{prefix}.sh"
        self.fetch_to_biome(url, script, mode=0o755)
        # -b: batch mode, -p: prefix
        self.run(["bash", script, "-b", "-p", prefix])
        env = self._conda_env(prefix)
        self.run(["conda", "config", "--set", "always_yes", "yes"], env=env)
        self.run(["conda", "config", "--set", "changeps1", "no"], env=env)

    def setup(self, install_dir: str) -> Environment:
        return self._conda_env(install_dir)


class Anaconda2Buildpack(_CondaInstaller):
    tool = "anaconda2"
    py_major = 2

    def download_url(self) -> str:
        desc = self.biome.describe()
        return anaconda_download_url(self.version, self.py_major, 7, desc.os, desc.arch)

    def _run_installer(self, install_dir: str) -> None:
        self._install_conda(self.download_url(), install_dir)


class Anaconda3Buildpack(Anaconda2Buildpack):
    tool = "anaconda3"
    py_major = 3


class PythonBuildpack(_CondaInstaller):
    tool = "python"

    def miniforge_dir(self) -> str:
        return self.biome.join_path(self.biome.dirs().tools, "miniforge", MINIFORGE_VERSION)

    def _run_installer(self, install_dir: str) -> None:
        base = self.miniforge_dir()
        if not self.is_installed(base):
            self._clear_incomplete(base)
            desc = self.biome.describe()
            self._install_conda(miniforge_download_url(desc.os, desc.arch), base)
            self._mark(base)
        self.run(
            ["conda", "create", "--quiet", "--prefix", install_dir, f"python={self.version}"],
            env=self._conda_env(base),
        )
