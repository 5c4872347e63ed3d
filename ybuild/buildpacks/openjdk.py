"""
OpenJDK builds published by AdoptOpenJDK on GitHub.

Versions look like ``8.252``, ``8.252.9``, ``8.252+09``, ``11.0.7+10`` or
``15+36``; the part after ``+`` is the build number. When it is missing,
a known-good build number for the major version is used.
"""

from __future__ import annotations

from ybuild.adapters.base import AMD64, ARM64, LINUX, MACOS
from ybuild.buildpacks.base import Buildpack
from ybuild.core.errors import BuildpackError
from ybuild.core.models.environment import Environment

_OS = {LINUX: "linux", MACOS: "mac"}
_ARCH = {AMD64: "x64", ARM64: "aarch64"}

_DEFAULT_BUILD = {
    8: "08",
    9: "11",
    10: "13.1",
    11: "10",
    12: "10",
    13: "9",
    14: "36",
}

_BASE = "https://github.com/AdoptOpenJDK/openjdk{major}-binaries/releases/download"


def java_download_url(version: str, os_name: str, arch: str) -> str:
    """Compute the AdoptOpenJDK tarball URL for *version*."""
    version, _, build = version.partition("+")
    try:
        numbers = [int(p) for p in version.split(".")] + [0, 0, 0]
    except ValueError as exc:
        raise BuildpackError(f"parse jdk version {version!r}: {exc}") from exc
    major, minor, patch = numbers[:3]

    if major not in (11, 14) and not build and 0 < patch < 100:
        build = f"{patch:02d}"
    if not build:
        build = _DEFAULT_BUILD.get(major, "")

    if os_name not in _OS:
        raise BuildpackError(f"java {version}: unsupported os {os_name}")
    if arch not in _ARCH:
        raise BuildpackError(f"java {version}: unsupported architecture {arch}")
    jos, jarch = _OS[os_name], _ARCH[arch]

    base = _BASE.format(major=major)
    if major < 9:
        return (
            f"{base}/jdk{major}u{minor}-b{build}/"
            f"OpenJDK{major}U-jdk_{jarch}_{jos}_hotspot_{major}u{minor}b{build}.tar.gz"
        )
    if major < 14 and not (major == 9 and build == "181"):
        full = f"{major}.{minor}.{patch}"
        return (
            f"{base}/jdk-{full}%2B{build}/"
            f"OpenJDK{major}U-jdk_{jarch}_{jos}_hotspot_{full}_{build}.tar.gz"
        )
    return f"{base}/jdk-{major}%2B{build}/OpenJDK{major}U-jdk_{jarch}_{jos}_hotspot_{major}_{build}.tar.gz"


class JavaBuildpack(Buildpack):
    tool = "java"

    def java_home(self, install_dir: str) -> str:
        if self.biome.describe().os == MACOS:
            return self.biome.join_path(install_dir, "Contents", "Home")
        return install_dir

    def download_url(self) -> str:
        desc = self.biome.describe()
        return java_download_url(self.version, desc.os, desc.arch)

    def _install(self, install_dir: str) -> None:
        self.extract_url(self.download_url(), install_dir)

    def setup(self, install_dir: str) -> Environment:
        home = self.java_home(install_dir)
        return Environment(vars={"JAVA_HOME": home}, prepend_path=(self.biome.join_path(home, "bin"),))
