"""
Flutter SDK archives.

Releases before 1.17.0 carry a ``v`` prefix in their file names, later
ones don't. A ``-beta`` or ``-dev`` suffix selects that channel.
"""

from __future__ import annotations

from ybuild.adapters.base import LINUX, MACOS
from ybuild.buildpacks.base import Buildpack, version_tuple
from ybuild.core.errors import BuildpackError
from ybuild.core.models.environment import Environment

_PLATFORMS = {LINUX: ("linux", "tar.xz"), MACOS: ("macos", "zip")}


def flutter_download_url(version: str, os_name: str) -> str:
    if os_name not in _PLATFORMS:
        raise BuildpackError(f"flutter {version}: unsupported os {os_name}")
    platform, ext = _PLATFORMS[os_name]

    bare = version.lstrip("v")
    if "pre" in bare or "dev" in bare or version_tuple(bare) >= (1, 17, 0):
        name = bare
    else:
        name = "v" + bare

    channel = "stable"
    for suffix in ("beta", "dev"):
        if name.endswith("-" + suffix):
            name = name[: -len(suffix) - 1]
            channel = suffix
            break
    return (
        f"https://storage.googleapis.com/flutter_infra/releases/{channel}/{platform}/"
        f"flutter_{platform}_{name}-{channel}.{ext}"
    )


class FlutterBuildpack(Buildpack):
    tool = "flutter"

    def download_url(self) -> str:
        return flutter_download_url(self.version, self.biome.describe().os)

    def _install(self, install_dir: str) -> None:
        self.extract_url(self.download_url(), install_dir)

    def setup(self, install_dir: str) -> Environment:
        return Environment(prepend_path=(self.biome.join_path(install_dir, "bin"),))
