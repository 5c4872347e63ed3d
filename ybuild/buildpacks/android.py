"""
Android SDK command-line tools and the Android NDK.

The SDK tools archive unpacks into ``<sdk-root>/tools``. Accepting the
licenses is done up front by writing their hashes under
``<sdk-root>/licenses``, so ``sdkmanager`` never prompts during a build.
"""

from __future__ import annotations

import io

from ybuild.adapters.base import AMD64, LINUX, MACOS, exists, write_file
from ybuild.buildpacks.base import Buildpack
from ybuild.core.models.environment import Environment

LATEST_SDK_TOOLS = "4333796"

_OS = {LINUX: "linux", MACOS: "darwin"}

LICENSES = {
    "android-googletv-license": "601085b94cd77f0b54ff86406957099ebe79c4d6",
    "android-sdk-license": "24333f8a63b6825ea9c5514f83c2829b004d1fee",
    "android-sdk-preview-license": "84831b9409646a918e30573bab4c9c91346d8abd",
    "google-gdk-license": "33b6a2b64607f11b759f320ef9dff4ae5c47d97a",
    "intel-android-extra-license": "d975f751698a77b662f1254ddbeed3901e976f5a",
    "mips-android-sysimage-license": "e9acab5b5fbb560a72cfaecce8946896ff6aab9d",
}


class AndroidBuildpack(Buildpack):
    tool = "android"

    @property
    def version(self) -> str:
        if self.spec.version == "latest":
            return LATEST_SDK_TOOLS
        return self.spec.version

    def install_dir(self) -> str:
        return self.biome.join_path(self.biome.dirs().tools, "android", f"android-{self.version}")

    def download_url(self) -> str:
        os_name = self.biome.describe().os
        if os_name not in _OS:
            raise self.unsupported("operating system")
        return f"https://dl.google.com/android/repository/sdk-tools-{_OS[os_name]}-{self.version}.zip"

    def _licenses_dir(self, install_dir: str) -> str:
        return self.biome.join_path(install_dir, "licenses")

    def is_installed(self, install_dir: str) -> bool:
        # Licenses are written last.
        last = self.biome.join_path(self._licenses_dir(install_dir), sorted(LICENSES)[-1])
        return exists(self.biome, last, self.sys.cancel)

    def _install(self, install_dir: str) -> None:
        tools_dir = self.biome.join_path(install_dir, "tools")
        if not exists(self.biome, tools_dir, self.sys.cancel):
            self.extract_url(self.download_url(), tools_dir)
        for name in sorted(LICENSES):
            path = self.biome.join_path(self._licenses_dir(install_dir), name)
            data = io.BytesIO(f"\n{LICENSES[name]}".encode())
            write_file(self.biome, path, data, 0o644, self.sys.cancel)

    def setup(self, install_dir: str) -> Environment:
        tools_dir = self.biome.join_path(install_dir, "tools")
        return Environment(
            vars={"ANDROID_SDK_ROOT": install_dir, "ANDROID_HOME": install_dir},
            prepend_path=(self.biome.join_path(tools_dir, "bin"), tools_dir),
        )


class AndroidNDKBuildpack(Buildpack):
    tool = "androidndk"

    def download_url(self) -> str:
        desc = self.biome.describe()
        if desc.os not in _OS:
            raise self.unsupported("operating system")
        if desc.arch != AMD64:
            raise self.unsupported("architecture")
        return f"https://dl.google.com/android/repository/android-ndk-{self.version}-{_OS[desc.os]}-x86_64.zip"

    def _install(self, install_dir: str) -> None:
        self.extract_url(self.download_url(), install_dir)

    def setup(self, install_dir: str) -> Environment:
        return Environment(vars={"ANDROID_NDK_HOME": install_dir})
