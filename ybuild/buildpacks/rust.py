"""Rust toolchains installed through rustup-init."""

from __future__ import annotations

from ybuild.adapters.base import AMD64, ARM64, I386, LINUX, MACOS
from ybuild.buildpacks.base import InstallerBuildpack
from ybuild.core.models.environment import Environment

RUSTUP_DIST = "https://static.rust-lang.org/rustup/dist"

_OS = {LINUX: "unknown-linux-gnu", MACOS: "apple-darwin"}
_ARCH = {AMD64: "x86_64", ARM64: "aarch64", I386: "i686"}


class RustBuildpack(InstallerBuildpack):
    tool = "rust"

    def download_url(self) -> str:
        desc = self.biome.describe()
        if desc.os not in _OS:
            raise self.unsupported("operating system")
        if desc.arch not in _ARCH:
            raise self.unsupported("architecture")
        return f"{RUSTUP_DIST}/{_ARCH[desc.arch]}-{_OS[desc.os]}/rustup-init"

    def _env(self, install_dir: str) -> Environment:
        return Environment(
            vars={"CARGO_HOME": install_dir, "RUSTUP_HOME": install_dir},
            prepend_path=(self.biome.join_path(install_dir, "bin"),),
        )

    def _run_installer(self, install_dir: str) -> None:
        installer = f"{install_dir}.rustup-init"
        self.fetch_to_biome(self.download_url(), installer, mode=0o755)
        self.run(
            [
                installer,
                "-y",
                "--no-modify-path",
                "--profile",
                "minimal",
                "--default-toolchain",
                self.version,
            ],
            env=self._env(install_dir),
        )

    def setup(self, install_dir: str) -> Environment:
        return self._env(install_dir)
