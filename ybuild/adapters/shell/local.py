"""
Host biome — run build commands directly on this machine.

The child environment is rebuilt from scratch rather than inherited:
only HOME, the user identity, a fixed locale and timezone, and the
overlay reach the process. PATH falls back to the invoking process's
PATH so system tools stay reachable.
"""

from __future__ import annotations

import getpass
import logging
import os
import platform
import shutil
import sys
from pathlib import Path

from ybuild.adapters.base import (
    AMD64,
    ARM64,
    I386,
    LINUX,
    MACOS,
    WINDOWS,
    Biome,
    Descriptor,
    Dirs,
    Invocation,
    abs_path,
)
from ybuild.adapters.shell.process import run_process
from ybuild.core.cancel import CancelToken
from ybuild.core.errors import RunError

logger = logging.getLogger(__name__)

_ARCH_ALIASES = {
    "x86_64": AMD64,
    "amd64": AMD64,
    "aarch64": ARM64,
    "arm64": ARM64,
    "i386": I386,
    "i686": I386,
    "x86": I386,
}


def host_descriptor() -> Descriptor:
    """Describe the machine this process runs on."""
    if sys.platform.startswith("linux"):
        os_name = LINUX
    elif sys.platform == "darwin":
        os_name = MACOS
    elif sys.platform in ("win32", "cygwin"):
        os_name = WINDOWS
    else:
        os_name = sys.platform
    machine = platform.machine().lower()
    return Descriptor(os=os_name, arch=_ARCH_ALIASES.get(machine, machine))


class LocalBiome(Biome):
    """Biome backed by the host operating system.

    Args:
        package_dir: Absolute path of the package checkout.
        home_dir: Per-target HOME directory.
        tools_dir: Shared buildpack install root.
    """

    def __init__(self, package_dir: str | Path, home_dir: str | Path, tools_dir: str | Path):
        self._dirs = Dirs(
            package=os.path.abspath(package_dir),
            home=os.path.abspath(home_dir),
            tools=os.path.abspath(tools_dir),
        )
        self._descriptor = host_descriptor()

    def describe(self) -> Descriptor:
        return self._descriptor

    def dirs(self) -> Dirs:
        return self._dirs

    def host_path(self, path: str) -> Path | None:
        return Path(abs_path(self, path))

    def base_environ(self) -> dict[str, str]:
        """Variables every host process starts from, before any overlay."""
        user = _current_user()
        env = {
            "HOME": self._dirs.home,
            "LOGNAME": os.environ.get("LOGNAME", user),
            "USER": os.environ.get("USER", user),
            "TZ": "UTC0",
        }
        if self._descriptor.os == MACOS:
            env["LANG"] = "C"
            env["LC_CTYPE"] = "UTF-8"
        else:
            env["LANG"] = "C.UTF-8"
            env["LC_ALL"] = "C.UTF-8"
        if "NO_COLOR" in os.environ:
            env["NO_COLOR"] = os.environ["NO_COLOR"]
        if self._descriptor.os == WINDOWS:
            for key in ("SYSTEMROOT", "COMSPEC", "PATHEXT", "TEMP", "TMP"):
                if key in os.environ:
                    env[key] = os.environ[key]
        return env

    def run(self, invocation: Invocation, cancel: CancelToken | None = None) -> None:
        if not invocation.argv:
            raise RunError([], -1, "empty argv")
        if cancel is not None:
            cancel.check()

        cwd = abs_path(self, invocation.dir) if invocation.dir else self._dirs.package
        default_path = os.environ.get("PATH", os.defpath)
        env = invocation.env.environ(self.base_environ(), default_path, os.pathsep)

        program = _look_path(invocation.argv[0], env["PATH"], cwd)
        if program is None:
            raise RunError(invocation.argv, 127, "executable file not found in PATH")
        argv = [program, *invocation.argv[1:]]

        logger.debug("host run: %s (cwd=%s)", invocation.argv, cwd)
        try:
            code = run_process(
                argv,
                cwd=cwd,
                env=env,
                stdin=invocation.stdin,
                stdout=invocation.stdout,
                stderr=invocation.stderr,
                cancel=cancel,
            )
        except OSError as exc:
            raise RunError(invocation.argv, 126, str(exc)) from exc
        if code != 0:
            raise RunError(invocation.argv, code)


def _look_path(program: str, path: str, cwd: str) -> str | None:
    # Programs with a separator are relative to the working directory, not PATH.
    if os.sep in program or (os.altsep and os.altsep in program):
        candidate = program if os.path.isabs(program) else os.path.join(cwd, program)
        return candidate if os.access(candidate, os.X_OK) else None
    entries = [e if os.path.isabs(e) else os.path.join(cwd, e) for e in path.split(os.pathsep) if e]
    return shutil.which(program, path=os.pathsep.join(entries))


def _current_user() -> str:
    try:
        return getpass.getuser()
    except (KeyError, OSError):
        return "yb"
