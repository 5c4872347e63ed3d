"""
Container biome — run build commands inside a docker container.

The container is created once per target from the target's ``container``
definition and kept alive with an idle command; every ``run`` is a
``docker exec``. The host package directory is bind-mounted at
``/workspace`` and the target's HOME cache at ``/root``, so buildpack
installs under ``/root/.cache/yb/tools`` persist across builds.
"""

from __future__ import annotations

import logging
import posixpath
import shlex
import uuid
from pathlib import Path

from ybuild.adapters.base import AMD64, ARM64, I386, Biome, Descriptor, Dirs, Invocation
from ybuild.adapters.shell.process import run_process
from ybuild.core.cancel import CancelToken
from ybuild.core.errors import ResourceError, RunError
from ybuild.core.models.manifest import ContainerDef
from ybuild.core.services.docker_common import DockerCLI

logger = logging.getLogger(__name__)

DEFAULT_IMAGE = "yourbase/yb_ubuntu:18.04"
PACKAGE_DIR = "/workspace"
HOME_DIR = "/root"
TOOLS_DIR = "/root/.cache/yb/tools"
DEFAULT_PATH = "/usr/local/sbin:/usr/local/bin:/usr/sbin:/usr/bin:/sbin:/bin"

_DOCKER_ARCH = {
    "x86_64": AMD64,
    "amd64": AMD64,
    "aarch64": ARM64,
    "arm64": ARM64,
    "i386": I386,
    "i686": I386,
    "x86": I386,
}


def docker_descriptor(docker: DockerCLI) -> Descriptor:
    """Descriptor of containers the daemon runs."""
    os_type, arch = docker.platform()
    return Descriptor(os=os_type.lower() or "linux", arch=_DOCKER_ARCH.get(arch.lower(), arch.lower()))


class ContainerBiome(Biome):
    """Biome backed by a running docker container.

    Use ``ContainerBiome.create`` rather than the constructor; it pulls,
    creates and starts the container. ``close()`` force-removes it.
    """

    def __init__(
        self,
        docker: DockerCLI,
        container_id: str,
        package_dir: str | Path,
        home_dir: str | Path,
        descriptor: Descriptor,
    ):
        self._docker = docker
        self.container_id = container_id
        self._host_package = Path(package_dir)
        self._host_home = Path(home_dir)
        self._descriptor = descriptor
        self._closed = False

    @classmethod
    def create(
        cls,
        docker: DockerCLI,
        definition: ContainerDef | None,
        *,
        package_dir: str | Path,
        home_dir: str | Path,
        network: str | None = None,
        network_alias: str | None = None,
    ) -> ContainerBiome:
        definition = definition or ContainerDef()
        image = definition.image or DEFAULT_IMAGE
        docker.ensure_image(image)

        mounts = [f"{Path(package_dir)}:{PACKAGE_DIR}", f"{Path(home_dir)}:{HOME_DIR}"]
        for mount in definition.mounts:
            src, sep, dst = mount.partition(":")
            if not sep:
                raise ResourceError(f"invalid mount {mount!r}: want SRC:DST")
            if not Path(src).is_absolute():
                src = str(Path(package_dir) / src)
            mounts.append(f"{src}:{dst}")

        name = f"yb-build-{uuid.uuid4().hex[:12]}"
        container_id = docker.create(
            image,
            name=name,
            mounts=mounts,
            env=list(definition.environment),
            ports=list(definition.ports),
            workdir=PACKAGE_DIR,
            network=network,
            network_alias=network_alias,
            labels={"io.yourbase.role": "build"},
            init=True,
            command=["tail", "-f", "/dev/null"],
        )
        biome = cls(docker, container_id, package_dir, home_dir, docker_descriptor(docker))
        try:
            docker.start(container_id)
        except ResourceError:
            biome.close()
            raise
        logger.info("Build container %s started from %s", name, image)
        return biome

    def describe(self) -> Descriptor:
        return self._descriptor

    def dirs(self) -> Dirs:
        return Dirs(package=PACKAGE_DIR, home=HOME_DIR, tools=TOOLS_DIR)

    @property
    def path_module(self):
        return posixpath

    def host_path(self, path: str) -> Path | None:
        full = posixpath.normpath(path if posixpath.isabs(path) else posixpath.join(PACKAGE_DIR, path))
        for mount_point, host_dir in ((PACKAGE_DIR, self._host_package), (HOME_DIR, self._host_home)):
            if full == mount_point:
                return host_dir
            if full.startswith(mount_point + "/"):
                return host_dir / posixpath.relpath(full, mount_point)
        return None

    def ip_address(self, network: str | None = None) -> str:
        return self._docker.ip_address(self.container_id, network)

    def base_environ(self) -> dict[str, str]:
        return {
            "HOME": HOME_DIR,
            "LOGNAME": "root",
            "USER": "root",
            "TZ": "UTC0",
            "LANG": "C.UTF-8",
            "LC_ALL": "C.UTF-8",
        }

    def run(self, invocation: Invocation, cancel: CancelToken | None = None) -> None:
        if not invocation.argv:
            raise RunError([], -1, "empty argv")
        if cancel is not None:
            cancel.check()
        workdir = invocation.dir or PACKAGE_DIR
        if not posixpath.isabs(workdir):
            workdir = posixpath.join(PACKAGE_DIR, workdir)

        env = invocation.env.environ(self.base_environ(), DEFAULT_PATH)
        argv = self._docker.exec_argv(
            self.container_id,
            invocation.argv,
            workdir=workdir,
            env=[f"{k}={env[k]}" for k in sorted(env)],
            interactive=invocation.stdin is not None,
        )
        logger.debug("container run: %s (cwd=%s)", shlex.join(invocation.argv), workdir)
        try:
            code = run_process(
                argv,
                stdin=invocation.stdin,
                stdout=invocation.stdout,
                stderr=invocation.stderr,
                cancel=cancel,
            )
        except OSError as exc:
            raise RunError(invocation.argv, 126, str(exc)) from exc
        if code != 0:
            raise RunError(invocation.argv, code)

    def close(self) -> None:
        if self._closed:
            return
        self._closed = True
        try:
            self._docker.remove(self.container_id)
        except ResourceError as exc:
            logger.warning("Could not remove build container %s: %s", self.container_id, exc)
