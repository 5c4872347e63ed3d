"""
Resource manager — auxiliary containers a target needs while it builds.

Each entry of a target's ``containers`` map becomes one ``Resource`` that
walks a small state machine:

    PENDING → CREATING → RUNNING → READY → STOPPED → REMOVED

``RUNNING → READY`` is guarded by the optional port wait check. Resources
whose address comes from ``YB_CONTAINER_<LABEL>_IP`` go straight to
``EXTERNAL`` and are never touched by docker.

All containers of one build share a bridge network created on first use.
The build container itself may join the same network and register its
address, so ``{{ .Containers.IP "…" }}`` sees every container of the build.

Teardown is the one place in ybuild that swallows errors: failures are
logged as warnings so the remaining containers still get removed.
"""

from __future__ import annotations

import logging
import os
import re
import shlex
import socket
import time
from collections.abc import Callable, Mapping
from dataclasses import dataclass
from enum import StrEnum
from pathlib import Path

from ybuild.core.cancel import CancelToken, detached
from ybuild.core.config.datadirs import package_hash
from ybuild.core.errors import CancelError, ResourceError
from ybuild.core.models.manifest import ContainerDef
from ybuild.core.services.docker_common import DockerCLI

logger = logging.getLogger(__name__)

IP_OVERRIDE_PREFIX = "YB_CONTAINER_"
IP_OVERRIDE_SUFFIX = "_IP"
PORT_WAIT_INTERVAL = 1.0
MANAGED_LABEL = "io.yourbase.role"

_NAME_UNSAFE = re.compile(r"[^A-Za-z0-9_.-]+")
_ENV_UNSAFE = re.compile(r"[^A-Z0-9_]+")


class ContainerState(StrEnum):
    """Lifecycle of one auxiliary container."""

    PENDING = "pending"
    CREATING = "creating"
    RUNNING = "running"
    READY = "ready"
    STOPPED = "stopped"
    REMOVED = "removed"
    EXTERNAL = "external"


@dataclass
class Resource:
    """One auxiliary container and what is known about it."""

    label: str
    definition: ContainerDef
    state: ContainerState = ContainerState.PENDING
    name: str = ""
    container_id: str = ""
    ip: str = ""
    reused: bool = False

    @property
    def owned(self) -> bool:
        """True if teardown is responsible for removing the container."""
        return bool(self.container_id) and not self.reused and self.state != ContainerState.EXTERNAL


def ip_override_var(label: str) -> str:
    """Name of the variable that pre-provisions *label*'s address."""
    return IP_OVERRIDE_PREFIX + _ENV_UNSAFE.sub("_", label.upper()) + IP_OVERRIDE_SUFFIX


def container_name(*parts: str) -> str:
    return "-".join(_NAME_UNSAFE.sub("_", p) for p in parts if p)


class ResourceManager:
    """Start, track and tear down the auxiliary containers of one build.

    Args:
        docker: Docker client, or None when docker is unavailable. Without
            docker every container must have an address override.
        package_dir: Package the build belongs to; names reused containers.
        target: Target name; names reused containers.
        reuse: Keep containers and the network alive after teardown and
            adopt them on the next build.
        environ: Environment consulted for ``YB_CONTAINER_<LABEL>_IP``.
        connect: TCP connect function used by the port wait check.
        port_wait_interval: Seconds between port wait attempts.
    """

    def __init__(
        self,
        docker: DockerCLI | None,
        *,
        package_dir: str | Path = ".",
        target: str = "",
        reuse: bool = False,
        environ: Mapping[str, str] | None = None,
        connect: Callable[..., socket.socket] = socket.create_connection,
        port_wait_interval: float = PORT_WAIT_INTERVAL,
    ):
        self._docker = docker
        self._pkg_hash = package_hash(package_dir)
        self._target = target
        self.reuse = reuse
        self._environ = os.environ if environ is None else environ
        self._connect = connect
        self._interval = port_wait_interval
        self._network: str | None = None
        self._network_created = False
        self.resources: dict[str, Resource] = {}
        self._extra_ips: dict[str, str] = {}

    # ── Addresses ───────────────────────────────────────────────

    @property
    def ips(self) -> dict[str, str]:
        """Label → IPv4 of every container that has an address."""
        found = {label: r.ip for label, r in self.resources.items() if r.ip}
        found.update(self._extra_ips)
        return found

    def register(self, label: str, ip: str) -> None:
        """Make a container the manager didn't start visible to expansion."""
        if label in self.resources:
            raise ResourceError(f"container label {label!r} is already in use")
        self._extra_ips[label] = ip

    # ── Network ─────────────────────────────────────────────────

    @property
    def network(self) -> str | None:
        return self._network

    def ensure_network(self) -> str:
        """Return the build network, creating it on first call."""
        if self._network is not None:
            return self._network
        docker = self._require_docker("a build network is required")
        if self.reuse:
            name = container_name("yb", self._pkg_hash)
            if docker.network_exists(name):
                logger.debug("Reusing network %s", name)
                self._network = name
                return name
        else:
            name = container_name("yb", os.urandom(8).hex())
        docker.network_create(name)
        logger.info("Created network %s", name)
        self._network = name
        self._network_created = True
        return name

    # ── Startup ─────────────────────────────────────────────────

    def start(self, containers: Mapping[str, ContainerDef], cancel: CancelToken | None = None) -> dict[str, str]:
        """Bring every container in *containers* to READY (or EXTERNAL).

        On failure the containers already started by this call are torn
        down before the error propagates.

        Returns:
            The label → IP map, including previously registered addresses.
        """
        cancel = cancel or detached()
        started: list[Resource] = []
        try:
            for label, definition in containers.items():
                cancel.check()
                if label in self.resources or label in self._extra_ips:
                    raise ResourceError(f"container label {label!r} is already in use")
                resource = Resource(label=label, definition=definition)
                self.resources[label] = resource
                started.append(resource)
                self._start_one(resource, cancel)
        except BaseException:
            self._teardown(reversed(started))
            raise
        return self.ips

    def _start_one(self, resource: Resource, cancel: CancelToken) -> None:
        override = self._environ.get(ip_override_var(resource.label), "").strip()
        if override:
            logger.info("Using %s for container %s (from %s)", override, resource.label, ip_override_var(resource.label))
            resource.ip = override
            self._transition(resource, ContainerState.EXTERNAL)
            return

        docker = self._require_docker(f"no address found for {resource.label}")
        definition = resource.definition
        if not definition.image:
            raise ResourceError(f"container {resource.label}: no image specified")
        network = self.ensure_network()

        if self.reuse:
            resource.name = container_name("yb", self._pkg_hash, self._target, resource.label)
            if self._adopt(docker, resource, network):
                self._wait_ready(resource, cancel)
                return
        else:
            resource.name = container_name("yb", network.removeprefix("yb-")[:8], resource.label)

        self._transition(resource, ContainerState.CREATING)
        try:
            docker.ensure_image(definition.image)
            resource.container_id = docker.create(
                definition.image,
                name=resource.name,
                mounts=list(definition.mounts),
                env=list(definition.environment),
                ports=list(definition.ports),
                workdir=definition.workdir or None,
                network=network,
                network_alias=resource.label,
                labels={MANAGED_LABEL: "resource", "io.yourbase.label": resource.label},
                command=shlex.split(definition.command) if definition.command else None,
            )
            docker.start(resource.container_id)
            self._transition(resource, ContainerState.RUNNING)
            resource.ip = docker.ip_address(resource.container_id, network)
        except ResourceError as exc:
            raise ResourceError(f"start container {resource.label}: {exc}") from exc
        logger.info("Started container %s (%s) at %s", resource.label, definition.image, resource.ip)
        self._wait_ready(resource, cancel)

    def _adopt(self, docker: DockerCLI, resource: Resource, network: str) -> bool:
        status = docker.status(resource.name)
        if status is None:
            return False
        try:
            if status != "running":
                logger.info("Restarting reusable container %s (was %s)", resource.name, status)
                docker.start(resource.name)
            resource.container_id = resource.name
            resource.reused = True
            self._transition(resource, ContainerState.RUNNING)
            resource.ip = docker.ip_address(resource.name, network)
        except ResourceError as exc:
            raise ResourceError(f"reuse container {resource.label}: {exc}") from exc
        logger.info("Reusing container %s at %s", resource.name, resource.ip)
        return True

    def _wait_ready(self, resource: Resource, cancel: CancelToken) -> None:
        check = resource.definition.port_wait_check
        if check is None:
            self._transition(resource, ContainerState.READY)
            return

        if check.local_port_map:
            host, port = "127.0.0.1", check.local_port_map
        else:
            host, port = resource.ip, check.port
        logger.info("Waiting up to %gs for %s to listen on %s:%d", check.timeout, resource.label, host, port)

        deadline = time.monotonic() + check.timeout
        while True:
            cancel.check()
            remaining = deadline - time.monotonic()
            try:
                conn = self._connect((host, port), timeout=max(min(self._interval, remaining), 0.1))
            except OSError as exc:
                last_error = exc
            else:
                conn.close()
                self._transition(resource, ContainerState.READY)
                return
            if self._docker is not None and resource.container_id:
                status = self._docker.status(resource.container_id)
                if status not in (None, "running", "created", "restarting"):
                    raise ResourceError(f"container {resource.label} {status} before port {port} opened")
            if time.monotonic() + self._interval > deadline:
                raise ResourceError(
                    f"container {resource.label}: port {port} not open after {check.timeout:g}s: {last_error}"
                )
            if cancel.wait(self._interval):
                raise CancelError(cancel.reason or "cancelled")

    # ── Teardown ────────────────────────────────────────────────

    def teardown(self) -> None:
        """Remove owned containers and the network. Never raises."""
        self._teardown(reversed(list(self.resources.values())))
        if self._network and self._network_created and not self.reuse and self._docker is not None:
            try:
                self._docker.network_remove(self._network)
                logger.debug("Removed network %s", self._network)
            except ResourceError as exc:
                logger.warning("Could not remove network %s: %s", self._network, exc)
        self._network = None
        self._network_created = False

    def _teardown(self, resources) -> None:
        for resource in resources:
            if not resource.owned or self.reuse or self._docker is None:
                continue
            if resource.state in (ContainerState.RUNNING, ContainerState.READY):
                try:
                    self._docker.stop(resource.container_id)
                    self._transition(resource, ContainerState.STOPPED)
                except ResourceError as exc:
                    logger.warning("Could not stop container %s: %s", resource.label, exc)
            if resource.state == ContainerState.REMOVED:
                continue
            try:
                self._docker.remove(resource.container_id)
                self._transition(resource, ContainerState.REMOVED)
            except ResourceError as exc:
                logger.warning("Could not remove container %s: %s", resource.label, exc)

    def __enter__(self) -> ResourceManager:
        return self

    def __exit__(self, *exc: object) -> None:
        self.teardown()

    # ── Helpers ─────────────────────────────────────────────────

    def _require_docker(self, what: str) -> DockerCLI:
        if self._docker is None:
            raise ResourceError(f"docker disabled but {what}")
        return self._docker

    @staticmethod
    def _transition(resource: Resource, state: ContainerState) -> None:
        logger.debug("container %s: %s → %s", resource.label, resource.state.value, state.value)
        resource.state = state
