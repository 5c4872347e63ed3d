"""Docker shared helpers — the docker CLI as a typed client.

Everything docker-related goes through the ``docker`` binary, never the
Engine API. ``DockerCLI._call`` is the single seam that spawns the
binary; tests subclass it to script responses.
"""

from __future__ import annotations

import json
import logging
import subprocess
from pathlib import Path
from typing import Any

from ybuild.core.errors import ResourceError

logger = logging.getLogger(__name__)


def run_docker(
    *args: str,
    cwd: Path | None = None,
    timeout: int = 120,
    binary: str = "docker",
) -> subprocess.CompletedProcess[str]:
    """Run a docker command and return the result."""
    return subprocess.run(
        [binary, *args],
        cwd=str(cwd) if cwd else None,
        capture_output=True,
        text=True,
        timeout=timeout,
    )


class DockerCLI:
    """Docker operations needed by the container biome and resource manager."""

    binary = "docker"

    def _call(self, args: list[str], timeout: int) -> subprocess.CompletedProcess[str]:
        return run_docker(*args, timeout=timeout, binary=self.binary)

    def _run(self, *args: str, timeout: int = 120) -> str:
        logger.debug("docker %s", " ".join(args))
        try:
            result = self._call(list(args), timeout)
        except FileNotFoundError as exc:
            raise ResourceError("docker CLI not found on PATH") from exc
        except subprocess.TimeoutExpired as exc:
            raise ResourceError(f"docker {args[0]}: timed out after {timeout}s") from exc
        if result.returncode != 0:
            detail = (result.stderr or result.stdout or "").strip()
            raise ResourceError(f"docker {args[0]}: {detail or f'exit status {result.returncode}'}")
        return result.stdout.strip()

    def _succeeds(self, *args: str, timeout: int = 30) -> bool:
        try:
            self._run(*args, timeout=timeout)
        except ResourceError:
            return False
        return True

    # ── Daemon ──────────────────────────────────────────────────

    def available(self) -> bool:
        """True if the CLI exists and the daemon answers."""
        return self._succeeds("version", "--format", "{{.Server.Version}}", timeout=15)

    def platform(self) -> tuple[str, str]:
        """Return the daemon's ``(os, architecture)`` as docker reports them."""
        out = self._run("info", "--format", "{{.OSType}}/{{.Architecture}}")
        os_type, _, arch = out.partition("/")
        return os_type.strip(), arch.strip()

    # ── Images ──────────────────────────────────────────────────

    def image_exists(self, image: str) -> bool:
        return self._succeeds("image", "inspect", "--format", "{{.Id}}", image)

    def pull(self, image: str) -> None:
        logger.info("Pulling image %s", image)
        self._run("pull", "--quiet", image, timeout=1800)

    def ensure_image(self, image: str) -> None:
        if not self.image_exists(image):
            self.pull(image)

    # ── Containers ──────────────────────────────────────────────

    def create(
        self,
        image: str,
        *,
        name: str | None = None,
        mounts: list[str] | None = None,
        env: list[str] | None = None,
        ports: list[str] | None = None,
        workdir: str | None = None,
        network: str | None = None,
        network_alias: str | None = None,
        labels: dict[str, str] | None = None,
        init: bool = False,
        command: list[str] | None = None,
    ) -> str:
        """Create (but don't start) a container and return its ID."""
        args = ["create"]
        if name:
            args += ["--name", name]
        if init:
            args.append("--init")
        for mount in mounts or []:
            args += ["--volume", mount]
        for pair in env or []:
            args += ["--env", pair]
        for port in ports or []:
            args += ["--publish", port]
        if workdir:
            args += ["--workdir", workdir]
        if network:
            args += ["--network", network]
            if network_alias:
                args += ["--network-alias", network_alias]
        for key, value in (labels or {}).items():
            args += ["--label", f"{key}={value}"]
        args.append(image)
        args += command or []
        return self._run(*args, timeout=300)

    def start(self, container: str) -> None:
        self._run("start", container, timeout=300)

    def stop(self, container: str, grace: int = 10) -> None:
        self._run("stop", "--time", str(grace), container, timeout=grace + 60)

    def remove(self, container: str) -> None:
        self._run("rm", "--force", "--volumes", container, timeout=120)

    def inspect(self, container: str) -> dict[str, Any]:
        out = self._run("container", "inspect", container)
        try:
            data = json.loads(out)
        except json.JSONDecodeError as exc:
            raise ResourceError(f"docker inspect {container}: invalid JSON") from exc
        if not data:
            raise ResourceError(f"docker inspect {container}: no such container")
        return data[0]

    def status(self, container: str) -> str | None:
        """Return the container state (``running``, ``exited``, …) or None if absent."""
        try:
            return self._run("container", "inspect", "--format", "{{.State.Status}}", container)
        except ResourceError:
            return None

    def ip_address(self, container: str, network: str | None = None) -> str:
        """IPv4 address of *container*, preferring the given network."""
        settings = self.inspect(container).get("NetworkSettings") or {}
        networks = settings.get("Networks") or {}
        if network and networks.get(network, {}).get("IPAddress"):
            return networks[network]["IPAddress"]
        if settings.get("IPAddress"):
            return settings["IPAddress"]
        for net in networks.values():
            if net.get("IPAddress"):
                return net["IPAddress"]
        raise ResourceError(f"container {container} has no IPv4 address")

    def exec_argv(
        self,
        container: str,
        argv: list[str],
        *,
        workdir: str,
        env: list[str],
        interactive: bool = False,
    ) -> list[str]:
        """Build the ``docker exec`` command line that runs *argv* in *container*."""
        args = [self.binary, "exec"]
        if interactive:
            args.append("--interactive")
        args += ["--workdir", workdir]
        for pair in env:
            args += ["--env", pair]
        # ``env --`` resolves argv[0] against the PATH passed above.
        return [*args, container, "env", "--", *argv]

    # ── Networks ────────────────────────────────────────────────

    def network_exists(self, name: str) -> bool:
        return self._succeeds("network", "inspect", "--format", "{{.Id}}", name)

    def network_create(self, name: str) -> None:
        self._run("network", "create", "--driver", "bridge", name)

    def network_remove(self, name: str) -> None:
        self._run("network", "rm", name)
