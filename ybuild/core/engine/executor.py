"""
Engine executor — turns targets into executed commands.

For one target the executor:

    validate commands → provision biome → inject netrc → install buildpacks (shuffled)
    → start resource containers → expand environment → wrap biome
    → run commands in order, tracking ``cd`` locally

Teardown (resource containers, build container, network) always runs and
never consults the cancel token, so an interrupted build still cleans up.
The first error is re-raised unchanged.

``prepare_target`` is the provisioning half on its own; ``yb run`` and
``yb exec`` use it to get a ready biome without running the target's
commands.
"""

from __future__ import annotations

import contextlib
import logging
from collections.abc import Iterator, Mapping
from dataclasses import dataclass, field
from enum import StrEnum
from typing import IO, Any

from ybuild.adapters.base import Biome, Invocation
from ybuild.adapters.containers.docker import ContainerBiome, docker_descriptor
from ybuild.adapters.environment import EnvBiome, ExecPrefix, inject_netrc
from ybuild.adapters.remote.client import RemoteBiome
from ybuild.adapters.shell.local import LocalBiome, host_descriptor
from ybuild.buildpacks.base import Sys
from ybuild.buildpacks.registry import install_buildpacks
from ybuild.core.cancel import CancelToken
from ybuild.core.config.datadirs import DataDirs
from ybuild.core.config.netrc import cat_netrc, default_netrc_files
from ybuild.core.engine.commands import Command, parse_commands, validate_root
from ybuild.core.engine.expansion import ExpansionContext, expand_env
from ybuild.core.errors import ValidationError, YbError
from ybuild.core.models.environment import Environment
from ybuild.core.models.manifest import Manifest, Target
from ybuild.core.observability.timing import TimingRecorder
from ybuild.core.services.docker_common import DockerCLI
from ybuild.core.services.downloads import Downloader
from ybuild.core.services.resources import ResourceManager

logger = logging.getLogger(__name__)

BUILD_CONTAINER_LABEL = "build"


class Mode(StrEnum):
    """Where a target's commands run."""

    HOST = "host"
    CONTAINER = "container"
    AUTO = "auto"


@dataclass
class BuildOptions:
    """Everything about an invocation that isn't in the manifest.

    ``docker`` is the client used for the build container and resource
    containers; None disables docker entirely. ``seed`` fixes the
    buildpack install order. ``netrc_files`` are appended to the netrc
    files found in the XDG config directories.
    """

    mode: Mode = Mode.AUTO
    env_name: str | None = None
    env: Environment = field(default_factory=Environment)
    reuse_containers: bool = False
    deps_only: bool = False
    exec_prefix: list[str] = field(default_factory=list)
    remote_url: str | None = None
    seed: int | None = None
    stdout: IO[Any] | None = None
    stderr: IO[Any] | None = None
    cancel: CancelToken = field(default_factory=CancelToken)
    recorder: TimingRecorder = field(default_factory=TimingRecorder)
    data_dirs: DataDirs = field(default_factory=DataDirs)
    downloader: Downloader | None = None
    docker: DockerCLI | None = field(default_factory=DockerCLI)
    environ: Mapping[str, str] | None = None
    netrc_files: list[str] = field(default_factory=list)

    def get_downloader(self) -> Downloader:
        if self.downloader is None:
            self.downloader = Downloader(self.data_dirs.downloads())
        return self.downloader


@dataclass
class PreparedTarget:
    """A provisioned target: a biome carrying its full environment."""

    target: Target
    biome: Biome
    env: Environment
    container_ips: dict[str, str] = field(default_factory=dict)

    @property
    def run_dir(self) -> str:
        return self.target.root


class TargetExecutor:
    """Runs targets of one manifest with one set of options."""

    def __init__(self, manifest: Manifest, options: BuildOptions | None = None):
        self.manifest = manifest
        self.options = options or BuildOptions()

    def run_target(self, target: Target) -> None:
        """Provision *target* and run its commands."""
        root = validate_root(target.root)
        commands = parse_commands(target.commands, root)
        with self.options.recorder.span(target.name):
            with self.prepare_target(target) as prepared:
                if self.options.deps_only:
                    logger.info("Target %s: dependencies ready, skipping commands", target.name)
                    return
                biome = prepared.biome
                if self.options.exec_prefix:
                    biome = ExecPrefix(biome, self.options.exec_prefix)
                self.run_commands(biome, commands, root)

    def run_commands(self, biome: Biome, commands: list[Command], root: str = "") -> None:
        """Run validated *commands* one at a time, stopping at the first failure."""
        work_dir = root
        for command in commands:
            self.options.cancel.check()
            if command.is_chdir:
                work_dir = biome.join_path(work_dir, command.chdir) if work_dir else command.chdir
                work_dir = biome.clean_path(work_dir)
                logger.debug("cd %s", work_dir)
                continue
            with self.options.recorder.span(command.text):
                biome.run(
                    Invocation(
                        argv=list(command.argv),
                        dir=work_dir,
                        stdout=self.options.stdout,
                        stderr=self.options.stderr,
                    ),
                    self.options.cancel,
                )

    @contextlib.contextmanager
    def prepare_target(self, target: Target) -> Iterator[PreparedTarget]:
        """Provision *target*'s biome, toolchains, containers and environment.

        Everything acquired here is released when the block exits.
        """
        opts = self.options
        docker = None if target.host_only else opts.docker
        resources = ResourceManager(
            docker,
            package_dir=self.manifest.package_dir,
            target=target.name,
            reuse=opts.reuse_containers,
            environ=opts.environ,
        )
        netrc = cat_netrc(default_netrc_files(opts.environ), opts.netrc_files)
        biome: Biome | None = None
        try:
            with opts.recorder.span("setup"):
                biome = self._new_biome(target, docker, resources)
                biome = inject_netrc(biome, netrc, opts.cancel)

                with opts.recorder.span("buildpacks"):
                    sys_ = Sys(
                        biome=biome,
                        downloader=opts.get_downloader(),
                        stdout=opts.stdout,
                        stderr=opts.stderr,
                        cancel=opts.cancel,
                    )
                    tool_env = install_buildpacks(sys_, target.buildpacks, opts.seed)

                if target.containers:
                    with opts.recorder.span("containers"):
                        resources.start(target.containers, opts.cancel)

                ips = resources.ips
                target_env = Environment(vars=expand_env(target.env_template(opts.env_name), ExpansionContext(ips)))
                env = tool_env.merge(target_env, opts.env)

            yield PreparedTarget(target=target, biome=EnvBiome(biome, env), env=env, container_ips=ips)
        finally:
            with opts.recorder.span("teardown"):
                _teardown(biome, resources)

    def _new_biome(self, target: Target, docker: DockerCLI | None, resources: ResourceManager) -> Biome:
        opts = self.options
        pkg = self.manifest.package_dir

        if opts.remote_url:
            remote = RemoteBiome(opts.remote_url)
            try:
                remote.upload_package(pkg, opts.cancel)
            except BaseException:
                remote.close()
                raise
            return remote

        if self._use_container(target):
            if docker is None:
                raise ValidationError(f"target {target.name}: container build requested but docker is disabled")
            home = opts.data_dirs.build_home(pkg, target.name, docker_descriptor(docker))
            network = resources.ensure_network()
            label = (target.container.label if target.container else "") or BUILD_CONTAINER_LABEL
            container = ContainerBiome.create(
                docker,
                target.container,
                package_dir=pkg,
                home_dir=home,
                network=network,
                network_alias=label,
            )
            try:
                resources.register(label, container.ip_address(network))
            except BaseException:
                container.close()
                raise
            return container

        home = opts.data_dirs.build_home(pkg, target.name, host_descriptor())
        return LocalBiome(pkg, home, opts.data_dirs.tools())

    def _use_container(self, target: Target) -> bool:
        mode = self.options.mode
        if mode == Mode.HOST or target.host_only:
            return False
        if mode == Mode.CONTAINER:
            return True
        return target.wants_container


def _teardown(biome: Biome | None, resources: ResourceManager) -> None:
    # Runs after cancellation too; nothing here consults the build token.
    if biome is not None:
        try:
            biome.close()
        except (YbError, OSError) as exc:
            logger.warning("Clean up environment: %s", exc)
    resources.teardown()
