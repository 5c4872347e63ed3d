"""
Buildpack registry — tool name → Buildpack class, plus install dispatch.

``install_buildpacks`` installs a target's toolchains in a shuffled order
so that undeclared ordering assumptions between buildpacks break loudly
instead of by accident. The shuffle is seeded from the wall clock unless
a seed is passed; the seed is logged so a failing order can be replayed.
"""

from __future__ import annotations

import logging
import random
import time
from collections.abc import Iterable

from ybuild.buildpacks.android import AndroidBuildpack, AndroidNDKBuildpack
from ybuild.buildpacks.ant import AntBuildpack
from ybuild.buildpacks.base import Buildpack, Sys
from ybuild.buildpacks.conda import Anaconda2Buildpack, Anaconda3Buildpack, PythonBuildpack
from ybuild.buildpacks.dart import DartBuildpack
from ybuild.buildpacks.flutter import FlutterBuildpack
from ybuild.buildpacks.glide import GlideBuildpack
from ybuild.buildpacks.golang import GoBuildpack
from ybuild.buildpacks.gradle import GradleBuildpack
from ybuild.buildpacks.heroku import HerokuBuildpack
from ybuild.buildpacks.maven import MavenBuildpack
from ybuild.buildpacks.nodejs import NodeBuildpack
from ybuild.buildpacks.openjdk import JavaBuildpack
from ybuild.buildpacks.protoc import ProtocBuildpack
from ybuild.buildpacks.rlang import RBuildpack
from ybuild.buildpacks.ruby import RubyBuildpack
from ybuild.buildpacks.rust import RustBuildpack
from ybuild.buildpacks.yarn import YarnBuildpack
from ybuild.core.errors import BuildpackError
from ybuild.core.models.environment import Environment
from ybuild.core.models.manifest import BuildpackSpec

logger = logging.getLogger(__name__)

BUILDPACKS: dict[str, type[Buildpack]] = {
    cls.tool: cls
    for cls in (
        GoBuildpack,
        NodeBuildpack,
        JavaBuildpack,
        MavenBuildpack,
        GradleBuildpack,
        AntBuildpack,
        ProtocBuildpack,
        YarnBuildpack,
        RustBuildpack,
        Anaconda2Buildpack,
        Anaconda3Buildpack,
        PythonBuildpack,
        DartBuildpack,
        FlutterBuildpack,
        AndroidBuildpack,
        AndroidNDKBuildpack,
        GlideBuildpack,
        HerokuBuildpack,
        RBuildpack,
        RubyBuildpack,
    )
}


def known_tools() -> list[str]:
    return sorted(BUILDPACKS)


def get_buildpack(spec: BuildpackSpec, sys: Sys) -> Buildpack:
    cls = BUILDPACKS.get(spec.tool)
    if cls is None:
        raise BuildpackError(f"unknown build pack {spec.tool!r}")
    return cls(spec, sys)


def install_order(specs: Iterable[BuildpackSpec], seed: int | None = None) -> list[BuildpackSpec]:
    """Return *specs* shuffled with *seed* (wall clock when None)."""
    if seed is None:
        seed = time.time_ns()
    ordered = list(specs)
    random.Random(seed).shuffle(ordered)
    logger.debug("Buildpack install order (seed=%d): %s", seed, ", ".join(map(str, ordered)))
    return ordered


def install_buildpack(spec: BuildpackSpec, sys: Sys) -> Environment:
    """Install one toolchain and return its overlay."""
    buildpack = get_buildpack(spec, sys)
    install_dir = buildpack.install()
    return buildpack.setup(install_dir)


def merge_buildpack_envs(results: list[tuple[BuildpackSpec, Environment]]) -> Environment:
    """Merge overlays, refusing two buildpacks that disagree on a variable.

    Raises:
        BuildpackError: Two buildpacks set the same variable to different values.
    """
    owners: dict[str, tuple[BuildpackSpec, str]] = {}
    merged = Environment()
    for spec, env in results:
        for key, value in env.vars.items():
            if key in owners and owners[key][1] != value:
                other = owners[key][0]
                raise BuildpackError(f"buildpacks {other} and {spec} both set {key} to different values")
            owners.setdefault(key, (spec, value))
        merged = merged.merge(env)
    return merged


def install_buildpacks(
    sys: Sys,
    specs: Iterable[BuildpackSpec],
    seed: int | None = None,
) -> Environment:
    """Install every spec in randomized order and return the merged overlay."""
    results = [(spec, install_buildpack(spec, sys)) for spec in install_order(specs, seed)]
    return merge_buildpack_envs(results)
