"""Buildpacks — toolchains installed into a biome on demand."""

from ybuild.buildpacks.base import Buildpack, Sys
from ybuild.buildpacks.registry import (
    BUILDPACKS,
    install_buildpack,
    install_buildpacks,
    install_order,
    known_tools,
)

__all__ = [
    "BUILDPACKS",
    "Buildpack",
    "Sys",
    "install_buildpack",
    "install_buildpacks",
    "install_order",
    "known_tools",
]
