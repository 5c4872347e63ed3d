"""Biomes — execution environments for build steps.

Public re-exports for convenient access.
"""

from ybuild.adapters.base import Biome, Descriptor, Dirs, Invocation
from ybuild.adapters.environment import EnvBiome, ExecPrefix, NetrcBiome, inject_netrc
from ybuild.adapters.mock import FakeBiome

__all__ = [
    "Biome",
    "Descriptor",
    "Dirs",
    "EnvBiome",
    "ExecPrefix",
    "FakeBiome",
    "Invocation",
    "NetrcBiome",
    "inject_netrc",
]
