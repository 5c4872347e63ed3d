"""
Domain models for ybuild.

    from ybuild.core.models import Manifest, Target, BuildpackSpec, Environment
"""

from ybuild.core.models.environment import Environment
from ybuild.core.models.manifest import (
    BuildpackSpec,
    ContainerDef,
    Manifest,
    PortWaitCheck,
    Target,
)

__all__ = [
    "BuildpackSpec",
    "ContainerDef",
    "Environment",
    "Manifest",
    "PortWaitCheck",
    "Target",
]
