"""
Build use case — load the manifest and build the requested targets.

The vertical slice behind ``yb build``: find ``.yourbase.yml``, resolve
the build order, run each target through the executor and report what
happened. Errors are captured on the result rather than raised so the
CLI can print the banner, the cause chain and the timing table in one
place.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from pathlib import Path

from ybuild.core.config.loader import DEFAULT_TARGET, load_manifest
from ybuild.core.engine.executor import BuildOptions, TargetExecutor
from ybuild.core.engine.order import build_order
from ybuild.core.errors import CancelError, ManifestError, RunError, YbError, error_chain
from ybuild.core.models.manifest import Manifest

logger = logging.getLogger(__name__)

EXIT_OK = 0
EXIT_COMMAND_FAILED = 1
EXIT_ERROR = 2
EXIT_CANCELLED = 130


def exit_code_for(error: BaseException | None) -> int:
    """Process exit status for a build that ended with *error*."""
    if error is None:
        return EXIT_OK
    if isinstance(error, RunError):
        return EXIT_COMMAND_FAILED
    if isinstance(error, CancelError):
        return EXIT_CANCELLED
    return EXIT_ERROR


@dataclass
class BuildResult:
    """Result of building one or more targets."""

    manifest: Manifest | None = None
    requested: list[str] = field(default_factory=list)
    built: list[str] = field(default_factory=list)
    error: YbError | None = None

    @property
    def ok(self) -> bool:
        return self.error is None

    @property
    def exit_code(self) -> int:
        return exit_code_for(self.error)

    def to_dict(self) -> dict:
        result: dict = {
            "ok": self.ok,
            "requested": self.requested,
            "built": self.built,
        }
        if self.error is not None:
            result["error"] = error_chain(self.error)
        return result


def load_package(manifest_path: Path | None = None) -> Manifest:
    """Load the manifest at *manifest_path*, or the nearest one above cwd."""
    return load_manifest(manifest_path)


def run_build(
    targets: list[str] | None = None,
    manifest_path: Path | None = None,
    options: BuildOptions | None = None,
) -> BuildResult:
    """Build *targets* (``default`` when empty) and their prerequisites.

    Args:
        targets: Target names requested on the command line.
        manifest_path: Optional explicit path to ``.yourbase.yml``.
        options: Invocation options; defaults are used when None.

    Returns:
        BuildResult; ``error`` holds the first failure, unchanged.
    """
    result = BuildResult(requested=list(targets or [DEFAULT_TARGET]))
    options = options or BuildOptions()

    try:
        manifest = load_package(manifest_path)
        result.manifest = manifest
        executor = TargetExecutor(manifest, options)
        ordered = build_order(manifest.targets, result.requested)
        for name in result.requested:
            # Prerequisites without the environment build with their default one.
            if not manifest.targets[name].has_environment(options.env_name):
                raise ManifestError(f"target {name}: unknown environment {options.env_name!r}")
        for target in ordered:
            options.cancel.check()
            logger.info("Building target %s", target.name)
            executor.run_target(target)
            result.built.append(target.name)
    except YbError as e:
        result.error = e

    return result
