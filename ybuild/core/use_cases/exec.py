"""
Exec use case — run the manifest's ``exec`` block.

The ``exec`` block describes how to run the package rather than build it:
runtime toolchains, service containers, named environments and the
commands that start it. ``--env-name`` picks one of the environments; it
is layered over ``default``.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from pathlib import Path

from ybuild.adapters.environment import ExecPrefix
from ybuild.core.engine.commands import parse_commands, validate_root
from ybuild.core.engine.executor import BuildOptions, TargetExecutor
from ybuild.core.errors import ManifestError, YbError, error_chain
from ybuild.core.use_cases.build import exit_code_for, load_package

logger = logging.getLogger(__name__)


@dataclass
class ExecResult:
    """Result of running the exec block."""

    environment: str = "default"
    error: YbError | None = None

    @property
    def ok(self) -> bool:
        return self.error is None

    @property
    def exit_code(self) -> int:
        return exit_code_for(self.error)

    def to_dict(self) -> dict:
        result: dict = {"environment": self.environment, "ok": self.ok}
        if self.error is not None:
            result["error"] = error_chain(self.error)
        return result


def run_exec(
    manifest_path: Path | None = None,
    options: BuildOptions | None = None,
) -> ExecResult:
    """Provision the exec environment and run its commands."""
    options = options or BuildOptions()
    result = ExecResult(environment=options.env_name or "default")

    try:
        manifest = load_package(manifest_path)
        target = manifest.exec
        if target is None:
            raise ManifestError("no exec block in manifest")
        if not target.has_environment(options.env_name):
            raise ManifestError(f"exec: unknown environment {options.env_name!r}")
        root = validate_root(target.root)
        commands = parse_commands(target.commands, root)
        if not commands:
            raise ManifestError("exec: no commands")

        executor = TargetExecutor(manifest, options)
        with options.recorder.span("exec"):
            with executor.prepare_target(target) as prepared:
                biome = prepared.biome
                if options.exec_prefix:
                    biome = ExecPrefix(biome, options.exec_prefix)
                logger.info("Running exec environment %s", result.environment)
                executor.run_commands(biome, commands, root)
    except YbError as e:
        result.error = e

    return result
