"""
Run use case — execute an ad-hoc command inside a target's environment.

``yb run -- CMD ARGS`` provisions the target exactly as a build would
(biome, toolchains, resource containers, environment) and then runs CMD
from the target's root instead of the target's commands.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import IO

from ybuild.adapters.base import Invocation
from ybuild.core.config.loader import DEFAULT_TARGET
from ybuild.core.engine.commands import validate_root
from ybuild.core.engine.executor import BuildOptions, TargetExecutor
from ybuild.core.errors import ManifestError, RunError, ValidationError, YbError, error_chain
from ybuild.core.use_cases.build import exit_code_for, load_package

logger = logging.getLogger(__name__)


@dataclass
class RunResult:
    """Result of running a command in a target environment."""

    target: str = DEFAULT_TARGET
    argv: list[str] = field(default_factory=list)
    error: YbError | None = None

    @property
    def ok(self) -> bool:
        return self.error is None

    @property
    def exit_code(self) -> int:
        # The child's own status, so `yb run` composes in scripts.
        if isinstance(self.error, RunError) and self.error.exit_code > 0:
            return self.error.exit_code
        return exit_code_for(self.error)

    def to_dict(self) -> dict:
        result: dict = {"target": self.target, "argv": self.argv, "exit_code": self.exit_code}
        if self.error is not None:
            result["error"] = error_chain(self.error)
        return result


def run_in_target(
    argv: list[str],
    target_name: str = DEFAULT_TARGET,
    manifest_path: Path | None = None,
    options: BuildOptions | None = None,
    stdin: IO[bytes] | None = None,
) -> RunResult:
    """Provision *target_name* and run *argv* in it.

    Args:
        argv: Command and arguments; not interpreted by a shell.
        target_name: Target whose environment to use.
        manifest_path: Optional explicit path to ``.yourbase.yml``.
        options: Invocation options.
        stdin: Stream forwarded to the command.
    """
    result = RunResult(target=target_name, argv=list(argv))
    options = options or BuildOptions()

    try:
        if not argv:
            raise ValidationError("run: no command given")
        manifest = load_package(manifest_path)
        target = manifest.target(target_name)
        if target is None:
            raise ManifestError(f"unknown target {target_name!r}")
        if not target.has_environment(options.env_name):
            raise ManifestError(f"target {target_name}: unknown environment {options.env_name!r}")
        root = validate_root(target.root)
        executor = TargetExecutor(manifest, options)
        with executor.prepare_target(target) as prepared:
            with options.recorder.span(" ".join(argv)):
                prepared.biome.run(
                    Invocation(
                        argv=list(argv),
                        dir=root,
                        stdin=stdin,
                        stdout=options.stdout,
                        stderr=options.stderr,
                    ),
                    options.cancel,
                )
    except YbError as e:
        result.error = e

    return result
