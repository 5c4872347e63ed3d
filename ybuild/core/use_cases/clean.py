"""
Clean use case — remove per-target HOME caches for a package.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from pathlib import Path

from ybuild.core.config.datadirs import DataDirs
from ybuild.core.errors import ManifestError, YbError
from ybuild.core.use_cases.build import exit_code_for, load_package

logger = logging.getLogger(__name__)


@dataclass
class CleanResult:
    """Result of cleaning build homes."""

    package_dir: str = ""
    removed: list[Path] = field(default_factory=list)
    error: YbError | None = None

    @property
    def ok(self) -> bool:
        return self.error is None

    @property
    def exit_code(self) -> int:
        return exit_code_for(self.error)

    def to_dict(self) -> dict:
        result: dict = {
            "package_dir": self.package_dir,
            "removed": [str(p) for p in self.removed],
        }
        if self.error is not None:
            result["error"] = str(self.error)
        return result


def clean_targets(
    targets: list[str] | None = None,
    manifest_path: Path | None = None,
    data_dirs: DataDirs | None = None,
) -> CleanResult:
    """Remove the HOME caches of *targets*, or of every target when empty.

    Names are checked against the manifest so a typo doesn't silently
    remove nothing.
    """
    result = CleanResult()
    data_dirs = data_dirs or DataDirs()

    try:
        manifest = load_package(manifest_path)
        result.package_dir = manifest.package_dir
        unknown = [t for t in targets or [] if t not in manifest.targets]
        if unknown:
            raise ManifestError(f"unknown target(s): {', '.join(unknown)}")
        result.removed = data_dirs.clean(manifest.package_dir, targets or None)
    except YbError as e:
        result.error = e

    return result
