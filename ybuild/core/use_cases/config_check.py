"""
Config check use case — validate .yourbase.yml and report issues.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from pathlib import Path

from ybuild.core.config.loader import MANIFEST_FILE, find_package_file, load_manifest
from ybuild.core.engine.commands import parse_commands, validate_root
from ybuild.core.errors import ManifestError, ValidationError
from ybuild.core.models.manifest import Manifest


@dataclass
class ConfigCheckResult:
    """Result of manifest validation."""

    valid: bool = False
    manifest: Manifest | None = None
    manifest_path: Path | None = None
    errors: list[str] = field(default_factory=list)
    warnings: list[str] = field(default_factory=list)

    def to_dict(self) -> dict:
        return {
            "valid": self.valid,
            "manifest_path": str(self.manifest_path) if self.manifest_path else None,
            "errors": self.errors,
            "warnings": self.warnings,
            "manifest": self.manifest.model_dump(mode="json") if self.manifest else None,
        }


def check_config(manifest_path: Path | None = None) -> ConfigCheckResult:
    """Validate the manifest and every command in it.

    Loading catches schema, dependency and ``build_after`` problems;
    command validation catches what would otherwise only fail when the
    target runs.
    """
    result = ConfigCheckResult()

    if manifest_path is None:
        manifest_path = find_package_file()
    if manifest_path is None:
        result.errors.append(f"No {MANIFEST_FILE} found.")
        return result
    result.manifest_path = manifest_path

    try:
        manifest = load_manifest(manifest_path)
        result.manifest = manifest
    except ManifestError as e:
        result.errors.append(str(e))
        return result

    if not manifest.targets:
        result.warnings.append("No build targets defined.")

    checked = dict(manifest.targets)
    if manifest.exec is not None:
        checked["exec"] = manifest.exec
    for name, target in checked.items():
        try:
            parse_commands(target.commands, validate_root(target.root))
        except ValidationError as e:
            result.errors.append(f"target {name}: {e}")
        if not target.commands and name != "exec":
            result.warnings.append(f"Target '{name}' has no commands.")
        if target.root and not (Path(manifest.package_dir) / target.root).is_dir():
            result.warnings.append(f"Target '{name}' root does not exist: {target.root}")

    result.valid = len(result.errors) == 0
    return result
