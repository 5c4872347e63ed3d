"""
Manifest loader — reads ``.yourbase.yml`` into domain models.

This is the primary entry point for loading a package's build manifest.
It reads YAML, validates it against strict Pydantic schemas, then
normalizes the result:

- global ``dependencies.build`` is merged into every target, with the
  target's own spec winning for the same tool;
- a top-level ``build`` block (the single-target form) becomes the
  ``default`` target;
- environment lists become ``{name: {KEY: VALUE}}`` mappings;
- relative mount sources are resolved against the package directory;
- ``build_after`` references are checked and the graph must be acyclic.

Every failure is reported as ``ManifestError``.
"""

from __future__ import annotations

import logging
import os
from pathlib import Path
from typing import Any

import yaml
from pydantic import BaseModel, ConfigDict, Field
from pydantic import ValidationError as PydanticValidationError

from ybuild.buildpacks.registry import known_tools
from ybuild.core.engine.order import validate_graph
from ybuild.core.errors import ManifestError
from ybuild.core.models.environment import Environment
from ybuild.core.models.manifest import (
    BuildpackSpec,
    ContainerDef,
    Manifest,
    PortWaitCheck,
    Target,
)

logger = logging.getLogger(__name__)

MANIFEST_FILE = ".yourbase.yml"
DEFAULT_TARGET = "default"
DEFAULT_ENVIRONMENT = "default"


# ── Raw schema (what the YAML may contain) ──────────────────────────


class _Strict(BaseModel):
    model_config = ConfigDict(extra="forbid")


class RawPortCheck(_Strict):
    port: int = 0
    local_port_map: int = 0
    timeout: float = 60.0


class RawContainer(_Strict):
    image: str = ""
    label: str = ""
    mounts: list[str] = Field(default_factory=list)
    ports: list[str] = Field(default_factory=list)
    environment: list[str] = Field(default_factory=list)
    command: str = ""
    workdir: str = ""
    port_check: RawPortCheck | None = None


class RawDependencies(_Strict):
    build: list[str] = Field(default_factory=list)
    runtime: list[str] = Field(default_factory=list)
    containers: dict[str, RawContainer | None] = Field(default_factory=dict)


class RawTarget(_Strict):
    name: str = ""
    root: str = ""
    commands: list[str] = Field(default_factory=list)
    build_after: list[str] = Field(default_factory=list)
    dependencies: RawDependencies = Field(default_factory=RawDependencies)
    container: RawContainer | None = None
    environment: list[str] | dict[str, list[str] | None] | None = None
    host_only: bool = False
    tags: dict[str, str] = Field(default_factory=dict)
    sandbox: bool = False


class RawExec(RawTarget):
    logfiles: list[str] = Field(default_factory=list)


class RawPackage(_Strict):
    artifacts: list[str] = Field(default_factory=list)


class RawCI(_Strict):
    builds: list[dict[str, Any]] = Field(default_factory=list)


class RawManifest(_Strict):
    dependencies: RawDependencies = Field(default_factory=RawDependencies)
    build_targets: list[RawTarget] = Field(default_factory=list)
    build: RawTarget | None = None
    exec: RawExec | None = None
    package: RawPackage | None = None
    ci: RawCI | None = None
    sandbox: bool = False


# ── Discovery ───────────────────────────────────────────────────────


def find_package_file(start_dir: Path | None = None) -> Path | None:
    """Search for ``.yourbase.yml`` starting from *start_dir*, walking up.

    Args:
        start_dir: Directory to start searching from (default: cwd).

    Returns:
        Path to the manifest, or None if not found.
    """
    current = (start_dir or Path.cwd()).resolve()

    for _ in range(20):  # safety limit
        candidate = current / MANIFEST_FILE
        if candidate.is_file():
            return candidate
        parent = current.parent
        if parent == current:
            break  # filesystem root
        current = parent

    return None


def package_root(manifest_path: Path) -> Path:
    """The package directory a manifest file describes."""
    return manifest_path.parent.resolve()


# ── Loading ─────────────────────────────────────────────────────────


def load_manifest(path: Path | None = None) -> Manifest:
    """Load, validate and normalize a manifest file.

    Args:
        path: Explicit path to the manifest. If None, searches upward.

    Raises:
        ManifestError: If the file is missing or invalid.
    """
    if path is None:
        path = find_package_file()

    if path is None:
        raise ManifestError(f"No {MANIFEST_FILE} found in this directory or any parent.")

    if not path.is_file():
        raise ManifestError(f"Manifest not found: {path}")

    logger.debug("Loading manifest from %s", path)

    try:
        raw = path.read_text(encoding="utf-8")
    except OSError as e:
        raise ManifestError(f"Cannot read {path}: {e}") from e

    manifest = parse_manifest(raw, package_root(path), source=str(path))
    logger.info("Loaded %s with %d target(s)", path, len(manifest.targets))
    return manifest


def parse_manifest(text: str, package_dir: str | Path, source: str = MANIFEST_FILE) -> Manifest:
    """Parse manifest *text* for the package at *package_dir*."""
    try:
        data = yaml.safe_load(text)
    except yaml.YAMLError as e:
        raise ManifestError(f"Invalid YAML in {source}: {e}") from e

    if data is None:
        data = {}
    if not isinstance(data, dict):
        raise ManifestError(f"Expected a YAML mapping in {source}, got {type(data).__name__}")

    try:
        raw = RawManifest.model_validate(data)
    except PydanticValidationError as e:
        raise ManifestError(f"Invalid manifest {source}: {e}") from e

    return _normalize(raw, os.path.abspath(package_dir))


def _normalize(raw: RawManifest, package_dir: str) -> Manifest:
    global_build = _parse_deps(raw.dependencies.build, "top-level build dependencies")
    global_runtime = _parse_deps(raw.dependencies.runtime, "top-level runtime dependencies")

    raw_targets = list(raw.build_targets)
    if raw.build is not None:
        raw_targets.append(raw.build.model_copy(update={"name": DEFAULT_TARGET}))

    targets: dict[str, Target] = {}
    for raw_target in raw_targets:
        if not raw_target.name:
            raise ManifestError("found target without name")
        if raw_target.name in targets:
            raise ManifestError(f"multiple targets with name {raw_target.name!r}")
        targets[raw_target.name] = _target(raw_target, raw_target.name, package_dir, global_build)

    problems = validate_graph({name: t.build_after for name, t in targets.items()})
    if problems:
        raise ManifestError("; ".join(problems))

    exec_target = None
    if raw.exec is not None:
        exec_target = _target(raw.exec, raw.exec.name or "exec", package_dir, global_runtime, section="exec")
        if raw.exec.build_after:
            raise ManifestError("exec: build_after is not supported")

    return Manifest(
        package_dir=package_dir,
        build_deps=tuple(global_build.values()),
        runtime_deps=tuple(global_runtime.values()),
        targets=targets,
        exec=exec_target,
        artifacts=tuple(raw.package.artifacts) if raw.package else (),
        ci_builds=tuple(raw.ci.builds) if raw.ci else (),
    )


def _target(
    raw: RawTarget,
    name: str,
    package_dir: str,
    inherited: dict[str, BuildpackSpec],
    section: str | None = None,
) -> Target:
    where = section or f"target {name}"
    buildpacks = dict(inherited)
    # exec reads its own toolchains from dependencies.runtime
    own = raw.dependencies.runtime if section == "exec" else raw.dependencies.build
    buildpacks.update(_parse_deps(own, f"{where}: dependencies"))

    containers = {}
    for label, definition in raw.dependencies.containers.items():
        containers[label] = _container(definition or RawContainer(), label, package_dir, f"{where}: {label}")

    return Target(
        name=name,
        commands=tuple(raw.commands),
        root=raw.root,
        buildpacks=tuple(buildpacks.values()),
        containers=containers,
        environments=_environments(raw.environment, where),
        build_after=tuple(raw.build_after),
        container=_container(raw.container, "", package_dir, f"{where}: container") if raw.container else None,
        host_only=raw.host_only,
        tags=dict(raw.tags),
    )


def _parse_deps(specs: list[str], where: str) -> dict[str, BuildpackSpec]:
    """Parse ``tool:version`` strings; later entries for the same tool win."""
    tools = known_tools()
    parsed: dict[str, BuildpackSpec] = {}
    for text in specs:
        try:
            spec = BuildpackSpec.parse(text)
        except ValueError as e:
            raise ManifestError(f"{where}: {e}") from e
        if spec.tool not in tools:
            raise ManifestError(f"{where}: unknown build pack {spec.tool!r}")
        parsed[spec.tool] = spec
    return parsed


def _container(raw: RawContainer, label: str, package_dir: str, where: str) -> ContainerDef:
    mounts = []
    for mount in raw.mounts:
        parts = mount.split(":")
        if len(parts) != 2:
            raise ManifestError(f"{where}: parse mount {mount!r}: must contain exactly one ':'")
        src, dst = parts
        if not os.path.isabs(src):
            src = os.path.join(package_dir, src)
        mounts.append(f"{src}:{dst}")

    try:
        Environment.from_pairs(raw.environment)
    except ValueError as e:
        raise ManifestError(f"{where}: environment: {e}") from e

    check = None
    if raw.port_check is not None and raw.port_check.port:
        check = PortWaitCheck(
            port=raw.port_check.port,
            local_port_map=raw.port_check.local_port_map,
            timeout=raw.port_check.timeout,
        )
    return ContainerDef(
        image=raw.image,
        label=raw.label or label,
        mounts=tuple(mounts),
        ports=tuple(raw.ports),
        environment=tuple(raw.environment),
        command=raw.command,
        workdir=raw.workdir,
        port_wait_check=check,
    )


def _environments(raw: list[str] | dict[str, list[str] | None] | None, where: str) -> dict[str, dict[str, str]]:
    if raw is None:
        return {}
    named = {DEFAULT_ENVIRONMENT: raw} if isinstance(raw, list) else raw
    result = {}
    for env_name, pairs in named.items():
        try:
            result[env_name] = dict(Environment.from_pairs(pairs or []).vars)
        except ValueError as e:
            raise ManifestError(f"{where}: environment {env_name}: {e}") from e
    return result
