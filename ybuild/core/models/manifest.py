"""
Manifest model — the normalized, immutable form of ``.yourbase.yml``.

The loader turns raw YAML into these models. By the time anything else
sees a ``Manifest``, global dependencies have been merged into every
target, environment lists have been parsed into mappings, and the
``build_after`` graph is known to be acyclic.
"""

from __future__ import annotations

from pydantic import BaseModel, ConfigDict, Field


class BuildpackSpec(BaseModel):
    """A ``tool:version`` toolchain requirement."""

    model_config = ConfigDict(frozen=True)

    tool: str
    version: str

    @classmethod
    def parse(cls, spec: str) -> BuildpackSpec:
        """Parse ``"go:1.20"``.

        Raises:
            ValueError: If the colon or either half is missing.
        """
        tool, sep, version = spec.strip().partition(":")
        if not sep:
            raise ValueError(f"invalid buildpack {spec!r}: no version specified")
        if not tool.strip() or not version.strip():
            raise ValueError(f"invalid buildpack {spec!r}: want TOOL:VERSION")
        return cls(tool=tool.strip(), version=version.strip())

    def __str__(self) -> str:
        return f"{self.tool}:{self.version}"


class PortWaitCheck(BaseModel):
    """TCP readiness check for an auxiliary container."""

    model_config = ConfigDict(frozen=True)

    port: int
    local_port_map: int = 0
    timeout: float = 60.0


class ContainerDef(BaseModel):
    """A container image plus how to run it."""

    model_config = ConfigDict(frozen=True)

    image: str = ""
    label: str = ""
    mounts: tuple[str, ...] = ()
    ports: tuple[str, ...] = ()
    environment: tuple[str, ...] = ()
    command: str = ""
    workdir: str = ""
    port_wait_check: PortWaitCheck | None = None


class Target(BaseModel):
    """One named unit of work."""

    model_config = ConfigDict(frozen=True)

    name: str
    commands: tuple[str, ...] = ()
    root: str = ""
    buildpacks: tuple[BuildpackSpec, ...] = ()
    containers: dict[str, ContainerDef] = Field(default_factory=dict)
    environments: dict[str, dict[str, str]] = Field(default_factory=dict)
    build_after: tuple[str, ...] = ()
    container: ContainerDef | None = None
    host_only: bool = False
    tags: dict[str, str] = Field(default_factory=dict)

    def env_template(self, env_name: str | None = None) -> dict[str, str]:
        """The ``default`` environment with *env_name* (if any) merged on top."""
        merged = dict(self.environments.get("default", {}))
        if env_name and env_name != "default":
            merged.update(self.environments.get(env_name, {}))
        return merged

    def has_environment(self, env_name: str | None) -> bool:
        return not env_name or env_name == "default" or env_name in self.environments

    @property
    def wants_container(self) -> bool:
        return self.container is not None and not self.host_only


class Manifest(BaseModel):
    """A loaded ``.yourbase.yml``."""

    model_config = ConfigDict(frozen=True)

    package_dir: str = ""
    build_deps: tuple[BuildpackSpec, ...] = ()
    runtime_deps: tuple[BuildpackSpec, ...] = ()
    targets: dict[str, Target] = Field(default_factory=dict)
    exec: Target | None = None
    artifacts: tuple[str, ...] = ()
    ci_builds: tuple[dict, ...] = ()

    def target(self, name: str) -> Target | None:
        return self.targets.get(name)

    @property
    def target_names(self) -> list[str]:
        return list(self.targets)
