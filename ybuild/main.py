"""
ybuild — CLI entrypoint.

Usage:
    yb build [TARGET ...]
    yb run [--target NAME] -- CMD [ARGS ...]
    yb exec [--env-name NAME]
    yb clean [TARGET ...]
    yb targets
    yb config check
"""

from __future__ import annotations

import json
import os
import shlex
import sys
from collections.abc import Callable
from pathlib import Path
from typing import Any

import click

from ybuild import __version__
from ybuild.core.observability.logging_config import resolve_level, setup_logging


@click.group()
@click.version_option(version=__version__, prog_name="yb")
@click.option("--verbose", "-v", is_flag=True, help="Enable verbose output.")
@click.option("--quiet", "-q", is_flag=True, help="Suppress non-essential output.")
@click.option("--debug", is_flag=True, help="Enable debug logging (very verbose).")
@click.option(
    "--manifest",
    "-m",
    "manifest_path",
    type=click.Path(exists=False, dir_okay=False),
    default=None,
    help="Path to .yourbase.yml (default: search upward from cwd).",
)
@click.pass_context
def cli(
    ctx: click.Context,
    verbose: bool,
    quiet: bool,
    debug: bool,
    manifest_path: str | None,
) -> None:
    """yb — hermetic, reproducible builds from .yourbase.yml."""
    ctx.ensure_object(dict)
    ctx.obj["verbose"] = verbose
    ctx.obj["quiet"] = quiet
    ctx.obj["debug"] = debug
    ctx.obj["manifest_path"] = Path(manifest_path) if manifest_path else None

    # ── Logging setup (once, at process start) ──────────────────
    setup_logging(
        level=resolve_level(verbose, debug, quiet, os.environ.get("YB_LOG_LEVEL")),
        log_file=os.environ.get("YB_LOG_FILE"),
        log_file_level=os.environ.get("YB_LOG_FILE_LEVEL"),
        quiet_third_party=not debug,
    )


# ── Shared build options ────────────────────────────────────────────


def _build_options(f: Callable[..., Any]) -> Callable[..., Any]:
    """Options shared by build, run and exec."""
    decorators = [
        click.option(
            "--mode",
            type=click.Choice(["host", "container", "auto"]),
            default="auto",
            show_default=True,
            help="Where commands run; auto uses a container when the target declares one.",
        ),
        click.option("--no-container", is_flag=True, help="Run on the host with docker disabled, resource containers included."),
        click.option("--env-name", default=None, help="Named environment to layer over 'default'."),
        click.option("--env", "-e", "env_pairs", multiple=True, metavar="KEY=VALUE", help="Extra variable (repeatable)."),
        click.option(
            "--env-file",
            type=click.Path(exists=True, dir_okay=False),
            default=None,
            help="File of KEY=VALUE lines to add to the environment.",
        ),
        click.option("--reuse-containers", is_flag=True, help="Keep resource containers for the next build."),
        click.option("--exec-prefix", default="", help="Prefix every command with these words (e.g. 'time')."),
        click.option("--remote", "remote_url", default=None, metavar="URL", help="Run on a remote builder."),
        click.option("--seed", type=int, default=None, help="Seed for the buildpack install order."),
        click.option(
            "--netrc-file",
            "netrc_files",
            multiple=True,
            type=click.Path(exists=True, dir_okay=False),
            help="Inject a netrc file (repeatable; files are concatenated).",
        ),
    ]
    for decorator in reversed(decorators):
        f = decorator(f)
    return f


def _make_options(
    *,
    mode: str,
    no_container: bool,
    env_name: str | None,
    env_pairs: tuple[str, ...],
    env_file: str | None,
    reuse_containers: bool,
    exec_prefix: str,
    remote_url: str | None,
    seed: int | None,
    netrc_files: tuple[str, ...] = (),
    deps_only: bool = False,
):
    from ybuild.core.cancel import CancelToken
    from ybuild.core.engine.executor import BuildOptions, Mode
    from ybuild.core.models.environment import Environment
    from ybuild.core.services.docker_common import DockerCLI

    pairs = list(_read_env_file(Path(env_file))) if env_file else []
    pairs += env_pairs
    try:
        env = Environment.from_pairs(pairs)
    except ValueError as e:
        raise click.BadParameter(str(e), param_hint="--env") from e
    try:
        prefix = shlex.split(exec_prefix)
    except ValueError as e:
        raise click.BadParameter(str(e), param_hint="--exec-prefix") from e

    return BuildOptions(
        mode=Mode.HOST if no_container else Mode(mode),
        docker=None if no_container else DockerCLI(),
        env_name=env_name,
        env=env,
        reuse_containers=reuse_containers,
        deps_only=deps_only,
        exec_prefix=prefix,
        remote_url=remote_url,
        seed=seed,
        netrc_files=list(netrc_files),
        stdout=click.get_binary_stream("stdout"),
        stderr=click.get_binary_stream("stderr"),
        cancel=CancelToken(),
    )


def _read_env_file(path: Path):
    for line in path.read_text(encoding="utf-8").splitlines():
        line = line.strip()
        if line and not line.startswith("#"):
            yield line


def _section(title: str) -> None:
    click.secho(f"=== {title} ===", fg="cyan", bold=True, err=True)


def _report(ok: bool, error: BaseException | None, recorder, quiet: bool, what: str = "BUILD") -> None:
    from ybuild.core.errors import error_chain

    table = recorder.format_table()
    if table and not quiet:
        click.echo(err=True)
        click.echo(table, err=True)
        click.echo(err=True)
    if ok:
        click.secho(f"{what} PASSED", fg="green", bold=True, err=True)
        return
    click.secho(f"-- {what} FAILED --", fg="red", bold=True, err=True)
    assert error is not None
    for message in error_chain(error):
        click.echo(f"   • {message}", err=True)


# ── Commands ────────────────────────────────────────────────────────


@cli.command()
@click.argument("targets", nargs=-1)
@_build_options
@click.option("--deps-only", is_flag=True, help="Install dependencies and start containers, run no commands.")
@click.pass_context
def build(ctx: click.Context, targets: tuple[str, ...], deps_only: bool, **kwargs: Any) -> None:
    """Build TARGETS (default: 'default') and everything they build after."""
    from ybuild.core.cancel import cancel_on_signals
    from ybuild.core.use_cases.build import run_build

    options = _make_options(deps_only=deps_only, **kwargs)
    if not ctx.obj.get("quiet"):
        _section(f"Build: {', '.join(targets) or 'default'}")

    with cancel_on_signals(options.cancel):
        result = run_build(list(targets), manifest_path=ctx.obj.get("manifest_path"), options=options)

    _report(result.ok, result.error, options.recorder, ctx.obj.get("quiet", False))
    sys.exit(result.exit_code)


@cli.command(context_settings={"ignore_unknown_options": True, "allow_interspersed_args": False})
@click.option("--target", "-t", "target_name", default="default", show_default=True, help="Target environment to use.")
@_build_options
@click.argument("argv", nargs=-1, required=True, type=click.UNPROCESSED)
@click.pass_context
def run(ctx: click.Context, target_name: str, argv: tuple[str, ...], **kwargs: Any) -> None:
    """Run a command inside a target's build environment."""
    from ybuild.core.cancel import cancel_on_signals
    from ybuild.core.use_cases.run import run_in_target

    options = _make_options(**kwargs)
    with cancel_on_signals(options.cancel):
        result = run_in_target(
            list(argv),
            target_name=target_name,
            manifest_path=ctx.obj.get("manifest_path"),
            options=options,
            stdin=click.get_binary_stream("stdin"),
        )

    if result.error is not None and not ctx.obj.get("quiet"):
        from ybuild.core.errors import error_chain

        click.secho(f"❌ {'; '.join(error_chain(result.error))}", fg="red", err=True)
    sys.exit(result.exit_code)


@cli.command("exec")
@_build_options
@click.pass_context
def exec_(ctx: click.Context, **kwargs: Any) -> None:
    """Run the package using the manifest's exec block."""
    from ybuild.core.cancel import cancel_on_signals
    from ybuild.core.use_cases.exec import run_exec

    options = _make_options(**kwargs)
    if not ctx.obj.get("quiet"):
        _section(f"Exec: {options.env_name or 'default'}")

    with cancel_on_signals(options.cancel):
        result = run_exec(manifest_path=ctx.obj.get("manifest_path"), options=options)

    _report(result.ok, result.error, options.recorder, ctx.obj.get("quiet", False), what="EXEC")
    sys.exit(result.exit_code)


@cli.command()
@click.argument("targets", nargs=-1)
@click.option("--json-output", "--json", "as_json", is_flag=True, help="Output as JSON.")
@click.pass_context
def clean(ctx: click.Context, targets: tuple[str, ...], as_json: bool) -> None:
    """Remove cached build homes for TARGETS (default: all targets)."""
    from ybuild.core.use_cases.clean import clean_targets

    result = clean_targets(list(targets), manifest_path=ctx.obj.get("manifest_path"))

    if as_json:
        click.echo(json.dumps(result.to_dict(), indent=2))
        sys.exit(result.exit_code)

    if result.error:
        click.secho(f"❌ {result.error}", fg="red")
        sys.exit(result.exit_code)

    if not result.removed:
        click.echo("Nothing to clean.")
        return
    for path in result.removed:
        click.secho("🧹 ", nl=False)
        click.echo(f"Removed {path}")


@cli.command()
@click.option("--json-output", "--json", "as_json", is_flag=True, help="Output as JSON.")
@click.pass_context
def targets(ctx: click.Context, as_json: bool) -> None:
    """List the manifest's build targets."""
    from ybuild.core.errors import YbError
    from ybuild.core.use_cases.build import load_package

    try:
        manifest = load_package(ctx.obj.get("manifest_path"))
    except YbError as e:
        click.secho(f"❌ {e}", fg="red")
        sys.exit(2)

    if as_json:
        data = [
            {"name": t.name, "tags": t.tags, "build_after": list(t.build_after)}
            for t in manifest.targets.values()
        ]
        click.echo(json.dumps(data, indent=2))
        return

    for name in sorted(manifest.targets):
        target = manifest.targets[name]
        tags = ", ".join(f"{k}={v}" for k, v in sorted(target.tags.items()))
        click.echo(f"{name}  [{tags}]" if tags else name)


@cli.group()
def config() -> None:
    """Manifest configuration commands."""


@config.command("check")
@click.option("--json-output", "--json", "as_json", is_flag=True, help="Output as JSON.")
@click.pass_context
def config_check(ctx: click.Context, as_json: bool) -> None:
    """Validate .yourbase.yml."""
    from ybuild.core.use_cases.config_check import check_config

    result = check_config(manifest_path=ctx.obj.get("manifest_path"))

    if as_json:
        click.echo(json.dumps(result.to_dict(), indent=2))
        sys.exit(0 if result.valid else 1)

    if result.valid:
        assert result.manifest is not None  # guaranteed when valid
        click.secho("✅ Manifest valid", fg="green", bold=True)
        click.echo(f"   Package: {result.manifest.package_dir}")
        click.echo(f"   Targets: {len(result.manifest.targets)}")
        if result.manifest.exec is not None:
            click.echo("   Exec: yes")
    else:
        click.secho("❌ Manifest errors:", fg="red", bold=True)
        for err in result.errors:
            click.echo(f"   • {err}")

    if result.warnings:
        click.echo()
        click.secho("⚠️  Warnings:", fg="yellow")
        for warn in result.warnings:
            click.echo(f"   • {warn}")

    if not result.valid:
        sys.exit(1)


def main() -> None:
    cli(obj={})


if __name__ == "__main__":
    main()
