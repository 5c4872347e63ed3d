"""
Tests for the host biome and the process runner underneath it.
"""

import io
import os
import threading
import time
from pathlib import Path

import pytest

from ybuild.adapters.base import Invocation, exists, mkdir_all, run_output, write_file
from ybuild.adapters.shell.local import LocalBiome, host_descriptor
from ybuild.core.cancel import CancelToken
from ybuild.core.errors import CancelError, RunError
from ybuild.core.models.environment import Environment


@pytest.fixture
def biome(tmp_path: Path) -> LocalBiome:
    pkg = tmp_path / "pkg"
    home = tmp_path / "home"
    tools = tmp_path / "tools"
    for d in (pkg, home, tools):
        d.mkdir()
    return LocalBiome(pkg, home, tools)


def _output(biome: LocalBiome, argv: list[str], **kwargs) -> str:
    return run_output(biome, Invocation(argv=argv, **kwargs))


class TestLocalBiomeBasics:
    def test_describe_matches_host(self, biome: LocalBiome):
        assert biome.describe() == host_descriptor()

    def test_dirs_are_absolute(self, biome: LocalBiome):
        dirs = biome.dirs()
        assert os.path.isabs(dirs.package)
        assert os.path.isabs(dirs.home)
        assert os.path.isabs(dirs.tools)

    def test_echo(self, biome: LocalBiome):
        assert _output(biome, ["echo", "hello"]) == "hello\n"

    def test_runs_in_package_dir(self, biome: LocalBiome):
        out = _output(biome, ["pwd"])
        assert os.path.realpath(out.strip()) == os.path.realpath(biome.dirs().package)

    def test_relative_dir_joined_to_package(self, biome: LocalBiome):
        Path(biome.dirs().package, "sub").mkdir()
        out = _output(biome, ["pwd"], dir="sub")
        assert out.endswith("/sub\n")

    def test_home_is_target_home(self, biome: LocalBiome):
        assert _output(biome, ["printenv", "HOME"]).strip() == biome.dirs().home

    def test_timezone_pinned(self, biome: LocalBiome):
        assert _output(biome, ["printenv", "TZ"]).strip() == "UTC0"

    def test_host_variables_not_leaked(self, biome: LocalBiome, monkeypatch):
        monkeypatch.setenv("YB_TEST_LEAK", "1")
        with pytest.raises(RunError):
            _output(biome, ["printenv", "YB_TEST_LEAK"])

    def test_stdin_forwarded(self, biome: LocalBiome):
        out = io.BytesIO()
        biome.run(Invocation(argv=["cat"], stdin=io.BytesIO(b"from stdin"), stdout=out))
        assert out.getvalue() == b"from stdin"

    def test_stderr_captured(self, biome: LocalBiome):
        err = io.BytesIO()
        biome.run(Invocation(argv=["sh", "-c", "echo oops >&2"], stderr=err))
        assert err.getvalue() == b"oops\n"

    def test_host_path(self, biome: LocalBiome):
        assert biome.host_path("a/b") == Path(biome.dirs().package) / "a" / "b"


class TestLocalBiomeEnvironment:
    def test_overlay_visible(self, biome: LocalBiome):
        env = Environment(vars={"FOO": "bar"})
        assert _output(biome, ["printenv", "FOO"], env=env) == "bar\n"

    def test_prepend_path_resolves_program(self, biome: LocalBiome):
        bindir = Path(biome.dirs().tools) / "mytool" / "bin"
        bindir.mkdir(parents=True)
        script = bindir / "mytool"
        script.write_text("#!/bin/sh\necho mytool ran\n")
        script.chmod(0o755)

        env = Environment(prepend_path=(str(bindir),))
        assert _output(biome, ["mytool"], env=env) == "mytool ran\n"

    def test_effective_path_order(self, biome: LocalBiome):
        env = Environment(prepend_path=("/first",), append_path=("/last",))
        path = _output(biome, ["printenv", "PATH"], env=env).strip().split(os.pathsep)
        assert path[0] == "/first"
        assert path[-1] == "/last"


class TestLocalBiomeFailures:
    def test_nonzero_exit(self, biome: LocalBiome):
        with pytest.raises(RunError) as exc_info:
            biome.run(Invocation(argv=["false"]))
        assert exc_info.value.exit_code == 1
        assert exc_info.value.argv == ["false"]

    def test_exit_code_carried(self, biome: LocalBiome):
        with pytest.raises(RunError) as exc_info:
            biome.run(Invocation(argv=["sh", "-c", "exit 7"]))
        assert exc_info.value.exit_code == 7

    def test_program_not_found(self, biome: LocalBiome):
        with pytest.raises(RunError) as exc_info:
            biome.run(Invocation(argv=["definitely-not-a-real-program-xyz"]))
        assert exc_info.value.exit_code == 127

    def test_empty_argv(self, biome: LocalBiome):
        with pytest.raises(RunError):
            biome.run(Invocation(argv=[]))


class TestSequencing:
    def test_output_of_first_command_precedes_second(self, biome: LocalBiome):
        out = io.BytesIO()
        script = "i=0; while [ $i -lt 200 ]; do echo first-$i; i=$((i+1)); done"
        biome.run(Invocation(argv=["sh", "-c", script], stdout=out))
        biome.run(Invocation(argv=["echo", "second"], stdout=out))

        lines = out.getvalue().decode().splitlines()
        assert len(lines) == 201
        assert lines[-1] == "second"
        assert all(line.startswith("first-") for line in lines[:-1])

    def test_shared_stdout_stderr_stream(self, biome: LocalBiome):
        out = io.BytesIO()
        biome.run(Invocation(argv=["sh", "-c", "echo a; echo b >&2"], stdout=out, stderr=out))
        assert sorted(out.getvalue().decode().split()) == ["a", "b"]


class TestCancellation:
    def test_cancel_terminates_running_process(self, biome: LocalBiome):
        token = CancelToken()
        timer = threading.Timer(0.2, token.cancel)
        timer.start()
        started = time.monotonic()
        try:
            with pytest.raises(CancelError):
                biome.run(Invocation(argv=["sleep", "30"]), token)
        finally:
            timer.cancel()
        assert time.monotonic() - started < 10

    def test_already_cancelled_runs_nothing(self, biome: LocalBiome, tmp_path: Path):
        token = CancelToken()
        token.cancel("stop")
        marker = tmp_path / "marker"
        with pytest.raises(CancelError, match="stop"):
            biome.run(Invocation(argv=["touch", str(marker)]), token)
        assert not marker.exists()


class TestFilesystemHelpers:
    def test_mkdir_and_exists(self, biome: LocalBiome):
        assert not exists(biome, "a/b")
        mkdir_all(biome, "a/b")
        assert exists(biome, "a/b")

    def test_write_file_sets_mode(self, biome: LocalBiome):
        write_file(biome, "bin/tool", io.BytesIO(b"#!/bin/sh\n"), 0o755)
        path = Path(biome.dirs().package) / "bin" / "tool"
        assert path.read_bytes() == b"#!/bin/sh\n"
        assert os.access(path, os.X_OK)
