"""
Fake biome — scripted test double for anything that takes a Biome.

Records every invocation and answers from canned responses keyed by argv
prefix. Nothing is spawned. When ``host_root`` is given, biome paths are
mapped under it so the filesystem helpers work against a temp directory.
"""

from __future__ import annotations

from collections.abc import Callable
from dataclasses import dataclass
from pathlib import Path

from ybuild.adapters.base import AMD64, LINUX, Biome, Descriptor, Dirs, Invocation
from ybuild.adapters.shell.process import binary_writer
from ybuild.core.cancel import CancelToken
from ybuild.core.errors import RunError


@dataclass
class FakeResponse:
    stdout: bytes = b""
    stderr: bytes = b""
    exit_code: int = 0


class FakeBiome(Biome):
    """In-memory biome for tests.

    By default every command succeeds with no output. Use ``set_response``
    to script an argv prefix, or pass ``run_func`` to take over completely.
    """

    def __init__(
        self,
        descriptor: Descriptor | None = None,
        dirs: Dirs | None = None,
        run_func: Callable[[Invocation], None] | None = None,
        host_root: Path | None = None,
    ):
        self._descriptor = descriptor or Descriptor(os=LINUX, arch=AMD64)
        self._dirs = dirs or Dirs(package="/package", home="/home", tools="/tools")
        self._run_func = run_func
        self._host_root = host_root
        self._responses: list[tuple[tuple[str, ...], FakeResponse]] = []
        self._call_log: list[Invocation] = []
        self.closed = False

    @property
    def call_log(self) -> list[Invocation]:
        """Every invocation this biome has received, in order."""
        return self._call_log

    @property
    def call_count(self) -> int:
        return len(self._call_log)

    @property
    def argvs(self) -> list[list[str]]:
        return [inv.argv for inv in self._call_log]

    def describe(self) -> Descriptor:
        return self._descriptor

    def dirs(self) -> Dirs:
        return self._dirs

    def host_path(self, path: str) -> Path | None:
        if self._host_root is None:
            return None
        full = path if self.is_abs_path(path) else self.join_path(self._dirs.package, path)
        return self._host_root / self.clean_path(full).lstrip("/\\")

    def set_response(
        self, argv_prefix: list[str], stdout: bytes = b"", stderr: bytes = b"", exit_code: int = 0
    ) -> None:
        """Answer any argv starting with *argv_prefix* with the given output."""
        self._responses.insert(0, (tuple(argv_prefix), FakeResponse(stdout, stderr, exit_code)))

    def set_failure(self, argv_prefix: list[str], exit_code: int = 1) -> None:
        self.set_response(argv_prefix, exit_code=exit_code)

    def run(self, invocation: Invocation, cancel: CancelToken | None = None) -> None:
        if cancel is not None:
            cancel.check()
        self._call_log.append(invocation)
        if self._run_func is not None:
            self._run_func(invocation)
            return

        response = self._match(invocation.argv)
        if response.stdout and invocation.stdout is not None:
            binary_writer(invocation.stdout).write(response.stdout)
        if response.stderr and invocation.stderr is not None:
            binary_writer(invocation.stderr).write(response.stderr)
        if response.exit_code != 0:
            raise RunError(invocation.argv, response.exit_code)

    def close(self) -> None:
        self.closed = True

    def reset(self) -> None:
        """Clear the call log and scripted responses."""
        self._call_log.clear()
        self._responses.clear()

    def _match(self, argv: list[str]) -> FakeResponse:
        for prefix, response in self._responses:
            if tuple(argv[: len(prefix)]) == prefix:
                return response
        return FakeResponse()
