"""
Process runner — spawn a child, stream its output, honour cancellation.

stdout and stderr are pumped by one thread each straight into the
caller's writers, so output appears while the command runs. The function
returns only after both pumps have drained, which is what keeps the
output of consecutive commands from interleaving.

On cancellation the child gets SIGTERM, then SIGKILL after a grace
period, and ``CancelError`` is raised.
"""

from __future__ import annotations

import io
import logging
import shutil
import subprocess
import threading
from collections.abc import Mapping
from typing import IO, Any

from ybuild.core.cancel import CancelToken
from ybuild.core.errors import CancelError

logger = logging.getLogger(__name__)

_CHUNK = 64 * 1024
_POLL_INTERVAL = 0.05
KILL_GRACE_PERIOD = 5.0


def binary_writer(stream: IO[Any]) -> IO[bytes]:
    """Return a bytes-accepting view of *stream* (text streams expose ``.buffer``)."""
    if isinstance(stream, io.TextIOBase):
        buffer = getattr(stream, "buffer", None)
        if buffer is not None:
            return buffer
        return _TextAdapter(stream)
    return stream


class _TextAdapter:
    def __init__(self, stream: io.TextIOBase):
        self._stream = stream

    def write(self, data: bytes) -> int:
        self._stream.write(data.decode("utf-8", errors="replace"))
        return len(data)

    def flush(self) -> None:
        self._stream.flush()


def _pump(src: IO[bytes], dst: IO[bytes], lock: threading.Lock) -> None:
    try:
        while True:
            chunk = src.read1(_CHUNK) if hasattr(src, "read1") else src.read(_CHUNK)
            if not chunk:
                break
            with lock:
                dst.write(chunk)
                flush = getattr(dst, "flush", None)
                if flush is not None:
                    flush()
    except (OSError, ValueError) as exc:
        logger.debug("Output pump stopped: %s", exc)
    finally:
        src.close()


def _feed(src: IO[bytes], dst: IO[bytes]) -> None:
    try:
        shutil.copyfileobj(src, dst, _CHUNK)
    except (BrokenPipeError, OSError, ValueError) as exc:
        logger.debug("Stdin feed stopped: %s", exc)
    finally:
        try:
            dst.close()
        except OSError:
            pass


def run_process(
    argv: list[str],
    *,
    cwd: str | None = None,
    env: Mapping[str, str] | None = None,
    stdin: IO[bytes] | None = None,
    stdout: IO[Any] | None = None,
    stderr: IO[Any] | None = None,
    cancel: CancelToken | None = None,
    grace_period: float = KILL_GRACE_PERIOD,
) -> int:
    """Run *argv* to completion and return its exit status.

    Raises:
        FileNotFoundError / PermissionError: If the program cannot be started.
        CancelError: If *cancel* fires before the process exits.
    """
    same_stream = stdout is not None and stdout is stderr
    proc = subprocess.Popen(
        argv,
        cwd=cwd,
        env=dict(env) if env is not None else None,
        stdin=subprocess.PIPE if stdin is not None else subprocess.DEVNULL,
        stdout=subprocess.PIPE if stdout is not None else subprocess.DEVNULL,
        stderr=(
            subprocess.STDOUT
            if same_stream
            else subprocess.PIPE if stderr is not None else subprocess.DEVNULL
        ),
    )

    lock = threading.Lock()
    threads: list[threading.Thread] = []
    if stdin is not None and proc.stdin is not None:
        # Not joined: a caller-supplied stdin may block long after the child exits.
        threading.Thread(target=_feed, args=(stdin, proc.stdin), daemon=True).start()
    if stdout is not None and proc.stdout is not None:
        threads.append(
            threading.Thread(target=_pump, args=(proc.stdout, binary_writer(stdout), lock), daemon=True)
        )
    if stderr is not None and not same_stream and proc.stderr is not None:
        threads.append(
            threading.Thread(target=_pump, args=(proc.stderr, binary_writer(stderr), lock), daemon=True)
        )
    for t in threads:
        t.start()

    cancelled = False
    while True:
        try:
            proc.wait(timeout=_POLL_INTERVAL)
            break
        except subprocess.TimeoutExpired:
            if cancel is not None and cancel.cancelled:
                cancelled = True
                _terminate(proc, grace_period)
                break

    for t in threads:
        t.join(timeout=grace_period if cancelled else None)

    if cancelled:
        raise CancelError(f"{argv[0]}: {cancel.reason if cancel else 'cancelled'}")
    return proc.returncode


def _terminate(proc: subprocess.Popen, grace_period: float) -> None:
    logger.debug("Terminating pid %d", proc.pid)
    proc.terminate()
    try:
        proc.wait(timeout=grace_period)
    except subprocess.TimeoutExpired:
        logger.debug("pid %d ignored SIGTERM, killing", proc.pid)
        proc.kill()
        proc.wait()
