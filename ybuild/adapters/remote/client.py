"""
Remote biome — run build commands on a builder reachable over HTTP.

Wire protocol (JSON unless noted):

    GET  <base>/                       → {"descriptor": {...}, "dirs": {...}}
    PUT  <base>/package                  body: tar of the package directory
    POST <base>/commands/              → {"id": "..."}
    POST <base>/commands/<id>/stdin?close=1   body: raw stdin bytes
    GET  <base>/commands/<id>/stdout     raw bytes, streamed until exit
    GET  <base>/commands/<id>/stderr     raw bytes, streamed until exit
    GET  <base>/commands/<id>/         → {"result": null | {"success", "exit_code", "error"}}
    DELETE <base>/commands/<id>/         best-effort cancel

Each ``run`` pushes stdin and pulls both output streams concurrently while
the calling thread polls for the completion record with exponential
backoff.
"""

from __future__ import annotations

import io
import json
import logging
import random
import tarfile
import threading
import urllib.error
import urllib.parse
import urllib.request
from collections.abc import Iterable, Iterator
from pathlib import Path
from typing import IO, Any

from ybuild.adapters.base import Biome, Descriptor, Dirs, Invocation
from ybuild.adapters.shell.process import binary_writer
from ybuild.core.cancel import CancelToken
from ybuild.core.errors import CancelError, NetworkError, RunError

logger = logging.getLogger(__name__)

POLL_MIN_DELAY = 0.005
POLL_MAX_DELAY = 5.0
POLL_FACTOR = 2.0
_CHUNK = 64 * 1024


def backoff_delays(
    minimum: float = POLL_MIN_DELAY,
    maximum: float = POLL_MAX_DELAY,
    factor: float = POLL_FACTOR,
    rng: random.Random | None = None,
) -> Iterator[float]:
    """Yield exponentially growing, jittered delays capped at *maximum*."""
    rng = rng or random.Random()
    delay = minimum
    while True:
        yield min(maximum, delay * rng.uniform(1.0, 1.5))
        delay = min(maximum, delay * factor)


class RemoteBiome(Biome):
    """Biome that forwards every run to a remote builder."""

    def __init__(self, base_url: str, *, timeout: float = 30.0):
        self.base_url = base_url.rstrip("/") + "/"
        self.timeout = timeout
        info = self._request_json("GET", "")
        try:
            desc, dirs = info["descriptor"], info["dirs"]
            self._descriptor = Descriptor(os=desc["os"], arch=desc["arch"])
            self._dirs = Dirs(package=dirs["package"], home=dirs["home"], tools=dirs["tools"])
        except (KeyError, TypeError) as exc:
            raise NetworkError(f"GET {self.base_url}: malformed biome description") from exc

    def describe(self) -> Descriptor:
        return self._descriptor

    def dirs(self) -> Dirs:
        return self._dirs

    # ── HTTP plumbing ───────────────────────────────────────────

    def _url(self, path: str) -> str:
        return urllib.parse.urljoin(self.base_url, path)

    def _open(
        self,
        method: str,
        path: str,
        data: bytes | Iterable[bytes] | None = None,
        content_type: str | None = None,
        timeout: float | None = None,
    ):
        url = self._url(path)
        req = urllib.request.Request(url, data=data, method=method)
        if content_type:
            req.add_header("Content-Type", content_type)
        try:
            return urllib.request.urlopen(req, timeout=timeout if timeout is not None else self.timeout)
        except urllib.error.HTTPError as exc:
            raise NetworkError(f"{method} {url}: HTTP {exc.code} {exc.reason}") from exc
        except (urllib.error.URLError, OSError) as exc:
            raise NetworkError(f"{method} {url}: {exc}") from exc

    def _request_json(self, method: str, path: str, body: Any = None) -> Any:
        data = json.dumps(body).encode() if body is not None else None
        with self._open(method, path, data, "application/json" if data else None) as resp:
            ctype = resp.headers.get_content_type()
            if ctype != "application/json":
                raise NetworkError(f"{method} {self._url(path)}: unexpected content type {ctype!r}")
            try:
                return json.loads(resp.read())
            except json.JSONDecodeError as exc:
                raise NetworkError(f"{method} {self._url(path)}: invalid JSON") from exc

    # ── Package upload ──────────────────────────────────────────

    def upload_package(self, package_dir: str | Path, cancel: CancelToken | None = None) -> None:
        """Tar *package_dir* and replace the remote package directory with it."""
        package_dir = Path(package_dir)
        buf = io.BytesIO()
        with tarfile.open(fileobj=buf, mode="w") as tar:
            for entry in sorted(package_dir.iterdir()):
                if cancel is not None:
                    cancel.check()
                tar.add(entry, arcname=entry.name)
        req_body = buf.getvalue()
        logger.info("Uploading package (%d bytes) to %s", len(req_body), self.base_url)
        with self._open("PUT", "package", req_body, "application/x-tar", timeout=max(self.timeout, 300)):
            pass

    # ── Run ─────────────────────────────────────────────────────

    def run(self, invocation: Invocation, cancel: CancelToken | None = None) -> None:
        if not invocation.argv:
            raise RunError([], -1, "empty argv")
        cancel = cancel or CancelToken()
        cancel.check()

        stdout, stderr = invocation.stdout, invocation.stderr
        if stdout is not None and stdout is stderr:
            output_mode = "combined"
        elif stdout is not None and stderr is not None:
            output_mode = "all"
        elif stdout is not None:
            output_mode = "stdout"
        elif stderr is not None:
            output_mode = "stderr"
        else:
            output_mode = "none"

        env = invocation.env
        created = self._request_json(
            "POST",
            "commands/",
            {
                "argv": invocation.argv,
                "dir": invocation.dir,
                "env": {
                    "vars": dict(env.vars),
                    "prepend_path": list(env.prepend_path),
                    "append_path": list(env.append_path),
                },
                "attach_stdin": invocation.stdin is not None,
                "output_mode": output_mode,
            },
        )
        command_id = str(created.get("id", "")) if isinstance(created, dict) else ""
        if not command_id:
            raise NetworkError("POST commands/: response has no command id")
        prefix = f"commands/{urllib.parse.quote(command_id)}/"
        logger.debug("remote run %s: %s", command_id, invocation.argv)

        abandoned = threading.Event()
        if invocation.stdin is not None:
            # Not joined: a caller-supplied stdin may stay open long after the command exits.
            _Worker(self._push_stdin, prefix, invocation.stdin).start()
        pulls: list[_Worker] = []
        if output_mode in ("combined", "all", "stdout"):
            pulls.append(_Worker(self._pull, prefix + "stdout", stdout, abandoned))
        if output_mode in ("all", "stderr"):
            pulls.append(_Worker(self._pull, prefix + "stderr", stderr, abandoned))
        for worker in pulls:
            worker.start()

        try:
            result = self._wait(prefix, cancel)
        except CancelError:
            abandoned.set()
            self._cancel_remote(prefix)
            raise
        except BaseException:
            abandoned.set()
            raise

        # Streams end when the command does; drain them before reporting.
        for worker in pulls:
            worker.join()
            if worker.error is not None:
                raise worker.error

        if not result.get("success", False):
            code = int(result.get("exit_code", 1) or 1)
            raise RunError(invocation.argv, code, result.get("error") or "")

    def _push_stdin(self, prefix: str, stdin: IO[bytes]) -> None:
        try:
            with self._open("POST", prefix + "stdin?close=1", _chunks(stdin), "application/octet-stream"):
                pass
        except (NetworkError, ValueError) as exc:
            logger.debug("Stdin feed stopped: %s", exc)

    def _pull(self, path: str, writer: IO[Any], abandoned: threading.Event) -> None:
        out = binary_writer(writer)
        with self._open("GET", path, timeout=None) as resp:
            for chunk in _chunks(resp):
                if abandoned.is_set():
                    return
                out.write(chunk)
        flush = getattr(out, "flush", None)
        if flush is not None:
            flush()

    def _wait(self, prefix: str, cancel: CancelToken) -> dict:
        delays = backoff_delays()
        while True:
            status = self._request_json("GET", prefix)
            result = status.get("result") if isinstance(status, dict) else None
            if result is not None:
                return result
            if cancel.wait(next(delays)):
                cancel.check()

    def _cancel_remote(self, prefix: str) -> None:
        try:
            with self._open("DELETE", prefix):
                pass
        except NetworkError as exc:
            logger.warning("Could not cancel remote command: %s", exc)


class _Worker(threading.Thread):
    """Daemon thread that keeps the exception its target raised.

    Daemon so that a stream the builder never closes cannot hold the
    process open after a cancelled run.
    """

    def __init__(self, target, *args: Any):
        super().__init__(target=target, args=args, name="yb-remote", daemon=True)
        self.error: BaseException | None = None

    def run(self) -> None:
        try:
            super().run()
        except Exception as exc:
            self.error = exc


def _chunks(stream: IO[bytes]) -> Iterator[bytes]:
    """Yield whatever *stream* has available, up to one chunk at a time, until EOF."""
    while True:
        chunk = stream.read1(_CHUNK) if hasattr(stream, "read1") else stream.read(_CHUNK)
        if not chunk:
            return
        yield chunk

