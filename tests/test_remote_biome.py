"""
Tests for the remote biome against an in-process fake builder.
"""

import http.server
import io
import json
import os
import random
import tarfile
import threading
import urllib.parse

import pytest

from ybuild.adapters.base import Invocation, run_output
from ybuild.adapters.remote.client import RemoteBiome, backoff_delays
from ybuild.core.cancel import CancelToken
from ybuild.core.errors import CancelError, NetworkError, RunError
from ybuild.core.models.environment import Environment


class _Command:
    def __init__(self, body: dict):
        self.body = body
        self.stdin: bytes | None = None
        self.done = threading.Event()
        self.stdout = b""
        self.stderr = b""
        self.result: dict | None = None
        self.deleted = False


def _default_script(cmd: _Command):
    """Answer a handful of commands; anything else never finishes."""
    argv = cmd.body["argv"]
    if argv[0] == "echo":
        return (" ".join(argv[1:]) + "\n").encode(), b"", 0
    if argv[0] == "cat":
        if cmd.stdin is None:
            return None
        return cmd.stdin, b"", 0
    if argv[0] == "printenv":
        value = cmd.body["env"]["vars"].get(argv[1])
        return (value + "\n").encode() if value else b"", b"", 0 if value else 1
    if argv[0] == "warn":
        return b"out\n", b"err\n", 0
    if argv[0] == "false":
        return b"", b"", 1
    return None


class _BuilderHandler(http.server.BaseHTTPRequestHandler):
    def log_message(self, format, *args):
        pass

    def _json(self, data, status: int = 200, content_type: str = "application/json") -> None:
        body = json.dumps(data).encode()
        self.send_response(status)
        self.send_header("Content-Type", content_type)
        self.send_header("Content-Length", str(len(body)))
        self.end_headers()
        self.wfile.write(body)

    def _raw(self, data: bytes) -> None:
        self.send_response(200)
        self.send_header("Content-Type", "application/octet-stream")
        self.send_header("Content-Length", str(len(data)))
        self.end_headers()
        self.wfile.write(data)

    def _body(self) -> bytes:
        if self.headers.get("Transfer-Encoding", "").lower() != "chunked":
            return self.rfile.read(int(self.headers.get("Content-Length") or 0))
        data = b""
        while True:
            size = int(self.rfile.readline().split(b";")[0].strip(), 16)
            if size == 0:
                self.rfile.readline()
                return data
            data += self.rfile.read(size)
            self.rfile.readline()

    def _command(self, parts: list[str]) -> _Command | None:
        return self.server.commands.get(parts[1]) if len(parts) > 1 else None

    def do_GET(self):
        server = self.server
        parts = [p for p in urllib.parse.urlparse(self.path).path.split("/") if p]
        if not parts:
            self._json(server.info, content_type=server.info_content_type)
            return
        cmd = self._command(parts)
        if cmd is None:
            self._json({"error": "not found"}, status=404)
            return
        if len(parts) == 2:
            self._json({"result": cmd.result if cmd.done.is_set() else None})
            return
        cmd.done.wait(5)
        if server.hold_streams:
            server.released.wait(30)
        self._raw(cmd.stdout if parts[2] == "stdout" else cmd.stderr)

    def do_POST(self):
        server = self.server
        parts = [p for p in urllib.parse.urlparse(self.path).path.split("/") if p]
        body = self._body()
        if parts == ["commands"]:
            server.next_id += 1
            cmd_id = f"cmd{server.next_id}"
            cmd = _Command(json.loads(body))
            server.commands[cmd_id] = cmd
            server.execute(cmd)
            self._json({"id": cmd_id})
            return
        cmd = self._command(parts)
        if cmd is None:
            self._json({"error": "not found"}, status=404)
            return
        cmd.stdin = body
        if not cmd.done.is_set():
            server.execute(cmd)
        self._json({})

    def do_PUT(self):
        self.server.package = self._body()
        self._json({})

    def do_DELETE(self):
        parts = [p for p in urllib.parse.urlparse(self.path).path.split("/") if p]
        cmd = self._command(parts)
        if cmd is not None:
            cmd.deleted = True
            cmd.result = {"success": False, "exit_code": -1, "error": "cancelled"}
            cmd.done.set()
        self._json({})


class FakeBuilder(http.server.ThreadingHTTPServer):
    daemon_threads = True

    def __init__(self):
        super().__init__(("127.0.0.1", 0), _BuilderHandler)
        self.info = {
            "descriptor": {"os": "linux", "arch": "arm64"},
            "dirs": {"package": "/src", "home": "/home/yb", "tools": "/opt/yb"},
        }
        self.info_content_type = "application/json"
        self.commands: dict[str, _Command] = {}
        self.next_id = 0
        self.package = b""
        self.script = _default_script
        # Keep output streams open after the command ends, like a stalled builder
        self.hold_streams = False
        self.released = threading.Event()

    @property
    def url(self) -> str:
        host, port = self.server_address[:2]
        return f"http://{host}:{port}/"

    def execute(self, cmd: _Command) -> None:
        outcome = self.script(cmd)
        if outcome is None:
            return
        cmd.stdout, cmd.stderr, code = outcome
        cmd.result = {"success": code == 0, "exit_code": code, "error": ""}
        cmd.done.set()


@pytest.fixture
def builder():
    server = FakeBuilder()
    thread = threading.Thread(target=server.serve_forever, daemon=True)
    thread.start()
    yield server
    server.released.set()
    for cmd in server.commands.values():
        cmd.done.set()
    server.shutdown()
    server.server_close()


class TestConnect:
    def test_describe_and_dirs(self, builder):
        biome = RemoteBiome(builder.url)
        assert str(biome.describe()) == "linux-arm64"
        assert biome.dirs().package == "/src"
        assert biome.dirs().tools == "/opt/yb"

    def test_malformed_description(self, builder):
        builder.info = {"descriptor": {"os": "linux"}}
        with pytest.raises(NetworkError, match="malformed"):
            RemoteBiome(builder.url)

    def test_wrong_content_type(self, builder):
        builder.info_content_type = "text/html"
        with pytest.raises(NetworkError, match="content type"):
            RemoteBiome(builder.url)

    def test_unreachable(self):
        with pytest.raises(NetworkError):
            RemoteBiome("http://127.0.0.1:1/", timeout=2)


class TestRun:
    def test_stdout(self, builder):
        biome = RemoteBiome(builder.url)
        assert run_output(biome, Invocation(argv=["echo", "hello", "remote"])) == "hello remote\n"

    def test_request_body(self, builder):
        biome = RemoteBiome(builder.url)
        biome.run(Invocation(argv=["echo", "x"], dir="sub"))

        (cmd,) = builder.commands.values()
        assert cmd.body["argv"] == ["echo", "x"]
        assert cmd.body["dir"] == "sub"
        assert cmd.body["output_mode"] == "none"
        assert cmd.body["attach_stdin"] is False

    def test_environment_forwarded(self, builder):
        biome = RemoteBiome(builder.url)
        env = Environment(vars={"FOO": "bar"}, prepend_path=("/opt/bin",))
        assert run_output(biome, Invocation(argv=["printenv", "FOO"], env=env)) == "bar\n"
        (cmd,) = builder.commands.values()
        assert cmd.body["env"]["prepend_path"] == ["/opt/bin"]

    def test_separate_streams(self, builder):
        biome = RemoteBiome(builder.url)
        out, err = io.BytesIO(), io.BytesIO()
        biome.run(Invocation(argv=["warn"], stdout=out, stderr=err))

        assert out.getvalue() == b"out\n"
        assert err.getvalue() == b"err\n"
        (cmd,) = builder.commands.values()
        assert cmd.body["output_mode"] == "all"

    def test_combined_stream(self, builder):
        biome = RemoteBiome(builder.url)
        out = io.BytesIO()
        biome.run(Invocation(argv=["warn"], stdout=out, stderr=out))
        (cmd,) = builder.commands.values()
        assert cmd.body["output_mode"] == "combined"

    def test_stdin(self, builder):
        biome = RemoteBiome(builder.url)
        out = io.BytesIO()
        biome.run(Invocation(argv=["cat"], stdin=io.BytesIO(b"over the wire"), stdout=out))
        assert out.getvalue() == b"over the wire"

    def test_failure(self, builder):
        biome = RemoteBiome(builder.url)
        with pytest.raises(RunError) as exc_info:
            biome.run(Invocation(argv=["false"]))
        assert exc_info.value.exit_code == 1

    def test_cancel_deletes_remote_command(self, builder):
        biome = RemoteBiome(builder.url)
        token = CancelToken()
        timer = threading.Timer(0.2, token.cancel)
        timer.start()
        try:
            with pytest.raises(CancelError):
                biome.run(Invocation(argv=["sleep", "forever"]), token)
        finally:
            timer.cancel()
        (cmd,) = builder.commands.values()
        assert cmd.deleted

    def test_open_stdin_does_not_block_completion(self, builder):
        biome = RemoteBiome(builder.url)
        read_fd, write_fd = os.pipe()
        stdin = os.fdopen(read_fd, "rb")
        out = io.BytesIO()
        finished = threading.Event()

        def run():
            biome.run(Invocation(argv=["echo", "hi"], stdin=stdin, stdout=out))
            finished.set()

        threading.Thread(target=run, daemon=True).start()
        try:
            assert finished.wait(5), "run did not return after the command completed"
            assert out.getvalue() == b"hi\n"
        finally:
            os.close(write_fd)

    def test_cancel_leaves_no_blocking_threads(self, builder):
        builder.hold_streams = True
        biome = RemoteBiome(builder.url)
        token = CancelToken()
        timer = threading.Timer(0.2, token.cancel)
        timer.start()
        try:
            with pytest.raises(CancelError):
                biome.run(Invocation(argv=["sleep", "forever"], stdout=io.BytesIO()), token)
        finally:
            timer.cancel()

        workers = [t for t in threading.enumerate() if t.name == "yb-remote"]
        assert workers
        assert all(t.daemon for t in workers)


class TestUpload:
    def test_upload_package(self, builder, package_dir):
        (package_dir / "main.go").write_text("package main\n")
        (package_dir / "sub").mkdir()
        (package_dir / "sub" / "file.txt").write_text("x")

        RemoteBiome(builder.url).upload_package(package_dir)

        with tarfile.open(fileobj=io.BytesIO(builder.package)) as tar:
            names = set(tar.getnames())
        assert {"main.go", "sub", "sub/file.txt"} <= names


class TestBackoff:
    def test_delays_grow_and_cap(self):
        delays = backoff_delays(minimum=0.01, maximum=0.5, factor=2.0, rng=random.Random(1))
        values = [next(delays) for _ in range(12)]

        assert values[0] >= 0.01
        assert all(v <= 0.5 for v in values)
        assert values[-1] == 0.5
