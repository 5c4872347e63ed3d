"""
Shared test fixtures and configuration.
"""

import http.server
import json
import subprocess
import textwrap
import threading
from pathlib import Path

import pytest

from ybuild.core.config.datadirs import DataDirs
from ybuild.core.config.loader import MANIFEST_FILE
from ybuild.core.services.docker_common import DockerCLI


@pytest.fixture
def package_dir(tmp_path: Path) -> Path:
    """Return an empty package checkout directory."""
    pkg = tmp_path / "pkg"
    pkg.mkdir()
    return pkg


@pytest.fixture
def data_dirs(tmp_path: Path) -> DataDirs:
    """Return data directories rooted in a temporary cache."""
    return DataDirs(tmp_path / "cache")


@pytest.fixture
def write_manifest(package_dir: Path):
    """Return a function that writes a dedented .yourbase.yml into the package."""

    def _write(content: str) -> Path:
        path = package_dir / MANIFEST_FILE
        path.write_text(textwrap.dedent(content))
        return path

    return _write


# ── Fake HTTP file server ───────────────────────────────────────────


class _FileHandler(http.server.BaseHTTPRequestHandler):
    def do_HEAD(self):
        self._serve(body=False)

    def do_GET(self):
        self._serve(body=True)

    def _serve(self, body: bool) -> None:
        server = self.server
        server.requests.append((self.command, self.path))
        status = server.statuses.get(self.path)
        data = server.files.get(self.path)
        if status is not None or data is None:
            self.send_response(status or 404)
            self.send_header("Content-Length", "0")
            self.end_headers()
            return
        length = server.lengths.get(self.path, len(data))
        self.send_response(200)
        self.send_header("Content-Length", str(length))
        self.end_headers()
        if body:
            self.wfile.write(data)

    def log_message(self, format, *args):
        pass


class FileServer:
    """In-process HTTP server serving ``files`` and recording every request."""

    def __init__(self):
        self._httpd = http.server.ThreadingHTTPServer(("127.0.0.1", 0), _FileHandler)
        self._httpd.files = {}
        self._httpd.statuses = {}
        self._httpd.lengths = {}
        self._httpd.requests = []
        self._thread = threading.Thread(target=self._httpd.serve_forever, daemon=True)

    @property
    def files(self) -> dict[str, bytes]:
        return self._httpd.files

    @property
    def statuses(self) -> dict[str, int]:
        return self._httpd.statuses

    @property
    def lengths(self) -> dict[str, int]:
        """Content-Length to advertise instead of the real size."""
        return self._httpd.lengths

    @property
    def requests(self) -> list[tuple[str, str]]:
        return self._httpd.requests

    def count(self, method: str, path: str) -> int:
        return sum(1 for m, p in self.requests if m == method and p == path)

    def url(self, path: str) -> str:
        host, port = self._httpd.server_address[:2]
        return f"http://{host}:{port}{path}"

    def start(self) -> None:
        self._thread.start()

    def stop(self) -> None:
        self._httpd.shutdown()
        self._httpd.server_close()


@pytest.fixture
def file_server():
    """Start a FileServer for the duration of one test."""
    server = FileServer()
    server.start()
    yield server
    server.stop()


# ── Fake docker client ──────────────────────────────────────────────


_VALUE_FLAGS = {"--name", "--volume", "--env", "--publish", "--workdir", "--network", "--network-alias", "--label"}


class FakeDocker(DockerCLI):
    """DockerCLI whose ``_call`` answers from an in-memory daemon.

    ``fail`` maps a docker subcommand (``"create"``, ``"start"``, …) to an
    error message returned with exit status 1. Images listed in
    ``exits_on_start`` produce containers that stop right after starting;
    images in ``broken_images`` cannot be created at all.
    """

    def __init__(self):
        self.images: set[str] = set()
        self.networks: set[str] = set()
        self.containers: dict[str, dict] = {}
        self.calls: list[list[str]] = []
        self.fail: dict[str, str] = {}
        self.exits_on_start: set[str] = set()
        self.broken_images: set[str] = set()
        self._next = 0

    def commands(self, name: str) -> list[list[str]]:
        return [c for c in self.calls if c[0] == name]

    def _find(self, ref: str) -> dict | None:
        if ref in self.containers:
            return self.containers[ref]
        for container in self.containers.values():
            if container["name"] == ref:
                return container
        return None

    def _call(self, args, timeout):
        self.calls.append(list(args))
        cmd = args[0]
        if cmd in self.fail:
            return _completed(args, 1, stderr=self.fail[cmd])
        handler = getattr(self, f"_do_{cmd}", None)
        if handler is None:
            return _completed(args, 0)
        return handler(args)

    def _do_version(self, args):
        return _completed(args, 0, "24.0.0")

    def _do_info(self, args):
        return _completed(args, 0, "linux/x86_64")

    def _do_image(self, args):
        return _completed(args, 0 if args[-1] in self.images else 1, stderr="no such image")

    def _do_pull(self, args):
        self.images.add(args[-1])
        return _completed(args, 0)

    def _do_create(self, args):
        opts: dict[str, list[str]] = {}
        rest = args[1:]
        i = 0
        while i < len(rest) and rest[i].startswith("--"):
            if rest[i] in _VALUE_FLAGS:
                opts.setdefault(rest[i], []).append(rest[i + 1])
                i += 2
            else:
                i += 1
        image, command = rest[i], rest[i + 1 :]
        if image in self.broken_images:
            return _completed(args, 1, stderr=f"cannot create from {image}")
        self._next += 1
        cid = f"c{self._next:04d}"
        name = opts.get("--name", [cid])[0]
        if self._find(name) is not None:
            return _completed(args, 1, stderr=f"name {name} already in use")
        self.containers[cid] = {
            "id": cid,
            "name": name,
            "image": image,
            "command": command,
            "network": opts.get("--network", [""])[0],
            "env": opts.get("--env", []),
            "mounts": opts.get("--volume", []),
            "init": "--init" in rest[:i],
            "status": "created",
            "ip": f"172.18.0.{self._next + 1}",
        }
        return _completed(args, 0, cid + "\n")

    def _do_start(self, args):
        container = self._find(args[-1])
        if container is None:
            return _completed(args, 1, stderr="no such container")
        container["status"] = "exited" if container["image"] in self.exits_on_start else "running"
        return _completed(args, 0)

    def _do_stop(self, args):
        container = self._find(args[-1])
        if container is None:
            return _completed(args, 1, stderr="no such container")
        container["status"] = "exited"
        return _completed(args, 0)

    def _do_rm(self, args):
        container = self._find(args[-1])
        if container is None:
            return _completed(args, 1, stderr="no such container")
        del self.containers[container["id"]]
        return _completed(args, 0)

    def _do_container(self, args):
        container = self._find(args[-1])
        if container is None:
            return _completed(args, 1, stderr="no such container")
        if "--format" in args:
            return _completed(args, 0, container["status"] + "\n")
        networks = {}
        if container["network"] and container["status"] == "running":
            networks[container["network"]] = {"IPAddress": container["ip"]}
        data = [{"Id": container["id"], "NetworkSettings": {"IPAddress": "", "Networks": networks}}]
        return _completed(args, 0, json.dumps(data))

    def _do_network(self, args):
        action, name = args[1], args[-1]
        if action == "inspect":
            return _completed(args, 0 if name in self.networks else 1, stderr="no such network")
        if action == "create":
            self.networks.add(name)
        elif action == "rm":
            self.networks.discard(name)
        return _completed(args, 0)


def _completed(args, code: int, stdout: str = "", stderr: str = ""):
    return subprocess.CompletedProcess(args, code, stdout, stderr)


@pytest.fixture
def fake_docker() -> FakeDocker:
    return FakeDocker()
