import threading
from dataclasses import dataclass
from http.server import BaseHTTPRequestHandler, ThreadingHTTPServer
from typing import Optional

import pytest

from ctprobe.config import ContainerConfig, ProbeSettings
from ctprobe.errors import HarnessError
from ctprobe.provider import ContainerHandle, ContainerProvider, ExecResult


@dataclass
class StartCall:
    handle: ContainerHandle
    config: ContainerConfig
    entrypoint: Optional[tuple]
    ports: tuple


class FakeProvider(ContainerProvider):
    """In-memory provider that records every lifecycle call."""

    name = "fake"

    def __init__(self, files=(), commands=None, states=None, start_error=None):
        self.files = set(files)
        self.commands = dict(commands or {})
        self.states = list(states or ["running"])
        self.start_error = start_error
        self.http_address = None
        self.starts = []
        self.removed = []
        self.exec_calls = []

    def available(self):
        return True

    def start(self, image, config, *, entrypoint=None, ports=()):
        if self.start_error:
            raise HarnessError(self.start_error, image=image)
        handle = ContainerHandle(
            container_id=f"{len(self.starts):064x}", image=image, provider=self
        )
        self.starts.append(
            StartCall(handle, config, tuple(entrypoint) if entrypoint else None, tuple(ports))
        )
        return handle

    def state(self, handle):
        # Walk through the configured states, then stay on the last one
        if len(self.states) > 1:
            return self.states.pop(0)
        return self.states[0]

    def exec(self, handle, command):
        self.exec_calls.append(list(command))
        if command[:2] == ["test", "-e"]:
            return ExecResult(0 if command[2] in self.files else 1, "", "", command)
        if tuple(command) in self.commands:
            returncode, stdout, stderr = self.commands[tuple(command)]
            return ExecResult(returncode, stdout, stderr, command)
        return ExecResult(127, "", f"{command[0]}: not found", command)

    def host_port(self, handle, container_port):
        if self.http_address is None:
            raise HarnessError(f"Port {container_port} is not published")
        return self.http_address

    def logs(self, handle):
        return "fake container output"

    def remove(self, handle):
        self.removed.append(handle.container_id)

    def list_managed(self):
        return self.live

    @property
    def live(self):
        """IDs started but never removed."""
        return [s.handle.container_id for s in self.starts if s.handle.container_id not in self.removed]


class _RouteHandler(BaseHTTPRequestHandler):
    routes = {
        "/": (200, "index"),
        "/healthz": (200, "status: ok"),
        "/broken": (503, "service unavailable"),
    }
    # Targets use a port nothing listens on, as a container-internal port would be
    redirects = {
        "/dir": "http://127.0.0.1:1/dir/",
    }

    def do_GET(self):
        if self.path in self.redirects:
            self.send_response(301)
            self.send_header("Location", self.redirects[self.path])
            self.send_header("Content-Length", "0")
            self.end_headers()
            return
        status, body = self.routes.get(self.path, (404, "not found"))
        payload = body.encode("utf-8")
        self.send_response(status)
        self.send_header("Content-Type", "text/plain")
        self.send_header("Content-Length", str(len(payload)))
        self.end_headers()
        self.wfile.write(payload)

    def log_message(self, format, *args):
        pass


@pytest.fixture
def fake_provider():
    return FakeProvider()


@pytest.fixture
def make_provider():
    """Factory for providers with files, commands or states preset."""
    return FakeProvider


@pytest.fixture
def fast_settings():
    """Settings with short waits so failing readiness tests stay quick."""
    return ProbeSettings(ready_timeout=0.5, poll_interval=0.01, http_timeout=0.5)


@pytest.fixture
def http_server():
    """Serve a few fixed routes on a random loopback port."""
    server = ThreadingHTTPServer(("127.0.0.1", 0), _RouteHandler)
    thread = threading.Thread(target=server.serve_forever, daemon=True)
    thread.start()
    try:
        yield server.server_address[0], server.server_address[1]
    finally:
        server.shutdown()
        server.server_close()


@pytest.fixture
def closed_port():
    """A loopback port nothing listens on."""
    import socket

    with socket.socket(socket.AF_INET, socket.SOCK_STREAM) as sock:
        sock.bind(("127.0.0.1", 0))
        port = sock.getsockname()[1]
    return "127.0.0.1", port


@pytest.fixture
def suite_dir(tmp_path):
    """An app directory with a container-test.toml."""
    app_dir = tmp_path / "apps" / "demo-app"
    app_dir.mkdir(parents=True)
    (app_dir / "container-test.toml").write_text(
        """
image = "ghcr.io/example/app:rolling"

[env]
TZ = "UTC"

[settings]
ready_timeout = 0.5
poll_interval = 0.01

[[files]]
path = "/usr/local/bin/yq"

[[commands]]
entrypoint = "yq"
args = ["--version"]
output = "version"
"""
    )
    return app_dir
