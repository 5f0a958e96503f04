# tests/conftest.py
import socket
import sys
import threading
import time
from http.server import BaseHTTPRequestHandler, ThreadingHTTPServer
from pathlib import Path

import pytest

# Add the "src" directory to the import path
sys.path.insert(0, str(Path(__file__).resolve().parents[1] / "gce-metadata"))

from rlc.gce_metadata.config import METADATA_HOST_VAR, MetadataConfig  # noqa: E402


class _MetadataHandler(BaseHTTPRequestHandler):
    """Answers from the routes table of the server; unknown paths are 404."""

    def do_GET(self):
        server = self.server
        server.requests.append({"path": self.path, "headers": dict(self.headers)})

        route = server.routes.get(self.path)
        if route is None:
            status, body, headers, delay = 404, "", {"Metadata-Flavor": "Google"}, 0
        else:
            status, body, headers, delay = route

        if delay:
            time.sleep(delay)

        payload = body if isinstance(body, bytes) else body.encode("utf-8")
        self.send_response(status)
        for name, value in headers.items():
            self.send_header(name, value)
        self.send_header("Content-Length", str(len(payload)))
        self.end_headers()
        self.wfile.write(payload)

    def log_message(self, format, *args):
        pass


class FakeMetadataServer(ThreadingHTTPServer):
    daemon_threads = True

    def __init__(self):
        super().__init__(("127.0.0.1", 0), _MetadataHandler)
        self.routes = {}
        self.requests = []

    @property
    def authority(self):
        return f"127.0.0.1:{self.server_address[1]}"

    @property
    def url(self):
        return f"http://{self.authority}"

    def add(self, path, body="", status=200, flavor="Google", delay=0):
        """Serve ``body`` at ``path``; ``flavor=None`` omits the Metadata-Flavor header."""
        headers = {} if flavor is None else {"Metadata-Flavor": flavor}
        self.routes[path] = (status, body, headers, delay)

    def add_metadata(self, key, body="", **kwargs):
        self.add(f"/computeMetadata/v1/{key}", body, **kwargs)

    def hits(self, key):
        path = f"/computeMetadata/v1/{key}"
        return sum(1 for r in self.requests if r["path"] == path)


@pytest.fixture(autouse=True)
def clean_env(monkeypatch):
    """Never let the host environment's metadata override leak into tests."""
    monkeypatch.delenv(METADATA_HOST_VAR, raising=False)


@pytest.fixture
def metadata_server():
    """A local stand-in for the metadata service."""
    server = FakeMetadataServer()
    thread = threading.Thread(target=server.serve_forever, daemon=True)
    thread.start()
    yield server
    server.shutdown()
    server.server_close()


@pytest.fixture
def server_config(metadata_server):
    """Configuration routing fetches to the fake metadata server."""
    return MetadataConfig(host=metadata_server.authority, host_override=True)


@pytest.fixture
def closed_port():
    """A local port with nothing listening on it."""
    sock = socket.socket(socket.AF_INET, socket.SOCK_STREAM)
    sock.bind(("127.0.0.1", 0))
    port = sock.getsockname()[1]
    sock.close()
    return port
