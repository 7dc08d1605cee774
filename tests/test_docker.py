import json
import os
import socketserver
import tempfile
import threading
from contextlib import contextmanager
from http.server import BaseHTTPRequestHandler

import pytest

from barblocks.core import BlockError, ConfigurationError, Update
from barblocks.docker import Docker, DockerConfig, http_get_unix_json

INFO = {
    "Containers": 5,
    "ContainersRunning": 2,
    "ContainersStopped": 3,
    "ContainersPaused": 0,
    "Images": 11,
}


@contextmanager
def serve(routes):
    with tempfile.TemporaryDirectory() as directory:
        path = os.path.join(directory, "docker.sock")

        class Handler(BaseHTTPRequestHandler):
            def do_GET(self):
                if self.path in routes:
                    status, body = 200, json.dumps(routes[self.path]).encode()
                else:
                    status, body = 404, b"{}"
                self.send_response(status)
                self.send_header("Content-Type", "application/json")
                self.send_header("Content-Length", str(len(body)))
                self.end_headers()
                self.wfile.write(body)

            def log_message(self, *args):
                pass

        server = socketserver.ThreadingUnixStreamServer(path, Handler)
        thread = threading.Thread(target=server.serve_forever, daemon=True)
        thread.start()
        try:
            yield path
        finally:
            server.shutdown()
            server.server_close()


def test_http_get_unix_json_returns_body():
    with serve({"/info": INFO}) as path:
        assert http_get_unix_json(path, "/info") == INFO


def test_http_get_unix_json_bad_status_raises():
    with serve({"/info": INFO}) as path:
        with pytest.raises(BlockError):
            http_get_unix_json(path, "/nothing")


def test_http_get_unix_json_missing_socket_raises(tmp_path):
    with pytest.raises(BlockError):
        http_get_unix_json(tmp_path / "absent.sock", "/info")


def test_config_defaults_and_validation():
    config = DockerConfig.from_mapping({})
    assert config.format == "{running}%"
    assert config.interval == 5
    with pytest.raises(ConfigurationError):
        DockerConfig.from_mapping({"socket": "/x"})
    with pytest.raises(ConfigurationError):
        DockerConfig.from_mapping({"format": 3})


def test_invalid_format_raises():
    with pytest.raises(BlockError):
        Docker(0, DockerConfig(format="{running"))


def test_update_renders_counts():
    config = DockerConfig(format="{running}/{total} {paused} {stopped} {images}")
    with serve({"/info": INFO}) as path:
        block = Docker(4, config, socket_path=path)
        result = block.update()
    assert result == Update.every(config.interval)
    expected = f"{INFO['ContainersRunning']}/{INFO['Containers']} {INFO['ContainersPaused']} " \
               f"{INFO['ContainersStopped']} {INFO['Images']}"
    assert block.text.text == expected
    assert block.view() == [block.text]


def test_update_without_daemon_shows_na(tmp_path):
    block = Docker(4, DockerConfig(), socket_path=tmp_path / "absent.sock")
    block.text.text = "stale"
    assert block.update() == Update.every(5)
    assert block.text.text == "N/A"


def test_update_with_incomplete_status_raises():
    with serve({"/info": {"Containers": 1}}) as path:
        block = Docker(4, DockerConfig(), socket_path=path)
        with pytest.raises(BlockError):
            block.update()