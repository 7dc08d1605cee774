"""A block that reports container counts from the local Docker daemon."""

from __future__ import annotations

import http.client
import json
import os
import socket
from collections.abc import Mapping
from dataclasses import dataclass, fields
from typing import Any, Optional

from barblocks.core import (
    Block,
    BlockError,
    ConfigurationError,
    FormatTemplate,
    TextWidget,
    Update,
    UpdateRequest,
)

DEFAULT_SOCKET = "/var/run/docker.sock"

_STATUS_KEYS = {
    "total": "Containers",
    "running": "ContainersRunning",
    "stopped": "ContainersStopped",
    "paused": "ContainersPaused",
    "images": "Images",
}


class _UnixHTTPConnection(http.client.HTTPConnection):
    def __init__(self, socket_path: str, timeout: float) -> None:
        super().__init__("localhost", timeout=timeout)
        self._socket_path = socket_path

    def connect(self) -> None:
        sock = socket.socket(socket.AF_UNIX, socket.SOCK_STREAM)
        sock.settimeout(self.timeout)
        try:
            sock.connect(self._socket_path)
        except OSError:
            sock.close()
            raise
        self.sock = sock


def http_get_unix_json(socket_path: str | os.PathLike, path: str) -> Any:
    """GET `path` over the HTTP server on a Unix socket and decode its JSON body."""
    connection = _UnixHTTPConnection(os.fspath(socket_path), timeout=5.0)
    try:
        connection.request("GET", path)
        response = connection.getresponse()
        body = response.read()
    except (OSError, http.client.HTTPException) as exc:
        raise BlockError("docker", f"request to {path} failed: {exc}") from exc
    finally:
        connection.close()
    if not 200 <= response.status < 300:
        raise BlockError("docker", f"request to {path} returned status {response.status}")
    try:
        return json.loads(body)
    except ValueError as exc:
        raise BlockError("docker", "Failed to parse JSON response.") from exc


@dataclass
class DockerConfig:
    """Configuration of the docker block; `interval` is in seconds."""

    interval: float = 5.0
    format: str = "{running}%"

    @classmethod
    def from_mapping(cls, mapping: Mapping[str, Any]) -> "DockerConfig":
        unknown = sorted(set(mapping) - {f.name for f in fields(cls)})
        if unknown:
            raise ConfigurationError(
                "docker", "Failed to deserialize block config.", f"unknown fields: {', '.join(unknown)}"
            )
        values = dict(mapping)
        if "interval" in values:
            interval = values["interval"]
            if isinstance(interval, bool) or not isinstance(interval, (int, float)) or interval < 0:
                raise ConfigurationError("docker", "Failed to deserialize block config.", "bad `interval`")
            values["interval"] = float(interval)
        if "format" in values and not isinstance(values["format"], str):
            raise ConfigurationError("docker", "Failed to deserialize block config.", "`format` must be a string")
        return cls(**values)


class Docker(Block):
    """Shows container and image counts; "N/A" when the daemon cannot be reached."""

    def __init__(
        self,
        id: int,
        config: DockerConfig,
        update_request: Optional[UpdateRequest] = None,
        *,
        socket_path: str | os.PathLike = DEFAULT_SOCKET,
    ) -> None:
        self.id = id
        self.config = config
        self.socket_path = socket_path
        try:
            self.format = FormatTemplate(config.format)
        except ConfigurationError as exc:
            raise BlockError("docker", "Invalid format specified") from exc
        self.text = TextWidget(id, 0, text="N/A", icon="docker")

    def update(self) -> Update:
        interval = Update.every(self.config.interval)
        try:
            status = http_get_unix_json(self.socket_path, "/info")
        except BlockError:
            self.text.text = "N/A"
            return interval

        if not isinstance(status, Mapping):
            raise BlockError("docker", "Failed to parse JSON response.")
        values = {}
        for name, key in _STATUS_KEYS.items():
            value = status.get(key)
            if isinstance(value, bool) or not isinstance(value, int):
                raise BlockError("docker", "Failed to parse JSON response.")
            values[name] = value
        self.text.text = self.format.render(values)
        return interval

    def view(self) -> list[TextWidget]:
        return [self.text]