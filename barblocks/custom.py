"""A block that shows the output of a shell command."""

from __future__ import annotations

import json
import os
import subprocess
from collections.abc import Mapping
from dataclasses import dataclass, fields
from typing import Any, Optional

from barblocks.core import (
    Block,
    BlockError,
    ClickEvent,
    ConfigurationError,
    State,
    Task,
    TextWidget,
    Update,
    UpdateRequest,
)


@dataclass(frozen=True)
class CustomOutput:
    """A command's output given as JSON."""

    text: str
    icon: str = ""
    state: State = State.IDLE


def parse_json_output(raw: str) -> CustomOutput:
    """Parse `{"text": ..., "icon": ..., "state": ...}` as printed by a command."""
    try:
        data = json.loads(raw)
    except ValueError as exc:
        raise BlockError("custom", f"Error parsing JSON: {exc}") from None
    if not isinstance(data, dict):
        raise BlockError("custom", "Error parsing JSON: expected an object")
    text = data.get("text")
    if not isinstance(text, str):
        raise BlockError("custom", "Error parsing JSON: missing field `text`")
    icon = data.get("icon", "")
    if not isinstance(icon, str):
        raise BlockError("custom", "Error parsing JSON: `icon` must be a string")
    state = State.IDLE
    if "state" in data:
        if not isinstance(data["state"], str):
            raise BlockError("custom", "Error parsing JSON: `state` must be a string")
        try:
            state = State.from_name(data["state"])
        except ValueError as exc:
            raise BlockError("custom", f"Error parsing JSON: {exc}") from None
    return CustomOutput(text=text, icon=icon, state=state)


def _config_error(detail: str) -> ConfigurationError:
    return ConfigurationError("custom", "Failed to deserialize block config.", detail)


def _parse_interval(value: Any) -> Update:
    if isinstance(value, Update):
        return value
    if isinstance(value, str) and value.strip().lower() == "once":
        return Update.once()
    if isinstance(value, bool) or not isinstance(value, (int, float)) or value < 0:
        raise _config_error("`interval` must be a number of seconds or \"once\"")
    return Update.every(value)


@dataclass
class CustomConfig:
    """Configuration of the custom block."""

    interval: Update = Update(10.0)
    command: Optional[str] = None
    cycle: Optional[list[str]] = None
    signal: Optional[int] = None
    json: bool = False
    hide_when_empty: bool = False
    shell: Optional[str] = None

    @classmethod
    def from_mapping(cls, mapping: Mapping[str, Any]) -> "CustomConfig":
        unknown = sorted(set(mapping) - {f.name for f in fields(cls)})
        if unknown:
            raise _config_error(f"unknown fields: {', '.join(unknown)}")
        values = dict(mapping)
        if "interval" in values:
            values["interval"] = _parse_interval(values["interval"])
        for name in ("command", "shell"):
            if values.get(name) is not None and not isinstance(values[name], str):
                raise _config_error(f"`{name}` must be a string")
        cycle = values.get("cycle")
        if cycle is not None:
            if not isinstance(cycle, (list, tuple)) or not all(isinstance(c, str) for c in cycle):
                raise _config_error("`cycle` must be a list of strings")
            values["cycle"] = list(cycle)
        signal = values.get("signal")
        if signal is not None and (isinstance(signal, bool) or not isinstance(signal, int)):
            raise _config_error("`signal` must be an integer")
        for name in ("json", "hide_when_empty"):
            if name in values and not isinstance(values[name], bool):
                raise _config_error(f"`{name}` must be a boolean")
        return cls(**values)


class Custom(Block):
    """Runs a command (or one of a cycle of commands) and shows what it prints."""

    def __init__(self, id: int, config: CustomConfig, update_request: Optional[UpdateRequest] = None) -> None:
        self.id = id
        self.config = config
        self.update_request = update_request
        self.output = TextWidget(id, 0)
        self.on_click: Optional[str] = None
        self.shell = config.shell if config.shell is not None else os.environ.get("SHELL", "sh")
        self.signal_number = config.signal
        self.is_empty = True
        if config.cycle is not None and config.command is not None:
            raise BlockError("custom", "`command` and `cycle` are mutually exclusive")
        self.cycle = list(config.cycle) if config.cycle is not None else None
        self._cycle_index = 0
        self.command = config.command

    def _current_command(self) -> str:
        if self.cycle is not None:
            return self.cycle[self._cycle_index] if self.cycle else ""
        return self.command or ""

    def _request_update(self) -> None:
        if self.update_request is not None:
            self.update_request(Task(self.id))

    def update(self) -> Update:
        try:
            result = subprocess.run([self.shell, "-c", self._current_command()], capture_output=True, check=False)
            raw = result.stdout.decode("utf-8", errors="replace").strip()
        except OSError as exc:
            raw = str(exc)

        if self.config.json:
            output = parse_json_output(raw)
            self.output.icon = output.icon
            self.output.state = output.state
            self.output.text = output.text
            self.is_empty = not output.text
        else:
            self.is_empty = not raw
            self.output.text = raw
        return self.config.interval

    def view(self) -> list[TextWidget]:
        if self.is_empty and self.config.hide_when_empty:
            return []
        return [self.output]

    def signal(self, signal: int) -> None:
        if self.signal_number is not None and self.signal_number == signal:
            self._request_update()

    def click(self, event: ClickEvent) -> None:
        update = False
        if self.on_click is not None:
            try:
                subprocess.Popen(
                    [self.shell, "-c", self.on_click],
                    stdin=subprocess.DEVNULL,
                    stdout=subprocess.DEVNULL,
                    stderr=subprocess.DEVNULL,
                    start_new_session=True,
                )
            except OSError:
                pass
            update = True
        if self.cycle is not None:
            if self.cycle:
                self._cycle_index = (self._cycle_index + 1) % len(self.cycle)
            update = True
        if update:
            self._request_update()