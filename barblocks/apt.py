"""A block that counts pending apt package upgrades."""

from __future__ import annotations

import os
import re
import subprocess
import tempfile
from collections.abc import Mapping
from dataclasses import dataclass, fields
from pathlib import Path
from typing import Any, Optional

from barblocks.core import (
    Block,
    BlockError,
    ClickEvent,
    ConfigurationError,
    FormatTemplate,
    MouseButton,
    State,
    TextWidget,
    Update,
    UpdateRequest,
)

_STRING_FIELDS = ("format", "format_singular", "format_up_to_date")
_OPTIONAL_STRING_FIELDS = ("warning_updates_regex", "critical_updates_regex")


@dataclass
class AptConfig:
    """Configuration of the apt block; `interval` is in seconds."""

    interval: float = 600.0
    format: str = "{count}"
    format_singular: str = "{count}"
    format_up_to_date: str = "{count}"
    warning_updates_regex: Optional[str] = None
    critical_updates_regex: Optional[str] = None

    @classmethod
    def from_mapping(cls, mapping: Mapping[str, Any]) -> "AptConfig":
        unknown = sorted(set(mapping) - {f.name for f in fields(cls)})
        if unknown:
            raise ConfigurationError(
                "apt", "Failed to deserialize block config.", f"unknown fields: {', '.join(unknown)}"
            )
        values = dict(mapping)
        if "interval" in values:
            interval = values["interval"]
            if isinstance(interval, bool) or not isinstance(interval, (int, float)) or interval < 0:
                raise ConfigurationError("apt", "Failed to deserialize block config.", "bad `interval`")
            values["interval"] = float(interval)
        for name in _STRING_FIELDS:
            if name in values and not isinstance(values[name], str):
                raise ConfigurationError("apt", "Failed to deserialize block config.", f"`{name}` must be a string")
        for name in _OPTIONAL_STRING_FIELDS:
            if values.get(name) is not None and not isinstance(values[name], str):
                raise ConfigurationError("apt", "Failed to deserialize block config.", f"`{name}` must be a string")
        return cls(**values)


def write_apt_config(cache_dir: Path) -> Path:
    """Create `cache_dir` and an apt.conf that keeps apt's state inside it."""
    cache_dir = Path(cache_dir)
    try:
        cache_dir.mkdir(exist_ok=True)
    except OSError as exc:
        raise BlockError("apt", "Failed to create temp dir") from exc
    content = (
        f'Dir::State "{cache_dir}";\n'
        'Dir::State::lists "lists";\n'
        f'Dir::Cache "{cache_dir}";\n'
        'Dir::Cache::srcpkgcache "srcpkgcache.bin";\n'
        'Dir::Cache::pkgcache "pkgcache.bin";'
    )
    config_path = cache_dir / "apt.conf"
    try:
        config_path.write_text(content)
    except OSError as exc:
        raise BlockError("apt", "Failed to write to config file") from exc
    return config_path


def fetch_updates(config_path: str | os.PathLike) -> str:
    """Refresh the package lists and return the output of `apt list --upgradable`."""
    env = {**os.environ, "APT_CONFIG": str(config_path)}
    try:
        subprocess.run(["sh", "-c", "apt update"], env=env, capture_output=True, check=False)
    except OSError as exc:
        raise BlockError("apt", "Failed to run `apt update` command") from exc
    try:
        listing = subprocess.run(
            ["sh", "-c", "apt list --upgradable"], env=env, capture_output=True, check=False
        )
    except OSError as exc:
        raise BlockError("apt", "Problem running apt command") from exc
    try:
        return listing.stdout.decode("utf-8")
    except UnicodeDecodeError as exc:
        raise BlockError("apt", "Problem capturing apt command output") from exc


def count_updates(updates: str) -> int:
    """Number of upgradable packages in an `apt list --upgradable` listing."""
    return sum(1 for line in updates.splitlines() if "[upgradable" in line)


def has_matching_update(updates: str, pattern: re.Pattern[str]) -> bool:
    """Whether any line of the listing matches `pattern`."""
    return any(pattern.search(line) for line in updates.splitlines())


def _compile(pattern: Optional[str], kind: str) -> Optional[re.Pattern[str]]:
    if pattern is None:
        return None
    try:
        return re.compile(pattern)
    except re.error as exc:
        raise ConfigurationError("apt", f"invalid {kind} updates regex", "invalid regex") from exc


def _template(text: str, option: str) -> FormatTemplate:
    try:
        return FormatTemplate(text)
    except ConfigurationError as exc:
        raise BlockError("apt", f"Invalid format specified for apt::{option}") from exc


class Apt(Block):
    """Shows how many apt packages can be upgraded."""

    def __init__(
        self,
        id: int,
        config: AptConfig,
        update_request: Optional[UpdateRequest] = None,
        *,
        cache_dir: Optional[Path] = None,
    ) -> None:
        self.id = id
        self.config = config
        self.format = _template(config.format, "format")
        self.format_singular = _template(config.format_singular, "format_singular")
        self.format_up_to_date = _template(config.format_up_to_date, "format_up_to_date")
        self.warning_regex = _compile(config.warning_updates_regex, "warning")
        self.critical_regex = _compile(config.critical_updates_regex, "critical")
        if cache_dir is None:
            cache_dir = Path(tempfile.gettempdir()) / "i3rs-apt"
        self.config_path = write_apt_config(cache_dir)
        self.output = TextWidget(id, 0, icon="update")

    def update(self) -> Update:
        updates = fetch_updates(self.config_path)
        count = count_updates(updates)
        values = {"count": count}
        template = {0: self.format_up_to_date, 1: self.format_singular}.get(count, self.format)
        self.output.text = template.render(values)

        if count == 0:
            self.output.state = State.IDLE
        elif self.critical_regex is not None and has_matching_update(updates, self.critical_regex):
            self.output.state = State.CRITICAL
        elif self.warning_regex is not None and has_matching_update(updates, self.warning_regex):
            self.output.state = State.WARNING
        else:
            self.output.state = State.INFO
        return Update.every(self.config.interval)

    def view(self) -> list[TextWidget]:
        return [self.output]

    def click(self, event: ClickEvent) -> None:
        if event.button is MouseButton.LEFT:
            self.update()