"""A block that shows and adjusts the brightness of a backlit device through sysfs."""

from __future__ import annotations

import math
import os
import subprocess
import threading
from collections.abc import Mapping
from dataclasses import dataclass, fields
from pathlib import Path
from typing import Any, Optional

from barblocks.core import (
    Block,
    BlockError,
    ClickEvent,
    ConfigurationError,
    LogicalDirection,
    Scrolling,
    Task,
    TextWidget,
    Update,
    UpdateRequest,
)

DEFAULT_ROOT = Path("/sys/class/backlight")

_ICON_LEVELS = (
    (6, "backlight_empty"),
    (13, "backlight_1"),
    (20, "backlight_2"),
    (26, "backlight_3"),
    (33, "backlight_4"),
    (40, "backlight_5"),
    (46, "backlight_6"),
    (53, "backlight_7"),
    (60, "backlight_8"),
    (67, "backlight_9"),
    (73, "backlight_10"),
    (80, "backlight_11"),
    (87, "backlight_12"),
    (93, "backlight_13"),
)


def read_brightness(path: str | os.PathLike) -> int:
    """Read a raw brightness value from a sysfs file."""
    try:
        content = Path(path).read_text()
    except OSError as exc:
        raise BlockError("backlight", "Failed to read brightness file") from exc
    content = content.removesuffix("\n")
    if not content.isdigit():
        raise BlockError("backlight", "Failed to read value from brightness file")
    return int(content)


def clamp_root_scaling(root_scaling: float) -> float:
    """Keep the scaling root in a safe range; anything outside (0.1, 10) becomes 1.0."""
    return root_scaling if 0.1 < root_scaling < 10.0 else 1.0


def brightness_icon(brightness: int) -> str:
    """The icon name for a brightness percentage."""
    for upper, icon in _ICON_LEVELS:
        if brightness <= upper:
            return icon
    return "backlight_full"


def _round(value: float) -> int:
    return int(math.floor(value + 0.5))


class BacklitDevice:
    """A physical backlit device whose brightness can be read and set."""

    def __init__(self, device_path: Path, max_brightness: int, root_scaling: float = 1.0) -> None:
        self.device_path = Path(device_path)
        self.max_brightness = max_brightness
        self.root_scaling = clamp_root_scaling(root_scaling)

    @classmethod
    def first(cls, root_scaling: float = 1.0, root: str | os.PathLike = DEFAULT_ROOT) -> "BacklitDevice":
        """The first device found under `root`."""
        try:
            entries = sorted(Path(root).iterdir())
        except OSError as exc:
            raise BlockError("backlight", "Failed to read backlight device directory") from exc
        if not entries:
            raise BlockError("backlight", "No backlit devices found")
        device_path = entries[0]
        return cls(device_path, read_brightness(device_path / "max_brightness"), root_scaling)

    @classmethod
    def from_device(
        cls, device: str, root_scaling: float = 1.0, root: str | os.PathLike = DEFAULT_ROOT
    ) -> "BacklitDevice":
        """The device named `device` under `root`."""
        device_path = Path(root) / device
        if not device_path.exists():
            raise BlockError("backlight", f"Backlight device '{device_path}' does not exist")
        return cls(device_path, read_brightness(device_path / "max_brightness"), root_scaling)

    def brightness(self) -> int:
        """The current brightness as a percentage, at most 100."""
        raw = read_brightness(self.brightness_file())
        ratio = (raw / self.max_brightness) ** (1.0 / self.root_scaling)
        return min(_round(ratio * 100.0), 100)

    def set_brightness(self, value: int) -> None:
        """Set the brightness to a percentage; values above 100 are treated as 100."""
        safe_value = min(max(value, 0), 100)
        ratio = (safe_value / 100.0) ** self.root_scaling
        raw = max(1, _round(ratio * self.max_brightness))
        try:
            fd = os.open(self.device_path / "brightness", os.O_WRONLY | os.O_TRUNC)
        except OSError:
            self._set_brightness_via_logind(raw)
            return
        try:
            with os.fdopen(fd, "w") as handle:
                handle.write(str(raw))
        except OSError as exc:
            raise BlockError("backlight", "Failed to write into brightness file") from exc

    def _set_brightness_via_logind(self, raw: int) -> None:
        device_name = self.device_path.name
        if not device_name:
            raise BlockError("backlight", "Malformed device path")
        command = [
            "busctl",
            "call",
            "--system",
            "org.freedesktop.login1",
            "/org/freedesktop/login1/session/auto",
            "org.freedesktop.login1.Session",
            "SetBrightness",
            "ssu",
            "backlight",
            device_name,
            str(raw),
        ]
        try:
            result = subprocess.run(command, capture_output=True, timeout=1, check=False)
        except (OSError, subprocess.TimeoutExpired) as exc:
            raise BlockError("backlight", "Failed to send D-Bus message") from exc
        if result.returncode != 0:
            raise BlockError("backlight", "Failed to send D-Bus message")

    def brightness_file(self) -> Path:
        """The file the current brightness is read from."""
        # amdgpu reports actual_brightness on a different scale than max_brightness.
        if self.device_path.name == "amdgpu_bl0":
            return self.device_path / "brightness"
        return self.device_path / "actual_brightness"


def _config_error(detail: str) -> ConfigurationError:
    return ConfigurationError("backlight", "Failed to deserialize block config.", detail)


@dataclass
class BacklightConfig:
    """Configuration of the backlight block."""

    device: Optional[str] = None
    step_width: int = 5
    root_scaling: float = 1.0
    invert_icons: bool = False

    @classmethod
    def from_mapping(cls, mapping: Mapping[str, Any]) -> "BacklightConfig":
        unknown = sorted(set(mapping) - {f.name for f in fields(cls)})
        if unknown:
            raise _config_error(f"unknown fields: {', '.join(unknown)}")
        values = dict(mapping)
        if values.get("device") is not None and not isinstance(values["device"], str):
            raise _config_error("`device` must be a string")
        if "step_width" in values:
            step = values["step_width"]
            if isinstance(step, bool) or not isinstance(step, int) or step < 0:
                raise _config_error("`step_width` must be a non-negative integer")
        if "root_scaling" in values:
            scaling = values["root_scaling"]
            if isinstance(scaling, bool) or not isinstance(scaling, (int, float)):
                raise _config_error("`root_scaling` must be a number")
            values["root_scaling"] = float(scaling)
        if "invert_icons" in values and not isinstance(values["invert_icons"], bool):
            raise _config_error("`invert_icons` must be a boolean")
        return cls(**values)


class Backlight(Block):
    """Shows the brightness of a backlit device; the wheel changes it."""

    def __init__(
        self,
        id: int,
        config: BacklightConfig,
        update_request: Optional[UpdateRequest] = None,
        *,
        scrolling: Scrolling = Scrolling.REVERSE,
        root: str | os.PathLike = DEFAULT_ROOT,
    ) -> None:
        self.id = id
        self.config = config
        self.scrolling = scrolling
        if config.device is not None:
            self.device = BacklitDevice.from_device(config.device, config.root_scaling, root)
        else:
            self.device = BacklitDevice.first(config.root_scaling, root)
        self.output = TextWidget(id, 0)
        self._stop = threading.Event()
        if update_request is not None:
            watcher = threading.Thread(
                target=self._watch,
                args=(self.device.brightness_file(), update_request),
                name="backlight",
                daemon=True,
            )
            watcher.start()

    def _watch(self, path: Path, update_request: UpdateRequest) -> None:
        def snapshot() -> Optional[str]:
            try:
                return path.read_text()
            except OSError:
                return None

        last = snapshot()
        while not self._stop.wait(0.25):
            current = snapshot()
            if current != last:
                last = current
                update_request(Task(self.id))

    def update(self) -> Optional[Update]:
        brightness = self.device.brightness()
        self.output.text = f"{brightness}%"
        if self.config.invert_icons:
            brightness = 100 - brightness
        self.output.icon = brightness_icon(brightness)
        return None

    def view(self) -> list[TextWidget]:
        return [self.output]

    def click(self, event: ClickEvent) -> None:
        brightness = self.device.brightness()
        step = self.config.step_width
        direction = self.scrolling.direction(event.button)
        if direction is LogicalDirection.UP:
            if brightness < 100:
                self.device.set_brightness(brightness + step)
        elif direction is LogicalDirection.DOWN:
            if brightness > step:
                self.device.set_brightness(brightness - step)