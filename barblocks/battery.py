"""A block that shows the status, capacity and remaining time of a battery."""

from __future__ import annotations

import enum
import os
import shlex
import subprocess
import threading
import time
from collections.abc import Mapping
from dataclasses import dataclass, fields
from pathlib import Path
from typing import Any, Optional

from barblocks.battery_device import DEFAULT_ROOT, BatteryDevice, PowerSupplyDevice
from barblocks.core import (
    Block,
    BlockError,
    ConfigurationError,
    FormatTemplate,
    Spacing,
    State,
    Task,
    TextWidget,
    Update,
    UpdateRequest,
)

_UPOWER = "org.freedesktop.UPower"
_UPOWER_DEVICE = "org.freedesktop.UPower.Device"
_U64_MAX = 2**64 - 1

_SHOW_FORMATS = {
    "time": "{time}",
    "percentage": "{percentage}%",
    "both": "{percentage}% {time}",
}

_BAR_CELLS = " ▏▎▍▌▋▊▉█"
_BAR_WIDTH = 10

_UPOWER_STATES = {
    1: "Charging",
    2: "Discharging",
    3: "Empty",
    4: "Full",
    5: "Not charging",
    6: "Discharging",
}


def format_time(minutes: int) -> str:
    """Remaining time as `H:MM`, hours capped at 99; empty for zero."""
    if minutes == 0:
        return ""
    return f"{min(minutes // 60, 99)}:{minutes % 60:02d}"


def battery_level_icon(capacity: Optional[int]) -> str:
    """The icon for a charge level; None stands for an unknown level."""
    if capacity is None:
        return "bat_full"
    if capacity <= 5:
        return "bat_empty"
    if capacity <= 25:
        return "bat_quarter"
    if capacity <= 50:
        return "bat_half"
    if capacity <= 75:
        return "bat_three_quarters"
    return "bat_full"


def _percent_bar(percent: float) -> str:
    percent = min(max(percent, 0.0), 100.0)
    steps = len(_BAR_CELLS) - 1
    cells = []
    for index in range(_BAR_WIDTH):
        fill = min(max(percent - index * 10.0, 0.0), 10.0) / 10.0
        cells.append(_BAR_CELLS[round(fill * steps)])
    return "".join(cells)


class BatteryDriver(enum.Enum):
    SYSFS = "sysfs"
    UPOWER = "upower"


def _busctl(*args: str) -> str:
    try:
        result = subprocess.run(
            ["busctl", "--system", *args], capture_output=True, text=True, timeout=2, check=False
        )
    except (OSError, subprocess.TimeoutExpired) as exc:
        raise BlockError("battery", "Failed to establish D-Bus connection.") from exc
    if result.returncode != 0:
        raise BlockError("battery", result.stderr.strip() or "D-Bus call failed")
    return result.stdout.strip()


class _UpowerDevice(BatteryDevice):
    """A battery known to UPower, queried over the system bus."""

    def __init__(self, device_path: str) -> None:
        self.device_path = device_path

    @classmethod
    def from_device(cls, device: str) -> "_UpowerDevice":
        if device == "DisplayDevice":
            device_path = "/org/freedesktop/UPower/devices/DisplayDevice"
        else:
            reply = _busctl("call", _UPOWER, "/org/freedesktop/UPower", _UPOWER, "EnumerateDevices")
            paths = shlex.split(reply)[2:]
            device_path = next((path for path in paths if path.endswith(device)), None)
            if device_path is None:
                raise BlockError("battery", "UPower device could not be found.")
        found = cls(device_path)
        try:
            upower_type = int(found._property("Type"))
        except ValueError:
            raise BlockError("battery", "Failed to read UPower Type property.") from None
        # Type 1 is line power; peripherals, UPSes and internal batteries are accepted.
        if upower_type == 1:
            raise BlockError("battery", "UPower device is not a battery.")
        return found

    def _property(self, name: str) -> str:
        try:
            reply = _busctl("get-property", _UPOWER, self.device_path, _UPOWER_DEVICE, name)
        except BlockError as exc:
            raise BlockError("battery", f"Failed to read UPower {name} property.") from exc
        parts = reply.split(None, 1)
        if len(parts) != 2:
            raise BlockError("battery", f"Failed to read UPower {name} property.")
        return parts[1]

    def _number(self, name: str) -> float:
        try:
            return float(self._property(name))
        except ValueError:
            raise BlockError("battery", f"Failed to read UPower {name} property.") from None

    def monitor(self, id: int, update_request: UpdateRequest) -> None:
        """Request an update of block `id` whenever the device's properties change."""
        rule = (
            f"type='signal',path='{self.device_path}',"
            "interface='org.freedesktop.DBus.Properties',member='PropertiesChanged'"
        )

        def watch() -> None:
            try:
                process = subprocess.Popen(
                    ["dbus-monitor", "--system", rule],
                    stdout=subprocess.PIPE,
                    stderr=subprocess.DEVNULL,
                    text=True,
                )
            except OSError:
                return
            assert process.stdout is not None
            for line in process.stdout:
                if line.startswith("signal") and "PropertiesChanged" in line:
                    update_request(Task(id))
                    time.sleep(1.0)

        threading.Thread(target=watch, name="battery", daemon=True).start()

    def is_available(self) -> bool:
        return True

    def refresh_device_info(self) -> None:
        return None

    def status(self) -> str:
        return _UPOWER_STATES.get(int(self._number("State")), "Unknown")

    def capacity(self) -> int:
        capacity = self._number("Percentage")
        return 100 if capacity > 100.0 else max(0, int(capacity))

    def time_remaining(self) -> int:
        name = "TimeToFull" if self.status() == "Charging" else "TimeToEmpty"
        seconds = int(self._number(name))
        return seconds // 60 if seconds >= 0 else 0

    def power_consumption(self) -> int:
        rate = self._number("EnergyRate") * 1_000_000.0
        if rate != rate or rate <= 0:
            return 0
        return min(int(rate), _U64_MAX)


def _config_error(detail: str) -> ConfigurationError:
    return ConfigurationError("battery", "Failed to deserialize block config.", detail)


@dataclass
class BatteryConfig:
    """Configuration of the battery block; `interval` is in seconds."""

    interval: float = 10.0
    device: str = "BAT0"
    show: Optional[str] = None
    format: str = "{percentage}%"
    full_format: str = ""
    missing_format: str = "{percentage}%"
    upower: bool = False
    driver: Optional[BatteryDriver] = None
    good: int = 60
    info: int = 60
    warning: int = 30
    critical: int = 15
    allow_missing: bool = False
    hide_missing: bool = False

    @classmethod
    def from_mapping(cls, mapping: Mapping[str, Any]) -> "BatteryConfig":
        unknown = sorted(set(mapping) - {f.name for f in fields(cls)})
        if unknown:
            raise _config_error(f"unknown fields: {', '.join(unknown)}")
        values = dict(mapping)
        if "interval" in values:
            interval = values["interval"]
            if isinstance(interval, bool) or not isinstance(interval, (int, float)) or interval < 0:
                raise _config_error("bad `interval`")
            values["interval"] = float(interval)
        for name in ("device", "format", "full_format", "missing_format"):
            if name in values and not isinstance(values[name], str):
                raise _config_error(f"`{name}` must be a string")
        if values.get("show") is not None and not isinstance(values["show"], str):
            raise _config_error("`show` must be a string")
        for name in ("upower", "allow_missing", "hide_missing"):
            if name in values and not isinstance(values[name], bool):
                raise _config_error(f"`{name}` must be a boolean")
        for name in ("good", "info", "warning", "critical"):
            if name in values:
                value = values[name]
                if isinstance(value, bool) or not isinstance(value, int) or value < 0:
                    raise _config_error(f"`{name}` must be a non-negative integer")
        driver = values.get("driver")
        if driver is not None and not isinstance(driver, BatteryDriver):
            try:
                values["driver"] = BatteryDriver(driver)
            except ValueError:
                raise _config_error("`driver` must be \"sysfs\" or \"upower\"") from None
        return cls(**values)


class Battery(Block):
    """Shows charge, remaining time and power draw of a battery."""

    def __init__(
        self,
        id: int,
        config: BatteryConfig,
        update_request: Optional[UpdateRequest] = None,
        *,
        root: str | os.PathLike = DEFAULT_ROOT,
    ) -> None:
        self.id = id
        self.config = config
        if config.show is not None:
            try:
                template = _SHOW_FORMATS[config.show]
            except KeyError:
                raise BlockError("battery", "Unknown show option") from None
        else:
            template = config.format

        if config.driver is not None:
            self.driver = config.driver
        elif config.upower:
            self.driver = BatteryDriver.UPOWER
        else:
            self.driver = BatteryDriver.SYSFS

        self.device: BatteryDevice
        if self.driver is BatteryDriver.UPOWER:
            upower = _UpowerDevice.from_device(config.device)
            if update_request is not None:
                upower.monitor(id, update_request)
            self.device = upower
        else:
            self.device = PowerSupplyDevice(config.device, config.allow_missing, root=Path(root))

        self.format = FormatTemplate(template)
        self.full_format = FormatTemplate(config.full_format)
        self.missing_format = FormatTemplate(config.missing_format)
        self.output = TextWidget(id, 0)

    def _next_update(self) -> Optional[Update]:
        if self.driver is BatteryDriver.SYSFS:
            return Update.every(self.config.interval)
        return None

    def _state_for(self, capacity: Optional[int]) -> State:
        if capacity is None:
            return State.WARNING
        if capacity <= self.config.critical:
            return State.CRITICAL
        if capacity <= self.config.warning:
            return State.WARNING
        if capacity <= self.config.info:
            return State.INFO
        if capacity > self.config.good:
            return State.GOOD
        return State.IDLE

    def update(self) -> Optional[Update]:
        if not self.device.is_available() and self.config.allow_missing:
            values = {"percentage": "X", "bar": _percent_bar(0.0), "time": "xx:xx", "power": "N/A"}
            self.output.icon = "bat_not_available"
            self.output.text = self.missing_format.render(values)
            self.output.state = State.WARNING
            return self._next_update()

        # The battery may have been swapped, so its specs are read again.
        self.device.refresh_device_info()
        status = self.device.status()

        capacity: Optional[int]
        try:
            capacity = self.device.capacity()
        except BlockError:
            capacity = None
        try:
            time_text = format_time(self.device.time_remaining())
        except BlockError:
            time_text = "×"
        try:
            power_text = f"{self.device.power_consumption() / 1_000_000:.2f}"
        except BlockError:
            power_text = "×"

        values = {
            "percentage": "×" if capacity is None else str(capacity),
            "bar": "×" if capacity is None else _percent_bar(float(capacity)),
            "time": time_text,
            "power": power_text,
        }

        if status in ("Full", "Not charging"):
            self.output.icon = "bat_full"
            self.output.text = self.full_format.render(values)
            self.output.state = State.GOOD
            self.output.spacing = Spacing.HIDDEN
        else:
            self.output.text = self.format.render(values)
            if status == "Charging":
                self.output.state = State.GOOD
                self.output.icon = "bat_charging"
            else:
                self.output.state = self._state_for(capacity)
                self.output.icon = battery_level_icon(capacity)
            self.output.spacing = Spacing.NORMAL

        return self._next_update()

    def view(self) -> list[TextWidget]:
        if not self.device.is_available() and self.config.hide_missing:
            return []
        return [self.output]