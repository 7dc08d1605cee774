"""A block that shows and changes the colour temperature of the screens."""

from __future__ import annotations

import enum
import shutil
import subprocess
from collections.abc import Mapping
from dataclasses import dataclass, field, fields
from typing import Any, Callable, Optional

from barblocks.core import (
    Block,
    BlockError,
    ClickEvent,
    ConfigurationError,
    LogicalDirection,
    MouseButton,
    Scrolling,
    TextWidget,
    Update,
    UpdateRequest,
)

Spawn = Callable[[str], None]

_MAX_STEP = 500
_MAX_TEMP = 10_000
_MIN_TEMP = 1000
_NEUTRAL_TEMP = 6500
_U16_MAX = 65535


class HueShifter(enum.Enum):
    """Programs that can shift the colour temperature."""

    REDSHIFT = "redshift"
    SCT = "sct"
    GAMMASTEP = "gammastep"


def _spawn_shell(command: str) -> None:
    subprocess.Popen(
        ["sh", "-c", command],
        stdin=subprocess.DEVNULL,
        stdout=subprocess.DEVNULL,
        stderr=subprocess.DEVNULL,
    )


_UPDATE_COMMANDS = {
    HueShifter.REDSHIFT: "redshift -O {temp} -P >/dev/null 2>&1",
    HueShifter.SCT: "sct {temp} >/dev/null 2>&1",
    HueShifter.GAMMASTEP: "killall gammastep; gammastep -O {temp} -P &",
}

_RESET_COMMANDS = {
    HueShifter.REDSHIFT: "redshift -x >/dev/null 2>&1",
    HueShifter.SCT: "sct >/dev/null 2>&1",
    HueShifter.GAMMASTEP: "gammastep -x >/dev/null 2>&1",
}


class HueShiftDriver:
    """Runs one of the supported programs to set or reset the temperature."""

    def __init__(self, shifter: HueShifter, spawn: Optional[Spawn] = None) -> None:
        self.shifter = shifter
        self._spawn = spawn if spawn is not None else _spawn_shell

    def _run(self, command: str) -> None:
        try:
            self._spawn(command)
        except OSError as exc:
            raise BlockError(
                "hueshift",
                f"Failed to set new color temperature using {self.shifter.value}.",
            ) from exc

    def update(self, temp: int) -> None:
        """Set the colour temperature to `temp` kelvin."""
        self._run(_UPDATE_COMMANDS[self.shifter].format(temp=temp))

    def reset(self) -> None:
        """Restore the neutral colour temperature."""
        self._run(_RESET_COMMANDS[self.shifter])


def detect_hue_shifter() -> Optional[HueShifter]:
    """The first installed shifter, preferring redshift, then sct, then gammastep."""
    for shifter in (HueShifter.REDSHIFT, HueShifter.SCT, HueShifter.GAMMASTEP):
        if shutil.which(shifter.value) is not None:
            return shifter
    return None


def _config_error(detail: str) -> ConfigurationError:
    return ConfigurationError("hueshift", "Failed to deserialize block config.", detail)


@dataclass
class HueshiftConfig:
    """Configuration of the hueshift block; `interval` is in seconds."""

    interval: float = 5.0
    max_temp: int = _MAX_TEMP
    min_temp: int = _MIN_TEMP
    current_temp: int = _NEUTRAL_TEMP
    hue_shifter: Optional[HueShifter] = field(default_factory=detect_hue_shifter)
    step: int = 100
    click_temp: int = _NEUTRAL_TEMP

    @classmethod
    def from_mapping(cls, mapping: Mapping[str, Any]) -> "HueshiftConfig":
        unknown = sorted(set(mapping) - {f.name for f in fields(cls)})
        if unknown:
            raise _config_error(f"unknown fields: {', '.join(unknown)}")
        values = dict(mapping)
        if "interval" in values:
            interval = values["interval"]
            if isinstance(interval, bool) or not isinstance(interval, (int, float)) or interval < 0:
                raise _config_error("bad `interval`")
            values["interval"] = float(interval)
        for name in ("max_temp", "min_temp", "current_temp", "step", "click_temp"):
            if name in values:
                value = values[name]
                if isinstance(value, bool) or not isinstance(value, int) or not 0 <= value <= _U16_MAX:
                    raise _config_error(f"`{name}` must be an integer between 0 and {_U16_MAX}")
        shifter = values.get("hue_shifter")
        if shifter is not None and not isinstance(shifter, HueShifter):
            try:
                values["hue_shifter"] = HueShifter(shifter)
            except ValueError:
                raise _config_error("unknown `hue_shifter`") from None
        return cls(**values)


class Hueshift(Block):
    """Shows the colour temperature; clicks and the wheel change it."""

    def __init__(
        self,
        id: int,
        config: HueshiftConfig,
        update_request: Optional[UpdateRequest] = None,
        *,
        scrolling: Scrolling = Scrolling.REVERSE,
        spawn: Optional[Spawn] = None,
    ) -> None:
        self.id = id
        self.config = config
        self.scrolling = scrolling
        # Large steps make changes too abrupt.
        self.step = min(config.step, _MAX_STEP)
        self.max_temp = min(config.max_temp, _MAX_TEMP)
        if config.min_temp < _MIN_TEMP or config.min_temp > config.max_temp:
            self.min_temp = _MIN_TEMP
        else:
            self.min_temp = config.min_temp
        self.current_temp = config.current_temp
        self.click_temp = config.click_temp
        if config.hue_shifter is None:
            raise BlockError("hueshift", "Could not detect driver program")
        self.driver = HueShiftDriver(config.hue_shifter, spawn)
        self.text = TextWidget(id, 0, text=str(self.current_temp))

    def update(self) -> Update:
        self.text.text = str(self.current_temp)
        return Update.every(self.config.interval)

    def view(self) -> list[TextWidget]:
        return [self.text]

    def click(self, event: ClickEvent) -> None:
        button = event.button
        if button is MouseButton.LEFT:
            self.current_temp = self.click_temp
            self.driver.update(self.current_temp)
            return
        if button is MouseButton.RIGHT:
            if self.max_temp > _NEUTRAL_TEMP:
                self.current_temp = _NEUTRAL_TEMP
                self.driver.reset()
            else:
                self.current_temp = self.max_temp
                self.driver.update(self.current_temp)
            return
        direction = self.scrolling.direction(button)
        if direction is LogicalDirection.UP:
            new_temp = self.current_temp + self.step
            if new_temp <= self.max_temp:
                self.driver.update(new_temp)
                self.current_temp = new_temp
        elif direction is LogicalDirection.DOWN:
            new_temp = self.current_temp - self.step
            if new_temp >= self.min_temp:
                self.driver.update(new_temp)
                self.current_temp = new_temp