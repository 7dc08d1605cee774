"""A block that shows how much space a file system has, uses or has left."""

from __future__ import annotations

import enum
import math
import os
from collections.abc import Mapping
from dataclasses import dataclass, fields
from typing import Any, Callable, Optional

from barblocks.core import (
    Block,
    BlockError,
    ConfigurationError,
    FormatTemplate,
    State,
    TextWidget,
    Update,
    UpdateRequest,
)

StatVfs = Callable[[str], Any]

_BAR_CELLS = " ▏▎▍▌▋▊▉█"
_BAR_WIDTH = 10


class Unit(enum.Enum):
    """Units disk space can be shown in."""

    MB = "MB"
    GB = "GB"
    TB = "TB"
    TiB = "TiB"
    GiB = "GiB"
    MiB = "MiB"
    Percent = "Percent"

    def convert(self, nbytes: int) -> float:
        """A byte count expressed in this unit."""
        divisor = _DIVISORS[self]
        return float(nbytes) / divisor


_DIVISORS = {
    Unit.MB: 1000.0**2,
    Unit.GB: 1000.0**3,
    Unit.TB: 1000.0**4,
    Unit.MiB: 1024.0**2,
    Unit.GiB: 1024.0**3,
    Unit.TiB: 1024.0**4,
    Unit.Percent: 1.0,
}


class InfoType(enum.Enum):
    """Which figure the block is about."""

    AVAILABLE = "available"
    FREE = "free"
    TOTAL = "total"
    USED = "used"


class AlertType(enum.Enum):
    """Whether values above or below the thresholds are alarming."""

    ABOVE = "above"
    BELOW = "below"


def compute_state(value: float, warning: float, alert: float, alert_type: AlertType) -> State:
    """The state for `value` against the warning and alert thresholds."""
    if alert_type is AlertType.ABOVE:
        if value > alert:
            return State.CRITICAL
        if warning < value <= alert:
            return State.WARNING
        return State.IDLE
    if 0.0 <= value < alert:
        return State.CRITICAL
    if alert <= value < warning:
        return State.WARNING
    return State.IDLE


def _percent_bar(percent: float) -> str:
    if math.isnan(percent):
        percent = 0.0
    percent = min(max(percent, 0.0), 100.0)
    steps = len(_BAR_CELLS) - 1
    cells = []
    for index in range(_BAR_WIDTH):
        fill = min(max(percent - index * 10.0, 0.0), 10.0) / 10.0
        cells.append(_BAR_CELLS[round(fill * steps)])
    return "".join(cells)


def _format_percentage(percent: float) -> str:
    if math.isnan(percent):
        return "NaN%"
    return f"{percent:.2f}%"


def _ratio_percent(part: int, whole: int) -> float:
    if whole == 0:
        return math.nan if part == 0 else math.inf
    return part / whole * 100.0


def _config_error(detail: str) -> ConfigurationError:
    return ConfigurationError("disk_space", "Failed to deserialize block config.", detail)


@dataclass
class DiskSpaceConfig:
    """Configuration of the disk space block; `interval` is in seconds."""

    path: str = "/"
    alias: str = "/"
    info_type: InfoType = InfoType.AVAILABLE
    format: str = "{alias} {available} {unit}"
    unit: Unit = Unit.GB
    interval: float = 20.0
    warning: float = 20.0
    alert: float = 10.0
    show_percentage: bool = False
    show_bar: bool = False
    alert_absolute: bool = False

    @classmethod
    def from_mapping(cls, mapping: Mapping[str, Any]) -> "DiskSpaceConfig":
        unknown = sorted(set(mapping) - {f.name for f in fields(cls)})
        if unknown:
            raise _config_error(f"unknown fields: {', '.join(unknown)}")
        values = dict(mapping)
        for name in ("path", "alias", "format"):
            if name in values and not isinstance(values[name], str):
                raise _config_error(f"`{name}` must be a string")
        if "info_type" in values and not isinstance(values["info_type"], InfoType):
            try:
                values["info_type"] = InfoType(values["info_type"])
            except ValueError:
                raise _config_error("unknown `info_type`") from None
        if "unit" in values and not isinstance(values["unit"], Unit):
            try:
                values["unit"] = Unit(values["unit"])
            except ValueError:
                raise _config_error("unknown `unit`") from None
        if "interval" in values:
            interval = values["interval"]
            if isinstance(interval, bool) or not isinstance(interval, (int, float)) or interval < 0:
                raise _config_error("bad `interval`")
            values["interval"] = float(interval)
        for name in ("warning", "alert"):
            if name in values:
                value = values[name]
                if isinstance(value, bool) or not isinstance(value, (int, float)):
                    raise _config_error(f"`{name}` must be a number")
                values[name] = float(value)
        for name in ("show_percentage", "show_bar", "alert_absolute"):
            if name in values and not isinstance(values[name], bool):
                raise _config_error(f"`{name}` must be a boolean")
        return cls(**values)


class DiskSpace(Block):
    """Shows space figures of the file system holding `path`."""

    def __init__(
        self,
        id: int,
        config: DiskSpaceConfig,
        update_request: Optional[UpdateRequest] = None,
        *,
        icon: str = "",
        statvfs: StatVfs = os.statvfs,
    ) -> None:
        self.id = id
        self.config = config
        self.icon = icon
        self._statvfs = statvfs
        self.format = FormatTemplate(config.format)
        self.output = TextWidget(id, 0)

    def update(self) -> Update:
        try:
            stats = self._statvfs(self.config.path)
        except OSError as exc:
            raise BlockError("disk_space", "failed to retrieve statvfs") from exc

        total = stats.f_blocks * stats.f_frsize
        used = (stats.f_blocks - stats.f_bfree) * stats.f_frsize
        available = stats.f_bavail * stats.f_bsize
        free = stats.f_bfree * stats.f_bsize

        info_type = self.config.info_type
        if info_type is InfoType.AVAILABLE:
            result, alert_type = available, AlertType.BELOW
        elif info_type is InfoType.FREE:
            result, alert_type = free, AlertType.BELOW
        elif info_type is InfoType.TOTAL:
            # Kept for older configurations: same as `used` with a fixed format.
            result, alert_type = used, AlertType.ABOVE
            self.format = FormatTemplate("{used}/{total} {unit}")
        else:
            result, alert_type = used, AlertType.ABOVE

        percentage = _ratio_percent(result, total)
        if self.config.show_percentage:
            self.format = FormatTemplate("{alias} {result} ({percentage}) {unit}")
        elif self.config.show_bar:
            self.format = FormatTemplate("{alias} {result} {unit} {bar}")

        unit = self.config.unit
        values = {
            "percentage": _format_percentage(percentage),
            "bar": _percent_bar(percentage),
            "alias": self.config.alias,
            "unit": unit.value,
            "path": self.config.path,
            "total": f"{unit.convert(total):.2f}",
            "used": f"{unit.convert(used):.2f}",
            "available": f"{unit.convert(available):.2f}",
            "free": f"{unit.convert(free):.2f}",
            "icon": self.icon,
            "result": str(result),
        }
        self.output.text = self.format.render(values)

        alert_value = unit.convert(result) if self.config.alert_absolute else percentage
        self.output.state = compute_state(
            alert_value, self.config.warning, self.config.alert, alert_type
        )
        return Update.every(self.config.interval)

    def view(self) -> list[TextWidget]:
        return [self.output]