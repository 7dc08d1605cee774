"""Battery devices that can report status, capacity, remaining time and power draw."""

from __future__ import annotations

import math
import os
from abc import ABC, abstractmethod
from pathlib import Path
from typing import Callable, Optional, TypeVar

from barblocks.core import BlockError

DEFAULT_ROOT = Path("/sys/class/power_supply")

_U64_MAX = 2**64 - 1

_T = TypeVar("_T")


def _to_unsigned(value: float) -> int:
    """Convert a float to a non-negative integer, saturating like an unsigned cast."""
    if math.isnan(value) or value <= 0:
        return 0
    if math.isinf(value) or value >= _U64_MAX:
        return _U64_MAX
    return int(value)


def _parse_int(text: str) -> int:
    if not text.isdigit():
        raise ValueError(f"not an unsigned integer: {text!r}")
    return int(text)


def _read(path: Path) -> str:
    try:
        return path.read_text().strip()
    except OSError as exc:
        raise BlockError("battery", f"failed to read {path}") from exc


def _read_value(path: Path, parse: Callable[[str], _T], what: str) -> _T:
    try:
        return parse(_read(path))
    except ValueError:
        raise BlockError("battery", f"failed to parse {what}") from None


def _try_value(path: Path, parse: Callable[[str], _T]) -> Optional[_T]:
    """The parsed value of `path`, or None if it is missing or unparsable."""
    if not path.exists():
        return None
    text = _read(path)
    try:
        return parse(text)
    except ValueError:
        return None


class BatteryDevice(ABC):
    """A battery that can be queried for the properties shown to the user."""

    @abstractmethod
    def is_available(self) -> bool:
        """Whether the device is present right now."""

    @abstractmethod
    def refresh_device_info(self) -> None:
        """Re-read the static specs of the device, which may have been swapped."""

    @abstractmethod
    def status(self) -> str:
        """One of "Full", "Charging", "Discharging", "Not charging" or "Unknown"."""

    @abstractmethod
    def capacity(self) -> int:
        """Current charge as a percentage, at most 100."""

    @abstractmethod
    def time_remaining(self) -> int:
        """Estimated minutes until (dis)charging completes."""

    @abstractmethod
    def power_consumption(self) -> int:
        """Current power draw in µW."""


class PowerSupplyDevice(BatteryDevice):
    """A power supply as exposed by sysfs."""

    def __init__(
        self,
        device: str,
        allow_missing: bool = False,
        *,
        root: str | os.PathLike = DEFAULT_ROOT,
    ) -> None:
        self.device_path = Path(root) / device
        self.allow_missing = allow_missing
        self.charge_full: Optional[int] = None
        self.energy_full: Optional[int] = None

    def _path(self, name: str) -> Path:
        return self.device_path / name

    def is_available(self) -> bool:
        return self.device_path.exists()

    def refresh_device_info(self) -> None:
        if not self.is_available():
            if self.allow_missing:
                self.charge_full = None
                self.energy_full = None
                return
            raise BlockError("battery", f"Power supply device '{self.device_path}' does not exist")

        charge_full = self._path("charge_full")
        self.charge_full = (
            _read_value(charge_full, _parse_int, "charge_full") if charge_full.exists() else None
        )
        energy_full = self._path("energy_full")
        self.energy_full = (
            _read_value(energy_full, _parse_int, "energy_full") if energy_full.exists() else None
        )

    def status(self) -> str:
        return _read(self._path("status"))

    def capacity(self) -> int:
        capacity_path = self._path("capacity")
        charge_path = self._path("charge_now")
        energy_path = self._path("energy_now")

        if capacity_path.exists():
            capacity = _read_value(capacity_path, _parse_int, "capacity")
        elif charge_path.exists() and self.charge_full is not None:
            charge = _read_value(charge_path, _parse_int, "charge_now")
            capacity = _to_unsigned(_ratio(charge, self.charge_full) * 100.0)
        elif energy_path.exists() and self.energy_full is not None:
            energy = _read_value(energy_path, _parse_int, "energy_now")
            capacity = _to_unsigned(_ratio(energy, self.energy_full) * 100.0)
        else:
            raise BlockError("battery", "Device does not support reading capacity, charge, or energy")

        # The kernel may report a charge above the full charge when the battery is full.
        return min(capacity, 100)

    def time_remaining(self) -> int:
        time_to_empty = _try_value(self._path("time_to_empty_now"), _parse_int)
        time_to_full = _try_value(self._path("time_to_full_now"), _parse_int)

        full = self.energy_full if self.energy_full is not None else self.charge_full

        energy_path = self._path("energy_now")
        charge_path = self._path("charge_now")
        if energy_path.exists():
            fill = _try_value(energy_path, float)
        else:
            fill = _try_value(charge_path, float)

        power_path = self._path("power_now")
        current_path = self._path("current_now")
        if power_path.exists():
            usage = _try_value(power_path, float)
        else:
            usage = _try_value(current_path, float)

        # Energy/power or charge/current: either way the units cancel out to hours.
        status = self.status()
        if status == "Discharging":
            if time_to_empty is not None:
                return time_to_empty
            if fill is not None and usage is not None:
                return _to_unsigned(_ratio(fill, usage) * 60.0)
            raise BlockError(
                "battery", "Device does not support any method of calculating time to empty"
            )
        if status == "Charging":
            if time_to_full is not None:
                return time_to_full
            if full is not None and fill is not None and usage is not None:
                return _to_unsigned(_ratio(full - fill, usage) * 60.0)
            raise BlockError(
                "battery", "Device does not support any method of calculating time to full"
            )
        return 0

    def power_consumption(self) -> int:
        power_path = self._path("power_now")
        current_path = self._path("current_now")
        voltage_path = self._path("voltage_now")

        if power_path.exists():
            return _read_value(power_path, _parse_int, "power_now")
        if current_path.exists() and voltage_path.exists():
            current = _read_value(current_path, _parse_int, "current_now")
            voltage = _read_value(voltage_path, _parse_int, "voltage_now")
            return (current * voltage) // 1_000_000
        raise BlockError("battery", "Device does not support power consumption")


def _ratio(numerator: float, denominator: float) -> float:
    """Floating division with IEEE results for a zero denominator."""
    if denominator == 0:
        if numerator == 0 or math.isnan(numerator):
            return math.nan
        return math.copysign(math.inf, numerator)
    return numerator / denominator