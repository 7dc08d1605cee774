"""A block that shows processor utilization and, optionally, frequency."""

from __future__ import annotations

import os
from collections.abc import Mapping, Sequence
from dataclasses import dataclass, fields
from pathlib import Path
from typing import Any, Optional

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

MAX_CPUS = 32
"""Maximum number of processors (including the aggregate line) that are read."""

_BOXCHARS = "▁▂▃▄▅▆▇█"


def parse_proc_stat(text: str) -> list[tuple[int, int]]:
    """(idle, non-idle) jiffies for each `cpu` line of /proc/stat, aggregate first."""
    times = []
    for line in text.splitlines():
        if not line.startswith("cpu"):
            continue
        data = [int(word) for word in line.split()[1:] if word.isdigit()]
        if len(data) < 8:
            raise BlockError("cpu", "malformed cpu line in /proc/stat")
        user, nice, system, idle, iowait, irq, softirq, steal = data[:8]
        times.append((idle + iowait, user + nice + system + irq + softirq + steal))
        if len(times) >= MAX_CPUS:
            break
    return times


def parse_cpu_frequencies(text: str) -> list[float]:
    """The `cpu MHz` values of /proc/cpuinfo, in order."""
    freqs = []
    for line in text.splitlines():
        if not line.startswith("cpu MHz"):
            continue
        last = line.split(" ")[-1]
        try:
            freqs.append(float(last))
        except ValueError:
            raise BlockError("cpu", "failed to parse cpu frequency") from None
        if len(freqs) >= MAX_CPUS:
            break
    return freqs


def format_utilization(values: Sequence[float], per_core: bool) -> str:
    """Utilization as percentages; the first value is the aggregate one."""
    if per_core:
        return " ".join(f"{100.0 * value:02.0f}%" for value in values[1:])
    return f"{100.0 * values[0]:02.0f}%"


def format_frequency(cpu_freqs: Sequence[float], per_core: bool) -> str:
    """Frequencies in GHz, per core or averaged."""
    if per_core:
        return " ".join(f"{freq / 1000.0:.1f}GHz" for freq in cpu_freqs)
    if not cpu_freqs:
        return "NaNGHz"
    average = sum(cpu_freqs) / len(cpu_freqs) / 1000.0
    return f"{average:.1f}GHz"


def _config_error(detail: str) -> ConfigurationError:
    return ConfigurationError("cpu", "Failed to deserialize block config.", detail)


@dataclass
class CpuConfig:
    """Configuration of the cpu block; `interval` is in seconds."""

    interval: float = 1.0
    info: int = 30
    warning: int = 60
    critical: int = 90
    frequency: bool = False
    format: str = "{utilization}"
    per_core: bool = False

    @classmethod
    def from_mapping(cls, mapping: Mapping[str, Any]) -> "CpuConfig":
        unknown = sorted(set(mapping) - {f.name for f in fields(cls)})
        if unknown:
            raise _config_error(f"unknown fields: {', '.join(unknown)}")
        values = dict(mapping)
        if "interval" in values:
            interval = values["interval"]
            if isinstance(interval, bool) or not isinstance(interval, (int, float)) or interval < 0:
                raise _config_error("bad `interval`")
            values["interval"] = float(interval)
        for name in ("info", "warning", "critical"):
            if name in values:
                value = values[name]
                if isinstance(value, bool) or not isinstance(value, int) or value < 0:
                    raise _config_error(f"`{name}` must be a non-negative integer")
        for name in ("frequency", "per_core"):
            if name in values and not isinstance(values[name], bool):
                raise _config_error(f"`{name}` must be a boolean")
        if "format" in values and not isinstance(values["format"], str):
            raise _config_error("`format` must be a string")
        return cls(**values)


class Cpu(Block):
    """Shows processor utilization from /proc/stat."""

    def __init__(
        self,
        id: int,
        config: CpuConfig,
        update_request: Optional[UpdateRequest] = None,
        *,
        stat_path: str | os.PathLike = "/proc/stat",
        cpuinfo_path: str | os.PathLike = "/proc/cpuinfo",
    ) -> None:
        self.id = id
        self.config = config
        self.stat_path = Path(stat_path)
        self.cpuinfo_path = Path(cpuinfo_path)
        template = "{utilization} {frequency}" if config.frequency else config.format
        try:
            self.format = FormatTemplate(template)
        except ConfigurationError as exc:
            raise BlockError("cpu", "Invalid format specified for cpu") from exc
        self.has_frequency = "{frequency}" in template
        self.has_barchart = "{barchart}" in template
        self._previous = [(0, 0)] * MAX_CPUS
        self.output = TextWidget(id, 0, icon="cpu")

    def _read(self, path: Path, message: str) -> str:
        try:
            return path.read_text()
        except OSError as exc:
            raise BlockError("cpu", message) from exc

    def _utilizations(self, times: list[tuple[int, int]]) -> list[float]:
        utilizations = []
        for index, (idle, non_idle) in enumerate(times):
            prev_idle, prev_non_idle = self._previous[index]
            prev_total = prev_idle + prev_non_idle
            total = idle + non_idle
            # Counters may go backwards, for example after hibernation.
            if prev_total < total and prev_idle <= idle:
                total_delta, idle_delta = total - prev_total, idle - prev_idle
            else:
                total_delta, idle_delta = 1, 1
            utilizations.append(min(max((total_delta - idle_delta) / total_delta, 0.0), 1.0))
            self._previous[index] = (idle, non_idle)
        return utilizations

    def update(self) -> Update:
        stat = self._read(self.stat_path, "Your system doesn't support /proc/stat")
        freqs: list[float] = []
        if self.has_frequency:
            freqs = parse_cpu_frequencies(self._read(self.cpuinfo_path, "failed to read /proc/cpuinfo"))

        times = parse_proc_stat(stat)
        if not times:
            raise BlockError("cpu", "no cpu lines in /proc/stat")
        utilizations = self._utilizations(times)

        average = int(100.0 * utilizations[0])
        if average > self.config.critical:
            self.output.state = State.CRITICAL
        elif average > self.config.warning:
            self.output.state = State.WARNING
        elif average > self.config.info:
            self.output.state = State.INFO
        else:
            self.output.state = State.IDLE

        barchart = ""
        if self.has_barchart:
            barchart = "".join(_BOXCHARS[int(7.5 * value)] for value in utilizations[1:])

        values = {
            "frequency": format_frequency(freqs, self.config.per_core),
            "barchart": barchart,
            "utilization": format_utilization(utilizations, self.config.per_core),
        }
        self.output.text = self.format.render(values)
        return Update.every(self.config.interval)

    def view(self) -> list[TextWidget]:
        return [self.output]