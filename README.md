# barblocks

Building blocks for a status line in the i3bar protocol. Each block gathers
one piece of system state and keeps it in a `TextWidget` with a text, an icon
name and a state (`State.IDLE`, `INFO`, `GOOD`, `WARNING`, `CRITICAL`).
`TextWidget.render()` turns a widget into a bar protocol object
(`name`, `instance`, `full_text`, `state` and, when set, `icon`).

The package has no dependencies outside the standard library.

## Blocks

| Module                 | Class       | Shows                                                       |
|------------------------|-------------|-------------------------------------------------------------|
| `barblocks.apt`        | `Apt`       | number of upgradable apt packages                           |
| `barblocks.backlight`  | `Backlight` | brightness of a backlit device, read and set through sysfs  |
| `barblocks.battery`    | `Battery`   | capacity, time remaining and power draw of a battery        |
| `barblocks.btc`        | `Bitcoin`   | price of one bitcoin in a chosen currency                   |
| `barblocks.cpu`        | `Cpu`       | utilisation, per-core bar chart and frequency               |
| `barblocks.custom`     | `Custom`    | output of a shell command, plain or as JSON                 |
| `barblocks.disk_space` | `DiskSpace` | available, free, used or total space of a file system       |
| `barblocks.docker`     | `Docker`    | container and image counts from the local Docker daemon     |
| `barblocks.hueshift`   | `Hueshift`  | screen colour temperature via redshift, sct or gammastep    |

`barblocks.battery_device` holds `BatteryDevice` and `PowerSupplyDevice`,
which read a power supply from `/sys/class/power_supply`.

## Creating a block

Every block module has a configuration dataclass with a `from_mapping`
class method that takes the same shape as a block table in a configuration
file. Unknown keys and values of the wrong type raise
`barblocks.core.ConfigurationError`.

```python
from barblocks.cpu import Cpu, CpuConfig

config = CpuConfig.from_mapping({"interval": 2, "format": "{utilization} {barchart}"})
block = Cpu(0, config)
block.update()          # Update(interval=2.0)
for widget in block.view():
    print(widget.render())
```

Blocks take `(id, config, update_request=None)`. `update_request` is a
callable that receives a `Task`; blocks that react to events call it to ask
for an update: `Backlight` when its brightness file changes, `Custom` on its
signal or a click, and `Battery` with the `upower` driver when the device's
properties change.

Some blocks take keyword arguments that point them elsewhere than the
system defaults, for example `root=` for `Backlight` and `Battery`,
`socket_path=` for `Docker`, `cache_dir=` for `Apt`, `statvfs=` and `icon=`
for `DiskSpace`, `fetch=` and `url=` for `Bitcoin`, and `spawn=` for
`Hueshift`.

## Common settings

The keys `on_click`, `theme_overrides` and `icons_format` are accepted by every
block. `barblocks.core.extract_common_config(config)` splits them off into a
`CommonConfig` and returns the rest for the block's own configuration.
`BaseBlock(name, inner, on_click)` wraps a block; with `on_click` set, a left
click runs that command with `sh -c` instead of the block's own click
handling.

```python
from barblocks.battery import Battery, BatteryConfig
from barblocks.core import BaseBlock, extract_common_config

common, rest = extract_common_config({"device": "BAT0", "on_click": "xterm"})
block = BaseBlock("battery", Battery(1, BatteryConfig.from_mapping(rest)), common.on_click)
```

## Format strings

Most blocks take a `format` option with placeholders in braces. They are
handled by `barblocks.core.FormatTemplate`; a stray `{` raises
`ConfigurationError`, and a placeholder with no value raises `BlockError`.

- `apt`: `{count}`, with `format_singular` for one update and
  `format_up_to_date` for none.
- `battery`: `{percentage}`, `{bar}`, `{time}`, `{power}`; also
  `full_format` and `missing_format`.
- `cpu`: `{utilization}`, `{frequency}`, `{barchart}`.
- `disk_space`: `{percentage}`, `{bar}`, `{alias}`, `{unit}`, `{path}`,
  `{total}`, `{used}`, `{available}`, `{free}`, `{icon}`, `{result}`.
- `docker`: `{total}`, `{running}`, `{stopped}`, `{paused}`, `{images}`.

## Updates, clicks and signals

`Block.update()` refreshes a block and returns an `Update` saying when it
wants to run again (`Update.every(seconds)` or `Update.once()`), or `None`
when it only changes on events. `Block.click(event)` takes a `ClickEvent`
with a `MouseButton`; the wheel is mapped to up and down through
`Scrolling` (`REVERSE` by default). `Block.signal(signal)` passes on a signal
number.

## What the package does not do

There is no command and no main loop: nothing here reads a configuration
file, schedules updates, reads click events from the bar or writes the
status line. There is no lookup of blocks by name either; blocks are built
from their classes as shown above.