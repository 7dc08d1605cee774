"""Status bar blocks for i3bar-compatible status lines: apt, backlight, battery, bitcoin, cpu, custom, disk space, docker and hueshift."""

__version__ = "0.1.0"