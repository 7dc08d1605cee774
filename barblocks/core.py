"""Shared pieces of every block: errors, states, widgets, templates and the block protocol."""

from __future__ import annotations

import enum
import re
import subprocess
import time
from abc import ABC, abstractmethod
from collections.abc import Mapping
from dataclasses import dataclass, field
from typing import Any, Callable, Optional


class BlockError(Exception):
    """An error raised by a block while it is built or running."""

    def __init__(self, block: str, message: str) -> None:
        super().__init__(f"{block}: {message}")
        self.block = block
        self.message = message


class ConfigurationError(BlockError):
    """A block was given a configuration it cannot use."""

    def __init__(self, block: str, message: str, detail: str = "") -> None:
        super().__init__(block, message)
        self.detail = detail

    def __str__(self) -> str:
        base = super().__str__()
        return f"{base} ({self.detail})" if self.detail else base


class State(enum.Enum):
    """How urgently a widget wants attention."""

    IDLE = "idle"
    INFO = "info"
    GOOD = "good"
    WARNING = "warning"
    CRITICAL = "critical"

    @classmethod
    def from_name(cls, name: str) -> "State":
        """Look a state up by its name, ignoring case."""
        try:
            return cls(name.strip().lower())
        except (ValueError, AttributeError):
            raise ValueError(f"unknown state: {name!r}") from None


class MouseButton(enum.Enum):
    """Mouse buttons, numbered as the bar protocol numbers them."""

    UNKNOWN = 0
    LEFT = 1
    MIDDLE = 2
    RIGHT = 3
    WHEEL_UP = 4
    WHEEL_DOWN = 5
    BACK = 8
    FORWARD = 9


class LogicalDirection(enum.Enum):
    UP = "up"
    DOWN = "down"


class Scrolling(enum.Enum):
    """How wheel motion maps onto up and down."""

    REVERSE = "reverse"
    NATURAL = "natural"

    def direction(self, button: MouseButton) -> Optional[LogicalDirection]:
        """The logical direction of a wheel button, or None for other buttons."""
        if button is MouseButton.WHEEL_UP:
            return LogicalDirection.DOWN if self is Scrolling.REVERSE else LogicalDirection.UP
        if button is MouseButton.WHEEL_DOWN:
            return LogicalDirection.UP if self is Scrolling.REVERSE else LogicalDirection.DOWN
        return None


class Spacing(enum.Enum):
    NORMAL = "normal"
    INLINE = "inline"
    HIDDEN = "hidden"


@dataclass(frozen=True)
class ClickEvent:
    """A click on a block as reported by the bar."""

    button: MouseButton
    instance: Optional[int] = None
    name: Optional[str] = None


@dataclass(frozen=True)
class Task:
    """A request to update the block with the given id at a given monotonic time."""

    id: int
    update_time: float = field(default_factory=time.monotonic)


UpdateRequest = Callable[[Task], None]


@dataclass(frozen=True)
class Update:
    """When a block wants its next update: every `interval` seconds, or once."""

    interval: Optional[float] = None

    @classmethod
    def once(cls) -> "Update":
        return cls(None)

    @classmethod
    def every(cls, seconds: float) -> "Update":
        return cls(float(seconds))


_PLACEHOLDER = re.compile(r"\{(\w+)\}")


class FormatTemplate:
    """A text template with `{name}` placeholders."""

    def __init__(self, template: str) -> None:
        if not isinstance(template, str):
            raise ConfigurationError("format", "format must be a string", repr(template))
        self.template = template
        tokens: list[tuple[bool, str]] = []
        pos = 0
        for match in _PLACEHOLDER.finditer(template):
            self._add_literal(tokens, template[pos:match.start()])
            tokens.append((True, match.group(1)))
            pos = match.end()
        self._add_literal(tokens, template[pos:])
        self._tokens = tuple(tokens)

    def _add_literal(self, tokens: list[tuple[bool, str]], literal: str) -> None:
        if "{" in literal:
            raise ConfigurationError("format", "invalid format string", self.template)
        if literal:
            tokens.append((False, literal))

    @property
    def placeholders(self) -> tuple[str, ...]:
        return tuple(text for is_name, text in self._tokens if is_name)

    def render(self, values: Mapping[str, Any]) -> str:
        """Fill every placeholder from `values`, keyed by placeholder name."""
        parts = []
        for is_name, text in self._tokens:
            if not is_name:
                parts.append(text)
                continue
            try:
                parts.append(str(values[text]))
            except KeyError:
                raise BlockError("format", f"no value for placeholder {{{text}}}") from None
        return "".join(parts)

    def __repr__(self) -> str:
        return f"FormatTemplate({self.template!r})"


@dataclass
class TextWidget:
    """A single piece of text shown by a block."""

    id: int
    instance: int = 0
    text: str = ""
    icon: str = ""
    state: State = State.IDLE
    spacing: Spacing = Spacing.NORMAL

    def render(self) -> dict[str, str]:
        """The widget as a bar protocol object."""
        if self.spacing is Spacing.NORMAL:
            full_text = f" {self.text} "
        elif self.spacing is Spacing.INLINE:
            full_text = f" {self.text}"
        else:
            full_text = self.text
        rendered = {
            "name": str(self.id),
            "instance": str(self.instance),
            "full_text": full_text,
            "state": self.state.value,
        }
        if self.icon:
            rendered["icon"] = self.icon
        return rendered


class Block(ABC):
    """A unit of the bar. Subclasses set `id` and implement `view`."""

    id: int

    def update(self) -> Optional[Update]:
        """Refresh internal state; return when to be updated next, or None."""
        return None

    @abstractmethod
    def view(self) -> list[TextWidget]:
        """The widgets that currently make up the block."""

    def signal(self, signal: int) -> None:
        """React to a signal delivered to every block."""

    def click(self, event: ClickEvent) -> None:
        """React to a click on one of the block's widgets."""


_COMMON_FIELDS = ("on_click", "theme_overrides", "icons_format")


@dataclass
class CommonConfig:
    """Settings that every block accepts."""

    on_click: Optional[str] = None
    theme_overrides: Optional[dict[str, str]] = None
    icons_format: Optional[str] = None

    @classmethod
    def from_mapping(cls, mapping: Mapping[str, Any]) -> "CommonConfig":
        unknown = sorted(set(mapping) - set(_COMMON_FIELDS))
        if unknown:
            raise ConfigurationError(
                "block", "Failed to deserialize common block config.", f"unknown fields: {', '.join(unknown)}"
            )
        on_click = mapping.get("on_click")
        icons_format = mapping.get("icons_format")
        overrides = mapping.get("theme_overrides")
        for name, value in (("on_click", on_click), ("icons_format", icons_format)):
            if value is not None and not isinstance(value, str):
                raise ConfigurationError(
                    "block", "Failed to deserialize common block config.", f"`{name}` must be a string"
                )
        if overrides is not None:
            if not isinstance(overrides, Mapping) or not all(
                isinstance(k, str) and isinstance(v, str) for k, v in overrides.items()
            ):
                raise ConfigurationError(
                    "block",
                    "Failed to deserialize common block config.",
                    "`theme_overrides` must map strings to strings",
                )
            overrides = dict(overrides)
        return cls(on_click=on_click, theme_overrides=overrides, icons_format=icons_format)


def extract_common_config(config: Any) -> tuple[CommonConfig, Any]:
    """Split a block's configuration into the common settings and the rest."""
    if not isinstance(config, Mapping):
        return CommonConfig(), config
    common = {key: config[key] for key in _COMMON_FIELDS if key in config}
    rest = {key: value for key, value in config.items() if key not in _COMMON_FIELDS}
    return CommonConfig.from_mapping(common), rest


class BaseBlock(Block):
    """Wraps a block and handles the common `on_click` command."""

    def __init__(self, name: str, inner: Block, on_click: Optional[str] = None) -> None:
        self.name = name
        self.inner = inner
        self.on_click = on_click
        self.id = inner.id

    def update(self) -> Optional[Update]:
        return self.inner.update()

    def view(self) -> list[TextWidget]:
        return self.inner.view()

    def signal(self, signal: int) -> None:
        self.inner.signal(signal)

    def click(self, event: ClickEvent) -> None:
        if self.on_click is None:
            self.inner.click(event)
            return
        if event.button is MouseButton.LEFT:
            try:
                subprocess.Popen(
                    ["sh", "-c", self.on_click],
                    stdin=subprocess.DEVNULL,
                    stdout=subprocess.DEVNULL,
                    stderr=subprocess.DEVNULL,
                    start_new_session=True,
                )
            except OSError as exc:
                raise BlockError(self.name, "could not spawn child") from exc