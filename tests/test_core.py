import time
from unittest import mock

import pytest

from barblocks.core import (
    BaseBlock,
    Block,
    BlockError,
    ClickEvent,
    CommonConfig,
    ConfigurationError,
    FormatTemplate,
    LogicalDirection,
    MouseButton,
    Scrolling,
    Spacing,
    State,
    Task,
    TextWidget,
    Update,
    extract_common_config,
)


class _Recorder(Block):
    def __init__(self, block_id=7):
        self.id = block_id
        self.widget = TextWidget(block_id, text="inner")
        self.clicks = []
        self.signals = []

    def update(self):
        return Update.every(3)

    def view(self):
        return [self.widget]

    def signal(self, signal):
        self.signals.append(signal)

    def click(self, event):
        self.clicks.append(event)


def test_template_without_placeholders_renders_itself():
    assert FormatTemplate("plain text").render({}) == "plain text"


def test_template_substitutes_values():
    template = FormatTemplate("{a}-{b}-{a}")
    assert template.render({"a": "x", "b": "y"}) == "x-y-x"
    assert template.placeholders == ("a", "b", "a")


def test_template_converts_values_to_text():
    assert FormatTemplate("{count}").render({"count": 12}) == str(12)


def test_template_missing_value_raises():
    with pytest.raises(BlockError):
        FormatTemplate("{missing}").render({})


def test_template_unclosed_brace_is_configuration_error():
    with pytest.raises(ConfigurationError):
        FormatTemplate("{count")


def test_scrolling_directions():
    assert Scrolling.REVERSE.direction(MouseButton.WHEEL_UP) is LogicalDirection.DOWN
    assert Scrolling.REVERSE.direction(MouseButton.WHEEL_DOWN) is LogicalDirection.UP
    assert Scrolling.NATURAL.direction(MouseButton.WHEEL_UP) is LogicalDirection.UP
    assert Scrolling.NATURAL.direction(MouseButton.LEFT) is None


def test_state_from_name_ignores_case():
    assert State.from_name("Critical") is State.CRITICAL
    assert State.from_name("warning") is State.WARNING
    with pytest.raises(ValueError):
        State.from_name("bogus")


def test_update_constructors():
    assert Update.every(5).interval == 5.0
    assert Update.once().interval is None
    assert Update.every(5) == Update.every(5.0)


def test_task_defaults_to_now():
    before = time.monotonic()
    task = Task(3)
    assert task.id == 3
    assert before <= task.update_time <= time.monotonic()


def test_text_widget_render_carries_text_and_state():
    widget = TextWidget(2, 1, text="hello", state=State.GOOD, spacing=Spacing.HIDDEN)
    rendered = widget.render()
    assert rendered["full_text"] == "hello"
    assert rendered["state"] == State.GOOD.value
    assert rendered["name"] == "2"


def test_text_widget_normal_spacing_keeps_text():
    rendered = TextWidget(0, text="abc").render()
    assert rendered["full_text"].strip() == "abc"


def test_extract_common_config_splits_fields():
    config = {"on_click": "echo hi", "format": "{count}", "interval": 5}
    common, rest = extract_common_config(config)
    assert common.on_click == "echo hi"
    assert rest == {"format": "{count}", "interval": 5}
    assert "on_click" in config


def test_extract_common_config_non_mapping():
    common, rest = extract_common_config(None)
    assert common == CommonConfig()
    assert rest is None


def test_common_config_rejects_bad_types():
    with pytest.raises(ConfigurationError):
        CommonConfig.from_mapping({"on_click": 5})
    with pytest.raises(ConfigurationError):
        CommonConfig.from_mapping({"theme_overrides": {"idle_bg": 1}})
    with pytest.raises(ConfigurationError):
        CommonConfig.from_mapping({"nope": "x"})


def test_common_config_theme_overrides():
    common = CommonConfig.from_mapping({"theme_overrides": {"idle_bg": "#000000"}})
    assert common.theme_overrides == {"idle_bg": "#000000"}


def test_base_block_delegates():
    inner = _Recorder()
    block = BaseBlock("recorder", inner)
    assert block.id == inner.id
    assert block.update() == Update.every(3)
    assert block.view() == [inner.widget]
    block.signal(10)
    assert inner.signals == [10]
    event = ClickEvent(MouseButton.RIGHT)
    block.click(event)
    assert inner.clicks == [event]


@mock.patch("subprocess.Popen")
def test_base_block_on_click_spawns_command(popen):
    inner = _Recorder()
    block = BaseBlock("recorder", inner, on_click="notify-send hi")
    block.click(ClickEvent(MouseButton.LEFT))
    assert popen.call_args.args[0] == ["sh", "-c", "notify-send hi"]
    assert inner.clicks == []


@mock.patch("subprocess.Popen")
def test_base_block_on_click_ignores_other_buttons(popen):
    inner = _Recorder()
    block = BaseBlock("recorder", inner, on_click="true")
    block.click(ClickEvent(MouseButton.RIGHT))
    assert popen.call_count == 0
    assert inner.clicks == []


@mock.patch("subprocess.Popen", side_effect=OSError("no shell"))
def test_base_block_spawn_failure_raises(popen):
    block = BaseBlock("recorder", _Recorder(), on_click="true")
    with pytest.raises(BlockError) as info:
        block.click(ClickEvent(MouseButton.LEFT))
    assert info.value.block == "recorder"