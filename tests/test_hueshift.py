from types import SimpleNamespace

import pytest

from barblocks.core import BlockError, ConfigurationError, LogicalDirection, MouseButton, Scrolling
from barblocks.hueshift import (
    HueShiftDriver,
    HueShifter,
    Hueshift,
    HueshiftConfig,
    detect_hue_shifter,
)


def _button_for(scrolling, direction):
    return next(b for b in MouseButton if scrolling.direction(b) is direction)


def _make(**overrides):
    commands = []
    mapping = {"hue_shifter": "sct"}
    mapping.update(overrides)
    block = Hueshift(1, HueshiftConfig.from_mapping(mapping), spawn=commands.append)
    return block, commands


def test_config_defaults():
    config = HueshiftConfig.from_mapping({"hue_shifter": "redshift"})
    assert config.interval == 5.0
    assert config.max_temp == 10_000
    assert config.min_temp == 1000
    assert config.current_temp == 6500
    assert config.step == 100
    assert config.click_temp == 6500
    assert config.hue_shifter is HueShifter.REDSHIFT


def test_config_rejects_unknown_field():
    with pytest.raises(ConfigurationError):
        HueshiftConfig.from_mapping({"hue_shifter": "sct", "bogus": 1})


def test_config_rejects_unknown_shifter():
    with pytest.raises(ConfigurationError):
        HueshiftConfig.from_mapping({"hue_shifter": "xflux"})


def test_config_rejects_out_of_range_temperature():
    with pytest.raises(ConfigurationError):
        HueshiftConfig.from_mapping({"hue_shifter": "sct", "max_temp": 70000})


def test_limits_are_clamped():
    block, _ = _make(step=600, max_temp=12000, min_temp=500)
    assert block.step == 500
    assert block.max_temp == 10_000
    assert block.min_temp == 1000


def test_min_above_max_is_reset():
    block, _ = _make(min_temp=5000, max_temp=4000)
    assert block.min_temp == 1000
    assert block.max_temp == 4000


def test_missing_driver_raises():
    config = HueshiftConfig.from_mapping({"hue_shifter": "sct"})
    config.hue_shifter = None
    with pytest.raises(BlockError):
        Hueshift(1, config)


def test_update_shows_current_temperature():
    block, _ = _make(current_temp=4200)
    block.update()
    assert block.view()[0].text == "4200"


def test_left_click_sets_click_temperature():
    block, commands = _make(current_temp=3000, click_temp=5000)
    block.click(SimpleNamespace(button=MouseButton.LEFT))
    assert block.current_temp == 5000
    assert commands == ["sct 5000 >/dev/null 2>&1"]


def test_right_click_resets_when_max_above_neutral():
    block, commands = _make(current_temp=3000)
    block.click(SimpleNamespace(button=MouseButton.RIGHT))
    assert block.current_temp == 6500
    assert commands == ["sct >/dev/null 2>&1"]


def test_right_click_uses_max_when_below_neutral():
    block, commands = _make(current_temp=3000, max_temp=5000)
    block.click(SimpleNamespace(button=MouseButton.RIGHT))
    assert block.current_temp == 5000
    assert commands == ["sct 5000 >/dev/null 2>&1"]


def test_scroll_up_and_down_step():
    block, commands = _make(current_temp=3000, step=200)
    up = _button_for(block.scrolling, LogicalDirection.UP)
    down = _button_for(block.scrolling, LogicalDirection.DOWN)
    block.click(SimpleNamespace(button=up))
    assert block.current_temp == 3200
    block.click(SimpleNamespace(button=down))
    block.click(SimpleNamespace(button=down))
    assert block.current_temp == 2800
    assert len(commands) == 3


def test_scroll_stays_within_limits():
    block, commands = _make(current_temp=10_000)
    block.click(SimpleNamespace(button=_button_for(block.scrolling, LogicalDirection.UP)))
    assert block.current_temp == 10_000
    low, low_commands = _make(current_temp=1000)
    low.click(SimpleNamespace(button=_button_for(low.scrolling, LogicalDirection.DOWN)))
    assert low.current_temp == 1000
    assert commands == [] and low_commands == []


def test_natural_scrolling_is_honoured():
    commands = []
    config = HueshiftConfig.from_mapping({"hue_shifter": "sct", "current_temp": 3000})
    block = Hueshift(1, config, scrolling=Scrolling.NATURAL, spawn=commands.append)
    block.click(SimpleNamespace(button=_button_for(Scrolling.NATURAL, LogicalDirection.UP)))
    assert block.current_temp == 3100


@pytest.mark.parametrize(
    "shifter, update, reset",
    [
        (HueShifter.REDSHIFT, "redshift -O 4000 -P >/dev/null 2>&1", "redshift -x >/dev/null 2>&1"),
        (HueShifter.SCT, "sct 4000 >/dev/null 2>&1", "sct >/dev/null 2>&1"),
        (HueShifter.GAMMASTEP, "killall gammastep; gammastep -O 4000 -P &", "gammastep -x >/dev/null 2>&1"),
    ],
)
def test_driver_commands(shifter, update, reset):
    commands = []
    driver = HueShiftDriver(shifter, commands.append)
    driver.update(4000)
    driver.reset()
    assert commands == [update, reset]


def test_driver_spawn_failure_raises():
    def failing(command):
        raise OSError("no shell")

    with pytest.raises(BlockError):
        HueShiftDriver(HueShifter.SCT, failing).update(4000)


def test_detect_prefers_redshift(monkeypatch):
    monkeypatch.setattr("shutil.which", lambda name: "/usr/bin/" + name)
    assert detect_hue_shifter() is HueShifter.REDSHIFT


def test_detect_falls_back(monkeypatch):
    monkeypatch.setattr("shutil.which", lambda name: "/usr/bin/gammastep" if name == "gammastep" else None)
    assert detect_hue_shifter() is HueShifter.GAMMASTEP
    monkeypatch.setattr("shutil.which", lambda name: None)
    assert detect_hue_shifter() is None