from types import SimpleNamespace

import pytest

from barblocks.core import ConfigurationError, State, Update
from barblocks.disk_space import (
    AlertType,
    DiskSpace,
    DiskSpaceConfig,
    InfoType,
    Unit,
    compute_state,
)


def fake_statvfs(blocks=1000, bfree=500, bavail=400, frsize=4096, bsize=4096):
    stats = SimpleNamespace(
        f_blocks=blocks, f_bfree=bfree, f_bavail=bavail, f_frsize=frsize, f_bsize=bsize
    )
    return lambda path: stats


def make_block(statvfs=None, **config):
    return DiskSpace(1, DiskSpaceConfig.from_mapping(config), statvfs=statvfs or fake_statvfs())


def test_unit_decimal_and_binary():
    assert Unit.MB.convert(1_000_000) == 1.0
    assert Unit.MiB.convert(1024 * 1024) == 1.0
    assert Unit.GiB.convert(1024**3) == 1.0
    assert Unit.TB.convert(1000**4) == 1.0
    assert Unit.Percent.convert(42) == 42.0


@pytest.mark.parametrize(
    "value,expected",
    [(5.0, State.CRITICAL), (15.0, State.WARNING), (25.0, State.IDLE), (-1.0, State.IDLE)],
)
def test_compute_state_below(value, expected):
    assert compute_state(value, 20.0, 10.0, AlertType.BELOW) is expected


@pytest.mark.parametrize(
    "value,expected",
    [(95.0, State.CRITICAL), (85.0, State.WARNING), (50.0, State.IDLE), (90.0, State.WARNING)],
)
def test_compute_state_above(value, expected):
    assert compute_state(value, 80.0, 90.0, AlertType.ABOVE) is expected


def test_config_defaults_and_parsing():
    default = DiskSpaceConfig.from_mapping({})
    assert default.unit is Unit.GB
    assert default.info_type is InfoType.AVAILABLE
    assert default.format == "{alias} {available} {unit}"
    parsed = DiskSpaceConfig.from_mapping({"unit": "MiB", "info_type": "used", "warning": 5})
    assert parsed.unit is Unit.MiB
    assert parsed.info_type is InfoType.USED
    assert parsed.warning == 5.0


@pytest.mark.parametrize(
    "mapping", [{"bogus": 1}, {"unit": "KB"}, {"info_type": "nope"}, {"show_bar": "yes"}]
)
def test_config_rejects_bad_values(mapping):
    with pytest.raises(ConfigurationError):
        DiskSpaceConfig.from_mapping(mapping)


def test_update_renders_result_and_unit():
    block = make_block(format="{path} {result} {unit}", path="/home", unit="MiB")
    assert block.update() == Update.every(20.0)
    assert block.view()[0].text == f"/home {400 * 4096} MiB"


def test_update_available_states():
    roomy = make_block()
    roomy.update()
    assert roomy.output.state is State.IDLE

    tight = make_block(statvfs=fake_statvfs(bavail=50))
    tight.update()
    assert tight.output.state is State.CRITICAL


def test_update_used_is_above_alert():
    block = make_block(statvfs=fake_statvfs(bfree=50), info_type="used", warning=80, alert=90)
    block.update()
    assert block.output.state is State.CRITICAL


def test_total_info_type_uses_fixed_format():
    block = make_block(info_type="total", unit="Percent")
    block.update()
    assert block.output.text == f"{float(500 * 4096):.2f}/{float(1000 * 4096):.2f} Percent"


def test_percentage_with_empty_filesystem_is_nan():
    block = make_block(statvfs=fake_statvfs(blocks=0, bfree=0, bavail=0), format="{percentage}")
    block.update()
    assert block.output.text == "NaN%"


def test_absolute_alerts_use_unit_values():
    block = make_block(unit="Percent", alert_absolute=True, warning=10, alert=5)
    block.update()
    assert block.output.state is State.IDLE