from __future__ import annotations

import json
from pathlib import Path

import pytest

from image_compressor.engine.types import Options
from image_compressor.engine.worker_pool import default_pool_size
from image_compressor.settings_manager import SettingsManager


def test_defaults_without_file() -> None:
    sm = SettingsManager()
    assert sm.options() == Options()
    assert sm.worker_count() == default_pool_size()
    sm.set("quality", 0.5)  # no path: nothing written
    assert sm.get("quality") == 0.5


def test_values_persist_round_trip(tmp_path: Path) -> None:
    settings_path = tmp_path / "nested" / "settings.json"
    sm = SettingsManager(str(settings_path))
    sm.set("max_width", 800)
    sm.set("format", "webp")

    with open(settings_path, encoding="utf-8") as f:
        assert json.load(f) == {"max_width": 800, "format": "webp"}

    reloaded = SettingsManager(str(settings_path))
    assert reloaded.has("max_width")
    assert not reloaded.has("quality")
    opts = reloaded.options()
    assert (opts.max_width, opts.max_height, opts.format) == (800, 1080, "webp")


def test_overrides_win_and_none_is_ignored(tmp_path: Path) -> None:
    path = tmp_path / "settings.json"
    path.write_text(json.dumps({"quality": 0.3, "format": "png"}), encoding="utf-8")
    sm = SettingsManager(str(path))

    opts = sm.options(quality=None, format="jpg", max_height=600)
    assert opts.quality == 0.3
    assert opts.format == "jpeg"
    assert opts.max_height == 600


def test_invalid_values_raise(tmp_path: Path) -> None:
    sm = SettingsManager()
    with pytest.raises(ValueError):
        sm.options(quality=1.5)
    with pytest.raises(ValueError):
        sm.options(format="gif")


def test_corrupt_file_falls_back_to_defaults(tmp_path: Path) -> None:
    path = tmp_path / "settings.json"
    path.write_text("{not json", encoding="utf-8")
    sm = SettingsManager(str(path))
    assert sm.data == {}
    assert sm.options() == Options()


@pytest.mark.parametrize("value", [0, -3, "lots", None])
def test_worker_count_falls_back_to_cpu_count(value) -> None:
    sm = SettingsManager()
    sm.data["workers"] = value
    assert sm.worker_count() == default_pool_size()


def test_worker_count_explicit() -> None:
    sm = SettingsManager()
    sm.data["workers"] = 3
    assert sm.worker_count() == 3
