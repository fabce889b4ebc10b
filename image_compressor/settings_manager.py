from __future__ import annotations

import json
import os
from typing import Any

from .engine.types import Options
from .engine.worker_pool import default_pool_size
from .logger import get_logger

_logger = get_logger("settings")


class SettingsManager:
    def __init__(self, settings_path: str | None = None):
        self.settings_path = settings_path
        self._settings: dict[str, Any] = {}
        self.load()

    DEFAULTS: dict[str, Any] = {
        "quality": 0.8,
        "max_width": 1920,
        "max_height": 1080,
        "format": "jpeg",
        "workers": 0,  # 0 = one per CPU
    }

    def load(self) -> None:
        try:
            if self.settings_path and os.path.exists(self.settings_path):
                with open(self.settings_path, encoding="utf-8") as f:
                    data = json.load(f)
                    if isinstance(data, dict):
                        self._settings = data
                        _logger.debug("settings loaded: %s", self.settings_path)
                        return
        except Exception as e:
            _logger.warning("settings load failed: %s", e)
        self._settings = {}

    def save(self) -> None:
        if not self.settings_path:
            return
        try:
            parent = os.path.dirname(self.settings_path)
            if parent:
                os.makedirs(parent, exist_ok=True)
            with open(self.settings_path, "w", encoding="utf-8") as f:
                json.dump(self._settings, f, ensure_ascii=False, indent=2)
            _logger.debug("settings saved: %s", self.settings_path)
        except Exception as e:
            _logger.error("settings save failed: %s", e)

    def get(self, key: str, default: Any = None) -> Any:
        if key in self._settings:
            return self._settings[key]
        if default is not None:
            return default
        return self.DEFAULTS.get(key)

    def has(self, key: str) -> bool:
        return key in self._settings

    def set(self, key: str, value: Any) -> None:
        self._settings[key] = value
        self.save()

    @property
    def data(self) -> dict[str, Any]:
        return self._settings

    def options(self, **overrides: Any) -> Options:
        """Build validated ``Options`` from stored values and non-None overrides."""
        values = {key: self.get(key) for key in ("quality", "max_width", "max_height", "format")}
        values.update({k: v for k, v in overrides.items() if v is not None})
        fmt = str(values["format"]).lower()
        return Options(
            quality=float(values["quality"]),
            max_width=int(values["max_width"]),
            max_height=int(values["max_height"]),
            format="jpeg" if fmt == "jpg" else fmt,  # type: ignore[arg-type]
        )

    def worker_count(self) -> int:
        try:
            n = int(self.get("workers") or 0)
        except (TypeError, ValueError):
            _logger.warning("invalid workers setting: %r", self.get("workers"))
            n = 0
        return n if n > 0 else default_pool_size()
