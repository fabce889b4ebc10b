"""Pytest configuration.

The coordinator and worker pool are QObjects whose cross-thread signals are
delivered by the Qt event loop, so a single ``QCoreApplication`` is created for
the entire session as early as possible and shut down at the end.
"""

from __future__ import annotations

from typing import Any

import pytest

_APP: Any | None = None


def pytest_configure(config) -> None:  # noqa: ARG001
    """Ensure a QCoreApplication exists before collecting/running tests."""

    # Import lazily so non-Qt environments can still import this conftest.
    try:
        from PySide6.QtCore import QCoreApplication
    except ImportError:
        return

    global _APP

    app = QCoreApplication.instance()
    # Keep a strong ref so it isn't GC'd mid-session.
    _APP = app if app is not None else QCoreApplication([])


def pytest_sessionfinish(session, exitstatus) -> None:  # noqa: ARG001
    """Pump events once so late queued signals settle before interpreter exit."""

    try:
        from PySide6.QtCore import QCoreApplication
    except ImportError:
        return

    app = QCoreApplication.instance()
    if app is None:
        return
    app.processEvents()


@pytest.fixture(autouse=True)
def _isolated_log_env(monkeypatch):
    """CLI runs export log overrides into the environment; undo them per test."""
    monkeypatch.delenv("IMAGE_COMPRESSOR_LOG_LEVEL", raising=False)
    monkeypatch.delenv("IMAGE_COMPRESSOR_LOG_CATS", raising=False)
    yield
