"""Parallel image compression: orientation-aware resize and re-encode."""

__version__ = "0.1.0"
