"""Utility modules for logging and step output export."""

from xamarin_android_uitest.utils.logging import setup_logging, get_logger
from xamarin_android_uitest.utils.envman import EnvmanExporter

__all__ = [
    "setup_logging",
    "get_logger",
    "EnvmanExporter",
]
