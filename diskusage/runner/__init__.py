"""Collection runner - configuration, orchestration, and the CLI."""

from .collector import DiskUsageCollector
from .config import Config, SnmpConfig

__all__ = ["DiskUsageCollector", "Config", "SnmpConfig"]
