"""Persistent session statistics and log tailing."""

from .stats import StatsTracker
from .tail import LogTailer

__all__ = ["LogTailer", "StatsTracker"]
