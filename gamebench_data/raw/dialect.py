"""Capture dialect detection from the first line of an upload."""

from __future__ import annotations

import enum
import logging

logger = logging.getLogger(__name__)

LINUX_OVERLAY_FIRST_LINE = "os,cpu,gpu,ram,kernel,driver,cpuscheduler"
WINDOWS_MONITOR_MARKER = ", Hardware monitoring log v"


class Dialect(enum.Enum):
    """Supported profiler capture formats.

    Attributes:
        LINUX_OVERLAY: Linux in-game overlay CSV (`.csv`).
        WINDOWS_MONITOR: Windows hardware-monitor log (`.hml`).
    """

    LINUX_OVERLAY = "linux_overlay"
    WINDOWS_MONITOR = "windows_monitor"

    @property
    def suffix(self) -> str:
        """File suffix stripped from upload names to form run labels."""
        return ".csv" if self is Dialect.LINUX_OVERLAY else ".hml"


def normalize_first_line(line: str) -> str:
    """Drop surrounding whitespace and trailing commas."""
    return line.strip().rstrip(", ").strip()


def detect_dialect(first_line: str) -> Dialect | None:
    """Classify a capture from its first line.

    Args:
        first_line: The upload's first line, with or without trailing
            separators.

    Returns:
        The matching dialect, or None when the line matches neither format.
    """
    line = normalize_first_line(first_line)
    if line == LINUX_OVERLAY_FIRST_LINE:
        return Dialect.LINUX_OVERLAY
    if WINDOWS_MONITOR_MARKER in line:
        return Dialect.WINDOWS_MONITOR
    return None
