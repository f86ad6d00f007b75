"""Hardware spec string helpers."""

from __future__ import annotations

import re

from gamebench_data.config import MAX_STRING_LENGTH

_SIZE_UNITS = ("B", "kB", "MB", "GB", "TB", "PB", "EB")
_UNIT_MULTIPLIERS = {
    "B": 1,
    "KB": 1000,
    "MB": 1000**2,
    "GB": 1000**3,
    "TB": 1000**4,
}
_SIZE_RE = re.compile(r"^([0-9]*\.?[0-9]+)\s*([A-Za-z]+)$")


def truncate_spec(value: str, limit: int = MAX_STRING_LENGTH) -> str:
    """Cut a spec string to `limit` characters, marking the cut with `...`."""
    if len(value) > limit:
        return value[:limit] + "..."
    return value


def format_bytes(num: int) -> str:
    """Return a decimal-unit, human-readable size (e.g. `16 GB`, `8.2 MB`).

    Values below ten units keep one decimal; larger values are printed
    without decimals.
    """
    num = max(int(num), 0)
    if num < 10:
        return f"{num} B"
    exp = 0
    while exp < len(_SIZE_UNITS) - 1 and num >= 1000 ** (exp + 1):
        exp += 1
    value = int(num / 1000**exp * 10 + 0.5) / 10
    if value < 10:
        return f"{value:.1f} {_SIZE_UNITS[exp]}"
    return f"{value:.0f} {_SIZE_UNITS[exp]}"


def ram_to_kilobytes(ram: str) -> str:
    """Convert a human-readable RAM size back to integer kilobytes.

    Plain integers are assumed to already be kilobytes. Units B/KB/MB/GB/TB
    are matched case-insensitively with decimal multipliers, which is the
    inverse of `format_bytes`. Returns an empty string when unparseable.
    """
    ram = ram.strip()
    if not ram:
        return ""
    if ram.isascii() and ram.isdigit():
        return ram
    m = _SIZE_RE.match(ram)
    if m is None:
        return ""
    multiplier = _UNIT_MULTIPLIERS.get(m.group(2).upper())
    if multiplier is None:
        return ""
    return str(int(round(float(m.group(1)) * multiplier / 1024)))
