"""Best-effort conversion of resource quantity strings to whole cores / GB.

Malformed input yields 0; nothing here raises.
"""
import re
from decimal import Decimal, InvalidOperation

_QUANTITY_RE = re.compile(r'^\s*(\d+(?:\.\d+)?)\s*([kmgt]i?)?b?\s*$', re.IGNORECASE)
_MILLI_RE = re.compile(r'^\s*(\d+)m\s*$')

_MULTIPLIERS = {
    'k': 1000,
    'm': 1000 ** 2,
    'g': 1000 ** 3,
    't': 1000 ** 4,
    'ki': 1024,
    'mi': 1024 ** 2,
    'gi': 1024 ** 3,
    'ti': 1024 ** 4,
}

BYTES_PER_GB = 1024 ** 3


def _split(value) -> tuple:
    if value is None:
        return None, None
    match = _QUANTITY_RE.match(str(value))
    if not match:
        return None, None
    try:
        number = Decimal(match.group(1))
    except InvalidOperation:
        return None, None
    unit = match.group(2).lower() if match.group(2) else None
    return number, unit


def parse_cpu_cores(value) -> int:
    """Parse a CPU quantity ("4", "4000m", "2k") into whole cores."""
    if value is None:
        return 0
    # Kubernetes millicores; case-sensitive so "4M" still means mega
    milli = _MILLI_RE.match(str(value))
    if milli:
        return int(milli.group(1)) // 1000

    number, unit = _split(value)
    if number is None:
        return 0
    if unit:
        number *= _MULTIPLIERS[unit]
    return int(number)


def _parse_gb(value) -> int:
    number, unit = _split(value)
    if number is None or unit is None:
        return 0
    return int(number * _MULTIPLIERS[unit] / BYTES_PER_GB)


def parse_memory_gb(value) -> int:
    """Parse a memory quantity ("16Gi", "16384Mi", "32GB") into whole GB."""
    return _parse_gb(value)


def parse_storage_gb(value) -> int:
    """Parse a storage quantity ("100Gi", "1Ti") into whole GB."""
    return _parse_gb(value)


def parse_int_claim(value) -> int:
    """Parse a plain integer claim value; 0 when not an integer."""
    try:
        return int(str(value).strip())
    except (TypeError, ValueError):
        return 0
