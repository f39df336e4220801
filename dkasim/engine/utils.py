"""
Numeric helpers shared by the engine modules.
"""

import math


def round_half_up(value: float, places: int = 0) -> float:
    """Round with ties going up, e.g. 12.5 -> 13 (Python's round() gives 12)."""
    factor = 10 ** places
    return math.floor(value * factor + 0.5) / factor


def round_int(value: float) -> int:
    return int(round_half_up(value))


def fmt(value: float) -> str:
    """Compact number formatting for feedback text: 60.0 -> '60', 8.4 -> '8.4'."""
    return f"{value:g}"
