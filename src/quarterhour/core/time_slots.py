"""Quarter-hour arithmetic shared by the slot store, reducer and exporters."""

from __future__ import annotations

import math
from typing import Iterator

SLOT_HOURS = 0.25
SLOTS_PER_HOUR = 4
SLOTS_PER_DAY = 24 * SLOTS_PER_HOUR
DAY_HOURS = 24.0


def is_quantized(value: float) -> bool:
    if not math.isfinite(value):
        return False
    return float(value) * SLOTS_PER_HOUR == int(float(value) * SLOTS_PER_HOUR)


def is_valid_tick(value: float) -> bool:
    return is_quantized(value) and 0.0 <= value < DAY_HOURS


def tick_index(value: float) -> int:
    """Return the zero-based quarter-hour index (``9.25`` -> ``37``)."""
    if not is_quantized(value):
        raise ValueError(f"Time slot {value!r} is not aligned to a quarter hour")
    return int(round(float(value) * SLOTS_PER_HOUR))


def tick_from_index(index: int) -> float:
    return index / SLOTS_PER_HOUR


def next_tick(value: float) -> float:
    return tick_from_index(tick_index(value) + 1)


def iter_ticks(start: float, end: float) -> Iterator[float]:
    """Yield every quarter-hour tick in the half-open range ``[start, end)``."""
    for index in range(tick_index(start), tick_index(end)):
        yield tick_from_index(index)


def in_range(value: float, start: float, end: float) -> bool:
    return start <= value < end


def format_time_slot(value: float) -> str:
    """Render a tick as ``HH:MM`` (``24.0`` renders as ``24:00``)."""
    hours, quarter = divmod(tick_index(value), SLOTS_PER_HOUR)
    return f"{hours:02d}:{quarter * 15:02d}"


def parse_time_slot(text: str) -> float:
    """Parse ``HH:MM`` or a decimal hour into a quantized tick."""
    raw = text.strip()
    if ":" in raw:
        hours_text, minutes_text = raw.split(":", 1)
        hours = int(hours_text)
        minutes = int(minutes_text)
        if minutes % 15:
            raise ValueError(f"Minutes must be a multiple of 15: {text!r}")
        value = hours + minutes / 60
    else:
        value = float(raw)
    if not is_quantized(value) or not 0.0 <= value <= DAY_HOURS:
        raise ValueError(f"Invalid time slot: {text!r}")
    return value
