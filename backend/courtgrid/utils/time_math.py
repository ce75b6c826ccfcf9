"""
Minute-of-day helpers.

Every time value inside the engine is an int: minutes since midnight of the
block's own day (0..1440). HH:MM strings and datetime.time values only appear
at the edges (config, HTTP) and are converted here exactly once.
"""
from datetime import time
from typing import Union

MINUTES_PER_DAY = 24 * 60

TimeLike = Union[int, str, time]


def parse_hhmm(value: str) -> int:
    """
    Parse "HH:MM" (or "HH:MM:SS", seconds must be zero) into minutes since midnight.

    "24:00" is accepted as end-of-day.
    """
    if not isinstance(value, str):
        raise ValueError(f"Expected HH:MM string, got {value!r}")
    parts = value.strip().split(":")
    if len(parts) not in (2, 3) or not all(p.isdigit() for p in parts):
        raise ValueError(f"Invalid time '{value}': expected HH:MM")
    hours, minutes = int(parts[0]), int(parts[1])
    if len(parts) == 3 and int(parts[2]) != 0:
        raise ValueError(f"Invalid time '{value}': seconds are not supported")
    if minutes >= 60:
        raise ValueError(f"Invalid time '{value}': minutes must be < 60")
    total = hours * 60 + minutes
    if total > MINUTES_PER_DAY:
        raise ValueError(f"Invalid time '{value}': past end of day")
    return total


def format_hhmm(minutes: int) -> str:
    """Minutes since midnight -> "HH:MM". 1440 renders as "24:00"."""
    if minutes < 0 or minutes > MINUTES_PER_DAY:
        raise ValueError(f"Minute offset {minutes} is outside a day")
    return f"{minutes // 60:02d}:{minutes % 60:02d}"


def to_minutes(value: TimeLike) -> int:
    """Coerce an int, HH:MM string or datetime.time to minutes since midnight."""
    if isinstance(value, bool):
        raise ValueError(f"Invalid time value {value!r}")
    if isinstance(value, int):
        if value < 0 or value > MINUTES_PER_DAY:
            raise ValueError(f"Minute offset {value} is outside a day")
        return value
    if isinstance(value, time):
        return value.hour * 60 + value.minute
    return parse_hhmm(value)
