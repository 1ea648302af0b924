"""Timestamp parsing and formatting for clip boundaries.

Accepted forms are ``H:MM:SS[.ff]``, ``MM:SS[.ff]`` and bare seconds. All
conversions between clip boundary strings and seconds go through this module.
"""
import math
from dataclasses import dataclass


@dataclass(frozen=True, order=True)
class Timestamp:
    seconds: float

    def __post_init__(self):
        if not math.isfinite(self.seconds) or self.seconds < 0:
            raise ValueError(f"Timestamp must be a finite, non-negative number of seconds, got {self.seconds}")

    @classmethod
    def parse(cls, value: str) -> "Timestamp":
        if not isinstance(value, str) or not value.strip():
            raise ValueError("Timestamp must be a non-empty string")

        parts = value.strip().split(":")
        if len(parts) > 3:
            raise ValueError(f"Invalid timestamp '{value}': expected H:MM:SS[.ff]")

        try:
            numbers = [float(p) for p in parts]
        except ValueError:
            raise ValueError(f"Invalid timestamp '{value}': expected H:MM:SS[.ff]") from None

        if any(not math.isfinite(n) or n < 0 for n in numbers):
            raise ValueError(f"Invalid timestamp '{value}': components must be non-negative")

        # Pad to [hours, minutes, seconds]
        hours, minutes, seconds = [0.0] * (3 - len(numbers)) + numbers
        return cls(hours * 3600 + minutes * 60 + seconds)

    def format(self) -> str:
        millis = round(self.seconds * 1000)
        hours, rem = divmod(millis, 3_600_000)
        minutes, rem = divmod(rem, 60_000)
        secs, frac = divmod(rem, 1000)
        text = f"{hours}:{minutes:02d}:{secs:02d}"
        if frac:
            text += f".{frac:03d}".rstrip("0")
        return text

    def __sub__(self, other: "Timestamp") -> float:
        return self.seconds - other.seconds

    def __str__(self) -> str:
        return self.format()


def time_to_seconds(value: str) -> float:
    """Convert ``H:MM:SS[.ff]`` (or ``MM:SS`` / ``SS``) to seconds."""
    return Timestamp.parse(value).seconds


def clip_window(start: str, end: str) -> tuple[float, float]:
    """Return ``(offset, duration)`` in seconds for a ``[start, end)`` range."""
    start_ts = Timestamp.parse(start)
    end_ts = Timestamp.parse(end)
    return start_ts.seconds, end_ts - start_ts
