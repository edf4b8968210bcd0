"""Interval algebra over (start, end) time ranges, in seconds."""

import math
import re
from dataclasses import dataclass

from .errors import TimeRangeParseError

MERGE_TOLERANCE = 0.01
DEGENERATE_EPSILON = 0.005


@dataclass
class TimeRange:
    """A time range on one media item's timeline."""
    start: float
    end: float

    @property
    def duration(self) -> float:
        return self.end - self.start

    def is_degenerate(self, epsilon: float = DEGENERATE_EPSILON) -> bool:
        return self.end <= self.start + epsilon

    def __str__(self) -> str:
        return f"{self.start:.3f}-{self.end:.3f}"


def clamp(value: float, low: float, high: float) -> float:
    return min(max(value, low), high)


def merge_ranges(ranges: list[TimeRange], tolerance: float = MERGE_TOLERANCE) -> list[TimeRange]:
    """
    Merge overlapping or nearly adjacent ranges into a sorted, disjoint list.

    Ranges whose start lies within ``tolerance`` of the running end are folded
    together. A zero-width range that touches nothing is returned unchanged so
    callers can detect no-op ranges themselves.
    """
    if not ranges:
        return []

    ordered = sorted(ranges, key=lambda r: r.start)
    merged: list[TimeRange] = []
    current = TimeRange(ordered[0].start, ordered[0].end)

    for next_range in ordered[1:]:
        if next_range.start <= current.end + tolerance:
            current = TimeRange(current.start, max(current.end, next_range.end))
        else:
            merged.append(current)
            current = TimeRange(next_range.start, next_range.end)

    merged.append(current)
    return merged


def complement(
    full_start: float,
    full_end: float,
    exclude: list[TimeRange],
    tolerance: float = MERGE_TOLERANCE,
) -> list[TimeRange]:
    """
    Build keep ranges by subtracting exclusion windows from ``[full_start, full_end)``.

    Exclusions are merged first. Windows outside the full range are ignored and
    windows straddling its edges are clipped.
    """
    if not exclude:
        return [TimeRange(full_start, full_end)] if full_end > full_start else []

    keep: list[TimeRange] = []
    cursor = full_start
    for window in merge_ranges(exclude, tolerance):
        window_start = clamp(window.start, full_start, full_end)
        window_end = clamp(window.end, full_start, full_end)
        if window_end <= cursor:
            continue
        if window_start > cursor:
            keep.append(TimeRange(cursor, window_start))
        cursor = max(cursor, window_end)

    if cursor < full_end:
        keep.append(TimeRange(cursor, full_end))

    return [r for r in keep if r.end > r.start]


def sum_duration(ranges: list[TimeRange]) -> float:
    """Total length of ``ranges``. Negative-width ranges are not filtered."""
    return sum(r.end - r.start for r in ranges)


def shift_time_after_removals(time: float, removed: list[TimeRange]) -> float:
    """
    Map a source timestamp onto the timeline left after ``removed`` is cut out.

    A timestamp inside a removed range snaps to where that range starts on the
    output timeline.
    """
    if not removed:
        return time

    adjusted = time
    for window in merge_ranges(removed):
        if window.end <= time:
            adjusted -= window.end - window.start
            continue
        if window.start < time < window.end:
            adjusted -= time - window.start
        break

    return adjusted


def normalize_removal_ranges(
    ranges: list[TimeRange],
    duration: float,
    min_width: float = DEGENERATE_EPSILON,
    tolerance: float = MERGE_TOLERANCE,
) -> tuple[list[TimeRange], list[str]]:
    """
    Clamp user removal ranges into ``[0, duration]``, drop empty ones and merge.

    Returns:
        Tuple of (merged ranges, human readable warnings)
    """
    normalized: list[TimeRange] = []
    warnings: list[str] = []

    for range_ in ranges:
        start = clamp(range_.start, 0.0, duration)
        end = clamp(range_.end, 0.0, duration)
        if start != range_.start or end != range_.end:
            warnings.append(
                f"Clamped range {range_.start:.3f}-{range_.end:.3f} to {start:.3f}-{end:.3f}."
            )
        if end <= start + min_width:
            warnings.append(f"Skipping empty range {start:.3f}-{end:.3f}.")
            continue
        normalized.append(TimeRange(start, end))

    return merge_ranges(normalized, tolerance), warnings


_RANGE_SPLIT = re.compile(r"[\s,;]+")


def parse_time_ranges(value: str) -> list[TimeRange]:
    """
    Parse user range text such as ``"12-15, 1:02-1:05 90..92.5"``.

    Ranges are separated by commas, semicolons or whitespace. Each range is
    ``start-end`` or ``start..end``; whitespace around the separator is allowed.
    """
    trimmed = value.strip()
    if not trimmed:
        raise TimeRangeParseError("No time ranges provided.")

    normalized = re.sub(r"\s*-\s*", "-", trimmed)
    normalized = re.sub(r"\s*\.\.\s*", "..", normalized)
    tokens = [token for token in _RANGE_SPLIT.split(normalized) if token]
    if not tokens:
        raise TimeRangeParseError("No time ranges provided.")

    return [_parse_range_token(token) for token in tokens]


def _parse_range_token(token: str) -> TimeRange:
    separator = ".." if ".." in token else "-"
    parts = token.split(separator)
    if len(parts) != 2:
        raise TimeRangeParseError(f'Invalid range "{token}". Use start-end format.')

    start_text, end_text = parts[0].strip(), parts[1].strip()
    if not start_text or not end_text:
        raise TimeRangeParseError(f'Invalid range "{token}". Start and end required.')

    start = parse_timestamp(start_text)
    end = parse_timestamp(end_text)
    if end <= start:
        raise TimeRangeParseError(f'Invalid range "{token}". End must be after start.')

    return TimeRange(start, end)


def parse_timestamp(value: str) -> float:
    """Parse ``"12.5"``, ``"1:02.5"`` or ``"1:02:03"`` into seconds."""
    trimmed = value.strip()
    if not trimmed:
        raise TimeRangeParseError("Invalid time value.")

    if ":" not in trimmed:
        return _parse_non_negative(trimmed, value)

    parts = trimmed.split(":")
    if len(parts) not in (2, 3):
        raise TimeRangeParseError(f'Invalid time value "{value}".')

    total = 0.0
    for index, part in enumerate(parts):
        segment = part.strip()
        if not segment:
            raise TimeRangeParseError(f'Invalid time value "{value}".')
        # Only the seconds component may carry a fraction
        if "." in segment and index < len(parts) - 1:
            raise TimeRangeParseError(f'Invalid time value "{value}".')
        total = total * 60 + _parse_non_negative(segment, value)

    return total


def _parse_non_negative(text: str, original: str) -> float:
    try:
        number = float(text)
    except ValueError:
        raise TimeRangeParseError(f'Invalid time value "{original}".') from None
    if not math.isfinite(number) or number < 0:
        raise TimeRangeParseError(f'Invalid time value "{original}".')
    return number
