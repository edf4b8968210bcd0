"""Audio sample decoding and RMS based silence analysis."""

import subprocess
from pathlib import Path
from typing import Literal, Protocol

import numpy as np
from rich.console import Console

from .config import BOUNDARY_MATCH_TOLERANCE
from .time_ranges import TimeRange

console = Console()

Direction = Literal["before", "after"]


class AudioSampleProvider(Protocol):
    """Decodes a window of a media file into mono float PCM samples."""

    def read(self, media_path: Path, start: float, duration: float, sample_rate: int) -> np.ndarray:
        """Return float32 samples in [-1, 1]; an empty array means no audio."""
        ...


class FfmpegSampleProvider:
    """Decodes audio with FFmpeg into raw 32-bit float samples."""

    def __init__(self, verbose: bool = False):
        self.verbose = verbose

    def read(self, media_path: Path, start: float, duration: float, sample_rate: int) -> np.ndarray:
        cmd = [
            "ffmpeg",
            "-hide_banner",
            "-ss", f"{start:.3f}",
            "-t", f"{duration:.3f}",
            "-i", str(media_path),
            "-vn", "-sn", "-dn",
            "-ac", "1",
            "-ar", str(sample_rate),
            "-f", "f32le",
            "-",
        ]
        if self.verbose:
            console.print(f"[dim]$ {' '.join(cmd)}[/dim]")

        result = subprocess.run(cmd, capture_output=True)

        # A window without an audio stream decodes to nothing; callers fall back
        if result.returncode != 0 or not result.stdout:
            return np.zeros(0, dtype=np.float32)

        usable = len(result.stdout) - len(result.stdout) % 4
        return np.frombuffer(result.stdout[:usable], dtype="<f4").astype(np.float32)


def compute_rms(samples: np.ndarray) -> float:
    """Root mean square of ``samples``; 0.0 for an empty array."""
    if len(samples) == 0:
        return 0.0
    values = np.asarray(samples, dtype=np.float64)
    return float(np.sqrt(np.mean(values * values)))


def window_size(sample_rate: int, window_ms: float) -> int:
    return max(1, int(round(sample_rate * window_ms / 1000.0)))


def rms_envelope(samples: np.ndarray, window_samples: int) -> np.ndarray:
    """RMS of consecutive non-overlapping windows; a trailing partial window is dropped."""
    total_windows = len(samples) // window_samples if window_samples > 0 else 0
    if total_windows == 0:
        return np.zeros(0, dtype=np.float64)
    framed = np.asarray(samples[:total_windows * window_samples], dtype=np.float64)
    framed = framed.reshape(total_windows, window_samples)
    return np.sqrt(np.mean(framed * framed, axis=1))


def _silent_runs(silent: np.ndarray) -> list[tuple[int, int]]:
    """Return ``(first, end)`` window indices of each run of silent windows."""
    runs: list[tuple[int, int]] = []
    run_start = None
    for index, is_silent in enumerate(silent):
        if is_silent and run_start is None:
            run_start = index
        elif not is_silent and run_start is not None:
            runs.append((run_start, index))
            run_start = None
    if run_start is not None:
        runs.append((run_start, len(silent)))
    return runs


def build_silence_gaps(speech: list[TimeRange], duration: float) -> list[TimeRange]:
    """Invert speech segments into the silent gaps of a ``duration`` long window."""
    gaps: list[TimeRange] = []
    cursor = 0.0
    for segment in sorted(speech, key=lambda s: s.start):
        if segment.start > cursor:
            gaps.append(TimeRange(cursor, segment.start))
        cursor = max(cursor, segment.end)
    if cursor < duration:
        gaps.append(TimeRange(cursor, duration))
    return [gap for gap in gaps if gap.end > gap.start + BOUNDARY_MATCH_TOLERANCE]


def find_silence_boundary_from_gaps(
    gaps: list[TimeRange],
    target_offset: float,
    direction: Direction,
) -> float | None:
    """
    Pick the speech edge bordering the silent gap that holds ``target_offset``.

    Searching ``before`` returns where the preceding speech stops (gap start);
    searching ``after`` returns where the following speech begins (gap end).
    A target that sits inside speech has no boundary.
    """
    for gap in gaps:
        if gap.start - BOUNDARY_MATCH_TOLERANCE <= target_offset <= gap.end + BOUNDARY_MATCH_TOLERANCE:
            return gap.start if direction == "before" else gap.end
    return None


def find_silence_boundary_with_rms(
    samples: np.ndarray,
    sample_rate: int,
    direction: Direction,
    rms_window_ms: float,
    rms_threshold: float,
    min_silence_ms: float,
    target_offset: float | None = None,
) -> float | None:
    """
    Locate the nearest run of quiet RMS windows on one side of ``target_offset``.

    ``before`` looks at runs starting before the target (default: window end)
    and returns the start of the closest one. ``after`` looks at runs ending
    after the target (default: window start) and returns the end of the first.
    Runs shorter than ``min_silence_ms`` are ignored.
    """
    win = window_size(sample_rate, rms_window_ms)
    envelope = rms_envelope(samples, win)
    if len(envelope) == 0:
        return None

    window_seconds = win / sample_rate
    min_windows = max(1, int(round(min_silence_ms / rms_window_ms)))
    runs = [run for run in _silent_runs(envelope < rms_threshold) if run[1] - run[0] >= min_windows]
    if not runs:
        return None

    if direction == "before":
        target_index = len(envelope) if target_offset is None else int(round(target_offset / window_seconds))
        candidates = [run for run in runs if run[0] < target_index]
        return candidates[-1][0] * window_seconds if candidates else None

    target_index = 0 if target_offset is None else int(round(target_offset / window_seconds))
    for run_start, run_end in runs:
        if run_end > target_index:
            return run_end * window_seconds
    return None


def _quiet_up_to_target(
    samples: np.ndarray,
    sample_rate: int,
    rms_window_ms: float,
    rms_threshold: float,
    target_side: Direction,
) -> bool:
    """
    True when ``samples`` holds no loud RMS window, ignoring the one window
    that touches the target (``before``: the last, ``after``: the first).
    """
    envelope = rms_envelope(samples, window_size(sample_rate, rms_window_ms))
    envelope = envelope[:-1] if target_side == "before" else envelope[1:]
    return bool(np.all(envelope < rms_threshold))


def find_silence_boundary_progressive(
    samples: np.ndarray,
    sample_rate: int,
    target_offset: float,
    direction: Direction,
    rms_window_ms: float,
    rms_threshold: float,
    min_silence_ms: float,
    start_seconds: float,
    growth: float,
) -> float | None:
    """
    Widen an RMS search outward from ``target_offset`` until a quiet run is found.

    The first attempt looks ``start_seconds`` away from the target; each retry
    multiplies the width by ``growth`` until the whole buffer is covered. A run
    that touches the far edge of a partial search is not trusted, since the
    silence may continue past it, so the search widens instead.

    The nearest quiet run must reach the target. When loud windows lie between
    the run and the target the target sits inside speech, and moving the edge
    to that run would cut the speech in between, so there is no boundary.
    """
    total = len(samples)
    if total == 0:
        return None
    target_index = int(round(min(max(target_offset, 0.0), total / sample_rate) * sample_rate))
    edge = window_size(sample_rate, rms_window_ms) / sample_rate
    width = start_seconds

    while True:
        span = int(round(width * sample_rate))
        if direction == "before":
            low = max(0, target_index - span)
            chunk = samples[low:target_index]
            boundary = find_silence_boundary_with_rms(
                chunk, sample_rate, "before", rms_window_ms, rms_threshold, min_silence_ms
            )
            covered = low == 0
            if boundary is not None:
                first = low + int(round(boundary * sample_rate))
                if not _quiet_up_to_target(samples[first:target_index], sample_rate,
                                           rms_window_ms, rms_threshold, "before"):
                    return None
                if boundary > edge or covered:
                    return first / sample_rate
        else:
            high = min(total, target_index + span)
            chunk = samples[target_index:high]
            boundary = find_silence_boundary_with_rms(
                chunk, sample_rate, "after", rms_window_ms, rms_threshold, min_silence_ms
            )
            covered = high == total
            chunk_seconds = len(chunk) / sample_rate
            if boundary is not None:
                last = target_index + int(round(boundary * sample_rate))
                if not _quiet_up_to_target(samples[target_index:last], sample_rate,
                                           rms_window_ms, rms_threshold, "after"):
                    return None
                if boundary < chunk_seconds - edge or covered:
                    return last / sample_rate

        if covered:
            return None
        width *= growth


def find_speech_start_with_rms(
    samples: np.ndarray,
    sample_rate: int,
    rms_window_ms: float,
    rms_threshold: float,
) -> float | None:
    """Start time of the first window whose RMS reaches ``rms_threshold``."""
    win = window_size(sample_rate, rms_window_ms)
    loud = np.flatnonzero(rms_envelope(samples, win) >= rms_threshold)
    if len(loud) == 0:
        return None
    return float(loud[0] * win / sample_rate)


def find_speech_end_with_rms(
    samples: np.ndarray,
    sample_rate: int,
    rms_window_ms: float,
    rms_threshold: float,
) -> float | None:
    """End time of the last window whose RMS reaches ``rms_threshold``."""
    win = window_size(sample_rate, rms_window_ms)
    loud = np.flatnonzero(rms_envelope(samples, win) >= rms_threshold)
    if len(loud) == 0:
        return None
    return float((loud[-1] + 1) * win / sample_rate)
