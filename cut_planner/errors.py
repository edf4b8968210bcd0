"""Exception types raised inside the cut planner.

Public planner operations catch these and report them through result objects,
so callers only need to inspect ``result.success`` and ``result.error``.
"""

from __future__ import annotations

from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from .aligner import TranscriptMismatch


class CutPlannerError(Exception):
    """Base class for all planner failures."""


class TranscriptFormatError(CutPlannerError):
    """The stored transcript record is malformed or has the wrong version."""


class TranscriptMismatchError(CutPlannerError):
    """The edited transcript is not a pure deletion of the original."""

    def __init__(self, mismatch: TranscriptMismatch):
        super().__init__(mismatch.message)
        self.mismatch = mismatch


class TimeRangeParseError(CutPlannerError, ValueError):
    """User supplied range text could not be parsed."""


class BoundaryNotFoundError(CutPlannerError):
    """No usable silence boundary was found around a cut."""

    def __init__(self, start: float, end: float, reason: str = "refined edges collapsed"):
        super().__init__(
            f"No silence boundary found for {start:.3f}s-{end:.3f}s ({reason})"
        )
        self.start = start
        self.end = end


class GeometryError(CutPlannerError):
    """The requested cut leaves nothing usable (empty output, tiny window)."""


class NoSpeechError(GeometryError):
    """A chapter that must contain speech has none."""


class MediaToolError(CutPlannerError):
    """An ffmpeg/ffprobe invocation failed."""

    def __init__(self, message: str, command: list[str] | None = None, stderr: str = ""):
        detail = f"{message}: {stderr.strip()}" if stderr.strip() else message
        super().__init__(detail)
        self.command = command or []
        self.stderr = stderr
