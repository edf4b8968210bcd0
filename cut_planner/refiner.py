"""Moves raw removal edges onto the silence around the removed speech."""

from dataclasses import dataclass
from pathlib import Path

from rich.console import Console

from .audio import Direction, build_silence_gaps, find_silence_boundary_from_gaps, find_silence_boundary_progressive
from .config import BoundaryPolicy, Config
from .errors import BoundaryNotFoundError
from .progress import NullProgress, ProgressReporter
from .speech import SpeechAnalyzer
from .time_ranges import TimeRange, clamp, merge_ranges
from .transcript import TranscriptWord

console = Console()


@dataclass
class RefinedRange:
    """A removal range before and after boundary refinement."""
    source: TimeRange
    range: TimeRange
    refined: bool = True
    note: str | None = None


def words_to_ranges(words: list[TranscriptWord], tolerance: float = 0.01) -> list[TimeRange]:
    """Turn removed words into merged removal ranges."""
    return merge_ranges([word.range for word in words if word.end > word.start], tolerance)


class BoundaryRefiner:
    """
    Snaps removal ranges to nearby silence.

    Each edge is searched at most ``speech_search_window_seconds`` away from the
    raw timestamp: VAD speech segments first, then a progressively widening RMS
    scan. The start edge lands ``padding`` after the preceding speech stops, the
    end edge ``padding`` before the following speech starts.
    """

    def __init__(self, config: Config, analyzer: SpeechAnalyzer):
        self.config = config
        self.analyzer = analyzer

    def find_speech_boundary(
        self,
        media_path: Path,
        duration: float,
        target: float,
        direction: Direction,
        max_search: float | None = None,
    ) -> float | None:
        """
        Find the speech edge nearest ``target`` on one side of it.

        Args:
            media_path: Source media
            duration: Source duration in seconds
            target: Timestamp to search from
            direction: "before" for where preceding speech stops,
                "after" for where following speech starts
            max_search: Override for the search width in seconds

        Returns:
            Absolute time of the boundary, or None when nothing usable was found
        """
        search = min(max_search or self.config.speech_search_window_seconds,
                     self.config.speech_search_window_seconds)
        target = clamp(target, 0.0, duration)

        if direction == "before":
            window_start = max(0.0, target - search)
            window_length = target - window_start
            target_offset = window_length
        else:
            window_start = target
            window_length = min(search, duration - target)
            target_offset = 0.0

        if window_length <= self.config.edge_tolerance_seconds:
            return None

        window = self.analyzer.analyze_window(media_path, window_start, window_length)
        if len(window.samples) == 0:
            return None

        if window.segments:
            gaps = build_silence_gaps(window.segments, window.duration)
            boundary = find_silence_boundary_from_gaps(gaps, min(target_offset, window.duration), direction)
            if boundary is not None:
                return window_start + boundary

        boundary = find_silence_boundary_progressive(
            window.samples,
            window.sample_rate,
            target_offset,
            direction,
            rms_window_ms=self.config.rms_window_ms,
            rms_threshold=self.config.rms_threshold,
            min_silence_ms=self.config.min_silence_ms,
            start_seconds=self.config.progressive_start_seconds,
            growth=self.config.progressive_growth,
        )
        if boundary is None:
            return None
        return window_start + boundary

    def refine(
        self,
        media_path: Path,
        duration: float,
        range_: TimeRange,
        padding: float,
    ) -> RefinedRange:
        """
        Refine one removal range.

        Edges touching the start or end of the media are left there. When an
        edge has no boundary, or the padded edges collapse, the raw range is
        used under the permissive policy and BoundaryNotFoundError is raised
        under the strict one.
        """
        edge = self.config.edge_tolerance_seconds
        strict = self.config.boundary_policy is BoundaryPolicy.STRICT
        notes: list[str] = []

        if range_.start <= edge:
            start = 0.0
        else:
            boundary = self.find_speech_boundary(media_path, duration, range_.start, "before")
            if boundary is None:
                if strict:
                    raise BoundaryNotFoundError(range_.start, range_.end, "no silence before removal")
                notes.append("no silence before removal")
                start = range_.start
            else:
                # Padding never reaches back into the removed material
                start = min(clamp(boundary + padding, 0.0, duration), range_.start)

        if range_.end >= duration - edge:
            end = duration
        else:
            boundary = self.find_speech_boundary(media_path, duration, range_.end, "after")
            if boundary is None:
                if strict:
                    raise BoundaryNotFoundError(range_.start, range_.end, "no silence after removal")
                notes.append("no silence after removal")
                end = range_.end
            else:
                end = max(clamp(boundary - padding, 0.0, duration), range_.end)

        if end <= start + self.config.degenerate_epsilon_seconds:
            if strict:
                raise BoundaryNotFoundError(range_.start, range_.end)
            console.print(
                f"[yellow]Refined edges collapsed for {range_}; keeping original range[/yellow]"
            )
            return RefinedRange(source=range_, range=TimeRange(range_.start, range_.end),
                                refined=False, note="refined edges collapsed")

        refined = TimeRange(start, end)
        if notes:
            console.print(f"[yellow]Partially refined {range_} -> {refined} ({'; '.join(notes)})[/yellow]")
        else:
            console.print(f"[dim]Refined {range_} -> {refined}[/dim]")
        return RefinedRange(source=range_, range=refined, refined=not notes,
                            note="; ".join(notes) or None)

    def refine_all(
        self,
        media_path: Path,
        duration: float,
        ranges: list[TimeRange],
        padding: float,
        progress: ProgressReporter | None = None,
    ) -> list[RefinedRange]:
        progress = progress or NullProgress()
        progress.start(len(ranges), "Refining cut boundaries")
        refined = []
        for i, range_ in enumerate(ranges):
            progress.set_label(f"Refining boundary {i + 1}/{len(ranges)}")
            refined.append(self.refine(media_path, duration, range_, padding))
            progress.step()
        progress.finish(f"Refined {len(ranges)} cut boundaries")
        return refined
