"""Edit planning: turns transcript edits, range lists and chapter pairs into cuts."""

import shutil
import tempfile
from dataclasses import dataclass, field
from pathlib import Path

from rich.console import Console

from .aligner import TranscriptMismatch, diff_transcripts
from .audio import FfmpegSampleProvider
from .config import Config
from .cutter import Cutter, replace_output, same_file
from .errors import GeometryError, NoSpeechError, TranscriptMismatchError
from .progress import NullProgress, ProgressReporter
from .refiner import BoundaryRefiner, RefinedRange, words_to_ranges
from .speech import SpeechAnalyzer, WebRtcSpeechDetector
from .time_ranges import (
    TimeRange,
    clamp,
    complement,
    merge_ranges,
    normalize_removal_ranges,
    parse_time_ranges,
    sum_duration,
)
from .transcript import TranscriptDocument, TranscriptWord, load_transcript_document

console = Console()


def default_edit_output(input_path: Path) -> Path:
    input_path = Path(input_path)
    return input_path.with_name(f"{input_path.stem}.edited{input_path.suffix}")


def default_removal_output(input_path: Path) -> Path:
    input_path = Path(input_path)
    return input_path.with_name(f"{input_path.stem}.ranges-removed{input_path.suffix}")


def default_combined_output(first: Path, second: Path) -> Path:
    first = Path(first)
    second = Path(second)
    return first.with_name(f"{first.stem}-{second.stem}.combined{first.suffix}")


@dataclass
class EditPlan:
    """The removal and keep ranges computed for one source."""
    source: Path
    duration: float
    removed_ranges: list[TimeRange]
    keep_ranges: list[TimeRange]
    removed_words: list[TranscriptWord] = field(default_factory=list)
    refined: list[RefinedRange] = field(default_factory=list)
    warnings: list[str] = field(default_factory=list)

    @property
    def is_passthrough(self) -> bool:
        return not self.removed_ranges

    @property
    def kept_duration(self) -> float:
        return sum_duration(self.keep_ranges)

    @property
    def removed_duration(self) -> float:
        return sum_duration(self.removed_ranges)


@dataclass
class RemovalResult:
    success: bool
    output_path: Path | None = None
    error: str | None = None
    plan: EditPlan | None = None


@dataclass
class EditResult:
    success: bool
    output_path: Path | None = None
    error: str | None = None
    mismatch: TranscriptMismatch | None = None
    plan: EditPlan | None = None


@dataclass
class SpliceResult:
    success: bool
    output_path: Path | None = None
    error: str | None = None
    trim_end_a: float = 0.0
    trim_start_b: float = 0.0
    trim_end_b: float = 0.0


@dataclass
class ChapterEdit:
    """A transcript edit to apply to a chapter before splicing."""
    transcript: TranscriptDocument | Path
    edited_text: str


class EditPlanner:
    """
    Orchestrates transcript edits, explicit removals and chapter splices.

    The ``plan_*`` entry points never raise: every failure is reported through
    the returned result's ``success`` and ``error`` fields. The ``build_*``
    helpers compute plans without rendering and raise on failure.
    """

    def __init__(
        self,
        config: Config,
        cutter: Cutter,
        analyzer: SpeechAnalyzer,
        refiner: BoundaryRefiner | None = None,
        progress: ProgressReporter | None = None,
    ):
        self.config = config
        self.cutter = cutter
        self.analyzer = analyzer
        self.refiner = refiner or BoundaryRefiner(config, analyzer)
        self.progress = progress or NullProgress()

    @classmethod
    def from_config(
        cls,
        config: Config,
        progress: ProgressReporter | None = None,
        verbose: bool = False,
    ) -> "EditPlanner":
        """Build a planner backed by FFmpeg and the WebRTC VAD."""
        analyzer = SpeechAnalyzer(
            config,
            FfmpegSampleProvider(verbose=verbose),
            WebRtcSpeechDetector.from_config(config),
        )
        return cls(config, Cutter(config, verbose=verbose), analyzer, progress=progress)

    # -- explicit removal -------------------------------------------------

    def build_removal_plan(
        self,
        input_path: Path,
        ranges: list[TimeRange],
        duration: float | None = None,
    ) -> EditPlan:
        """
        Normalize user removal ranges and compute what is kept.

        Raises:
            GeometryError: Nothing left to remove, or nothing left to keep
        """
        if duration is None:
            duration = self.cutter.get_video_duration(input_path)

        removed, warnings = normalize_removal_ranges(
            ranges,
            duration,
            min_width=self.config.min_removal_seconds,
            tolerance=self.config.merge_tolerance_seconds,
        )
        for warning in warnings:
            console.print(f"[yellow]{warning}[/yellow]")
        if not removed:
            raise GeometryError("No valid ranges to remove after normalization.")

        keep = complement(0.0, duration, removed, self.config.merge_tolerance_seconds)
        if not keep:
            raise GeometryError("Requested removals delete the entire file.")

        return EditPlan(
            source=Path(input_path),
            duration=duration,
            removed_ranges=removed,
            keep_ranges=keep,
            warnings=warnings,
        )

    def plan_explicit_removal(
        self,
        input_path: Path,
        ranges: list[TimeRange] | str,
        output_path: Path | None = None,
        duration: float | None = None,
    ) -> RemovalResult:
        """
        Cut user supplied time ranges out of a video.

        Args:
            input_path: Source video
            ranges: Removal ranges, or range text such as "12-15, 1:02-1:05"
            output_path: Destination (default: <name>.ranges-removed<ext>)
            duration: Known source duration; probed when omitted

        Returns:
            RemovalResult with the plan that was rendered
        """
        input_path = Path(input_path)
        output_path = Path(output_path) if output_path else default_removal_output(input_path)

        try:
            if same_file(input_path, output_path):
                raise GeometryError("Output path must differ from the input video.")
            if isinstance(ranges, str):
                ranges = parse_time_ranges(ranges)

            plan = self.build_removal_plan(input_path, ranges, duration)
            console.print(
                f"[blue]Removing {len(plan.removed_ranges)} range(s), "
                f"{plan.removed_duration:.2f}s of {plan.duration:.2f}s[/blue]"
            )
            self.cutter.render_keep_ranges(
                input_path, plan.keep_ranges, output_path, plan.duration, self.progress
            )
        except Exception as e:
            return RemovalResult(success=False, error=str(e))

        return RemovalResult(success=True, output_path=output_path, plan=plan)

    # -- transcript edits -------------------------------------------------

    def build_edit_plan(
        self,
        input_path: Path,
        transcript: TranscriptDocument,
        edited_text: str,
        padding_ms: int | None = None,
    ) -> EditPlan:
        """
        Diff the edited transcript and refine the removed words into cuts.

        Raises:
            TranscriptMismatchError: The edit is not a pure deletion
            BoundaryNotFoundError: Refinement failed under the strict policy
            GeometryError: The edit removes everything
        """
        duration = transcript.source_duration
        diff = diff_transcripts(transcript.words, edited_text)
        if not diff.success:
            if diff.mismatch is not None:
                raise TranscriptMismatchError(diff.mismatch)
            raise GeometryError(diff.error or "Edited transcript could not be aligned.")

        if not diff.removed_words:
            return EditPlan(
                source=Path(input_path),
                duration=duration,
                removed_ranges=[],
                keep_ranges=[TimeRange(0.0, duration)],
            )

        tolerance = self.config.merge_tolerance_seconds
        padding = (
            self.config.speech_padding_seconds if padding_ms is None else padding_ms / 1000.0
        )
        raw_ranges = words_to_ranges(diff.removed_words, tolerance)
        console.print(
            f"[blue]{len(diff.removed_words)} word(s) removed across {len(raw_ranges)} range(s)[/blue]"
        )

        refined = self.refiner.refine_all(input_path, duration, raw_ranges, padding, self.progress)
        removed = merge_ranges([r.range for r in refined], tolerance)
        keep = complement(0.0, duration, removed, tolerance)
        if not keep:
            raise GeometryError("Edits remove the entire video. Regenerate the transcript and retry.")

        return EditPlan(
            source=Path(input_path),
            duration=duration,
            removed_ranges=removed,
            keep_ranges=keep,
            removed_words=diff.removed_words,
            refined=refined,
        )

    def plan_edit_from_transcript(
        self,
        input_path: Path,
        transcript: TranscriptDocument | Path,
        edited_text: str,
        output_path: Path | None = None,
        padding_ms: int | None = None,
    ) -> EditResult:
        """
        Render the video described by a hand-edited transcript.

        Args:
            input_path: Source video the transcript was made from
            transcript: Transcript record, or the path of its JSON file
            edited_text: The user's edited plain-text transcript
            output_path: Destination (default: <name>.edited<ext>)
            padding_ms: Silence kept at each cut (default from config)

        Returns:
            EditResult; ``mismatch`` is set when the edit was not a pure deletion
        """
        input_path = Path(input_path)
        output_path = Path(output_path) if output_path else default_edit_output(input_path)

        try:
            if not isinstance(transcript, TranscriptDocument):
                transcript = load_transcript_document(transcript)

            plan = self.build_edit_plan(input_path, transcript, edited_text, padding_ms)
            if plan.is_passthrough:
                console.print("[yellow]No words removed; copying source unchanged[/yellow]")
                self.cutter.copy_through(input_path, output_path)
            else:
                console.print(
                    f"[blue]Keeping {len(plan.keep_ranges)} segment(s), "
                    f"{plan.kept_duration:.2f}s of {plan.duration:.2f}s[/blue]"
                )
                self._render_safely(input_path, plan, output_path)
        except TranscriptMismatchError as e:
            return EditResult(success=False, error=str(e), mismatch=e.mismatch)
        except Exception as e:
            return EditResult(success=False, error=str(e))

        return EditResult(success=True, output_path=output_path, plan=plan)

    def _render_safely(self, input_path: Path, plan: EditPlan, output_path: Path) -> None:
        if not same_file(input_path, output_path):
            self.cutter.render_keep_ranges(
                input_path, plan.keep_ranges, output_path, plan.duration, self.progress
            )
            return

        temp_dir = Path(tempfile.mkdtemp(prefix="cut_planner_", dir=self.config.temp_dir))
        try:
            temp_output = temp_dir / output_path.name
            self.cutter.render_keep_ranges(
                input_path, plan.keep_ranges, temp_output, plan.duration, self.progress
            )
            replace_output(temp_output, output_path)
        finally:
            if not self.config.keep_temp:
                shutil.rmtree(temp_dir, ignore_errors=True)

    # -- chapter splice ---------------------------------------------------

    def find_chapter_end(self, media_path: Path, duration: float, padding: float) -> float:
        """
        Where to end a lead chapter: after its last speech plus padding.

        Only the tail of the chapter is analyzed. An inconclusive VAD result, or
        speech running into the very end, is re-checked with the RMS envelope.
        The speech end already borders the trailing silence, so it is the cut.
        """
        search = self.config.speech_search_window_seconds
        tail = min(duration * self.config.splice_tail_fraction,
                   search * self.config.splice_tail_window_multiple)
        tail_start = max(0.0, duration - tail)

        window = self.analyzer.analyze_window(media_path, tail_start, duration - tail_start)
        bounds = self.analyzer.speech_bounds(window, duration - tail_start)
        speech_end = tail_start + bounds.end

        if bounds.note or duration - speech_end <= self.config.edge_tolerance_seconds:
            rms_end = self.analyzer.rms_speech_end(window)
            if rms_end is not None:
                speech_end = tail_start + rms_end

        return clamp(speech_end + padding, 0.0, duration)

    def find_chapter_window(self, media_path: Path, duration: float, padding: float) -> tuple[float, float]:
        """Where to start and end a following chapter, around its speech."""
        window = self.analyzer.analyze_window(media_path, 0.0, duration)
        bounds = self.analyzer.speech_bounds(window, duration)
        speech_start = bounds.start
        speech_end = bounds.end

        if bounds.note or speech_start <= self.config.edge_tolerance_seconds:
            rms_start = self.analyzer.rms_speech_start(window)
            if rms_start is not None:
                speech_start = rms_start
        if bounds.note:
            rms_end = self.analyzer.rms_speech_end(window)
            if rms_end is not None:
                speech_end = rms_end

        return clamp(speech_start - padding, 0.0, duration), clamp(speech_end + padding, 0.0, duration)

    def _apply_chapter_edit(self, chapter: Path, edit: ChapterEdit, temp_dir: Path, label: str) -> Path:
        edited_path = temp_dir / f"{label}.edited{chapter.suffix}"
        result = self.plan_edit_from_transcript(chapter, edit.transcript, edit.edited_text, edited_path)
        if not result.success:
            raise GeometryError(f"Editing {chapter.name} failed: {result.error}")
        return edited_path

    def plan_chapter_splice(
        self,
        chapter_a: Path,
        chapter_b: Path,
        output_path: Path | None = None,
        padding_ms: int | None = None,
        edit_a: ChapterEdit | None = None,
        edit_b: ChapterEdit | None = None,
    ) -> SpliceResult:
        """
        Join two chapters so that the splice point sits on silence on both sides.

        Args:
            chapter_a: Lead chapter; must contain speech
            chapter_b: Following chapter
            output_path: Destination (default: <a>-<b>.combined<ext of a>)
            padding_ms: Silence kept on each side of the join (default from config)
            edit_a: Optional transcript edit applied to chapter A first
            edit_b: Optional transcript edit applied to chapter B first

        Returns:
            SpliceResult with the trim points used
        """
        chapter_a = Path(chapter_a)
        chapter_b = Path(chapter_b)
        output_path = Path(output_path) if output_path else default_combined_output(chapter_a, chapter_b)
        padding = self.config.speech_padding_seconds if padding_ms is None else padding_ms / 1000.0
        trims = SpliceResult(success=False)

        temp_dir = Path(tempfile.mkdtemp(prefix="cut_planner_combine_", dir=self.config.temp_dir))
        try:
            source_a = self._apply_chapter_edit(chapter_a, edit_a, temp_dir, "first") if edit_a else chapter_a
            source_b = self._apply_chapter_edit(chapter_b, edit_b, temp_dir, "second") if edit_b else chapter_b

            duration_a = self.cutter.get_video_duration(source_a)
            duration_b = self.cutter.get_video_duration(source_b)

            if not self.analyzer.has_speech(source_a, 0.0, duration_a):
                raise NoSpeechError("First video has no speech; cannot combine.")

            trims.trim_end_a = self.find_chapter_end(source_a, duration_a, padding)
            trims.trim_start_b, trims.trim_end_b = self.find_chapter_window(source_b, duration_b, padding)
            console.print(
                f"[dim]Splice: first 0.000-{trims.trim_end_a:.3f}, "
                f"second {trims.trim_start_b:.3f}-{trims.trim_end_b:.3f}[/dim]"
            )

            if trims.trim_end_a <= self.config.degenerate_epsilon_seconds:
                raise GeometryError("First video trims to nothing; cannot combine.")
            if trims.trim_end_b <= trims.trim_start_b + self.config.degenerate_epsilon_seconds:
                raise NoSpeechError("Second video has no speech after trimming.")

            suffix = chapter_a.suffix or ".mp4"
            part_a = self.cutter.cut_segment(source_a, temp_dir / f"part_a{suffix}", 0.0, trims.trim_end_a)
            part_b = self.cutter.cut_segment(
                source_b, temp_dir / f"part_b{suffix}", trims.trim_start_b, trims.trim_end_b
            )

            part_b_duration = trims.trim_end_b - trims.trim_start_b
            if not self.analyzer.has_speech(part_b, 0.0, part_b_duration):
                raise NoSpeechError("Second video has no speech after trimming.")

            output_path.parent.mkdir(parents=True, exist_ok=True)
            if same_file(output_path, chapter_a) or same_file(output_path, chapter_b):
                combined = self.cutter.concatenate_segments([part_a, part_b], temp_dir / f"combined{suffix}")
                replace_output(combined, output_path)
            else:
                self.cutter.concatenate_segments([part_a, part_b], output_path)
        except Exception as e:
            trims.error = str(e)
            return trims
        finally:
            if not self.config.keep_temp:
                shutil.rmtree(temp_dir, ignore_errors=True)

        console.print(f"[green]✓[/green] Combined video saved to {output_path}")
        trims.success = True
        trims.output_path = output_path
        return trims
