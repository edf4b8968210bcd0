"""Behavior tests for the three planning operations."""

from pathlib import Path

import pytest

from conftest import FakeCutter, MediaLibrary, make_signal

from cut_planner.aligner import MismatchKind
from cut_planner.config import Config
from cut_planner.planner import (
    ChapterEdit,
    EditPlanner,
    default_combined_output,
    default_edit_output,
    default_removal_output,
)
from cut_planner.speech import SpeechAnalyzer
from cut_planner.time_ranges import TimeRange
from cut_planner.transcript import TranscriptDocument, TranscriptWord


def _pairs(ranges: list[TimeRange]) -> list[tuple[float, float]]:
    return [(round(r.start, 3), round(r.end, 3)) for r in ranges]


@pytest.fixture
def planner(config: Config, cutter: FakeCutter, analyzer: SpeechAnalyzer) -> EditPlanner:
    return EditPlanner(config, cutter, analyzer)


@pytest.fixture
def clip(library: MediaLibrary, tmp_path: Path) -> Path:
    return library.add(tmp_path / "lesson.mp4", make_signal(10.0, [(0.5, 9.5)]))


def test_default_output_names() -> None:
    """Output names are derived from the inputs."""
    assert default_edit_output(Path("/v/a.mp4")) == Path("/v/a.edited.mp4")
    assert default_removal_output(Path("/v/a.mov")) == Path("/v/a.ranges-removed.mov")
    assert default_combined_output(Path("/v/one.mp4"), Path("/v/two.mkv")) == Path("/v/one-two.combined.mp4")


def test_explicit_removal_cuts_and_joins(planner: EditPlanner, cutter: FakeCutter, clip: Path) -> None:
    """Removing two ranges keeps three segments joined in order."""
    result = planner.plan_explicit_removal(clip, "1-2, 3-4")

    assert result.success, result.error
    assert result.output_path == clip.with_name("lesson.ranges-removed.mp4")
    assert _pairs(result.plan.keep_ranges) == [(0, 1), (2, 3), (4, 10)]
    assert [(start, end) for _, start, end in cutter.cuts] == [(0, 1), (2, 3), (4, 10)]
    assert len(cutter.concats) == 1
    assert result.output_path.exists()


def test_explicit_removal_single_keep_range(planner: EditPlanner, cutter: FakeCutter, clip: Path) -> None:
    """One surviving range is extracted straight to the output."""
    output = clip.with_name("trimmed.mp4")

    result = planner.plan_explicit_removal(clip, [TimeRange(0, 2)], output)

    assert result.success, result.error
    assert cutter.cuts == [(clip, 2, 10.0)]
    assert cutter.concats == []
    assert output.exists()


def test_explicit_removal_clamps_with_warnings(planner: EditPlanner, clip: Path) -> None:
    """Out-of-range input is clamped and the warnings kept on the plan."""
    result = planner.plan_explicit_removal(clip, [TimeRange(8, 15)])

    assert result.success, result.error
    assert _pairs(result.plan.removed_ranges) == [(8, 10)]
    assert result.plan.warnings


@pytest.mark.parametrize(
    "ranges, message",
    [
        ([TimeRange(20, 30)], "No valid ranges to remove after normalization."),
        ([TimeRange(0, 4), TimeRange(4, 10)], "Requested removals delete the entire file."),
        ("10-5", "End must be after start"),
    ],
)
def test_explicit_removal_failures(planner: EditPlanner, clip: Path, ranges, message: str) -> None:
    """Failures come back as results, not exceptions."""
    result = planner.plan_explicit_removal(clip, ranges)

    assert not result.success
    assert message in result.error


def test_explicit_removal_refuses_to_overwrite_input(planner: EditPlanner, cutter: FakeCutter, clip: Path) -> None:
    """The input cannot be the output."""
    result = planner.plan_explicit_removal(clip, "1-2", clip)

    assert not result.success
    assert cutter.cuts == []


# -- transcript edits -----------------------------------------------------

def _spoken_clip(library: MediaLibrary, tmp_path: Path) -> tuple[Path, TranscriptDocument]:
    clip = library.add(tmp_path / "talk.mp4", make_signal(5.0, [(0.5, 1.5), (2.0, 3.0), (3.6, 4.6)]))
    words = [
        TranscriptWord(word="hello", start=0.5, end=1.5, index=0),
        TranscriptWord(word="um", start=2.0, end=3.0, index=1),
        TranscriptWord(word="world", start=3.6, end=4.6, index=2),
    ]
    return clip, TranscriptDocument(source_video=clip.name, source_duration=5.0, words=words)


def test_edit_from_transcript_removes_refined_range(
    planner: EditPlanner, library: MediaLibrary, tmp_path: Path
) -> None:
    """A deleted word is cut out at the surrounding silence."""
    clip, transcript = _spoken_clip(library, tmp_path)

    result = planner.plan_edit_from_transcript(clip, transcript, "hello world\n")

    assert result.success, result.error
    assert [w.word for w in result.plan.removed_words] == ["um"]
    assert _pairs(result.plan.removed_ranges) == [(1.65, 3.45)]
    assert _pairs(result.plan.keep_ranges) == [(0.0, 1.65), (3.45, 5.0)]
    assert result.output_path == clip.with_name("talk.edited.mp4")
    assert library.duration(result.output_path) == pytest.approx(5.0 - 1.8, abs=0.001)


def test_edit_reports_transcript_mismatch(planner: EditPlanner, library: MediaLibrary, tmp_path: Path) -> None:
    """An edit that adds words fails with a structured mismatch."""
    clip, transcript = _spoken_clip(library, tmp_path)

    result = planner.plan_edit_from_transcript(clip, transcript, "hello there world")

    assert not result.success
    assert result.mismatch.kind is MismatchKind.WORD_MODIFIED
    assert result.mismatch.position == 1
    assert "Expected: \"um\"" in result.error


def test_edit_without_removals_copies_source(
    planner: EditPlanner, cutter: FakeCutter, library: MediaLibrary, tmp_path: Path
) -> None:
    """An unchanged transcript passes the source through."""
    clip, transcript = _spoken_clip(library, tmp_path)
    output = tmp_path / "copy.mp4"

    result = planner.plan_edit_from_transcript(clip, transcript, "hello um world", output)

    assert result.success, result.error
    assert result.plan.is_passthrough
    assert output.read_bytes() == clip.read_bytes()
    assert cutter.cuts == []


def test_edit_loads_transcript_from_path(planner: EditPlanner, library: MediaLibrary, tmp_path: Path) -> None:
    """A transcript path is loaded and validated."""
    clip, transcript = _spoken_clip(library, tmp_path)
    path = tmp_path / "talk.transcript.json"
    path.write_text(transcript.model_dump_json(), encoding="utf-8")

    result = planner.plan_edit_from_transcript(clip, path, "um world")

    assert result.success, result.error
    assert [w.word for w in result.plan.removed_words] == ["hello"]


def test_edit_with_bad_transcript_file(planner: EditPlanner, tmp_path: Path) -> None:
    """A malformed transcript file is a failed result."""
    path = tmp_path / "broken.json"
    path.write_text("{", encoding="utf-8")

    result = planner.plan_edit_from_transcript(tmp_path / "talk.mp4", path, "hello")

    assert not result.success
    assert "parse error" in result.error


# -- chapter splice -------------------------------------------------------

def test_chapter_splice_trims_around_speech(
    planner: EditPlanner, cutter: FakeCutter, library: MediaLibrary, tmp_path: Path
) -> None:
    """The join keeps padding after A's speech and before B's speech."""
    first = library.add(tmp_path / "intro.mp4", make_signal(4.0, [(0.5, 3.0)]))
    second = library.add(tmp_path / "body.mp4", make_signal(3.5, [(1.0, 2.5)]))

    result = planner.plan_chapter_splice(first, second)

    assert result.success, result.error
    assert result.trim_end_a == pytest.approx(3.15, abs=0.011)
    assert result.trim_start_b == pytest.approx(0.85, abs=0.011)
    assert result.trim_end_b == pytest.approx(2.65, abs=0.011)
    assert result.output_path == tmp_path / "intro-body.combined.mp4"
    assert len(cutter.concats) == 1


def test_chapter_splice_decodes_each_window_once(
    planner: EditPlanner, analyzer: SpeechAnalyzer, library: MediaLibrary, tmp_path: Path
) -> None:
    """Speech detection on A, A's tail and all of B are the only decodes."""
    first = library.add(tmp_path / "intro.mp4", make_signal(4.0, [(0.5, 3.0)]))
    second = library.add(tmp_path / "body.mp4", make_signal(3.5, [(1.0, 2.5)]))

    planner.plan_chapter_splice(first, second)

    reads = [(round(start, 3), round(duration, 3)) for start, duration in analyzer.provider.reads]
    assert reads == [(0.0, 4.0), (2.8, 1.2), (0.0, 3.5)]


def test_chapter_splice_silent_lead_fails(planner: EditPlanner, library: MediaLibrary, tmp_path: Path) -> None:
    """A lead chapter without speech cannot be spliced."""
    first = library.add(tmp_path / "blank.mp4", make_signal(3.0, []))
    second = library.add(tmp_path / "body.mp4", make_signal(3.0, [(1.0, 2.0)]))

    result = planner.plan_chapter_splice(first, second)

    assert not result.success
    assert result.error == "First video has no speech; cannot combine."
    assert (result.trim_end_a, result.trim_start_b, result.trim_end_b) == (0.0, 0.0, 0.0)


def test_chapter_splice_silent_second_fails(planner: EditPlanner, library: MediaLibrary, tmp_path: Path) -> None:
    """A second chapter that trims down to silence is rejected."""
    first = library.add(tmp_path / "intro.mp4", make_signal(3.0, [(0.5, 2.5)]))
    second = library.add(tmp_path / "blank.mp4", make_signal(3.0, []))

    result = planner.plan_chapter_splice(first, second)

    assert not result.success
    assert result.error == "Second video has no speech after trimming."


def test_chapter_splice_can_overwrite_an_input(
    planner: EditPlanner, library: MediaLibrary, tmp_path: Path
) -> None:
    """Writing over the first chapter goes through a temporary file."""
    first = library.add(tmp_path / "intro.mp4", make_signal(4.0, [(0.5, 3.0)]))
    second = library.add(tmp_path / "body.mp4", make_signal(3.5, [(1.0, 2.5)]))

    result = planner.plan_chapter_splice(first, second, first)

    assert result.success, result.error
    assert result.output_path == first
    expected = (result.trim_end_a) + (result.trim_end_b - result.trim_start_b)
    assert library.duration(first) == pytest.approx(expected, abs=0.002)


def test_chapter_splice_applies_chapter_edits_first(
    planner: EditPlanner, library: MediaLibrary, tmp_path: Path
) -> None:
    """A failing chapter edit fails the splice."""
    first = library.add(tmp_path / "intro.mp4", make_signal(4.0, [(0.5, 3.0)]))
    second = library.add(tmp_path / "body.mp4", make_signal(3.5, [(1.0, 2.5)]))
    transcript = TranscriptDocument(
        source_video="intro.mp4",
        source_duration=4.0,
        words=[TranscriptWord(word="welcome", start=0.5, end=3.0, index=0)],
    )

    result = planner.plan_chapter_splice(first, second, edit_a=ChapterEdit(transcript, "goodbye"))

    assert not result.success
    assert "Editing intro.mp4 failed" in result.error
