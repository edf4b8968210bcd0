"""CLI plumbing tests with the planner replaced by a stub."""

import json
from pathlib import Path

import pytest
from click.testing import CliRunner

from cut_planner import main as cli_module
from cut_planner.config import BoundaryPolicy
from cut_planner.planner import EditPlan, EditResult, RemovalResult, SpliceResult
from cut_planner.time_ranges import TimeRange
from cut_planner.transcript import TranscriptWord, render_transcript_json


class StubPlanner:
    def __init__(self):
        self.calls = []

    def plan_explicit_removal(self, input_path, ranges, output_path=None):
        self.calls.append(("remove", input_path, ranges, output_path))
        plan = EditPlan(
            source=input_path,
            duration=10.0,
            removed_ranges=ranges,
            keep_ranges=[TimeRange(0.0, 1.0)],
        )
        return RemovalResult(success=True, output_path=Path("out.mp4"), plan=plan)

    def plan_edit_from_transcript(self, input_path, transcript, edited_text, output_path=None):
        self.calls.append(("edit", input_path, edited_text, output_path))
        return EditResult(success=False, error="Word modified. Error: Transcript mismatch at word position 0.")

    def plan_chapter_splice(self, first, second, output_path=None, edit_a=None, edit_b=None):
        self.calls.append(("combine", first, second, output_path, edit_a, edit_b))
        return SpliceResult(success=True, output_path=Path("joined.mp4"),
                            trim_end_a=3.15, trim_start_b=0.85, trim_end_b=2.65)


@pytest.fixture
def stub(monkeypatch: pytest.MonkeyPatch) -> StubPlanner:
    planner = StubPlanner()
    configs = []

    def fake_build_planner(config, verbose):
        configs.append(config)
        return planner

    monkeypatch.setattr(cli_module, "build_planner", fake_build_planner)
    planner.configs = configs
    return planner


@pytest.fixture
def files(tmp_path: Path) -> dict[str, Path]:
    video = tmp_path / "lesson.mp4"
    video.write_bytes(b"video")
    second = tmp_path / "next.mp4"
    second.write_bytes(b"video")
    transcript = tmp_path / "transcript.json"
    transcript.write_text(
        render_transcript_json(
            "lesson.mp4",
            3.0,
            [
                TranscriptWord(word="hello", start=0.0, end=0.5, index=0),
                TranscriptWord(word="big", start=1.0, end=1.5, index=1),
                TranscriptWord(word="world", start=2.0, end=2.5, index=2),
            ],
        ),
        encoding="utf-8",
    )
    edited = tmp_path / "transcript.txt"
    edited.write_text("hello world\n", encoding="utf-8")
    return {"video": video, "second": second, "transcript": transcript, "edited": edited}


def test_remove_ranges_parses_arguments(stub: StubPlanner, files: dict[str, Path]) -> None:
    """Range arguments are joined and parsed before planning."""
    result = CliRunner().invoke(cli_module.cli, ["remove-ranges", str(files["video"]), "1-2,", "3:00-3:05"])

    assert result.exit_code == 0, result.output
    _, _, ranges, output = stub.calls[0]
    assert ranges == [TimeRange(1, 2), TimeRange(180, 185)]
    assert output is None


def test_remove_ranges_rejects_bad_range(stub: StubPlanner, files: dict[str, Path]) -> None:
    """Unparseable ranges exit with an error before planning."""
    result = CliRunner().invoke(cli_module.cli, ["remove-ranges", str(files["video"]), "5-1"])

    assert result.exit_code == 1
    assert "End must be after start" in result.output
    assert stub.calls == []


def test_edit_failure_exits_nonzero(stub: StubPlanner, files: dict[str, Path]) -> None:
    """A failed edit result becomes exit code 1 with the error shown."""
    result = CliRunner().invoke(cli_module.cli, [
        "edit", str(files["video"]),
        "-t", str(files["transcript"]),
        "-e", str(files["edited"]),
        "--padding-ms", "200",
        "--strict",
    ])

    assert result.exit_code == 1
    assert "Transcript mismatch" in result.output
    assert stub.calls[0][2] == "hello world\n"
    assert stub.configs[0].speech_padding_ms == 200
    assert stub.configs[0].boundary_policy is BoundaryPolicy.STRICT


def test_padding_from_environment(stub: StubPlanner, files: dict[str, Path]) -> None:
    """The padding default can come from the environment."""
    CliRunner().invoke(
        cli_module.cli,
        ["edit", str(files["video"]), "-t", str(files["transcript"]), "-e", str(files["edited"])],
        env={"CUT_PLANNER_PADDING_MS": "80"},
    )

    assert stub.configs[0].speech_padding_ms == 80


def test_combine_requires_transcript_pairs(stub: StubPlanner, files: dict[str, Path]) -> None:
    """A transcript without its edited text is rejected."""
    result = CliRunner().invoke(cli_module.cli, [
        "combine", str(files["video"]), str(files["second"]),
        "--transcript1", str(files["transcript"]),
    ])

    assert result.exit_code == 1
    assert stub.calls == []


def test_combine_passes_chapter_edits(stub: StubPlanner, files: dict[str, Path]) -> None:
    """Chapter edits are handed to the planner."""
    result = CliRunner().invoke(cli_module.cli, [
        "combine", str(files["video"]), str(files["second"]),
        "--transcript1", str(files["transcript"]),
        "--edited1", str(files["edited"]),
        "-o", "joined.mp4",
    ])

    assert result.exit_code == 0, result.output
    _, _, _, output, edit_a, edit_b = stub.calls[0]
    assert output == Path("joined.mp4")
    assert edit_a.edited_text == "hello world\n"
    assert edit_b is None


def test_transcript_renders_text(files: dict[str, Path]) -> None:
    """The transcript command prints the editable text."""
    result = CliRunner().invoke(cli_module.cli, ["transcript", str(files["transcript"])])

    assert result.exit_code == 0
    assert result.output == "hello big world\n"


def test_transcript_after_ranges(files: dict[str, Path], tmp_path: Path) -> None:
    """Removed ranges drop the words they cover."""
    out = tmp_path / "after.txt"

    result = CliRunner().invoke(cli_module.cli, [
        "transcript", str(files["transcript"]), "--after-ranges", "0.9-1.6", "-o", str(out),
    ])

    assert result.exit_code == 0, result.output
    assert out.read_text(encoding="utf-8") == "hello world\n"


def test_import_segments_writes_transcript(files: dict[str, Path], tmp_path: Path) -> None:
    """Speech-to-text segments become transcript files next to the video."""
    segments = tmp_path / "segments.json"
    segments.write_text(json.dumps({"segments": [
        {"start": 0.2, "end": 1.0, "text": "Hello, big"},
        {"start": 1.5, "end": 2.0, "text": "world."},
    ]}), encoding="utf-8")

    result = CliRunner().invoke(cli_module.cli, [
        "import-segments", str(files["video"]), str(segments), "--duration", "3.0",
    ])

    assert result.exit_code == 0, result.output
    assert (tmp_path / "lesson.transcript.txt").read_text(encoding="utf-8") == "hello big world\n"
    document = json.loads((tmp_path / "lesson.transcript.json").read_text(encoding="utf-8"))
    assert document["source_video"] == "lesson.mp4"
    assert [w["index"] for w in document["words"]] == [0, 1, 2]


def test_import_segments_reads_video_duration(
    monkeypatch: pytest.MonkeyPatch, files: dict[str, Path], tmp_path: Path
) -> None:
    """Without --duration the video duration is used, and a bad fit is an error."""
    segments = tmp_path / "segments.json"
    segments.write_text(json.dumps([{"start": 0.0, "end": 5.0, "text": "too long"}]), encoding="utf-8")
    monkeypatch.setattr(cli_module.Cutter, "get_video_duration", lambda self, path: 2.0)

    result = CliRunner().invoke(cli_module.cli, ["import-segments", str(files["video"]), str(segments)])

    assert result.exit_code == 1
    assert "do not fit lesson.mp4" in result.output
