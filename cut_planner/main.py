"""CLI entry point for the cut planner."""

import sys
from pathlib import Path

from dotenv import load_dotenv
load_dotenv()  # Load .env file automatically

import click
from rich.console import Console
from rich.panel import Panel
from rich.table import Table

from .config import BoundaryPolicy, Config
from .cutter import Cutter
from .errors import CutPlannerError
from .planner import ChapterEdit, EditPlan, EditPlanner
from .progress import RichProgress
from .time_ranges import TimeRange, parse_time_ranges
from .transcript import (
    TranscriptDocument,
    load_transcript_document,
    parse_segments,
    render_transcript_text,
    shift_words_after_removals,
    transcript_from_segments,
    write_transcript_files,
)

console = Console()


def build_config(padding_ms: int | None, strict: bool, keep_temp: bool) -> Config:
    settings = {
        "boundary_policy": BoundaryPolicy.STRICT if strict else BoundaryPolicy.PERMISSIVE,
        "keep_temp": keep_temp,
    }
    if padding_ms is not None:
        settings["speech_padding_ms"] = padding_ms
    return Config(**settings)


def build_planner(config: Config, verbose: bool) -> EditPlanner:
    return EditPlanner.from_config(config, progress=RichProgress(console), verbose=verbose)


def print_plan(plan: EditPlan):
    """Print the ranges an edit keeps."""
    table = Table(title="Segments to Keep")
    table.add_column("Segment", style="cyan")
    table.add_column("Start", style="green")
    table.add_column("End", style="green")
    table.add_column("Duration", style="yellow")

    for i, range_ in enumerate(plan.keep_ranges, 1):
        table.add_row(
            str(i),
            f"{range_.start:.3f}s",
            f"{range_.end:.3f}s",
            f"{range_.duration:.3f}s",
        )

    console.print(table)
    removed_pct = (plan.removed_duration / plan.duration) * 100 if plan.duration else 0.0
    console.print(f"\n[bold]Summary:[/bold]")
    console.print(f"  Original duration: {plan.duration:.2f}s")
    console.print(f"  Kept duration: {plan.kept_duration:.2f}s")
    console.print(f"  Removed: {plan.removed_duration:.2f}s ({removed_pct:.1f}%)")
    if plan.removed_words:
        console.print(f"  Removed words: {len(plan.removed_words)}")


def print_summary(title: str, output_path: Path, lines: list[str]):
    body = "\n".join([f"[bold green]✓ {title}[/bold green]", "", f"Output: [cyan]{output_path}[/cyan]", *lines])
    console.print(Panel.fit(body, title="Summary", border_style="green"))


def fail(message: str):
    console.print(f"\n[bold red]Error:[/bold red] {message}")
    sys.exit(1)


def read_text(path: str) -> str:
    return Path(path).read_text(encoding="utf-8")


common_options = [
    click.option("--padding-ms", type=click.IntRange(0, 2000), envvar="CUT_PLANNER_PADDING_MS",
                 help="Silence kept at each cut in milliseconds (default: 150)"),
    click.option("--strict", is_flag=True,
                 help="Fail instead of keeping the raw range when no silence is found"),
    click.option("--keep-temp", is_flag=True, help="Keep temporary files for debugging"),
    click.option("-v", "--verbose", is_flag=True, help="Print FFmpeg commands"),
]


def with_common_options(func):
    for option in reversed(common_options):
        func = option(func)
    return func


@click.group()
def cli():
    """Speech-aware cut planner: edit videos by editing their transcripts."""


@cli.command()
@click.argument("input_video", type=click.Path(exists=True, dir_okay=False))
@click.option("-t", "--transcript", "transcript_path", type=click.Path(exists=True, dir_okay=False),
              required=True, help="Transcript JSON written for the input video")
@click.option("-e", "--edited", "edited_path", type=click.Path(exists=True, dir_okay=False),
              required=True, help="Edited plain-text transcript")
@click.option("-o", "--output", "output_path", type=click.Path(dir_okay=False),
              help="Output video path (default: <name>.edited<ext>)")
@click.option("--preview", is_flag=True, help="Show the planned cuts without rendering")
@click.option("--write-transcript", is_flag=True,
              help="Write the transcript of the edited video next to the output")
@with_common_options
def edit(
    input_video: str,
    transcript_path: str,
    edited_path: str,
    output_path: str | None,
    preview: bool,
    write_transcript: bool,
    padding_ms: int | None,
    strict: bool,
    keep_temp: bool,
    verbose: bool,
):
    """Remove the words deleted from an edited transcript."""
    config = build_config(padding_ms, strict, keep_temp)
    planner = build_planner(config, verbose)
    edited_text = read_text(edited_path)

    try:
        document = load_transcript_document(Path(transcript_path))
    except CutPlannerError as e:
        fail(str(e))

    if preview:
        try:
            plan = planner.build_edit_plan(Path(input_video), document, edited_text)
        except CutPlannerError as e:
            fail(str(e))
        console.print("\n[bold yellow]PREVIEW MODE[/bold yellow] - No changes will be made\n")
        print_plan(plan)
        console.print("\n[dim]Run without --preview to process the video.[/dim]")
        return

    result = planner.plan_edit_from_transcript(
        Path(input_video),
        document,
        edited_text,
        Path(output_path) if output_path else None,
    )
    if not result.success:
        fail(result.error)

    if write_transcript and result.plan is not None:
        write_edited_transcript(document, result.plan, result.output_path)

    plan = result.plan
    print_summary("Edit complete!", result.output_path, [
        f"Original: {plan.duration:.1f}s → Final: {plan.kept_duration:.1f}s",
        f"Removed words: {len(plan.removed_words)}",
    ])


def write_edited_transcript(document: TranscriptDocument, plan: EditPlan, output_path: Path):
    """Write transcript files whose timings match the rendered video."""
    words = shift_words_after_removals(document.words, plan.removed_ranges)
    edited = TranscriptDocument(
        source_video=output_path.name,
        source_duration=max(plan.kept_duration, 0.001),
        words=words,
    )
    write_transcript_files(
        edited,
        output_path.with_suffix(".transcript.json"),
        output_path.with_suffix(".transcript.txt"),
    )


@cli.command(name="remove-ranges")
@click.argument("input_video", type=click.Path(exists=True, dir_okay=False))
@click.argument("ranges", nargs=-1, required=True)
@click.option("-o", "--output", "output_path", type=click.Path(dir_okay=False),
              help="Output video path (default: <name>.ranges-removed<ext>)")
@click.option("--keep-temp", is_flag=True, help="Keep temporary files for debugging")
@click.option("-v", "--verbose", is_flag=True, help="Print FFmpeg commands")
def remove_ranges(input_video: str, ranges: tuple[str, ...], output_path: str | None,
                  keep_temp: bool, verbose: bool):
    """
    Cut explicit time ranges out of a video.

    RANGES look like "12-15", "1:02-1:05.5" or "90..92"; separate several
    with commas or spaces.
    """
    try:
        parsed = parse_time_ranges(" ".join(ranges))
    except CutPlannerError as e:
        fail(str(e))

    planner = build_planner(build_config(None, False, keep_temp), verbose)
    result = planner.plan_explicit_removal(
        Path(input_video), parsed, Path(output_path) if output_path else None
    )
    if not result.success:
        fail(result.error)

    plan = result.plan
    print_summary("Ranges removed!", result.output_path, [
        f"Removed {len(plan.removed_ranges)} range(s): {', '.join(str(r) for r in plan.removed_ranges)}",
        f"Original: {plan.duration:.1f}s → Final: {plan.kept_duration:.1f}s",
    ])


@cli.command()
@click.argument("first_video", type=click.Path(exists=True, dir_okay=False))
@click.argument("second_video", type=click.Path(exists=True, dir_okay=False))
@click.option("-o", "--output", "output_path", type=click.Path(dir_okay=False),
              help="Output video path (default: <first>-<second>.combined<ext>)")
@click.option("--transcript1", type=click.Path(exists=True, dir_okay=False),
              help="Transcript JSON of the first video")
@click.option("--edited1", type=click.Path(exists=True, dir_okay=False),
              help="Edited transcript of the first video")
@click.option("--transcript2", type=click.Path(exists=True, dir_okay=False),
              help="Transcript JSON of the second video")
@click.option("--edited2", type=click.Path(exists=True, dir_okay=False),
              help="Edited transcript of the second video")
@with_common_options
def combine(
    first_video: str,
    second_video: str,
    output_path: str | None,
    transcript1: str | None,
    edited1: str | None,
    transcript2: str | None,
    edited2: str | None,
    padding_ms: int | None,
    strict: bool,
    keep_temp: bool,
    verbose: bool,
):
    """Join two chapters at a silent splice point."""
    if bool(transcript1) != bool(edited1) or bool(transcript2) != bool(edited2):
        fail("Transcript and edited text must be given together for each video.")

    edit_a = ChapterEdit(Path(transcript1), read_text(edited1)) if transcript1 else None
    edit_b = ChapterEdit(Path(transcript2), read_text(edited2)) if transcript2 else None

    planner = build_planner(build_config(padding_ms, strict, keep_temp), verbose)
    result = planner.plan_chapter_splice(
        Path(first_video),
        Path(second_video),
        Path(output_path) if output_path else None,
        edit_a=edit_a,
        edit_b=edit_b,
    )
    if not result.success:
        fail(result.error)

    print_summary("Chapters combined!", result.output_path, [
        f"First video kept until {result.trim_end_a:.3f}s",
        f"Second video kept from {result.trim_start_b:.3f}s to {result.trim_end_b:.3f}s",
    ])


@cli.command()
@click.argument("transcript_json", type=click.Path(exists=True, dir_okay=False))
@click.option("-o", "--output", "output_path", type=click.Path(dir_okay=False),
              help="Write the editable text here instead of printing it")
@click.option("--after-ranges", help="Show the transcript as it reads after removing these ranges")
def transcript(transcript_json: str, output_path: str | None, after_ranges: str | None):
    """Render the editable plain text of a transcript JSON file."""
    try:
        document = load_transcript_document(Path(transcript_json))
        removed: list[TimeRange] = parse_time_ranges(after_ranges) if after_ranges else []
    except CutPlannerError as e:
        fail(str(e))

    words = shift_words_after_removals(document.words, removed) if removed else document.words
    text = render_transcript_text(words)

    if output_path:
        Path(output_path).write_text(text, encoding="utf-8")
        console.print(f"[green]✓[/green] Transcript text written to {output_path}")
    else:
        click.echo(text, nl=False)


@cli.command(name="import-segments")
@click.argument("input_video", type=click.Path(exists=True, dir_okay=False))
@click.argument("segments_json", type=click.Path(exists=True, dir_okay=False))
@click.option("--duration", type=click.FloatRange(min=0.0, min_open=True),
              help="Video duration in seconds (default: probed with ffprobe)")
@click.option("-v", "--verbose", is_flag=True, help="Print FFmpeg commands")
def import_segments(input_video: str, segments_json: str, duration: float | None, verbose: bool):
    """
    Build a transcript from speech-to-text segments.

    SEGMENTS_JSON is a list of {"start", "end", "text"} objects, or Whisper
    verbose output with a "segments" list. Writes <name>.transcript.json and
    <name>.transcript.txt next to the video.
    """
    video = Path(input_video)
    try:
        segments = parse_segments(read_text(segments_json))
        if duration is None:
            duration = Cutter(Config(), verbose=verbose).get_video_duration(video)
        document = transcript_from_segments(video.name, duration, segments)
    except CutPlannerError as e:
        fail(str(e))

    console.print(f"[blue]Imported {len(segments)} segments ({len(document.words)} words)[/blue]")
    write_transcript_files(
        document,
        video.with_suffix(".transcript.json"),
        video.with_suffix(".transcript.txt"),
    )


def main():
    cli()


if __name__ == "__main__":
    main()
