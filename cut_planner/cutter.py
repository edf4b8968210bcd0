"""Video probing, cutting and concatenation using FFmpeg."""

import shutil
import subprocess
import tempfile
from pathlib import Path

from rich.console import Console

from .config import Config, FULL_RANGE_TOLERANCE
from .errors import GeometryError, MediaToolError
from .progress import NullProgress, ProgressReporter
from .time_ranges import TimeRange

console = Console()


def same_file(a: Path, b: Path) -> bool:
    return Path(a).resolve() == Path(b).resolve()


def replace_output(temp_path: Path, final_path: Path) -> Path:
    """
    Move a finished temp file over ``final_path``.

    Falls back to copying when a rename is not possible (e.g. across devices).
    """
    temp_path = Path(temp_path)
    final_path = Path(final_path)
    if final_path.exists():
        final_path.unlink()
    try:
        temp_path.replace(final_path)
    except OSError:
        shutil.copy2(temp_path, final_path)
        temp_path.unlink()
    return final_path


class Cutter:
    """Handles video probing, cutting and concatenation using FFmpeg."""

    def __init__(self, config: Config, verbose: bool = False):
        self.config = config
        self.verbose = verbose

    def _run(self, cmd: list[str], failure: str) -> subprocess.CompletedProcess:
        if self.verbose:
            console.print(f"[dim]$ {' '.join(cmd)}[/dim]")
        try:
            result = subprocess.run(cmd, capture_output=True, text=True)
        except FileNotFoundError as e:
            raise MediaToolError(f"{cmd[0]} not found on PATH", command=cmd) from e
        if result.returncode != 0:
            raise MediaToolError(failure, command=cmd, stderr=result.stderr)
        return result

    def get_video_duration(self, video_path: Path) -> float:
        """
        Get the duration of a video file using FFprobe.

        Args:
            video_path: Path to the video file

        Returns:
            Duration in seconds
        """
        cmd = [
            "ffprobe",
            "-v", "error",
            "-show_entries", "format=duration",
            "-of", "default=noprint_wrappers=1:nokey=1",
            str(video_path)
        ]

        result = self._run(cmd, "FFprobe failed")

        try:
            duration = float(result.stdout.strip())
        except ValueError:
            raise MediaToolError(f"Unable to read duration of {video_path}", command=cmd) from None
        if duration <= 0:
            raise MediaToolError(f"Unable to read duration of {video_path}", command=cmd)
        return duration

    def cut_segment(
        self,
        input_path: Path,
        output_path: Path,
        start: float,
        end: float,
    ) -> Path:
        """
        Extract a single segment from the video with precise timing.

        Uses re-encoding to ensure frame-accurate cuts. Stream copy (-c copy)
        can only cut at keyframes. Subtitle streams are copied when present and
        chapters are dropped since they no longer line up.

        Args:
            input_path: Path to input video
            output_path: Path for output segment
            start: Start time in seconds
            end: End time in seconds

        Returns:
            Path to the extracted segment
        """
        duration = end - start
        if duration <= 0:
            raise GeometryError(f"Cannot extract empty segment {start:.3f}-{end:.3f}")

        cmd = [
            "ffmpeg",
            "-hide_banner",
            "-y",
            "-i", str(input_path),
            "-ss", f"{start:.3f}",
            "-t", f"{duration:.3f}",
            "-dn",
            "-map_chapters", "-1",
            "-map", "0:v?",
            "-map", "0:a?",
            "-map", "0:s?",
            "-c:v", "libx264",
            "-preset", self.config.video_preset,
            "-crf", str(self.config.video_crf),
            "-c:a", self.config.audio_codec,
            "-b:a", self.config.audio_bitrate,
            "-c:s", "copy",
            str(output_path)
        ]

        self._run(cmd, "FFmpeg segment extraction failed")
        return output_path

    def concatenate_segments(
        self,
        segment_paths: list[Path],
        output_path: Path
    ) -> Path:
        """
        Concatenate multiple video segments into one.

        Segments come from ``cut_segment`` with identical encoder settings, so
        the concat demuxer can join them without another re-encode.

        Args:
            segment_paths: List of paths to segment files
            output_path: Path for the concatenated output

        Returns:
            Path to the concatenated video
        """
        if not segment_paths:
            raise GeometryError("No segments to concatenate")

        concat_file = Path(segment_paths[0]).parent / "concat_list.txt"

        with open(concat_file, "w") as f:
            for seg_path in segment_paths:
                escaped = str(Path(seg_path).resolve()).replace("'", "'\\''")
                f.write(f"file '{escaped}'\n")

        cmd = [
            "ffmpeg",
            "-hide_banner",
            "-y",
            "-f", "concat",
            "-safe", "0",
            "-i", str(concat_file),
            "-c", "copy",
            str(output_path)
        ]

        try:
            self._run(cmd, "FFmpeg concatenation failed")
        finally:
            if not self.config.keep_temp and concat_file.exists():
                concat_file.unlink()

        return output_path

    def copy_through(self, input_path: Path, output_path: Path) -> Path:
        """Copy the source unchanged; a no-op when both paths are the same file."""
        if same_file(input_path, output_path):
            return Path(output_path)
        Path(output_path).parent.mkdir(parents=True, exist_ok=True)
        shutil.copy2(input_path, output_path)
        return Path(output_path)

    def render_keep_ranges(
        self,
        input_path: Path,
        ranges: list[TimeRange],
        output_path: Path,
        duration: float,
        progress: ProgressReporter | None = None,
    ) -> Path:
        """
        Render the kept ranges of ``input_path`` into ``output_path``.

        A single range spanning the whole source is a plain copy. A single
        partial range is extracted straight to the output; several ranges are
        extracted into a temp directory and concatenated.

        Args:
            input_path: Path to input video
            ranges: Sorted, disjoint ranges to keep
            output_path: Path for final output
            duration: Duration of the input in seconds
            progress: Optional reporter for segment extraction

        Returns:
            Path to the rendered video
        """
        input_path = Path(input_path)
        output_path = Path(output_path)
        progress = progress or NullProgress()

        if not ranges:
            raise GeometryError("No segments to keep")

        output_path.parent.mkdir(parents=True, exist_ok=True)

        if (
            len(ranges) == 1
            and abs(ranges[0].start) <= FULL_RANGE_TOLERANCE
            and abs(ranges[0].end - duration) <= FULL_RANGE_TOLERANCE
        ):
            console.print("[dim]Keep range covers the whole source; copying[/dim]")
            return self.copy_through(input_path, output_path)

        if len(ranges) == 1:
            self.cut_segment(input_path, output_path, ranges[0].start, ranges[0].end)
            console.print(f"[green]✓[/green] Video saved to {output_path}")
            return output_path

        console.print(f"[blue]Cutting {len(ranges)} segments...[/blue]")

        temp_dir = Path(tempfile.mkdtemp(prefix=f"cut_planner_{input_path.stem}_", dir=self.config.temp_dir))
        segment_paths: list[Path] = []
        try:
            progress.start(len(ranges), "Extracting segments")
            for i, range_ in enumerate(ranges):
                seg_path = temp_dir / f"segment_{i:04d}{output_path.suffix or '.mp4'}"
                self.cut_segment(input_path, seg_path, range_.start, range_.end)
                segment_paths.append(seg_path)
                progress.step(f"Extracted segment {i + 1}/{len(ranges)}")
            progress.finish(f"Extracted {len(ranges)} segments")

            console.print("[blue]Concatenating segments...[/blue]")
            self.concatenate_segments(segment_paths, output_path)
        finally:
            if not self.config.keep_temp:
                shutil.rmtree(temp_dir, ignore_errors=True)

        console.print(f"[green]✓[/green] Video saved to {output_path}")
        return output_path
