"""Timestamped transcript records and their plain-text rendering."""

import json
import re
from dataclasses import dataclass
from pathlib import Path
from typing import Literal

from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator, model_validator
from rich.console import Console

from .errors import TranscriptFormatError
from .time_ranges import TimeRange, shift_time_after_removals

console = Console()

TRANSCRIPT_VERSION = 1

# Word timings may overrun the probed duration by container rounding
DURATION_SLACK_SECONDS = 0.05

_NON_WORD = re.compile(r"[^a-z0-9]+")


@dataclass
class Segment:
    """A transcribed stretch of speech as produced by the speech-to-text service."""
    start: float  # Start time in seconds
    end: float    # End time in seconds
    text: str

    @property
    def duration(self) -> float:
        return self.end - self.start


class TranscriptWord(BaseModel):
    """A single normalized word with its timing and original position."""
    model_config = ConfigDict(frozen=True)

    word: str
    start: float = Field(ge=0.0)
    end: float = Field(ge=0.0)
    index: int = Field(ge=0)

    @field_validator("word")
    @classmethod
    def _normalized_word(cls, value: str) -> str:
        tokens = normalize_words(value)
        if len(tokens) != 1:
            raise ValueError(f"word {value!r} does not normalize to a single word")
        return tokens[0]

    @property
    def range(self) -> TimeRange:
        return TimeRange(self.start, self.end)


class TranscriptDocument(BaseModel):
    """Versioned transcript record written once per source media item."""
    model_config = ConfigDict(frozen=True)

    version: Literal[1] = TRANSCRIPT_VERSION
    source_video: str = Field(min_length=1)
    source_duration: float = Field(gt=0.0)
    words: list[TranscriptWord]

    @model_validator(mode="after")
    def _words_fit_duration(self) -> "TranscriptDocument":
        limit = self.source_duration + DURATION_SLACK_SECONDS
        for position, word in enumerate(self.words):
            if word.end > limit:
                raise ValueError(
                    f"word {position} ends at {word.end:.3f}s, past source duration "
                    f"{self.source_duration:.3f}s"
                )
        return self

    @property
    def text(self) -> str:
        return render_transcript_text(self.words)


def normalize_words(text: str) -> list[str]:
    """Lowercase ``text`` and split it into bare alphanumeric words."""
    normalized = _NON_WORD.sub(" ", text.lower()).strip()
    if not normalized:
        return []
    # whisper-style placeholder for silent input
    if normalized in ("blank audio", "blankaudio"):
        return []
    return normalized.split()


def build_indexed_words(segments: list[Segment]) -> list[TranscriptWord]:
    """
    Spread each segment's words evenly over its time span and number them.

    Segments are processed in start order; the last word of a segment always
    ends exactly at the segment end.
    """
    words: list[TranscriptWord] = []
    for segment in sorted(segments, key=lambda s: s.start):
        segment_words = normalize_words(segment.text)
        if not segment_words:
            continue
        word_duration = max(segment.end - segment.start, 0.0) / len(segment_words)
        for i, word in enumerate(segment_words):
            start = segment.start + word_duration * i
            end = segment.end if i == len(segment_words) - 1 else segment.start + word_duration * (i + 1)
            words.append(TranscriptWord(word=word, start=start, end=end, index=len(words)))
    return words


def parse_segments(raw: str) -> list[Segment]:
    """
    Read speech-to-text segments from JSON.

    Accepts a list of ``{"start", "end", "text"}`` objects, or an object whose
    ``segments`` key holds that list (Whisper verbose output).
    """
    try:
        payload = json.loads(raw)
    except json.JSONDecodeError as e:
        raise TranscriptFormatError(f"Segments JSON parse error: {e}") from e

    if isinstance(payload, dict):
        payload = payload.get("segments")
    if not isinstance(payload, list):
        raise TranscriptFormatError("Segments JSON must be a list or an object with a \"segments\" list.")

    segments: list[Segment] = []
    for position, item in enumerate(payload):
        try:
            start = float(item["start"])
            end = float(item["end"])
            text = str(item["text"])
        except (KeyError, TypeError, ValueError) as e:
            raise TranscriptFormatError(f"Segment {position} needs numeric start/end and text: {e}") from e
        if start < 0 or end < start:
            raise TranscriptFormatError(f"Segment {position} has invalid timing {start:.3f}-{end:.3f}")
        segments.append(Segment(start=start, end=end, text=text))
    return segments


def transcript_from_segments(
    source_video: str,
    source_duration: float,
    segments: list[Segment],
) -> TranscriptDocument:
    """Build a transcript record from speech-to-text segments."""
    try:
        return TranscriptDocument(
            source_video=source_video,
            source_duration=source_duration,
            words=build_indexed_words(segments),
        )
    except ValidationError as e:
        raise TranscriptFormatError(f"Segments do not fit {source_video}: {e.errors()[0]['msg']}") from e


def render_transcript_text(words: list[TranscriptWord]) -> str:
    """Render the human-editable text: words joined by spaces, newline terminated."""
    if not words:
        return ""
    return " ".join(word.word for word in words) + "\n"


def render_transcript_json(
    source_video: str,
    source_duration: float,
    words: list[TranscriptWord],
) -> str:
    document = TranscriptDocument(
        source_video=source_video,
        source_duration=source_duration,
        words=words,
    )
    return json.dumps(document.model_dump(), indent=2) + "\n"


def parse_transcript_document(raw: str) -> TranscriptDocument:
    """Validate a serialized transcript record."""
    try:
        payload = json.loads(raw)
    except json.JSONDecodeError as e:
        raise TranscriptFormatError(f"Transcript JSON parse error: {e}") from e

    if not isinstance(payload, dict):
        raise TranscriptFormatError("Transcript JSON is not an object.")
    if payload.get("version") != TRANSCRIPT_VERSION:
        raise TranscriptFormatError("Unsupported transcript JSON version.")

    try:
        return TranscriptDocument.model_validate(payload)
    except ValidationError as e:
        problems = "; ".join(
            f"{'.'.join(str(part) for part in error['loc']) or 'record'}: {error['msg']}"
            for error in e.errors()
        )
        raise TranscriptFormatError(f"Invalid transcript JSON: {problems}") from e


def load_transcript_document(path: Path) -> TranscriptDocument:
    """Read and validate a transcript record from disk."""
    path = Path(path)
    if not path.exists():
        raise TranscriptFormatError(f"Transcript file not found: {path}")
    return parse_transcript_document(path.read_text(encoding="utf-8"))


def write_transcript_files(document: TranscriptDocument, json_path: Path, text_path: Path) -> None:
    """Write the structured record and its editable text rendering."""
    json_path = Path(json_path)
    text_path = Path(text_path)
    json_path.parent.mkdir(parents=True, exist_ok=True)
    text_path.parent.mkdir(parents=True, exist_ok=True)

    json_path.write_text(
        render_transcript_json(document.source_video, document.source_duration, document.words),
        encoding="utf-8",
    )
    text_path.write_text(render_transcript_text(document.words), encoding="utf-8")
    console.print(f"[green]✓[/green] Transcript written to {json_path.name} and {text_path.name}")


def shift_words_after_removals(
    words: list[TranscriptWord],
    removed: list[TimeRange],
) -> list[TranscriptWord]:
    """
    Map the words that survive ``removed`` onto the edited timeline.

    A word is dropped when its midpoint falls inside a removed range. Indices are
    renumbered so the result reads as a fresh transcript of the edited media.
    """
    survivors: list[TranscriptWord] = []
    for word in words:
        midpoint = (word.start + word.end) / 2
        if any(r.start <= midpoint < r.end for r in removed):
            continue
        start = shift_time_after_removals(word.start, removed)
        end = max(start, shift_time_after_removals(word.end, removed))
        survivors.append(TranscriptWord(word=word.word, start=start, end=end, index=len(survivors)))
    return survivors
