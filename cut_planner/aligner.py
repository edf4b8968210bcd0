"""Alignment of a hand-edited transcript against the timestamped original.

The only edit accepted is deleting whole words. The aligner walks the original
words and the edited tokens with two pointers; an original word that does not
match the current edited token is skipped as long as that token still occurs
later in the original. Anything else (an inserted, substituted or reordered
word) stops the walk with a mismatch addressed by position.
"""

from dataclasses import dataclass, field
from enum import Enum

from rapidfuzz import fuzz, process

from .transcript import TranscriptWord, normalize_words

# How far past the divergence point to look for a "did you mean" word
SUGGESTION_LOOKAHEAD = 5
SUGGESTION_MIN_SCORE = 60


class AlignState(Enum):
    """State of the two-pointer walk."""
    MATCHING = "matching"
    SKIPPING = "skipping"
    FAILED = "failed"
    DONE = "done"


class MismatchKind(str, Enum):
    """Why the edited transcript is not a pure deletion."""
    WORD_ADDED = "word_added"
    WORD_MODIFIED = "word_modified"
    WORD_OUT_OF_ORDER = "word_out_of_order"


_KIND_LABELS = {
    MismatchKind.WORD_ADDED: "Unexpected word",
    MismatchKind.WORD_MODIFIED: "Word modified",
    MismatchKind.WORD_OUT_OF_ORDER: "Word out of order",
}


@dataclass
class TranscriptMismatch:
    """Where and how the edited transcript diverges from the original."""
    kind: MismatchKind
    position: int  # index into the edited tokens
    expected_word: str | None
    found_word: str | None
    suggestion: str | None = None

    @property
    def message(self) -> str:
        expected = self.expected_word if self.expected_word is not None else "end of transcript"
        found = self.found_word if self.found_word is not None else "end of transcript"
        hint = f'\nClosest original word: "{self.suggestion}"' if self.suggestion else ""
        return (
            f"{_KIND_LABELS[self.kind]}. "
            f"Error: Transcript mismatch at word position {self.position}.\n"
            f'Expected: "{expected}"\n'
            f'Found: "{found}"{hint}\n\n'
            "The edited transcript contains changes that don't match the original.\n"
            "Please regenerate the transcript and try again."
        )


@dataclass
class ValidationResult:
    valid: bool
    error: str | None = None
    mismatch: TranscriptMismatch | None = None


@dataclass
class DiffResult:
    success: bool
    removed_words: list[TranscriptWord] = field(default_factory=list)
    error: str | None = None
    mismatch: TranscriptMismatch | None = None


class TranscriptAligner:
    """
    Two-pointer state machine over original words and edited tokens.

    ``run()`` drives the walk to completion. With ``collect_removed`` set, every
    original word not matched into the edited sequence is recorded; otherwise
    the walk only checks that such a matching exists.
    """

    def __init__(self, original: list[TranscriptWord], edited: list[str]):
        self.original = original
        self.edited = edited
        self.original_index = 0
        self.edited_index = 0
        self.state = AlignState.MATCHING
        self.mismatch: TranscriptMismatch | None = None
        self.removed: list[TranscriptWord] = []

    def step(self) -> AlignState:
        """Advance one original word and return the new state."""
        if self.original_index >= len(self.original) or self.edited_index >= len(self.edited):
            self.state = self._finish()
            return self.state

        original_word = self.original[self.original_index]
        edited_word = self.edited[self.edited_index]

        if original_word.word == edited_word:
            self.original_index += 1
            self.edited_index += 1
            self.state = AlignState.MATCHING
            return self.state

        if self._find_next_match(edited_word, self.original_index + 1) == -1:
            self.mismatch = self._build_mismatch(edited_word)
            self.state = AlignState.FAILED
            return self.state

        # The edited token appears later; this original word was deleted
        self.removed.append(original_word)
        self.original_index += 1
        self.state = AlignState.SKIPPING
        return self.state

    def run(self) -> AlignState:
        while self.state not in (AlignState.DONE, AlignState.FAILED):
            self.step()
        return self.state

    def _finish(self) -> AlignState:
        if self.edited_index < len(self.edited):
            self.mismatch = TranscriptMismatch(
                kind=MismatchKind.WORD_ADDED,
                position=self.edited_index,
                expected_word=None,
                found_word=self.edited[self.edited_index],
            )
            return AlignState.FAILED
        # Trailing original words were deleted
        self.removed.extend(self.original[self.original_index:])
        self.original_index = len(self.original)
        return AlignState.DONE

    def _find_next_match(self, target: str, start_index: int) -> int:
        for index in range(start_index, len(self.original)):
            if self.original[index].word == target:
                return index
        return -1

    def _build_mismatch(self, edited_word: str) -> TranscriptMismatch:
        first_index = next(
            (i for i, word in enumerate(self.original) if word.word == edited_word),
            -1,
        )
        if 0 <= first_index < self.original_index:
            kind = MismatchKind.WORD_OUT_OF_ORDER
        else:
            kind = MismatchKind.WORD_MODIFIED

        suggestion = None
        if kind is MismatchKind.WORD_MODIFIED:
            suggestion = self._suggest(edited_word)

        return TranscriptMismatch(
            kind=kind,
            position=self.edited_index,
            expected_word=self.original[self.original_index].word,
            found_word=edited_word,
            suggestion=suggestion,
        )

    def _suggest(self, edited_word: str) -> str | None:
        window = self.original[self.original_index:self.original_index + SUGGESTION_LOOKAHEAD]
        candidates = [word.word for word in window]
        if not candidates:
            return None
        match = process.extractOne(
            edited_word,
            candidates,
            scorer=fuzz.ratio,
            score_cutoff=SUGGESTION_MIN_SCORE,
        )
        return match[0] if match else None


def _check_inputs(original: list[TranscriptWord], edited: list[str]) -> str | None:
    if not original:
        return "Original transcript has no words. Regenerate the transcript."
    if not edited:
        return "Edited transcript is empty. Regenerate the transcript if this was unintentional."
    return None


def validate_edited_transcript(original: list[TranscriptWord], edited_text: str) -> ValidationResult:
    """Check that ``edited_text`` is ``original`` with zero or more words deleted."""
    edited = normalize_words(edited_text)
    problem = _check_inputs(original, edited)
    if problem:
        return ValidationResult(valid=False, error=problem)

    aligner = TranscriptAligner(original, edited)
    if aligner.run() is AlignState.FAILED:
        return ValidationResult(valid=False, error=aligner.mismatch.message, mismatch=aligner.mismatch)
    return ValidationResult(valid=True)


def diff_transcripts(original: list[TranscriptWord], edited_text: str) -> DiffResult:
    """
    Compute which original words were deleted to produce ``edited_text``.

    Returns:
        DiffResult with the removed words in original order
    """
    validation = validate_edited_transcript(original, edited_text)
    if not validation.valid:
        return DiffResult(success=False, error=validation.error, mismatch=validation.mismatch)

    edited = normalize_words(edited_text)
    removed: list[TranscriptWord] = []
    edited_index = 0
    for word in original:
        if edited_index < len(edited) and word.word == edited[edited_index]:
            edited_index += 1
            continue
        removed.append(word)

    if edited_index < len(edited):
        mismatch = TranscriptMismatch(
            kind=MismatchKind.WORD_ADDED,
            position=edited_index,
            expected_word=None,
            found_word=edited[edited_index],
        )
        return DiffResult(success=False, error=mismatch.message, mismatch=mismatch)

    return DiffResult(success=True, removed_words=removed)
