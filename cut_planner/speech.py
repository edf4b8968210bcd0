"""Voice activity detection over decoded audio windows."""

from dataclasses import dataclass, field
from pathlib import Path
from typing import Protocol

import numpy as np
import webrtcvad
from rich.console import Console

from .audio import AudioSampleProvider, find_speech_end_with_rms, find_speech_start_with_rms
from .config import Config
from .time_ranges import TimeRange

console = Console()

VAD_SAMPLE_RATES = (8000, 16000, 32000, 48000)
VAD_FRAME_MS = (10, 20, 30)

# Speech bounds narrower than this are treated as no speech at all
MIN_SPEECH_SPAN_SECONDS = 0.1


class SpeechSegmentDetector(Protocol):
    """Finds speech in a buffer of mono float samples."""

    def detect(self, samples: np.ndarray, sample_rate: int) -> list[TimeRange]:
        """Return speech segments in seconds relative to the buffer start."""
        ...


class WebRtcSpeechDetector:
    """
    Speech detector backed by the WebRTC VAD.

    Frames are classified independently, then post-processed: pauses shorter
    than ``min_silence_ms`` are bridged, runs shorter than ``min_speech_ms`` are
    dropped, and each segment is padded by ``speech_pad_ms`` on both sides.
    """

    def __init__(
        self,
        aggressiveness: int = 2,
        frame_ms: int = 30,
        min_speech_ms: int = 250,
        min_silence_ms: int = 120,
        speech_pad_ms: int = 10,
    ):
        if frame_ms not in VAD_FRAME_MS:
            raise ValueError(f"VAD frame length must be one of {VAD_FRAME_MS} ms, got {frame_ms}")
        self.vad = webrtcvad.Vad(aggressiveness)
        self.frame_ms = frame_ms
        self.min_speech_ms = min_speech_ms
        self.min_silence_ms = min_silence_ms
        self.speech_pad_ms = speech_pad_ms

    @classmethod
    def from_config(cls, config: Config) -> "WebRtcSpeechDetector":
        return cls(
            aggressiveness=config.vad_aggressiveness,
            frame_ms=config.vad_frame_ms,
            min_speech_ms=config.vad_min_speech_ms,
            min_silence_ms=config.vad_min_silence_ms,
            speech_pad_ms=config.vad_speech_pad_ms,
        )

    def detect(self, samples: np.ndarray, sample_rate: int) -> list[TimeRange]:
        if sample_rate not in VAD_SAMPLE_RATES:
            raise ValueError(f"webrtcvad does not support {sample_rate} Hz audio")

        frame_samples = sample_rate * self.frame_ms // 1000
        pcm = (np.clip(samples, -1.0, 1.0) * 32767).astype(np.int16)

        flags = []
        for offset in range(0, len(pcm) - frame_samples + 1, frame_samples):
            frame = pcm[offset:offset + frame_samples].tobytes()
            flags.append(self.vad.is_speech(frame, sample_rate))

        return self._frames_to_segments(flags, len(samples) / sample_rate)

    def _frames_to_segments(self, flags: list[bool], duration: float) -> list[TimeRange]:
        frame_seconds = self.frame_ms / 1000.0
        min_speech = self.min_speech_ms / 1000.0
        min_silence = self.min_silence_ms / 1000.0
        pad = self.speech_pad_ms / 1000.0

        runs: list[TimeRange] = []
        run_start = None
        for index, is_speech in enumerate(flags + [False]):
            if is_speech and run_start is None:
                run_start = index
            elif not is_speech and run_start is not None:
                runs.append(TimeRange(run_start * frame_seconds, index * frame_seconds))
                run_start = None

        # Bridge short pauses before applying the minimum speech length
        bridged: list[TimeRange] = []
        for run in runs:
            if bridged and run.start - bridged[-1].end < min_silence:
                bridged[-1] = TimeRange(bridged[-1].start, run.end)
            else:
                bridged.append(run)

        segments: list[TimeRange] = []
        for run in bridged:
            if run.duration < min_speech:
                continue
            start = max(0.0, run.start - pad)
            end = min(duration, run.end + pad)
            if segments and start <= segments[-1].end:
                segments[-1] = TimeRange(segments[-1].start, max(segments[-1].end, end))
            else:
                segments.append(TimeRange(start, end))
        return segments


@dataclass
class AudioWindow:
    """Decoded samples for one stretch of a media file plus its VAD result."""
    start: float
    samples: np.ndarray
    sample_rate: int
    segments: list[TimeRange] = field(default_factory=list)  # relative to ``start``

    @property
    def duration(self) -> float:
        return len(self.samples) / self.sample_rate


@dataclass
class SpeechBounds:
    """First speech start and last speech end inside a window, relative to it."""
    start: float
    end: float
    note: str | None = None  # set when detection fell back to the whole window


class SpeechAnalyzer:
    """Couples a sample provider with a speech detector."""

    def __init__(
        self,
        config: Config,
        provider: AudioSampleProvider,
        detector: SpeechSegmentDetector,
    ):
        self.config = config
        self.provider = provider
        self.detector = detector

    def analyze_window(self, media_path: Path, start: float, duration: float) -> AudioWindow:
        """
        Decode ``[start, start + duration)`` and run speech detection on it.

        A detector failure is reported and leaves ``segments`` empty, which every
        caller treats as "VAD inconclusive" and answers with the RMS fallback.
        """
        sample_rate = self.config.sample_rate
        samples = self.provider.read(media_path, start, duration, sample_rate)
        window = AudioWindow(start=start, samples=samples, sample_rate=sample_rate)
        if len(samples) == 0:
            return window

        try:
            window.segments = self.detector.detect(samples, sample_rate)
        except Exception as e:
            console.print(f"[yellow]Speech detection failed, using RMS analysis: {e}[/yellow]")
        return window

    def detect_segments(self, media_path: Path, start: float, duration: float) -> list[TimeRange]:
        return self.analyze_window(media_path, start, duration).segments

    def detect_speech_bounds(self, media_path: Path, start: float, duration: float) -> SpeechBounds:
        """
        Find where speech begins and ends within a window.

        Returns:
            SpeechBounds relative to ``start``. Without usable speech the whole
            window is returned with an explanatory ``note``.
        """
        return self.speech_bounds(self.analyze_window(media_path, start, duration), duration)

    def speech_bounds(self, window: AudioWindow, duration: float | None = None) -> SpeechBounds:
        """Speech bounds of an already analyzed window."""
        if duration is None:
            duration = window.duration
        if not window.segments:
            return SpeechBounds(0.0, duration, note="No speech detected; using full clip.")

        speech_start = window.segments[0].start
        speech_end = window.segments[-1].end
        if speech_end <= speech_start + MIN_SPEECH_SPAN_SECONDS:
            return SpeechBounds(0.0, duration, note="Speech span too short; using full clip.")
        return SpeechBounds(speech_start, speech_end)

    def has_speech(self, media_path: Path, start: float, duration: float) -> bool:
        """True when VAD or the RMS envelope finds any speech in the window."""
        window = self.analyze_window(media_path, start, duration)
        if window.segments:
            return True
        return self.rms_speech_start(window) is not None

    def rms_speech_start(self, window: AudioWindow) -> float | None:
        return find_speech_start_with_rms(
            window.samples,
            window.sample_rate,
            self.config.rms_window_ms,
            self.config.rms_threshold,
        )

    def rms_speech_end(self, window: AudioWindow) -> float | None:
        return find_speech_end_with_rms(
            window.samples,
            window.sample_rate,
            self.config.rms_window_ms,
            self.config.rms_threshold,
        )
