"""Shared fakes: an in-memory media library standing in for FFmpeg."""

from pathlib import Path

import numpy as np
import pytest

from cut_planner.config import Config
from cut_planner.cutter import Cutter
from cut_planner.speech import SpeechAnalyzer
from cut_planner.time_ranges import TimeRange

SAMPLE_RATE = 16000


def make_signal(duration: float, speech: list[tuple[float, float]], amplitude: float = 0.3) -> np.ndarray:
    """Silence with a 220 Hz tone wherever ``speech`` says someone is talking."""
    samples = np.zeros(int(round(duration * SAMPLE_RATE)), dtype=np.float32)
    for start, end in speech:
        first = int(round(start * SAMPLE_RATE))
        last = int(round(end * SAMPLE_RATE))
        t = np.arange(last - first) / SAMPLE_RATE
        samples[first:last] = amplitude * np.sin(2 * np.pi * 220 * t)
    return samples


class MediaLibrary:
    """Stores "media" files as raw float32 samples so copies and renames just work."""

    def add(self, path: Path, signal: np.ndarray) -> Path:
        path = Path(path)
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_bytes(np.asarray(signal, dtype=np.float32).tobytes())
        return path

    def signal(self, path: Path) -> np.ndarray:
        return np.frombuffer(Path(path).read_bytes(), dtype=np.float32)

    def duration(self, path: Path) -> float:
        return len(self.signal(path)) / SAMPLE_RATE


class FakeSampleProvider:
    def __init__(self, library: MediaLibrary):
        self.library = library
        self.reads: list[tuple[float, float]] = []

    def read(self, media_path: Path, start: float, duration: float, sample_rate: int) -> np.ndarray:
        self.reads.append((start, duration))
        signal = self.library.signal(media_path)
        first = int(round(start * sample_rate))
        count = int(round(duration * sample_rate))
        return signal[first:first + count]


class EnvelopeDetector:
    """Deterministic stand-in for a VAD: 10 ms frames above a level are speech."""

    frame_ms = 10

    def detect(self, samples: np.ndarray, sample_rate: int) -> list[TimeRange]:
        frame = sample_rate * self.frame_ms // 1000
        segments: list[TimeRange] = []
        for index in range(len(samples) // frame):
            chunk = samples[index * frame:(index + 1) * frame]
            if np.sqrt(np.mean(chunk.astype(np.float64) ** 2)) < 0.01:
                continue
            start = index * frame / sample_rate
            end = (index + 1) * frame / sample_rate
            if segments and abs(segments[-1].end - start) < 1e-9:
                segments[-1] = TimeRange(segments[-1].start, end)
            else:
                segments.append(TimeRange(start, end))
        return segments


class FailingDetector:
    def detect(self, samples: np.ndarray, sample_rate: int) -> list[TimeRange]:
        raise RuntimeError("vad unavailable")


class FakeCutter(Cutter):
    """Cutter whose FFmpeg calls slice signals in the media library."""

    def __init__(self, config: Config, library: MediaLibrary):
        super().__init__(config)
        self.library = library
        self.cuts: list[tuple[Path, float, float]] = []
        self.concats: list[list[Path]] = []

    def get_video_duration(self, video_path: Path) -> float:
        return self.library.duration(video_path)

    def cut_segment(self, input_path: Path, output_path: Path, start: float, end: float) -> Path:
        self.cuts.append((Path(input_path), start, end))
        signal = self.library.signal(input_path)
        first = int(round(start * SAMPLE_RATE))
        last = int(round(end * SAMPLE_RATE))
        self.library.add(output_path, signal[first:last])
        return Path(output_path)

    def concatenate_segments(self, segment_paths: list[Path], output_path: Path) -> Path:
        self.concats.append([Path(p) for p in segment_paths])
        joined = np.concatenate([self.library.signal(p) for p in segment_paths])
        self.library.add(output_path, joined)
        return Path(output_path)


@pytest.fixture
def config(tmp_path: Path) -> Config:
    temp_dir = tmp_path / "work"
    temp_dir.mkdir()
    return Config(temp_dir=temp_dir)


@pytest.fixture
def library() -> MediaLibrary:
    return MediaLibrary()


@pytest.fixture
def analyzer(config: Config, library: MediaLibrary) -> SpeechAnalyzer:
    return SpeechAnalyzer(config, FakeSampleProvider(library), EnvelopeDetector())


@pytest.fixture
def cutter(config: Config, library: MediaLibrary) -> FakeCutter:
    return FakeCutter(config, library)
