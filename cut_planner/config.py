"""Configuration settings for the cut planner."""

from enum import Enum
from pathlib import Path

from pydantic import BaseModel, Field


class BoundaryPolicy(str, Enum):
    """What boundary refinement does when no usable silence is found."""
    PERMISSIVE = "permissive"  # fall back to the unrefined range
    STRICT = "strict"          # raise BoundaryNotFoundError


class Config(BaseModel):
    """Configuration for cut planning and rendering."""

    # Boundary refinement
    speech_padding_ms: int = Field(
        default=150,
        ge=0,
        le=2000,
        description="Silence kept next to surviving speech at every cut (milliseconds)"
    )
    speech_search_window_seconds: float = Field(
        default=2.0,
        gt=0.0,
        le=10.0,
        description="Maximum distance searched on each side of a cut for a silence boundary"
    )
    boundary_policy: BoundaryPolicy = Field(
        default=BoundaryPolicy.PERMISSIVE,
        description="Behaviour when refined edges collapse or no boundary is found"
    )

    # Audio analysis
    sample_rate: int = Field(
        default=16000,
        description="Sample rate used when decoding audio for analysis"
    )
    rms_window_ms: float = Field(
        default=6.0,
        gt=0.0,
        description="Window length for RMS envelopes (milliseconds)"
    )
    rms_threshold: float = Field(
        default=0.035,
        gt=0.0,
        le=1.0,
        description="Linear RMS level below which audio counts as silence"
    )
    min_silence_ms: float = Field(
        default=120.0,
        ge=0.0,
        description="Shortest run of quiet windows accepted as a silence boundary"
    )
    progressive_start_seconds: float = Field(
        default=0.25,
        gt=0.0,
        description="First window width tried by the progressive RMS search"
    )
    progressive_growth: float = Field(
        default=2.0,
        gt=1.0,
        description="Factor the progressive RMS search widens by on each attempt"
    )

    # Voice activity detection (webrtcvad)
    vad_aggressiveness: int = Field(
        default=2,
        ge=0,
        le=3,
        description="webrtcvad aggressiveness mode (0 = least, 3 = most aggressive)"
    )
    vad_frame_ms: int = Field(
        default=30,
        description="Frame length fed to webrtcvad (10, 20 or 30 ms)"
    )
    vad_min_speech_ms: int = Field(
        default=250,
        description="Shortest speech run reported as a segment"
    )
    vad_min_silence_ms: int = Field(
        default=120,
        description="Shortest pause that splits two speech segments"
    )
    vad_speech_pad_ms: int = Field(
        default=10,
        description="Padding added around each detected speech segment"
    )

    # Interval handling
    merge_tolerance_seconds: float = Field(
        default=0.01,
        description="Ranges closer than this are merged"
    )
    degenerate_epsilon_seconds: float = Field(
        default=0.005,
        description="Ranges narrower than this are treated as empty"
    )
    min_removal_seconds: float = Field(
        default=0.005,
        description="User removal ranges narrower than this are dropped"
    )

    # Chapter splicing
    splice_tail_fraction: float = Field(
        default=0.3,
        gt=0.0,
        le=1.0,
        description="Fraction of the lead chapter searched for its final speech"
    )
    splice_tail_window_multiple: float = Field(
        default=2.0,
        gt=0.0,
        description="Tail search cap as a multiple of the search window"
    )
    edge_tolerance_seconds: float = Field(
        default=0.05,
        description="Speech edges this close to a clip boundary are re-checked with RMS"
    )

    # Rendering
    video_crf: int = Field(
        default=18,
        ge=0,
        le=51,
        description="libx264 CRF for frame-accurate re-encodes"
    )
    video_preset: str = Field(
        default="medium",
        description="libx264 preset"
    )
    audio_codec: str = Field(
        default="aac",
        description="Audio codec for extracted segments"
    )
    audio_bitrate: str = Field(
        default="192k",
        description="Audio bitrate for extracted segments"
    )

    # Processing settings
    temp_dir: Path | None = Field(
        default=None,
        description="Temporary directory for processing (None = system temp)"
    )
    keep_temp: bool = Field(
        default=False,
        description="Keep temporary files after processing"
    )

    @property
    def speech_padding_seconds(self) -> float:
        return self.speech_padding_ms / 1000.0


# Tolerances for comparing computed boundaries
FULL_RANGE_TOLERANCE = 0.001
BOUNDARY_MATCH_TOLERANCE = 0.001
