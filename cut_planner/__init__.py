"""Speech-aware cut planning for transcript driven video edits."""

__version__ = "0.1.0"
