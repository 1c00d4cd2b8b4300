"""Configuration values and records for page_reel."""
from __future__ import annotations

import os
from dataclasses import dataclass
from typing import Tuple

IMAGE_EXTS = {".jpg", ".jpeg", ".png", ".bmp", ".webp"}
AUDIO_EXTS = {".mp3", ".wav", ".m4a", ".ogg", ".aac", ".flac"}

DEFAULT_SIZE = (1280, 720)

# Format presets (width, height)
FORMAT_PRESETS = {
    "16:9": (1280, 720),
    "9:16": (720, 1280),
    "4:5": (1080, 1350),
}

SUPPORTED_TRANSITIONS = (
    "fade", "wipeleft", "wiperight", "wipeup", "wipedown",
    "slideleft", "slideright", "slideup", "slidedown",
    "circlecrop", "rectcrop", "distance", "fadeblack", "fadewhite",
    "radial", "smoothstep", "circularreveal", "pixelize", "dissolve", "none",
)

ZOOM_MODES = (
    "center", "top-left", "top-right", "bottom-left", "bottom-right",
    "random", "out-center", "out-random",
)

# Encode stage width; kept below the render stage so a single hardware
# encoder is not oversubscribed.
ENCODE_WORKERS = 4


@dataclass(frozen=True)
class ReelConfig:
    """User-facing settings for a single run."""

    input_path: str = ""
    output_path: str = ""
    total_duration: float = 0.0
    width: int = DEFAULT_SIZE[0]
    height: int = DEFAULT_SIZE[1]
    fps: int = 30
    dpi: int = 300
    workers: int = os.cpu_count() or 1
    encode_workers: int = ENCODE_WORKERS
    fade_duration: float = 0.5
    outro_duration: float = 1.0
    transition: str = "fade"
    zoom_mode: str = "center"
    zoom_speed: float = 0.001
    audio_path: str = ""
    background_audio: str = ""
    background_volume: float = 0.3
    video_encoder: str = "libx264"
    quality: int = 23
    analyze_mode: str = "contrast"
    min_block_area: int = 500
    edge_threshold: float = 30.0
    debug: bool = False
    show_stats: bool = False

    @property
    def size(self) -> Tuple[int, int]:
        return (self.width, self.height)


@dataclass(frozen=True)
class SegmentParams:
    """Rendering parameters of one page segment.

    Built fresh for every job by the encode stage. ``filter`` is attached
    with :func:`dataclasses.replace` once the effect has produced it.
    """

    width: int
    height: int
    fps: int
    duration: float
    fade_duration: float
    outro_duration: float
    zoom_mode: str
    zoom_speed: float
    page_index: int
    debug: bool = False
    filter: str = ""

    @property
    def total_frames(self) -> int:
        return max(1, int(self.duration * self.fps))
