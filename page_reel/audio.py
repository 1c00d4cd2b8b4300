"""Audio processing helpers."""
from __future__ import annotations

import logging

import librosa

DEFAULT_PAGE_DURATION = 0.3


def audio_duration(audio_path: str) -> float:
    """Return the length of an audio file in seconds."""
    return float(librosa.get_duration(path=audio_path))


def resolve_total_duration(
    page_count: int,
    duration: float = 0.0,
    audio_path: str = "",
    audio_sync: bool = False,
    page_duration: float = DEFAULT_PAGE_DURATION,
) -> float:
    """Pick the clip length: the narration, an explicit value, or per page."""
    if audio_sync and audio_path:
        total = audio_duration(audio_path)
        logging.info("syncing to audio: %.2fs", total)
        return total
    if duration > 0:
        return duration
    return page_count * page_duration
