"""Configuration validation helpers."""
from __future__ import annotations

from typing import List

from .config import SUPPORTED_TRANSITIONS, ZOOM_MODES, ReelConfig
from .detect import BUILT_DETECTORS, KNOWN_DETECTORS
from .errors import ConfigError


def validate_config(cfg: ReelConfig) -> List[str]:
    """Validate a :class:`ReelConfig`.

    Returns a list of human readable error messages. The caller should abort
    if the list is non-empty.
    """
    errors: List[str] = []
    if cfg.width <= 0 or cfg.width % 2 != 0:
        errors.append(f"width must be positive and even (got {cfg.width})")
    if cfg.height <= 0 or cfg.height % 2 != 0:
        errors.append(f"height must be positive and even (got {cfg.height})")
    if not (1 <= cfg.fps <= 120):
        errors.append(f"fps must be between 1 and 120 (got {cfg.fps})")
    if not (72 <= cfg.dpi <= 1200):
        errors.append(f"dpi must be between 72 and 1200 (got {cfg.dpi})")
    if cfg.fade_duration < 0:
        errors.append("fade duration cannot be negative")
    if cfg.outro_duration < 0:
        errors.append("outro duration cannot be negative")
    if cfg.total_duration < 0:
        errors.append("duration cannot be negative")
    if cfg.zoom_speed <= 0:
        errors.append("zoom-speed must be positive")
    if cfg.workers < 1:
        errors.append("workers must be at least 1")
    if cfg.encode_workers < 1:
        errors.append("encode-workers must be at least 1")
    if not (0.0 <= cfg.background_volume <= 1.0):
        errors.append("background volume must be within [0,1]")
    if cfg.transition not in SUPPORTED_TRANSITIONS:
        errors.append(
            f"unsupported transition type: {cfg.transition}. "
            f"Supported: {', '.join(SUPPORTED_TRANSITIONS)}"
        )
    if cfg.zoom_mode not in ZOOM_MODES:
        errors.append(
            f"unsupported zoom mode: {cfg.zoom_mode}. Supported: {', '.join(ZOOM_MODES)}"
        )
    if cfg.analyze_mode not in KNOWN_DETECTORS:
        errors.append(f"unsupported analyze mode: {cfg.analyze_mode}")
    elif cfg.analyze_mode not in BUILT_DETECTORS:
        errors.append(f"analyze mode {cfg.analyze_mode} is not implemented")
    return errors


def ensure_valid(cfg: ReelConfig) -> ReelConfig:
    """Return *cfg* unchanged or raise :class:`ConfigError` listing every problem."""
    errors = validate_config(cfg)
    if errors:
        raise ConfigError("; ".join(errors))
    return cfg
