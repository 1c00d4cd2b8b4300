"""Quick preview of a planned camera path rendered in-process with MoviePy."""
from __future__ import annotations

import logging
from typing import Sequence, Tuple

import cv2
import numpy as np

try:
    from moviepy.editor import VideoClip
except ModuleNotFoundError:  # moviepy >=2.0
    from moviepy import VideoClip

from .motion import CameraState, interpolate_keyframes
from .scenario import Keyframe, Slide


def _set_fps(clip, fps):
    """Set frames-per-second on a clip for moviepy 1.x/2.x."""
    return clip.set_fps(fps) if hasattr(clip, "set_fps") else clip.with_fps(fps)


def crop_window(
    page_size: Tuple[int, int], state: CameraState
) -> Tuple[int, int, int, int]:
    """Return ``(left, top, w, h)`` of the page area visible at *state*."""
    pw, ph = page_size
    zoom = max(1.0, state.zoom)
    w = max(1, int(round(pw / zoom)))
    h = max(1, int(round(ph / zoom)))
    left = int(round(state.x - w / 2))
    top = int(round(state.y - h / 2))
    left = max(0, min(left, pw - w))
    top = max(0, min(top, ph - h))
    return left, top, w, h


def render_view(page: np.ndarray, state: CameraState, size: Tuple[int, int]) -> np.ndarray:
    """Crop *page* at *state* and letterbox it into an RGB frame of *size*."""
    ph, pw = page.shape[:2]
    left, top, w, h = crop_window((pw, ph), state)
    crop = page[top : top + h, left : left + w, :3]
    out_w, out_h = size
    scale = min(out_w / w, out_h / h)
    fw = max(1, min(out_w, int(round(w * scale))))
    fh = max(1, min(out_h, int(round(h * scale))))
    interp = cv2.INTER_AREA if scale < 1 else cv2.INTER_CUBIC
    fg = cv2.resize(np.ascontiguousarray(crop), (fw, fh), interpolation=interp)
    canvas = np.zeros((out_h, out_w, 3), dtype=np.uint8)
    x0 = (out_w - fw) // 2
    y0 = (out_h - fh) // 2
    canvas[y0 : y0 + fh, x0 : x0 + fw] = fg
    return canvas


def make_preview_clip(
    page: np.ndarray,
    keyframes: Sequence[Keyframe],
    duration: float,
    size: Tuple[int, int] = (1280, 720),
    fps: int = 30,
):
    """VideoClip following *keyframes* over *page* (page-pixel coordinates)."""
    keyframes = list(keyframes)

    def make_frame(t):
        return render_view(page, interpolate_keyframes(keyframes, t), size)

    clip = VideoClip(make_frame, duration=duration)
    return _set_fps(clip, fps)


def write_preview(
    page: np.ndarray,
    slide: Slide,
    out_path: str,
    size: Tuple[int, int] = (1280, 720),
    fps: int = 30,
) -> str:
    """Render the camera path of *slide* over *page* to *out_path*."""
    duration = slide.duration
    if duration <= 0 and slide.keyframes:
        duration = slide.keyframes[-1].time
    duration = max(duration, 1.0 / fps)
    clip = make_preview_clip(page, slide.keyframes, duration, size, fps)
    logging.info("writing preview %s (%.2fs)", out_path, duration)
    clip.write_videofile(out_path, fps=fps, codec="libx264", audio=False, logger=None)
    return out_path
