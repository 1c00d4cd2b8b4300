"""Per-segment ffmpeg filter chains."""
from __future__ import annotations

import random
import time
from typing import Callable, List, Optional, Tuple

from .bin_config import check_filter_support
from .config import SegmentParams
from .director import retime_slide
from .motion import debug_box_filter, zoompan_filter
from .scenario import Keyframe, Rect, Scenario

SUPERSAMPLE = 2

CORNER_PANS = {
    "top-left": ("0", "0"),
    "top-right": ("iw-(iw/zoom)", "0"),
    "bottom-left": ("0", "ih-(ih/zoom)"),
    "bottom-right": ("iw-(iw/zoom)", "ih-(ih/zoom)"),
    "center": ("iw/2-(iw/zoom/2)", "ih/2-(ih/zoom/2)"),
}
RANDOM_CHOICES = ("center", "top-left", "top-right", "bottom-left", "bottom-right")


def aspect_filter(width: int, height: int, factor: int = SUPERSAMPLE) -> str:
    """Fit the page into a ``factor``-times oversized, padded canvas."""
    w, h = width * factor, height * factor
    return (
        f"scale={w}:{h}:force_original_aspect_ratio=decrease,"
        f"pad={w}:{h}:(ow-iw)/2:(oh-ih)/2"
    )


def debug_text_filter(page_index: int, timestamp: bool = False) -> str:
    text = f"Slide {page_index + 1}"
    if timestamp:
        text += " | Time %{pts\\:hms}"
    return (
        f"drawtext=text='{text}':x=10:y=10:fontsize=24:"
        "fontcolor=yellow:box=1:boxcolor=black@0.5"
    )


class BreathingZoom:
    """Zoom in, hold, then settle back to 1.0 before the transition.

    All positions are in output frames. The zoom grows by ``speed`` per
    frame up to ``on_peak``, holds ``peak`` until ``outro_start`` and falls
    linearly to 1.0 at ``active``, the frame where the transition starts.
    """

    def __init__(
        self,
        duration: float,
        fps: int,
        fade_duration: float = 0.0,
        outro_duration: float = 0.0,
        speed: float = 0.001,
    ):
        self.total = duration * fps
        fade = fade_duration * fps
        outro = outro_duration * fps
        self.active = self.total - fade
        if self.active <= 0:
            self.active = self.total
        self.speed = speed if speed > 0 else 0.001

        on_peak = 0.5 / self.speed
        room = self.active - outro
        if room > 0 and on_peak > room / 2:
            on_peak = room / 2
        peak = 1.0 + self.speed * on_peak
        if peak > 1.5:
            peak = 1.5
            on_peak = 0.5 / self.speed
        self.on_peak = on_peak
        self.peak = peak
        self.outro_start = max(self.active - outro, on_peak)

    def zoom_at(self, frame: float) -> float:
        if frame <= self.on_peak:
            return 1.0 + self.speed * frame
        if frame <= self.outro_start:
            return self.peak
        if frame <= self.active:
            return self.peak - (self.peak - 1.0) * (frame - self.outro_start) / (
                self.active - self.outro_start
            )
        return 1.0

    def expression(self) -> str:
        p, o, a = f"{self.on_peak:.6f}", f"{self.outro_start:.6f}", f"{self.active:.6f}"
        peak = f"{self.peak:.6f}"
        return (
            f"if(lte(on,{p}),1.0+({self.speed:.6f}*on),"
            f"if(lte(on,{o}),{peak},"
            f"if(lte(on,{a}),{peak}-({peak}-1.0)*(on-{o})/({a}-{o}),1.0)))"
        )


def pan_for_mode(
    mode: str, page_index: int = 0, rng: Optional[random.Random] = None
) -> Tuple[str, str]:
    """Zoompan ``x``/``y`` expressions anchoring the zoom for *mode*."""
    mode = mode.lower()
    if mode in ("random", "out-random"):
        rng = rng or random.Random(time.time_ns() + page_index * 99)
        mode = rng.choice(RANDOM_CHOICES)
    return CORNER_PANS.get(mode, CORNER_PANS["center"])


class DefaultEffect:
    """Breathing zoom anchored at a corner or the centre of the page."""

    def __init__(self, supports: Optional[Callable[[str], bool]] = None, rng=None):
        self.supports = supports or check_filter_support
        self.rng = rng

    def generate_filter(
        self, params: SegmentParams, source_size: Optional[Tuple[int, int]] = None
    ) -> str:
        x, y = pan_for_mode(params.zoom_mode, params.page_index, self.rng)
        zoom = BreathingZoom(
            params.duration,
            params.fps,
            params.fade_duration,
            params.outro_duration,
            params.zoom_speed,
        )
        zoompan = (
            f"zoompan=z='{zoom.expression()}':d={params.total_frames}:"
            f"s={params.width}x{params.height}:x='{x}':y='{y}':fps={params.fps}"
        )
        chain = [aspect_filter(params.width, params.height), zoompan]
        if params.debug and self.supports("drawtext"):
            chain.append(debug_text_filter(params.page_index))
        chain.append(f"scale={params.width}:{params.height}")
        return ",".join(chain)


def to_canvas(
    kf: Keyframe, source_size: Tuple[int, int], canvas: Tuple[int, int]
) -> Keyframe:
    """Map *kf* from page pixels into the padded canvas built by :func:`aspect_filter`."""
    sw, sh = source_size
    cw, ch = canvas
    if sw <= 0 or sh <= 0:
        return kf
    s = min(cw / sw, ch / sh)
    ox = (cw - sw * s) / 2
    oy = (ch - sh * s) / 2
    r = kf.rect
    rect = Rect(
        int(round(r.x * s + ox)),
        int(round(r.y * s + oy)),
        int(round(r.w * s)),
        int(round(r.h * s)),
    )
    return Keyframe(kf.time, kf.focus, rect, kf.zoom)


class ScenarioEffect:
    """Camera path driven by an authored :class:`Scenario`, one slide per page."""

    def __init__(
        self, scenario: Scenario, supports: Optional[Callable[[str], bool]] = None
    ):
        self.scenario = scenario
        self.supports = supports or check_filter_support

    def keyframes(
        self, params: SegmentParams, source_size: Optional[Tuple[int, int]] = None
    ) -> List[Keyframe]:
        """Retimed keyframes of the page's slide, in canvas pixels."""
        slide = self.scenario.slides[params.page_index]
        size = source_size or (params.width, params.height)
        retimed = retime_slide(
            slide,
            params.duration,
            params.fade_duration,
            params.outro_duration,
            size[0],
            size[1],
        )
        canvas = (params.width * SUPERSAMPLE, params.height * SUPERSAMPLE)
        return [to_canvas(kf, size, canvas) for kf in retimed]

    def generate_filter(
        self, params: SegmentParams, source_size: Optional[Tuple[int, int]] = None
    ) -> str:
        w, h = params.width, params.height
        if self.scenario is None or params.page_index >= len(self.scenario.slides):
            return f"{aspect_filter(w, h, factor=1)},scale={w}:{h}"

        keyframes = self.keyframes(params, source_size)
        canvas = (w * SUPERSAMPLE, h * SUPERSAMPLE)
        zoompan = zoompan_filter(keyframes, params.duration, params.fps, w, h, canvas)

        chain = [aspect_filter(w, h)]
        if params.debug and self.supports("drawbox"):
            box = debug_box_filter(keyframes, canvas[0], canvas[1])
            if box:
                chain.append(box)
        if zoompan:
            chain.append(zoompan)
        if params.debug and self.supports("drawtext"):
            chain.append(debug_text_filter(params.page_index, timestamp=True))
        chain.append(f"scale={w}:{h}")
        return ",".join(chain)
