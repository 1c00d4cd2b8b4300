"""Camera path planning from detected regions."""
from __future__ import annotations

from dataclasses import replace
from typing import List, Sequence

from .detect import Block
from .errors import DetectionError
from .scenario import Keyframe, Rect, Scenario, Slide, full_view

ZOOM_MIN = 1.0
ZOOM_MAX = 3.0
VIEWPORT_FILL = 0.9


def order_blocks(blocks: Sequence[Block], row_tol: int = 20) -> List[Block]:
    """Return *blocks* in reading order (top-to-bottom, left-to-right).

    Blocks whose top edges differ by at most ``row_tol`` pixels (inclusive)
    share a row; rows are read left to right.
    """
    if not blocks:
        return []
    by_top = sorted(blocks, key=lambda b: (b.rect[1], b.rect[0], b.rect[2], b.rect[3]))
    rows: List[List[Block]] = []
    for b in by_top:
        if rows and abs(b.rect[1] - rows[-1][0].rect[1]) <= row_tol:
            rows[-1].append(b)
        else:
            rows.append([b])
    out: List[Block] = []
    for row in rows:
        out.extend(sorted(row, key=lambda b: (b.rect[0], b.rect[1])))
    return out


class Director:
    """Turns detected blocks into a keyframed camera path for one page.

    Parameters
    ----------
    viewport_width, viewport_height:
        Size of the full view, in the same pixel space as the blocks.
    min_dwell, max_dwell:
        Clamp for the time spent on each block (seconds).
    row_tol:
        Same-row tolerance used by :func:`order_blocks`.
    intro:
        Full-view time before the first block.
    """

    def __init__(
        self,
        viewport_width: int,
        viewport_height: int,
        min_dwell: float = 1.0,
        max_dwell: float = 3.0,
        row_tol: int = 20,
        intro: float = 1.0,
    ):
        self.viewport_width = int(viewport_width)
        self.viewport_height = int(viewport_height)
        self.min_dwell = min_dwell
        self.max_dwell = max_dwell
        self.row_tol = row_tol
        self.intro = intro

    def generate_scenario(
        self,
        blocks: Sequence[Block],
        input: str,
        total_duration: float,
        fade_duration: float = 0.0,
        outro_duration: float = 0.0,
    ) -> Scenario:
        """Plan a single-slide scenario; raises :class:`DetectionError` without blocks."""
        slide = self.plan_slide(
            blocks, 1, input, total_duration, fade_duration, outro_duration
        )
        return Scenario(slides=[slide])

    def plan_slide(
        self,
        blocks: Sequence[Block],
        slide_id: int,
        input: str,
        total_duration: float,
        fade_duration: float = 0.0,
        outro_duration: float = 0.0,
    ) -> Slide:
        if not blocks:
            raise DetectionError("no blocks detected")
        ordered = order_blocks(blocks, self.row_tol)
        dwell = self.dwell_time(total_duration, len(ordered), fade_duration, outro_duration)
        keyframes = self.keyframes(ordered, dwell, total_duration, fade_duration, outro_duration)
        return Slide(id=slide_id, input=input, duration=total_duration, keyframes=keyframes)

    def dwell_time(
        self,
        total_duration: float,
        count: int,
        fade_duration: float = 0.0,
        outro_duration: float = 0.0,
    ) -> float:
        """Seconds spent on each of *count* blocks."""
        available = total_duration - (self.intro + outro_duration + fade_duration)
        if available <= 0:
            available = total_duration
        dwell = available / max(1, count)
        return max(self.min_dwell, min(self.max_dwell, dwell))

    def keyframes(
        self,
        ordered: Sequence[Block],
        dwell: float,
        total_duration: float,
        fade_duration: float = 0.0,
        outro_duration: float = 0.0,
    ) -> List[Keyframe]:
        vw, vh = self.viewport_width, self.viewport_height
        fade_start = max(0.0, total_duration - fade_duration)
        out = [full_view(0.0, vw, vh)]
        cursor = self.intro
        for i, block in enumerate(ordered, start=1):
            rect = Rect.from_box(block.rect)
            out.append(
                Keyframe(
                    time=min(cursor, fade_start),
                    focus=f"region_{i}",
                    rect=rect,
                    zoom=self.fit_zoom(rect),
                )
            )
            cursor += dwell
        last = out[-1]
        hold = max(cursor, total_duration - fade_duration - outro_duration)
        out.append(
            Keyframe(
                time=min(hold, fade_start),
                focus="outro_stable",
                rect=last.rect,
                zoom=last.zoom,
            )
        )
        out.append(full_view(fade_start, vw, vh))
        out.append(full_view(max(fade_start, total_duration), vw, vh))
        return out

    def fit_zoom(self, rect: Rect) -> float:
        """Zoom that fits *rect* into 90% of the viewport, within [1, 3]."""
        if rect.w <= 0 or rect.h <= 0:
            return 1.0
        scale_x = self.viewport_width * VIEWPORT_FILL / rect.w
        scale_y = self.viewport_height * VIEWPORT_FILL / rect.h
        return max(ZOOM_MIN, min(ZOOM_MAX, min(scale_x, scale_y)))


def fallback_slide(
    slide_id: int, input: str, duration: float, width: int, height: int
) -> Slide:
    """Slide with a single full-view keyframe, used when a page has no blocks."""
    return Slide(
        id=slide_id,
        input=input,
        duration=duration,
        keyframes=[full_view(0.0, width, height)],
    )


def retime_slide(
    slide: Slide,
    duration: float,
    fade_duration: float,
    outro_duration: float,
    width: int,
    height: int,
) -> List[Keyframe]:
    """Fit an authored slide's keyframes to the segment's actual duration.

    Times are scaled by ``duration / slide.duration``. When there is room
    before the transition the camera is frozen at ``zoom_out_start``, returns
    to full view when the transition starts and holds full view through it.
    """
    scale = duration / slide.duration if slide.duration > 0 else 1.0
    scaled = [replace(kf, time=kf.time * scale) for kf in slide.keyframes]

    fade_start = duration - fade_duration
    zoom_out_start = fade_start - outro_duration
    if zoom_out_start <= 0:
        return sorted(scaled, key=lambda kf: kf.time)

    scaled.sort(key=lambda kf: kf.time)
    last_rect = Rect.full(width, height)
    last_zoom = 1.0
    kept: List[Keyframe] = []
    for kf in scaled:
        if kf.time > zoom_out_start:
            break
        kept.append(kf)
        last_rect, last_zoom = kf.rect, kf.zoom
    kept.append(Keyframe(zoom_out_start, "zoom_out_start", last_rect, last_zoom))
    kept.append(full_view(fade_start, width, height))
    kept.append(full_view(duration, width, height))
    return sorted(kept, key=lambda kf: kf.time)
