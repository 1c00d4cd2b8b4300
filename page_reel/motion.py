"""Camera motion from keyframes.

Two consumers share the same keyframe semantics: :func:`interpolate_keyframes`
evaluates an eased pose at an arbitrary time (used by the preview), and the
``*_expression`` builders emit piecewise-linear ffmpeg ``zoompan``
expressions that are evaluated per output frame ``on`` without state.
"""
from __future__ import annotations

from dataclasses import dataclass
from typing import Callable, List, Sequence, Tuple

from .scenario import Keyframe


@dataclass(frozen=True)
class CameraState:
    x: float = 0.0
    y: float = 0.0
    zoom: float = 1.0


@dataclass(frozen=True)
class Segment:
    """Linear ramp from ``v0`` to ``v1`` over frames ``[start_frame, end_frame)``."""

    start_frame: int
    end_frame: int
    v0: float
    v1: float


@dataclass(frozen=True)
class Hold:
    """Constant values before the first and from the last keyframe on."""

    first_frame: int
    first_value: float
    last_frame: int
    last_value: float


def ease_in_out_cubic(t: float) -> float:
    """Cubic ease-in-out for t in [0,1]."""
    if t < 0.5:
        return 4 * t * t * t
    return 1 - (-2 * t + 2) ** 3 / 2


def _lerp(a: float, b: float, t: float) -> float:
    return a + (b - a) * t


def _state(kf: Keyframe) -> CameraState:
    cx, cy = kf.rect.center
    return CameraState(float(cx), float(cy), kf.zoom)


def interpolate_keyframes(keyframes: Sequence[Keyframe], t: float) -> CameraState:
    """Eased camera pose at time *t* (seconds)."""
    if not keyframes:
        return CameraState(0.0, 0.0, 1.0)
    if t <= keyframes[0].time:
        return _state(keyframes[0])
    if t >= keyframes[-1].time:
        return _state(keyframes[-1])

    prev, nxt = keyframes[0], keyframes[-1]
    for a, b in zip(keyframes, keyframes[1:]):
        if a.time <= t < b.time:
            prev, nxt = a, b
            break
    span = nxt.time - prev.time
    if span == 0:
        span = 0.001
    p = ease_in_out_cubic((t - prev.time) / span)
    s0, s1 = _state(prev), _state(nxt)
    return CameraState(
        _lerp(s0.x, s1.x, p),
        _lerp(s0.y, s1.y, p),
        _lerp(s0.zoom, s1.zoom, p),
    )


def _frame(time: float, fps: int) -> int:
    return int(time * fps)


def _segments(
    keyframes: Sequence[Keyframe], fps: int, value: Callable[[Keyframe], float]
) -> Tuple[List[Segment], Hold]:
    segments: List[Segment] = []
    for a, b in zip(keyframes, keyframes[1:]):
        start, end = _frame(a.time, fps), _frame(b.time, fps)
        if end <= start:
            continue
        segments.append(Segment(start, end, value(a), value(b)))
    first, last = keyframes[0], keyframes[-1]
    hold = Hold(_frame(first.time, fps), value(first), _frame(last.time, fps), value(last))
    return segments, hold


def _axis_value(axis: str) -> Callable[[Keyframe], float]:
    if axis not in ("x", "y"):
        raise ValueError(f"axis must be 'x' or 'y' (got {axis!r})")
    idx = 0 if axis == "x" else 1
    return lambda kf: float(kf.rect.center[idx])


def zoom_segments(keyframes: Sequence[Keyframe], fps: int) -> Tuple[List[Segment], Hold]:
    return _segments(keyframes, fps, lambda kf: float(kf.zoom))


def center_segments(
    keyframes: Sequence[Keyframe], fps: int, axis: str
) -> Tuple[List[Segment], Hold]:
    return _segments(keyframes, fps, _axis_value(axis))


def evaluate_segments(segments: Sequence[Segment], hold: Hold, frame: int) -> float:
    """Python rendition of the expression built from *segments*."""
    value = 0.0
    for seg in segments:
        if seg.start_frame <= frame <= seg.end_frame - 1:
            value += seg.v0 + (frame - seg.start_frame) * (seg.v1 - seg.v0) / (
                seg.end_frame - seg.start_frame
            )
    if frame >= hold.last_frame:
        value += hold.last_value
    if hold.first_frame > 0 and frame < hold.first_frame:
        value += hold.first_value
    return value


def _num(v: float) -> str:
    return f"{v:.6f}"


def _piecewise(
    segments: Sequence[Segment],
    hold: Hold,
    wrap: Callable[[str], str],
) -> str:
    parts = []
    if hold.first_frame > 0:
        parts.append(f"lt(on,{hold.first_frame})*{wrap(_num(hold.first_value))}")
    for seg in segments:
        n = seg.end_frame - seg.start_frame
        ramp = (
            f"{_num(seg.v0)}+(on-{seg.start_frame})*"
            f"({_num(seg.v1)}-{_num(seg.v0)})/({n})"
        )
        parts.append(f"between(on,{seg.start_frame},{seg.end_frame - 1})*{wrap(ramp)}")
    parts.append(f"gte(on,{hold.last_frame})*{wrap(_num(hold.last_value))}")
    return "+".join(parts)


def zoom_expression(keyframes: Sequence[Keyframe], fps: int) -> str:
    """Piecewise-linear zoom as an ffmpeg expression of the output frame ``on``."""
    if not keyframes:
        return "1"
    if len(keyframes) == 1:
        return _num(keyframes[0].zoom)
    segments, hold = zoom_segments(keyframes, fps)
    return _piecewise(segments, hold, lambda e: f"({e})")


def pan_expression(
    keyframes: Sequence[Keyframe],
    fps: int,
    dimension: int,
    axis: str,
) -> str:
    """Top-left crop offset along *axis* keeping the keyframe centre in view.

    Each term is ``centre - (dimension/zoom)/2``; ``zoom`` is the zoompan
    variable, so pan follows the zoom of the same frame.
    """
    if not keyframes:
        return "0"
    half = f"({dimension}/zoom)/2"
    if len(keyframes) == 1:
        c = _axis_value(axis)(keyframes[0])
        return f"{_num(c)}-{half}"
    segments, hold = center_segments(keyframes, fps, axis)
    return _piecewise(segments, hold, lambda e: f"({e}-{half})")


def pan_at(
    keyframes: Sequence[Keyframe], fps: int, dimension: int, axis: str, frame: int
) -> float:
    """Evaluate :func:`pan_expression` for one output frame."""
    if not keyframes:
        return 0.0
    z_segments, z_hold = zoom_segments(keyframes, fps)
    c_segments, c_hold = center_segments(keyframes, fps, axis)
    if len(keyframes) == 1:
        zoom = keyframes[0].zoom
        centre = c_hold.last_value
    else:
        zoom = evaluate_segments(z_segments, z_hold, frame)
        centre = evaluate_segments(c_segments, c_hold, frame)
    return centre - (dimension / zoom) / 2


def zoompan_filter(
    keyframes: Sequence[Keyframe],
    duration: float,
    fps: int,
    width: int,
    height: int,
    canvas: Tuple[int, int],
) -> str:
    """``zoompan`` filter producing ``width``x``height`` frames for *duration*.

    Keyframe rectangles are expected in *canvas* pixels (the supersampled
    input of the filter).
    """
    if not keyframes:
        return ""
    frames = max(1, int(duration * fps))
    z = zoom_expression(keyframes, fps)
    x = pan_expression(keyframes, fps, canvas[0], "x")
    y = pan_expression(keyframes, fps, canvas[1], "y")
    return f"zoompan=z='{z}':x='{x}':y='{y}':d={frames}:s={width}x{height}:fps={fps}"


def debug_box_filter(keyframes: Sequence[Keyframe], width: int, height: int) -> str:
    """Static ``drawbox`` outlines of every keyframe target on the canvas.

    Placed before ``zoompan``, so the boxes are burnt into the canvas and
    move with it. Full-frame targets and repeated rectangles are skipped.
    """
    boxes = []
    seen = set()
    for kf in keyframes:
        x = max(0, min(int(kf.rect.x), width - 1))
        y = max(0, min(int(kf.rect.y), height - 1))
        w = max(1, min(int(kf.rect.w), width - x))
        h = max(1, min(int(kf.rect.h), height - y))
        if kf.focus == "full_view" or (x, y, w, h) in seen or (w >= width and h >= height):
            continue
        seen.add((x, y, w, h))
        boxes.append(f"drawbox=x={x}:y={y}:w={w}:h={h}:color=red:t=5")
    return ",".join(boxes)
