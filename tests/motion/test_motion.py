import pytest

from page_reel import motion
from page_reel.scenario import Keyframe, Rect, full_view

FPS = 30


def _kfs():
    return [
        full_view(0.0, 1000, 600),
        Keyframe(1.0, "region_1", Rect(100, 100, 200, 100), 2.0),
        Keyframe(2.0, "region_2", Rect(600, 300, 200, 200), 1.5),
        full_view(3.0, 1000, 600),
    ]


def _ffmpeg_eval(expr, frame, zoom=1.0):
    env = {
        "between": lambda x, a, b: float(a <= x <= b),
        "gte": lambda x, a: float(x >= a),
        "lt": lambda x, a: float(x < a),
        "on": frame,
        "zoom": zoom,
    }
    return eval(expr, {"__builtins__": {}}, env)


def test_ease_in_out_cubic():
    assert motion.ease_in_out_cubic(0.0) == 0.0
    assert motion.ease_in_out_cubic(1.0) == 1.0
    assert motion.ease_in_out_cubic(0.5) == pytest.approx(0.5)
    assert motion.ease_in_out_cubic(0.25) == pytest.approx(0.0625)


def test_interpolate_clamps_and_eases():
    kfs = _kfs()
    assert motion.interpolate_keyframes([], 1.0) == motion.CameraState(0.0, 0.0, 1.0)
    assert motion.interpolate_keyframes(kfs, -1.0) == motion.CameraState(500.0, 300.0, 1.0)
    assert motion.interpolate_keyframes(kfs, 9.0) == motion.CameraState(500.0, 300.0, 1.0)
    start = motion.interpolate_keyframes(kfs, 1.0)
    assert (start.x, start.y, start.zoom) == (200.0, 150.0, 2.0)
    mid = motion.interpolate_keyframes(kfs, 1.5)
    assert mid.x == pytest.approx(450.0)
    assert mid.zoom == pytest.approx(1.75)
    quarter = motion.interpolate_keyframes(kfs, 1.25)
    assert quarter.zoom == pytest.approx(2.0 - 0.5 * 0.0625)


def test_zero_length_span():
    kfs = [full_view(0.0, 10, 10), Keyframe(1.0, "a", Rect(0, 0, 4, 4), 2.0),
           Keyframe(1.0, "b", Rect(6, 6, 4, 4), 3.0)]
    assert motion.interpolate_keyframes(kfs, 1.0).zoom == 3.0


def test_zoom_expression_matches_segments_per_frame():
    kfs = _kfs()
    expr = motion.zoom_expression(kfs, FPS)
    segments, hold = motion.zoom_segments(kfs, FPS)
    for frame in range(0, 3 * FPS + 10):
        expected = motion.evaluate_segments(segments, hold, frame)
        assert _ffmpeg_eval(expr, frame) == pytest.approx(expected)
    assert motion.evaluate_segments(segments, hold, 30) == pytest.approx(2.0)
    assert motion.evaluate_segments(segments, hold, 45) == pytest.approx(1.75)
    assert motion.evaluate_segments(segments, hold, 500) == pytest.approx(1.0)


def test_expression_terms():
    expr = motion.zoom_expression(_kfs(), FPS)
    assert "between(on,0,29)" in expr
    assert "between(on,60,89)" in expr
    assert expr.endswith("gte(on,90)*(1.000000)")
    assert "lt(on" not in expr


def test_lead_in_when_first_keyframe_is_late():
    kfs = [Keyframe(1.0, "a", Rect(0, 0, 10, 10), 2.0), full_view(2.0, 100, 100)]
    expr = motion.zoom_expression(kfs, FPS)
    assert expr.startswith("lt(on,30)*(2.000000)")
    assert _ffmpeg_eval(expr, 0) == pytest.approx(2.0)


def test_single_keyframe_is_constant():
    kfs = [Keyframe(0.0, "a", Rect(0, 0, 100, 50), 1.25)]
    assert motion.zoom_expression(kfs, FPS) == "1.250000"
    assert motion.pan_expression(kfs, FPS, 200, "x") == "50.000000-(200/zoom)/2"
    assert motion.zoom_expression([], FPS) == "1"
    assert motion.pan_expression([], FPS, 200, "y") == "0"


def test_pan_expression_uses_same_zoom():
    kfs = _kfs()
    x_expr = motion.pan_expression(kfs, FPS, 2000, "x")
    z_expr = motion.zoom_expression(kfs, FPS)
    for frame in (0, 15, 30, 44, 75, 90, 120):
        zoom = _ffmpeg_eval(z_expr, frame)
        got = _ffmpeg_eval(x_expr, frame, zoom=zoom)
        assert got == pytest.approx(motion.pan_at(kfs, FPS, 2000, "x", frame))


def test_pan_at_full_view_is_origin():
    kfs = _kfs()
    assert motion.pan_at(kfs, FPS, 1000, "x", 0) == pytest.approx(0.0)
    assert motion.pan_at(kfs, FPS, 600, "y", 200) == pytest.approx(0.0)


def test_bad_axis():
    with pytest.raises(ValueError):
        motion.center_segments(_kfs(), FPS, "z")


def test_zoompan_filter():
    f = motion.zoompan_filter(_kfs(), 3.0, FPS, 640, 360, (1280, 720))
    assert f.startswith("zoompan=z='")
    assert f.endswith(":d=90:s=640x360:fps=30")
    assert "(1280/zoom)/2" in f and "(720/zoom)/2" in f
    assert motion.zoompan_filter([], 3.0, FPS, 640, 360, (1280, 720)) == ""
    short = motion.zoompan_filter(_kfs(), 0.001, FPS, 640, 360, (1280, 720))
    assert ":d=1:" in short


def test_debug_box_filter_is_static():
    kfs = _kfs() + [Keyframe(2.5, "region_2", Rect(600, 300, 200, 200), 1.5)]
    f = motion.debug_box_filter(kfs, 1000, 600)
    assert f.split(",") == [
        "drawbox=x=100:y=100:w=200:h=100:color=red:t=5",
        "drawbox=x=600:y=300:w=200:h=200:color=red:t=5",
    ]
    # drawbox knows no frame counter; only numeric constants may appear
    for box in f.split(","):
        for option in box[len("drawbox="):].split(":"):
            key, value = option.split("=")
            assert key in ("x", "y", "w", "h", "color", "t")
            assert value.isdigit() or key == "color"
    assert motion.debug_box_filter([], 1280, 720) == ""
    assert motion.debug_box_filter([full_view(0.0, 1280, 720)], 1280, 720) == ""


def test_debug_box_filter_clips_to_canvas():
    kf = Keyframe(0.0, "region_1", Rect(900, 500, 400, 400), 2.0)
    assert motion.debug_box_filter([kf], 1000, 600) == "drawbox=x=900:y=500:w=100:h=100:color=red:t=5"
