import numpy as np
import pytest

pytest.importorskip("moviepy")

from page_reel.motion import CameraState
from page_reel.preview import crop_window, make_preview_clip, render_view
from page_reel.scenario import Keyframe, Rect, full_view


def _page(w=400, h=200):
    page = np.zeros((h, w, 4), dtype=np.uint8)
    page[..., 3] = 255
    page[:, w // 2 :, 0] = 255
    return page


def test_crop_window_clamps_to_page():
    assert crop_window((400, 200), CameraState(200, 100, 1.0)) == (0, 0, 400, 200)
    assert crop_window((400, 200), CameraState(200, 100, 2.0)) == (100, 50, 200, 100)
    assert crop_window((400, 200), CameraState(0, 0, 2.0)) == (0, 0, 200, 100)
    assert crop_window((400, 200), CameraState(400, 200, 4.0)) == (300, 150, 100, 50)


def test_render_view_letterboxes():
    frame = render_view(_page(), CameraState(200, 100, 1.0), (320, 320))
    assert frame.shape == (320, 320, 3)
    assert frame.dtype == np.uint8
    # 2:1 page into a square frame leaves bars top and bottom
    assert frame[0].max() == 0
    assert frame[160, 300, 0] == 255


def test_preview_clip_follows_keyframes():
    kfs = [
        full_view(0.0, 400, 200),
        Keyframe(1.0, "region_1", Rect(200, 0, 200, 200), 2.0),
    ]
    clip = make_preview_clip(_page(), kfs, duration=1.0, size=(160, 80), fps=10)
    assert clip.duration == 1.0
    start = clip.get_frame(0)
    end = clip.get_frame(0.99)
    assert start.shape == (80, 160, 3)
    assert start[40, 10, 0] == 0
    # zoomed onto the red right half
    assert end[40, 80, 0] == 255
