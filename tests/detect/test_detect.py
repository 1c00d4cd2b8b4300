import numpy as np
import pytest
from PIL import Image

from page_reel.detect import (
    Block,
    ContrastDetector,
    draw_blocks,
    get_detector,
    sobel_edges,
)
from page_reel.errors import ConfigError


def _square_page():
    img = np.zeros((200, 200), dtype=np.uint8)
    img[50:150, 50:150] = 255
    return img


def test_single_block_found():
    blocks = ContrastDetector().detect(_square_page())
    assert blocks
    best = max(blocks, key=lambda b: b.area)
    x, y, w, h = best.rect
    assert w >= 80 and h >= 80
    assert abs(x - 50) <= 8 and abs(y - 50) <= 8
    assert abs((x + w) - 150) <= 8 and abs((y + h) - 150) <= 8
    assert best.type == "unknown"
    assert best.confidence == pytest.approx(0.7)


def test_accepts_pil_and_rgba():
    arr = _square_page()
    rgba = np.dstack([arr, arr, arr, np.full_like(arr, 255)])
    det = ContrastDetector()
    assert det.detect(Image.fromarray(arr))
    assert det.detect(rgba)


def test_blank_page_has_no_blocks():
    assert ContrastDetector().detect(np.zeros((120, 160), dtype=np.uint8)) == []


def test_small_blobs_filtered():
    img = np.zeros((200, 200), dtype=np.uint8)
    img[100:103, 100:103] = 255
    assert ContrastDetector(min_block_area=5000).detect(img) == []


def test_sobel_skips_border():
    img = np.zeros((20, 20), dtype=np.uint8)
    img[:, 10:] = 255
    edges = sobel_edges(img, 30.0)
    assert edges[0].max() == 0 and edges[-1].max() == 0
    assert edges[:, 0].max() == 0 and edges[:, -1].max() == 0
    assert edges[5, 9] == 255


def test_registry():
    assert isinstance(get_detector("contrast"), ContrastDetector)
    assert isinstance(get_detector(""), ContrastDetector)
    det = get_detector("contrast", min_block_area=42)
    assert det.min_block_area == 42
    for name in ("ocr", "ai"):
        with pytest.raises(NotImplementedError):
            get_detector(name)
    with pytest.raises(ConfigError):
        get_detector("yolo")


def test_draw_blocks_writes_file(tmp_path):
    out = tmp_path / "dbg.png"
    draw_blocks(_square_page(), [Block((50, 50, 100, 100))], str(out))
    assert out.exists()
    with Image.open(out) as img:
        assert img.size == (200, 200)
