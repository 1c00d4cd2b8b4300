"""Region of interest detection on rasterized pages."""
from __future__ import annotations

from dataclasses import dataclass
from typing import List, Tuple, Union

import cv2
import numpy as np
from PIL import Image

from .errors import ConfigError

Box = Tuple[int, int, int, int]
ImageLike = Union[Image.Image, np.ndarray]

KNOWN_DETECTORS = ("contrast", "ocr", "ai")
BUILT_DETECTORS = ("contrast",)


@dataclass(frozen=True)
class Block:
    """A detected rectangular region ``(x, y, w, h)`` in page pixels."""

    rect: Box
    type: str = "unknown"
    confidence: float = 0.7

    @property
    def area(self) -> int:
        return self.rect[2] * self.rect[3]


def to_gray(img: ImageLike) -> np.ndarray:
    """Return a ``uint8`` single channel copy of *img*."""
    if isinstance(img, Image.Image):
        return np.array(img.convert("L"))
    arr = np.asarray(img)
    if arr.ndim == 2:
        return arr.astype(np.uint8)
    if arr.shape[-1] == 4:
        return cv2.cvtColor(arr.astype(np.uint8), cv2.COLOR_RGBA2GRAY)
    return cv2.cvtColor(arr.astype(np.uint8), cv2.COLOR_RGB2GRAY)


def sobel_edges(gray: np.ndarray, threshold: float) -> np.ndarray:
    """Binarize the 3x3 Sobel gradient magnitude of *gray*."""
    src = gray.astype(np.float64)
    gx = cv2.Sobel(src, cv2.CV_64F, 1, 0, ksize=3)
    gy = cv2.Sobel(src, cv2.CV_64F, 0, 1, ksize=3)
    magnitude = np.sqrt(gx * gx + gy * gy)
    edges = np.where(magnitude > threshold, 255, 0).astype(np.uint8)
    # the kernel is not evaluated on the outermost pixel ring
    edges[0, :] = 0
    edges[-1, :] = 0
    edges[:, 0] = 0
    edges[:, -1] = 0
    return edges


def dilate_mask(mask: np.ndarray, kernel_size: int = 5, iterations: int = 2) -> np.ndarray:
    """Max-filter *mask* with a ``kernel_size`` square window."""
    if kernel_size <= 1 or iterations <= 0:
        return mask.copy()
    kernel = np.ones((kernel_size, kernel_size), np.uint8)
    return cv2.dilate(mask, kernel, iterations=iterations)


def component_boxes(mask: np.ndarray) -> List[Box]:
    """Bounding boxes of 4-connected "on" regions in *mask*."""
    binary = (mask > 128).astype(np.uint8)
    num, _, stats, _ = cv2.connectedComponentsWithStats(binary, connectivity=4)
    boxes: List[Box] = []
    for i in range(1, num):
        x, y, w, h, _ = stats[i]
        boxes.append((int(x), int(y), int(w), int(h)))
    return boxes


class ContrastDetector:
    """Edge based region detector.

    Sobel edges are thickened by dilation so that nearby strokes (lines of
    text, figure outlines) merge into solid blobs, whose bounding boxes are
    reported as regions.
    """

    name = "contrast"

    def __init__(
        self,
        min_block_area: int = 500,
        edge_threshold: float = 30.0,
        kernel_size: int = 5,
        iterations: int = 2,
    ):
        self.min_block_area = min_block_area
        self.edge_threshold = edge_threshold
        self.kernel_size = kernel_size
        self.iterations = iterations

    def detect(self, img: ImageLike) -> List[Block]:
        gray = to_gray(img)
        if gray.shape[0] < 3 or gray.shape[1] < 3:
            return []
        edges = sobel_edges(gray, self.edge_threshold)
        dilated = dilate_mask(edges, self.kernel_size, self.iterations)
        blocks: List[Block] = []
        for box in component_boxes(dilated):
            if box[2] * box[3] >= self.min_block_area:
                blocks.append(Block(rect=box, type="unknown", confidence=0.7))
        return blocks


def get_detector(variant: str = "contrast", **options) -> ContrastDetector:
    """Return the detector registered under *variant*.

    ``"contrast"`` (also the empty string) is the only built variant.
    ``"ocr"`` and ``"ai"`` are recognised but raise ``NotImplementedError``;
    any other name raises :class:`ConfigError`.
    """
    if variant in ("contrast", ""):
        return ContrastDetector(**options)
    if variant == "ocr":
        raise NotImplementedError("OCR detector not yet implemented")
    if variant == "ai":
        raise NotImplementedError("AI detector not yet implemented")
    raise ConfigError(f"unknown detector variant: {variant}")


def draw_blocks(img: ImageLike, blocks: List[Block], out_path: str) -> str:
    """Write a copy of *img* with numbered block outlines to *out_path*."""
    if isinstance(img, Image.Image):
        vis = np.array(img.convert("RGB"))
    else:
        arr = np.asarray(img)
        if arr.ndim == 2:
            vis = cv2.cvtColor(arr.astype(np.uint8), cv2.COLOR_GRAY2RGB)
        else:
            vis = arr[:, :, :3].astype(np.uint8).copy()
    for i, block in enumerate(blocks):
        x, y, w, h = block.rect
        cv2.rectangle(vis, (x, y), (x + w, y + h), (255, 0, 0), 3)
        cv2.putText(
            vis,
            str(i + 1),
            (x + 10, y + 40),
            cv2.FONT_HERSHEY_SIMPLEX,
            1,
            (0, 0, 255),
            2,
        )
    cv2.imwrite(out_path, cv2.cvtColor(vis, cv2.COLOR_RGB2BGR))
    return out_path
