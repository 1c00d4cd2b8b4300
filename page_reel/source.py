"""Page sources: anything that turns a page index into an RGBA bitmap."""
from __future__ import annotations

import os
from typing import List, Optional, Tuple

import numpy as np
from PIL import Image

from .config import IMAGE_EXTS
from .errors import ConfigError, RenderError
from .pool import FRAME_POOL, BufferPool


def list_images(folder: str) -> List[str]:
    """Image files directly inside *folder*, sorted by name."""
    return sorted(
        os.path.join(folder, name)
        for name in os.listdir(folder)
        if os.path.splitext(name)[1].lower() in IMAGE_EXTS
        and os.path.isfile(os.path.join(folder, name))
    )


class ImageSource:
    """Pages backed by image files (a directory or a single file).

    Images carry their own resolution, so ``dpi`` is accepted for protocol
    compatibility and ignored.
    """

    def __init__(self, path: str, pool: Optional[BufferPool] = None):
        if os.path.isdir(path):
            self.paths = list_images(path)
        elif os.path.isfile(path):
            self.paths = [path]
        else:
            raise FileNotFoundError(path)
        if not self.paths:
            raise ConfigError(f"no images found in {path}")
        self.pool = pool or FRAME_POOL

    def page_count(self) -> int:
        return len(self.paths)

    def _path(self, index: int) -> str:
        if not 0 <= index < len(self.paths):
            raise RenderError(index + 1, f"index out of range (0..{len(self.paths) - 1})")
        return self.paths[index]

    def page_dimensions(self, index: int) -> Tuple[int, int]:
        path = self._path(index)
        try:
            with Image.open(path) as img:
                return img.size
        except OSError as e:
            raise RenderError(index + 1, f"{path}: {e}") from e

    def render_page(self, index: int, dpi: int = 300) -> np.ndarray:
        """Decode page *index* into a pooled ``(H, W, 4)`` uint8 array."""
        path = self._path(index)
        try:
            with Image.open(path) as img:
                arr = np.asarray(img.convert("RGBA"))
        except OSError as e:
            raise RenderError(index + 1, f"{path}: {e}") from e
        return self.pool.fill(arr.shape, arr)

    def page_name(self, index: int) -> str:
        return os.path.basename(self._path(index))

    def close(self) -> None:
        self.paths = []
