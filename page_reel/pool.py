"""Reusable frame buffers keyed by array shape."""
from __future__ import annotations

import threading
from typing import Dict, List, Tuple

import numpy as np

Shape = Tuple[int, ...]


class BufferPool:
    """Thread-safe free lists of ``numpy`` arrays.

    Arrays are only handed back to a caller asking for the exact same
    ``(shape, dtype)``; a buffer must be released exactly once.
    """

    def __init__(self, dtype=np.uint8, max_per_shape: int = 8):
        self.dtype = np.dtype(dtype)
        self.max_per_shape = max_per_shape
        self._free: Dict[Tuple[Shape, str], List[np.ndarray]] = {}
        self._out: Dict[int, np.ndarray] = {}
        self._lock = threading.Lock()

    def _key(self, shape: Shape) -> Tuple[Shape, str]:
        return (tuple(int(s) for s in shape), self.dtype.str)

    def checkout(self, shape: Shape) -> np.ndarray:
        """Return a buffer of *shape*; its contents are undefined."""
        key = self._key(shape)
        with self._lock:
            free = self._free.get(key)
            buf = free.pop() if free else None
            if buf is None:
                buf = np.empty(key[0], dtype=self.dtype)
            self._out[id(buf)] = buf
        return buf

    def release(self, buf: np.ndarray) -> None:
        with self._lock:
            if self._out.pop(id(buf), None) is None:
                raise ValueError("buffer was not checked out from this pool")
            free = self._free.setdefault(self._key(buf.shape), [])
            if len(free) < self.max_per_shape:
                free.append(buf)

    def fill(self, shape: Shape, src: np.ndarray) -> np.ndarray:
        """Checkout a buffer of *shape* and copy *src* into it."""
        buf = self.checkout(shape)
        try:
            np.copyto(buf, src, casting="unsafe")
        except ValueError:
            self.release(buf)
            raise
        return buf

    def owns(self, buf: np.ndarray) -> bool:
        with self._lock:
            return id(buf) in self._out

    @property
    def outstanding(self) -> int:
        with self._lock:
            return len(self._out)


FRAME_POOL = BufferPool()
