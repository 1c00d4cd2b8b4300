"""Helpers to resolve the ffmpeg executable and query its capabilities.

Discovery honors an explicit CLI argument, the ``FFMPEG_BINARY``
environment variable, a search on ``PATH`` and finally the binary bundled
with imageio-ffmpeg.
"""
from __future__ import annotations

import functools
import logging
import os
import shutil
import subprocess
from typing import Optional

import imageio_ffmpeg


def _validate_binary(path: str | None) -> Optional[str]:
    """Return *path* if it points to an existing executable."""
    if not path:
        return None
    if os.path.isfile(path) or shutil.which(path):
        return path
    return None


def _bundled_ffmpeg() -> Optional[str]:
    try:
        return imageio_ffmpeg.get_ffmpeg_exe()
    except RuntimeError:
        return None


def resolve_ffmpeg(cli_path: str | None = None) -> Optional[str]:
    """Resolve path to the ``ffmpeg`` executable.

    Resolution order:
    1. explicit ``cli_path`` argument (``--ffmpeg``)
    2. ``FFMPEG_BINARY`` environment variable
    3. ``ffmpeg`` discovered on ``PATH``
    4. the executable shipped with imageio-ffmpeg
    The returned path is validated and stored in ``os.environ``. Returns
    ``None`` if no candidate is found.
    """
    candidates = [
        cli_path,
        os.environ.get("FFMPEG_BINARY"),
        shutil.which("ffmpeg"),
    ]
    for cand in candidates:
        path = _validate_binary(cand)
        if path:
            os.environ["FFMPEG_BINARY"] = path
            return path
    path = _validate_binary(_bundled_ffmpeg())
    if path:
        os.environ["FFMPEG_BINARY"] = path
    return path


@functools.lru_cache(maxsize=None)
def _listing(ffmpeg: str, flag: str) -> str:
    try:
        proc = subprocess.run(
            [ffmpeg, "-hide_banner", flag],
            capture_output=True,
            text=True,
            timeout=30,
        )
    except (OSError, subprocess.TimeoutExpired) as e:
        logging.warning("could not run %s %s: %s", ffmpeg, flag, e)
        return ""
    return proc.stdout + proc.stderr


def check_filter_support(name: str, ffmpeg: str | None = None) -> bool:
    """Return True when the local ffmpeg lists filter *name*."""
    ffmpeg = ffmpeg or resolve_ffmpeg()
    if not ffmpeg:
        return False
    for line in _listing(ffmpeg, "-filters").splitlines():
        fields = line.split()
        if len(fields) >= 2 and fields[1] == name:
            return True
    return False


def best_h264_encoder(ffmpeg: str | None = None) -> str:
    """Prefer VideoToolbox, then NVENC, falling back to libx264."""
    ffmpeg = ffmpeg or resolve_ffmpeg()
    listing = _listing(ffmpeg, "-encoders") if ffmpeg else ""
    for name in ("h264_videotoolbox", "h264_nvenc"):
        if name in listing:
            return name
    return "libx264"
