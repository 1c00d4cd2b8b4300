"""Exception hierarchy for page_reel."""
from __future__ import annotations


class ReelError(Exception):
    """Base class for all page_reel failures."""


class ConfigError(ReelError, ValueError):
    """Invalid configuration rejected before any work starts."""


class DetectionError(ReelError):
    """No regions of interest could be found on a page."""


class RenderError(ReelError):
    """A single page could not be rasterized."""

    def __init__(self, page: int, message: str):
        super().__init__(f"page {page}: {message}")
        self.page = page


class EncodeError(ReelError):
    """A single segment could not be encoded."""

    def __init__(self, page: int, message: str, output: str = ""):
        super().__init__(f"segment {page}: {message}")
        self.page = page
        self.output = output


class AssemblyError(ReelError):
    """Final concatenation failed or a segment is missing."""

    def __init__(self, message: str, output: str = ""):
        text = f"{message}\n{output}" if output else message
        super().__init__(text)
        self.output = output


class CancellationError(ReelError):
    """The run was stopped through its cancel token."""
