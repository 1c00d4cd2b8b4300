"""Scenario data model and YAML persistence.

A scenario is the persisted camera plan: one slide per page, each slide an
ordered list of keyframes. The on-disk layout is::

    version: "1.0"
    slides:
      - id: 1
        input: slide_1.png
        duration: 5.0
        keyframes:
          - time: 0.0
            focus: full_view
            rect: {x: 0, y: 0, w: 1280, h: 720}
            zoom: 1.0
"""
from __future__ import annotations

import os
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Dict, List, Optional, Tuple

import yaml

from .errors import ConfigError

SCENARIO_VERSION = "1.0"


@dataclass(frozen=True)
class Rect:
    x: int = 0
    y: int = 0
    w: int = 0
    h: int = 0

    @property
    def center(self) -> Tuple[int, int]:
        return (self.x + self.w // 2, self.y + self.h // 2)

    @classmethod
    def full(cls, width: int, height: int) -> "Rect":
        return cls(0, 0, int(width), int(height))

    @classmethod
    def from_box(cls, box: Tuple[int, int, int, int]) -> "Rect":
        x, y, w, h = box
        return cls(int(x), int(y), int(w), int(h))


@dataclass(frozen=True)
class Keyframe:
    time: float
    focus: str
    rect: Rect
    zoom: float = 1.0


@dataclass
class Slide:
    id: int
    input: str
    duration: float
    keyframes: List[Keyframe] = field(default_factory=list)


@dataclass
class Scenario:
    version: str = SCENARIO_VERSION
    slides: List[Slide] = field(default_factory=list)


def full_view(time: float, width: int, height: int) -> Keyframe:
    """Keyframe showing the whole frame at zoom 1.0."""
    return Keyframe(time=time, focus="full_view", rect=Rect.full(width, height), zoom=1.0)


def scenario_to_dict(scenario: Scenario) -> Dict[str, Any]:
    return {
        "version": scenario.version,
        "slides": [
            {
                "id": int(slide.id),
                "input": slide.input,
                "duration": float(slide.duration),
                "keyframes": [
                    {
                        "time": float(kf.time),
                        "focus": kf.focus,
                        "rect": {
                            "x": int(kf.rect.x),
                            "y": int(kf.rect.y),
                            "w": int(kf.rect.w),
                            "h": int(kf.rect.h),
                        },
                        "zoom": float(kf.zoom),
                    }
                    for kf in slide.keyframes
                ],
            }
            for slide in scenario.slides
        ],
    }


def _mapping(value: Any, what: str) -> Dict[str, Any]:
    if value is None:
        return {}
    if not isinstance(value, dict):
        raise ConfigError(f"scenario: {what} must be a mapping")
    return value


def scenario_from_dict(data: Any) -> Scenario:
    data = _mapping(data, "document")
    slides: List[Slide] = []
    for raw in data.get("slides") or []:
        raw = _mapping(raw, "slide")
        keyframes: List[Keyframe] = []
        for rkf in raw.get("keyframes") or []:
            rkf = _mapping(rkf, "keyframe")
            rr = _mapping(rkf.get("rect"), "rect")
            try:
                keyframes.append(
                    Keyframe(
                        time=float(rkf.get("time", 0.0)),
                        focus=str(rkf.get("focus", "")),
                        rect=Rect(
                            int(rr.get("x", 0)),
                            int(rr.get("y", 0)),
                            int(rr.get("w", 0)),
                            int(rr.get("h", 0)),
                        ),
                        zoom=float(rkf.get("zoom", 1.0)),
                    )
                )
            except (TypeError, ValueError) as e:
                raise ConfigError(f"scenario: bad keyframe {rkf!r}") from e
        try:
            slides.append(
                Slide(
                    id=int(raw.get("id", len(slides) + 1)),
                    input=str(raw.get("input", "")),
                    duration=float(raw.get("duration", 0.0)),
                    keyframes=keyframes,
                )
            )
        except (TypeError, ValueError) as e:
            raise ConfigError(f"scenario: bad slide {raw.get('id')!r}") from e
    return Scenario(version=str(data.get("version", SCENARIO_VERSION)), slides=slides)


def write_scenario(scenario: Scenario, path: str) -> str:
    """Write *scenario* to *path* as YAML and return the path."""
    parent = os.path.dirname(path)
    if parent:
        os.makedirs(parent, exist_ok=True)
    with open(path, "w", encoding="utf8") as fh:
        yaml.safe_dump(
            scenario_to_dict(scenario),
            fh,
            sort_keys=False,
            default_flow_style=False,
            allow_unicode=True,
        )
    return path


def read_scenario(path: str) -> Scenario:
    """Load a scenario written by :func:`write_scenario`."""
    with open(path, "r", encoding="utf8") as fh:
        try:
            data = yaml.safe_load(fh)
        except yaml.YAMLError as e:
            raise ConfigError(f"scenario {path}: {e}") from e
    return scenario_from_dict(data)


def scenario_path(directory: str, now: Optional[datetime] = None) -> str:
    """Timestamped ``scenario_<date>_<time>.yaml`` path inside *directory*."""
    ts = (now or datetime.now()).strftime("%Y-%m-%d_%H-%M-%S")
    return os.path.join(directory, f"scenario_{ts}.yaml")
