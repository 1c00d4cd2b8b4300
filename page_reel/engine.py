"""Duration planning and the concurrent render/encode pipeline."""
from __future__ import annotations

import enum
import logging
import math
import os
import queue
import random
import tempfile
import threading
import time
from dataclasses import dataclass, replace
from datetime import datetime
from typing import Callable, List, Optional, Sequence, Tuple

from .cancel import CancelToken
from .config import DEFAULT_SIZE, ReelConfig, SegmentParams
from .detect import get_detector
from .director import Director, fallback_slide
from .effects import DefaultEffect, ScenarioEffect
from .errors import (
    AssemblyError,
    CancellationError,
    ConfigError,
    DetectionError,
    RenderError,
)
from .scenario import Scenario, Slide, write_scenario

VARIATION = 0.15
FADE_FLOOR = 1.1
VARIATION_SLACK = 1e-9
PLAN_ATTEMPTS = 500
DEFAULT_SLIDE_DURATION = 5.0
BENCHMARK_LOG = "benchmark.log"

_STOP = object()


class PipelineState(enum.Enum):
    INIT = "init"
    DURATION_PLAN = "duration_plan"
    SCENARIO_LOAD = "scenario_load"
    FADE_GUARD = "fade_guard"
    RENDER = "render"
    FINALIZE = "finalize"
    SUCCESS = "success"
    FAILED = "failed"
    CANCELLED = "cancelled"


def _random_walk(
    base: float, fade: float, page_count: int, rng: random.Random
) -> List[float]:
    durations = [base * (1 + rng.uniform(-VARIATION, VARIATION))]
    for _ in range(1, page_count):
        d = durations[-1] * (1 + rng.uniform(-VARIATION, VARIATION))
        if d < fade * FADE_FLOOR:
            d = fade * FADE_FLOOR
        durations.append(d)
    return durations


def _variation_excess(durations: Sequence[float], base: float) -> float:
    """How far the worst clip overshoots the allowed variation (0 when none)."""
    worst = abs(durations[0] / base - 1) if base > 0 else 0.0
    for a, b in zip(durations, durations[1:]):
        worst = max(worst, abs(b / a - 1))
    return max(0.0, worst - VARIATION)


def plan_durations(
    total: float, fade: float, page_count: int, rng: Optional[random.Random] = None
) -> List[float]:
    """Randomized clip lengths whose overlapped sum equals *total*.

    Each transition overlaps two clips by *fade* seconds, so the clips
    together last ``total + (page_count - 1) * fade``. After rescaling to
    that budget the first clip stays within 15% of the mean and every clip
    within 15% of its predecessor; the walk is redrawn until both hold,
    keeping the closest draw if none does within ``PLAN_ATTEMPTS``.
    """
    if page_count <= 0:
        return []
    rng = rng or random.Random()
    budget = total + max(0, page_count - 1) * fade
    base = budget / page_count

    best: Optional[List[float]] = None
    best_excess = math.inf
    for _ in range(PLAN_ATTEMPTS):
        durations = _random_walk(base, fade, page_count, rng)
        current = sum(durations)
        if current <= 0:
            return [base] * page_count
        scale = budget / current
        durations = [d * scale for d in durations]
        excess = _variation_excess(durations, base)
        if excess <= VARIATION_SLACK:
            return durations
        if excess < best_excess:
            best, best_excess = durations, excess
    logging.debug("duration plan exceeds variation by %.3f after %d draws", best_excess, PLAN_ATTEMPTS)
    return best


def _snap(duration: float, fps: int) -> float:
    return math.floor(duration * fps + 0.5) / fps


def scenario_durations(
    scenario: Scenario, page_count: int, total: float, fade: float, fps: int
) -> Tuple[List[float], float]:
    """Clip lengths taken from *scenario*, plus the resulting total.

    With a target *total* the authored lengths are scaled to fit it;
    otherwise the total follows from the scenario. Lengths are snapped to
    whole frames. Pages without a slide get the mean slide length.
    """
    if not scenario.slides:
        raise ConfigError("scenario has no slides")
    authored = [s.duration for s in scenario.slides[:page_count]]
    mean = sum(authored) / len(authored)
    durations = authored + [mean] * (page_count - len(authored))
    clips = sum(durations)
    overlap = max(0, page_count - 1) * fade
    if total > 0:
        if clips > 0:
            scale = (total + overlap) / clips
            logging.info("scenario scaled x%.3f to %.2fs of clips", scale, total + overlap)
            durations = [d * scale for d in durations]
    else:
        total = clips - overlap
    return [_snap(d, fps) for d in durations], total


def fade_guard(fade: float, durations: Sequence[float]) -> Tuple[float, bool]:
    """Shrink *fade* to half the shortest clip when it would not fit.

    Returns ``(fade, replan)``.
    """
    if not durations:
        return fade, False
    shortest = min(durations)
    if fade >= shortest:
        return shortest / 2.0, True
    return fade, False


def auto_fit_width(width: int, height: int, src_w: float, src_h: float) -> int:
    """Match the page aspect when the frame size was left at the default."""
    if (width, height) != DEFAULT_SIZE or src_w <= 0 or src_h <= 0:
        return width
    fitted = int(height * (src_w / src_h))
    if fitted % 2:
        fitted += 1
    return fitted


@dataclass(frozen=True)
class RenderPlan:
    """Everything the pipeline needs, fixed before the first worker starts."""

    width: int
    height: int
    fps: int
    dpi: int
    durations: Tuple[float, ...]
    fade_duration: float
    outro_duration: float
    total_duration: float
    transition: str = "fade"
    zoom_mode: str = "center"
    zoom_speed: float = 0.001
    audio_path: str = ""
    background_audio: str = ""
    background_volume: float = 0.3
    video_encoder: str = "libx264"
    quality: int = 23
    debug: bool = False

    @property
    def page_count(self) -> int:
        return len(self.durations)

    def segment_params(self, index: int) -> SegmentParams:
        return SegmentParams(
            width=self.width,
            height=self.height,
            fps=self.fps,
            duration=self.durations[index],
            fade_duration=self.fade_duration,
            outro_duration=self.outro_duration,
            zoom_mode=self.zoom_mode,
            zoom_speed=self.zoom_speed,
            page_index=index,
            debug=self.debug,
        )


def build_render_plan(
    config: ReelConfig,
    source,
    scenario: Optional[Scenario] = None,
    rng: Optional[random.Random] = None,
    on_state: Optional[Callable[[PipelineState], None]] = None,
) -> RenderPlan:
    """Plan durations, apply the fade guard and fit the frame width."""
    notify = on_state or (lambda state: None)
    n = source.page_count()
    if n == 0:
        raise ConfigError("source contains no pages")
    use_scenario = scenario is not None and bool(scenario.slides)

    notify(PipelineState.DURATION_PLAN)
    fade = config.fade_duration
    total = config.total_duration

    def plan(total: float, fade: float) -> Tuple[List[float], float]:
        if use_scenario:
            return scenario_durations(scenario, n, total, fade, config.fps)
        return plan_durations(total, fade, n, rng), total

    if use_scenario:
        notify(PipelineState.SCENARIO_LOAD)
    elif total <= 0:
        raise ConfigError("total duration must be positive without a scenario")
    durations, total = plan(total, fade)

    notify(PipelineState.FADE_GUARD)
    fade, replan = fade_guard(fade, durations)
    if replan:
        logging.warning("transition shortened to %.2fs because of a short clip", fade)
        durations, total = plan(total, fade)

    width = config.width
    try:
        src_w, src_h = source.page_dimensions(0)
        width = auto_fit_width(config.width, config.height, src_w, src_h)
    except RenderError as e:
        logging.warning("could not read page size, keeping %dpx width: %s", width, e)

    final_total = sum(durations) - max(0, n - 1) * fade
    return RenderPlan(
        width=width,
        height=config.height,
        fps=config.fps,
        dpi=config.dpi,
        durations=tuple(durations),
        fade_duration=fade,
        outro_duration=config.outro_duration,
        total_duration=final_total,
        transition=config.transition,
        zoom_mode=config.zoom_mode,
        zoom_speed=config.zoom_speed,
        audio_path=config.audio_path,
        background_audio=config.background_audio,
        background_volume=config.background_volume,
        video_encoder=config.video_encoder,
        quality=config.quality,
        debug=config.debug,
    )


def _release(source, frame) -> None:
    pool = getattr(source, "pool", None)
    if pool is not None and pool.owns(frame):
        pool.release(frame)


class VideoProject:
    """One run of the pipeline: plan, render and encode pages, assemble."""

    def __init__(
        self,
        config: ReelConfig,
        source,
        encoder,
        effect=None,
        scenario: Optional[Scenario] = None,
        token: Optional[CancelToken] = None,
        rng: Optional[random.Random] = None,
    ):
        self.config = config
        self.source = source
        self.encoder = encoder
        self.scenario = scenario
        if effect is None:
            effect = ScenarioEffect(scenario) if scenario is not None else DefaultEffect()
        self.effect = effect
        self.token = token or CancelToken()
        self.rng = rng
        self.state = PipelineState.INIT
        self.plan: Optional[RenderPlan] = None
        self.timings = {}
        self._done = 0
        self._lock = threading.Lock()

    def _enter(self, state: PipelineState) -> None:
        self.state = state
        logging.debug("pipeline: %s", state.name)

    def run(self) -> str:
        """Produce ``config.output_path``; returns it."""
        started = time.perf_counter()
        output = self.config.output_path
        assembling = False
        try:
            self.plan = build_render_plan(
                self.config, self.source, self.scenario, self.rng, self._enter
            )
            plan = self.plan
            logging.info(
                "pages: %d | %dx%d @ %d fps | total %.2fs",
                plan.page_count, plan.width, plan.height, plan.fps, plan.total_duration,
            )
            with tempfile.TemporaryDirectory(prefix="page_reel_") as work_dir:
                self._enter(PipelineState.RENDER)
                paths = self._run_stages(plan, work_dir)

                self._enter(PipelineState.FINALIZE)
                self.token.raise_if_cancelled()
                for i, p in enumerate(paths):
                    if not p:
                        raise AssemblyError(f"page {i + 1} not produced")
                t0 = time.perf_counter()
                assembling = True
                self.encoder.concatenate(paths, output, work_dir, plan, self.token)
                self.timings["concat"] = time.perf_counter() - t0
        except CancellationError:
            self._enter(PipelineState.CANCELLED)
            if assembling and output and os.path.exists(output):
                os.remove(output)
            raise
        except Exception:
            self._enter(PipelineState.FAILED)
            raise
        self.timings["total"] = time.perf_counter() - started
        self._enter(PipelineState.SUCCESS)
        if self.config.show_stats:
            write_stats(self.config, self.plan.page_count, self.timings)
        return output

    def _run_stages(self, plan: RenderPlan, work_dir: str) -> List[Optional[str]]:
        n = plan.page_count
        jobs: "queue.Queue" = queue.Queue(maxsize=n)
        rendered: "queue.Queue" = queue.Queue(maxsize=n)
        results: List[Optional[str]] = [None] * n

        render_threads = [
            threading.Thread(target=self._render_worker, args=(plan, jobs, rendered), daemon=True)
            for _ in range(max(1, min(self.config.workers, n)))
        ]
        encode_threads = [
            threading.Thread(
                target=self._encode_worker, args=(plan, rendered, results, work_dir), daemon=True
            )
            for _ in range(max(1, min(self.config.encode_workers, n)))
        ]
        t0 = time.perf_counter()
        for t in render_threads + encode_threads:
            t.start()
        for i in range(n):
            jobs.put(i)
        for _ in render_threads:
            jobs.put(_STOP)
        for t in render_threads:
            t.join()
        self.timings["render"] = time.perf_counter() - t0
        for _ in encode_threads:
            rendered.put(_STOP)
        for t in encode_threads:
            t.join()
        self.timings["encode"] = time.perf_counter() - t0
        return results

    def _render_worker(self, plan: RenderPlan, jobs, rendered) -> None:
        while True:
            i = jobs.get()
            if i is _STOP:
                return
            if self.token.cancelled:
                continue
            try:
                frame = self.source.render_page(i, plan.dpi)
            except Exception as e:
                logging.error("render page %d failed: %s", i + 1, e)
                continue
            rendered.put((i, frame))

    def _encode_worker(self, plan: RenderPlan, rendered, results, work_dir: str) -> None:
        n = plan.page_count
        while True:
            item = rendered.get()
            if item is _STOP:
                return
            i, frame = item
            try:
                if self.token.cancelled:
                    continue
                params = plan.segment_params(i)
                size = (frame.shape[1], frame.shape[0])
                params = replace(params, filter=self.effect.generate_filter(params, size))
                path = os.path.join(work_dir, f"s{i}.mp4")
                self.encoder.encode_segment(frame, path, params, self.token)
                results[i] = path
                with self._lock:
                    self._done += 1
                    done = self._done
                logging.info("segment ready: %d/%d", done, n)
            except CancellationError:
                continue
            except Exception as e:
                logging.error("encode page %d failed: %s", i + 1, e)
            finally:
                _release(self.source, frame)


def write_stats(config: ReelConfig, page_count: int, timings: dict, log_path: str = BENCHMARK_LOG) -> str:
    """Log a timing report and append a one-line summary to *log_path*."""
    total = timings.get("total", 0.0)
    rate = page_count / total if total > 0 else 0.0
    logging.info(
        "performance: total %.2fs | render %.2fs | encode %.2fs | concat %.2fs | %.2f pages/s",
        total,
        timings.get("render", 0.0),
        timings.get("encode", 0.0),
        timings.get("concat", 0.0),
        rate,
    )
    line = (
        f"[{datetime.now():%Y-%m-%d %H:%M:%S}] Input: {os.path.basename(config.input_path)} | "
        f"Pages: {page_count} | Total: {total:.2f}s | Render: {timings.get('render', 0.0):.2f}s | "
        f"Encode: {timings.get('encode', 0.0):.2f}s | Pages/s: {rate:.2f}\n"
    )
    try:
        with open(log_path, "a", encoding="utf8") as fh:
            fh.write(line)
    except OSError as e:
        logging.warning("could not write %s: %s", log_path, e)
    return line


def _plan_slide(
    detector, source, index: int, label: str, duration: float, config: ReelConfig
) -> Slide:
    try:
        frame = source.render_page(index, config.dpi)
    except RenderError as e:
        logging.warning("page %d not analysed: %s", index + 1, e)
        return fallback_slide(index + 1, label, duration, config.width, config.height)
    h, w = frame.shape[:2]
    try:
        blocks = detector.detect(frame)
        director = Director(w, h)
        return director.plan_slide(
            blocks, index + 1, label, duration, config.fade_duration, config.outro_duration
        )
    except DetectionError as e:
        logging.info("page %d: %s, using full view", index + 1, e)
        return fallback_slide(index + 1, label, duration, w, h)
    finally:
        _release(source, frame)


def generate_scenario_file(
    config: ReelConfig,
    source,
    path: str,
    detector=None,
    rng: Optional[random.Random] = None,
) -> str:
    """Detect regions on every page and write the planned scenario to *path*."""
    n = source.page_count()
    if n == 0:
        raise ConfigError("source contains no pages")
    if config.total_duration > 0:
        durations = plan_durations(config.total_duration, config.fade_duration, n, rng)
    else:
        durations = [DEFAULT_SLIDE_DURATION] * n
    detector = detector or get_detector(
        config.analyze_mode,
        min_block_area=config.min_block_area,
        edge_threshold=config.edge_threshold,
    )
    slides = []
    for i in range(n):
        logging.info("analysing page %d/%d", i + 1, n)
        slide = _plan_slide(detector, source, i, f"slide_{i + 1}.png", durations[i], config)
        slides.append(replace(slide, id=i + 1))
    write_scenario(Scenario(slides=slides), path)
    logging.info("scenario written: %s", path)
    return path
