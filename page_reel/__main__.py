"""Command line interface for page_reel."""
from __future__ import annotations

import argparse
import logging
import os
import random
import signal
import sys
from dataclasses import replace
from datetime import datetime
from typing import Optional

import yaml

from .audio import DEFAULT_PAGE_DURATION, resolve_total_duration
from .bin_config import best_h264_encoder, resolve_ffmpeg
from .cancel import CancelToken
from .config import ENCODE_WORKERS, FORMAT_PRESETS, ReelConfig
from .detect import get_detector
from .director import Director, fallback_slide
from .encoder import FFmpegEncoder
from .engine import VideoProject, generate_scenario_file
from .errors import CancellationError, DetectionError, ReelError
from .preview import write_preview
from .scenario import read_scenario, scenario_path
from .source import ImageSource
from .validate import ensure_valid, validate_config

DEFAULT_OUTPUT_DIR = "output"
DEFAULT_SCENARIO_DIR = "scenarios"


def _positive_int(x: str) -> int:
    v = int(x)
    if v < 1:
        raise argparse.ArgumentTypeError("must be >= 1")
    return v


def default_output_path(input_path: str, output_dir: str, now: Optional[datetime] = None) -> str:
    """``<output_dir>/<stem>_<timestamp>.mp4``, suffixed ``_2``, ``_3`` when taken."""
    base = os.path.basename(os.path.normpath(input_path))
    stem = os.path.splitext(base)[0].replace(" ", "_") or "reel"
    ts = (now or datetime.now()).strftime("%Y-%m-%d_%H-%M-%S")
    os.makedirs(output_dir, exist_ok=True)
    out = os.path.join(output_dir, f"{stem}_{ts}.mp4")
    if not os.path.exists(out):
        return out
    root, ext = os.path.splitext(out)
    i = 2
    while True:
        cand = f"{root}_{i}{ext}"
        if not os.path.exists(cand):
            return cand
        i += 1


def parse_args(argv: list[str] | None = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Turn page images into a pan-and-zoom video")
    parser.add_argument("input", help="Image file or folder with page images")
    parser.add_argument("--preset", action="append", default=[], help="Path to YAML preset overriding defaults")
    parser.add_argument("--output", help="Path to the MP4 file (default: timestamped name in --output-dir)")
    parser.add_argument("--output-dir", default=DEFAULT_OUTPUT_DIR, help="Folder for auto-named output")
    parser.add_argument("--ffmpeg", help="Path to ffmpeg binary")
    parser.add_argument("--validate", action="store_true", help="Validate arguments and exit")
    parser.add_argument("--verbose", action="store_true", help="Debug logging")
    parser.add_argument("--seed", type=int, default=None, help="Seed for duration planning")

    timing = parser.add_argument_group("timing")
    timing.add_argument("--duration", type=float, default=0.0, help="Total video length in seconds (0: derive)")
    timing.add_argument("--page-duration", type=float, default=DEFAULT_PAGE_DURATION, help="Seconds per page when no duration is known")
    timing.add_argument("--fade", type=float, default=0.5, help="Transition length in seconds")
    timing.add_argument("--outro", type=float, default=1.0, help="Zoom-out time before each transition")
    timing.add_argument("--transition", default="fade", help="xfade transition type or 'none'")

    frame = parser.add_argument_group("frame")
    frame.add_argument("--width", type=int, default=1280)
    frame.add_argument("--height", type=int, default=720)
    frame.add_argument("--format", choices=sorted(FORMAT_PRESETS), default=None, help="Frame size preset")
    frame.add_argument("--fps", type=int, default=30)
    frame.add_argument("--dpi", type=int, default=300)
    frame.add_argument("--zoom-mode", default="center", help="center, corners, random, out-center, out-random")
    frame.add_argument("--zoom-speed", type=float, default=0.001, help="Zoom increase per frame")

    audio = parser.add_argument_group("audio")
    audio.add_argument("--audio", default="", help="Narration track")
    audio.add_argument("--no-audio-sync", dest="audio_sync", action="store_false", help="Do not fit the video length to --audio")
    audio.add_argument("--bg-audio", default="", help="Looping background music")
    audio.add_argument("--bg-volume", type=float, default=0.3, help="Background music volume (0..1)")

    enc = parser.add_argument_group("encoding")
    enc.add_argument("--encoder", default="auto", help="ffmpeg video encoder or 'auto'")
    enc.add_argument("--quality", type=int, default=23, help="CRF/CQ value (bitrate x100k for VideoToolbox)")
    enc.add_argument("--workers", type=_positive_int, default=os.cpu_count() or 1)
    enc.add_argument("--encode-workers", type=_positive_int, default=ENCODE_WORKERS)
    enc.add_argument("--stats", action="store_true", help="Log timings and append to benchmark.log")
    enc.add_argument("--debug", action="store_true", help="Overlay slide number and crop window")

    scen = parser.add_argument_group("scenario")
    scen.add_argument("--analyze", default="contrast", help="Region detector (contrast)")
    scen.add_argument("--min-block-area", type=int, default=500)
    scen.add_argument("--edge-threshold", type=float, default=30.0)
    scen.add_argument("--generate-scenario", action="store_true", help="Write a scenario YAML and exit")
    scen.add_argument("--scenario-output", help="Path for --generate-scenario")
    scen.add_argument("--scenario", help="Render the camera path from a scenario YAML")
    scen.add_argument("--preview", help="Write an in-process preview MP4 of one page and exit")
    scen.add_argument("--preview-page", type=_positive_int, default=1)

    prelim, _ = parser.parse_known_args(argv)
    for path in prelim.preset:
        with open(path, "r", encoding="utf8") as fh:
            data = yaml.safe_load(fh) or {}
        parser.set_defaults(**data)

    args = parser.parse_args(argv)
    if args.format:
        args.width, args.height = FORMAT_PRESETS[args.format]
    return args


def build_config(args: argparse.Namespace, page_count: int = 0, resolve_audio: bool = True) -> ReelConfig:
    """Translate parsed arguments into a :class:`ReelConfig`."""
    if args.scenario and not (args.audio_sync and args.audio):
        # a scenario carries its own timing unless asked to follow audio
        total = args.duration
    elif resolve_audio:
        total = resolve_total_duration(
            page_count,
            duration=args.duration,
            audio_path=args.audio,
            audio_sync=args.audio_sync,
            page_duration=args.page_duration,
        )
    else:
        total = args.duration
    return ReelConfig(
        input_path=args.input,
        output_path=args.output or "",
        total_duration=total,
        width=args.width,
        height=args.height,
        fps=args.fps,
        dpi=args.dpi,
        workers=args.workers,
        encode_workers=args.encode_workers,
        fade_duration=args.fade,
        outro_duration=args.outro,
        transition=args.transition,
        zoom_mode=args.zoom_mode,
        zoom_speed=args.zoom_speed,
        audio_path=args.audio,
        background_audio=args.bg_audio,
        background_volume=args.bg_volume,
        video_encoder=args.encoder,
        quality=args.quality,
        analyze_mode=args.analyze,
        min_block_area=args.min_block_area,
        edge_threshold=args.edge_threshold,
        debug=args.debug,
        show_stats=args.stats,
    )


def _preview(args, cfg: ReelConfig, source: ImageSource, scenario) -> str:
    index = args.preview_page - 1
    page = source.render_page(index, cfg.dpi)
    h, w = page.shape[:2]
    if scenario is not None and index < len(scenario.slides):
        slide = scenario.slides[index]
    else:
        duration = cfg.total_duration / max(1, source.page_count()) or 5.0
        label = source.page_name(index)
        detector = get_detector(
            cfg.analyze_mode,
            min_block_area=cfg.min_block_area,
            edge_threshold=cfg.edge_threshold,
        )
        try:
            slide = Director(w, h).plan_slide(
                detector.detect(page), index + 1, label, duration,
                cfg.fade_duration, cfg.outro_duration,
            )
        except DetectionError as e:
            logging.info("page %d: %s, using full view", index + 1, e)
            slide = fallback_slide(index + 1, label, duration, w, h)
    try:
        return write_preview(page, slide, args.preview, (cfg.width, cfg.height), cfg.fps)
    finally:
        source.pool.release(page)


def _run(args: argparse.Namespace) -> None:
    source = ImageSource(args.input)
    try:
        cfg = ensure_valid(build_config(args, source.page_count()))
        rng = random.Random(args.seed) if args.seed is not None else None
        if args.generate_scenario:
            path = args.scenario_output or scenario_path(DEFAULT_SCENARIO_DIR)
            generate_scenario_file(cfg, source, path, rng=rng)
            print(path)
            return

        scenario = read_scenario(args.scenario) if args.scenario else None
        if scenario is not None:
            logging.info("using scenario: %s", args.scenario)
        if args.preview:
            print(_preview(args, cfg, source, scenario))
            return

        ffmpeg = resolve_ffmpeg(args.ffmpeg)
        if cfg.video_encoder == "auto":
            cfg = replace(cfg, video_encoder=best_h264_encoder(ffmpeg))
        if not cfg.output_path:
            cfg = replace(cfg, output_path=default_output_path(args.input, args.output_dir))
        encoder = FFmpegEncoder(ffmpeg, cfg.video_encoder, cfg.quality)

        token = CancelToken()
        previous = signal.signal(signal.SIGINT, lambda signum, frame: token.cancel())
        try:
            out = VideoProject(cfg, source, encoder, scenario=scenario, token=token, rng=rng).run()
        finally:
            signal.signal(signal.SIGINT, previous)
        print(out)
    finally:
        source.close()


def main(argv: list[str] | None = None) -> None:
    args = parse_args(argv)
    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.INFO,
        format="%(levelname)s %(message)s",
    )
    if args.validate:
        errs = validate_config(build_config(args, resolve_audio=False))
        if errs:
            for e in errs:
                print(f"validation error: {e}", file=sys.stderr)
            raise SystemExit(1)
        return

    try:
        _run(args)
    except CancellationError:
        logging.error("cancelled, no output written")
        raise SystemExit(130)
    except FileNotFoundError as e:
        logging.error("input not found: %s", e)
        raise SystemExit(1)
    except ReelError as e:
        logging.error("%s", e)
        raise SystemExit(1)


if __name__ == "__main__":
    main()
