"""ffmpeg based segment encoding and final assembly."""
from __future__ import annotations

import logging
import os
from typing import List, Optional, Sequence

import numpy as np

from .bin_config import resolve_ffmpeg
from .cancel import CancelToken
from .config import SegmentParams
from .errors import AssemblyError, ConfigError, EncodeError

BG_FADE = 5.0


def quality_args(encoder: str, quality: int) -> List[str]:
    """Rate control flags understood by *encoder*."""
    if encoder == "h264_videotoolbox":
        return ["-b:v", f"{quality * 100}k"]
    if encoder == "h264_nvenc":
        return ["-cq", str(quality)]
    return ["-crf", str(quality), "-preset", "medium"]


def build_segment_args(
    input_w: int,
    input_h: int,
    path: str,
    params: SegmentParams,
    encoder: str = "libx264",
    quality: int = 23,
) -> List[str]:
    """Arguments encoding one raw RGBA frame from stdin into *path*."""
    args = [
        "-y",
        "-f", "rawvideo",
        "-pixel_format", "rgba",
        "-video_size", f"{input_w}x{input_h}",
        "-i", "-",
    ]
    if params.filter:
        args += ["-vf", params.filter]
    args += [
        "-t", f"{params.duration:.6f}",
        "-r", str(params.fps),
        "-pix_fmt", "yuv420p",
        "-c:v", encoder,
    ]
    args += quality_args(encoder, quality)
    args.append(path)
    return args


def background_volume_filter(volume: float, total: float) -> str:
    """Envelope for looped background audio: rise from 10%, fall to silence."""
    fade_in = fade_out = BG_FADE
    if total < fade_in + fade_out:
        fade_in = fade_out = total * 0.1
    return (
        f"volume='{volume:.6f}*(if(lte(t,{fade_in:.6f}),0.1+0.9*(t/{fade_in:.6f}),"
        f"if(gte(t,{total - fade_out:.6f}),({total:.6f}-t)/{fade_out:.6f},1.0)))'"
        ":eval=frame"
    )


def uses_transition(plan, count: int) -> bool:
    return bool(plan.transition) and plan.transition != "none" and count > 1


def needs_filter_graph(plan, count: int) -> bool:
    return uses_transition(plan, count) or bool(plan.audio_path) or bool(plan.background_audio)


def write_concat_list(paths: Sequence[str], work_dir: str) -> str:
    list_path = os.path.join(work_dir, "inputs.txt")
    with open(list_path, "w", encoding="utf8") as fh:
        for p in paths:
            fh.write(f"file '{os.path.abspath(p)}'\n")
    return list_path


def build_concat_args(
    paths: Sequence[str], final_path: str, plan, script_dir: Optional[str] = None
) -> List[str]:
    """Arguments for the filter-graph assembly path.

    Joins segments with ``xfade`` (or the ``concat`` filter when there is no
    transition), maps the narration and mixes looping background audio.
    With *script_dir* the graph is written to ``filter_graph.txt`` there and
    passed with ``-filter_complex_script``, keeping long documents off argv.
    """
    n = len(paths)
    args = ["-y"]
    for p in paths:
        args += ["-i", p]

    graph: List[str] = []
    video_out = "0:v"
    if uses_transition(plan, n):
        fade = plan.fade_duration
        offset = 0.0
        last = "[0:v]"
        for i in range(1, n):
            if i - 1 < len(plan.durations):
                dur = plan.durations[i - 1]
            else:
                dur = plan.total_duration / n
            offset += dur - fade
            out = f"[v{i}]"
            graph.append(
                f"{last}[{i}:v]xfade=transition={plan.transition}:"
                f"duration={fade:.6f}:offset={offset:.6f}{out}"
            )
            last = out
        video_out = last
    elif n > 1:
        inputs = "".join(f"[{i}:v]" for i in range(n))
        graph.append(f"{inputs}concat=n={n}:v=1:a=0[vconcat]")
        video_out = "[vconcat]"

    audio_out = ""
    next_input = n
    main_index = bg_index = -1
    if plan.audio_path:
        main_index = next_input
        next_input += 1
        args += ["-i", plan.audio_path]
    if plan.background_audio:
        bg_index = next_input
        args += ["-stream_loop", "-1", "-i", plan.background_audio]
        envelope = background_volume_filter(plan.background_volume, plan.total_duration)
        graph.append(f"[{bg_index}:a]{envelope}[bg_a]")
        if main_index >= 0:
            graph.append(f"[{main_index}:a]volume=1.0[main_a]")
            graph.append("[main_a][bg_a]amix=inputs=2:duration=first:dropout_transition=3[aout]")
            audio_out = "[aout]"
        else:
            audio_out = "[bg_a]"
    elif main_index >= 0:
        audio_out = f"{main_index}:a"

    if graph:
        if script_dir:
            script_path = os.path.join(script_dir, "filter_graph.txt")
            with open(script_path, "w", encoding="utf8") as fh:
                fh.write(";\n".join(graph))
            args += ["-filter_complex_script", script_path]
        else:
            args += ["-filter_complex", ";".join(graph)]
    args += ["-map", video_out]
    if audio_out:
        args += ["-map", audio_out, "-shortest"]
    args += ["-c:v", plan.video_encoder, "-pix_fmt", "yuv420p"]
    args += quality_args(plan.video_encoder, plan.quality)
    args.append(final_path)
    return args


class FFmpegEncoder:
    """Media encoder driving the ``ffmpeg`` executable."""

    def __init__(self, ffmpeg: Optional[str] = None, video_encoder: str = "libx264", quality: int = 23):
        self.ffmpeg = ffmpeg or resolve_ffmpeg()
        if not self.ffmpeg:
            raise ConfigError("ffmpeg not found; install it or pass --ffmpeg")
        self.video_encoder = video_encoder
        self.quality = quality

    def encode_segment(
        self,
        frame: np.ndarray,
        path: str,
        params: SegmentParams,
        token: Optional[CancelToken] = None,
    ) -> str:
        token = token or CancelToken()
        h, w = frame.shape[:2]
        cmd = [self.ffmpeg] + build_segment_args(
            w, h, path, params, self.video_encoder, self.quality
        )
        rc, output = token.run(cmd, np.ascontiguousarray(frame).tobytes())
        if rc != 0:
            raise EncodeError(params.page_index + 1, f"ffmpeg exited with {rc}", output)
        return path

    def concatenate(
        self,
        paths: Sequence[str],
        final_path: str,
        work_dir: str,
        plan,
        token: Optional[CancelToken] = None,
    ) -> str:
        token = token or CancelToken()
        if not paths:
            raise AssemblyError("no segments to assemble")
        if needs_filter_graph(plan, len(paths)):
            cmd = [self.ffmpeg] + build_concat_args(paths, final_path, plan, work_dir)
        else:
            list_path = write_concat_list(paths, work_dir)
            cmd = [
                self.ffmpeg, "-y",
                "-f", "concat", "-safe", "0", "-i", list_path,
                "-c", "copy", final_path,
            ]
        logging.info("assembling %d segments into %s", len(paths), final_path)
        rc, output = token.run(cmd)
        if rc != 0:
            raise AssemblyError(f"ffmpeg assembly exited with {rc}", output)
        return final_path
